"""Unit tests for PerformanceService.

Hand-computed reference (two assets, equal weights):
  asset returns   [[0.01, 0.02], [−0.01, 0.03]]
  portfolio       [0.015, 0.010]
  benchmark       [0.010, 0.005]
  deviations of p and b are both ±0.0025  →  beta = 1
  alpha = mean(p) − mean(b) = 0.0125 − 0.0075 = 0.005  (rf cancels at beta 1)
"""

from __future__ import annotations

import math
from datetime import date

import numpy as np
import pandas as pd
import pytest
from scipy.stats import kurtosis, norm, skew

from src.domain.exceptions import DimensionMismatchError, InsufficientDataError
from src.domain.models.backtest import RebalanceConfig, RebalanceEntry, RebalancePlan
from src.domain.models.enums import OptimizationStatus, SharpeMeasure
from src.domain.models.market_data import ReturnSeries
from src.domain.models.optimization import WeightVector
from src.domain.services.performance import PerformanceService

RF = 0.0382
RF_PERIOD = RF / 252


# ═══════════════════════════════════════════════════════════════════════════ #
# Fixtures                                                                     #
# ═══════════════════════════════════════════════════════════════════════════ #


@pytest.fixture
def svc() -> PerformanceService:
    return PerformanceService()


@pytest.fixture
def dates2() -> pd.DatetimeIndex:
    return pd.DatetimeIndex(["2024-01-02", "2024-01-03"])


@pytest.fixture
def assets2(dates2) -> ReturnSeries:
    return ReturnSeries(
        frame=pd.DataFrame({"A": [0.01, -0.01], "B": [0.02, 0.03]}, index=dates2)
    )


@pytest.fixture
def bench2(dates2) -> ReturnSeries:
    return ReturnSeries.from_series(pd.Series([0.010, 0.005], index=dates2), ticker="SPX")


@pytest.fixture
def equal2() -> WeightVector:
    return WeightVector(weights={"A": 0.5, "B": 0.5})


# ═══════════════════════════════════════════════════════════════════════════ #
# portfolio_returns                                                            #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestPortfolioReturns:
    def test_weighted_sum(self, svc, assets2, equal2) -> None:
        port = svc.portfolio_returns(assets2, equal2)
        assert port.tolist() == pytest.approx([0.015, 0.010])
        assert port.index.equals(assets2.dates)

    def test_ticker_mismatch_raises(self, svc, assets2) -> None:
        with pytest.raises(DimensionMismatchError):
            svc.portfolio_returns(assets2, WeightVector(weights={"A": 0.5, "C": 0.5}))


# ═══════════════════════════════════════════════════════════════════════════ #
# evaluate                                                                     #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestEvaluate:
    def test_capm_figures(self, svc, assets2, bench2, equal2) -> None:
        report = svc.evaluate(assets2, equal2, bench2, risk_free_rate=RF, confidence=0.95)
        assert report.rf_period == pytest.approx(RF_PERIOD)
        assert report.beta == pytest.approx(1.0)
        assert report.alpha == pytest.approx(0.005)

    def test_sharpe_with_stddev(self, svc, assets2, bench2, equal2) -> None:
        report = svc.evaluate(assets2, equal2, bench2, risk_free_rate=RF, confidence=0.95)
        expected = (0.0125 - RF_PERIOD) / (0.0025 * math.sqrt(2))
        assert report.sharpe == pytest.approx(expected)
        assert report.annualized_sharpe == pytest.approx(expected * math.sqrt(252))
        assert report.sharpe_measure == SharpeMeasure.STDDEV

    def test_modified_var_sharpe_has_no_annualised_value(
        self, svc, assets2, bench2, equal2
    ) -> None:
        report = svc.evaluate(
            assets2, equal2, bench2, RF, 0.95, sharpe_measure=SharpeMeasure.MODIFIED_VAR
        )
        assert report.sharpe_measure == SharpeMeasure.MODIFIED_VAR
        assert report.annualized_sharpe is None

    def test_cumulative_and_annualised(self, svc, assets2, bench2, equal2) -> None:
        report = svc.evaluate(assets2, equal2, bench2, RF, 0.95)
        cumulative = 1.015 * 1.010 - 1.0
        assert report.cumulative_return == pytest.approx(cumulative)
        assert report.annualized_return == pytest.approx((1 + cumulative) ** (252 / 2) - 1)
        assert report.annualized_volatility == pytest.approx(report.stdev * math.sqrt(252))
        assert report.mean_return == pytest.approx(0.0125)

    def test_report_period(self, svc, assets2, bench2, equal2) -> None:
        report = svc.evaluate(assets2, equal2, bench2, RF, 0.95)
        assert report.start == date(2024, 1, 2)
        assert report.end == date(2024, 1, 3)
        assert report.n_periods == 2

    def test_misaligned_benchmark_raises(self, svc, assets2, equal2) -> None:
        other = ReturnSeries.from_series(
            pd.Series([0.01, 0.02], index=pd.DatetimeIndex(["2024-01-02", "2024-01-04"])),
            ticker="SPX",
        )
        with pytest.raises(DimensionMismatchError):
            svc.evaluate(assets2, equal2, other, RF, 0.95)

    def test_multi_column_benchmark_raises(self, svc, assets2, equal2) -> None:
        with pytest.raises(DimensionMismatchError):
            svc.evaluate(assets2, equal2, assets2, RF, 0.95)

    def test_single_observation_raises(self, svc, equal2) -> None:
        idx = pd.DatetimeIndex(["2024-01-02"])
        one = ReturnSeries(frame=pd.DataFrame({"A": [0.01], "B": [0.02]}, index=idx))
        bench = ReturnSeries.from_series(pd.Series([0.01], index=idx), ticker="SPX")
        with pytest.raises(InsufficientDataError):
            svc.evaluate(one, equal2, bench, RF, 0.95)

    def test_rebalance_plan_uses_realised_returns(self, svc, assets2, bench2) -> None:
        realised = pd.Series([0.01, 0.03], index=assets2.dates)
        plan = RebalancePlan(
            config=RebalanceConfig(),
            entries=[
                RebalanceEntry(
                    rebalance_date=date(2024, 1, 2),
                    weights=WeightVector(weights={"A": 1.0, "B": 0.0}),
                    status=OptimizationStatus.SUCCESS,
                    training_start=date(2023, 12, 1),
                    training_end=date(2023, 12, 29),
                )
            ],
            realized_returns=realised,
        )
        report = svc.evaluate(assets2, plan, bench2, RF, 0.95)
        assert report.mean_return == pytest.approx(0.02)
        assert report.cumulative_return == pytest.approx(1.01 * 1.03 - 1.0)

    def test_rebalance_plan_outside_series_raises(self, svc, assets2, bench2) -> None:
        plan = RebalancePlan(
            config=RebalanceConfig(),
            realized_returns=pd.Series(
                [0.01, 0.02], index=pd.DatetimeIndex(["2024-01-02", "2024-02-01"])
            ),
        )
        with pytest.raises(DimensionMismatchError):
            svc.evaluate(assets2, plan, bench2, RF, 0.95)


# ═══════════════════════════════════════════════════════════════════════════ #
# Sharpe / modified VaR                                                        #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestSharpe:
    def test_zero_volatility_is_nan(self, svc) -> None:
        flat = pd.Series([0.01, 0.01, 0.01])
        assert math.isnan(svc.sharpe_ratio(flat, RF_PERIOD, 0.95))

    def test_modified_var_matches_cornish_fisher(self, svc) -> None:
        rng = np.random.default_rng(3)
        r = pd.Series(rng.standard_t(df=5, size=400) * 0.01)
        z = norm.ppf(0.05)
        s = skew(r, bias=False)
        k = kurtosis(r, fisher=True, bias=False)
        z_cf = z + (z**2 - 1) * s / 6 + (z**3 - 3 * z) * k / 24 - (2 * z**3 - 5 * z) * s**2 / 36
        expected = -(r.mean() + z_cf * r.std(ddof=1))
        assert svc.modified_var(r, 0.95) == pytest.approx(expected)

    def test_modified_var_is_a_positive_loss_for_noisy_data(self, svc) -> None:
        rng = np.random.default_rng(5)
        r = pd.Series(rng.normal(0.0, 0.02, size=500))
        assert svc.modified_var(r, 0.95) > 0.0

    def test_modified_var_sharpe_divides_by_mvar(self, svc) -> None:
        rng = np.random.default_rng(5)
        r = pd.Series(rng.normal(0.001, 0.02, size=500))
        expected = (r.mean() - RF_PERIOD) / svc.modified_var(r, 0.99)
        assert svc.sharpe_ratio(r, RF_PERIOD, 0.99, SharpeMeasure.MODIFIED_VAR) == pytest.approx(
            expected
        )


# ═══════════════════════════════════════════════════════════════════════════ #
# CAPM helpers                                                                 #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestCapm:
    def test_beta_of_scaled_benchmark(self, svc) -> None:
        b = pd.Series([0.01, -0.02, 0.015, 0.005])
        p = 2.0 * (b - RF_PERIOD) + RF_PERIOD
        assert svc.capm_beta(p, b, RF_PERIOD) == pytest.approx(2.0)
        assert svc.jensens_alpha(p, b, RF_PERIOD) == pytest.approx(0.0, abs=1e-12)

    def test_flat_benchmark_raises(self, svc) -> None:
        with pytest.raises(InsufficientDataError):
            svc.capm_beta(pd.Series([0.01, 0.02]), pd.Series([0.0, 0.0]), RF_PERIOD)


# ═══════════════════════════════════════════════════════════════════════════ #
# Drawdown / calendar                                                          #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestDrawdownAndCalendar:
    def test_max_drawdown_from_running_peak(self, svc) -> None:
        # wealth 1.1, 0.55, 0.66  →  trough 0.55 against peak 1.1
        assert svc.max_drawdown(pd.Series([0.1, -0.5, 0.2])) == pytest.approx(-0.5)

    def test_max_drawdown_from_initial_wealth(self, svc) -> None:
        assert svc.max_drawdown(pd.Series([-0.1, 0.05])) == pytest.approx(-0.1)

    def test_no_drawdown_is_zero(self, svc) -> None:
        assert svc.max_drawdown(pd.Series([0.01, 0.02])) == 0.0

    def test_same_month_compounds_geometrically(self, svc) -> None:
        r = pd.Series([0.05, -0.02], index=pd.DatetimeIndex(["2024-03-04", "2024-03-05"]))
        cal = svc.calendarize(r)
        assert len(cal) == 1
        assert (cal[0].year, cal[0].month) == (2024, 3)
        assert cal[0].ret == pytest.approx(0.029)

    def test_months_split(self, svc) -> None:
        r = pd.Series(
            [0.01, 0.02, 0.03],
            index=pd.DatetimeIndex(["2023-12-29", "2024-01-02", "2024-01-03"]),
        )
        cal = svc.calendarize(r)
        assert [(c.year, c.month) for c in cal] == [(2023, 12), (2024, 1)]
        assert cal[0].ret == pytest.approx(0.01)
        assert cal[1].ret == pytest.approx(1.02 * 1.03 - 1.0)
