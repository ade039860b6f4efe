"""Performance metrics service.

Sharpe ratio, CAPM beta, Jensen's alpha and calendarised returns for a
weighted portfolio against a benchmark.

Conventions:
  rf_period  = risk_free_rate / periods_per_year   (e.g. 0.0382 / 252)
  excess     = r − rf_period
  Sharpe     = (mean(r_p) − rf_period) / D
               D = sample stddev (SharpeMeasure.STDDEV, the default), or
               D = Cornish-Fisher modified VaR at ``confidence``
                   (SharpeMeasure.MODIFIED_VAR)
  beta       = Cov(excess_p, excess_b) / Var(excess_b)      (ddof = 1)
  alpha      = mean(excess_p) − beta · mean(excess_b)       (per period)
  calendar   = ∏(1 + r_i) − 1 within each (year, month)
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
from scipy.stats import kurtosis, norm, skew

from src.domain.exceptions import DimensionMismatchError, InsufficientDataError
from src.domain.models.backtest import RebalancePlan
from src.domain.models.enums import SharpeMeasure
from src.domain.models.market_data import ReturnSeries
from src.domain.models.optimization import WeightVector
from src.domain.models.performance import CalendarReturn, PerformanceReport

logger = logging.getLogger(__name__)


class PerformanceService:
    """Stateless calculator for derived, read-only performance reports."""

    def portfolio_returns(self, returns: ReturnSeries, weights: WeightVector) -> pd.Series:
        """Σ wᵢ · rᵢ,t for every date, with weights held constant.

        Raises:
            DimensionMismatchError: Weights and series cover different tickers.
        """
        w = weights.as_array(returns.tickers)
        return pd.Series(returns.values @ w, index=returns.dates, name="portfolio")

    def evaluate(
        self,
        returns: ReturnSeries,
        weights: WeightVector | RebalancePlan,
        benchmark: ReturnSeries,
        risk_free_rate: float,
        confidence: float,
        periods_per_year: int = 252,
        sharpe_measure: SharpeMeasure = SharpeMeasure.STDDEV,
    ) -> PerformanceReport:
        """Build a PerformanceReport for static or rebalanced weights.

        For a RebalancePlan the portfolio series is the plan's realised
        returns, so ``benchmark`` must cover exactly the plan's dates.

        Args:
            returns: Asset return series.
            weights: Fixed WeightVector or a RebalancePlan.
            benchmark: Single-column benchmark return series.
            risk_free_rate: Annual risk-free rate.
            confidence: Confidence level for the modified-VaR Sharpe.
            periods_per_year: Annualisation factor (252 for daily data).
            sharpe_measure: Sharpe denominator; recorded on the report.

        Raises:
            DimensionMismatchError: Portfolio and benchmark dates differ, or the
                benchmark has more than one column.
            InsufficientDataError: Fewer than 2 portfolio returns.
        """
        if isinstance(weights, RebalancePlan):
            port = weights.realized_returns.copy()
            port.index = pd.DatetimeIndex(port.index)
            missing = port.index.difference(returns.dates)
            if len(missing):
                raise DimensionMismatchError(
                    f"Rebalance plan has {len(missing)} dates outside the return series"
                )
        else:
            port = self.portfolio_returns(returns, weights)

        if len(benchmark.tickers) != 1:
            raise DimensionMismatchError(
                f"Benchmark must have exactly one column, got {benchmark.tickers}"
            )
        if not port.index.equals(benchmark.dates):
            raise DimensionMismatchError(
                f"Portfolio ({len(port)} dates) and benchmark ({len(benchmark)} dates) "
                "do not share the same date index"
            )
        if len(port) < 2:
            raise InsufficientDataError(
                "Performance metrics need at least 2 portfolio returns.", 2, len(port)
            )

        bench = benchmark.column(benchmark.tickers[0])
        rf_period = risk_free_rate / periods_per_year

        sharpe = self.sharpe_ratio(port, rf_period, confidence, sharpe_measure)
        annualized_sharpe = (
            sharpe * float(np.sqrt(periods_per_year))
            if sharpe_measure == SharpeMeasure.STDDEV
            else None
        )
        beta = self.capm_beta(port, bench, rf_period)
        alpha = self.jensens_alpha(port, bench, rf_period, beta)

        stdev = float(port.std(ddof=1))
        cumulative = float((1.0 + port).prod() - 1.0)
        years = len(port) / periods_per_year
        annualized_return = float((1.0 + cumulative) ** (1.0 / years) - 1.0) if cumulative > -1.0 else -1.0

        report = PerformanceReport(
            start=port.index[0].date(),
            end=port.index[-1].date(),
            n_periods=len(port),
            periods_per_year=periods_per_year,
            risk_free_rate=risk_free_rate,
            rf_period=rf_period,
            confidence=confidence,
            sharpe_measure=sharpe_measure,
            sharpe=sharpe,
            annualized_sharpe=annualized_sharpe,
            beta=beta,
            alpha=alpha,
            mean_return=float(port.mean()),
            stdev=stdev,
            cumulative_return=cumulative,
            annualized_return=annualized_return,
            annualized_volatility=stdev * float(np.sqrt(periods_per_year)),
            max_drawdown=self.max_drawdown(port),
            calendar_returns=self.calendarize(port),
        )
        logger.debug(
            "Evaluated %d periods: sharpe=%.4f beta=%.4f alpha=%.6f",
            report.n_periods, report.sharpe, report.beta, report.alpha,
        )
        return report

    def sharpe_ratio(
        self,
        returns: pd.Series,
        rf_period: float,
        confidence: float,
        measure: SharpeMeasure = SharpeMeasure.STDDEV,
    ) -> float:
        """(mean − rf_period) / D, D chosen by ``measure``.

        Returns NaN when the denominator is zero or negative.
        """
        excess_mean = float(returns.mean()) - rf_period
        if measure == SharpeMeasure.STDDEV:
            denom = float(returns.std(ddof=1))
        elif measure == SharpeMeasure.MODIFIED_VAR:
            denom = self.modified_var(returns, confidence)
        else:
            raise ValueError(f"Unsupported Sharpe measure: {measure!r}")
        if denom <= 0.0 or not np.isfinite(denom):
            logger.warning("Sharpe denominator is %s; ratio undefined", denom)
            return float("nan")
        return excess_mean / denom

    def modified_var(self, returns: pd.Series, confidence: float) -> float:
        """Cornish-Fisher Value-at-Risk as a positive loss.

        z_cf = z + (z²−1)S/6 + (z³−3z)K/24 − (2z³−5z)S²/36
        mVaR = −(mean + z_cf · stddev)
        with z = Φ⁻¹(1 − confidence), S = skewness, K = excess kurtosis.
        """
        r = returns.to_numpy(dtype=float)
        z = float(norm.ppf(1.0 - confidence))
        s = float(skew(r, bias=False))
        k = float(kurtosis(r, fisher=True, bias=False))
        z_cf = (
            z
            + (z**2 - 1.0) * s / 6.0
            + (z**3 - 3.0 * z) * k / 24.0
            - (2.0 * z**3 - 5.0 * z) * s**2 / 36.0
        )
        return -(float(r.mean()) + z_cf * float(r.std(ddof=1)))

    def capm_beta(self, portfolio: pd.Series, benchmark: pd.Series, rf_period: float) -> float:
        """Cov(excess_p, excess_b) / Var(excess_b)."""
        p = portfolio.to_numpy(dtype=float) - rf_period
        b = benchmark.to_numpy(dtype=float) - rf_period
        var_b = float(np.var(b, ddof=1))
        if var_b == 0.0:
            raise InsufficientDataError("Benchmark excess returns have zero variance; beta undefined.")
        return float(np.cov(p, b, ddof=1)[0, 1]) / var_b

    def jensens_alpha(
        self,
        portfolio: pd.Series,
        benchmark: pd.Series,
        rf_period: float,
        beta: float | None = None,
    ) -> float:
        """mean(excess_p) − beta · mean(excess_b), per period."""
        if beta is None:
            beta = self.capm_beta(portfolio, benchmark, rf_period)
        return float(portfolio.mean() - rf_period) - beta * float(benchmark.mean() - rf_period)

    def max_drawdown(self, returns: pd.Series) -> float:
        """min_t (V_t / max_{u≤t} V_u − 1) on the wealth index, ≤ 0."""
        wealth = (1.0 + returns).cumprod()
        peak = np.maximum(wealth.cummax(), 1.0)
        return min(float((wealth / peak - 1.0).min()), 0.0)

    def calendarize(self, returns: pd.Series) -> list[CalendarReturn]:
        """Compound returns geometrically within each calendar (year, month)."""
        idx = pd.DatetimeIndex(returns.index)
        grouped = (1.0 + returns).groupby([idx.year, idx.month]).prod() - 1.0
        return [
            CalendarReturn(year=int(year), month=int(month), ret=float(ret))
            for (year, month), ret in grouped.items()
        ]
