"""Strategy comparison service.

Runs the four weighting strategies of the analysis on one price history:

  BENCHMARK            — caller-supplied fixed weights
  MEAN_VARIANCE        — mean − λ·stddev solved on the full history
  EXPECTED_SHORTFALL   — historical ES minimised on the full history
  MEAN_VARIANCE_REBAL  — mean-variance re-solved at each rebalance boundary

and evaluates each against the benchmark index.  Every intermediate value
is a local; nothing is shared between strategies except the immutable
return series.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import pandas as pd

from src.domain.exceptions import DimensionMismatchError
from src.domain.models.assets import AssetBound
from src.domain.models.backtest import RebalanceConfig, RebalancePlan
from src.domain.models.enums import ReturnType, SharpeMeasure, StrategyName
from src.domain.models.market_data import ReturnSeries
from src.domain.models.optimization import (
    MeanVariance,
    OptimizationResult,
    RiskBudget,
    WeightVector,
)
from src.domain.models.performance import PerformanceReport
from src.domain.services.estimation import EstimationService
from src.domain.services.optimization import OptimizationService
from src.domain.services.performance import PerformanceService
from src.domain.services.rebalancing import RebalancingService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrategyOutcome:
    """One strategy's weights and report.

    report is None when a static solve did not succeed; optimization then
    carries the failure status and reason.
    """

    name: StrategyName
    weights: WeightVector | RebalancePlan | None
    report: PerformanceReport | None
    optimization: OptimizationResult | None = None


class StrategyComparisonService:
    def __init__(
        self,
        estimation: EstimationService | None = None,
        optimizer: OptimizationService | None = None,
        performance: PerformanceService | None = None,
        rebalancing: RebalancingService | None = None,
    ):
        self.estimation = estimation or EstimationService()
        self.optimizer = optimizer or OptimizationService(estimation=self.estimation)
        self.performance = performance or PerformanceService()
        self.rebalancing = rebalancing or RebalancingService(self.optimizer)

    def compare(
        self,
        prices: pd.DataFrame,
        benchmark_prices: pd.Series,
        bounds: Sequence[AssetBound],
        benchmark_weights: WeightVector,
        risk_free_rate: float,
        sharpe_confidence: float,
        es_confidence: float,
        risk_aversion: float = 1.0,
        rebalance: RebalanceConfig | None = None,
        periods_per_year: int = 252,
        sharpe_measure: SharpeMeasure = SharpeMeasure.STDDEV,
    ) -> dict[StrategyName, StrategyOutcome]:
        """Build returns once, then solve and evaluate each strategy.

        Args:
            prices: Adjusted closes, assets as columns, dates as index.
            benchmark_prices: Adjusted closes of the benchmark index.
            bounds: Per-asset box bounds for every optimized strategy.
            benchmark_weights: Fixed weights of the BENCHMARK strategy.
            risk_free_rate: Annual risk-free rate.
            sharpe_confidence: Confidence passed to every Sharpe computation.
            es_confidence: Confidence of the ES objective.
            risk_aversion: λ for both mean-variance strategies.
            rebalance: Frequency and window for MEAN_VARIANCE_REBAL.
            periods_per_year: Annualisation factor.
            sharpe_measure: Sharpe denominator for every report.
        """
        returns, benchmark = self._aligned_returns(prices, benchmark_prices)

        def evaluate(weights: WeightVector | RebalancePlan, bench: ReturnSeries) -> PerformanceReport:
            return self.performance.evaluate(
                returns,
                weights,
                bench,
                risk_free_rate=risk_free_rate,
                confidence=sharpe_confidence,
                periods_per_year=periods_per_year,
                sharpe_measure=sharpe_measure,
            )

        outcomes: dict[StrategyName, StrategyOutcome] = {
            StrategyName.BENCHMARK: StrategyOutcome(
                name=StrategyName.BENCHMARK,
                weights=benchmark_weights,
                report=evaluate(benchmark_weights, benchmark),
            )
        }

        static = {
            StrategyName.MEAN_VARIANCE: MeanVariance(risk_aversion=risk_aversion),
            StrategyName.EXPECTED_SHORTFALL: RiskBudget(confidence=es_confidence),
        }
        for name, objective in static.items():
            result = self.optimizer.optimize(returns, bounds, objective)
            if not result.is_success or result.weights is None:
                logger.warning("%s strategy not evaluated: %s", name.value, result.reason)
                outcomes[name] = StrategyOutcome(name=name, weights=None, report=None, optimization=result)
                continue
            outcomes[name] = StrategyOutcome(
                name=name,
                weights=result.weights,
                report=evaluate(result.weights, benchmark),
                optimization=result,
            )

        plan = self.rebalancing.run_rebalancing(
            returns, bounds, MeanVariance(risk_aversion=risk_aversion), rebalance
        )
        report = None
        if len(plan.realized_returns) >= 2:
            held = plan.realized_returns.index
            report = evaluate(plan, benchmark.between(held[0], held[-1]))
        outcomes[StrategyName.MEAN_VARIANCE_REBAL] = StrategyOutcome(
            name=StrategyName.MEAN_VARIANCE_REBAL, weights=plan, report=report
        )
        return outcomes

    def _aligned_returns(
        self,
        prices: pd.DataFrame,
        benchmark_prices: pd.Series,
    ) -> tuple[ReturnSeries, ReturnSeries]:
        """Asset and benchmark returns on one shared date index.

        The benchmark is joined onto the asset price dates before returns
        are computed, so rows dropped for a late-listed asset are dropped
        for the benchmark too.

        Raises:
            DimensionMismatchError: The benchmark name collides with an asset
                ticker, or either side has a gap inside the common range.
        """
        name = str(benchmark_prices.name) if benchmark_prices.name is not None else "benchmark"
        tickers = [str(c) for c in prices.columns]
        if name in tickers:
            raise DimensionMismatchError(f"Benchmark name {name!r} collides with an asset ticker")

        combined = prices.copy()
        combined.columns = tickers
        combined.index = pd.DatetimeIndex(combined.index)
        bench = benchmark_prices.copy()
        bench.index = pd.DatetimeIndex(bench.index)
        combined[name] = bench.reindex(combined.index)

        joint = self.estimation.compute_returns(combined, ReturnType.SIMPLE).to_frame()
        return ReturnSeries(frame=joint[tickers]), ReturnSeries(frame=joint[[name]])
