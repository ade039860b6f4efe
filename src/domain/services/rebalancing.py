"""Rebalancing scheduler.

Walks calendar time over a return series and re-solves the portfolio at
each rebalance boundary (first trading date of each week / month /
quarter), using only returns strictly before that boundary.

States per boundary:
  Warming-Up — fewer than ``window.width`` prior observations; no weights.
  Solving    — optimize() on the training slice.
  Holding    — the solved weights apply to every date up to the next boundary.

A failed solve (INFEASIBLE / DID_NOT_CONVERGE) keeps the previous weights,
records a RebalanceWarning and never aborts the run.

Solves are independent reads of immutable slices, so they may run on a
thread pool; results are assembled in date order afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pandas as pd

from src.domain.exceptions import InfeasibleConstraintsError, InsufficientDataError
from src.domain.models.assets import AssetBound
from src.domain.models.backtest import (
    RebalanceConfig,
    RebalanceEntry,
    RebalancePlan,
    RebalanceWarning,
)
from src.domain.models.enums import RebalFrequency, WindowPolicy
from src.domain.models.market_data import ReturnSeries
from src.domain.models.optimization import MeanVariance, OptimizationResult, RiskBudget, WeightVector
from src.domain.services.optimization import OptimizationService

logger = logging.getLogger(__name__)


class RebalancingService:
    """Orchestrates repeated optimizer calls over a training window.

    max_workers > 1 dispatches the per-boundary solves to a thread pool;
    None or 1 solves sequentially.  Output is identical either way.
    """

    def __init__(
        self,
        optimizer: OptimizationService | None = None,
        max_workers: int | None = None,
    ):
        self.optimizer = optimizer or OptimizationService()
        self.max_workers = max_workers

    def rebalance_positions(
        self,
        dates: pd.DatetimeIndex,
        frequency: RebalFrequency,
    ) -> list[int]:
        """Row positions of the first trading date in each calendar bucket."""
        if len(dates) == 0:
            return []
        periods = pd.DatetimeIndex(dates).to_period(frequency.pandas_period)
        starts = np.flatnonzero(periods[1:] != periods[:-1]) + 1
        return [0, *starts.tolist()]

    def run_rebalancing(
        self,
        returns: ReturnSeries,
        bounds: Sequence[AssetBound],
        objective: MeanVariance | RiskBudget,
        config: RebalanceConfig | None = None,
    ) -> RebalancePlan:
        """Solve at every rebalance boundary and apply weights out-of-sample.

        Args:
            returns: Full asset return series.
            bounds: Per-asset box bounds, reused for every solve.
            objective: Objective passed unchanged to every solve.
            config: Frequency and training window (defaults: monthly, rolling 10).

        Returns:
            RebalancePlan with one entry per boundary past warm-up.

        Raises:
            InfeasibleConstraintsError: Bounds can never satisfy full investment.
            InsufficientDataError: No boundary ever leaves warm-up.
        """
        config = config or RebalanceConfig()
        box = self.optimizer.resolve_bounds(returns.tickers, bounds)
        feasible, reason = self.optimizer.check_feasibility(box)
        if not feasible:
            raise InfeasibleConstraintsError(reason or "infeasible bounds")

        dates = returns.dates
        width = config.window.width
        tasks: list[tuple[int, int]] = []      # (rebalance position, training start)
        for pos in self.rebalance_positions(dates, config.frequency):
            if pos < width:
                logger.debug("Warming up at %s: %d of %d observations", dates[pos].date(), pos, width)
                continue
            start = pos - width if config.window.policy == WindowPolicy.ROLLING else 0
            tasks.append((pos, start))

        if not tasks:
            raise InsufficientDataError(
                f"No rebalance date has {width} prior observations "
                f"({len(dates)} returns available).",
                required=width,
                available=len(dates),
            )

        results = self._solve_all(returns, bounds, objective, tasks)
        entries, warnings = self._assemble(returns, tasks, results)
        realized = self._realized_returns(returns, entries)

        logger.info(
            "Rebalancing finished: %d entries, %d warnings", len(entries), len(warnings)
        )
        return RebalancePlan(
            config=config,
            entries=entries,
            warnings=warnings,
            realized_returns=realized,
        )

    # ─────────────────────────────────────────────────────────────────── #
    # Internals                                                            #
    # ─────────────────────────────────────────────────────────────────── #

    def _solve_all(
        self,
        returns: ReturnSeries,
        bounds: Sequence[AssetBound],
        objective: MeanVariance | RiskBudget,
        tasks: list[tuple[int, int]],
    ) -> list[OptimizationResult]:
        frame = returns.to_frame()

        def solve(task: tuple[int, int]) -> OptimizationResult:
            pos, start = task
            train = ReturnSeries(frame=frame.iloc[start:pos], return_type=returns.return_type)
            return self.optimizer.optimize(train, bounds, objective)

        if self.max_workers and self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                return list(pool.map(solve, tasks))
        return [solve(t) for t in tasks]

    def _assemble(
        self,
        returns: ReturnSeries,
        tasks: list[tuple[int, int]],
        results: list[OptimizationResult],
    ) -> tuple[list[RebalanceEntry], list[RebalanceWarning]]:
        dates = returns.dates
        tickers = returns.tickers
        entries: list[RebalanceEntry] = []
        warnings: list[RebalanceWarning] = []
        prev: WeightVector | None = None

        for (pos, start), result in zip(tasks, results):
            day = dates[pos].date()
            if result.is_success and result.weights is not None:
                weights, carried = result.weights, False
            else:
                message = result.reason or result.status.value
                warnings.append(
                    RebalanceWarning(rebalance_date=day, status=result.status, message=message)
                )
                if prev is None:
                    logger.warning("Rebalance %s failed (%s) with no prior weights: %s",
                                   day, result.status.value, message)
                    continue
                logger.warning("Rebalance %s failed (%s); holding previous weights: %s",
                               day, result.status.value, message)
                weights, carried = prev, True

            turnover = (
                float(np.abs(weights.as_array(tickers) - prev.as_array(tickers)).sum())
                if prev is not None
                else 0.0
            )
            entries.append(
                RebalanceEntry(
                    rebalance_date=day,
                    weights=weights,
                    status=result.status,
                    carried_forward=carried,
                    training_start=dates[start].date(),
                    training_end=dates[pos - 1].date(),
                    turnover=turnover,
                )
            )
            prev = weights
        return entries, warnings

    def _realized_returns(
        self,
        returns: ReturnSeries,
        entries: list[RebalanceEntry],
    ) -> pd.Series:
        """Σ wᵢ · rᵢ,t using the entry in force on each date."""
        if not entries:
            return pd.Series(dtype=float, name="portfolio")
        tickers = returns.tickers
        first = pd.Timestamp(entries[0].rebalance_date)
        held = returns.to_frame().loc[first:]
        weights = pd.DataFrame(
            [e.weights.as_array(tickers) for e in entries],
            index=pd.DatetimeIndex([pd.Timestamp(e.rebalance_date) for e in entries]),
            columns=tickers,
        ).reindex(held.index, method="ffill")
        return (held * weights).sum(axis=1).rename("portfolio")
