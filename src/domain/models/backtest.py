"""Rebalancing domain models.

TrainingWindow   — rolling (fixed width) or expanding (minimum width) lookback
RebalanceConfig  — rebalance frequency and training window policy
RebalanceEntry   — weights in force from one rebalance date onwards
RebalanceWarning — a rebalance date whose solve failed and was held over
RebalancePlan    — chronological entries, warnings, and realised returns
"""

from __future__ import annotations

from datetime import date

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from .enums import OptimizationStatus, RebalFrequency, WindowPolicy
from .optimization import WeightVector


class TrainingWindow(BaseModel):
    """Lookback used for each solve, in return observations.

    ROLLING   — exactly ``width`` observations immediately before the rebalance date
    EXPANDING — every observation before the rebalance date, once at least
                ``width`` are available
    """

    model_config = ConfigDict(frozen=True)

    policy: WindowPolicy = WindowPolicy.ROLLING
    width: int = Field(default=10, ge=2)  # covariance needs two observations

    @classmethod
    def rolling(cls, width: int) -> TrainingWindow:
        return cls(policy=WindowPolicy.ROLLING, width=width)

    @classmethod
    def expanding(cls, min_width: int) -> TrainingWindow:
        return cls(policy=WindowPolicy.EXPANDING, width=min_width)


class RebalanceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    frequency: RebalFrequency = RebalFrequency.MONTHLY
    window: TrainingWindow = Field(default_factory=TrainingWindow)


class RebalanceEntry(BaseModel):
    """Weights applied from rebalance_date until the next entry.

    carried_forward is True when the solve for this date failed and the
    previous entry's weights were retained.  training_end is always strictly
    before rebalance_date.
    """

    model_config = ConfigDict(frozen=True)

    rebalance_date: date
    weights: WeightVector
    status: OptimizationStatus
    carried_forward: bool = False
    training_start: date
    training_end: date
    turnover: float = Field(default=0.0, ge=0.0)


class RebalanceWarning(BaseModel):
    model_config = ConfigDict(frozen=True)

    rebalance_date: date
    status: OptimizationStatus
    message: str


class RebalancePlan(BaseModel):
    """Outcome of a rebalancing run.

    entries are in chronological order and never edited after assembly.
    realized_returns holds one portfolio return per date from the first
    entry onwards, computed with the weights in force on that date.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    config: RebalanceConfig
    entries: list[RebalanceEntry] = Field(default_factory=list)
    warnings: list[RebalanceWarning] = Field(default_factory=list)
    realized_returns: pd.Series = Field(default_factory=lambda: pd.Series(dtype=float))

    # entries hold WeightVector dicts, so a plan is comparable but unhashable
    __hash__ = None  # type: ignore[assignment]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RebalancePlan):
            return NotImplemented
        return (
            self.config == other.config
            and self.entries == other.entries
            and self.warnings == other.warnings
            and self.realized_returns.equals(other.realized_returns)
        )

    @property
    def rebalance_dates(self) -> list[date]:
        return [e.rebalance_date for e in self.entries]

    def weights_on(self, when: date | pd.Timestamp) -> WeightVector | None:
        """Weights in force on ``when``; None before the first entry."""
        day = pd.Timestamp(when).date()
        current: WeightVector | None = None
        for entry in self.entries:
            if entry.rebalance_date > day:
                break
            current = entry.weights
        return current

    def weights_frame(self) -> pd.DataFrame:
        """One row per rebalance date, one column per ticker."""
        if not self.entries:
            return pd.DataFrame()
        return pd.DataFrame(
            [e.weights.weights for e in self.entries],
            index=pd.DatetimeIndex([e.rebalance_date for e in self.entries], name="date"),
        )

    def daily_weights(self) -> pd.DataFrame:
        """Weights in force on every realised return date (forward-filled)."""
        frame = self.weights_frame()
        if frame.empty:
            return frame
        return frame.reindex(self.realized_returns.index, method="ffill")

    def to_frame(self) -> pd.DataFrame:
        """Realised portfolio returns plus a wealth index starting at 1.0."""
        returns = self.realized_returns.copy()
        return pd.DataFrame(
            {"portfolio_return": returns, "wealth": (1.0 + returns).cumprod()}
        )
