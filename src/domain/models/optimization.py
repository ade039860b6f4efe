"""Optimization domain models.

MeanVariance / RiskBudget — objective specifications (tagged by ``kind``)
WeightVector              — immutable ticker → weight mapping
OptimizationResult        — solved weights, objective value(s) and solver status
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import Annotated, Literal, Union

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.domain.exceptions import DidNotConvergeError, DimensionMismatchError, InfeasibleConstraintsError
from .assets import AssetBound
from .enums import CovMethod, ObjectiveKind, OptimizationStatus, RiskMeasure


class MeanVariance(BaseModel):
    """Two-term objective: maximise  mean(r_p) − λ · stddev(r_p).

    When target_return is set the problem becomes the classic frontier
    point instead:  min w'Σw  s.t.  w'μ ≥ target_return  (period units).
    cov_method selects the Σ estimator (sample or Ledoit-Wolf shrinkage).
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal[ObjectiveKind.MEAN_VARIANCE] = ObjectiveKind.MEAN_VARIANCE
    risk_aversion: float = Field(default=1.0, ge=0.0)
    target_return: float | None = None
    cov_method: CovMethod = CovMethod.SAMPLE


class RiskBudget(BaseModel):
    """Minimise a tail-risk measure of the historical portfolio distribution.

    Expected Shortfall at confidence c is the mean loss over the worst
    (1 − c) fraction of realised portfolio returns.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal[ObjectiveKind.RISK_BUDGET] = ObjectiveKind.RISK_BUDGET
    measure: RiskMeasure = RiskMeasure.EXPECTED_SHORTFALL
    confidence: float = Field(gt=0.0, lt=1.0)


ObjectiveSpec = Annotated[Union[MeanVariance, RiskBudget], Field(discriminator="kind")]


class WeightVector(BaseModel):
    """Ticker → weight mapping.  Order of insertion is the asset order."""

    model_config = ConfigDict(frozen=True)

    weights: dict[str, float]

    @field_validator("weights")
    @classmethod
    def _finite(cls, weights: dict[str, float]) -> dict[str, float]:
        if not weights:
            raise ValueError("a weight vector needs at least one asset")
        bad = [t for t, w in weights.items() if not math.isfinite(w)]
        if bad:
            raise ValueError(f"non-finite weights for: {', '.join(bad)}")
        return dict(weights)

    @classmethod
    def from_array(cls, tickers: Sequence[str], values: np.ndarray) -> WeightVector:
        if len(tickers) != len(values):
            raise DimensionMismatchError(
                f"{len(tickers)} tickers but {len(values)} weights"
            )
        return cls(weights={t: float(v) for t, v in zip(tickers, values)})

    @classmethod
    def equal(cls, tickers: Sequence[str]) -> WeightVector:
        n = len(tickers)
        return cls(weights={t: 1.0 / n for t in tickers})

    @property
    def tickers(self) -> list[str]:
        return list(self.weights)

    @property
    def total(self) -> float:
        return float(sum(self.weights.values()))

    def as_array(self, tickers: Sequence[str]) -> np.ndarray:
        """Weights ordered to match ``tickers`` (e.g. return-series columns)."""
        if set(tickers) != set(self.weights):
            raise DimensionMismatchError(
                f"weights cover {sorted(self.weights)} but series has {sorted(tickers)}"
            )
        return np.array([self.weights[t] for t in tickers], dtype=float)

    def to_series(self) -> pd.Series:
        return pd.Series(self.weights, dtype=float, name="weight")

    def is_fully_invested(self, tol: float = 1e-6) -> bool:
        return abs(self.total - 1.0) < tol

    def respects(self, bounds: Iterable[AssetBound], tol: float = 1e-6) -> bool:
        """True when every bounded ticker sits inside its [min, max] box."""
        for b in bounds:
            w = self.weights.get(b.ticker)
            if w is None or w < b.min_weight - tol or w > b.max_weight + tol:
                return False
        return True


class OptimizationResult(BaseModel):
    """Output of one optimize() call.

    Invariants (enforced by validator):
      status = SUCCESS   → weights set, reason is None
      status ≠ SUCCESS   → weights None, reason is a non-empty string

    objective_value is the value the solver minimised, reported in natural
    units: mean − λ·√(w'Σw) for mean-variance (higher is better), w'Σw for
    a target-return frontier point, and ES as a positive loss for risk budgets.
    Σ is the estimator named by cov_method; exp_return and stdev are always
    the sample figures of the weighted series.
    hhi = Σ wᵢ²;  effective_n = 1 / hhi.
    """

    model_config = ConfigDict(frozen=True)

    status: OptimizationStatus
    objective: ObjectiveSpec
    weights: WeightVector | None = None
    objective_value: float | None = None
    exp_return: float | None = None
    stdev: float | None = Field(default=None, ge=0.0)
    expected_shortfall: float | None = None
    hhi: float | None = Field(default=None, gt=0.0, le=1.0)
    effective_n: float | None = Field(default=None, ge=1.0)
    explanation: str = ""
    reason: str | None = None
    solver_meta: dict[str, object] | None = None

    @model_validator(mode="after")
    def _status_and_reason_consistent(self) -> OptimizationResult:
        if self.status == OptimizationStatus.SUCCESS:
            if self.weights is None:
                raise ValueError("weights are required when status is SUCCESS")
            if self.reason is not None:
                raise ValueError("reason must be None when status is SUCCESS")
        else:
            if self.weights is not None:
                raise ValueError(f"weights must be None when status is {self.status.value}")
            if not self.reason:
                raise ValueError(
                    f"reason is required (non-empty) when status is {self.status.value}"
                )
        return self

    @property
    def is_success(self) -> bool:
        return self.status == OptimizationStatus.SUCCESS

    def unwrap(self) -> WeightVector:
        """Return the solved weights or raise the matching domain error."""
        if self.status == OptimizationStatus.INFEASIBLE:
            raise InfeasibleConstraintsError(self.reason or "infeasible")
        if self.status == OptimizationStatus.DID_NOT_CONVERGE:
            raise DidNotConvergeError(self.reason or "did not converge", self.solver_meta)
        assert self.weights is not None
        return self.weights

    @classmethod
    def infeasible(cls, objective: MeanVariance | RiskBudget, reason: str) -> OptimizationResult:
        return cls(
            status=OptimizationStatus.INFEASIBLE,
            objective=objective,
            reason=reason,
            explanation=f"Optimization infeasible: {reason}",
        )

    @classmethod
    def did_not_converge(
        cls,
        objective: MeanVariance | RiskBudget,
        reason: str,
        solver_meta: dict[str, object] | None = None,
    ) -> OptimizationResult:
        return cls(
            status=OptimizationStatus.DID_NOT_CONVERGE,
            objective=objective,
            reason=reason,
            explanation=f"Solver did not converge: {reason}",
            solver_meta=solver_meta,
        )
