"""Domain enumerations for the portfolio analysis toolkit.

All string-valued enums use str mixin so they serialize cleanly to JSON
and remain comparable to plain strings (Pydantic default behaviour).
"""

from enum import Enum


class ReturnType(str, Enum):
    SIMPLE = "simple"
    LOG = "log"


class CovMethod(str, Enum):
    """Covariance matrix (Σ) estimation method."""

    SAMPLE = "sample"
    LEDOIT_WOLF = "ledoit_wolf"


class ObjectiveKind(str, Enum):
    MEAN_VARIANCE = "mean_variance"
    RISK_BUDGET = "risk_budget"


class RiskMeasure(str, Enum):
    """Tail-risk measures accepted by a risk-budget objective.

    Only historical Expected Shortfall is supported; risk-parity style
    budget equalization is not offered.
    """

    EXPECTED_SHORTFALL = "expected_shortfall"


class OptimizationStatus(str, Enum):
    SUCCESS = "SUCCESS"
    INFEASIBLE = "INFEASIBLE"
    DID_NOT_CONVERGE = "DID_NOT_CONVERGE"


class SharpeMeasure(str, Enum):
    """Denominator used by the Sharpe ratio.

    STDDEV        — sample standard deviation of period returns (ddof=1)
    MODIFIED_VAR  — Cornish-Fisher modified Value-at-Risk at the given confidence
    """

    STDDEV = "stddev"
    MODIFIED_VAR = "modified_var"


class RebalFrequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"

    @property
    def pandas_period(self) -> str:
        """pandas period alias used to bucket trading dates."""
        return {
            RebalFrequency.WEEKLY: "W",
            RebalFrequency.MONTHLY: "M",
            RebalFrequency.QUARTERLY: "Q",
        }[self]


class WindowPolicy(str, Enum):
    ROLLING = "rolling"
    EXPANDING = "expanding"


class StrategyName(str, Enum):
    BENCHMARK = "benchmark"
    MEAN_VARIANCE = "mean_variance"
    EXPECTED_SHORTFALL = "expected_shortfall"
    MEAN_VARIANCE_REBAL = "mean_variance_rebal"
