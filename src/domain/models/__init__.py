"""Domain model package.

All domain objects are pure Python / Pydantic models with no I/O or
infrastructure dependencies.  Import from this package to avoid coupling
application code to individual module paths.
"""

from .assets import AssetBound
from .backtest import (
    RebalanceConfig,
    RebalanceEntry,
    RebalancePlan,
    RebalanceWarning,
    TrainingWindow,
)
from .enums import (
    CovMethod,
    ObjectiveKind,
    OptimizationStatus,
    RebalFrequency,
    ReturnType,
    RiskMeasure,
    SharpeMeasure,
    StrategyName,
    WindowPolicy,
)
from .market_data import ReturnSeries
from .optimization import (
    MeanVariance,
    ObjectiveSpec,
    OptimizationResult,
    RiskBudget,
    WeightVector,
)
from .performance import CalendarReturn, PerformanceReport

__all__ = [
    # enums
    "CovMethod",
    "ObjectiveKind",
    "OptimizationStatus",
    "RebalFrequency",
    "ReturnType",
    "RiskMeasure",
    "SharpeMeasure",
    "StrategyName",
    "WindowPolicy",
    # assets
    "AssetBound",
    # market data
    "ReturnSeries",
    # optimization
    "MeanVariance",
    "RiskBudget",
    "ObjectiveSpec",
    "WeightVector",
    "OptimizationResult",
    # rebalancing
    "TrainingWindow",
    "RebalanceConfig",
    "RebalanceEntry",
    "RebalanceWarning",
    "RebalancePlan",
    # performance
    "CalendarReturn",
    "PerformanceReport",
]
