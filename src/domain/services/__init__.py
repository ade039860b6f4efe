"""Domain services package."""

from .estimation import EstimationService
from .optimization import OptimizationService
from .performance import PerformanceService
from .rebalancing import RebalancingService
from .strategies import StrategyComparisonService, StrategyOutcome

__all__ = [
    "EstimationService",
    "OptimizationService",
    "PerformanceService",
    "RebalancingService",
    "StrategyComparisonService",
    "StrategyOutcome",
]
