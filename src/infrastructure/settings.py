"""Analysis settings and service wiring.

Settings hold the defaults a caller reads once and then passes explicitly
into every service call; no service reads configuration on its own.
"""

from collections.abc import Iterable

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.domain.models.assets import AssetBound
from src.domain.models.backtest import RebalanceConfig, TrainingWindow
from src.domain.models.enums import ObjectiveKind, RebalFrequency, WindowPolicy
from src.domain.models.optimization import MeanVariance, RiskBudget
from src.domain.services.optimization import OptimizationService
from src.domain.services.rebalancing import RebalancingService
from src.domain.services.solvers import HighsLinearSolver, SlsqpSolver


class AnalysisSettings(BaseSettings):
    """Recognised options, overridable via PORTFOLIO_* env vars or .env."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="PORTFOLIO_", extra="ignore")

    risk_free_rate: float = 0.0382
    periods_per_year: int = Field(default=252, gt=0)
    confidence: float = Field(default=0.95, gt=0.0, lt=1.0)
    min_weight: float = Field(default=0.10, ge=0.0, le=1.0)
    max_weight: float = Field(default=0.30, ge=0.0, le=1.0)
    rebal_freq: RebalFrequency = RebalFrequency.MONTHLY
    window_policy: WindowPolicy = WindowPolicy.ROLLING
    window_length: int = Field(default=10, ge=2)
    objective: ObjectiveKind = ObjectiveKind.MEAN_VARIANCE
    risk_aversion: float = Field(default=1.0, ge=0.0)
    solver_maxiter: int = Field(default=1000, gt=0)      # SLSQP iterations
    lp_maxiter: int | None = Field(default=None, gt=0)   # HiGHS simplex/IPM iterations; None = unlimited
    solver_time_limit: float | None = Field(default=30.0, gt=0.0)  # seconds per LP solve
    max_workers: int | None = Field(default=None, ge=1)

    def asset_bounds(self, tickers: Iterable[str]) -> list[AssetBound]:
        return AssetBound.uniform(tickers, self.min_weight, self.max_weight)

    def rebalance_config(self) -> RebalanceConfig:
        return RebalanceConfig(
            frequency=self.rebal_freq,
            window=TrainingWindow(policy=self.window_policy, width=self.window_length),
        )

    def objective_spec(self, confidence: float) -> MeanVariance | RiskBudget:
        """Objective for the configured kind; confidence only feeds RISK_BUDGET."""
        if self.objective == ObjectiveKind.RISK_BUDGET:
            return RiskBudget(confidence=confidence)
        return MeanVariance(risk_aversion=self.risk_aversion)

    def optimization_service(self) -> OptimizationService:
        return OptimizationService(
            nonlinear_solver=SlsqpSolver(maxiter=self.solver_maxiter),
            linear_solver=HighsLinearSolver(
                maxiter=self.lp_maxiter, time_limit=self.solver_time_limit
            ),
        )

    def rebalancing_service(self) -> RebalancingService:
        return RebalancingService(self.optimization_service(), max_workers=self.max_workers)
