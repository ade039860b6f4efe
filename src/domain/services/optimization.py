"""Constrained portfolio optimization service.

Solves for a long-only weight vector under full investment (Σwᵢ = 1) and
per-asset box bounds, for one of two objectives:

  - MeanVariance: max  mean(r_p) − λ · stddev(r_p)       (SLSQP)
                  or   min  w'Σw  s.t. w'μ ≥ R*           (SLSQP)
  - RiskBudget:   min  ES_c(r_p), historical simulation  (HiGHS LP)

The ES problem uses the Rockafellar-Uryasev reformulation.  With losses
L_t = −r_t'w over T observations and tail mass (1 − c):

    min_{w,z,u}  z + 1 / ((1 − c)·T) · Σ u_t
    s.t.         u_t ≥ L_t − z,  u_t ≥ 0,  Σw = 1,  lo ≤ w ≤ hi

All methods are pure computation on immutable inputs.  Box/budget
infeasibility is detected before any solver is invoked.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

import numpy as np

from src.domain.exceptions import DimensionMismatchError, InsufficientDataError
from src.domain.models.assets import AssetBound
from src.domain.models.enums import OptimizationStatus
from src.domain.models.market_data import ReturnSeries
from src.domain.models.optimization import (
    MeanVariance,
    OptimizationResult,
    RiskBudget,
    WeightVector,
)
from src.domain.services.estimation import EstimationService
from src.domain.services.solvers import (
    HighsLinearSolver,
    LinearProblem,
    NonlinearProblem,
    SlsqpSolver,
    Solver,
    SolverOutcome,
)

logger = logging.getLogger(__name__)

_WEIGHT_TOL = 1e-8          # weights below this are treated as zero
_CONSTRAINT_TOL = 1e-6      # ε for full-investment and box checks


class OptimizationService:
    """Pure computation service for constrained portfolio optimization.

    Responsibilities (single, focused):
      - Resolve per-asset bounds against the return series columns.
      - Check box / budget feasibility before calling any solver.
      - Build and dispatch mean-variance and Expected Shortfall problems.
      - Verify the returned weights and assemble an OptimizationResult.

    Solvers are injected so the objective formulation is not tied to one
    numerical backend.  The service holds no per-call state.
    """

    def __init__(
        self,
        nonlinear_solver: Solver | None = None,
        linear_solver: Solver | None = None,
        estimation: EstimationService | None = None,
    ):
        self.nonlinear_solver = nonlinear_solver or SlsqpSolver()
        self.linear_solver = linear_solver or HighsLinearSolver()
        self.estimation = estimation or EstimationService()

    # ─────────────────────────────────────────────────────────────────── #
    # Public API                                                           #
    # ─────────────────────────────────────────────────────────────────── #

    def optimize(
        self,
        returns: ReturnSeries,
        bounds: Sequence[AssetBound],
        objective: MeanVariance | RiskBudget,
    ) -> OptimizationResult:
        """Solve for weights under full investment and box bounds.

        Args:
            returns: Training-window return series (assets as columns).
            bounds: Per-asset [min, max]; tickers without a bound get [0, 1].
            objective: MeanVariance or RiskBudget specification.

        Returns:
            OptimizationResult with status SUCCESS, INFEASIBLE or
            DID_NOT_CONVERGE.  Solver failure is never raised.

        Raises:
            InsufficientDataError: Fewer than 2 return observations.
            DimensionMismatchError: A bound names a ticker not in ``returns``.
        """
        if len(returns) < 2:
            raise InsufficientDataError(
                f"Optimization needs at least 2 return observations, got {len(returns)}.",
                required=2,
                available=len(returns),
            )
        box = self.resolve_bounds(returns.tickers, bounds)

        feasible, reason = self.check_feasibility(box)
        if not feasible:
            logger.info("Skipping solver, bounds infeasible: %s", reason)
            return OptimizationResult.infeasible(objective, reason or "infeasible bounds")

        if isinstance(objective, MeanVariance):
            if objective.target_return is not None:
                mu = self.estimation.compute_mu(returns)
                ok, reason = self._check_target_reachable(mu, box, objective.target_return)
                if not ok:
                    return OptimizationResult.infeasible(objective, reason or "unreachable target")
            outcome, sigma = self._solve_mean_variance(returns, box, objective)
        elif isinstance(objective, RiskBudget):
            outcome = self._solve_expected_shortfall(returns, box, objective)
            sigma = None
        else:
            raise TypeError(f"Unsupported objective: {type(objective).__name__}")

        if outcome.status == OptimizationStatus.INFEASIBLE:
            return OptimizationResult.infeasible(objective, outcome.message or "solver reported infeasible")
        if outcome.status != OptimizationStatus.SUCCESS or outcome.x is None:
            logger.warning("Solver did not converge: %s", outcome.message)
            return OptimizationResult.did_not_converge(
                objective, outcome.message or "solver failed", outcome.meta
            )

        weights = _clean_weights(outcome.x[: len(box)], box)
        violation = _constraint_violation(weights, box)
        if violation is not None:
            logger.warning("Solver output violates constraints: %s", violation)
            return OptimizationResult.did_not_converge(objective, violation, outcome.meta)

        return self._build_result(returns, weights, objective, outcome, sigma)

    def resolve_bounds(
        self,
        tickers: Sequence[str],
        bounds: Sequence[AssetBound],
    ) -> list[tuple[float, float]]:
        """Per-column (lower, upper) bounds aligned to ``tickers``.

        Tickers without an explicit bound are left at [0, 1].

        Raises:
            DimensionMismatchError: A bound references an unknown ticker.
        """
        bound_map = {b.ticker: b for b in bounds}
        unknown = sorted(set(bound_map) - set(tickers))
        if unknown:
            raise DimensionMismatchError(
                f"Bounds reference tickers not in the return series: {unknown}"
            )
        return [
            bound_map[t].as_tuple if t in bound_map else (0.0, 1.0) for t in tickers
        ]

    def check_feasibility(
        self,
        box: Sequence[tuple[float, float]],
    ) -> tuple[bool, str | None]:
        """Check that full investment fits inside the box bounds.

        Returns (True, None) when Σ min ≤ 1 ≤ Σ max, otherwise
        (False, plain-language reason).
        """
        total_min = sum(lo for lo, _ in box)
        total_max = sum(hi for _, hi in box)
        if total_min > 1.0 + _CONSTRAINT_TOL:
            return False, (
                f"Sum of minimum asset bounds ({total_min:.4f}) exceeds 1.0; "
                "full investment constraint cannot be satisfied."
            )
        if total_max < 1.0 - _CONSTRAINT_TOL:
            return False, (
                f"Sum of maximum asset bounds ({total_max:.4f}) is below 1.0; "
                "full investment constraint cannot be satisfied."
            )
        return True, None

    # ─────────────────────────────────────────────────────────────────── #
    # Problem builders                                                     #
    # ─────────────────────────────────────────────────────────────────── #

    def _solve_mean_variance(
        self,
        returns: ReturnSeries,
        box: list[tuple[float, float]],
        objective: MeanVariance,
    ) -> tuple[SolverOutcome, np.ndarray]:
        mu = self.estimation.compute_mu(returns)
        sigma = self.estimation.compute_sigma(returns, objective.cov_method)
        is_psd, reason = self.estimation.validate_psd(sigma)
        if not is_psd:
            sigma, note = self.estimation.repair_psd(sigma)
            logger.warning("%s %s", reason, note)

        eq = [_budget_residual]
        ineq = []
        if objective.target_return is not None:
            r_star = float(objective.target_return)
            ineq.append(lambda w: float(np.dot(w, mu)) - r_star)
            problem = NonlinearProblem(
                objective=lambda w: _objective_variance(w, sigma),
                x0=_starting_point(box),
                bounds=box,
                eq_constraints=eq,
                ineq_constraints=ineq,
            )
        else:
            lam = float(objective.risk_aversion)
            problem = NonlinearProblem(
                objective=lambda w: _objective_neg_mean_minus_risk(w, mu, sigma, lam),
                x0=_starting_point(box),
                bounds=box,
                eq_constraints=eq,
            )
        return self.nonlinear_solver.solve(problem), sigma

    def _solve_expected_shortfall(
        self,
        returns: ReturnSeries,
        box: list[tuple[float, float]],
        objective: RiskBudget,
    ) -> SolverOutcome:
        R = returns.values                        # T x N
        T, N = R.shape
        c = 1.0 / ((1.0 - objective.confidence) * T)

        # Decision variables: [w_1..w_N, z, u_1..u_T]
        nvars = N + 1 + T
        obj = np.zeros(nvars)
        obj[N] = 1.0
        obj[N + 1:] = c

        # u_t ≥ −r_t'w − z   ⇔   −r_t'w − z − u_t ≤ 0
        A_ub = np.zeros((T, nvars))
        A_ub[:, :N] = -R
        A_ub[:, N] = -1.0
        A_ub[np.arange(T), N + 1 + np.arange(T)] = -1.0
        b_ub = np.zeros(T)

        A_eq = np.zeros((1, nvars))
        A_eq[0, :N] = 1.0
        b_eq = np.array([1.0])

        var_bounds: list[tuple[float | None, float | None]] = list(box)
        var_bounds.append((None, None))          # z (VaR level)
        var_bounds.extend([(0.0, None)] * T)     # u_t

        return self.linear_solver.solve(
            LinearProblem(
                c=obj, bounds=var_bounds, A_ub=A_ub, b_ub=b_ub, A_eq=A_eq, b_eq=b_eq
            )
        )

    def _check_target_reachable(
        self,
        mu: np.ndarray,
        box: list[tuple[float, float]],
        target_return: float,
    ) -> tuple[bool, str | None]:
        """Greedy bound on the highest mean return the box allows."""
        w = np.array([lo for lo, _ in box])
        remaining = 1.0 - float(w.sum())
        for i in np.argsort(mu)[::-1]:
            add = min(box[i][1] - box[i][0], remaining)
            w[i] += add
            remaining -= add
        max_mu = float(np.dot(w, mu))
        if target_return > max_mu + _WEIGHT_TOL:
            return False, (
                f"Target return of {target_return * 100:.4f}% exceeds the maximum "
                f"achievable return of {max_mu * 100:.4f}% under the asset bounds."
            )
        return True, None

    # ─────────────────────────────────────────────────────────────────── #
    # Result assembly                                                      #
    # ─────────────────────────────────────────────────────────────────── #

    def _build_result(
        self,
        returns: ReturnSeries,
        weights: np.ndarray,
        objective: MeanVariance | RiskBudget,
        outcome: SolverOutcome,
        sigma: np.ndarray | None = None,
    ) -> OptimizationResult:
        """Compute portfolio statistics and assemble an OptimizationResult.

        exp_return and stdev are sample figures of the weighted series.
        For mean-variance objectives objective_value is evaluated with the
        Σ the solver used (sample or Ledoit-Wolf), so it matches what was
        optimised.
        """
        port = returns.values @ weights
        exp_return = float(port.mean())
        stdev = float(np.std(port, ddof=1))
        hhi = float(np.sum(weights**2))

        es: float | None = None
        if isinstance(objective, RiskBudget):
            es = historical_expected_shortfall(port, objective.confidence)
            objective_value = es
        else:
            model_var = float(weights @ sigma @ weights) if sigma is not None else stdev**2
            if objective.target_return is not None:
                objective_value = model_var
            else:
                model_stdev = math.sqrt(max(model_var, 0.0))
                objective_value = exp_return - objective.risk_aversion * model_stdev

        wv = WeightVector.from_array(returns.tickers, weights)
        return OptimizationResult(
            status=OptimizationStatus.SUCCESS,
            objective=objective,
            weights=wv,
            objective_value=objective_value,
            exp_return=exp_return,
            stdev=stdev,
            expected_shortfall=es,
            hhi=hhi,
            effective_n=1.0 / hhi,
            explanation=_generate_explanation(wv, exp_return, stdev, es, hhi),
            solver_meta=outcome.meta,
        )


# ─────────────────────────────────────────────────────────────────────────── #
# Module-level helpers (no self state needed)                                  #
# ─────────────────────────────────────────────────────────────────────────── #


def historical_expected_shortfall(portfolio_returns: np.ndarray, confidence: float) -> float:
    """Mean loss over the worst (1 − confidence) fraction of observations.

    Fractional tails weight the boundary observation pro rata, which makes
    this equal to the optimum of the Rockafellar-Uryasev LP.  Returned as a
    positive loss.
    """
    losses = np.sort(-np.asarray(portfolio_returns, dtype=float))[::-1]
    tail = (1.0 - confidence) * len(losses)
    k = math.floor(tail)
    total = float(losses[:k].sum())
    if tail > k:
        total += (tail - k) * float(losses[k])
    return total / tail


def _starting_point(box: Sequence[tuple[float, float]]) -> np.ndarray:
    """Equal weights clipped into the box."""
    n = len(box)
    lo = np.array([b[0] for b in box])
    hi = np.array([b[1] for b in box])
    return np.clip(np.full(n, 1.0 / n), lo, hi)


def _clean_weights(raw: np.ndarray, box: Sequence[tuple[float, float]]) -> np.ndarray:
    """Clip solver rounding noise back into the box and zero dust weights."""
    lo = np.array([b[0] for b in box])
    hi = np.array([b[1] for b in box])
    cleaned = np.clip(raw, lo, hi)
    return np.where(np.abs(cleaned) < _WEIGHT_TOL, 0.0, cleaned)


def _constraint_violation(weights: np.ndarray, box: Sequence[tuple[float, float]]) -> str | None:
    total = float(np.sum(weights))
    if abs(total - 1.0) >= _CONSTRAINT_TOL:
        return f"weights sum to {total:.8f}, not 1"
    for i, (lo, hi) in enumerate(box):
        if weights[i] < lo - _CONSTRAINT_TOL or weights[i] > hi + _CONSTRAINT_TOL:
            return f"weight {i} = {weights[i]:.6f} outside [{lo}, {hi}]"
    return None


def _generate_explanation(
    weights: WeightVector,
    exp_return: float,
    stdev: float,
    es: float | None,
    hhi: float,
) -> str:
    """Plain-language summary with concrete numbers."""
    parts: list[str] = []
    top = sorted(weights.weights.items(), key=lambda kv: abs(kv[1]), reverse=True)[:5]
    labels = [f"{t} {w * 100:.1f}%" for t, w in top if abs(w) > _WEIGHT_TOL]
    if labels:
        parts.append(f"Top holdings: {', '.join(labels)}.")
    parts.append(
        f"Mean period return {exp_return * 100:.3f}%, volatility {stdev * 100:.3f}%."
    )
    if es is not None:
        parts.append(f"Expected shortfall {es * 100:.3f}%.")
    parts.append(
        f"HHI {hhi:.4f}, effective N {1.0 / hhi:.1f} (of {len(weights.weights)} assets)."
    )
    return " ".join(parts)


def _budget_residual(w: np.ndarray) -> float:
    return float(np.sum(w)) - 1.0


def _objective_variance(w: np.ndarray, sigma: np.ndarray) -> float:
    """w'Σw — portfolio variance (minimise)."""
    return float(w @ sigma @ w)


def _objective_neg_mean_minus_risk(
    w: np.ndarray, mu: np.ndarray, sigma: np.ndarray, risk_aversion: float
) -> float:
    """−(w'μ − λ·√(w'Σw)) — negated two-term objective (minimise)."""
    variance = float(w @ sigma @ w)
    stdev = float(np.sqrt(max(variance, 1e-18)))   # floor keeps the gradient finite
    return -(float(np.dot(w, mu)) - risk_aversion * stdev)
