"""Pluggable numerical solvers for the portfolio optimizer.

The optimizer describes each problem as a plain value object and hands it
to a Solver.  Two backends ship here:

  SlsqpSolver        — scipy.optimize.minimize (SLSQP) for smooth nonlinear
                       objectives with equality / inequality constraints.
  HighsLinearSolver  — scipy.optimize.linprog (HiGHS) for linear programs,
                       e.g. the Rockafellar-Uryasev Expected Shortfall LP.

Both are deterministic for identical inputs.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field

import numpy as np
from scipy.optimize import linprog, minimize

from src.domain.models.enums import OptimizationStatus

logger = logging.getLogger(__name__)

_SOLVER_FTOL = 1e-12        # SLSQP function-value convergence tolerance
_SOLVER_MAXITER = 1000

# linprog status codes (scipy.optimize.OptimizeResult.status)
_LP_SUCCESS = 0
_LP_INFEASIBLE = 2


@dataclass(frozen=True)
class NonlinearProblem:
    """min f(x)  s.t.  h_i(x) = 0,  g_j(x) ≥ 0,  lo ≤ x ≤ hi."""

    objective: Callable[[np.ndarray], float]
    x0: np.ndarray
    bounds: list[tuple[float, float]]
    eq_constraints: list[Callable[[np.ndarray], float]] = field(default_factory=list)
    ineq_constraints: list[Callable[[np.ndarray], float]] = field(default_factory=list)


@dataclass(frozen=True)
class LinearProblem:
    """min c'x  s.t.  A_ub x ≤ b_ub,  A_eq x = b_eq,  bounds on x."""

    c: np.ndarray
    bounds: list[tuple[float | None, float | None]]
    A_ub: np.ndarray | None = None
    b_ub: np.ndarray | None = None
    A_eq: np.ndarray | None = None
    b_eq: np.ndarray | None = None


@dataclass(frozen=True)
class SolverOutcome:
    """Raw solver output: status, solution vector, and objective value.

    x and fun are None unless status is SUCCESS.
    """

    status: OptimizationStatus
    x: np.ndarray | None
    fun: float | None
    message: str
    meta: dict[str, object] = field(default_factory=dict)


class Solver(ABC):
    """Accepts a problem description, returns a status and a solution."""

    @abstractmethod
    def solve(self, problem: NonlinearProblem | LinearProblem) -> SolverOutcome:
        """Solve ``problem``; never raises for numerical failure."""


class SlsqpSolver(Solver):
    """Sequential least squares programming via scipy.optimize.minimize.

    SLSQP exposes an iteration budget but no wall-clock budget; exhausting
    maxiter is reported as DID_NOT_CONVERGE.
    """

    def __init__(self, maxiter: int = _SOLVER_MAXITER, ftol: float = _SOLVER_FTOL):
        self.maxiter = maxiter
        self.ftol = ftol

    def solve(self, problem: NonlinearProblem | LinearProblem) -> SolverOutcome:
        if not isinstance(problem, NonlinearProblem):
            raise TypeError(f"SlsqpSolver cannot solve {type(problem).__name__}")

        cons = [{"type": "eq", "fun": f} for f in problem.eq_constraints]
        cons += [{"type": "ineq", "fun": g} for g in problem.ineq_constraints]

        sol = minimize(
            fun=problem.objective,
            x0=problem.x0,
            method="SLSQP",
            bounds=problem.bounds,
            constraints=cons,
            options={"ftol": self.ftol, "maxiter": self.maxiter},
        )
        meta: dict[str, object] = {
            "solver": "SLSQP",
            "message": str(sol.message),
            "nit": int(getattr(sol, "nit", 0)),
        }
        logger.debug("SLSQP finished: success=%s nit=%s %s", sol.success, meta["nit"], sol.message)

        if not sol.success or not np.all(np.isfinite(sol.x)):
            return SolverOutcome(
                status=OptimizationStatus.DID_NOT_CONVERGE,
                x=None,
                fun=None,
                message=str(sol.message),
                meta=meta,
            )
        return SolverOutcome(
            status=OptimizationStatus.SUCCESS,
            x=np.asarray(sol.x, dtype=float),
            fun=float(sol.fun),
            message=str(sol.message),
            meta=meta,
        )


class HighsLinearSolver(Solver):
    """Linear programs via scipy.optimize.linprog with the HiGHS backend.

    maxiter and time_limit (seconds) are passed straight to HiGHS; hitting
    either is reported as DID_NOT_CONVERGE.  A primal-infeasible model is
    reported as INFEASIBLE.
    """

    def __init__(self, maxiter: int | None = None, time_limit: float | None = None):
        self.maxiter = maxiter
        self.time_limit = time_limit

    def solve(self, problem: NonlinearProblem | LinearProblem) -> SolverOutcome:
        if not isinstance(problem, LinearProblem):
            raise TypeError(f"HighsLinearSolver cannot solve {type(problem).__name__}")

        options: dict[str, object] = {}
        if self.maxiter is not None:
            options["maxiter"] = self.maxiter
        if self.time_limit is not None:
            options["time_limit"] = self.time_limit

        res = linprog(
            c=problem.c,
            A_ub=problem.A_ub,
            b_ub=problem.b_ub,
            A_eq=problem.A_eq,
            b_eq=problem.b_eq,
            bounds=problem.bounds,
            method="highs",
            options=options,
        )
        meta: dict[str, object] = {
            "solver": "HiGHS",
            "message": str(res.message),
            "status_code": int(res.status),
            "nit": int(getattr(res, "nit", 0) or 0),
        }
        logger.debug("HiGHS finished: status=%s %s", res.status, res.message)

        if res.status == _LP_SUCCESS and res.x is not None and np.all(np.isfinite(res.x)):
            return SolverOutcome(
                status=OptimizationStatus.SUCCESS,
                x=np.asarray(res.x, dtype=float),
                fun=float(res.fun),
                message=str(res.message),
                meta=meta,
            )
        status = (
            OptimizationStatus.INFEASIBLE
            if res.status == _LP_INFEASIBLE
            else OptimizationStatus.DID_NOT_CONVERGE
        )
        return SolverOutcome(status=status, x=None, fun=None, message=str(res.message), meta=meta)
