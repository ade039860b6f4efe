"""Unit tests for the SLSQP and HiGHS solver backends."""

from __future__ import annotations

import numpy as np
import pytest

from src.domain.models.enums import OptimizationStatus
from src.domain.services.solvers import (
    HighsLinearSolver,
    LinearProblem,
    NonlinearProblem,
    SlsqpSolver,
)


# ═══════════════════════════════════════════════════════════════════════════ #
# SLSQP                                                                        #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestSlsqpSolver:
    def test_quadratic_with_budget(self) -> None:
        # min x² + y²  s.t. x + y = 1  →  (0.5, 0.5)
        problem = NonlinearProblem(
            objective=lambda x: float(x @ x),
            x0=np.array([1.0, 0.0]),
            bounds=[(0.0, 1.0), (0.0, 1.0)],
            eq_constraints=[lambda x: float(x.sum()) - 1.0],
        )
        out = SlsqpSolver().solve(problem)
        assert out.status == OptimizationStatus.SUCCESS
        assert out.x == pytest.approx([0.5, 0.5], abs=1e-6)
        assert out.fun == pytest.approx(0.5, abs=1e-8)
        assert out.meta["solver"] == "SLSQP"

    def test_inequality_constraint_binds(self) -> None:
        # min x² + y²  s.t. x + y = 1, x ≥ 0.8
        problem = NonlinearProblem(
            objective=lambda x: float(x @ x),
            x0=np.array([0.5, 0.5]),
            bounds=[(0.0, 1.0), (0.0, 1.0)],
            eq_constraints=[lambda x: float(x.sum()) - 1.0],
            ineq_constraints=[lambda x: float(x[0]) - 0.8],
        )
        out = SlsqpSolver().solve(problem)
        assert out.x == pytest.approx([0.8, 0.2], abs=1e-6)

    def test_rejects_linear_problem(self) -> None:
        with pytest.raises(TypeError):
            SlsqpSolver().solve(LinearProblem(c=np.zeros(1), bounds=[(0.0, 1.0)]))


# ═══════════════════════════════════════════════════════════════════════════ #
# HiGHS                                                                        #
# ═══════════════════════════════════════════════════════════════════════════ #


class TestHighsLinearSolver:
    def test_simple_lp(self) -> None:
        # min −x − 2y  s.t. x + y = 1, 0 ≤ x, y ≤ 1  →  (0, 1)
        problem = LinearProblem(
            c=np.array([-1.0, -2.0]),
            bounds=[(0.0, 1.0), (0.0, 1.0)],
            A_eq=np.array([[1.0, 1.0]]),
            b_eq=np.array([1.0]),
        )
        out = HighsLinearSolver().solve(problem)
        assert out.status == OptimizationStatus.SUCCESS
        assert out.x == pytest.approx([0.0, 1.0], abs=1e-9)
        assert out.fun == pytest.approx(-2.0)
        assert out.meta["solver"] == "HiGHS"
        assert out.meta["status_code"] == 0

    def test_infeasible_lp(self) -> None:
        # x + y = 1 with both variables capped at 0.3
        problem = LinearProblem(
            c=np.array([1.0, 1.0]),
            bounds=[(0.0, 0.3), (0.0, 0.3)],
            A_eq=np.array([[1.0, 1.0]]),
            b_eq=np.array([1.0]),
        )
        out = HighsLinearSolver().solve(problem)
        assert out.status == OptimizationStatus.INFEASIBLE
        assert out.x is None
        assert out.fun is None

    def test_time_limit_passed_through(self) -> None:
        solver = HighsLinearSolver(time_limit=5.0)
        problem = LinearProblem(
            c=np.array([1.0]),
            bounds=[(0.0, 1.0)],
        )
        out = solver.solve(problem)
        assert out.status == OptimizationStatus.SUCCESS
        assert out.x == pytest.approx([0.0])

    def test_rejects_nonlinear_problem(self) -> None:
        problem = NonlinearProblem(
            objective=lambda x: 0.0, x0=np.zeros(1), bounds=[(0.0, 1.0)]
        )
        with pytest.raises(TypeError):
            HighsLinearSolver().solve(problem)
