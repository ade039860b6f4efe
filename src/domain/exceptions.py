"""Error taxonomy for portfolio analysis.

Every error is local and synchronous: it is raised to the immediate caller
and never recorded in any process-wide state.
"""


class PortfolioAnalysisError(Exception):
    """Base exception for all portfolio analysis errors."""


class InsufficientDataError(PortfolioAnalysisError):
    """Raised when a series has fewer observations than a computation needs."""

    def __init__(self, message: str, required: int | None = None, available: int | None = None):
        super().__init__(message)
        self.required = required
        self.available = available


class DimensionMismatchError(PortfolioAnalysisError):
    """Raised when two series (or a series and a weight vector) do not line up.

    Never auto-corrected; the caller has to align its inputs.
    """


class InfeasibleConstraintsError(PortfolioAnalysisError):
    """Raised when box bounds cannot satisfy the full-investment constraint."""


class DidNotConvergeError(PortfolioAnalysisError):
    """Raised when a solver exhausts its budget without meeting tolerances."""

    def __init__(self, message: str, solver_meta: dict[str, object] | None = None):
        super().__init__(message)
        self.solver_meta = solver_meta
