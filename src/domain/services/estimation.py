"""Estimation service: price alignment, return series, μ and Σ.

Everything here is in period units (no annualisation); annualisation is a
reporting concern handled by the performance service.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import date

import numpy as np
import pandas as pd
from sklearn.covariance import LedoitWolf

from src.domain.exceptions import DimensionMismatchError, InsufficientDataError
from src.domain.models.enums import CovMethod, ReturnType
from src.domain.models.market_data import ReturnSeries

logger = logging.getLogger(__name__)


class EstimationService:
    """Pure computation service for return series and parameter estimation.

    Responsibilities (single, focused):
    - Align per-asset price histories into one date-indexed frame.
    - Convert price frames to return series (simple or log).
    - Estimate the period expected-return vector (μ) and covariance (Σ).
    - Validate and repair positive semi-definite (PSD) matrices.

    The class is stateless; all configuration is passed per-call.
    """

    def build_price_frame(
        self,
        prices: Mapping[str, Sequence[tuple[date, float]]],
    ) -> pd.DataFrame:
        """Align ``ticker -> [(date, adj_close), ...]`` into one frame.

        Dates are the union across tickers, sorted ascending; a ticker with
        no observation on a date gets NaN there.  Leading gaps are trimmed
        later by compute_returns().

        Raises:
            ValueError: If a ticker repeats a date.
        """
        columns: dict[str, pd.Series] = {}
        for ticker, observations in prices.items():
            idx = pd.DatetimeIndex([pd.Timestamp(d) for d, _ in observations])
            if idx.has_duplicates:
                raise ValueError(f"{ticker}: duplicate price dates")
            columns[ticker] = pd.Series([float(p) for _, p in observations], index=idx)
        frame = pd.DataFrame(columns).sort_index()
        frame.index.name = "date"
        return frame

    def compute_returns(
        self,
        prices: pd.DataFrame,
        return_type: ReturnType = ReturnType.SIMPLE,
    ) -> ReturnSeries:
        """Compute simple or log returns from a price DataFrame.

          Simple: r_{i,t} = (P_{i,t} − P_{i,t−1}) / P_{i,t−1}
          Log:    r_{i,t} = ln(P_{i,t} / P_{i,t−1})

        Rows before every asset has its first price are dropped, then the
        first remaining row is dropped because it has no prior period, so
        the result has exactly one row fewer than the trimmed price frame.

        Args:
            prices: DataFrame with assets as columns and dates as index.
            return_type: ReturnType.SIMPLE or ReturnType.LOG.

        Raises:
            InsufficientDataError: Fewer than 2 usable price observations.
            DimensionMismatchError: A gap after an asset's first observation.
            ValueError: Unsorted dates or non-positive prices.
        """
        prices = prices.copy()
        prices.index = pd.DatetimeIndex(prices.index)
        if prices.index.has_duplicates or not prices.index.is_monotonic_increasing:
            raise ValueError("price dates must be strictly increasing")

        if len(prices.columns) and len(prices):
            firsts = [prices[c].first_valid_index() for c in prices.columns]
            if any(f is None for f in firsts):
                raise InsufficientDataError("an asset has no price observations", 2, 0)
            start = max(firsts)
            if start != prices.index[0]:
                logger.debug("Dropping %d leading rows with missing prices", prices.index.get_loc(start))
            prices = prices.loc[start:]

        if len(prices) < 2:
            raise InsufficientDataError(
                f"Return computation needs at least 2 price observations, got {len(prices)}.",
                required=2,
                available=len(prices),
            )
        if prices.isna().to_numpy().any():
            gaps = prices.columns[prices.isna().any()].tolist()
            raise DimensionMismatchError(f"Price gaps after first observation for: {gaps}")
        if (prices <= 0).to_numpy().any():
            raise ValueError("prices must be strictly positive")

        if return_type == ReturnType.SIMPLE:
            returns = prices / prices.shift(1) - 1
        elif return_type == ReturnType.LOG:
            returns = np.log(prices / prices.shift(1))
        else:
            raise ValueError(f"Unsupported return type: {return_type!r}")
        return ReturnSeries(frame=returns.iloc[1:], return_type=return_type)

    def compute_mu(self, returns: ReturnSeries) -> np.ndarray:
        """Arithmetic mean of each asset's period returns, shape (n,)."""
        return returns.to_frame().mean().to_numpy()

    def compute_sigma(
        self,
        returns: ReturnSeries,
        method: CovMethod = CovMethod.SAMPLE,
    ) -> np.ndarray:
        """Compute the period covariance matrix Σ.

        Methods:
          SAMPLE      — standard sample covariance, normalized by N-1 (pandas default).
          LEDOIT_WOLF — shrinkage estimate via sklearn.covariance.LedoitWolf.

        Raises:
            InsufficientDataError: Fewer than 2 observations.
            ValueError: If method is not a recognized estimation method.
        """
        if len(returns) < 2:
            raise InsufficientDataError(
                "Covariance needs at least 2 return observations.", 2, len(returns)
            )
        if method == CovMethod.SAMPLE:
            return returns.to_frame().cov().to_numpy()
        if method == CovMethod.LEDOIT_WOLF:
            lw = LedoitWolf()
            lw.fit(returns.values)
            return lw.covariance_
        raise ValueError(
            f"Unknown covariance method: {method!r}. "
            "Use CovMethod.SAMPLE or CovMethod.LEDOIT_WOLF."
        )

    def validate_psd(
        self,
        matrix: np.ndarray,
    ) -> tuple[bool, str | None]:
        """Check whether a matrix is positive semi-definite.

        A matrix is considered PSD if all eigenvalues are ≥ −1e-12
        (tolerance for floating-point rounding at daily-return scale).
        """
        eigenvalues = np.linalg.eigvalsh(matrix)
        min_ev = float(eigenvalues.min())
        if min_ev < -1e-12:
            return False, (
                f"Matrix is not positive semi-definite: "
                f"minimum eigenvalue is {min_ev:.6g}."
            )
        return True, None

    def repair_psd(
        self,
        matrix: np.ndarray,
    ) -> tuple[np.ndarray, str]:
        """Project a matrix to the nearest positive semi-definite matrix.

        Negative eigenvalues are clipped to zero and the matrix rebuilt
        (nearest PSD in Frobenius norm, Higham 1988).  Symmetry is enforced
        after reconstruction.
        """
        eigenvalues, eigenvectors = np.linalg.eigh(matrix)
        min_ev = float(eigenvalues.min())
        n_clipped = int((eigenvalues < 0).sum())
        eigenvalues_clipped = np.maximum(eigenvalues, 0.0)
        repaired = eigenvectors @ np.diag(eigenvalues_clipped) @ eigenvectors.T
        repaired = (repaired + repaired.T) / 2.0
        explanation = (
            f"Clipped {n_clipped} negative eigenvalue(s) to zero "
            f"(minimum was {min_ev:.6g})."
        )
        return repaired, explanation
