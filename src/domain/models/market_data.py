"""Market data domain models.

ReturnSeries — a date-aligned matrix of per-asset period returns.

The series is an immutable value object: the frame is validated and copied
on the way in, held privately, and only ever handed out as a copy, so no
caller can mutate a series another caller holds.
"""

from __future__ import annotations

from datetime import date
from typing import Any

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError

from .enums import ReturnType


def _aligned(frame: pd.DataFrame) -> pd.DataFrame:
    frame = frame.copy()
    frame.index = pd.DatetimeIndex(frame.index)
    frame.columns = [str(c) for c in frame.columns]
    if frame.columns.has_duplicates:
        raise ValueError("ticker columns must be unique")
    if len(frame.columns) == 0:
        raise ValueError("a return series needs at least one asset column")
    if frame.index.has_duplicates or not frame.index.is_monotonic_increasing:
        raise ValueError("dates must be strictly increasing")
    if frame.isna().to_numpy().any():
        raise ValueError("return series contains missing cells after alignment")
    return frame.astype(float)


class ReturnSeries(BaseModel):
    """Per-asset period returns indexed by strictly increasing dates.

    Invariants (enforced on construction):
      - index is a DatetimeIndex, strictly increasing, no duplicates
      - every asset has a value on every date (no NaN cells)
      - column (ticker) names are unique after conversion to str

    Two series are equal when return type, tickers, dates and values match.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    return_type: ReturnType = ReturnType.SIMPLE
    _frame: pd.DataFrame = PrivateAttr()

    def __init__(self, frame: pd.DataFrame, **data: Any):
        super().__init__(**data)
        try:
            self._frame = _aligned(frame)
        except ValueError as exc:
            raise ValidationError.from_exception_data(
                type(self).__name__,
                [{"type": "value_error", "loc": ("frame",), "input": frame, "ctx": {"error": exc}}],
            ) from exc

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReturnSeries):
            return NotImplemented
        return self.return_type == other.return_type and self._frame.equals(other._frame)

    def __hash__(self) -> int:
        # + 0.0 folds −0.0 into 0.0 so equal frames hash alike
        values = self._frame.to_numpy() + 0.0
        return hash(
            (
                self.return_type,
                tuple(self._frame.columns),
                self._frame.index.asi8.tobytes(),
                values.tobytes(),
            )
        )

    @classmethod
    def from_series(
        cls,
        series: pd.Series,
        ticker: str | None = None,
        return_type: ReturnType = ReturnType.SIMPLE,
    ) -> ReturnSeries:
        """Wrap a single-asset series (e.g. a benchmark index)."""
        name = ticker or (str(series.name) if series.name is not None else "benchmark")
        return cls(frame=series.to_frame(name=name), return_type=return_type)

    def __len__(self) -> int:
        return len(self._frame)

    @property
    def frame(self) -> pd.DataFrame:
        """Copy of the underlying frame; same as to_frame()."""
        return self._frame.copy()

    @property
    def tickers(self) -> list[str]:
        return list(self._frame.columns)

    @property
    def dates(self) -> pd.DatetimeIndex:
        return self._frame.index.copy()

    @property
    def values(self) -> np.ndarray:
        return self._frame.to_numpy(copy=True)

    def to_frame(self) -> pd.DataFrame:
        """Date-indexed copy for charting or further pandas work."""
        return self._frame.copy()

    def column(self, ticker: str) -> pd.Series:
        return self._frame[ticker].copy()

    def between(self, start: date | None = None, end: date | None = None) -> ReturnSeries:
        """Inclusive date slice; either end may be left open."""
        sliced = self._frame.loc[
            pd.Timestamp(start) if start is not None else None :
            pd.Timestamp(end) if end is not None else None
        ]
        return ReturnSeries(frame=sliced, return_type=self.return_type)
