"""Asset bound domain model.

An asset in the analysis is identified by its ticker and carries the box
bounds its weight must respect.  These are pure domain objects with no
market-data or persistence concerns.
"""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AssetBound(BaseModel):
    """Per-asset weight bounds [min_weight, max_weight].

    Both bounds are in [0, 1] (long-only, no leverage).
    min_weight must not exceed max_weight.
    """

    model_config = ConfigDict(frozen=True)

    ticker: str = Field(min_length=1)
    min_weight: float = Field(default=0.0, ge=0.0, le=1.0)
    max_weight: float = Field(default=1.0, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _valid_range(self) -> AssetBound:
        if self.min_weight > self.max_weight:
            raise ValueError(
                f"min_weight ({self.min_weight}) must not exceed max_weight ({self.max_weight})"
            )
        return self

    @property
    def as_tuple(self) -> tuple[float, float]:
        return (self.min_weight, self.max_weight)

    @classmethod
    def uniform(
        cls, tickers: Iterable[str], min_weight: float, max_weight: float
    ) -> list[AssetBound]:
        """Same [min, max] box for every ticker, in the order given."""
        return [
            cls(ticker=t, min_weight=min_weight, max_weight=max_weight) for t in tickers
        ]
