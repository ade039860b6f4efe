"""Performance reporting domain models.

CalendarReturn    — compounded return for one (year, month) bucket
PerformanceReport — derived, read-only metrics for one portfolio vs a benchmark
"""

from __future__ import annotations

import calendar
from datetime import date

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from .enums import SharpeMeasure


class CalendarReturn(BaseModel):
    model_config = ConfigDict(frozen=True)

    year: int
    month: int = Field(ge=1, le=12)
    ret: float


class PerformanceReport(BaseModel):
    """Sharpe, CAPM beta / Jensen's alpha, and calendarised returns.

    All per-period figures use the period risk-free rate
    rf_period = risk_free_rate / periods_per_year.
    sharpe_measure records which denominator produced ``sharpe``.
    annualized_sharpe = sharpe · √m and is only defined for STDDEV.
    max_drawdown ≤ 0.
    """

    model_config = ConfigDict(frozen=True)

    start: date
    end: date
    n_periods: int = Field(ge=2)
    periods_per_year: int = Field(gt=0)
    risk_free_rate: float
    rf_period: float
    confidence: float = Field(gt=0.0, lt=1.0)
    sharpe_measure: SharpeMeasure
    sharpe: float
    annualized_sharpe: float | None = None
    beta: float
    alpha: float
    mean_return: float
    stdev: float = Field(ge=0.0)
    cumulative_return: float
    annualized_return: float
    annualized_volatility: float = Field(ge=0.0)
    max_drawdown: float = Field(le=0.0)
    calendar_returns: list[CalendarReturn] = Field(default_factory=list)

    def calendar_table(self) -> pd.DataFrame:
        """Year × month table with a compounded ``Total`` column.

        Months without observations are NaN and do not enter the total.
        """
        months = [calendar.month_abbr[m] for m in range(1, 13)]
        if not self.calendar_returns:
            return pd.DataFrame(columns=[*months, "Total"])
        years = sorted({c.year for c in self.calendar_returns})
        table = pd.DataFrame(np.nan, index=pd.Index(years, name="year"), columns=months)
        for c in self.calendar_returns:
            table.loc[c.year, calendar.month_abbr[c.month]] = c.ret
        table["Total"] = (1.0 + table[months]).prod(axis=1, skipna=True) - 1.0
        return table

    def summary(self) -> dict[str, float | None]:
        """Scalar figures for narrative text."""
        return {
            "sharpe": self.sharpe,
            "annualized_sharpe": self.annualized_sharpe,
            "beta": self.beta,
            "alpha": self.alpha,
            "cumulative_return": self.cumulative_return,
            "annualized_return": self.annualized_return,
            "annualized_volatility": self.annualized_volatility,
            "max_drawdown": self.max_drawdown,
        }
