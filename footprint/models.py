# footprint/models.py
"""Domain models shared by the store layer, the analysis core and the API.

Levels
------
1. **Transaction** – a record as it lives in PocketBase, normalised on read
   (category enum, numeric amount, tz-aware timestamps).
2. **SpendingPrediction / AnalysisResult / ComparisonResult** – read-only
   analysis outputs, recomputed per request and never persisted.

Every model serialises with camelCase keys (``model_dump(by_alias=True)``),
which is also what FastAPI emits for ``response_model`` endpoints.
"""
from __future__ import annotations

import datetime as _dt
import math
import re
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from dateutil import parser as dt_parse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from footprint.decimal_utils import coerce_amount
from footprint.exceptions import InputValidationError

__all__ = [
    "CamelModel",
    "Category",
    "Season",
    "DEFAULT_FACTORS",
    "Transaction",
    "SpendingPrediction",
    "SpendingComparison",
    "MonthComparison",
    "MonthComparisonError",
    "ComparisonSummary",
    "EmptyComparisonSummary",
    "ComparisonResult",
    "parse_month_key",
    "month_range",
    "season_for_month",
    "current_month_key",
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Category(str, Enum):
    """Closed set of spending categories."""

    UTILITY = "Utility"
    SHOPPING = "Shopping"
    TRANSPORT = "Transport"
    TRAVEL = "Travel"
    OTHERS = "Others"

    @classmethod
    def coerce(cls, value: object) -> Optional["Category"]:
        """Map free text onto the enum; unknown → Others, empty → None."""
        if value is None:
            return None
        if isinstance(value, Category):
            return value
        text = str(value).strip()
        if not text:
            return None
        for member in cls:
            if member.value.lower() == text.lower():
                return member
        return cls.OTHERS


class Season(str, Enum):
    SPRING = "Spring"
    SUMMER = "Summer"
    FALL = "Fall"
    WINTER = "Winter"


# Singapore-context emission factors, kgCO2e per 1 SGD spent (approx.)
DEFAULT_FACTORS: Mapping[Category, float] = MappingProxyType(
    {
        Category.UTILITY: 0.40,
        Category.SHOPPING: 0.25,
        Category.TRANSPORT: 0.55,
        Category.TRAVEL: 0.80,
        Category.OTHERS: 0.20,
    }
)


# --------------------------------------------------------------------------- #
# Month keys
# --------------------------------------------------------------------------- #

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")
MONTH_EXAMPLE = "2024-07"


def parse_month_key(month: object) -> Tuple[int, int]:
    """``"2024-07"`` → ``(2024, 7)``; anything else is a client error."""
    if not isinstance(month, str):
        raise InputValidationError(
            "Month parameter is required (format: YYYY-MM)", example=MONTH_EXAMPLE
        )
    m = _MONTH_RE.match(month.strip())
    if not m:
        raise InputValidationError(
            f"Invalid month {month!r} (format: YYYY-MM)", example=MONTH_EXAMPLE
        )
    year, num = int(m.group(1)), int(m.group(2))
    if not 1 <= num <= 12 or year < 1:
        raise InputValidationError(
            f"Invalid month {month!r} (format: YYYY-MM)", example=MONTH_EXAMPLE
        )
    return year, num


def month_range(month: str) -> Tuple[_dt.datetime, _dt.datetime]:
    """Inclusive start / exclusive end of the calendar month, in UTC."""
    year, num = parse_month_key(month)
    start = _dt.datetime(year, num, 1, tzinfo=_dt.timezone.utc)
    if num == 12:
        end = _dt.datetime(year + 1, 1, 1, tzinfo=_dt.timezone.utc)
    else:
        end = _dt.datetime(year, num + 1, 1, tzinfo=_dt.timezone.utc)
    return start, end


def season_for_month(month: str) -> Season:
    """Simplified Singapore monsoon calendar.

    Dec–Mar: Winter; Apr–May: Spring; Jun–Sep: Summer; Oct–Nov: Fall.
    """
    _, num = parse_month_key(month)
    if num >= 12 or num <= 3:
        return Season.WINTER
    if 4 <= num <= 5:
        return Season.SPRING
    if 6 <= num <= 9:
        return Season.SUMMER
    return Season.FALL


def current_month_key(now: Optional[_dt.datetime] = None) -> str:
    now = now or _dt.datetime.now(_dt.timezone.utc)
    return f"{now.year:04d}-{now.month:02d}"


# --------------------------------------------------------------------------- #
# Transactions
# --------------------------------------------------------------------------- #


def _parse_timestamp(value: Any) -> Optional[_dt.datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, _dt.datetime):
        ts = value
    elif isinstance(value, (int, float)):
        ts = _dt.datetime.fromtimestamp(value, tz=_dt.timezone.utc)
    else:
        # PocketBase gives "2024-07-03 10:00:00.000Z"
        try:
            ts = dt_parse.parse(str(value))
        except (ValueError, OverflowError):
            return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=_dt.timezone.utc)
    return ts


class Transaction(CamelModel):
    """A spending record as read from the store."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    id: str
    title: Optional[str] = None
    category: Optional[Category] = None
    amount: float = 0.0
    create_datetime: Optional[_dt.datetime] = None
    update_datetime: Optional[_dt.datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> str:
        return str(v)

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, v: Any) -> Optional[Category]:
        return Category.coerce(v)

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, v: Any) -> float:
        return coerce_amount(v)

    @field_validator("create_datetime", "update_datetime", mode="before")
    @classmethod
    def _coerce_ts(cls, v: Any) -> Optional[_dt.datetime]:
        return _parse_timestamp(v)

    @property
    def effective_category(self) -> Category:
        return self.category or Category.OTHERS

    @property
    def spend(self) -> float:
        """Amount as it counts towards totals (NaN / inf → 0)."""
        return self.amount if math.isfinite(self.amount) else 0.0


# --------------------------------------------------------------------------- #
# Analysis outputs
# --------------------------------------------------------------------------- #


class SpendingPrediction(CamelModel):
    month: str
    season: Season
    predicted_spending: float
    feature_vector: Dict[str, int]
    confidence: float


class SpendingComparison(CamelModel):
    predicted_vs_actual: float
    percentage_difference: float


class MonthComparison(CamelModel):
    month: str
    total_emissions: float
    total_spending: float
    predicted_spending: float
    season: Season
    by_category: Dict[str, float] = Field(default_factory=dict)
    transaction_count: int = 0


class MonthComparisonError(CamelModel):
    month: str
    error: str = "Failed to analyze this month"
    total_emissions: float = 0.0
    total_spending: float = 0.0
    predicted_spending: float = 0.0


class ComparisonSummary(CamelModel):
    average_emissions: float
    average_spending: float
    total_months_analyzed: int
    highest_emission_month: MonthComparison
    lowest_emission_month: MonthComparison
    trend: str


class EmptyComparisonSummary(CamelModel):
    message: str = "No valid data found for comparison"


class ComparisonResult(CamelModel):
    comparisons: List[Union[MonthComparison, MonthComparisonError]]
    summary: Union[ComparisonSummary, EmptyComparisonSummary]
