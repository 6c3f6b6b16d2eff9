# footprint/llm_core.py
"""Mini-schemas for what Gemini returns.

Validation here is *loose*: Gemini gives no schema guarantee,
so wrong-typed fields degrade to empty values instead of failing the whole
response. Unknown keys are kept (``extra="allow"``) and relayed as-is.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from footprint.decimal_utils import coerce_amount, finite_or_zero
from footprint.models import CamelModel

__all__ = [
    "EmissionRecord",
    "EmissionTotals",
    "EmissionsResult",
    "TopEmitter",
    "Alternative",
    "HandprintAction",
    "RecommendationSet",
]


def _loose_float(v: Any) -> float:
    if isinstance(v, (dict, list, tuple)):
        return 0.0
    return finite_or_zero(coerce_amount(v))


def _loose_text(v: Any) -> str:
    if v is None:
        return ""
    return v if isinstance(v, str) else str(v)


def _dict_entries(v: Any) -> List[Mapping[str, Any]]:
    if not isinstance(v, list):
        return []
    return [entry for entry in v if isinstance(entry, Mapping)]


class _LooseModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )


# --------------------------------------------------------------------------- #
# Emissions
# --------------------------------------------------------------------------- #


class EmissionRecord(_LooseModel):
    """One transaction with the LLM's emissions estimate."""

    id: str = ""
    title: Optional[str] = None
    category: str = "Others"
    amount: float = 0.0
    emissions_kg: float = 0.0
    note: Optional[str] = None

    @field_validator("id", "category", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _loose_text(v)

    @field_validator("title", "note", mode="before")
    @classmethod
    def _optional_text(cls, v: Any) -> Optional[str]:
        return None if v is None else _loose_text(v)

    @field_validator("amount", "emissions_kg", mode="before")
    @classmethod
    def _number(cls, v: Any) -> float:
        return _loose_float(v)


class EmissionTotals(CamelModel):
    total_emissions_kg: float = 0.0
    by_category: Dict[str, float] = Field(default_factory=dict)

    @field_validator("total_emissions_kg", mode="before")
    @classmethod
    def _number(cls, v: Any) -> float:
        return _loose_float(v)

    @field_validator("by_category", mode="before")
    @classmethod
    def _categories(cls, v: Any) -> Dict[str, float]:
        if not isinstance(v, Mapping):
            return {}
        return {str(k): _loose_float(val) for k, val in v.items()}


class EmissionsResult(CamelModel):
    items: List[EmissionRecord] = Field(default_factory=list)
    totals: EmissionTotals = Field(default_factory=EmissionTotals)

    @classmethod
    def empty(cls) -> "EmissionsResult":
        return cls()

    @classmethod
    def from_llm(cls, data: Mapping[str, Any]) -> "EmissionsResult":
        """``items`` not a list → []; ``totals`` not an object → zeroed."""
        items = [EmissionRecord.model_validate(dict(e)) for e in _dict_entries(data.get("items"))]
        raw_totals = data.get("totals")
        if isinstance(raw_totals, Mapping):
            totals = EmissionTotals.model_validate(dict(raw_totals))
        else:
            totals = EmissionTotals()
        return cls(items=items, totals=totals)


# --------------------------------------------------------------------------- #
# Recommendations
# --------------------------------------------------------------------------- #


class TopEmitter(_LooseModel):
    category: str = ""
    emissions_kg: float = 0.0
    percentage_of_total: float = 0.0

    @field_validator("category", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _loose_text(v)

    @field_validator("emissions_kg", "percentage_of_total", mode="before")
    @classmethod
    def _number(cls, v: Any) -> float:
        return _loose_float(v)


class Alternative(_LooseModel):
    category: str = ""
    current: str = ""
    greener_option: str = ""
    potential_savings: str = ""
    implementation: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _loose_text(v)


class HandprintAction(_LooseModel):
    action: str = ""
    impact: str = ""
    effort: str = ""
    category: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _loose_text(v)


class RecommendationSet(_LooseModel):
    """Entirely LLM-authored; we only wrap and shape-check it."""

    summary: str = ""
    top_emitters: List[TopEmitter] = Field(default_factory=list)
    alternatives: List[Alternative] = Field(default_factory=list)
    handprint_actions: List[HandprintAction] = Field(default_factory=list)
    seasonal_tips: List[str] = Field(default_factory=list)
    spending_insight: str = ""

    @field_validator("summary", "spending_insight", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return _loose_text(v)

    @field_validator("top_emitters", "alternatives", "handprint_actions", mode="before")
    @classmethod
    def _entries(cls, v: Any) -> List[Mapping[str, Any]]:
        return _dict_entries(v)

    @field_validator("seasonal_tips", mode="before")
    @classmethod
    def _tips(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            return [v]
        if not isinstance(v, list):
            return []
        return [_loose_text(tip) for tip in v if tip is not None]

    @classmethod
    def unavailable(cls, summary: str) -> "RecommendationSet":
        return cls(summary=summary)
