# services/api_gateway/schemas.py
"""Pydantic DTO-models used by the *API gateway*.

Kept apart from `main.py` so that:
1. The FastAPI layer does not depend on the domain models for its input shape.
2. OpenAPI docs for request bodies are generated from one place.
"""
from __future__ import annotations

import datetime as _dt
import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from footprint.decimal_utils import coerce_amount
from footprint.models import Category


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @field_validator("category", mode="before", check_fields=False)
    @classmethod
    def _category(cls, v: Any) -> Optional[Category]:
        return Category.coerce(v)

    @field_validator("amount", mode="before", check_fields=False)
    @classmethod
    def _amount(cls, v: Any) -> Optional[float]:
        if v is None:
            return None
        value = coerce_amount(v)
        if not math.isfinite(value):
            raise ValueError("amount must be a number")
        return value

    def to_store(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent, camelCase keys."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class TransactionCreate(_Payload):
    """New spending record from the frontend form."""

    title: Optional[str] = None
    category: Optional[Category] = Category.OTHERS
    amount: float = Field(...)
    create_datetime: Optional[_dt.datetime] = None

    def to_store(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        data.setdefault("category", Category.OTHERS)
        return data


class TransactionUpdate(_Payload):
    """Partial update; omitted fields are left untouched."""

    title: Optional[str] = None
    category: Optional[Category] = None
    amount: Optional[float] = None
    create_datetime: Optional[_dt.datetime] = None


class CompareMonthsPayload(BaseModel):
    months: Any = Field(None, description='e.g. ["2024-05", "2024-06", "2024-07"]')

    class Config:
        json_schema_extra = {
            "description": "Up to 12 month keys (YYYY-MM) to analyse side by side.",
        }


class TransactionList(BaseModel):
    transactions: List[Dict[str, Any]]
