# footprint/exceptions.py
"""Typed failures raised by the analysis core.

Everything derives from :class:`FootprintError` so the HTTP layer can map the
whole family with a handful of exception handlers.
"""
from __future__ import annotations

from typing import Optional

__all__ = [
    "FootprintError",
    "ConfigurationError",
    "InputValidationError",
    "UpstreamError",
    "UpstreamQueryError",
    "UpstreamGenerationError",
    "ResponseParseFailure",
    "TransactionNotFound",
]


class FootprintError(Exception):
    """Base class for all project errors."""


class ConfigurationError(FootprintError):
    """A required credential (Gemini key, PocketBase login) is missing."""


class InputValidationError(FootprintError):
    """Caller input is malformed; raised before any upstream call."""

    def __init__(self, message: str, *, example: object | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.example = example


class UpstreamError(FootprintError):
    """An external service answered with an error or was unreachable."""

    service = "upstream"

    def __init__(self, message: str, *, status: Optional[int] = None, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status is not None:
            return f"{self.service} error {self.status}: {base}"
        return f"{self.service} error: {base}"


class UpstreamQueryError(UpstreamError):
    """PocketBase request failed."""

    service = "PocketBase"


class UpstreamGenerationError(UpstreamError):
    """Gemini request failed."""

    service = "Gemini"


class ResponseParseFailure(FootprintError):
    """LLM text could not be parsed as a JSON object by any strategy.

    Never raised past a component boundary: it travels as data on
    :class:`footprint.gemini_client.ParseOutcome`.
    """

    def __init__(self, message: str, *, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class TransactionNotFound(FootprintError):
    def __init__(self, txn_id: str) -> None:
        super().__init__(f"Transaction {txn_id!r} not found")
        self.txn_id = txn_id
