# footprint/gemini_client.py
"""
Thin async wrapper around Google Gemini, used by the emissions and
recommendation stages.
Entry point: ``await GeminiClient.generate_json(prompt) -> ParseOutcome``
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from footprint.config import get_settings
from footprint.exceptions import ResponseParseFailure, UpstreamGenerationError
from footprint.metrics import LLM_CALLS, LLM_LATENCY
from footprint.sentry import sentry_capture

__all__ = [
    "Prompt",
    "ParseOutcome",
    "GeminiClient",
    "get_gemini_client",
    "parse_structured",
]

logger = logging.getLogger(__name__)


# ────────────────────────────────
# 1. Prompt
# ────────────────────────────────
@dataclass(frozen=True)
class Prompt:
    """System instruction plus the JSON payload it talks about."""

    system_instruction: str
    input: Mapping[str, Any]
    component: str = "generic"

    def render(self) -> str:
        data = json.dumps(self.input, indent=2, default=str, ensure_ascii=False)
        return f"{self.system_instruction.strip()}\n\nData to analyse:\n{data}"


# ────────────────────────────────
# 2. Parsing strategies
# ────────────────────────────────
@dataclass(frozen=True)
class ParseOutcome:
    """Tagged result: ``data`` on success, ``error`` on failure."""

    raw: str
    data: Optional[dict] = None
    strategy: Optional[str] = None
    error: Optional[ResponseParseFailure] = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return self.data is not None


def _parse_direct(text: str) -> Optional[dict]:
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _top_level_blocks(text: str) -> list[Tuple[int, int]]:
    """Spans of balanced top-level ``{...}`` blocks (string-literal aware)."""
    spans: list[Tuple[int, int]] = []
    depth = 0
    start = -1
    in_string = False
    escaped = False
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"' and depth > 0:
            in_string = True
        elif ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                spans.append((start, i + 1))
    return spans


def _parse_trailing_block(text: str) -> Optional[dict]:
    # Markdown fences and chatter around the JSON are the usual offenders
    spans = _top_level_blocks(text)
    if not spans:
        return None
    start, end = spans[-1]
    return _parse_direct(text[start:end])


PARSE_STRATEGIES: Sequence[Tuple[str, Callable[[str], Optional[dict]]]] = (
    ("direct", _parse_direct),
    ("trailing_block", _parse_trailing_block),
)


def parse_structured(text: str) -> ParseOutcome:
    """Try every strategy in order; the first JSON object wins."""
    for name, strategy in PARSE_STRATEGIES:
        data = strategy(text)
        if data is not None:
            return ParseOutcome(raw=text, data=data, strategy=name)
    return ParseOutcome(
        raw=text,
        error=ResponseParseFailure("Gemini returned non-JSON output", raw=text),
    )


# ────────────────────────────────
# 3. Client
# ────────────────────────────────
class GeminiClient:
    """One prompt in, raw text (or a :class:`ParseOutcome`) out.

    The underlying ``genai.Client`` can be injected for tests; otherwise it is
    built from *api_key*.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash",
        temperature: float = 0.3,
        max_output_tokens: int = 2048,
        client: Any = None,
    ) -> None:
        if client is None:
            client = genai.Client(api_key=api_key)
        self._client = client
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    def _config(self) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )

    async def generate(self, prompt: Prompt) -> str:
        """Send *prompt* and return the raw text answer.

        Raises :class:`UpstreamGenerationError` if Gemini answers with an error.
        """
        LLM_CALLS.labels(component=prompt.component).inc()
        try:
            with LLM_LATENCY.labels(component=prompt.component).time():
                resp = await self._client.aio.models.generate_content(
                    model=self.model,
                    contents=prompt.render(),
                    config=self._config(),
                )
        except genai_errors.APIError as exc:
            logger.error("Gemini %s call failed: %s %s", prompt.component, exc.code, exc.message)
            sentry_capture(exc, extras={"component": prompt.component})
            raise UpstreamGenerationError(
                exc.message or "Gemini request failed",
                status=exc.code,
                body=json.dumps(exc.details, default=str) if exc.details else exc.message,
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("Gemini %s call failed: %r", prompt.component, exc)
            sentry_capture(exc, extras={"component": prompt.component})
            raise UpstreamGenerationError(str(exc) or exc.__class__.__name__) from exc

        text = resp.text
        if not text:
            logger.warning("Gemini %s call returned no text", prompt.component)
            return "{}"
        return text

    async def generate_json(self, prompt: Prompt) -> ParseOutcome:
        """:meth:`generate` followed by :func:`parse_structured`."""
        raw = await self.generate(prompt)
        outcome = parse_structured(raw)
        if outcome.ok:
            logger.debug("Gemini %s answer parsed via %s", prompt.component, outcome.strategy)
        return outcome


# ────────────────────────────────
# 4. Singleton
# ────────────────────────────────
@lru_cache(maxsize=1)
def get_gemini_client() -> GeminiClient:
    """Return singleton GeminiClient configured from *footprint.config*."""
    settings = get_settings()
    return GeminiClient(
        api_key=settings.require_gemini_key(),
        model=settings.gemini_model,
        temperature=settings.gemini_temperature,
        max_output_tokens=settings.gemini_max_output_tokens,
    )
