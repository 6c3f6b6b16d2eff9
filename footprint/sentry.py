# footprint/sentry.py
"""Thin wrapper around *sentry-sdk*.

*   **Lazy init** – Sentry initialises **once** via :func:`init_sentry`.
    Without a DSN the helpers silently no-op, which keeps local runs and
    tests quiet.
*   **Global capture helper** – :func:`sentry_capture` records an exception
    with optional *extras* in a single line of code.

Usage
-----
```python
from footprint.sentry import init_sentry, sentry_capture

init_sentry(release="footprint-api@0.1.0")
...
try:
    risky_operation()
except Exception as e:
    sentry_capture(e, extras={"month": "2024-07"})
```
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

import sentry_sdk

from footprint.config import get_settings


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def init_sentry(*, release: str | None = None, env: str | None = None) -> None:
    """Initialise Sentry SDK once per process; no-op without *SENTRY_DSN*."""
    settings = get_settings()
    if not settings.sentry_dsn:
        return  # local run without Sentry

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        release=release,
        environment=env or settings.env,
        traces_sample_rate=0.2,
        max_value_length=4_096,  # prompts can get long
    )


def sentry_capture(exc: BaseException, *, extras: Optional[dict[str, Any]] = None) -> None:  # noqa: D401
    """Capture *exc* to Sentry if the SDK is initialised.

    Parameters
    ----------
    exc
        The exception object to record.
    extras
        Extra key/value pairs to attach to the event (e.g. the raw LLM text).
    """
    if not sentry_sdk.get_client().is_active():
        return

    with sentry_sdk.new_scope() as scope:
        if extras:
            for key, value in extras.items():
                scope.set_extra(key, value)
        sentry_sdk.capture_exception(exc)
