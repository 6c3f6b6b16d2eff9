# footprint/metrics.py
"""Prometheus metrics for the analysis core.

Two kinds of indicators:
1. **Upstream** – how many Gemini calls were made and how long they took.
2. **Business** – how often an answer was unparseable and how many months
   failed inside a comparison.

> Call `start_metrics_server()` once at process start – it serves `/metrics`
> on `METRICS_PORT` (nothing is started when the port is not configured).
"""
from __future__ import annotations

import contextlib
import logging
from typing import Optional

from prometheus_client import Counter, Histogram, start_http_server

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Metric objects (module-level singletons)
# ---------------------------------------------------------------------------
LLM_CALLS = Counter(
    "footprint_llm_calls_total",
    "Gemini requests issued, by pipeline stage",
    ["component"],
)
LLM_LATENCY = Histogram(
    "footprint_llm_latency_seconds",
    "Time (sec) spent waiting for one Gemini answer",
    ["component"],
    buckets=(0.25, 0.5, 1, 2, 5, 10, 20, 40),
)
LLM_PARSE_FAIL = Counter(
    "footprint_llm_parse_fail_total",
    "Gemini answers that no parsing strategy could turn into JSON",
    ["component"],
)
MONTH_ANALYSIS_FAIL = Counter(
    "footprint_month_analysis_fail_total",
    "Months converted to an error stub during a comparison",
)


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------

def start_metrics_server(port: Optional[int]) -> None:  # pragma: no cover – network
    """Start the `/metrics` endpoint in a background thread."""
    if not port:
        return
    with contextlib.suppress(OSError):  # idempotent on reload
        start_http_server(port)
        log.info("Prometheus metrics available on http://0.0.0.0:%s/metrics", port)
