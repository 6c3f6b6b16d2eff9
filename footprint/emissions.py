# footprint/emissions.py
"""
LLM emissions estimator.
Entry points: estimate_emissions(month, ...) / build_emissions(transactions, ...)

Gemini gets the factor table plus the normalised transactions and answers
with per-transaction kgCO2e and totals. An unparseable answer degrades to the
empty result; an upstream error propagates.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any, List, Mapping, Optional, Sequence

from footprint.gemini_client import GeminiClient, Prompt
from footprint.llm_core import EmissionsResult
from footprint.metrics import LLM_PARSE_FAIL
from footprint.models import DEFAULT_FACTORS, Category, Transaction
from footprint.sentry import sentry_capture
from footprint.transactions import TransactionStore

__all__ = [
    "EMISSIONS_INSTRUCTION",
    "build_emissions_prompt",
    "build_emissions",
    "estimate_emissions",
]

logger = logging.getLogger(__name__)

COMPONENT = "emissions"

EMISSIONS_INSTRUCTION = """
You are a sustainability analyst working in Singapore.
Estimate the carbon emissions (kgCO2e) for each financial transaction using the provided category factors (kgCO2e per 1 Singapore dollar).

Contextual boundaries/requirements:
- Singapore's grid electricity emission factor is ~0.408 kgCO2e/kWh. Use this when reasoning about "Utility".
- For "Transport", assume mix of MRT (low emissions) and cars/taxis (higher emissions). Use the factor table, not external assumptions.
- For "Travel", assume air travel in/out of Singapore is the baseline (higher impact).
- If category is missing or unknown, default to "Others".
- The emissions calculation: emissionsKg = amount * factor(category).
- Every transaction in the list must appear in the output exactly once.
- Always output strict JSON with "items" (list of transactions + emissionsKg) and "totals" (sum and byCategory).
- Do not add extra commentary, only JSON.

Schema reminder:
{
  "items": [
    {
      "id": "...",
      "title": "...",
      "category": "...",
      "amount": 123,
      "emissionsKg": 45.6,
      "note": "optional remark"
    }
  ],
  "totals": {
    "totalEmissionsKg": 200.5,
    "byCategory": { "Transport": 100.2, "Utility": 50.1 }
  }
}
"""


def _normalise(txn: Transaction) -> dict[str, Any]:
    return {
        "id": txn.id,
        "title": txn.title,
        "category": txn.category.value if txn.category else None,
        "amount": txn.spend,
        "createDatetime": txn.create_datetime.isoformat() if txn.create_datetime else None,
    }


def build_emissions_prompt(
    transactions: Sequence[Transaction],
    factors: Mapping[Category, float] = DEFAULT_FACTORS,
) -> Prompt:
    return Prompt(
        system_instruction=EMISSIONS_INSTRUCTION,
        input={
            "factors": {Category(k).value: v for k, v in factors.items()},
            "transactions": [_normalise(t) for t in transactions],
        },
        component=COMPONENT,
    )


def _log_coverage(transactions: Sequence[Transaction], result: EmissionsResult) -> None:
    seen = Counter(item.id for item in result.items)
    missing = [t.id for t in transactions if t.id not in seen]
    duplicated = [txn_id for txn_id, n in seen.items() if n > 1]
    if missing:
        logger.warning("Gemini skipped %d of %d transactions: %s", len(missing), len(transactions), missing[:20])
    if duplicated:
        logger.warning("Gemini repeated transactions: %s", duplicated[:20])


async def build_emissions(
    transactions: Sequence[Transaction],
    *,
    llm: GeminiClient,
    factors: Mapping[Category, float] = DEFAULT_FACTORS,
) -> EmissionsResult:
    """Estimate emissions for already-fetched *transactions*."""
    if not transactions:
        return EmissionsResult.empty()

    outcome = await llm.generate_json(build_emissions_prompt(transactions, factors))
    if not outcome.ok:
        LLM_PARSE_FAIL.labels(component=COMPONENT).inc()
        logger.error("Emissions answer was not JSON, returning empty result: %s", outcome.raw[:200])
        sentry_capture(outcome.error, extras={"raw": outcome.raw[:4000]})
        return EmissionsResult.empty()

    result = EmissionsResult.from_llm(outcome.data)
    _log_coverage(transactions, result)
    return result


async def estimate_emissions(
    month: Optional[str],
    *,
    store: TransactionStore,
    llm: GeminiClient,
    factors: Mapping[Category, float] = DEFAULT_FACTORS,
) -> EmissionsResult:
    """Fetch the month's transactions and estimate their emissions.

    No transactions → empty result, Gemini is not called.
    """
    transactions: List[Transaction] = await store.fetch_transactions(month)
    if not transactions:
        logger.info("No transactions for %s, skipping Gemini", month or "all months")
        return EmissionsResult.empty()
    return await build_emissions(transactions, llm=llm, factors=factors)
