# tests/conftest.py
from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import pytest

from footprint import pocketbase
from footprint.config import get_settings
from footprint.gemini_client import ParseOutcome, Prompt, get_gemini_client, parse_structured
from footprint.models import DEFAULT_FACTORS, Category, Transaction
from footprint.predictor import get_spending_predictor


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Fresh settings / singletons for every test, with dummy credentials."""
    monkeypatch.chdir(tmp_path)  # no stray .env
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setenv("PB_EMAIL", "admin@example.com")
    monkeypatch.setenv("PB_PASSWORD", "secret")
    monkeypatch.setenv("MODEL_PATH", str(tmp_path / "missing_model.json"))
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    monkeypatch.delenv("METRICS_PORT", raising=False)
    get_settings.cache_clear()
    get_gemini_client.cache_clear()
    get_spending_predictor.cache_clear()
    pocketbase._async_pb_client = None
    yield
    get_settings.cache_clear()
    get_gemini_client.cache_clear()
    get_spending_predictor.cache_clear()
    pocketbase._async_pb_client = None


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_txn(
    txn_id: str,
    category: Optional[str] = "Others",
    amount: Any = 10,
    created: str = "2024-07-05T10:00:00Z",
    title: Optional[str] = None,
) -> Transaction:
    return Transaction.model_validate(
        {
            "id": txn_id,
            "title": title or f"txn {txn_id}",
            "category": category,
            "amount": amount,
            "createDatetime": created,
        }
    )


def emissions_answer(
    transactions: Iterable[Transaction],
    factors: Mapping[Category, float] = DEFAULT_FACTORS,
) -> str:
    """What a well-behaved Gemini would say: amount × factor for every txn."""
    items = []
    by_category: Dict[str, float] = {}
    for t in transactions:
        cat = t.effective_category
        kg = t.spend * factors[cat]
        items.append(
            {"id": t.id, "title": t.title, "category": cat.value, "amount": t.spend, "emissionsKg": kg}
        )
        by_category[cat.value] = by_category.get(cat.value, 0.0) + kg
    return json.dumps(
        {
            "items": items,
            "totals": {"totalEmissionsKg": sum(by_category.values()), "byCategory": by_category},
        }
    )


RECOMMENDATIONS_ANSWER = json.dumps(
    {
        "summary": "Transport dominates your footprint.",
        "topEmitters": [{"category": "Transport", "emissionsKg": 55.0, "percentageOfTotal": 80.0}],
        "alternatives": [
            {
                "category": "Transport",
                "current": "Grab rides",
                "greenerOption": "MRT",
                "potentialSavings": "~30-40% reduction in transport emissions",
                "implementation": "MyTransport.SG",
            },
            {
                "category": "Utility",
                "current": "Aircon at 22C",
                "greenerOption": "Aircon at 25C",
                "potentialSavings": "10% lower electricity use",
                "implementation": "Set a timer",
            },
        ],
        "handprintActions": [
            {"action": "Plant a tree", "impact": "20kg/yr", "effort": "Low", "category": "Nature"}
        ],
        "seasonalTips": ["Carry an umbrella instead of taking a taxi in the monsoon"],
        "spendingInsight": "You spent less than predicted.",
    }
)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeLLM:
    """Stands in for GeminiClient: canned answers keyed by prompt component."""

    def __init__(self, answers: Optional[Dict[str, Union[str, Exception]]] = None) -> None:
        self.answers = answers or {}
        self.prompts: List[Prompt] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def calls_for(self, component: str) -> int:
        return sum(1 for p in self.prompts if p.component == component)

    async def generate_json(self, prompt: Prompt) -> ParseOutcome:
        self.prompts.append(prompt)
        answer = self.answers.get(prompt.component, "{}")
        if callable(answer):
            answer = answer(prompt)
        if isinstance(answer, Exception):
            raise answer
        return parse_structured(answer)


class FakeStore:
    """Month → transactions (or an exception to raise)."""

    def __init__(self, by_month: Optional[Dict[Optional[str], Union[List[Transaction], Exception]]] = None) -> None:
        self.by_month = by_month or {}
        self.fetched: List[Optional[str]] = []

    async def fetch_transactions(self, month: Optional[str] = None) -> List[Transaction]:
        self.fetched.append(month)
        result = self.by_month.get(month, [])
        if isinstance(result, Exception):
            raise result
        return list(result)


def answer_from_input(prompt: Prompt) -> str:
    """Emissions answer computed from whatever transactions the prompt carried."""
    txns = [
        Transaction.model_validate(
            {"id": t["id"], "category": t["category"], "amount": t["amount"]}
        )
        for t in prompt.input["transactions"]
    ]
    factors = {Category(k): v for k, v in prompt.input["factors"].items()}
    return emissions_answer(txns, factors)
