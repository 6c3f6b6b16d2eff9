# footprint/recommendations.py
"""
LLM recommendation generator: greener alternatives, carbon-handprint actions
and seasonal tips for a Singapore resident.
Entry point: generate_recommendations(emissions, predicted, actual, month, llm=...)
"""
from __future__ import annotations

import logging
import re
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from footprint.gemini_client import GeminiClient, Prompt
from footprint.llm_core import Alternative, EmissionsResult, RecommendationSet
from footprint.metrics import LLM_PARSE_FAIL
from footprint.models import Season, season_for_month
from footprint.sentry import sentry_capture

__all__ = [
    "build_recommendations_prompt",
    "generate_recommendations",
    "potential_savings_summary",
    "NO_TRANSACTIONS_SUMMARY",
    "UNAVAILABLE_SUMMARY",
]

logger = logging.getLogger(__name__)

COMPONENT = "recommendations"

NO_TRANSACTIONS_SUMMARY = (
    "No transactions found for this month. Start tracking your spending "
    "to get personalized carbon footprint insights!"
)
UNAVAILABLE_SUMMARY = (
    "Recommendations are unavailable for this month right now. Please try again later."
)

_SAVINGS_RE = re.compile(r"(\d+)-?(\d+)?%")


def _instruction(season: Season, predicted: float, actual: float) -> str:
    return f"""
You are a sustainability advisor specializing in Singapore's environmental context.
Analyze the carbon emissions data and provide personalized recommendations.

Your task:
1. Identify the highest emission categories and specific transactions
2. Suggest practical greener alternatives for Singapore residents
3. Recommend carbon handprint activities to offset emissions
4. Consider the seasonal context ({season.value}) and spending patterns

Carbon Handprint Actions (prioritize Singapore context):
- Tree planting programs (NParks initiatives)
- Supporting renewable energy projects in Singapore
- Using public transport (MRT/buses) vs private vehicles
- Choosing local/sustainable food options
- Participating in community recycling programs
- Supporting green businesses and social enterprises
- Energy efficiency improvements at home
- Solar panel adoption programs
- Food waste reduction initiatives
- Second-hand shopping and circular economy

Output Format (strict JSON):
{{
  "summary": "Brief overview of emissions profile in 2-3 sentences",
  "topEmitters": [
    {{
      "category": "Transport",
      "emissionsKg": 150.5,
      "percentageOfTotal": 45.2
    }}
  ],
  "alternatives": [
    {{
      "category": "Transport",
      "current": "Frequent taxi/Grab rides",
      "greenerOption": "Use MRT and buses for daily commute",
      "potentialSavings": "~30-40% reduction in transport emissions",
      "implementation": "Plan routes using MyTransport.SG app"
    }}
  ],
  "handprintActions": [
    {{
      "action": "Plant trees through NParks Community in Bloom",
      "impact": "Offsets ~20kg CO2e per tree annually",
      "effort": "Low - monthly volunteer sessions available",
      "category": "Nature-based solutions"
    }}
  ],
  "seasonalTips": [
    "Season-specific advice for {season.value} in Singapore"
  ],
  "spendingInsight": "Analysis comparing predicted (${predicted:.2f}) vs actual (${actual:.2f}) and emission implications"
}}

Important: Provide specific, actionable recommendations tailored to Singapore.
Include at least 3 alternatives and 5 handprint actions.
Do not add extra commentary outside the JSON structure.
"""


def build_recommendations_prompt(
    emissions: EmissionsResult,
    predicted_spending: float,
    actual_spending: float,
    month: str,
) -> Prompt:
    season = season_for_month(month)
    return Prompt(
        system_instruction=_instruction(season, predicted_spending, actual_spending),
        input={
            "month": month,
            "season": season.value,
            "predictedSpending": predicted_spending,
            "actualSpending": actual_spending,
            "emissionsData": emissions.model_dump(by_alias=True, mode="json"),
        },
        component=COMPONENT,
    )


async def generate_recommendations(
    emissions: EmissionsResult,
    predicted_spending: float,
    actual_spending: float,
    month: str,
    *,
    llm: GeminiClient,
) -> RecommendationSet:
    """Ask Gemini for recommendations; unparseable answer → empty set."""
    prompt = build_recommendations_prompt(emissions, predicted_spending, actual_spending, month)
    outcome = await llm.generate_json(prompt)
    if not outcome.ok:
        LLM_PARSE_FAIL.labels(component=COMPONENT).inc()
        logger.error("Recommendations answer for %s was not JSON: %s", month, outcome.raw[:200])
        sentry_capture(outcome.error, extras={"month": month, "raw": outcome.raw[:4000]})
        return RecommendationSet.unavailable(UNAVAILABLE_SUMMARY)

    recs = RecommendationSet.model_validate(outcome.data)
    if len(recs.alternatives) < 3 or len(recs.handprint_actions) < 5:
        logger.info(
            "Gemini returned %d alternatives / %d handprint actions for %s",
            len(recs.alternatives), len(recs.handprint_actions), month,
        )
    return recs


def potential_savings_summary(alternatives: Sequence[Alternative]) -> str:
    """``"~30-40% reduction"`` → 35; the mean over all alternatives.

    Alternatives without a percentage count as 0.
    """
    if not alternatives:
        return "No data available"
    values = []
    for alt in alternatives:
        m = _SAVINGS_RE.search(alt.potential_savings or "")
        if not m:
            values.append(0.0)
            continue
        low = int(m.group(1))
        high = int(m.group(2)) if m.group(2) else low
        values.append((low + high) / 2)
    avg = Decimal(str(sum(values) / len(values))).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"Average {avg}% reduction possible"
