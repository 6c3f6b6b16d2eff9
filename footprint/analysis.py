# footprint/analysis.py
"""Analysis orchestrator.

* :meth:`CarbonAnalyzer.comprehensive_analysis` – prediction + emissions +
  recommendations for one month.
* :meth:`CarbonAnalyzer.compare_months` – the same pipeline fanned out over
  up to 12 months concurrently, then reduced into averages and a trend.

All collaborators (store, Gemini client, predictor, factor table) are passed
in once at construction; nothing here reads module globals.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Mapping, Sequence, Union

from footprint.emissions import build_emissions, estimate_emissions
from footprint.exceptions import InputValidationError
from footprint.gemini_client import GeminiClient, get_gemini_client
from footprint.llm_core import EmissionsResult, RecommendationSet
from footprint.metrics import MONTH_ANALYSIS_FAIL
from footprint.models import (
    DEFAULT_FACTORS,
    CamelModel,
    Category,
    ComparisonResult,
    ComparisonSummary,
    EmptyComparisonSummary,
    MonthComparison,
    MonthComparisonError,
    SpendingComparison,
    SpendingPrediction,
    parse_month_key,
)
from footprint.predictor import SpendingPredictor, get_spending_predictor
from footprint.recommendations import (
    NO_TRANSACTIONS_SUMMARY,
    generate_recommendations,
    potential_savings_summary,
)
from footprint.sentry import sentry_capture
from footprint.transactions import TransactionStore, get_transaction_store

__all__ = [
    "AnalysisResult",
    "CarbonAnalyzer",
    "MAX_COMPARE_MONTHS",
    "STABLE_TREND_PCT",
    "classify_trend",
    "get_analyzer",
]

logger = logging.getLogger(__name__)

MAX_COMPARE_MONTHS = 12
STABLE_TREND_PCT = 5.0
COMPARE_EXAMPLE = {"months": ["2024-05", "2024-06", "2024-07"]}

MonthOutcome = Union[MonthComparison, MonthComparisonError]


class AnalysisResult(CamelModel):
    """Comprehensive analysis of one month."""

    prediction: SpendingPrediction
    emissions: EmissionsResult
    recommendations: RecommendationSet
    actual_spending: float
    comparison: SpendingComparison


def classify_trend(valid: Sequence[MonthComparison]) -> str:
    """Second-half vs first-half average emissions, months in order.

    ``|Δ%| < 5`` is stable. A zero (or empty) first half counts as 0%.
    """
    ordered = sorted(valid, key=lambda c: c.month)
    half = len(ordered) // 2
    first, second = ordered[:half], ordered[half:]
    avg_first = sum(c.total_emissions for c in first) / len(first) if first else 0.0
    avg_second = sum(c.total_emissions for c in second) / len(second) if second else 0.0
    pct = (avg_second - avg_first) / avg_first * 100 if avg_first else 0.0
    if abs(pct) < STABLE_TREND_PCT:
        return "stable"
    if pct > 0:
        return f"increasing (+{pct:.1f}%)"
    return f"decreasing ({pct:.1f}%)"


def _summarise(valid: List[MonthComparison]) -> ComparisonSummary:
    n = len(valid)
    return ComparisonSummary(
        average_emissions=round(sum(c.total_emissions for c in valid) / n, 2),
        average_spending=round(sum(c.total_spending for c in valid) / n, 2),
        total_months_analyzed=n,
        # max/min keep the first month on ties
        highest_emission_month=max(valid, key=lambda c: c.total_emissions),
        lowest_emission_month=min(valid, key=lambda c: c.total_emissions),
        trend=classify_trend(valid),
    )


class CarbonAnalyzer:
    def __init__(
        self,
        *,
        store: TransactionStore,
        llm: GeminiClient,
        predictor: SpendingPredictor,
        factors: Mapping[Category, float] = DEFAULT_FACTORS,
    ) -> None:
        self.store = store
        self.llm = llm
        self.predictor = predictor
        self.factors = factors

    # ------------------------------------------------------------ single ops
    def predict_spending(self, month: str) -> SpendingPrediction:
        return self.predictor.predict(month)

    async def estimate_emissions(self, month: str | None) -> EmissionsResult:
        if month is not None:
            parse_month_key(month)
        return await estimate_emissions(month, store=self.store, llm=self.llm, factors=self.factors)

    # ---------------------------------------------------------- comprehensive
    async def comprehensive_analysis(self, month: str) -> AnalysisResult:
        prediction = self.predictor.predict(month)
        predicted = prediction.predicted_spending

        transactions = await self.store.fetch_transactions(month)
        if not transactions:
            logger.info("No transactions for %s, returning canned analysis", month)
            return AnalysisResult(
                prediction=prediction,
                emissions=EmissionsResult.empty(),
                recommendations=RecommendationSet(summary=NO_TRANSACTIONS_SUMMARY),
                actual_spending=0.0,
                comparison=SpendingComparison(
                    predicted_vs_actual=-predicted,
                    percentage_difference=-100.0,
                ),
            )

        actual = sum(t.spend for t in transactions)
        emissions = await build_emissions(transactions, llm=self.llm, factors=self.factors)
        recommendations = await generate_recommendations(
            emissions, predicted, actual, month, llm=self.llm
        )
        pct = round((actual - predicted) / predicted * 100, 2) if predicted > 0 else 0.0
        logger.info(
            "Analysis %s: spent %.2f vs predicted %.2f, %.2f kgCO2e",
            month, actual, predicted, emissions.totals.total_emissions_kg,
        )
        return AnalysisResult(
            prediction=prediction,
            emissions=emissions,
            recommendations=recommendations,
            actual_spending=actual,
            comparison=SpendingComparison(
                predicted_vs_actual=actual - predicted,
                percentage_difference=pct,
            ),
        )

    # ------------------------------------------------------------- comparison
    async def _compare_one(self, month: str) -> MonthOutcome:
        try:
            analysis = await self.comprehensive_analysis(month)
        except Exception as exc:  # noqa: BLE001 – isolate the failing month
            MONTH_ANALYSIS_FAIL.inc()
            logger.exception("Comparison month %s failed", month)
            sentry_capture(exc, extras={"month": month})
            return MonthComparisonError(month=month)
        totals = analysis.emissions.totals
        return MonthComparison(
            month=month,
            total_emissions=totals.total_emissions_kg,
            total_spending=analysis.actual_spending,
            predicted_spending=analysis.prediction.predicted_spending,
            season=analysis.prediction.season,
            by_category=totals.by_category,
            transaction_count=len(analysis.emissions.items),
        )

    async def compare_months(self, months: Any) -> ComparisonResult:
        if not isinstance(months, (list, tuple)) or not months:
            raise InputValidationError("months array is required", example=COMPARE_EXAMPLE)
        if len(months) > MAX_COMPARE_MONTHS:
            raise InputValidationError(
                f"Maximum {MAX_COMPARE_MONTHS} months allowed for comparison"
            )
        for month in months:
            parse_month_key(month)

        comparisons: List[MonthOutcome] = list(
            await asyncio.gather(*(self._compare_one(m) for m in months))
        )
        valid = [c for c in comparisons if isinstance(c, MonthComparison)]
        if not valid:
            return ComparisonResult(comparisons=comparisons, summary=EmptyComparisonSummary())
        return ComparisonResult(comparisons=comparisons, summary=_summarise(valid))

    # ------------------------------------------------------------------ views
    async def handprint_suggestions(self, month: str) -> dict[str, Any]:
        analysis = await self.comprehensive_analysis(month)
        recs = analysis.recommendations
        return {
            "month": month,
            "season": analysis.prediction.season.value,
            "totalEmissions": analysis.emissions.totals.total_emissions_kg,
            "handprintActions": [a.model_dump(by_alias=True) for a in recs.handprint_actions],
            "seasonalTips": list(recs.seasonal_tips),
            "topEmitters": [t.model_dump(by_alias=True) for t in recs.top_emitters],
        }

    async def greener_alternatives(self, month: str) -> dict[str, Any]:
        analysis = await self.comprehensive_analysis(month)
        recs = analysis.recommendations
        return {
            "month": month,
            "summary": recs.summary,
            "alternatives": [a.model_dump(by_alias=True) for a in recs.alternatives],
            "topEmitters": [t.model_dump(by_alias=True) for t in recs.top_emitters],
            "potentialSavings": potential_savings_summary(recs.alternatives),
        }


async def get_analyzer() -> CarbonAnalyzer:
    """Analyzer wired to the process singletons (PocketBase, Gemini, model)."""
    return CarbonAnalyzer(
        store=await get_transaction_store(),
        llm=get_gemini_client(),
        predictor=get_spending_predictor(),
    )
