# footprint/predictor.py
"""Seasonal spending predictor.

A linear regression over a one-hot season vector:
``y = intercept + Σ coef_i · feature_i``.

The coefficients come from a trained-model artifact (a JSON export of the
fitted regression). The loader tries an ordered list of sources and takes the
first that yields a model; the last source is a hard-coded fallback, so
loading never fails.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Tuple

from pydantic import BaseModel, ValidationError, model_validator

from footprint.config import get_settings
from footprint.models import Season, SpendingPrediction, season_for_month

__all__ = [
    "RegressionModel",
    "ModelLoadOutcome",
    "FALLBACK_MODEL",
    "SEASON_FEATURES",
    "load_regression_model",
    "season_features",
    "SpendingPredictor",
    "get_spending_predictor",
]

logger = logging.getLogger(__name__)

SEASON_FEATURES: Tuple[str, ...] = (
    "season_Spring",
    "season_Summer",
    "season_Fall",
    "season_Winter",
)
PLACEHOLDER_CONFIDENCE = 0.85


class RegressionModel(BaseModel):
    """``{coefficients, intercept, feature_names}`` as stored in the artifact."""

    model_config = {"frozen": True}

    coefficients: Tuple[float, ...]
    intercept: float
    feature_names: Tuple[str, ...]

    @model_validator(mode="after")
    def _same_length(self) -> "RegressionModel":
        if len(self.coefficients) != len(self.feature_names):
            raise ValueError("coefficients and feature_names differ in length")
        return self

    def evaluate(self, features: Dict[str, int]) -> float:
        total = self.intercept
        for name, coef in zip(self.feature_names, self.coefficients):
            total += coef * features.get(name, 0)
        return total


# Typical SG spending pattern: Spring, Summer, Fall, Winter
FALLBACK_MODEL = RegressionModel(
    coefficients=(200, 300, 100, 150),
    intercept=1000,
    feature_names=SEASON_FEATURES,
)


# --------------------------------------------------------------------------- #
# Loading
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class ModelLoadOutcome:
    model: Optional[RegressionModel]
    source: str
    reason: str = ""


def _from_artifact(path: Path) -> ModelLoadOutcome:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        model = RegressionModel.model_validate(raw)
    except FileNotFoundError:
        return ModelLoadOutcome(None, source=str(path), reason="artifact not found")
    except (OSError, ValueError, ValidationError) as exc:
        return ModelLoadOutcome(None, source=str(path), reason=f"unreadable artifact: {exc}")
    if set(model.feature_names) != set(SEASON_FEATURES):
        return ModelLoadOutcome(
            None,
            source=str(path),
            reason=f"unexpected features {list(model.feature_names)}, want {list(SEASON_FEATURES)}",
        )
    return ModelLoadOutcome(model, source=str(path))


def _from_fallback(_path: Path) -> ModelLoadOutcome:
    return ModelLoadOutcome(FALLBACK_MODEL, source="fallback")


MODEL_SOURCES: Sequence[Callable[[Path], ModelLoadOutcome]] = (_from_artifact, _from_fallback)


def load_regression_model(path: Path) -> ModelLoadOutcome:
    """Walk :data:`MODEL_SOURCES` and return the first outcome with a model."""
    outcome = ModelLoadOutcome(None, source="none")
    for source in MODEL_SOURCES:
        outcome = source(path)
        if outcome.model is not None:
            break
        logger.warning("Spending model not loaded from %s (%s)", outcome.source, outcome.reason)
    if outcome.source == "fallback":
        logger.warning("Using fallback spending predictions")
    else:
        logger.info("✓ Loaded prediction model %s: %s", outcome.source, list(outcome.model.feature_names))
    return outcome


# --------------------------------------------------------------------------- #
# Prediction
# --------------------------------------------------------------------------- #


def season_features(season: Season) -> Dict[str, int]:
    """One-hot vector keyed by feature name, in :data:`SEASON_FEATURES` order."""
    return {name: int(name == f"season_{season.value}") for name in SEASON_FEATURES}


class SpendingPredictor:
    """Pure month → prediction evaluator around an immutable model."""

    def __init__(self, model: RegressionModel = FALLBACK_MODEL) -> None:
        self.model = model

    def predict(self, month: str) -> SpendingPrediction:
        season = season_for_month(month)
        features = season_features(season)
        return SpendingPrediction(
            month=month,
            season=season,
            predicted_spending=round(self.model.evaluate(features), 2),
            feature_vector=features,
            confidence=PLACEHOLDER_CONFIDENCE,
        )


@lru_cache(maxsize=1)
def get_spending_predictor() -> SpendingPredictor:
    """Process-wide predictor; the artifact is read at most once."""
    outcome = load_regression_model(get_settings().model_path)
    return SpendingPredictor(outcome.model)
