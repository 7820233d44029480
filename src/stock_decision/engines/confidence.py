"""Data-confidence evaluation for snapshots built from partial provider data."""

import logging
import math
from dataclasses import dataclass, field

from stock_decision.engines.types import ConfidenceLevel, clamp

logger = logging.getLogger(__name__)

# Relative importance of each data source; failed weight drives the penalty
PROVIDER_WEIGHTS: dict[str, int] = {
    "yfinance-history": 30,
    "yfinance-info": 25,
    "computed-technicals": 15,
    "yfinance-recommendations": 10,
    "yfinance-options": 10,
    "yfinance-calendar": 5,
    "yfinance-holders": 5,
}
DEFAULT_PROVIDER_WEIGHT = 5

MISSING_DATA_PENALTIES: dict[str, tuple[int, str]] = {
    "price": (25, "Price data unavailable - using fallback"),
    "fundamentals": (15, "Fundamental data unavailable"),
    "technicals": (15, "Technical indicators unavailable"),
    "sentiment": (10, "Sentiment data unavailable"),
    "options": (5, "Options data unavailable"),
}

STALE_AFTER_SECONDS = 5 * 60
STALE_PENALTY_PER_STEP = 5
STALE_PENALTY_CAP = 20
REGIME_UNKNOWN_PENALTY = 10

HIGH_CONFIDENCE_MIN = 80
MEDIUM_CONFIDENCE_MIN = 50


@dataclass(frozen=True)
class ConfidenceFactors:
    """Observed data-quality facts for one snapshot."""

    providers_failed: list[str] = field(default_factory=list)
    providers_total: list[str] = field(default_factory=lambda: list(PROVIDER_WEIGHTS))
    has_price: bool = True
    has_fundamentals: bool = True
    has_technicals: bool = True
    has_sentiment: bool = True
    has_options: bool = True
    data_age_seconds: float = 0.0
    regime_known: bool = True


@dataclass(frozen=True)
class ConfidenceResult:
    """Confidence level, numeric score and the reasons it was lowered."""

    level: ConfidenceLevel
    score: int
    reasons: list[str] = field(default_factory=list)


def _level_for(score: float) -> ConfidenceLevel:
    if score >= HIGH_CONFIDENCE_MIN:
        return "HIGH"
    if score >= MEDIUM_CONFIDENCE_MIN:
        return "MEDIUM"
    return "LOW"


def evaluate_confidence(factors: ConfidenceFactors) -> ConfidenceResult:
    """
    Score data confidence from 100 downwards.

    Args:
        factors: Observed provider failures, missing sections and data age

    Returns:
        ConfidenceResult with HIGH (>= 80), MEDIUM (>= 50) or LOW level
    """
    score = 100.0
    reasons: list[str] = []

    if factors.providers_failed:
        total_weight = sum(
            PROVIDER_WEIGHTS.get(p, DEFAULT_PROVIDER_WEIGHT) for p in factors.providers_total
        )
        failed_weight = sum(
            PROVIDER_WEIGHTS.get(p, DEFAULT_PROVIDER_WEIGHT) for p in factors.providers_failed
        )
        if total_weight > 0:
            score -= failed_weight / total_weight * 50
        listed = ", ".join(factors.providers_failed[:3])
        if len(factors.providers_failed) > 3:
            listed += "..."
        reasons.append(f"{len(factors.providers_failed)} provider(s) unavailable: {listed}")

    availability = {
        "price": factors.has_price,
        "fundamentals": factors.has_fundamentals,
        "technicals": factors.has_technicals,
        "sentiment": factors.has_sentiment,
        "options": factors.has_options,
    }
    for section, available in availability.items():
        if not available:
            penalty, reason = MISSING_DATA_PENALTIES[section]
            score -= penalty
            reasons.append(reason)

    if factors.data_age_seconds > STALE_AFTER_SECONDS:
        steps = math.floor(factors.data_age_seconds / STALE_AFTER_SECONDS)
        score -= min(STALE_PENALTY_CAP, steps * STALE_PENALTY_PER_STEP)
        reasons.append(f"Data is {round(factors.data_age_seconds / 60)} minutes old")

    if not factors.regime_known:
        score -= REGIME_UNKNOWN_PENALTY
        reasons.append("Market regime unknown")

    score = clamp(score, 0, 100)
    result = ConfidenceResult(level=_level_for(score), score=round(score), reasons=reasons)

    if reasons:
        logger.warning(f"Confidence reduced to {result.level} ({result.score}): {'; '.join(reasons)}")

    return result
