"""Shared record types, closed enumerations and scoring thresholds."""

import logging
from dataclasses import dataclass, field
from typing import Literal

logger = logging.getLogger(__name__)

# ============================================================================
# CLOSED ENUMERATIONS
# ============================================================================

ConfidenceLevel = Literal["HIGH", "MEDIUM", "LOW"]
FactorStatus = Literal["pass", "caution", "fail"]
StrategicStatus = Literal["ELIGIBLE", "WATCH", "REJECT"]
TacticalStatus = Literal["TRADE", "WATCH", "AVOID"]
MarketRegime = Literal["RISK_ON", "NEUTRAL", "RISK_OFF"]
SectorRegime = Literal["FAVORED", "NEUTRAL", "AVOID"]
Trend = Literal["UP", "DOWN", "SIDEWAYS"]

CONFIDENCE_LEVELS: tuple[str, ...] = ("HIGH", "MEDIUM", "LOW")
STRATEGIC_STATUSES: tuple[str, ...] = ("ELIGIBLE", "WATCH", "REJECT")
TACTICAL_STATUSES: tuple[str, ...] = ("TRADE", "WATCH", "AVOID")
MARKET_REGIMES: tuple[str, ...] = ("RISK_ON", "NEUTRAL", "RISK_OFF")
SECTOR_REGIMES: tuple[str, ...] = ("FAVORED", "NEUTRAL", "AVOID")

# ============================================================================
# THRESHOLDS
# ============================================================================

# Factor status by score/max ratio
PASS_RATIO = 0.70
CAUTION_RATIO = 0.40

STRATEGIC_ELIGIBLE_MIN_SCORE = 70
STRATEGIC_WATCH_MIN_SCORE = 50

TACTICAL_TRADE_MIN_SCORE = 70
TACTICAL_WATCH_MIN_SCORE = 50

# Factor weights (max score per factor). Each model totals 95.
STRATEGIC_WEIGHTS: dict[str, int] = {
    "guardrails": 10,
    "market_regime": 15,
    "macro_alignment": 10,
    "institutional": 15,
    "fundamental": 20,
    "weekly_technical": 15,
    "thesis_decay": 10,
}

TACTICAL_WEIGHTS: dict[str, int] = {
    "technical_alignment": 20,
    "momentum": 15,
    "liquidity": 15,
    "sentiment": 10,
    "event_proximity": 10,
    "time_stop": 10,
    "opportunity": 15,
}

# Calibration applied when totalling factor scores (details are left as scored)
FUNDAMENTAL_MULTIPLIER = 1.12
WEEKLY_TECHNICAL_FLOOR_RATIO = 0.2
TACTICAL_TECHNICAL_MULTIPLIER = 1.08
TACTICAL_MOMENTUM_MULTIPLIER = 1.05
TACTICAL_EVENT_MULTIPLIER = 1.10


# ============================================================================
# RECORDS
# ============================================================================


@dataclass(frozen=True)
class EvaluationDetail:
    """Atomic output of one scoring factor."""

    name: str
    score: float
    max_score: float
    status: FactorStatus
    summary: str
    breakdown: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EngineMeta:
    """Identifies the engine that produced an evaluation."""

    engine: str
    version: str


def get_status(score: float, max_score: float) -> FactorStatus:
    """
    Derive factor status from the score/max ratio.

    Args:
        score: Factor score
        max_score: Factor maximum

    Returns:
        "pass" at >= 70%, "caution" at >= 40%, else "fail"
    """
    if max_score <= 0:
        return "fail"
    ratio = score / max_score
    if ratio >= PASS_RATIO:
        return "pass"
    if ratio >= CAUTION_RATIO:
        return "caution"
    return "fail"


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def make_detail(
    name: str,
    score: float,
    max_score: float,
    summary: str,
    breakdown: list[str],
) -> EvaluationDetail:
    """Build an EvaluationDetail with the score clamped to [0, max] and status derived."""
    bounded = clamp(score, 0, max_score)
    return EvaluationDetail(
        name=name,
        score=bounded,
        max_score=max_score,
        status=get_status(bounded, max_score),
        summary=summary,
        breakdown=breakdown,
    )


def collect_by_status(details: list[EvaluationDetail], status: FactorStatus) -> list[str]:
    """'Name: summary' lines for the details with the given status."""
    return [f"{d.name}: {d.summary}" for d in details if d.status == status]


def most_critical_failure(details: list[EvaluationDetail]) -> str:
    """
    Describe the failing factor with the lowest score/max ratio.

    Returns:
        "Name failing: <first breakdown line>" or "" when nothing fails
    """
    failing = [d for d in details if d.status == "fail"]
    if not failing:
        return ""
    worst = min(failing, key=lambda d: d.score / d.max_score if d.max_score else 0)
    reason = worst.breakdown[0] if worst.breakdown else worst.summary
    return f"{worst.name} failing: {reason}"


def strategic_status_for(score: float) -> StrategicStatus:
    """Map a strategic score onto ELIGIBLE/WATCH/REJECT."""
    if score >= STRATEGIC_ELIGIBLE_MIN_SCORE:
        return "ELIGIBLE"
    if score >= STRATEGIC_WATCH_MIN_SCORE:
        return "WATCH"
    return "REJECT"


def tactical_status_for(score: float) -> TacticalStatus:
    """Map a contextualized tactical score onto TRADE/WATCH/AVOID."""
    if score >= TACTICAL_TRADE_MIN_SCORE:
        return "TRADE"
    if score >= TACTICAL_WATCH_MIN_SCORE:
        return "WATCH"
    return "AVOID"


def fmt(value: float) -> str:
    """Compact number formatting for audit strings (12.0 -> '12', 12.5 -> '12.5')."""
    return f"{value:g}"


def validate_evaluation_invariants(
    engine: str,
    score: float,
    details: list[EvaluationDetail],
) -> list[str]:
    """
    Check score bounds and status consistency of an evaluation.

    Violations are logged as warnings and returned; never raised, so a
    single malformed evaluation cannot abort a batch.

    Returns:
        List of violation messages (empty when consistent)
    """
    violations: list[str] = []
    if not 0 <= score <= 100:
        violations.append(f"total score {score} outside [0, 100]")
    for d in details:
        if not 0 <= d.score <= d.max_score:
            violations.append(f"{d.name}: score {d.score} outside [0, {d.max_score}]")
        expected = get_status(d.score, d.max_score)
        if d.status != expected:
            violations.append(f"{d.name}: status {d.status} != {expected}")

    for v in violations:
        logger.warning(f"{engine} invariant violated: {v}")
    return violations
