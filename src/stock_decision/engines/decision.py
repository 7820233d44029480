"""Decision composer: one actionable label per symbol, plus the dashboard view.

Labels:
    GOOD_TO_ACT         timing >= 65 and nothing blocking
    WORTH_A_SMALL_LOOK  actionable at reduced size
    KEEP_AN_EYE_ON      the default; not a failure state
    PAUSE               always carries an explanation
"""

import logging
from dataclasses import dataclass, field
from typing import Literal

from stock_decision.engines.market_regime import MarketContext, derive_market_context_info
from stock_decision.engines.penalties import RegimePenalty, calculate_regime_penalty, should_block_action
from stock_decision.engines.types import MarketRegime, SectorRegime

logger = logging.getLogger(__name__)

DecisionLabel = Literal["GOOD_TO_ACT", "WORTH_A_SMALL_LOOK", "KEEP_AN_EYE_ON", "PAUSE"]
DECISION_LABELS: tuple[str, ...] = ("GOOD_TO_ACT", "WORTH_A_SMALL_LOOK", "KEEP_AN_EYE_ON", "PAUSE")

DISPLAY_TEXT: dict[str, str] = {
    "GOOD_TO_ACT": "Good to Act Now",
    "WORTH_A_SMALL_LOOK": "Worth a Small Look",
    "KEEP_AN_EYE_ON": "Keep an Eye On",
    "PAUSE": "Pause",
}

TIMING_THRESHOLD_FOR_ACTION = 65
TIMING_THRESHOLD_FOR_SMALL_LOOK = 55

FALLBACK_EXPLANATION = "Market data unavailable - using fallback snapshot"
DEFAULT_BLOCK_EXPLANATION = "Portfolio constraints block this position"

CONFIRMING_SIGNALS = ("CONFIRM", "STRONG_CONFIRM")
DISCONFIRMING_SIGNALS = ("DISCONFIRM", "STRONG_DISCONFIRM")

# Score distribution check
CLUSTER_MIN = 40
CLUSTER_MAX = 60
CLUSTER_ALERT_PCT = 80
MIN_SCORES_FOR_DISTRIBUTION = 10


# ============================================================================
# RECORDS
# ============================================================================


@dataclass(frozen=True)
class DecisionInputs:
    """Everything the composer needs for one symbol."""

    strategic_score: float
    strategic_status: str
    tactical_score: float
    tactical_status: str
    market_regime: MarketRegime
    sector_regime: SectorRegime = "NEUTRAL"
    portfolio_action: str = "ALLOW"
    portfolio_reasons: list[str] = field(default_factory=list)
    confirmation_signal: str = "NEUTRAL"
    confirmation_level: str | None = None
    integrity_flags: list[str] = field(default_factory=list)
    is_fallback: bool = False
    data_confidence: str = "HIGH"


@dataclass(frozen=True)
class DecisionResult:
    label: DecisionLabel
    display_text: str
    explanation: str
    can_act: bool
    risk_block_reasons: list[str]
    horizon_label: str
    timing_score: float
    regime_penalty: RegimePenalty
    integrity_flags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ScoreBand:
    name: Literal["EXCEPTIONAL", "STRONG", "NEUTRAL", "WEAK"]
    label: str
    min: int
    max: int


@dataclass(frozen=True)
class ScoreDistribution:
    needs_rescaling: bool
    cluster_pct: float
    suggestion: str


@dataclass(frozen=True)
class DashboardSummary:
    market_regime: MarketRegime
    market_label: str
    market_description: str
    is_demo_mode: bool
    total: int
    label_counts: dict[str, int]
    actionable: list[str]
    paused: dict[str, str]
    score_distribution: ScoreDistribution


SCORE_BANDS: list[ScoreBand] = [
    ScoreBand("EXCEPTIONAL", "Exceptional", 75, 100),
    ScoreBand("STRONG", "Strong", 60, 74),
    ScoreBand("NEUTRAL", "Neutral", 45, 59),
    ScoreBand("WEAK", "Weak", 0, 44),
]


# ============================================================================
# HELPERS
# ============================================================================


def get_horizon_label(strategic_status: str, tactical_status: str) -> str:
    """Combined two-horizon label from the strategic and tactical statuses."""
    if strategic_status == "ELIGIBLE" and tactical_status == "TRADE":
        return "High Conviction + Actionable"
    if strategic_status == "ELIGIBLE":
        return "Strong Business – Wait for Setup"
    if tactical_status == "TRADE":
        return "Short-Term Opportunity Only"
    if strategic_status == "WATCH" and tactical_status == "WATCH":
        return "Developing – Monitor Both"
    return "Not Actionable"


def get_score_band(score: float) -> ScoreBand:
    clamped = max(0, min(100, score))
    for band in SCORE_BANDS:
        if clamped >= band.min:
            return band
    return SCORE_BANDS[-1]


def check_score_distribution(scores: list[float]) -> ScoreDistribution:
    """
    Flag score sets that cluster in the middle of the range.

    Needs at least 10 scores. Rescaling is suggested when more than 80%
    fall within [40, 60].
    """
    if len(scores) < MIN_SCORES_FOR_DISTRIBUTION:
        return ScoreDistribution(False, 0.0, "Not enough data to evaluate distribution")

    in_cluster = sum(1 for s in scores if CLUSTER_MIN <= s <= CLUSTER_MAX)
    cluster_pct = in_cluster / len(scores) * 100
    if cluster_pct > CLUSTER_ALERT_PCT:
        return ScoreDistribution(
            True,
            cluster_pct,
            f"{cluster_pct:.0f}% of scores cluster between {CLUSTER_MIN}-{CLUSTER_MAX}. "
            "Consider gentle rescaling.",
        )
    return ScoreDistribution(False, cluster_pct, "Score distribution is healthy")


def _keep_an_eye_on_reason(timing_score: float, confirmation_level: str | None) -> str:
    reasons: list[str] = []
    if timing_score < TIMING_THRESHOLD_FOR_ACTION:
        reasons.append(
            f"Timing score ({round(timing_score)}) below action threshold ({TIMING_THRESHOLD_FOR_ACTION})"
        )
    if confirmation_level == "NONE":
        reasons.append("No confirmation from additional signals")
    elif confirmation_level == "WEAK":
        reasons.append("Only weak confirmation from additional signals")
    if not reasons:
        reasons.append("Conditions are not yet optimal for action")
    return ". ".join(reasons)


# ============================================================================
# COMPOSER
# ============================================================================


def compose_decision(inputs: DecisionInputs) -> DecisionResult:
    """
    Compose the final label from evaluator outputs and overlays.

    Guard clauses run in order and the first match decides. A fallback
    snapshot always pauses and low data confidence caps the label at
    KEEP_AN_EYE_ON. Confirmation can only soften an actionable label; it
    never lifts a PAUSE and never produces GOOD_TO_ACT on its own. The
    timing score already carries the tactical regime overlay, so no further
    regime deduction is made here; the combined regime penalty is reported
    for explanation only.

    Args:
        inputs: Scores, statuses, regimes, portfolio action and confirmation

    Returns:
        DecisionResult with label, display text and explanation
    """
    timing = inputs.tactical_score
    horizon_label = get_horizon_label(inputs.strategic_status, inputs.tactical_status)
    regime_penalty = calculate_regime_penalty(inputs.sector_regime, inputs.market_regime)

    def result(label: DecisionLabel, explanation: str, risk_block_reasons: list[str] | None = None) -> DecisionResult:
        return DecisionResult(
            label=label,
            display_text=DISPLAY_TEXT[label],
            explanation=explanation,
            can_act=label in ("GOOD_TO_ACT", "WORTH_A_SMALL_LOOK"),
            risk_block_reasons=risk_block_reasons or [],
            horizon_label=horizon_label,
            timing_score=timing,
            regime_penalty=regime_penalty,
            integrity_flags=list(inputs.integrity_flags),
        )

    # Scores computed from a fallback snapshot rest on placeholder prices
    if inputs.is_fallback:
        return result("PAUSE", FALLBACK_EXPLANATION, [FALLBACK_EXPLANATION])

    if inputs.portfolio_action == "BLOCK":
        reasons = list(inputs.portfolio_reasons) or [DEFAULT_BLOCK_EXPLANATION]
        return result("PAUSE", f"Risk concerns: {'; '.join(reasons)}", reasons)

    blocked, block_reason = should_block_action(inputs.market_regime)
    if blocked:
        return result(
            "PAUSE",
            "Market conditions are unfavorable (Risk-Off regime)",
            [block_reason] if block_reason else [],
        )

    if inputs.data_confidence == "LOW":
        return result(
            "KEEP_AN_EYE_ON",
            "Data confidence is low; waiting for more complete data before acting",
        )

    disconfirmed = inputs.confirmation_signal in DISCONFIRMING_SIGNALS

    if timing >= TIMING_THRESHOLD_FOR_ACTION:
        if inputs.portfolio_action == "REDUCE":
            return result(
                "WORTH_A_SMALL_LOOK",
                "Timing conditions are favorable but portfolio limits call for a smaller position",
            )
        if disconfirmed:
            return result(
                "WORTH_A_SMALL_LOOK",
                "Timing conditions are favorable but additional signals disagree",
            )
        return result("GOOD_TO_ACT", "Timing conditions are favorable with no blocking concerns")

    if timing >= TIMING_THRESHOLD_FOR_SMALL_LOOK and not disconfirmed:
        if inputs.strategic_status == "ELIGIBLE":
            return result(
                "WORTH_A_SMALL_LOOK",
                "Business quality supports a starter position while timing develops",
            )
        if inputs.strategic_status == "WATCH" and inputs.confirmation_signal in CONFIRMING_SIGNALS:
            return result(
                "WORTH_A_SMALL_LOOK",
                "Additional signals confirm a developing setup; consider a starter position",
            )

    return result("KEEP_AN_EYE_ON", _keep_an_eye_on_reason(timing, inputs.confirmation_level))


def summarize_dashboard(
    decisions: dict[str, DecisionResult],
    market_context: MarketContext,
) -> DashboardSummary:
    """
    Dashboard aggregate over per-symbol decisions.

    Args:
        decisions: Decision per symbol, in display order
        market_context: Market snapshot the decisions were made under

    Returns:
        DashboardSummary with label counts, actionable symbols and pause reasons
    """
    info = derive_market_context_info(market_context.regime, market_context.regime_reasons)
    counts = {label: 0 for label in DECISION_LABELS}
    for decision in decisions.values():
        counts[decision.label] += 1

    summary = DashboardSummary(
        market_regime=market_context.regime,
        market_label=info.label,
        market_description=info.description,
        is_demo_mode=market_context.is_demo_mode,
        total=len(decisions),
        label_counts=counts,
        actionable=[s for s, d in decisions.items() if d.label == "GOOD_TO_ACT"],
        paused={s: d.explanation for s, d in decisions.items() if d.label == "PAUSE"},
        score_distribution=check_score_distribution([d.timing_score for d in decisions.values()]),
    )
    if summary.score_distribution.needs_rescaling:
        logger.warning(summary.score_distribution.suggestion)
    return summary
