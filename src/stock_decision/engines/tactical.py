"""Tactical Sentinel evaluator: timing quality over a 0-4 month horizon.

Two stages:
    evaluate_tactical       raw timing score from the seven factors
    contextualize_tactical  raw score + market/sector/integrity overlays -> status
"""

import logging
from dataclasses import dataclass, field
from typing import Literal

from stock_decision import ENGINE_VERSION
from stock_decision.engines.penalties import RegimePenalty, aggregate_regime_penalties
from stock_decision.engines.types import (
    TACTICAL_EVENT_MULTIPLIER,
    TACTICAL_MOMENTUM_MULTIPLIER,
    TACTICAL_TECHNICAL_MULTIPLIER,
    TACTICAL_WEIGHTS,
    EngineMeta,
    EvaluationDetail,
    MarketRegime,
    SectorRegime,
    TacticalStatus,
    clamp,
    collect_by_status,
    fmt,
    make_detail,
    most_critical_failure,
    tactical_status_for,
    validate_evaluation_invariants,
)

logger = logging.getLogger(__name__)

ENGINE_NAME = "Tactical Sentinel"

MomentumDirection = Literal["accelerating", "stable", "decelerating"]
SocialSentiment = Literal["bullish", "neutral", "bearish"]

# Contextual overlay tables
MARKET_TILT: dict[str, int] = {"RISK_ON": 8}
TACTICAL_MARKET_PENALTIES: dict[str, int] = {"NEUTRAL": -3, "RISK_OFF": -12}
TACTICAL_SECTOR_PENALTIES: dict[str, int] = {"NEUTRAL": -2, "AVOID": -6}

INTEGRITY_EARNINGS_DAYS = 5
INTEGRITY_EARNINGS_PENALTY = -8
INTEGRITY_NEWS_PENALTY = -5
INTEGRITY_PENALTY_CAP = -10


@dataclass(frozen=True)
class TacticalInputs:
    """Inputs for the Tactical Sentinel model."""

    daily_ma_alignment: bool
    hourly_confirmation: bool
    above_vwap: bool
    momentum_score: float
    momentum_direction: MomentumDirection
    avg_volume: float
    current_volume: float
    bid_ask_spread: float
    put_call_ratio: float
    social_sentiment: SocialSentiment
    days_to_earnings: float
    days_to_ex_dividend: float
    has_pending_news: bool
    days_in_trade: float
    max_trade_days: float
    relative_strength: float
    sector_rank: int


@dataclass(frozen=True)
class RawTacticalEvaluation:
    """Timing score and factor details, before any market context is applied."""

    score: float
    details: list[EvaluationDetail]
    entry_quality: list[str]
    risks: list[str]
    failure_trigger: str
    technical_setup: Literal["Strong", "Developing", "Weak"]
    event_risk: Literal["Near", "Clear"]
    meta: EngineMeta = field(default_factory=lambda: EngineMeta(ENGINE_NAME, ENGINE_VERSION))


@dataclass(frozen=True)
class TacticalSentinelEvaluation:
    """Raw evaluation placed in market, sector and event-risk context."""

    raw: RawTacticalEvaluation
    score: float
    status: TacticalStatus
    regime_adjustment: int
    integrity_penalty: int
    regime_penalty: RegimePenalty
    integrity_flags: list[str] = field(default_factory=list)


# ============================================================================
# FACTORS
# ============================================================================


def evaluate_technical_alignment(inputs: TacticalInputs) -> EvaluationDetail:
    max_score = TACTICAL_WEIGHTS["technical_alignment"]
    score = 0
    breakdown: list[str] = []

    if inputs.daily_ma_alignment:
        score += 8
        breakdown.append("Daily moving averages aligned")
    else:
        breakdown.append("Daily MA structure not aligned")

    if inputs.hourly_confirmation:
        score += 6
        breakdown.append("Hourly timeframe confirming")
    else:
        breakdown.append("Hourly timeframe diverging")

    if inputs.above_vwap:
        score += 6
        breakdown.append("Price above VWAP - institutional buying")
    else:
        breakdown.append("Price below VWAP - selling pressure")

    return make_detail(
        "Multi-Timeframe Technical Alignment",
        score,
        max_score,
        "Evaluates alignment across multiple timeframes",
        breakdown,
    )


def evaluate_momentum(inputs: TacticalInputs) -> EvaluationDetail:
    max_score = TACTICAL_WEIGHTS["momentum"]
    score = 0
    breakdown: list[str] = []

    momentum = fmt(inputs.momentum_score)
    if inputs.momentum_score > 70:
        score += 10
        breakdown.append(f"Strong momentum score: {momentum}")
    elif inputs.momentum_score > 50:
        score += 6
        breakdown.append(f"Moderate momentum: {momentum}")
    else:
        score += 2
        breakdown.append(f"Weak momentum: {momentum}")

    if inputs.momentum_direction == "accelerating":
        score += 5
        breakdown.append("Momentum accelerating")
    elif inputs.momentum_direction == "stable":
        score += 3
        breakdown.append("Momentum stable")
    else:
        breakdown.append("Momentum decelerating - caution")

    return make_detail(
        "Momentum Regime",
        score,
        max_score,
        "Measures momentum strength and direction",
        breakdown,
    )


def evaluate_liquidity(inputs: TacticalInputs) -> EvaluationDetail:
    max_score = TACTICAL_WEIGHTS["liquidity"]
    score = 0
    breakdown: list[str] = []

    volume_ratio = inputs.current_volume / inputs.avg_volume if inputs.avg_volume > 0 else 0.0
    volume_pct = round(volume_ratio * 100)
    if volume_ratio > 1.5:
        score += 8
        breakdown.append(f"High volume: {volume_pct}% of average")
    elif volume_ratio > 1.0:
        score += 5
        breakdown.append(f"Normal volume: {volume_pct}% of average")
    else:
        score += 2
        breakdown.append(f"Low volume: {volume_pct}% of average")

    spread_pct = f"{inputs.bid_ask_spread * 100:.2f}%"
    if inputs.bid_ask_spread < 0.05:
        score += 7
        breakdown.append(f"Tight spread: {spread_pct}")
    elif inputs.bid_ask_spread < 0.1:
        score += 4
        breakdown.append(f"Moderate spread: {spread_pct}")
    else:
        breakdown.append(f"Wide spread: {spread_pct}")

    return make_detail(
        "Liquidity & Volume Triggers",
        score,
        max_score,
        "Assesses market liquidity and volume conditions",
        breakdown,
    )


def evaluate_sentiment(inputs: TacticalInputs) -> EvaluationDetail:
    max_score = TACTICAL_WEIGHTS["sentiment"]
    score = 0
    breakdown: list[str] = []

    pc = f"{inputs.put_call_ratio:.2f}"
    # Contrarian: the sub-0.7 band scores below the neutral band
    if inputs.put_call_ratio < 0.7:
        score += 3
        breakdown.append(f"Bullish put/call: {pc}")
    elif inputs.put_call_ratio < 1.0:
        score += 5
        breakdown.append(f"Neutral put/call: {pc}")
    else:
        score += 2
        breakdown.append(f"Bearish put/call: {pc}")

    if inputs.social_sentiment == "bullish":
        score += 5
        breakdown.append("Social sentiment positive")
    elif inputs.social_sentiment == "neutral":
        score += 3
        breakdown.append("Social sentiment neutral")
    else:
        breakdown.append("Social sentiment negative")

    return make_detail(
        "Sentiment & Options Context",
        score,
        max_score,
        "Gauges market sentiment from options and social data",
        breakdown,
    )


def evaluate_event_proximity(inputs: TacticalInputs) -> EvaluationDetail:
    max_score = TACTICAL_WEIGHTS["event_proximity"]
    score = max_score
    breakdown: list[str] = []

    days = fmt(inputs.days_to_earnings)
    if inputs.days_to_earnings < 3:
        score -= 8
        breakdown.append(f"Earnings in {days} days - high binary risk")
    elif inputs.days_to_earnings <= 7:
        score -= 3
        breakdown.append(f"Earnings approaching: {days} days")
    else:
        breakdown.append(f"Earnings distant: {days} days")

    if inputs.days_to_ex_dividend < 3:
        score -= 2
        breakdown.append(f"Ex-dividend in {fmt(inputs.days_to_ex_dividend)} days")

    if inputs.has_pending_news:
        score -= 2
        breakdown.append("Pending news catalyst")
    else:
        breakdown.append("No major news expected")

    return make_detail(
        "Event Proximity",
        max(0, score),
        max_score,
        "Evaluates upcoming events that may impact price",
        breakdown,
    )


def evaluate_time_stop(inputs: TacticalInputs) -> EvaluationDetail:
    max_score = TACTICAL_WEIGHTS["time_stop"]
    score = max_score
    breakdown: list[str] = []

    if inputs.max_trade_days > 0:
        trade_pct = inputs.days_in_trade / inputs.max_trade_days * 100
    else:
        trade_pct = 100.0
    progress = f"{fmt(inputs.days_in_trade)} days ({round(trade_pct)}% of max)"

    if trade_pct < 25:
        breakdown.append(f"Fresh trade: {progress}")
    elif trade_pct < 50:
        score -= 2
        breakdown.append(f"Trade progressing: {progress}")
    elif trade_pct < 75:
        score -= 5
        breakdown.append(f"Time stop approaching: {progress}")
    else:
        score -= 8
        breakdown.append("Time stop imminent: consider exit")

    return make_detail(
        "Time Stop Logic",
        max(0, score),
        max_score,
        "Tracks time-based exit triggers",
        breakdown,
    )


def evaluate_opportunity(inputs: TacticalInputs) -> EvaluationDetail:
    max_score = TACTICAL_WEIGHTS["opportunity"]
    score = 0
    breakdown: list[str] = []

    rs = fmt(inputs.relative_strength)
    if inputs.relative_strength > 80:
        score += 8
        breakdown.append(f"Strong relative strength: {rs}")
    elif inputs.relative_strength > 50:
        score += 5
        breakdown.append(f"Moderate relative strength: {rs}")
    else:
        score += 2
        breakdown.append(f"Weak relative strength: {rs}")

    if inputs.sector_rank <= 3:
        score += 7
        breakdown.append(f"Top sector rank: #{inputs.sector_rank}")
    elif inputs.sector_rank <= 5:
        score += 4
        breakdown.append(f"Good sector rank: #{inputs.sector_rank}")
    else:
        score += 1
        breakdown.append(f"Low sector rank: #{inputs.sector_rank}")

    return make_detail(
        "Opportunity Ranking",
        score,
        max_score,
        "Compares opportunity vs. alternatives",
        breakdown,
    )


# ============================================================================
# AGGREGATION
# ============================================================================

_TOTAL_MULTIPLIERS: dict[str, float] = {
    "Multi-Timeframe Technical Alignment": TACTICAL_TECHNICAL_MULTIPLIER,
    "Momentum Regime": TACTICAL_MOMENTUM_MULTIPLIER,
    "Event Proximity": TACTICAL_EVENT_MULTIPLIER,
}


def _calibrated_total(details: list[EvaluationDetail]) -> float:
    total = 0.0
    for d in details:
        multiplier = _TOTAL_MULTIPLIERS.get(d.name, 1.0)
        total += min(d.max_score, d.score * multiplier)
    return clamp(round(total, 2), 0, 100)


def _setup_label(
    technical: EvaluationDetail,
    momentum: EvaluationDetail,
) -> Literal["Strong", "Developing", "Weak"]:
    ratio = (technical.score / technical.max_score + momentum.score / momentum.max_score) / 2
    if ratio >= 0.65:
        return "Strong"
    if ratio >= 0.35:
        return "Developing"
    return "Weak"


def evaluate_tactical(inputs: TacticalInputs) -> RawTacticalEvaluation:
    """
    Score the seven Tactical Sentinel factors.

    The result carries no status: actionability depends on market and
    sector context, applied by ``contextualize_tactical``.

    Args:
        inputs: Tactical model inputs

    Returns:
        Raw evaluation with score in [0, 100]
    """
    details = [
        evaluate_technical_alignment(inputs),
        evaluate_momentum(inputs),
        evaluate_liquidity(inputs),
        evaluate_sentiment(inputs),
        evaluate_event_proximity(inputs),
        evaluate_time_stop(inputs),
        evaluate_opportunity(inputs),
    ]
    score = _calibrated_total(details)
    validate_evaluation_invariants(ENGINE_NAME, score, details)
    logger.debug(f"Evaluation complete: score={score}")

    near_event = inputs.days_to_earnings < 7 or inputs.has_pending_news
    return RawTacticalEvaluation(
        score=score,
        details=details,
        entry_quality=collect_by_status(details, "pass"),
        risks=collect_by_status(details, "caution"),
        failure_trigger=most_critical_failure(details),
        technical_setup=_setup_label(details[0], details[1]),
        event_risk="Near" if near_event else "Clear",
    )


def integrity_overlay(
    days_to_earnings: float | None,
    has_active_news: bool,
) -> tuple[int, list[str]]:
    """
    Event-risk overlay: imminent earnings and active news.

    Returns:
        Tuple of (penalty capped at -10, human-readable flags)
    """
    penalty = 0
    flags: list[str] = []

    if days_to_earnings is not None and days_to_earnings < INTEGRITY_EARNINGS_DAYS:
        days = round(days_to_earnings)
        penalty += INTEGRITY_EARNINGS_PENALTY
        unit = "day" if days == 1 else "days"
        flags.append(f"Earnings in {days} {unit} - elevated volatility risk")

    if has_active_news:
        penalty += INTEGRITY_NEWS_PENALTY
        flags.append("Active news event - price action may be unpredictable")

    return max(INTEGRITY_PENALTY_CAP, penalty), flags


def contextualize_tactical(
    raw: RawTacticalEvaluation,
    market_regime: MarketRegime,
    sector_regime: SectorRegime = "NEUTRAL",
    days_to_earnings: float | None = None,
    has_active_news: bool = False,
) -> TacticalSentinelEvaluation:
    """
    Resolve tactical status from the raw score plus context.

    Market and sector penalties are combined worst-of through
    ``aggregate_regime_penalties``; a RISK_ON tape adds a tilt; the
    integrity overlay prices event risk separately.

    Args:
        raw: Raw tactical evaluation
        market_regime: Current market regime
        sector_regime: Regime of the stock's sector
        days_to_earnings: Days until next earnings, None when unknown
        has_active_news: Whether a news event is in progress

    Returns:
        Contextualized evaluation with TRADE/WATCH/AVOID status
    """
    tilt = MARKET_TILT.get(market_regime, 0)
    regime_penalty = aggregate_regime_penalties(
        market_regime,
        sector_regime,
        market_penalties=TACTICAL_MARKET_PENALTIES,
        sector_penalties=TACTICAL_SECTOR_PENALTIES,
    )
    score = clamp(raw.score + tilt + regime_penalty.penalty, 0, 100)

    integrity_penalty, flags = integrity_overlay(days_to_earnings, has_active_news)
    score = round(clamp(score + integrity_penalty, 0, 100))

    status = tactical_status_for(score)
    logger.debug(
        f"Tactical context applied: raw={raw.score}, final={score}, status={status}, "
        f"market={market_regime}, sector={sector_regime}"
    )

    return TacticalSentinelEvaluation(
        raw=raw,
        score=score,
        status=status,
        regime_adjustment=tilt + regime_penalty.penalty,
        integrity_penalty=integrity_penalty,
        regime_penalty=regime_penalty,
        integrity_flags=flags,
    )
