"""Strategic Growth evaluator: structural quality over a 4-9 month horizon."""

import logging
from dataclasses import dataclass, field, replace
from typing import Literal

from stock_decision import ENGINE_VERSION
from stock_decision.engines.types import (
    FUNDAMENTAL_MULTIPLIER,
    STRATEGIC_WEIGHTS,
    WEEKLY_TECHNICAL_FLOOR_RATIO,
    EngineMeta,
    EvaluationDetail,
    MarketRegime,
    StrategicStatus,
    clamp,
    collect_by_status,
    fmt,
    make_detail,
    most_critical_failure,
    strategic_status_for,
    validate_evaluation_invariants,
)

logger = logging.getLogger(__name__)

ENGINE_NAME = "Strategic Growth"

MarketTrend = Literal["bullish", "neutral", "bearish"]
RateTrend = Literal["rising", "stable", "falling"]
InstitutionalActivity = Literal["buying", "neutral", "selling"]

# Overlay applied once the market regime is known
REGIME_ADJUSTMENTS: dict[str, int] = {
    "RISK_ON": 5,
    "NEUTRAL": -2,
    "RISK_OFF": -10,
}


@dataclass(frozen=True)
class StrategicInputs:
    """Inputs for the Strategic Growth model."""

    portfolio_concentration: float
    sector_exposure: float
    vix_level: float
    market_trend: MarketTrend
    gdp_growth: float
    interest_rate_trend: RateTrend
    institutional_ownership: float
    institutional_activity: InstitutionalActivity
    revenue_growth: float
    earnings_acceleration: float
    weekly_ma_alignment: bool
    weekly_rsi: float
    days_in_position: float
    max_holding_period: float


@dataclass(frozen=True)
class StrategicGrowthEvaluation:
    """Aggregate of the seven Strategic Growth factors."""

    score: float
    status: StrategicStatus
    details: list[EvaluationDetail]
    positives: list[str]
    risks: list[str]
    failure_mode: str
    fundamental_conviction: Literal["High", "Medium", "Low"]
    technical_alignment: Literal["Confirming", "Neutral", "Weak"]
    regime_adjustment: int = 0
    meta: EngineMeta = field(default_factory=lambda: EngineMeta(ENGINE_NAME, ENGINE_VERSION))


# ============================================================================
# FACTORS
# ============================================================================


def evaluate_guardrails(inputs: StrategicInputs) -> EvaluationDetail:
    max_score = STRATEGIC_WEIGHTS["guardrails"]
    score = max_score
    breakdown: list[str] = []

    if inputs.portfolio_concentration > 25:
        score -= 5
        breakdown.append(f"High portfolio concentration: {fmt(inputs.portfolio_concentration)}%")
    else:
        breakdown.append(
            f"Portfolio concentration within limits: {fmt(inputs.portfolio_concentration)}%"
        )

    if inputs.sector_exposure > 30:
        score -= 5
        breakdown.append(f"Elevated sector exposure: {fmt(inputs.sector_exposure)}%")
    else:
        breakdown.append(f"Sector exposure balanced: {fmt(inputs.sector_exposure)}%")

    return make_detail(
        "Risk & Portfolio Guardrails",
        max(0, score),
        max_score,
        "Evaluates position sizing and concentration risks",
        breakdown,
    )


def evaluate_market_regime_factor(inputs: StrategicInputs) -> EvaluationDetail:
    max_score = STRATEGIC_WEIGHTS["market_regime"]
    score = 0
    breakdown: list[str] = []

    vix = fmt(inputs.vix_level)
    if inputs.vix_level < 20:
        score += 8
        breakdown.append(f"Low volatility environment: VIX at {vix}")
    elif inputs.vix_level < 30:
        score += 4
        breakdown.append(f"Moderate volatility: VIX at {vix}")
    else:
        breakdown.append(f"High volatility regime: VIX at {vix}")

    if inputs.market_trend == "bullish":
        score += 7
        breakdown.append("Market trend is bullish")
    elif inputs.market_trend == "neutral":
        score += 4
        breakdown.append("Market trend is neutral")
    else:
        breakdown.append("Market trend is bearish - caution advised")

    return make_detail(
        "Market & Volatility Regime",
        score,
        max_score,
        "Assesses overall market conditions and volatility",
        breakdown,
    )


def evaluate_macro_alignment(inputs: StrategicInputs) -> EvaluationDetail:
    max_score = STRATEGIC_WEIGHTS["macro_alignment"]
    score = 0
    breakdown: list[str] = []

    gdp = fmt(inputs.gdp_growth)
    if inputs.gdp_growth > 2:
        score += 5
        breakdown.append(f"Strong GDP growth: {gdp}%")
    elif inputs.gdp_growth > 0:
        score += 3
        breakdown.append(f"Moderate GDP growth: {gdp}%")
    else:
        breakdown.append(f"Negative GDP growth: {gdp}%")

    if inputs.interest_rate_trend == "falling":
        score += 5
        breakdown.append("Interest rates falling - positive for equities")
    elif inputs.interest_rate_trend == "stable":
        score += 3
        breakdown.append("Interest rates stable")
    else:
        score += 1
        breakdown.append("Interest rates rising - headwind for growth stocks")

    return make_detail(
        "Macro Alignment",
        score,
        max_score,
        "Evaluates macroeconomic conditions",
        breakdown,
    )


def evaluate_institutional(inputs: StrategicInputs) -> EvaluationDetail:
    max_score = STRATEGIC_WEIGHTS["institutional"]
    score = 0
    breakdown: list[str] = []

    ownership = fmt(inputs.institutional_ownership)
    if inputs.institutional_ownership > 70:
        score += 8
        breakdown.append(f"High institutional ownership: {ownership}%")
    elif inputs.institutional_ownership > 50:
        score += 5
        breakdown.append(f"Moderate institutional ownership: {ownership}%")
    else:
        score += 2
        breakdown.append(f"Low institutional ownership: {ownership}%")

    if inputs.institutional_activity == "buying":
        score += 7
        breakdown.append("Institutions actively accumulating")
    elif inputs.institutional_activity == "neutral":
        score += 4
        breakdown.append("Institutional activity neutral")
    else:
        breakdown.append("Institutions reducing positions")

    return make_detail(
        "Institutional Signals",
        score,
        max_score,
        "Tracks smart money positioning and activity",
        breakdown,
    )


def evaluate_fundamental_acceleration(inputs: StrategicInputs) -> EvaluationDetail:
    max_score = STRATEGIC_WEIGHTS["fundamental"]
    score = 0
    breakdown: list[str] = []

    revenue = fmt(inputs.revenue_growth)
    if inputs.revenue_growth > 20:
        score += 10
        breakdown.append(f"Strong revenue growth: {revenue}%")
    elif inputs.revenue_growth > 10:
        score += 6
        breakdown.append(f"Moderate revenue growth: {revenue}%")
    elif inputs.revenue_growth > 0:
        score += 3
        breakdown.append(f"Low revenue growth: {revenue}%")
    else:
        breakdown.append(f"Negative revenue growth: {revenue}%")

    eps = fmt(inputs.earnings_acceleration)
    if inputs.earnings_acceleration > 15:
        score += 10
        breakdown.append(f"Strong earnings acceleration: {eps}%")
    elif inputs.earnings_acceleration > 5:
        score += 6
        breakdown.append(f"Moderate earnings growth: {eps}%")
    elif inputs.earnings_acceleration > 0:
        score += 3
        breakdown.append(f"Slight earnings growth: {eps}%")
    else:
        breakdown.append(f"Earnings declining: {eps}%")

    return make_detail(
        "Fundamental Acceleration",
        score,
        max_score,
        "Measures revenue and earnings momentum",
        breakdown,
    )


def evaluate_weekly_technical(inputs: StrategicInputs) -> EvaluationDetail:
    max_score = STRATEGIC_WEIGHTS["weekly_technical"]
    score = 0
    breakdown: list[str] = []

    if inputs.weekly_ma_alignment:
        score += 8
        breakdown.append("Weekly moving averages aligned bullishly")
    else:
        breakdown.append("Weekly MA structure not aligned")

    rsi = fmt(inputs.weekly_rsi)
    if 50 < inputs.weekly_rsi < 70:
        score += 7
        breakdown.append(f"Weekly RSI in optimal range: {rsi}")
    elif 30 <= inputs.weekly_rsi <= 80:
        score += 4
        breakdown.append(f"Weekly RSI acceptable: {rsi}")
    else:
        breakdown.append(f"Weekly RSI extreme: {rsi}")

    return make_detail(
        "Weekly Technical Structure",
        score,
        max_score,
        "Analyzes weekly chart structure and momentum",
        breakdown,
    )


def evaluate_thesis_decay(inputs: StrategicInputs) -> EvaluationDetail:
    max_score = STRATEGIC_WEIGHTS["thesis_decay"]
    score = max_score
    breakdown: list[str] = []

    if inputs.max_holding_period > 0:
        holding_pct = inputs.days_in_position / inputs.max_holding_period * 100
    else:
        holding_pct = 100.0
    progress = f"{fmt(inputs.days_in_position)} days ({round(holding_pct)}% of max)"

    if holding_pct < 50:
        breakdown.append(f"Position fresh: {progress}")
    elif holding_pct < 75:
        score -= 3
        breakdown.append(f"Position aging: {progress}")
    elif holding_pct < 100:
        score -= 6
        breakdown.append(f"Thesis near expiry: {progress}")
    else:
        score -= 10
        breakdown.append("Thesis expired: exceeded max holding period")

    return make_detail(
        "Time-Based Thesis Decay",
        max(0, score),
        max_score,
        "Tracks time remaining in investment thesis",
        breakdown,
    )


# ============================================================================
# AGGREGATION
# ============================================================================


def _calibrated_total(details: list[EvaluationDetail]) -> float:
    """Sum factor scores, applying calibration to the fundamental and weekly factors."""
    total = 0.0
    for d in details:
        score = d.score
        if d.name == "Fundamental Acceleration":
            score = min(d.max_score, score * FUNDAMENTAL_MULTIPLIER)
        elif d.name == "Weekly Technical Structure":
            score = max(score, d.max_score * WEEKLY_TECHNICAL_FLOOR_RATIO)
        total += score
    return clamp(round(total, 2), 0, 100)


def _conviction_label(detail: EvaluationDetail) -> Literal["High", "Medium", "Low"]:
    ratio = detail.score / detail.max_score
    if ratio >= 0.7:
        return "High"
    if ratio >= 0.4:
        return "Medium"
    return "Low"


def _alignment_label(detail: EvaluationDetail) -> Literal["Confirming", "Neutral", "Weak"]:
    ratio = detail.score / detail.max_score
    if ratio >= 0.6:
        return "Confirming"
    if ratio >= 0.3:
        return "Neutral"
    return "Weak"


def evaluate_strategic(inputs: StrategicInputs) -> StrategicGrowthEvaluation:
    """
    Score the seven Strategic Growth factors.

    Pure and deterministic: identical inputs always yield an identical
    evaluation.

    Args:
        inputs: Strategic model inputs

    Returns:
        Evaluation with score in [0, 100] and ELIGIBLE/WATCH/REJECT status
    """
    details = [
        evaluate_guardrails(inputs),
        evaluate_market_regime_factor(inputs),
        evaluate_macro_alignment(inputs),
        evaluate_institutional(inputs),
        evaluate_fundamental_acceleration(inputs),
        evaluate_weekly_technical(inputs),
        evaluate_thesis_decay(inputs),
    ]
    score = _calibrated_total(details)
    validate_evaluation_invariants(ENGINE_NAME, score, details)

    status = strategic_status_for(score)
    logger.debug(f"Evaluation complete: score={score}, status={status}")

    return StrategicGrowthEvaluation(
        score=score,
        status=status,
        details=details,
        positives=collect_by_status(details, "pass"),
        risks=collect_by_status(details, "caution"),
        failure_mode=most_critical_failure(details),
        fundamental_conviction=_conviction_label(details[4]),
        technical_alignment=_alignment_label(details[5]),
    )


def apply_market_regime(
    evaluation: StrategicGrowthEvaluation,
    market_regime: MarketRegime,
) -> StrategicGrowthEvaluation:
    """
    Apply the market-regime overlay to a raw strategic evaluation.

    Returns a new evaluation; the input is left untouched.
    """
    adjustment = REGIME_ADJUSTMENTS.get(market_regime, 0)
    score = clamp(evaluation.score + adjustment, 0, 100)
    return replace(
        evaluation,
        score=score,
        status=strategic_status_for(score),
        regime_adjustment=adjustment,
    )


def evaluate_strategic_in_regime(
    inputs: StrategicInputs,
    market_regime: MarketRegime,
) -> StrategicGrowthEvaluation:
    """Evaluate and apply the market-regime overlay in one step."""
    return apply_market_regime(evaluate_strategic(inputs), market_regime)
