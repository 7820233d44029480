"""Phase 4 strategy playbooks.

Playbooks describe a situation and how to approach it; they never force an
action. At most one playbook is active. When several are eligible the
highest match score wins, with ties going to the earlier playbook in
PLAYBOOK_ORDER.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

from stock_decision.data.snapshot import StockSnapshot

logger = logging.getLogger(__name__)

PlaybookName = Literal[
    "TREND_CONTINUATION",
    "PULLBACK_ENTRY",
    "BASE_BREAKOUT",
    "MEAN_REVERSION",
    "DEFENSIVE_HOLD",
]
HorizonBias = Literal["BULLISH", "NEUTRAL", "BEARISH"]

PLAYBOOK_ORDER: tuple[str, ...] = (
    "TREND_CONTINUATION",
    "PULLBACK_ENTRY",
    "BASE_BREAKOUT",
    "MEAN_REVERSION",
    "DEFENSIVE_HOLD",
)

MIN_SCORES: dict[str, int] = {
    "TREND_CONTINUATION": 50,
    "PULLBACK_ENTRY": 55,
    "BASE_BREAKOUT": 50,
    "MEAN_REVERSION": 50,
    "DEFENSIVE_HOLD": 45,
}

_STATUS_BIAS: dict[str, HorizonBias] = {
    "ELIGIBLE": "BULLISH",
    "TRADE": "BULLISH",
    "WATCH": "NEUTRAL",
    "REJECT": "BEARISH",
    "AVOID": "BEARISH",
}


def status_bias(status: str) -> HorizonBias:
    """Map a horizon status (ELIGIBLE/WATCH/REJECT, TRADE/WATCH/AVOID) to a bias."""
    return _STATUS_BIAS.get(status, "NEUTRAL")


# ============================================================================
# RECORDS
# ============================================================================


@dataclass(frozen=True)
class PlaybookInput:
    strategic_score: float
    tactical_score: float
    strategic_status: HorizonBias
    tactical_status: HorizonBias
    confirmation_level: str
    confirmation_score: int
    price_vs_ma50: float
    price_vs_ma200: float
    rsi: float
    weekly_trend: str
    daily_trend: str
    atr_percent: float
    market_regime: str
    sector_regime: str = "NEUTRAL"
    recent_pullback_pct: float | None = None
    near_resistance: bool = False


@dataclass(frozen=True)
class PlaybookGuidance:
    why_this_fits: str
    how_to_use: list[str]
    risk_notes: list[str]


@dataclass(frozen=True)
class PlaybookDefinition:
    name: PlaybookName
    title: str
    description: str
    guidance: PlaybookGuidance


@dataclass(frozen=True)
class ActivePlaybook:
    name: PlaybookName
    title: str
    description: str
    guidance: PlaybookGuidance
    match_confidence: int
    matched_rules: list[str]
    near_miss_rules: list[str] | None = None


@dataclass(frozen=True)
class ConsideredPlaybook:
    name: PlaybookName
    eligible: bool
    match_score: int
    reason: str


@dataclass(frozen=True)
class PlaybookResult:
    active_playbook: ActivePlaybook | None
    considered_playbooks: list[ConsideredPlaybook] = field(default_factory=list)


PLAYBOOK_DEFINITIONS: dict[str, PlaybookDefinition] = {
    "TREND_CONTINUATION": PlaybookDefinition(
        name="TREND_CONTINUATION",
        title="Trend Continuation",
        description="Stay with an established uptrend while momentum holds",
        guidance=PlaybookGuidance(
            why_this_fits=(
                "Both horizons lean bullish and price holds above its 50- and 200-day averages."
            ),
            how_to_use=[
                "Add in stages rather than all at once",
                "Use the 50-day average as the line that invalidates the trend",
                "Let winners run while price stays above the trend line",
            ],
            risk_notes=[
                "Late entries after a long run carry more downside",
                "A close below the 50-day average weakens the setup",
            ],
        ),
    ),
    "PULLBACK_ENTRY": PlaybookDefinition(
        name="PULLBACK_ENTRY",
        title="Pullback Entry",
        description="Buy weakness inside an intact long-term uptrend",
        guidance=PlaybookGuidance(
            why_this_fits=(
                "The long-term trend is intact while price has eased back toward support."
            ),
            how_to_use=[
                "Wait for price to stabilise near the 50-day average",
                "Start small and add once the pullback holds",
                "Place a stop below the recent swing low",
            ],
            risk_notes=[
                "A pullback can turn into a trend change",
                "A break of the 200-day average cancels the setup",
            ],
        ),
    ),
    "BASE_BREAKOUT": PlaybookDefinition(
        name="BASE_BREAKOUT",
        title="Base Breakout Watch",
        description="Watch a tight consolidation for a move through resistance",
        guidance=PlaybookGuidance(
            why_this_fits=(
                "Price is moving sideways in a narrow range close to its 50-day average."
            ),
            how_to_use=[
                "Keep it on the watchlist until price clears resistance",
                "Look for above-average volume on the breakout day",
                "Size the position against the bottom of the base",
            ],
            risk_notes=[
                "Breakouts without volume often fail",
                "Bases can resolve lower as well as higher",
            ],
        ),
    ),
    "MEAN_REVERSION": PlaybookDefinition(
        name="MEAN_REVERSION",
        title="Mean Reversion (Cautious)",
        description="A stretched, oversold stock that may snap back toward its average",
        guidance=PlaybookGuidance(
            why_this_fits=(
                "RSI is oversold and price sits well below its 50-day average."
            ),
            how_to_use=[
                "Keep positions small; this runs against the trend",
                "Take profits near the 50-day average",
                "Exit quickly if the low breaks",
            ],
            risk_notes=[
                "Oversold stocks can stay oversold",
                "Falling prices may reflect real fundamental damage",
            ],
        ),
    ),
    "DEFENSIVE_HOLD": PlaybookDefinition(
        name="DEFENSIVE_HOLD",
        title="Defensive Hold",
        description="Conditions are unfavourable; protect capital and wait",
        guidance=PlaybookGuidance(
            why_this_fits=(
                "Market, timing and trend signals point to a risk-off backdrop."
            ),
            how_to_use=[
                "Avoid opening new positions",
                "Review stops on existing holdings",
                "Revisit once the market regime improves",
            ],
            risk_notes=[
                "Sitting out can miss an early recovery",
                "Defensive does not mean sell everything",
            ],
        ),
    ),
}


# ============================================================================
# RULE MACHINERY
# ============================================================================

RuleKind = Literal["match", "near_miss", "disqualify"]


@dataclass(frozen=True)
class RuleOutcome:
    kind: RuleKind
    points: int
    text: str


def match(points: int, text: str) -> RuleOutcome:
    return RuleOutcome("match", points, text)


def near_miss(points: int, text: str) -> RuleOutcome:
    return RuleOutcome("near_miss", points, text)


def disqualify(text: str) -> RuleOutcome:
    return RuleOutcome("disqualify", 0, text)


Rule = Callable[[PlaybookInput], RuleOutcome | None]


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    match_score: int
    matched_rules: list[str]
    near_miss_rules: list[str]
    disqualify_reason: str | None = None


def check_playbook(rules: list[Rule], min_score: int, inp: PlaybookInput) -> Eligibility:
    """Apply rules in order; a disqualification stops evaluation."""
    score = 0
    matched: list[str] = []
    near: list[str] = []
    for rule in rules:
        outcome = rule(inp)
        if outcome is None:
            continue
        if outcome.kind == "disqualify":
            return Eligibility(False, min(100, score), matched, near, outcome.text)
        score += outcome.points
        (matched if outcome.kind == "match" else near).append(outcome.text)
    return Eligibility(score >= min_score, min(100, score), matched, near)


# ============================================================================
# PLAYBOOK RULES
# ============================================================================


def _tc_horizons(i: PlaybookInput) -> RuleOutcome:
    if i.strategic_status == "BULLISH" and i.tactical_status == "BULLISH":
        return match(30, "Both Strategic & Tactical BULLISH")
    if i.strategic_status == "BULLISH" or i.tactical_status == "BULLISH":
        return near_miss(10, "One horizon is BULLISH")
    return disqualify("Neither horizon is BULLISH")


def _tc_moving_averages(i: PlaybookInput) -> RuleOutcome:
    if i.price_vs_ma50 > 0 and i.price_vs_ma200 > 0:
        return match(25, "Price above MA50 and MA200")
    if i.price_vs_ma200 > 0:
        return near_miss(10, "Price above MA200 but below MA50")
    return disqualify("Price below key moving averages")


def _tc_confirmation(i: PlaybookInput) -> RuleOutcome:
    if i.confirmation_level == "STRONG":
        return match(25, "STRONG confirmation")
    if i.confirmation_level == "WEAK":
        return match(15, "WEAK confirmation")
    return near_miss(5, "No confirmation from Phase 3")


def _tc_market(i: PlaybookInput) -> RuleOutcome:
    if i.market_regime == "RISK_ON":
        return match(15, "RISK_ON market regime")
    if i.market_regime == "NEUTRAL":
        return match(10, "NEUTRAL market regime")
    return near_miss(-10, "RISK_OFF market")


def _tc_extension(i: PlaybookInput) -> RuleOutcome:
    if i.price_vs_ma50 < 10:
        return match(5, "Not overextended from MA50")
    return near_miss(0, "Extended from MA50")


def _pe_strategic(i: PlaybookInput) -> RuleOutcome:
    if i.strategic_status == "BULLISH":
        return match(25, "Strategic horizon BULLISH (trend intact)")
    if i.strategic_status == "NEUTRAL":
        return near_miss(10, "Strategic horizon NEUTRAL")
    return disqualify("Long-term trend not BULLISH")


def _pe_ma200(i: PlaybookInput) -> RuleOutcome:
    if i.price_vs_ma200 > 0:
        return match(20, "Price above MA200 (uptrend intact)")
    return disqualify("Price below MA200")


def _pe_pullback(i: PlaybookInput) -> RuleOutcome:
    if -5 <= i.price_vs_ma50 <= 2:
        return match(25, "Price near MA50 support")
    if -10 <= i.price_vs_ma50 < 0:
        return match(20, "Price below MA50 (deeper pullback)")
    if i.price_vs_ma50 > 2:
        return disqualify("No pullback detected")
    return near_miss(5, "Pullback too deep")


def _pe_rsi(i: PlaybookInput) -> RuleOutcome:
    if 30 <= i.rsi <= 45:
        return match(20, "RSI in healthy pullback zone (30-45)")
    if 25 <= i.rsi < 30:
        return match(15, "RSI approaching oversold")
    if i.rsi > 45:
        return near_miss(5, "RSI not yet in pullback zone")
    return near_miss(5, "RSI deeply oversold (possible capitulation)")


def _pe_weekly(i: PlaybookInput) -> RuleOutcome | None:
    if i.weekly_trend == "UP":
        return match(10, "Weekly trend UP")
    if i.weekly_trend == "SIDEWAYS":
        return near_miss(5, "Weekly trend SIDEWAYS")
    return None


def _bb_consolidation(i: PlaybookInput) -> RuleOutcome:
    distance = abs(i.price_vs_ma50)
    if distance <= 3:
        return match(25, "Price consolidating near MA50")
    if distance <= 5:
        return near_miss(15, "Price slightly extended from MA50")
    return disqualify("Not consolidating near key level")


def _bb_volatility(i: PlaybookInput) -> RuleOutcome:
    if i.atr_percent <= 3:
        return match(25, "Low volatility (tight base)")
    if i.atr_percent <= 5:
        return match(15, "Moderate volatility")
    return near_miss(5, "High volatility (not a base)")


def _bb_daily_trend(i: PlaybookInput) -> RuleOutcome:
    if i.daily_trend == "SIDEWAYS":
        return match(20, "Daily trend SIDEWAYS (consolidating)")
    if i.daily_trend == "UP":
        return near_miss(10, "Daily trend UP (may have broken out)")
    return near_miss(5, "Daily trend DOWN")


def _bb_strategic(i: PlaybookInput) -> RuleOutcome:
    if i.strategic_status == "BULLISH":
        return match(15, "Strategic BULLISH (quality base)")
    if i.strategic_status == "NEUTRAL":
        return match(10, "Strategic NEUTRAL")
    return near_miss(5, "Strategic BEARISH")


def _bb_resistance(i: PlaybookInput) -> RuleOutcome:
    if i.near_resistance:
        return match(15, "Near resistance level")
    return near_miss(5, "No clear resistance nearby")


def _mr_rsi(i: PlaybookInput) -> RuleOutcome:
    if i.rsi <= 30:
        return match(30, "RSI oversold (≤30)")
    if i.rsi <= 40:
        return near_miss(10, "RSI approaching oversold")
    return disqualify("RSI not oversold")


def _mr_extension(i: PlaybookInput) -> RuleOutcome:
    if i.price_vs_ma50 <= -5:
        return match(25, "Extended below MA50")
    if i.price_vs_ma50 < 0:
        return near_miss(10, "Slightly below MA50")
    return disqualify("Price not extended below MA50")


def _mr_tactical(i: PlaybookInput) -> RuleOutcome:
    if i.tactical_status == "BEARISH":
        return match(20, "Tactical BEARISH (oversold, not bouncing yet)")
    if i.tactical_status == "NEUTRAL":
        return match(15, "Tactical NEUTRAL")
    return near_miss(5, "Tactical BULLISH (may have already bounced)")


def _mr_strategic(i: PlaybookInput) -> RuleOutcome:
    if i.strategic_status != "BEARISH":
        return match(15, "Strategic not BEARISH (fundamentals okay)")
    return near_miss(5, "Strategic BEARISH (fundamental concerns)")


def _mr_volatility(i: PlaybookInput) -> RuleOutcome:
    if i.atr_percent >= 3:
        return match(10, "Elevated volatility (snapback potential)")
    return near_miss(5, "Low volatility")


def _dh_market(i: PlaybookInput) -> RuleOutcome | None:
    if i.market_regime == "RISK_OFF":
        return match(35, "RISK_OFF market regime")
    if i.market_regime == "NEUTRAL":
        return near_miss(10, "NEUTRAL market regime")
    return None


def _dh_tactical(i: PlaybookInput) -> RuleOutcome | None:
    if i.tactical_status == "BEARISH":
        return match(25, "Tactical BEARISH")
    if i.tactical_status == "NEUTRAL":
        return near_miss(10, "Tactical NEUTRAL")
    return None


def _dh_confirmation(i: PlaybookInput) -> RuleOutcome | None:
    if i.confirmation_level == "NONE":
        return match(20, "No confirmation from Phase 3")
    if i.confirmation_level == "WEAK":
        return near_miss(10, "WEAK confirmation")
    return None


def _dh_ma200(i: PlaybookInput) -> RuleOutcome | None:
    if i.price_vs_ma200 < 0:
        return match(15, "Price below MA200 (bear trend)")
    if i.price_vs_ma200 < 5:
        return near_miss(5, "Price near MA200")
    return None


def _dh_weekly(i: PlaybookInput) -> RuleOutcome | None:
    if i.weekly_trend == "DOWN":
        return match(10, "Weekly trend DOWN")
    if i.weekly_trend == "SIDEWAYS":
        return near_miss(5, "Weekly trend SIDEWAYS")
    return None


PLAYBOOK_RULES: dict[str, list[Rule]] = {
    "TREND_CONTINUATION": [_tc_horizons, _tc_moving_averages, _tc_confirmation, _tc_market, _tc_extension],
    "PULLBACK_ENTRY": [_pe_strategic, _pe_ma200, _pe_pullback, _pe_rsi, _pe_weekly],
    "BASE_BREAKOUT": [_bb_consolidation, _bb_volatility, _bb_daily_trend, _bb_strategic, _bb_resistance],
    "MEAN_REVERSION": [_mr_rsi, _mr_extension, _mr_tactical, _mr_strategic, _mr_volatility],
    "DEFENSIVE_HOLD": [_dh_market, _dh_tactical, _dh_confirmation, _dh_ma200, _dh_weekly],
}


# ============================================================================
# ENGINE
# ============================================================================


def match_playbooks(inp: PlaybookInput) -> PlaybookResult:
    """
    Evaluate every playbook and pick at most one active playbook.

    Args:
        inp: Combined horizon, confirmation and technical state

    Returns:
        PlaybookResult; active_playbook is None when nothing is eligible
    """
    considered: list[ConsideredPlaybook] = []
    best_name: str | None = None
    best: Eligibility | None = None

    for name in PLAYBOOK_ORDER:
        result = check_playbook(PLAYBOOK_RULES[name], MIN_SCORES[name], inp)
        if result.eligible:
            reason = f"Matches {len(result.matched_rules)} rules (score: {result.match_score})"
        else:
            reason = result.disqualify_reason or "Insufficient match"
        considered.append(ConsideredPlaybook(name, result.eligible, result.match_score, reason))

        if result.eligible and (best is None or result.match_score > best.match_score):
            best_name, best = name, result

    active = None
    if best_name is not None and best is not None:
        definition = PLAYBOOK_DEFINITIONS[best_name]
        active = ActivePlaybook(
            name=definition.name,
            title=definition.title,
            description=definition.description,
            guidance=definition.guidance,
            match_confidence=best.match_score,
            matched_rules=best.matched_rules,
            near_miss_rules=best.near_miss_rules or None,
        )
        logger.debug(f"Active playbook {best_name} ({best.match_score}% match)")

    return PlaybookResult(active_playbook=active, considered_playbooks=considered)


def build_playbook_input(
    snapshot: StockSnapshot,
    *,
    strategic_score: float,
    tactical_score: float,
    strategic_status: str,
    tactical_status: str,
    confirmation_level: str,
    confirmation_score: int,
    market_regime: str,
    sector_regime: str = "NEUTRAL",
) -> PlaybookInput:
    """
    Playbook input from a snapshot and the upstream results.

    The pullback is measured from the highest high of the last 20 bars and
    resistance from the highest high of the last 50 bars.
    """
    technicals = snapshot.technicals
    bars = snapshot.historical_prices
    price = snapshot.price

    pullback = None
    if len(bars) >= 20:
        recent_high = max(b.high for b in bars[-20:])
        if recent_high > 0:
            pullback = round((recent_high - price) / recent_high * 100, 2)

    near_resistance = False
    if len(bars) >= 50:
        near_resistance = price >= max(b.high for b in bars[-50:]) * 0.98

    return PlaybookInput(
        strategic_score=strategic_score,
        tactical_score=tactical_score,
        strategic_status=status_bias(strategic_status),
        tactical_status=status_bias(tactical_status),
        confirmation_level=confirmation_level,
        confirmation_score=confirmation_score,
        price_vs_ma50=technicals.price_vs_ma50,
        price_vs_ma200=technicals.price_vs_ma200,
        rsi=technicals.rsi14,
        weekly_trend=technicals.weekly_trend,
        daily_trend=technicals.daily_trend,
        atr_percent=technicals.atr_percent or 2.0,
        market_regime=market_regime,
        sector_regime=sector_regime,
        recent_pullback_pct=pullback,
        near_resistance=near_resistance,
    )
