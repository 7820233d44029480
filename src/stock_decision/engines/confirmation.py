"""Five-layer confirmation engine.

Each layer turns one family of evidence (breadth, institutional, options,
sentiment, events) into a small signed score adjustment. Layers are
advisory: they never unblock a PAUSE and never produce an action alone.
"""

import logging
from dataclasses import dataclass, field
from typing import Literal

from stock_decision.data.snapshot import StockSnapshot
from stock_decision.engines.market_regime import BreadthData
from stock_decision.engines.types import ConfidenceLevel

logger = logging.getLogger(__name__)

LayerName = Literal["BREADTH", "INSTITUTIONAL", "OPTIONS", "SENTIMENT", "EVENTS"]
LayerSignal = Literal["CONFIRMING", "NEUTRAL", "DISCONFIRMING"]
OverallSignal = Literal["STRONG_CONFIRM", "CONFIRM", "NEUTRAL", "DISCONFIRM", "STRONG_DISCONFIRM"]

LAYER_ORDER: tuple[str, ...] = ("BREADTH", "INSTITUTIONAL", "OPTIONS", "SENTIMENT", "EVENTS")
OVERALL_SIGNALS: tuple[str, ...] = (
    "STRONG_CONFIRM",
    "CONFIRM",
    "NEUTRAL",
    "DISCONFIRM",
    "STRONG_DISCONFIRM",
)
DISCONFIRMING_SIGNALS = frozenset({"DISCONFIRM", "STRONG_DISCONFIRM"})
CONFIRMING_SIGNALS = frozenset({"CONFIRM", "STRONG_CONFIRM"})

STRONG_NET_THRESHOLD = 8
STRONG_LAYER_COUNT = 4
NET_THRESHOLD = 4
LAYER_COUNT = 2


# ============================================================================
# LAYER INPUTS
# ============================================================================


@dataclass(frozen=True)
class BreadthLayerData:
    pct_above_200dma: float | None
    advance_decline_ratio: float = 1.0
    new_highs_lows_ratio: float = 1.0
    health: str = "NEUTRAL"


@dataclass(frozen=True)
class InstitutionalLayerData:
    ownership_pct: float | None = None
    trend: str = "FLAT"
    top_holders: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class OptionsLayerData:
    put_call_ratio: float | None
    implied_volatility: float | None = None
    iv_rank: float | None = None
    call_open_interest: float = 0.0
    put_open_interest: float = 0.0
    unusual_activity: bool = False

    @property
    def total_open_interest(self) -> float:
        return self.call_open_interest + self.put_open_interest


@dataclass(frozen=True)
class SentimentLayerData:
    analyst_rating: float | None
    analyst_price_target: float | None = None
    insider_buying: bool = False
    buy_count: int = 0
    hold_count: int = 0
    sell_count: int = 0
    social_sentiment: str | None = None
    news_score: float | None = None


@dataclass(frozen=True)
class EventsLayerData:
    days_to_earnings: int | None = None
    next_earnings_date: str | None = None
    days_to_ex_dividend: int | None = None
    has_major_news_pending: bool = False
    news_count: int | None = None


@dataclass(frozen=True)
class ConfirmationData:
    """Layer inputs; a None section makes that layer unavailable."""

    breadth: BreadthLayerData | None = None
    institutional: InstitutionalLayerData | None = None
    options: OptionsLayerData | None = None
    sentiment: SentimentLayerData | None = None
    events: EventsLayerData | None = None


# ============================================================================
# RESULTS
# ============================================================================


@dataclass(frozen=True)
class LayerResult:
    layer: LayerName
    signal: LayerSignal
    confidence: ConfidenceLevel
    score_adjustment: int
    reasons: list[str]
    data_available: bool = True
    flags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ConfirmationResult:
    layers: list[LayerResult]
    net_adjustment: int
    overall_signal: OverallSignal
    flags: list[str]
    confirming_count: int
    disconfirming_count: int


def unavailable_layer(layer: LayerName) -> LayerResult:
    return LayerResult(
        layer=layer,
        signal="NEUTRAL",
        confidence="LOW",
        score_adjustment=0,
        reasons=["Data not available"],
        data_available=False,
    )


def _signal_for(adjustment: int) -> LayerSignal:
    if adjustment > 0:
        return "CONFIRMING"
    if adjustment < 0:
        return "DISCONFIRMING"
    return "NEUTRAL"


# ============================================================================
# LAYERS
# ============================================================================


def evaluate_breadth_layer(breadth: BreadthLayerData) -> LayerResult:
    """Market-wide breadth: health first, then % above 200DMA as a tiebreaker."""
    if breadth.pct_above_200dma is None:
        return unavailable_layer("BREADTH")

    ad = breadth.advance_decline_ratio
    reasons: list[str] = []
    if breadth.health == "STRONG":
        if ad >= 1.3:
            adjustment, confidence = 3, "HIGH"
            reasons.append(f"Strong market breadth (A/D: {ad:.2f})")
        else:
            adjustment, confidence = 2, "MEDIUM"
            reasons.append("Market breadth healthy")
    elif breadth.health == "WEAK":
        if ad < 0.7:
            adjustment, confidence = -3, "HIGH"
            reasons.append(f"Weak market breadth (A/D: {ad:.2f})")
        else:
            adjustment, confidence = -2, "MEDIUM"
            reasons.append("Market breadth deteriorating")
    else:
        adjustment, confidence = 0, "MEDIUM"
        reasons.append("Market breadth neutral")

    pct = breadth.pct_above_200dma
    if pct >= 65:
        reasons.append(f"{pct:.0f}% of stocks above 200 DMA (bullish)")
        if adjustment == 0:
            adjustment = 1
    elif pct <= 35:
        reasons.append(f"Only {pct:.0f}% of stocks above 200 DMA (bearish)")
        if adjustment == 0:
            adjustment = -1

    if breadth.new_highs_lows_ratio >= 1.5:
        reasons.append("New highs outpacing new lows")
    elif breadth.new_highs_lows_ratio <= 0.5:
        reasons.append("New lows outpacing new highs")

    return LayerResult(
        layer="BREADTH",
        signal=_signal_for(adjustment),
        confidence=confidence,
        score_adjustment=adjustment,
        reasons=reasons,
    )


def evaluate_institutional_layer(data: InstitutionalLayerData) -> LayerResult:
    ownership = data.ownership_pct or 0.0
    reasons: list[str] = []
    flags: list[str] = []
    confidence: ConfidenceLevel = "MEDIUM"

    if data.trend == "INCREASING":
        if ownership >= 60:
            adjustment, confidence = 5, "HIGH"
            reasons.append(f"Institutions increasing positions ({ownership:.0f}% ownership)")
            flags.append("INSIDER_BUYING")
        else:
            adjustment = 3
            reasons.append("Institutional accumulation detected")
    elif data.trend == "DECREASING":
        if ownership >= 60:
            adjustment, confidence = -5, "HIGH"
            reasons.append(f"Institutions reducing positions ({ownership:.0f}% ownership)")
            flags.append("INSTITUTIONAL_EXIT")
        else:
            adjustment = -3
            reasons.append("Institutional selling detected")
    else:
        adjustment = 0
        if ownership >= 70:
            reasons.append(f"High institutional ownership ({ownership:.0f}%) but flat activity")
        elif ownership >= 50:
            reasons.append(f"Moderate institutional ownership ({ownership:.0f}%)")
        else:
            reasons.append(f"Low institutional ownership ({ownership:.0f}%)")
            confidence = "LOW"

    if data.top_holders:
        reasons.append(f"Top holders: {', '.join(data.top_holders[:3])}")

    return LayerResult(
        layer="INSTITUTIONAL",
        signal=_signal_for(adjustment),
        confidence=confidence,
        score_adjustment=adjustment,
        reasons=reasons,
        flags=flags,
    )


def evaluate_options_layer(data: OptionsLayerData) -> LayerResult:
    """
    Options flow: put/call ratio sets the signal, IV rank can shave a point.

    A P/C between 1.1 and 1.2 keeps a NEUTRAL signal with a -1 adjustment.
    """
    if data.put_call_ratio is None:
        return unavailable_layer("OPTIONS")

    pc = data.put_call_ratio
    reasons: list[str] = []
    flags: list[str] = []
    confidence: ConfidenceLevel = "MEDIUM"

    if pc < 0.7:
        signal: LayerSignal = "CONFIRMING"
        adjustment, confidence = 4, "HIGH"
        reasons.append(f"Bullish options flow (P/C: {pc:.2f})")
        flags.append("LOW_PUT_CALL")
    elif pc > 1.2:
        signal = "DISCONFIRMING"
        adjustment, confidence = -4, "HIGH"
        reasons.append(f"Bearish options flow (P/C: {pc:.2f})")
        flags.append("HIGH_PUT_CALL")
    elif pc <= 1.1:
        signal = "NEUTRAL"
        adjustment = 0
        reasons.append(f"Balanced options flow (P/C: {pc:.2f})")
    else:
        signal = "NEUTRAL"
        adjustment = -1
        reasons.append(f"Slightly elevated put activity (P/C: {pc:.2f})")

    if data.iv_rank is not None:
        if data.iv_rank >= 80:
            reasons.append(f"Elevated IV rank: {data.iv_rank:g}% (high uncertainty)")
            flags.append("ELEVATED_IV")
            if signal != "DISCONFIRMING":
                adjustment = max(adjustment - 1, -5)
        elif data.iv_rank <= 20:
            reasons.append(f"Low IV rank: {data.iv_rank:g}% (complacency)")
        else:
            reasons.append(f"Normal IV rank: {data.iv_rank:g}%")
    elif data.implied_volatility is not None:
        if data.implied_volatility > 0.5:
            reasons.append(f"High implied volatility: {data.implied_volatility * 100:.0f}%")
        elif data.implied_volatility < 0.2:
            reasons.append(f"Low implied volatility: {data.implied_volatility * 100:.0f}%")

    total_oi = data.total_open_interest
    if total_oi > 0:
        call_pct = data.call_open_interest / total_oi * 100
        if call_pct >= 65:
            reasons.append(f"Call-heavy open interest ({call_pct:.0f}% calls)")
        elif call_pct <= 35:
            reasons.append(f"Put-heavy open interest ({100 - call_pct:.0f}% puts)")

    if data.unusual_activity:
        reasons.append("Unusual options activity detected")
        confidence = "HIGH"

    return LayerResult(
        layer="OPTIONS",
        signal=signal,
        confidence=confidence,
        score_adjustment=adjustment,
        reasons=reasons,
        flags=flags,
    )


def evaluate_sentiment_layer(data: SentimentLayerData) -> LayerResult:
    if data.analyst_rating is None:
        return unavailable_layer("SENTIMENT")

    positive = 0
    negative = 0
    reasons: list[str] = []
    flags: list[str] = []

    rating = data.analyst_rating
    if rating >= 4.0:
        positive += 2
        reasons.append(f"Strong analyst rating: {rating:.1f}/5")
    elif rating >= 3.5:
        positive += 1
        reasons.append(f"Positive analyst rating: {rating:.1f}/5")
    elif rating <= 2.5:
        negative += 2
        reasons.append(f"Weak analyst rating: {rating:.1f}/5")
    elif rating < 3.0:
        negative += 1
        reasons.append(f"Below-average analyst rating: {rating:.1f}/5")
    else:
        reasons.append(f"Neutral analyst rating: {rating:.1f}/5")

    if data.insider_buying:
        positive += 2
        reasons.append("Recent insider buying detected")
        flags.append("INSIDER_BUYING")
    elif data.sell_count > data.buy_count * 2:
        negative += 1
        reasons.append("Analysts skewing toward sell recommendations")

    if data.analyst_price_target:
        reasons.append(f"Analyst price target: ${data.analyst_price_target:.2f}")

    if data.social_sentiment == "BULLISH":
        positive += 1
        reasons.append("Bullish social sentiment")
    elif data.social_sentiment == "BEARISH":
        negative += 1
        reasons.append("Bearish social sentiment")

    if data.news_score is not None:
        if data.news_score >= 0.3:
            positive += 1
            reasons.append("Positive recent news coverage")
        elif data.news_score <= -0.3:
            negative += 1
            reasons.append("Negative recent news coverage")

    total = data.buy_count + data.hold_count + data.sell_count
    if total > 0:
        buy_pct = data.buy_count / total * 100
        if buy_pct >= 70:
            reasons.append(f"{buy_pct:.0f}% of analysts recommend Buy")
        elif buy_pct <= 30:
            reasons.append(f"Only {buy_pct:.0f}% of analysts recommend Buy")

    net = positive - negative
    if net >= 3:
        adjustment, confidence = 3, "HIGH"
    elif net >= 1:
        adjustment, confidence = 2, "MEDIUM"
    elif net <= -3:
        adjustment, confidence = -3, "HIGH"
        flags.append("INSIDER_SELLING")
    elif net <= -1:
        adjustment, confidence = -2, "MEDIUM"
    else:
        adjustment, confidence = 0, "MEDIUM"

    return LayerResult(
        layer="SENTIMENT",
        signal=_signal_for(adjustment),
        confidence=confidence,
        score_adjustment=adjustment,
        reasons=reasons,
        flags=flags,
    )


def evaluate_events_layer(data: EventsLayerData) -> LayerResult:
    """
    Event risk: imminent earnings and pending news count against a signal.

    Net risk (risk factors minus clear factors) >= 3 is DISCONFIRMING -3.
    """
    risk = 0
    clear = 0
    reasons: list[str] = []
    flags: list[str] = []
    confidence: ConfidenceLevel = "MEDIUM"

    days = data.days_to_earnings
    if days is not None:
        if days < 5:
            risk += 3
            reasons.append(f"⚠ Earnings in {days} days")
            flags.append("EARNINGS_IMMINENT")
        elif days <= 14:
            risk += 1
            reasons.append(f"Earnings coming in {days} days")
            flags.append("EARNINGS_SOON")
        else:
            clear += 1
            reasons.append(f"Earnings distant ({days} days)")
    else:
        clear += 1
        reasons.append("No imminent earnings date")

    if data.days_to_ex_dividend is not None and data.days_to_ex_dividend <= 7:
        reasons.append(f"Ex-dividend in {data.days_to_ex_dividend} days")
        flags.append("DIVIDEND_UPCOMING")

    if data.has_major_news_pending:
        risk += 2
        reasons.append("Major news or event pending")
        flags.append("MAJOR_NEWS_PENDING")
    elif data.news_count is not None and data.news_count >= 10:
        risk += 1
        reasons.append(f"High news activity ({data.news_count} items this week)")
    elif data.news_count is not None and data.news_count <= 2:
        clear += 1
        reasons.append("Low news activity (quiet period)")

    net_risk = risk - clear
    if net_risk >= 3:
        adjustment, confidence = -3, "HIGH"
    elif net_risk >= 1:
        adjustment, confidence = -1, "MEDIUM"
    elif net_risk <= -2:
        adjustment, confidence = 2, "MEDIUM"
    elif net_risk <= -1:
        adjustment, confidence = 1, "LOW"
    else:
        adjustment, confidence = 0, "MEDIUM"

    if data.next_earnings_date and not any("Earnings" in r for r in reasons):
        reasons.append(f"Next earnings: {data.next_earnings_date}")

    return LayerResult(
        layer="EVENTS",
        signal=_signal_for(adjustment),
        confidence=confidence,
        score_adjustment=adjustment,
        reasons=reasons,
        flags=flags,
    )


# ============================================================================
# ENGINE
# ============================================================================


def determine_overall_signal(net_adjustment: int, layers: list[LayerResult]) -> OverallSignal:
    confirming = sum(1 for layer in layers if layer.signal == "CONFIRMING")
    disconfirming = sum(1 for layer in layers if layer.signal == "DISCONFIRMING")

    if net_adjustment >= STRONG_NET_THRESHOLD and confirming >= STRONG_LAYER_COUNT:
        return "STRONG_CONFIRM"
    if net_adjustment <= -STRONG_NET_THRESHOLD and disconfirming >= STRONG_LAYER_COUNT:
        return "STRONG_DISCONFIRM"
    if net_adjustment >= NET_THRESHOLD and confirming >= LAYER_COUNT:
        return "CONFIRM"
    if net_adjustment <= -NET_THRESHOLD and disconfirming >= LAYER_COUNT:
        return "DISCONFIRM"
    if net_adjustment > 0:
        return "CONFIRM"
    if net_adjustment < 0:
        return "DISCONFIRM"
    return "NEUTRAL"


def evaluate_confirmation(data: ConfirmationData, symbol: str = "") -> ConfirmationResult:
    """
    Run all five layers and aggregate them.

    Args:
        data: Layer inputs (missing sections yield unavailable layers)
        symbol: Used for logging only

    Returns:
        ConfirmationResult whose net_adjustment is the sum of the layer adjustments
    """
    layers = [
        evaluate_breadth_layer(data.breadth) if data.breadth else unavailable_layer("BREADTH"),
        (
            evaluate_institutional_layer(data.institutional)
            if data.institutional
            else unavailable_layer("INSTITUTIONAL")
        ),
        evaluate_options_layer(data.options) if data.options else unavailable_layer("OPTIONS"),
        evaluate_sentiment_layer(data.sentiment) if data.sentiment else unavailable_layer("SENTIMENT"),
        evaluate_events_layer(data.events) if data.events else unavailable_layer("EVENTS"),
    ]

    net = sum(layer.score_adjustment for layer in layers)
    overall = determine_overall_signal(net, layers)
    flags = list(dict.fromkeys(flag for layer in layers for flag in layer.flags))
    confirming = sum(1 for layer in layers if layer.signal == "CONFIRMING")
    disconfirming = sum(1 for layer in layers if layer.signal == "DISCONFIRMING")

    logger.debug(
        f"{symbol or '?'}: confirmation {overall} (net {net:+d}, "
        f"{confirming} confirming, {disconfirming} disconfirming)"
    )
    return ConfirmationResult(
        layers=layers,
        net_adjustment=net,
        overall_signal=overall,
        flags=flags,
        confirming_count=confirming,
        disconfirming_count=disconfirming,
    )


# ============================================================================
# SNAPSHOT -> LAYER DATA
# ============================================================================


def build_confirmation_data(
    snapshot: StockSnapshot,
    breadth: BreadthData | None = None,
    has_major_news_pending: bool = False,
) -> ConfirmationData:
    """
    Derive layer inputs from a snapshot and the market breadth.

    Sections whose provider failed are left as None so the layer reports
    "Data not available" instead of scoring defaults.
    """
    failed = set(snapshot.meta.providers_failed)
    sentiment = snapshot.sentiment

    breadth_data = None
    if breadth is not None:
        breadth_data = BreadthLayerData(
            pct_above_200dma=breadth.pct_above_200dma,
            advance_decline_ratio=breadth.advance_decline_ratio,
            new_highs_lows_ratio=breadth.new_highs_lows_ratio,
            health=breadth.health,
        )

    institutional = None
    if sentiment.institutional_ownership is not None or sentiment.institutional_trend:
        institutional = InstitutionalLayerData(
            ownership_pct=sentiment.institutional_ownership,
            trend=sentiment.institutional_trend or "FLAT",
            top_holders=list(sentiment.top_holders),
        )

    options = None
    if snapshot.options is not None:
        opts = snapshot.options
        options = OptionsLayerData(
            put_call_ratio=opts.put_call_ratio,
            implied_volatility=opts.implied_volatility,
            iv_rank=opts.iv_rank,
            call_open_interest=opts.call_open_interest,
            put_open_interest=opts.put_open_interest,
        )

    sentiment_data = None
    if sentiment.analyst_rating is not None:
        trend = sentiment.recommendation_trend
        sentiment_data = SentimentLayerData(
            analyst_rating=sentiment.analyst_rating,
            analyst_price_target=sentiment.analyst_price_target,
            insider_buying=bool(sentiment.insider_buying),
            buy_count=(trend.strong_buy + trend.buy) if trend else 0,
            hold_count=trend.hold if trend else 0,
            sell_count=(trend.sell + trend.strong_sell) if trend else 0,
        )

    events = None
    if "yfinance-calendar" not in failed and not snapshot.meta.is_fallback:
        events = EventsLayerData(
            days_to_earnings=snapshot.events.days_to_earnings,
            next_earnings_date=snapshot.events.next_earnings_date,
            days_to_ex_dividend=snapshot.events.days_to_ex_dividend,
            has_major_news_pending=has_major_news_pending,
            news_count=sentiment.news_count,
        )

    return ConfirmationData(
        breadth=breadth_data,
        institutional=institutional,
        options=options,
        sentiment=sentiment_data,
        events=events,
    )
