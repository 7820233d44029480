"""Market regime classification from index trends, breadth and volatility."""

import logging
from dataclasses import dataclass, field
from typing import Literal

from stock_decision.engines.types import ConfidenceLevel, MarketRegime, Trend, clamp

logger = logging.getLogger(__name__)

Momentum = Literal["POSITIVE", "NEUTRAL", "NEGATIVE"]
BreadthHealth = Literal["STRONG", "NEUTRAL", "WEAK"]
SectorTrend = Literal["LEADING", "NEUTRAL", "LAGGING"]

INDEX_NAMES: dict[str, str] = {
    "SPY": "S&P 500 ETF",
    "QQQ": "Nasdaq 100 ETF",
    "DIA": "Dow Jones ETF",
    "IWM": "Russell 2000 ETF",
}

SECTOR_ETFS: dict[str, str] = {
    "XLK": "Technology",
    "XLF": "Financials",
    "XLE": "Energy",
    "XLV": "Healthcare",
    "XLY": "Consumer Discretionary",
    "XLI": "Industrials",
    "XLB": "Materials",
    "XLU": "Utilities",
    "XLRE": "Real Estate",
    "XLC": "Communication Services",
    "XLP": "Consumer Staples",
}

VIX_SYMBOL = "^VIX"
DEFAULT_VIX = 18.0
VIX_ELEVATED_LEVEL = 20.0
VIX_LOW_LEVEL = 15.0

RISK_ON_THRESHOLD = 30
HIGH_CONFIDENCE_THRESHOLD = 50
NEUTRAL_HIGH_CONFIDENCE_BAND = 15


# ============================================================================
# RECORDS
# ============================================================================


@dataclass(frozen=True)
class IndexState:
    symbol: str
    name: str
    price: float
    change_percent: float
    trend: Trend
    above_200dma: bool
    momentum: Momentum


@dataclass(frozen=True)
class BreadthData:
    pct_above_200dma: float
    advance_decline_ratio: float
    new_highs_lows_ratio: float
    health: BreadthHealth


@dataclass(frozen=True)
class SectorState:
    symbol: str
    name: str
    change_percent: float
    relative_strength: float
    trend: SectorTrend


@dataclass(frozen=True)
class VolatilityData:
    vix_level: float
    vix_trend: Trend
    is_elevated: bool


@dataclass(frozen=True)
class RegimeEvaluation:
    regime: MarketRegime
    confidence: ConfidenceLevel
    reasons: list[str]
    risk_on_score: int
    risk_off_score: int
    net_score: int


@dataclass(frozen=True)
class MarketContextMeta:
    fetched_at: str
    providers_failed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cache_hit: bool = False
    market_state: str | None = None


@dataclass(frozen=True)
class MarketContext:
    """Market-wide snapshot: regime plus the inputs it was derived from."""

    regime: MarketRegime
    confidence: ConfidenceLevel
    regime_reasons: list[str]
    indices: list[IndexState]
    breadth: BreadthData
    sectors: list[SectorState]
    volatility: VolatilityData
    is_demo_mode: bool
    meta: MarketContextMeta


@dataclass(frozen=True)
class MarketContextInfo:
    """Plain-language summary of the market context for dashboards."""

    regime: MarketRegime
    label: str
    description: str


# ============================================================================
# INPUT DERIVATION
# ============================================================================


def classify_index_trend(price: float, ma200: float | None, change_percent: float) -> Trend:
    """UP/DOWN needs distance from the 200DMA confirmed by the day's move."""
    if ma200:
        pct_above = (price - ma200) / ma200 * 100
        if pct_above > 2 and change_percent > 0:
            return "UP"
        if pct_above < -2 and change_percent < 0:
            return "DOWN"
        return "SIDEWAYS"
    if change_percent > 0.5:
        return "UP"
    if change_percent < -0.5:
        return "DOWN"
    return "SIDEWAYS"


def classify_momentum(trend: Trend, change_percent: float) -> Momentum:
    if trend == "UP" and change_percent > 0:
        return "POSITIVE"
    if trend == "DOWN" and change_percent < 0:
        return "NEGATIVE"
    return "NEUTRAL"


def build_index_state(
    symbol: str,
    price: float,
    change_percent: float,
    ma200: float | None,
) -> IndexState:
    trend = classify_index_trend(price, ma200, change_percent)
    return IndexState(
        symbol=symbol,
        name=INDEX_NAMES.get(symbol, symbol),
        price=round(price, 2),
        change_percent=round(change_percent, 2),
        trend=trend,
        above_200dma=bool(ma200) and price > ma200,
        momentum=classify_momentum(trend, change_percent),
    )


def breadth_health(pct_above_200dma: float, advance_decline_ratio: float) -> BreadthHealth:
    if pct_above_200dma >= 60 and advance_decline_ratio >= 1.2:
        return "STRONG"
    if pct_above_200dma <= 40 or advance_decline_ratio < 0.8:
        return "WEAK"
    return "NEUTRAL"


def build_breadth(
    pct_above_200dma: float,
    advance_decline_ratio: float,
    new_highs_lows_ratio: float | None = None,
) -> BreadthData:
    pct = round(clamp(pct_above_200dma, 0, 100), 1)
    ad = round(advance_decline_ratio, 2)
    nh_nl = new_highs_lows_ratio if new_highs_lows_ratio is not None else ad * 0.8
    return BreadthData(
        pct_above_200dma=pct,
        advance_decline_ratio=ad,
        new_highs_lows_ratio=round(nh_nl, 2),
        health=breadth_health(pct, ad),
    )


def estimate_breadth_from_indices(index_changes: list[float]) -> BreadthData:
    """
    Approximate breadth from average index change when constituent data is missing.

    Args:
        index_changes: Daily % changes of SPY, QQQ and IWM

    Returns:
        BreadthData with pct clamped to [20, 80] and A/D to [0.3, 2.5]
    """
    avg = sum(index_changes) / len(index_changes) if index_changes else 0.0
    if avg > 1:
        pct = 65 + min(2 * avg, 15)
        ad = 1.5 + min(0.2 * avg, 0.5)
    elif avg > -1:
        pct = 50 + 10 * avg
        ad = 1 + 0.3 * avg
    else:
        pct = 35 + max(2 * avg, -15)
        ad = 0.6 + max(0.1 * avg, -0.3)
    return build_breadth(clamp(pct, 20, 80), clamp(ad, 0.3, 2.5))


def breadth_from_sectors(
    above_200dma: list[bool],
    sector_changes: list[float],
) -> BreadthData:
    """
    Breadth across the sector ETF universe.

    pct = share of sector ETFs above their 200DMA; A/D = advancing / declining
    sectors (capped at 2.5 when nothing declined).
    """
    pct = sum(above_200dma) / len(above_200dma) * 100 if above_200dma else 50.0
    advancing = sum(1 for c in sector_changes if c > 0)
    declining = sum(1 for c in sector_changes if c < 0)
    if declining == 0:
        ad = 2.5 if advancing else 1.0
    else:
        ad = min(advancing / declining, 2.5)
    return build_breadth(pct, ad)


def build_sector_state(symbol: str, change_percent: float, spy_change_percent: float) -> SectorState:
    rs = round(change_percent - spy_change_percent, 2)
    if rs > 0.5 and change_percent > 0:
        trend: SectorTrend = "LEADING"
    elif rs < -0.5 and change_percent < 0:
        trend = "LAGGING"
    else:
        trend = "NEUTRAL"
    return SectorState(
        symbol=symbol,
        name=SECTOR_ETFS.get(symbol, symbol),
        change_percent=round(change_percent, 2),
        relative_strength=rs,
        trend=trend,
    )


def sort_sectors(sectors: list[SectorState]) -> list[SectorState]:
    """Strongest relative strength first; ties keep input order."""
    return sorted(sectors, key=lambda s: s.relative_strength, reverse=True)


def build_volatility(vix_level: float | None, change_percent: float | None) -> VolatilityData:
    if vix_level is None:
        return VolatilityData(vix_level=DEFAULT_VIX, vix_trend="SIDEWAYS", is_elevated=False)
    change = change_percent or 0.0
    if change > 5:
        trend: Trend = "UP"
    elif change < -5:
        trend = "DOWN"
    else:
        trend = "SIDEWAYS"
    return VolatilityData(
        vix_level=round(vix_level, 2),
        vix_trend=trend,
        is_elevated=vix_level > VIX_ELEVATED_LEVEL,
    )


# ============================================================================
# REGIME EVALUATION
# ============================================================================


def evaluate_market_regime(
    indices: list[IndexState],
    breadth: BreadthData,
    volatility: VolatilityData,
) -> RegimeEvaluation:
    """
    Classify the market regime from additive risk-on/risk-off points.

    Reasons are appended in evaluation order and the regime label is
    always first.

    Args:
        indices: Major index states (SPY, QQQ, DIA, IWM)
        breadth: Market breadth
        volatility: VIX state

    Returns:
        RegimeEvaluation with RISK_ON (net >= 30), RISK_OFF (net <= -30) or NEUTRAL
    """
    risk_on = 0
    risk_off = 0
    reasons: list[str] = []
    total = len(indices)

    up = sum(1 for i in indices if i.trend == "UP")
    down = sum(1 for i in indices if i.trend == "DOWN")
    if up >= 3:
        risk_on += 25
        reasons.append(f"{up}/{total} major indices trending UP")
    elif down >= 3:
        risk_off += 25
        reasons.append(f"{down}/{total} major indices trending DOWN")
    else:
        reasons.append("Mixed index trends")

    above = sum(1 for i in indices if i.above_200dma)
    if above >= 3:
        risk_on += 20
        reasons.append(f"{above}/{total} indices above 200-day MA")
    elif above <= 1:
        risk_off += 20
        reasons.append(f"Only {above}/{total} indices above 200-day MA")

    spy = next((i for i in indices if i.symbol == "SPY"), None)
    if spy is not None:
        if spy.momentum == "POSITIVE":
            risk_on += 10
        elif spy.momentum == "NEGATIVE":
            risk_off += 10

    pct = f"{breadth.pct_above_200dma:.1f}%"
    if breadth.health == "STRONG":
        risk_on += 25
        reasons.append(f"Strong breadth: {pct} above 200DMA")
    elif breadth.health == "WEAK":
        risk_off += 25
        reasons.append(f"Weak breadth: {pct} above 200DMA")
    else:
        reasons.append(f"Neutral breadth: {pct} above 200DMA")

    ad = breadth.advance_decline_ratio
    if ad > 1.5:
        risk_on += 10
        reasons.append(f"Advance/Decline ratio favorable: {ad:.2f}")
    elif ad < 0.7:
        risk_off += 10
        reasons.append(f"Advance/Decline ratio weak: {ad:.2f}")

    if volatility.is_elevated:
        risk_off += 15
        reasons.append(f"Elevated volatility (VIX: {volatility.vix_level:.1f})")
    elif volatility.vix_level < VIX_LOW_LEVEL:
        risk_on += 10
        reasons.append(f"Low volatility (VIX: {volatility.vix_level:.1f})")

    if volatility.vix_trend == "UP":
        risk_off += 5
    elif volatility.vix_trend == "DOWN":
        risk_on += 5

    net = risk_on - risk_off
    if net >= RISK_ON_THRESHOLD:
        regime: MarketRegime = "RISK_ON"
        confidence: ConfidenceLevel = "HIGH" if net >= HIGH_CONFIDENCE_THRESHOLD else "MEDIUM"
        reasons.insert(0, "Market regime: RISK ON")
    elif net <= -RISK_ON_THRESHOLD:
        regime = "RISK_OFF"
        confidence = "HIGH" if net <= -HIGH_CONFIDENCE_THRESHOLD else "MEDIUM"
        reasons.insert(0, "Market regime: RISK OFF")
    else:
        regime = "NEUTRAL"
        confidence = "HIGH" if abs(net) < NEUTRAL_HIGH_CONFIDENCE_BAND else "MEDIUM"
        reasons.insert(0, "Market regime: NEUTRAL")

    logger.debug(f"Market regime {regime} (on={risk_on}, off={risk_off}, net={net})")
    return RegimeEvaluation(
        regime=regime,
        confidence=confidence,
        reasons=reasons,
        risk_on_score=risk_on,
        risk_off_score=risk_off,
        net_score=net,
    )


# ============================================================================
# FALLBACK & SUMMARY
# ============================================================================


def default_indices() -> list[IndexState]:
    return [
        IndexState(
            symbol=symbol,
            name=name,
            price=0.0,
            change_percent=0.0,
            trend="SIDEWAYS",
            above_200dma=True,
            momentum="NEUTRAL",
        )
        for symbol, name in INDEX_NAMES.items()
    ]


def fallback_market_context(
    fetched_at: str,
    providers_failed: list[str] | None = None,
    warnings: list[str] | None = None,
) -> MarketContext:
    """Flagged demo context used when market data cannot be fetched."""
    return MarketContext(
        regime="NEUTRAL",
        confidence="LOW",
        regime_reasons=[
            "Market regime: NEUTRAL",
            "Market data unavailable - using demo snapshot",
        ],
        indices=default_indices(),
        breadth=BreadthData(
            pct_above_200dma=50.0,
            advance_decline_ratio=1.0,
            new_highs_lows_ratio=1.0,
            health="NEUTRAL",
        ),
        sectors=[],
        volatility=VolatilityData(vix_level=DEFAULT_VIX, vix_trend="SIDEWAYS", is_elevated=False),
        is_demo_mode=True,
        meta=MarketContextMeta(
            fetched_at=fetched_at,
            providers_failed=list(providers_failed or []),
            warnings=list(warnings or []) or ["Using demo market snapshot"],
        ),
    )


_CONTEXT_LABELS: dict[str, str] = {
    "RISK_ON": "Supportive",
    "NEUTRAL": "Mixed",
    "RISK_OFF": "Cautious",
}

_DEFAULT_DESCRIPTIONS: dict[str, str] = {
    "RISK_ON": "Market conditions are generally favorable.",
    "RISK_OFF": "Market conditions suggest caution.",
    "NEUTRAL": "Market indicators are showing a mixed picture.",
}


def derive_market_context_info(regime: MarketRegime, reasons: list[str]) -> MarketContextInfo:
    """Label plus a short description from the first two non-header reasons."""
    details = [r for r in reasons if "market regime" not in r.lower()][:2]
    if details:
        description = ". ".join(details) + "."
    else:
        description = _DEFAULT_DESCRIPTIONS.get(regime, _DEFAULT_DESCRIPTIONS["NEUTRAL"])
    return MarketContextInfo(
        regime=regime,
        label=_CONTEXT_LABELS.get(regime, "Mixed"),
        description=description,
    )
