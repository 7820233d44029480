"""Sector regime classification (FAVORED / NEUTRAL / AVOID)."""

from dataclasses import dataclass
from typing import Literal

from stock_decision.engines.market_regime import SECTOR_ETFS, MarketContext
from stock_decision.engines.types import ConfidenceLevel, SectorRegime

RelativeStrength = Literal["UP", "FLAT", "DOWN"]
TrendHealth = Literal["STRONG", "NEUTRAL", "WEAK"]
VolatilityLevel = Literal["LOW", "NORMAL", "HIGH"]
MacroAlignment = Literal["TAILWIND", "NEUTRAL", "HEADWIND"]

# Fallback sectors for large caps when the provider omits one
SYMBOL_SECTOR_FALLBACK: dict[str, str] = {
    "AAPL": "Technology",
    "MSFT": "Technology",
    "NVDA": "Technology",
    "CRM": "Technology",
    "AMD": "Technology",
    "ORCL": "Technology",
    "ADBE": "Technology",
    "GOOGL": "Communication Services",
    "META": "Communication Services",
    "NFLX": "Communication Services",
    "AMZN": "Consumer Discretionary",
    "TSLA": "Consumer Discretionary",
    "HD": "Consumer Discretionary",
    "JPM": "Financial Services",
    "V": "Financial Services",
    "MA": "Financial Services",
    "BRK.B": "Financial Services",
    "BRK-B": "Financial Services",
    "COST": "Consumer Staples",
    "LLY": "Healthcare",
    "UNH": "Healthcare",
}

# yfinance sector names that differ from the sector ETF names
_SECTOR_ALIASES: dict[str, str] = {
    "Financial Services": "Financials",
    "Consumer Cyclical": "Consumer Discretionary",
    "Consumer Defensive": "Consumer Staples",
    "Basic Materials": "Materials",
    "Health Care": "Healthcare",
    "Information Technology": "Technology",
}


@dataclass(frozen=True)
class SectorRegimeInputs:
    sector: str
    relative_strength: RelativeStrength
    trend_health: TrendHealth
    volatility: VolatilityLevel
    macro_alignment: MacroAlignment


@dataclass(frozen=True)
class SectorRegimeResult:
    sector: str
    regime: SectorRegime
    confidence: ConfidenceLevel
    score: int
    reasons: list[str]


def evaluate_sector_regime(inputs: SectorRegimeInputs) -> SectorRegimeResult:
    """
    Additive +/-1 scorer over four categorical inputs.

    Returns:
        FAVORED (score >= 2), AVOID (score <= -2) or NEUTRAL; HIGH confidence at |score| >= 3
    """
    score = 0
    reasons: list[str] = []

    if inputs.relative_strength == "UP":
        score += 1
        reasons.append("Sector outperforming market")
    elif inputs.relative_strength == "DOWN":
        score -= 1
        reasons.append("Sector underperforming market")

    if inputs.trend_health == "STRONG":
        score += 1
        reasons.append("Sector trend structurally strong")
    elif inputs.trend_health == "WEAK":
        score -= 1
        reasons.append("Sector trend weakening")

    if inputs.volatility == "HIGH":
        score -= 1
        reasons.append("Sector volatility elevated")
    elif inputs.volatility == "LOW":
        score += 1
        reasons.append("Sector volatility stable")

    if inputs.macro_alignment == "TAILWIND":
        score += 1
        reasons.append("Macro environment supportive")
    elif inputs.macro_alignment == "HEADWIND":
        score -= 1
        reasons.append("Macro environment unsupportive")

    if score >= 2:
        regime: SectorRegime = "FAVORED"
        confidence: ConfidenceLevel = "HIGH" if score >= 3 else "MEDIUM"
    elif score <= -2:
        regime = "AVOID"
        confidence = "HIGH" if score <= -3 else "MEDIUM"
    else:
        regime = "NEUTRAL"
        confidence = "MEDIUM"

    return SectorRegimeResult(
        sector=inputs.sector,
        regime=regime,
        confidence=confidence,
        score=score,
        reasons=reasons,
    )


def normalize_sector_name(sector: str | None) -> str | None:
    if not sector:
        return None
    return _SECTOR_ALIASES.get(sector, sector)


def resolve_sector(symbol: str, sector: str | None) -> str:
    """Provider sector, else the fallback map, else "Unknown"."""
    return sector or SYMBOL_SECTOR_FALLBACK.get(symbol.upper(), "Unknown")


def derive_sector_inputs(sector: str, context: MarketContext) -> SectorRegimeInputs:
    """
    Map a market context onto sector regime inputs.

    Relative strength comes from the sector ETF's trend; trend health and
    macro alignment follow the market regime; volatility follows VIX.
    """
    name = normalize_sector_name(sector) or sector
    state = next((s for s in context.sectors if s.name == name), None)
    if state is None:
        etf_symbol = next((sym for sym, label in SECTOR_ETFS.items() if label == name), None)
        state = next((s for s in context.sectors if s.symbol == etf_symbol), None)

    relative_strength: RelativeStrength = "FLAT"
    if state is not None and state.trend == "LEADING":
        relative_strength = "UP"
    elif state is not None and state.trend == "LAGGING":
        relative_strength = "DOWN"

    if context.regime == "RISK_ON":
        trend_health: TrendHealth = "STRONG"
        macro: MacroAlignment = "TAILWIND"
    elif context.regime == "RISK_OFF":
        trend_health = "WEAK"
        macro = "HEADWIND"
    else:
        trend_health = "NEUTRAL"
        macro = "NEUTRAL"

    vix = context.volatility.vix_level
    if vix < 15:
        volatility: VolatilityLevel = "LOW"
    elif vix > 25:
        volatility = "HIGH"
    else:
        volatility = "NORMAL"

    return SectorRegimeInputs(
        sector=sector,
        relative_strength=relative_strength,
        trend_health=trend_health,
        volatility=volatility,
        macro_alignment=macro,
    )
