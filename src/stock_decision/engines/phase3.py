"""Phase 3 confirmation: five pass/fail checks on an existing decision.

Phase 3 only confirms or withholds confirmation. It never changes scores
computed upstream, never forces an action and never overrides a block.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from stock_decision.data.snapshot import StockSnapshot

logger = logging.getLogger(__name__)

ConfirmationLevel = Literal["STRONG", "WEAK", "NONE"]
CONFIRMATION_LEVELS: tuple[str, ...] = ("STRONG", "WEAK", "NONE")
_LEVEL_ORDER = {"NONE": 0, "WEAK": 1, "STRONG": 2}

POINTS: dict[str, int] = {
    "TREND": 3,
    "VOLUME": 2,
    "VOLATILITY": 2,
    "ALIGNMENT": 2,
    "EVENT_SAFETY": 1,
}
STRONG_MIN_SCORE = 8
WEAK_MIN_SCORE = 4

TREND_MA_BUFFER = 0.01
VOLUME_MIN_MULTIPLE = 1.0
VOLUME_STRONG_MULTIPLE = 1.5
MAX_ATR_PERCENT = 5.0
ATR_TREND_THRESHOLD = 0.5
MIN_DAYS_TO_EARNINGS = 5
SAFE_DAYS_TO_EARNINGS = 14

DEFAULT_ATR_PERCENT = 2.0
PREV_ATR_FACTOR = 1.1

COOLDOWN_SECONDS = 24 * 60 * 60
MATERIAL_SCORE_DROP = 3


@dataclass(frozen=True)
class Phase3Input:
    current_price: float
    ma50: float
    ma200: float
    current_volume: float
    avg_volume: float
    atr_percent: float
    atr_percent_prev: float
    market_regime: str
    sector_regime: str
    days_to_earnings: int | None = None


@dataclass(frozen=True)
class Phase3Signal:
    name: str
    label: str
    passed: bool
    points: int
    max_points: int
    reason: str


@dataclass(frozen=True)
class Phase3Result:
    confirmation_score: int
    confirmation_level: ConfirmationLevel
    confirmations: list[Phase3Signal]
    blockers: list[Phase3Signal]
    max_possible_score: int
    score_percentage: float
    all_signals: list[Phase3Signal] = field(default_factory=list)


def _signal(name: str, label: str, passed: bool, reason: str) -> Phase3Signal:
    max_points = POINTS[name]
    return Phase3Signal(
        name=name,
        label=label,
        passed=passed,
        points=max_points if passed else 0,
        max_points=max_points,
        reason=reason,
    )


def evaluate_trend_signal(inp: Phase3Input) -> Phase3Signal:
    above_ma50 = inp.current_price > inp.ma50 * (1 - TREND_MA_BUFFER)
    above_ma200 = inp.current_price > inp.ma200 * (1 - TREND_MA_BUFFER)
    passed = above_ma50 and above_ma200

    if passed:
        reason = (
            f"Price (${inp.current_price:.2f}) above both MA50 (${inp.ma50:.2f}) "
            f"and MA200 (${inp.ma200:.2f})"
        )
    elif not above_ma50 and not above_ma200:
        reason = "Price below both moving averages - bearish structure"
    elif not above_ma50:
        reason = f"Price below MA50 (${inp.ma50:.2f}) - short-term weakness"
    else:
        reason = f"Price below MA200 (${inp.ma200:.2f}) - long-term downtrend"
    return _signal("TREND", "Trend Confirmation", passed, reason)


def evaluate_volume_signal(inp: Phase3Input) -> Phase3Signal:
    ratio = inp.current_volume / inp.avg_volume if inp.avg_volume > 0 else 0.0
    passed = ratio >= VOLUME_MIN_MULTIPLE

    if ratio >= VOLUME_STRONG_MULTIPLE:
        reason = f"Strong volume confirmation ({ratio:.1f}x average)"
    elif passed:
        reason = f"Adequate volume ({ratio:.1f}x average)"
    else:
        reason = f"Weak volume ({ratio:.1f}x average) - low conviction"
    return _signal("VOLUME", "Volume Confirmation", passed, reason)


def evaluate_volatility_signal(inp: Phase3Input) -> Phase3Signal:
    atr, prev = inp.atr_percent, inp.atr_percent_prev
    manageable = atr <= MAX_ATR_PERCENT
    stable = atr <= prev + ATR_TREND_THRESHOLD
    passed = manageable and stable

    if passed:
        if atr < prev:
            reason = f"Volatility contracting (ATR: {atr:.1f}% ↓ from {prev:.1f}%)"
        else:
            reason = f"Volatility stable (ATR: {atr:.1f}%)"
    elif not manageable:
        reason = f"High volatility (ATR: {atr:.1f}%) exceeds {MAX_ATR_PERCENT:g}% threshold"
    else:
        reason = f"Volatility expanding (ATR: {prev:.1f}% → {atr:.1f}%)"
    return _signal("VOLATILITY", "Volatility Confirmation", passed, reason)


def evaluate_alignment_signal(inp: Phase3Input) -> Phase3Signal:
    market, sector = inp.market_regime, inp.sector_regime
    market_ok = market in ("RISK_ON", "NEUTRAL")
    sector_ok = sector in ("FAVORED", "NEUTRAL")
    passed = market_ok and sector_ok

    if passed:
        strength = "Strong" if market == "RISK_ON" and sector == "FAVORED" else "Acceptable"
        reason = f"{strength} alignment: Market ({market}) + Sector ({sector})"
    elif not market_ok and not sector_ok:
        reason = f"Poor alignment: Market ({market}) + Sector ({sector}) both unfavorable"
    elif not market_ok:
        reason = f"Market regime ({market}) unfavorable"
    else:
        reason = f"Sector regime ({sector}) unfavorable"
    return _signal("ALIGNMENT", "Market & Sector Alignment", passed, reason)


def evaluate_event_safety_signal(inp: Phase3Input) -> Phase3Signal:
    days = inp.days_to_earnings
    if days is None:
        return _signal("EVENT_SAFETY", "Event Safety", True, "No imminent earnings date detected")

    passed = days >= MIN_DAYS_TO_EARNINGS
    if days >= SAFE_DAYS_TO_EARNINGS:
        reason = f"Earnings in {days} days - safe distance"
    elif passed:
        reason = f"Earnings in {days} days - proceed with caution"
    else:
        reason = f"Earnings in {days} days - too close, event risk"
    return _signal("EVENT_SAFETY", "Event Safety", passed, reason)


def confirmation_level_for(score: int) -> ConfirmationLevel:
    if score >= STRONG_MIN_SCORE:
        return "STRONG"
    if score >= WEAK_MIN_SCORE:
        return "WEAK"
    return "NONE"


def evaluate_phase3(inp: Phase3Input) -> Phase3Result:
    """
    Run the five confirmation checks.

    Returns:
        Phase3Result with STRONG (>= 8 of 10 points), WEAK (>= 4) or NONE
    """
    signals = [
        evaluate_trend_signal(inp),
        evaluate_volume_signal(inp),
        evaluate_volatility_signal(inp),
        evaluate_alignment_signal(inp),
        evaluate_event_safety_signal(inp),
    ]
    score = sum(s.points for s in signals)
    max_score = sum(s.max_points for s in signals)
    return Phase3Result(
        confirmation_score=score,
        confirmation_level=confirmation_level_for(score),
        confirmations=[s for s in signals if s.passed],
        blockers=[s for s in signals if not s.passed],
        max_possible_score=max_score,
        score_percentage=round(score / max_score * 100, 1) if max_score else 0.0,
        all_signals=signals,
    )


def build_phase3_input(
    snapshot: StockSnapshot,
    market_regime: str,
    sector_regime: str,
) -> Phase3Input:
    """
    Phase 3 inputs from an existing snapshot; no new data is fetched.

    Missing moving averages fall back to the price, average volume to the
    mean of the last 20 bars (or today's volume), ATR% to 2.0. The previous
    ATR% is not tracked and is taken as 10% above the current one.
    """
    price = snapshot.price
    technicals = snapshot.technicals

    volumes = [p.volume for p in snapshot.historical_prices[-20:]]
    if len(snapshot.historical_prices) >= 20:
        avg_volume = sum(volumes) / len(volumes)
    else:
        avg_volume = snapshot.volume

    atr_percent = technicals.atr_percent or DEFAULT_ATR_PERCENT
    return Phase3Input(
        current_price=price,
        ma50=technicals.sma50 or price,
        ma200=technicals.sma200 or price,
        current_volume=snapshot.volume,
        avg_volume=avg_volume,
        atr_percent=atr_percent,
        atr_percent_prev=atr_percent * PREV_ATR_FACTOR,
        market_regime=market_regime,
        sector_regime=sector_regime,
        days_to_earnings=snapshot.events.days_to_earnings,
    )


# ============================================================================
# COOLDOWN
# ============================================================================


@dataclass(frozen=True)
class CooldownEntry:
    level: ConfirmationLevel
    score: int
    timestamp: float
    date: str


@dataclass(frozen=True)
class CooldownDecision:
    level: ConfirmationLevel
    was_modified: bool
    reason: str


class ConfirmationCooldown:
    """
    Per-symbol memory that keeps a STRONG confirmation from flickering.

    Upgrades always apply. A STRONG level is only downgraded within the
    cooldown window when the score drops by MATERIAL_SCORE_DROP or more.
    """

    def __init__(
        self,
        cooldown_seconds: float = COOLDOWN_SECONDS,
        material_drop: int = MATERIAL_SCORE_DROP,
        clock: Callable[[], float] = time.time,
    ):
        self.cooldown_seconds = cooldown_seconds
        self.material_drop = material_drop
        self._clock = clock
        self._entries: dict[str, CooldownEntry] = {}

    def evaluate(self, symbol: str, level: ConfirmationLevel, score: int) -> CooldownDecision:
        key = symbol.upper()
        now = self._clock()
        cached = self._entries.get(key)
        entry = CooldownEntry(
            level=level,
            score=score,
            timestamp=now,
            date=datetime.fromtimestamp(now, timezone.utc).strftime("%Y-%m-%d"),
        )

        if cached is None or now - cached.timestamp > self.cooldown_seconds:
            self._entries[key] = entry
            return CooldownDecision(level, False, "New confirmation evaluation")

        if cached.level == level:
            self._entries[key] = entry
            return CooldownDecision(level, False, f"Confirmation remains {level}")

        if _LEVEL_ORDER[level] > _LEVEL_ORDER[cached.level]:
            self._entries[key] = entry
            return CooldownDecision(level, False, f"Confirmation upgraded from {cached.level} to {level}")

        if cached.level == "STRONG":
            drop = cached.score - score
            if drop >= self.material_drop:
                self._entries[key] = entry
                return CooldownDecision(
                    level,
                    False,
                    f"STRONG downgraded to {level} due to material score drop ({cached.score} → {score})",
                )
            logger.debug(f"{key}: holding STRONG confirmation (drop {drop})")
            return CooldownDecision(
                "STRONG",
                True,
                f"Keeping STRONG (score drop of {drop} pts is below {self.material_drop} pt threshold)",
            )

        self._entries[key] = entry
        return CooldownDecision(level, False, f"Confirmation changed from {cached.level} to {level}")

    def get(self, symbol: str) -> CooldownEntry | None:
        return self._entries.get(symbol.upper())

    def clear(self, symbol: str) -> None:
        self._entries.pop(symbol.upper(), None)

    def clear_all(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, object]:
        return {"symbol_count": len(self._entries), "symbols": list(self._entries)}
