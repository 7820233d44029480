"""Stock snapshot: canonical, immutable view of one symbol.

``build_snapshot`` is the pure normalizer (raw yfinance payloads in,
StockSnapshot out). ``fetch_snapshot`` runs the provider calls concurrently
with all-settled semantics and degrades confidence instead of failing.
"""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import pandas as pd

from stock_decision.data import yfinance_client
from stock_decision.data.cache import FALLBACK_SNAPSHOT_TTL, TTLCache
from stock_decision.data.provider_guard import ProviderGuard
from stock_decision.engines.confidence import ConfidenceFactors, evaluate_confidence
from stock_decision.utils.indicators import (
    calculate_atr,
    calculate_rsi,
    calculate_sma,
    classify_trend,
    classify_weekly_trend,
    last_value,
)
from stock_decision.utils.sanitize import sanitize_text
from stock_decision.utils.validators import FetchParams, validate_symbol

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = float(os.environ.get("FETCH_TIMEOUT_SECONDS", "20"))

# Analyst consensus labels on the 1 (Strong Sell) .. 5 (Strong Buy) scale
RATING_SCALE: dict[str, float] = {
    "Strong Buy": 5,
    "Buy": 4,
    "Hold": 3,
    "Sell": 2,
    "Strong Sell": 1,
}

EMERGENCY_FALLBACK_PRICE = 100.0


# ============================================================================
# RECORDS
# ============================================================================


@dataclass(frozen=True)
class HistoricalPrice:
    date: str
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Fundamentals:
    revenue_growth_yoy: list[float] = field(default_factory=list)
    eps_growth_yoy: list[float] = field(default_factory=list)
    pe_ratio: float | None = None
    forward_pe: float | None = None
    pb_ratio: float | None = None
    debt_to_equity: float | None = None
    profit_margin: float | None = None
    fcf_yield: float | None = None


@dataclass(frozen=True)
class Technicals:
    rsi14: float = 50.0
    atr14: float = 0.0
    atr_percent: float = 0.0
    sma20: float = 0.0
    sma50: float = 0.0
    sma200: float = 0.0
    price_vs_ma50: float = 0.0
    price_vs_ma200: float = 0.0
    daily_trend: str = "SIDEWAYS"
    weekly_trend: str = "SIDEWAYS"
    avg_volume20: float | None = None


@dataclass(frozen=True)
class RecommendationTrend:
    strong_buy: int = 0
    buy: int = 0
    hold: int = 0
    sell: int = 0
    strong_sell: int = 0


@dataclass(frozen=True)
class Sentiment:
    analyst_rating: float | None = None
    analyst_price_target: float | None = None
    institutional_ownership: float | None = None
    institutional_trend: str | None = None
    top_holders: list[str] = field(default_factory=list)
    insider_buying: bool | None = None
    short_interest: float | None = None
    put_call_ratio: float | None = None
    recommendation_trend: RecommendationTrend | None = None
    news_count: int | None = None


@dataclass(frozen=True)
class OptionsData:
    implied_volatility: float | None = None
    iv_rank: float | None = None
    put_call_ratio: float | None = None
    call_open_interest: float = 0.0
    put_open_interest: float = 0.0
    total_open_interest: float = 0.0


@dataclass(frozen=True)
class EventCalendar:
    next_earnings_date: str | None = None
    days_to_earnings: int | None = None
    ex_dividend_date: str | None = None
    days_to_ex_dividend: int | None = None


@dataclass(frozen=True)
class SnapshotMeta:
    data_freshness: str
    providers_used: list[str] = field(default_factory=list)
    providers_failed: list[str] = field(default_factory=list)
    confidence: str = "HIGH"
    confidence_score: int = 100
    confidence_reasons: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    is_fallback: bool = False


@dataclass(frozen=True)
class StockSnapshot:
    """Point-in-time normalized view of one symbol. Never mutated after construction."""

    symbol: str
    company_name: str
    sector: str | None
    industry: str | None
    price: float
    change: float
    change_percent: float
    volume: float
    market_cap: float | None
    fundamentals: Fundamentals
    technicals: Technicals
    sentiment: Sentiment
    options: OptionsData | None
    events: EventCalendar
    historical_prices: list[HistoricalPrice]
    meta: SnapshotMeta


# ============================================================================
# NORMALIZER
# ============================================================================


def _num(value: Any) -> float | None:
    """Float or None for missing/NaN values."""
    if not yfinance_client.has_value(value):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _pct(value: Any) -> float | None:
    """Convert a yfinance fraction (0.12) to a percentage (12.0)."""
    v = _num(value)
    return round(v * 100, 2) if v is not None else None


def _days_until(iso_date: str | None, today: datetime) -> int | None:
    if not iso_date:
        return None
    try:
        target = datetime.strptime(iso_date, "%Y-%m-%d").date()
    except ValueError:
        return None
    days = (target - today.date()).days
    return days if days >= 0 else None


def analyst_rating_from_info(info: dict[str, Any]) -> float | None:
    """
    Analyst rating on the 1 (Strong Sell) .. 5 (Strong Buy) scale.

    yfinance's recommendationMean runs the other way (1 = Strong Buy), so it
    is inverted; recommendationKey is the fallback.
    """
    mean = _num(info.get("recommendationMean"))
    if mean is not None and 1 <= mean <= 5:
        return round(6 - mean, 2)
    key = str(info.get("recommendationKey") or "").replace("_", " ").title()
    return RATING_SCALE.get(key)


def compute_technicals(history: pd.DataFrame, price: float) -> Technicals:
    """Indicators from a standardized OHLCV frame (oldest first)."""
    closes = history["close"].astype(float)
    sma20 = last_value(calculate_sma(closes, 20)) or 0.0
    sma50 = last_value(calculate_sma(closes, 50)) or 0.0
    sma200 = last_value(calculate_sma(closes, 200)) or 0.0
    rsi = last_value(calculate_rsi(closes, 14))
    atr = last_value(
        calculate_atr(history["high"].astype(float), history["low"].astype(float), closes, 14)
    ) or 0.0

    volumes = history["volume"].astype(float).dropna()
    avg_volume20 = float(volumes.iloc[-20:].mean()) if len(volumes) >= 20 else None

    return Technicals(
        rsi14=round(rsi, 2) if rsi is not None else 50.0,
        atr14=round(atr, 4),
        atr_percent=round(atr / price * 100, 2) if price > 0 else 0.0,
        sma20=round(sma20, 4),
        sma50=round(sma50, 4),
        sma200=round(sma200, 4),
        price_vs_ma50=round((price - sma50) / sma50 * 100, 2) if sma50 > 0 else 0.0,
        price_vs_ma200=round((price - sma200) / sma200 * 100, 2) if sma200 > 0 else 0.0,
        daily_trend=classify_trend(closes),
        weekly_trend=classify_weekly_trend(closes),
        avg_volume20=avg_volume20,
    )


def _fundamentals_from_info(info: dict[str, Any]) -> Fundamentals:
    revenue = _pct(info.get("revenueGrowth"))
    eps_series = [
        v
        for v in (_pct(info.get("earningsQuarterlyGrowth")), _pct(info.get("earningsGrowth")))
        if v is not None
    ]
    fcf = _num(info.get("freeCashflow"))
    market_cap = _num(info.get("marketCap"))
    return Fundamentals(
        revenue_growth_yoy=[revenue] if revenue is not None else [],
        eps_growth_yoy=eps_series,
        pe_ratio=_num(info.get("trailingPE")),
        forward_pe=_num(info.get("forwardPE")),
        pb_ratio=_num(info.get("priceToBook")),
        debt_to_equity=_num(info.get("debtToEquity")),
        profit_margin=_pct(info.get("profitMargins")),
        fcf_yield=round(fcf / market_cap * 100, 2) if fcf is not None and market_cap else None,
    )


def build_snapshot(
    symbol: str,
    *,
    history: pd.DataFrame | None = None,
    info: dict[str, Any] | None = None,
    options: dict[str, Any] | None = None,
    calendar: dict[str, Any] | None = None,
    recommendations: dict[str, int] | None = None,
    holders: dict[str, Any] | None = None,
    insider_buying: bool | None = None,
    news_count: int | None = None,
    providers_used: list[str] | None = None,
    providers_failed: list[str] | None = None,
    warnings: list[str] | None = None,
    now: datetime | None = None,
) -> StockSnapshot:
    """
    Normalize raw provider payloads into a StockSnapshot.

    Missing sections fall back to documented defaults (RSI 50, moving
    averages 0, SIDEWAYS trends) and lower the snapshot's confidence.
    When no price can be determined at all, the emergency fallback
    snapshot is returned.

    Args:
        symbol: Ticker symbol
        history: Standardized daily OHLCV (oldest first)
        info: yfinance info dict
        options: Output of fetch_options_summary
        calendar: Output of fetch_calendar
        recommendations: Output of fetch_recommendations
        holders: Output of fetch_institutional_holders
        insider_buying: Output of fetch_insider_net_buying
        news_count: Output of fetch_news_count
        providers_used: Provider names that succeeded
        providers_failed: Provider names that failed
        warnings: Warnings gathered while fetching
        now: Reference time (defaults to current UTC time)

    Returns:
        Immutable StockSnapshot
    """
    now = now or datetime.now(timezone.utc)
    info = info or {}
    warnings = list(warnings or [])
    providers_failed = list(providers_failed or [])

    has_history = history is not None and not history.empty and history["close"].notna().any()

    price: float | None = None
    prev_close: float | None = None
    volume = 0.0
    historical: list[HistoricalPrice] = []

    if has_history:
        clean = history.dropna(subset=["close"])
        closes = clean["close"].astype(float)
        price = float(closes.iloc[-1])
        prev_close = float(closes.iloc[-2]) if len(closes) > 1 else None
        volume = _num(clean["volume"].iloc[-1]) or 0.0
        historical = [
            HistoricalPrice(
                date=str(row["date"]),
                open=_num(row["open"]) or 0.0,
                high=_num(row["high"]) or 0.0,
                low=_num(row["low"]) or 0.0,
                close=float(row["close"]),
                volume=_num(row["volume"]) or 0.0,
            )
            for row in clean.to_dict("records")
        ]
    if price is None:
        price = _num(info.get("currentPrice")) or _num(info.get("regularMarketPrice"))
        prev_close = _num(info.get("regularMarketPreviousClose")) or _num(info.get("previousClose"))
        volume = _num(info.get("regularMarketVolume")) or _num(info.get("volume")) or 0.0

    if price is None or price <= 0:
        logger.warning(f"{symbol}: no price from any provider, using emergency fallback")
        return emergency_fallback_snapshot(symbol, providers_failed, now)

    change = price - prev_close if prev_close else 0.0
    change_percent = change / prev_close * 100 if prev_close else 0.0

    has_technicals = has_history and len(historical) >= 20
    if has_technicals:
        technicals = compute_technicals(history.dropna(subset=["close"]), price)
    else:
        technicals = Technicals()
        warnings.append("Insufficient price history for technical indicators; using defaults")

    has_fundamentals = any(
        yfinance_client.has_value(info.get(k)) for k in yfinance_client.INFO_CORE_FUND_SENTINELS
    )
    fundamentals = _fundamentals_from_info(info)

    rec_trend = None
    if recommendations:
        rec_trend = RecommendationTrend(
            strong_buy=recommendations.get("strongBuy", 0),
            buy=recommendations.get("buy", 0),
            hold=recommendations.get("hold", 0),
            sell=recommendations.get("sell", 0),
            strong_sell=recommendations.get("strongSell", 0),
        )

    options_data = None
    if options:
        call_oi = options.get("call_open_interest") or 0.0
        put_oi = options.get("put_open_interest") or 0.0
        options_data = OptionsData(
            implied_volatility=options.get("implied_volatility"),
            iv_rank=options.get("iv_rank"),
            put_call_ratio=options.get("put_call_ratio"),
            call_open_interest=call_oi,
            put_open_interest=put_oi,
            total_open_interest=call_oi + put_oi,
        )

    sentiment = Sentiment(
        analyst_rating=analyst_rating_from_info(info),
        analyst_price_target=_num(info.get("targetMeanPrice")),
        institutional_ownership=_pct(info.get("heldPercentInstitutions")),
        institutional_trend=(holders or {}).get("trend"),
        top_holders=list((holders or {}).get("top_holders") or []),
        insider_buying=insider_buying,
        short_interest=_pct(info.get("shortPercentOfFloat")),
        put_call_ratio=options_data.put_call_ratio if options_data else None,
        recommendation_trend=rec_trend,
        news_count=news_count,
    )
    has_sentiment = sentiment.analyst_rating is not None or rec_trend is not None

    calendar = calendar or {}
    events = EventCalendar(
        next_earnings_date=calendar.get("next_earnings_date"),
        days_to_earnings=_days_until(calendar.get("next_earnings_date"), now),
        ex_dividend_date=calendar.get("ex_dividend_date"),
        days_to_ex_dividend=_days_until(calendar.get("ex_dividend_date"), now),
    )

    used = list(providers_used or [])
    confidence = evaluate_confidence(
        ConfidenceFactors(
            providers_failed=providers_failed,
            providers_total=used + providers_failed or list(yfinance_providers()),
            has_price=True,
            has_fundamentals=has_fundamentals,
            has_technicals=has_technicals,
            has_sentiment=has_sentiment,
            has_options=options_data is not None,
        )
    )

    return StockSnapshot(
        symbol=symbol,
        company_name=sanitize_text(info.get("longName") or info.get("shortName") or symbol, 200) or symbol,
        sector=sanitize_text(info.get("sector"), 100),
        industry=sanitize_text(info.get("industry"), 100),
        price=round(price, 4),
        change=round(change, 4),
        change_percent=round(change_percent, 2),
        volume=volume,
        market_cap=_num(info.get("marketCap")),
        fundamentals=fundamentals,
        technicals=technicals,
        sentiment=sentiment,
        options=options_data,
        events=events,
        historical_prices=historical,
        meta=SnapshotMeta(
            data_freshness=now.isoformat(),
            providers_used=used,
            providers_failed=providers_failed,
            confidence=confidence.level,
            confidence_score=confidence.score,
            confidence_reasons=confidence.reasons,
            warnings=warnings,
        ),
    )


def emergency_fallback_snapshot(
    symbol: str,
    providers_failed: list[str] | None = None,
    now: datetime | None = None,
) -> StockSnapshot:
    """Clearly flagged placeholder used when every provider failed."""
    now = now or datetime.now(timezone.utc)
    return StockSnapshot(
        symbol=symbol,
        company_name=symbol,
        sector=None,
        industry=None,
        price=EMERGENCY_FALLBACK_PRICE,
        change=0.0,
        change_percent=0.0,
        volume=0.0,
        market_cap=None,
        fundamentals=Fundamentals(),
        technicals=Technicals(),
        sentiment=Sentiment(),
        options=None,
        events=EventCalendar(),
        historical_prices=[],
        meta=SnapshotMeta(
            data_freshness=now.isoformat(),
            providers_used=[],
            providers_failed=list(providers_failed or []) or ["All-Providers"],
            confidence="LOW",
            confidence_score=0,
            confidence_reasons=["Emergency fallback - all providers failed"],
            warnings=["Using emergency fallback data"],
            is_fallback=True,
        ),
    )


# ============================================================================
# FETCH
# ============================================================================

SnapshotFetchers = dict[str, Callable[[str], Awaitable[Any]]]


def _fetch_history_1y(symbol: str) -> Awaitable[pd.DataFrame]:
    return yfinance_client.fetch_history(FetchParams(symbol=symbol, period="1y", interval="1d"))


def yfinance_providers() -> SnapshotFetchers:
    """Provider name -> coroutine function(symbol). Order is the gather order."""
    return {
        "yfinance-history": _fetch_history_1y,
        "yfinance-info": yfinance_client.fetch_info,
        "yfinance-options": yfinance_client.fetch_options_summary,
        "yfinance-calendar": yfinance_client.fetch_calendar,
        "yfinance-recommendations": yfinance_client.fetch_recommendations,
        "yfinance-holders": yfinance_client.fetch_institutional_holders,
        "yfinance-insiders": yfinance_client.fetch_insider_net_buying,
        "yfinance-news": yfinance_client.fetch_news_count,
    }


async def _guarded(
    guard: ProviderGuard,
    provider: str,
    fetcher: Callable[[str], Awaitable[Any]],
    symbol: str,
    timeout: float,
) -> Any:
    return await guard.call(provider, lambda: asyncio.wait_for(fetcher(symbol), timeout))


async def fetch_snapshot(
    symbol: str,
    guard: ProviderGuard,
    cache: TTLCache | None = None,
    fetchers: SnapshotFetchers | None = None,
    timeout: float = FETCH_TIMEOUT_SECONDS,
    force_refresh: bool = False,
) -> StockSnapshot:
    """
    Fetch all provider sections concurrently and normalize them.

    A failing or timed-out provider is recorded in providers_failed and
    warnings; it never aborts the snapshot.

    Args:
        symbol: Ticker symbol
        guard: Circuit-breaker registry
        cache: Optional snapshot cache
        fetchers: Provider name -> coroutine function (defaults to yfinance)
        timeout: Per-provider timeout in seconds
        force_refresh: Bypass the cache read

    Returns:
        StockSnapshot (possibly the emergency fallback)

    Raises:
        ValueError: If the symbol is malformed or unknown to every provider
    """
    normalized = validate_symbol(symbol)
    cache_key = f"snapshot:{normalized}"

    if cache is not None and not force_refresh:
        cached = cache.get(cache_key)
        if cached is not None:
            logger.debug(f"{normalized}: snapshot cache hit")
            return cached

    fetchers = fetchers or yfinance_providers()
    names = list(fetchers)
    results = await asyncio.gather(
        *(_guarded(guard, name, fetchers[name], normalized, timeout) for name in names),
        return_exceptions=True,
    )

    payloads: dict[str, Any] = {}
    used: list[str] = []
    failed: list[str] = []
    warnings: list[str] = []
    unknown_symbol_errors = 0
    for name, result in zip(names, results):
        if isinstance(result, BaseException):
            if isinstance(result, asyncio.CancelledError):
                raise result
            failed.append(name)
            if isinstance(result, asyncio.TimeoutError):
                warnings.append(f"{name} timed out after {timeout:.0f}s")
            else:
                warnings.append(f"{name} unavailable: {result}")
            if isinstance(result, ValueError) and name in ("yfinance-history", "yfinance-info"):
                unknown_symbol_errors += 1
        else:
            payloads[name] = result
            used.append(name)

    if unknown_symbol_errors == 2:
        raise ValueError(f"No data found for symbol {normalized}")

    snapshot = build_snapshot(
        normalized,
        history=payloads.get("yfinance-history"),
        info=payloads.get("yfinance-info"),
        options=payloads.get("yfinance-options"),
        calendar=payloads.get("yfinance-calendar"),
        recommendations=payloads.get("yfinance-recommendations"),
        holders=payloads.get("yfinance-holders"),
        insider_buying=payloads.get("yfinance-insiders"),
        news_count=payloads.get("yfinance-news"),
        providers_used=used,
        providers_failed=failed,
        warnings=warnings,
    )

    if cache is not None:
        ttl = FALLBACK_SNAPSHOT_TTL if snapshot.meta.is_fallback else None
        cache.set(cache_key, snapshot, ttl=ttl)

    logger.info(
        f"{normalized}: snapshot built (confidence={snapshot.meta.confidence}, "
        f"failed={len(failed)}/{len(names)})"
    )
    return snapshot
