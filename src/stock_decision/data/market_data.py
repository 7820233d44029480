"""Market context engine: index, sector ETF and VIX data to a cached MarketContext."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from datetime import datetime, timezone

import pandas as pd

from stock_decision.data import yfinance_client
from stock_decision.data.cache import FALLBACK_SNAPSHOT_TTL, TTLCache
from stock_decision.data.provider_guard import ProviderGuard
from stock_decision.data.snapshot import FETCH_TIMEOUT_SECONDS
from stock_decision.engines.market_regime import (
    INDEX_NAMES,
    SECTOR_ETFS,
    VIX_SYMBOL,
    IndexState,
    MarketContext,
    MarketContextMeta,
    SectorState,
    breadth_from_sectors,
    build_index_state,
    build_sector_state,
    build_volatility,
    estimate_breadth_from_indices,
    evaluate_market_regime,
    fallback_market_context,
    sort_sectors,
)
from stock_decision.utils.indicators import calculate_sma, last_value
from stock_decision.utils.validators import FetchParams

logger = logging.getLogger(__name__)

MARKET_PROVIDER = "yfinance-market"
CONTEXT_CACHE_KEY = "market_context"
MIN_SECTORS_FOR_BREADTH = 6

HistoryFetcher = Callable[[str], Awaitable[pd.DataFrame]]


async def _fetch_history_1y(symbol: str) -> pd.DataFrame:
    return await yfinance_client.fetch_history(FetchParams(symbol=symbol, period="1y", interval="1d"))


def summarize_history(history: pd.DataFrame | None) -> tuple[float, float, float | None] | None:
    """
    Latest close, day change % and 200-day SMA from a standardized frame.

    Returns:
        (price, change_percent, ma200) or None when the frame has no closes
    """
    if history is None or history.empty:
        return None
    closes = history["close"].dropna().astype(float)
    if closes.empty:
        return None
    price = float(closes.iloc[-1])
    prev = float(closes.iloc[-2]) if len(closes) > 1 else price
    change = (price - prev) / prev * 100 if prev else 0.0
    ma200 = last_value(calculate_sma(closes, 200))
    return price, change, ma200


class MarketContextEngine:
    """
    Builds and caches the market-wide context.

    One instance is shared by the server; tests construct their own with a
    fake history fetcher and a tmp_path cache.
    """

    def __init__(
        self,
        guard: ProviderGuard,
        cache: TTLCache | None = None,
        fetch_history: HistoryFetcher | None = None,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        now: Callable[[], datetime] | None = None,
    ):
        self.guard = guard
        self.cache = cache
        self.fetch_history = fetch_history or _fetch_history_1y
        self.timeout = timeout
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()

    async def get_market_context(self, force_refresh: bool = False) -> MarketContext:
        """
        Cached market context, rebuilt on expiry or when force_refresh is set.

        Never raises for upstream failures; returns the demo fallback instead.
        """
        if not force_refresh:
            cached = self._cached()
            if cached is not None:
                return cached

        async with self._lock:
            if not force_refresh:
                cached = self._cached()
                if cached is not None:
                    return cached
            context = await self._build()
            if self.cache is not None:
                ttl = FALLBACK_SNAPSHOT_TTL if context.is_demo_mode else None
                self.cache.set(CONTEXT_CACHE_KEY, context, ttl=ttl)
            return context

    def invalidate(self) -> None:
        if self.cache is not None:
            self.cache.delete(CONTEXT_CACHE_KEY)
            logger.info("Market context cache invalidated")

    def _cached(self) -> MarketContext | None:
        if self.cache is None:
            return None
        cached = self.cache.get(CONTEXT_CACHE_KEY)
        if cached is None:
            return None
        logger.debug("Market context cache hit")
        return replace(cached, meta=replace(cached.meta, cache_hit=True))

    async def _fetch(self, symbol: str) -> pd.DataFrame:
        return await self.guard.call(
            MARKET_PROVIDER,
            lambda: asyncio.wait_for(self.fetch_history(symbol), self.timeout),
        )

    async def _build(self) -> MarketContext:
        fetched_at = self._now().isoformat()
        symbols = [*INDEX_NAMES, *SECTOR_ETFS, VIX_SYMBOL]
        results = await asyncio.gather(
            *(self._fetch(symbol) for symbol in symbols),
            return_exceptions=True,
        )

        summaries: dict[str, tuple[float, float, float | None]] = {}
        failed: list[str] = []
        warnings: list[str] = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                failed.append(symbol)
                warnings.append(f"{symbol} unavailable: {result}")
                continue
            summary = summarize_history(result)
            if summary is None:
                failed.append(symbol)
                warnings.append(f"{symbol} returned no price history")
            else:
                summaries[symbol] = summary

        index_symbols = [s for s in INDEX_NAMES if s in summaries]
        if not index_symbols:
            logger.warning(f"Market data unavailable ({len(failed)} symbols failed), using demo snapshot")
            return fallback_market_context(fetched_at, failed, warnings)

        indices: list[IndexState] = []
        for symbol in INDEX_NAMES:
            if symbol in summaries:
                price, change, ma200 = summaries[symbol]
                indices.append(build_index_state(symbol, price, change, ma200))
            else:
                indices.append(build_index_state(symbol, 0.0, 0.0, None))

        spy_change = summaries["SPY"][1] if "SPY" in summaries else 0.0
        sector_symbols = [s for s in SECTOR_ETFS if s in summaries]
        sectors: list[SectorState] = sort_sectors(
            [build_sector_state(s, summaries[s][1], spy_change) for s in sector_symbols]
        )

        if len(sector_symbols) >= MIN_SECTORS_FOR_BREADTH:
            breadth = breadth_from_sectors(
                [bool(summaries[s][2]) and summaries[s][0] > summaries[s][2] for s in sector_symbols],
                [summaries[s][1] for s in sector_symbols],
            )
        else:
            warnings.append("Breadth estimated from index changes")
            breadth = estimate_breadth_from_indices(
                [summaries[s][1] for s in ("SPY", "QQQ", "IWM") if s in summaries]
            )

        vix = summaries.get(VIX_SYMBOL)
        volatility = build_volatility(vix[0] if vix else None, vix[1] if vix else None)
        if vix is None:
            warnings.append("VIX unavailable, using default level")

        evaluation = evaluate_market_regime(indices, breadth, volatility)
        confidence = evaluation.confidence
        if failed and confidence == "HIGH":
            confidence = "MEDIUM"

        logger.info(
            f"Market context built: {evaluation.regime} ({confidence}), "
            f"failed={len(failed)}/{len(symbols)}"
        )
        return MarketContext(
            regime=evaluation.regime,
            confidence=confidence,
            regime_reasons=evaluation.reasons,
            indices=indices,
            breadth=breadth,
            sectors=sectors,
            volatility=volatility,
            is_demo_mode=False,
            meta=MarketContextMeta(
                fetched_at=fetched_at,
                providers_failed=failed,
                warnings=warnings,
                market_state=yfinance_client.get_market_state()["state"],
            ),
        )
