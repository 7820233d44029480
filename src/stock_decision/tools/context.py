"""Shared state handed to every tool: caches, breakers and stores."""

from dataclasses import dataclass

from stock_decision.data import yfinance_client
from stock_decision.data.cache import TTLCache, market_context_cache, snapshot_cache
from stock_decision.data.market_data import MarketContextEngine
from stock_decision.data.provider_guard import ProviderGuard
from stock_decision.data.snapshot import SnapshotFetchers, StockSnapshot, fetch_snapshot
from stock_decision.engines.phase3 import ConfirmationCooldown
from stock_decision.engines.regime_stability import RegimeStabilityTracker
from stock_decision.engines.tracking import PlaybookTrackingStore, PriceFetcher


@dataclass
class ToolContext:
    """
    Explicit replacement for module-level singletons.

    The server builds one with create_default_context(); tests build their
    own with fake fetchers and tmp_path caches.
    """

    guard: ProviderGuard
    market: MarketContextEngine
    cooldown: ConfirmationCooldown
    stability: RegimeStabilityTracker
    tracking: PlaybookTrackingStore
    snapshot_cache: TTLCache | None = None
    fetchers: SnapshotFetchers | None = None
    price_fetcher: PriceFetcher = yfinance_client.fetch_closes_since

    async def snapshot(self, symbol: str, force_refresh: bool = False) -> StockSnapshot:
        return await fetch_snapshot(
            symbol,
            self.guard,
            cache=self.snapshot_cache,
            fetchers=self.fetchers,
            force_refresh=force_refresh,
        )

    def close(self) -> None:
        if self.snapshot_cache is not None:
            self.snapshot_cache.close()
        if self.market.cache is not None:
            self.market.cache.close()
        self.tracking.close()


def create_default_context(cache_dir: str | None = None) -> ToolContext:
    guard = ProviderGuard()
    return ToolContext(
        guard=guard,
        market=MarketContextEngine(guard, cache=market_context_cache(cache_dir)),
        cooldown=ConfirmationCooldown(),
        stability=RegimeStabilityTracker(),
        tracking=PlaybookTrackingStore(),
        snapshot_cache=snapshot_cache(cache_dir),
    )
