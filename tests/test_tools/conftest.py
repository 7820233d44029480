"""Fixtures for tool-level tests: a ToolContext wired to fakes."""

from datetime import date, datetime, timezone

import pytest

from stock_decision.data.provider_guard import ProviderGuard
from stock_decision.engines.phase3 import ConfirmationCooldown
from stock_decision.engines.regime_stability import RegimeStabilityTracker
from stock_decision.engines.tracking import PlaybookTrackingStore
from stock_decision.tools.context import ToolContext

FIXED_NOW = datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc)


class StaticMarket:
    """Stands in for MarketContextEngine with a fixed context."""

    cache = None

    def __init__(self, context=None, error: Exception | None = None):
        self.context = context
        self.error = error
        self.calls = 0
        self.invalidations = 0

    async def get_market_context(self, force_refresh: bool = False):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.context

    def invalidate(self) -> None:
        self.invalidations += 1


@pytest.fixture
def fake_fetchers(history_factory, sample_info):
    """Snapshot fetchers serving one healthy symbol; NOPE is unknown everywhere."""
    history = history_factory()

    async def fetch_history(symbol):
        if symbol == "NOPE":
            raise ValueError(f"No price data for {symbol}")
        return history

    async def fetch_info(symbol):
        if symbol == "NOPE":
            raise ValueError(f"No info for {symbol}")
        return sample_info

    async def fetch_calendar(symbol):
        return {"next_earnings_date": "2099-01-15"}

    return {
        "yfinance-history": fetch_history,
        "yfinance-info": fetch_info,
        "yfinance-calendar": fetch_calendar,
    }


@pytest.fixture
def price_closes():
    """Closes served by the fake price fetcher, keyed by symbol."""
    return {}


@pytest.fixture
def tool_context_factory(tmp_path, fake_fetchers, market_context_factory, price_closes):
    contexts: list[ToolContext] = []

    def make(market_error: Exception | None = None, **context_kwargs) -> ToolContext:
        async def price_fetcher(symbol, since, limit):
            return list(price_closes.get(symbol, []))[:limit]

        ctx = ToolContext(
            guard=ProviderGuard(),
            market=StaticMarket(market_context_factory(**context_kwargs), error=market_error),
            cooldown=ConfirmationCooldown(clock=lambda: FIXED_NOW.timestamp()),
            stability=RegimeStabilityTracker(today=lambda: date(2024, 6, 3)),
            tracking=PlaybookTrackingStore(str(tmp_path / f"tracking-{len(contexts)}"), now=lambda: FIXED_NOW),
            fetchers=fake_fetchers,
            price_fetcher=price_fetcher,
        )
        contexts.append(ctx)
        return ctx

    yield make
    for ctx in contexts:
        ctx.tracking.close()


@pytest.fixture
def tool_context(tool_context_factory) -> ToolContext:
    return tool_context_factory()
