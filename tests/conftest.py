"""Pytest configuration and fixtures."""

from collections.abc import Callable
from datetime import datetime, timezone

import numpy as np
import pandas as pd
import pytest

from stock_decision.data.snapshot import StockSnapshot, build_snapshot
from stock_decision.engines.market_regime import (
    BreadthData,
    IndexState,
    MarketContext,
    MarketContextMeta,
    SectorState,
    VolatilityData,
    build_sector_state,
    sort_sectors,
)

FIXED_NOW = datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_ohlcv_df() -> pd.DataFrame:
    """Sample OHLCV DataFrame for testing."""
    return pd.DataFrame(
        {
            "Date": pd.date_range("2024-01-01", periods=10, freq="D"),
            "Open": [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5],
            "High": [101.0, 102.5, 103.0, 102.5, 104.5, 105.5, 105.0, 106.5, 107.0, 106.5],
            "Low": [99.5, 100.5, 101.0, 100.5, 102.0, 103.0, 102.5, 104.0, 105.0, 104.5],
            "Close": [100.5, 102.0, 101.5, 102.0, 104.0, 103.5, 104.5, 106.0, 105.5, 106.0],
            "Volume": [1000000] * 10,
        }
    ).set_index("Date")


@pytest.fixture
def sample_ohlcv_df_with_adj_close() -> pd.DataFrame:
    """Sample OHLCV DataFrame with Adj Close column."""
    df = pd.DataFrame(
        {
            "Date": pd.date_range("2024-01-01", periods=10, freq="D"),
            "Open": [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5],
            "High": [101.0, 102.5, 103.0, 102.5, 104.5, 105.5, 105.0, 106.5, 107.0, 106.5],
            "Low": [99.5, 100.5, 101.0, 100.5, 102.0, 103.0, 102.5, 104.0, 105.0, 104.5],
            "Close": [100.5, 102.0, 101.5, 102.0, 104.0, 103.5, 104.5, 106.0, 105.5, 106.0],
            "Adj Close": [100.0, 101.5, 101.0, 101.5, 103.5, 103.0, 104.0, 105.5, 105.0, 105.5],
            "Volume": [1000000] * 10,
        }
    ).set_index("Date")
    return df


@pytest.fixture
def sample_price_series() -> pd.Series:
    """Sample price series for indicator testing."""
    return pd.Series(
        [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5,
         107.0, 108.0, 107.5, 109.0, 110.0, 109.5, 111.0, 112.0, 111.5, 113.0,
         114.0, 113.5, 115.0, 116.0, 115.5, 117.0, 118.0, 117.5, 119.0, 120.0]
    )


@pytest.fixture
def history_factory() -> Callable[..., pd.DataFrame]:
    """Build a standardized daily OHLCV frame (oldest first) with a steady drift."""

    def make(
        bars: int = 260,
        start: float = 100.0,
        step: float = 0.5,
        volume: float = 1_000_000,
        last_volume: float | None = None,
    ) -> pd.DataFrame:
        closes = start + step * np.arange(bars)
        # Alternating wiggle gives down days so RSI stays below 100
        closes = closes + np.where(np.arange(bars) % 2 == 0, 0.6, -0.6)
        volumes = np.full(bars, float(volume))
        if last_volume is not None:
            volumes[-1] = last_volume
        dates = pd.bdate_range(end="2024-05-31", periods=bars)
        return pd.DataFrame(
            {
                "date": dates.strftime("%Y-%m-%d"),
                "open": closes - 0.3,
                "high": closes + 1.0,
                "low": closes - 1.0,
                "close": closes,
                "volume": volumes,
            }
        )

    return make


@pytest.fixture
def sample_info() -> dict:
    """yfinance-style info payload for a healthy large-cap."""
    return {
        "longName": "Example Corp",
        "sector": "Technology",
        "industry": "Software",
        "marketCap": 2_000_000_000_000,
        "revenueGrowth": 0.25,
        "earningsQuarterlyGrowth": 0.40,
        "earningsGrowth": 0.20,
        "trailingPE": 30.0,
        "forwardPE": 25.0,
        "recommendationMean": 1.8,
        "targetMeanPrice": 260.0,
        "heldPercentInstitutions": 0.72,
        "freeCashflow": 80_000_000_000,
    }


@pytest.fixture
def snapshot_factory(history_factory, sample_info) -> Callable[..., StockSnapshot]:
    """Build a StockSnapshot through the real normalizer."""

    def make(
        symbol: str = "EXMP",
        history: pd.DataFrame | None = None,
        info: dict | None = None,
        calendar: dict | None = None,
        **kwargs,
    ) -> StockSnapshot:
        return build_snapshot(
            symbol,
            history=history if history is not None else history_factory(),
            info=info if info is not None else sample_info,
            calendar=calendar if calendar is not None else {"next_earnings_date": "2024-07-25"},
            providers_used=kwargs.pop("providers_used", ["yfinance-history", "yfinance-info"]),
            now=kwargs.pop("now", FIXED_NOW),
            **kwargs,
        )

    return make


@pytest.fixture
def market_context_factory() -> Callable[..., MarketContext]:
    """Build a MarketContext directly, bypassing any fetching."""

    def make(
        regime: str = "NEUTRAL",
        vix: float = 18.0,
        breadth_health: str = "NEUTRAL",
        sector_changes: dict[str, float] | None = None,
        is_demo_mode: bool = False,
    ) -> MarketContext:
        changes = sector_changes or {"XLK": 1.5, "XLF": 0.2, "XLE": -1.2}
        sectors: list[SectorState] = sort_sectors(
            [build_sector_state(sym, chg, 0.3) for sym, chg in changes.items()]
        )
        trend = {"RISK_ON": "UP", "RISK_OFF": "DOWN"}.get(regime, "SIDEWAYS")
        return MarketContext(
            regime=regime,
            confidence="HIGH",
            regime_reasons=[f"Market regime: {regime.replace('_', ' ')}", "Mixed index trends"],
            indices=[
                IndexState(sym, sym, 400.0, 0.3, trend, trend != "DOWN", "NEUTRAL")
                for sym in ("SPY", "QQQ", "DIA", "IWM")
            ],
            breadth=BreadthData(55.0, 1.1, 0.9, breadth_health),
            sectors=sectors,
            volatility=VolatilityData(vix, "SIDEWAYS", vix > 20),
            is_demo_mode=is_demo_mode,
            meta=MarketContextMeta(fetched_at=FIXED_NOW.isoformat()),
        )

    return make
