"""Tests for technical indicators and trend classification."""

import numpy as np
import pandas as pd

from stock_decision.utils.indicators import (
    calculate_atr,
    calculate_rsi,
    calculate_sma,
    classify_trend,
    classify_weekly_trend,
    last_value,
)


class TestSMA:
    """Tests for SMA calculation."""

    def test_sma_basic(self, sample_price_series: pd.Series) -> None:
        """Test basic SMA calculation."""
        sma = calculate_sma(sample_price_series, 5)

        # SMA should have NaN for first (period-1) values
        assert sma.iloc[:4].isna().all()

        # (100 + 101 + 102 + 101.5 + 103) / 5 = 101.5
        assert abs(sma.iloc[4] - 101.5) < 0.01

    def test_sma_insufficient_data(self) -> None:
        """Test SMA with insufficient data."""
        prices = pd.Series([100, 101, 102])
        sma = calculate_sma(prices, 5)

        assert sma.isna().all()


class TestRSI:
    """Tests for RSI calculation."""

    def test_rsi_range(self, sample_price_series: pd.Series) -> None:
        """Test RSI stays in 0-100 range."""
        rsi = calculate_rsi(sample_price_series, 14)

        valid_rsi = rsi.dropna()
        assert (valid_rsi >= 0).all()
        assert (valid_rsi <= 100).all()

    def test_rsi_uptrend(self) -> None:
        """Only up moves pin RSI at 100."""
        prices = pd.Series([100 + i for i in range(30)])
        rsi = calculate_rsi(prices, 14)

        assert rsi.iloc[-1] == 100

    def test_rsi_downtrend(self) -> None:
        prices = pd.Series([100 - i for i in range(30)])
        rsi = calculate_rsi(prices, 14)

        assert rsi.iloc[-1] < 30

    def test_rsi_needs_full_period(self) -> None:
        rsi = calculate_rsi(pd.Series([100.0, 101.0, 100.5]), 14)
        assert last_value(rsi) is None


class TestATR:
    """Tests for ATR calculation."""

    def test_atr_basic(self, sample_ohlcv_df: pd.DataFrame) -> None:
        atr = calculate_atr(sample_ohlcv_df["High"], sample_ohlcv_df["Low"], sample_ohlcv_df["Close"], 5)

        valid_atr = atr.dropna()
        assert (valid_atr > 0).all()

    def test_atr_increases_with_volatility(self) -> None:
        """Wider daily ranges give a larger ATR."""
        close = pd.Series([100.0] * 10)
        atr_low = calculate_atr(pd.Series([101.0] * 10), pd.Series([99.0] * 10), close, 5)
        atr_high = calculate_atr(pd.Series([110.0] * 10), pd.Series([90.0] * 10), close, 5)

        assert atr_high.iloc[-1] > atr_low.iloc[-1]
        assert atr_low.iloc[-1] == 2.0


class TestLastValue:
    """Tests for last_value."""

    def test_skips_trailing_nan(self) -> None:
        assert last_value(pd.Series([1.0, 2.5, np.nan])) == 2.5

    def test_all_nan(self) -> None:
        assert last_value(pd.Series([np.nan, np.nan])) is None

    def test_returns_float(self) -> None:
        value = last_value(pd.Series([1, 2, 3]))
        assert value == 3.0
        assert isinstance(value, float)


class TestClassifyTrend:
    """Tests for daily and weekly trend classification."""

    def test_uptrend(self) -> None:
        assert classify_trend(pd.Series(100 + np.arange(30, dtype=float))) == "UP"

    def test_downtrend(self) -> None:
        assert classify_trend(pd.Series(200 - np.arange(30, dtype=float))) == "DOWN"

    def test_small_move_is_sideways(self) -> None:
        """A 1.5% drift stays inside the 3% band."""
        assert classify_trend(pd.Series(100 + 0.1 * np.arange(30))) == "SIDEWAYS"

    def test_short_series_is_sideways(self) -> None:
        assert classify_trend(pd.Series(100 + np.arange(19, dtype=float))) == "SIDEWAYS"

    def test_weekly_uptrend(self) -> None:
        assert classify_weekly_trend(pd.Series(100 + 0.5 * np.arange(260))) == "UP"

    def test_weekly_needs_enough_weeks(self) -> None:
        """60 daily bars are only 12 weekly samples."""
        assert classify_weekly_trend(pd.Series(100 + np.arange(60, dtype=float))) == "SIDEWAYS"
