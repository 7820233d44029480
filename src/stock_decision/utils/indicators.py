"""Technical indicator calculations."""

import numpy as np
import pandas as pd

# Trend classification thresholds (percent move between compared windows)
TREND_THRESHOLD_PCT = 3.0
TREND_MIN_BARS = 20


def calculate_sma(prices: pd.Series, period: int) -> pd.Series:
    """
    Calculate Simple Moving Average.

    Args:
        prices: Price series (typically close prices)
        period: Number of periods for the average

    Returns:
        SMA series
    """
    return prices.rolling(window=period, min_periods=period).mean()


def calculate_rsi(prices: pd.Series, period: int = 14) -> pd.Series:
    """
    Calculate Relative Strength Index.

    Uses Wilder's smoothing method (exponential moving average).

    Args:
        prices: Price series (typically close prices)
        period: RSI period (default: 14)

    Returns:
        RSI series (0-100 scale)
    """
    delta = prices.diff()

    gain = delta.where(delta > 0, 0.0)
    loss = (-delta).where(delta < 0, 0.0)

    avg_gain = gain.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()
    avg_loss = loss.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()

    rs = avg_gain / avg_loss
    rsi = 100 - (100 / (1 + rs))

    # avg_loss == 0 means no down moves at all
    rsi = rsi.replace([np.inf, -np.inf], 100)

    return rsi


def calculate_atr(
    high: pd.Series,
    low: pd.Series,
    close: pd.Series,
    period: int = 14,
) -> pd.Series:
    """
    Calculate Average True Range.

    Args:
        high: High price series
        low: Low price series
        close: Close price series
        period: ATR period (default: 14)

    Returns:
        ATR series
    """
    prev_close = close.shift(1)

    tr1 = high - low
    tr2 = (high - prev_close).abs()
    tr3 = (low - prev_close).abs()

    true_range = pd.concat([tr1, tr2, tr3], axis=1).max(axis=1)

    atr = true_range.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()

    return atr


def last_value(series: pd.Series) -> float | None:
    """Last non-NaN value of a series as float, or None."""
    clean = series.dropna()
    if clean.empty:
        return None
    return float(clean.iloc[-1])


def classify_trend(closes: pd.Series) -> str:
    """
    Classify trend as UP, DOWN or SIDEWAYS from a close series (oldest first).

    Compares the mean of the 5 most recent closes with the mean of the
    closes 15-20 bars back. A move beyond +/-3% is a trend.

    Args:
        closes: Close prices ordered oldest to newest

    Returns:
        "UP", "DOWN" or "SIDEWAYS"
    """
    closes = closes.dropna()
    if len(closes) < TREND_MIN_BARS:
        return "SIDEWAYS"

    recent = closes.iloc[-5:].mean()
    older = closes.iloc[-20:-15].mean()
    if older == 0:
        return "SIDEWAYS"

    change_pct = (recent - older) / older * 100
    if change_pct > TREND_THRESHOLD_PCT:
        return "UP"
    if change_pct < -TREND_THRESHOLD_PCT:
        return "DOWN"
    return "SIDEWAYS"


def classify_weekly_trend(closes: pd.Series) -> str:
    """Classify trend on weekly-sampled closes (every 5th bar, anchored on the latest)."""
    closes = closes.dropna()
    # Sample backwards from the latest bar so the newest close is always included
    weekly = closes.iloc[::-1].iloc[::5].iloc[::-1]
    return classify_trend(weekly)
