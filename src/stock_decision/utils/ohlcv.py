"""Daily bar normalization for yfinance history frames."""

import pandas as pd

OHLCV_COLUMNS = ["date", "open", "high", "low", "close", "volume"]

_RENAMES = {"datetime": "date", "index": "date"}


def standardize_ohlcv(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize a yfinance history frame to daily bars, oldest first.

    Columns are always OHLCV_COLUMNS in that order, lowercase, with dates
    as YYYY-MM-DD strings. Adjusted close is discarded, absent columns are
    filled with NA, rows without a close are dropped, and a repeated date
    keeps its last bar (yfinance re-sends the live bar during the session).

    Args:
        df: Frame from yf.download or Ticker.history

    Returns:
        New frame; the input is not modified
    """
    bars = df.copy()

    # yf.download returns a (field, ticker) MultiIndex
    if isinstance(bars.columns, pd.MultiIndex):
        bars.columns = bars.columns.get_level_values(0)

    bars = bars.reset_index()
    bars.columns = [str(c).lower() for c in bars.columns]
    bars = bars.rename(columns=_RENAMES).drop(columns=["adj close"], errors="ignore")

    for col in OHLCV_COLUMNS:
        if col not in bars.columns:
            bars[col] = pd.NA
    bars = bars[OHLCV_COLUMNS]

    if pd.api.types.is_datetime64_any_dtype(bars["date"]):
        bars = bars.sort_values("date", kind="stable")
        bars["date"] = bars["date"].dt.strftime("%Y-%m-%d")

    bars = bars[bars["close"].notna()]
    bars = bars.drop_duplicates(subset="date", keep="last")
    return bars.reset_index(drop=True)
