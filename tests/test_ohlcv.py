"""Tests for OHLCV standardization."""

import pandas as pd

from stock_decision.utils.ohlcv import standardize_ohlcv

CANONICAL = ["date", "open", "high", "low", "close", "volume"]


class TestStandardizeOhlcv:
    """Tests for standardize_ohlcv function."""

    def test_standardize_basic(self, sample_ohlcv_df: pd.DataFrame) -> None:
        result = standardize_ohlcv(sample_ohlcv_df)

        assert list(result.columns) == CANONICAL
        assert len(result) == 10
        assert result["close"].iloc[0] == 100.5
        assert result["date"].iloc[0] == "2024-01-01"

    def test_standardize_removes_adj_close(
        self, sample_ohlcv_df_with_adj_close: pd.DataFrame
    ) -> None:
        """Adj Close is dropped; close stays the provider's close."""
        result = standardize_ohlcv(sample_ohlcv_df_with_adj_close)

        assert list(result.columns) == CANONICAL
        assert result["close"].iloc[-1] == 106.0

    def test_standardize_handles_multi_index(self) -> None:
        """yf.download returns (field, ticker) columns."""
        columns = pd.MultiIndex.from_tuples(
            [(field, "AAPL") for field in ("Open", "High", "Low", "Close", "Volume")]
        )
        df = pd.DataFrame(
            [[100, 101, 99, 100.5, 1000000]],
            index=pd.DatetimeIndex(["2024-01-01"], name="Date"),
            columns=columns,
        )

        result = standardize_ohlcv(df)
        assert list(result.columns) == CANONICAL
        assert result["close"].iloc[0] == 100.5

    def test_standardize_fills_missing_columns(self) -> None:
        df = pd.DataFrame(
            {
                "Date": pd.date_range("2024-01-01", periods=3, freq="D"),
                "Open": [100, 101, 102],
                "High": [101, 102, 103],
                "Low": [99, 100, 101],
                "Close": [100.5, 101.5, 102.5],
            }
        ).set_index("Date")

        result = standardize_ohlcv(df)

        assert list(result.columns) == CANONICAL
        assert result["volume"].isna().all()

    def test_standardize_sorts_oldest_first(self, sample_ohlcv_df: pd.DataFrame) -> None:
        result = standardize_ohlcv(sample_ohlcv_df.iloc[::-1])

        assert result["date"].iloc[0] == "2024-01-01"
        assert result["date"].iloc[-1] == "2024-01-10"
        assert result["close"].iloc[-1] == 106.0

    def test_standardize_tz_aware_dates(self) -> None:
        df = pd.DataFrame(
            {
                "Date": pd.date_range("2024-01-02", periods=5, freq="D", tz="America/New_York"),
                "Open": [100, 101, 102, 101, 103],
                "High": [101, 102, 103, 102, 104],
                "Low": [99, 100, 101, 100, 102],
                "Close": [100.5, 101.5, 102.5, 101.5, 103.5],
                "Volume": [1000] * 5,
            }
        ).set_index("Date")

        result = standardize_ohlcv(df)

        assert len(result) == 5
        assert result["date"].iloc[0] == "2024-01-02"

    def test_standardize_drops_rows_without_close(self, sample_ohlcv_df: pd.DataFrame) -> None:
        df = sample_ohlcv_df.copy()
        df.iloc[3, df.columns.get_loc("Close")] = float("nan")

        result = standardize_ohlcv(df)

        assert len(result) == 9
        assert "2024-01-04" not in set(result["date"])

    def test_standardize_keeps_last_bar_for_repeated_date(self) -> None:
        """The live session bar can arrive twice; the later one wins."""
        df = pd.DataFrame(
            {
                "Date": pd.to_datetime(["2024-01-02", "2024-01-03", "2024-01-03"]),
                "Open": [100.0, 101.0, 101.0],
                "High": [101.0, 102.0, 103.0],
                "Low": [99.0, 100.0, 100.0],
                "Close": [100.5, 101.5, 102.5],
                "Volume": [1000, 800, 1200],
            }
        ).set_index("Date")

        result = standardize_ohlcv(df)

        assert list(result["date"]) == ["2024-01-02", "2024-01-03"]
        assert result["close"].iloc[-1] == 102.5
        assert result["volume"].iloc[-1] == 1200

    def test_standardize_does_not_modify_input(self, sample_ohlcv_df: pd.DataFrame) -> None:
        before = list(sample_ohlcv_df.columns)
        standardize_ohlcv(sample_ohlcv_df)
        assert list(sample_ohlcv_df.columns) == before
