"""Async yfinance client with bounded concurrency and retry logic."""

import asyncio
import logging
import math
import os
import random
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, TypeVar

import pandas as pd
import pytz
import yfinance as yf
from requests.exceptions import HTTPError

from stock_decision.utils.ohlcv import standardize_ohlcv
from stock_decision.utils.sanitize import sanitize_text
from stock_decision.utils.validators import FetchParams, validate_symbol

logger = logging.getLogger(__name__)

# Bounded concurrency for yfinance calls
_max_workers = int(os.environ.get("YF_MAX_WORKERS", "4"))
_executor = ThreadPoolExecutor(max_workers=_max_workers)
_fetch_semaphore = asyncio.Semaphore(_max_workers)

# Retry configuration
_max_retries = int(os.environ.get("YF_MAX_RETRIES", "3"))
_base_delay = float(os.environ.get("YF_BASE_DELAY", "1.0"))  # seconds
_max_delay = float(os.environ.get("YF_MAX_DELAY", "30.0"))  # seconds

# Shutdown coordination
shutdown_event = asyncio.Event()

NEWS_WINDOW_DAYS = 7

T = TypeVar("T")


class ServerShuttingDownError(Exception):
    """Raised when server is shutting down."""

    pass


class YFinanceRetryError(Exception):
    """Raised when yfinance fails after all retries."""

    def __init__(self, message: str, last_error: Exception | None = None):
        super().__init__(message)
        self.last_error = last_error


class YFinanceIncompleteInfoError(RuntimeError):
    """Raised when yfinance returns an info payload without fundamentals (e.g., 401 Invalid Crumb)."""

    def __init__(self, symbol: str, key_count: int):
        super().__init__(f"Incomplete yfinance info for {symbol}: keys={key_count}")
        self.symbol = symbol
        self.key_count = key_count


# Financial-statement fields that crumb-broken partial payloads reliably lack
INFO_CORE_FUND_SENTINELS: tuple[str, ...] = (
    "totalRevenue",
    "revenueGrowth",
    "profitMargins",
    "grossMargins",
    "operatingCashflow",
    "freeCashflow",
    "totalCash",
)


def has_value(v: Any) -> bool:
    """True if v is present (not None, NaN, or empty string)."""
    if v is None:
        return False
    if isinstance(v, float) and math.isnan(v):
        return False
    if isinstance(v, str) and v.strip() == "":
        return False
    return True


def is_info_incomplete(info: dict[str, Any]) -> bool:
    """
    Detect partial info payloads.

    Only EQUITY (or unknown) quote types are required to carry at least one
    core fundamental value; ETFs and indices are exempt.
    """
    if not isinstance(info, dict) or not info:
        return True
    quote_type = str(info.get("quoteType") or "").upper()
    if quote_type not in ("", "EQUITY"):
        return False
    return not any(has_value(info.get(k)) for k in INFO_CORE_FUND_SENTINELS)


# Singleflight: concurrent fetch_info calls for one symbol share a task
_info_singleflight: dict[str, "asyncio.Task[dict[str, Any]]"] = {}
_info_singleflight_lock = asyncio.Lock()


def _is_retryable_error(error: Exception) -> tuple[bool, int]:
    """
    Check if an error is retryable (transient).

    Returns:
        Tuple of (is_retryable, max_retries_for_this_error)
    """
    if isinstance(error, YFinanceIncompleteInfoError):
        return (True, 2)

    if (
        isinstance(error, HTTPError)
        and hasattr(error, "response")
        and error.response is not None
    ):
        status_code = error.response.status_code
        if status_code == 401:
            return (True, 1)
        if status_code == 429:
            return (True, _max_retries)
        if 500 <= status_code < 600:
            return (True, _max_retries)

    error_str = str(error).lower()

    if "401" in error_str or "invalid crumb" in error_str:
        return (True, 2)

    retryable_patterns = [
        "rate limit",
        "too many requests",
        "connection",
        "timeout",
        "temporary",
    ]
    if any(pattern in error_str for pattern in retryable_patterns):
        return (True, _max_retries)

    return (False, 0)


def _calculate_backoff(attempt: int) -> float:
    """Calculate delay with exponential backoff and jitter."""
    delay = _base_delay * (2**attempt)
    # +/-25% jitter
    jitter = delay * 0.25 * (2 * random.random() - 1)
    return min(delay + jitter, _max_delay)


@dataclass
class RetryResult:
    """Result of a retry operation with attempt bookkeeping."""

    result: Any
    attempts: int
    total_backoff_seconds: float
    source: str = "yfinance"


async def _retry_with_backoff(
    operation_name: str,
    sync_func: Callable[[], T],
    max_retries: int = _max_retries,
) -> RetryResult:
    """
    Execute a synchronous function in the executor with retry logic.

    Args:
        operation_name: Name for logging (e.g., "fetch_history(AAPL)")
        sync_func: Synchronous function to execute
        max_retries: Maximum number of retry attempts

    Returns:
        RetryResult with result, attempts and total backoff

    Raises:
        YFinanceRetryError: If all retries exhausted
        ServerShuttingDownError: If server is shutting down
    """
    last_error: Exception | None = None
    total_backoff = 0.0

    for attempt in range(max_retries + 1):
        if shutdown_event.is_set():
            raise ServerShuttingDownError("Server is shutting down")

        try:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(_executor, sync_func)
            return RetryResult(
                result=result,
                attempts=attempt + 1,
                total_backoff_seconds=round(total_backoff, 2),
            )
        except Exception as e:
            last_error = e

            is_retryable, error_max_retries = _is_retryable_error(e)
            if not is_retryable:
                raise

            effective_max_retries = min(max_retries, error_max_retries)
            if attempt >= effective_max_retries:
                logger.warning(
                    f"{operation_name}: Failed after {attempt + 1} attempts "
                    f"(limit={effective_max_retries + 1}). Last error: {e}"
                )
                raise YFinanceRetryError(
                    f"Failed after {attempt + 1} attempts: {e}",
                    last_error=last_error,
                ) from e

            delay = _calculate_backoff(attempt)
            total_backoff += delay
            logger.info(
                f"{operation_name}: Attempt {attempt + 1} failed ({e}). "
                f"Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)

    raise YFinanceRetryError(
        f"Failed after {max_retries + 1} attempts",
        last_error=last_error,
    )


async def _run(operation_name: str, sync_func: Callable[[], T]) -> T:
    """Run a blocking yfinance call under the semaphore with retries."""
    if shutdown_event.is_set():
        raise ServerShuttingDownError("Server is shutting down")
    async with _fetch_semaphore:
        retry_result = await _retry_with_backoff(operation_name, sync_func)
    if retry_result.attempts > 1:
        logger.info(
            f"{operation_name}: Succeeded on attempt {retry_result.attempts} "
            f"after {retry_result.total_backoff_seconds}s backoff"
        )
    return retry_result.result


# ============================================================================
# PRICE HISTORY
# ============================================================================


async def fetch_history(params: FetchParams) -> pd.DataFrame:
    """
    Fetch daily price history (oldest first) with retry logic.

    Args:
        params: Fetch parameters

    Returns:
        Standardized DataFrame: date, open, high, low, close, volume

    Raises:
        ServerShuttingDownError: If server is shutting down
        YFinanceRetryError: If all retries exhausted for retryable errors
        ValueError: If no data returned
    """

    def _fetch() -> pd.DataFrame:
        df = yf.download(**params.to_yf_kwargs())
        if df.empty:
            raise ValueError(f"No data returned for {params.symbol}")
        return standardize_ohlcv(df)

    return await _run(f"fetch_history({params.symbol})", _fetch)


async def fetch_closes_since(symbol: str, start_date: str, limit: int) -> list[float]:
    """
    Fetch up to `limit` daily closes strictly after start_date (YYYY-MM-DD).

    Used to score playbook outcomes from EOD prices.
    """
    normalized = validate_symbol(symbol)
    start = datetime.strptime(start_date, "%Y-%m-%d").date() + timedelta(days=1)

    def _fetch() -> list[float]:
        df = yf.download(
            tickers=normalized,
            start=start.isoformat(),
            interval="1d",
            auto_adjust=True,
            progress=False,
        )
        if df.empty:
            return []
        closes = standardize_ohlcv(df)["close"].dropna()
        return [float(c) for c in closes.iloc[:limit]]

    return await _run(f"fetch_closes_since({normalized}, {start_date})", _fetch)


# ============================================================================
# INFO (fundamentals, metadata)
# ============================================================================


async def _fetch_info_raw(symbol: str) -> dict[str, Any]:
    def _fetch() -> dict[str, Any]:
        info = yf.Ticker(symbol).info
        if not info:
            raise ValueError(f"Invalid symbol: {symbol}")
        if is_info_incomplete(info):
            raise YFinanceIncompleteInfoError(symbol, key_count=len(info))
        return info

    return await _run(f"fetch_info({symbol})", _fetch)


async def fetch_info(symbol: str) -> dict[str, Any]:
    """
    Fetch stock info with retry logic and singleflight.

    Concurrent callers for the same symbol await one shared task; cleanup
    only removes the entry if it still belongs to this task.

    Raises:
        ServerShuttingDownError: If server is shutting down
        YFinanceRetryError: If all retries exhausted for retryable errors
        ValueError: If symbol is invalid
    """
    normalized = validate_symbol(symbol)
    joined = False

    async with _info_singleflight_lock:
        task = _info_singleflight.get(normalized)
        if task is None:
            task = asyncio.create_task(_fetch_info_raw(normalized))
            _info_singleflight[normalized] = task
        else:
            joined = True
            logger.debug(f"fetch_info({normalized}): joining existing singleflight")

    try:
        if joined:
            # Shield so one cancelled waiter does not cancel the shared fetch
            return await asyncio.shield(task)
        return await task
    finally:
        async with _info_singleflight_lock:
            if _info_singleflight.get(normalized) is task:
                _info_singleflight.pop(normalized, None)


# ============================================================================
# OPTIONS, CALENDAR, ANALYSTS, HOLDERS, NEWS
# ============================================================================


async def fetch_options_summary(symbol: str) -> dict[str, Any]:
    """
    Summarize the nearest-expiry option chain.

    Returns:
        Dict with call/put open interest, put/call ratio (by OI) and mean call IV

    Raises:
        ValueError: If the symbol has no listed options
    """
    normalized = validate_symbol(symbol)

    def _fetch() -> dict[str, Any]:
        ticker = yf.Ticker(normalized)
        expiries = ticker.options
        if not expiries:
            raise ValueError(f"No options listed for {normalized}")
        chain = ticker.option_chain(expiries[0])
        call_oi = float(chain.calls["openInterest"].fillna(0).sum())
        put_oi = float(chain.puts["openInterest"].fillna(0).sum())
        iv = chain.calls["impliedVolatility"].dropna()
        return {
            "expiry": expiries[0],
            "call_open_interest": call_oi,
            "put_open_interest": put_oi,
            "put_call_ratio": round(put_oi / call_oi, 2) if call_oi > 0 else None,
            "implied_volatility": round(float(iv.mean()), 4) if not iv.empty else None,
        }

    return await _run(f"fetch_options_summary({normalized})", _fetch)


def _format_date(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return _format_date(value[0]) if value else None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return value.strftime("%Y-%m-%d")
    text = str(value)[:10]
    try:
        datetime.strptime(text, "%Y-%m-%d")
    except ValueError:
        return None
    return text


async def fetch_calendar(symbol: str) -> dict[str, str | None]:
    """
    Next earnings and ex-dividend dates (YYYY-MM-DD or None).
    """
    normalized = validate_symbol(symbol)

    def _fetch() -> dict[str, str | None]:
        calendar = yf.Ticker(normalized).calendar
        if isinstance(calendar, pd.DataFrame):
            # Older yfinance returns a frame indexed by field name
            calendar = {idx: calendar.loc[idx].iloc[0] for idx in calendar.index}
        if not isinstance(calendar, dict):
            calendar = {}
        return {
            "next_earnings_date": _format_date(calendar.get("Earnings Date")),
            "ex_dividend_date": _format_date(calendar.get("Ex-Dividend Date")),
        }

    return await _run(f"fetch_calendar({normalized})", _fetch)


async def fetch_recommendations(symbol: str) -> dict[str, int] | None:
    """Latest analyst recommendation counts (strongBuy..strongSell), or None."""
    normalized = validate_symbol(symbol)

    def _fetch() -> dict[str, int] | None:
        recs = yf.Ticker(normalized).recommendations
        if recs is None or len(recs) == 0:
            return None
        row = recs.iloc[0]
        if "period" in recs.columns:
            current = recs[recs["period"] == "0m"]
            if len(current) > 0:
                row = current.iloc[0]
        keys = ("strongBuy", "buy", "hold", "sell", "strongSell")
        return {k: int(row.get(k, 0) or 0) for k in keys}

    return await _run(f"fetch_recommendations({normalized})", _fetch)


async def fetch_institutional_holders(symbol: str) -> dict[str, Any]:
    """
    Top institutional holders and their aggregate position change.

    Returns:
        Dict with "top_holders" (names) and "trend" INCREASING/DECREASING/FLAT
        (None when the provider does not report position changes)
    """
    normalized = validate_symbol(symbol)

    def _fetch() -> dict[str, Any]:
        holders = yf.Ticker(normalized).institutional_holders
        if holders is None or len(holders) == 0:
            return {"top_holders": [], "trend": None}
        names = [
            name
            for name in (
                sanitize_text(h, max_length=80)
                for h in holders.get("Holder", pd.Series(dtype=str)).head(5)
            )
            if name
        ]
        trend = None
        if "pctChange" in holders.columns:
            change = holders["pctChange"].dropna()
            if not change.empty:
                avg = float(change.mean())
                trend = "INCREASING" if avg > 0.01 else "DECREASING" if avg < -0.01 else "FLAT"
        return {"top_holders": names, "trend": trend}

    return await _run(f"fetch_institutional_holders({normalized})", _fetch)


async def fetch_insider_net_buying(symbol: str) -> bool | None:
    """True if insiders were net buyers over the last six months, None if unknown."""
    normalized = validate_symbol(symbol)

    def _fetch() -> bool | None:
        purchases = yf.Ticker(normalized).insider_purchases
        if purchases is None or len(purchases) == 0 or "Shares" not in purchases.columns:
            return None
        label_col = purchases.columns[0]
        net = purchases[purchases[label_col].astype(str).str.startswith("Net Shares")]
        if net.empty or not has_value(net["Shares"].iloc[0]):
            return None
        return float(net["Shares"].iloc[0]) > 0

    return await _run(f"fetch_insider_net_buying({normalized})", _fetch)


def _published_at(item: dict[str, Any]) -> datetime | None:
    content = item.get("content") or {}
    pub_date = content.get("pubDate")
    if pub_date:
        try:
            parsed = datetime.fromisoformat(str(pub_date).replace("Z", "+00:00"))
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
        except ValueError:
            return None
    ts = item.get("providerPublishTime")
    if ts:
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)
        except (ValueError, TypeError, OSError):
            return None
    return None


async def fetch_news_count(symbol: str, days: int = NEWS_WINDOW_DAYS) -> int:
    """Number of news items published in the last `days` days."""
    normalized = validate_symbol(symbol)

    def _fetch() -> int:
        items = yf.Ticker(normalized).news or []
        cutoff = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=days)
        count = 0
        for item in items:
            published = _published_at(item)
            if published is not None and published >= cutoff:
                count += 1
        return count

    return await _run(f"fetch_news_count({normalized})", _fetch)


# ============================================================================
# MARKET CLOCK & LIFECYCLE
# ============================================================================


def get_market_state(tz: str = "America/New_York") -> dict[str, str]:
    """
    Determine market state. Clock-based only (no holiday calendar).

    Args:
        tz: Timezone (default: America/New_York)

    Returns:
        Dict with state, method, and checked_at timestamp
    """
    eastern = pytz.timezone(tz)
    now = datetime.now(eastern)

    if now.weekday() >= 5:
        state = "closed"
    else:
        time_minutes = now.hour * 60 + now.minute

        if time_minutes < 4 * 60:
            state = "closed"
        elif time_minutes < 9 * 60 + 30:
            state = "pre_market"
        elif time_minutes < 16 * 60:
            state = "regular"
        elif time_minutes < 20 * 60:
            state = "after_hours"
        else:
            state = "closed"

    return {
        "state": state,
        "method": "clock_only_no_holidays",
        "checked_at": now.isoformat(),
    }


async def shutdown_executor() -> None:
    """Cleanup on server shutdown."""
    shutdown_event.set()
    _executor.shutdown(wait=False, cancel_futures=True)
