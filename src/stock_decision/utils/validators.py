"""Validation utilities and parameter classes."""

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

# Allowlists accepted by the history fetcher
VALID_PERIODS = {"1mo", "3mo", "6mo", "1y", "2y", "5y", "max"}
VALID_INTERVALS = {"1d", "1wk"}

# Tickers, share classes (BRK.B / BRK-B) and index symbols (^VIX)
_SYMBOL_RE = re.compile(r"^\^?[A-Z0-9][A-Z0-9.\-=]{0,11}$")


def validate_symbol(symbol: str | None) -> str:
    """
    Normalize and validate a ticker symbol.

    Args:
        symbol: Raw symbol from the caller

    Returns:
        Uppercased, stripped symbol

    Raises:
        ValueError: If the symbol is empty or malformed
    """
    if symbol is None:
        raise ValueError("Symbol is required")
    normalized = str(symbol).upper().strip()
    if not normalized:
        raise ValueError("Symbol is required")
    if not _SYMBOL_RE.match(normalized):
        raise ValueError(f"Invalid symbol: {symbol!r}")
    return normalized


def validate_choice(value: str, allowed: Iterable[str], name: str) -> str:
    """
    Validate a closed-enumeration argument (case-insensitive).

    Raises:
        ValueError: If value is not one of allowed
    """
    allowed = tuple(allowed)
    normalized = str(value).upper().strip()
    if normalized not in allowed:
        raise ValueError(f"Invalid {name} '{value}'. Must be one of: {', '.join(allowed)}")
    return normalized


@dataclass(frozen=True)
class FetchParams:
    """Immutable history fetch parameters."""

    symbol: str
    period: str = "1y"
    interval: str = "1d"
    adjusted: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "symbol", validate_symbol(self.symbol))

        period = self.period.lower().strip()
        interval = self.interval.lower().strip()

        if period not in VALID_PERIODS:
            raise ValueError(f"Invalid period '{self.period}'. Must be one of: {VALID_PERIODS}")
        if interval not in VALID_INTERVALS:
            raise ValueError(
                f"Invalid interval '{self.interval}'. Must be one of: {VALID_INTERVALS}"
            )

        object.__setattr__(self, "period", period)
        object.__setattr__(self, "interval", interval)

    def to_yf_kwargs(self) -> dict[str, Any]:
        """Kwargs for yf.download()."""
        return {
            "tickers": self.symbol,
            "period": self.period,
            "interval": self.interval,
            "auto_adjust": self.adjusted,
            "progress": False,
        }
