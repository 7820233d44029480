"""Stock Decision MCP Server using FastMCP."""

import asyncio
import json
import logging
import os

from fastmcp import FastMCP

from stock_decision import SCHEMA_VERSION, SERVER_VERSION
from stock_decision.data import yfinance_client
from stock_decision.tools import confirmation as confirmation_tools
from stock_decision.tools import dashboard as dashboard_tools
from stock_decision.tools import evaluate as evaluate_tools
from stock_decision.tools import market as market_tools
from stock_decision.tools import playbook as playbook_tools
from stock_decision.tools import portfolio as portfolio_tools
from stock_decision.tools.context import create_default_context
from stock_decision.utils.redaction import install_redaction

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
install_redaction()
logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP(
    name="stock-decision",
)

context = create_default_context()


# ============================================================================
# TOOLS
# ============================================================================


@mcp.tool
async def evaluate_stock(
    symbol: str,
    total_capital: float | None = None,
    sector_exposure: dict[str, float] | None = None,
    volatility_used_pct: float | None = None,
    force_refresh: bool = False,
) -> str:
    """
    Evaluate a stock on both horizons and return one decision label.

    Combines the Strategic Growth (4-9 month) and Tactical Sentinel (0-4 month)
    scores with market regime, sector regime, portfolio limits and
    confirmation into Good to Act Now / Worth a Small Look / Keep an Eye On / Pause.

    Args:
        symbol: Stock ticker symbol (e.g., AAPL, MSFT)
        total_capital: Portfolio capital (default: 100000)
        sector_exposure: Current portfolio exposure % by sector, e.g. {"Technology": 20}
        volatility_used_pct: Share of the volatility budget already in use (default: 30)
        force_refresh: Bypass the 2-minute snapshot cache

    Returns:
        JSON with decision, strategic and tactical evaluations, regimes and confirmation
    """
    result = await evaluate_tools.evaluate_stock(
        context,
        symbol=symbol,
        total_capital=total_capital,
        sector_exposure=sector_exposure,
        volatility_used_pct=volatility_used_pct,
        force_refresh=force_refresh,
    )
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def get_market_context() -> str:
    """
    Get the market regime (RISK_ON / NEUTRAL / RISK_OFF) and its inputs.

    Uses SPY, QQQ, DIA, IWM, VIX and the 11 sector ETFs. Cached for 5 hours.

    Returns:
        JSON with regime, confidence, reasons, stability, indices, breadth, volatility and sectors
    """
    result = await market_tools.market_context(context)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def refresh_market_context() -> str:
    """
    Discard the cached market context and rebuild it from fresh data.

    Returns:
        JSON with the rebuilt market context
    """
    result = await market_tools.refresh_market_context(context)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def get_sector_regime(sector: str | None = None, symbol: str | None = None) -> str:
    """
    Classify a sector as FAVORED, NEUTRAL or AVOID.

    Args:
        sector: Sector name (e.g., Technology, Energy). Omit both arguments for all sectors.
        symbol: Ticker whose sector should be classified

    Returns:
        JSON with sector regime, confidence, score and reasons
    """
    result = await market_tools.sector_regime(context, sector=sector, symbol=symbol)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def get_confirmation(symbol: str) -> str:
    """
    Run the five confirmation layers: breadth, institutional, options, sentiment, events.

    Args:
        symbol: Stock ticker symbol

    Returns:
        JSON with per-layer signals, net adjustment, overall signal and flags
    """
    result = await confirmation_tools.confirmation(context, symbol=symbol)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def get_phase3_confirmation(symbol: str) -> str:
    """
    Check trend, volume, volatility, regime alignment and event safety.

    Args:
        symbol: Stock ticker symbol

    Returns:
        JSON with STRONG / WEAK / NONE confirmation, passed checks and blockers
    """
    result = await confirmation_tools.phase3_confirmation(context, symbol=symbol)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def get_playbook(symbol: str) -> str:
    """
    Match the stock's current setup to a strategy playbook.

    Playbooks are guidance, not directives. Every playbook shown is logged
    so its outcome can be measured later.

    Args:
        symbol: Stock ticker symbol

    Returns:
        JSON with the active playbook (if any) and every playbook considered
    """
    result = await playbook_tools.playbook(context, symbol=symbol)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def get_playbook_performance(playbook_id: str | None = None, compute: bool = True) -> str:
    """
    Outcome statistics for logged playbooks at 5, 20 and 60 trading days.

    Args:
        playbook_id: TREND_CONTINUATION, PULLBACK_ENTRY, BASE_BREAKOUT,
            MEAN_REVERSION or DEFENSIVE_HOLD. Omit for all.
        compute: Score pending instances from end-of-day closes first (default: true)

    Returns:
        JSON with sample size, median return, hit rate, drawdown frequency and dispersion
    """
    result = await playbook_tools.playbook_performance(context, playbook_id=playbook_id, compute=compute)
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def rank_stocks(
    symbols: list[str],
    total_capital: float | None = None,
    sector_exposure: dict[str, float] | None = None,
    volatility_used_pct: float | None = None,
) -> str:
    """
    Rank stocks within their sectors and assign capital priorities.

    Priorities: BUY, ACCUMULATE, PILOT, WATCH, BLOCKED. REJECT stocks are excluded.

    Args:
        symbols: Ticker symbols to rank (max 25)
        total_capital: Portfolio capital (default: 100000)
        sector_exposure: Current portfolio exposure % by sector
        volatility_used_pct: Share of the volatility budget already in use

    Returns:
        JSON with ranked stocks grouped by sector
    """
    result = await evaluate_tools.rank_stocks(
        context,
        symbols=symbols,
        total_capital=total_capital,
        sector_exposure=sector_exposure,
        volatility_used_pct=volatility_used_pct,
    )
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def check_portfolio_constraints(
    sector: str,
    sector_regime: str | None = None,
    expected_volatility_pct: float = 2.0,
    total_capital: float | None = None,
    sector_exposure: dict[str, float] | None = None,
    volatility_used_pct: float | None = None,
) -> str:
    """
    Check whether a new position fits the portfolio (ALLOW / REDUCE / BLOCK).

    Args:
        sector: Sector of the candidate position
        sector_regime: FAVORED, NEUTRAL or AVOID (derived from the market when omitted)
        expected_volatility_pct: Expected daily volatility of the position in % (default: 2.0)
        total_capital: Portfolio capital (default: 100000)
        sector_exposure: Current portfolio exposure % by sector
        volatility_used_pct: Share of the volatility budget already in use (default: 30)

    Returns:
        JSON with action, reasons and suggested position size
    """
    result = await portfolio_tools.portfolio_constraints(
        context,
        sector=sector,
        sector_regime=sector_regime,
        expected_volatility_pct=expected_volatility_pct,
        total_capital=total_capital,
        sector_exposure=sector_exposure,
        volatility_used_pct=volatility_used_pct,
    )
    return json.dumps(result, indent=2, default=str)


@mcp.tool
async def get_dashboard(symbols: list[str] | None = None) -> str:
    """
    Decisions for a watchlist under the current market context.

    Args:
        symbols: Tickers to show (default: DASHBOARD_SYMBOLS env var or a large-cap list)

    Returns:
        JSON with per-symbol decisions, label counts and market summary
    """
    result = await dashboard_tools.dashboard(context, symbols=symbols)
    return json.dumps(result, indent=2, default=str)


# ============================================================================
# ENTRY POINT
# ============================================================================


def main() -> None:
    """Run the MCP server."""
    logger.info(f"Starting Stock Decision MCP Server v{SERVER_VERSION} (schema v{SCHEMA_VERSION})")
    try:
        mcp.run()
    finally:
        asyncio.run(yfinance_client.shutdown_executor())
        context.close()


if __name__ == "__main__":
    main()
