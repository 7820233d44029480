"""Market context and sector regime tools."""

import logging
from time import perf_counter
from typing import Any

from stock_decision.engines.market_regime import SECTOR_ETFS, MarketContext, derive_market_context_info
from stock_decision.engines.regime_stability import get_regime_explanation
from stock_decision.tools.context import ToolContext
from stock_decision.tools.pipeline import sector_regime_for
from stock_decision.utils.provenance import build_error_response, build_meta, to_jsonable
from stock_decision.utils.validators import validate_symbol

logger = logging.getLogger(__name__)


def _context_payload(ctx: ToolContext, context: MarketContext) -> dict[str, Any]:
    # Demo snapshots say nothing about the real tape, so they never feed the tracker
    if context.is_demo_mode:
        stability = None
    else:
        stability = to_jsonable(ctx.stability.update(context.regime))

    return {
        "regime": context.regime,
        "confidence": context.confidence,
        "summary": to_jsonable(derive_market_context_info(context.regime, context.regime_reasons)),
        "explanation": get_regime_explanation(context.regime),
        "regime_reasons": context.regime_reasons,
        "stability": stability,
        "indices": to_jsonable(context.indices),
        "breadth": to_jsonable(context.breadth),
        "volatility": to_jsonable(context.volatility),
        "sectors": to_jsonable(context.sectors),
        "is_demo_mode": context.is_demo_mode,
        "context_meta": to_jsonable(context.meta),
    }


async def market_context(ctx: ToolContext) -> dict[str, Any]:
    """
    Get the current market regime with the index, breadth and volatility inputs.

    Returns:
        Dict with regime, confidence, reasons, stability and raw inputs
    """
    start_time = perf_counter()
    try:
        context = await ctx.market.get_market_context()
    except Exception as e:
        logger.exception("market_context failed")
        return build_error_response(
            error_type="data_unavailable",
            message=f"Failed to build market context: {e}",
        )

    duration_ms = (perf_counter() - start_time) * 1000
    return {"meta": build_meta("get_market_context", duration_ms), **_context_payload(ctx, context)}


async def refresh_market_context(ctx: ToolContext) -> dict[str, Any]:
    """Drop the cached market context and rebuild it."""
    start_time = perf_counter()
    try:
        ctx.market.invalidate()
        context = await ctx.market.get_market_context(force_refresh=True)
    except Exception as e:
        logger.exception("refresh_market_context failed")
        return build_error_response(
            error_type="data_unavailable",
            message=f"Failed to refresh market context: {e}",
        )

    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "meta": build_meta("refresh_market_context", duration_ms),
        "refreshed": True,
        **_context_payload(ctx, context),
    }


async def sector_regime(
    ctx: ToolContext,
    sector: str | None = None,
    symbol: str | None = None,
) -> dict[str, Any]:
    """
    Classify one sector (by name or by a member symbol), or all eleven.

    Args:
        ctx: Shared tool context
        sector: Sector name (e.g. "Technology", "Financial Services")
        symbol: Ticker whose sector should be classified

    Returns:
        Dict with the sector regime result(s) and the market regime
    """
    start_time = perf_counter()

    try:
        context = await ctx.market.get_market_context()
        if symbol:
            normalized = validate_symbol(symbol)
            snapshot = await ctx.snapshot(normalized)
            results = [sector_regime_for(normalized, snapshot.sector, context)]
        elif sector:
            results = [sector_regime_for("", sector, context)]
        else:
            results = [sector_regime_for("", name, context) for name in SECTOR_ETFS.values()]
    except ValueError as e:
        return build_error_response(error_type="invalid_symbol", message=str(e), symbol=symbol)
    except Exception as e:
        logger.exception("sector_regime failed")
        return build_error_response(
            error_type="data_unavailable",
            message=f"Failed to evaluate sector regime: {e}",
            symbol=symbol,
        )

    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "meta": build_meta("get_sector_regime", duration_ms),
        "market_regime": context.regime,
        "is_demo_mode": context.is_demo_mode,
        "sectors": to_jsonable(results),
    }
