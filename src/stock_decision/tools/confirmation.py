"""Five-layer confirmation and Phase 3 confirmation tools."""

import asyncio
import logging
from time import perf_counter
from typing import Any

from stock_decision.engines.confirmation import build_confirmation_data, evaluate_confirmation
from stock_decision.engines.phase3 import build_phase3_input, evaluate_phase3
from stock_decision.tools.context import ToolContext
from stock_decision.tools.pipeline import data_quality, sector_regime_for
from stock_decision.utils.provenance import build_error_response, build_meta, to_jsonable

logger = logging.getLogger(__name__)


async def confirmation(ctx: ToolContext, symbol: str) -> dict[str, Any]:
    """
    Run the five confirmation layers for a symbol.

    Confirmation is advisory: it is reported next to the scores and never
    changes them.

    Args:
        ctx: Shared tool context
        symbol: Stock ticker symbol

    Returns:
        Dict with per-layer results, net adjustment, overall signal and flags
    """
    start_time = perf_counter()

    try:
        snapshot, context = await asyncio.gather(ctx.snapshot(symbol), ctx.market.get_market_context())
    except ValueError as e:
        return build_error_response(error_type="invalid_symbol", message=str(e), symbol=symbol)
    except Exception as e:
        logger.exception(f"confirmation failed for {symbol}")
        return build_error_response(
            error_type="data_unavailable",
            message=f"Failed to fetch data: {e}",
            symbol=symbol,
        )

    breadth = None if context.is_demo_mode else context.breadth
    result = evaluate_confirmation(build_confirmation_data(snapshot, breadth), snapshot.symbol)

    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "meta": build_meta("get_confirmation", duration_ms),
        "symbol": snapshot.symbol,
        **to_jsonable(result),
        "data_quality": data_quality(snapshot),
    }


async def phase3_confirmation(ctx: ToolContext, symbol: str) -> dict[str, Any]:
    """
    Phase 3 trend/volume/volatility/alignment/event checks with the cooldown applied.

    Args:
        ctx: Shared tool context
        symbol: Stock ticker symbol

    Returns:
        Dict with the confirmation level, score, passed checks and blockers
    """
    start_time = perf_counter()

    try:
        snapshot, context = await asyncio.gather(ctx.snapshot(symbol), ctx.market.get_market_context())
    except ValueError as e:
        return build_error_response(error_type="invalid_symbol", message=str(e), symbol=symbol)
    except Exception as e:
        logger.exception(f"phase3_confirmation failed for {symbol}")
        return build_error_response(
            error_type="data_unavailable",
            message=f"Failed to fetch data: {e}",
            symbol=symbol,
        )

    sector = sector_regime_for(snapshot.symbol, snapshot.sector, context)
    result = evaluate_phase3(build_phase3_input(snapshot, context.regime, sector.regime))
    cooldown = ctx.cooldown.evaluate(snapshot.symbol, result.confirmation_level, result.confirmation_score)

    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "meta": build_meta("get_phase3_confirmation", duration_ms),
        "symbol": snapshot.symbol,
        "market_regime": context.regime,
        "sector_regime": sector.regime,
        **to_jsonable(result),
        "confirmation_level": cooldown.level,
        "computed_level": result.confirmation_level,
        "cooldown": to_jsonable(cooldown),
        "data_quality": data_quality(snapshot),
    }
