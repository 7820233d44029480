"""Dashboard tool: decisions for a watchlist under one market context."""

import asyncio
import logging
import os
from time import perf_counter
from typing import Any

from stock_decision.engines.decision import DecisionResult, summarize_dashboard
from stock_decision.tools.context import ToolContext
from stock_decision.tools.pipeline import SymbolEvaluation, evaluate_symbol
from stock_decision.utils.provenance import build_error_response, build_meta, to_jsonable
from stock_decision.utils.validators import validate_symbol

logger = logging.getLogger(__name__)

DEFAULT_WATCHLIST = [
    s.strip()
    for s in os.environ.get("DASHBOARD_SYMBOLS", "AAPL,MSFT,NVDA,GOOGL,AMZN,META,JPM,XOM,UNH,TSLA").split(",")
    if s.strip()
]
MAX_DASHBOARD_SYMBOLS = 25


def _row(evaluation: SymbolEvaluation) -> dict[str, Any]:
    snapshot = evaluation.snapshot
    return {
        "symbol": evaluation.symbol,
        "company_name": snapshot.company_name,
        "sector": evaluation.sector,
        "price": snapshot.price,
        "change_percent": snapshot.change_percent,
        "strategic_score": evaluation.strategic.score,
        "strategic_status": evaluation.strategic.status,
        "tactical_score": evaluation.tactical.score,
        "tactical_status": evaluation.tactical.status,
        "horizon_label": evaluation.decision.horizon_label,
        "decision": evaluation.decision.label,
        "display_text": evaluation.decision.display_text,
        "explanation": evaluation.decision.explanation,
        "sector_regime": evaluation.sector_regime.regime,
        "confidence": snapshot.meta.confidence,
        "is_fallback": snapshot.meta.is_fallback,
    }


async def dashboard(ctx: ToolContext, symbols: list[str] | None = None) -> dict[str, Any]:
    """
    Evaluate a watchlist and summarize the decisions.

    Symbols that fail are listed under "failed"; the rest are still shown.

    Args:
        ctx: Shared tool context
        symbols: Tickers to show (defaults to DASHBOARD_SYMBOLS)

    Returns:
        Dict with per-symbol rows, label counts and the market summary
    """
    start_time = perf_counter()

    requested = symbols or DEFAULT_WATCHLIST
    if len(requested) > MAX_DASHBOARD_SYMBOLS:
        return build_error_response(
            error_type="invalid_input",
            message=f"At most {MAX_DASHBOARD_SYMBOLS} symbols can be shown at once",
        )
    try:
        normalized = list(dict.fromkeys(validate_symbol(s) for s in requested))
        context = await ctx.market.get_market_context()
    except ValueError as e:
        return build_error_response(error_type="invalid_input", message=str(e))
    except Exception as e:
        logger.exception("dashboard could not load market context")
        return build_error_response(
            error_type="data_unavailable",
            message=f"Failed to build dashboard: {e}",
        )

    results = await asyncio.gather(
        *(evaluate_symbol(ctx, s, context=context) for s in normalized),
        return_exceptions=True,
    )

    rows: list[dict[str, Any]] = []
    decisions: dict[str, DecisionResult] = {}
    failed: dict[str, str] = {}
    for symbol, result in zip(normalized, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            logger.warning(f"Failed to evaluate {symbol} for dashboard: {result}")
            failed[symbol] = str(result)
            continue
        rows.append(_row(result))
        decisions[result.symbol] = result.decision

    summary = summarize_dashboard(decisions, context)

    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "meta": build_meta("get_dashboard", duration_ms),
        "summary": to_jsonable(summary),
        "stocks": rows,
        "failed": failed,
    }
