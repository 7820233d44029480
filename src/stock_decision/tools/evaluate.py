"""Per-symbol evaluation and sector ranking tools."""

import asyncio
import logging
from dataclasses import asdict
from time import perf_counter
from typing import Any

from stock_decision.engines.decision import get_score_band
from stock_decision.engines.market_regime import derive_market_context_info
from stock_decision.engines.ranking import RankingInput
from stock_decision.engines.ranking import rank_stocks as rank_inputs
from stock_decision.tools.context import ToolContext
from stock_decision.tools.pipeline import SymbolEvaluation, data_quality, evaluate_symbol, parse_portfolio
from stock_decision.utils.provenance import build_error_response, build_meta, to_jsonable
from stock_decision.utils.validators import validate_symbol

logger = logging.getLogger(__name__)

MAX_RANK_SYMBOLS = 25


def evaluation_payload(evaluation: SymbolEvaluation) -> dict[str, Any]:
    snapshot = evaluation.snapshot
    strategic = evaluation.strategic
    tactical = evaluation.tactical
    return {
        "symbol": evaluation.symbol,
        "company_name": snapshot.company_name,
        "sector": evaluation.sector,
        "price": snapshot.price,
        "change_percent": snapshot.change_percent,
        "decision": to_jsonable(evaluation.decision),
        "strategic_growth": {
            **to_jsonable(strategic),
            "band": get_score_band(strategic.score).label,
        },
        "tactical_sentinel": {
            "score": tactical.score,
            "status": tactical.status,
            "band": get_score_band(tactical.score).label,
            "raw_score": tactical.raw.score,
            "regime_adjustment": tactical.regime_adjustment,
            "integrity_penalty": tactical.integrity_penalty,
            "regime_penalty": to_jsonable(tactical.regime_penalty),
            "integrity_flags": tactical.integrity_flags,
            "details": to_jsonable(tactical.raw.details),
            "entry_quality": tactical.raw.entry_quality,
            "risks": tactical.raw.risks,
            "failure_trigger": tactical.raw.failure_trigger,
            "technical_setup": tactical.raw.technical_setup,
            "event_risk": tactical.raw.event_risk,
        },
        "market_regime": evaluation.market_context.regime,
        "market_context": to_jsonable(
            derive_market_context_info(
                evaluation.market_context.regime,
                evaluation.market_context.regime_reasons,
            )
        ),
        "sector_regime": to_jsonable(evaluation.sector_regime),
        "portfolio": to_jsonable(evaluation.portfolio),
        "confirmation": {
            "overall_signal": evaluation.confirmation.overall_signal,
            "net_adjustment": evaluation.confirmation.net_adjustment,
            "flags": evaluation.confirmation.flags,
        },
        "phase3": {
            "confirmation_level": evaluation.phase3_cooldown.level,
            "confirmation_score": evaluation.phase3.confirmation_score,
            "cooldown_applied": evaluation.phase3_cooldown.was_modified,
        },
        "data_quality": data_quality(snapshot),
    }


async def evaluate_stock(
    ctx: ToolContext,
    symbol: str,
    total_capital: float | None = None,
    sector_exposure: dict[str, float] | None = None,
    volatility_used_pct: float | None = None,
    force_refresh: bool = False,
) -> dict[str, Any]:
    """
    Evaluate one stock through the full pipeline.

    Args:
        ctx: Shared tool context
        symbol: Stock ticker symbol
        total_capital: Portfolio capital (default 100,000)
        sector_exposure: Current exposure % by sector
        volatility_used_pct: Share of the volatility budget already in use
        force_refresh: Bypass the snapshot cache

    Returns:
        Dict with decision, both evaluations, regimes, portfolio and confirmation summaries
    """
    start_time = perf_counter()

    try:
        portfolio = parse_portfolio(total_capital, sector_exposure, volatility_used_pct)
    except ValueError as e:
        return build_error_response(error_type="invalid_input", message=str(e), symbol=symbol)

    try:
        evaluation = await evaluate_symbol(ctx, symbol, portfolio, force_refresh=force_refresh)
    except ValueError as e:
        return build_error_response(error_type="invalid_symbol", message=str(e), symbol=symbol)
    except Exception as e:
        logger.exception(f"evaluate_stock failed for {symbol}")
        return build_error_response(
            error_type="data_unavailable",
            message=f"Failed to evaluate stock: {e}",
            symbol=symbol,
        )

    duration_ms = (perf_counter() - start_time) * 1000
    return {"meta": build_meta("evaluate_stock", duration_ms), **evaluation_payload(evaluation)}


async def rank_stocks(
    ctx: ToolContext,
    symbols: list[str],
    total_capital: float | None = None,
    sector_exposure: dict[str, float] | None = None,
    volatility_used_pct: float | None = None,
) -> dict[str, Any]:
    """
    Rank stocks within their sectors and assign capital priorities.

    Symbols that fail to evaluate are reported and left out of the ranking.

    Args:
        ctx: Shared tool context
        symbols: Ticker symbols to rank (max 25)
        total_capital: Portfolio capital
        sector_exposure: Current exposure % by sector
        volatility_used_pct: Share of the volatility budget already in use

    Returns:
        Dict with ranked stocks grouped by sector and any failed symbols
    """
    start_time = perf_counter()

    if not symbols:
        return build_error_response(error_type="invalid_input", message="symbols list cannot be empty")
    if len(symbols) > MAX_RANK_SYMBOLS:
        return build_error_response(
            error_type="invalid_input",
            message=f"At most {MAX_RANK_SYMBOLS} symbols can be ranked at once",
        )

    try:
        portfolio = parse_portfolio(total_capital, sector_exposure, volatility_used_pct)
        normalized = list(dict.fromkeys(validate_symbol(s) for s in symbols))
    except ValueError as e:
        return build_error_response(error_type="invalid_input", message=str(e))

    try:
        context = await ctx.market.get_market_context()
    except Exception as e:
        logger.exception("rank_stocks could not load market context")
        return build_error_response(
            error_type="data_unavailable",
            message=f"Failed to rank stocks: {e}",
        )

    results = await asyncio.gather(
        *(evaluate_symbol(ctx, s, portfolio, context=context) for s in normalized),
        return_exceptions=True,
    )

    evaluations: list[SymbolEvaluation] = []
    failed: dict[str, str] = {}
    for symbol, result in zip(normalized, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            logger.warning(f"rank_stocks: {symbol} failed: {result}")
            failed[symbol] = str(result)
        else:
            evaluations.append(result)

    ranked = rank_inputs(
        [
            RankingInput(
                symbol=e.symbol,
                sector=e.sector,
                strategic_score=e.strategic.score,
                tactical_score=e.tactical.score,
                strategic_status=e.strategic.status,
                tactical_status=e.tactical.status,
                sector_regime=e.sector_regime.regime,
                portfolio_action=e.portfolio.action,
            )
            for e in evaluations
        ]
    )

    by_sector: dict[str, list[dict[str, Any]]] = {}
    for stock in ranked:
        by_sector.setdefault(stock.sector, []).append(asdict(stock))

    excluded = [e.symbol for e in evaluations if e.strategic.status == "REJECT"]
    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "meta": build_meta("rank_stocks", duration_ms),
        "market_regime": context.regime,
        "sectors": by_sector,
        "ranked_count": len(ranked),
        "excluded_rejects": excluded,
        "failed": failed,
    }
