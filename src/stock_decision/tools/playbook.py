"""Phase 4 playbook tool and the playbook performance report."""

import logging
from time import perf_counter
from typing import Any

from stock_decision.engines.playbooks import PLAYBOOK_ORDER, build_playbook_input, match_playbooks
from stock_decision.engines.tracking import PERFORMANCE_DISCLAIMERS
from stock_decision.tools.context import ToolContext
from stock_decision.tools.pipeline import data_quality, evaluate_symbol
from stock_decision.utils.provenance import build_error_response, build_meta, to_jsonable
from stock_decision.utils.validators import validate_choice

logger = logging.getLogger(__name__)


async def playbook(ctx: ToolContext, symbol: str) -> dict[str, Any]:
    """
    Match the current setup against the playbook library.

    Every active playbook shown is logged to the tracking store so its
    outcome can be scored later, whether or not anyone acts on it.
    Snapshots built from fallback data are never logged.

    Args:
        ctx: Shared tool context
        symbol: Stock ticker symbol

    Returns:
        Dict with the active playbook (or None), all considered playbooks and the tracking id
    """
    start_time = perf_counter()

    try:
        evaluation = await evaluate_symbol(ctx, symbol)
    except ValueError as e:
        return build_error_response(error_type="invalid_symbol", message=str(e), symbol=symbol)
    except Exception as e:
        logger.exception(f"playbook failed for {symbol}")
        return build_error_response(
            error_type="data_unavailable",
            message=f"Failed to evaluate playbooks: {e}",
            symbol=symbol,
        )

    snapshot = evaluation.snapshot
    result = match_playbooks(
        build_playbook_input(
            snapshot,
            strategic_score=evaluation.strategic.score,
            tactical_score=evaluation.tactical.score,
            strategic_status=evaluation.strategic.status,
            tactical_status=evaluation.tactical.status,
            confirmation_level=evaluation.phase3_cooldown.level,
            confirmation_score=evaluation.phase3.confirmation_score,
            market_regime=evaluation.market_context.regime,
            sector_regime=evaluation.sector_regime.regime,
        )
    )

    instance_id = None
    active = result.active_playbook
    if active is not None and not snapshot.meta.is_fallback:
        try:
            instance = ctx.tracking.log_instance(
                symbol=snapshot.symbol,
                playbook_id=active.name,
                price_at_signal=snapshot.price,
                market_regime=evaluation.market_context.regime,
                sector_regime=evaluation.sector_regime.regime,
                confirmation_level=evaluation.phase3_cooldown.level,
                match_confidence=active.match_confidence,
                strategic_score=evaluation.strategic.score,
                tactical_score=evaluation.tactical.score,
            )
            instance_id = instance.id
        except Exception:
            # Tracking must never hide the playbook itself
            logger.exception(f"Failed to log playbook instance for {snapshot.symbol}")

    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "meta": build_meta("get_playbook", duration_ms),
        "symbol": snapshot.symbol,
        **to_jsonable(result),
        "tracking_id": instance_id,
        "decision": evaluation.decision.label,
        "data_quality": data_quality(snapshot),
    }


async def playbook_performance(
    ctx: ToolContext,
    playbook_id: str | None = None,
    compute: bool = True,
) -> dict[str, Any]:
    """
    Historical outcome statistics for tracked playbooks.

    Args:
        ctx: Shared tool context
        playbook_id: One playbook (e.g. TREND_CONTINUATION), or None for all
        compute: Score pending instances from EOD closes first

    Returns:
        Dict with per-playbook performance (None where nothing was logged yet)
    """
    start_time = perf_counter()

    try:
        ids = [validate_choice(playbook_id, PLAYBOOK_ORDER, "playbook_id")] if playbook_id else list(PLAYBOOK_ORDER)
    except ValueError as e:
        return build_error_response(error_type="invalid_input", message=str(e))

    computed = 0
    try:
        if compute:
            computed = await ctx.tracking.compute_outcomes(ctx.price_fetcher)
        performance = {pid: to_jsonable(ctx.tracking.aggregate_performance(pid)) for pid in ids}
        stats = ctx.tracking.stats()
    except Exception as e:
        logger.exception("playbook_performance failed")
        return build_error_response(
            error_type="data_unavailable",
            message=f"Failed to read playbook performance: {e}",
        )

    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "meta": build_meta("get_playbook_performance", duration_ms),
        "outcomes_computed": computed,
        "performance": performance,
        "tracking": stats,
        "disclaimers": list(PERFORMANCE_DISCLAIMERS),
    }
