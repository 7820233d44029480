"""Portfolio constraint tool."""

import logging
from time import perf_counter
from typing import Any

from stock_decision.engines.portfolio import ConstraintCandidate, evaluate_portfolio
from stock_decision.engines.sector_regime import normalize_sector_name
from stock_decision.engines.types import SECTOR_REGIMES
from stock_decision.tools.context import ToolContext
from stock_decision.tools.pipeline import DEFAULT_EXPECTED_VOLATILITY_PCT, parse_portfolio, sector_regime_for
from stock_decision.utils.provenance import build_error_response, build_meta, to_jsonable
from stock_decision.utils.validators import validate_choice

logger = logging.getLogger(__name__)


async def portfolio_constraints(
    ctx: ToolContext,
    sector: str,
    sector_regime: str | None = None,
    expected_volatility_pct: float = DEFAULT_EXPECTED_VOLATILITY_PCT,
    total_capital: float | None = None,
    sector_exposure: dict[str, float] | None = None,
    volatility_used_pct: float | None = None,
) -> dict[str, Any]:
    """
    Check a prospective position against portfolio limits.

    Args:
        ctx: Shared tool context
        sector: Sector of the candidate position
        sector_regime: FAVORED, NEUTRAL or AVOID (derived from the market when omitted)
        expected_volatility_pct: Expected daily volatility of the position (ATR %)
        total_capital: Portfolio capital
        sector_exposure: Current exposure % by sector
        volatility_used_pct: Share of the volatility budget already in use

    Returns:
        Dict with ALLOW/REDUCE/BLOCK, reasons and suggested position size
    """
    start_time = perf_counter()

    try:
        if not sector or not sector.strip():
            raise ValueError("sector is required")
        if expected_volatility_pct < 0:
            raise ValueError("expected_volatility_pct must be non-negative")
        portfolio = parse_portfolio(total_capital, sector_exposure, volatility_used_pct)
        regime = validate_choice(sector_regime, SECTOR_REGIMES, "sector_regime") if sector_regime else None
    except ValueError as e:
        return build_error_response(error_type="invalid_input", message=str(e))

    name = normalize_sector_name(sector.strip()) or sector.strip()
    derived = None
    if regime is None:
        try:
            context = await ctx.market.get_market_context()
        except Exception as e:
            logger.exception("portfolio_constraints could not load market context")
            return build_error_response(
                error_type="data_unavailable",
                message=f"Failed to derive sector regime: {e}",
            )
        derived = sector_regime_for("", name, context)
        regime = derived.regime

    result = evaluate_portfolio(
        portfolio,
        ConstraintCandidate(
            sector=name,
            sector_regime=regime,
            expected_volatility_pct=expected_volatility_pct,
        ),
    )

    duration_ms = (perf_counter() - start_time) * 1000
    return {
        "meta": build_meta("check_portfolio_constraints", duration_ms),
        "sector": name,
        "sector_regime": regime,
        "sector_regime_derived": to_jsonable(derived),
        **to_jsonable(result),
        "suggested_position_value": round(
            portfolio.total_capital * result.suggested_position_size_pct / 100, 2
        ),
        "portfolio": to_jsonable(portfolio),
    }
