"""Full per-symbol evaluation shared by the tools."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from stock_decision.data.snapshot import StockSnapshot
from stock_decision.engines.confirmation import (
    ConfirmationResult,
    build_confirmation_data,
    evaluate_confirmation,
)
from stock_decision.engines.converters import DEFAULT_SECTOR_RANK, to_strategic_inputs, to_tactical_inputs
from stock_decision.engines.decision import DecisionInputs, DecisionResult, compose_decision
from stock_decision.engines.market_regime import MarketContext
from stock_decision.engines.phase3 import (
    ConfirmationCooldown,
    CooldownDecision,
    Phase3Result,
    build_phase3_input,
    evaluate_phase3,
)
from stock_decision.engines.portfolio import (
    DEFAULT_PORTFOLIO,
    ConstraintCandidate,
    PortfolioConstraintResult,
    PortfolioSnapshot,
    evaluate_portfolio,
)
from stock_decision.engines.sector_regime import (
    SectorRegimeResult,
    derive_sector_inputs,
    evaluate_sector_regime,
    normalize_sector_name,
    resolve_sector,
)
from stock_decision.engines.strategic import StrategicGrowthEvaluation, evaluate_strategic_in_regime
from stock_decision.engines.tactical import (
    TacticalSentinelEvaluation,
    contextualize_tactical,
    evaluate_tactical,
)
from stock_decision.tools.context import ToolContext

logger = logging.getLogger(__name__)

DEFAULT_EXPECTED_VOLATILITY_PCT = 2.0


@dataclass(frozen=True)
class SymbolEvaluation:
    """Every stage's output for one symbol, in pipeline order."""

    symbol: str
    sector: str
    snapshot: StockSnapshot
    market_context: MarketContext
    sector_regime: SectorRegimeResult
    strategic: StrategicGrowthEvaluation
    tactical: TacticalSentinelEvaluation
    portfolio: PortfolioConstraintResult
    confirmation: ConfirmationResult
    phase3: Phase3Result
    phase3_cooldown: CooldownDecision
    decision: DecisionResult


def parse_portfolio(
    total_capital: float | None = None,
    sector_exposure: dict[str, float] | None = None,
    volatility_used_pct: float | None = None,
) -> PortfolioSnapshot:
    """
    Portfolio snapshot from tool arguments, defaulting to DEFAULT_PORTFOLIO.

    Raises:
        ValueError: On negative capital or percentages outside [0, 100]
    """
    if total_capital is not None and total_capital <= 0:
        raise ValueError("total_capital must be positive")
    if volatility_used_pct is not None and not 0 <= volatility_used_pct <= 100:
        raise ValueError("volatility_used_pct must be between 0 and 100")
    for sector, pct in (sector_exposure or {}).items():
        if not 0 <= pct <= 100:
            raise ValueError(f"sector_exposure for {sector} must be between 0 and 100")

    exposure = {
        normalize_sector_name(sector) or sector: float(pct)
        for sector, pct in (sector_exposure or {}).items()
    }
    return PortfolioSnapshot(
        total_capital=total_capital if total_capital is not None else DEFAULT_PORTFOLIO.total_capital,
        sector_exposure_pct=exposure or dict(DEFAULT_PORTFOLIO.sector_exposure_pct),
        volatility_used_pct=(
            volatility_used_pct
            if volatility_used_pct is not None
            else DEFAULT_PORTFOLIO.volatility_used_pct
        ),
    )


def sector_rank(sector: str, context: MarketContext) -> int:
    """1-based position of the sector ETF by relative strength."""
    name = normalize_sector_name(sector) or sector
    for index, state in enumerate(context.sectors):
        if state.name == name:
            return index + 1
    return DEFAULT_SECTOR_RANK


def sector_regime_for(symbol: str, sector: str | None, context: MarketContext) -> SectorRegimeResult:
    resolved = normalize_sector_name(resolve_sector(symbol, sector)) or "Unknown"
    return evaluate_sector_regime(derive_sector_inputs(resolved, context))


def assemble_evaluation(
    snapshot: StockSnapshot,
    context: MarketContext,
    cooldown: ConfirmationCooldown,
    portfolio: PortfolioSnapshot = DEFAULT_PORTFOLIO,
) -> SymbolEvaluation:
    """
    Run every engine over a snapshot and a market context.

    Pure apart from the Phase 3 cooldown, which remembers the last level
    per symbol.
    """
    symbol = snapshot.symbol
    sector = normalize_sector_name(resolve_sector(symbol, snapshot.sector)) or "Unknown"
    market_regime = context.regime

    sector_result = evaluate_sector_regime(derive_sector_inputs(sector, context))

    strategic = evaluate_strategic_in_regime(
        to_strategic_inputs(
            snapshot,
            sector_exposure=portfolio.sector_exposure_pct.get(sector),
            vix_level=context.volatility.vix_level,
        ),
        market_regime,
    )

    raw_tactical = evaluate_tactical(to_tactical_inputs(snapshot, sector_rank=sector_rank(sector, context)))
    tactical = contextualize_tactical(
        raw_tactical,
        market_regime,
        sector_result.regime,
        days_to_earnings=snapshot.events.days_to_earnings,
    )

    portfolio_result = evaluate_portfolio(
        portfolio,
        ConstraintCandidate(
            sector=sector,
            sector_regime=sector_result.regime,
            expected_volatility_pct=snapshot.technicals.atr_percent or DEFAULT_EXPECTED_VOLATILITY_PCT,
        ),
    )

    confirmation = evaluate_confirmation(build_confirmation_data(snapshot, context.breadth), symbol)

    phase3 = evaluate_phase3(build_phase3_input(snapshot, market_regime, sector_result.regime))
    phase3_cooldown = cooldown.evaluate(symbol, phase3.confirmation_level, phase3.confirmation_score)

    decision = compose_decision(
        DecisionInputs(
            strategic_score=strategic.score,
            strategic_status=strategic.status,
            tactical_score=tactical.score,
            tactical_status=tactical.status,
            market_regime=market_regime,
            sector_regime=sector_result.regime,
            portfolio_action=portfolio_result.action,
            portfolio_reasons=portfolio_result.reasons,
            confirmation_signal=confirmation.overall_signal,
            confirmation_level=phase3_cooldown.level,
            integrity_flags=tactical.integrity_flags,
            is_fallback=snapshot.meta.is_fallback,
            data_confidence=snapshot.meta.confidence,
        )
    )

    logger.info(
        f"{symbol}: strategic={strategic.score:.0f} {strategic.status}, "
        f"tactical={tactical.score:.0f} {tactical.status}, decision={decision.label}"
    )
    return SymbolEvaluation(
        symbol=symbol,
        sector=sector,
        snapshot=snapshot,
        market_context=context,
        sector_regime=sector_result,
        strategic=strategic,
        tactical=tactical,
        portfolio=portfolio_result,
        confirmation=confirmation,
        phase3=phase3,
        phase3_cooldown=phase3_cooldown,
        decision=decision,
    )


async def evaluate_symbol(
    ctx: ToolContext,
    symbol: str,
    portfolio: PortfolioSnapshot = DEFAULT_PORTFOLIO,
    force_refresh: bool = False,
    context: MarketContext | None = None,
) -> SymbolEvaluation:
    """
    Fetch the snapshot and market context concurrently, then evaluate.

    Batch callers pass the market context they already hold so every
    symbol is judged under the same one.

    Raises:
        ValueError: If the symbol is malformed or unknown
    """
    if context is None:
        snapshot, context = await asyncio.gather(
            ctx.snapshot(symbol, force_refresh=force_refresh),
            ctx.market.get_market_context(),
        )
    else:
        snapshot = await ctx.snapshot(symbol, force_refresh=force_refresh)
    return assemble_evaluation(snapshot, context, ctx.cooldown, portfolio)


def data_quality(snapshot: StockSnapshot) -> dict[str, Any]:
    """Confidence block attached to every per-symbol response."""
    meta = snapshot.meta
    return {
        "confidence": meta.confidence,
        "confidence_score": meta.confidence_score,
        "confidence_reasons": meta.confidence_reasons,
        "providers_used": meta.providers_used,
        "providers_failed": meta.providers_failed,
        "warnings": meta.warnings,
        "is_fallback": meta.is_fallback,
        "data_freshness": meta.data_freshness,
    }
