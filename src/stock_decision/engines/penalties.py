"""Regime penalty aggregation (double-penalty prevention).

Every overlay that penalizes on regime goes through
``aggregate_regime_penalties``: market and sector penalties combine to the
single worst penalty, never to their sum.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

from stock_decision.engines.types import MarketRegime, SectorRegime

SECTOR_AVOID_PENALTY = -10
MARKET_RISK_OFF_PENALTY = -10

DEFAULT_MARKET_PENALTIES: dict[str, int] = {"RISK_OFF": MARKET_RISK_OFF_PENALTY}
DEFAULT_SECTOR_PENALTIES: dict[str, int] = {"AVOID": SECTOR_AVOID_PENALTY}

WorstRegime = Literal["NONE", "SECTOR", "MARKET", "BOTH"]


@dataclass(frozen=True)
class RegimePenalty:
    """Single combined regime penalty and the reason for it."""

    penalty: int
    worst_regime: WorstRegime
    explanation: str
    has_penalty: bool
    market_penalty: int
    sector_penalty: int


def aggregate_regime_penalties(
    market_regime: MarketRegime,
    sector_regime: SectorRegime,
    market_penalties: Mapping[str, int] = DEFAULT_MARKET_PENALTIES,
    sector_penalties: Mapping[str, int] = DEFAULT_SECTOR_PENALTIES,
) -> RegimePenalty:
    """
    Combine market and sector regime penalties into one.

    Args:
        market_regime: Current market regime
        sector_regime: Regime of the stock's sector
        market_penalties: Penalty (<= 0) per market regime
        sector_penalties: Penalty (<= 0) per sector regime

    Returns:
        RegimePenalty whose penalty is the worst (most negative) of the two
    """
    market_penalty = min(0, market_penalties.get(market_regime, 0))
    sector_penalty = min(0, sector_penalties.get(sector_regime, 0))
    penalty = min(market_penalty, sector_penalty)

    if market_penalty < 0 and sector_penalty < 0:
        worst: WorstRegime = "BOTH"
        explanation = (
            f"Both market ({market_regime}) and sector ({sector_regime}) conditions "
            "are unfavorable. Applying single worst penalty."
        )
    elif sector_penalty < 0:
        worst = "SECTOR"
        explanation = f"Sector conditions are unfavorable ({sector_regime})"
    elif market_penalty < 0:
        worst = "MARKET"
        explanation = f"Market conditions are unfavorable ({market_regime})"
    else:
        worst = "NONE"
        explanation = "Both market and sector conditions are acceptable"

    return RegimePenalty(
        penalty=penalty,
        worst_regime=worst,
        explanation=explanation,
        has_penalty=penalty < 0,
        market_penalty=market_penalty,
        sector_penalty=sector_penalty,
    )


def calculate_regime_penalty(
    sector_regime: SectorRegime,
    market_regime: MarketRegime,
) -> RegimePenalty:
    """Decision-level regime penalty: -10 for sector AVOID and/or market RISK_OFF."""
    return aggregate_regime_penalties(market_regime, sector_regime)


def apply_penalty_to_score(score: float, penalty: RegimePenalty) -> float:
    """Apply a combined penalty, flooring at 0."""
    return max(0, score + penalty.penalty)


def should_block_action(market_regime: MarketRegime) -> tuple[bool, str | None]:
    """
    Whether the market regime alone blocks new action.

    Sector AVOID is a sizing concern handled by the portfolio engine,
    not a blanket block.
    """
    if market_regime == "RISK_OFF":
        return True, "Market regime is Risk-Off"
    return False, None
