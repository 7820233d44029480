"""Portfolio constraint engine: ALLOW / REDUCE / BLOCK with a position size."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

PortfolioAction = Literal["ALLOW", "REDUCE", "BLOCK"]
PORTFOLIO_ACTIONS: tuple[str, ...] = ("ALLOW", "REDUCE", "BLOCK")

SECTOR_EXPOSURE_CAP_PCT = 25.0
VOLATILITY_BUDGET_BLOCK_PCT = 80.0
VOLATILITY_BUDGET_HIGH_PCT = 60.0
HIGH_EXPECTED_VOLATILITY_PCT = 3.0

BASE_POSITION_SIZE_PCT = 10
NEUTRAL_SECTOR_REDUCTION = 3
HIGH_VOLATILITY_USED_REDUCTION = 4
HIGH_EXPECTED_VOLATILITY_REDUCTION = 3
MIN_POSITION_SIZE_PCT = 2
REDUCE_BELOW_PCT = 5


@dataclass(frozen=True)
class PortfolioSnapshot:
    total_capital: float
    sector_exposure_pct: dict[str, float] = field(default_factory=dict)
    volatility_used_pct: float = 0.0


@dataclass(frozen=True)
class ConstraintCandidate:
    sector: str
    sector_regime: str
    expected_volatility_pct: float


@dataclass(frozen=True)
class PortfolioConstraintResult:
    action: PortfolioAction
    reasons: list[str]
    suggested_position_size_pct: int


DEFAULT_PORTFOLIO = PortfolioSnapshot(
    total_capital=100_000,
    sector_exposure_pct={},
    volatility_used_pct=30.0,
)

# Hard gates, evaluated in order; the first match blocks with size 0
HARD_GATES: list[tuple[Callable[[PortfolioSnapshot, ConstraintCandidate], bool], str]] = [
    (
        lambda p, c: p.sector_exposure_pct.get(c.sector, 0.0) >= SECTOR_EXPOSURE_CAP_PCT,
        "Sector exposure cap reached",
    ),
    (lambda p, c: c.sector_regime == "AVOID", "Sector regime unfavorable"),
    (
        lambda p, c: p.volatility_used_pct >= VOLATILITY_BUDGET_BLOCK_PCT,
        "Portfolio volatility budget exhausted",
    ),
]


def evaluate_portfolio(
    portfolio: PortfolioSnapshot,
    candidate: ConstraintCandidate,
) -> PortfolioConstraintResult:
    """
    Check a candidate position against portfolio limits.

    Hard gates run before any sizing so a blocked position never gets a
    reduced size. Soft reductions then shrink the 10% base size, floored at 2%.

    Args:
        portfolio: Current exposure and volatility budget
        candidate: Sector, sector regime and expected volatility of the new position

    Returns:
        BLOCK (size 0), REDUCE (size < 5) or ALLOW
    """
    for predicate, reason in HARD_GATES:
        if predicate(portfolio, candidate):
            return PortfolioConstraintResult(action="BLOCK", reasons=[reason], suggested_position_size_pct=0)

    size = BASE_POSITION_SIZE_PCT
    reasons: list[str] = []

    if candidate.sector_regime == "NEUTRAL":
        size -= NEUTRAL_SECTOR_REDUCTION
        reasons.append("Sector regime neutral - reduced sizing")

    if portfolio.volatility_used_pct >= VOLATILITY_BUDGET_HIGH_PCT:
        size -= HIGH_VOLATILITY_USED_REDUCTION
        reasons.append("High portfolio volatility - reduced sizing")

    if candidate.expected_volatility_pct > HIGH_EXPECTED_VOLATILITY_PCT:
        size -= HIGH_EXPECTED_VOLATILITY_REDUCTION
        reasons.append("High expected volatility - reduced sizing")

    size = max(MIN_POSITION_SIZE_PCT, size)
    return PortfolioConstraintResult(
        action="REDUCE" if size < REDUCE_BELOW_PCT else "ALLOW",
        reasons=reasons,
        suggested_position_size_pct=size,
    )
