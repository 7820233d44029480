"""Relative ranking within sectors and capital-priority labels."""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Literal

CapitalPriority = Literal["BUY", "ACCUMULATE", "PILOT", "WATCH", "BLOCKED"]
CAPITAL_PRIORITIES: tuple[str, ...] = ("BUY", "ACCUMULATE", "PILOT", "WATCH", "BLOCKED")


@dataclass(frozen=True)
class RankingInput:
    symbol: str
    sector: str
    strategic_score: float
    tactical_score: float
    strategic_status: str
    tactical_status: str
    sector_regime: str
    portfolio_action: str


@dataclass(frozen=True)
class RankedStock:
    symbol: str
    sector: str
    strategic_score: float
    tactical_score: float
    strategic_status: str
    tactical_status: str
    sector_regime: str
    portfolio_action: str
    rank_in_sector: int
    capital_priority: CapitalPriority
    reasons: list[str] = field(default_factory=list)


# Ordered ladder; the first rule whose predicate holds decides the priority
PRIORITY_LADDER: list[tuple[Callable[[RankingInput, int], bool], CapitalPriority, str | None]] = [
    (
        lambda s, rank: s.portfolio_action == "BLOCK" or s.sector_regime == "AVOID",
        "BLOCKED",
        "Capital blocked by portfolio or sector regime",
    ),
    (
        lambda s, rank: s.tactical_status == "TRADE" and s.portfolio_action == "ALLOW",
        "BUY",
        "Active tactical opportunity with capital available",
    ),
    (
        lambda s, rank: s.strategic_status == "ELIGIBLE" and s.sector_regime == "FAVORED" and rank <= 2,
        "ACCUMULATE",
        "Top-ranked stock in favored sector",
    ),
    (
        lambda s, rank: s.strategic_status == "WATCH" and rank == 1,
        "PILOT",
        "Best-in-sector watch candidate",
    ),
    (lambda s, rank: True, "WATCH", None),
]


def capital_priority_for(stock: RankingInput, rank_in_sector: int) -> tuple[CapitalPriority, list[str]]:
    for predicate, priority, reason in PRIORITY_LADDER:
        if predicate(stock, rank_in_sector):
            return priority, [reason] if reason else []
    return "WATCH", []


def rank_stocks(stocks: list[RankingInput]) -> list[RankedStock]:
    """
    Rank stocks inside their sector by strategic score.

    REJECT stocks are dropped. Sectors keep first-seen order and ties keep
    input order (Python's sort is stable).

    Args:
        stocks: Evaluated stocks with their regimes and portfolio actions

    Returns:
        RankedStock list grouped by sector, rank 1 first
    """
    by_sector: dict[str, list[RankingInput]] = {}
    for stock in stocks:
        by_sector.setdefault(stock.sector, []).append(stock)

    ranked: list[RankedStock] = []
    for sector_stocks in by_sector.values():
        eligible = sorted(
            (s for s in sector_stocks if s.strategic_status != "REJECT"),
            key=lambda s: s.strategic_score,
            reverse=True,
        )
        for index, stock in enumerate(eligible):
            rank = index + 1
            priority, reasons = capital_priority_for(stock, rank)
            ranked.append(
                RankedStock(
                    symbol=stock.symbol,
                    sector=stock.sector,
                    strategic_score=stock.strategic_score,
                    tactical_score=stock.tactical_score,
                    strategic_status=stock.strategic_status,
                    tactical_status=stock.tactical_status,
                    sector_regime=stock.sector_regime,
                    portfolio_action=stock.portfolio_action,
                    rank_in_sector=rank,
                    capital_priority=priority,
                    reasons=reasons,
                )
            )
    return ranked
