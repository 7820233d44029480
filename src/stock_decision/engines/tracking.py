"""Playbook tracking: append-only instance log and mechanical outcome scoring.

Every playbook that is shown is logged, whether or not anyone acted on it.
Outcomes are computed later from end-of-day closes at fixed horizons.
"""

import logging
import os
import statistics
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

import diskcache

from stock_decision.data.cache import CACHE_DIR

logger = logging.getLogger(__name__)

TRACKING_DIR = os.environ.get("TRACKING_DIR", os.path.join(CACHE_DIR, "tracking"))

OUTCOME_HORIZONS: tuple[int, ...] = (5, 20, 60)
PENDING_MIN_AGE_DAYS = 5
PRICE_LOOKAHEAD_BARS = 70
SIGNIFICANT_DRAWDOWN_PCT = 5.0
# Trading days to calendar days
CALENDAR_DAYS_PER_TRADING_DAY = 7 / 5

# Instance ids in logging order
INSTANCE_INDEX_KEY = "index:instances"
OUTCOME_COUNT_KEY = "count:outcomes"

HorizonStatus = Literal["PENDING", "COMPUTED", "INSUFFICIENT_DATA"]

PERFORMANCE_DISCLAIMERS: list[str] = [
    "Past outcomes do not predict future results.",
    "Outcomes are measured from end-of-day closes, not actual fills.",
    "Every shown playbook is counted, whether or not anyone acted on it.",
    "Small samples can swing widely; check the sample size first.",
    "This is decision support, not investment advice.",
]

PriceFetcher = Callable[[str, str, int], Awaitable[list[float]]]


# ============================================================================
# RECORDS
# ============================================================================


@dataclass(frozen=True)
class PlaybookInstance:
    id: str
    symbol: str
    playbook_id: str
    timestamp: float
    date: str
    price_at_signal: float
    market_regime: str
    sector_regime: str
    confirmation_level: str
    match_confidence: int
    strategic_score: float | None = None
    tactical_score: float | None = None


@dataclass(frozen=True)
class HorizonOutcome:
    horizon: int
    status: HorizonStatus
    return_pct: float | None = None
    price_at_horizon: float | None = None
    max_drawdown_pct: float | None = None


@dataclass(frozen=True)
class PlaybookOutcome:
    instance_id: str
    horizons: dict[int, HorizonOutcome]
    computed_at: str


@dataclass(frozen=True)
class HorizonMetrics:
    horizon: int
    sample_size: int
    median_return_pct: float | None = None
    positive_outcome_pct: float | None = None
    drawdown_frequency_pct: float | None = None
    dispersion_iqr: float | None = None
    return_pct_25: float | None = None
    return_pct_75: float | None = None
    worst_return_pct: float | None = None


@dataclass(frozen=True)
class PlaybookPerformance:
    playbook_id: str
    total_instances: int
    instances_with_data: dict[int, int]
    horizon_metrics: dict[int, HorizonMetrics]
    date_range: dict[str, str]
    disclaimers: list[str] = field(default_factory=lambda: list(PERFORMANCE_DISCLAIMERS))


# ============================================================================
# OUTCOME MATH
# ============================================================================


def percentile(sorted_values: list[float], p: float) -> float:
    """Linear-interpolated percentile of an ascending list."""
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return sorted_values[0]
    index = p / 100 * (len(sorted_values) - 1)
    lower = int(index)
    upper = min(lower + 1, len(sorted_values) - 1)
    weight = index - lower
    return sorted_values[lower] * (1 - weight) + sorted_values[upper] * weight


def compute_horizon_outcome(
    price_at_signal: float,
    closes: list[float],
    horizon: int,
    elapsed_days: float | None = None,
) -> HorizonOutcome:
    """
    Return and max drawdown after `horizon` trading days.

    Drawdown is measured from the running peak, which starts at the signal
    price. With too few closes the horizon is PENDING while it may still
    fill in, and INSUFFICIENT_DATA once enough calendar time has passed.
    """
    if len(closes) < horizon:
        still_open = (
            elapsed_days is not None and elapsed_days < horizon * CALENDAR_DAYS_PER_TRADING_DAY
        )
        return HorizonOutcome(horizon, "PENDING" if still_open else "INSUFFICIENT_DATA")

    price_at_horizon = closes[horizon - 1]
    peak = price_at_signal
    max_drawdown = 0.0
    for close in closes[:horizon]:
        peak = max(peak, close)
        max_drawdown = max(max_drawdown, (peak - close) / peak * 100)

    return HorizonOutcome(
        horizon=horizon,
        status="COMPUTED",
        return_pct=round((price_at_horizon - price_at_signal) / price_at_signal * 100, 4),
        price_at_horizon=price_at_horizon,
        max_drawdown_pct=round(max_drawdown, 4),
    )


def compute_horizon_metrics(horizon: int, returns: list[float], drawdowns: list[float]) -> HorizonMetrics:
    if not returns:
        return HorizonMetrics(horizon=horizon, sample_size=0)

    ordered = sorted(returns)
    p25 = percentile(ordered, 25)
    p75 = percentile(ordered, 75)
    significant = sum(1 for d in drawdowns if d > SIGNIFICANT_DRAWDOWN_PCT)
    return HorizonMetrics(
        horizon=horizon,
        sample_size=len(returns),
        median_return_pct=round(statistics.median(ordered), 4),
        positive_outcome_pct=round(sum(1 for r in returns if r > 0) / len(returns) * 100, 2),
        drawdown_frequency_pct=round(significant / len(drawdowns) * 100, 2) if drawdowns else None,
        dispersion_iqr=round(p75 - p25, 4),
        return_pct_25=round(p25, 4),
        return_pct_75=round(p75, 4),
        worst_return_pct=ordered[0],
    )


# ============================================================================
# STORE
# ============================================================================


class PlaybookTrackingStore:
    """
    diskcache-backed log of shown playbooks and their outcomes.

    Instances are written with Cache.add and are never overwritten.
    Outcomes live under separate keys and are replaced as horizons fill in.
    An id index and an outcome counter are kept next to the records, updated
    in the same transaction, so listing and stats never walk the keyspace.
    """

    def __init__(
        self,
        directory: str | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.directory = directory if directory is not None else TRACKING_DIR
        self.cache = diskcache.Cache(self.directory)
        self._now = now or (lambda: datetime.now(timezone.utc))

    def close(self) -> None:
        self.cache.close()

    # ---- instances ---------------------------------------------------------

    def log_instance(
        self,
        symbol: str,
        playbook_id: str,
        price_at_signal: float,
        market_regime: str,
        sector_regime: str,
        confirmation_level: str,
        match_confidence: int,
        strategic_score: float | None = None,
        tactical_score: float | None = None,
    ) -> PlaybookInstance:
        now = self._now()
        ts_ms = int(now.timestamp() * 1000)
        instance = PlaybookInstance(
            id=f"{playbook_id}-{symbol}-{ts_ms}",
            symbol=symbol,
            playbook_id=playbook_id,
            timestamp=now.timestamp(),
            date=now.strftime("%Y-%m-%d"),
            price_at_signal=price_at_signal,
            market_regime=market_regime,
            sector_regime=sector_regime,
            confirmation_level=confirmation_level,
            match_confidence=match_confidence,
            strategic_score=strategic_score,
            tactical_score=tactical_score,
        )
        with self.cache.transact():
            if self.cache.add(f"instance:{instance.id}", instance):
                self.cache.set(INSTANCE_INDEX_KEY, [*self._instance_ids(), instance.id])
            else:
                logger.warning(f"Playbook instance {instance.id} already logged")
        logger.info(f"Playbook instance logged: {playbook_id} @ ${price_at_signal:.2f}")
        return instance

    def _instance_ids(self) -> list[str]:
        return self.cache.get(INSTANCE_INDEX_KEY, [])

    def get_instances(self, playbook_id: str | None = None) -> list[PlaybookInstance]:
        instances = [self.cache[f"instance:{instance_id}"] for instance_id in self._instance_ids()]
        if playbook_id is not None:
            instances = [i for i in instances if i.playbook_id == playbook_id]
        return sorted(instances, key=lambda i: i.timestamp)

    def get_pending_instances(self) -> list[PlaybookInstance]:
        """Instances at least 5 days old with no outcome or a PENDING horizon."""
        now = self._now().timestamp()
        min_age = PENDING_MIN_AGE_DAYS * 24 * 60 * 60
        pending = []
        for instance in self.get_instances():
            if now - instance.timestamp < min_age:
                continue
            outcome = self.get_outcome(instance.id)
            if outcome is None or any(h.status == "PENDING" for h in outcome.horizons.values()):
                pending.append(instance)
        return pending

    # ---- outcomes ----------------------------------------------------------

    def save_outcome(self, outcome: PlaybookOutcome) -> None:
        key = f"outcome:{outcome.instance_id}"
        with self.cache.transact():
            if key not in self.cache:
                self.cache.incr(OUTCOME_COUNT_KEY)
            self.cache.set(key, outcome)

    def get_outcome(self, instance_id: str) -> PlaybookOutcome | None:
        return self.cache.get(f"outcome:{instance_id}")

    async def compute_outcomes(self, price_fetcher: PriceFetcher) -> int:
        """
        Score every pending instance from EOD closes after its signal date.

        Args:
            price_fetcher: async (symbol, start_date, limit) -> closes after start_date

        Returns:
            Number of instances with at least one horizon computed
        """
        now = self._now()
        computed = 0
        for instance in self.get_pending_instances():
            try:
                closes = await price_fetcher(instance.symbol, instance.date, PRICE_LOOKAHEAD_BARS)
            except Exception as e:
                logger.warning(f"Failed to compute outcome for {instance.id}: {e}")
                continue

            elapsed_days = (now.timestamp() - instance.timestamp) / 86400
            horizons = {
                h: compute_horizon_outcome(instance.price_at_signal, closes, h, elapsed_days)
                for h in OUTCOME_HORIZONS
            }
            self.save_outcome(PlaybookOutcome(instance.id, horizons, now.isoformat()))
            if any(h.status == "COMPUTED" for h in horizons.values()):
                computed += 1

        if computed:
            logger.info(f"Computed playbook outcomes for {computed} instance(s)")
        return computed

    # ---- aggregates --------------------------------------------------------

    def aggregate_performance(self, playbook_id: str) -> PlaybookPerformance | None:
        instances = self.get_instances(playbook_id)
        if not instances:
            return None

        returns: dict[int, list[float]] = {h: [] for h in OUTCOME_HORIZONS}
        drawdowns: dict[int, list[float]] = {h: [] for h in OUTCOME_HORIZONS}
        for instance in instances:
            outcome = self.get_outcome(instance.id)
            if outcome is None:
                continue
            for h in OUTCOME_HORIZONS:
                result = outcome.horizons.get(h)
                if result is None or result.status != "COMPUTED" or result.return_pct is None:
                    continue
                returns[h].append(result.return_pct)
                if result.max_drawdown_pct is not None:
                    drawdowns[h].append(result.max_drawdown_pct)

        dates = sorted(i.date for i in instances)
        return PlaybookPerformance(
            playbook_id=playbook_id,
            total_instances=len(instances),
            instances_with_data={h: len(returns[h]) for h in OUTCOME_HORIZONS},
            horizon_metrics={
                h: compute_horizon_metrics(h, returns[h], drawdowns[h]) for h in OUTCOME_HORIZONS
            },
            date_range={"earliest": dates[0], "latest": dates[-1]},
        )

    def stats(self) -> dict[str, int]:
        return {
            "total_instances": len(self._instance_ids()),
            "total_outcomes": self.cache.get(OUTCOME_COUNT_KEY, 0),
        }
