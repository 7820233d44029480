"""Market regime stability guard.

A newly computed regime replaces the stable one only after it has been
observed on STABILITY_THRESHOLD_DAYS consecutive days.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from stock_decision.engines.types import MarketRegime

logger = logging.getLogger(__name__)

STABILITY_THRESHOLD_DAYS = 3
MAX_HISTORY = 10

REGIME_EXPLANATIONS: dict[str, str] = {
    "RISK_ON": "Market conditions are favorable for growth opportunities.",
    "NEUTRAL": "Market conditions are mixed. Proceed with normal caution.",
    "RISK_OFF": "Market conditions are currently cautious, which limits new opportunities.",
}


@dataclass(frozen=True)
class RegimeObservation:
    regime: MarketRegime
    date: str


@dataclass(frozen=True)
class StabilityResult:
    regime: MarketRegime
    is_stable: bool
    days_at_new_regime: int
    reason: str


def get_regime_explanation(regime: str) -> str:
    return REGIME_EXPLANATIONS.get(regime, "Market conditions are being evaluated.")


class RegimeStabilityTracker:
    """
    Holds the stable regime and a short history of daily observations.

    Repeated observations on the same date replace each other, so a busy
    day of requests counts as one day.
    """

    def __init__(
        self,
        threshold_days: int = STABILITY_THRESHOLD_DAYS,
        today: Callable[[], date] = date.today,
    ):
        self.threshold_days = threshold_days
        self._today = today
        self._history: list[RegimeObservation] = []
        self._stable: MarketRegime = "NEUTRAL"

    @property
    def stable_regime(self) -> MarketRegime:
        return self._stable

    def history(self) -> list[RegimeObservation]:
        return list(self._history)

    def _streak(self, regime: str) -> int:
        count = 0
        for observation in reversed(self._history):
            if observation.regime != regime:
                break
            count += 1
        return count

    def update(self, regime: MarketRegime) -> StabilityResult:
        today = self._today().isoformat()
        if self._history and self._history[-1].date == today:
            self._history[-1] = RegimeObservation(regime, today)
        else:
            self._history.append(RegimeObservation(regime, today))
        del self._history[:-MAX_HISTORY]

        days = self._streak(regime)
        if regime == self._stable:
            return StabilityResult(self._stable, True, days, f"Regime remains {self._stable}")

        if days >= self.threshold_days:
            previous = self._stable
            self._stable = regime
            logger.info(f"Stable market regime changed {previous} -> {regime}")
            return StabilityResult(
                regime,
                True,
                days,
                f"Regime changed from {previous} to {regime} after {days} days",
            )

        return StabilityResult(
            self._stable,
            False,
            days,
            f"New regime {regime} detected ({days}/{self.threshold_days} days), keeping {self._stable}",
        )

    def reset(self) -> None:
        self._history.clear()
        self._stable = "NEUTRAL"
