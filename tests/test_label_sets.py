"""Closed label sets shown to users.

Clients switch on these strings, so renaming or reordering one is a
breaking change.
"""

import pytest

from stock_decision.engines.confirmation import (
    LAYER_ORDER,
    OVERALL_SIGNALS,
    ConfirmationData,
    evaluate_confirmation,
)
from stock_decision.engines.decision import DECISION_LABELS
from stock_decision.engines.phase3 import CONFIRMATION_LEVELS, confirmation_level_for
from stock_decision.engines.portfolio import PORTFOLIO_ACTIONS
from stock_decision.engines.ranking import CAPITAL_PRIORITIES
from stock_decision.engines.types import (
    CONFIDENCE_LEVELS,
    MARKET_REGIMES,
    SECTOR_REGIMES,
    STRATEGIC_STATUSES,
    TACTICAL_STATUSES,
)


class TestLabelSets:
    """Exact values of each enumeration."""

    @pytest.mark.parametrize(
        "labels, expected",
        [
            (CONFIDENCE_LEVELS, ("HIGH", "MEDIUM", "LOW")),
            (STRATEGIC_STATUSES, ("ELIGIBLE", "WATCH", "REJECT")),
            (TACTICAL_STATUSES, ("TRADE", "WATCH", "AVOID")),
            (MARKET_REGIMES, ("RISK_ON", "NEUTRAL", "RISK_OFF")),
            (SECTOR_REGIMES, ("FAVORED", "NEUTRAL", "AVOID")),
            (PORTFOLIO_ACTIONS, ("ALLOW", "REDUCE", "BLOCK")),
            (CAPITAL_PRIORITIES, ("BUY", "ACCUMULATE", "PILOT", "WATCH", "BLOCKED")),
            (CONFIRMATION_LEVELS, ("STRONG", "WEAK", "NONE")),
            (DECISION_LABELS, ("GOOD_TO_ACT", "WORTH_A_SMALL_LOOK", "KEEP_AN_EYE_ON", "PAUSE")),
            (
                OVERALL_SIGNALS,
                ("STRONG_CONFIRM", "CONFIRM", "NEUTRAL", "DISCONFIRM", "STRONG_DISCONFIRM"),
            ),
        ],
    )
    def test_exact_values(self, labels: tuple[str, ...], expected: tuple[str, ...]) -> None:
        assert labels == expected


class TestLabelsInResults:
    """Engine output stays inside its label set."""

    def test_confirmation_layers_follow_layer_order(self) -> None:
        result = evaluate_confirmation(ConfirmationData())

        assert [layer.layer for layer in result.layers] == list(LAYER_ORDER)
        assert result.overall_signal in OVERALL_SIGNALS
        assert all(layer.confidence in CONFIDENCE_LEVELS for layer in result.layers)

    @pytest.mark.parametrize("score", range(0, 11))
    def test_phase3_levels(self, score: int) -> None:
        assert confirmation_level_for(score) in CONFIRMATION_LEVELS
