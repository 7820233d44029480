"""Tests for the decision composer and dashboard summary."""

import pytest

from stock_decision.engines.decision import (
    DecisionInputs,
    check_score_distribution,
    compose_decision,
    get_horizon_label,
    get_score_band,
    summarize_dashboard,
)


def _inputs(**overrides) -> DecisionInputs:
    values = {
        "strategic_score": 75,
        "strategic_status": "ELIGIBLE",
        "tactical_score": 70,
        "tactical_status": "TRADE",
        "market_regime": "NEUTRAL",
        "sector_regime": "NEUTRAL",
    }
    values.update(overrides)
    return DecisionInputs(**values)


class TestHelpers:
    """Tests for horizon labels, score bands and distribution checks."""

    @pytest.mark.parametrize(
        "strategic,tactical,expected",
        [
            ("ELIGIBLE", "TRADE", "High Conviction + Actionable"),
            ("ELIGIBLE", "WATCH", "Strong Business – Wait for Setup"),
            ("WATCH", "TRADE", "Short-Term Opportunity Only"),
            ("WATCH", "WATCH", "Developing – Monitor Both"),
            ("REJECT", "AVOID", "Not Actionable"),
        ],
    )
    def test_horizon_label(self, strategic, tactical, expected):
        assert get_horizon_label(strategic, tactical) == expected

    def test_score_bands(self):
        assert get_score_band(80).name == "EXCEPTIONAL"
        assert get_score_band(74.5).name == "STRONG"
        assert get_score_band(45).name == "NEUTRAL"
        assert get_score_band(10).name == "WEAK"
        assert get_score_band(-5).name == "WEAK"
        assert get_score_band(150).name == "EXCEPTIONAL"

    def test_distribution_needs_data(self):
        result = check_score_distribution([50] * 9)
        assert result.needs_rescaling is False
        assert result.suggestion == "Not enough data to evaluate distribution"

    def test_distribution_clustered(self):
        result = check_score_distribution([50] * 9 + [90])
        assert result.needs_rescaling is True
        assert result.cluster_pct == 90.0
        assert result.suggestion == "90% of scores cluster between 40-60. Consider gentle rescaling."

    def test_distribution_healthy(self):
        result = check_score_distribution([50] * 8 + [90, 10])
        assert result.needs_rescaling is False
        assert result.suggestion == "Score distribution is healthy"


class TestComposeDecision:
    """Tests for compose_decision."""

    def test_good_to_act(self):
        result = compose_decision(_inputs())
        assert result.label == "GOOD_TO_ACT"
        assert result.display_text == "Good to Act Now"
        assert result.can_act is True
        assert result.horizon_label == "High Conviction + Actionable"

    def test_portfolio_block_pauses(self):
        result = compose_decision(
            _inputs(portfolio_action="BLOCK", portfolio_reasons=["Sector exposure cap reached"])
        )
        assert result.label == "PAUSE"
        assert result.explanation == "Risk concerns: Sector exposure cap reached"
        assert result.risk_block_reasons == ["Sector exposure cap reached"]
        assert result.can_act is False

    def test_portfolio_block_without_reasons_still_pauses(self):
        """A BLOCK is never promoted, and the PAUSE still explains itself."""
        result = compose_decision(
            _inputs(tactical_score=80, market_regime="RISK_ON", portfolio_action="BLOCK", portfolio_reasons=[])
        )
        assert result.label == "PAUSE"
        assert result.can_act is False
        assert result.explanation == "Risk concerns: Portfolio constraints block this position"
        assert result.risk_block_reasons == ["Portfolio constraints block this position"]

    def test_fallback_snapshot_pauses(self):
        """Scores built on placeholder prices are never actionable."""
        result = compose_decision(
            _inputs(
                tactical_score=90,
                market_regime="RISK_ON",
                sector_regime="FAVORED",
                confirmation_signal="STRONG_CONFIRM",
                is_fallback=True,
                data_confidence="LOW",
            )
        )
        assert result.label == "PAUSE"
        assert result.can_act is False
        assert result.explanation == "Market data unavailable - using fallback snapshot"

    def test_low_confidence_caps_at_keep_an_eye_on(self):
        result = compose_decision(_inputs(tactical_score=90, data_confidence="LOW"))
        assert result.label == "KEEP_AN_EYE_ON"
        assert "Data confidence is low" in result.explanation

    def test_low_confidence_does_not_lift_pause(self):
        result = compose_decision(_inputs(market_regime="RISK_OFF", data_confidence="LOW"))
        assert result.label == "PAUSE"

    @pytest.mark.parametrize("confidence", ["HIGH", "MEDIUM"])
    def test_adequate_confidence_keeps_label(self, confidence):
        assert compose_decision(_inputs(data_confidence=confidence)).label == "GOOD_TO_ACT"

    def test_risk_off_pauses(self):
        result = compose_decision(_inputs(market_regime="RISK_OFF", tactical_score=95))
        assert result.label == "PAUSE"
        assert result.explanation == "Market conditions are unfavorable (Risk-Off regime)"
        assert result.risk_block_reasons == ["Market regime is Risk-Off"]

    def test_confirmation_never_lifts_pause(self):
        """Even the strongest confirmation cannot unblock a PAUSE."""
        for overrides in (
            {"market_regime": "RISK_OFF"},
            {"portfolio_action": "BLOCK", "portfolio_reasons": ["Sector regime unfavorable"]},
        ):
            result = compose_decision(
                _inputs(confirmation_signal="STRONG_CONFIRM", confirmation_level="STRONG", **overrides)
            )
            assert result.label == "PAUSE"

    def test_portfolio_reduce_softens(self):
        result = compose_decision(_inputs(portfolio_action="REDUCE"))
        assert result.label == "WORTH_A_SMALL_LOOK"
        assert "smaller position" in result.explanation

    def test_disconfirmation_softens(self):
        result = compose_decision(_inputs(confirmation_signal="DISCONFIRM"))
        assert result.label == "WORTH_A_SMALL_LOOK"
        assert result.explanation == "Timing conditions are favorable but additional signals disagree"

    def test_eligible_with_developing_timing(self):
        result = compose_decision(_inputs(tactical_score=58, tactical_status="WATCH"))
        assert result.label == "WORTH_A_SMALL_LOOK"

    def test_watch_needs_confirmation(self):
        base = {"strategic_status": "WATCH", "tactical_score": 58, "tactical_status": "WATCH"}
        assert compose_decision(_inputs(**base)).label == "KEEP_AN_EYE_ON"
        assert compose_decision(_inputs(confirmation_signal="CONFIRM", **base)).label == "WORTH_A_SMALL_LOOK"

    def test_confirmation_alone_never_good_to_act(self):
        result = compose_decision(
            _inputs(tactical_score=60, tactical_status="WATCH", confirmation_signal="STRONG_CONFIRM")
        )
        assert result.label != "GOOD_TO_ACT"

    def test_disconfirmed_developing_timing(self):
        result = compose_decision(
            _inputs(tactical_score=58, tactical_status="WATCH", confirmation_signal="STRONG_DISCONFIRM")
        )
        assert result.label == "KEEP_AN_EYE_ON"

    def test_keep_an_eye_on_reason(self):
        result = compose_decision(
            _inputs(tactical_score=40, tactical_status="AVOID", confirmation_level="WEAK")
        )
        assert result.label == "KEEP_AN_EYE_ON"
        assert result.can_act is False
        assert result.explanation == (
            "Timing score (40) below action threshold (65). "
            "Only weak confirmation from additional signals"
        )

    def test_regime_penalty_is_informational(self):
        """Sector AVOID is reported but does not change the label or timing score."""
        result = compose_decision(_inputs(sector_regime="AVOID"))
        assert result.label == "GOOD_TO_ACT"
        assert result.timing_score == 70
        assert result.regime_penalty.penalty == -10
        assert result.regime_penalty.worst_regime == "SECTOR"

    def test_integrity_flags_passed_through(self):
        flags = ["Earnings in 2 days - elevated volatility risk"]
        assert compose_decision(_inputs(integrity_flags=flags)).integrity_flags == flags


class TestSummarizeDashboard:
    """Tests for summarize_dashboard."""

    def test_summary(self, market_context_factory):
        decisions = {
            "AAPL": compose_decision(_inputs()),
            "MSFT": compose_decision(
                _inputs(portfolio_action="BLOCK", portfolio_reasons=["Sector exposure cap reached"])
            ),
            "NVDA": compose_decision(_inputs(tactical_score=40, tactical_status="AVOID")),
        }
        summary = summarize_dashboard(decisions, market_context_factory(regime="RISK_ON"))
        assert summary.total == 3
        assert summary.label_counts == {
            "GOOD_TO_ACT": 1,
            "WORTH_A_SMALL_LOOK": 0,
            "KEEP_AN_EYE_ON": 1,
            "PAUSE": 1,
        }
        assert summary.actionable == ["AAPL"]
        assert summary.paused == {"MSFT": "Risk concerns: Sector exposure cap reached"}
        assert summary.market_label == "Supportive"
        assert summary.is_demo_mode is False
        assert summary.score_distribution.needs_rescaling is False

    def test_clustered_scores_logged(self, market_context_factory, caplog):
        decisions = {
            f"S{i}": compose_decision(_inputs(tactical_score=50, tactical_status="WATCH"))
            for i in range(10)
        }
        with caplog.at_level("WARNING"):
            summary = summarize_dashboard(decisions, market_context_factory())
        assert summary.score_distribution.needs_rescaling is True
        assert "Consider gentle rescaling" in caplog.text
