"""Tests for data-confidence scoring."""

import logging

from stock_decision.engines.confidence import ConfidenceFactors, evaluate_confidence


class TestEvaluateConfidence:
    """Tests for evaluate_confidence."""

    def test_complete_data_is_high(self):
        result = evaluate_confidence(ConfidenceFactors())
        assert result.level == "HIGH"
        assert result.score == 100
        assert result.reasons == []

    def test_failed_provider_weighted(self):
        """Options carry 10 of 100 weight points, costing 5 of the 50-point budget."""
        result = evaluate_confidence(ConfidenceFactors(providers_failed=["yfinance-options"]))
        assert result.score == 95
        assert result.level == "HIGH"
        assert result.reasons == ["1 provider(s) unavailable: yfinance-options"]

    def test_failed_provider_list_truncated(self):
        failed = ["a", "b", "c", "d"]
        result = evaluate_confidence(ConfidenceFactors(providers_failed=failed, providers_total=failed))
        assert result.reasons[0] == "4 provider(s) unavailable: a, b, c..."
        assert result.score == 50

    def test_missing_sections(self):
        result = evaluate_confidence(ConfidenceFactors(has_price=False, has_fundamentals=False))
        assert result.score == 60
        assert result.level == "MEDIUM"
        assert "Price data unavailable - using fallback" in result.reasons
        assert "Fundamental data unavailable" in result.reasons

    def test_stale_data(self):
        result = evaluate_confidence(ConfidenceFactors(data_age_seconds=900))
        assert result.score == 85
        assert result.reasons == ["Data is 15 minutes old"]

    def test_stale_penalty_capped(self):
        result = evaluate_confidence(ConfidenceFactors(data_age_seconds=3600))
        assert result.score == 80
        assert result.level == "HIGH"

    def test_fresh_data_not_penalized(self):
        assert evaluate_confidence(ConfidenceFactors(data_age_seconds=299)).score == 100

    def test_unknown_regime(self):
        result = evaluate_confidence(ConfidenceFactors(regime_known=False))
        assert result.score == 90
        assert result.reasons == ["Market regime unknown"]

    def test_floor_at_zero(self):
        total = ["yfinance-history", "yfinance-info"]
        result = evaluate_confidence(
            ConfidenceFactors(
                providers_failed=total,
                providers_total=total,
                has_price=False,
                has_fundamentals=False,
                has_technicals=False,
                has_sentiment=False,
                has_options=False,
            )
        )
        assert result.score == 0
        assert result.level == "LOW"

    def test_reduction_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="stock_decision.engines.confidence"):
            evaluate_confidence(ConfidenceFactors(has_options=False))
        assert "Confidence reduced to HIGH (95)" in caplog.text

    def test_no_log_when_complete(self, caplog):
        with caplog.at_level(logging.WARNING, logger="stock_decision.engines.confidence"):
            evaluate_confidence(ConfidenceFactors())
        assert caplog.text == ""
