"""Tests for the five-layer confirmation engine."""

from stock_decision.engines.confirmation import (
    BreadthLayerData,
    ConfirmationData,
    EventsLayerData,
    InstitutionalLayerData,
    OptionsLayerData,
    SentimentLayerData,
    build_confirmation_data,
    determine_overall_signal,
    evaluate_breadth_layer,
    evaluate_confirmation,
    evaluate_events_layer,
    evaluate_institutional_layer,
    evaluate_options_layer,
    evaluate_sentiment_layer,
    unavailable_layer,
)
from stock_decision.engines.market_regime import build_breadth


class TestBreadthLayer:
    """Tests for the breadth layer."""

    def test_strong_breadth(self):
        result = evaluate_breadth_layer(BreadthLayerData(70, 1.5, 1.6, "STRONG"))
        assert result.score_adjustment == 3
        assert result.signal == "CONFIRMING"
        assert result.confidence == "HIGH"
        assert "New highs outpacing new lows" in result.reasons

    def test_weak_breadth(self):
        result = evaluate_breadth_layer(BreadthLayerData(30, 0.6, 0.4, "WEAK"))
        assert result.score_adjustment == -3
        assert result.signal == "DISCONFIRMING"

    def test_neutral_health_tiebreak(self):
        """A neutral health label is nudged by the % above 200DMA."""
        result = evaluate_breadth_layer(BreadthLayerData(66, 1.0, 1.0, "NEUTRAL"))
        assert result.score_adjustment == 1
        assert result.reasons[1] == "66% of stocks above 200 DMA (bullish)"

    def test_missing_data(self):
        result = evaluate_breadth_layer(BreadthLayerData(None))
        assert result.data_available is False
        assert result.reasons == ["Data not available"]


class TestInstitutionalLayer:
    """Tests for the institutional layer."""

    def test_accumulation_by_large_holders(self):
        result = evaluate_institutional_layer(InstitutionalLayerData(72, "INCREASING", ["Vanguard", "BlackRock"]))
        assert result.score_adjustment == 5
        assert result.flags == ["INSIDER_BUYING"]
        assert result.reasons[-1] == "Top holders: Vanguard, BlackRock"

    def test_exit(self):
        result = evaluate_institutional_layer(InstitutionalLayerData(65, "DECREASING"))
        assert result.score_adjustment == -5
        assert result.flags == ["INSTITUTIONAL_EXIT"]

    def test_flat_activity(self):
        result = evaluate_institutional_layer(InstitutionalLayerData(40, "FLAT"))
        assert result.score_adjustment == 0
        assert result.confidence == "LOW"


class TestOptionsLayer:
    """Tests for the options layer."""

    def test_bullish_flow(self):
        result = evaluate_options_layer(OptionsLayerData(0.5))
        assert result.score_adjustment == 4
        assert result.flags == ["LOW_PUT_CALL"]

    def test_bearish_flow(self):
        result = evaluate_options_layer(OptionsLayerData(1.5))
        assert result.score_adjustment == -4
        assert result.signal == "DISCONFIRMING"

    def test_slightly_elevated_puts_keep_neutral_signal(self):
        result = evaluate_options_layer(OptionsLayerData(1.15))
        assert result.signal == "NEUTRAL"
        assert result.score_adjustment == -1

    def test_elevated_iv_rank_shaves_point(self):
        result = evaluate_options_layer(OptionsLayerData(0.5, iv_rank=85))
        assert result.score_adjustment == 3
        assert "ELEVATED_IV" in result.flags

    def test_call_heavy_open_interest(self):
        result = evaluate_options_layer(OptionsLayerData(0.9, call_open_interest=700, put_open_interest=300))
        assert "Call-heavy open interest (70% calls)" in result.reasons

    def test_missing_put_call(self):
        assert evaluate_options_layer(OptionsLayerData(None)).data_available is False


class TestSentimentLayer:
    """Tests for the sentiment layer."""

    def test_strong_rating_and_insider_buying(self):
        result = evaluate_sentiment_layer(SentimentLayerData(4.2, insider_buying=True))
        assert result.score_adjustment == 3
        assert result.flags == ["INSIDER_BUYING"]

    def test_weak_rating_and_sell_skew(self):
        result = evaluate_sentiment_layer(SentimentLayerData(2.0, buy_count=1, sell_count=5))
        assert result.score_adjustment == -3
        assert "INSIDER_SELLING" in result.flags

    def test_neutral_rating(self):
        result = evaluate_sentiment_layer(SentimentLayerData(3.2))
        assert result.score_adjustment == 0
        assert result.reasons == ["Neutral analyst rating: 3.2/5"]


class TestEventsLayer:
    """Tests for the events layer."""

    def test_imminent_earnings_disconfirms(self):
        """Earnings in 2 days flags EARNINGS_IMMINENT and subtracts 3."""
        result = evaluate_events_layer(EventsLayerData(days_to_earnings=2))
        assert "EARNINGS_IMMINENT" in result.flags
        assert result.signal == "DISCONFIRMING"
        assert result.score_adjustment == -3
        assert result.reasons[0] == "⚠ Earnings in 2 days"

    def test_quiet_period_confirms(self):
        result = evaluate_events_layer(EventsLayerData(days_to_earnings=40, news_count=1))
        assert result.score_adjustment == 2
        assert result.signal == "CONFIRMING"

    def test_pending_news(self):
        result = evaluate_events_layer(EventsLayerData(days_to_earnings=10, has_major_news_pending=True))
        assert "MAJOR_NEWS_PENDING" in result.flags
        assert result.score_adjustment == -3

    def test_unknown_earnings(self):
        result = evaluate_events_layer(EventsLayerData())
        assert result.reasons[0] == "No imminent earnings date"
        assert result.score_adjustment == 1


class TestOverallSignal:
    """Tests for aggregation."""

    def test_net_is_sum_of_layers(self):
        data = ConfirmationData(
            breadth=BreadthLayerData(70, 1.5, 1.6, "STRONG"),
            institutional=InstitutionalLayerData(72, "INCREASING"),
            options=OptionsLayerData(0.5),
            sentiment=SentimentLayerData(4.2, insider_buying=True),
            events=EventsLayerData(days_to_earnings=40, news_count=1),
        )
        result = evaluate_confirmation(data, "TEST")
        assert result.net_adjustment == sum(layer.score_adjustment for layer in result.layers)
        assert result.net_adjustment == 17
        assert result.overall_signal == "STRONG_CONFIRM"
        assert result.confirming_count == 5
        # Flags are de-duplicated in layer order
        assert result.flags == ["INSIDER_BUYING", "LOW_PUT_CALL"]

    def test_all_missing_is_neutral(self):
        result = evaluate_confirmation(ConfirmationData())
        assert result.net_adjustment == 0
        assert result.overall_signal == "NEUTRAL"
        assert all(not layer.data_available for layer in result.layers)
        assert [layer.layer for layer in result.layers] == [
            "BREADTH",
            "INSTITUTIONAL",
            "OPTIONS",
            "SENTIMENT",
            "EVENTS",
        ]

    def test_small_net_still_has_direction(self):
        layers = [unavailable_layer("BREADTH")]
        assert determine_overall_signal(1, layers) == "CONFIRM"
        assert determine_overall_signal(-2, layers) == "DISCONFIRM"
        assert determine_overall_signal(0, layers) == "NEUTRAL"


class TestBuildConfirmationData:
    """Tests for deriving layer inputs from a snapshot."""

    def test_from_snapshot(self, snapshot_factory):
        snapshot = snapshot_factory()
        data = build_confirmation_data(snapshot, build_breadth(55, 1.0))
        assert data.breadth.health == "NEUTRAL"
        assert data.institutional.ownership_pct == 72.0
        assert data.institutional.trend == "FLAT"
        assert data.options is None
        assert data.sentiment.analyst_rating == 4.2
        assert data.events.days_to_earnings == 52

    def test_failed_calendar_leaves_events_unavailable(self, snapshot_factory):
        snapshot = snapshot_factory(providers_failed=["yfinance-calendar"])
        data = build_confirmation_data(snapshot)
        assert data.breadth is None
        assert data.events is None
