"""Tests for the Tactical Sentinel evaluator."""

from dataclasses import replace

import pytest

from stock_decision.engines.tactical import (
    TacticalInputs,
    contextualize_tactical,
    evaluate_event_proximity,
    evaluate_liquidity,
    evaluate_sentiment,
    evaluate_tactical,
    integrity_overlay,
)
from stock_decision.engines.types import get_status, tactical_status_for


@pytest.fixture
def strong_inputs() -> TacticalInputs:
    return TacticalInputs(
        daily_ma_alignment=True,
        hourly_confirmation=True,
        above_vwap=True,
        momentum_score=80,
        momentum_direction="accelerating",
        avg_volume=1_000_000,
        current_volume=2_000_000,
        bid_ask_spread=0.01,
        put_call_ratio=0.8,
        social_sentiment="bullish",
        days_to_earnings=30,
        days_to_ex_dividend=30,
        has_pending_news=False,
        days_in_trade=0,
        max_trade_days=20,
        relative_strength=90,
        sector_rank=1,
    )


class TestFactors:
    """Tests for individual tactical factors."""

    def test_liquidity_zero_average_volume(self, strong_inputs):
        """A zero average volume scores as low volume instead of dividing by zero."""
        detail = evaluate_liquidity(replace(strong_inputs, avg_volume=0))
        assert detail.breakdown[0] == "Low volume: 0% of average"
        assert detail.score == 2 + 7

    def test_contrarian_put_call(self, strong_inputs):
        """A very low put/call ratio scores below the neutral band."""
        bullish = evaluate_sentiment(replace(strong_inputs, put_call_ratio=0.5))
        neutral = evaluate_sentiment(strong_inputs)
        assert bullish.score < neutral.score

    def test_imminent_earnings(self, strong_inputs):
        """Earnings within 3 days removes 8 points."""
        detail = evaluate_event_proximity(replace(strong_inputs, days_to_earnings=2))
        assert detail.score == 2
        assert detail.breakdown[0] == "Earnings in 2 days - high binary risk"

    def test_event_factor_floors_at_zero(self, strong_inputs):
        """Stacked event deductions never go negative."""
        detail = evaluate_event_proximity(
            replace(strong_inputs, days_to_earnings=1, days_to_ex_dividend=1, has_pending_news=True)
        )
        assert detail.score == 0
        assert detail.status == "fail"


class TestEvaluateTactical:
    """Tests for the raw tactical evaluation."""

    def test_strong_setup(self, strong_inputs):
        """Every factor at maximum totals 95."""
        raw = evaluate_tactical(strong_inputs)
        assert raw.score == 95
        assert raw.technical_setup == "Strong"
        assert raw.event_risk == "Clear"
        assert raw.failure_trigger == ""

    def test_raw_has_no_status(self, strong_inputs):
        """Status exists only after context is applied."""
        assert not hasattr(evaluate_tactical(strong_inputs), "status")

    def test_near_event(self, strong_inputs):
        """Earnings within a week marks event risk as near."""
        raw = evaluate_tactical(replace(strong_inputs, days_to_earnings=5))
        assert raw.event_risk == "Near"

    def test_deterministic(self, strong_inputs):
        """Same inputs, same result."""
        assert evaluate_tactical(strong_inputs) == evaluate_tactical(strong_inputs)


class TestIntegrityOverlay:
    """Tests for integrity_overlay."""

    def test_no_events(self):
        assert integrity_overlay(None, False) == (0, [])

    def test_earnings_flag(self):
        """Earnings within 5 days costs 8 points."""
        penalty, flags = integrity_overlay(2, False)
        assert penalty == -8
        assert flags == ["Earnings in 2 days - elevated volatility risk"]

    def test_singular_day(self):
        _, flags = integrity_overlay(1, False)
        assert flags == ["Earnings in 1 day - elevated volatility risk"]

    def test_penalty_capped(self):
        """Earnings plus news is capped at -10."""
        penalty, flags = integrity_overlay(1, True)
        assert penalty == -10
        assert len(flags) == 2


class TestContextualizeTactical:
    """Tests for contextualize_tactical."""

    def test_risk_on_tilt_clamped(self, strong_inputs):
        """RISK_ON adds 8 points and the result is clamped at 100."""
        result = contextualize_tactical(evaluate_tactical(strong_inputs), "RISK_ON", "FAVORED")
        assert result.score == 100
        assert result.status == "TRADE"
        assert result.regime_penalty.has_penalty is False

    def test_neutral_penalties_take_worst(self, strong_inputs):
        """NEUTRAL market (-3) and NEUTRAL sector (-2) combine to -3, not -5."""
        result = contextualize_tactical(evaluate_tactical(strong_inputs), "NEUTRAL", "NEUTRAL")
        assert result.score == 92
        assert result.regime_penalty.penalty == -3
        assert result.regime_penalty.worst_regime == "BOTH"

    def test_risk_off_and_avoid_single_penalty(self, strong_inputs):
        """RISK_OFF with sector AVOID applies only the -12 market penalty."""
        result = contextualize_tactical(evaluate_tactical(strong_inputs), "RISK_OFF", "AVOID")
        assert result.score == 83
        assert result.regime_adjustment == -12
        assert result.integrity_penalty == 0
        assert result.status == "TRADE"

    def test_integrity_penalty_changes_status(self, strong_inputs):
        """Imminent earnings can drop a borderline setup out of TRADE."""
        raw = replace(evaluate_tactical(strong_inputs), score=75)
        result = contextualize_tactical(raw, "NEUTRAL", "FAVORED", days_to_earnings=2)
        # 75 - 3 (market) - 8 (earnings)
        assert result.score == 64
        assert result.status == "WATCH"
        assert result.regime_adjustment == -3
        assert result.integrity_penalty == -8
        assert result.integrity_flags == ["Earnings in 2 days - elevated volatility risk"]

    def test_score_floor(self, strong_inputs):
        """A tiny raw score cannot go negative."""
        raw = replace(evaluate_tactical(strong_inputs), score=5)
        result = contextualize_tactical(raw, "RISK_OFF", "AVOID", days_to_earnings=1, has_active_news=True)
        assert result.score == 0
        assert result.status == "AVOID"


EXTREME_OVERRIDES = [
    {"avg_volume": 0},
    {"avg_volume": 0, "current_volume": 0},
    {"max_trade_days": 0},
    {"days_in_trade": 500, "max_trade_days": 20},
    {"momentum_score": 0, "momentum_direction": "decelerating"},
    {"momentum_score": 100},
    {"relative_strength": 0, "sector_rank": 11},
    {"relative_strength": 100, "sector_rank": 1},
    {"bid_ask_spread": 5.0},
    {"put_call_ratio": 0, "social_sentiment": "bearish"},
    {"put_call_ratio": 3.0},
    {"days_to_earnings": 0, "days_to_ex_dividend": 0, "has_pending_news": True},
    {
        "daily_ma_alignment": False,
        "hourly_confirmation": False,
        "above_vwap": False,
        "momentum_score": 0,
        "momentum_direction": "decelerating",
        "avg_volume": 0,
        "current_volume": 0,
        "max_trade_days": 0,
    },
]


class TestBoundarySweep:
    """Bounds and status consistency across extreme inputs and contexts."""

    @pytest.mark.parametrize("overrides", EXTREME_OVERRIDES)
    @pytest.mark.parametrize("market_regime", ["RISK_ON", "NEUTRAL", "RISK_OFF"])
    @pytest.mark.parametrize("sector_regime", ["FAVORED", "NEUTRAL", "AVOID"])
    @pytest.mark.parametrize("days_to_earnings,has_active_news", [(None, False), (0, True)])
    def test_extreme_inputs_stay_bounded(
        self, strong_inputs, overrides, market_regime, sector_regime, days_to_earnings, has_active_news
    ):
        raw = evaluate_tactical(replace(strong_inputs, **overrides))
        for d in raw.details:
            assert 0 <= d.score <= d.max_score
            assert d.status == get_status(d.score, d.max_score)
        assert 0 <= raw.score <= 100

        result = contextualize_tactical(
            raw, market_regime, sector_regime, days_to_earnings=days_to_earnings, has_active_news=has_active_news
        )
        assert 0 <= result.score <= 100
        assert result.status == tactical_status_for(result.score)
        assert -10 <= result.integrity_penalty <= 0
