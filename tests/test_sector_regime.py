"""Tests for sector regime classification."""

from stock_decision.engines.sector_regime import (
    SectorRegimeInputs,
    derive_sector_inputs,
    evaluate_sector_regime,
    normalize_sector_name,
    resolve_sector,
)


class TestEvaluateSectorRegime:
    """Tests for evaluate_sector_regime."""

    def test_favored_high_confidence(self):
        result = evaluate_sector_regime(SectorRegimeInputs("Technology", "UP", "STRONG", "LOW", "TAILWIND"))
        assert result.regime == "FAVORED"
        assert result.confidence == "HIGH"
        assert result.score == 4
        assert result.reasons[0] == "Sector outperforming market"

    def test_favored_medium_confidence(self):
        result = evaluate_sector_regime(SectorRegimeInputs("Technology", "UP", "STRONG", "NORMAL", "NEUTRAL"))
        assert result.regime == "FAVORED"
        assert result.confidence == "MEDIUM"

    def test_avoid(self):
        result = evaluate_sector_regime(SectorRegimeInputs("Energy", "DOWN", "WEAK", "HIGH", "HEADWIND"))
        assert result.regime == "AVOID"
        assert result.score == -4
        assert result.confidence == "HIGH"

    def test_neutral_has_no_reasons(self):
        result = evaluate_sector_regime(SectorRegimeInputs("Utilities", "FLAT", "NEUTRAL", "NORMAL", "NEUTRAL"))
        assert result.regime == "NEUTRAL"
        assert result.score == 0
        assert result.reasons == []


class TestSectorNames:
    """Tests for sector name resolution."""

    def test_aliases(self):
        assert normalize_sector_name("Financial Services") == "Financials"
        assert normalize_sector_name("Consumer Cyclical") == "Consumer Discretionary"
        assert normalize_sector_name("Technology") == "Technology"
        assert normalize_sector_name(None) is None

    def test_fallback_map(self):
        assert resolve_sector("aapl", None) == "Technology"
        assert resolve_sector("AAPL", "Energy") == "Energy"
        assert resolve_sector("ZZZZ", None) == "Unknown"


class TestDeriveSectorInputs:
    """Tests for mapping a market context onto sector inputs."""

    def test_leading_sector_in_risk_on(self, market_context_factory):
        context = market_context_factory(regime="RISK_ON", vix=12)
        inputs = derive_sector_inputs("Technology", context)
        assert inputs.relative_strength == "UP"
        assert inputs.trend_health == "STRONG"
        assert inputs.volatility == "LOW"
        assert inputs.macro_alignment == "TAILWIND"
        assert evaluate_sector_regime(inputs).regime == "FAVORED"

    def test_lagging_sector_in_risk_off(self, market_context_factory):
        context = market_context_factory(regime="RISK_OFF", vix=30)
        result = evaluate_sector_regime(derive_sector_inputs("Energy", context))
        assert result.regime == "AVOID"

    def test_provider_alias_matches_etf(self, market_context_factory):
        """yfinance's "Financial Services" resolves to the XLF state."""
        inputs = derive_sector_inputs("Financial Services", market_context_factory())
        assert inputs.relative_strength == "FLAT"
        assert inputs.sector == "Financial Services"

    def test_unknown_sector_is_flat(self, market_context_factory):
        inputs = derive_sector_inputs("Unknown", market_context_factory())
        assert inputs.relative_strength == "FLAT"
        assert inputs.volatility == "NORMAL"
