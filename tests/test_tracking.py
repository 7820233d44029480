"""Tests for playbook tracking and outcome scoring."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from stock_decision.engines.tracking import (
    PERFORMANCE_DISCLAIMERS,
    HorizonOutcome,
    PlaybookOutcome,
    PlaybookTrackingStore,
    compute_horizon_metrics,
    compute_horizon_outcome,
    percentile,
)


class MutableClock:
    def __init__(self, start: datetime = datetime(2024, 1, 2, 21, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, days: float) -> None:
        self.current += timedelta(days=days)


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def store(tmp_path, clock):
    store = PlaybookTrackingStore(str(tmp_path / "tracking"), now=clock)
    yield store
    store.close()


def _log(store: PlaybookTrackingStore, symbol: str = "AAPL", playbook_id: str = "TREND_CONTINUATION", price: float = 100.0):
    return store.log_instance(
        symbol=symbol,
        playbook_id=playbook_id,
        price_at_signal=price,
        market_regime="RISK_ON",
        sector_regime="FAVORED",
        confirmation_level="STRONG",
        match_confidence=90,
        strategic_score=80,
        tactical_score=72,
    )


class TestOutcomeMath:
    """Tests for percentile and horizon outcomes."""

    def test_percentile_interpolates(self):
        assert percentile([1.0, 2.0, 3.0, 4.0], 50) == pytest.approx(2.5)
        assert percentile([1.0, 2.0, 3.0, 4.0], 25) == pytest.approx(1.75)
        assert percentile([7.0], 90) == 7.0
        assert percentile([], 50) == 0.0

    def test_horizon_outcome(self):
        closes = [102.0, 98.0, 104.0, 101.0, 110.0]
        outcome = compute_horizon_outcome(100.0, closes, 5)
        assert outcome.status == "COMPUTED"
        assert outcome.return_pct == 10.0
        assert outcome.price_at_horizon == 110.0
        # Peak 102 -> 98
        assert outcome.max_drawdown_pct == pytest.approx(3.9216, abs=1e-4)

    def test_drawdown_from_signal_price(self):
        """A close below the signal price counts as drawdown."""
        outcome = compute_horizon_outcome(100.0, [95.0, 96.0, 97.0, 98.0, 99.0], 5)
        assert outcome.max_drawdown_pct == 5.0
        assert outcome.return_pct == -1.0

    def test_pending_vs_insufficient(self):
        closes = [101.0] * 10
        assert compute_horizon_outcome(100.0, closes, 20, elapsed_days=14).status == "PENDING"
        assert compute_horizon_outcome(100.0, closes, 20, elapsed_days=40).status == "INSUFFICIENT_DATA"
        assert compute_horizon_outcome(100.0, closes, 20).status == "INSUFFICIENT_DATA"

    def test_metrics(self):
        metrics = compute_horizon_metrics(5, [4.0, -2.0, 1.0, 3.0], [1.0, 6.0, 2.0, 7.0])
        assert metrics.sample_size == 4
        assert metrics.median_return_pct == 2.0
        assert metrics.positive_outcome_pct == 75.0
        assert metrics.drawdown_frequency_pct == 50.0
        assert metrics.worst_return_pct == -2.0
        assert metrics.dispersion_iqr == pytest.approx(metrics.return_pct_75 - metrics.return_pct_25)

    def test_metrics_empty(self):
        metrics = compute_horizon_metrics(20, [], [])
        assert metrics.sample_size == 0
        assert metrics.median_return_pct is None


class TestInstanceLog:
    """Tests for logging and listing instances."""

    def test_log_and_read_back(self, store, caplog):
        with caplog.at_level("INFO"):
            instance = _log(store)
        assert instance.id.startswith("TREND_CONTINUATION-AAPL-")
        assert instance.date == "2024-01-02"
        assert store.get_instances() == [instance]
        assert "Playbook instance logged: TREND_CONTINUATION @ $100.00" in caplog.text

    def test_instances_never_overwritten(self, store, caplog):
        first = _log(store, price=100.0)
        with caplog.at_level("WARNING"):
            _log(store, price=200.0)
        assert store.get_instances() == [first]
        assert "already logged" in caplog.text

    def test_filter_and_order(self, store, clock):
        a = _log(store, symbol="AAPL")
        clock.advance(1)
        b = _log(store, symbol="MSFT", playbook_id="PULLBACK_ENTRY")
        clock.advance(1)
        c = _log(store, symbol="NVDA")
        assert store.get_instances() == [a, b, c]
        assert store.get_instances("TREND_CONTINUATION") == [a, c]
        assert store.stats() == {"total_instances": 3, "total_outcomes": 0}

    def test_persists_across_instances(self, tmp_path, clock):
        directory = str(tmp_path / "tracking")
        first = PlaybookTrackingStore(directory, now=clock)
        instance = _log(first)
        first.close()

        second = PlaybookTrackingStore(directory, now=clock)
        assert second.get_instances() == [instance]
        second.close()


class TestPendingAndOutcomes:
    """Tests for pending selection and outcome computation."""

    def test_pending_requires_min_age(self, store, clock):
        _log(store)
        assert store.get_pending_instances() == []
        clock.advance(5)
        assert len(store.get_pending_instances()) == 1

    def test_computed_outcome_no_longer_pending(self, store, clock):
        instance = _log(store)
        clock.advance(100)
        store.save_outcome(
            PlaybookOutcome(
                instance.id,
                {h: HorizonOutcome(h, "COMPUTED", 1.0, 101.0, 0.0) for h in (5, 20, 60)},
                clock().isoformat(),
            )
        )
        assert store.get_pending_instances() == []

    def test_compute_outcomes(self, store, clock):
        instance = _log(store, price=100.0)
        clock.advance(30)
        calls = []

        async def fetch(symbol, start_date, limit):
            calls.append((symbol, start_date, limit))
            return [100.0 + i for i in range(1, 22)]

        computed = asyncio.run(store.compute_outcomes(fetch))
        assert computed == 1
        assert calls == [("AAPL", "2024-01-02", 70)]

        outcome = store.get_outcome(instance.id)
        assert outcome.horizons[5].status == "COMPUTED"
        assert outcome.horizons[5].return_pct == 5.0
        assert outcome.horizons[20].return_pct == 20.0
        # 30 calendar days < 60 * 1.4
        assert outcome.horizons[60].status == "PENDING"
        # Still pending on the 60-day horizon
        assert store.get_pending_instances() == [instance]

    def test_too_few_closes_stays_pending(self, store, clock):
        """An early check with few closes leaves the horizons open."""
        clock.current = datetime(2024, 1, 5, 21, 0, tzinfo=timezone.utc)
        instance = _log(store)
        clock.advance(5)

        async def early_fetch(symbol, start_date, limit):
            return [101.0, 102.0, 103.0]

        assert asyncio.run(store.compute_outcomes(early_fetch)) == 0
        outcome = store.get_outcome(instance.id)
        assert {h.status for h in outcome.horizons.values()} == {"PENDING"}
        assert store.get_pending_instances() == [instance]

        clock.advance(115)

        async def later_fetch(symbol, start_date, limit):
            return [100.0 + i for i in range(1, 71)]

        assert asyncio.run(store.compute_outcomes(later_fetch)) == 1
        outcome = store.get_outcome(instance.id)
        assert {h.status for h in outcome.horizons.values()} == {"COMPUTED"}
        assert outcome.horizons[60].return_pct == 60.0
        assert store.get_pending_instances() == []

    def test_too_few_closes_after_horizons_elapse(self, store, clock):
        instance = _log(store)
        clock.advance(120)

        async def fetch(symbol, start_date, limit):
            return [101.0, 102.0]

        assert asyncio.run(store.compute_outcomes(fetch)) == 0
        outcome = store.get_outcome(instance.id)
        assert {h.status for h in outcome.horizons.values()} == {"INSUFFICIENT_DATA"}
        assert store.get_pending_instances() == []

    def test_outcome_count_tracks_distinct_instances(self, store, clock):
        first = _log(store)
        clock.advance(1)
        _log(store, symbol="MSFT")
        clock.advance(10)
        pending = {h: HorizonOutcome(h, "PENDING") for h in (5, 20, 60)}
        store.save_outcome(PlaybookOutcome(first.id, pending, clock().isoformat()))
        store.save_outcome(PlaybookOutcome(first.id, pending, clock().isoformat()))
        assert store.stats() == {"total_instances": 2, "total_outcomes": 1}

    def test_fetch_failure_skipped(self, store, clock, caplog):
        instance = _log(store)
        clock.advance(10)

        async def fetch(symbol, start_date, limit):
            raise ConnectionError("network down")

        with caplog.at_level("WARNING"):
            assert asyncio.run(store.compute_outcomes(fetch)) == 0
        assert store.get_outcome(instance.id) is None
        assert "network down" in caplog.text


class TestAggregatePerformance:
    """Tests for aggregate_performance."""

    def test_unknown_playbook(self, store):
        assert store.aggregate_performance("BASE_BREAKOUT") is None

    def test_aggregates_computed_horizons(self, store, clock):
        first = _log(store, symbol="AAPL")
        clock.advance(1)
        second = _log(store, symbol="MSFT")
        clock.advance(1)
        _log(store, symbol="NVDA")

        for instance, ret, drawdown in ((first, 4.0, 6.0), (second, -2.0, 1.0)):
            store.save_outcome(
                PlaybookOutcome(
                    instance.id,
                    {
                        5: HorizonOutcome(5, "COMPUTED", ret, 100 + ret, drawdown),
                        20: HorizonOutcome(20, "PENDING"),
                        60: HorizonOutcome(60, "PENDING"),
                    },
                    clock().isoformat(),
                )
            )

        performance = store.aggregate_performance("TREND_CONTINUATION")
        assert performance.total_instances == 3
        assert performance.instances_with_data == {5: 2, 20: 0, 60: 0}
        assert performance.horizon_metrics[5].median_return_pct == 1.0
        assert performance.horizon_metrics[5].positive_outcome_pct == 50.0
        assert performance.horizon_metrics[5].drawdown_frequency_pct == 50.0
        assert performance.horizon_metrics[20].sample_size == 0
        assert performance.date_range == {"earliest": "2024-01-02", "latest": "2024-01-04"}
        assert performance.disclaimers == PERFORMANCE_DISCLAIMERS
