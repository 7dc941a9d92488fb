"""Tests for the live FG series updater."""

import time
from datetime import datetime, timezone

import pytest

from oee_dashboard_sim.config import LiveConfig, Range
from oee_dashboard_sim.generators import HourlyFGBucket, RandomSource, generate_snapshot
from oee_dashboard_sim.live import (
    LiveSeriesUpdater,
    ManualScheduler,
    ThreadScheduler,
    UpdaterState,
    advance_series,
    fixed_increment,
    random_increment,
    seed_series,
)

NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def known_series():
    return (HourlyFGBucket(hour_ts=NOW, counts={"A": 10, "B": 20, "C": 5, "D": 0}),)


@pytest.fixture
def scheduler():
    return ManualScheduler()


class TestAdvanceSeries:
    """Tests for the pure tick step."""

    def test_adds_increment_to_every_sku(self, known_series):
        advanced = advance_series(known_series, fixed_increment(2))

        assert advanced[0].counts == {"A": 12, "B": 22, "C": 7, "D": 2}

    def test_does_not_mutate_input(self, known_series):
        advance_series(known_series, fixed_increment(5))

        assert known_series[0].counts == {"A": 10, "B": 20, "C": 5, "D": 0}

    def test_keeps_buckets_and_timestamps(self):
        series = generate_snapshot(NOW, RandomSource(1)).fg_by_hour
        advanced = advance_series(series, fixed_increment(1))

        assert [b.hour_ts for b in advanced] == [b.hour_ts for b in series]
        assert [list(b.counts) for b in advanced] == [list(b.counts) for b in series]

    def test_negative_increment_rejected(self, known_series):
        with pytest.raises(ValueError):
            advance_series(known_series, lambda sku: -1)

    def test_fixed_increment_rejects_negative(self):
        with pytest.raises(ValueError):
            fixed_increment(-2)

    def test_random_increment_bounds(self):
        inc = random_increment(RandomSource(4), Range(0, 3))
        values = {inc("SKU-A") for _ in range(500)}

        assert values <= {0, 1, 2, 3}
        assert len(values) > 1


class TestLiveSeriesUpdater:
    """Tests for LiveSeriesUpdater lifecycle and ticking."""

    def test_initial_state_is_idle(self):
        updater = LiveSeriesUpdater(scheduler=ManualScheduler())

        assert updater.state == UpdaterState.IDLE
        assert updater.series == ()

    def test_three_ticks_of_two(self, known_series, scheduler):
        updater = LiveSeriesUpdater(increment=fixed_increment(2), scheduler=scheduler)
        updater.start(known_series, interval_ms=10_000)

        scheduler.advance(30_000)

        assert updater.tick_count == 3
        assert updater.series[0].counts == {"A": 16, "B": 26, "C": 11, "D": 6}

    def test_no_tick_before_interval_elapses(self, known_series, scheduler):
        updater = LiveSeriesUpdater(increment=fixed_increment(1), scheduler=scheduler)
        updater.start(known_series, interval_ms=10_000)

        scheduler.advance(9_999)
        assert updater.tick_count == 0

        scheduler.advance(1)
        assert updater.tick_count == 1

    def test_default_interval_from_config(self, known_series, scheduler):
        updater = LiveSeriesUpdater(scheduler=scheduler, config=LiveConfig(interval_ms=500))
        handle = updater.start(known_series)

        assert handle.interval_ms == 500
        assert scheduler.advance(1_000) == 2

    def test_on_tick_receives_new_series(self, known_series, scheduler):
        seen = []
        updater = LiveSeriesUpdater(increment=fixed_increment(1), scheduler=scheduler)
        updater.start(known_series, interval_ms=1_000, on_tick=seen.append)

        scheduler.advance(2_000)

        assert len(seen) == 2
        assert seen[-1] is updater.series
        assert seen[0][0].counts["A"] == 11
        assert seen[1][0].counts["A"] == 12

    def test_observer_cannot_write_into_series(self, known_series, scheduler):
        rejected = []

        def on_tick(series):
            try:
                series[0].counts["A"] = -100
            except TypeError:
                rejected.append(True)

        updater = LiveSeriesUpdater(increment=fixed_increment(1), scheduler=scheduler)
        updater.start(known_series, interval_ms=1_000, on_tick=on_tick)

        scheduler.advance(2_000)

        assert rejected == [True, True]
        assert updater.series[0].counts["A"] == 12
        with pytest.raises(TypeError):
            updater.series[0].counts["A"] = 0


    def test_monotonic_over_many_ticks(self, scheduler):
        rng = RandomSource(8)
        series = generate_snapshot(NOW, rng).fg_by_hour
        updater = LiveSeriesUpdater(rng=rng, scheduler=scheduler)
        updater.start(series, interval_ms=10_000)

        previous = updater.series
        for _ in range(50):
            scheduler.advance(10_000)
            current = updater.series
            for before, after in zip(previous, current):
                assert after.hour_ts == before.hour_ts
                for sku, value in before.counts.items():
                    assert 0 <= after.counts[sku] - value <= 3
            previous = current

    def test_seeding_is_idempotent(self, known_series):
        first = LiveSeriesUpdater(scheduler=ManualScheduler())
        second = LiveSeriesUpdater(scheduler=ManualScheduler())
        first.start(known_series)
        second.start(known_series)

        assert first.series == second.series == known_series

    def test_seed_detached_from_source(self):
        counts = {"A": 1}
        source = [HourlyFGBucket(hour_ts=NOW, counts=counts)]
        seeded = seed_series(source)

        counts["A"] = 99

        assert seeded[0].counts == {"A": 1}

    def test_tick_while_idle_is_noop(self, known_series):
        updater = LiveSeriesUpdater(increment=fixed_increment(1), scheduler=ManualScheduler())

        assert updater.tick() == ()
        assert updater.tick_count == 0

    def test_invalid_interval_rejected(self, known_series, scheduler):
        updater = LiveSeriesUpdater(scheduler=scheduler)

        with pytest.raises(ValueError):
            updater.start(known_series, interval_ms=0)
        assert updater.state == UpdaterState.IDLE


class TestTimerPolicy:
    """start/stop misuse is idempotent."""

    def test_start_while_running_returns_existing_handle(self, known_series, scheduler):
        updater = LiveSeriesUpdater(increment=fixed_increment(1), scheduler=scheduler)
        handle = updater.start(known_series, interval_ms=1_000)

        again = updater.start(
            (HourlyFGBucket(hour_ts=NOW, counts={"A": 500}),), interval_ms=5
        )

        assert again == handle
        assert updater.series == known_series
        assert scheduler.pending == 1

    def test_stop_while_idle_is_noop(self):
        updater = LiveSeriesUpdater(scheduler=ManualScheduler())

        updater.stop()
        updater.stop()

        assert updater.state == UpdaterState.IDLE

    def test_stop_disarms_timer(self, known_series, scheduler):
        updater = LiveSeriesUpdater(increment=fixed_increment(1), scheduler=scheduler)
        handle = updater.start(known_series, interval_ms=1_000)
        scheduler.advance(1_000)

        updater.stop(handle)
        frozen = updater.series
        fired = scheduler.advance(10_000)

        assert fired == 0
        assert scheduler.pending == 0
        assert updater.state == UpdaterState.IDLE
        assert updater.series is frozen
        assert updater.tick() is frozen

    def test_stale_handle_ignored(self, known_series, scheduler):
        updater = LiveSeriesUpdater(increment=fixed_increment(1), scheduler=scheduler)
        old = updater.start(known_series, interval_ms=1_000)
        updater.stop(old)
        new = updater.start(known_series, interval_ms=1_000)

        updater.stop(old)

        assert updater.state == UpdaterState.RUNNING
        updater.stop(new)
        assert updater.state == UpdaterState.IDLE

    def test_stop_from_inside_callback(self, known_series, scheduler):
        updater = LiveSeriesUpdater(increment=fixed_increment(1), scheduler=scheduler)
        updater.start(known_series, interval_ms=1_000, on_tick=lambda s: updater.stop())

        fired = scheduler.advance(5_000)

        assert fired == 1
        assert updater.tick_count == 1
        assert updater.state == UpdaterState.IDLE

    def test_restart_reseeds(self, known_series, scheduler):
        updater = LiveSeriesUpdater(increment=fixed_increment(1), scheduler=scheduler)
        updater.start(known_series, interval_ms=1_000)
        scheduler.advance(3_000)
        updater.stop()

        updater.start(known_series, interval_ms=1_000)

        assert updater.tick_count == 0
        assert updater.series == known_series


class TestManualScheduler:
    """Tests for the virtual clock."""

    def test_fires_in_due_order(self):
        scheduler = ManualScheduler()
        calls = []
        scheduler.start(300, lambda: calls.append("slow"))
        scheduler.start(200, lambda: calls.append("fast"))

        scheduler.advance(600)

        # Ties at 600 ms fire in registration order
        assert calls == ["fast", "slow", "fast", "slow", "fast"]
        assert scheduler.now_ms == 600

    def test_negative_advance_rejected(self):
        with pytest.raises(ValueError):
            ManualScheduler().advance(-1)


class TestThreadScheduler:
    """Wall-clock scheduler smoke tests."""

    def test_ticks_and_stops(self, known_series):
        updater = LiveSeriesUpdater(increment=fixed_increment(1), scheduler=ThreadScheduler())
        handle = updater.start(known_series, interval_ms=20)

        deadline = time.time() + 5
        while updater.tick_count < 2 and time.time() < deadline:
            time.sleep(0.01)
        updater.stop(handle)
        stopped_at = updater.series
        time.sleep(0.1)

        assert updater.tick_count >= 2
        assert updater.series is stopped_at
