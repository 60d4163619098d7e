"""Tests for MetricsAggregator: bounded window, windowed P95, fps."""
from __future__ import annotations

import pytest

from cv.exceptions import OutOfOrderTimestampError
from cv.metrics import MetricsAggregator, round_half_up
from tests.fakes import FakeClock


def _record_ms(agg: MetricsAggregator, clock: FakeClock, latency_ms: float):
    capture = clock()
    clock.advance(latency_ms / 1000.0)
    return agg.record(capture, clock())


# ---------- Window bounds ----------

class TestWindow:
    def test_never_exceeds_capacity(self):
        clock = FakeClock()
        agg = MetricsAggregator(window_size=5, clock=clock)
        for i in range(1, 50):
            _record_ms(agg, clock, i)
            assert len(agg.window) <= 5

    def test_holds_last_samples_in_insertion_order(self):
        clock = FakeClock()
        agg = MetricsAggregator(window_size=300, clock=clock)
        latencies = [float(i % 97 + 1) for i in range(450)]
        for value in latencies:
            _record_ms(agg, clock, value)
        assert len(agg.window) == 300
        assert list(agg.window) == pytest.approx(latencies[-300:])

    def test_default_capacity_is_300(self):
        assert MetricsAggregator().window_size == 300

    def test_rejects_empty_window(self):
        with pytest.raises(ValueError):
            MetricsAggregator(window_size=0)


# ---------- Percentile ----------

class TestP95:
    def test_rank_over_sorted_window(self):
        clock = FakeClock()
        agg = MetricsAggregator(clock=clock)
        values = [10 * i for i in range(1, 31)]
        # Insert out of order; rank is taken from the sorted window.
        for value in reversed(values):
            snapshot = _record_ms(agg, clock, value)
        assert snapshot.p95_latency_ms == sorted(values)[28] == 290

    def test_single_sample(self):
        clock = FakeClock()
        agg = MetricsAggregator(clock=clock)
        snapshot = _record_ms(agg, clock, 42)
        assert snapshot.p95_latency_ms == 42
        assert snapshot.latency_ms == 42

    def test_only_recent_window_counts(self):
        clock = FakeClock()
        agg = MetricsAggregator(window_size=10, clock=clock)
        for _ in range(10):
            _record_ms(agg, clock, 1000)
        for _ in range(10):
            snapshot = _record_ms(agg, clock, 20)
        assert snapshot.p95_latency_ms == 20

    def test_empty_is_zero(self):
        assert MetricsAggregator().p95_latency_ms() == 0.0


# ---------- Snapshot ----------

class TestSnapshot:
    def test_fps_since_first_capture(self):
        clock = FakeClock()
        agg = MetricsAggregator(clock=clock)
        first_capture = clock()
        for _ in range(10):
            _record_ms(agg, clock, 50)
            clock.advance(0.05)
        snapshot = _record_ms(agg, clock, 50)
        elapsed = clock() - first_capture
        assert snapshot.frames_processed == 11
        assert snapshot.fps == round_half_up(11 / elapsed, 1)

    def test_fps_rounded_to_one_decimal(self):
        clock = FakeClock()
        agg = MetricsAggregator(clock=clock)
        snapshot = _record_ms(agg, clock, 30)
        assert snapshot.fps == 33.3

    def test_zero_elapsed_gives_zero_fps(self):
        clock = FakeClock()
        agg = MetricsAggregator(clock=clock)
        snapshot = agg.record(clock(), clock())
        assert snapshot.fps == 0.0
        assert snapshot.latency_ms == 0

    def test_latency_rounded(self):
        agg = MetricsAggregator(clock=lambda: 1.0)
        snapshot = agg.record(0.5, 0.5126)
        assert snapshot.latency_ms == 13

    @pytest.mark.parametrize(
        "value, digits, expected",
        [(0.5, 0, 1.0), (2.5, 0, 3.0), (12.5, 0, 13.0), (12.49, 0, 12.0), (33.25, 1, 33.3), (7.0, 1, 7.0)],
    )
    def test_halves_round_up(self, value, digits, expected):
        assert round_half_up(value, digits) == pytest.approx(expected)

    def test_half_millisecond_latency_rounds_up(self):
        agg = MetricsAggregator(clock=lambda: 1.0)
        assert agg.record(0.0, 0.0125).latency_ms == 13

    def test_inference_uses_submission_time(self):
        agg = MetricsAggregator(clock=lambda: 2.0)
        snapshot = agg.record(1.0, 1.100, submission_ts=1.040)
        assert snapshot.latency_ms == 100
        assert snapshot.inference_ms == 60

    def test_inference_defaults_to_latency(self):
        agg = MetricsAggregator(clock=lambda: 2.0)
        snapshot = agg.record(1.0, 1.080)
        assert snapshot.inference_ms == snapshot.latency_ms == 80

    def test_last_snapshot_tracks_latest(self):
        clock = FakeClock()
        agg = MetricsAggregator(clock=clock)
        assert agg.last_snapshot is None
        snapshot = _record_ms(agg, clock, 15)
        assert agg.last_snapshot == snapshot


# ---------- Out of order ----------

class TestOutOfOrder:
    def test_negative_latency_raises(self):
        agg = MetricsAggregator(clock=lambda: 10.0)
        with pytest.raises(OutOfOrderTimestampError):
            agg.record(5.0, 4.9)

    def test_negative_latency_leaves_state_untouched(self):
        clock = FakeClock()
        agg = MetricsAggregator(clock=clock)
        _record_ms(agg, clock, 25)
        before = (agg.window, agg.frames_processed, agg.session_start)
        with pytest.raises(OutOfOrderTimestampError):
            agg.record(clock() + 1.0, clock())
        assert (agg.window, agg.frames_processed, agg.session_start) == before

    def test_reset_clears_everything(self):
        clock = FakeClock()
        agg = MetricsAggregator(clock=clock)
        _record_ms(agg, clock, 25)
        agg.reset()
        assert agg.window == ()
        assert agg.frames_processed == 0
        assert agg.session_start is None
        assert agg.last_snapshot is None
