"""Unit tests for SessionClock."""

from __future__ import annotations

from gameplay_models import MatchState
from session_clock import SessionClock


class TestClampDelta:
    def test_passes_small_deltas_through(self):
        clock = SessionClock(max_delta_ms=80.0)
        assert clock.clamp_delta_ms(16.0) == 16.0

    def test_caps_large_jumps(self):
        clock = SessionClock(max_delta_ms=80.0)
        assert clock.clamp_delta_ms(2500.0) == 80.0

    def test_negative_is_zero(self):
        clock = SessionClock(max_delta_ms=80.0)
        assert clock.clamp_delta_ms(-10.0) == 0.0


class TestAdvance:
    def test_accumulates_elapsed_time(self):
        clock = SessionClock(max_delta_ms=80.0)
        state = MatchState(is_running=True)
        for _ in range(10):
            clock.advance(state, 16.0)
        assert state.elapsed_ms == 160.0
        assert clock.last_delta_ms() == 16.0

    def test_paused_ticks_are_dropped(self):
        clock = SessionClock(max_delta_ms=80.0)
        state = MatchState(is_running=True)
        clock.advance(state, 40.0)
        state.is_paused = True
        assert clock.advance(state, 40.0) == 0.0
        state.is_paused = False
        clock.advance(state, 40.0)
        assert state.elapsed_ms == 80.0

    def test_not_running_is_a_no_op(self):
        clock = SessionClock(max_delta_ms=80.0)
        state = MatchState()
        assert clock.advance(state, 16.0) == 0.0
        assert state.elapsed_ms == 0.0

    def test_snapshot_reflects_state(self):
        clock = SessionClock(max_delta_ms=80.0)
        state = MatchState(is_running=True)
        clock.advance(state, 200.0)
        snap = clock.snapshot(state)
        assert snap.elapsed_ms == 80.0
        assert snap.last_delta_ms == 80.0
        assert not snap.is_paused
