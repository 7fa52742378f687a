"""Unit tests for the target lifecycle state machine."""

from __future__ import annotations

from gameplay_models import MatchState, TargetPhase
from target_lifecycle import TargetLifecycle


def _run(lifecycle, state, ticks, step=10.0):
    timed_out = []
    for _ in range(ticks):
        timed_out.extend(lifecycle.advance(state, step))
    return timed_out


class TestPhaseProgression:
    def test_unstruck_target_times_out_once(self, make_target):
        lifecycle = TargetLifecycle()
        state = MatchState(is_running=True)
        lifecycle.add(state, make_target(entry_ms=100.0, exposed_ms=300.0, exit_ms=100.0))

        seen = []
        timed_out = []
        for _ in range(60):
            timed_out.extend(lifecycle.advance(state, 10.0))
            if state.targets and (not seen or seen[-1] != state.targets[0].phase):
                seen.append(state.targets[0].phase)

        assert seen == [TargetPhase.ENTERING, TargetPhase.EXPOSED, TargetPhase.EXITING]
        assert len(timed_out) == 1
        assert state.targets == []

    def test_struck_target_never_times_out(self, make_target):
        lifecycle = TargetLifecycle()
        state = MatchState(is_running=True)
        lifecycle.add(state, make_target(entry_ms=100.0, exposed_ms=300.0, struck_ms=150.0, exit_ms=100.0))

        _run(lifecycle, state, 12)
        assert state.targets[0].phase == TargetPhase.EXPOSED
        assert lifecycle.strike(state, 1) is not None
        assert state.targets[0].phase == TargetPhase.STRUCK
        assert state.targets[0].phase_elapsed_ms == 0.0

        timed_out = _run(lifecycle, state, 15)
        assert timed_out == []
        assert state.targets[0].phase == TargetPhase.EXITING
        _run(lifecycle, state, 10)
        assert state.targets == []

    def test_one_phase_change_per_tick(self, make_target):
        lifecycle = TargetLifecycle()
        state = MatchState(is_running=True)
        lifecycle.add(state, make_target(entry_ms=10.0, exposed_ms=10.0, exit_ms=10.0))

        lifecycle.advance(state, 500.0)
        assert state.targets[0].phase == TargetPhase.EXPOSED
        lifecycle.advance(state, 500.0)
        assert state.targets[0].phase == TargetPhase.EXITING


class TestStrike:
    def test_strike_while_entering(self, make_target):
        lifecycle = TargetLifecycle()
        state = MatchState(is_running=True)
        lifecycle.add(state, make_target())
        struck = lifecycle.strike(state, 1)
        assert struck is not None and struck.was_struck

    def test_strike_outside_strikable_phases_is_ignored(self, make_target):
        lifecycle = TargetLifecycle()
        state = MatchState(is_running=True)
        lifecycle.add(state, make_target())
        lifecycle.strike(state, 1)
        assert lifecycle.strike(state, 1) is None

        state.targets[0].phase = TargetPhase.EXITING
        assert lifecycle.strike(state, 1) is None

    def test_unknown_target_is_ignored(self):
        lifecycle = TargetLifecycle()
        state = MatchState(is_running=True)
        assert lifecycle.strike(state, 42) is None


class TestQueries:
    def test_timeouts_reported_in_spawn_order(self, make_target):
        lifecycle = TargetLifecycle()
        state = MatchState(is_running=True)
        for target_id in (1, 2, 3):
            lifecycle.add(state, make_target(target_id, cell_index=target_id, entry_ms=10.0, exposed_ms=10.0))
        lifecycle.advance(state, 10.0)
        timed_out = lifecycle.advance(state, 10.0)
        assert [target.target_id for target in timed_out] == [1, 2, 3]

    def test_occupancy_helpers(self, make_target):
        lifecycle = TargetLifecycle()
        state = MatchState(is_running=True)
        lifecycle.add(state, make_target(1, cell_index=4))
        lifecycle.add(state, make_target(2, cell_index=7))
        assert lifecycle.occupied_cells(state) == {4, 7}
        assert lifecycle.target_on_cell(state, 7).target_id == 2
        assert lifecycle.target_on_cell(state, 0) is None
        lifecycle.clear(state)
        assert state.targets == []
