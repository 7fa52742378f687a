"""Unit tests for StageTransitionMachine: pending, commit, grace, demotion and level-entry easing."""

from __future__ import annotations

import pytest

from gameplay_models import EventKind, MatchState, TransitionState, build_grid
from stage_transition import LevelOutOfRangeError, StageTransitionMachine
from target_lifecycle import TargetLifecycle


def _machine(engine_config) -> StageTransitionMachine:
    return StageTransitionMachine(engine_config, TargetLifecycle())


def _state(level: int = 1, grid: int = 3) -> MatchState:
    return MatchState(
        is_running=True,
        level=level,
        cells=build_grid(grid),
        time_remaining_ms=20_000.0,
        time_gauge_cap_ms=45_000.0,
    )


def _tick_until_commit(machine, state, step):
    ticks = 0
    while True:
        ticks += 1
        state.elapsed_ms += step
        events = machine.update(state, step)
        if events:
            return ticks, events


class TestPromotion:
    def test_request_enters_pending(self, engine_config):
        machine = _machine(engine_config)
        state = _state()
        state.tier_progress = 40.0
        event = machine.request_promotion(state)
        assert event.kind == EventKind.PROMOTION_REQUESTED
        assert event.level == 2
        assert state.transition_state == TransitionState.PENDING
        assert state.transition_target_level == 2
        assert state.tier_progress == 88.0

    def test_request_only_from_none(self, engine_config):
        machine = _machine(engine_config)
        state = _state()
        machine.request_promotion(state)
        assert machine.request_promotion(state) is None
        state.transition_state = TransitionState.GRACE
        assert machine.request_promotion(state) is None

    def test_request_at_top_level_raises(self, engine_config):
        machine = _machine(engine_config)
        with pytest.raises(LevelOutOfRangeError):
            machine.request_promotion(_state(level=7, grid=9))

    def test_commit_after_level_one_pending_window(self, engine_config):
        machine = _machine(engine_config)
        state = _state()
        machine.request_promotion(state)
        ticks, events = _tick_until_commit(machine, state, 16.0)
        assert ticks == 75
        assert state.elapsed_ms == pytest.approx(1200.0)
        assert [event.kind for event in events] == [EventKind.STAGE_CLEAR]

    def test_commit_after_level_two_pending_window(self, engine_config):
        machine = _machine(engine_config)
        state = _state(level=2, grid=4)
        machine.request_promotion(state)
        ticks, _events = _tick_until_commit(machine, state, 20.0)
        assert ticks == 75
        assert state.elapsed_ms == pytest.approx(1500.0)

    def test_commit_effects(self, engine_config, make_target):
        machine = _machine(engine_config)
        state = _state()
        state.targets.append(make_target(cell_index=4))
        state.recent_cells = [4]
        state.cell_cooldown_until = {4: 99_999.0}
        machine.request_promotion(state)
        _ticks, events = _tick_until_commit(machine, state, 16.0)

        clear = events[0]
        assert clear.level == 2
        assert clear.time_delta_ms == pytest.approx(45_000.0)
        assert state.level == 2
        assert len(state.cells) == 16
        assert state.targets == []
        assert state.recent_cells == []
        assert state.cell_cooldown_until == {}
        assert state.transition_state == TransitionState.GRACE
        assert state.time_remaining_ms == pytest.approx(45_000.0)
        assert state.time_gauge_cap_ms == pytest.approx(45_000.0)
        assert state.tier_progress == pytest.approx(24.0)
        assert state.stage_floor_level == 2
        assert state.ease_from_level == 1
        assert state.ease_duration_ms == pytest.approx(14_000.0)
        assert state.transition_lock_ms == pytest.approx(1_800.0)
        assert state.next_spawn_at_ms == pytest.approx(state.elapsed_ms + 1_800.0 + 180.0)

    def test_stage_time_is_clamped(self, config_with_level):
        config = config_with_level(2, stage_start_ms=500_000.0)
        machine = StageTransitionMachine(config, TargetLifecycle())
        state = _state()
        machine.request_promotion(state)
        _ticks, events = _tick_until_commit(machine, state, 16.0)
        assert events[0].time_delta_ms == pytest.approx(120_000.0)
        assert state.time_remaining_ms == pytest.approx(120_000.0)

    def test_grace_ends_after_level_window(self, engine_config):
        machine = _machine(engine_config)
        state = _state()
        machine.request_promotion(state)
        _tick_until_commit(machine, state, 16.0)

        assert machine.update(state, 7_999.0) == []
        events = machine.update(state, 1.0)
        assert [event.kind for event in events] == [EventKind.GRACE_ENDED]
        assert state.transition_state == TransitionState.NONE
        assert state.transition_target_level is None


class TestCancel:
    def test_cancel_from_pending(self, engine_config):
        machine = _machine(engine_config)
        state = _state(level=3, grid=5)
        machine.request_promotion(state)
        event = machine.cancel_promotion(state)
        assert event.kind == EventKind.PROMOTION_CANCELLED
        assert state.transition_state == TransitionState.NONE
        assert state.transition_target_level is None
        assert state.level == 3

    def test_cancel_outside_pending_is_ignored(self, engine_config):
        machine = _machine(engine_config)
        state = _state()
        assert machine.cancel_promotion(state) is None
        state.transition_state = TransitionState.GRACE
        assert machine.cancel_promotion(state) is None
        assert state.transition_state == TransitionState.GRACE


class TestSetLevel:
    def test_out_of_range_levels_raise(self, engine_config):
        machine = _machine(engine_config)
        state = _state()
        with pytest.raises(LevelOutOfRangeError):
            machine.set_level(state, 0)
        with pytest.raises(LevelOutOfRangeError):
            machine.set_level(state, 8)
        assert state.level == 1

    def test_same_level_is_a_no_op(self, engine_config):
        machine = _machine(engine_config)
        assert machine.set_level(_state(), 1) is False

    def test_demote_keeps_progress_floor(self, engine_config, make_target):
        machine = _machine(engine_config)
        state = _state(level=3, grid=5)
        state.stage_floor_level = 3
        state.tier_progress = 5.0
        state.targets.append(make_target(cell_index=12))
        event = machine.demote(state, 2)
        assert event.kind == EventKind.DEMOTION
        assert event.level == 2
        assert state.level == 2
        assert len(state.cells) == 16
        assert state.targets == []
        assert state.tier_progress == pytest.approx(58.0)
        assert state.stage_floor_level == 3
        assert state.ease_from_level is None

    def test_demote_to_same_level_returns_none(self, engine_config):
        machine = _machine(engine_config)
        assert machine.demote(_state(level=2, grid=4), 2) is None


class TestLockAndEase:
    def test_lock_counts_down(self, engine_config):
        machine = _machine(engine_config)
        state = _state()
        state.transition_lock_ms = 50.0
        assert machine.update_lock(state, 30.0) is False
        assert machine.update_lock(state, 30.0) is True
        assert state.transition_lock_ms == 0.0
        assert machine.update_lock(state, 30.0) is False

    def test_ease_ends_once(self, engine_config):
        machine = _machine(engine_config)
        state = _state(level=2, grid=4)
        state.ease_from_level = 1
        state.ease_duration_ms = 100.0
        assert machine.update_ease(state, 60.0) == []
        events = machine.update_ease(state, 60.0)
        assert [event.kind for event in events] == [EventKind.LEVEL_EASE_ENDED]
        assert state.ease_from_level is None
        assert machine.update_ease(state, 60.0) == []
