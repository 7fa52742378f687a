# -*- coding: utf-8 -*-
########################
# stage_transition.py
########################
# Purpose:
# - Level changes with timed windows: none -> pending -> grace -> none.
# - Pending expiry commits the level, resets the time bank and grid, and opens the transition lock.
# - Level-entry easing after a level-up, and the immediate demotion path.
#
# Design notes:
# - No Qt usage. Pure gameplay logic.
# - This module is the only writer of MatchState.level and the transition / ease / lock fields.
# - Every level that reaches this boundary is validated against the level table.
#   An out-of-range level is a programming error and raises LevelOutOfRangeError.
# - The transition lock is a countdown in simulated time, so it pauses with the session.
#
########################
# Interfaces:
# Public exceptions:
# - LevelOutOfRangeError(ValueError)
#
# Public classes:
# - class StageTransitionMachine
#   - __init__(config: EngineConfig, lifecycle: TargetLifecycle)
#   - validate_level(level: int) -> int
#   - set_level(state: MatchState, next_level: int) -> bool
#   - request_promotion(state: MatchState) -> Optional[GameEvent]
#   - cancel_promotion(state: MatchState) -> Optional[GameEvent]
#   - demote(state: MatchState, to_level: int) -> Optional[GameEvent]
#   - update_lock(state: MatchState, delta_ms: float) -> bool
#   - update(state: MatchState, delta_ms: float) -> list[GameEvent]
#   - update_ease(state: MatchState, delta_ms: float) -> list[GameEvent]
#
# Inputs:
# - Decisions from PerformanceController; the applied frame delta.
#
# Outputs:
# - GameEvent objects (PROMOTION_REQUESTED, PROMOTION_CANCELLED, STAGE_CLEAR, GRACE_ENDED,
#   LEVEL_EASE_ENDED, DEMOTION).
#
########################

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from loguru import logger

from difficulty import clamp, grace_duration_ms, pending_duration_ms
from gameplay_models import EventKind, GameEvent, MatchState, TransitionState, build_grid
from target_lifecycle import TargetLifecycle

if TYPE_CHECKING:
    from config import EngineConfig


class LevelOutOfRangeError(ValueError):
    """Raised when a level outside the configured 1..N range reaches the transition boundary."""


class StageTransitionMachine:
    def __init__(self, config: "EngineConfig", lifecycle: TargetLifecycle) -> None:
        self._config = config
        self._lifecycle = lifecycle

    def validate_level(self, level: int) -> int:
        value = int(level)
        top = self._config.levels.top_level()
        if value < 1 or value > top:
            raise LevelOutOfRangeError(f"level {value} is outside the configured range 1..{top}")
        return value

    def _clear_board(self, state: MatchState) -> None:
        self._lifecycle.clear(state)
        state.recent_cells.clear()

    def _clear_ease(self, state: MatchState) -> None:
        state.ease_from_level = None
        state.ease_elapsed_ms = 0.0
        state.ease_duration_ms = 0.0

    def set_level(self, state: MatchState, next_level: int) -> bool:
        target_level = self.validate_level(next_level)
        previous = int(state.level)
        if target_level == previous:
            return False

        levels = self._config.levels
        tuning = self._config.performance
        state.level = target_level
        self._clear_board(state)
        state.next_spawn_at_ms = float(state.elapsed_ms) + float(self._config.timing.level_change_spawn_delay_ms)
        self._clear_ease(state)

        if target_level > previous:
            state.stage_floor_level = max(int(state.stage_floor_level), target_level)
            ease_ms = float(levels.get(target_level).entry_ease_ms)
            if ease_ms > 0.0:
                state.ease_from_level = previous
                state.ease_duration_ms = ease_ms
            state.tier_progress = min(float(state.tier_progress), float(tuning.level_up_progress_cap))
        else:
            state.tier_progress = max(float(state.tier_progress), float(tuning.level_down_progress_floor))

        state.cells = build_grid(levels.get(target_level).grid)
        state.cell_cooldown_until = {}
        return True

    def request_promotion(self, state: MatchState) -> Optional[GameEvent]:
        if state.transition_state != TransitionState.NONE:
            return None

        target_level = self.validate_level(int(state.level) + 1)
        state.transition_state = TransitionState.PENDING
        state.transition_target_level = target_level
        state.transition_elapsed_ms = 0.0
        state.tier_progress = max(float(state.tier_progress), float(self._config.performance.pending_progress_seed))

        logger.info(
            "Promotion requested at {:.0f}ms: level {} -> {} (commit in {:.0f}ms)",
            state.elapsed_ms,
            state.level,
            target_level,
            pending_duration_ms(state, self._config.levels),
        )
        return GameEvent(kind=EventKind.PROMOTION_REQUESTED, time_ms=float(state.elapsed_ms), level=target_level)

    def cancel_promotion(self, state: MatchState) -> Optional[GameEvent]:
        if state.transition_state != TransitionState.PENDING:
            return None

        target_level = state.transition_target_level
        state.transition_state = TransitionState.NONE
        state.transition_target_level = None
        state.transition_elapsed_ms = 0.0

        logger.info("Promotion to level {} cancelled at {:.0f}ms", target_level, state.elapsed_ms)
        return GameEvent(kind=EventKind.PROMOTION_CANCELLED, time_ms=float(state.elapsed_ms), level=int(state.level))

    def demote(self, state: MatchState, to_level: int) -> Optional[GameEvent]:
        previous = int(state.level)
        if not self.set_level(state, to_level):
            return None

        logger.info("Demoted at {:.0f}ms: level {} -> {}", state.elapsed_ms, previous, state.level)
        return GameEvent(kind=EventKind.DEMOTION, time_ms=float(state.elapsed_ms), level=int(state.level))

    def update_lock(self, state: MatchState, delta_ms: float) -> bool:
        """Count the transition lock down. Returns True on the tick that releases it."""
        if not state.is_locked():
            return False
        state.transition_lock_ms = max(0.0, float(state.transition_lock_ms) - float(delta_ms))
        return not state.is_locked()

    def _reset_time_for_stage(self, state: MatchState, level: int) -> float:
        timing = self._config.timing
        stage_ms = clamp(self._config.levels.get(level).stage_start_ms, timing.min_stage_time_ms, timing.max_time_ms)
        state.time_remaining_ms = stage_ms
        state.time_gauge_cap_ms = stage_ms
        return stage_ms

    def _begin_stage_notice(self, state: MatchState) -> None:
        timing = self._config.timing
        self._clear_board(state)
        state.next_spawn_at_ms = (
            float(state.elapsed_ms) + float(timing.stage_notice_ms) + float(timing.level_change_spawn_delay_ms)
        )
        state.transition_lock_ms = float(timing.stage_notice_ms)

    def update(self, state: MatchState, delta_ms: float) -> List[GameEvent]:
        events: List[GameEvent] = []
        if state.transition_state == TransitionState.NONE:
            return events

        levels = self._config.levels
        state.transition_elapsed_ms = float(state.transition_elapsed_ms) + float(delta_ms)

        if state.transition_state == TransitionState.PENDING:
            if state.transition_elapsed_ms < pending_duration_ms(state, levels):
                return events

            target_level = state.transition_target_level
            if target_level is None:
                target_level = int(state.level) + 1
            target_level = self.validate_level(target_level)
            cleared_stage = max(1, target_level - 1)

            self.set_level(state, target_level)
            stage_ms = self._reset_time_for_stage(state, target_level)
            state.transition_state = TransitionState.GRACE
            state.transition_elapsed_ms = 0.0
            self._begin_stage_notice(state)

            logger.info(
                "Stage {} cleared at {:.0f}ms; level {} starts with {:.0f}ms on the clock",
                cleared_stage,
                state.elapsed_ms,
                target_level,
                stage_ms,
            )
            events.append(
                GameEvent(
                    kind=EventKind.STAGE_CLEAR,
                    time_ms=float(state.elapsed_ms),
                    level=target_level,
                    time_delta_ms=stage_ms,
                )
            )
            return events

        if state.transition_state == TransitionState.GRACE:
            if state.transition_elapsed_ms < grace_duration_ms(state, levels):
                return events
            state.transition_state = TransitionState.NONE
            state.transition_target_level = None
            state.transition_elapsed_ms = 0.0
            logger.info("Grace window ended at {:.0f}ms on level {}", state.elapsed_ms, state.level)
            events.append(GameEvent(kind=EventKind.GRACE_ENDED, time_ms=float(state.elapsed_ms), level=int(state.level)))

        return events

    def update_ease(self, state: MatchState, delta_ms: float) -> List[GameEvent]:
        events: List[GameEvent] = []
        if state.ease_from_level is None or float(state.ease_duration_ms) <= 0.0:
            return events

        state.ease_elapsed_ms = min(float(state.ease_elapsed_ms) + float(delta_ms), float(state.ease_duration_ms))
        if state.ease_elapsed_ms >= float(state.ease_duration_ms):
            self._clear_ease(state)
            events.append(
                GameEvent(kind=EventKind.LEVEL_EASE_ENDED, time_ms=float(state.elapsed_ms), level=int(state.level))
            )
        return events


def _run_unit_tests() -> None:
    from config import EngineConfig

    config = EngineConfig()
    machine = StageTransitionMachine(config, TargetLifecycle())
    state = MatchState(is_running=True, level=1, cells=build_grid(3), time_remaining_ms=30000.0)

    assert machine.request_promotion(state) is not None
    assert state.transition_state == TransitionState.PENDING
    assert state.tier_progress == 88.0
    assert machine.request_promotion(state) is None

    assert machine.update(state, 1199.0) == []
    events = machine.update(state, 1.0)
    assert [event.kind for event in events] == [EventKind.STAGE_CLEAR]
    assert state.level == 2
    assert len(state.cells) == 16
    assert state.transition_state == TransitionState.GRACE
    assert state.time_remaining_ms == 45000.0
    assert state.is_locked()
    assert state.ease_from_level == 1

    assert machine.update_lock(state, 1800.0)
    assert not state.is_locked()

    try:
        machine.set_level(state, 8)
    except LevelOutOfRangeError:
        pass
    else:
        raise AssertionError("expected LevelOutOfRangeError")


if __name__ == "__main__":
    _run_unit_tests()
    print("stage_transition.py: ok")
