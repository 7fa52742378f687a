# -*- coding: utf-8 -*-
########################
# session_engine.py
########################
# Purpose:
# - Per-tick orchestration of one match: clock, transition lock, time-bank decay, stage transitions,
#   level-entry easing, target lifecycle, spawning, checkpoints and the end of the match.
# - Applies player inputs, pause/resume, and produces read-only snapshots for presentation.
#
# Design notes:
# - No Qt usage. The host loop calls advance(delta_ms, inputs) once per frame.
# - All component updates for a tick run synchronously in a fixed order. While the transition
#   lock is active only the lock countdown runs.
# - Inputs are ignored while paused, locked or not running. Unknown or non-strikable targets
#   are ignored without touching statistics.
# - Lifecycle events raised outside advance (start, pause, resume, an explicit end) are queued
#   and delivered with the next TickResult.
# - All randomness comes from the injected random source.
#
########################
# Interfaces:
# Public dataclasses:
# - TickResult(snapshot: SessionSnapshot, events: tuple[GameEvent, ...])
#
# Public classes:
# - class SessionEngine
#   - __init__(config: Optional[EngineConfig] = None, *, rng=None, profile_store=None, appearance_provider=None)
#   - state() -> MatchState
#   - start_match() -> None
#   - advance(delta_ms: float, inputs: Iterable[PlayerInput] = ()) -> TickResult
#   - strike(target_id: int) -> list[GameEvent]
#   - miss() -> list[GameEvent]
#   - pause() -> bool, resume() -> bool, toggle_pause() -> bool
#   - end_match() -> Optional[MatchSummary]
#   - claim_reward() -> bool
#   - summary() -> Optional[MatchSummary]
#   - snapshot() -> SessionSnapshot
#
# Public functions:
# - advance(engine: SessionEngine, delta_ms: float, inputs: Iterable[PlayerInput] = ()) -> TickResult
# - match_summary(state: MatchState) -> MatchSummary
#
# Inputs:
# - Frame deltas from the host loop; StrikeInput / MissInput from the input resolver.
#
# Outputs:
# - TickResult per frame; MatchSummary at the end of a match; profile updates via ProfileStore.
#
########################

from __future__ import annotations

from dataclasses import dataclass, replace
import random
from typing import Iterable, List, Optional, Tuple

from loguru import logger

import difficulty
from config import EngineConfig
from gameplay_models import (
    EventKind,
    GameEvent,
    MatchState,
    MatchSummary,
    MissInput,
    PlayerInput,
    SessionSnapshot,
    StrikeInput,
    TargetView,
    TransitionState,
    build_grid,
)
from judge import JudgeEngine
from performance import CheckpointDecision, CheckpointReport, PerformanceController
from profile_store import ProfileStore
from session_clock import SessionClock
from spawn_scheduler import AppearanceProvider, SpawnScheduler
from stage_transition import StageTransitionMachine
from target_lifecycle import TargetLifecycle

MATCH_REWARD_COINS = 20
COMBO_BONUS_MIN_COMBO = 10
COMBO_BONUS_COINS = 3
LONG_SURVIVAL_SEC = 60
LONG_SURVIVAL_COINS = 10
SURVIVAL_SEC = 45
SURVIVAL_COINS = 5


@dataclass(frozen=True)
class TickResult:
    snapshot: SessionSnapshot
    events: Tuple[GameEvent, ...]


def match_summary(state: MatchState) -> MatchSummary:
    survival_sec = difficulty.round_half_up(float(state.elapsed_ms) / 1000.0)
    combo_bonus = COMBO_BONUS_COINS if int(state.best_combo) >= COMBO_BONUS_MIN_COMBO else 0
    if survival_sec >= LONG_SURVIVAL_SEC:
        survival_bonus = LONG_SURVIVAL_COINS
    elif survival_sec >= SURVIVAL_SEC:
        survival_bonus = SURVIVAL_COINS
    else:
        survival_bonus = 0
    base_coins = max(0, int(state.score) // 10 + combo_bonus + survival_bonus)
    return MatchSummary(
        score=int(state.score),
        best_combo=int(state.best_combo),
        survival_sec=survival_sec,
        base_coins=base_coins,
    )


class SessionEngine:
    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        rng: Optional[random.Random] = None,
        profile_store: Optional[ProfileStore] = None,
        appearance_provider: Optional[AppearanceProvider] = None,
    ) -> None:
        self._config = config if config is not None else EngineConfig()
        self._rng = rng if rng is not None else random.Random(self._config.harness.seed)
        self._profile_store = profile_store

        self._clock = SessionClock(max_delta_ms=self._config.timing.max_frame_delta_ms)
        self._lifecycle = TargetLifecycle()
        self._scheduler = SpawnScheduler(
            self._config,
            self._lifecycle,
            self._rng,
            appearance_provider=appearance_provider,
        )
        self._performance = PerformanceController(self._config)
        self._transitions = StageTransitionMachine(self._config, self._lifecycle)
        self._judge = JudgeEngine(self._config, self._lifecycle)

        self._state = MatchState()
        self._summary: Optional[MatchSummary] = None
        self._reward_claimed = False
        self._outbox: List[GameEvent] = []
        self._last_checkpoint: Optional[CheckpointReport] = None

    def config(self) -> EngineConfig:
        return self._config

    def state(self) -> MatchState:
        return self._state

    def summary(self) -> Optional[MatchSummary]:
        return self._summary

    def judge(self) -> JudgeEngine:
        return self._judge

    def last_checkpoint(self) -> Optional[CheckpointReport]:
        return self._last_checkpoint

    # -----------------------------
    # Match lifecycle
    # -----------------------------

    def start_match(self) -> None:
        timing = self._config.timing
        first_level = self._transitions.validate_level(1)
        start_ms = float(timing.start_time_ms)

        self._state = MatchState(
            is_running=True,
            level=first_level,
            time_remaining_ms=start_ms,
            time_gauge_cap_ms=start_ms,
            skill_estimate=float(self._config.performance.initial_skill),
            stage_floor_level=first_level,
            cells=build_grid(self._config.levels.get(first_level).grid),
            next_spawn_at_ms=float(timing.first_spawn_at_ms),
            next_checkpoint_at_ms=float(timing.checkpoint_ms),
        )
        self._summary = None
        self._reward_claimed = False
        self._last_checkpoint = None
        self._judge.clear_recent_judgements()
        self._outbox = [GameEvent(kind=EventKind.MATCH_STARTED, time_ms=0.0, level=first_level)]

        logger.info("Match started: level {} with {:.0f}ms on the clock", first_level, start_ms)

    def end_match(self) -> Optional[MatchSummary]:
        if not self._state.is_running:
            return self._summary
        self._outbox.append(self._finish_match())
        return self._summary

    def _finish_match(self) -> GameEvent:
        state = self._state
        self._lifecycle.clear(state)
        state.is_running = False
        state.is_paused = False
        state.is_over = True
        state.transition_lock_ms = 0.0

        summary = match_summary(state)
        self._summary = summary
        if self._profile_store is not None:
            self._profile_store.record_match(
                score=summary.score,
                best_combo=summary.best_combo,
                hits=state.session_hits,
                misses=state.session_misses,
                coins=summary.base_coins,
            )

        logger.info(
            "Match ended at {:.0f}ms: score {} best combo {} level {} coins {}",
            state.elapsed_ms,
            summary.score,
            summary.best_combo,
            state.level,
            summary.base_coins,
        )
        return GameEvent(kind=EventKind.MATCH_ENDED, time_ms=float(state.elapsed_ms), level=int(state.level))

    def claim_reward(self) -> bool:
        if self._summary is None or self._reward_claimed or self._state.is_running:
            return False
        self._reward_claimed = True
        self._summary = replace(self._summary, reward_coins=MATCH_REWARD_COINS)
        if self._profile_store is not None:
            self._profile_store.add_coins(MATCH_REWARD_COINS)
        return True

    # -----------------------------
    # Pause
    # -----------------------------

    def pause(self) -> bool:
        state = self._state
        if not state.is_running or state.is_paused or state.is_locked():
            return False
        state.is_paused = True
        self._outbox.append(GameEvent(kind=EventKind.PAUSED, time_ms=float(state.elapsed_ms), level=int(state.level)))
        return True

    def resume(self) -> bool:
        state = self._state
        if not state.is_running or not state.is_paused:
            return False
        state.is_paused = False
        self._outbox.append(GameEvent(kind=EventKind.RESUMED, time_ms=float(state.elapsed_ms), level=int(state.level)))
        return True

    def toggle_pause(self) -> bool:
        if self._state.is_paused:
            return self.resume()
        return self.pause()

    # -----------------------------
    # Inputs
    # -----------------------------

    def _accepts_input(self) -> bool:
        state = self._state
        return state.is_running and not state.is_paused and not state.is_locked()

    def strike(self, target_id: int) -> List[GameEvent]:
        if not self._accepts_input():
            return []
        return self._judge.on_strike(self._state, target_id)

    def miss(self) -> List[GameEvent]:
        if not self._accepts_input():
            return []
        return [self._judge.on_miss(self._state, from_timeout=False)]

    def apply_input(self, player_input: PlayerInput) -> List[GameEvent]:
        if isinstance(player_input, StrikeInput):
            return self.strike(player_input.target_id)
        if isinstance(player_input, MissInput):
            return self.miss()
        raise TypeError(f"unsupported input: {player_input!r}")

    # -----------------------------
    # Tick
    # -----------------------------

    def advance(self, delta_ms: float, inputs: Iterable[PlayerInput] = ()) -> TickResult:
        events: List[GameEvent] = list(self._outbox)
        self._outbox.clear()

        for player_input in inputs:
            events.extend(self.apply_input(player_input))

        state = self._state
        if not state.is_running or state.is_paused:
            return TickResult(snapshot=self.snapshot(), events=tuple(events))

        applied_ms = self._clock.advance(state, delta_ms)
        events.extend(self._tick(applied_ms))
        return TickResult(snapshot=self.snapshot(), events=tuple(events))

    def _tick(self, delta_ms: float) -> List[GameEvent]:
        state = self._state
        events: List[GameEvent] = []

        if state.is_locked():
            self._transitions.update_lock(state, delta_ms)
            return events

        if state.transition_state != TransitionState.PENDING:
            state.time_remaining_ms = max(0.0, float(state.time_remaining_ms) - float(delta_ms))

        events.extend(self._transitions.update(state, delta_ms))
        if state.is_locked():
            return events

        events.extend(self._transitions.update_ease(state, delta_ms))

        for target in self._lifecycle.advance(state, delta_ms):
            events.append(self._judge.on_miss(state, from_timeout=True, target=target))

        for target in self._scheduler.spawn_due(state):
            events.append(
                GameEvent(
                    kind=EventKind.SPAWN,
                    time_ms=float(state.elapsed_ms),
                    target_id=target.target_id,
                    cell_index=target.cell_index,
                    category=target.category,
                    level=int(state.level),
                )
            )

        checkpoint_ms = float(self._config.timing.checkpoint_ms)
        while state.elapsed_ms >= state.next_checkpoint_at_ms:
            events.extend(self._run_checkpoint())
            state.next_checkpoint_at_ms = float(state.next_checkpoint_at_ms) + checkpoint_ms

        if state.time_remaining_ms <= 0.0:
            events.append(self._finish_match())

        return events

    def _run_checkpoint(self) -> List[GameEvent]:
        state = self._state
        report = self._performance.evaluate(state)
        self._last_checkpoint = report

        events: List[GameEvent] = [
            GameEvent(
                kind=EventKind.CHECKPOINT,
                time_ms=report.time_ms,
                level=int(state.level),
                combo=int(state.combo),
                performance_index=report.performance_index,
                time_delta_ms=report.bonus_ms,
            )
        ]
        if report.bonus_ms > 0.0:
            events.append(
                GameEvent(
                    kind=EventKind.TIME_BONUS,
                    time_ms=report.time_ms,
                    level=int(state.level),
                    performance_index=report.performance_index,
                    time_delta_ms=report.bonus_ms,
                )
            )

        for decision in report.decisions:
            event: Optional[GameEvent] = None
            if decision == CheckpointDecision.CANCEL_PROMOTION:
                event = self._transitions.cancel_promotion(state)
            elif decision == CheckpointDecision.REQUEST_PROMOTION:
                event = self._transitions.request_promotion(state)
            elif decision == CheckpointDecision.DEMOTE and report.demotion_level is not None:
                event = self._transitions.demote(state, report.demotion_level)
                if event is not None:
                    self._performance.reset_after_demotion(state)
            if event is not None:
                events.append(replace(event, performance_index=report.performance_index))

        return events

    # -----------------------------
    # Presentation
    # -----------------------------

    def snapshot(self) -> SessionSnapshot:
        state = self._state
        cells = state.cells
        views = []
        for target in state.targets:
            cell = cells[target.cell_index]
            views.append(
                TargetView(
                    target_id=target.target_id,
                    cell_index=target.cell_index,
                    row=cell.row,
                    col=cell.col,
                    category=target.category,
                    phase=target.phase,
                    phase_progress=target.phase_progress(),
                    appearance=target.appearance,
                )
            )

        return SessionSnapshot(
            elapsed_ms=float(state.elapsed_ms),
            level=int(state.level),
            grid_size=int(self._config.levels.get(state.level).grid),
            score=int(state.score),
            combo=int(state.combo),
            best_combo=int(state.best_combo),
            time_remaining_ms=float(state.time_remaining_ms),
            time_gauge_cap_ms=float(state.time_gauge_cap_ms),
            tier_progress=float(state.tier_progress),
            skill_estimate=float(state.skill_estimate),
            transition_state=state.transition_state,
            transition_target_level=state.transition_target_level,
            transition_lock_ms=float(state.transition_lock_ms),
            level_ease_ratio=difficulty.level_ease_ratio(state),
            slow_active=state.is_slow_active(),
            is_running=bool(state.is_running),
            is_paused=bool(state.is_paused),
            is_over=bool(state.is_over),
            targets=tuple(views),
        )


def advance(engine: SessionEngine, delta_ms: float, inputs: Iterable[PlayerInput] = ()) -> TickResult:
    return engine.advance(delta_ms, inputs)


def _run_unit_tests() -> None:
    engine = SessionEngine(EngineConfig(), rng=random.Random(11))
    result = engine.advance(16.0)
    assert result.events == ()

    engine.start_match()
    result = engine.advance(16.0)
    assert [event.kind for event in result.events] == [EventKind.MATCH_STARTED]

    checkpoints = 0
    for _ in range(400):
        result = engine.advance(16.0)
        checkpoints += sum(1 for event in result.events if event.kind == EventKind.CHECKPOINT)
    assert checkpoints == 1
    assert 0 < len(engine.state().targets) <= 1

    assert engine.pause()
    elapsed = engine.state().elapsed_ms
    engine.advance(16.0)
    assert engine.state().elapsed_ms == elapsed
    assert engine.resume()

    summary = engine.end_match()
    assert summary is not None
    assert engine.state().targets == []
    assert engine.claim_reward()
    assert not engine.claim_reward()
    assert engine.summary().total_coins() == summary.base_coins + MATCH_REWARD_COINS


if __name__ == "__main__":
    _run_unit_tests()
    print("session_engine.py: ok")
