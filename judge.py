# -*- coding: utf-8 -*-
########################
# judge.py
########################
# Purpose:
# - Hit judgement and scoring engine.
# - Resolves a strike on an active target into a score delta, combo update, time-bank delta
#   and status effect, and records misses (timeouts and empty-cell inputs).
# - Generates GameEvent for both hits and misses.
#
# Design notes:
# - No Qt usage. Pure gameplay logic.
# - Strict inputs: a target identity (already hit-tested by the presentation layer) or a miss.
# - TargetLifecycle owns the target list; JudgeEngine only asks it to mark a target as struck.
# - This module is the only writer of score, combo, best_combo and slow_until_ms,
#   and it feeds IntervalStats for the performance controller.
# - Rounding is round-half-up on each individual delta.
#
########################
# Interfaces:
# Public functions:
# - combo_multiplier(combo: int, tiers: Sequence[ComboTier]) -> float
# - scaled_score_delta(score_delta: int, combo: int, tiers: Sequence[ComboTier]) -> int
#
# Public classes:
# - class JudgeEngine
#   - __init__(config: EngineConfig, lifecycle: TargetLifecycle)
#   - recent_judgements() -> list[GameEvent]
#   - clear_recent_judgements() -> None
#   - on_strike(state: MatchState, target_id: int) -> list[GameEvent]
#   - on_miss(state: MatchState, *, from_timeout: bool, target: Optional[ActiveTarget] = None) -> GameEvent
#
# Inputs:
# - StrikeInput target identity, MissInput, and timed-out targets from TargetLifecycle.advance.
#
# Outputs:
# - GameEvent objects (HIT, MISS, SLOW_STARTED) for presentation and stats.
# - Mutates MatchState scoring fields and IntervalStats.
#
########################

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

from difficulty import clamp, round_half_up
from gameplay_models import ActiveTarget, EventKind, GameEvent, MatchState
from target_lifecycle import TargetLifecycle

if TYPE_CHECKING:
    from config import ComboTier, EngineConfig


RECENT_JUDGEMENT_LIMIT = 32


def combo_multiplier(combo: int, tiers: Sequence["ComboTier"]) -> float:
    # Tiers are sorted by min_combo, highest first.
    for tier in tiers:
        if int(combo) >= int(tier.min_combo):
            return float(tier.multiplier)
    return 1.0


def scaled_score_delta(score_delta: int, combo: int, tiers: Sequence["ComboTier"]) -> int:
    if int(score_delta) <= 0:
        return int(score_delta)
    return round_half_up(float(score_delta) * combo_multiplier(combo, tiers))


class JudgeEngine:
    def __init__(self, config: "EngineConfig", lifecycle: TargetLifecycle) -> None:
        self._config = config
        self._lifecycle = lifecycle
        self._recent_judgements: List[GameEvent] = []

    def recent_judgements(self) -> List[GameEvent]:
        return list(self._recent_judgements)

    def clear_recent_judgements(self) -> None:
        self._recent_judgements.clear()

    def _remember(self, event: GameEvent) -> None:
        self._recent_judgements.append(event)
        if len(self._recent_judgements) > RECENT_JUDGEMENT_LIMIT:
            del self._recent_judgements[0]

    def on_strike(self, state: MatchState, target_id: int) -> List[GameEvent]:
        """Resolve a strike. Returns no events when the target is unknown or no longer strikable."""
        target = self._lifecycle.strike(state, target_id)
        if target is None:
            return []

        scoring = self._config.scoring
        rule = scoring.categories[target.category]
        now = float(state.elapsed_ms)
        events: List[GameEvent] = []

        if rule.triggers_slow:
            state.slow_until_ms = max(float(state.slow_until_ms), now + float(self._config.targets.slow_duration_ms))
            events.append(
                GameEvent(
                    kind=EventKind.SLOW_STARTED,
                    time_ms=now,
                    target_id=target.target_id,
                    cell_index=target.cell_index,
                    category=target.category,
                )
            )

        state.combo = 0 if rule.breaks_combo else int(state.combo) + 1
        state.best_combo = max(int(state.best_combo), int(state.combo))

        score_delta = scaled_score_delta(rule.score_delta, state.combo, scoring.combo_tiers)
        previous_score = int(state.score)
        state.score = max(0, previous_score + score_delta)

        previous_time_ms = float(state.time_remaining_ms)
        state.time_remaining_ms = clamp(
            previous_time_ms + float(rule.time_delta_ms), 0.0, float(self._config.timing.max_time_ms)
        )

        stats = state.interval_stats
        stats.hits += 1
        stats.reaction_total_ms += max(0.0, now - float(target.created_at_ms))
        stats.reaction_count += 1
        state.session_hits = int(state.session_hits) + 1

        hit_event = GameEvent(
            kind=EventKind.HIT,
            time_ms=now,
            target_id=target.target_id,
            cell_index=target.cell_index,
            category=target.category,
            score_delta=int(state.score) - previous_score,
            time_delta_ms=float(state.time_remaining_ms) - previous_time_ms,
            combo=int(state.combo),
            level=int(state.level),
        )
        self._remember(hit_event)
        events.insert(0, hit_event)
        return events

    def on_miss(self, state: MatchState, *, from_timeout: bool, target: Optional[ActiveTarget] = None) -> GameEvent:
        state.combo = 0
        state.interval_stats.misses += 1
        state.session_misses = int(state.session_misses) + 1

        event = GameEvent(
            kind=EventKind.MISS,
            time_ms=float(state.elapsed_ms),
            target_id=target.target_id if target is not None else None,
            cell_index=target.cell_index if target is not None else None,
            category=target.category if target is not None else None,
            level=int(state.level),
            from_timeout=bool(from_timeout),
        )
        self._remember(event)
        return event


def _run_unit_tests() -> None:
    from config import EngineConfig
    from gameplay_models import TargetCategory

    config = EngineConfig()
    lifecycle = TargetLifecycle()
    engine = JudgeEngine(config, lifecycle)
    state = MatchState(is_running=True, time_remaining_ms=1500.0)

    def add_target(target_id: int, category: TargetCategory) -> None:
        lifecycle.add(
            state,
            ActiveTarget(
                target_id=target_id,
                cell_index=target_id,
                category=category,
                created_at_ms=0.0,
                entry_ms=100.0,
                exposed_ms=1000.0,
                struck_ms=150.0,
                exit_ms=120.0,
            ),
        )

    add_target(1, TargetCategory.HAZARD)
    state.combo = 7
    events = engine.on_strike(state, 1)
    assert events[0].kind == EventKind.HIT
    assert state.score == 0
    assert state.combo == 0
    assert state.time_remaining_ms == 0.0

    assert engine.on_strike(state, 1) == []
    assert engine.on_strike(state, 99) == []

    for target_id in range(2, 7):
        add_target(target_id, TargetCategory.COMMON)
        engine.on_strike(state, target_id)
    assert state.score == 5
    assert state.best_combo == 5

    miss = engine.on_miss(state, from_timeout=False)
    assert miss.kind == EventKind.MISS
    assert state.combo == 0
    assert state.score == 5

    assert combo_multiplier(15, config.scoring.combo_tiers) == 2.0
    assert combo_multiplier(4, config.scoring.combo_tiers) == 1.0


if __name__ == "__main__":
    _run_unit_tests()
    print("judge.py: ok")
