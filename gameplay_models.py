# -*- coding: utf-8 -*-
########################
# gameplay_models.py
########################
# Purpose:
# - Core gameplay data models for the session engine.
# - Defines the grid layout, active targets, interval statistics, the single mutable MatchState,
#   player inputs, engine events and the read-only snapshot handed to presentation.
#
# Design notes:
# - Keep these models stable. Prefer extending with new optional fields rather than breaking changes.
# - No Qt usage. These are plain dataclasses and enums.
# - MatchState is one explicit object passed into every component, so several sessions can coexist.
# - All times are simulated milliseconds from SessionClock, never wall-clock time.
#
########################
# Interfaces:
# Public enums:
# - TargetCategory: COMMON | BONUS | HAZARD | CHILL
# - TargetPhase: ENTERING | EXPOSED | STRUCK | EXITING
# - TransitionState: NONE | PENDING | GRACE
# - EventKind: MATCH_STARTED | SPAWN | HIT | MISS | CHECKPOINT | ... | MATCH_ENDED
#
# Public dataclasses:
# - GridCell(index: int, row: int, col: int)
# - ActiveTarget(target_id, cell_index, category, created_at_ms, entry_ms, exposed_ms, struck_ms, exit_ms, ...)
# - IntervalStats(hits, misses, reaction_total_ms, reaction_count)
# - DifficultyProfile(grid, spawn_interval_ms, hold_min_ms, hold_max_ms, concurrent_min, concurrent_max)
# - MatchState(...)
# - StrikeInput(target_id: int), MissInput()
# - GameEvent(kind: EventKind, time_ms: float, ...)
# - TargetView(...), SessionSnapshot(...), MatchSummary(...)
#
# Public functions:
# - build_grid(grid_size: int) -> tuple[GridCell, ...]
#
# Inputs/Outputs:
# - These types are exchanged between SessionClock, TargetLifecycle, SpawnScheduler, JudgeEngine,
#   PerformanceController, StageTransitionMachine, SessionEngine and the harness.
#
########################

from __future__ import annotations

from dataclasses import dataclass, field
import enum
from typing import Dict, List, Optional, Tuple, Union


class TargetCategory(enum.Enum):
    COMMON = "common"
    BONUS = "bonus"
    HAZARD = "hazard"
    CHILL = "chill"


class TargetPhase(enum.Enum):
    ENTERING = "entering"
    EXPOSED = "exposed"
    STRUCK = "struck"
    EXITING = "exiting"


class TransitionState(enum.Enum):
    NONE = "none"
    PENDING = "pending"
    GRACE = "grace"


class EventKind(enum.Enum):
    MATCH_STARTED = "match_started"
    SPAWN = "spawn"
    HIT = "hit"
    MISS = "miss"
    CHECKPOINT = "checkpoint"
    TIME_BONUS = "time_bonus"
    SLOW_STARTED = "slow_started"
    PROMOTION_REQUESTED = "promotion_requested"
    PROMOTION_CANCELLED = "promotion_cancelled"
    STAGE_CLEAR = "stage_clear"
    GRACE_ENDED = "grace_ended"
    LEVEL_EASE_ENDED = "level_ease_ended"
    DEMOTION = "demotion"
    PAUSED = "paused"
    RESUMED = "resumed"
    MATCH_ENDED = "match_ended"


@dataclass(frozen=True)
class GridCell:
    index: int
    row: int
    col: int


def build_grid(grid_size: int) -> Tuple[GridCell, ...]:
    size = int(grid_size)
    cells: List[GridCell] = []
    index = 0
    for row in range(size):
        for col in range(size):
            cells.append(GridCell(index=index, row=row, col=col))
            index += 1
    return tuple(cells)


@dataclass
class ActiveTarget:
    target_id: int
    cell_index: int
    category: TargetCategory
    created_at_ms: float
    entry_ms: float
    exposed_ms: float
    struck_ms: float
    exit_ms: float
    phase: TargetPhase = TargetPhase.ENTERING
    phase_elapsed_ms: float = 0.0
    was_struck: bool = False
    appearance: Optional[object] = None

    def is_strikable(self) -> bool:
        return self.phase in (TargetPhase.ENTERING, TargetPhase.EXPOSED)

    def phase_duration_ms(self) -> float:
        if self.phase == TargetPhase.ENTERING:
            return float(self.entry_ms)
        if self.phase == TargetPhase.EXPOSED:
            return float(self.exposed_ms)
        if self.phase == TargetPhase.STRUCK:
            return float(self.struck_ms)
        return float(self.exit_ms)

    def phase_progress(self) -> float:
        duration = self.phase_duration_ms()
        if duration <= 0.0:
            return 1.0
        return max(0.0, min(1.0, float(self.phase_elapsed_ms) / duration))


@dataclass
class IntervalStats:
    hits: int = 0
    misses: int = 0
    reaction_total_ms: float = 0.0
    reaction_count: int = 0

    def attempts(self) -> int:
        return int(self.hits) + int(self.misses)

    def average_reaction_ms(self, default_ms: float) -> float:
        if self.reaction_count <= 0:
            return float(default_ms)
        return float(self.reaction_total_ms) / float(self.reaction_count)

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.reaction_total_ms = 0.0
        self.reaction_count = 0


@dataclass(frozen=True)
class DifficultyProfile:
    grid: int
    spawn_interval_ms: float
    hold_min_ms: float
    hold_max_ms: float
    concurrent_min: int
    concurrent_max: int


@dataclass
class MatchState:
    """Everything one match mutates. Components read and write it; none of them keep copies."""

    is_running: bool = False
    is_paused: bool = False
    is_over: bool = False
    elapsed_ms: float = 0.0

    level: int = 1
    score: int = 0
    combo: int = 0
    best_combo: int = 0
    time_remaining_ms: float = 0.0
    time_gauge_cap_ms: float = 0.0

    tier_progress: float = 0.0
    skill_estimate: float = 0.5
    low_pi_streak: int = 0

    transition_state: TransitionState = TransitionState.NONE
    transition_target_level: Optional[int] = None
    transition_elapsed_ms: float = 0.0
    transition_lock_ms: float = 0.0

    ease_from_level: Optional[int] = None
    ease_elapsed_ms: float = 0.0
    ease_duration_ms: float = 0.0
    stage_floor_level: int = 1

    cells: Tuple[GridCell, ...] = ()
    targets: List[ActiveTarget] = field(default_factory=list)
    recent_cells: List[int] = field(default_factory=list)
    cell_cooldown_until: Dict[int, float] = field(default_factory=dict)
    next_target_id: int = 1
    next_spawn_at_ms: float = 0.0
    next_checkpoint_at_ms: float = 0.0
    slow_until_ms: float = 0.0

    interval_stats: IntervalStats = field(default_factory=IntervalStats)
    session_hits: int = 0
    session_misses: int = 0

    def is_locked(self) -> bool:
        return float(self.transition_lock_ms) > 0.0

    def is_slow_active(self) -> bool:
        return float(self.elapsed_ms) < float(self.slow_until_ms)

    def find_target(self, target_id: int) -> Optional[ActiveTarget]:
        for target in self.targets:
            if target.target_id == int(target_id):
                return target
        return None


@dataclass(frozen=True)
class StrikeInput:
    target_id: int


@dataclass(frozen=True)
class MissInput:
    pass


PlayerInput = Union[StrikeInput, MissInput]


@dataclass(frozen=True)
class GameEvent:
    kind: EventKind
    time_ms: float
    target_id: Optional[int] = None
    cell_index: Optional[int] = None
    category: Optional[TargetCategory] = None
    score_delta: int = 0
    time_delta_ms: float = 0.0
    combo: int = 0
    level: int = 0
    performance_index: Optional[float] = None
    from_timeout: bool = False


@dataclass(frozen=True)
class TargetView:
    target_id: int
    cell_index: int
    row: int
    col: int
    category: TargetCategory
    phase: TargetPhase
    phase_progress: float
    appearance: Optional[object] = None


@dataclass(frozen=True)
class SessionSnapshot:
    elapsed_ms: float
    level: int
    grid_size: int
    score: int
    combo: int
    best_combo: int
    time_remaining_ms: float
    time_gauge_cap_ms: float
    tier_progress: float
    skill_estimate: float
    transition_state: TransitionState
    transition_target_level: Optional[int]
    transition_lock_ms: float
    level_ease_ratio: float
    slow_active: bool
    is_running: bool
    is_paused: bool
    is_over: bool
    targets: Tuple[TargetView, ...]


@dataclass(frozen=True)
class MatchSummary:
    score: int
    best_combo: int
    survival_sec: int
    base_coins: int
    reward_coins: int = 0

    def total_coins(self) -> int:
        return int(self.base_coins) + int(self.reward_coins)


def _run_unit_tests() -> None:
    cells = build_grid(3)
    assert len(cells) == 9
    assert cells[4] == GridCell(index=4, row=1, col=1)

    target = ActiveTarget(
        target_id=1,
        cell_index=0,
        category=TargetCategory.COMMON,
        created_at_ms=0.0,
        entry_ms=100.0,
        exposed_ms=1000.0,
        struck_ms=150.0,
        exit_ms=120.0,
    )
    assert target.is_strikable()
    target.phase_elapsed_ms = 50.0
    assert abs(target.phase_progress() - 0.5) < 1e-9

    stats = IntervalStats(hits=2, misses=1, reaction_total_ms=600.0, reaction_count=2)
    assert stats.attempts() == 3
    assert stats.average_reaction_ms(900.0) == 300.0
    stats.reset()
    assert stats.average_reaction_ms(900.0) == 900.0


if __name__ == "__main__":
    _run_unit_tests()
    print("gameplay_models.py: ok")
