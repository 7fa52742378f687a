# -*- coding: utf-8 -*-
########################
# spawn_scheduler.py
########################
# Purpose:
# - Decide when, where and what to spawn under the difficulty profile in effect.
# - Pick a free cell through an ordered list of relaxation stages, then draw a category by weighted lottery.
#
# Design notes:
# - No Qt usage. Pure gameplay logic with an injected random source (random.Random or compatible).
# - Candidate stages are applied to the full cell set in order; the first non-empty result wins.
#   Occupancy is never relaxed. A starved attempt is retried after a fixed backoff, never raised.
# - Below the concurrency floor the next spawn is due immediately; otherwise the next spawn time
#   is offset by a jittered interval, stretched while the slow status is active.
# - Spawn state (next spawn time, recency, cooldowns, serial) lives in MatchState.
#
########################
# Interfaces:
# Public dataclasses:
# - CandidateStage(name: str, require_unlocked: bool, require_cooldown: bool, require_not_recent: bool)
#
# Public constants:
# - CANDIDATE_STAGES: tuple[CandidateStage, ...]
#
# Public functions:
# - candidate_cells(state, *, unlocked, avoid_recent, stages=CANDIDATE_STAGES) -> tuple[Optional[str], list[int]]
# - pick_weighted(weights: Sequence[tuple[T, float]], roll: float) -> T
#
# Public classes:
# - class SpawnScheduler
#   - __init__(config: EngineConfig, lifecycle: TargetLifecycle, rng, *, appearance_provider=None)
#   - spawn_due(state: MatchState) -> list[ActiveTarget]
#   - spawn_one(state: MatchState, profile: DifficultyProfile) -> Optional[ActiveTarget]
#   - pick_category(state: MatchState) -> TargetCategory
#   - slow_factor(state: MatchState) -> float
#   - next_interval_ms(state: MatchState, profile: DifficultyProfile) -> float
#
# Inputs:
# - MatchState after the lifecycle update of the same tick.
#
# Outputs:
# - Newly created ActiveTarget objects appended to MatchState.targets.
#
########################

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple, TypeVar

from loguru import logger

import difficulty
from gameplay_models import ActiveTarget, DifficultyProfile, MatchState, TargetCategory
from target_lifecycle import TargetLifecycle

if TYPE_CHECKING:
    from config import EngineConfig

T = TypeVar("T")

AppearanceProvider = Callable[[], Optional[object]]


@dataclass(frozen=True)
class CandidateStage:
    name: str
    require_unlocked: bool
    require_cooldown: bool
    require_not_recent: bool


CANDIDATE_STAGES: Tuple[CandidateStage, ...] = (
    CandidateStage("strict", require_unlocked=True, require_cooldown=True, require_not_recent=True),
    CandidateStage("allow_recent", require_unlocked=True, require_cooldown=True, require_not_recent=False),
    CandidateStage("ignore_cooldown", require_unlocked=True, require_cooldown=False, require_not_recent=False),
    CandidateStage("outside_unlocked", require_unlocked=False, require_cooldown=True, require_not_recent=False),
    CandidateStage("any_free", require_unlocked=False, require_cooldown=False, require_not_recent=False),
)


def candidate_cells(
    state: MatchState,
    *,
    unlocked: Optional[frozenset],
    avoid_recent: int,
    stages: Sequence[CandidateStage] = CANDIDATE_STAGES,
) -> Tuple[Optional[str], List[int]]:
    occupied = {int(target.cell_index) for target in state.targets}
    recent = set(state.recent_cells[-int(avoid_recent):]) if int(avoid_recent) > 0 else set()
    now = float(state.elapsed_ms)

    for stage in stages:
        # Without an unlock restriction the last two stages would only repeat earlier ones.
        if not stage.require_unlocked and unlocked is None:
            continue

        candidates: List[int] = []
        for cell in state.cells:
            index = int(cell.index)
            if index in occupied:
                continue
            if stage.require_unlocked and unlocked is not None and index not in unlocked:
                continue
            if stage.require_cooldown and now < float(state.cell_cooldown_until.get(index, 0.0)):
                continue
            if stage.require_not_recent and index in recent:
                continue
            candidates.append(index)

        if candidates:
            return stage.name, candidates

    return None, []


def pick_weighted(weights: Sequence[Tuple[T, float]], roll: float) -> T:
    """Cumulative-weight lottery. `roll` is a uniform draw in [0, 1)."""
    total = sum(float(weight) for _, weight in weights)
    remaining = float(roll) * total
    for item, weight in weights:
        remaining -= float(weight)
        if remaining <= 0.0:
            return item
    positive = [item for item, weight in weights if float(weight) > 0.0]
    return positive[-1] if positive else weights[-1][0]


class SpawnScheduler:
    def __init__(
        self,
        config: "EngineConfig",
        lifecycle: TargetLifecycle,
        rng,
        *,
        appearance_provider: Optional[AppearanceProvider] = None,
    ) -> None:
        self._config = config
        self._lifecycle = lifecycle
        self._rng = rng
        self._appearance_provider = appearance_provider

    def slow_factor(self, state: MatchState) -> float:
        if state.is_slow_active():
            return float(self._config.targets.slow_multiplier)
        return 1.0

    def next_interval_ms(self, state: MatchState, profile: DifficultyProfile) -> float:
        jitter = float(self._config.targets.spawn_jitter)
        interval = float(profile.spawn_interval_ms)
        return self._rng.uniform(interval * (1.0 - jitter), interval * (1.0 + jitter)) * self.slow_factor(state)

    def spawn_due(self, state: MatchState) -> List[ActiveTarget]:
        spawned: List[ActiveTarget] = []
        if not state.cells:
            return spawned

        profile = difficulty.difficulty_profile(state, self._config)
        while state.elapsed_ms >= state.next_spawn_at_ms and len(state.targets) < profile.concurrent_max:
            target = self.spawn_one(state, profile)
            if target is None:
                state.next_spawn_at_ms = float(state.elapsed_ms) + float(self._config.timing.spawn_retry_ms)
                logger.debug(
                    "Spawn starved at {:.0f}ms (level {}, active {}); retrying",
                    state.elapsed_ms,
                    state.level,
                    len(state.targets),
                )
                break

            spawned.append(target)
            if len(state.targets) < profile.concurrent_min:
                state.next_spawn_at_ms = float(state.elapsed_ms)
            else:
                state.next_spawn_at_ms = float(state.next_spawn_at_ms) + self.next_interval_ms(state, profile)

        return spawned

    def spawn_one(self, state: MatchState, profile: DifficultyProfile) -> Optional[ActiveTarget]:
        timing = self._config.timing
        targets_config = self._config.targets

        unlocked = difficulty.unlocked_cells(state, self._config.levels)
        _stage_name, candidates = candidate_cells(
            state,
            unlocked=unlocked,
            avoid_recent=int(timing.recent_avoid_count),
        )
        if not candidates:
            return None

        cell_index = candidates[self._rng.randrange(len(candidates))]
        category = self.pick_category(state)

        exposure_scale = targets_config.exposure_scale_for(category)
        if state.is_slow_active():
            exposure_scale *= float(targets_config.slow_multiplier)

        target = ActiveTarget(
            target_id=int(state.next_target_id),
            cell_index=int(cell_index),
            category=category,
            created_at_ms=float(state.elapsed_ms),
            entry_ms=self._rng.uniform(targets_config.entry_min_ms, targets_config.entry_max_ms),
            exposed_ms=self._rng.uniform(profile.hold_min_ms, profile.hold_max_ms) * exposure_scale,
            struck_ms=self._rng.uniform(targets_config.struck_min_ms, targets_config.struck_max_ms),
            exit_ms=self._rng.uniform(targets_config.exit_min_ms, targets_config.exit_max_ms),
            appearance=self._appearance_provider() if self._appearance_provider is not None else None,
        )

        state.next_target_id = int(state.next_target_id) + 1
        self._lifecycle.add(state, target)
        state.cell_cooldown_until[int(cell_index)] = float(state.elapsed_ms) + float(timing.cell_cooldown_ms)
        state.recent_cells.append(int(cell_index))
        history_limit = int(timing.recent_history_limit)
        if len(state.recent_cells) > history_limit:
            del state.recent_cells[: len(state.recent_cells) - history_limit]
        return target

    def pick_category(self, state: MatchState) -> TargetCategory:
        weights = difficulty.category_weights(state, self._config)
        ordered = [(category, weights[category]) for category in TargetCategory]
        return pick_weighted(ordered, self._rng.random())


def _run_unit_tests() -> None:
    import random

    from config import EngineConfig
    from gameplay_models import build_grid

    config = EngineConfig()
    lifecycle = TargetLifecycle()
    scheduler = SpawnScheduler(config, lifecycle, random.Random(3))
    state = MatchState(is_running=True, level=1, cells=build_grid(3), time_remaining_ms=45000.0)
    state.elapsed_ms = 300.0
    state.next_spawn_at_ms = 300.0

    spawned = scheduler.spawn_due(state)
    assert len(spawned) == 1
    assert len(state.targets) == 1
    assert state.next_spawn_at_ms > 300.0
    assert state.cell_cooldown_until[spawned[0].cell_index] == 300.0 + 900.0

    assert pick_weighted([("a", 1.0), ("b", 3.0)], 0.2) == "a"
    assert pick_weighted([("a", 1.0), ("b", 3.0)], 0.9) == "b"

    state.recent_cells = [0, 1, 2]
    stage, candidates = candidate_cells(state, unlocked=None, avoid_recent=3)
    assert stage == "strict"
    assert not set(candidates) & {0, 1, 2, spawned[0].cell_index}


if __name__ == "__main__":
    _run_unit_tests()
    print("spawn_scheduler.py: ok")
