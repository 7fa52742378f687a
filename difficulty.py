# -*- coding: utf-8 -*-
########################
# difficulty.py
########################
# Purpose:
# - Derive the difficulty profile and category weights in effect right now.
# - Inputs are the current level, tier progress, the stage transition state and level-entry easing.
#
# Design notes:
# - No Qt usage. Pure functions over MatchState + EngineConfig; nothing here mutates state.
# - The profile is never stored. Callers recompute it whenever they need it.
# - The concurrency ceiling never drops below the live target count, so a progress drop
#   mid-level only stops new spawns.
# - Level lookups go through LevelTable.get, which raises for an unconfigured level.
#
########################
# Interfaces:
# Public functions:
# - clamp(value, low, high) -> float
# - lerp(start, end, ratio) -> float
# - smoothstep(ratio) -> float
# - round_half_up(value) -> int
# - level_ease_ratio(state) -> float
# - pending_duration_ms(state, levels) -> float
# - grace_duration_ms(state, levels) -> float
# - tier_blend_to_next(state, levels) -> float
# - difficulty_profile(state, config) -> DifficultyProfile
# - unlocked_cells(state, levels) -> Optional[frozenset[int]]
# - category_weights(state, config) -> dict[TargetCategory, float]
#
# Inputs:
# - MatchState (level, tier_progress, transition fields, ease fields, time_remaining_ms, cells).
#
# Outputs:
# - DifficultyProfile for SpawnScheduler and the presentation snapshot.
# - Post-adjustment category weights for the spawn lottery.
#
########################

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, FrozenSet, Optional

from gameplay_models import DifficultyProfile, GridCell, MatchState, TargetCategory, TransitionState
from level_tables import LevelTable

if TYPE_CHECKING:
    from config import EngineConfig


# Level-entry easing: how far hazardous categories are suppressed at the start of the ease window.
ENTRY_SAFE_BOOST = 8.0
ENTRY_SUPPRESSION = {
    TargetCategory.BONUS: 0.16,
    TargetCategory.HAZARD: 0.78,
    TargetCategory.CHILL: 0.72,
}
ENTRY_CONCURRENCY_EASE = 0.82

GRACE_SAFE_BOOST = 6.0
GRACE_SCALE = {
    TargetCategory.HAZARD: 0.25,
    TargetCategory.CHILL: 0.5,
}
GRACE_SPAWN_SCALE = 1.08
GRACE_HOLD_SCALE = 1.12
GRACE_BLEND_BASE = 0.35
GRACE_BLEND_SPAN = 0.15

PENDING_BLEND_CAP = 0.85
CONCURRENT_MIN_BLEND = 0.7

LOW_TIME_SCALE = {
    TargetCategory.HAZARD: 1.05,
    TargetCategory.BONUS: 1.12,
}

WEIGHT_FLOORS = {
    TargetCategory.COMMON: 1.0,
    TargetCategory.BONUS: 0.5,
    TargetCategory.HAZARD: 0.2,
    TargetCategory.CHILL: 0.0,
}

UNLOCK_RELEASE_RATIO = 0.999


def clamp(value: float, low: float, high: float) -> float:
    return min(float(high), max(float(low), float(value)))


def lerp(start: float, end: float, ratio: float) -> float:
    t = clamp(ratio, 0.0, 1.0)
    return float(start) + (float(end) - float(start)) * t


def smoothstep(ratio: float) -> float:
    x = clamp(ratio, 0.0, 1.0)
    return x * x * (3.0 - 2.0 * x)


def round_half_up(value: float) -> int:
    return int(math.floor(float(value) + 0.5))


def is_level_ease_active(state: MatchState) -> bool:
    return state.ease_from_level is not None and float(state.ease_duration_ms) > 0.0


def level_ease_ratio(state: MatchState) -> float:
    if not is_level_ease_active(state):
        return 1.0
    return clamp(float(state.ease_elapsed_ms) / float(state.ease_duration_ms), 0.0, 1.0)


def pending_duration_ms(state: MatchState, levels: LevelTable) -> float:
    return float(levels.get(state.level).pending_ms)


def grace_duration_ms(state: MatchState, levels: LevelTable) -> float:
    return float(levels.get(state.level).grace_ms)


def tier_blend_to_next(state: MatchState, levels: LevelTable) -> float:
    level_config = levels.get(state.level)
    progress_blend = clamp(float(state.tier_progress) / 100.0, 0.0, 1.0)
    blend = progress_blend

    if level_config.gentle_blend:
        if progress_blend < 0.8:
            blend = progress_blend * 0.45
        else:
            blend = 0.36 + (progress_blend - 0.8) * 1.2

    if state.transition_state == TransitionState.PENDING:
        pending_ratio = clamp(float(state.transition_elapsed_ms) / pending_duration_ms(state, levels), 0.0, 1.0)
        blend = max(blend, pending_ratio * PENDING_BLEND_CAP)

    if state.transition_state == TransitionState.GRACE:
        remaining_ratio = 1.0 - clamp(float(state.transition_elapsed_ms) / grace_duration_ms(state, levels), 0.0, 1.0)
        blend = min(blend, GRACE_BLEND_BASE + remaining_ratio * GRACE_BLEND_SPAN)

    return clamp(blend, 0.0, 1.0)


def difficulty_profile(state: MatchState, config: "EngineConfig") -> DifficultyProfile:
    levels = config.levels
    current = levels.get(state.level)
    is_top = int(state.level) >= levels.top_level()
    following = current if is_top else levels.get(state.level + 1)
    blend = 0.0 if is_top else tier_blend_to_next(state, levels)

    spawn_interval_ms = lerp(current.spawn_interval_ms, following.spawn_interval_ms, blend)
    hold_min_ms = lerp(current.hold_min_ms, following.hold_min_ms, blend)
    hold_max_ms = lerp(current.hold_max_ms, following.hold_max_ms, blend)
    concurrent_max = round_half_up(lerp(current.concurrent_max, following.concurrent_max, blend))
    concurrent_min = round_half_up(lerp(current.concurrent_min, following.concurrent_min, blend * CONCURRENT_MIN_BLEND))

    if current.lock_concurrency:
        concurrent_min = int(current.concurrent_min)
        concurrent_max = int(current.concurrent_max)

    ease_ratio = level_ease_ratio(state)
    if state.ease_from_level is not None and ease_ratio < 1.0:
        entry_from = levels.get(state.ease_from_level)
        ease = smoothstep(ease_ratio)
        spawn_interval_ms = lerp(entry_from.spawn_interval_ms, spawn_interval_ms, ease)
        hold_min_ms = lerp(entry_from.hold_min_ms, hold_min_ms, ease)
        hold_max_ms = lerp(entry_from.hold_max_ms, hold_max_ms, ease)
        concurrent_min = round_half_up(lerp(entry_from.concurrent_min, concurrent_min, ease * ENTRY_CONCURRENCY_EASE))
        concurrent_max = round_half_up(lerp(entry_from.concurrent_max, concurrent_max, ease * ENTRY_CONCURRENCY_EASE))

    if state.transition_state == TransitionState.GRACE:
        spawn_interval_ms *= GRACE_SPAWN_SCALE
        hold_min_ms *= GRACE_HOLD_SCALE
        hold_max_ms *= GRACE_HOLD_SCALE
        concurrent_max = max(1, concurrent_max - 1)

    # Targets already on the board keep their slot until they leave.
    concurrent_max = max(concurrent_max, len(state.targets))

    ceiling = int(config.targets.max_concurrency)
    concurrent_min = int(clamp(concurrent_min, 1, ceiling))
    concurrent_max = int(clamp(concurrent_max, concurrent_min, ceiling))

    return DifficultyProfile(
        grid=int(current.grid),
        spawn_interval_ms=float(spawn_interval_ms),
        hold_min_ms=float(hold_min_ms),
        hold_max_ms=float(hold_max_ms),
        concurrent_min=concurrent_min,
        concurrent_max=concurrent_max,
    )


def _cell_hash(cell: GridCell) -> int:
    return ((cell.row * 73856093) & 0xFFFFFFFF) ^ ((cell.col * 19349663) & 0xFFFFFFFF)


def unlocked_cells(state: MatchState, levels: LevelTable) -> Optional[FrozenSet[int]]:
    """Return the center-out subset of cells open to spawns during level-entry easing, or None."""
    if state.ease_from_level is None or float(state.ease_duration_ms) <= 0.0 or not state.cells:
        return None
    if int(state.level) <= int(state.ease_from_level):
        return None

    from_grid = int(levels.get(state.ease_from_level).grid)
    current_grid = int(levels.get(state.level).grid)
    if current_grid <= from_grid:
        return None

    ease_ratio = level_ease_ratio(state)
    if ease_ratio >= UNLOCK_RELEASE_RATIO:
        return None

    total_cells = len(state.cells)
    start_cells = clamp(from_grid * from_grid, 1, total_cells)
    unlocked_count = int(clamp(round_half_up(lerp(start_cells, total_cells, smoothstep(ease_ratio))), 1, total_cells))

    center = (current_grid - 1) / 2.0
    ranked = sorted(
        state.cells,
        key=lambda cell: (abs(cell.row - center) + abs(cell.col - center), _cell_hash(cell)),
    )
    return frozenset(cell.index for cell in ranked[:unlocked_count])


def category_weights(state: MatchState, config: "EngineConfig") -> Dict[TargetCategory, float]:
    levels = config.levels
    level_config = levels.get(state.level)
    blend = tier_blend_to_next(state, levels)

    start = level_config.start_weights.as_dict()
    end = level_config.end_weights.as_dict()
    weights = {category: lerp(start[category], end[category], blend) for category in TargetCategory}

    ease_ratio = level_ease_ratio(state)
    if state.ease_from_level is not None and ease_ratio < 1.0:
        safety = 1.0 - smoothstep(ease_ratio)
        weights[TargetCategory.COMMON] += ENTRY_SAFE_BOOST * safety
        for category, suppression in ENTRY_SUPPRESSION.items():
            weights[category] *= 1.0 - suppression * safety

    if state.transition_state == TransitionState.GRACE:
        for category, scale in GRACE_SCALE.items():
            weights[category] *= scale
        weights[TargetCategory.COMMON] += GRACE_SAFE_BOOST

    if float(state.time_remaining_ms) <= float(config.timing.low_time_threshold_ms):
        for category, scale in LOW_TIME_SCALE.items():
            weights[category] *= scale

    return {category: max(WEIGHT_FLOORS[category], weight) for category, weight in weights.items()}


def _run_unit_tests() -> None:
    from config import EngineConfig
    from gameplay_models import build_grid

    config = EngineConfig()
    state = MatchState(level=1, cells=build_grid(3), time_remaining_ms=45000.0)

    profile = difficulty_profile(state, config)
    assert profile.grid == 3
    assert profile.concurrent_min == 1 and profile.concurrent_max == 1
    assert abs(profile.spawn_interval_ms - 980.0) < 1e-9

    assert round_half_up(4.5) == 5
    assert round_half_up(1.2) == 1
    assert abs(smoothstep(0.5) - 0.5) < 1e-9

    state.level = 2
    state.cells = build_grid(4)
    state.ease_from_level = 1
    state.ease_duration_ms = 14000.0
    subset = unlocked_cells(state, config.levels)
    assert subset is not None and len(subset) == 9
    assert 5 in subset  # an inner cell of the 4x4 grid

    weights = category_weights(state, config)
    assert weights[TargetCategory.HAZARD] < 7.0 * 0.5


if __name__ == "__main__":
    _run_unit_tests()
    print("difficulty.py: ok")
