# -*- coding: utf-8 -*-
########################
# performance.py
########################
# Purpose:
# - Checkpoint evaluation: reduce interval statistics to a performance index (PI), update the
#   smoothed skill estimate and tier progress, grant time bonuses and decide on promotion,
#   promotion cancellation or demotion.
#
# Design notes:
# - No Qt usage. Pure gameplay logic.
# - This module owns IntervalStats, skill_estimate, tier_progress and low_pi_streak.
#   It never changes the level itself; level changes are returned as decisions and applied
#   by StageTransitionMachine.
# - Decisions are evaluated in order (cancel, promote, demote). Later checks see the
#   transition state the earlier decisions will produce.
#
########################
# Interfaces:
# Public enums:
# - CheckpointDecision: CANCEL_PROMOTION | REQUEST_PROMOTION | DEMOTE
#
# Public dataclasses:
# - PerformanceSample(accuracy: float, speed: float, combo_metric: float, performance_index: float)
# - CheckpointReport(time_ms, hits, misses, sample, skill_estimate, progress_delta, tier_progress,
#                    bonus_ms, decisions: tuple[CheckpointDecision, ...], demotion_level: Optional[int])
#
# Public functions:
# - performance_sample(stats: IntervalStats, combo: int, config: PerformanceConfig) -> PerformanceSample
#
# Public classes:
# - class PerformanceController
#   - __init__(config: EngineConfig)
#   - evaluate(state: MatchState) -> CheckpointReport
#   - progress_delta(state: MatchState, sample: PerformanceSample) -> float
#   - time_bonus_ms(stats: IntervalStats, sample: PerformanceSample) -> float
#   - demotion_floor(state: MatchState) -> int
#   - reset_after_demotion(state: MatchState) -> None
#
# Inputs:
# - IntervalStats accumulated by JudgeEngine since the previous checkpoint.
#
# Outputs:
# - CheckpointReport for SessionEngine (events, logging and routing of decisions).
#
########################

from __future__ import annotations

from dataclasses import dataclass
import enum
from typing import TYPE_CHECKING, List, Optional, Tuple

from loguru import logger

from difficulty import clamp, is_level_ease_active, lerp
from gameplay_models import IntervalStats, MatchState, TransitionState

if TYPE_CHECKING:
    from config import EngineConfig, PerformanceConfig


class CheckpointDecision(enum.Enum):
    CANCEL_PROMOTION = "cancel_promotion"
    REQUEST_PROMOTION = "request_promotion"
    DEMOTE = "demote"


@dataclass(frozen=True)
class PerformanceSample:
    accuracy: float
    speed: float
    combo_metric: float
    performance_index: float


@dataclass(frozen=True)
class CheckpointReport:
    time_ms: float
    hits: int
    misses: int
    sample: PerformanceSample
    skill_estimate: float
    progress_delta: float
    tier_progress: float
    bonus_ms: float
    decisions: Tuple[CheckpointDecision, ...] = ()
    demotion_level: Optional[int] = None

    @property
    def performance_index(self) -> float:
        return float(self.sample.performance_index)


def performance_sample(stats: IntervalStats, combo: int, config: "PerformanceConfig") -> PerformanceSample:
    attempts = stats.attempts()
    accuracy = float(stats.hits) / float(attempts) if attempts > 0 else 0.0

    reference_reaction_ms = float(config.reference_reaction_ms)
    average_reaction_ms = stats.average_reaction_ms(reference_reaction_ms)
    speed = clamp(1.0 - average_reaction_ms / reference_reaction_ms, 0.0, 1.0)
    combo_metric = clamp(float(combo) / float(config.reference_combo), 0.0, 1.0)

    performance_index = (
        float(config.accuracy_weight) * accuracy
        + float(config.speed_weight) * speed
        + float(config.combo_weight) * combo_metric
    )
    return PerformanceSample(
        accuracy=accuracy,
        speed=speed,
        combo_metric=combo_metric,
        performance_index=performance_index,
    )


class PerformanceController:
    def __init__(self, config: "EngineConfig") -> None:
        self._config = config

    def progress_delta(self, state: MatchState, sample: PerformanceSample) -> float:
        tuning = self._config.performance
        level_config = self._config.levels.get(state.level)
        stats = state.interval_stats

        if stats.attempts() == 0:
            delta = float(tuning.idle_progress_delta)
        else:
            passive_ramp = level_config.passive_ramp_for(sample.performance_index)
            performance_term = (float(state.skill_estimate) - float(level_config.target_pi)) * float(
                level_config.performance_scale
            )
            momentum = clamp(
                (int(stats.hits) - int(stats.misses)) * float(level_config.momentum_scale),
                tuning.momentum_min,
                tuning.momentum_max,
            )
            delta = clamp(
                passive_ramp + performance_term + momentum,
                tuning.progress_delta_min,
                tuning.progress_delta_max,
            )

        if state.transition_state == TransitionState.PENDING:
            delta *= float(tuning.pending_damping)
        return delta

    def time_bonus_ms(self, stats: IntervalStats, sample: PerformanceSample) -> float:
        tuning = self._config.performance
        bonus_ms = 0.0
        if sample.performance_index >= float(tuning.high_bonus_pi):
            bonus_ms += float(tuning.high_bonus_ms)
        elif sample.performance_index >= float(tuning.medium_bonus_pi):
            bonus_ms += float(tuning.medium_bonus_ms)
        if stats.hits > 0 and stats.misses == 0:
            bonus_ms += float(tuning.perfect_bonus_ms)
        return bonus_ms

    def demotion_floor(self, state: MatchState) -> int:
        return 2 if int(state.stage_floor_level) >= 2 else 1

    def reset_after_demotion(self, state: MatchState) -> None:
        state.low_pi_streak = 0
        state.tier_progress = float(self._config.performance.demotion_progress_reset)

    def evaluate(self, state: MatchState) -> CheckpointReport:
        tuning = self._config.performance
        levels = self._config.levels
        level_config = levels.get(state.level)
        stats = state.interval_stats
        hits = int(stats.hits)
        misses = int(stats.misses)

        sample = performance_sample(stats, state.combo, tuning)
        pi = sample.performance_index

        state.skill_estimate = lerp(state.skill_estimate, pi, tuning.skill_smoothing)
        delta = self.progress_delta(state, sample)
        state.tier_progress = clamp(float(state.tier_progress) + delta, 0.0, 100.0)

        bonus_ms = self.time_bonus_ms(stats, sample)
        if bonus_ms > 0.0:
            state.time_remaining_ms = min(float(self._config.timing.max_time_ms), float(state.time_remaining_ms) + bonus_ms)
            state.time_gauge_cap_ms = max(float(state.time_gauge_cap_ms), float(state.time_remaining_ms))

        if pi < float(tuning.low_pi_floor):
            state.low_pi_streak = int(state.low_pi_streak) + 1
        else:
            state.low_pi_streak = 0

        decisions: List[CheckpointDecision] = []
        transition = state.transition_state
        target_pi = float(level_config.target_pi)

        if (
            transition == TransitionState.PENDING
            and int(state.level) > 1
            and state.skill_estimate < target_pi - float(tuning.cancel_skill_margin)
            and misses > hits
        ):
            decisions.append(CheckpointDecision.CANCEL_PROMOTION)
            transition = TransitionState.NONE

        if (
            transition == TransitionState.NONE
            and int(state.level) < levels.top_level()
            and level_config.promote_min_hits is not None
            and state.tier_progress >= float(level_config.promote_progress)
            and state.skill_estimate >= level_config.required_skill()
            and hits >= int(level_config.promote_min_hits)
        ):
            decisions.append(CheckpointDecision.REQUEST_PROMOTION)
            transition = TransitionState.PENDING

        demotion_level: Optional[int] = None
        floor = self.demotion_floor(state)
        if (
            transition == TransitionState.NONE
            and int(state.level) > floor
            and not is_level_ease_active(state)
            and float(state.elapsed_ms) > float(tuning.demotion_min_elapsed_ms)
            and int(state.low_pi_streak) >= int(tuning.demotion_streak)
            and state.skill_estimate <= target_pi - float(tuning.demotion_skill_margin)
            and state.tier_progress <= float(tuning.demotion_progress_ceiling)
        ):
            decisions.append(CheckpointDecision.DEMOTE)
            demotion_level = max(floor, int(state.level) - 1)

        logger.debug(
            "Checkpoint at {:.0f}ms: level {} hits {} misses {} PI {:.3f} skill {:.3f} progress {:.1f} ({:+.2f}) bonus {:.0f}ms",
            state.elapsed_ms,
            state.level,
            hits,
            misses,
            pi,
            state.skill_estimate,
            state.tier_progress,
            delta,
            bonus_ms,
        )

        report = CheckpointReport(
            time_ms=float(state.elapsed_ms),
            hits=hits,
            misses=misses,
            sample=sample,
            skill_estimate=float(state.skill_estimate),
            progress_delta=float(delta),
            tier_progress=float(state.tier_progress),
            bonus_ms=float(bonus_ms),
            decisions=tuple(decisions),
            demotion_level=demotion_level,
        )
        stats.reset()
        return report


def _run_unit_tests() -> None:
    from config import EngineConfig

    config = EngineConfig()
    controller = PerformanceController(config)

    state = MatchState(is_running=True, level=1, time_remaining_ms=45000.0, time_gauge_cap_ms=45000.0)
    state.interval_stats = IntervalStats(hits=3, misses=0, reaction_total_ms=3 * 400.0, reaction_count=3)
    state.combo = 3
    report = controller.evaluate(state)
    assert report.performance_index >= 0.42
    assert report.bonus_ms >= 1000.0
    assert state.interval_stats.attempts() == 0
    assert state.tier_progress > 0.0

    state.tier_progress = 70.0
    state.skill_estimate = 0.6
    state.interval_stats = IntervalStats(hits=2, misses=0, reaction_total_ms=600.0, reaction_count=2)
    report = controller.evaluate(state)
    assert CheckpointDecision.REQUEST_PROMOTION in report.decisions

    idle = MatchState(is_running=True, level=2, tier_progress=10.0)
    report = controller.evaluate(idle)
    assert abs(report.progress_delta - (-2.0)) < 1e-9


if __name__ == "__main__":
    _run_unit_tests()
    print("performance.py: ok")
