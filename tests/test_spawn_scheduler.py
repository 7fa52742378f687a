"""Unit tests for the spawn scheduler: candidate stages, pacing, lottery and slow status."""

from __future__ import annotations

import random

import pytest

from difficulty import difficulty_profile
from gameplay_models import MatchState, TargetCategory, build_grid
from spawn_scheduler import CANDIDATE_STAGES, SpawnScheduler, candidate_cells, pick_weighted
from target_lifecycle import TargetLifecycle


def _state(grid: int = 3, elapsed: float = 1000.0) -> MatchState:
    state = MatchState(is_running=True, level=1, cells=build_grid(grid), time_remaining_ms=45_000.0)
    state.elapsed_ms = elapsed
    state.next_spawn_at_ms = elapsed
    return state


def _occupy(state, make_target, cells):
    for offset, cell in enumerate(cells):
        state.targets.append(make_target(100 + offset, cell_index=cell))


# --------------------------------------------------------------------------
# Candidate stages
# --------------------------------------------------------------------------

class TestCandidateStages:
    def test_stage_order(self):
        names = [stage.name for stage in CANDIDATE_STAGES]
        assert names == ["strict", "allow_recent", "ignore_cooldown", "outside_unlocked", "any_free"]

    def test_strict_excludes_occupied_cooling_and_recent(self, make_target):
        state = _state()
        _occupy(state, make_target, [4])
        state.cell_cooldown_until[3] = 5000.0
        state.recent_cells = [0, 1, 2]
        stage, candidates = candidate_cells(state, unlocked=None, avoid_recent=3)
        assert stage == "strict"
        assert candidates == [5, 6, 7, 8]

    def test_only_last_n_recent_cells_are_avoided(self):
        state = _state()
        state.recent_cells = [8, 0, 1, 2]
        _stage, candidates = candidate_cells(state, unlocked=None, avoid_recent=3)
        assert 8 in candidates
        assert not {0, 1, 2} & set(candidates)

    def test_relaxes_recency_first(self, make_target):
        state = _state()
        _occupy(state, make_target, [0])
        for cell in range(1, 6):
            state.cell_cooldown_until[cell] = 5000.0
        state.recent_cells = [6, 7, 8]
        stage, candidates = candidate_cells(state, unlocked=None, avoid_recent=3)
        assert stage == "allow_recent"
        assert candidates == [6, 7, 8]

    def test_then_ignores_cooldown(self, make_target):
        state = _state()
        _occupy(state, make_target, [0])
        for cell in range(1, 9):
            state.cell_cooldown_until[cell] = 5000.0
        stage, candidates = candidate_cells(state, unlocked=None, avoid_recent=3)
        assert stage == "ignore_cooldown"
        assert candidates == list(range(1, 9))

    def test_leaves_unlocked_subset_only_as_last_resort(self, make_target):
        state = _state()
        _occupy(state, make_target, [4])
        state.cell_cooldown_until[0] = 5000.0
        stage, candidates = candidate_cells(state, unlocked=frozenset({4}), avoid_recent=3)
        assert stage == "outside_unlocked"
        assert 0 not in candidates
        assert 4 not in candidates

        for cell in range(9):
            state.cell_cooldown_until[cell] = 5000.0
        stage, candidates = candidate_cells(state, unlocked=frozenset({4}), avoid_recent=3)
        assert stage == "any_free"
        assert candidates == [0, 1, 2, 3, 5, 6, 7, 8]

    def test_full_board_starves(self, make_target):
        state = _state()
        _occupy(state, make_target, range(9))
        assert candidate_cells(state, unlocked=frozenset({4}), avoid_recent=3) == (None, [])

    def test_cooldown_respected_whenever_strict_candidates_exist(self, engine_config, make_target):
        rng = random.Random(1234)
        for round_index in range(200):
            state = _state(grid=4)
            occupied = rng.sample(range(16), rng.randint(0, 5))
            _occupy(state, make_target, occupied)
            for cell in rng.sample(range(16), rng.randint(0, 10)):
                state.cell_cooldown_until[cell] = state.elapsed_ms + 500.0
            state.recent_cells = rng.sample(range(16), 3)

            _stage, strict = candidate_cells(state, unlocked=None, avoid_recent=3, stages=CANDIDATE_STAGES[:1])
            scheduler = SpawnScheduler(engine_config, TargetLifecycle(), random.Random(round_index))
            target = scheduler.spawn_one(state, difficulty_profile(state, engine_config))
            if strict:
                assert target is not None
                assert target.cell_index in strict


# --------------------------------------------------------------------------
# Pacing
# --------------------------------------------------------------------------

class TestPacing:
    def test_spawns_when_due_and_schedules_next(self, engine_config):
        state = _state()
        scheduler = SpawnScheduler(engine_config, TargetLifecycle(), random.Random(7))
        spawned = scheduler.spawn_due(state)
        assert len(spawned) == 1
        interval = engine_config.levels.get(1).spawn_interval_ms
        assert 1000.0 + interval * 0.88 <= state.next_spawn_at_ms <= 1000.0 + interval * 1.12

    def test_not_due_yet(self, engine_config):
        state = _state()
        state.next_spawn_at_ms = 2000.0
        scheduler = SpawnScheduler(engine_config, TargetLifecycle(), random.Random(7))
        assert scheduler.spawn_due(state) == []

    def test_respects_concurrency_ceiling(self, engine_config, make_target):
        state = _state()
        _occupy(state, make_target, [0])
        scheduler = SpawnScheduler(engine_config, TargetLifecycle(), random.Random(7))
        assert scheduler.spawn_due(state) == []
        assert state.next_spawn_at_ms == 1000.0

    def test_below_floor_next_spawn_is_immediate(self, config_with_level):
        config = config_with_level(1, concurrent_min=2, concurrent_max=2)
        state = _state()
        scheduler = SpawnScheduler(config, TargetLifecycle(), random.Random(3))
        spawned = scheduler.spawn_due(state)
        assert len(spawned) == 2
        assert len({target.cell_index for target in spawned}) == 2
        assert state.next_spawn_at_ms > 1000.0

    def test_starvation_backs_off(self, config_with_level, make_target):
        config = config_with_level(1, grid=1, concurrent_min=2, concurrent_max=2)
        state = _state(grid=1)
        _occupy(state, make_target, [0])
        scheduler = SpawnScheduler(config, TargetLifecycle(), random.Random(3))
        assert scheduler.spawn_due(state) == []
        assert state.next_spawn_at_ms == 1000.0 + config.timing.spawn_retry_ms

    def test_bookkeeping_after_spawn(self, engine_config):
        state = _state()
        scheduler = SpawnScheduler(engine_config, TargetLifecycle(), random.Random(5))
        target = scheduler.spawn_due(state)[0]
        assert target.target_id == 1
        assert state.next_target_id == 2
        assert state.recent_cells == [target.cell_index]
        assert state.cell_cooldown_until[target.cell_index] == 1000.0 + engine_config.timing.cell_cooldown_ms
        assert target.created_at_ms == 1000.0

    def test_recent_history_is_trimmed(self, engine_config):
        state = _state()
        state.recent_cells = [0, 1, 2, 3, 4, 5]
        scheduler = SpawnScheduler(engine_config, TargetLifecycle(), random.Random(5))
        scheduler.spawn_due(state)
        assert len(state.recent_cells) == engine_config.timing.recent_history_limit

    def test_appearance_provider_token_is_attached(self, engine_config):
        state = _state()
        scheduler = SpawnScheduler(
            engine_config,
            TargetLifecycle(),
            random.Random(5),
            appearance_provider=lambda: "sprite-7",
        )
        assert scheduler.spawn_due(state)[0].appearance == "sprite-7"


# --------------------------------------------------------------------------
# Category lottery
# --------------------------------------------------------------------------

class TestLottery:
    def test_pick_weighted_walks_cumulative_weights(self):
        weights = [("a", 1.0), ("b", 2.0), ("c", 1.0)]
        assert pick_weighted(weights, 0.0) == "a"
        assert pick_weighted(weights, 0.25) == "a"
        assert pick_weighted(weights, 0.5) == "b"
        assert pick_weighted(weights, 0.99) == "c"

    def test_zero_weight_category_is_skipped(self):
        assert pick_weighted([("a", 1.0), ("b", 0.0), ("c", 1.0)], 0.75) == "c"

    def test_rounding_leftover_never_lands_on_zero_weight(self):
        assert pick_weighted([("a", 1.0), ("b", 2.0), ("c", 0.0)], 1.5) == "b"

    def test_category_draw_uses_injected_source(self, engine_config, scripted_random):
        state = _state()
        scheduler = SpawnScheduler(engine_config, TargetLifecycle(), scripted_random([0.0, 0.999]))
        assert scheduler.pick_category(state) == TargetCategory.COMMON
        # Level 1 never spawns chill targets, so the top of the roll lands on hazard.
        assert scheduler.pick_category(state) == TargetCategory.HAZARD

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_seeded_draws_are_reproducible(self, engine_config, seed):
        first = SpawnScheduler(engine_config, TargetLifecycle(), random.Random(seed))
        second = SpawnScheduler(engine_config, TargetLifecycle(), random.Random(seed))
        state_a, state_b = _state(), _state()
        picks_a = [first.pick_category(state_a) for _ in range(50)]
        picks_b = [second.pick_category(state_b) for _ in range(50)]
        assert picks_a == picks_b


# --------------------------------------------------------------------------
# Slow status
# --------------------------------------------------------------------------

class TestSlowStatus:
    def test_slow_scales_exposure_of_new_targets(self, engine_config):
        normal_state = _state()
        slow_state = _state()
        slow_state.slow_until_ms = slow_state.elapsed_ms + 2000.0

        normal = SpawnScheduler(engine_config, TargetLifecycle(), random.Random(9)).spawn_due(normal_state)[0]
        slowed = SpawnScheduler(engine_config, TargetLifecycle(), random.Random(9)).spawn_due(slow_state)[0]

        assert normal.category == slowed.category
        assert slowed.exposed_ms == pytest.approx(normal.exposed_ms * 1.35)
        assert slowed.entry_ms == pytest.approx(normal.entry_ms)

    def test_slow_expired_has_no_effect(self, engine_config):
        state = _state()
        state.slow_until_ms = state.elapsed_ms
        scheduler = SpawnScheduler(engine_config, TargetLifecycle(), random.Random(9))
        assert scheduler.slow_factor(state) == 1.0

    def test_slow_stretches_spawn_interval(self, engine_config, scripted_random):
        state = _state()
        state.slow_until_ms = state.elapsed_ms + 2000.0
        scheduler = SpawnScheduler(engine_config, TargetLifecycle(), scripted_random())
        scheduler.spawn_due(state)
        assert state.next_spawn_at_ms == pytest.approx(1000.0 + 980.0 * 1.35)
