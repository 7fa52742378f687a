"""Shared fixtures for the popgrid test suite."""

from __future__ import annotations

from typing import Iterable, List

import pytest

from config import EngineConfig
from gameplay_models import ActiveTarget, MatchState, TargetCategory, build_grid


class ScriptedRandom:
    """random.Random stand-in that replays scripted draws.

    random() pops from `rolls`; uniform() returns the band midpoint; randrange() returns 0.
    """

    def __init__(self, rolls: Iterable[float] = ()) -> None:
        self.rolls: List[float] = list(rolls)

    def random(self) -> float:
        return self.rolls.pop(0) if self.rolls else 0.0

    def uniform(self, low: float, high: float) -> float:
        return (float(low) + float(high)) / 2.0

    def randrange(self, stop: int) -> int:
        return 0


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def scripted_random():
    return ScriptedRandom


@pytest.fixture
def make_target():
    def _make(
        target_id: int = 1,
        *,
        cell_index: int = 0,
        category: TargetCategory = TargetCategory.COMMON,
        created_at_ms: float = 0.0,
        entry_ms: float = 100.0,
        exposed_ms: float = 1000.0,
        struck_ms: float = 150.0,
        exit_ms: float = 120.0,
    ) -> ActiveTarget:
        return ActiveTarget(
            target_id=target_id,
            cell_index=cell_index,
            category=category,
            created_at_ms=created_at_ms,
            entry_ms=entry_ms,
            exposed_ms=exposed_ms,
            struck_ms=struck_ms,
            exit_ms=exit_ms,
        )

    return _make


@pytest.fixture
def running_state() -> MatchState:
    return MatchState(
        is_running=True,
        level=1,
        cells=build_grid(3),
        time_remaining_ms=45_000.0,
        time_gauge_cap_ms=45_000.0,
    )


def level_table_with(engine_config: EngineConfig, level: int, **changes) -> dict:
    """Dump the default level table with one level's fields replaced."""
    raw = {key: value.model_dump() for key, value in engine_config.levels.levels.items()}
    raw[level].update(changes)
    return raw


@pytest.fixture
def config_with_level():
    def _build(level: int, **changes) -> EngineConfig:
        base = EngineConfig()
        return EngineConfig(levels=level_table_with(base, level, **changes))

    return _build
