# -*- coding: utf-8 -*-
########################
# level_tables.py
########################
# Purpose:
# - Level-indexed tuning tables: grid size, spawn pacing, exposure bands, concurrency bounds,
#   promotion thresholds, transition windows and category weight tables.
#
# Design notes:
# - Validated once at load with pydantic. Levels must be exactly 1..N with no gaps.
# - Lookups for an unconfigured level raise UnknownLevelError. There is no fallback to level 1.
# - The top level carries promote_min_hits=None, which makes it a permanent ceiling.
# - No Qt usage.
#
########################
# Interfaces:
# Public exceptions:
# - LevelTableError(ValueError)
# - UnknownLevelError(KeyError)
#
# Public models (pydantic):
# - CategoryWeights(common: float, bonus: float, hazard: float, chill: float)
#   - as_dict() -> dict[TargetCategory, float]
# - LevelConfig(grid, concurrent_min, concurrent_max, spawn_interval_ms, hold_min_ms, hold_max_ms, ...)
# - LevelTable(levels: dict[int, LevelConfig])
#   - get(level: int) -> LevelConfig
#   - top_level() -> int
#   - contains(level: int) -> bool
#
# Public functions:
# - default_level_table() -> LevelTable
# - build_level_table(raw: Mapping) -> LevelTable
#
########################

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from gameplay_models import TargetCategory


class LevelTableError(ValueError):
    """Raised when a level table is malformed (gaps, bad bands, empty weights)."""


class UnknownLevelError(KeyError):
    """Raised when a caller asks for a level the table does not configure."""


class CategoryWeights(BaseModel):
    common: float = Field(default=1.0, ge=0.0)
    bonus: float = Field(default=0.0, ge=0.0)
    hazard: float = Field(default=0.0, ge=0.0)
    chill: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def _require_positive_total(self) -> "CategoryWeights":
        if self.common + self.bonus + self.hazard + self.chill <= 0.0:
            raise ValueError("category weights must not all be zero")
        return self

    def as_dict(self) -> Dict[TargetCategory, float]:
        return {
            TargetCategory.COMMON: float(self.common),
            TargetCategory.BONUS: float(self.bonus),
            TargetCategory.HAZARD: float(self.hazard),
            TargetCategory.CHILL: float(self.chill),
        }


class LevelConfig(BaseModel):
    grid: int = Field(ge=1)
    concurrent_min: int = Field(ge=1)
    concurrent_max: int = Field(ge=1)
    spawn_interval_ms: float = Field(gt=0.0)
    hold_min_ms: float = Field(gt=0.0)
    hold_max_ms: float = Field(gt=0.0)

    target_pi: float = Field(ge=0.0, le=1.0)
    promote_min_hits: Optional[int] = Field(default=None, ge=0, description="None means no promotion from this level.")
    promote_progress: float = Field(default=80.0, ge=0.0, le=100.0)
    promote_skill_margin: float = Field(default=0.05)

    pending_ms: float = Field(default=1500.0, gt=0.0)
    grace_ms: float = Field(default=3000.0, gt=0.0)
    stage_start_ms: float = Field(default=45000.0, gt=0.0)
    entry_ease_ms: float = Field(default=0.0, ge=0.0)

    gentle_blend: bool = False
    lock_concurrency: bool = False
    passive_ramp: float = 0.8
    passive_ramp_strong: Optional[float] = None
    passive_ramp_pi: float = 0.34
    performance_scale: float = 32.0
    momentum_scale: float = 1.1

    start_weights: CategoryWeights
    end_weights: CategoryWeights

    @model_validator(mode="after")
    def _check_bands(self) -> "LevelConfig":
        if self.hold_min_ms > self.hold_max_ms:
            raise ValueError(f"hold_min_ms {self.hold_min_ms} exceeds hold_max_ms {self.hold_max_ms}")
        if self.concurrent_min > self.concurrent_max:
            raise ValueError(
                f"concurrent_min {self.concurrent_min} exceeds concurrent_max {self.concurrent_max}"
            )
        return self

    def required_skill(self) -> float:
        return float(self.target_pi) + float(self.promote_skill_margin)

    def passive_ramp_for(self, performance_index: float) -> float:
        if self.passive_ramp_strong is not None and float(performance_index) >= float(self.passive_ramp_pi):
            return float(self.passive_ramp_strong)
        return float(self.passive_ramp)


class LevelTable(BaseModel):
    levels: Dict[int, LevelConfig]

    @model_validator(mode="after")
    def _check_contiguous(self) -> "LevelTable":
        keys = sorted(int(key) for key in self.levels.keys())
        if not keys:
            raise ValueError("level table is empty")
        expected = list(range(1, len(keys) + 1))
        if keys != expected:
            missing = sorted(set(range(1, max(keys) + 1)) - set(keys))
            raise ValueError(f"levels must be exactly 1..{len(keys)}; got {keys} (missing {missing})")
        return self

    def get(self, level: int) -> LevelConfig:
        key = int(level)
        config = self.levels.get(key)
        if config is None:
            raise UnknownLevelError(f"level {key} is not configured (valid: 1..{self.top_level()})")
        return config

    def contains(self, level: int) -> bool:
        return int(level) in self.levels

    def top_level(self) -> int:
        return max(self.levels.keys())


def _weights(common: float, bonus: float, hazard: float, chill: float) -> CategoryWeights:
    return CategoryWeights(common=common, bonus=bonus, hazard=hazard, chill=chill)


def _default_levels() -> Dict[int, LevelConfig]:
    levels: Dict[int, LevelConfig] = {
        1: LevelConfig(
            grid=3,
            concurrent_min=1,
            concurrent_max=1,
            spawn_interval_ms=980.0,
            hold_min_ms=1200.0,
            hold_max_ms=1450.0,
            target_pi=0.42,
            promote_min_hits=1,
            promote_progress=66.0,
            promote_skill_margin=-0.02,
            pending_ms=1200.0,
            grace_ms=3000.0,
            stage_start_ms=45000.0,
            entry_ease_ms=0.0,
            gentle_blend=True,
            lock_concurrency=True,
            passive_ramp=1.1,
            passive_ramp_strong=2.5,
            performance_scale=22.0,
            momentum_scale=1.4,
            start_weights=_weights(94, 5, 1, 0),
            end_weights=_weights(89, 8, 3, 0),
        ),
    }

    # (grid, cmin, cmax, spawn, hold_min, hold_max, target_pi, min_hits, grace, stage_start, ease, start, end)
    rows = [
        (4, 1, 2, 820.0, 930.0, 1080.0, 0.53, 3, 8000.0, 45000.0, 14000.0, (82, 11, 7, 0), (76, 13, 10, 1)),
        (5, 1, 2, 760.0, 860.0, 980.0, 0.57, 4, 5000.0, 43000.0, 10000.0, (78, 12, 9, 1), (72, 13, 12, 3)),
        (6, 2, 2, 700.0, 780.0, 900.0, 0.61, 5, 3000.0, 41000.0, 8000.0, (74, 13, 11, 2), (68, 14, 14, 4)),
        (7, 2, 3, 640.0, 720.0, 820.0, 0.65, 6, 3000.0, 39000.0, 7000.0, (71, 14, 12, 3), (65, 15, 15, 5)),
        (8, 2, 3, 580.0, 660.0, 760.0, 0.69, 7, 3000.0, 37000.0, 6000.0, (68, 14, 14, 4), (62, 15, 17, 6)),
        (9, 3, 3, 520.0, 620.0, 700.0, 0.72, None, 3000.0, 35000.0, 5000.0, (66, 14, 15, 5), (60, 16, 18, 6)),
    ]
    for offset, row in enumerate(rows):
        grid, cmin, cmax, spawn, hold_min, hold_max, target_pi, min_hits, grace, stage_start, ease, start, end = row
        levels[offset + 2] = LevelConfig(
            grid=grid,
            concurrent_min=cmin,
            concurrent_max=cmax,
            spawn_interval_ms=spawn,
            hold_min_ms=hold_min,
            hold_max_ms=hold_max,
            target_pi=target_pi,
            promote_min_hits=min_hits,
            grace_ms=grace,
            stage_start_ms=stage_start,
            entry_ease_ms=ease,
            start_weights=_weights(*start),
            end_weights=_weights(*end),
        )
    return levels


def default_level_table() -> LevelTable:
    return LevelTable(levels=_default_levels())


def build_level_table(raw: Mapping[Any, Any]) -> LevelTable:
    """Validate a mapping of level -> settings into a LevelTable, raising LevelTableError on any defect."""
    try:
        return LevelTable.model_validate({"levels": dict(raw)})
    except ValidationError as exception:
        raise LevelTableError(f"Invalid level table:\n{exception}") from exception


def _run_unit_tests() -> None:
    table = default_level_table()
    assert table.top_level() == 7
    assert table.get(1).grid == 3
    assert table.get(7).promote_min_hits is None
    assert abs(table.get(1).required_skill() - 0.40) < 1e-9

    try:
        table.get(8)
    except UnknownLevelError:
        pass
    else:
        raise AssertionError("expected UnknownLevelError")

    raw = {key: value.model_dump() for key, value in table.levels.items()}
    del raw[3]
    try:
        build_level_table(raw)
    except LevelTableError:
        pass
    else:
        raise AssertionError("expected LevelTableError for a gap")


if __name__ == "__main__":
    _run_unit_tests()
    print("level_tables.py: ok")
