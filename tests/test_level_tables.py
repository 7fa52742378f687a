"""Tests for level table validation and lookup."""

from __future__ import annotations

import pytest

from gameplay_models import TargetCategory
from level_tables import LevelTableError, UnknownLevelError, build_level_table, default_level_table


def _raw():
    return {key: value.model_dump() for key, value in default_level_table().levels.items()}


class TestDefaultTable:
    def test_levels_one_through_seven(self):
        table = default_level_table()
        assert table.top_level() == 7
        assert [table.get(level).grid for level in range(1, 8)] == [3, 4, 5, 6, 7, 8, 9]

    def test_top_level_is_a_ceiling(self):
        table = default_level_table()
        assert table.get(7).promote_min_hits is None
        assert all(table.get(level).promote_min_hits is not None for level in range(1, 7))

    def test_unknown_level_raises(self):
        table = default_level_table()
        assert not table.contains(8)
        with pytest.raises(UnknownLevelError):
            table.get(8)
        with pytest.raises(UnknownLevelError):
            table.get(0)

    def test_weights_as_dict(self):
        weights = default_level_table().get(1).start_weights.as_dict()
        assert weights[TargetCategory.COMMON] == 94
        assert set(weights) == set(TargetCategory)


class TestValidation:
    def test_gap_is_rejected(self):
        raw = _raw()
        del raw[4]
        with pytest.raises(LevelTableError):
            build_level_table(raw)

    def test_level_zero_is_rejected(self):
        raw = _raw()
        raw[0] = raw[1]
        with pytest.raises(LevelTableError):
            build_level_table(raw)

    def test_inverted_hold_band_is_rejected(self):
        raw = _raw()
        raw[2]["hold_min_ms"] = 2_000.0
        with pytest.raises(LevelTableError):
            build_level_table(raw)

    def test_inverted_concurrency_is_rejected(self):
        raw = _raw()
        raw[5]["concurrent_min"] = 3
        raw[5]["concurrent_max"] = 2
        with pytest.raises(LevelTableError):
            build_level_table(raw)

    def test_all_zero_weights_are_rejected(self):
        raw = _raw()
        raw[3]["end_weights"] = {"common": 0, "bonus": 0, "hazard": 0, "chill": 0}
        with pytest.raises(LevelTableError):
            build_level_table(raw)

    def test_shorter_table_is_valid(self):
        raw = {1: _raw()[1], 2: _raw()[2]}
        raw[2]["promote_min_hits"] = None
        table = build_level_table(raw)
        assert table.top_level() == 2
