"""Tests for config loading, validation and environment overrides."""

from __future__ import annotations

import json

import pytest

import config as config_module
from config import EngineConfig, load_config


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    for name in (
        "POPGRID_CONFIG_PATH",
        "POPGRID_START_TIME_MS",
        "POPGRID_CHECKPOINT_MS",
        "POPGRID_MAX_FRAME_DELTA_MS",
        "POPGRID_SEED",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "_default_config_candidates", lambda: [tmp_path / "popgrid_config.json"])


def _write(path, payload):
    path.write_text(json.dumps(payload) if not isinstance(payload, str) else payload, encoding="utf-8")
    return path


class TestDefaults:
    def test_no_file_uses_built_in_defaults(self):
        config, resolved = load_config()
        assert resolved is None
        assert config.timing.start_time_ms == 45_000.0
        assert config.timing.checkpoint_ms == 5_000.0
        assert config.targets.slow_multiplier == 1.35
        assert config.levels.top_level() == 7

    def test_combo_tiers_sorted_descending(self):
        config = EngineConfig(scoring={"combo_tiers": [{"min_combo": 5, "multiplier": 1.2}, {"min_combo": 15, "multiplier": 2.0}]})
        assert [tier.min_combo for tier in config.scoring.combo_tiers] == [15, 5]

    def test_get_config_is_cached(self, tmp_path):
        config_module.get_config.cache_clear()
        first = config_module.get_config()
        _write(tmp_path / "popgrid_config.json", {"timing": {"start_time_ms": 60_000}})
        assert config_module.get_config() is first
        assert first[0].timing.start_time_ms == 45_000.0

        config_module.get_config.cache_clear()
        assert config_module.get_config()[0].timing.start_time_ms == 60_000.0
        config_module.get_config.cache_clear()


class TestFile:
    def test_partial_file_merges_with_defaults(self, tmp_path):
        path = _write(tmp_path / "popgrid_config.json", {"timing": {"start_time_ms": 60_000}, "harness": {"seed": 7}})
        config, resolved = load_config()
        assert resolved == path
        assert config.timing.start_time_ms == 60_000.0
        assert config.timing.checkpoint_ms == 5_000.0
        assert config.harness.seed == 7

    def test_invalid_json_raises_value_error(self, tmp_path):
        path = _write(tmp_path / "broken.json", "{oops")
        with pytest.raises(ValueError):
            load_config(path)

    def test_non_object_root_raises(self, tmp_path):
        path = _write(tmp_path / "list.json", [1, 2])
        with pytest.raises(ValueError):
            load_config(path)

    def test_bad_pi_weights_raise(self, tmp_path):
        path = _write(tmp_path / "weights.json", {"performance": {"accuracy_weight": 0.9}})
        with pytest.raises(ValueError, match="PI weights"):
            load_config(path)

    def test_missing_scoring_category_raises(self, tmp_path):
        path = _write(tmp_path / "scoring.json", {"scoring": {"categories": {"common": {"score_delta": 1}}}})
        with pytest.raises(ValueError):
            load_config(path)

    def test_bare_level_mapping_is_accepted(self, tmp_path):
        levels = {str(key): value.model_dump(mode="json") for key, value in EngineConfig().levels.levels.items()}
        levels["1"]["spawn_interval_ms"] = 1_100.0
        path = _write(tmp_path / "levels.json", {"levels": levels})
        config, _ = load_config(path)
        assert config.levels.get(1).spawn_interval_ms == 1_100.0

    def test_explicit_path_from_environment(self, tmp_path, monkeypatch):
        path = _write(tmp_path / "custom.json", {"timing": {"checkpoint_ms": 4_000}})
        monkeypatch.setenv("POPGRID_CONFIG_PATH", str(path))
        config, resolved = load_config()
        assert resolved == path
        assert config.timing.checkpoint_ms == 4_000.0

    def test_explicit_missing_path_raises(self, tmp_path, monkeypatch):
        monkeypatch.setenv("POPGRID_CONFIG_PATH", str(tmp_path / "absent.json"))
        with pytest.raises(FileNotFoundError):
            load_config()


class TestEnvironmentOverrides:
    def test_overrides_apply(self, monkeypatch):
        monkeypatch.setenv("POPGRID_START_TIME_MS", "30000")
        monkeypatch.setenv("POPGRID_SEED", "42")
        config, _ = load_config()
        assert config.timing.start_time_ms == 30_000.0
        assert config.harness.seed == 42

    def test_unparseable_override_is_ignored(self, monkeypatch):
        monkeypatch.setenv("POPGRID_CHECKPOINT_MS", "soon")
        config, _ = load_config()
        assert config.timing.checkpoint_ms == 5_000.0

    def test_to_json_is_loadable(self):
        payload = json.loads(config_module.to_json(EngineConfig()))
        assert EngineConfig.model_validate(payload).timing.start_time_ms == 45_000.0
