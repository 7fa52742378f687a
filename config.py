"""
config.py

Typed configuration loading and validation for Popgrid.

Every setting has a default, so Popgrid plays without any file. At most one UTF-8 JSON file is
read and layered over the defaults, then POPGRID_* environment variables are layered over that.
Nothing here writes to disk.

Where the file comes from
- POPGRID_CONFIG_PATH, when set, names the file. It must exist.
- Otherwise the first existing path of:
  1) ./popgrid_config.json (current working directory)
  2) <user config dir>/Popgrid/popgrid_config.json
- If none exists, built-in defaults are used.

Example config file (popgrid_config.json)
{
  "timing": {
    "start_time_ms": 60000,
    "checkpoint_ms": 5000
  },
  "targets": {
    "slow_multiplier": 1.35
  },
  "harness": {
    "seed": 7
  },
  "levels": {
    "1": {"grid": 3, "concurrent_min": 1, "concurrent_max": 1, "...": "..."}
  }
}
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

import paths
from gameplay_models import TargetCategory
from level_tables import LevelTable, default_level_table


class TimingConfig(BaseModel):
    start_time_ms: float = Field(default=45_000.0, gt=0.0, description="Time bank at match start.")
    max_time_ms: float = Field(default=120_000.0, gt=0.0, description="Absolute time bank cap.")
    min_stage_time_ms: float = Field(default=1_000.0, ge=0.0, description="Lower clamp for a stage start time.")
    checkpoint_ms: float = Field(default=5_000.0, gt=0.0, description="Performance checkpoint interval.")
    max_frame_delta_ms: float = Field(default=80.0, gt=0.0, description="Cap for a single clock advance.")
    first_spawn_at_ms: float = Field(default=300.0, ge=0.0)
    spawn_retry_ms: float = Field(default=120.0, gt=0.0, description="Backoff after a starved spawn attempt.")
    level_change_spawn_delay_ms: float = Field(default=180.0, ge=0.0)
    cell_cooldown_ms: float = Field(default=900.0, ge=0.0)
    recent_avoid_count: int = Field(default=3, ge=0, description="Anti-repeat window (most recent cells).")
    recent_history_limit: int = Field(default=6, ge=0)
    stage_notice_ms: float = Field(default=1_800.0, ge=0.0, description="Transition lock length.")
    low_time_threshold_ms: float = Field(default=9_000.0, ge=0.0, description="Late-match time pressure.")


class TargetTimingConfig(BaseModel):
    entry_min_ms: float = Field(default=120.0, gt=0.0)
    entry_max_ms: float = Field(default=170.0, gt=0.0)
    struck_min_ms: float = Field(default=130.0, gt=0.0)
    struck_max_ms: float = Field(default=180.0, gt=0.0)
    exit_min_ms: float = Field(default=100.0, gt=0.0)
    exit_max_ms: float = Field(default=150.0, gt=0.0)
    exposure_scale: Dict[TargetCategory, float] = Field(
        default_factory=lambda: {TargetCategory.BONUS: 0.76, TargetCategory.CHILL: 0.9}
    )
    slow_multiplier: float = Field(default=1.35, ge=1.0)
    slow_duration_ms: float = Field(default=2_000.0, ge=0.0)
    spawn_jitter: float = Field(default=0.12, ge=0.0, lt=1.0)
    max_concurrency: int = Field(default=3, ge=1)

    def exposure_scale_for(self, category: TargetCategory) -> float:
        return float(self.exposure_scale.get(category, 1.0))


class CategoryRule(BaseModel):
    score_delta: int = 1
    time_delta_ms: float = 0.0
    breaks_combo: bool = False
    triggers_slow: bool = False


class ComboTier(BaseModel):
    min_combo: int = Field(ge=1)
    multiplier: float = Field(ge=1.0)


def _default_category_rules() -> Dict[TargetCategory, CategoryRule]:
    return {
        TargetCategory.COMMON: CategoryRule(score_delta=1),
        TargetCategory.BONUS: CategoryRule(score_delta=3),
        TargetCategory.HAZARD: CategoryRule(score_delta=-3, time_delta_ms=-2_000.0, breaks_combo=True),
        TargetCategory.CHILL: CategoryRule(score_delta=1, triggers_slow=True),
    }


class ScoringConfig(BaseModel):
    categories: Dict[TargetCategory, CategoryRule] = Field(default_factory=_default_category_rules)
    combo_tiers: List[ComboTier] = Field(
        default_factory=lambda: [
            ComboTier(min_combo=15, multiplier=2.0),
            ComboTier(min_combo=10, multiplier=1.5),
            ComboTier(min_combo=5, multiplier=1.2),
        ]
    )

    @field_validator("combo_tiers")
    @classmethod
    def sort_tiers_descending(cls, value: List[ComboTier]) -> List[ComboTier]:
        return sorted(value, key=lambda tier: tier.min_combo, reverse=True)

    @field_validator("categories")
    @classmethod
    def require_every_category(cls, value: Dict[TargetCategory, CategoryRule]) -> Dict[TargetCategory, CategoryRule]:
        missing = [category.value for category in TargetCategory if category not in value]
        if missing:
            raise ValueError("scoring rules missing for: " + ", ".join(missing))
        return value


class PerformanceConfig(BaseModel):
    accuracy_weight: float = Field(default=0.45, ge=0.0)
    speed_weight: float = Field(default=0.35, ge=0.0)
    combo_weight: float = Field(default=0.20, ge=0.0)
    reference_reaction_ms: float = Field(default=900.0, gt=0.0)
    reference_combo: float = Field(default=20.0, gt=0.0)
    skill_smoothing: float = Field(default=0.25, gt=0.0, le=1.0)
    initial_skill: float = Field(default=0.5, ge=0.0, le=1.0)

    high_bonus_pi: float = 0.88
    high_bonus_ms: float = 5_000.0
    medium_bonus_pi: float = 0.75
    medium_bonus_ms: float = 3_000.0
    perfect_bonus_ms: float = 1_000.0

    progress_delta_min: float = -14.0
    progress_delta_max: float = 16.0
    momentum_min: float = -8.0
    momentum_max: float = 10.0
    idle_progress_delta: float = -2.0
    pending_damping: float = 0.45
    pending_progress_seed: float = 88.0
    level_up_progress_cap: float = 24.0
    level_down_progress_floor: float = 58.0
    demotion_progress_reset: float = 60.0

    cancel_skill_margin: float = 0.08
    low_pi_floor: float = 0.40
    demotion_streak: int = Field(default=4, ge=1)
    demotion_skill_margin: float = 0.22
    demotion_progress_ceiling: float = 16.0
    demotion_min_elapsed_ms: float = 25_000.0

    @model_validator(mode="after")
    def weights_sum_to_one(self) -> "PerformanceConfig":
        total = float(self.accuracy_weight) + float(self.speed_weight) + float(self.combo_weight)
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"PI weights must sum to 1.0 (got {total:.4f})")
        return self


class HarnessConfig(BaseModel):
    seed: Optional[int] = Field(default=None, description="Random seed for the harness and simulations.")
    step_ms: float = Field(default=16.0, gt=0.0, description="Fixed step for headless simulation.")
    bot_accuracy: float = Field(default=0.85, ge=0.0, le=1.0)
    bot_reaction_ms: float = Field(default=380.0, ge=0.0)


class EngineConfig(BaseModel):
    timing: TimingConfig = Field(default_factory=TimingConfig)
    targets: TargetTimingConfig = Field(default_factory=TargetTimingConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    harness: HarnessConfig = Field(default_factory=HarnessConfig)
    levels: LevelTable = Field(default_factory=default_level_table)

    @field_validator("levels", mode="before")
    @classmethod
    def wrap_bare_level_mapping(cls, value: Any) -> Any:
        if isinstance(value, dict) and "levels" not in value:
            return {"levels": value}
        return value


CONFIG_FILENAME = "popgrid_config.json"

# (variable, section, key, parser)
ENVIRONMENT_OVERRIDES: Tuple[Tuple[str, str, str, Callable[[str], Any]], ...] = (
    ("POPGRID_START_TIME_MS", "timing", "start_time_ms", float),
    ("POPGRID_CHECKPOINT_MS", "timing", "checkpoint_ms", float),
    ("POPGRID_MAX_FRAME_DELTA_MS", "timing", "max_frame_delta_ms", float),
    ("POPGRID_SEED", "harness", "seed", int),
)


def _default_config_candidates() -> List[Path]:
    return [Path.cwd() / CONFIG_FILENAME, paths.user_config_path() / CONFIG_FILENAME]


def _resolve_config_path() -> Optional[Path]:
    explicit = os.environ.get("POPGRID_CONFIG_PATH", "").strip()
    if explicit:
        return Path(explicit).expanduser()
    return next((candidate for candidate in _default_config_candidates() if candidate.exists()), None)


def _read_config_object(config_path: Path) -> Dict[str, Any]:
    try:
        text = config_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise
    except OSError as exception:
        raise OSError(f"Cannot read config {config_path}: {exception}") from exception

    try:
        document = json.loads(text)
    except json.JSONDecodeError as exception:
        raise ValueError(f"Config {config_path} is not valid JSON: {exception}") from exception

    if not isinstance(document, dict):
        raise ValueError(f"Config {config_path} must hold a JSON object at the top level")
    return document


def _apply_environment_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Layer POPGRID_* variables over the file contents. Unparseable values are ignored."""
    merged = dict(raw)
    for variable, section_name, key, parser in ENVIRONMENT_OVERRIDES:
        text = os.environ.get(variable, "").strip()
        if not text:
            continue
        try:
            value = parser(text)
        except ValueError:
            continue
        section = merged.get(section_name)
        section = dict(section) if isinstance(section, dict) else {}
        section[key] = value
        merged[section_name] = section
    return merged


def load_config(config_path: Optional[Path] = None) -> Tuple[EngineConfig, Optional[Path]]:
    """Return the validated config and the file it came from (None when only defaults apply)."""
    source_path = config_path if config_path is not None else _resolve_config_path()
    raw = _read_config_object(source_path) if source_path is not None else {}
    raw = _apply_environment_overrides(raw)

    try:
        engine_config = EngineConfig.model_validate(raw)
    except ValidationError as exception:
        origin = str(source_path) if source_path is not None else "built-in defaults"
        raise ValueError(f"Config validation failed for {origin}:\n{exception}") from exception

    return engine_config, source_path


@lru_cache(maxsize=1)
def get_config() -> Tuple[EngineConfig, Optional[Path]]:
    return load_config()


def to_json(engine_config: EngineConfig) -> str:
    return json.dumps(engine_config.model_dump(mode="json"), ensure_ascii=False, indent=2)


def main() -> int:
    try:
        engine_config, source_path = load_config()
    except (OSError, ValueError) as exception:
        print(json.dumps({"ok": False, "error": str(exception)}, ensure_ascii=False, indent=2))
        return 2

    report = {
        "ok": True,
        "config_path": str(source_path) if source_path is not None else None,
        "config": engine_config.model_dump(mode="json"),
    }
    print(json.dumps(report, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
