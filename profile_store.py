# -*- coding: utf-8 -*-
########################
# profile_store.py
########################
# Purpose:
# - Durable player profile: best score, best combo, totals, coins and the sound preference.
# - Updated once per finished match; read when an engine is created.
#
# Design notes:
# - Stored as one UTF-8 JSON object. Writes go to a sibling .tmp file that then replaces the target.
# - Missing or corrupt data never aborts startup. Each field that fails validation falls back
#   to its own default; unreadable or non-object files fall back to a fresh profile.
# - Save failures are logged and swallowed into a False return; a finished match must still end.
#
########################
# Interfaces:
# Public models (pydantic):
# - PlayerProfile(best_score, best_combo, total_plays, total_hits, total_misses, coins, sound_enabled)
#   - from_mapping(raw: Any) -> PlayerProfile
#
# Public classes:
# - class ProfileStore
#   - __init__(profile_file: Optional[Path] = None)
#   - path() -> Path
#   - profile() -> PlayerProfile
#   - load() -> PlayerProfile
#   - save() -> bool
#   - record_match(*, score, best_combo, hits, misses, coins) -> PlayerProfile
#   - add_coins(amount: int) -> PlayerProfile
#   - set_sound_enabled(enabled: bool) -> PlayerProfile
#
# Inputs:
# - MatchSummary values and session hit/miss totals from SessionEngine.end_match.
#
########################

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

import paths


class PlayerProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    best_score: int = Field(default=0, ge=0)
    best_combo: int = Field(default=0, ge=0)
    total_plays: int = Field(default=0, ge=0)
    total_hits: int = Field(default=0, ge=0)
    total_misses: int = Field(default=0, ge=0)
    coins: int = Field(default=0, ge=0)
    sound_enabled: bool = Field(default=True, strict=True)

    @field_validator("*", mode="wrap")
    @classmethod
    def _fallback_to_default(cls, value: Any, handler, info: ValidationInfo) -> Any:
        try:
            return handler(value)
        except ValidationError:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)

    @classmethod
    def from_mapping(cls, raw: Any) -> "PlayerProfile":
        if not isinstance(raw, dict):
            return cls()
        return cls.model_validate(raw)


class ProfileStore:
    def __init__(self, profile_file: Optional[Path] = None) -> None:
        self._path = Path(profile_file) if profile_file is not None else paths.profile_path()
        self._profile = self.load()

    def path(self) -> Path:
        return self._path

    def profile(self) -> PlayerProfile:
        return self._profile

    def load(self) -> PlayerProfile:
        if not self._path.exists():
            return PlayerProfile()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exception:
            logger.warning("Ignoring unreadable profile {}: {}", self._path, exception)
            return PlayerProfile()
        return PlayerProfile.from_mapping(raw)

    def save(self) -> bool:
        payload = json.dumps(self._profile.model_dump(mode="json"), ensure_ascii=False, indent=2)
        temporary_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temporary_path.write_text(payload, encoding="utf-8")
            temporary_path.replace(self._path)
        except OSError as exception:
            logger.warning("Failed to save profile {}: {}", self._path, exception)
            return False
        return True

    def record_match(self, *, score: int, best_combo: int, hits: int, misses: int, coins: int) -> PlayerProfile:
        current = self._profile
        self._profile = current.model_copy(
            update={
                "best_score": max(int(current.best_score), int(score)),
                "best_combo": max(int(current.best_combo), int(best_combo)),
                "total_plays": int(current.total_plays) + 1,
                "total_hits": int(current.total_hits) + int(hits),
                "total_misses": int(current.total_misses) + int(misses),
                "coins": int(current.coins) + max(0, int(coins)),
            }
        )
        self.save()
        return self._profile

    def add_coins(self, amount: int) -> PlayerProfile:
        self._profile = self._profile.model_copy(update={"coins": max(0, int(self._profile.coins) + int(amount))})
        self.save()
        return self._profile

    def set_sound_enabled(self, enabled: bool) -> PlayerProfile:
        self._profile = self._profile.model_copy(update={"sound_enabled": bool(enabled)})
        self.save()
        return self._profile
