# -*- coding: utf-8 -*-
########################
# paths.py
########################
# Purpose:
# - Central filesystem path helpers for the app.
# - Defines where the config file is searched and where the player profile lives.
#
# Design notes:
# - Keep path derivation consistent across modules.
# - No Qt usage. Return pathlib.Path only.
# - Nothing here creates directories. Writers create parents when they save.
#
########################
# Interfaces:
# Public functions:
# - user_config_path() -> pathlib.Path
# - user_data_path() -> pathlib.Path
# - profile_path() -> pathlib.Path
#
# Inputs:
# - POPGRID_PROFILE_PATH environment variable (optional override for the profile file).
#
# Outputs:
# - Paths used by config.py and profile_store.py.
#
########################

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir

APP_NAME = "Popgrid"
APP_AUTHOR = "Popgrid"
PROFILE_FILENAME = "profile.json"


def user_config_path() -> Path:
    """Return the per-user config directory (not created automatically)."""
    return Path(user_config_dir(APP_NAME, APP_AUTHOR))


def user_data_path() -> Path:
    """Return the per-user data directory (not created automatically)."""
    return Path(user_data_dir(APP_NAME, APP_AUTHOR))


def profile_path() -> Path:
    """Return the player profile file path, honoring POPGRID_PROFILE_PATH."""
    explicit_path_text = os.environ.get("POPGRID_PROFILE_PATH", "").strip()
    if explicit_path_text:
        return Path(explicit_path_text).expanduser()
    return user_data_path() / PROFILE_FILENAME
