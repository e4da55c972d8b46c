from __future__ import annotations

from pathlib import Path

import platformdirs

APP_NAME = "ansi-optimizer"


def get_config() -> Path:
    """Get the configuration directory, creating it if required."""
    return Path(platformdirs.user_config_dir(APP_NAME, ensure_exists=True))


def get_settings_path() -> Path:
    """Path to the settings file."""
    return get_config() / "settings.json"
