"""
Stitch - Configuration Management

Handles settings.json, the cross-session resume flags and environment
overrides. Files are stored in ~/.config/stitch (STITCH_CONFIG_DIR).
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from stitch.exceptions import ConfigError

logger = logging.getLogger(__name__)


def get_config_dir() -> Path:
    """Configuration directory, honouring STITCH_CONFIG_DIR."""
    if override := os.environ.get("STITCH_CONFIG_DIR"):
        return Path(override).expanduser()
    return Path.home() / ".config" / "stitch"


def get_db_path() -> Path:
    """Project store location, honouring STITCH_DB_PATH."""
    if override := os.environ.get("STITCH_DB_PATH"):
        return Path(override).expanduser()
    return get_config_dir() / "stitch.db"


@dataclass
class Settings:
    """User preferences that outlive a project."""

    show_timer: bool = True  # also gates ETA display
    tick_interval_seconds: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Settings":
        """Create Settings from dictionary, defaulting missing keys."""
        defaults = cls()
        show_timer = data.get("show_timer", defaults.show_timer)
        if not isinstance(show_timer, bool):
            raise ConfigError("show_timer must be true or false", {"show_timer": show_timer})
        try:
            return cls(
                show_timer=show_timer,
                tick_interval_seconds=float(
                    data.get("tick_interval_seconds", defaults.tick_interval_seconds)
                ),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError("Invalid value in settings", {"error": str(e)})


@dataclass
class StitchConfig:
    """Main configuration container for Stitch."""

    db_path: Path = field(default_factory=get_db_path)
    settings: Settings = field(default_factory=Settings)

    @property
    def settings_path(self) -> Path:
        return get_config_dir() / "settings.json"

    @property
    def resume_path(self) -> Path:
        return get_config_dir() / "resume.json"


def ensure_config_dir() -> None:
    """Ensure configuration directory exists."""
    get_config_dir().mkdir(parents=True, exist_ok=True)


def load_config() -> StitchConfig:
    """
    Load configuration from files and environment.

    Returns:
        StitchConfig with all settings loaded

    Raises:
        ConfigError: If settings.json is not valid JSON
    """
    config = StitchConfig()

    if config.settings_path.exists():
        try:
            with open(config.settings_path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(
                f"Invalid JSON in {config.settings_path}",
                {"error": str(e)},
            )
        if not isinstance(data, dict):
            raise ConfigError(f"Expected an object in {config.settings_path}")
        config.settings = Settings.from_dict(data)

    return config


def save_settings(config: StitchConfig) -> None:
    """
    Write settings to settings.json.

    Raises:
        ConfigError: If the file cannot be written
    """
    try:
        ensure_config_dir()
        with open(config.settings_path, "w", encoding="utf-8") as f:
            json.dump(config.settings.to_dict(), f, indent=2)
    except OSError as e:
        raise ConfigError(f"Cannot write {config.settings_path}", {"error": str(e)})


# =============================================================================
# RESUME FLAGS
# =============================================================================


@dataclass
class ResumeFlags:
    """Which project to restore at the next startup."""

    last_project_id: str | None = None
    last_project_unsaved: bool = False


class ResumeFlagsStore:
    """
    Reads and writes resume.json.

    Written on every project activation, read once at startup. A missing or
    damaged file reads as empty flags so startup never fails because of it.
    """

    def __init__(self, path: Path | None = None):
        self.path = path or get_config_dir() / "resume.json"

    def read(self) -> ResumeFlags:
        if not self.path.exists():
            return ResumeFlags()
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return ResumeFlags(
                last_project_id=data.get("last_project_id") or None,
                last_project_unsaved=bool(data.get("last_project_unsaved", False)),
            )
        except (OSError, json.JSONDecodeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable resume flags at {self.path}: {e}")
            return ResumeFlags()

    def write(self, flags: ResumeFlags) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(asdict(flags), f)
