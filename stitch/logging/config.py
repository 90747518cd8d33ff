"""
Logging Configuration for Stitch.

Where the structured logs live, how large they grow and how verbose each
channel is. Environment overrides: STITCH_LOG_DIR, STITCH_LOG_LEVEL,
STITCH_LOG_MAX_SIZE_MB.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# Structured log channels, one JSONL file each
CHANNELS = ("engine", "store")


@dataclass
class LogConfig:
    """Configuration for the Stitch logging system."""

    log_dir: Path = field(default_factory=lambda: Path.home() / ".stitch" / "logs")

    max_file_size_bytes: int = 5 * 1024 * 1024
    backup_count: int = 3

    # DEBUG, INFO, WARNING or ERROR
    engine_level: str = "INFO"
    store_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "LogConfig":
        """Defaults overridden by STITCH_LOG_* variables."""
        env = os.environ if environ is None else environ
        config = cls()

        if level := env.get("STITCH_LOG_LEVEL"):
            config.engine_level = config.store_level = level.upper()

        if log_dir := env.get("STITCH_LOG_DIR"):
            config.log_dir = Path(log_dir).expanduser()

        if size_mb := env.get("STITCH_LOG_MAX_SIZE_MB"):
            try:
                config.max_file_size_bytes = int(float(size_mb) * 1024 * 1024)
            except ValueError:
                logger.warning(f"Ignoring STITCH_LOG_MAX_SIZE_MB={size_mb!r}: not a number")

        return config

    def ensure_log_dir(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)

    def log_path(self, channel: str) -> Path:
        return self.log_dir / f"{channel}.jsonl"

    def level_for(self, channel: str) -> int:
        name = getattr(self, f"{channel}_level", "INFO")
        return getattr(logging, name.upper(), logging.INFO)

    @property
    def engine_log_path(self) -> Path:
        """State engine events."""
        return self.log_path("engine")

    @property
    def store_log_path(self) -> Path:
        """Project store operations."""
        return self.log_path("store")


_config: LogConfig | None = None


def get_config() -> LogConfig:
    """The active log config, read from the environment on first use."""
    global _config
    if _config is None:
        _config = LogConfig.from_env()
        _config.ensure_log_dir()
    return _config


def set_config(config: LogConfig) -> None:
    """Replace the active log config (tests, embedding)."""
    global _config
    _config = config
    _config.ensure_log_dir()
