"""
Stitch Logging System.

Structured JSONL logs, one file per channel:
- engine.jsonl: state engine events (activation, mutations, saves, deletes, confirmations)
- store.jsonl: project store operations with latency and outcome

Usage:
    from stitch.logging import EngineLogEntry, engine_logger, now_iso

    entry = EngineLogEntry(timestamp=now_iso(), event_type="save", project_id="project-1")
    engine_logger.info(entry.to_json())

Files live in ~/.stitch/logs/ unless STITCH_LOG_DIR says otherwise.
"""

import logging
import threading
from typing import Any

from .config import CHANNELS, LogConfig, get_config, set_config
from .entries import EngineLogEntry, StoreLogEntry, now_iso
from .handlers import create_jsonl_logger

# Channel loggers, built on first write
_loggers: dict[str, logging.Logger] = {}
_init_lock = threading.Lock()


def _channel_logger(channel: str) -> logging.Logger:
    if channel not in _loggers:
        with _init_lock:
            if not _loggers:
                config = get_config()
                for name in CHANNELS:
                    _loggers[name] = create_jsonl_logger(name, config)
    return _loggers[channel]


def reset_loggers() -> None:
    """Close channel files; the next write rebuilds them from the current LogConfig."""
    with _init_lock:
        for channel_logger in _loggers.values():
            for handler in list(channel_logger.handlers):
                channel_logger.removeHandler(handler)
                handler.close()
        _loggers.clear()


class _LazyLogger:
    """Stand-in that resolves its channel logger at call time."""

    def __init__(self, channel: str):
        self._channel = channel

    def log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        _channel_logger(self._channel).log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self.log(logging.ERROR, msg, *args, **kwargs)


engine_logger = _LazyLogger("engine")
store_logger = _LazyLogger("store")


__all__ = [
    # Loggers
    "engine_logger",
    "store_logger",
    "reset_loggers",
    # Log entries
    "EngineLogEntry",
    "StoreLogEntry",
    # Utilities
    "now_iso",
    # Config
    "LogConfig",
    "get_config",
    "set_config",
]
