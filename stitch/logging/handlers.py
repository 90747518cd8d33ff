"""
Custom Log Handlers for Stitch.

One JSON object per line, in size-rotated files.
"""

import json
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import LogConfig


class JSONLRotatingHandler(RotatingFileHandler):
    """
    Rotating file handler whose lines are JSON objects.

    Messages produced by ``entry.to_json()`` pass through unchanged. Any other
    message is wrapped in a small envelope so every line stays parseable.
    The file is not created until the first record is written.
    """

    def __init__(self, filename: str | Path, max_bytes: int = 5_000_000, backup_count: int = 3):
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(
            str(path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
            delay=True,
        )

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        try:
            data = json.loads(message)
        except ValueError:
            data = None

        if not isinstance(data, dict):
            data = {
                "timestamp": datetime.fromtimestamp(record.created).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": message,
            }
        return json.dumps(data, default=str)


def create_jsonl_logger(channel: str, config: LogConfig) -> logging.Logger:
    """
    Build the non-propagating ``stitch.events.<channel>`` logger.

    Calling it again replaces the previous handler, so a changed LogConfig
    takes effect without duplicate lines.
    """
    logger = logging.getLogger(f"stitch.events.{channel}")
    logger.setLevel(config.level_for(channel))

    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    logger.addHandler(
        JSONLRotatingHandler(
            config.log_path(channel),
            max_bytes=config.max_file_size_bytes,
            backup_count=config.backup_count,
        )
    )
    logger.propagate = False
    return logger
