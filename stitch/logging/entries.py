"""
Log Entry Data Structures for Stitch.

Structured entries for state engine events and project store operations.
"""

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any


@dataclass
class EngineLogEntry:
    """Log entry for a state engine event."""

    timestamp: str  # ISO 8601
    event_type: str  # "activate", "mutate", "save", "delete", "confirm_issue", ...

    # Context
    project_id: str | None = None
    project_name: str = ""
    status: str = ""  # persistence status after the event

    # Event-specific fields
    intent: str = ""  # engine method that produced the event
    counter_id: str | None = None
    action: str | None = None  # pending action kind for confirm_* events
    explicit: bool = False  # save events: user-initiated vs autosave

    # Error info (populated on "error" event)
    error: str | None = None
    error_type: str | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EngineLogEntry":
        """Create from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class StoreLogEntry:
    """Log entry for a single project store operation."""

    timestamp: str  # ISO 8601
    operation: str  # "put", "list_all", "get", "delete"
    project_id: str | None = None

    # Outcome
    success: bool = True
    rows: int = 0
    latency_ms: int = 0

    error: str | None = None
    error_type: str | None = None

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoreLogEntry":
        """Create from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def now_iso() -> str:
    """Get current time as ISO 8601 string."""
    return datetime.now().isoformat()
