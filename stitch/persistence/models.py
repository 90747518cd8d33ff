"""
Stitch Persistence Models

Dataclasses for the project entity graph and its document form.
Designed for:
- One self-contained document per project (timer, counters and history inline)
- Lenient parsing of stored documents (missing fields fall back to defaults)
- camelCase document keys, matching the browser app's stored projects

All timestamps are integer epoch milliseconds.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any

# Reserved id of the primary counter of every project
MAIN_COUNTER_ID = "main"

DEFAULT_PROJECT_NAME = "New Project"
DEFAULT_MAIN_COUNTER_NAME = "Row"
DEFAULT_SUB_COUNTER_NAME = "New Counter"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def generate_id(prefix: str, now: int | None = None) -> str:
    """
    Generate a time-derived id such as ``project-1718000000000-3fa2``.

    The random suffix keeps two ids minted in the same millisecond apart.
    """
    stamp = now if now is not None else now_ms()
    return f"{prefix}-{stamp}-{secrets.token_hex(2)}"


def _as_int(value: Any, default: int = 0) -> int:
    """Coerce a stored number to int, falling back to default."""
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_target(value: Any) -> int | None:
    """Stored targets of 0, null or garbage all mean "no target"."""
    target = _as_int(value, 0)
    return target if target >= 1 else None


# ============================================================================
# ENTITIES
# ============================================================================


@dataclass
class Counter:
    """A named tally. Value never drops below zero."""

    id: str
    name: str = DEFAULT_SUB_COUNTER_NAME
    value: int = 0
    target: int | None = None

    @property
    def is_main(self) -> bool:
        return self.id == MAIN_COUNTER_ID

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "value": self.value, "target": self.target}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Counter:
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            value=max(0, _as_int(data.get("value"))),
            target=_as_target(data.get("target")),
        )


@dataclass
class Timer:
    """Accumulated working time for a project.

    ``last_tick`` is only meaningful while the timer is running.
    """

    total_elapsed_ms: int = 0
    is_paused: bool = False
    last_tick: int | None = None

    @property
    def is_running(self) -> bool:
        return not self.is_paused

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalElapsedMs": self.total_elapsed_ms,
            "isPaused": self.is_paused,
            "lastTick": self.last_tick,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Timer:
        data = data or {}
        last_tick = data.get("lastTick")
        return cls(
            total_elapsed_ms=max(0, _as_int(data.get("totalElapsedMs"))),
            is_paused=bool(data.get("isPaused", False)),
            last_tick=_as_int(last_tick) if last_tick is not None else None,
        )


@dataclass(frozen=True)
class HistoryEntry:
    """One increment of one counter, used only for ETA estimation."""

    counter_id: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"counterId": self.counter_id, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(counter_id=str(data["counterId"]), timestamp=_as_int(data.get("timestamp")))


@dataclass
class Project:
    """
    A counting project.

    ``id is None`` means the project is ephemeral (never saved); any other
    value means it is persisted and every committed mutation is written back.
    """

    id: str | None = None
    name: str = DEFAULT_PROJECT_NAME
    last_modified: int = field(default_factory=now_ms)
    notes: str = ""
    pattern_url: str = ""
    timer: Timer = field(default_factory=Timer)
    main_counter: Counter = field(
        default_factory=lambda: Counter(id=MAIN_COUNTER_ID, name=DEFAULT_MAIN_COUNTER_NAME)
    )
    sub_counters: list[Counter] = field(default_factory=list)
    increment_history: list[HistoryEntry] = field(default_factory=list)

    @property
    def is_ephemeral(self) -> bool:
        return self.id is None

    @property
    def counters(self) -> list[Counter]:
        """Main counter first, then sub-counters in display order."""
        return [self.main_counter, *self.sub_counters]

    def to_dict(self) -> dict[str, Any]:
        """Convert to the stored document form."""
        return {
            "id": self.id,
            "name": self.name,
            "lastModified": self.last_modified,
            "notes": self.notes,
            "patternUrl": self.pattern_url,
            "timer": self.timer.to_dict(),
            "mainCounter": self.main_counter.to_dict(),
            "subCounters": [c.to_dict() for c in self.sub_counters],
            "incrementHistory": [h.to_dict() for h in self.increment_history],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Project:
        """Create from a stored document, defaulting anything missing."""
        main_data = dict(data.get("mainCounter") or {})
        main_data["id"] = MAIN_COUNTER_ID
        main_data.setdefault("name", DEFAULT_MAIN_COUNTER_NAME)

        sub_counters: list[Counter] = []
        seen = {MAIN_COUNTER_ID}
        for item in data.get("subCounters") or []:
            if not isinstance(item, dict) or "id" not in item:
                continue
            counter = Counter.from_dict(item)
            # Duplicate ids would make find_counter ambiguous
            if counter.id in seen:
                continue
            seen.add(counter.id)
            sub_counters.append(counter)

        history = [
            HistoryEntry.from_dict(item)
            for item in data.get("incrementHistory") or []
            if isinstance(item, dict) and "counterId" in item
        ]

        return cls(
            id=data.get("id"),
            name=str(data.get("name") or ""),
            last_modified=_as_int(data.get("lastModified"), now_ms()),
            notes=str(data.get("notes") or ""),
            pattern_url=str(data.get("patternUrl") or ""),
            timer=Timer.from_dict(data.get("timer")),
            main_counter=Counter.from_dict(main_data),
            sub_counters=sub_counters,
            increment_history=history,
        )


# ============================================================================
# STRUCTURAL OPERATIONS
# ============================================================================


def create_default_project(now: int | None = None) -> Project:
    """Build a fresh ephemeral project with a zeroed main counter and running timer."""
    stamp = now if now is not None else now_ms()
    return Project(
        id=None,
        name=DEFAULT_PROJECT_NAME,
        last_modified=stamp,
        timer=Timer(total_elapsed_ms=0, is_paused=False, last_tick=stamp),
    )


def find_counter(project: Project, counter_id: str) -> Counter | None:
    """Resolve ``"main"`` to the main counter, anything else by linear lookup."""
    if counter_id == MAIN_COUNTER_ID:
        return project.main_counter
    for counter in project.sub_counters:
        if counter.id == counter_id:
            return counter
    return None
