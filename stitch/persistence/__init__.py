"""
Stitch Persistence Layer

Project entity graph and the SQLite-backed document store that holds
persisted projects.
"""

from stitch.persistence.models import (
    MAIN_COUNTER_ID,
    Counter,
    HistoryEntry,
    Project,
    Timer,
    create_default_project,
    find_counter,
    generate_id,
    now_ms,
)
from stitch.persistence.repository import ProjectRepository

__all__ = [
    # Entities
    "Project",
    "Counter",
    "Timer",
    "HistoryEntry",
    # Structural operations
    "MAIN_COUNTER_ID",
    "create_default_project",
    "find_counter",
    # Helpers
    "generate_id",
    "now_ms",
    # Repository
    "ProjectRepository",
]
