"""
Stitch Engine

Pure timer, history and ETA functions plus the StateEngine that owns the
active project and applies user intents.
"""

from stitch.engine.confirm import ActionKind, Confirmation, ConfirmationGate, PendingAction
from stitch.engine.eta import estimate, format_eta
from stitch.engine.state_engine import (
    EngineSnapshot,
    Notification,
    NotifySink,
    ProjectSummary,
    Severity,
    StateEngine,
)
from stitch.engine.timer import elapsed_at, format_elapsed, resample, tick, toggle_pause

__all__ = [
    # Engine
    "StateEngine",
    "EngineSnapshot",
    "ProjectSummary",
    "Notification",
    "NotifySink",
    "Severity",
    # Confirmation protocol
    "ActionKind",
    "PendingAction",
    "Confirmation",
    "ConfirmationGate",
    # Timer
    "tick",
    "toggle_pause",
    "resample",
    "elapsed_at",
    "format_elapsed",
    # ETA
    "estimate",
    "format_eta",
]
