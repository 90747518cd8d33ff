"""
Stitch - Exception Hierarchy

All Stitch-specific exceptions inherit from StitchError.
None of these are fatal: the engine catches them at the intent boundary,
reports them as notifications and keeps the active project usable.
"""

from typing import Any


class StitchError(Exception):
    """Base exception for all Stitch-related errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# Input Errors
class ValidationError(StitchError):
    """Raised when user input cannot be applied (empty name, bad target).

    No state is changed when this is raised.
    """

    pass


# Store Errors
class StoreError(StitchError):
    """Raised when the project store cannot complete an operation.

    In-memory state is kept; the next mutation or an explicit save retries.
    """

    def __init__(
        self,
        message: str,
        operation: str = "",
        project_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        merged = {"operation": operation, "project_id": project_id}
        merged.update(details or {})
        super().__init__(message, merged)
        self.operation = operation
        self.project_id = project_id


class NotFoundError(StoreError):
    """Raised when a load or delete references a project id that no longer exists."""

    pass


# Configuration Errors
class ConfigError(StitchError):
    """Raised when settings on disk are invalid."""

    pass


# State Errors
class StateTransitionError(StitchError):
    """Raised when an invalid persistence status transition is attempted.

    Includes the current state and the attempted target state for debugging.
    """

    def __init__(self, message: str, from_state: str, to_state: str):
        super().__init__(message, {"from_state": from_state, "to_state": to_state})
        self.from_state = from_state
        self.to_state = to_state
