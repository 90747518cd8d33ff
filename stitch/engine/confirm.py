"""
Confirmation Protocol

Destructive or discard-risking intents do not mutate anything directly.
They issue a Confirmation naming a PendingAction; the presentation layer
shows it and the engine runs the action only when it is accepted.

At most one confirmation is live. Issuing a new one replaces the old.
"""

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    """Kinds of action that wait on user confirmation."""

    DELETE_PROJECT = "delete_project"
    DELETE_COUNTER = "delete_counter"
    DISCARD_AND_LOAD = "discard_and_load"
    DISCARD_AND_START_NEW = "discard_and_start_new"


@dataclass(frozen=True)
class PendingAction:
    """An action plus the id it applies to (None for DISCARD_AND_START_NEW)."""

    kind: ActionKind
    target_id: str | None = None

    @classmethod
    def delete_project(cls, project_id: str) -> "PendingAction":
        return cls(ActionKind.DELETE_PROJECT, project_id)

    @classmethod
    def delete_counter(cls, counter_id: str) -> "PendingAction":
        return cls(ActionKind.DELETE_COUNTER, counter_id)

    @classmethod
    def discard_and_load(cls, project_id: str) -> "PendingAction":
        return cls(ActionKind.DISCARD_AND_LOAD, project_id)

    @classmethod
    def discard_and_start_new(cls) -> "PendingAction":
        return cls(ActionKind.DISCARD_AND_START_NEW)


@dataclass(frozen=True)
class Confirmation:
    """What the user is asked, and what happens if they accept."""

    title: str
    message: str
    action: PendingAction


class ConfirmationGate:
    """Holds the single live confirmation."""

    def __init__(self) -> None:
        self._pending: Confirmation | None = None

    @property
    def pending(self) -> Confirmation | None:
        return self._pending

    def issue(self, confirmation: Confirmation) -> Confirmation | None:
        """
        Make ``confirmation`` the live one.

        Returns:
            The unconfirmed confirmation it replaced, if any
        """
        replaced = self._pending
        if replaced is not None:
            logger.debug(f"Replacing unconfirmed {replaced.action.kind.value} with {confirmation.action.kind.value}")
        self._pending = confirmation
        return replaced

    def accept(self) -> PendingAction | None:
        """Clear the live confirmation and return its action for the caller to run."""
        confirmation, self._pending = self._pending, None
        return confirmation.action if confirmation else None

    def cancel(self) -> Confirmation | None:
        """Drop the live confirmation. Always safe; nothing is mutated."""
        confirmation, self._pending = self._pending, None
        return confirmation
