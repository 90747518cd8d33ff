"""
Stitch - Application Context and Persistence State Machine

Tracks the active project and whether it lives only in memory or in the
store, to ensure proper transitions and prevent invalid operations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto

from stitch.config import Settings
from stitch.persistence.models import Project, create_default_project


class ProjectStatus(Enum):
    """
    Persistence status of the active project.

    State transitions:
    EPHEMERAL -> PERSISTED (first save)
    PERSISTED -> PERSISTED (autosave after a mutation)
    PERSISTED -> DELETED (explicit delete, terminal)

    Nothing returns a persisted project to EPHEMERAL. Starting a new project
    replaces the active slot instead of converting the old one.
    """

    EPHEMERAL = auto()  # In memory only, no store identity
    PERSISTED = auto()  # Has a store identity, mutations autosave
    DELETED = auto()  # Removed from the store


# Valid state transitions
VALID_TRANSITIONS: dict[ProjectStatus, set[ProjectStatus]] = {
    ProjectStatus.EPHEMERAL: {ProjectStatus.PERSISTED},
    ProjectStatus.PERSISTED: {ProjectStatus.PERSISTED, ProjectStatus.DELETED},
    ProjectStatus.DELETED: set(),  # Terminal state
}


def status_for(project: Project) -> ProjectStatus:
    """Status a project has when it is placed in the active slot."""
    return ProjectStatus.EPHEMERAL if project.id is None else ProjectStatus.PERSISTED


@dataclass
class AppContext:
    """
    Everything the engine owns for the lifetime of the application.

    Constructed once at startup, handed to the StateEngine, and discarded at
    shutdown. There is exactly one active project at a time; saved projects
    are a cached copy of the store listing.
    """

    active_project: Project = field(default_factory=create_default_project)
    saved_projects: list[Project] = field(default_factory=list)
    settings: Settings = field(default_factory=Settings)

    status: ProjectStatus = ProjectStatus.EPHEMERAL
    is_dirty: bool = False

    started_at: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)

    def activate(self, project: Project) -> None:
        """Swap the active slot. Status follows the incoming project, dirty is cleared."""
        self.active_project = project
        self.status = status_for(project)
        self.is_dirty = False
        self.last_activity = datetime.now()

    def mark_dirty(self) -> bool:
        """
        Flag unsaved changes on an ephemeral project.

        Returns:
            True only when the flag flipped; repeated marks are coalesced
        """
        if self.is_dirty:
            return False
        self.is_dirty = True
        return True

    def transition_to(self, new_state: ProjectStatus) -> bool:
        """
        Attempt to transition to a new status.

        Returns:
            True if transition was valid and performed, False otherwise
        """
        if new_state in VALID_TRANSITIONS.get(self.status, set()):
            self.status = new_state
            self.last_activity = datetime.now()
            return True
        return False

    def require_transition(self, new_state: ProjectStatus) -> None:
        """
        Transition to a new status, raising if invalid.

        Failure indicates a bug in the engine, not a user error.

        Raises:
            StateTransitionError: If the transition is not valid
        """
        from stitch.exceptions import StateTransitionError

        if not self.transition_to(new_state):
            valid_targets = VALID_TRANSITIONS.get(self.status, set())
            valid_names = ", ".join(s.name for s in valid_targets) or "none"
            raise StateTransitionError(
                f"Invalid status transition: {self.status.name} -> {new_state.name}. "
                f"Valid transitions from {self.status.name}: {valid_names}",
                from_state=self.status.name,
                to_state=new_state.name,
            )

    def get_stats(self) -> dict:
        """Summary for status displays."""
        project = self.active_project
        return {
            "status": self.status.name,
            "project": project.name,
            "project_id": project.id,
            "dirty": self.is_dirty,
            "saved_projects": len(self.saved_projects),
            "counters": len(project.counters),
            "history_entries": len(project.increment_history),
            "duration_seconds": (datetime.now() - self.started_at).total_seconds(),
        }
