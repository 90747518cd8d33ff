"""
State Engine

Owns the active project and turns user intents into mutations.

Responsibilities:
- Apply every mutation atomically and stamp lastModified
- Dirty tracking for ephemeral projects, silent autosave for persisted ones
- Explicit save, load, delete and start-new with resume flag bookkeeping
- Gate destructive intents behind the confirmation protocol
- Publish a read-only snapshot after every intent

Everything runs on the caller's thread. Store writes are full-document
replacements keyed by project id, so a later write simply supersedes an
earlier one; a failed write is reported and retried by the next mutation.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from stitch.config import ResumeFlags, ResumeFlagsStore, Settings
from stitch.engine import history as ledger
from stitch.engine.confirm import ActionKind, Confirmation, ConfirmationGate, PendingAction
from stitch.engine.eta import estimate
from stitch.engine.timer import elapsed_at, format_elapsed, resample, tick, toggle_pause
from stitch.exceptions import NotFoundError, StitchError, StoreError, ValidationError
from stitch.logging import EngineLogEntry, engine_logger, now_iso
from stitch.persistence.models import (
    DEFAULT_SUB_COUNTER_NAME,
    MAIN_COUNTER_ID,
    Counter,
    Project,
    create_default_project,
    find_counter,
    generate_id,
    now_ms,
)
from stitch.persistence.repository import ProjectRepository
from stitch.state import AppContext, ProjectStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Suggested target offset when the user starts setting a target
TARGET_SUGGESTION_STEP = 10


class Severity(str, Enum):
    """How a notification should be presented."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A transient user-visible message."""

    message: str
    severity: Severity


NotifySink = Callable[[str, Severity], None]


@dataclass(frozen=True)
class ProjectSummary:
    """One row of the saved project list."""

    id: str
    name: str
    main_counter_name: str
    main_counter_value: int
    last_modified: int

    @classmethod
    def from_project(cls, project: Project) -> ProjectSummary:
        return cls(
            id=project.id or "",
            name=project.name,
            main_counter_name=project.main_counter.name,
            main_counter_value=project.main_counter.value,
            last_modified=project.last_modified,
        )


@dataclass(frozen=True)
class EngineSnapshot:
    """Read-only view of engine state for presentation."""

    project: Project
    status: ProjectStatus
    is_dirty: bool
    elapsed: str
    etas: dict[str, str]
    saved_projects: tuple[ProjectSummary, ...]
    pending_confirmation: Confirmation | None
    last_notification: Notification | None
    show_timer: bool

    @property
    def is_ephemeral(self) -> bool:
        return self.status == ProjectStatus.EPHEMERAL


def _log_notification(message: str, severity: Severity) -> None:
    """Default sink when no presentation layer is attached."""
    level = logging.ERROR if severity == Severity.ERROR else logging.INFO
    logger.log(level, f"[notify:{severity.value}] {message}")


class StateEngine:
    """
    Single owner of the active project.

    Usage:
        with StateEngine(ProjectRepository(db_path), notify=print_toast) as engine:
            engine.load_initial_project()
            engine.increment_counter("main")
            engine.save_active_project(explicit=True)
    """

    def __init__(
        self,
        store: ProjectRepository,
        context: AppContext | None = None,
        notify: NotifySink | None = None,
        resume: ResumeFlagsStore | None = None,
        settings: Settings | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initialize the engine.

        Args:
            store: Project store (put / list_all / get / delete)
            context: Application context to own; a fresh one is built if omitted
            notify: Sink for transient user-visible messages
            resume: Where resume flags are written on every activation
            settings: User preferences (ignored if ``context`` is given)
            clock: Wall-clock source in epoch ms
        """
        self._store = store
        self._clock = clock
        self._ctx = context or AppContext(
            active_project=create_default_project(clock()),
            settings=settings or Settings(),
        )
        self._notify_sink: NotifySink = notify or _log_notification
        self._resume = resume
        self._gate = ConfirmationGate()
        self._subscribers: list[Callable[[EngineSnapshot], None]] = []
        self._last_notification: Notification | None = None

    def __enter__(self) -> StateEngine:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Release the store. The engine must not be used afterwards."""
        self._gate.cancel()
        self._subscribers.clear()
        close = getattr(self._store, "close", None)
        if close is not None:
            close()

    # =========================================================================
    # PRESENTATION BOUNDARY
    # =========================================================================

    @property
    def context(self) -> AppContext:
        return self._ctx

    @property
    def active_project(self) -> Project:
        return self._ctx.active_project

    @property
    def is_dirty(self) -> bool:
        return self._ctx.is_dirty

    @property
    def pending_confirmation(self) -> Confirmation | None:
        return self._gate.pending

    def subscribe(self, callback: Callable[[EngineSnapshot], None]) -> Callable[[], None]:
        """
        Receive a snapshot after every intent.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def snapshot(self) -> EngineSnapshot:
        """Build a deep-copied view of the current state."""
        ctx = self._ctx
        project = ctx.active_project
        now = self._clock()

        etas: dict[str, str] = {}
        if ctx.settings.show_timer:
            for counter in project.counters:
                eta = estimate(counter, project, now)
                if eta is not None:
                    etas[counter.id] = eta

        return EngineSnapshot(
            project=copy.deepcopy(project),
            status=ctx.status,
            is_dirty=ctx.is_dirty,
            elapsed=format_elapsed(elapsed_at(project.timer, now)),
            etas=etas,
            saved_projects=tuple(ProjectSummary.from_project(p) for p in ctx.saved_projects),
            pending_confirmation=self._gate.pending,
            last_notification=self._last_notification,
            show_timer=ctx.settings.show_timer,
        )

    def _emit(self) -> None:
        if not self._subscribers:
            return
        snap = self.snapshot()
        for callback in list(self._subscribers):
            callback(snap)

    def _notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        self._last_notification = Notification(message, severity)
        self._notify_sink(message, severity)

    def _log_event(self, event_type: str, intent: str = "", **fields: Any) -> None:
        project = self._ctx.active_project
        entry = EngineLogEntry(
            timestamp=now_iso(),
            event_type=event_type,
            project_id=fields.pop("project_id", project.id),
            project_name=project.name,
            status=self._ctx.status.name,
            intent=intent,
            **fields,
        )
        if event_type == "error":
            engine_logger.error(entry.to_json())
        else:
            engine_logger.info(entry.to_json())

    def _report(self, intent: str, message: str, error: StitchError) -> None:
        """Log a recoverable failure and surface it as an error notification."""
        logger.warning(f"{intent} failed: {error}")
        self._log_event("error", intent, error=str(error), error_type=type(error).__name__)
        self._notify(message, Severity.ERROR)

    # =========================================================================
    # MUTATION CORE
    # =========================================================================

    def apply_mutation(self, fn: Callable[[Project], T], intent: str = "mutate") -> T:
        """
        Run ``fn`` against the active project, then apply the dirty/autosave policy.

        ``fn`` must validate before it changes anything: if it raises, the
        project is left untouched and nothing is stamped or saved.

        Ephemeral projects are marked dirty (idempotent). Persisted projects
        are saved silently; a failed autosave is reported but the in-memory
        change stays.

        Returns:
            Whatever ``fn`` returns
        """
        project = self._ctx.active_project
        result = fn(project)
        project.last_modified = self._clock()

        if project.is_ephemeral:
            self._ctx.mark_dirty()
        else:
            self._autosave(intent)

        self._log_event("mutate", intent)
        self._emit()
        return result

    def _autosave(self, intent: str) -> None:
        try:
            self._save(explicit=False)
        except ValidationError as e:
            self._report(f"{intent}/autosave", e.message, e)

    def _require_counter(self, counter_id: str) -> Counter:
        counter = find_counter(self._ctx.active_project, counter_id)
        if counter is None:
            raise ValidationError(f"Unknown counter: {counter_id}", {"counter_id": counter_id})
        return counter

    # =========================================================================
    # COUNTER INTENTS
    # =========================================================================

    def increment_counter(self, counter_id: str) -> int:
        """Add one and record the increment for ETA. Returns the new value."""
        counter = self._require_counter(counter_id)

        def mutate(project: Project) -> int:
            counter.value += 1
            ledger.record_increment(project.increment_history, counter_id, self._clock())
            return counter.value

        return self.apply_mutation(mutate, "increment_counter")

    def decrement_counter(self, counter_id: str) -> int:
        """
        Subtract one unless already zero.

        The counter's most recent increment is dropped from the history, as
        an approximate undo for ETA purposes. Returns the new value.
        """
        counter = self._require_counter(counter_id)

        def mutate(project: Project) -> int:
            if counter.value > 0:
                counter.value -= 1
                ledger.remove_latest(project.increment_history, counter_id)
            return counter.value

        return self.apply_mutation(mutate, "decrement_counter")

    def reset_counter(self, counter_id: str) -> None:
        """Zero the counter and forget all of its history."""
        counter = self._require_counter(counter_id)

        def mutate(project: Project) -> None:
            counter.value = 0
            ledger.purge(project.increment_history, counter_id)

        self.apply_mutation(mutate, "reset_counter")

    def add_sub_counter(self, name: str = DEFAULT_SUB_COUNTER_NAME) -> Counter:
        """Append a new zeroed sub-counter and return it."""

        def mutate(project: Project) -> Counter:
            existing = {c.id for c in project.counters}
            counter_id = generate_id("counter", self._clock())
            while counter_id in existing:
                counter_id = generate_id("counter", self._clock())
            counter = Counter(id=counter_id, name=name)
            project.sub_counters.append(counter)
            return counter

        return self.apply_mutation(mutate, "add_sub_counter")

    def delete_sub_counter(self, counter_id: str) -> None:
        """Remove a sub-counter and purge its history. The main counter cannot be deleted."""
        if counter_id == MAIN_COUNTER_ID:
            raise ValidationError("The main counter cannot be deleted.", {"counter_id": counter_id})
        self._require_counter(counter_id)

        def mutate(project: Project) -> None:
            project.sub_counters = [c for c in project.sub_counters if c.id != counter_id]
            ledger.purge(project.increment_history, counter_id)

        self.apply_mutation(mutate, "delete_sub_counter")

    def rename_counter(self, counter_id: str, name: str) -> None:
        counter = self._require_counter(counter_id)

        def mutate(project: Project) -> None:
            counter.name = name

        self.apply_mutation(mutate, "rename_counter")

    def set_target(self, counter_id: str, target: int | None) -> None:
        """
        Set or clear a counter's target.

        ``None`` or ``0`` clears it.

        Raises:
            ValidationError: If target is negative or not an integer
        """
        counter = self._require_counter(counter_id)
        if target is not None:
            if isinstance(target, bool) or not isinstance(target, int) or target < 0:
                raise ValidationError(
                    "Please enter a valid positive number for the target.",
                    {"counter_id": counter_id, "target": target},
                )
        new_target = target or None

        def mutate(project: Project) -> None:
            counter.target = new_target

        self.apply_mutation(mutate, "set_target")

    def suggested_target(self, counter_id: str) -> int:
        """Default value offered when a target is about to be set."""
        return self._require_counter(counter_id).value + TARGET_SUGGESTION_STEP

    def toggle_target(self, counter_id: str) -> int | None:
        """
        Clear an existing target, or return a suggestion for setting one.

        Returns:
            None if a target was cleared, otherwise the suggested target (nothing mutated)
        """
        counter = self._require_counter(counter_id)
        if counter.target is not None:
            self.set_target(counter_id, None)
            return None
        return self.suggested_target(counter_id)

    # =========================================================================
    # PROJECT INTENTS
    # =========================================================================

    def update_project(
        self,
        name: str | None = None,
        notes: str | None = None,
        pattern_url: str | None = None,
    ) -> None:
        """Change free-text project properties. Omitted properties are left alone."""
        if name is None and notes is None and pattern_url is None:
            return

        def mutate(project: Project) -> None:
            if name is not None:
                project.name = name
            if notes is not None:
                project.notes = notes
            if pattern_url is not None:
                project.pattern_url = pattern_url

        self.apply_mutation(mutate, "update_project")

    def toggle_timer_pause(self) -> bool:
        """Pause or resume the project timer. Returns the new paused state."""
        return self.apply_mutation(
            lambda project: toggle_pause(project.timer, self._clock()),
            "toggle_timer_pause",
        )

    def tick(self, now: int | None = None) -> int:
        """
        Accrue timer time for the active project.

        Driven by an external scheduler. Not a mutation: no dirty marking,
        no autosave and no lastModified stamp.

        Returns:
            Milliseconds accrued
        """
        return tick(self._ctx.active_project.timer, self._clock() if now is None else now)

    # =========================================================================
    # ACTIVATION
    # =========================================================================

    def set_active_project(self, project: Project) -> None:
        """
        Make ``project`` the active one.

        Clears the dirty flag, drops any pending confirmation, resamples a
        running timer so the swap itself accrues nothing, and records the
        resume flags for the next startup.
        """
        resample(project.timer, self._clock())
        self._gate.cancel()
        self._ctx.activate(project)
        self._write_resume_flags()
        self._log_event("activate", "set_active_project")
        self._emit()

    def _write_resume_flags(self) -> None:
        if self._resume is None:
            return
        project = self._ctx.active_project
        flags = ResumeFlags(
            last_project_id=project.id,
            last_project_unsaved=project.id is None,
        )
        try:
            self._resume.write(flags)
        except OSError as e:
            logger.warning(f"Could not write resume flags: {e}")

    def start_new_project(self) -> None:
        """Abandon the active project for a fresh ephemeral one."""
        self.set_active_project(create_default_project(self._clock()))

    def load_project(self, project_id: str) -> bool:
        """
        Activate a saved project.

        Looks in the cached list first, then asks the store. A vanished id
        leaves the active project unchanged and is reported.

        Returns:
            True if the project was activated
        """
        project = next((p for p in self._ctx.saved_projects if p.id == project_id), None)
        try:
            if project is None:
                project = self._store.get(project_id)
            if project is None:
                raise NotFoundError(f"Project {project_id} not found", "load", project_id)
        except NotFoundError as e:
            self._report("load_project", "Project not found.", e)
            self._emit()
            return False
        except StoreError as e:
            self._report("load_project", "Error loading project.", e)
            self._emit()
            return False

        self.set_active_project(copy.deepcopy(project))
        return True

    def load_initial_project(self) -> Project:
        """
        Restore the project that was active when the app last ran.

        Last project unsaved -> fresh default. Last project id still in the
        store -> that project. Anything else -> fresh default.
        """
        self.refresh_saved_projects(emit=False)
        flags = self._resume.read() if self._resume else ResumeFlags()

        project: Project | None = None
        if not flags.last_project_unsaved and flags.last_project_id:
            project = next(
                (p for p in self._ctx.saved_projects if p.id == flags.last_project_id),
                None,
            )
            if project is None:
                logger.info(f"Last project {flags.last_project_id} no longer exists, starting fresh")

        self.set_active_project(
            copy.deepcopy(project) if project else create_default_project(self._clock())
        )
        return self._ctx.active_project

    # =========================================================================
    # STORE INTENTS
    # =========================================================================

    def refresh_saved_projects(self, emit: bool = True) -> list[Project]:
        """Re-read the saved project list. On failure the previous cache is kept."""
        try:
            self._ctx.saved_projects = self._store.list_all()
        except StoreError as e:
            self._report("refresh_saved_projects", "Error loading saved projects.", e)
        if emit:
            self._emit()
        return self._ctx.saved_projects

    def save_active_project(self, explicit: bool = True) -> bool:
        """
        Write the active project to the store.

        Assigns an id on first save. On success the dirty flag is cleared and,
        for explicit saves only, a success notification is shown. A store
        failure is reported and leaves the dirty flag as it was.

        Returns:
            True if the write succeeded

        Raises:
            ValidationError: If the project name is empty; nothing is written
        """
        try:
            return self._save(explicit)
        finally:
            self._emit()

    def _save(self, explicit: bool) -> bool:
        ctx = self._ctx
        project = ctx.active_project
        if not project.name.strip():
            raise ValidationError("Project name cannot be empty.", {"project_id": project.id})

        was_ephemeral = project.id is None
        now = self._clock()
        if was_ephemeral:
            project.id = generate_id("project", now)
        project.last_modified = now

        try:
            self._store.put(project)
        except StoreError as e:
            if was_ephemeral:
                # Still only in memory; the next explicit save mints a new id
                project.id = None
            self._report("save_active_project", "Error saving project.", e)
            return False

        ctx.require_transition(ProjectStatus.PERSISTED)
        ctx.is_dirty = False
        if was_ephemeral:
            self._write_resume_flags()

        self._log_event("save", "save_active_project", explicit=explicit)
        if explicit:
            self._notify("Project saved!", Severity.SUCCESS)
        self.refresh_saved_projects(emit=False)
        return True

    def delete_project(self, project_id: str) -> bool:
        """
        Delete a saved project.

        If it was the active project, the most recently modified remaining
        project becomes active, or a fresh default when none remain.

        Returns:
            True if the project is gone from the store
        """
        try:
            self._store.delete(project_id)
        except NotFoundError:
            logger.warning(f"Project {project_id} was already gone from the store")
        except StoreError as e:
            self._report("delete_project", "Error deleting project.", e)
            self._emit()
            return False

        self.refresh_saved_projects(emit=False)
        # A failed refresh keeps the old cache, which may still list the deleted project
        self._ctx.saved_projects = [p for p in self._ctx.saved_projects if p.id != project_id]
        self._log_event("delete", "delete_project", project_id=project_id)

        if self._ctx.active_project.id == project_id:
            self._ctx.require_transition(ProjectStatus.DELETED)
            remaining = self._ctx.saved_projects
            replacement = copy.deepcopy(remaining[0]) if remaining else create_default_project(self._clock())
            self.set_active_project(replacement)

        self._notify("Project deleted.", Severity.SUCCESS)
        self._emit()
        return True

    # =========================================================================
    # CONFIRMATION-GATED INTENTS
    # =========================================================================

    def _issue(self, confirmation: Confirmation, intent: str) -> Confirmation:
        self._gate.issue(confirmation)
        self._log_event(
            "confirm_issue",
            intent,
            action=confirmation.action.kind.value,
            counter_id=confirmation.action.target_id
            if confirmation.action.kind == ActionKind.DELETE_COUNTER
            else None,
        )
        self._emit()
        return confirmation

    def request_delete_project(self, project_id: str) -> Confirmation:
        """Ask before permanently deleting a saved project."""
        known = [self._ctx.active_project, *self._ctx.saved_projects]
        name = next((p.name for p in known if p.id == project_id), project_id)
        return self._issue(
            Confirmation(
                title=f'Delete "{name}"?',
                message="This project will be permanently removed from your device.",
                action=PendingAction.delete_project(project_id),
            ),
            "request_delete_project",
        )

    def request_delete_active_project(self) -> Confirmation | None:
        """
        Delete the active project.

        An ephemeral project has nothing stored, so it is simply replaced by
        a fresh default without asking. Returns the issued confirmation, if any.
        """
        project = self._ctx.active_project
        if project.id is None:
            self.start_new_project()
            self._notify("Project reset to default state.", Severity.INFO)
            self._emit()
            return None
        return self.request_delete_project(project.id)

    def request_delete_counter(self, counter_id: str) -> Confirmation:
        """Ask before deleting a sub-counter."""
        if counter_id == MAIN_COUNTER_ID:
            raise ValidationError("The main counter cannot be deleted.", {"counter_id": counter_id})
        self._require_counter(counter_id)
        return self._issue(
            Confirmation(
                title="Delete Counter?",
                message="Are you sure you want to delete this sub-counter? This cannot be undone.",
                action=PendingAction.delete_counter(counter_id),
            ),
            "request_delete_counter",
        )

    def request_load_project(self, project_id: str) -> Confirmation | None:
        """Load a saved project, asking first only if unsaved changes would be lost."""
        if self._ctx.is_dirty:
            return self._issue(
                Confirmation(
                    title="Unsaved Changes",
                    message=(
                        "You have unsaved changes. Are you sure you want to load "
                        "another project and discard them?"
                    ),
                    action=PendingAction.discard_and_load(project_id),
                ),
                "request_load_project",
            )
        self.load_project(project_id)
        return None

    def request_start_new_project(self) -> Confirmation | None:
        """Start a new project, asking first only if unsaved changes would be lost."""
        if self._ctx.is_dirty:
            return self._issue(
                Confirmation(
                    title="Unsaved Changes",
                    message=(
                        "You have unsaved changes. Are you sure you want to start "
                        "a new project and discard them?"
                    ),
                    action=PendingAction.discard_and_start_new(),
                ),
                "request_start_new_project",
            )
        self.start_new_project()
        return None

    def confirm(self) -> bool:
        """
        Accept the pending confirmation and run its action.

        Returns:
            False if nothing was pending
        """
        action = self._gate.accept()
        if action is None:
            return False
        self._log_event("confirm_accept", "confirm", action=action.kind.value)
        self._resolve(action)
        return True

    def cancel(self) -> bool:
        """
        Drop the pending confirmation without mutating anything.

        Returns:
            False if nothing was pending
        """
        dropped = self._gate.cancel()
        if dropped is None:
            return False
        self._log_event("confirm_cancel", "cancel", action=dropped.action.kind.value)
        self._emit()
        return True

    def _resolve(self, action: PendingAction) -> None:
        handlers: dict[ActionKind, Callable[[PendingAction], None]] = {
            ActionKind.DELETE_PROJECT: lambda a: self.delete_project(a.target_id or ""),
            ActionKind.DELETE_COUNTER: self._resolve_delete_counter,
            ActionKind.DISCARD_AND_LOAD: lambda a: self.load_project(a.target_id or ""),
            ActionKind.DISCARD_AND_START_NEW: lambda a: self.start_new_project(),
        }
        handlers[action.kind](action)

    def _resolve_delete_counter(self, action: PendingAction) -> None:
        try:
            self.delete_sub_counter(action.target_id or "")
        except ValidationError as e:
            self._report("delete_sub_counter", e.message, e)
            self._emit()
            return
        self._notify("Sub-counter deleted.", Severity.SUCCESS)
        self._emit()
