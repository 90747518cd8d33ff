"""Tests for the StateEngine - intents, dirty/autosave policy, persistence and confirmations."""

import json
from unittest.mock import MagicMock

import pytest

from stitch.config import ResumeFlags, Settings
from stitch.engine import ActionKind, Severity, StateEngine
from stitch.exceptions import StoreError, ValidationError
from stitch.logging import get_config, reset_loggers
from stitch.persistence.models import MAIN_COUNTER_ID, HistoryEntry, create_default_project
from stitch.state import AppContext, ProjectStatus

from conftest import START_MS, InMemoryStore


def persist(engine, name="Project"):
    """Name and save the active project, returning its id."""
    engine.update_project(name=name)
    assert engine.save_active_project(explicit=True)
    return engine.active_project.id


def messages(notifications):
    return [message for message, _ in notifications]


class TestCounterIntents:
    """Tests for increment, decrement, reset and sub-counters."""

    def test_increment_records_history(self, engine, clock):
        """Increment bumps the value and appends a timestamped entry."""
        clock.advance(500)
        assert engine.increment_counter(MAIN_COUNTER_ID) == 1
        project = engine.active_project
        assert project.main_counter.value == 1
        assert project.increment_history == [HistoryEntry(MAIN_COUNTER_ID, START_MS + 500)]
        assert project.last_modified == START_MS + 500

    def test_decrement_at_zero_stays_zero(self, engine):
        """Value never goes negative and no history is touched."""
        engine.increment_counter(MAIN_COUNTER_ID)
        engine.decrement_counter(MAIN_COUNTER_ID)
        assert engine.decrement_counter(MAIN_COUNTER_ID) == 0
        assert engine.active_project.main_counter.value == 0
        assert engine.active_project.increment_history == []

    def test_value_never_negative(self, engine):
        """Any sequence of increments and decrements keeps the value >= 0."""
        for step in "+--+---++-----":
            if step == "+":
                engine.increment_counter(MAIN_COUNTER_ID)
            else:
                engine.decrement_counter(MAIN_COUNTER_ID)
            assert engine.active_project.main_counter.value >= 0

    def test_decrement_removes_only_latest_own_entry(self, engine, clock):
        """Decrement removes at most one entry, never another counter's."""
        sub = engine.add_sub_counter("Repeat")
        engine.increment_counter(MAIN_COUNTER_ID)
        clock.advance(10)
        engine.increment_counter(sub.id)
        clock.advance(10)
        engine.increment_counter(MAIN_COUNTER_ID)
        clock.advance(10)
        engine.increment_counter(sub.id)

        engine.decrement_counter(MAIN_COUNTER_ID)

        history = engine.active_project.increment_history
        assert [(e.counter_id, e.timestamp) for e in history] == [
            (MAIN_COUNTER_ID, START_MS),
            (sub.id, START_MS + 10),
            (sub.id, START_MS + 30),
        ]

    def test_reset_purges_history(self, engine):
        """After reset no entries remain for that counter."""
        sub = engine.add_sub_counter()
        for _ in range(3):
            engine.increment_counter(MAIN_COUNTER_ID)
        engine.increment_counter(sub.id)

        engine.reset_counter(MAIN_COUNTER_ID)

        project = engine.active_project
        assert project.main_counter.value == 0
        assert [e.counter_id for e in project.increment_history] == [sub.id]

    def test_add_sub_counter_defaults(self, engine):
        counter = engine.add_sub_counter()
        assert counter.name == "New Counter"
        assert counter.value == 0
        assert counter.target is None
        assert counter.id.startswith("counter-")
        assert engine.active_project.sub_counters == [counter]

    def test_add_sub_counter_ids_unique(self, engine):
        """Counters added in the same millisecond still get distinct ids."""
        ids = {engine.add_sub_counter().id for _ in range(5)}
        assert len(ids) == 5

    def test_delete_sub_counter_purges_history(self, engine):
        sub = engine.add_sub_counter()
        engine.increment_counter(sub.id)
        engine.increment_counter(MAIN_COUNTER_ID)
        engine.delete_sub_counter(sub.id)
        project = engine.active_project
        assert project.sub_counters == []
        assert all(e.counter_id != sub.id for e in project.increment_history)

    def test_main_counter_cannot_be_deleted(self, engine):
        with pytest.raises(ValidationError):
            engine.delete_sub_counter(MAIN_COUNTER_ID)
        with pytest.raises(ValidationError):
            engine.request_delete_counter(MAIN_COUNTER_ID)

    def test_unknown_counter_changes_nothing(self, engine, clock):
        """An unknown id raises before anything is stamped or marked."""
        clock.advance(1000)
        with pytest.raises(ValidationError):
            engine.increment_counter("counter-missing")
        assert engine.active_project.last_modified == START_MS
        assert engine.is_dirty is False

    def test_rename_counter(self, engine):
        engine.rename_counter(MAIN_COUNTER_ID, "Round")
        assert engine.active_project.main_counter.name == "Round"
        assert engine.is_dirty


class TestTargets:
    """Tests for set_target, suggested_target and toggle_target."""

    def test_set_and_clear(self, engine):
        engine.set_target(MAIN_COUNTER_ID, 40)
        assert engine.active_project.main_counter.target == 40
        engine.set_target(MAIN_COUNTER_ID, None)
        assert engine.active_project.main_counter.target is None

    def test_zero_clears(self, engine):
        engine.set_target(MAIN_COUNTER_ID, 12)
        engine.set_target(MAIN_COUNTER_ID, 0)
        assert engine.active_project.main_counter.target is None

    def test_negative_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.set_target(MAIN_COUNTER_ID, -3)
        assert engine.active_project.main_counter.target is None
        assert engine.is_dirty is False

    def test_suggested_target(self, engine):
        for _ in range(4):
            engine.increment_counter(MAIN_COUNTER_ID)
        assert engine.suggested_target(MAIN_COUNTER_ID) == 14

    def test_toggle_target(self, engine):
        """Toggling offers a suggestion when unset and clears when set."""
        assert engine.toggle_target(MAIN_COUNTER_ID) == 10
        assert engine.active_project.main_counter.target is None
        engine.set_target(MAIN_COUNTER_ID, 10)
        assert engine.toggle_target(MAIN_COUNTER_ID) is None
        assert engine.active_project.main_counter.target is None


class TestProjectIntents:
    """Tests for update_project, timer pause and tick."""

    def test_update_project_fields(self, engine):
        engine.update_project(name="Cardigan", notes="Use 4mm", pattern_url="https://example.com/p")
        project = engine.active_project
        assert (project.name, project.notes, project.pattern_url) == (
            "Cardigan",
            "Use 4mm",
            "https://example.com/p",
        )

    def test_update_project_nothing_given(self, engine, clock):
        """No fields means no mutation."""
        clock.advance(5)
        engine.update_project()
        assert engine.is_dirty is False
        assert engine.active_project.last_modified == START_MS

    def test_toggle_pause_accrues_then_stops(self, engine, clock):
        clock.advance(3000)
        assert engine.toggle_timer_pause() is True
        timer = engine.active_project.timer
        assert timer.total_elapsed_ms == 3000
        clock.advance(60_000)
        engine.tick()
        assert timer.total_elapsed_ms == 3000
        assert engine.toggle_timer_pause() is False
        clock.advance(1000)
        engine.tick()
        assert timer.total_elapsed_ms == 4000

    def test_tick_is_not_a_mutation(self, engine, clock, store):
        """Ticks accrue time without dirtying, stamping or saving."""
        persist(engine)
        puts = store.put_calls
        stamped = engine.active_project.last_modified
        clock.advance(2500)
        assert engine.tick() == 2500
        assert engine.active_project.timer.total_elapsed_ms == 2500
        assert engine.active_project.last_modified == stamped
        assert store.put_calls == puts
        assert engine.is_dirty is False


class TestDirtyAndAutosave:
    """Tests for the dirty flag and silent autosave."""

    def test_ephemeral_mutations_mark_dirty_once(self, engine):
        """Repeated mutations coalesce into a single dirty mark."""
        assert engine.is_dirty is False
        engine.increment_counter(MAIN_COUNTER_ID)
        assert engine.is_dirty is True
        assert engine.context.mark_dirty() is False

    def test_ephemeral_mutations_never_write(self, engine, store):
        engine.increment_counter(MAIN_COUNTER_ID)
        engine.add_sub_counter()
        assert store.put_calls == 0

    def test_persisted_mutation_autosaves(self, engine, store, notifications):
        """Persisted projects are written after every mutation, silently."""
        project_id = persist(engine)
        notifications.clear()
        puts = store.put_calls

        engine.increment_counter(MAIN_COUNTER_ID)

        assert store.put_calls == puts + 1
        assert store.documents[project_id].main_counter.value == 1
        assert engine.is_dirty is False
        assert notifications == []

    def test_autosave_never_marks_dirty(self, engine):
        persist(engine)
        for _ in range(3):
            engine.increment_counter(MAIN_COUNTER_ID)
            assert engine.is_dirty is False
        assert engine.context.status == ProjectStatus.PERSISTED

    def test_autosave_failure_keeps_memory_and_retries(self, engine, store, notifications):
        """A failed write is reported; the next mutation writes current state."""
        project_id = persist(engine)
        real_put = store.put
        store.put = MagicMock(side_effect=StoreError("disk full", "put", project_id))

        engine.increment_counter(MAIN_COUNTER_ID)

        assert engine.active_project.main_counter.value == 1
        assert store.documents[project_id].main_counter.value == 0
        assert notifications[-1] == ("Error saving project.", Severity.ERROR)

        store.put = real_put
        engine.increment_counter(MAIN_COUNTER_ID)
        assert store.documents[project_id].main_counter.value == 2

    def test_autosave_with_empty_name_reports(self, engine, store, notifications):
        """Blanking a persisted project's name keeps the change in memory but is not written."""
        project_id = persist(engine, "Shawl")
        engine.update_project(name="   ")
        assert engine.active_project.name == "   "
        assert store.documents[project_id].name == "Shawl"
        assert notifications[-1] == ("Project name cannot be empty.", Severity.ERROR)


class TestSave:
    """Tests for explicit saves."""

    def test_first_save_assigns_id(self, engine, store, notifications, resume):
        engine.increment_counter(MAIN_COUNTER_ID)
        assert engine.save_active_project() is True

        project = engine.active_project
        assert project.id is not None and project.id.startswith("project-")
        assert project.id in store.documents
        assert engine.is_dirty is False
        assert engine.context.status == ProjectStatus.PERSISTED
        assert notifications[-1] == ("Project saved!", Severity.SUCCESS)
        assert [p.id for p in engine.context.saved_projects] == [project.id]
        assert resume.read() == ResumeFlags(last_project_id=project.id, last_project_unsaved=False)

    def test_whitespace_name_rejected(self, engine, store):
        """A whitespace-only name raises with no id assigned and no store call."""
        engine.update_project(name="   \t ")
        store.put = MagicMock()
        with pytest.raises(ValidationError):
            engine.save_active_project()
        assert engine.active_project.id is None
        store.put.assert_not_called()
        assert engine.is_dirty is True

    def test_store_failure_on_first_save(self, engine, store, notifications):
        """A failed first save leaves the project ephemeral and dirty."""
        engine.increment_counter(MAIN_COUNTER_ID)
        store.put = MagicMock(side_effect=StoreError("locked", "put"))

        assert engine.save_active_project() is False

        assert engine.active_project.id is None
        assert engine.is_dirty is True
        assert engine.context.status == ProjectStatus.EPHEMERAL
        assert notifications[-1] == ("Error saving project.", Severity.ERROR)

    def test_resave_keeps_id(self, engine, store):
        project_id = persist(engine)
        engine.save_active_project()
        assert engine.active_project.id == project_id
        assert list(store.documents) == [project_id]


class TestDelete:
    """Tests for deleting projects."""

    def _three_projects(self, engine, clock):
        ids = []
        for name in ("Oldest", "Middle", "Newest"):
            ids.append(persist(engine, name))
            clock.advance(1000)
            engine.start_new_project()
        engine.load_project(ids[2])
        return ids

    def test_delete_active_picks_most_recent(self, engine, clock, notifications):
        """Deleting the active project activates the most recently modified remaining one."""
        oldest, middle, newest = self._three_projects(engine, clock)
        # Touch the oldest so it becomes the most recent of the remaining two
        engine.load_project(oldest)
        clock.advance(1000)
        engine.increment_counter(MAIN_COUNTER_ID)
        engine.load_project(newest)

        engine.request_delete_project(newest)
        assert engine.confirm() is True

        assert engine.active_project.id == oldest
        assert [p.id for p in engine.context.saved_projects] == [oldest, middle]
        assert "Project deleted." in messages(notifications)

    def test_delete_active_default_order(self, engine, clock):
        oldest, middle, newest = self._three_projects(engine, clock)
        engine.delete_project(newest)
        assert engine.active_project.id == middle
        assert engine.context.status == ProjectStatus.PERSISTED

    def test_delete_last_project_starts_fresh(self, engine):
        persist(engine)
        engine.delete_project(engine.active_project.id)
        assert engine.active_project.is_ephemeral
        assert engine.context.status == ProjectStatus.EPHEMERAL
        assert engine.context.saved_projects == []

    def test_delete_other_project_keeps_active(self, engine, clock):
        oldest, middle, newest = self._three_projects(engine, clock)
        engine.delete_project(oldest)
        assert engine.active_project.id == newest
        assert oldest not in [p.id for p in engine.context.saved_projects]

    def test_delete_store_failure(self, engine, store, notifications):
        project_id = persist(engine)
        store.delete = MagicMock(side_effect=StoreError("locked", "delete", project_id))
        assert engine.delete_project(project_id) is False
        assert engine.active_project.id == project_id
        assert notifications[-1] == ("Error deleting project.", Severity.ERROR)

    def test_delete_vanished_project(self, engine, store):
        """A project already gone from the store is treated as deleted."""
        project_id = persist(engine)
        del store.documents[project_id]
        assert engine.delete_project(project_id) is True
        assert engine.active_project.is_ephemeral

    def test_delete_active_ephemeral_resets(self, engine, notifications):
        """An unsaved project is reset without a confirmation."""
        engine.increment_counter(MAIN_COUNTER_ID)
        assert engine.request_delete_active_project() is None
        assert engine.pending_confirmation is None
        assert engine.active_project.main_counter.value == 0
        assert engine.is_dirty is False
        assert notifications[-1] == ("Project reset to default state.", Severity.INFO)

    def test_delete_active_persisted_asks(self, engine):
        project_id = persist(engine, "Scarf")
        confirmation = engine.request_delete_active_project()
        assert confirmation.action.kind == ActionKind.DELETE_PROJECT
        assert confirmation.action.target_id == project_id
        assert confirmation.title == 'Delete "Scarf"?'


class TestConfirmations:
    """Tests for the confirmation-gated intents."""

    def test_delete_counter_confirmed(self, engine, notifications):
        sub = engine.add_sub_counter()
        confirmation = engine.request_delete_counter(sub.id)
        assert confirmation.action.kind == ActionKind.DELETE_COUNTER
        # Nothing happens until confirmed
        assert engine.active_project.sub_counters == [sub]

        assert engine.confirm() is True
        assert engine.active_project.sub_counters == []
        assert notifications[-1] == ("Sub-counter deleted.", Severity.SUCCESS)

    def test_cancel_mutates_nothing(self, engine):
        sub = engine.add_sub_counter()
        engine.request_delete_counter(sub.id)
        assert engine.cancel() is True
        assert engine.active_project.sub_counters == [sub]
        assert engine.pending_confirmation is None
        assert engine.cancel() is False

    def test_confirm_without_pending(self, engine):
        assert engine.confirm() is False

    def test_new_request_replaces_pending(self, engine):
        """Only the latest confirmation runs."""
        keep = engine.add_sub_counter("Keep")
        drop = engine.add_sub_counter("Drop")
        engine.request_delete_counter(keep.id)
        engine.request_delete_counter(drop.id)
        engine.confirm()
        assert [c.id for c in engine.active_project.sub_counters] == [keep.id]
        assert engine.confirm() is False

    def test_load_when_clean_skips_confirmation(self, engine):
        first = persist(engine, "First")
        engine.start_new_project()
        assert engine.request_load_project(first) is None
        assert engine.active_project.id == first

    def test_load_when_dirty_asks(self, engine):
        first = persist(engine, "First")
        engine.start_new_project()
        engine.increment_counter(MAIN_COUNTER_ID)

        confirmation = engine.request_load_project(first)
        assert confirmation.action.kind == ActionKind.DISCARD_AND_LOAD
        assert engine.active_project.id is None

        engine.confirm()
        assert engine.active_project.id == first
        assert engine.is_dirty is False

    def test_load_missing_project(self, engine, notifications):
        engine.increment_counter(MAIN_COUNTER_ID)
        before = engine.active_project
        assert engine.load_project("project-gone") is False
        assert engine.active_project is before
        assert notifications[-1] == ("Project not found.", Severity.ERROR)

    def test_start_new_when_dirty_asks(self, engine):
        engine.increment_counter(MAIN_COUNTER_ID)
        confirmation = engine.request_start_new_project()
        assert confirmation.action.kind == ActionKind.DISCARD_AND_START_NEW
        assert engine.active_project.main_counter.value == 1
        engine.confirm()
        assert engine.active_project.main_counter.value == 0
        assert engine.is_dirty is False

    def test_start_new_when_clean(self, engine):
        persist(engine)
        assert engine.request_start_new_project() is None
        assert engine.active_project.is_ephemeral

    def test_activation_drops_pending(self, engine):
        """A confirmation about the old project does not survive a switch."""
        sub = engine.add_sub_counter()
        engine.request_delete_counter(sub.id)
        engine.start_new_project()
        assert engine.pending_confirmation is None


class TestActivation:
    """Tests for set_active_project and startup restore."""

    def test_swap_accrues_nothing(self, engine, clock):
        """A running timer is resampled on activation."""
        project = create_default_project(0)
        project.id = "project-1"
        clock.advance(3_600_000)
        engine.set_active_project(project)
        assert project.timer.last_tick == clock.now
        clock.advance(1000)
        engine.tick()
        assert project.timer.total_elapsed_ms == 1000

    def test_resume_flags_written(self, engine, resume):
        engine.start_new_project()
        assert resume.read() == ResumeFlags(last_project_id=None, last_project_unsaved=True)
        project_id = persist(engine)
        engine.start_new_project()
        engine.load_project(project_id)
        assert resume.read() == ResumeFlags(last_project_id=project_id, last_project_unsaved=False)

    def _seeded(self, clock, resume, flags):
        store = InMemoryStore()
        saved = create_default_project(START_MS - 10)
        saved.id = "project-1"
        saved.name = "Blanket"
        store.put(saved)
        resume.write(flags)
        return StateEngine(store, resume=resume, clock=clock)

    def test_restore_last_project(self, clock, resume):
        engine = self._seeded(clock, resume, ResumeFlags("project-1", False))
        project = engine.load_initial_project()
        assert project.id == "project-1"
        assert project.name == "Blanket"
        assert engine.context.status == ProjectStatus.PERSISTED

    def test_restore_unsaved_gives_default(self, clock, resume):
        engine = self._seeded(clock, resume, ResumeFlags("project-1", True))
        assert engine.load_initial_project().is_ephemeral

    def test_restore_vanished_gives_default(self, clock, resume):
        engine = self._seeded(clock, resume, ResumeFlags("project-gone", False))
        assert engine.load_initial_project().is_ephemeral
        assert [p.id for p in engine.context.saved_projects] == ["project-1"]

    def test_refresh_failure_keeps_cache(self, engine, store, notifications):
        persist(engine)
        cached = list(engine.context.saved_projects)
        store.list_all = MagicMock(side_effect=StoreError("locked", "list_all"))
        assert engine.refresh_saved_projects() == cached
        assert notifications[-1][1] == Severity.ERROR


class TestSnapshot:
    """Tests for snapshots and subscribers."""

    def test_snapshot_is_a_copy(self, engine):
        snap = engine.snapshot()
        snap.project.main_counter.value = 99
        assert engine.active_project.main_counter.value == 0

    def test_snapshot_contents(self, engine, clock):
        engine.set_target(MAIN_COUNTER_ID, 3)
        engine.increment_counter(MAIN_COUNTER_ID)
        clock.advance(60_000)
        engine.tick()

        snap = engine.snapshot()
        assert snap.status == ProjectStatus.EPHEMERAL
        assert snap.is_ephemeral
        assert snap.is_dirty is True
        assert snap.elapsed == "00:01:00"
        # 1 minute per increment, 2 remaining
        assert snap.etas == {MAIN_COUNTER_ID: "~2 min"}

    def test_etas_hidden_without_timer(self, store, clock):
        context = AppContext(active_project=create_default_project(clock()), settings=Settings(show_timer=False))
        engine = StateEngine(store, context=context, clock=clock)
        engine.set_target(MAIN_COUNTER_ID, 3)
        engine.increment_counter(MAIN_COUNTER_ID)
        clock.advance(60_000)
        assert engine.snapshot().etas == {}

    def test_subscribers_notified_after_mutation(self, engine):
        seen = []
        unsubscribe = engine.subscribe(seen.append)
        engine.increment_counter(MAIN_COUNTER_ID)
        assert seen[-1].project.main_counter.value == 1
        count = len(seen)
        unsubscribe()
        engine.increment_counter(MAIN_COUNTER_ID)
        assert len(seen) == count

    def test_snapshot_carries_pending_confirmation(self, engine):
        sub = engine.add_sub_counter()
        confirmation = engine.request_delete_counter(sub.id)
        assert engine.snapshot().pending_confirmation == confirmation

    def test_saved_summaries(self, engine):
        persist(engine, "Hat")
        engine.increment_counter(MAIN_COUNTER_ID)
        summary = engine.snapshot().saved_projects[0]
        assert summary.name == "Hat"
        assert summary.main_counter_name == "Row"
        assert summary.main_counter_value == 1


class TestEngineLifecycle:
    """Tests for logging and teardown."""

    def test_events_logged(self, engine):
        engine.increment_counter(MAIN_COUNTER_ID)
        reset_loggers()
        lines = get_config().engine_log_path.read_text().strip().splitlines()
        entry = json.loads(lines[-1])
        assert entry["event_type"] == "mutate"
        assert entry["intent"] == "increment_counter"
        assert entry["status"] == "EPHEMERAL"

    def test_close_closes_store(self, store, clock):
        with StateEngine(store, clock=clock) as engine:
            engine.increment_counter(MAIN_COUNTER_ID)
        assert store.closed is True
