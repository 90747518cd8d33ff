"""Shared fixtures: fake clock, in-memory store double, temp repository, isolated dirs."""

import copy

import pytest

from stitch.config import ResumeFlagsStore
from stitch.engine import StateEngine
from stitch.exceptions import NotFoundError, StoreError
from stitch.logging import LogConfig, reset_loggers, set_config
from stitch.persistence.models import Project
from stitch.persistence.repository import ProjectRepository

START_MS = 1_700_000_000_000


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class InMemoryStore:
    """Store double with document semantics: every put/list returns copies."""

    def __init__(self):
        self.documents: dict[str, Project] = {}
        self.put_calls = 0
        self.closed = False

    def put(self, project: Project) -> str:
        if project.id is None:
            raise StoreError("Cannot store a project without an id", "put")
        self.put_calls += 1
        self.documents[project.id] = copy.deepcopy(project)
        return project.id

    def list_all(self) -> list[Project]:
        projects = sorted(
            self.documents.values(),
            key=lambda p: (-p.last_modified, p.id),
        )
        return [copy.deepcopy(p) for p in projects]

    def get(self, project_id: str) -> Project | None:
        project = self.documents.get(project_id)
        return copy.deepcopy(project) if project else None

    def delete(self, project_id: str) -> None:
        if project_id not in self.documents:
            raise NotFoundError(f"Project {project_id} not found", "delete", project_id)
        del self.documents[project_id]

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Keep logs, config and history out of the real home directory."""
    log_dir = tmp_path / "logs"
    config_dir = tmp_path / "config"
    monkeypatch.setenv("STITCH_LOG_DIR", str(log_dir))
    monkeypatch.setenv("STITCH_CONFIG_DIR", str(config_dir))
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("STITCH_DB_PATH", raising=False)
    reset_loggers()
    set_config(LogConfig(log_dir=log_dir))
    yield
    reset_loggers()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def resume(tmp_path):
    return ResumeFlagsStore(tmp_path / "config" / "resume.json")


@pytest.fixture
def notifications():
    """List of (message, severity) pairs captured from the engine."""
    return []


@pytest.fixture
def engine(store, clock, resume, notifications):
    """Engine over the in-memory store with a fresh ephemeral project."""
    eng = StateEngine(
        store,
        notify=lambda message, severity: notifications.append((message, severity)),
        resume=resume,
        clock=clock,
    )
    yield eng
    eng.close()


@pytest.fixture
def repository(tmp_path):
    """SQLite repository in a temp directory."""
    repo = ProjectRepository(tmp_path / "db" / "stitch.db")
    repo.initialize()
    yield repo
    repo.close()
