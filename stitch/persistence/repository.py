"""
Stitch Repository - Project document store

Durable store for persisted projects, backed by SQLite.
Each call is its own transaction; nothing is assumed atomic across calls.

Interface consumed by the state engine:
- put(project) -> id          insert-or-replace keyed by id
- list_all() -> [Project]     newest lastModified first
- delete(id)                  NotFoundError if the id is not stored
- get(id) -> Project | None

Every sqlite3/OS failure is re-raised as StoreError.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from stitch.exceptions import NotFoundError, StoreError
from stitch.logging import StoreLogEntry, now_iso, store_logger
from stitch.persistence.models import Project

logger = logging.getLogger(__name__)


class ProjectRepository:
    """
    Repository for all project persistence operations.

    Usage:
        repo = ProjectRepository(db_path)
        repo.initialize()

        project_id = repo.put(project)
        projects = repo.list_all()

        # Or use as a context manager for auto-cleanup
        with ProjectRepository(db_path) as repo:
            ...
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize repository.

        Args:
            db_path: Path to SQLite database file (":memory:" for a private in-memory store)
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._initialized = False

    def __enter__(self) -> ProjectRepository:
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        """Get database connection, initializing if needed."""
        if self._conn is None:
            self.initialize()
        return self._conn  # type: ignore

    def initialize(self) -> None:
        """
        Open the database and apply the schema.

        Creates the database file and parent directories if needed.

        Raises:
            StoreError: If the database cannot be opened
        """
        if self._initialized and self._conn:
            return

        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

            self._conn = sqlite3.connect(
                self.db_path,
                isolation_level=None,  # Autocommit mode, we use explicit transactions
            )
            if isinstance(self.db_path, Path):
                self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._apply_schema()
        except (sqlite3.Error, OSError) as e:
            self.close()
            raise StoreError(f"Cannot open project store at {self.db_path}", "open") from e

        self._initialized = True
        logger.info(f"Initialized project store at {self.db_path}")

    def _apply_schema(self) -> None:
        """Apply the database schema from schema.sql."""
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, encoding="utf-8") as f:
            schema_sql = f.read()

        # CREATE IF NOT EXISTS makes this idempotent
        self._conn.executescript(schema_sql)  # type: ignore
        logger.debug("Project store schema applied")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
        self._initialized = False

    @contextmanager
    def transaction(self) -> Generator[sqlite3.Cursor, None, None]:
        """
        Execute operations in a transaction.

        Usage:
            with repo.transaction() as cursor:
                cursor.execute(...)
        """
        cursor = self.conn.cursor()
        try:
            cursor.execute("BEGIN")
            yield cursor
            cursor.execute("COMMIT")
        except Exception:
            cursor.execute("ROLLBACK")
            raise
        finally:
            cursor.close()

    def _log(
        self,
        operation: str,
        started: float,
        project_id: str | None = None,
        rows: int = 0,
        error: Exception | None = None,
    ) -> None:
        """Write one store operation to the structured log."""
        entry = StoreLogEntry(
            timestamp=now_iso(),
            operation=operation,
            project_id=project_id,
            success=error is None,
            rows=rows,
            latency_ms=int((time.monotonic() - started) * 1000),
            error=str(error) if error else None,
            error_type=type(error).__name__ if error else None,
        )
        if error:
            store_logger.error(entry.to_json())
        else:
            store_logger.info(entry.to_json())

    # =========================================================================
    # PROJECT OPERATIONS
    # =========================================================================

    def put(self, project: Project) -> str:
        """
        Insert or replace a project document.

        Args:
            project: Project with a non-null id

        Returns:
            The stored project's id

        Raises:
            StoreError: If the write cannot be committed
        """
        if project.id is None:
            raise StoreError("Cannot store a project without an id", "put")

        started = time.monotonic()
        document = json.dumps(project.to_dict())
        try:
            with self.transaction() as cursor:
                cursor.execute(
                    """INSERT OR REPLACE INTO projects (id, name, last_modified, document)
                       VALUES (?, ?, ?, ?)""",
                    (project.id, project.name, project.last_modified, document),
                )
        except (sqlite3.Error, OSError) as e:
            self._log("put", started, project.id, error=e)
            raise StoreError(f"Error saving project: {e}", "put", project.id) from e

        self._log("put", started, project.id, rows=1)
        logger.debug(f"Stored project {project.id} ({project.name!r})")
        return project.id

    def list_all(self) -> list[Project]:
        """
        List all stored projects, most recently modified first.

        Rows whose document cannot be parsed are skipped with a warning.

        Raises:
            StoreError: If the store cannot be read
        """
        started = time.monotonic()
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT id, document FROM projects ORDER BY last_modified DESC, id")
            rows = cursor.fetchall()
        except (sqlite3.Error, OSError) as e:
            self._log("list_all", started, error=e)
            raise StoreError(f"Error fetching projects: {e}", "list_all") from e

        projects: list[Project] = []
        for row_id, document in rows:
            project = self._parse_document(row_id, document)
            if project is not None:
                projects.append(project)

        self._log("list_all", started, rows=len(projects))
        return projects

    def get(self, project_id: str) -> Project | None:
        """Get a single project by id, or None if it is not stored."""
        started = time.monotonic()
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT id, document FROM projects WHERE id = ?", (project_id,))
            row = cursor.fetchone()
        except (sqlite3.Error, OSError) as e:
            self._log("get", started, project_id, error=e)
            raise StoreError(f"Error loading project: {e}", "get", project_id) from e

        self._log("get", started, project_id, rows=1 if row else 0)
        return self._parse_document(row[0], row[1]) if row else None

    def delete(self, project_id: str) -> None:
        """
        Delete a project by id.

        Raises:
            NotFoundError: If no project with this id is stored
            StoreError: If the delete cannot be committed
        """
        started = time.monotonic()
        try:
            with self.transaction() as cursor:
                cursor.execute("DELETE FROM projects WHERE id = ?", (project_id,))
                deleted = cursor.rowcount
        except (sqlite3.Error, OSError) as e:
            self._log("delete", started, project_id, error=e)
            raise StoreError(f"Error deleting project: {e}", "delete", project_id) from e

        if deleted == 0:
            error = NotFoundError(f"Project {project_id} not found", "delete", project_id)
            self._log("delete", started, project_id, error=error)
            raise error

        self._log("delete", started, project_id, rows=deleted)
        logger.info(f"Deleted project {project_id}")

    def count(self) -> int:
        """Number of stored projects."""
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM projects")
            return int(cursor.fetchone()[0])
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Error counting projects: {e}", "count") from e

    @staticmethod
    def _parse_document(row_id: str, document: str) -> Project | None:
        try:
            data = json.loads(document)
            if not isinstance(data, dict):
                raise ValueError("document is not an object")
            data["id"] = row_id
            return Project.from_dict(data)
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"Skipping unreadable project document {row_id}: {e}")
            return None
