# src/tasksync/tasks/snapshot_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from collections.abc import Iterable
from pathlib import Path

from ..core.errors import PermanentError
from .task_models import SyncState, Task

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    SQLite snapshot of the local task collection.

    Stores what list_tasks() returned at the last save, in order, so a restarted
    process can show the same view before it reaches the remote.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("SnapshotStore ready db=%s total=%s", self._db_path, self.count())

    @property
    def db_path(self) -> Path:
        return self._db_path

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.DatabaseError):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS task_snapshot (
                    position INTEGER NOT NULL,
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    done INTEGER NOT NULL DEFAULT 0,
                    revision INTEGER,
                    sync_state TEXT NOT NULL DEFAULT 'synced'
                )
                """
            )

            cur.execute("PRAGMA table_info(task_snapshot)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE task_snapshot ADD COLUMN {name} {decl}")
                logger.info("SnapshotStore migration: added column %s", name)

            add_col("error_text", "TEXT")
            add_col("saved_at", "REAL NOT NULL DEFAULT 0")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        state = SyncState.from_db(row["sync_state"])
        error = None
        if state is SyncState.FAILED:
            error = PermanentError(row["error_text"] or "Failed before the last shutdown.", task_id=row["id"])
        return Task(
            id=str(row["id"]),
            title=str(row["title"] or ""),
            done=bool(row["done"]),
            revision=int(row["revision"]) if row["revision"] is not None else None,
            sync_state=state,
            error=error,
        )

    # ---- public API ----

    def count(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM task_snapshot").fetchone()
            return int(n)
        finally:
            conn.close()

    def save(self, tasks: Iterable[Task]) -> None:
        """Replace the stored snapshot with `tasks` (in the given order)."""
        now = time.time()
        rows = [
            (
                pos,
                t.id,
                t.title,
                int(t.done),
                t.revision,
                t.sync_state.value,
                str(t.error) if t.error is not None else None,
                now,
            )
            for pos, t in enumerate(tasks)
        ]

        conn = self._get_conn()
        try:
            with conn:
                conn.execute("DELETE FROM task_snapshot")
                conn.executemany(
                    """
                    INSERT INTO task_snapshot(position, id, title, done, revision, sync_state, error_text, saved_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
            logger.debug("Snapshot saved: %d task(s)", len(rows))
        finally:
            conn.close()

    def load(self) -> list[Task]:
        conn = self._get_conn()
        try:
            cur = conn.execute("SELECT * FROM task_snapshot ORDER BY position ASC")
            return [self._row_to_task(r) for r in cur.fetchall()]
        finally:
            conn.close()
