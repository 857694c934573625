# tests/test_snapshot_store.py

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from tasksync.core.errors import PermanentError
from tasksync.tasks.snapshot_store import SnapshotStore
from tasksync.tasks.task_models import SyncState, Task


def test_save_load_roundtrip_keeps_order_and_failures(tmp_path: Path) -> None:
    store = SnapshotStore(tmp_path / "tasks.sqlite3")
    assert store.count() == 0

    store.save(
        [
            Task(id="T2", title="second", done=True, revision=4),
            Task(id="T1", title="first", revision=1),
            Task(
                id="tmp-1",
                title="broken",
                sync_state=SyncState.FAILED,
                error=PermanentError("HTTP 403"),
            ),
        ]
    )

    loaded = store.load()
    assert [t.id for t in loaded] == ["T2", "T1", "tmp-1"]
    assert loaded[0].done is True and loaded[0].revision == 4
    assert loaded[2].revision is None
    assert loaded[2].sync_state is SyncState.FAILED
    assert isinstance(loaded[2].error, PermanentError)
    assert "HTTP 403" in str(loaded[2].error)

    store.save([Task(id="T9", title="only")])
    assert store.count() == 1
    assert [t.id for t in store.load()] == ["T9"]


def test_schema_migration_adds_missing_columns(tmp_path: Path) -> None:
    db = tmp_path / "old.sqlite3"
    conn = sqlite3.connect(str(db))
    conn.execute(
        "CREATE TABLE task_snapshot (position INTEGER NOT NULL, id TEXT PRIMARY KEY, title TEXT NOT NULL, "
        "done INTEGER NOT NULL DEFAULT 0, revision INTEGER, sync_state TEXT NOT NULL DEFAULT 'synced')"
    )
    conn.execute("INSERT INTO task_snapshot VALUES (0, 'T1', 'legacy', 0, 2, 'synced')")
    conn.commit()
    conn.close()

    store = SnapshotStore(db)
    (task,) = store.load()
    assert (task.id, task.title, task.revision, task.sync_state) == ("T1", "legacy", 2, SyncState.SYNCED)


@pytest.mark.asyncio
async def test_snapshot_restores_into_core(state) -> None:
    state.snapshots.save([Task(id="T1", title="saved", revision=1), Task(id="tmp-x", title="unsent", sync_state=SyncState.PENDING)])

    assert state.core.restore(state.snapshots.load()) == 2
    states = [t.sync_state for t in state.core.list_tasks()]
    assert states == [SyncState.SYNCED, SyncState.FAILED]
