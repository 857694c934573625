# tests/conftest.py

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio

from tasksync.core.state import AppState
from tasksync.remote.memory import InMemoryTaskStore
from tasksync.tasks.retry import RetryPolicy
from tasksync.tasks.snapshot_store import SnapshotStore
from tasksync.tasks.sync_core import TaskSyncCore

from .fakes import RecordingListener


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        data_dir=tmp_path,
        snapshot_db_path=tmp_path / "tasks.sqlite3",
        server_url="",
        app_id="",
        rest_api_key="",
        session_token=None,
        max_concurrency=4,
        request_timeout_seconds=1.0,
        # No real sleeping between retries in tests.
        retry_base_delay_seconds=0.0,
        retry_factor=2.0,
        retry_max_attempts=5,
    )


@pytest.fixture()
def remote() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest_asyncio.fixture()
async def core(remote: InMemoryTaskStore) -> AsyncIterator[TaskSyncCore]:
    c = TaskSyncCore(remote, max_concurrency=4, request_timeout=1.0, retry=RetryPolicy(base_delay=0.0))
    yield c
    await c.aclose()


@pytest.fixture()
def listener(core: TaskSyncCore) -> RecordingListener:
    rec = RecordingListener()
    core.subscribe(rec)
    return rec


@pytest.fixture()
def state(settings: SimpleNamespace, remote: InMemoryTaskStore, core: TaskSyncCore) -> AppState:
    """
    AppState wired with the in-memory remote.

    NOTE: We keep the real SQLite SnapshotStore here because its correctness
    is part of what we want to test.
    """
    return AppState(
        settings=settings,
        remote=remote,
        core=core,
        snapshots=SnapshotStore(settings.snapshot_db_path),
        offline=True,
    )
