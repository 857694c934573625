# src/tasksync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the remote (Parse REST when configured, in-memory otherwise),
- wires the sync core and the snapshot cache into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import RemoteTaskStore
from ..core.state import AppState
from ..remote.memory import InMemoryTaskStore
from ..remote.parse_client import ParseTaskStore
from ..tasks.snapshot_store import SnapshotStore
from ..tasks.sync_core import TaskSyncCore
from ..tasks.task_models import TaskEvent

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.snapshot_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, remote: RemoteTaskStore | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    offline = False
    if remote is None:
        try:
            remote = ParseTaskStore.from_settings(settings)
        except RuntimeError as e:
            # Fallback for demos / local runs without a backend.
            logger.info("Remote not configured (%s); using in-memory remote.", e)
            remote = InMemoryTaskStore()
            offline = True

    core = TaskSyncCore.from_settings(remote, settings)
    state = AppState(
        settings=settings,
        remote=remote,
        core=core,
        snapshots=SnapshotStore(settings.snapshot_db_path),
        offline=offline,
    )

    def _collect_failures(event: TaskEvent) -> None:
        if event.error is not None:
            state.failures.append(event.error)

    core.subscribe(_collect_failures)
    return state


def load_snapshot(state: AppState) -> int:
    if state.snapshots is None:
        return 0
    try:
        return state.core.restore(state.snapshots.load())
    except Exception:
        logger.exception("Failed to load task snapshot.")
        return 0


def save_snapshot(state: AppState) -> None:
    if state.snapshots is None:
        return
    try:
        state.snapshots.save(state.core.list_tasks())
    except Exception:
        logger.exception("Failed to save task snapshot.")


async def shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    save_snapshot(state)

    try:
        await state.core.aclose()
    except Exception:
        logger.exception("Sync core close failed.")

    try:
        close = getattr(state.remote, "aclose", None)
        if close is not None:
            await close()
    except Exception:
        logger.debug("Remote close failed.", exc_info=True)
