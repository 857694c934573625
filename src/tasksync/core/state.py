# src/tasksync/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..tasks.sync_core import TaskSyncCore
from .errors import TaskSyncError
from .ports import RemoteTaskStore, SnapshotRepo


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    remote: RemoteTaskStore
    core: TaskSyncCore
    snapshots: SnapshotRepo | None = None

    # Terminal failures delivered by the core since the user last looked (/failures).
    failures: list[TaskSyncError] = field(default_factory=list)
    offline: bool = False
