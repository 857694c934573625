# src/tasksync/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The sync core depends on Protocols instead of concrete implementations.
This keeps the remote backend and the snapshot cache swappable and makes testing easier.
"""

from collections.abc import Callable, Iterable
from typing import Any, Protocol

from ..tasks.task_models import RemoteRecord, Task, TaskEvent

TaskListener = Callable[[TaskEvent], None]
Unsubscribe = Callable[[], None]


class RemoteTaskStore(Protocol):
    """
    Remote collaborator (Parse-style /classes/Task endpoints).

    Adapters raise:
    - TransientError for retryable faults
    - StaleRevisionError when the carried revision is outdated
    - NotFoundError when the object does not exist
    - PermanentError for anything else
    """

    async def create_task(self, fields: dict[str, Any]) -> RemoteRecord: ...
    async def list_tasks(self) -> list[RemoteRecord]: ...
    async def fetch_task(self, task_id: str) -> RemoteRecord | None: ...

    async def update_task(
            self,
            task_id: str,
            fields: dict[str, Any],
            *,
            revision: int | None,
    ) -> RemoteRecord: ...

    async def delete_task(self, task_id: str, *, revision: int | None) -> None: ...


class SnapshotRepo(Protocol):
    def save(self, tasks: Iterable[Task]) -> None: ...
    def load(self) -> list[Task]: ...
    def count(self) -> int: ...
