# src/tasksync/core/errors.py

"""
Error taxonomy.

Raised synchronously by the core:
- ValidationError (bad input, never reaches the remote)
- NotFoundError (unknown task id)

Raised by remote adapters and handled inside the core:
- TransientError (retried with backoff)
- StaleRevisionError (turned into a ConflictError)

Delivered through TaskEvent.error and attached to the failed record:
- PermanentError
- ConflictError
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..tasks.task_models import Task, TaskPatch


class TaskSyncError(Exception):
    """Base class for every error this package raises or delivers."""


class ValidationError(TaskSyncError):
    pass


class NotFoundError(TaskSyncError):
    def __init__(self, task_id: str, message: str | None = None) -> None:
        super().__init__(message or f"Task not found: {task_id}")
        self.task_id = task_id


class TransientError(TaskSyncError):
    """Retryable network/server fault (timeout, connection error, 5xx)."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StaleRevisionError(TaskSyncError):
    """The remote rejected a write because the carried revision is outdated."""

    def __init__(self, task_id: str, revision: int | None, current: Any = None) -> None:
        super().__init__(f"Stale revision for task {task_id}: sent {revision}")
        self.task_id = task_id
        self.revision = revision
        # Optional RemoteRecord when the backend returns the current object.
        self.current = current


class PermanentError(TaskSyncError):
    """
    Terminal failure of a remote operation.

    Either retries were exhausted (attempts > 0 and cause is the last
    TransientError) or the remote rejected the operation outright.
    """

    def __init__(
        self,
        message: str,
        *,
        task_id: str | None = None,
        op: str | None = None,
        attempts: int = 0,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.op = op
        self.attempts = attempts
        self.status_code = status_code


class ConflictError(TaskSyncError):
    """
    A local edit was built on a revision the remote has moved past.

    Carries both versions so the caller can resolve explicitly:
    - local: the optimistic record as the user left it
    - local_patch: the fields the rejected operation tried to write
    - remote: the current remote record as a Task, or None if it was deleted remotely
    - fetch_error: set when the remote version could not be fetched; remote is
      then unknown, not deleted
    """

    def __init__(
        self,
        *,
        task_id: str,
        op: str,
        local: Task,
        local_patch: TaskPatch | None,
        remote: Task | None,
        fetch_error: TaskSyncError | None = None,
    ) -> None:
        if fetch_error is not None:
            remote_desc = f"remote version unknown ({fetch_error})"
        elif remote is None:
            remote_desc = "deleted remotely"
        else:
            remote_desc = f"remote revision {remote.revision}"
        super().__init__(f"Conflict on task {task_id} ({op}): local revision {local.revision}, {remote_desc}")
        self.task_id = task_id
        self.op = op
        self.local = local
        self.local_patch = local_patch
        self.remote = remote
        self.fetch_error = fetch_error

    @property
    def remote_known(self) -> bool:
        return self.fetch_error is None

    @property
    def remote_revision(self) -> int | None:
        return self.remote.revision if self.remote is not None else None
