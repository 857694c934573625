# src/tasksync/tasks/task_models.py

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

from ..core.errors import TaskSyncError, ValidationError

TEMP_ID_PREFIX = "tmp-"


class SyncState(StrEnum):
    """
    Per-record synchronization state.

    - synced:  local record matches the last remote confirmation
    - pending: at least one remote operation is queued or in flight
    - failed:  the last operation ended terminally; Task.error says why
    """

    SYNCED = "synced"
    PENDING = "pending"
    FAILED = "failed"

    @classmethod
    def from_db(cls, raw: str | None) -> SyncState:
        if not raw:
            return cls.SYNCED
        try:
            return cls(raw)
        except ValueError:
            return cls.FAILED


class OpKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ChangeKind(StrEnum):
    INSERT = "insert"
    UPDATE = "update"
    REMOVE = "remove"
    SYNC = "sync"  # sync_state transition without a field change


def clean_title(raw: Any) -> str:
    title = str(raw or "").strip()
    if not title:
        raise ValidationError("Task title must not be empty.")
    return title


@dataclass(slots=True, frozen=True)
class Task:
    id: str
    title: str
    done: bool = False
    revision: int | None = None
    sync_state: SyncState = SyncState.SYNCED
    error: TaskSyncError | None = field(default=None, compare=False)

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "done": self.done,
            "revision": self.revision,
            "syncState": self.sync_state.value,
        }


@dataclass(slots=True, frozen=True)
class TaskPatch:
    """Partial update. None means "leave as is"."""

    title: str | None = None
    done: bool | None = None

    @classmethod
    def coerce(cls, raw: TaskPatch | Mapping[str, Any]) -> TaskPatch:
        if isinstance(raw, TaskPatch):
            patch = raw
        else:
            unknown = set(raw) - {"title", "done"}
            if unknown:
                raise ValidationError(f"Unknown task fields: {', '.join(sorted(unknown))}")
            done = raw.get("done")
            patch = cls(title=raw.get("title"), done=None if done is None else bool(done))

        if patch.is_empty:
            raise ValidationError("Patch must change at least one field.")
        if patch.title is not None:
            patch = replace(patch, title=clean_title(patch.title))
        return patch

    @property
    def is_empty(self) -> bool:
        return self.title is None and self.done is None

    def apply(self, task: Task) -> Task:
        return replace(
            task,
            title=task.title if self.title is None else self.title,
            done=task.done if self.done is None else self.done,
        )

    def merge(self, later: TaskPatch) -> TaskPatch:
        return TaskPatch(
            title=self.title if later.title is None else later.title,
            done=self.done if later.done is None else later.done,
        )

    def fields(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.title is not None:
            out["title"] = self.title
        if self.done is not None:
            out["done"] = self.done
        return out


@dataclass(slots=True, frozen=True)
class RemoteRecord:
    """A task as the remote store reports it."""

    id: str
    title: str
    done: bool
    revision: int

    def to_task(self) -> Task:
        return Task(
            id=self.id,
            title=self.title,
            done=self.done,
            revision=self.revision,
            sync_state=SyncState.SYNCED,
        )


@dataclass(slots=True, frozen=True)
class RemoteOp:
    """
    One queued remote operation.

    key is the stable local key of the record (the first id it ever had),
    so queued work survives the temp id -> remote id switch.
    """

    seq: int
    key: str
    kind: OpKind
    patch: TaskPatch | None = None


@dataclass(slots=True, frozen=True)
class RemoteResult:
    """
    Outcome of one remote operation, fed into TaskSyncCore.reconcile().

    Exactly one of record / error is meaningful:
    - success: error is None (record is None for deletes)
    - failure: error is a PermanentError or ConflictError
    """

    op: RemoteOp
    record: RemoteRecord | None = None
    error: TaskSyncError | None = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True, frozen=True)
class TaskEvent:
    kind: ChangeKind
    task: Task
    error: TaskSyncError | None = None
