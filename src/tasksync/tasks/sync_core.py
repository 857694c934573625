# src/tasksync/tasks/sync_core.py

from __future__ import annotations

"""
Task synchronization core.

Owns the local task collection and keeps it consistent with a remote store:
- public operations apply mutations optimistically and return at once,
- each mutation becomes a RemoteOp queued per record (FIFO),
- a bounded worker pool replays ops against the remote with retry/backoff,
- results are folded back through reconcile(), which drives sync_state and
  notifies subscribers.

The collection has a single writer (this class). Readers get immutable Task
snapshots, either from list_tasks() or through TaskEvent notifications.
"""

import asyncio
import itertools
import logging
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Any, Literal

from ..core.errors import (
    ConflictError,
    NotFoundError,
    PermanentError,
    StaleRevisionError,
    TaskSyncError,
    ValidationError,
)
from ..core.ports import RemoteTaskStore, TaskListener, Unsubscribe
from .op_queue import OpQueue
from .retry import RetryPolicy, Sleep, call_with_retry
from .task_models import (
    TEMP_ID_PREFIX,
    ChangeKind,
    OpKind,
    RemoteOp,
    RemoteRecord,
    RemoteResult,
    SyncState,
    Task,
    TaskEvent,
    TaskPatch,
    clean_title,
)

logger = logging.getLogger(__name__)


def _new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex[:12]}"


class TaskSyncCore:
    def __init__(
            self,
            remote: RemoteTaskStore,
            *,
            max_concurrency: int = 4,
            request_timeout: float | None = 1.0,
            retry: RetryPolicy | None = None,
            sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._remote = remote
        self._timeout = request_timeout
        self._retry = retry or RetryPolicy()
        self._sleep = sleep

        # key -> record; dict order is the insertion order list_tasks() exposes.
        self._records: dict[str, Task] = {}
        # Every id a caller may hold (temp and remote) -> key.
        self._aliases: dict[str, str] = {}
        # Keys removed from the view while their remote delete is outstanding.
        self._hidden: set[str] = set()

        self._listeners: list[TaskListener] = []
        self._seq = itertools.count(1)
        self._queue = OpQueue(self._execute, max_concurrency=max_concurrency)

    @classmethod
    def from_settings(cls, remote: RemoteTaskStore, settings, **kwargs: Any) -> TaskSyncCore:
        return cls(
            remote,
            max_concurrency=int(getattr(settings, "max_concurrency", 4)),
            request_timeout=float(getattr(settings, "request_timeout_seconds", 1.0)),
            retry=RetryPolicy.from_settings(settings),
            **kwargs,
        )

    # ---- read side ----

    def list_tasks(self) -> tuple[Task, ...]:
        return tuple(t for k, t in self._records.items() if k not in self._hidden)

    def get_task(self, task_id: str) -> Task:
        return self._records[self._resolve(task_id)]

    def pending_operations(self) -> int:
        return self._queue.total()

    def subscribe(self, listener: TaskListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    # ---- intents ----

    def create_task(self, title: str) -> Task:
        title = clean_title(title)
        key = _new_temp_id()
        task = Task(id=key, title=title, done=False, revision=None, sync_state=SyncState.PENDING)

        self._records[key] = task
        self._aliases[key] = key
        self._enqueue(key, OpKind.CREATE, TaskPatch(title=task.title, done=task.done))
        logger.info("Task %s created locally title=%r", key, title)
        self._emit(ChangeKind.INSERT, task)
        return task

    def update_task(self, task_id: str, patch: TaskPatch | Mapping[str, Any]) -> Task:
        key = self._resolve(task_id)
        patch = TaskPatch.coerce(patch)
        task = self._records[key]

        updated = replace(patch.apply(task), sync_state=SyncState.PENDING, error=None)
        self._records[key] = updated

        if updated.is_temporary and not self._queue.has_work(key):
            # The create never made it to the remote: re-issue it with the merged fields.
            self._enqueue(key, OpKind.CREATE, TaskPatch(title=updated.title, done=updated.done))
        else:
            self._enqueue(key, OpKind.UPDATE, patch)

        logger.info("Task %s updated locally fields=%s", updated.id, patch.fields())
        self._emit(ChangeKind.UPDATE, updated)
        return updated

    def delete_task(self, task_id: str) -> None:
        key = self._resolve(task_id)
        task = self._records[key]

        if task.is_temporary and not self._queue.has_work(key):
            # Nothing exists remotely for this record.
            self._forget(key)
            logger.info("Task %s deleted locally (never created remotely)", task.id)
            self._emit(ChangeKind.REMOVE, task)
            return

        pending = replace(task, sync_state=SyncState.PENDING, error=None)
        self._records[key] = pending
        self._hidden.add(key)
        self._enqueue(key, OpKind.DELETE)
        logger.info("Task %s deleted locally", task.id)
        self._emit(ChangeKind.REMOVE, pending)

    def resolve_conflict(self, task_id: str, *, keep: Literal["local", "remote"]) -> Task | None:
        """
        Settle a ConflictError attached to a failed record.

        keep="remote": adopt the remote version (evict the record if it was deleted remotely).
        keep="local":  re-apply the rejected operation on top of the remote revision.
        Refused while the remote version is unknown; refresh_conflict() fetches it.

        Returns the resulting record, or None when it left the view.
        """
        key = self._resolve(task_id)
        task = self._records[key]
        err = task.error
        if not isinstance(err, ConflictError):
            raise ValidationError(f"Task {task.id} has no conflict to resolve.")
        if keep not in ("local", "remote"):
            raise ValidationError(f"keep must be 'local' or 'remote', got {keep!r}")
        if not err.remote_known:
            raise ValidationError(
                f"Remote version of task {task.id} is unknown ({err.fetch_error}); refresh the conflict first."
            )

        remote = err.remote

        if keep == "remote":
            if remote is None:
                self._forget(key)
                logger.info("Task %s conflict resolved: remote deletion accepted", task.id)
                self._emit(ChangeKind.REMOVE, task)
                return None
            adopted = replace(remote, sync_state=SyncState.SYNCED, error=None)
            self._records[key] = adopted
            self._aliases[adopted.id] = key
            logger.info("Task %s conflict resolved: remote revision %s kept", task.id, remote.revision)
            self._emit(ChangeKind.UPDATE, adopted)
            return adopted

        if remote is None:
            recreated = replace(task, revision=None, sync_state=SyncState.PENDING, error=None)
            self._records[key] = recreated
            self._enqueue(key, OpKind.CREATE, TaskPatch(title=recreated.title, done=recreated.done))
            logger.info("Task %s conflict resolved: re-creating deleted remote record", task.id)
            self._emit(ChangeKind.UPDATE, recreated)
            return recreated

        if err.op == OpKind.DELETE:
            rebased = replace(task, revision=remote.revision, sync_state=SyncState.PENDING, error=None)
            self._records[key] = rebased
            self._hidden.add(key)
            self._enqueue(key, OpKind.DELETE)
            logger.info("Task %s conflict resolved: deleting at remote revision %s", task.id, remote.revision)
            self._emit(ChangeKind.REMOVE, rebased)
            return None

        patch = err.local_patch or TaskPatch(title=task.title, done=task.done)
        rebased = replace(patch.apply(remote), id=task.id, sync_state=SyncState.PENDING, error=None)
        self._records[key] = rebased
        self._enqueue(key, OpKind.UPDATE, patch)
        logger.info("Task %s conflict resolved: local patch re-applied on revision %s", task.id, remote.revision)
        self._emit(ChangeKind.UPDATE, rebased)
        return rebased

    async def refresh_conflict(self, task_id: str) -> ConflictError:
        """
        Fetch the remote version again for a conflicted record and attach it.

        Needed when the fetch at conflict time failed; errors from this fetch propagate.
        """
        key = self._resolve(task_id)
        err = self._records[key].error
        if not isinstance(err, ConflictError):
            raise ValidationError(f"Task {self._records[key].id} has no conflict to refresh.")

        remote = await self._fetch_remote(err.local.id)

        task = self._records.get(key)
        if task is None or task.error is not err:
            raise ValidationError(f"Task {task_id} changed while its remote version was fetched.")

        fresh = ConflictError(
            task_id=err.task_id,
            op=err.op,
            local=err.local,
            local_patch=err.local_patch,
            remote=remote.to_task() if remote is not None else None,
        )
        updated = replace(task, error=fresh)
        self._records[key] = updated
        logger.info("Task %s conflict refreshed: %s", task.id, fresh)
        self._emit(ChangeKind.UPDATE, updated, fresh)
        return fresh

    def evict_task(self, task_id: str) -> None:
        """Drop a failed record from the local collection once the caller has acknowledged it."""
        key = self._resolve(task_id)
        task = self._records[key]
        if task.sync_state is not SyncState.FAILED:
            raise ValidationError(f"Only failed tasks can be evicted; {task.id} is {task.sync_state.value}.")
        self._forget(key)
        logger.info("Task %s evicted", task.id)
        self._emit(ChangeKind.REMOVE, task)

    # ---- bulk loading ----

    def restore(self, tasks: Iterable[Task]) -> int:
        """
        Load previously saved records (e.g. from the snapshot cache).

        Records saved while pending lost their queued operations with the previous
        process; they come back failed so the caller re-issues them.
        """
        n = 0
        for task in tasks:
            if task.id in self._aliases:
                continue
            if task.sync_state is SyncState.PENDING:
                task = replace(
                    task,
                    sync_state=SyncState.FAILED,
                    error=PermanentError(
                        "Interrupted before the remote confirmed it; re-issue the change.",
                        task_id=task.id,
                    ),
                )
            self._records[task.id] = task
            self._aliases[task.id] = task.id
            self._emit(ChangeKind.INSERT, task, task.error)
            n += 1
        logger.info("Restored %d task(s) from snapshot", n)
        return n

    async def hydrate(self) -> tuple[Task, ...]:
        """
        Pull the remote list and merge it in.

        Only records that are synced and idle are refreshed or removed; pending and
        failed records keep their local state until their own operations settle.
        """
        # Only records untouched while the list was in flight may be dropped afterwards.
        idle_before = {k: t for k, t in self._records.items() if self._is_idle_synced(k)}

        records, _ = await call_with_retry(
            self._remote.list_tasks,
            self._retry,
            timeout=self._timeout,
            what="list tasks",
            sleep=self._sleep,
        )

        seen: set[str] = set()
        for rec in records:
            seen.add(rec.id)
            key = self._aliases.get(rec.id)
            if key is None:
                task = rec.to_task()
                self._records[rec.id] = task
                self._aliases[rec.id] = rec.id
                self._emit(ChangeKind.INSERT, task)
                continue

            if not self._is_idle_synced(key):
                continue
            fresh = rec.to_task()
            if fresh != self._records[key]:
                self._records[key] = fresh
                self._emit(ChangeKind.UPDATE, fresh)

        for key, task in idle_before.items():
            if task.id in seen or self._records.get(key) is not task or not self._is_idle_synced(key):
                continue
            self._forget(key)
            self._emit(ChangeKind.REMOVE, task)

        logger.info("Hydrated %d remote task(s); local view has %d", len(records), len(self.list_tasks()))
        return self.list_tasks()

    # ---- worker lifecycle ----

    def start(self) -> None:
        self._queue.start()

    async def wait_idle(self) -> None:
        """Wait until every queued remote operation has been reconciled."""
        await self._queue.join()

    async def aclose(self) -> None:
        await self._queue.aclose()

    # ---- reconciliation ----

    def reconcile(self, result: RemoteResult) -> None:
        op = result.op
        key = op.key
        task = self._records.get(key)
        if task is None:
            logger.debug("reconcile: task key=%s is gone (op=%s), ignoring", key, op.kind.value)
            return

        if result.ok:
            self._reconcile_success(key, task, op, result.record)
        else:
            self._reconcile_failure(key, task, op, result.error)

    def _reconcile_success(self, key: str, task: Task, op: RemoteOp, record: RemoteRecord | None) -> None:
        if op.kind == OpKind.DELETE:
            self._forget(key)
            logger.info("Task %s deletion confirmed", task.id)
            return

        if record is None:
            self._reconcile_failure(
                key,
                task,
                op,
                PermanentError(f"Remote confirmed {op.kind.value} without a record", task_id=task.id, op=op.kind.value),
            )
            return
        if task.revision is not None and record.revision < task.revision:
            logger.warning(
                "Task %s: remote reported revision %s below local %s; keeping local",
                task.id,
                record.revision,
                task.revision,
            )
            record = replace(record, revision=task.revision)

        if record.id != task.id:
            other = self._aliases.get(record.id)
            if other is not None and other != key:
                # hydrate() listed this object before its create was confirmed here.
                dup = self._records.get(other)
                visible = other not in self._hidden
                self._forget(other)
                if dup is not None and visible:
                    self._emit(ChangeKind.REMOVE, dup)
            self._aliases[record.id] = key
            logger.info("Task %s assigned remote id %s", task.id, record.id)

        # Local fields already hold every edit up to this one (and any queued later);
        # write responses may echo only part of the object, so take id/revision from them.
        updated = replace(task, id=record.id, revision=record.revision)
        if not self._queue.queued(key):
            updated = replace(updated, sync_state=SyncState.SYNCED, error=None)

        self._records[key] = updated
        logger.debug("Task %s %s confirmed revision=%s state=%s", updated.id, op.kind.value, updated.revision, updated.sync_state.value)

        if key in self._hidden:
            return
        self._emit(ChangeKind.UPDATE if updated.id != task.id else ChangeKind.SYNC, updated)

    def _reconcile_failure(self, key: str, task: Task, op: RemoteOp, error: TaskSyncError | None) -> None:
        dropped = self._queue.drop(key)
        if dropped:
            logger.warning(
                "Task %s: dropped %d queued op(s) after %s failed: %s",
                task.id,
                len(dropped),
                op.kind.value,
                ", ".join(d.kind.value for d in dropped),
            )

        failed = replace(task, sync_state=SyncState.FAILED, error=error)
        self._records[key] = failed
        logger.warning("Task %s -> failed (%s): %s", task.id, op.kind.value, error)

        if key in self._hidden:
            self._hidden.discard(key)
            self._emit(ChangeKind.INSERT, failed, error)
            return
        self._emit(ChangeKind.UPDATE, failed, error)

    # ---- remote execution (worker side) ----

    async def _execute(self, op: RemoteOp) -> None:
        task = self._records.get(op.key)
        if task is None:
            logger.debug("op seq=%s key=%s skipped: task is gone", op.seq, op.key)
            return

        what = f"{op.kind.value} task {task.id}"
        try:
            record, attempts = await call_with_retry(
                lambda: self._call_remote(op),
                self._retry,
                timeout=self._timeout,
                what=what,
                sleep=self._sleep,
            )
            result = RemoteResult(op=op, record=record, attempts=attempts)
        except StaleRevisionError as e:
            result = RemoteResult(op=op, error=await self._build_conflict(op, e.current))
        except NotFoundError as e:
            if op.kind == OpKind.DELETE:
                logger.info("Task %s was already deleted remotely", task.id)
                result = RemoteResult(op=op)
            elif op.kind == OpKind.UPDATE:
                result = RemoteResult(op=op, error=await self._build_conflict(op, None, refetch=False))
            else:
                result = RemoteResult(op=op, error=PermanentError(str(e), task_id=task.id, op=op.kind.value))
        except PermanentError as e:
            e.task_id = e.task_id or task.id
            e.op = e.op or op.kind.value
            result = RemoteResult(op=op, error=e, attempts=e.attempts)
        except TaskSyncError as e:
            result = RemoteResult(op=op, error=PermanentError(str(e), task_id=task.id, op=op.kind.value))
        except Exception as e:
            logger.exception("%s: unexpected remote failure", what)
            result = RemoteResult(
                op=op,
                error=PermanentError(f"{what}: {e.__class__.__name__}: {e}", task_id=task.id, op=op.kind.value),
            )

        self.reconcile(result)

    async def _call_remote(self, op: RemoteOp) -> RemoteRecord | None:
        # Read the record at dispatch time: the id and revision confirmed by earlier ops apply.
        task = self._records[op.key]

        patch = op.patch or TaskPatch(title=task.title, done=task.done)
        if op.kind == OpKind.CREATE:
            return await self._remote.create_task({"title": patch.title, "done": bool(patch.done)})

        if task.is_temporary:
            raise PermanentError(f"Task {task.id} has no remote id", task_id=task.id, op=op.kind.value)

        if op.kind == OpKind.UPDATE:
            return await self._remote.update_task(task.id, patch.fields(), revision=task.revision)

        await self._remote.delete_task(task.id, revision=task.revision)
        return None

    async def _build_conflict(
            self,
            op: RemoteOp,
            current: RemoteRecord | None,
            *,
            refetch: bool = True,
    ) -> ConflictError:
        task = self._records[op.key]
        remote = current
        fetch_error: TaskSyncError | None = None
        if refetch and remote is None:
            try:
                remote = await self._fetch_remote(task.id)
            except TaskSyncError as e:
                logger.warning("Task %s: could not fetch remote version for conflict: %s", task.id, e)
                fetch_error = e

        return ConflictError(
            task_id=task.id,
            op=op.kind.value,
            local=task,
            local_patch=op.patch,
            remote=remote.to_task() if remote is not None else None,
            fetch_error=fetch_error,
        )

    async def _fetch_remote(self, task_id: str) -> RemoteRecord | None:
        try:
            remote, _ = await call_with_retry(
                lambda: self._remote.fetch_task(task_id),
                self._retry,
                timeout=self._timeout,
                what=f"fetch task {task_id}",
                sleep=self._sleep,
            )
        except NotFoundError:
            return None
        return remote

    # ---- internals ----

    def _resolve(self, task_id: str) -> str:
        key = self._aliases.get(task_id)
        if key is None or key in self._hidden or key not in self._records:
            raise NotFoundError(task_id)
        return key

    def _is_idle_synced(self, key: str) -> bool:
        task = self._records.get(key)
        return (
            task is not None
            and task.sync_state is SyncState.SYNCED
            and key not in self._hidden
            and not self._queue.has_work(key)
        )

    def _enqueue(self, key: str, kind: OpKind, patch: TaskPatch | None = None) -> None:
        self._queue.submit(RemoteOp(seq=next(self._seq), key=key, kind=kind, patch=patch))

    def _forget(self, key: str) -> None:
        self._records.pop(key, None)
        self._hidden.discard(key)
        self._queue.drop(key)
        for alias in [a for a, k in self._aliases.items() if k == key]:
            del self._aliases[alias]

    def _emit(self, kind: ChangeKind, task: Task, error: TaskSyncError | None = None) -> None:
        event = TaskEvent(kind=kind, task=task, error=error)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Task listener crashed on %s event for %s", kind.value, task.id)
