# src/tasksync/remote/memory.py

from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import replace
from typing import Any

from ..core.errors import NotFoundError, PermanentError, StaleRevisionError
from ..tasks.task_models import RemoteRecord

logger = logging.getLogger(__name__)


class InMemoryTaskStore:
    """
    Offline remote used for demos when no backend is configured (and by tests).

    Behavior mirrors the REST contract:
    - create assigns ids T1, T2, ... and revision 1
    - update/delete must carry the current revision, else StaleRevisionError
    - every write bumps the revision by one

    Failures can be scripted per operation with fail_next().
    """

    def __init__(self, *, latency: float = 0.0) -> None:
        self.latency = latency
        self.records: dict[str, RemoteRecord] = {}
        self.calls: list[tuple[str, str | None]] = []
        self._ids = itertools.count(1)
        self._failures: dict[str, deque[BaseException]] = {}

    # ---- test / demo helpers ----

    def fail_next(self, op: str, error: BaseException, times: int = 1) -> None:
        """Make the next `times` calls of op ("create", "list", "fetch", "update", "delete") raise error."""
        q = self._failures.setdefault(op, deque())
        for _ in range(times):
            q.append(error)

    def seed(self, title: str, *, done: bool = False) -> RemoteRecord:
        rec = RemoteRecord(id=f"T{next(self._ids)}", title=title, done=done, revision=1)
        self.records[rec.id] = rec
        return rec

    def touch(self, task_id: str, **fields: Any) -> RemoteRecord:
        """Simulate an edit made by another client."""
        rec = self.records[task_id]
        rec = replace(rec, revision=rec.revision + 1, **fields)
        self.records[task_id] = rec
        return rec

    # ---- RemoteTaskStore ----

    async def _enter(self, op: str, task_id: str | None) -> None:
        self.calls.append((op, task_id))
        if self.latency > 0:
            await asyncio.sleep(self.latency)
        q = self._failures.get(op)
        if q:
            err = q.popleft()
            logger.debug("InMemoryTaskStore: scripted %s failure for %s: %r", op, task_id, err)
            raise err

    async def create_task(self, fields: dict[str, Any]) -> RemoteRecord:
        await self._enter("create", None)
        title = str(fields.get("title") or "").strip()
        if not title:
            raise PermanentError("title is required", status_code=400)
        rec = RemoteRecord(id=f"T{next(self._ids)}", title=title, done=bool(fields.get("done", False)), revision=1)
        self.records[rec.id] = rec
        return rec

    async def list_tasks(self) -> list[RemoteRecord]:
        await self._enter("list", None)
        return list(self.records.values())

    async def fetch_task(self, task_id: str) -> RemoteRecord | None:
        await self._enter("fetch", task_id)
        return self.records.get(task_id)

    async def update_task(self, task_id: str, fields: dict[str, Any], *, revision: int | None) -> RemoteRecord:
        await self._enter("update", task_id)
        rec = self.records.get(task_id)
        if rec is None:
            raise NotFoundError(task_id)
        if revision != rec.revision:
            raise StaleRevisionError(task_id, revision, current=rec)
        rec = replace(
            rec,
            title=str(fields.get("title", rec.title)),
            done=bool(fields.get("done", rec.done)),
            revision=rec.revision + 1,
        )
        self.records[task_id] = rec
        return rec

    async def delete_task(self, task_id: str, *, revision: int | None) -> None:
        await self._enter("delete", task_id)
        rec = self.records.get(task_id)
        if rec is None:
            raise NotFoundError(task_id)
        if revision != rec.revision:
            raise StaleRevisionError(task_id, revision, current=rec)
        del self.records[task_id]

    async def aclose(self) -> None:
        return
