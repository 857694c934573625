# tests/fakes.py

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from tasksync.remote.memory import InMemoryTaskStore
from tasksync.tasks.task_models import ChangeKind, TaskEvent


@dataclass(slots=True)
class RecordingListener:
    """
    Subscriber used by core tests.

    - Captures every TaskEvent for assertions
    """

    events: list[TaskEvent] = field(default_factory=list)

    def __call__(self, event: TaskEvent) -> None:
        self.events.append(event)

    def kinds(self) -> list[ChangeKind]:
        return [e.kind for e in self.events]

    def errors(self) -> list[Exception]:
        return [e.error for e in self.events if e.error is not None]


class SlowTaskStore(InMemoryTaskStore):
    """
    In-memory remote that holds every call for `delay` seconds and tracks
    how many calls are in flight at once.
    """

    def __init__(self, delay: float = 0.01) -> None:
        super().__init__()
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def _enter(self, op: str, task_id: str | None) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            await super()._enter(op, task_id)
        finally:
            self.active -= 1


class GatedTaskStore(InMemoryTaskStore):
    """
    In-memory remote whose create stores the record, then waits for `release`
    before answering. Lets a test act while a create is visible remotely but
    not yet confirmed locally.
    """

    def __init__(self) -> None:
        super().__init__()
        self.created = asyncio.Event()
        self.release = asyncio.Event()

    async def create_task(self, fields):
        rec = await super().create_task(fields)
        self.created.set()
        await self.release.wait()
        return rec
