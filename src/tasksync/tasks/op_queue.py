# src/tasksync/tasks/op_queue.py

from __future__ import annotations

"""
Per-record FIFO queues drained by a bounded worker pool.

- every record key owns a deque of RemoteOp
- a key sits in the ready queue (or in a worker) at most once,
  so two operations for the same record never run concurrently
- different keys are processed by up to max_concurrency workers

submit() is synchronous and never blocks; workers are asyncio tasks.
"""

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Awaitable, Callable

from .task_models import RemoteOp

logger = logging.getLogger(__name__)

OpHandler = Callable[[RemoteOp], Awaitable[None]]


class OpQueue:
    def __init__(self, handler: OpHandler, *, max_concurrency: int = 4) -> None:
        self._handler = handler
        self._max_concurrency = max(1, int(max_concurrency))
        self._queues: dict[str, deque[RemoteOp]] = {}
        self._scheduled: set[str] = set()
        self._inflight: dict[str, RemoteOp] = {}
        self._ready: asyncio.Queue[str] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    # ---- producer side ----

    def submit(self, op: RemoteOp) -> None:
        q = self._queues.setdefault(op.key, deque())
        q.append(op)
        logger.debug("queued op seq=%s kind=%s key=%s depth=%d", op.seq, op.kind.value, op.key, len(q))
        if op.key not in self._scheduled:
            self._scheduled.add(op.key)
            self._ready.put_nowait(op.key)
        self._start_if_running()

    def drop(self, key: str) -> list[RemoteOp]:
        """Remove queued (not in-flight) operations for key and return them."""
        q = self._queues.get(key)
        if not q:
            return []
        dropped = list(q)
        q.clear()
        return dropped

    def queued(self, key: str) -> int:
        q = self._queues.get(key)
        return len(q) if q else 0

    def in_flight(self, key: str) -> RemoteOp | None:
        return self._inflight.get(key)

    def has_work(self, key: str) -> bool:
        return self.queued(key) > 0 or key in self._inflight

    def total(self) -> int:
        return sum(len(q) for q in self._queues.values()) + len(self._inflight)

    # ---- lifecycle ----

    def _start_if_running(self) -> None:
        if self._workers:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: start() will spin workers up later.
            return
        self.start()

    def start(self) -> None:
        """Spawn the worker tasks. Must be called from inside a running event loop."""
        if self._workers:
            return
        for n in range(self._max_concurrency):
            self._workers.append(asyncio.create_task(self._worker(n), name=f"tasksync-worker-{n}"))
        logger.debug("OpQueue started workers=%d", self._max_concurrency)

    async def join(self) -> None:
        """Wait until every queued operation has been handled."""
        self.start()
        await self._ready.join()

    async def aclose(self) -> None:
        workers, self._workers = self._workers, []
        for w in workers:
            w.cancel()
        for w in workers:
            with contextlib.suppress(asyncio.CancelledError):
                await w
        left = self.total()
        if left:
            logger.warning("OpQueue closed with %d unfinished operation(s)", left)

    # ---- consumer side ----

    async def _worker(self, n: int) -> None:
        while True:
            key = await self._ready.get()
            try:
                q = self._queues.get(key)
                if not q:
                    self._queues.pop(key, None)
                    self._scheduled.discard(key)
                    continue

                op = q.popleft()
                self._inflight[key] = op
                try:
                    await self._handler(op)
                except Exception:
                    logger.exception("op handler crashed worker=%d seq=%s key=%s", n, op.seq, key)
                finally:
                    self._inflight.pop(key, None)

                if q:
                    self._ready.put_nowait(key)
                else:
                    self._queues.pop(key, None)
                    self._scheduled.discard(key)
            finally:
                self._ready.task_done()
