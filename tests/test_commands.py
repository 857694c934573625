# tests/test_commands.py

from __future__ import annotations

import pytest

from tasksync.cli.commands import CommandRegistry
from tasksync.cli.commands import registry as command_registry
from tasksync.core.errors import NotFoundError, StaleRevisionError, TransientError


@pytest.mark.asyncio
async def test_command_registry_routes_sync_async_and_emit(state) -> None:
    reg = CommandRegistry()
    called = {"h2": 0, "h3": 0}
    notes: list[str] = []

    def h2(state, args):
        called["h2"] += 1
        return "h2"

    async def h3(state, args, emit):
        called["h3"] += 1
        if emit is not None:
            emit("note")
        return "h3"

    reg.register("a", h2, "a")
    reg.register("b", h3, "b")

    assert await reg.handle(state, "/a x") == "h2"
    assert await reg.handle(state, "/b y", emit=notes.append) == "h3"
    assert called == {"h2": 1, "h3": 1}
    assert notes == ["note"]


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")


@pytest.mark.asyncio
async def test_task_errors_become_replies(state) -> None:
    reg = CommandRegistry()

    def boom(state, args):
        raise NotFoundError("T404")

    reg.register("boom", boom, "boom")
    assert await reg.handle(state, "/boom") == "NotFoundError: Task not found: T404"


@pytest.mark.asyncio
async def test_add_list_done_rm_flow(state) -> None:
    reply = await command_registry.handle(state, "/add Buy milk")
    assert reply is not None and reply.startswith("Added tmp-")

    await state.core.wait_idle()
    listing = await command_registry.handle(state, "/list")
    assert "T1  Buy milk  (rev 1, synced)" in listing

    assert await command_registry.handle(state, "/done T1") == "Marked T1 done (pending)."
    await state.core.wait_idle()
    assert state.core.get_task("T1").done is True

    assert await command_registry.handle(state, "/rm T1") == "Deleted T1 (pending)."
    assert "not found" in (await command_registry.handle(state, "/rm T1") or "")
    await state.core.wait_idle()
    assert await command_registry.handle(state, "/list") == "No tasks."


@pytest.mark.asyncio
async def test_add_rejects_empty_title(state) -> None:
    reply = await command_registry.handle(state, "/add")
    assert reply is not None and reply.startswith("ValidationError")


@pytest.mark.asyncio
async def test_sync_and_status(state, remote) -> None:
    remote.seed("from elsewhere")
    emitted: list[str] = []

    assert await command_registry.handle(state, "/sync", emit=emitted.append) == "Synced: 1 task(s) in view."
    assert emitted

    status = await command_registry.handle(state, "/status")
    assert "in-memory (offline)" in status
    assert "synced 1" in status


@pytest.mark.asyncio
async def test_resolve_conflict_command(state, remote) -> None:
    remote.seed("Buy milk")
    await state.core.hydrate()
    remote.touch("T1", title="Buy oat milk")

    state.core.update_task("T1", {"done": True})
    await state.core.wait_idle()

    assert await command_registry.handle(state, "/resolve T1") == "Usage: /resolve <id> local|remote"
    reply = await command_registry.handle(state, "/resolve T1 remote")
    assert reply.startswith("Conflict on T1 resolved")
    assert state.core.get_task("T1").title == "Buy oat milk"


@pytest.mark.asyncio
async def test_resolve_refreshes_unknown_remote_version_before_choosing(state, remote) -> None:
    remote.seed("Buy milk")
    await state.core.hydrate()
    remote.fail_next("update", StaleRevisionError("T1", 1))
    remote.fail_next("fetch", TransientError("backend down"), times=5)

    state.core.update_task("T1", {"done": True})
    await state.core.wait_idle()
    assert not state.core.get_task("T1").error.remote_known

    reply = await command_registry.handle(state, "/resolve T1 local")
    assert reply.startswith("Remote version of T1 refreshed: [ ] T1  Buy milk")
    assert state.core.get_task("T1").error.remote_known

    reply = await command_registry.handle(state, "/resolve T1 local")
    assert reply.startswith("Conflict on T1 resolved")
    await state.core.wait_idle()
    assert remote.records["T1"].done is True
    assert [c[0] for c in remote.calls].count("create") == 0
