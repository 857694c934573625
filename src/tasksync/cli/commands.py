# src/tasksync/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import cast

from ..core.errors import ConflictError, TaskSyncError
from ..core.state import AppState
from ..tasks.task_models import SyncState, Task

CommandEmitter = Callable[[str], None]
CommandResult = str | Awaitable[str]
CommandHandler2 = Callable[[AppState, list[str]], CommandResult]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], CommandResult]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Handlers may be plain functions or coroutines. Task errors raised by a
        handler (validation, unknown id) become the reply text.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                out = cast(CommandHandler3, handler)(state, args, emit)
            else:
                out = cast(CommandHandler2, handler)(state, args)
            if inspect.isawaitable(out):
                out = await out
        except TaskSyncError as e:
            logger.debug("/%s rejected: %s", name, e)
            return f"{e.__class__.__name__}: {e}"
        return cast(str, out)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def format_task(task: Task) -> str:
    mark = "x" if task.done else " "
    rev = "-" if task.revision is None else str(task.revision)
    line = f"[{mark}] {task.id}  {task.title}  (rev {rev}, {task.sync_state.value})"
    if task.sync_state is SyncState.FAILED and task.error is not None:
        line += f"\n      ! {task.error}"
    return line


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    tasks = state.core.list_tasks()
    counts = {s: 0 for s in SyncState}
    for t in tasks:
        counts[t.sync_state] += 1
    remote = "in-memory (offline)" if state.offline else str(getattr(settings, "server_url", "?"))
    return (
        "Status:\n"
        f"  Remote: {remote}\n"
        f"  Tasks: {len(tasks)} (synced {counts[SyncState.SYNCED]}, pending {counts[SyncState.PENDING]}, "
        f"failed {counts[SyncState.FAILED]})\n"
        f"  Queued remote operations: {state.core.pending_operations()}\n"
        f"  Concurrency: {getattr(settings, 'max_concurrency', '?')}, "
        f"timeout: {getattr(settings, 'request_timeout_seconds', '?')}s"
    )


def cmd_list(state: AppState, args: list[str]) -> str:
    tasks = state.core.list_tasks()
    if not tasks:
        return "No tasks."
    return "\n".join(format_task(t) for t in tasks)


def cmd_add(state: AppState, args: list[str]) -> str:
    """/add <title...>"""
    task = state.core.create_task(" ".join(args))
    return f"Added {task.id} (pending)."


def cmd_done(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /done <id>"
    task = state.core.update_task(args[0], {"done": True})
    return f"Marked {task.id} done (pending)."


def cmd_undo(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /undo <id>"
    task = state.core.update_task(args[0], {"done": False})
    return f"Marked {task.id} not done (pending)."


def cmd_rename(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /rename <id> <new title...>"
    task = state.core.update_task(args[0], {"title": " ".join(args[1:])})
    return f"Renamed {task.id} (pending)."


def cmd_rm(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /rm <id>"
    state.core.delete_task(args[0])
    return f"Deleted {args[0]} (pending)."


async def cmd_resolve(state: AppState, args: list[str]) -> str:
    """
    /resolve <id> local   -> push the local change on top of the remote version
    /resolve <id> remote  -> accept the remote version
    """
    if len(args) != 2 or args[1].lower() not in ("local", "remote"):
        return "Usage: /resolve <id> local|remote"
    task = state.core.get_task(args[0])
    err = task.error
    if not isinstance(err, ConflictError):
        return f"Task {task.id} has no conflict."
    if not err.remote_known:
        # The fetch at conflict time failed: show the remote version before anything is chosen.
        err = await state.core.refresh_conflict(task.id)
        remote = format_task(err.remote) if err.remote is not None else "deleted remotely"
        return f"Remote version of {task.id} refreshed: {remote}. Run /resolve again to choose."
    result = state.core.resolve_conflict(task.id, keep="local" if args[1].lower() == "local" else "remote")
    if result is None:
        return f"Conflict on {task.id} resolved; task removed."
    return f"Conflict on {task.id} resolved: {format_task(result)}"


def cmd_evict(state: AppState, args: list[str]) -> str:
    if len(args) != 1:
        return "Usage: /evict <id>"
    state.core.evict_task(args[0])
    return f"Evicted {args[0]}."


async def cmd_sync(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if emit:
        emit("[SYNC] Fetching remote tasks...")
    tasks = await state.core.hydrate()
    return f"Synced: {len(tasks)} task(s) in view."


def cmd_failures(state: AppState, args: list[str]) -> str:
    """/failures -> show and clear failures delivered since the last call."""
    if not state.failures:
        return "No failures."
    lines = [f"{len(state.failures)} failure(s):"]
    for i, err in enumerate(state.failures, start=1):
        lines.append(f"{i}. {err.__class__.__name__}: {err}")
        if isinstance(err, ConflictError) and err.remote is not None:
            lines.append(f"   remote: {format_task(err.remote)}")
        elif isinstance(err, ConflictError) and not err.remote_known:
            lines.append("   remote: unknown (/resolve fetches it again)")
    state.failures.clear()
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show remote, task counts and queue depth.")
registry.register("list", cmd_list, help_text="List tasks.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Create a task: /add <title>.")
registry.register("done", cmd_done, help_text="Mark a task done: /done <id>.")
registry.register("undo", cmd_undo, help_text="Mark a task not done: /undo <id>.")
registry.register("rename", cmd_rename, help_text="Rename a task: /rename <id> <title>.")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <id>.", aliases=["del"])
registry.register("resolve", cmd_resolve, help_text="Resolve a conflict: /resolve <id> local|remote.")
registry.register("evict", cmd_evict, help_text="Drop a failed task locally: /evict <id>.")
registry.register("sync", cmd_sync, help_text="Pull the remote task list.")
registry.register("failures", cmd_failures, help_text="Show failures delivered since the last call.")
