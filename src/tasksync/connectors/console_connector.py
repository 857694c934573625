# src/tasksync/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import format_task
from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..tasks.task_models import ChangeKind, SyncState, TaskEvent

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _on_event(event: TaskEvent) -> None:
    # Only remote outcomes are worth interrupting the prompt for; local intents echo their own reply.
    if event.error is not None:
        _print_ts(f"[SYNC] {event.task.id} failed: {event.error}")
    elif event.kind in (ChangeKind.SYNC, ChangeKind.UPDATE) and event.task.sync_state is SyncState.SYNCED:
        _print_ts(f"[SYNC] {format_task(event.task)}")


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (offline=%s).", state.offline)
    _print_ts("[CONSOLE] Use /help for commands, /add <title> to create a task. Use /exit to quit.\n")

    unsubscribe = state.core.subscribe(_on_event)
    state.core.start()

    def emit(text: str) -> None:
        # Immediate user-visible feedback for long operations (e.g., /sync)
        _print_ts(text)

    try:
        while True:
            try:
                user_input = (await asyncio.to_thread(input, ">>> ")).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            if not user_input.startswith("/"):
                # Bare text is a shortcut for /add.
                user_input = f"/add {user_input}"

            try:
                reply = await command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                reply = "Internal error while handling a command."

            if reply is not None:
                _print_ts(reply)

        pending = state.core.pending_operations()
        if pending:
            _print_ts(f"[SYNC] Waiting for {pending} queued operation(s)...")
            try:
                await asyncio.wait_for(state.core.wait_idle(), timeout=10.0)
            except TimeoutError:
                logger.warning("Exiting with %d operation(s) still queued.", state.core.pending_operations())
    finally:
        unsubscribe()
        logger.info("Console connector finished.")
