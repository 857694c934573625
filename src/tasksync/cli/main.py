# src/tasksync/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, restores the last snapshot,
pulls the remote list (when reachable) and runs the console loop.
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, load_snapshot, shutdown
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.errors import TaskSyncError
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(settings) -> None:
    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    restored = load_snapshot(state)
    if restored:
        logger.info("Restored %d task(s) from %s", restored, settings.snapshot_db_path)

    try:
        await state.core.hydrate()
    except TaskSyncError as e:
        logger.warning("Initial sync failed, working from the local snapshot: %s", e)

    try:
        await run_console_loop(state)
    finally:
        await shutdown(state)
        logger.info("Bye.")


def main() -> None:
    settings = get_settings()

    log_file = setup_logging(
        log_dir=settings.data_dir,
        app_name=getattr(settings, "app_name", "tasksync"),
        console_level=getattr(settings, "log_level", "INFO"),
    )

    logger.info("Starting %s... (log file: %s)", getattr(settings, "app_name", "tasksync"), log_file)

    try:
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted.")


if __name__ == "__main__":
    main()
