# src/tasksync/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Per-request and per-op chatter: useful in the file, noise at the prompt.
_QUIET_ON_CONSOLE = ("tasksync.remote.", "tasksync.tasks.op_queue")
_THIRD_PARTY_HTTP = ("httpx", "httpcore")


def coerce_level(level: int | str | None, default: int = logging.INFO) -> int:
    """Accept 10 / "10" / "debug" / "WARNING"; unknown names fall back to default."""
    if level is None:
        return default
    if isinstance(level, int):
        return level
    text = str(level).strip()
    if text.isdigit():
        return int(text)
    value = logging.getLevelName(text.upper())
    return value if isinstance(value, int) else default


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable while sync runs in the background:
    - sync core, commands and connector logs pass through
    - remote adapter and op queue only at WARNING+ (every request logs at DEBUG)
    - captured warnings and any third-party logger only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.startswith("tasksync."):
            if name.startswith(_QUIET_ON_CONSOLE):
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/tasksync",
    app_name: str = "tasksync",
    console_level: int | str = logging.INFO,
    file_level: int | str = logging.DEBUG,
) -> Path:
    """
    Install a filtered stderr handler and a full file handler at <log_dir>/<app_name>.log.

    Call once, before the first log line. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{app_name or 'tasksync'}.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(coerce_level(console_level))
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(coerce_level(file_level, logging.DEBUG))
    fh.setFormatter(fmt)
    root.addHandler(fh)

    # warnings.warn(...) -> 'py.warnings'
    logging.captureWarnings(True)

    # httpx logs every request at INFO; the adapter already logs status codes at DEBUG.
    for name in _THIRD_PARTY_HTTP:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_file
