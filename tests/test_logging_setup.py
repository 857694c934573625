# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tasksync.logging_setup import _ConsoleNoiseFilter, coerce_level, setup_logging


@pytest.mark.parametrize(
    "value, expected",
    [
        ("debug", logging.DEBUG),
        ("WARNING", logging.WARNING),
        ("30", logging.WARNING),
        (logging.ERROR, logging.ERROR),
        ("nonsense", logging.INFO),
        (None, logging.INFO),
    ],
)
def test_coerce_level(value, expected: int) -> None:
    assert coerce_level(value) == expected


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_quiets_remote_and_queue_chatter() -> None:
    f = _ConsoleNoiseFilter()

    assert f.filter(_record("tasksync.tasks.sync_core", logging.INFO))
    assert not f.filter(_record("tasksync.remote.parse_client", logging.DEBUG))
    assert f.filter(_record("tasksync.remote.parse_client", logging.WARNING))
    assert not f.filter(_record("tasksync.tasks.op_queue", logging.INFO))
    assert not f.filter(_record("httpx", logging.WARNING))
    assert f.filter(_record("httpx", logging.ERROR))
    assert not f.filter(_record("py.warnings", logging.WARNING))


def test_setup_logging_writes_file_named_after_app(tmp_path: Path) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        log_file = setup_logging(log_dir=tmp_path / "logs", app_name="demo", console_level="warning")

        assert log_file == tmp_path / "logs" / "demo.log"
        console, file_handler = root.handlers
        assert console.level == logging.WARNING
        assert file_handler.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

        logging.getLogger("tasksync.remote.parse_client").debug("GET /classes/Task -> 200")
        file_handler.flush()
        assert "GET /classes/Task -> 200" in log_file.read_text(encoding="utf-8")
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
        logging.captureWarnings(False)
