"""Logging configuration shared by the CLI, the bridge and the monitor."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "agent-inbox.log"


class _ConsoleNoiseFilter(logging.Filter):
    """Keep our own records on the console; third-party loggers only at ERROR+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("agent_inbox."):
            return True
        return record.levelno >= logging.ERROR


class _AgentInboxHandler:
    """Marker mixin so repeated setup only replaces handlers installed here."""


class _ConsoleHandler(_AgentInboxHandler, logging.StreamHandler):
    pass


class _FileHandler(_AgentInboxHandler, logging.FileHandler):
    pass


def setup_logging(
    *,
    log_dir: str | Path,
    console_level: int | str = logging.WARNING,
    file_level: int = logging.DEBUG,
) -> Path:
    """Configure stderr and file logging; returns the log file path.

    Console output always goes to stderr: stdout carries command output and,
    for the bridge, the framed protocol.
    """

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    remove_handlers()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(process)d %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = _ConsoleHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = _FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
    return log_file


def remove_handlers() -> None:
    """Detach and close handlers installed by ``setup_logging``."""

    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, _AgentInboxHandler):
            root.removeHandler(handler)
            handler.close()
