# src/task_companion/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Loggers whose DEBUG/INFO chatter would interleave with prompts printed on stdout.
_QUIET_PREFIXES = (
    "task_companion.connectors.matrix_",
    "task_companion.forms.",
)


class _ConsoleNoiseFilter(logging.Filter):
    """
    The terminal is shared with rendered prompts, so only a few records reach it:
    - task_companion logs pass, except background/form loggers below WARNING
    - Python warnings and third-party loggers (nio, aiohttp, ...) only at ERROR+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        if name.startswith("task_companion."):
            if name.startswith(_QUIET_PREFIXES):
                return record.levelno >= logging.WARNING
            return True

        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/tasks",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    filename: str = "tasks.log",
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> Path:
    """
    Configure the root logger: filtered stderr handler + rotating file with everything.

    Call once, before the first log record. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / filename

    root = logging.getLogger()
    root.setLevel(min(console_level, file_level))
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    # The bot runs for weeks; the notifier alone writes a few lines per day.
    fh = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)

    # nio logs every sync response at DEBUG.
    logging.getLogger("nio").setLevel(logging.INFO)
    return log_file
