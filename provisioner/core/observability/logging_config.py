"""
Logging setup for provisioning runs.

``setup_logging`` is called once by main.py. Every record passes through
``RunIdFilter``, which stamps it with the id of the run in progress (or
``-`` outside a run), so interleaved lines in a shared log file can be
traced back to one ledger entry.

Console level: --debug/--verbose/--quiet, then PROVISIONER_LOG_LEVEL,
then WARNING. A log file (PROVISIONER_LOG_FILE) gets its own level from
PROVISIONER_LOG_FILE_LEVEL and always carries the run id.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Iterator

LEVEL_ENV = "PROVISIONER_LOG_LEVEL"
FILE_ENV = "PROVISIONER_LOG_FILE"
FILE_LEVEL_ENV = "PROVISIONER_LOG_FILE_LEVEL"

NO_RUN = "-"

_current_run: ContextVar[str] = ContextVar("provisioner_run_id", default=NO_RUN)

_DETAILED = "%(asctime)s %(levelname)-5s [%(run_id)s] %(name)s:%(lineno)d %(message)s"

# Console formats by level; WARNING and above print the bare message
_CONSOLE_FORMATS: tuple[tuple[int, str, str], ...] = (
    (logging.DEBUG, _DETAILED, "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_FILE_FORMAT = _DETAILED
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


class RunIdFilter(logging.Filter):
    """Adds ``record.run_id`` from the active run context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _current_run.get()
        return True


@contextmanager
def run_context(run_id: str) -> Iterator[str]:
    """Tag every record logged inside the block with ``run_id``."""
    token = _current_run.set(run_id)
    try:
        yield run_id
    finally:
        _current_run.reset(token)


def current_run_id() -> str:
    return _current_run.get()


def resolve_level(flag_level: str | None = None) -> str:
    """Console level name: explicit flag, then env, then WARNING."""
    return flag_level or os.environ.get(LEVEL_ENV) or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Replace the root logger's handlers with the provisioner's.

    Args:
        level: Console level name.
        log_file: Log file path (default: $PROVISIONER_LOG_FILE). Missing
            parent directories are created.
        log_file_level: File level name (default:
            $PROVISIONER_LOG_FILE_LEVEL, then ``level``).
    """
    console_level = _parse_level(level)
    run_filter = RunIdFilter()

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))
    console.addFilter(run_filter)
    root.addHandler(console)
    root_level = console_level

    log_file = log_file or os.environ.get(FILE_ENV)
    if log_file:
        file_level = _parse_level(
            log_file_level or os.environ.get(FILE_LEVEL_ENV) or level
        )
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        file_handler.addFilter(run_filter)
        root.addHandler(file_handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter("%(message)s")


def _parse_level(level: str | None) -> int:
    """Level name to its numeric value; unknown names mean WARNING."""
    numeric = logging.getLevelName(level.upper()) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
