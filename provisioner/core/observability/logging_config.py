"""
Logging configuration — central setup for the CLI entrypoint.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    CLI flag  >  PROVISIONER_LOG_LEVEL env var  >  INFO (default)

Provisioning is a long, linear run, so the default console level is
INFO: every step announces itself with a timestamped line.

Optional file output via PROVISIONER_LOG_FILE / PROVISIONER_LOG_FILE_LEVEL.
File lines carry the run ID of the run that emitted them, so a log file
shared by several runs can be matched against the audit ledger.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

# ── Format strings ──────────────────────────────────────────────

# WARNING and above: the bare message
_FMT_MINIMAL = "%(message)s"

# INFO: one timestamped line per event
_FMT_INFO = "[%(asctime)s] %(message)s"

# DEBUG: adds level and origin
_FMT_DEBUG = "[%(asctime)s] %(levelname)-5s %(name)s:%(lineno)d  %(message)s"

_DATEFMT_CONSOLE = "%Y-%m-%dT%H:%M:%S%z"

# File output: always full detail, tagged with the run
_FMT_FILE = "%(asctime)s %(levelname)-5s [%(run_id)s] %(name)s:%(lineno)d  %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

DEFAULT_LEVEL = "INFO"

_NO_RUN = "-"
_current_run_id: ContextVar[str] = ContextVar("provisioner_run_id", default=_NO_RUN)

# File handlers opened by setup_logging, closed on reconfiguration
_owned_files: list[logging.FileHandler] = []


class _RunIdFilter(logging.Filter):
    """Stamp every record with the active run ID."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _current_run_id.get()
        return True


@contextmanager
def run_log_context(run_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block with ``run_id``."""
    token = _current_run_id.set(run_id)
    try:
        yield
    finally:
        _current_run_id.reset(token)


def setup_logging(
    level: str = DEFAULT_LEVEL,
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        log_file_level: Optional separate level for the log file.
            Defaults to the same as ``level``.
    """
    numeric_level = _parse_level(level)

    root = logging.getLogger()
    _reset_handlers(root)
    root.addHandler(_console_handler(numeric_level))

    # Effective root level = minimum of console and file levels
    effective_level = numeric_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)
        root.addHandler(_file_handler(log_file, file_level))

    root.setLevel(effective_level)

    # Don't propagate exceptions from logging itself
    logging.raiseExceptions = False


def _console_handler(numeric_level: int) -> logging.Handler:
    if numeric_level <= logging.DEBUG:
        formatter = logging.Formatter(_FMT_DEBUG, datefmt=_DATEFMT_CONSOLE)
    elif numeric_level <= logging.INFO:
        formatter = logging.Formatter(_FMT_INFO, datefmt=_DATEFMT_CONSOLE)
    else:
        formatter = logging.Formatter(_FMT_MINIMAL)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(formatter)
    return console


def _file_handler(path: str, numeric_level: int) -> logging.Handler:
    fh = logging.FileHandler(path, encoding="utf-8")
    fh.setLevel(numeric_level)
    fh.addFilter(_RunIdFilter())
    fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
    _owned_files.append(fh)
    return fh


def _reset_handlers(root: logging.Logger) -> None:
    """Detach existing handlers, closing any files we opened earlier."""
    for handler in list(root.handlers):
        root.removeHandler(handler)
    while _owned_files:
        _owned_files.pop().close()


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.INFO
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.INFO
    return numeric
