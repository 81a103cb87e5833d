"""Logging setup for the backup scheduler runner.

Records go to the console and, when the log directory is writable, to a
rotating main file plus an error-only file next to it.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")

_CONFIGURED_FLAG = "_backup_scheduler_logging_configured"


def resolve_level(log_level: Optional[str], debug: bool = False) -> int:
    """Translate a level name into a numeric logging level.

    Args:
        log_level: Level name such as ``INFO``; blank falls back to ``debug``.
        debug: Use DEBUG when no level name is given.

    Returns:
        int: Numeric level.

    Raises:
        ValueError: When the level name is unknown.
    """

    name = str(log_level or "").strip().upper()
    if not name:
        return logging.DEBUG if debug else logging.INFO

    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValueError(f"Invalid log level: {log_level}")
    return level


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter, max_bytes: int, backup_count: int):
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _error_filename(log_filename: str) -> str:
    path = Path(log_filename)
    return f"{path.stem}.error{path.suffix or '.log'}"


def _quiet(names: Iterable[str]) -> None:
    for name in names:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging(
    *,
    log_dir: str = "/app/logs",
    log_level: str = "INFO",
    debug: bool = False,
    log_filename: str = "backup-scheduler.log",
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Configure the root logger once per process.

    Later calls are no-ops. If the log directory cannot be created or opened
    the runner keeps logging to the console only.

    Args:
        log_dir: Directory for the log files.
        log_level: Root level name.
        debug: Default to DEBUG when ``log_level`` is blank.
        log_filename: Main log file name; the error file is derived from it.
        max_bytes: Rotation size per file.
        backup_count: Rotated files kept per log.

    Raises:
        ValueError: When ``log_level`` is not a known level name.
    """

    root = logging.getLogger()
    if getattr(root, _CONFIGURED_FLAG, False):
        return

    level = resolve_level(log_level, debug)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    root.setLevel(level)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    directory = Path(log_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        main_file = _rotating_handler(directory / log_filename, level, formatter, max_bytes, backup_count)
        error_file = _rotating_handler(
            directory / _error_filename(log_filename), logging.ERROR, formatter, max_bytes, backup_count
        )
    except OSError:
        logging.getLogger(__name__).warning("File logging disabled; cannot write to %s", log_dir)
    else:
        root.addHandler(main_file)
        root.addHandler(error_file)

    _quiet(NOISY_LOGGERS)
    logging.captureWarnings(True)
    setattr(root, _CONFIGURED_FLAG, True)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a named logger."""

    return logging.getLogger(name or __name__)
