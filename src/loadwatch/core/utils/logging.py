"""Logging setup for loadwatch.

Modules log through `get_logger(__name__)`. An application calls
`setup_logging()` once (or `LoadwatchConfig.apply_logging()`) to attach a
console handler and a rotating log file to the root logger. The file lives in
the per-user loadwatch folder from platformdirs, under `logs/loadwatch.log`.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

from platformdirs import user_config_dir

_ROOT_NAME = "loadwatch"
_LOG_FILENAME = "loadwatch.log"
_CONSOLE_FORMAT = "[%(levelname)s] %(name)s:%(lineno)d: %(message)s"
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(funcName)s:%(lineno)d: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_log_file: Optional[Path] = None


def _to_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    # getLevelName() maps a known name to its number and anything else to a string.
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: Union[str, int] = "INFO",
    max_bytes: int = 5_000_000,
    backup_count: int = 5,
    log_dir: Optional[Path] = None,
) -> None:
    """Replace the root logger's handlers with a console and a rotating file handler.

    The console shows records at `level` and above; the file keeps DEBUG.
    Safe to call again to change the level or the folder.

    Args:
        level: Console level, as a name ("DEBUG") or a number.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files to keep.
        log_dir: Folder for the log file. Defaults to `<user config dir>/logs`.
    """
    global _log_file

    numeric = _to_level(level)
    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(numeric)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    root.addHandler(console)

    folder = log_dir if log_dir is not None else Path(user_config_dir(_ROOT_NAME)) / "logs"
    folder.mkdir(parents=True, exist_ok=True)
    _log_file = folder / _LOG_FILENAME
    to_file = logging.handlers.RotatingFileHandler(
        _log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    to_file.setLevel(logging.DEBUG)
    to_file.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))
    root.addHandler(to_file)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger for `name`, or the package logger "loadwatch"."""
    return logging.getLogger(name or _ROOT_NAME)


def trace_log(logger: logging.Logger, trace: bool, msg: str, *args: object) -> None:
    """Log at INFO when tracing is enabled, otherwise at DEBUG."""
    logger.log(logging.INFO if trace else logging.DEBUG, msg, *args)


def get_log_file_path() -> Optional[Path]:
    """Path of the current log file, or None before `setup_logging()`."""
    return _log_file
