"""Process logging for ata2.

Everything below the ``ata2`` logger goes to stderr and to a rotating file
under ``~/.ata2/logs``. Streamed response text never passes through here.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Mapping, Union

__all__ = ["setup_logger", "redact_headers"]

DEFAULT_LOG_FILE = Path("~/.ata2/logs/ata2.log").expanduser()
CONSOLE_FORMAT = "[%(levelname).1s] %(message)s"
FILE_FORMAT = "%(asctime)s %(threadName)s [%(levelname)s] %(name)s: %(message)s"
MAX_LOG_BYTES = 5 * 1024 * 1024  # 5MB
LOG_BACKUP_COUNT = 3
QUIET_LOGGERS = ("urllib3", "requests", "asyncio")
SENSITIVE_HEADERS = frozenset({"authorization", "api-key"})

LogTarget = Union[str, Path, bool, None]


def setup_logger(name: str = "ata2", verbose: bool = False, log_file: LogTarget = None) -> logging.Logger:
    """Attach fresh handlers to ``name`` and return it.

    ``verbose`` turns on DEBUG, which includes request headers and bodies
    (credentials redacted). ``log_file`` is ``None``/``True`` for the default
    file, ``False`` for console only, or a path.
    """
    logger = logging.getLogger(name)
    level = logging.DEBUG if verbose else logging.WARNING

    _drop_handlers(logger)
    logger.setLevel(level)
    logger.propagate = False

    logger.addHandler(_handler(logging.StreamHandler(), level, CONSOLE_FORMAT))
    log_path = _resolve_log_path(log_file)
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(
            log_path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8",
        )
        logger.addHandler(_handler(rotating, level, FILE_FORMAT))

    _quiet(QUIET_LOGGERS)
    return logger


def redact_headers(headers: Mapping[str, str]) -> dict:
    """Copy ``headers`` with credentials replaced, for debug logging."""
    return {
        key: "[redacted]" if key.lower() in SENSITIVE_HEADERS else value
        for key, value in dict(headers).items()
    }


# ── Helpers ─────────────────────────────────


def _handler(handler: logging.Handler, level: int, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def _drop_handlers(logger: logging.Logger) -> None:
    # setup_logger may run more than once per process (tests, re-invocation).
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def _quiet(names: Iterable[str]) -> None:
    for name in names:
        logging.getLogger(name).setLevel(logging.WARNING)


def _resolve_log_path(log_file: LogTarget) -> Path | None:
    if log_file is False:
        return None
    if log_file is None or log_file is True:
        return DEFAULT_LOG_FILE
    return Path(log_file).expanduser()
