from __future__ import annotations

import logging
import os
import sys
import traceback
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_DIR_ENV = "SUARASTUDIO_LOG_DIR"
DEBUG_ENV = "SUARASTUDIO_DEBUG"
ROOT_LOGGER = "suarastudio"

_LOGGER = logging.getLogger("suarastudio.logging")
_LOG_FILE = "suarastudio.log"
_MAX_LOG_BYTES = 2_000_000
_LOG_BACKUPS = 3
_FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_FALSE_VALUES = frozenset({"", "0", "false", "no", "off"})
_configured = False


class _EmojiFormatter(logging.Formatter):
    """Console formatter that prefixes each record with a level emoji."""

    _PREFIXES = {
        logging.DEBUG: "🐛",
        logging.INFO: "🎧",
        logging.WARNING: "⚠️",
        logging.ERROR: "❌",
        logging.CRITICAL: "💥",
    }

    def __init__(self) -> None:
        super().__init__("%(emoji)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        record.emoji = self._PREFIXES.get(record.levelno, "•")
        return super().format(record)


def debug_enabled() -> bool:
    return os.environ.get(DEBUG_ENV, "").strip().lower() not in _FALSE_VALUES


def get_log_dir() -> Path:
    configured = os.environ.get(LOG_DIR_ENV)
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".suarastudio" / "logs"


def get_log_path() -> Path:
    return get_log_dir() / _LOG_FILE


def _console_handler() -> logging.Handler:
    handler = logging.StreamHandler(stream=sys.__stderr__)
    handler.setLevel(logging.DEBUG if debug_enabled() else logging.WARNING)
    handler.setFormatter(_EmojiFormatter())
    return handler


def _file_handler() -> logging.Handler | None:
    path = get_log_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            path,
            maxBytes=_MAX_LOG_BYTES,
            backupCount=_LOG_BACKUPS,
            encoding="utf-8",
            delay=True,
        )
    except OSError as exc:
        _LOGGER.warning("File logging disabled for %s: %s", path, exc)
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATE_FORMAT))
    return handler


def configure_logging(*, force: bool = False) -> None:
    """Attach console and file handlers to the ``suarastudio`` logger.

    Runs once per process unless ``force`` is set, in which case existing
    handlers are closed and rebuilt from the current environment. The
    console handler is skipped when the host application already
    configured the root logger.
    """

    global _configured
    if _configured and not force:
        return

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)
    if force:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    if force or not logging.getLogger().handlers:
        logger.addHandler(_console_handler())
    file_handler = _file_handler()
    if file_handler is not None:
        logger.addHandler(file_handler)

    logger.propagate = True
    _configured = True


def log_exception(context: str, exc: BaseException) -> Path | None:
    """Append ``exc`` and its traceback to the log file; return the file written."""

    path = get_log_path()
    stamp = datetime.now().isoformat(timespec="seconds")
    trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    entry = f"[{stamp}] {context} failed: {type(exc).__name__}: {exc}\n{trace}\n"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(entry)
    except OSError as log_exc:
        _LOGGER.warning("Failed to write %s: %s", path, log_exc)
        return None
    return path
