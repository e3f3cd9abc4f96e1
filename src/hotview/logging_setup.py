"""Centralized logging bootstrap for hotview.

Library modules only ever call ``logging.getLogger(__name__)``. An embedding
application that has its own logging setup never needs this module; the CLI
calls configure() once at startup.

// [LAW:single-enforcer] Handler wiring for the hotview logger happens here only.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path


@dataclass(frozen=True)
class LoggingRuntime:
    """Resolved runtime logging configuration."""

    level_name: str
    level: int
    # None when file logging is off
    file_path: str | None


_RUNTIME: LoggingRuntime | None = None


def _parse_level(raw: str | None) -> tuple[str, int]:
    normalized = str(raw or "INFO").strip().upper()
    level = getattr(logging, normalized, logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO
    return str(logging.getLevelName(level)), level


def _resolve_log_path(command: str) -> str | None:
    explicit = os.environ.get("HOTVIEW_LOG_FILE")
    if explicit:
        return explicit
    log_dir = os.environ.get("HOTVIEW_LOG_DIR")
    if not log_dir:
        return None
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return str(Path(log_dir) / f"hotview-{command}-{ts}-{os.getpid()}.log")


def _make_stream_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("[%(name)s] %(levelname)s %(message)s"))
    return handler


def _make_file_handler(level: int, file_path: str) -> logging.Handler:
    handler = RotatingFileHandler(
        file_path,
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    )
    return handler


def configure(command: str = "cli", level: str | None = None, stream: bool = True) -> LoggingRuntime:
    """Configure the hotview logger hierarchy.

    Level comes from ``level`` or HOTVIEW_LOG_LEVEL (default INFO). A rotating
    file handler is added when HOTVIEW_LOG_FILE or HOTVIEW_LOG_DIR is set.
    ``stream=False`` skips stderr output, for full-screen apps.

    Idempotent: repeated calls return the originally configured runtime.
    """
    global _RUNTIME
    if _RUNTIME is not None:
        return _RUNTIME

    level_name, level_value = _parse_level(level or os.environ.get("HOTVIEW_LOG_LEVEL"))
    file_path = _resolve_log_path(command)

    logger = logging.getLogger("hotview")
    logger.setLevel(level_value)
    logger.propagate = False
    logger.handlers.clear()
    if stream:
        logger.addHandler(_make_stream_handler(level_value))
    if file_path is not None:
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(_make_file_handler(level_value, file_path))
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logging.captureWarnings(True)

    _RUNTIME = LoggingRuntime(level_name=level_name, level=level_value, file_path=file_path)
    return _RUNTIME


def get_runtime() -> LoggingRuntime | None:
    """Return configured logging runtime, if configure() has run."""
    return _RUNTIME


def reset() -> None:
    """Drop handlers and forget the runtime. Tests only."""
    global _RUNTIME
    logger = logging.getLogger("hotview")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    _RUNTIME = None
