from __future__ import annotations

import logging
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "osm_router"
LOG_FILE_NAME = "router.log.jsonl"
_RECORD_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _log_file_candidates() -> list[Path]:
    """Places the JSONL log may go, most preferred first.

    An explicit LOG_FILE is used as-is with no fallback.
    """
    configured = str(settings.log_file or "").strip()
    if configured:
        return [Path(configured)]
    return [
        Path(settings.out_dir) / "logs" / LOG_FILE_NAME,
        Path(gettempdir()) / "osm-router" / LOG_FILE_NAME,
    ]


def _open_file_handler() -> logging.FileHandler | None:
    for path in _log_file_candidates():
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return logging.FileHandler(path, encoding="utf-8")
        except OSError:
            continue
    return None


def get_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if getattr(logger, "_configured", False):
        return logger

    logger.setLevel(_parse_level(settings.log_level))
    logger.propagate = False
    formatter = jsonlogger.JsonFormatter(_RECORD_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_to_file:
        file_handler = _open_file_handler()
        if file_handler is not None:
            handlers.append(file_handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger._configured = True  # type: ignore[attr-defined]
    return logger


LOGGER: logging.Logger | None = None


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    global LOGGER
    if LOGGER is None:
        LOGGER = get_logger()
    LOGGER.log(level, event, extra={"event": event, **fields})
