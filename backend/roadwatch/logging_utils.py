from __future__ import annotations

import logging
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "roadwatch"
LOG_FILE_NAME = "roadwatch.log.jsonl"

_JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _parse_level(name: str) -> int:
    level = logging.getLevelName(str(name or "").upper())
    return level if isinstance(level, int) else logging.INFO


def _resolve_log_dir(configured_out_dir: str) -> Path | None:
    """First writable logs/ directory: the configured out dir, ./out, then the temp dir."""
    for log_dir in (
        Path(configured_out_dir) / "logs",
        Path.cwd() / "out" / "logs",
        Path(gettempdir()) / LOGGER_NAME / "logs",
    ):
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            probe = log_dir / ".writetest"
            probe.touch(exist_ok=True)
            probe.unlink(missing_ok=True)
        except OSError:
            continue
        return log_dir
    return None


def _json_formatter() -> jsonlogger.JsonFormatter:
    return jsonlogger.JsonFormatter(
        _JSON_FORMAT,
        rename_fields={"asctime": "ts", "levelname": "level", "name": "logger"},
    )


def configure_logging(*, level: str | None = None, out_dir: str | None = None) -> logging.Logger:
    """Attach the stderr and JSON-lines file handlers to the package logger.

    Safe to call more than once: existing handlers are replaced, so scripts can
    raise the level after the API module has already logged.
    """
    global LOGGER
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(_parse_level(level or settings.log_level))
    logger.propagate = False
    formatter = _json_formatter()

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    log_dir = _resolve_log_dir(out_dir or settings.out_dir)
    if log_dir is not None:
        try:
            file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
        except OSError:
            file_handler = None
        if file_handler is not None:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
    LOGGER = logger
    return logger


LOGGER: logging.Logger | None = None


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one structured record; ``event`` is both the message and a top-level key."""
    logger = LOGGER if LOGGER is not None else configure_logging()
    logger.log(level, event, extra={"event": event, **fields})
