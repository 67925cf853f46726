from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "route_optimizer"
LOG_FILE_NAME = "engine.log.jsonl"

_RECORD_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _parse_level(name: str | int) -> int:
    if isinstance(name, int):
        return name
    level = logging.getLevelName(str(name).strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _formatter() -> logging.Formatter:
    return jsonlogger.JsonFormatter(
        _RECORD_FORMAT,
        rename_fields={"asctime": "ts", "levelname": "level", "name": "logger"},
    )


def _file_handler(out_dir: str) -> logging.Handler | None:
    log_dir = Path(out_dir) / "logs"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
    except OSError:
        return None


def configure_logging(level: str | int | None = None, *, to_file: bool | None = None) -> logging.Logger:
    """(Re)attach the JSON handlers to the engine logger.

    Safe to call repeatedly: existing handlers are closed and replaced, so a CLI
    run can override the level or turn file output off after import.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(_parse_level(settings.log_level if level is None else level))
    logger.propagate = False
    formatter = _formatter()

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    unwritable_dir: str | None = None
    if settings.log_to_file if to_file is None else to_file:
        fh = _file_handler(settings.out_dir)
        if fh is None:
            unwritable_dir = settings.out_dir
        else:
            fh.setFormatter(formatter)
            logger.addHandler(fh)

    logger._configured = True  # type: ignore[attr-defined]
    if unwritable_dir is not None:
        # Stderr output still works; only the JSONL copy is lost.
        logger.warning("log_file_unavailable", extra={"event": "log_file_unavailable", "out_dir": unwritable_dir})
    return logger


def get_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if getattr(logger, "_configured", False):
        return logger
    return configure_logging()


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    # The event name doubles as the message and a top-level key
    get_logger().log(level, event, extra={"event": event, **fields})


def log_debug(event: str, **fields: Any) -> None:
    log_event(event, level=logging.DEBUG, **fields)


def log_warning(event: str, **fields: Any) -> None:
    log_event(event, level=logging.WARNING, **fields)
