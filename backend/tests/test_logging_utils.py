from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from route_optimizer.logging_utils import (
    LOG_FILE_NAME,
    LOGGER_NAME,
    _parse_level,
    configure_logging,
    get_logger,
    log_debug,
    log_event,
    log_warning,
)
from route_optimizer.settings import settings


@pytest.fixture(autouse=True)
def _restore_logger():
    yield
    configure_logging(to_file=False)


def _file_handlers(logger: logging.Logger) -> list[logging.FileHandler]:
    return [h for h in logger.handlers if isinstance(h, logging.FileHandler)]


def test_parse_level() -> None:
    assert _parse_level("debug") == logging.DEBUG
    assert _parse_level(" Warning ") == logging.WARNING
    assert _parse_level("not_a_level") == logging.INFO
    assert _parse_level(logging.ERROR) == logging.ERROR


def test_get_logger_is_configured_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "out_dir", str(tmp_path))
    configure_logging(to_file=False)

    logger1 = get_logger()
    handlers_before = len(logger1.handlers)
    logger2 = get_logger()

    assert logger1 is logger2
    assert logger1.name == LOGGER_NAME
    assert len(logger2.handlers) == handlers_before == 1
    assert logger1.propagate is False

    log_event("unit_test_event", map_id=1, total_weight=22.0)
    log_debug("unit_test_debug", node_id=3)
    log_warning("unit_test_warning", road_id=12)


def test_configure_logging_writes_json_lines(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "out_dir", str(tmp_path))
    logger = configure_logging("debug", to_file=True)

    assert logger.level == logging.DEBUG
    assert len(_file_handlers(logger)) == 1

    log_event("graph_built", node_count=3)
    record = json.loads((tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8").splitlines()[-1])
    assert record["event"] == "graph_built"
    assert record["node_count"] == 3
    assert record["level"] == "INFO"
    assert record["logger"] == LOGGER_NAME
    assert "ts" in record


def test_reconfiguring_replaces_handlers(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "out_dir", str(tmp_path))
    configure_logging(to_file=True)
    logger = configure_logging("warning", to_file=False)

    assert logger.level == logging.WARNING
    assert _file_handlers(logger) == []
    assert len(logger.handlers) == 1


def test_unwritable_out_dir_keeps_stderr_logging(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setattr(settings, "out_dir", str(blocker))

    logger = configure_logging(to_file=True)

    assert _file_handlers(logger) == []
    assert len(logger.handlers) == 1
    log_event("still_logged")
