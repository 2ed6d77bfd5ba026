"""Tests for logging setup."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from wifistation.core.logging import JSONFormatter, SimpleFormatter, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("wifistation.network.station", logging.INFO, __file__, 10, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields() -> None:
    record = _record("Connecting to Home", candidate={"ssid": "Home", "rssi": -50})

    data = json.loads(JSONFormatter().format(record))

    assert data["level"] == "INFO"
    assert data["message"] == "Connecting to Home"
    assert data["logger"] == "wifistation.network.station"
    assert data["candidate"] == {"ssid": "Home", "rssi": -50}


def test_simple_formatter_without_colors() -> None:
    line = SimpleFormatter(use_colors=False).format(_record("Got IP: 192.168.4.2"))

    assert line.endswith("INFO     MainThread   station: Got IP: 192.168.4.2")
    assert "\033[" not in line


def test_setup_logging_writes_json_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "station.log"

    setup_logging(level="DEBUG", log_file=log_file)
    logging.getLogger("wifistation.test").info("Scan done, %d APs found", 3)
    for handler in logging.getLogger().handlers:
        handler.flush()

    entry = json.loads(log_file.read_text().splitlines()[-1])
    assert entry["message"] == "Scan done, 3 APs found"
    assert logging.getLogger("httpx").level == logging.WARNING
