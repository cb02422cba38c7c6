"""
tests/test_logging_config.py -- Tests for app/logging_config.py

Covers: dev vs JSON sink selection, level filtering, the stdlib bridge
used by service modules, the request_id default, and log file rotation.

Called by: pytest
Depends on: app/logging_config.py
"""

import logging
from unittest.mock import patch

import pytest
from loguru import logger

from app.logging_config import is_local, setup_logging

LOCAL = "http://localhost:8000"
HOSTED = "https://tracker.example.com"


@pytest.fixture(autouse=True)
def _clean_loguru():
    logger.remove()
    yield
    logger.remove()


def _capture(level="DEBUG"):
    records = []
    logger.add(lambda m: records.append(m.record), level=level, format="{message}")
    return records


@pytest.mark.parametrize("url,local", [
    (LOCAL, True),
    ("http://127.0.0.1:8000", True),
    ("", True),
    (HOSTED, False),
])
def test_is_local(url, local):
    assert is_local(url) is local


def test_dev_mode_uses_text_format():
    with patch("loguru.logger.add") as add:
        setup_logging(level="INFO", app_url=LOCAL, log_file="")
    assert add.call_count == 1
    assert add.call_args.kwargs["colorize"] is True
    assert "request_id" in add.call_args.kwargs["format"]


def test_hosted_mode_uses_json():
    with patch("loguru.logger.add") as add:
        setup_logging(level="INFO", app_url=HOSTED, log_file="")
    assert add.call_args.kwargs.get("serialize") is True


def test_log_file_rotation(tmp_path):
    path = str(tmp_path / "tracker.log")
    with patch("loguru.logger.add") as add:
        setup_logging(level="INFO", app_url=HOSTED, log_file=path)
    file_calls = [c for c in add.call_args_list if c.args and c.args[0] == path]
    assert len(file_calls) == 1
    assert file_calls[0].kwargs["rotation"] == "50 MB"
    assert file_calls[0].kwargs["retention"] == "7 days"


def test_service_logger_reaches_loguru():
    setup_logging(level="INFO", app_url=LOCAL, log_file="")
    records = _capture()

    logging.getLogger("app.services.quality_service").warning("Quality hold #%s created", 7)

    assert any(r["message"] == "Quality hold #7 created" for r in records)


def test_quiet_loggers_raised_to_warning():
    setup_logging(level="DEBUG", app_url=LOCAL, log_file="")
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_level_filters():
    setup_logging(level="warning", app_url=LOCAL, log_file="")
    records = _capture(level="WARNING")
    logger.info("timer started")
    logger.warning("timer already running")
    assert [r["message"] for r in records] == ["timer already running"]


def test_request_id_defaults_outside_requests():
    setup_logging(level="INFO", app_url=LOCAL, log_file="")
    records = _capture()

    with logger.contextualize(request_id="abc12345"):
        logger.info("inside")
    logger.info("outside")

    assert records[-2]["extra"]["request_id"] == "abc12345"
    assert records[-1]["extra"]["request_id"] == "-"
