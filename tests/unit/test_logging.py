"""Unit tests for structured logging setup."""

import json

import pytest
import structlog

from localgpt.utils.logging import close_logging, configure_logging, get_logger, log_file_path
from localgpt.utils import logging as logging_module


@pytest.fixture(autouse=True)
def isolated_logging(tmp_path, monkeypatch):
    """Log under a temporary HOME and restore structlog defaults afterwards."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("LOCALGPT_LOG_LEVEL", raising=False)
    yield
    structlog.reset_defaults()
    close_logging()


def read_records():
    return [json.loads(line) for line in log_file_path().read_text().splitlines()]


def test_writes_json_lines(tmp_path):
    """Test events land in the cache directory as JSON objects."""
    configure_logging()

    get_logger("tests").info("action_started", action="Summarize")

    assert log_file_path() == tmp_path / ".cache" / "localgpt" / "logs" / "localgpt.log"
    record = read_records()[-1]
    assert record["event"] == "action_started"
    assert record["action"] == "Summarize"
    assert record["level"] == "info"


def test_repeated_configuration_reuses_stream():
    """Test configuring twice keeps a single open handle."""
    configure_logging()
    first = logging_module._log_stream
    configure_logging()

    assert logging_module._log_stream is first
    assert not first.closed


def test_new_home_closes_previous_stream(tmp_path, monkeypatch):
    """Test a different log location replaces and closes the old handle."""
    configure_logging()
    first = logging_module._log_stream

    monkeypatch.setenv("HOME", str(tmp_path / "other"))
    configure_logging()

    assert first.closed
    assert logging_module._log_stream is not first


def test_existing_logger_follows_reconfiguration(tmp_path, monkeypatch):
    """Test a module-level logger writes to the current stream after reconfiguring."""
    logger = get_logger("tests")
    configure_logging()
    logger.info("first_event")

    monkeypatch.setenv("HOME", str(tmp_path / "other"))
    configure_logging()
    logger.info("second_event")

    assert [r["event"] for r in read_records()] == ["second_event"]


def test_level_filtering(monkeypatch):
    """Test LOCALGPT_LOG_LEVEL drops events below the threshold."""
    monkeypatch.setenv("LOCALGPT_LOG_LEVEL", "warning")
    configure_logging()

    logger = get_logger("tests")
    logger.info("hidden_event")
    logger.warning("shown_event")

    assert [r["event"] for r in read_records()] == ["shown_event"]


def test_unknown_level_defaults_to_info(monkeypatch):
    monkeypatch.setenv("LOCALGPT_LOG_LEVEL", "chatty")
    configure_logging()

    logger = get_logger("tests")
    logger.debug("hidden_event")
    logger.info("shown_event")

    assert [r["event"] for r in read_records()] == ["shown_event"]


def test_close_logging_is_idempotent():
    configure_logging()
    close_logging()
    close_logging()

    assert logging_module._log_stream is None
