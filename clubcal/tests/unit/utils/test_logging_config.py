"""
Unit tests for logging configuration and time helpers.
"""

import json
import logging

import pytest
from datetime import datetime, timedelta, timezone

from clubcal.src.utils.logging_config import (
    ConsoleFormatter,
    JSONFormatter,
    configure_logging,
    get_logger,
)
from clubcal.src.utils.time_utils import to_utc, utc_now


def make_record(**extra):
    record = logging.LogRecord(
        "clubcal.scheduler", logging.INFO, __file__, 42, "Cycle %s", ("done",), None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    """Tests for log formatters."""

    def test_json_formatter_includes_extra_fields(self):
        output = JSONFormatter().format(make_record(tenant_id=3, masters_failed=1))

        data = json.loads(output)
        assert data["level"] == "INFO"
        assert data["logger"] == "clubcal.scheduler"
        assert data["message"] == "Cycle done"
        assert data["tenant_id"] == 3
        assert data["masters_failed"] == 1
        assert data["timestamp"].endswith("Z")

    def test_console_formatter(self):
        output = ConsoleFormatter().format(make_record())

        assert " INFO - clubcal.scheduler - Cycle done" in output


class TestConfigureLogging:
    """Tests for logger setup."""

    def test_known_loggers(self):
        for name in ("services", "scheduler", "db"):
            logger = get_logger(name)
            assert logger.name == f"clubcal.{name}"
            assert logger.propagate is False

    def test_unknown_logger_rejected(self):
        with pytest.raises(ValueError):
            get_logger("api")

    def test_production_writes_json_files(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CLUBCAL_ENV", "production")
        monkeypatch.setenv("CLUBCAL_LOG_DIR", str(tmp_path))
        monkeypatch.setenv("CLUBCAL_LOG_LEVEL", "INFO")

        loggers = configure_logging()
        try:
            loggers["scheduler"].info("Cycle finished", extra={"tenants": 2})
            for handler in loggers["scheduler"].handlers:
                handler.flush()

            line = (tmp_path / "scheduler.log").read_text(encoding="utf-8").strip()
            assert json.loads(line)["tenants"] == 2
        finally:
            for logger in loggers.values():
                for handler in logger.handlers:
                    handler.close()
            monkeypatch.setenv("CLUBCAL_ENV", "development")
            monkeypatch.setenv("CLUBCAL_LOG_LEVEL", "WARNING")
            configure_logging()


class TestTimeUtils:
    """Tests for UTC normalization."""

    def test_naive_taken_as_utc(self):
        value = datetime(2026, 3, 2, 9, 0)

        assert to_utc(value) is value

    def test_aware_converted(self):
        value = datetime(2026, 3, 2, 10, 0, tzinfo=timezone(timedelta(hours=1)))

        assert to_utc(value) == datetime(2026, 3, 2, 9, 0)

    def test_none(self):
        assert to_utc(None) is None

    def test_utc_now_is_naive(self):
        assert utc_now().tzinfo is None
