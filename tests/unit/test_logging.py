"""Unit tests for the logging setup and audit trail."""

import logging

import pytest

from claims_rpa.core.logging import LoggerConfig


@pytest.fixture
def logger_config(tmp_path):
    return LoggerConfig(str(tmp_path / "logs"))


@pytest.mark.unit
class TestLoggerConfig:
    """Test rotating file loggers per log type."""

    def test_python_logger_is_cached(self, logger_config):
        first = logger_config.get_logger("claims_rpa.tests.cached", "rpa")
        second = logger_config.get_logger("claims_rpa.tests.cached", "rpa")
        assert first is second
        assert isinstance(first, logging.Logger)

    def test_audit_entries_are_written(self, logger_config, tmp_path):
        audit_logger = logger_config.get_audit_logger()
        audit_logger.info(
            "CLM-0001",
            extra={"visit_id": "v1", "portal": "MHC_ASIA", "action": "submit", "result": "submitted"},
        )
        for handler in audit_logger.handlers:
            handler.flush()

        text = (tmp_path / "logs" / "audit" / "submission_audit.log").read_text()
        assert "Visit: v1" in text
        assert "Action: submit - Result: submitted - Details: CLM-0001" in text

    def test_errors_go_to_error_log(self, logger_config, tmp_path):
        logger_config.log_error("claims_rpa.tests", ValueError("bad visit row"), {"visit_id": "v2"})
        error_logger = logging.getLogger("claims_rpa.tests.error")
        for handler in error_logger.handlers:
            handler.flush()

        assert "bad visit row" in (tmp_path / "logs" / "errors.log").read_text()
