"""Tests for the structured audit logger."""

import json
import logging
import re

from secure_token.core import audit_log
from secure_token.core.audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    set_audit_logger,
    token_prefix,
)


def _read(logger):
    lines = logger.log_file.read_text(encoding="utf-8").splitlines()
    return [json.loads(line) for line in lines if line.strip()]


class TestAuditLogger:
    def test_creates_log_dir(self, tmp_path):
        logger = AuditLogger(log_dir=tmp_path / "nested" / "logs")
        try:
            assert (tmp_path / "nested" / "logs").is_dir()
        finally:
            logger.close()

    def test_daily_file_name(self, audit_logger):
        assert re.fullmatch(r"audit_\d{4}-\d{2}-\d{2}\.log", audit_logger.log_file.name)

    def test_event_is_json_line(self, audit_logger):
        event_id = audit_logger.log_event(
            EventType.TOKEN_CREATED,
            EventSeverity.INFO,
            "Token created",
            details={"token_prefix": "abcdef01"},
        )
        [event] = _read(audit_logger)
        assert event["event"] == "audit_event"
        assert event["event_id"] == event_id
        assert event["event_type"] == "token.created"
        assert event["severity"] == "info"
        assert event["message"] == "Token created"
        assert event["details"] == {"token_prefix": "abcdef01"}
        assert "timestamp" in event

    def test_event_ids_unique(self, audit_logger):
        ids = {
            audit_logger.log_event(EventType.MFA_VERIFIED, EventSeverity.INFO, "ok")
            for _ in range(10)
        }
        assert len(ids) == 10

    def test_details_default_to_empty(self, audit_logger):
        audit_logger.log_event(EventType.SERVICE_START, EventSeverity.INFO, "start")
        assert _read(audit_logger)[0]["details"] == {}

    def test_appends(self, audit_logger):
        audit_logger.log_event(EventType.SERVICE_START, EventSeverity.INFO, "start")
        audit_logger.log_event(EventType.SERVICE_STOP, EventSeverity.INFO, "stop")
        assert [e["event_type"] for e in _read(audit_logger)] == [
            "service.start",
            "service.stop",
        ]

    def test_new_instance_replaces_handler(self, tmp_path):
        first = AuditLogger(log_dir=tmp_path / "first")
        second = AuditLogger(log_dir=tmp_path / "second")
        try:
            second.log_event(EventType.SERVICE_START, EventSeverity.INFO, "start")
            assert _read(second)
            assert first.log_file.read_text(encoding="utf-8") == ""
        finally:
            first.close()
            second.close()

    def test_close_is_idempotent(self, tmp_path):
        logger = AuditLogger(log_dir=tmp_path)
        logger.close()
        logger.close()

    def test_does_not_propagate(self, audit_logger):
        assert logging.getLogger(audit_log.AUDIT_LOGGER_NAME).propagate is False


class TestSeverity:
    def test_level_mapping(self):
        assert EventSeverity.INFO.to_log_level() == logging.INFO
        assert EventSeverity.WARNING.to_log_level() == logging.WARNING
        assert EventSeverity.ALERT.to_log_level() == logging.WARNING
        assert EventSeverity.CRITICAL.to_log_level() == logging.CRITICAL


class TestTokenPrefix:
    def test_prefix(self):
        assert token_prefix("0123456789abcdef" * 2) == "01234567"

    def test_empty(self):
        assert token_prefix("") is None
        assert token_prefix(None) is None


class TestGlobalLogger:
    def test_set_and_get(self, tmp_path):
        logger = AuditLogger(log_dir=tmp_path / "global")
        try:
            set_audit_logger(logger)
            assert get_audit_logger() is logger
        finally:
            logger.close()

    def test_get_returns_same_instance(self):
        assert get_audit_logger() is get_audit_logger()
