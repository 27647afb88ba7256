# Core - Audit Logging
#
# Append-only, structured audit trail for token and MFA events.
# Every tokenize/detokenize/revoke decision is recorded with a timestamp and
# an event ID. Payloads, ciphertext, keys and TOTP secrets are never logged;
# tokens appear only as an 8-character prefix.

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

AUDIT_LOGGER_NAME = "secure_token.audit"
TOKEN_PREFIX_LENGTH = 8


class EventType(str, Enum):
    """Types of events recorded in the audit trail."""
    # Vault Events
    TOKEN_CREATED = "token.created"
    TOKEN_DETOKENIZED = "token.detokenized"
    TOKEN_ACCESS_DENIED = "token.access.denied"
    TOKEN_REVOKED = "token.revoked"
    TOKEN_USAGE_TRACKED = "token.usage.tracked"

    # MFA Events
    MFA_SECRET_GENERATED = "mfa.secret.generated"
    MFA_VERIFIED = "mfa.verified"
    MFA_VERIFY_FAILED = "mfa.verify.failed"

    # Service Events
    SERVICE_START = "service.start"
    SERVICE_STOP = "service.stop"


class EventSeverity(str, Enum):
    """
    Severity levels for audit events.

    - INFO: normal activity
    - WARNING: a request was refused (expired, revoked, bad OTP)
    - ALERT: something looks wrong (decrypt failure, tampering)
    - CRITICAL: the service cannot operate
    """
    INFO = "info"
    WARNING = "warning"
    ALERT = "alert"
    CRITICAL = "critical"

    def to_log_level(self) -> int:
        """Map severity onto a stdlib logging level."""
        level_map = {
            EventSeverity.INFO: logging.INFO,
            EventSeverity.WARNING: logging.WARNING,
            EventSeverity.ALERT: logging.WARNING,
            EventSeverity.CRITICAL: logging.CRITICAL,
        }
        return level_map[self]


def token_prefix(token: Optional[str]) -> Optional[str]:
    """Shorten a token for logging; full tokens never reach the audit trail."""
    if not token:
        return None
    return token[:TOKEN_PREFIX_LENGTH]


class AuditLogger:
    """
    Append-only audit logger for vault and MFA events.

    Features:
    - Structured JSON lines (structlog)
    - Automatic UTC timestamp and event ID
    - Daily log file per directory
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso", utc=True),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._file_handler: Optional[logging.FileHandler] = None
        self._setup_file_handler()

        self.logger = structlog.get_logger(AUDIT_LOGGER_NAME)

    @property
    def log_file(self) -> Path:
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        return self.log_dir / f"audit_{today}.log"

    def _setup_file_handler(self):
        """Attach the daily file handler, replacing one left by a previous instance."""
        file_handler = logging.FileHandler(self.log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog renders JSON
        file_handler._secure_token_audit = True

        audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        for handler in list(audit_logger.handlers):
            if getattr(handler, "_secure_token_audit", False):
                audit_logger.removeHandler(handler)
                handler.close()
        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        audit_logger.propagate = False

        self._file_handler = file_handler

    def close(self):
        """Detach and close the file handler."""
        if self._file_handler is None:
            return
        logging.getLogger(AUDIT_LOGGER_NAME).removeHandler(self._file_handler)
        self._file_handler.close()
        self._file_handler = None

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Record an audit event.

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable description
            details: Structured context (never secrets or payloads)

        Returns:
            str: Event ID (UUID) for reference
        """
        event_id = str(uuid4())

        self.logger.log(
            severity.to_log_level(),
            "audit_event",
            event_id=event_id,
            event_type=event_type.value,
            severity=severity.value,
            message=message,
            details=details or {},
        )

        return event_id


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def set_audit_logger(instance: Optional[AuditLogger]) -> None:
    """Replace the global audit logger (wiring and tests)."""
    global _audit_logger
    _audit_logger = instance
