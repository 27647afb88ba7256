# Core Module - Shared Utilities
#
# - Audit logging (structured, append-only)
# - SQLite connection helper

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    set_audit_logger,
    token_prefix,
)
from .db import connect

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "set_audit_logger",
    "token_prefix",
    # Database
    "connect",
]
