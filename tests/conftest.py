"""
Shared pytest fixtures for the secure-token test suite.

Autouse fixtures below isolate tests from live state:
  - Audit logger    -> temp directory  (no audit_logs/ in the working tree)
  - Settings / API singletons -> reset per test
"""

from datetime import datetime, timedelta, timezone

import pytest

from secure_token.core.audit_log import AuditLogger

TEST_KEY = bytes(range(32))
TEST_KEY_HEX = TEST_KEY.hex()


class FakeClock:
    """Settable UTC clock for vault tests."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path):
    """Point the global AuditLogger at a temp directory for every test."""
    import secure_token.core.audit_log as audit_mod

    old_logger = audit_mod._audit_logger
    logger = AuditLogger(log_dir=tmp_path / "audit_logs")
    audit_mod._audit_logger = logger

    yield

    logger.close()
    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _reset_singletons():
    """Reset settings and API singletons so tests never share a vault."""
    import secure_token.config as config_mod
    from secure_token.api import mfa_routes, security, token_routes

    old = (
        config_mod._settings,
        token_routes._vault,
        mfa_routes._engine,
        security._API_KEY,
    )
    config_mod._settings = None
    token_routes._vault = None
    mfa_routes._engine = None
    security._API_KEY = None

    yield

    (
        config_mod._settings,
        token_routes._vault,
        mfa_routes._engine,
        security._API_KEY,
    ) = old


@pytest.fixture
def encryption_key():
    return TEST_KEY


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def audit_logger(tmp_path):
    logger = AuditLogger(log_dir=tmp_path / "vault_audit")
    yield logger
    logger.close()
