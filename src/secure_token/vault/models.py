"""Token record model shared by the vault and its stores."""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

TOKEN_PATTERN = re.compile(r"[a-f0-9]{32}")


class TokenStatus(str, Enum):
    """Token lifecycle state. ACTIVE → REVOKED is the only transition."""
    ACTIVE = "active"
    REVOKED = "revoked"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_valid_token(token: Any) -> bool:
    """True for exactly 32 lowercase hex characters."""
    return isinstance(token, str) and TOKEN_PATTERN.fullmatch(token) is not None


@dataclass
class TokenRecord:
    """
    A stored token.

    ciphertext is written once at creation; revocation and expiry change
    whether the record may be used, never its content.
    """
    token: str
    ciphertext: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    status: TokenStatus = TokenStatus.ACTIVE
    usage_count: int = 0

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utc_now())

    def is_revoked(self) -> bool:
        return self.status is TokenStatus.REVOKED

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        """Eligible for detokenization: active and not expired."""
        return not self.is_revoked() and not self.is_expired(now)

    def to_metadata(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Everything about the record except its ciphertext."""
        return {
            "token": self.token,
            "status": self.status.value,
            "expired": self.is_expired(now),
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "usage_count": self.usage_count,
        }
