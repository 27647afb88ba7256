# Vault - Token Vault
#
# Exchanges sensitive payloads for opaque 128-bit tokens.
# Payloads are encrypted per record (CryptoCodec) and persisted through an
# injected TokenStore. Lifecycle: ACTIVE → (expires) → still stored,
# ACTIVE/expired → revoke() → REVOKED (terminal).

import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from ..core.audit_log import AuditLogger, EventSeverity, EventType, token_prefix
from ..exceptions import (
    CiphertextError,
    DecryptError,
    ExpiredError,
    NotFoundError,
    RevokedError,
    ValidationError,
)
from .encryption import CryptoCodec
from .models import TokenRecord, TokenStatus, ensure_utc, is_valid_token, utc_now
from .token_store import SQLiteTokenStore, TokenStore

if TYPE_CHECKING:
    from ..config import Settings

TOKEN_BYTES = 16  # 128 bits → 32 hex characters
DEFAULT_TTL = timedelta(days=30)
NOT_FOUND_MESSAGE = "Token not found"


class TokenVault:
    """
    Token lifecycle over a CryptoCodec and a TokenStore.

    Security:
    - Each payload encrypted under the vault key with a fresh IV
    - Tokens are random, never derived from the payload
    - Key material lives only on this instance and is never logged
    - Revoked and expired records stay stored; access is refused, content untouched
    """

    def __init__(
        self,
        store: TokenStore,
        encryption_key: bytes,
        codec: Optional[CryptoCodec] = None,
        default_ttl: Optional[timedelta] = DEFAULT_TTL,
        audit_logger: Optional[AuditLogger] = None,
        distinguish_revoked: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the vault.

        Args:
            store: Persistence port for token records
            encryption_key: 32-byte AES-256 key
            codec: Crypto codec (default: AES-256-CBC)
            default_ttl: Lifetime for tokens created without an explicit
                         expiry; None means such tokens never expire
            audit_logger: Optional audit sink; the vault works without one
            distinguish_revoked: If False, revoked tokens are reported as
                                 not found
            clock: Returns the current aware UTC datetime

        Raises:
            ConfigurationError: If the key is unusable
        """
        self.codec = codec or CryptoCodec()
        self.codec.validate_key(encryption_key)

        self.store = store
        self._key = bytes(encryption_key)
        self.default_ttl = default_ttl
        self.audit_logger = audit_logger
        self.distinguish_revoked = distinguish_revoked
        self._clock = clock or utc_now

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        store: Optional[TokenStore] = None,
        audit_logger: Optional[AuditLogger] = None,
    ) -> "TokenVault":
        """Build a vault from loaded settings (SQLite store unless one is given)."""
        return cls(
            store=store if store is not None else SQLiteTokenStore(settings.db_path),
            encryption_key=settings.encryption_key,
            codec=CryptoCodec(settings.cipher_mode),
            default_ttl=settings.default_ttl,
            audit_logger=audit_logger,
            distinguish_revoked=settings.distinguish_revoked,
        )

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    def _log(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self.audit_logger is None:
            return
        self.audit_logger.log_event(
            event_type=event_type,
            severity=severity,
            message=message,
            details=details,
        )

    def _deny(self, token: str, reason: str, severity: EventSeverity = EventSeverity.WARNING):
        self._log(
            EventType.TOKEN_ACCESS_DENIED,
            severity,
            f"Detokenize refused: {reason}",
            details={"token_prefix": token_prefix(token), "reason": reason},
        )

    @staticmethod
    def _validate_token(token: Any) -> str:
        if not is_valid_token(token):
            raise ValidationError("Invalid token format.")
        return token

    def _load(self, token: str) -> TokenRecord:
        record = self.store.find_by_token(token)
        if record is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return record

    def tokenize(
        self,
        payload: str,
        expiry: Optional[datetime] = None,
        *,
        never_expires: bool = False,
    ) -> str:
        """
        Encrypt payload and store it under a new token.

        Args:
            payload: Sensitive data (non-empty string)
            expiry: Absolute expiry; default is now + default_ttl
            never_expires: Store the record without any expiry

        Returns:
            32-character lowercase hex token

        Raises:
            ValidationError: Empty, non-string or unencodable payload, or bad expiry
            StorageError: The store rejected the insert (nothing persisted)
        """
        if not isinstance(payload, str) or not payload:
            raise ValidationError("Sensitive data cannot be empty.")
        try:
            plaintext = payload.encode("utf-8")
        except UnicodeEncodeError:
            raise ValidationError("Sensitive data must be valid text.") from None
        if expiry is not None and not isinstance(expiry, datetime):
            raise ValidationError("Expiry must be a datetime.")
        if expiry is not None and never_expires:
            raise ValidationError("Expiry and never_expires are mutually exclusive.")

        token = secrets.token_hex(TOKEN_BYTES)
        ciphertext = self.codec.encrypt(plaintext, self._key)

        created_at = self._now()
        if never_expires:
            expires_at = None
        elif expiry is not None:
            expires_at = ensure_utc(expiry)
        elif self.default_ttl is not None:
            expires_at = created_at + self.default_ttl
        else:
            expires_at = None

        # Single write: either the full record lands or the insert raises
        self.store.insert(TokenRecord(
            token=token,
            ciphertext=ciphertext,
            created_at=created_at,
            expires_at=expires_at,
            status=TokenStatus.ACTIVE,
            usage_count=0,
        ))

        self._log(
            EventType.TOKEN_CREATED,
            EventSeverity.INFO,
            "Token created",
            details={
                "token_prefix": token_prefix(token),
                "expires_at": expires_at.isoformat() if expires_at else None,
            },
        )
        return token

    def detokenize(self, token: str) -> str:
        """
        Return the payload behind an active, unexpired token.

        Side effect: increments the record's usage count.

        Raises:
            ValidationError: Token is not 32 lowercase hex characters
            NotFoundError: Unknown token (or revoked, when not distinguished)
            RevokedError: Token was revoked
            ExpiredError: Token expiry has elapsed
            DecodeError / DecryptError: Stored ciphertext is unusable
        """
        self._validate_token(token)

        record = self.store.find_by_token(token)
        if record is None:
            self._deny(token, "not_found")
            raise NotFoundError(NOT_FOUND_MESSAGE)

        if record.is_revoked():
            self._deny(token, "revoked")
            if not self.distinguish_revoked:
                raise NotFoundError(NOT_FOUND_MESSAGE)
            raise RevokedError("Token has been revoked")

        if record.is_expired(self._now()):
            self._deny(token, "expired")
            raise ExpiredError("Token has expired")

        try:
            payload = self.codec.decrypt(record.ciphertext, self._key).decode("utf-8")
        except UnicodeDecodeError:
            self._deny(token, "decrypt_failed", EventSeverity.ALERT)
            raise DecryptError("Ciphertext could not be decrypted") from None
        except CiphertextError:
            self._deny(token, "decrypt_failed", EventSeverity.ALERT)
            raise

        self.store.increment_usage(token)

        self._log(
            EventType.TOKEN_DETOKENIZED,
            EventSeverity.INFO,
            "Token detokenized",
            details={"token_prefix": token_prefix(token)},
        )
        return payload

    def is_expired(self, token: str) -> bool:
        """
        Check expiry without touching the record.

        Raises:
            ValidationError: Bad token format
            NotFoundError: Unknown token
        """
        self._validate_token(token)
        return self._load(token).is_expired(self._now())

    def revoke(self, token: str) -> bool:
        """
        Permanently revoke a token (idempotent).

        Returns:
            True if this call changed ACTIVE → REVOKED; False if the token was
            already revoked or does not exist.
        """
        self._validate_token(token)

        record = self.store.find_by_token(token)
        if record is None or record.is_revoked():
            return False

        changed = self.store.update_status(token, TokenStatus.REVOKED)
        if changed:
            self._log(
                EventType.TOKEN_REVOKED,
                EventSeverity.INFO,
                "Token revoked",
                details={"token_prefix": token_prefix(token)},
            )
        return changed

    def track_usage(self, token: str) -> None:
        """
        Count a use of the token without reading its payload.

        Raises:
            ValidationError: Bad token format
            NotFoundError: Unknown token
        """
        self._validate_token(token)
        if not self.store.increment_usage(token):
            raise NotFoundError(NOT_FOUND_MESSAGE)

        self._log(
            EventType.TOKEN_USAGE_TRACKED,
            EventSeverity.INFO,
            "Token usage tracked",
            details={"token_prefix": token_prefix(token)},
        )

    def get_record(self, token: str) -> TokenRecord:
        """Read a record's metadata (no decryption, no usage change)."""
        self._validate_token(token)
        return self._load(token)

    def now(self) -> datetime:
        """The vault's current time (its injected clock)."""
        return self._now()
