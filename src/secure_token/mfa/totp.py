"""Time-based one-time passwords (HMAC-SHA1 moving factor over fixed time steps).

Secret lifecycle:
    1. generate_secret_key() returns 16 random bytes, hex-encoded.
    2. The caller persists the secret against its account identifier.
    3. enrollment_uri() builds the otpauth:// URI an authenticator app scans.
    4. On login the caller passes the secret and the user's code to
       verify() / verify_with_drift(); nothing is stored here.

Codes are recomputed on every call and compared in constant time.
"""

import hashlib
import hmac
import math
import re
import secrets
import struct
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

from ..core.audit_log import AuditLogger, EventSeverity, EventType
from ..exceptions import ConfigurationError, ValidationError

# ── Constants ────────────────────────────────────────────────────────

SECRET_LENGTH = 16  # 128-bit minimum secret
DEFAULT_DIGITS = 6
DEFAULT_TIME_STEP = 30  # seconds
DEFAULT_DRIFT_STEPS = 1
MIN_DIGITS = 6
MAX_DIGITS = 8
MAX_TIME_STEP_INDEX = 2 ** 64 - 1  # 8-byte big-endian counter


def _decode_secret(secret: Any) -> bytes:
    """Hex secret → raw HMAC key.

    Raises:
        ValidationError: Not hex, or shorter than SECRET_LENGTH bytes.
    """
    if not isinstance(secret, str):
        raise ValidationError("Secret must be a hex string")
    try:
        key = bytes.fromhex(secret)
    except ValueError:
        raise ValidationError("Secret is not valid hex") from None
    if len(key) < SECRET_LENGTH:
        raise ValidationError(f"Secret must be at least {SECRET_LENGTH} bytes")
    return key


class TOTPEngine:
    """
    TOTP derivation and verification.

    Args:
        digits: OTP length (6-8)
        time_step: Seconds per time step
        drift_steps: Neighbouring steps accepted by verify_with_drift()
        clock: Returns the current Unix time in seconds
        audit_logger: Optional audit sink
    """

    def __init__(
        self,
        digits: int = DEFAULT_DIGITS,
        time_step: int = DEFAULT_TIME_STEP,
        drift_steps: int = DEFAULT_DRIFT_STEPS,
        clock: Callable[[], float] = time.time,
        audit_logger: Optional[AuditLogger] = None,
    ):
        if not MIN_DIGITS <= digits <= MAX_DIGITS:
            raise ConfigurationError(
                f"OTP digits must be between {MIN_DIGITS} and {MAX_DIGITS}; got {digits}"
            )
        if time_step <= 0:
            raise ConfigurationError("OTP time step must be positive")
        if drift_steps < 0:
            raise ConfigurationError("OTP drift steps cannot be negative")

        self.digits = digits
        self.time_step = time_step
        self.drift_steps = drift_steps
        self._clock = clock
        self.audit_logger = audit_logger
        self._otp_pattern = re.compile(rf"[0-9]{{{digits}}}")

    def _log(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self.audit_logger is not None:
            self.audit_logger.log_event(event_type, severity, message, details)

    # ── Secrets ──────────────────────────────────────────────────────

    def generate_secret_key(self) -> str:
        """Generate a 128-bit secret, hex-encoded for storage/display."""
        secret = secrets.token_hex(SECRET_LENGTH)
        self._log(
            EventType.MFA_SECRET_GENERATED,
            EventSeverity.INFO,
            "TOTP secret generated",
        )
        return secret

    # ── Derivation ───────────────────────────────────────────────────

    def time_step_index(self, at: Optional[float] = None) -> int:
        """floor(unix_time / time_step) for `at` (default: now)."""
        moment = self._clock() if at is None else at
        if (
            isinstance(moment, bool)
            or not isinstance(moment, (int, float))
            or (isinstance(moment, float) and not math.isfinite(moment))
        ):
            raise ValidationError("Time must be a finite number of seconds")
        return int(moment // self.time_step)

    def compute_otp(self, secret: str, time_step_index: int) -> str:
        """
        Derive the OTP for one time step.

        HMAC-SHA1(secret, 8-byte big-endian step) → dynamic truncation →
        31-bit integer mod 10^digits, zero-padded.
        """
        key = _decode_secret(secret)
        if (
            isinstance(time_step_index, bool)
            or not isinstance(time_step_index, int)
            or not 0 <= time_step_index <= MAX_TIME_STEP_INDEX
        ):
            raise ValidationError("Time step index must fit an unsigned 64-bit counter")

        digest = hmac.new(key, struct.pack(">Q", time_step_index), hashlib.sha1).digest()
        offset = digest[-1] & 0x0F
        code = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
        return str(code % (10 ** self.digits)).zfill(self.digits)

    # ── Verification ─────────────────────────────────────────────────

    def _check_format(self, candidate: Any) -> str:
        if not isinstance(candidate, str) or self._otp_pattern.fullmatch(candidate) is None:
            raise ValidationError("Invalid OTP format.")
        return candidate

    def _matches(self, secret: str, candidate: str, step: int) -> bool:
        if not 0 <= step <= MAX_TIME_STEP_INDEX:
            return False
        expected = self.compute_otp(secret, step)
        return hmac.compare_digest(expected.encode("ascii"), candidate.encode("ascii"))

    def _record(self, valid: bool, drift: Optional[int] = None) -> bool:
        if valid:
            self._log(
                EventType.MFA_VERIFIED,
                EventSeverity.INFO,
                "OTP verified",
                details={"drift": drift},
            )
        else:
            self._log(
                EventType.MFA_VERIFY_FAILED,
                EventSeverity.WARNING,
                "OTP verification failed",
            )
        return valid

    def verify(self, secret: str, candidate: str) -> bool:
        """
        Check candidate against the current time step only.

        Raises:
            ValidationError: candidate is not exactly `digits` ASCII digits,
                             or the secret is malformed
        """
        self._check_format(candidate)
        step = self.time_step_index()
        return self._record(self._matches(secret, candidate, step), drift=0)

    def verify_with_drift(self, secret: str, candidate: str) -> bool:
        """
        Check candidate against the current step, then ±drift_steps.

        The current step is tried first; neighbours are only derived when it
        does not match.
        """
        self._check_format(candidate)
        step = self.time_step_index()

        if self._matches(secret, candidate, step):
            return self._record(True, drift=0)

        for distance in range(1, self.drift_steps + 1):
            for offset in (-distance, distance):
                if self._matches(secret, candidate, step + offset):
                    return self._record(True, drift=offset)

        return self._record(False)

    # ── Enrollment ───────────────────────────────────────────────────

    def enrollment_uri(self, secret: str, issuer: str, account_name: str) -> str:
        """
        Build the otpauth:// provisioning URI for authenticator apps.

        Issuer and account name are percent-encoded. digits/period are only
        appended when they differ from the authenticator defaults.
        """
        _decode_secret(secret)
        if not issuer or not isinstance(issuer, str):
            raise ValidationError("Issuer cannot be empty")
        if not account_name or not isinstance(account_name, str):
            raise ValidationError("Account name cannot be empty")

        encoded_issuer = quote(issuer, safe="")
        encoded_account = quote(account_name, safe="")
        uri = (
            f"otpauth://totp/{encoded_issuer}:{encoded_account}"
            f"?secret={secret}&issuer={encoded_issuer}"
        )
        if self.digits != DEFAULT_DIGITS:
            uri += f"&digits={self.digits}"
        if self.time_step != DEFAULT_TIME_STEP:
            uri += f"&period={self.time_step}"
        return uri
