"""
Configuration loading for the vault, TOTP engine, API and CLI.

Values come from the process environment, optionally layered over a .env
file (python-dotenv). The environment always wins over the file.

There is no fallback encryption key: a missing, short, or placeholder key
raises ConfigurationError before anything is served.
"""

import base64
import binascii
import os
import re
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import dotenv_values

from .exceptions import ConfigurationError
from .vault.encryption import CipherMode, CryptoCodec

ENV_PREFIX = "SECURE_TOKEN_"

# Keys that have shipped as examples and must never be accepted
PLACEHOLDER_KEYS = frozenset({
    "mysecretkey",
    "changeme",
    "secret",
    "your_encryption_key",
})

_HEX_KEY = re.compile(r"[0-9a-fA-F]{64}")
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Resolved runtime configuration."""
    encryption_key: bytes
    cipher_mode: CipherMode = CipherMode.CBC
    default_ttl: Optional[timedelta] = timedelta(days=30)
    otp_digits: int = 6
    otp_time_step: int = 30
    otp_drift_steps: int = 1
    distinguish_revoked: bool = True
    db_path: Path = Path("data/tokens.db")
    audit_log_dir: Path = Path("audit_logs")
    api_key: Optional[str] = None

    def __repr__(self) -> str:
        # Key material stays out of logs and tracebacks
        return (
            f"Settings(cipher_mode={self.cipher_mode.value!r}, "
            f"default_ttl={self.default_ttl!r}, otp_digits={self.otp_digits}, "
            f"otp_time_step={self.otp_time_step}, db_path={str(self.db_path)!r})"
        )


def parse_encryption_key(raw: Optional[str]) -> bytes:
    """
    Decode a configured key into 32 raw bytes.

    Accepts 64 hex characters or base64 (standard or URL-safe).

    Raises:
        ConfigurationError: Missing, placeholder, undecodable or wrong-size key
    """
    if raw is None or not raw.strip():
        raise ConfigurationError(f"{ENV_PREFIX}ENCRYPTION_KEY is not set.")

    value = raw.strip()
    if value.lower() in PLACEHOLDER_KEYS:
        raise ConfigurationError("Encryption key is a known placeholder; supply a real key.")

    if _HEX_KEY.fullmatch(value):
        key = bytes.fromhex(value)
    else:
        altchars = b"-_" if ("-" in value or "_" in value) else None
        try:
            key = base64.b64decode(value, altchars=altchars, validate=True)
        except (binascii.Error, ValueError):
            raise ConfigurationError(
                "Encryption key must be 64 hex characters or base64."
            ) from None

    CryptoCodec.validate_key(key)
    return key


def _get_int(env: Mapping[str, Optional[str]], name: str, default: int) -> int:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer; got {raw!r}") from None


def _get_bool(env: Mapping[str, Optional[str]], name: str, default: bool) -> bool:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{ENV_PREFIX}{name} must be a boolean; got {raw!r}")


def load_settings(
    env_file: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """
    Build Settings from a .env file and the environment.

    Args:
        env_file: Optional .env path (default: ./.env if present)
        environ: Mapping to read instead of os.environ (tests)

    Raises:
        ConfigurationError: Any value is missing or invalid
    """
    env_path = Path(env_file) if env_file else Path(".env")
    env = {}
    if env_path.is_file():
        env.update(dotenv_values(env_path))
    env.update(os.environ if environ is None else environ)

    try:
        cipher_mode = CipherMode((env.get(ENV_PREFIX + "CIPHER_MODE") or "cbc").strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"{ENV_PREFIX}CIPHER_MODE must be one of: "
            + ", ".join(mode.value for mode in CipherMode)
        ) from None

    ttl_days = _get_int(env, "DEFAULT_TTL_DAYS", 30)
    if ttl_days < 0:
        raise ConfigurationError(f"{ENV_PREFIX}DEFAULT_TTL_DAYS cannot be negative")

    return Settings(
        encryption_key=parse_encryption_key(env.get(ENV_PREFIX + "ENCRYPTION_KEY")),
        cipher_mode=cipher_mode,
        default_ttl=timedelta(days=ttl_days) if ttl_days else None,
        otp_digits=_get_int(env, "OTP_DIGITS", 6),
        otp_time_step=_get_int(env, "OTP_TIME_STEP", 30),
        otp_drift_steps=_get_int(env, "OTP_DRIFT_STEPS", 1),
        distinguish_revoked=_get_bool(env, "DISTINGUISH_REVOKED", True),
        db_path=Path(env.get(ENV_PREFIX + "DB_PATH") or "data/tokens.db"),
        audit_log_dir=Path(env.get(ENV_PREFIX + "AUDIT_LOG_DIR") or "audit_logs"),
        api_key=env.get(ENV_PREFIX + "API_KEY") or None,
    )


# ── Singleton ────────────────────────────────────────────────────────

_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Load settings once per process (raises ConfigurationError on first use)."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def set_settings(settings: Optional[Settings]) -> None:
    """Replace the process settings (wiring and tests)."""
    global _settings
    _settings = settings
