# Secure Token - Main Package
#
# Tokenization vault: sensitive payloads in, opaque 128-bit tokens out.
# TOTP engine: secret generation, one-time codes, drift-tolerant verification.

__version__ = "1.0.0"
__description__ = "Payload tokenization vault and TOTP multi-factor engine"

from .exceptions import (
    ConfigurationError,
    DecodeError,
    DecryptError,
    ExpiredError,
    NotFoundError,
    RevokedError,
    SecureTokenError,
    StorageError,
    ValidationError,
)
from .mfa import TOTPEngine
from .vault import (
    CipherMode,
    CryptoCodec,
    InMemoryTokenStore,
    SQLiteTokenStore,
    TokenRecord,
    TokenStatus,
    TokenVault,
)

__all__ = [
    "__version__",
    # Vault
    "TokenVault",
    "TokenRecord",
    "TokenStatus",
    "CryptoCodec",
    "CipherMode",
    "SQLiteTokenStore",
    "InMemoryTokenStore",
    # MFA
    "TOTPEngine",
    # Errors
    "SecureTokenError",
    "ValidationError",
    "NotFoundError",
    "ExpiredError",
    "RevokedError",
    "DecodeError",
    "DecryptError",
    "ConfigurationError",
    "StorageError",
]
