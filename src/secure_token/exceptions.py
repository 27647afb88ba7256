"""
Secure Token Exception Classes

Every failure in the vault, codec and TOTP engine is raised as one of these.
Callers translate them at the boundary (API status codes, CLI exit codes).
"""


class SecureTokenError(Exception):
    """Base exception for secure token operations"""
    pass


class ValidationError(SecureTokenError):
    """Raised when a token, OTP, payload or secret is malformed"""
    pass


class NotFoundError(SecureTokenError):
    """Raised when a token does not exist in the store"""
    pass


class TokenUnavailableError(SecureTokenError):
    """Raised when a token exists but can no longer be used"""
    pass


class ExpiredError(TokenUnavailableError):
    """Raised when a token's expiry has elapsed"""
    pass


class RevokedError(TokenUnavailableError):
    """Raised when a token has been revoked"""
    pass


class CiphertextError(SecureTokenError):
    """Raised when stored ciphertext cannot be turned back into a payload.

    Callers must treat this exactly like NotFoundError when answering an
    external client, otherwise decryption becomes a padding/format oracle.
    """
    pass


class DecodeError(CiphertextError):
    """Raised when a ciphertext blob is not validly encoded"""
    pass


class DecryptError(CiphertextError):
    """Raised when decryption fails (wrong key, corruption, bad tag)"""
    pass


class ConfigurationError(SecureTokenError):
    """Raised when key material or settings are missing or invalid"""
    pass


class StorageError(SecureTokenError):
    """Raised when the token store fails"""
    pass


class DuplicateTokenError(StorageError):
    """Raised when inserting a token that already exists"""
    pass
