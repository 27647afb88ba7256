# Vault - Encryption Service
#
# Payload → AES-256 ciphertext blob and back.
# Fresh random IV/nonce per encryption, stored alongside the ciphertext.
#
# Blob layout (both modes):
#     base64( base64(ciphertext) || b"::" || iv )
# The inner ciphertext is base64 text and never contains ':', so the first
# "::" always marks the separator even when the raw IV contains colon bytes.

import base64
import binascii
import logging
import os
from enum import Enum
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import ConfigurationError, DecodeError, DecryptError, ValidationError

logger = logging.getLogger(__name__)


class CipherMode(str, Enum):
    """
    Supported cipher modes.

    CBC: AES-256-CBC + PKCS7. Confidentiality only; a modified blob may
         decrypt to different bytes instead of failing.
    GCM: AES-256-GCM. Authenticated; any modification fails decryption.
    """
    CBC = "cbc"
    GCM = "gcm"


class CryptoCodec:
    """
    Encrypts/decrypts vault payloads into storage-safe text blobs.

    Flow:
    1. Caller supplies a 256-bit key (never derived, never padded)
    2. A fresh IV (CBC, 16 bytes) or nonce (GCM, 12 bytes) is drawn per call
    3. Ciphertext and IV are packed into one base64 blob
    """

    KEY_LENGTH = 32  # 256 bits for AES-256
    CBC_IV_LENGTH = 16  # AES block size
    GCM_NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
    SEPARATOR = b"::"

    def __init__(self, mode: CipherMode = CipherMode.CBC):
        self.mode = CipherMode(mode)
        if self.mode is CipherMode.CBC:
            logger.warning(
                "Vault cipher is AES-256-CBC: ciphertext is not integrity "
                "protected. Configure cipher mode 'gcm' for authenticated encryption."
            )

    @property
    def iv_length(self) -> int:
        if self.mode is CipherMode.GCM:
            return self.GCM_NONCE_LENGTH
        return self.CBC_IV_LENGTH

    @classmethod
    def validate_key(cls, key: bytes) -> None:
        """
        Reject key material the cipher cannot use as-is.

        Raises:
            ConfigurationError: key is not exactly 32 bytes
        """
        if not isinstance(key, (bytes, bytearray)):
            raise ConfigurationError("Encryption key must be raw bytes")
        if len(key) != cls.KEY_LENGTH:
            raise ConfigurationError(
                f"Encryption key must be {cls.KEY_LENGTH} bytes; got {len(key)}"
            )

    def encrypt(self, plaintext: bytes, key: bytes) -> str:
        """
        Encrypt plaintext into a storage-safe blob.

        Args:
            plaintext: Non-empty payload bytes
            key: 256-bit encryption key

        Returns:
            Base64 text blob carrying ciphertext and IV

        Raises:
            ValidationError: plaintext is empty or not bytes
            ConfigurationError: key has the wrong size
        """
        if not isinstance(plaintext, (bytes, bytearray)):
            raise ValidationError("Plaintext must be bytes")
        if not plaintext:
            raise ValidationError("Plaintext cannot be empty")
        self.validate_key(key)

        # Must be unique per encryption under the same key
        iv = os.urandom(self.iv_length)

        if self.mode is CipherMode.GCM:
            ciphertext = AESGCM(bytes(key)).encrypt(iv, bytes(plaintext), None)
        else:
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(bytes(plaintext)) + padder.finalize()
            encryptor = Cipher(algorithms.AES(bytes(key)), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()

        inner = base64.b64encode(ciphertext) + self.SEPARATOR + iv
        return base64.b64encode(inner).decode("ascii")

    def decrypt(self, blob: str, key: bytes) -> bytes:
        """
        Decrypt a blob produced by encrypt().

        Raises:
            DecodeError: blob is not valid base64 or has no separator
            DecryptError: wrong key, corrupted ciphertext, or failed tag check
            ConfigurationError: key has the wrong size
        """
        self.validate_key(key)
        ciphertext, iv = self._unpack(blob)

        if self.mode is CipherMode.GCM:
            try:
                return AESGCM(bytes(key)).decrypt(iv, ciphertext, None)
            except InvalidTag:
                raise DecryptError("Ciphertext failed authentication") from None

        if not ciphertext or len(ciphertext) % self.CBC_IV_LENGTH:
            raise DecryptError("Ciphertext is not a whole number of blocks")

        decryptor = Cipher(algorithms.AES(bytes(key)), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError:
            raise DecryptError("Ciphertext could not be decrypted") from None

    def _unpack(self, blob: str) -> Tuple[bytes, bytes]:
        """Split a blob into (ciphertext, iv)."""
        if not isinstance(blob, str) or not blob:
            raise DecodeError("Ciphertext blob must be a non-empty string")

        try:
            inner = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError):
            raise DecodeError("Ciphertext blob is not valid base64") from None

        encoded_ciphertext, separator, iv = inner.partition(self.SEPARATOR)
        if not separator:
            raise DecodeError("Ciphertext blob is missing the IV separator")
        if len(iv) != self.iv_length:
            raise DecodeError("Ciphertext blob carries an IV of the wrong length")

        try:
            ciphertext = base64.b64decode(encoded_ciphertext, validate=True)
        except binascii.Error:
            raise DecodeError("Ciphertext segment is not valid base64") from None

        return ciphertext, iv
