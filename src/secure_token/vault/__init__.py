# Vault Module - Payload Tokenization
#
# Sensitive payloads are stored AES-256 encrypted and referenced by random
# 128-bit tokens with expiry and one-way revocation.

from .encryption import CipherMode, CryptoCodec
from .models import TokenRecord, TokenStatus, is_valid_token
from .token_store import InMemoryTokenStore, SQLiteTokenStore, TokenStore
from .token_vault import TokenVault

__all__ = [
    "CipherMode",
    "CryptoCodec",
    "TokenRecord",
    "TokenStatus",
    "is_valid_token",
    "TokenStore",
    "SQLiteTokenStore",
    "InMemoryTokenStore",
    "TokenVault",
]
