# Vault - Token Store
#
# Persistence port for token records plus two adapters:
#   - SQLiteTokenStore: durable store (core.db connect helper, WAL)
#   - InMemoryTokenStore: process-local store for tests and embedding
#
# Uniqueness of `token` and atomic status/counter updates are the store's
# job; the vault relies on them and implements neither.

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, Optional, Protocol, Union

from ..core.db import connect as db_connect
from ..exceptions import DuplicateTokenError, StorageError
from .models import TokenRecord, TokenStatus

logger = logging.getLogger(__name__)


class TokenStore(Protocol):
    """Operations the vault needs from persistence."""

    def insert(self, record: TokenRecord) -> None:
        """Persist a new record. Raises DuplicateTokenError if the token exists."""
        ...

    def find_by_token(self, token: str) -> Optional[TokenRecord]:
        """Return the record for token, or None."""
        ...

    def update_status(self, token: str, status: TokenStatus) -> bool:
        """Move an ACTIVE record to status. Returns True if a record changed."""
        ...

    def increment_usage(self, token: str) -> bool:
        """Add one to usage_count. Returns False if the token does not exist."""
        ...


class SQLiteTokenStore:
    """SQLite-backed token store.

    Args:
        db_path: Path to SQLite file. Defaults to data/tokens.db.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = Path(db_path) if db_path else Path("data/tokens.db")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()
        logger.debug("Token store ready at %s", self.db_path)

    def _init_database(self):
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tokens (
                    token TEXT PRIMARY KEY,
                    ciphertext TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT,
                    status TEXT NOT NULL DEFAULT 'active'
                        CHECK (status IN ('active', 'revoked')),
                    usage_count INTEGER NOT NULL DEFAULT 0
                )
            """)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection; commit on success, always close."""
        try:
            conn = db_connect(self.db_path, row_factory=True)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open token store: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Token store operation failed: {e}") from e
        finally:
            conn.close()

    def insert(self, record: TokenRecord) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    """INSERT INTO tokens
                       (token, ciphertext, created_at, expires_at, status, usage_count)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (
                        record.token,
                        record.ciphertext,
                        record.created_at.isoformat(),
                        record.expires_at.isoformat() if record.expires_at else None,
                        record.status.value,
                        record.usage_count,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateTokenError("Token already exists") from e

    def find_by_token(self, token: str) -> Optional[TokenRecord]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM tokens WHERE token = ?", (token,)
            ).fetchone()
        if row is None:
            return None
        return TokenRecord(
            token=row["token"],
            ciphertext=row["ciphertext"],
            created_at=datetime.fromisoformat(row["created_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]) if row["expires_at"] else None,
            status=TokenStatus(row["status"]),
            usage_count=row["usage_count"],
        )

    def update_status(self, token: str, status: TokenStatus) -> bool:
        status = TokenStatus(status)
        if status is TokenStatus.ACTIVE:
            return False
        # Conditional on 'active' so that concurrent revokes change exactly one row
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE tokens SET status = ? WHERE token = ? AND status = ?",
                (status.value, token, TokenStatus.ACTIVE.value),
            )
            return cur.rowcount > 0

    def increment_usage(self, token: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE tokens SET usage_count = usage_count + 1 WHERE token = ?",
                (token,),
            )
            return cur.rowcount > 0

    def count(self) -> int:
        """Number of stored records, any status."""
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM tokens").fetchone()[0]


class InMemoryTokenStore:
    """Dict-backed token store. Hands out copies, never its own records."""

    def __init__(self):
        self._records: Dict[str, TokenRecord] = {}
        self._lock = threading.Lock()

    def insert(self, record: TokenRecord) -> None:
        with self._lock:
            if record.token in self._records:
                raise DuplicateTokenError("Token already exists")
            self._records[record.token] = replace(record)

    def find_by_token(self, token: str) -> Optional[TokenRecord]:
        with self._lock:
            record = self._records.get(token)
            return replace(record) if record else None

    def update_status(self, token: str, status: TokenStatus) -> bool:
        status = TokenStatus(status)
        with self._lock:
            record = self._records.get(token)
            if record is None or record.status is not TokenStatus.ACTIVE:
                return False
            if status is TokenStatus.ACTIVE:
                return False
            record.status = status
            return True

    def increment_usage(self, token: str) -> bool:
        with self._lock:
            record = self._records.get(token)
            if record is None:
                return False
            record.usage_count += 1
            return True

    def count(self) -> int:
        with self._lock:
            return len(self._records)
