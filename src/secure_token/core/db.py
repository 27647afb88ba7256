# Core Module - SQLite Connection Helper
#
# The token store opens every connection through `connect()` so that all
# connections share the same PRAGMAs:
#
#   - WAL journal mode (readers do not block the single writer)
#   - busy_timeout so concurrent revoke/usage updates wait instead of failing

import sqlite3
from pathlib import Path
from typing import Union

BUSY_TIMEOUT_MS = 5000


def connect(db_path: Union[str, Path], *, row_factory: bool = False) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and a busy timeout.

    Args:
        db_path: Path to the database file.
        row_factory: If True, rows come back as sqlite3.Row.
    """
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn
