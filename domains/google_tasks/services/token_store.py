"""Persistent key/value store for OAuth state.

Holds one durable record (the token set) and the transient PKCE records
(code verifier, redirect URI) in a local SQLite database so tokens survive
restarts.
"""

import json
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Optional, Union

from logger import logger


class TokenStore:
    """SQLite-backed key/value store. Values are JSON encoded."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is not None:
            return self._connection

        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(str(self.db_path), timeout=10.0)
        self._connection.execute("PRAGMA busy_timeout=5000")
        self._connection.executescript("""
            CREATE TABLE IF NOT EXISTS oauth_state (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at INTEGER NOT NULL
            );
        """)
        self._connection.commit()

        logger.debug(f"Token store initialized: {self.db_path}")
        return self._connection

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def get(self, key: str) -> Optional[Any]:
        """Return the decoded value, or None if missing or unreadable."""
        row = self._get_connection().execute(
            "SELECT value FROM oauth_state WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None

        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            logger.error(f"Discarding unreadable value for {key} in token store")
            self.delete(key)
            return None

    def set(self, key: str, value: Any) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO oauth_state (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), int(time.time())),
            )

    def delete(self, *keys: str) -> None:
        with self._transaction() as conn:
            conn.executemany("DELETE FROM oauth_state WHERE key = ?", [(k,) for k in keys])

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
