import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from shielder.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for client-side persistence.

    Provides:
    1. Bucketed key-value store (account states, token registry).
    2. Metadata table (schema version).
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            self._conn_local.conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False
            )
            self._conn_local.conn.row_factory = sqlite3.Row
            self._conn_local.conn.execute("PRAGMA journal_mode=WAL;")
            self._conn_local.conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    bucket TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    PRIMARY KEY (bucket, key)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

    def close(self):
        if hasattr(self._conn_local, "conn"):
            self._conn_local.conn.close()
            del self._conn_local.conn

    # =========================================================================
    # Key-Value Operations
    # =========================================================================

    def put(self, bucket: str, key: str, value: str):
        """Save a key-value pair."""
        conn = self._get_conn()
        with conn:
            conn.execute(
                "INSERT OR REPLACE INTO kv_store (bucket, key, value) VALUES (?, ?, ?)",
                (bucket, key, value)
            )

    def get(self, bucket: str, key: str) -> Optional[str]:
        """Get value by key."""
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT value FROM kv_store WHERE bucket = ? AND key = ?", (bucket, key)
        )
        row = cursor.fetchone()
        return row['value'] if row else None

    def items(self, bucket: str) -> List[Tuple[str, str]]:
        """All (key, value) pairs of a bucket ordered by key."""
        conn = self._get_conn()
        cursor = conn.execute(
            "SELECT key, value FROM kv_store WHERE bucket = ? ORDER BY key", (bucket,)
        )
        return [(row['key'], row['value']) for row in cursor]

    def clear_bucket(self, bucket: str):
        conn = self._get_conn()
        with conn:
            conn.execute("DELETE FROM kv_store WHERE bucket = ?", (bucket,))

    # =========================================================================
    # Metadata
    # =========================================================================

    def set_meta(self, key: str, value: str):
        conn = self._get_conn()
        with conn:
            conn.execute("INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)", (key, value))

    def get_meta(self, key: str) -> Optional[str]:
        conn = self._get_conn()
        cursor = conn.execute("SELECT value FROM meta WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row['value'] if row else None
