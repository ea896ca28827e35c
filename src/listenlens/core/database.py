"""
SQLite persistence for ListenLens: stored credentials and cache entries
"""

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from .config import get_data_dir

# Database schema version for migrations
SCHEMA_VERSION = 2


def get_database_path() -> Path:
    """Get the path to the SQLite database file."""
    return get_data_dir() / "listenlens.db"


@contextmanager
def get_db_connection(db_path: Optional[Path] = None):
    """Get a database connection with proper cleanup and concurrency support."""
    db_path = db_path or get_database_path()
    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.row_factory = sqlite3.Row  # Enable dict-like access

    # WAL mode allows reads during writes
    conn.execute("PRAGMA journal_mode=WAL")

    try:
        yield conn
    finally:
        conn.close()


def migrate_database(conn, current_version: int) -> None:
    """Migrate database from current_version to latest schema."""
    if current_version < 1:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS credentials (
                provider TEXT PRIMARY KEY,
                auth_data TEXT NOT NULL,   -- JSON: access/refresh token, expires_at
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        conn.commit()

    if current_version < 2:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS cache_entries (
                key TEXT PRIMARY KEY,
                payload TEXT NOT NULL,     -- JSON-serialized response
                timestamp REAL NOT NULL,   -- Unix epoch seconds
                size_bytes INTEGER NOT NULL DEFAULT 0
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_cache_entries_timestamp ON cache_entries (timestamp)"
        )
        conn.commit()


def init_database(db_path: Optional[Path] = None) -> None:
    """Initialize the database with required tables."""
    db_path = db_path or get_database_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db_connection(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            )
        """)

        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        row = cursor.fetchone()
        current_version = row[0] if row and row[0] is not None else 0

        if current_version < SCHEMA_VERSION:
            logger.info(
                f"Migrating database from v{current_version} to v{SCHEMA_VERSION}"
            )
            migrate_database(conn, current_version)
            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            conn.commit()


# Credential Functions


def save_credentials(
    provider: str, auth_data: Dict[str, Any], db_path: Optional[Path] = None
) -> None:
    """Save provider credentials to database.

    Args:
        provider: Provider name ('spotify')
        auth_data: Authentication data (tokens, expiry)
    """
    with get_db_connection(db_path) as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO credentials (provider, auth_data, updated_at)
            VALUES (?, ?, CURRENT_TIMESTAMP)
        """,
            (provider, json.dumps(auth_data)),
        )
        conn.commit()


def load_credentials(
    provider: str, db_path: Optional[Path] = None
) -> Optional[Dict[str, Any]]:
    """Load provider credentials from database.

    Returns:
        Stored auth data dict or None
    """
    with get_db_connection(db_path) as conn:
        cursor = conn.execute(
            "SELECT auth_data FROM credentials WHERE provider = ?",
            (provider,),
        )
        row = cursor.fetchone()
        if not row:
            return None

        try:
            return json.loads(row["auth_data"])
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable credentials for {provider}")
            return None


def delete_credentials(provider: str, db_path: Optional[Path] = None) -> None:
    """Remove stored credentials for a provider."""
    with get_db_connection(db_path) as conn:
        conn.execute("DELETE FROM credentials WHERE provider = ?", (provider,))
        conn.commit()


# Cache Entry Functions


def get_cache_entry(
    key: str, db_path: Optional[Path] = None
) -> Optional[Tuple[str, float]]:
    """Get raw (payload_json, timestamp) for a cache key."""
    with get_db_connection(db_path) as conn:
        cursor = conn.execute(
            "SELECT payload, timestamp FROM cache_entries WHERE key = ?", (key,)
        )
        row = cursor.fetchone()
        return (row["payload"], row["timestamp"]) if row else None


def put_cache_entry(
    key: str, payload: str, timestamp: float, db_path: Optional[Path] = None
) -> None:
    """Insert or overwrite a cache entry."""
    with get_db_connection(db_path) as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO cache_entries (key, payload, timestamp, size_bytes)
            VALUES (?, ?, ?, ?)
        """,
            (key, payload, timestamp, len(payload.encode("utf-8"))),
        )
        conn.commit()


def delete_cache_entry(key: str, db_path: Optional[Path] = None) -> None:
    """Delete a single cache entry."""
    with get_db_connection(db_path) as conn:
        conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        conn.commit()


def list_cache_entries(
    prefix: str = "", db_path: Optional[Path] = None
) -> List[Tuple[str, float]]:
    """List (key, timestamp) for every cache entry whose key starts with prefix."""
    with get_db_connection(db_path) as conn:
        cursor = conn.execute(
            "SELECT key, timestamp FROM cache_entries WHERE substr(key, 1, ?) = ?",
            (len(prefix), prefix),
        )
        return [(row["key"], row["timestamp"]) for row in cursor.fetchall()]


def get_cache_size_bytes(
    exclude_key: Optional[str] = None, db_path: Optional[Path] = None
) -> int:
    """Total payload size of the cache, optionally excluding one key."""
    with get_db_connection(db_path) as conn:
        cursor = conn.execute(
            "SELECT COALESCE(SUM(size_bytes), 0) FROM cache_entries WHERE key != ?",
            (exclude_key or "",),
        )
        return int(cursor.fetchone()[0])
