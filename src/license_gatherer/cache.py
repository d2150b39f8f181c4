"""SQLite-based persistent cache for remotely fetched license files.

Files fetched from git hosts at a specific revision never change, so
keeping them across runs avoids refetching the same LICENSE files every
time a dependency graph is scanned.
"""

import contextlib
import hashlib
import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Optional

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "license_gatherer"


def cache_key(repository: str, revision: str, path: str) -> str:
    """Return the hash identifying a file at a revision of a repository."""
    digest = hashlib.sha256()
    for part in (repository, revision, path):
        digest.update(part.encode("utf-8"))
        digest.update(b"\0")
    return digest.hexdigest()


class RemoteFileCache:
    """SQLite cache of remote file contents.

    Attributes:
        db_path: Path to the SQLite database file.
        ttl_days: Number of days before cache entries expire (default: 30).
    """

    DEFAULT_TTL_DAYS = 30

    def __init__(
        self,
        db_path: Optional[Path] = None,
        ttl_days: int = DEFAULT_TTL_DAYS,
    ):
        """Initialize the remote file cache.

        Args:
            db_path: Path to SQLite database. If None, uses
                ~/.cache/license_gatherer/remote.db.
            ttl_days: Number of days before cache entries expire.
        """
        if db_path is None:
            DEFAULT_CACHE_DIR.mkdir(parents=True, exist_ok=True)
            db_path = DEFAULT_CACHE_DIR / "remote.db"

        self.db_path = db_path
        self.ttl_days = ttl_days
        self._conn: Optional[sqlite3.Connection] = None
        self._init_database()

    def __enter__(self) -> "RemoteFileCache":
        """Enter context manager, keeping connection open."""
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager, closing connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @contextlib.contextmanager
    def _connect(self):
        """Get a database connection.

        Reuses the open connection inside a with block, otherwise opens
        a new one and closes it after use.
        """
        if self._conn:
            yield self._conn
        else:
            conn = sqlite3.connect(self.db_path)
            try:
                yield conn
            finally:
                conn.close()

    def _init_database(self) -> None:
        """Initialize the database schema if it doesn't exist."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS remote_files (
                    key TEXT PRIMARY KEY,
                    repository TEXT NOT NULL,
                    revision TEXT NOT NULL,
                    path TEXT NOT NULL,
                    contents TEXT NOT NULL,
                    fetched_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_remote_repository
                ON remote_files(repository)
                """
            )
            conn.commit()

    def get(self, repository: str, revision: str, path: str) -> Optional[str]:
        """Retrieve a cached file.

        Returns:
            The file contents on a hit, None on a miss or expired entry.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT contents, expires_at FROM remote_files WHERE key = ?",
                (cache_key(repository, revision, path),),
            )
            row = cursor.fetchone()

        if row is None:
            return None

        contents, expires_at_str = row
        if datetime.now(UTC) >= datetime.fromisoformat(expires_at_str):
            return None
        return contents

    def set(self, repository: str, revision: str, path: str, contents: str) -> None:
        """Store a fetched file."""
        fetched_at = datetime.now(UTC)
        expires_at = fetched_at + timedelta(days=self.ttl_days)

        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                REPLACE INTO remote_files
                (key, repository, revision, path, contents, fetched_at, expires_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    cache_key(repository, revision, path),
                    repository,
                    revision,
                    path,
                    contents,
                    fetched_at.isoformat(),
                    expires_at.isoformat(),
                ),
            )
            conn.commit()

    def clear(self, repository: Optional[str] = None) -> None:
        """Clear cache entries.

        Args:
            repository: If specified, clear only files fetched from this
                repository. If None, clear all entries.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            if repository is None:
                cursor.execute("DELETE FROM remote_files")
            else:
                cursor.execute(
                    "DELETE FROM remote_files WHERE repository = ?",
                    (repository,),
                )
            conn.commit()

    def info(self) -> dict:
        """Get cache statistics.

        Returns:
            Dictionary with cache information:
                - path: Path to cache database file
                - count: Number of cached files
                - size_bytes: Database file size in bytes
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM remote_files")
            count = cursor.fetchone()[0]

        size_bytes = self.db_path.stat().st_size if self.db_path.exists() else 0

        return {
            "path": str(self.db_path),
            "count": count,
            "size_bytes": size_bytes,
        }
