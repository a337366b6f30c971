# =============================================================================
# site_core/offline/local_storage.py
# Local Key/Value Storage for Offline Operations
# =============================================================================
"""
LocalStorage - SQLite-backed key/value medium for offline JSON blobs.

Features:
- One row per namespace key, value stored as plain JSON text
- Optional byte quota (mirrors a browser storage quota)
- Every fault surfaces as StorageError / StorageQuotaError
- Explicit initialize()/close() lifecycle, no module-level instance
"""

from __future__ import annotations
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union
import logging

from site_core.errors import StorageError, StorageQuotaError

logger = logging.getLogger(__name__)


class LocalStorage:
    """
    Key/value store holding the offline namespaces (``offline_forms``,
    ``offlineData``). Values carry no schema version; a format change needs a
    clearing migration.
    """

    DEFAULT_DB_PATH = Path("local_data") / "sitepulse.db"

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS local_storage (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP
        )
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        quota_bytes: Optional[int] = None,
    ):
        """
        Initialize local storage.

        Args:
            db_path: Path to SQLite file, or ":memory:"
            quota_bytes: Maximum total bytes across all values (None = unbounded)
        """
        self.db_path = str(db_path) if db_path is not None else str(self.DEFAULT_DB_PATH)
        self.quota_bytes = quota_bytes
        self._connection: Optional[sqlite3.Connection] = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._connection = sqlite3.connect(self.db_path)
            self._connection.row_factory = sqlite3.Row
        return self._connection

    @contextmanager
    def transaction(self):
        """Context manager for storage transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        """Create the storage table."""
        if self._initialized:
            return

        try:
            with self.transaction() as conn:
                conn.execute(self.SCHEMA)
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Could not open local storage: {e}") from e

        self._initialized = True
        logger.info(f"Local storage initialized at: {self.db_path}")

    # =========================================================================
    # KEY/VALUE OPERATIONS
    # =========================================================================

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored text for ``key`` or None."""
        self.initialize()
        try:
            row = self._get_connection().execute(
                "SELECT value FROM local_storage WHERE key = ?", [key]
            ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Read failed: {e}", key=key) from e
        return row["value"] if row else None

    def set_item(self, key: str, value: str) -> None:
        """
        Store ``value`` under ``key``.

        Raises:
            StorageQuotaError: the write would exceed ``quota_bytes``
            StorageError: the medium rejected the write
        """
        if not isinstance(value, str):
            raise StorageError(f"Value must be text, got {type(value).__name__}", key=key)

        self.initialize()
        if self.quota_bytes is not None:
            other = self._usage_excluding(key)
            requested = other + len(value.encode("utf-8"))
            if requested > self.quota_bytes:
                raise StorageQuotaError(
                    "Local storage quota exceeded",
                    key=key,
                    quota_bytes=self.quota_bytes,
                    requested_bytes=requested,
                )

        try:
            with self.transaction() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO local_storage (key, value, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    [key, value, datetime.now().isoformat()],
                )
        except sqlite3.Error as e:
            raise StorageError(f"Write failed: {e}", key=key) from e

    def remove_item(self, key: str) -> None:
        self.initialize()
        try:
            with self.transaction() as conn:
                conn.execute("DELETE FROM local_storage WHERE key = ?", [key])
        except sqlite3.Error as e:
            raise StorageError(f"Delete failed: {e}", key=key) from e

    def keys(self) -> List[str]:
        self.initialize()
        try:
            rows = self._get_connection().execute(
                "SELECT key FROM local_storage ORDER BY key"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Key listing failed: {e}") from e
        return [row["key"] for row in rows]

    def usage_bytes(self) -> int:
        """Total UTF-8 bytes held across all values."""
        self.initialize()
        return self._usage_excluding(None)

    def _usage_excluding(self, key: Optional[str]) -> int:
        try:
            rows = self._get_connection().execute(
                "SELECT key, value FROM local_storage"
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Usage query failed: {e}") from e
        return sum(len(row["value"].encode("utf-8")) for row in rows if row["key"] != key)

    def close(self) -> None:
        """Close the storage connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        self._initialized = False
