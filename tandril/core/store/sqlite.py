# tandril/core/store/sqlite.py
"""SQLite implementation of the RecordStore protocol.

Records of every collection live in a single ``records`` table as JSON
documents keyed by ``(collection, id)``. Uses direct sqlite3 with one
connection per operation.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3

from tandril.core.store.base import (
    Record,
    matches,
    prepare_new_record,
    sort_records,
    utc_now_iso,
)

logger = logging.getLogger(__name__)


class SQLiteRecordStore:
    """Repository for storing JSON records in SQLite.

    The store auto-creates the database directory and table on
    initialization.

    Attributes:
        db_path: Path to the SQLite database file.

    Example:
        >>> store = SQLiteRecordStore(db_path="data/tandril.db")
        >>> created = store.create("commands", {"command_text": "hello"})
        >>> store.get("commands", created["id"])["command_text"]
        'hello'
    """

    def __init__(self, db_path: str = "data/tandril.db") -> None:
        """Initialize the SQLiteRecordStore.

        Creates the database directory and records table if they don't exist.
        Enables WAL mode for better concurrent access.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path

        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("PRAGMA journal_mode=WAL")

            conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_records_collection
                ON records(collection)
            """)
            conn.commit()
        finally:
            conn.close()

    def create(self, collection: str, data: Record) -> Record:
        """Insert a new record.

        Args:
            collection: Collection name.
            data: Record fields. ``id`` is generated when absent.

        Returns:
            The stored record including id and timestamps.

        Raises:
            sqlite3.IntegrityError: If a record with the same id exists.
        """
        record = prepare_new_record(data)
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO records (collection, id, data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    collection,
                    record["id"],
                    json.dumps(record),
                    record["created_at"],
                    record["updated_at"],
                ),
            )
            conn.commit()
            return record
        finally:
            conn.close()

    def get(self, collection: str, record_id: str) -> Record | None:
        """Retrieve a record by id.

        Returns:
            The record if found, None otherwise.
        """
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT data FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return json.loads(row[0])
        finally:
            conn.close()

    def update(self, collection: str, record_id: str, changes: Record) -> Record | None:
        """Merge changes into an existing record (last write wins).

        Returns:
            Updated record, or None if no record with the id exists.
        """
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT data FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            )
            row = cursor.fetchone()
            if row is None:
                return None

            record = json.loads(row[0])
            record.update(changes)
            record["id"] = record_id
            record["updated_at"] = utc_now_iso()

            conn.execute(
                """
                UPDATE records SET data = ?, updated_at = ?
                WHERE collection = ? AND id = ?
                """,
                (json.dumps(record), record["updated_at"], collection, record_id),
            )
            conn.commit()
            return record
        finally:
            conn.close()

    def delete(self, collection: str, record_id: str) -> bool:
        """Delete a record by id.

        Returns:
            True if the record was deleted, False if it didn't exist.
        """
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def _load_collection(self, collection: str) -> list[Record]:
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT data FROM records WHERE collection = ?",
                (collection,),
            )
            return [json.loads(row[0]) for row in cursor.fetchall()]
        finally:
            conn.close()

    def list(
        self, collection: str, order_by: str | None = None, limit: int | None = None
    ) -> list[Record]:
        """List records in a collection, empty list if none exist."""
        return sort_records(self._load_collection(collection), order_by, limit)

    def filter(
        self,
        collection: str,
        criteria: Record,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        """List records matching every criteria field."""
        records = [r for r in self._load_collection(collection) if matches(r, criteria)]
        return sort_records(records, order_by, limit)
