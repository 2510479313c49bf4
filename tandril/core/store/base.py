"""Record store protocol and shared helpers.

The store is a generic document capability: named collections of JSON-like
dicts keyed by a string ``id``. Business modules only talk to this protocol;
the concrete backend is chosen once at start-up (see ``create_store``).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Protocol

Record = dict[str, Any]


class RecordStore(Protocol):
    """Protocol for generic collection persistence."""

    def create(self, collection: str, data: Record) -> Record:
        """Insert a record, assigning ``id`` and timestamps when missing."""
        ...

    def get(self, collection: str, record_id: str) -> Record | None:
        """Fetch one record by id, or None."""
        ...

    def update(self, collection: str, record_id: str, changes: Record) -> Record | None:
        """Merge ``changes`` into a record. Returns None if it does not exist."""
        ...

    def delete(self, collection: str, record_id: str) -> bool:
        """Delete a record. Returns True if something was deleted."""
        ...

    def list(
        self, collection: str, order_by: str | None = None, limit: int | None = None
    ) -> list[Record]:
        """List every record of a collection. Never returns None."""
        ...

    def filter(
        self,
        collection: str,
        criteria: Record,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        """List records whose fields equal every value in ``criteria``."""
        ...


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_record_id() -> str:
    """Generate a record identifier."""
    return str(uuid.uuid4())


def prepare_new_record(data: Record) -> Record:
    """Copy ``data`` and fill in id/created_at/updated_at."""
    record = dict(data)
    now = utc_now_iso()
    record.setdefault("id", new_record_id())
    record.setdefault("created_at", now)
    record["updated_at"] = record.get("updated_at") or now
    return record


def matches(record: Record, criteria: Record) -> bool:
    """Check that every criteria key equals the record's value."""
    return all(record.get(key) == value for key, value in criteria.items())


def sort_records(
    records: list[Record], order_by: str | None, limit: int | None = None
) -> list[Record]:
    """Sort records by a column, ``-column`` meaning descending.

    Records missing the column always sort last.

    Args:
        records: Records to sort.
        order_by: Column name, optionally prefixed with ``-``.
        limit: Optional maximum number of records to return.

    Returns:
        A new sorted (and truncated) list.
    """
    result = list(records)
    if order_by:
        descending = order_by.startswith("-")
        column = order_by.lstrip("-")
        present = [r for r in result if r.get(column) is not None]
        missing = [r for r in result if r.get(column) is None]
        present.sort(key=lambda r: r[column], reverse=descending)
        result = present + missing
    if limit is not None:
        result = result[:limit]
    return result
