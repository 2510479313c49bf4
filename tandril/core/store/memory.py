"""In-memory RecordStore used for tests and local demos."""

from __future__ import annotations

import copy

from tandril.core.store.base import (
    Record,
    matches,
    prepare_new_record,
    sort_records,
    utc_now_iso,
)


class InMemoryRecordStore:
    """Dict-backed implementation of the RecordStore protocol.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Record]] = {}

    def _bucket(self, collection: str) -> dict[str, Record]:
        return self._collections.setdefault(collection, {})

    def create(self, collection: str, data: Record) -> Record:
        record = prepare_new_record(data)
        self._bucket(collection)[record["id"]] = copy.deepcopy(record)
        return copy.deepcopy(record)

    def get(self, collection: str, record_id: str) -> Record | None:
        record = self._bucket(collection).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def update(self, collection: str, record_id: str, changes: Record) -> Record | None:
        bucket = self._bucket(collection)
        if record_id not in bucket:
            return None
        record = bucket[record_id]
        record.update(copy.deepcopy(changes))
        record["id"] = record_id
        record["updated_at"] = utc_now_iso()
        return copy.deepcopy(record)

    def delete(self, collection: str, record_id: str) -> bool:
        return self._bucket(collection).pop(record_id, None) is not None

    def list(
        self, collection: str, order_by: str | None = None, limit: int | None = None
    ) -> list[Record]:
        records = [copy.deepcopy(r) for r in self._bucket(collection).values()]
        return sort_records(records, order_by, limit)

    def filter(
        self,
        collection: str,
        criteria: Record,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        records = [
            copy.deepcopy(r)
            for r in self._bucket(collection).values()
            if matches(r, criteria)
        ]
        return sort_records(records, order_by, limit)
