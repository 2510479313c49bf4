"""Record store backends.

Provides:
- RecordStore: protocol consumed by every repository
- SQLiteRecordStore: durable backend
- InMemoryRecordStore: mock backend for tests and demos
- create_store: backend selection at process start
"""

import logging

from tandril.config import Settings
from tandril.core.store.base import Record, RecordStore, sort_records
from tandril.core.store.memory import InMemoryRecordStore
from tandril.core.store.sqlite import SQLiteRecordStore

logger = logging.getLogger(__name__)


def create_store(config: Settings) -> RecordStore:
    """Create the record store selected by configuration.

    Args:
        config: Application settings (``store_backend``, ``database_path``).

    Returns:
        A RecordStore implementation.

    Raises:
        ValueError: If the backend name is unknown.
    """
    backend = config.store_backend.lower()
    if backend == "memory":
        logger.info("Using in-memory record store")
        return InMemoryRecordStore()
    if backend == "sqlite":
        logger.info("Using SQLite record store at %s", config.database_path)
        return SQLiteRecordStore(db_path=config.database_path)
    raise ValueError(f"Unknown store backend: {config.store_backend}")


__all__ = [
    "InMemoryRecordStore",
    "Record",
    "RecordStore",
    "SQLiteRecordStore",
    "create_store",
    "sort_records",
]
