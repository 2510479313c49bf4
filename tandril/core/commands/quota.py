# tandril/core/commands/quota.py
"""Monthly command quota per user."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from tandril.core.store.base import RecordStore

logger = logging.getLogger(__name__)

COLLECTION = "command_usage"


@dataclass
class UsageQuota:
    """Snapshot of a user's usage against their monthly limit."""

    limit: int
    used: int

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def at_limit(self) -> bool:
        return self.used >= self.limit


class UsageRepository:
    """Counts interpreted commands per user and calendar month (UTC).

    One record per ``{user_id}:{YYYY-MM}``; a new month starts from zero.
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    @staticmethod
    def _key(user_id: str, now: datetime | None) -> str:
        now = now or datetime.now(timezone.utc)
        return f"{user_id}:{now:%Y-%m}"

    def used(self, user_id: str, now: datetime | None = None) -> int:
        """Commands used by a user in the month containing ``now``."""
        record = self.store.get(COLLECTION, self._key(user_id, now))
        return int(record.get("count", 0)) if record else 0

    def increment(self, user_id: str, now: datetime | None = None) -> int:
        """Count one more command for the user.

        Returns:
            The new monthly count.
        """
        key = self._key(user_id, now)
        record = self.store.get(COLLECTION, key)
        if record is None:
            self.store.create(COLLECTION, {"id": key, "user_id": user_id, "count": 1})
            return 1
        count = int(record.get("count", 0)) + 1
        self.store.update(COLLECTION, key, {"count": count})
        logger.debug("User %s has used %d commands this month", user_id, count)
        return count

    def quota_for(
        self, user_id: str, limit: int, now: datetime | None = None
    ) -> UsageQuota:
        """Build the user's quota snapshot.

        Args:
            user_id: User identifier.
            limit: Monthly limit for the user's plan.
            now: Reference time (defaults to the current UTC time).
        """
        return UsageQuota(limit=limit, used=self.used(user_id, now))
