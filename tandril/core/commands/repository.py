# tandril/core/commands/repository.py
"""Command persistence over the generic record store."""

from tandril.core.commands.models import Command
from tandril.core.errors import RecordNotFoundError
from tandril.core.store.base import RecordStore

COLLECTION = "commands"


class CommandRepository:
    """Repository for storing and retrieving commands.

    Attributes:
        store: Backing record store.

    Example:
        >>> repo = CommandRepository(InMemoryRecordStore())
        >>> created = repo.create(Command(id="", command_text="hi", platform_targets=["shop"]))
        >>> repo.get(created.id).command_text
        'hi'
    """

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def create(self, command: Command) -> Command:
        """Persist a new command.

        The store assigns the id and timestamps; the returned Command carries
        them.
        """
        data = command.to_dict()
        if not data["id"]:
            data.pop("id")
        data.pop("created_at")
        data.pop("updated_at")
        return Command.from_dict(self.store.create(COLLECTION, data))

    def get(self, command_id: str) -> Command | None:
        """Retrieve a command by id, or None if it does not exist."""
        record = self.store.get(COLLECTION, command_id)
        if record is None:
            return None
        return Command.from_dict(record)

    def save(self, command: Command) -> Command:
        """Write every field of an existing command (last write wins).

        Raises:
            RecordNotFoundError: If the command was never created.
        """
        data = command.to_dict()
        data.pop("created_at")
        data.pop("updated_at")
        record = self.store.update(COLLECTION, command.id, data)
        if record is None:
            raise RecordNotFoundError(COLLECTION, command.id)
        saved = Command.from_dict(record)
        command.updated_at = saved.updated_at
        return saved

    def list(
        self,
        user_id: str | None = None,
        status: str | None = None,
        limit: int | None = None,
    ) -> list[Command]:
        """List commands, newest first."""
        criteria = {}
        if user_id is not None:
            criteria["user_id"] = user_id
        if status is not None:
            criteria["status"] = status
        records = self.store.filter(
            COLLECTION, criteria, order_by="-created_at", limit=limit
        )
        return [Command.from_dict(r) for r in records]

    def delete(self, command_id: str) -> bool:
        return self.store.delete(COLLECTION, command_id)
