# tandril/core/actions/resolver.py
"""Late-bound data resolution for actions.

Some actions reference data that only exists at execution time, such as a
file uploaded earlier in the conversation. Each action passes through a
resolver before execution; a missing reference raises ActionResolutionError,
which callers record as an item failure distinct from an execution failure.
"""

import dataclasses
import logging
import posixpath
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlparse

from tandril.core.actions.models import Action, ImportFileAction
from tandril.core.errors import ActionResolutionError

logger = logging.getLogger(__name__)


@dataclass
class Attachment:
    """A file uploaded during a conversation or attached to a command."""

    file_id: str
    name: str
    url: str

    @classmethod
    def from_url(cls, url: str) -> "Attachment":
        """Build an attachment from a bare upload URL."""
        name = posixpath.basename(urlparse(url).path) or url
        return cls(file_id=url, name=name, url=url)


class ActionResolver(Protocol):
    """Protocol for the pre-execution resolution step."""

    async def resolve(self, action: Action) -> Action:
        """Return the action with late-bound fields filled in.

        Raises:
            ActionResolutionError: If referenced data cannot be located.
        """
        ...


class AttachmentResolver:
    """Resolves ImportFileAction references against known attachments.

    Other action kinds pass through unchanged.
    """

    def __init__(self, attachments: list[Attachment]) -> None:
        self._attachments = list(attachments)

    def _find(self, reference: str) -> Attachment | None:
        for attachment in self._attachments:
            if reference in (attachment.file_id, attachment.url, attachment.name):
                return attachment
        return None

    async def resolve(self, action: Action) -> Action:
        if not isinstance(action, ImportFileAction):
            return action

        reference = action.file_id or action.file_name or ""
        attachment = self._find(reference) if reference else None
        if attachment is None:
            raise ActionResolutionError(
                f"Uploaded file '{reference or 'unspecified'}' could not be found. "
                "Please upload it again."
            )

        return dataclasses.replace(
            action, file_url=attachment.url, file_name=attachment.name
        )


class AttachmentRegistry:
    """In-memory uploaded-file references, grouped by conversation."""

    def __init__(self) -> None:
        self._by_conversation: dict[str, dict[str, Attachment]] = {}

    def add(self, conversation_id: str, attachment: Attachment) -> None:
        self._by_conversation.setdefault(conversation_id, {})[
            attachment.file_id
        ] = attachment
        logger.debug(
            "Attachment %s registered for conversation %s",
            attachment.file_id,
            conversation_id,
        )

    def remove(self, conversation_id: str, file_id: str) -> bool:
        return (
            self._by_conversation.get(conversation_id, {}).pop(file_id, None)
            is not None
        )

    def list(self, conversation_id: str) -> list[Attachment]:
        return list(self._by_conversation.get(conversation_id, {}).values())

    def resolver_for(self, conversation_id: str) -> "ConversationResolver":
        """Build a resolver for one conversation.

        Attachments are read at resolution time, so files uploaded after a
        queue opened are still found.
        """
        return ConversationResolver(self, conversation_id)


class ConversationResolver:
    """Resolver reading one conversation's attachments lazily."""

    def __init__(self, registry: AttachmentRegistry, conversation_id: str) -> None:
        self._registry = registry
        self._conversation_id = conversation_id

    async def resolve(self, action: Action) -> Action:
        resolver = AttachmentResolver(self._registry.list(self._conversation_id))
        return await resolver.resolve(action)
