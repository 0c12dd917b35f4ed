"""
Abstract base classes for providers.

This module defines the collaborator interfaces the workflow engine depends
on: the chat transport (Telegram), the action gateway (GitHub) and the intent
classifier (an LLM). Concrete adapters live beside this module; tests
substitute mocks.
"""

from abc import ABC, abstractmethod
from typing import Any

from telegit.models.domain import ActionDescriptor, ActionResult, Intent


class ChatTransport(ABC):
    """Outgoing side of the chat platform.

    Implementations translate platform failures into
    :class:`telegit.exceptions.NotificationError` (or its subclass
    :class:`telegit.exceptions.MessageNotFoundError` when the target message
    no longer exists).
    """

    @abstractmethod
    async def set_reaction(self, chat_ref: int, message_ref: int, emoji: str) -> None:
        """Replace the bot's reaction on a message with ``emoji``."""
        pass

    @abstractmethod
    async def reply(self, chat_ref: int, message_ref: int, text: str) -> int:
        """Post ``text`` as a reply to a message.

        Returns:
            The new message's identifier.
        """
        pass

    @abstractmethod
    async def send_message(self, chat_ref: int, text: str) -> int:
        """Post ``text`` to a chat (or a user's private chat) without replying.

        Returns:
            The new message's identifier.
        """
        pass

    @abstractmethod
    async def delete_message(self, chat_ref: int, message_ref: int) -> bool:
        """Delete a message.

        Returns:
            True when the message was deleted.

        Raises:
            MessageNotFoundError: If the message is already gone.
            NotificationError: For any other delivery failure.
        """
        pass


class ActionGateway(ABC):
    """Issue tracker tool layer.

    Each :meth:`invoke` is treated as at-most-once: callers never retry, and
    implementations do not promise idempotency.
    """

    @abstractmethod
    async def invoke(self, descriptor: ActionDescriptor) -> ActionResult:
        """Perform the call described by ``descriptor``.

        Tracker-side failures are reported as ``ActionResult(success=False)``
        rather than raised.
        """
        pass

    @abstractmethod
    async def get_issue(self, repository: str, issue_number: int) -> dict[str, Any]:
        """Return a snapshot of an issue's editable fields.

        Returns:
            Dict with ``title``, ``body``, ``labels``, ``assignees``, ``state``
            and ``url``.

        Raises:
            ActionExecutionError: If the issue cannot be read.
        """
        pass

    @abstractmethod
    async def verify_access(self, repository: str, token: str) -> None:
        """Check that ``token`` can read the repository and its issues.

        Raises:
            ActionExecutionError: With a user-facing reason when it cannot.
        """
        pass


class IntentClassifier(ABC):
    """Turns message text into an :class:`Intent`."""

    @abstractmethod
    async def classify(self, text: str, context: list[dict[str, Any]] | None = None) -> Intent:
        """Classify a message.

        Args:
            text: Message text.
            context: Earlier messages of the same reply thread, oldest first.

        Raises:
            ClassificationError: If the classifier cannot be reached or its
                output cannot be parsed.
        """
        pass
