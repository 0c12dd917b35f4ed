"""Telegram Bot API chat transport over httpx.

Besides the outgoing :class:`~telegit.providers.base.ChatTransport` calls,
this module turns raw ``getUpdates`` payloads into domain events: trigger
candidates stay raw dicts for the trigger filter, while
``message_reaction`` updates become :class:`ReactionEvent` values carrying
the added and removed emoji.
"""

from typing import Any

import httpx
import structlog

from telegit.exceptions import ExternalServiceError, MessageNotFoundError, NotificationError
from telegit.models.domain import ReactionEvent
from telegit.providers.base import ChatTransport

log = structlog.get_logger(__name__)

ALLOWED_UPDATES = ["message", "message_reaction"]


def _emoji_list(reactions: list[dict[str, Any]] | None) -> list[str]:
    """Extract plain emoji from a Telegram ReactionType list.

    Custom and paid reactions are ignored.
    """
    return [r["emoji"] for r in reactions or [] if r.get("type") == "emoji" and r.get("emoji")]


def parse_reaction_update(update: dict[str, Any]) -> ReactionEvent | None:
    """Build a :class:`ReactionEvent` from a ``message_reaction`` update.

    Returns:
        The event, or None when the update is not a reaction change or
        nothing changed among plain emoji.
    """
    reaction = update.get("message_reaction")
    if not reaction:
        return None

    user = reaction.get("user") or {}
    event = ReactionEvent.from_reaction_lists(
        chat_ref=reaction["chat"]["id"],
        message_ref=reaction["message_id"],
        user_ref=user.get("id"),
        old_emojis=_emoji_list(reaction.get("old_reaction")),
        new_emojis=_emoji_list(reaction.get("new_reaction")),
    )
    if not event.added_emojis and not event.removed_emojis:
        return None
    return event


class TelegramTransport(ChatTransport):
    """Chat transport calling the Telegram Bot API directly.

    Example:
        >>> transport = TelegramTransport(token="123:abc")
        >>> message_ref = await transport.reply(-100123, 42, "✅ Done")
        >>> await transport.close()
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.telegram.org",
        timeout: float = 40.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the transport.

        Args:
            token: Bot token
            base_url: Bot API base URL
            timeout: Request timeout in seconds; must exceed the long-poll timeout
            client: Optional preconfigured client (used by tests)
        """
        self.api_url = f"{base_url.rstrip('/')}/bot{token}"
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self.client.aclose()

    async def call(self, method: str, payload: dict[str, Any] | None = None) -> Any:
        """Call a Bot API method and return its ``result``.

        Raises:
            ExternalServiceError: On transport failures or ``ok: false`` responses.
        """
        try:
            response = await self.client.post(f"{self.api_url}/{method}", json=payload or {})
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Telegram {method} request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise ExternalServiceError(
                f"Telegram {method} returned invalid JSON",
                status_code=response.status_code,
                response_text=response.text,
            ) from e

        if not body.get("ok"):
            raise ExternalServiceError(
                f"Telegram {method} failed: {body.get('description', 'unknown error')}",
                status_code=body.get("error_code", response.status_code),
                response_text=response.text,
            )
        return body.get("result")

    async def set_reaction(self, chat_ref: int, message_ref: int, emoji: str) -> None:
        try:
            await self.call(
                "setMessageReaction",
                {
                    "chat_id": chat_ref,
                    "message_id": message_ref,
                    "reaction": [{"type": "emoji", "emoji": emoji}],
                },
            )
        except ExternalServiceError as e:
            raise NotificationError(
                f"Failed to set reaction: {e.message}",
                details={"chat_ref": chat_ref, "message_ref": message_ref, "emoji": emoji},
            ) from e

    async def reply(self, chat_ref: int, message_ref: int, text: str) -> int:
        try:
            result = await self.call(
                "sendMessage",
                {
                    "chat_id": chat_ref,
                    "text": text,
                    "reply_parameters": {"message_id": message_ref, "allow_sending_without_reply": True},
                    "link_preview_options": {"is_disabled": True},
                },
            )
        except ExternalServiceError as e:
            raise NotificationError(
                f"Failed to send reply: {e.message}",
                details={"chat_ref": chat_ref, "message_ref": message_ref},
            ) from e
        return int(result["message_id"])

    async def send_message(self, chat_ref: int, text: str) -> int:
        try:
            result = await self.call(
                "sendMessage",
                {"chat_id": chat_ref, "text": text, "link_preview_options": {"is_disabled": True}},
            )
        except ExternalServiceError as e:
            raise NotificationError(f"Failed to send message: {e.message}", details={"chat_ref": chat_ref}) from e
        return int(result["message_id"])

    async def delete_message(self, chat_ref: int, message_ref: int) -> bool:
        try:
            await self.call("deleteMessage", {"chat_id": chat_ref, "message_id": message_ref})
        except ExternalServiceError as e:
            details = {"chat_ref": chat_ref, "message_ref": message_ref}
            # Bot API answers 400 for messages that are gone or too old to delete
            if e.status_code == 400:
                raise MessageNotFoundError(f"Message already deleted: {e.message}", details=details) from e
            raise NotificationError(f"Failed to delete message: {e.message}", details=details) from e
        return True

    async def get_updates(self, offset: int | None = None, timeout: int = 30) -> list[dict[str, Any]]:
        """Long-poll for new updates.

        Args:
            offset: Identifier of the first update to return
            timeout: Long-poll timeout in seconds
        """
        payload: dict[str, Any] = {"timeout": timeout, "allowed_updates": ALLOWED_UPDATES}
        if offset is not None:
            payload["offset"] = offset
        result = await self.call("getUpdates", payload)
        return list(result or [])
