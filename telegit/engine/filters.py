"""Trigger filter: decide which Telegram messages start a workflow run."""

import re
from typing import Any

import structlog

from telegit.models.domain import TriggerMessage

log = structlog.get_logger(__name__)

HASHTAG_PATTERN = re.compile(r"#(\w+)")


def entity_text(text: str, entity: dict[str, Any]) -> str:
    """Return the part of ``text`` covered by a Telegram message entity.

    Entity offsets and lengths count UTF-16 code units, not characters.
    """
    encoded = text.encode("utf-16-le")
    start = entity["offset"] * 2
    end = start + entity["length"] * 2
    return encoded[start:end].decode("utf-16-le", errors="ignore")


def extract_hashtags(text: str, entities: list[dict[str, Any]] | None = None) -> list[str]:
    """Lower-cased hashtags without ``#``, in order of appearance, without duplicates."""
    if entities:
        raw = [entity_text(text, e).lstrip("#") for e in entities if e.get("type") == "hashtag"]
    else:
        raw = HASHTAG_PATTERN.findall(text)

    tags: list[str] = []
    for tag in raw:
        tag = tag.lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


class TriggerFilter:
    """Select trigger messages from raw Telegram ``message`` objects.

    A message triggers when it:
        - comes from an allowed chat (an empty whitelist allows every chat)
        - comes from an allowed user (an empty whitelist allows everyone)
        - has text (or a caption)
        - mentions the bot or carries at least one hashtag

    Example:
        >>> trigger_filter = TriggerFilter("telegit_bot", allowed_chat_ids=[-100123])
        >>> trigger = trigger_filter.parse(update["message"])
    """

    def __init__(
        self,
        bot_username: str,
        allowed_chat_ids: list[int] | None = None,
        allowed_user_ids: list[int] | None = None,
    ) -> None:
        self.bot_username = bot_username.lstrip("@").lower()
        self.allowed_chat_ids = set(allowed_chat_ids or [])
        self.allowed_user_ids = set(allowed_user_ids or [])

    def is_allowed_chat(self, chat_ref: int) -> bool:
        return not self.allowed_chat_ids or chat_ref in self.allowed_chat_ids

    def is_allowed_user(self, user_ref: int | None) -> bool:
        if user_ref is None:
            return False
        return not self.allowed_user_ids or user_ref in self.allowed_user_ids

    def is_mentioned(self, text: str, entities: list[dict[str, Any]] | None = None) -> bool:
        """Whether ``text`` @mentions the bot (case-insensitive)."""
        handle = f"@{self.bot_username}"
        if entities:
            return any(
                e.get("type") == "mention" and entity_text(text, e).lower() == handle for e in entities
            )
        return re.search(rf"{re.escape(handle)}\b", text.lower()) is not None

    def parse(self, message: dict[str, Any]) -> TriggerMessage | None:
        """Return the trigger for ``message``, or None when it should be ignored."""
        chat_ref = message.get("chat", {}).get("id")
        sender = message.get("from") or {}
        user_ref = sender.get("id")

        if chat_ref is None or user_ref is None or sender.get("is_bot"):
            return None
        if not self.is_allowed_chat(chat_ref):
            log.debug("message_from_unlisted_chat", chat_ref=chat_ref)
            return None
        if not self.is_allowed_user(user_ref):
            log.debug("message_from_unlisted_user", chat_ref=chat_ref, user_ref=user_ref)
            return None

        text = message.get("text")
        entities = message.get("entities")
        if text is None:
            text = message.get("caption")
            entities = message.get("caption_entities")
        if not text or not text.strip():
            return None

        hashtags = extract_hashtags(text, entities)
        mentioned = self.is_mentioned(text, entities)
        if not hashtags and not mentioned:
            return None

        reply_to = message.get("reply_to_message") or {}
        return TriggerMessage(
            chat_ref=chat_ref,
            message_ref=message["message_id"],
            user_ref=user_ref,
            text=text,
            hashtags=hashtags,
            mentioned=mentioned,
            username=sender.get("username"),
            reply_to_ref=reply_to.get("message_id"),
        )
