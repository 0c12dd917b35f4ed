"""
Domain models for the TeleGit bot.

This module contains the data classes that flow through the workflow engine
and the stores: classifier output (:class:`Intent`), the formatted call for
the issue tracker (:class:`ActionDescriptor`), the durable records
(:class:`Operation`, :class:`FeedbackMessage`, :class:`GroupLink`) and the
transient chat events (:class:`TriggerMessage`, :class:`ReactionEvent`).

Persistent records convert to and from plain JSON-compatible dictionaries
with ``to_dict()`` / ``from_dict()``; timestamps are stored as ISO 8601
strings in UTC.

Example:
    Recording an executed action::

        operation = Operation(
            id=new_id(),
            group_id=-1001234567890,
            source_message_id=42,
            action_type=ActionType.CREATE_ISSUE,
            status=OperationStatus.COMPLETED,
            result_ref="https://github.com/acme/app/issues/7",
            repository="acme/app",
            issue_number=7,
        )
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from telegit.enums import ActionKind, ActionType, BindingSource, IntentType, OperationStatus, SetupStep


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    """Return a fresh opaque record identifier."""
    return uuid.uuid4().hex


def _parse_dt(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass
class IntentEntities:
    """Structured fields the classifier extracted from a message."""

    title: str | None = None
    description: str | None = None
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    issue_number: int | None = None
    """Target issue for ``update_issue`` intents."""

    search_query: str | None = None
    """Free-text query for ``search_issues`` intents."""

    state: str | None = None
    """Requested issue state (``"open"`` or ``"closed"``) for updates."""


@dataclass
class Intent:
    """Classifier output for a single trigger message.

    Transient: intents are never persisted. Confidence is clamped to
    ``[0.0, 1.0]`` on construction.
    """

    type: IntentType
    confidence: float
    entities: IntentEntities = field(default_factory=IntentEntities)
    reasoning: str | None = None

    def __post_init__(self) -> None:
        self.confidence = min(1.0, max(0.0, float(self.confidence)))


@dataclass
class TriggerMessage:
    """A chat message that passed the trigger filter."""

    chat_ref: int
    """Telegram chat identifier (negative for groups)."""

    message_ref: int
    """Telegram message identifier, unique within the chat."""

    user_ref: int
    text: str
    hashtags: list[str] = field(default_factory=list)
    """Lower-cased hashtags without the leading ``#``."""

    mentioned: bool = False
    """Whether the bot was explicitly @mentioned."""

    username: str | None = None
    reply_to_ref: int | None = None
    """Message this one replies to, used to look up conversation context."""


@dataclass
class ActionDescriptor:
    """A deterministic, gateway-ready description of one tracker call.

    ``payload`` holds kind-specific fields:

    - ``create``: ``title``, ``body``, ``labels``, ``assignees``
    - ``update``: ``issue_number`` plus any of ``title``, ``body``,
      ``labels``, ``assignees``, ``state``
    - ``search``: ``query``, ``labels``, ``state``, ``limit``
    """

    kind: ActionKind
    target: str
    """Repository identifier in ``owner/repo`` form."""

    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def owner(self) -> str:
        return self.target.split("/", 1)[0]

    @property
    def repo(self) -> str:
        return self.target.split("/", 1)[1]


@dataclass
class ActionResult:
    """Outcome of a single gateway invocation."""

    success: bool
    result_ref: str | None = None
    """Web URL of the affected issue, when there is one."""

    issue_number: int | None = None
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    """Extra result data, e.g. ``{"issues": [...], "total": 3}`` for searches."""


@dataclass
class Operation:
    """Durable record of one executed tracker action and its outcome.

    Operations are never deleted; only ``status`` changes over time.
    ``prior_state`` is the snapshot needed to compensate the action.
    """

    id: str
    group_id: int
    source_message_id: int
    action_type: ActionType
    status: OperationStatus
    result_ref: str | None = None
    prior_state: dict[str, Any] | None = None
    repository: str | None = None
    issue_number: int | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "group_id": self.group_id,
            "source_message_id": self.source_message_id,
            "action_type": self.action_type.value,
            "status": self.status.value,
            "result_ref": self.result_ref,
            "prior_state": self.prior_state,
            "repository": self.repository,
            "issue_number": self.issue_number,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Operation":
        return cls(
            id=data["id"],
            group_id=data["group_id"],
            source_message_id=data["source_message_id"],
            action_type=ActionType(data["action_type"]),
            status=OperationStatus(data["status"]),
            result_ref=data.get("result_ref"),
            prior_state=data.get("prior_state"),
            repository=data.get("repository"),
            issue_number=data.get("issue_number"),
            created_at=_parse_dt(data["created_at"]),
            updated_at=_parse_dt(data["updated_at"]),
        )


@dataclass
class FeedbackMessage:
    """An ephemeral chat reply reporting an operation's outcome.

    At most one exists per operation. It is deleted when the user dismisses
    it or when ``scheduled_deletion`` passes, whichever comes first.
    """

    id: str
    operation_id: str
    chat_ref: int
    message_ref: int
    scheduled_deletion: datetime
    dismissed: bool = False
    created_at: datetime = field(default_factory=utcnow)

    def is_due(self, now: datetime) -> bool:
        """Whether the scheduler should delete this message at ``now``."""
        return not self.dismissed and self.scheduled_deletion <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "operation_id": self.operation_id,
            "chat_ref": self.chat_ref,
            "message_ref": self.message_ref,
            "scheduled_deletion": self.scheduled_deletion.isoformat(),
            "dismissed": self.dismissed,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeedbackMessage":
        return cls(
            id=data["id"],
            operation_id=data["operation_id"],
            chat_ref=data["chat_ref"],
            message_ref=data["message_ref"],
            scheduled_deletion=_parse_dt(data["scheduled_deletion"]),
            dismissed=bool(data.get("dismissed", False)),
            created_at=_parse_dt(data["created_at"]),
        )


@dataclass
class ReactionEvent:
    """A change of a user's reactions on one chat message.

    Built by the chat transport from the raw before/after reaction lists so
    that consumers only deal with the emoji that were added or removed.
    """

    chat_ref: int
    message_ref: int
    user_ref: int | None
    added_emojis: list[str] = field(default_factory=list)
    removed_emojis: list[str] = field(default_factory=list)

    @classmethod
    def from_reaction_lists(
        cls,
        chat_ref: int,
        message_ref: int,
        user_ref: int | None,
        old_emojis: list[str],
        new_emojis: list[str],
    ) -> "ReactionEvent":
        """Compute the added/removed sets, preserving the input order."""
        old_set = set(old_emojis)
        new_set = set(new_emojis)
        return cls(
            chat_ref=chat_ref,
            message_ref=message_ref,
            user_ref=user_ref,
            added_emojis=[e for e in new_emojis if e not in old_set],
            removed_emojis=[e for e in old_emojis if e not in new_set],
        )


@dataclass
class ConversationContext:
    """Cached message chain for a reply thread, used to enrich classification."""

    chat_ref: int
    thread_root_ref: int
    messages: list[dict[str, Any]] = field(default_factory=list)
    cached_at: datetime = field(default_factory=utcnow)
    expires_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def to_dict(self) -> dict[str, Any]:
        return {
            "chat_ref": self.chat_ref,
            "thread_root_ref": self.thread_root_ref,
            "messages": self.messages,
            "cached_at": self.cached_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConversationContext":
        return cls(
            chat_ref=data["chat_ref"],
            thread_root_ref=data["thread_root_ref"],
            messages=list(data.get("messages", [])),
            cached_at=_parse_dt(data["cached_at"]),
            expires_at=_parse_dt(data["expires_at"]),
        )


@dataclass
class SetupSession:
    """In-progress private-chat setup conversation for a group."""

    user_ref: int
    group_ref: int | None = None
    step: str = SetupStep.AWAITING_REPOSITORY
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class GroupLink:
    """Binding of a Telegram group to a repository.

    Links made through the private-chat setup are persisted and have a
    manager, the user who completed the setup. Bindings from the
    configuration file have neither.
    """

    chat_ref: int
    repository: str
    github_token: str | None = None
    """Encrypted token (``iv:tag:ciphertext``), or None to use the default token."""

    manager_user_ref: int | None = None
    source: BindingSource = BindingSource.SETUP
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chat_ref": self.chat_ref,
            "repository": self.repository,
            "github_token": self.github_token,
            "manager_user_ref": self.manager_user_ref,
            "source": self.source.value,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GroupLink":
        return cls(
            chat_ref=data["chat_ref"],
            repository=data["repository"],
            github_token=data.get("github_token"),
            manager_user_ref=data.get("manager_user_ref"),
            source=BindingSource(data.get("source", BindingSource.SETUP)),
            created_at=_parse_dt(data["created_at"]),
        )
