"""Format step: turn an intent into a gateway-ready action descriptor.

The mapping is deterministic; everything that depends on chat input is
sanitized here before it reaches the issue tracker.
"""

from typing import Any

import structlog

from telegit.enums import ActionKind, ErrorCode, IntentType, WorkflowStatus
from telegit.engine.stages.base import WorkflowStep
from telegit.engine.types import RunState
from telegit.exceptions import FormattingError
from telegit.models.domain import ActionDescriptor, Intent, TriggerMessage
from telegit.utils.sanitize import sanitize_body, sanitize_label, sanitize_title

log = structlog.get_logger(__name__)

MAX_LABELS = 10
MAX_ASSIGNEES = 10
DEFAULT_TITLE = "Untitled Issue"
BOT_LABEL = "telegit"

INTENT_LABELS: dict[IntentType, tuple[str, ...]] = {
    IntentType.CREATE_BUG: ("bug",),
    IntentType.CREATE_TASK: ("task",),
    IntentType.CREATE_IDEA: ("enhancement", "idea"),
}

INTENT_KINDS: dict[IntentType, ActionKind] = {
    IntentType.CREATE_BUG: ActionKind.CREATE,
    IntentType.CREATE_TASK: ActionKind.CREATE,
    IntentType.CREATE_IDEA: ActionKind.CREATE,
    IntentType.UPDATE_ISSUE: ActionKind.UPDATE,
    IntentType.SEARCH_ISSUES: ActionKind.SEARCH,
}


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(item for item in items if item))


def format_title(intent: Intent) -> str:
    return sanitize_title(intent.entities.title) or DEFAULT_TITLE


def format_body(intent: Intent, trigger: TriggerMessage) -> str:
    """Issue body: the description followed by a metadata footer."""
    description = sanitize_body(intent.entities.description or intent.entities.title or "")
    footer = (
        "\n\n---\n\n"
        "*Created by TeleGit from Telegram*\n\n"
        f"- User: @{trigger.username or 'Unknown'}\n"
        f"- Chat ID: {trigger.chat_ref}\n"
        f"- Message ID: {trigger.message_ref}\n"
        f"- Confidence: {round(intent.confidence * 100)}%"
    )
    return description + footer


def format_labels(intent: Intent) -> list[str]:
    """Labels from the intent plus the intent label and the bot label.

    Lower-cased, de-duplicated and capped at ten.
    """
    labels = [sanitize_label(label) for label in intent.entities.labels]
    labels.extend(INTENT_LABELS.get(intent.type, ()))
    labels.append(BOT_LABEL)
    return _dedupe(labels)[:MAX_LABELS]


def format_assignees(intent: Intent) -> list[str]:
    return _dedupe([a.strip().lstrip("@") for a in intent.entities.assignees])[:MAX_ASSIGNEES]


def build_descriptor(intent: Intent, trigger: TriggerMessage, repository: str) -> ActionDescriptor:
    """Map an intent to the tracker call that fulfils it.

    Raises:
        FormattingError: If an update intent names no issue, or a search has
            nothing to search for.
    """
    kind = INTENT_KINDS.get(intent.type, ActionKind.NONE)
    entities = intent.entities
    payload: dict[str, Any]

    if kind == ActionKind.CREATE:
        payload = {
            "title": format_title(intent),
            "body": format_body(intent, trigger),
            "labels": format_labels(intent),
            "assignees": format_assignees(intent),
        }
    elif kind == ActionKind.UPDATE:
        if entities.issue_number is None:
            raise FormattingError("Issue number is required to update an issue", details={"intent": str(intent.type)})
        payload = {"issue_number": entities.issue_number}
        if entities.title:
            payload["title"] = format_title(intent)
        if entities.description:
            payload["body"] = format_body(intent, trigger)
        if entities.labels:
            payload["labels"] = _dedupe([sanitize_label(label) for label in entities.labels])[:MAX_LABELS]
        if entities.assignees:
            payload["assignees"] = format_assignees(intent)
        if entities.state in ("open", "closed"):
            payload["state"] = entities.state
        if len(payload) == 1:
            raise FormattingError(
                f"Nothing to change on issue #{entities.issue_number}",
                details={"issue_number": entities.issue_number},
            )
    elif kind == ActionKind.SEARCH:
        query = sanitize_title(entities.search_query)
        labels = _dedupe([sanitize_label(label) for label in entities.labels])
        if not query and not labels:
            raise FormattingError("Search query is empty")
        payload = {"query": query, "labels": labels, "state": "open", "limit": 10}
    else:
        payload = {}

    return ActionDescriptor(kind=kind, target=repository, payload=payload)


class FormatStep(WorkflowStep):
    """Set the processing reaction and build the action descriptor."""

    name = "format"
    status = WorkflowStatus.FORMATTING
    fatal = True
    error_code = ErrorCode.FORMATTING_ERROR

    async def execute(self, state: RunState) -> RunState:
        if state.intent is None:
            raise FormattingError("No intent to format")
        if "/" not in state.repository:
            raise FormattingError(f"Invalid repository: {state.repository!r}")

        await self.react(state, self.services.reactions.processing)

        descriptor = build_descriptor(state.intent, state.trigger, state.repository)
        log.info("action_formatted", kind=str(descriptor.kind), repository=descriptor.target)
        return state.advance(self.status, descriptor=descriptor)
