"""Pytest configuration and shared fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from telegit.config.settings import ReactionsConfig, TeleGitSettings, WorkflowConfig
from telegit.engine.feedback import FeedbackLifecycle
from telegit.engine.types import WorkflowServices
from telegit.enums import IntentType
from telegit.exceptions import MessageNotFoundError
from telegit.models.domain import ActionResult, Intent, IntentEntities, TriggerMessage
from telegit.providers.base import ActionGateway, ChatTransport, IntentClassifier
from telegit.storage.context import ConversationContextStore
from telegit.storage.feedback import JsonFeedbackRepository
from telegit.storage.operations import JsonOperationRepository

CHAT_ID = -1001234567890
REPOSITORY = "acme/app"


class RecordingTransport(ChatTransport):
    """Chat transport that records every call instead of talking to Telegram."""

    def __init__(self) -> None:
        self.reactions: list[tuple[int, int, str]] = []
        self.replies: list[tuple[int, int, str]] = []
        self.sent: list[tuple[int, str]] = []
        self.deleted: list[tuple[int, int]] = []
        self.gone: set[tuple[int, int]] = set()
        self._next_message_ref = 1000

    async def set_reaction(self, chat_ref: int, message_ref: int, emoji: str) -> None:
        self.reactions.append((chat_ref, message_ref, emoji))

    async def reply(self, chat_ref: int, message_ref: int, text: str) -> int:
        self._next_message_ref += 1
        self.replies.append((chat_ref, message_ref, text))
        return self._next_message_ref

    async def send_message(self, chat_ref: int, text: str) -> int:
        self._next_message_ref += 1
        self.sent.append((chat_ref, text))
        return self._next_message_ref

    async def delete_message(self, chat_ref: int, message_ref: int) -> bool:
        if (chat_ref, message_ref) in self.gone:
            raise MessageNotFoundError(f"Message {message_ref} not found")
        self.deleted.append((chat_ref, message_ref))
        self.gone.add((chat_ref, message_ref))
        return True

    @property
    def reaction_emojis(self) -> list[str]:
        return [emoji for _, _, emoji in self.reactions]

    @property
    def reply_texts(self) -> list[str]:
        return [text for _, _, text in self.replies]


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Temporary data directory."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def gateway() -> AsyncMock:
    """Action gateway mock that reports success."""
    gateway = AsyncMock(spec=ActionGateway)
    gateway.invoke.return_value = ActionResult(
        success=True,
        result_ref=f"https://github.com/{REPOSITORY}/issues/7",
        issue_number=7,
    )
    gateway.get_issue.return_value = {
        "title": "Login page crashes",
        "body": "Original body",
        "labels": ["bug"],
        "assignees": [],
        "state": "open",
        "url": f"https://github.com/{REPOSITORY}/issues/7",
    }
    return gateway


@pytest.fixture
def classifier() -> AsyncMock:
    """Classifier mock returning a confident bug report."""
    classifier = AsyncMock(spec=IntentClassifier)
    classifier.classify.return_value = Intent(
        type=IntentType.CREATE_BUG,
        confidence=0.92,
        entities=IntentEntities(title="Login page crashes", description="The login page crashes", labels=["bug"]),
    )
    return classifier


@pytest.fixture
def operations(data_dir: Path) -> JsonOperationRepository:
    return JsonOperationRepository(data_dir)


@pytest.fixture
def feedback_repository(data_dir: Path) -> JsonFeedbackRepository:
    return JsonFeedbackRepository(data_dir)


@pytest.fixture
def contexts(data_dir: Path) -> ConversationContextStore:
    return ConversationContextStore(data_dir, ttl_minutes=60)


@pytest.fixture
def lifecycle(transport: RecordingTransport, feedback_repository: JsonFeedbackRepository) -> FeedbackLifecycle:
    return FeedbackLifecycle(transport, feedback_repository, deletion_delay_ms=600_000)


@pytest.fixture
def services(transport, gateway, classifier, operations, lifecycle, contexts) -> WorkflowServices:
    """Workflow services wired to fakes and temporary storage."""
    return WorkflowServices(
        transport=transport,
        gateway=gateway,
        classifier=classifier,
        operations=operations,
        feedback=lifecycle,
        reactions=ReactionsConfig(),
        workflow=WorkflowConfig(confidence_threshold=0.3),
        contexts=contexts,
    )


@pytest.fixture
def trigger() -> TriggerMessage:
    """Sample trigger message."""
    return TriggerMessage(
        chat_ref=CHAT_ID,
        message_ref=42,
        user_ref=1001,
        text="#bug the login page crashes",
        hashtags=["bug"],
        mentioned=False,
        username="alice",
    )


@pytest.fixture
def settings(data_dir: Path) -> TeleGitSettings:
    """Minimal valid settings."""
    return TeleGitSettings(
        telegram={"bot_token": "123456:test-token", "bot_username": "telegit_bot"},
        github={"default_token": "ghp_test_token"},
        storage={"data_dir": str(data_dir)},
        groups=[{"chat_id": CHAT_ID, "repository": REPOSITORY}],
    )
