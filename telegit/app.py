"""
Application wiring and the long-polling update loop.

:class:`TeleGitApp` builds every component from :class:`TeleGitSettings`
by constructor injection and routes Telegram updates:

    private message   -> work queue, SetupFlow
    group command     -> work queue, CommandHandler
    message           -> conversation cache, trigger filter, work queue, WorkflowEngine
    message_reaction  -> work queue, ReactionInterpreter

Shutdown Order:
    1. Stop the scheduler (no new sweeps or purges)
    2. Stop polling for updates
    3. Drain in-flight workflow runs, bounded by ``drain_timeout_seconds``
    4. Stop the queue workers
    5. Close HTTP clients
"""

import asyncio
from typing import Any

import structlog

from telegit.config.settings import TeleGitSettings
from telegit.engine import messages
from telegit.engine.commands import CommandHandler, parse_command
from telegit.engine.compensation import UndoEngine
from telegit.engine.feedback import FeedbackLifecycle
from telegit.engine.filters import TriggerFilter
from telegit.engine.groups import GroupDirectory
from telegit.engine.queue import MessageQueue
from telegit.engine.reactions import ReactionInterpreter
from telegit.engine.scheduler import Scheduler
from telegit.engine.setup import SetupFlow
from telegit.engine.types import WorkflowServices
from telegit.engine.workflow import WorkflowEngine
from telegit.enums import QueuePriority
from telegit.exceptions import ExternalServiceError, NotificationError, StorageError
from telegit.models.domain import ReactionEvent
from telegit.providers.github_rest import GitHubActionGateway
from telegit.providers.openai_compatible import OpenAICompatibleClassifier
from telegit.providers.telegram import TelegramTransport, parse_reaction_update
from telegit.storage.context import ConversationContextStore
from telegit.storage.feedback import JsonFeedbackRepository
from telegit.storage.groups import JsonGroupLinkRepository
from telegit.storage.operations import JsonOperationRepository
from telegit.storage.sessions import SetupSessionStore

log = structlog.get_logger(__name__)

POLL_ERROR_BACKOFF_SECONDS = 5.0


def context_entry(message: dict[str, Any]) -> dict[str, Any]:
    """Reduce a Telegram message to the fields kept in conversation context."""
    sender = message.get("from") or {}
    return {
        "message_ref": message.get("message_id"),
        "user_ref": sender.get("id"),
        "username": sender.get("username"),
        "first_name": sender.get("first_name"),
        "text": message.get("text") or message.get("caption"),
    }


class TeleGitApp:
    """The running bot.

    Example:
        >>> app = TeleGitApp.from_settings(TeleGitSettings.from_yaml("telegit.yaml"))
        >>> await app.run()
    """

    def __init__(
        self,
        settings: TeleGitSettings,
        transport: TelegramTransport,
        gateway: GitHubActionGateway,
        classifier: OpenAICompatibleClassifier,
        operations: JsonOperationRepository,
        feedback_repository: JsonFeedbackRepository,
        contexts: ConversationContextStore,
        sessions: SetupSessionStore,
        groups: GroupDirectory | None = None,
    ) -> None:
        self.settings = settings
        self.transport = transport
        self.gateway = gateway
        self.classifier = classifier
        self.operations = operations
        self.feedback_repository = feedback_repository
        self.contexts = contexts
        self.sessions = sessions
        self.groups = groups or GroupDirectory.from_settings(settings, JsonGroupLinkRepository(settings.data_dir))

        self.lifecycle = FeedbackLifecycle(
            transport, feedback_repository, deletion_delay_ms=settings.workflow.feedback_deletion_delay_ms
        )
        services = WorkflowServices(
            transport=transport,
            gateway=gateway,
            classifier=classifier,
            operations=operations,
            feedback=self.lifecycle,
            reactions=settings.reactions,
            workflow=settings.workflow,
            contexts=contexts,
        )
        self.engine = WorkflowEngine(services)
        self.undo = UndoEngine(operations, gateway, self.lifecycle, transport)
        self.interpreter = ReactionInterpreter(self.lifecycle, self.undo, transport, settings.reactions)
        self.trigger_filter = TriggerFilter(
            settings.telegram.bot_username,
            allowed_chat_ids=settings.telegram.allowed_chat_ids,
            allowed_user_ids=settings.telegram.allowed_user_ids,
        )
        self.setup = SetupFlow(transport, gateway, sessions, self.groups, settings.telegram.bot_username)
        self.commands = CommandHandler(transport, operations, self.groups, self.setup, settings.telegram.bot_username)
        self.queue = MessageQueue(max_concurrent=settings.queue.max_concurrent)
        self.scheduler = Scheduler()
        self.scheduler.add_job("feedback_sweep", settings.scheduler.interval_ms, self.lifecycle.sweep)
        self.scheduler.add_job("cache_purge", settings.scheduler.cache_purge_interval_ms, self.purge_caches)

        self._offset: int | None = None
        self._stopping = asyncio.Event()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: TeleGitSettings) -> "TeleGitApp":
        """Build the application and its clients from settings.

        Raises:
            ConfigurationError: If groups carry encrypted tokens but no
                encryption key is configured.
        """
        telegram = settings.telegram
        classifier_config = settings.classifier
        data_dir = settings.data_dir

        groups = GroupDirectory.from_settings(settings, JsonGroupLinkRepository(data_dir))
        transport = TelegramTransport(
            token=telegram.bot_token.get_secret_value(),
            base_url=telegram.api_base_url,
            timeout=telegram.request_timeout,
        )
        gateway = GitHubActionGateway(groups.resolve_token, base_url=settings.github.base_url)
        classifier = OpenAICompatibleClassifier(
            base_url=classifier_config.base_url,
            model=classifier_config.model,
            api_key=classifier_config.api_key.get_secret_value() if classifier_config.api_key else None,
            temperature=classifier_config.temperature,
            max_tokens=classifier_config.max_tokens,
            timeout=classifier_config.timeout,
            bot_username=telegram.bot_username,
        )
        return cls(
            settings=settings,
            transport=transport,
            gateway=gateway,
            classifier=classifier,
            operations=JsonOperationRepository(data_dir),
            feedback_repository=JsonFeedbackRepository(data_dir),
            contexts=ConversationContextStore(data_dir, ttl_minutes=settings.workflow.context_ttl_minutes),
            sessions=SetupSessionStore(timeout_minutes=settings.scheduler.setup_session_timeout_minutes),
            groups=groups,
        )

    async def purge_caches(self) -> None:
        """Remove expired conversation contexts and setup sessions."""
        contexts = await self.contexts.purge_expired()
        sessions = await self.sessions.cleanup_expired()
        if contexts or sessions:
            log.info("caches_purged", contexts=contexts, sessions=sessions)

    async def handle_update(self, update: dict[str, Any]) -> asyncio.Future[Any] | None:
        """Route one Telegram update.

        Returns:
            The queued job's future, or None when the update was ignored.
        """
        if "message" in update:
            return await self._handle_message(update["message"])

        event = parse_reaction_update(update)
        if event is not None:
            return self.queue.submit(
                lambda: self._handle_reaction(event),
                QueuePriority.URGENT,
                job_id=f"reaction:{event.chat_ref}:{event.message_ref}",
            )
        return None

    async def _handle_message(self, message: dict[str, Any]) -> asyncio.Future[Any] | None:
        chat = message.get("chat") or {}
        sender = message.get("from") or {}

        if chat.get("type") == "private":
            if sender.get("is_bot") or sender.get("id") is None or not message.get("text"):
                return None
            return self.queue.submit(
                lambda: self._handle_private(message),
                QueuePriority.HIGH,
                job_id=f"private:{sender['id']}:{message['message_id']}",
            )

        if parse_command(message.get("text"), self.settings.telegram.bot_username) is not None:
            if sender.get("is_bot") or not (
                self.trigger_filter.is_allowed_chat(chat.get("id")) and self.trigger_filter.is_allowed_user(sender.get("id"))
            ):
                log.debug("command_from_unlisted_sender", chat_ref=chat.get("id"), user_ref=sender.get("id"))
                return None
            return self.queue.submit(
                lambda: self.commands.handle(message),
                QueuePriority.HIGH,
                job_id=f"command:{chat['id']}:{message['message_id']}",
            )

        await self._cache_context(message)

        trigger = self.trigger_filter.parse(message)
        if trigger is None:
            return None

        binding = self.groups.binding_for_chat(trigger.chat_ref)
        if binding is None:
            log.warning("trigger_from_unbound_chat", chat_ref=trigger.chat_ref)
            return None

        priority = QueuePriority.HIGH if trigger.mentioned else QueuePriority.NORMAL
        log.info("trigger_queued", chat_ref=trigger.chat_ref, message_ref=trigger.message_ref, priority=priority.name)
        return self.queue.submit(
            lambda: self.engine.run(trigger, binding.repository),
            priority,
            job_id=f"message:{trigger.chat_ref}:{trigger.message_ref}",
        )

    async def _handle_private(self, message: dict[str, Any]) -> bool:
        chat_ref = message["chat"]["id"]
        user_ref = message["from"]["id"]
        if not self.trigger_filter.is_allowed_user(user_ref):
            log.warning("private_message_from_unlisted_user", user_ref=user_ref)
            try:
                await self.transport.send_message(chat_ref, messages.NOT_AUTHORIZED)
            except NotificationError as e:
                log.warning("private_reply_failed", user_ref=user_ref, error=e.message)
            return False
        return await self.setup.handle_private_message(message)

    async def _handle_reaction(self, event: ReactionEvent) -> list[str]:
        try:
            return await self.interpreter.handle(event)
        except Exception as e:
            log.error(
                "reaction_handling_failed",
                chat_ref=event.chat_ref,
                message_ref=event.message_ref,
                error=str(e),
                exc_info=True,
            )
            return []

    async def _cache_context(self, message: dict[str, Any]) -> None:
        if not (message.get("text") or message.get("caption")) or "chat" not in message:
            return
        reply_to = message.get("reply_to_message") or {}
        thread_root_ref = reply_to.get("message_id") or message["message_id"]
        try:
            await self.contexts.append_message(message["chat"]["id"], thread_root_ref, context_entry(message))
        except (StorageError, OSError) as e:
            log.warning("conversation_context_cache_failed", error=str(e))

    async def run(self) -> None:
        """Start background work and poll for updates until :meth:`shutdown`."""
        linked = await self.groups.load()
        self.queue.start()
        self.scheduler.start()
        log.info(
            "telegit_started",
            bot=self.settings.telegram.bot_username,
            configured_groups=len(self.settings.groups),
            linked_groups=linked,
        )

        try:
            while not self._stopping.is_set():
                await self.poll_once()
        finally:
            await self.shutdown()

    async def poll_once(self) -> int:
        """Fetch and route one batch of updates.

        Returns:
            Number of updates received.
        """
        try:
            updates = await self.transport.get_updates(self._offset, timeout=self.settings.telegram.poll_timeout)
        except ExternalServiceError as e:
            log.error("poll_failed", error=e.message, status_code=e.status_code)
            await asyncio.sleep(POLL_ERROR_BACKOFF_SECONDS)
            return 0

        for update in updates:
            self._offset = update["update_id"] + 1
            try:
                await self.handle_update(update)
            except Exception as e:
                log.error("update_handling_failed", update_id=update["update_id"], error=str(e), exc_info=True)
        return len(updates)

    def request_stop(self) -> None:
        self._stopping.set()

    async def shutdown(self) -> None:
        """Stop background work, drain the queue and close clients. Idempotent."""
        if self.scheduler.running or self.queue.running:
            log.info("telegit_stopping", queued=self.queue.size, active=self.queue.active)

        await self.scheduler.stop()
        self._stopping.set()

        if self.queue.running:
            drained = await self.queue.wait_for_empty(timeout=self.settings.scheduler.drain_timeout_seconds)
            if not drained:
                log.warning("shutdown_drain_incomplete", queued=self.queue.size, active=self.queue.active)
        await self.queue.stop()

        await self.close()

    async def close(self) -> None:
        """Close the HTTP clients."""
        if self._closed:
            return
        self._closed = True
        await self.transport.close()
        await self.classifier.close()
        await self.gateway.close()
