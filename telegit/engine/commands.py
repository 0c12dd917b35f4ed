"""Group chat commands: /start, /status and /unlink."""

import re
import time
from collections import Counter
from typing import Any

import structlog

from telegit.engine import messages
from telegit.engine.groups import GroupDirectory
from telegit.engine.setup import SetupFlow
from telegit.enums import BindingSource
from telegit.exceptions import NotificationError
from telegit.providers.base import ChatTransport
from telegit.storage.base import OperationRepository

log = structlog.get_logger(__name__)

COMMAND_PATTERN = re.compile(r"^/([A-Za-z_]+)(?:@(\w+))?(?:\s|$)")
GROUP_CHAT_TYPES = ("group", "supergroup")


def parse_command(text: str | None, bot_username: str) -> str | None:
    """Return the lower-cased command name when ``text`` is a command for this bot.

    ``/status@other_bot`` is addressed to another bot and yields None.
    """
    if not text:
        return None
    match = COMMAND_PATTERN.match(text.strip())
    if match is None:
        return None
    addressee = match.group(2)
    if addressee and addressee.lower() != bot_username.lstrip("@").lower():
        return None
    return match.group(1).lower()


class CommandHandler:
    """Answers group commands.

    Example:
        >>> commands = CommandHandler(transport, operations, groups, setup, "telegit_bot")
        >>> await commands.handle(update["message"])
        'status'
    """

    COMMANDS = ("start", "status", "unlink")

    def __init__(
        self,
        transport: ChatTransport,
        operations: OperationRepository,
        groups: GroupDirectory,
        setup: SetupFlow,
        bot_username: str,
    ) -> None:
        self.transport = transport
        self.operations = operations
        self.groups = groups
        self.setup = setup
        self.bot_username = bot_username.lstrip("@")
        self.started_at = time.monotonic()

    async def handle(self, message: dict[str, Any]) -> str | None:
        """Run the command in ``message``.

        Returns:
            The command name, or None when the message is not a known command.
        """
        command = parse_command(message.get("text"), self.bot_username)
        if command not in self.COMMANDS:
            return None

        chat = message["chat"]
        chat_ref = chat["id"]
        message_ref = message["message_id"]
        user_ref = (message.get("from") or {}).get("id")
        log.info("command_received", command=command, chat_ref=chat_ref, user_ref=user_ref)

        if chat.get("type") not in GROUP_CHAT_TYPES:
            await self._reply(chat_ref, message_ref, messages.GROUP_ONLY)
            return command

        if command == "start":
            text = await self._start(chat_ref, user_ref)
        elif command == "status":
            text = await self._status(chat_ref, user_ref)
        else:
            text = await self._unlink(chat_ref, user_ref)
        await self._reply(chat_ref, message_ref, text)
        return command

    async def _start(self, chat_ref: int, user_ref: int | None) -> str:
        binding = self.groups.binding_for_chat(chat_ref)
        if binding is not None:
            return messages.start_help(self.bot_username, binding.repository)
        if not self.groups.can_link or user_ref is None:
            return messages.SETUP_DISABLED
        if not await self.setup.start(user_ref, chat_ref):
            return messages.SETUP_DM_FAILED.format(bot=self.bot_username)
        return messages.start_help(self.bot_username, None)

    async def _status(self, chat_ref: int, user_ref: int | None) -> str:
        binding = self.groups.binding_for_chat(chat_ref)
        if binding is None:
            return messages.NOT_LINKED
        if not self.groups.is_manager(chat_ref, user_ref):
            return messages.MANAGER_ONLY.format(action="view status")

        operations = await self.operations.list_by_group(chat_ref)
        by_status = Counter(str(operation.status) for operation in operations)
        by_type = Counter(str(operation.action_type) for operation in operations)
        return messages.status_report(
            binding.repository,
            binding.manager_user_ref,
            dict(by_status),
            dict(by_type),
            time.monotonic() - self.started_at,
        )

    async def _unlink(self, chat_ref: int, user_ref: int | None) -> str:
        binding = self.groups.binding_for_chat(chat_ref)
        if binding is None:
            return messages.NOT_LINKED
        if binding.source == BindingSource.CONFIG:
            return messages.CONFIGURED_BINDING.format(repository=binding.repository)
        if not self.groups.is_manager(chat_ref, user_ref):
            return messages.MANAGER_ONLY.format(action="unlink the repository")

        await self.groups.unlink(chat_ref)
        return messages.UNLINKED.format(repository=binding.repository)

    async def _reply(self, chat_ref: int, message_ref: int, text: str) -> None:
        try:
            await self.transport.reply(chat_ref, message_ref, text)
        except NotificationError as e:
            log.warning("command_reply_failed", chat_ref=chat_ref, error=e.message)
