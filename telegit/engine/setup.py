"""
Private-chat setup that links a group to a repository.

A group member sends ``/start`` in an unlinked group; the bot opens a setup
session for that user and continues in a private chat:

    awaiting_repository  -> user sends https://github.com/owner/repo
    awaiting_token       -> user sends a personal access token

The token message is deleted from the private chat before anything else
happens with it. The token is then checked against the repository, stored
encrypted through :class:`GroupDirectory`, and the group is told that it is
ready. Sessions time out in :class:`SetupSessionStore`.
"""

import re
from typing import Any

import structlog

from telegit.engine import messages
from telegit.engine.groups import GroupDirectory
from telegit.enums import SetupStep
from telegit.exceptions import (
    ActionExecutionError,
    ConfigurationError,
    MessageNotFoundError,
    NotificationError,
    StorageError,
)
from telegit.models.domain import SetupSession
from telegit.providers.base import ActionGateway, ChatTransport
from telegit.storage.sessions import SetupSessionStore

log = structlog.get_logger(__name__)

REPOSITORY_URL_PATTERN = re.compile(r"^https://github\.com/([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+?)(?:\.git)?/?$")
TOKEN_PREFIXES = ("ghp_", "github_pat_")


def parse_repository_url(url: str) -> str | None:
    """Return ``owner/repo`` for an HTTPS GitHub repository URL, or None."""
    match = REPOSITORY_URL_PATTERN.match(url.strip())
    if match is None:
        return None
    return f"{match.group(1)}/{match.group(2)}"


class SetupFlow:
    """Drives setup sessions from ``/start`` to a stored group link."""

    def __init__(
        self,
        transport: ChatTransport,
        gateway: ActionGateway,
        sessions: SetupSessionStore,
        groups: GroupDirectory,
        bot_username: str,
    ) -> None:
        self.transport = transport
        self.gateway = gateway
        self.sessions = sessions
        self.groups = groups
        self.bot_username = bot_username.lstrip("@")

    async def start(self, user_ref: int, group_ref: int) -> bool:
        """Open a session for ``user_ref`` and ask for the repository in private.

        Returns:
            False when the private message could not be delivered, usually
            because the user never opened a chat with the bot. No session is
            kept in that case.
        """
        await self.sessions.set(SetupSession(user_ref=user_ref, group_ref=group_ref))
        try:
            await self.transport.send_message(user_ref, messages.SETUP_REPOSITORY_PROMPT)
        except NotificationError as e:
            await self.sessions.delete(user_ref)
            log.warning("setup_prompt_undeliverable", user_ref=user_ref, group_ref=group_ref, error=e.message)
            return False

        log.info("setup_started", user_ref=user_ref, group_ref=group_ref)
        return True

    async def handle_private_message(self, message: dict[str, Any]) -> bool:
        """Advance the sender's setup by one private message.

        Returns:
            True when this message completed the setup.
        """
        chat_ref = message["chat"]["id"]
        user_ref = message["from"]["id"]
        text = (message.get("text") or "").strip()
        if not text:
            return False

        session = await self.sessions.get(user_ref)
        if session is None or session.group_ref is None:
            await self._say(chat_ref, messages.SETUP_NO_SESSION)
            return False

        if text.split()[0].split("@")[0].lower() == "/start":
            await self._say(chat_ref, self._prompt_for(session))
            return False
        if session.step == SetupStep.AWAITING_REPOSITORY:
            await self._receive_repository(session, chat_ref, text)
            return False
        if session.step == SetupStep.AWAITING_TOKEN:
            return await self._receive_token(session, session.group_ref, chat_ref, message["message_id"], text)

        log.warning("setup_session_unknown_step", user_ref=user_ref, step=str(session.step))
        await self.sessions.delete(user_ref)
        await self._say(chat_ref, messages.SETUP_NO_SESSION)
        return False

    def _prompt_for(self, session: SetupSession) -> str:
        if session.step == SetupStep.AWAITING_TOKEN:
            return messages.setup_token_prompt(session.data["repository"])
        return messages.SETUP_REPOSITORY_PROMPT

    async def _receive_repository(self, session: SetupSession, chat_ref: int, text: str) -> None:
        repository = parse_repository_url(text)
        if repository is None:
            await self._say(chat_ref, messages.SETUP_INVALID_REPOSITORY)
            return

        session.step = SetupStep.AWAITING_TOKEN
        session.data["repository"] = repository
        await self.sessions.set(session)
        log.info("setup_repository_received", user_ref=session.user_ref, repository=repository)
        await self._say(chat_ref, messages.setup_token_prompt(repository))

    async def _receive_token(
        self, session: SetupSession, group_ref: int, chat_ref: int, message_ref: int, token: str
    ) -> bool:
        if not token.startswith(TOKEN_PREFIXES):
            await self._say(chat_ref, messages.SETUP_INVALID_TOKEN)
            return False

        try:
            await self.transport.delete_message(chat_ref, message_ref)
        except MessageNotFoundError:
            pass
        except NotificationError as e:
            log.error("setup_token_message_not_deleted", user_ref=session.user_ref, error=e.message)
            await self._say(chat_ref, messages.SETUP_TOKEN_NOT_DELETED)
            return False

        repository = session.data["repository"]
        try:
            await self.gateway.verify_access(repository, token)
        except ActionExecutionError as e:
            await self._say(chat_ref, messages.setup_access_denied(e.message, repository))
            return False

        try:
            await self.groups.link(group_ref, repository, token, manager_user_ref=session.user_ref)
        except (ConfigurationError, StorageError) as e:
            log.error("setup_link_failed", user_ref=session.user_ref, group_ref=group_ref, error=e.message)
            await self.sessions.delete(session.user_ref)
            await self._say(chat_ref, messages.SETUP_SAVE_FAILED)
            return False

        await self.sessions.delete(session.user_ref)
        await self._say(chat_ref, messages.setup_complete(repository, self.bot_username))
        await self._say(group_ref, messages.group_linked(repository))
        log.info("setup_completed", user_ref=session.user_ref, group_ref=group_ref, repository=repository)
        return True

    async def _say(self, chat_ref: int, text: str) -> None:
        try:
            await self.transport.send_message(chat_ref, text)
        except NotificationError as e:
            log.warning("setup_message_failed", chat_ref=chat_ref, error=e.message)
