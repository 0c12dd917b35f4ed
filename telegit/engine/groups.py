"""
Group to repository bindings and GitHub token resolution.

A group is bound to a repository either in the configuration file or by a
user completing the private-chat setup. Configured bindings always win: a
group listed in the file can be neither linked nor unlinked from the chat.

Setup links are persisted through :class:`JsonGroupLinkRepository` and
mirrored in memory, so that the GitHub gateway can resolve tokens
synchronously. Call :meth:`GroupDirectory.load` once before serving.

Token precedence for a repository:
    1. the encrypted token of a configured group bound to it
    2. the encrypted token of a setup link bound to it
    3. ``github.default_token``
"""

import structlog

from telegit.config.settings import TeleGitSettings
from telegit.enums import BindingSource
from telegit.exceptions import ConfigurationError
from telegit.models.domain import GroupLink
from telegit.storage.groups import JsonGroupLinkRepository
from telegit.utils.encryption import TokenCipher

log = structlog.get_logger(__name__)


class GroupDirectory:
    """Answers "which repository does this chat use" and "which token goes with it".

    Example:
        >>> groups = GroupDirectory.from_settings(settings, JsonGroupLinkRepository(data_dir))
        >>> await groups.load()
        >>> groups.binding_for_chat(-1001234567890).repository
        'acme/app'
    """

    def __init__(
        self,
        configured: list[GroupLink],
        repository: JsonGroupLinkRepository,
        cipher: TokenCipher | None = None,
        default_token: str | None = None,
    ) -> None:
        self._configured = {link.chat_ref: link for link in configured}
        self._linked: dict[int, GroupLink] = {}
        self.repository = repository
        self.cipher = cipher
        self.default_token = default_token

    @classmethod
    def from_settings(cls, settings: TeleGitSettings, repository: JsonGroupLinkRepository) -> "GroupDirectory":
        """Build the directory from the configured groups.

        Raises:
            ConfigurationError: If groups carry encrypted tokens but no
                encryption key is configured.
        """
        cipher = None
        if settings.security.encryption_key is not None:
            cipher = TokenCipher(settings.security.encryption_key.get_secret_value())
        elif any(group.github_token for group in settings.groups):
            raise ConfigurationError("Groups carry encrypted GitHub tokens but security.encryption_key is not set")

        configured = [
            GroupLink(
                chat_ref=group.chat_id,
                repository=group.repository,
                github_token=group.github_token,
                source=BindingSource.CONFIG,
            )
            for group in settings.groups
        ]
        default = settings.github.default_token.get_secret_value() if settings.github.default_token else None
        return cls(configured, repository, cipher=cipher, default_token=default)

    @property
    def can_link(self) -> bool:
        """Whether setup links can be stored (tokens are only stored encrypted)."""
        return self.cipher is not None

    async def load(self) -> int:
        """Read persisted setup links into memory.

        Returns:
            Number of links loaded.
        """
        links = await self.repository.list_all()
        self._linked = {link.chat_ref: link for link in links if link.chat_ref not in self._configured}
        log.info("group_links_loaded", linked=len(self._linked), configured=len(self._configured))
        return len(self._linked)

    def binding_for_chat(self, chat_ref: int) -> GroupLink | None:
        return self._configured.get(chat_ref) or self._linked.get(chat_ref)

    def is_manager(self, chat_ref: int, user_ref: int | None) -> bool:
        """Whether the user may manage the chat's binding.

        Configured groups have no manager; anyone allowed to use the bot
        there may view their status.
        """
        binding = self.binding_for_chat(chat_ref)
        if binding is None:
            return False
        if binding.source == BindingSource.CONFIG:
            return True
        return binding.manager_user_ref == user_ref

    def resolve_token(self, repository: str) -> str:
        """Return the plaintext GitHub token for ``owner/repo``.

        Raises:
            ConfigurationError: If no token is available for the repository.
        """
        for bindings in (self._configured.values(), self._linked.values()):
            for binding in bindings:
                if binding.repository == repository and binding.github_token and self.cipher is not None:
                    return self.cipher.decrypt(binding.github_token)
        if self.default_token:
            return self.default_token
        raise ConfigurationError(f"No GitHub token configured for {repository}")

    async def link(self, chat_ref: int, repository: str, token: str, manager_user_ref: int) -> GroupLink:
        """Store an encrypted token and bind the chat to ``repository``.

        Raises:
            ConfigurationError: If no encryption key is configured, or the
                chat is bound in the configuration file.
            StorageError: If the link cannot be written.
        """
        if self.cipher is None:
            raise ConfigurationError("Linking groups requires security.encryption_key")
        if chat_ref in self._configured:
            raise ConfigurationError(f"Chat {chat_ref} is bound in the configuration file")

        link = GroupLink(
            chat_ref=chat_ref,
            repository=repository,
            github_token=self.cipher.encrypt(token.strip()),
            manager_user_ref=manager_user_ref,
        )
        await self.repository.save(link)
        self._linked[chat_ref] = link
        log.info("group_linked", chat_ref=chat_ref, repository=repository, manager_user_ref=manager_user_ref)
        return link

    async def unlink(self, chat_ref: int) -> bool:
        """Remove a setup link and its stored token.

        Returns:
            False when the chat had no setup link.
        """
        if chat_ref not in self._linked:
            return False
        await self.repository.delete(chat_ref)
        link = self._linked.pop(chat_ref)
        log.info("group_unlinked", chat_ref=chat_ref, repository=link.repository)
        return True
