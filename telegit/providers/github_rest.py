"""GitHub action gateway implementation using PyGithub and the REST API."""

import asyncio
import itertools
from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from github import Auth, Github, GithubException  # type: ignore[import-not-found]
from github.Issue import Issue as GHIssue  # type: ignore[import-not-found]
from github.Repository import Repository as GHRepository  # type: ignore[import-not-found]

from telegit.enums import ActionKind
from telegit.exceptions import ActionExecutionError
from telegit.models.domain import ActionDescriptor, ActionResult
from telegit.providers.base import ActionGateway

log = structlog.get_logger(__name__)

T = TypeVar("T")

_UPDATABLE_FIELDS = ("title", "body", "labels", "assignees", "state")


async def _run_sync(func: Callable[[], T]) -> T:
    """Run a synchronous function in a thread pool.

    This prevents blocking the event loop when calling synchronous
    PyGithub methods.
    """
    return await asyncio.to_thread(func)


def _describe(error: GithubException) -> str:
    data = error.data if isinstance(error.data, dict) else {}
    message = data.get("message") or str(error)
    return f"GitHub API error ({error.status}): {message}"


class GitHubActionGateway(ActionGateway):
    """Action gateway backed by PyGithub.

    Tokens are resolved per repository, so groups bound to different
    repositories can use different credentials. One client is kept per token.
    """

    def __init__(
        self,
        token_resolver: Callable[[str], str],
        base_url: str = "https://api.github.com",
    ):
        """Initialize GitHub gateway.

        Args:
            token_resolver: Returns the token to use for an ``owner/repo``
            base_url: GitHub API base URL (for GitHub Enterprise)
        """
        self._token_resolver = token_resolver
        self.base_url = base_url.rstrip("/")
        self._clients: dict[str, Github] = {}

    def _client_for(self, repository: str) -> Github:
        token = self._token_resolver(repository).strip()
        if token not in self._clients:
            self._clients[token] = Github(auth=Auth.Token(token), base_url=self.base_url)
        return self._clients[token]

    async def _get_repo(self, repository: str) -> GHRepository:
        client = self._client_for(repository)
        return await _run_sync(lambda: client.get_repo(repository))

    async def close(self) -> None:
        """Close all GitHub clients."""
        for client in self._clients.values():
            await _run_sync(client.close)
        self._clients.clear()

    async def invoke(self, descriptor: ActionDescriptor) -> ActionResult:
        """Execute a create, update or search call against GitHub."""
        log.info("github_invoke", kind=str(descriptor.kind), repository=descriptor.target)

        try:
            if descriptor.kind == ActionKind.CREATE:
                return await self._create_issue(descriptor)
            if descriptor.kind == ActionKind.UPDATE:
                return await self._update_issue(descriptor)
            if descriptor.kind == ActionKind.SEARCH:
                return await self._search_issues(descriptor)
        except GithubException as e:
            log.error("github_invoke_failed", kind=str(descriptor.kind), status=e.status, error=str(e))
            return ActionResult(success=False, error=_describe(e))

        return ActionResult(success=False, error=f"Unsupported action kind: {descriptor.kind}")

    async def get_issue(self, repository: str, issue_number: int) -> dict[str, Any]:
        """Get a snapshot of a single issue by number."""
        log.info("get_issue", repository=repository, number=issue_number)

        try:
            repo = await self._get_repo(repository)
            gh_issue = await _run_sync(lambda: repo.get_issue(issue_number))
        except GithubException as e:
            log.error("github_get_issue_failed", number=issue_number, error=str(e))
            raise ActionExecutionError(_describe(e), details={"issue_number": issue_number}) from e

        return self._snapshot(gh_issue)

    async def verify_access(self, repository: str, token: str) -> None:
        """Check a token against a repository before it is stored.

        Uses a throwaway client; the token is not added to the client cache.
        """
        client = Github(auth=Auth.Token(token.strip()), base_url=self.base_url)

        def _check() -> None:
            repo = client.get_repo(repository)
            repo.get_issues(state="open").get_page(0)

        try:
            await _run_sync(_check)
        except GithubException as e:
            log.warning("github_access_check_failed", repository=repository, status=e.status)
            if e.status == 401:
                reason = "GitHub rejected the token."
            elif e.status == 403:
                reason = f"Access to {repository} is forbidden. Check the token's scopes."
            elif e.status == 404:
                reason = f"Repository {repository} was not found or the token cannot access it."
            else:
                reason = _describe(e)
            raise ActionExecutionError(reason, details={"repository": repository, "status": e.status}) from e
        finally:
            await _run_sync(client.close)

        log.info("github_access_verified", repository=repository)

    async def _create_issue(self, descriptor: ActionDescriptor) -> ActionResult:
        payload = descriptor.payload
        repo = await self._get_repo(descriptor.target)

        gh_issue = await _run_sync(
            lambda: repo.create_issue(
                title=payload["title"],
                body=payload.get("body", ""),
                labels=payload.get("labels") or [],
                assignees=payload.get("assignees") or [],
            )
        )
        log.info("github_issue_created", repository=descriptor.target, number=gh_issue.number)
        return ActionResult(success=True, result_ref=gh_issue.html_url, issue_number=gh_issue.number)

    async def _update_issue(self, descriptor: ActionDescriptor) -> ActionResult:
        payload = descriptor.payload
        issue_number = int(payload["issue_number"])
        changes = {key: payload[key] for key in _UPDATABLE_FIELDS if payload.get(key) is not None}
        repo = await self._get_repo(descriptor.target)

        def _update() -> GHIssue:
            gh_issue = repo.get_issue(issue_number)
            if changes:
                gh_issue.edit(**changes)
            return gh_issue

        gh_issue = await _run_sync(_update)
        log.info("github_issue_updated", repository=descriptor.target, number=issue_number, fields=sorted(changes))
        return ActionResult(success=True, result_ref=gh_issue.html_url, issue_number=issue_number)

    async def _search_issues(self, descriptor: ActionDescriptor) -> ActionResult:
        payload = descriptor.payload
        limit = int(payload.get("limit", 10))
        qualifiers = [f"repo:{descriptor.target}", "is:issue"]
        if payload.get("state") in ("open", "closed"):
            qualifiers.append(f"state:{payload['state']}")
        qualifiers.extend(f'label:"{label}"' for label in payload.get("labels") or [])
        query = " ".join([payload.get("query", "").strip(), *qualifiers]).strip()

        client = self._client_for(descriptor.target)

        def _search() -> tuple[list[GHIssue], int]:
            results = client.search_issues(query=query)
            return list(itertools.islice(results, limit)), results.totalCount

        gh_issues, total = await _run_sync(_search)
        issues = [
            {"number": issue.number, "title": issue.title, "url": issue.html_url, "state": issue.state}
            for issue in gh_issues
        ]
        log.info("github_issues_searched", repository=descriptor.target, total=total)
        return ActionResult(success=True, data={"issues": issues, "total": total, "query": query})

    def _snapshot(self, gh_issue: GHIssue) -> dict[str, Any]:
        return {
            "title": gh_issue.title,
            "body": gh_issue.body or "",
            "labels": [label.name for label in gh_issue.labels],
            "assignees": [user.login for user in gh_issue.assignees],
            "state": gh_issue.state,
            "url": gh_issue.html_url,
        }
