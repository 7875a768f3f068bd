"""
GitHub REST client scoped to one organisation.

Covers exactly the calls the triage bot makes: issue timeline events,
classic project lookup, closing an issue, filing an issue, listing open
issues and team members. Every failure, a payload that does not parse
included, is raised as GitHubError.
"""

from __future__ import annotations

from typing import Any, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from processbot.github.models import Issue, IssueEvent, Project, Repository, User
from processbot.infra.errors import GitHubError

logger = structlog.get_logger()

# Project cards on timeline events and the classic projects API are still
# served behind preview media types.
_EVENTS_ACCEPT = "application/vnd.github.starfox-preview+json"
_PROJECTS_ACCEPT = "application/vnd.github.inertia-preview+json"
_DEFAULT_ACCEPT = "application/vnd.github+json"

_PER_PAGE = 100

_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _json_body(response: httpx.Response, what: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise GitHubError(
            f"{what}: response is not JSON: {e}", status_code=response.status_code,
        ) from e


def _parse(model: type[_ModelT], data: Any, what: str) -> _ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise GitHubError(f"{what}: unexpected {model.__name__} payload: {e}") from e


class GitHubClient:
    """
    Async GitHub client.

    Example:
        async with GitHubClient(token, organization="paritytech") as github:
            events = await github.list_issue_events("substrate", 1234)
    """

    def __init__(
        self,
        token: str,
        *,
        organization: str,
        api_url: str = "https://api.github.com",
        timeout_s: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.organization = organization
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._timeout_s = timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GitHubClient:
        await self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"User-Agent": "processbot"}
            if self._token:
                headers["Authorization"] = f"token {self._token}"
            self._client = httpx.AsyncClient(
                timeout=self._timeout_s, headers=headers, transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _repo_url(self, repo: str) -> str:
        return f"{self._api_url}/repos/{self.organization}/{repo}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        accept: str = _DEFAULT_ACCEPT,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        client = await self._ensure_client()
        try:
            response = await client.request(
                method, url, json=json, params=params, headers={"Accept": accept},
            )
        except httpx.HTTPError as e:
            raise GitHubError(f"{method} {url} failed: {e}") from e

        if response.status_code == 401:
            raise GitHubError("GitHub rejected the token", code="GITHUB_AUTH_FAILED", status_code=401)
        if response.is_error:
            raise GitHubError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def _get_paginated(
        self, url: str, *, accept: str = _DEFAULT_ACCEPT, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Follow Link: rel="next" headers and concatenate every page."""
        items: list[dict[str, Any]] = []
        next_url: str | None = url
        next_params: dict[str, Any] | None = {"per_page": _PER_PAGE, **(params or {})}
        while next_url:
            response = await self._request("GET", next_url, accept=accept, params=next_params)
            page = _json_body(response, f"GET {next_url}")
            if not isinstance(page, list):
                raise GitHubError(
                    f"GET {next_url}: expected a JSON array, got {type(page).__name__}"
                )
            items.extend(page)
            next_url = response.links.get("next", {}).get("url")
            next_params = None  # the next link already carries the query
        return items

    async def list_issue_events(self, repo: str, issue_number: int) -> list[IssueEvent]:
        """All timeline events of an issue, in the order GitHub returns them."""
        raw = await self._get_paginated(
            f"{self._repo_url(repo)}/issues/{issue_number}/events", accept=_EVENTS_ACCEPT,
        )
        what = f"events of {repo}#{issue_number}"
        return [_parse(IssueEvent, item, what) for item in raw]

    async def get_project(self, url: str) -> Project:
        response = await self._request("GET", url, accept=_PROJECTS_ACCEPT)
        return _parse(Project, _json_body(response, f"GET {url}"), f"GET {url}")

    async def close_issue(self, repo: str, issue_number: int) -> None:
        await self._request(
            "PATCH", f"{self._repo_url(repo)}/issues/{issue_number}", json={"state": "closed"},
        )
        logger.info("github_issue_closed", repo=repo, issue_number=issue_number)

    async def create_issue(self, repo: str, *, title: str, body: str) -> Issue:
        response = await self._request(
            "POST", f"{self._repo_url(repo)}/issues", json={"title": title, "body": body},
        )
        what = f"create issue in {repo}"
        created = _parse(Issue, _json_body(response, what), what)
        logger.info("github_issue_created", repo=repo, issue_number=created.number)
        return created

    async def list_open_issues(self, repo: str) -> list[Issue]:
        """Open issues (and pull requests, flagged via Issue.pull_request) of a repository."""
        raw = await self._get_paginated(
            f"{self._repo_url(repo)}/issues", params={"state": "open"},
        )
        repository = Repository(name=repo, full_name=f"{self.organization}/{repo}")
        what = f"open issues of {repo}"
        return [
            _parse(Issue, item, what).model_copy(update={"repository": repository})
            for item in raw
        ]

    async def list_team_members(self, team_slug: str) -> list[User]:
        raw = await self._get_paginated(
            f"{self._api_url}/orgs/{self.organization}/teams/{team_slug}/members",
        )
        return [_parse(User, item, f"members of {team_slug}") for item in raw]
