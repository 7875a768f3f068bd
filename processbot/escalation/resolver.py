"""Project-link resolution from an issue's timeline events."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from processbot.github.models import EventKind, Issue, IssueEvent, Project, User
from processbot.infra.errors import MissingDataError


class ProjectSource(Protocol):
    async def list_issue_events(self, repo: str, issue_number: int) -> list[IssueEvent]: ...

    async def get_project(self, url: str) -> Project: ...


@dataclass(frozen=True)
class ProjectLink:
    actor: User | None
    project: Project


def latest_project_event(events: list[IssueEvent]) -> IssueEvent | None:
    """Most recent added/removed-to-project event; ties keep fetch order."""
    newest_first = sorted(events, key=lambda e: e.created_at, reverse=True)
    return next((e for e in newest_first if e.is_project_change), None)


async def resolve_project_link(issue: Issue, github: ProjectSource) -> ProjectLink | None:
    """Return the project the issue is currently linked to, or None.

    An addition event without a project URL on its card carries no usable
    link and counts as unlinked. Client errors propagate.
    """
    if issue.number is None or issue.repository is None:
        raise MissingDataError(f"Issue {issue.id} has no number or repository")

    events = await github.list_issue_events(issue.repository.name, issue.number)
    event = latest_project_event(events)
    if event is None or event.event != EventKind.added_to_project:
        return None
    if event.project_card is None or event.project_card.project_url is None:
        return None

    project = await github.get_project(event.project_card.project_url)
    return ProjectLink(actor=event.actor, project=project)
