"""Pydantic views of the GitHub REST objects the triage core reads.

Unknown fields are ignored; only what the escalation logic needs is declared.
Fields the core must validate itself (issue id, number, URL) are optional here
so their absence surfaces as MissingDataError rather than a parse failure.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict


class EventKind(StrEnum):
    added_to_project = "added_to_project"
    removed_from_project = "removed_from_project"


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    login: str


class Repository(BaseModel):
    name: str
    full_name: str | None = None


class Issue(BaseModel):
    id: int | None = None
    number: int | None = None
    title: str = ""
    body: str | None = None
    html_url: str | None = None
    state: str | None = None
    user: User
    repository: Repository | None = None
    pull_request: dict[str, Any] | None = None

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None

    @property
    def is_closed(self) -> bool:
        # Listings built without state are open-only (list_open_issues).
        return self.state is not None and self.state != "open"


class ProjectCard(BaseModel):
    id: int | None = None
    project_url: str | None = None
    column_name: str | None = None


class IssueEvent(BaseModel):
    id: int | None = None
    created_at: datetime
    event: str | None = None
    actor: User | None = None
    project_card: ProjectCard | None = None

    @property
    def is_project_change(self) -> bool:
        return self.event in (EventKind.added_to_project, EventKind.removed_from_project)


class Project(BaseModel):
    id: int
    name: str
    html_url: str | None = None
    url: str | None = None
