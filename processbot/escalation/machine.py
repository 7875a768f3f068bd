"""No-project escalation: remind, remind again, then move the issue to the sorting repo.

Ticks are whole periods elapsed since the first reminder. Reminders therefore
land at fixed offsets from that first ping no matter how irregularly the bot
is invoked, and a tick is acted on at most once.

plan_escalation() is pure; handle_issue() performs the I/O around it and only
commits the store decision after every external call of the plan succeeded.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Protocol

import structlog

from processbot.channels.base import ChatNotifier
from processbot.config.settings import EscalationSettings
from processbot.constants import (
    CORE_SORTING_REPO,
    ISSUE_NO_PROJECT_ACTION_AFTER_NPINGS,
    ISSUE_NO_PROJECT_CORE_PING_PERIOD_S,
    ISSUE_NO_PROJECT_MESSAGE,
    ISSUE_NO_PROJECT_NON_CORE_PING_PERIOD_S,
)
from processbot.escalation.record import (
    Clear,
    EscalationDecision,
    EscalationRecord,
    NoAction,
    Persist,
    commit_decision,
    load_record,
    record_key,
)
from processbot.escalation.resolver import ProjectLink, ProjectSource, resolve_project_link
from processbot.github.models import Issue, User
from processbot.infra.clock import Clock, utc_now
from processbot.infra.errors import MissingDataError
from processbot.store.kv import KeyValueStore

logger = structlog.get_logger()


class EscalationAction(StrEnum):
    none = "none"
    remind = "remind"
    migrate = "migrate"


@dataclass(frozen=True)
class EscalationPolicy:
    core_ping_period: timedelta = timedelta(seconds=ISSUE_NO_PROJECT_CORE_PING_PERIOD_S)
    core_max_pings: int = ISSUE_NO_PROJECT_ACTION_AFTER_NPINGS
    non_core_ping_period: timedelta = timedelta(seconds=ISSUE_NO_PROJECT_NON_CORE_PING_PERIOD_S)
    sorting_repo: str = CORE_SORTING_REPO
    # Drop a leftover record once the issue is linked, so a later unlink
    # starts a fresh escalation instead of firing on the old clock.
    clear_on_project_link: bool = True

    @classmethod
    def from_settings(cls, settings: EscalationSettings) -> EscalationPolicy:
        return cls(
            core_ping_period=settings.core_ping_period,
            core_max_pings=settings.core_max_pings,
            non_core_ping_period=settings.non_core_ping_period,
            sorting_repo=settings.sorting_repo,
            clear_on_project_link=settings.clear_on_project_link,
        )


@dataclass(frozen=True)
class EscalationPlan:
    action: EscalationAction
    decision: EscalationDecision


_NOTHING = EscalationPlan(EscalationAction.none, NoAction())


class IssueTracker(ProjectSource, Protocol):
    async def close_issue(self, repo: str, issue_number: int) -> object: ...

    async def create_issue(self, repo: str, *, title: str, body: str) -> object: ...


def elapsed_ticks(since: datetime, now: datetime, period: timedelta) -> int:
    """Whole periods between since and now. A clock that went backwards counts as 0."""
    elapsed = now - since
    if elapsed <= timedelta(0):
        return 0
    return elapsed // period


def plan_escalation(
    record: EscalationRecord | None,
    link: ProjectLink | None,
    *,
    is_core: bool,
    now: datetime,
    policy: EscalationPolicy,
) -> EscalationPlan:
    if link is not None:
        if record is not None and policy.clear_on_project_link:
            return EscalationPlan(EscalationAction.none, Clear())
        return _NOTHING

    current = record or EscalationRecord()
    if current.last_ping_at is None:
        first = current.model_copy(update={"last_ping_at": now})
        return EscalationPlan(EscalationAction.remind, Persist(first))

    if is_core:
        tick = elapsed_ticks(current.last_ping_at, now, policy.core_ping_period)
        if tick == 0:
            return _NOTHING
        if tick >= policy.core_max_pings:
            return EscalationPlan(EscalationAction.migrate, Clear())
        if tick > current.ping_count:
            bumped = current.model_copy(update={"ping_count": tick})
            return EscalationPlan(EscalationAction.remind, Persist(bumped))
        return _NOTHING

    tick = elapsed_ticks(current.last_ping_at, now, policy.non_core_ping_period)
    if tick == 0:
        return _NOTHING
    return EscalationPlan(EscalationAction.migrate, Clear())


def is_core_developer(author: User, core_devs: Collection[User]) -> bool:
    return any(dev.id == author.id for dev in core_devs)


def reminder_message(
    issue_url: str, author: User, handles: Mapping[str, str], sorting_repo: str
) -> str:
    text = ISSUE_NO_PROJECT_MESSAGE.format(issue_url=issue_url, sorting_repo=sorting_repo)
    handle = handles.get(author.login)
    if handle:
        text += f" (opened by {handle})"
    return text


async def handle_issue(
    issue: Issue,
    *,
    store: KeyValueStore,
    github: IssueTracker,
    notifier: ChatNotifier,
    core_devs: Collection[User],
    handles: Mapping[str, str],
    default_channel: str,
    policy: EscalationPolicy,
    clock: Clock = utc_now,
) -> EscalationPlan:
    """Evaluate one issue: resolve its project link, act, and commit the record.

    Raises MissingDataError before touching anything if the issue lacks an
    id, number, URL or repository. Upstream, store and deserialization
    errors propagate with the store left as it was.
    """
    if issue.id is None or issue.html_url is None:
        raise MissingDataError(f"Issue is missing id or html_url (number={issue.number})")
    if issue.number is None or issue.repository is None:
        raise MissingDataError(f"Issue {issue.id} is missing number or repository")

    key = record_key(issue.id)
    record = await load_record(store, key)
    link = await resolve_project_link(issue, github)
    is_core = is_core_developer(issue.user, core_devs)

    plan = plan_escalation(record, link, is_core=is_core, now=clock(), policy=policy)
    log = logger.bind(issue_id=issue.id, repo=issue.repository.name, is_core=is_core)

    if link is not None:
        log.debug(
            "issue_project_linked",
            project=link.project.name,
            actor=link.actor.login if link.actor else None,
        )

    if plan.action is EscalationAction.remind:
        text = reminder_message(issue.html_url, issue.user, handles, policy.sorting_repo)
        await notifier.send_channel_message(default_channel, text)
        log.info("escalation_reminder_sent", channel=default_channel)
    elif plan.action is EscalationAction.migrate:
        await github.close_issue(issue.repository.name, issue.number)
        await github.create_issue(policy.sorting_repo, title=issue.title, body=issue.body or "")
        log.info("issue_migrated", sorting_repo=policy.sorting_repo)

    await commit_decision(store, key, plan.decision)
    return plan
