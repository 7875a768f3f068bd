"""Issue dispatch: per-issue serialisation → handle_issue → failure logging.

Webhook deliveries and the periodic poll both funnel through IssueDispatcher,
so the read-modify-write of one issue's escalation record never interleaves.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Mapping

import structlog

from processbot.channels.base import ChatNotifier
from processbot.escalation.machine import (
    EscalationAction,
    EscalationPlan,
    EscalationPolicy,
    handle_issue,
)
from processbot.escalation.record import NoAction
from processbot.github.client import GitHubClient
from processbot.github.models import Issue, User
from processbot.infra.clock import Clock, utc_now
from processbot.infra.errors import GitHubError, ProcessBotError
from processbot.store.kv import KeyValueStore

logger = structlog.get_logger()


class IssueDispatcher:
    """Owns the ambient triage context and evaluates issues one key at a time."""

    def __init__(
        self,
        *,
        store: KeyValueStore,
        github: GitHubClient,
        notifier: ChatNotifier,
        policy: EscalationPolicy,
        default_channel: str,
        handles: Mapping[str, str] | None = None,
        core_team: str = "",
        tracked_repos: list[str] | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._github = github
        self._notifier = notifier
        self._policy = policy
        self._default_channel = default_channel
        self._handles = dict(handles or {})
        self._core_team = core_team
        self._tracked_repos = list(tracked_repos or [])
        self._clock = clock
        self._core_devs: list[User] = []
        # An entry lives only while some evaluation of that issue holds or awaits it.
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def core_devs(self) -> list[User]:
        return list(self._core_devs)

    @property
    def tracked_repos(self) -> list[str]:
        return list(self._tracked_repos)

    def is_tracked(self, repo_name: str) -> bool:
        """Sorting-repo issues are never escalated; an empty repo list tracks everything else."""
        if repo_name == self._policy.sorting_repo:
            return False
        return not self._tracked_repos or repo_name in self._tracked_repos

    async def refresh_core_devs(self) -> None:
        """Reload the core developer roster from the configured GitHub team."""
        if not self._core_team:
            self._core_devs = []
            return
        self._core_devs = await self._github.list_team_members(self._core_team)
        logger.info("core_devs_refreshed", team=self._core_team, count=len(self._core_devs))

    async def evaluate(self, issue: Issue) -> EscalationPlan | None:
        """Evaluate one issue under its lock. Returns None if the evaluation failed.

        Closed issues are never escalated. ProcessBotError is logged and
        swallowed: the next poll re-evaluates.
        """
        if issue.is_closed:
            logger.debug("issue_skipped_closed", issue_id=issue.id, state=issue.state)
            return EscalationPlan(EscalationAction.none, NoAction())

        # Issues without an id fail validation inside handle_issue; no shared lock needed.
        if issue.id is None:
            lock = asyncio.Lock()
        else:
            lock = self._locks.get(issue.id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[issue.id] = lock

        async with lock:
            try:
                plan = await handle_issue(
                    issue,
                    store=self._store,
                    github=self._github,
                    notifier=self._notifier,
                    core_devs=self._core_devs,
                    handles=self._handles,
                    default_channel=self._default_channel,
                    policy=self._policy,
                    clock=self._clock,
                )
            except ProcessBotError as exc:
                logger.exception(
                    "issue_evaluation_failed",
                    issue_id=issue.id,
                    issue_url=issue.html_url,
                    error_code=exc.code,
                )
                return None

        logger.debug("issue_evaluated", issue_id=issue.id, action=plan.action.value)
        return plan

    async def poll_once(self) -> int:
        """Evaluate every open issue of the tracked repositories. Returns the count evaluated."""
        try:
            await self.refresh_core_devs()
        except GitHubError as exc:
            # Keep the previous roster rather than demoting everybody to non-core.
            logger.warning("core_devs_refresh_failed", error_code=exc.code, error=str(exc))

        evaluated = 0
        for repo in self._tracked_repos:
            if not self.is_tracked(repo):
                continue
            try:
                issues = await self._github.list_open_issues(repo)
            except GitHubError as exc:
                logger.exception("poll_list_issues_failed", repo=repo, error_code=exc.code)
                continue
            for issue in issues:
                if issue.is_pull_request:
                    continue
                await self.evaluate(issue)
                evaluated += 1

        logger.info("poll_completed", repos=len(self._tracked_repos), evaluated=evaluated)
        return evaluated

    async def run_polling(self, interval_s: float) -> None:
        """Poll forever. Unexpected failures are logged; the loop keeps going."""
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("poll_failed")
            await asyncio.sleep(interval_s)
