"""Escalation module: project-link resolution and the no-project escalation state machine."""

from processbot.escalation.machine import (
    EscalationAction,
    EscalationPlan,
    EscalationPolicy,
    handle_issue,
    plan_escalation,
)
from processbot.escalation.record import (
    Clear,
    EscalationDecision,
    EscalationRecord,
    NoAction,
    Persist,
)
from processbot.escalation.resolver import ProjectLink, resolve_project_link

__all__ = [
    "Clear",
    "EscalationAction",
    "EscalationDecision",
    "EscalationPlan",
    "EscalationPolicy",
    "EscalationRecord",
    "NoAction",
    "Persist",
    "ProjectLink",
    "handle_issue",
    "plan_escalation",
    "resolve_project_link",
]
