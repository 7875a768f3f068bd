"""Shared constants: storage schema and escalation defaults."""

DB_SCHEMA = "processbot"

CORE_SORTING_REPO = "core-sorting"

# One reminder per day for core developers, migration on the third tick.
ISSUE_NO_PROJECT_CORE_PING_PERIOD_S = 24 * 60 * 60
ISSUE_NO_PROJECT_ACTION_AFTER_NPINGS = 3
ISSUE_NO_PROJECT_NON_CORE_PING_PERIOD_S = 15 * 60

ISSUE_NO_PROJECT_MESSAGE = (
    "{issue_url} needs to be attached to a project or it will be moved to {sorting_repo}."
)
