"""Tests for settings validation and env parsing."""

from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError

from processbot.config.settings import (
    ChatSettings,
    DatabaseSettings,
    EscalationSettings,
    Settings,
    TriageSettings,
)
from processbot.escalation.machine import EscalationPolicy


class TestEscalationSettings:
    def test_defaults(self) -> None:
        s = EscalationSettings()
        assert s.core_ping_period == timedelta(days=1)
        assert s.core_max_pings == 3
        assert s.non_core_ping_period == timedelta(minutes=15)
        assert s.sorting_repo == "core-sorting"
        assert s.clear_on_project_link is True

    def test_env_override(self, monkeypatch) -> None:
        monkeypatch.setenv("ESCALATION_NON_CORE_PING_PERIOD_S", "60")
        monkeypatch.setenv("ESCALATION_CLEAR_ON_PROJECT_LINK", "false")
        s = EscalationSettings()
        assert s.non_core_ping_period == timedelta(minutes=1)
        assert s.clear_on_project_link is False

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"core_ping_period_s": 0},
            {"non_core_ping_period_s": -5},
            {"core_max_pings": 0},
            {"sorting_repo": "  "},
        ],
    )
    def test_invalid_rejected(self, kwargs) -> None:
        with pytest.raises(ValidationError):
            EscalationSettings(**kwargs)

    def test_policy_from_settings(self) -> None:
        s = EscalationSettings(core_ping_period_s=7200, core_max_pings=5, sorting_repo="triage")
        policy = EscalationPolicy.from_settings(s)
        assert policy.core_ping_period == timedelta(hours=2)
        assert policy.core_max_pings == 5
        assert policy.sorting_repo == "triage"


class TestTriageSettings:
    def test_repo_names(self) -> None:
        s = TriageSettings(repos=" substrate, polkadot ,,cumulus")
        assert s.repo_names == ["substrate", "polkadot", "cumulus"]

    def test_empty_repos(self) -> None:
        assert TriageSettings(repos="").repo_names == []

    def test_handles_from_json_env(self, monkeypatch) -> None:
        monkeypatch.setenv("TRIAGE_HANDLES", '{"alice": "@alice:parity.io"}')
        assert TriageSettings().handles == {"alice": "@alice:parity.io"}


class TestChatSettings:
    def test_default_backend(self) -> None:
        assert ChatSettings().backend == "matrix"

    def test_invalid_backend(self) -> None:
        with pytest.raises(ValidationError, match="CHAT_BACKEND must be one of"):
            ChatSettings(backend="irc")


class TestDatabaseSettings:
    def test_wrong_schema_rejected(self, monkeypatch) -> None:
        monkeypatch.setenv("DATABASE_SCHEMA", "public")
        with pytest.raises(ValidationError, match="DATABASE_SCHEMA must be 'processbot'"):
            DatabaseSettings()


class TestRootSettings:
    def test_composes_sections(self, monkeypatch) -> None:
        monkeypatch.setenv("GITHUB_ORGANIZATION", "example-org")
        monkeypatch.setenv("CHAT_DEFAULT_CHANNEL", "!core:example.org")
        s = Settings()
        assert s.github.organization == "example-org"
        assert s.chat.default_channel == "!core:example.org"
        assert s.escalation.core_max_pings == 3
