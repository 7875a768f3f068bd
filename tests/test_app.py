"""Tests for the webhook surface and the lifespan wiring of the outer process."""

from __future__ import annotations

import hashlib
import hmac
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from processbot.config.settings import ChatSettings, Settings, TriageSettings
from processbot.escalation.machine import EscalationAction, EscalationPlan
from processbot.escalation.record import NoAction
from processbot.gateway.app import app, build_notifier, lifespan
from processbot.gateway.dispatch import IssueDispatcher
from processbot.gateway.protocol import verify_signature

SECRET = "webhook-secret"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _payload(action: str = "opened", repo: str = "substrate", state: str = "open") -> dict:
    return {
        "action": action,
        "issue": {
            "id": 1001,
            "number": 42,
            "title": "Node panics",
            "body": None,
            "html_url": f"https://github.com/paritytech/{repo}/issues/42",
            "state": state,
            "user": {"id": 3, "login": "bob"},
        },
        "repository": {"name": repo, "full_name": f"paritytech/{repo}"},
    }


def _sign(body: bytes) -> str:
    return "sha256=" + hmac.new(SECRET.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def dispatcher() -> MagicMock:
    mock = MagicMock()
    mock.evaluate = AsyncMock(return_value=EscalationPlan(EscalationAction.remind, NoAction()))
    mock.is_tracked = MagicMock(side_effect=lambda name: name == "substrate")
    return mock


@pytest.fixture
def client(dispatcher):
    # TestClient without a context manager does not run the lifespan.
    app.state.dispatcher = dispatcher
    app.state.webhook_secret = SECRET
    yield TestClient(app)
    del app.state.dispatcher
    del app.state.webhook_secret


def _post(client: TestClient, payload: dict, event: str = "issues", signature: str | None = None):
    body = json.dumps(payload).encode()
    return client.post(
        "/webhooks/github",
        content=body,
        headers={
            "X-GitHub-Event": event,
            "X-Hub-Signature-256": signature if signature is not None else _sign(body),
            "Content-Type": "application/json",
        },
    )


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


class TestWebhook:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_opened_issue_evaluated_in_background(self, client, dispatcher):
        response = _post(client, _payload())

        assert response.status_code == 202
        assert response.json() == {"status": "accepted"}
        dispatcher.evaluate.assert_awaited_once()
        issue = dispatcher.evaluate.call_args.args[0]
        assert issue.id == 1001
        assert issue.repository.name == "substrate"

    def test_bad_signature_rejected(self, client, dispatcher):
        response = _post(client, _payload(), signature="sha256=deadbeef")

        assert response.status_code == 401
        dispatcher.evaluate.assert_not_called()

    def test_other_events_ignored(self, client, dispatcher):
        response = _post(client, {"zen": "Keep it logically awesome."}, event="ping")

        assert response.json() == {"status": "ignored"}
        dispatcher.evaluate.assert_not_called()

    def test_closed_action_ignored(self, client, dispatcher):
        assert _post(client, _payload(action="closed")).json() == {"status": "ignored"}
        dispatcher.evaluate.assert_not_called()

    def test_untracked_repo_ignored(self, client, dispatcher):
        assert _post(client, _payload(repo="core-sorting")).json() == {"status": "ignored"}
        dispatcher.evaluate.assert_not_called()

    def test_malformed_payload(self, client):
        assert _post(client, {"action": "opened"}).status_code == 422

    @pytest.mark.parametrize("action", ["edited", "labeled", "unlabeled", "transferred"])
    def test_closed_issue_ignored(self, client, dispatcher, action):
        response = _post(client, _payload(action=action, state="closed"))

        assert response.json() == {"status": "ignored"}
        dispatcher.evaluate.assert_not_called()

    def test_failed_evaluation_still_accepted(self, client, dispatcher):
        dispatcher.evaluate = AsyncMock(return_value=None)
        response = _post(client, _payload())

        assert response.status_code == 202
        dispatcher.evaluate.assert_awaited_once()

    def test_signature_not_checked_without_secret(self, client, dispatcher):
        app.state.webhook_secret = ""
        assert _post(client, _payload(), signature="").status_code == 202


class TestVerifySignature:
    def test_valid(self):
        assert verify_signature(SECRET, b"{}", _sign(b"{}"))

    def test_wrong_prefix(self):
        digest = hmac.new(SECRET.encode(), b"{}", hashlib.sha1).hexdigest()
        assert not verify_signature(SECRET, b"{}", f"sha1={digest}")


# ---------------------------------------------------------------------------
# Lifespan wiring
# ---------------------------------------------------------------------------


def _settings() -> Settings:
    return Settings(
        chat=ChatSettings(backend="matrix", default_channel="!core:parity.io"),
        triage=TriageSettings(repos="", core_team="core-devs", poll_interval_s=3600),
    )


class TestLifespan:
    async def test_wires_dispatcher_and_cleans_up(self):
        fake_app = MagicMock()
        fake_app.state = MagicMock()
        engine = AsyncMock()
        notifier = MagicMock()
        notifier.close = AsyncMock()
        github = MagicMock()
        github.list_team_members = AsyncMock(return_value=[])
        github.list_open_issues = AsyncMock(return_value=[])
        github.close = AsyncMock()

        with (
            patch("processbot.gateway.app.setup_logging"),
            patch("processbot.gateway.app.get_settings", return_value=_settings()),
            patch("processbot.gateway.app.create_db_engine", return_value=engine),
            patch("processbot.gateway.app.ensure_schema", return_value=None),
            patch("processbot.gateway.app.make_session_factory", return_value=MagicMock()),
            patch("processbot.gateway.app.build_notifier", return_value=notifier),
            patch("processbot.gateway.app.GitHubClient", return_value=github),
        ):
            async with lifespan(fake_app):
                assert isinstance(fake_app.state.dispatcher, IssueDispatcher)
                github.list_team_members.assert_awaited_with("core-devs")

        github.close.assert_awaited_once()
        notifier.close.assert_awaited_once()
        engine.dispose.assert_awaited_once()

    async def test_default_channel_required(self):
        settings = _settings()
        settings.chat.default_channel = ""

        with (
            patch("processbot.gateway.app.setup_logging"),
            patch("processbot.gateway.app.get_settings", return_value=settings),
        ):
            with pytest.raises(RuntimeError, match="CHAT_DEFAULT_CHANNEL"):
                async with lifespan(MagicMock()):
                    pass


class TestBuildNotifier:
    async def test_matrix_logs_in_without_token(self):
        settings = _settings()
        with patch("processbot.gateway.app.MatrixClient") as matrix_cls:
            matrix = matrix_cls.return_value
            matrix.is_authenticated = False
            matrix.login = AsyncMock()

            result = await build_notifier(settings)

        assert result is matrix
        matrix.login.assert_awaited_once_with(settings.matrix.username, settings.matrix.password)

    async def test_telegram_checked(self):
        settings = _settings()
        settings.chat.backend = "telegram"
        with patch("processbot.gateway.app.TelegramNotifier") as telegram_cls:
            telegram_cls.return_value.check_ready = AsyncMock()

            result = await build_notifier(settings)

        assert result is telegram_cls.return_value
        result.check_ready.assert_awaited_once()


class TestMain:
    def test_runs_uvicorn_with_gateway_settings(self, monkeypatch):
        from processbot.gateway.__main__ import main

        monkeypatch.setenv("GATEWAY_HOST", "127.0.0.1")
        monkeypatch.setenv("GATEWAY_PORT", "9000")
        with patch("processbot.gateway.__main__.uvicorn.run") as run:
            main()

        run.assert_called_once()
        assert run.call_args.args == ("processbot.gateway.app:app",)
        assert run.call_args.kwargs["host"] == "127.0.0.1"
        assert run.call_args.kwargs["port"] == 9000
