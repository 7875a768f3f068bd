from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request, Response
from pydantic import ValidationError

from processbot.channels.matrix import MatrixClient
from processbot.channels.telegram import TelegramNotifier
from processbot.config.settings import Settings, get_settings
from processbot.escalation.machine import EscalationPolicy
from processbot.gateway.dispatch import IssueDispatcher
from processbot.gateway.protocol import (
    EVALUATED_ISSUE_ACTIONS,
    IssuesEventPayload,
    verify_signature,
)
from processbot.github.client import GitHubClient
from processbot.infra.logging import setup_logging
from processbot.store.database import create_db_engine, ensure_schema, make_session_factory
from processbot.store.kv import SqlKeyValueStore

logger = structlog.get_logger()


async def build_notifier(settings: Settings) -> MatrixClient | TelegramNotifier:
    """Create the configured chat backend and make sure it can authenticate."""
    if settings.chat.backend == "telegram":
        notifier = TelegramNotifier(settings.telegram)
        await notifier.check_ready()
        return notifier

    matrix = MatrixClient(
        settings.matrix.homeserver,
        access_token=settings.matrix.access_token,
        timeout_s=settings.matrix.timeout_s,
    )
    if not matrix.is_authenticated:
        await matrix.login(settings.matrix.username, settings.matrix.password)
    return matrix


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Wire store, clients and dispatcher; run the poll loop for the app's lifetime."""
    settings = get_settings()
    setup_logging(json_output=settings.log_json, log_level=settings.log_level)

    if not settings.chat.default_channel:
        raise RuntimeError("CHAT_DEFAULT_CHANNEL must be set")

    engine = await create_db_engine(settings.database)
    await ensure_schema(engine, settings.database.schema_)
    store = SqlKeyValueStore(make_session_factory(engine))
    logger.info("db_connected")

    github = GitHubClient(
        settings.github.token,
        organization=settings.github.organization,
        api_url=settings.github.api_url,
        timeout_s=settings.github.timeout_s,
    )
    notifier = await build_notifier(settings)

    dispatcher = IssueDispatcher(
        store=store,
        github=github,
        notifier=notifier,
        policy=EscalationPolicy.from_settings(settings.escalation),
        default_channel=settings.chat.default_channel,
        handles=settings.triage.handles,
        core_team=settings.triage.core_team,
        tracked_repos=settings.triage.repo_names,
    )
    await dispatcher.refresh_core_devs()

    app.state.dispatcher = dispatcher
    app.state.webhook_secret = settings.github.webhook_secret

    poll_task = asyncio.create_task(
        dispatcher.run_polling(settings.triage.poll_interval_s), name="issue_poll",
    )
    logger.info(
        "processbot_started",
        organization=settings.github.organization,
        repos=settings.triage.repo_names,
        chat_backend=settings.chat.backend,
    )

    yield

    poll_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await poll_task
    await github.close()
    await notifier.close()
    await engine.dispose()
    logger.info("processbot_stopped")


app = FastAPI(title="processbot", version="0.1.0", lifespan=lifespan)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/webhooks/github")
async def github_webhook(
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    x_github_event: str = Header(""),
    x_hub_signature_256: str = Header(""),
) -> dict[str, str]:
    body = await request.body()
    secret: str = request.app.state.webhook_secret
    if secret and not verify_signature(secret, body, x_hub_signature_256):
        logger.warning("webhook_signature_rejected", event=x_github_event)
        raise HTTPException(status_code=401, detail="invalid signature")

    if x_github_event != "issues":
        return {"status": "ignored"}

    try:
        payload = IssuesEventPayload.model_validate_json(body)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    dispatcher: IssueDispatcher = request.app.state.dispatcher
    if (
        payload.action not in EVALUATED_ISSUE_ACTIONS
        or payload.issue.state != "open"
        or not dispatcher.is_tracked(payload.repository.name)
    ):
        return {"status": "ignored"}

    # Evaluation calls GitHub and chat; answer before GitHub's delivery timeout.
    background_tasks.add_task(dispatcher.evaluate, payload.issue_with_repository())
    response.status_code = 202
    return {"status": "accepted"}
