from __future__ import annotations

from datetime import timedelta
from typing import Self

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from processbot.constants import (
    CORE_SORTING_REPO,
    DB_SCHEMA,
    ISSUE_NO_PROJECT_ACTION_AFTER_NPINGS,
    ISSUE_NO_PROJECT_CORE_PING_PERIOD_S,
    ISSUE_NO_PROJECT_NON_CORE_PING_PERIOD_S,
)

# Load .env once at module import: all BaseSettings subclasses will see the env vars
load_dotenv()


class DatabaseSettings(BaseSettings):
    """PostgreSQL connection settings. Env vars prefixed with DATABASE_."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    name: str = "processbot"
    schema_: str = Field(DB_SCHEMA, validation_alias="DATABASE_SCHEMA")

    @field_validator("schema_")
    @classmethod
    def _validate_schema(cls, v: str) -> str:
        # Table metadata is bound to DB_SCHEMA at import time.
        if v != DB_SCHEMA:
            raise ValueError(f"DATABASE_SCHEMA must be '{DB_SCHEMA}' (got '{v}')")
        return v


class GitHubSettings(BaseSettings):
    """GitHub REST API settings. Env vars prefixed with GITHUB_."""

    model_config = SettingsConfigDict(env_prefix="GITHUB_")

    token: str = ""
    organization: str = "paritytech"
    api_url: str = "https://api.github.com"
    timeout_s: float = Field(30.0, gt=0)
    webhook_secret: str = ""  # empty = signatures not checked


class ChatSettings(BaseSettings):
    """Notification backend selection. Env vars prefixed with CHAT_."""

    model_config = SettingsConfigDict(env_prefix="CHAT_")

    backend: str = "matrix"
    default_channel: str = ""  # Matrix room id or Telegram chat id

    @field_validator("backend")
    @classmethod
    def _validate_backend(cls, v: str) -> str:
        allowed = {"matrix", "telegram"}
        if v not in allowed:
            msg = f"CHAT_BACKEND must be one of {allowed} (got '{v}')"
            raise ValueError(msg)
        return v


class MatrixSettings(BaseSettings):
    """Matrix homeserver settings. Env vars prefixed with MATRIX_."""

    model_config = SettingsConfigDict(env_prefix="MATRIX_")

    homeserver: str = "https://matrix.parity.io"
    username: str = ""  # email address, logged in via m.id.thirdparty
    password: str = ""
    access_token: str = ""  # set = skip login at startup
    timeout_s: float = Field(30.0, gt=0)


class TelegramSettings(BaseSettings):
    """Telegram channel settings. Env vars prefixed with TELEGRAM_."""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_")

    bot_token: str = ""
    message_max_length: int = Field(4096, gt=0, le=4096)


class EscalationSettings(BaseSettings):
    """No-project escalation policy. Env vars prefixed with ESCALATION_."""

    model_config = SettingsConfigDict(env_prefix="ESCALATION_")

    core_ping_period_s: int = ISSUE_NO_PROJECT_CORE_PING_PERIOD_S
    core_max_pings: int = ISSUE_NO_PROJECT_ACTION_AFTER_NPINGS
    non_core_ping_period_s: int = ISSUE_NO_PROJECT_NON_CORE_PING_PERIOD_S
    sorting_repo: str = CORE_SORTING_REPO
    clear_on_project_link: bool = True

    @model_validator(mode="after")
    def _validate(self) -> Self:
        if self.core_ping_period_s <= 0:
            raise ValueError(f"core_ping_period_s must be > 0, got {self.core_ping_period_s}")
        if self.non_core_ping_period_s <= 0:
            raise ValueError(
                f"non_core_ping_period_s must be > 0, got {self.non_core_ping_period_s}"
            )
        if self.core_max_pings < 1:
            raise ValueError(f"core_max_pings must be >= 1, got {self.core_max_pings}")
        if not self.sorting_repo.strip():
            raise ValueError("sorting_repo must not be empty")
        return self

    @property
    def core_ping_period(self) -> timedelta:
        return timedelta(seconds=self.core_ping_period_s)

    @property
    def non_core_ping_period(self) -> timedelta:
        return timedelta(seconds=self.non_core_ping_period_s)


class TriageSettings(BaseSettings):
    """Which repositories are tracked and who counts as core. Env vars prefixed with TRIAGE_."""

    model_config = SettingsConfigDict(env_prefix="TRIAGE_")

    repos: str = ""  # comma-separated repository names inside GITHUB_ORGANIZATION
    core_team: str = "core-devs"  # team slug; empty = nobody is core
    handles: dict[str, str] = Field(default_factory=dict)  # GitHub login -> chat handle (JSON)
    poll_interval_s: int = Field(300, gt=0)

    @property
    def repo_names(self) -> list[str]:
        return [part.strip() for part in self.repos.split(",") if part.strip()]


class GatewaySettings(BaseSettings):
    """Webhook server settings. Env vars prefixed with GATEWAY_."""

    model_config = SettingsConfigDict(env_prefix="GATEWAY_")

    host: str = "0.0.0.0"
    port: int = 8080


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    matrix: MatrixSettings = Field(default_factory=MatrixSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    escalation: EscalationSettings = Field(default_factory=EscalationSettings)
    triage: TriageSettings = Field(default_factory=TriageSettings)
    gateway: GatewaySettings = Field(default_factory=GatewaySettings)
    log_json: bool = True
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on invalid values."""
    return Settings()
