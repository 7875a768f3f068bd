"""Persisted per-issue escalation record and the store commit step.

Wire format (one JSON object per issue, keyed by the decimal issue id):

    {"issue_no_project_ping": "2024-05-01T09:00:00+00:00", "issue_no_project_npings": 1}

`issue_no_project_ping` is also accepted as epoch seconds or as the
`{"secs_since_epoch": ..., "nanos_since_epoch": ...}` object older
deployments wrote. New records are always written as ISO-8601 UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator

from processbot.infra.errors import DeserializationError
from processbot.store.kv import KeyValueStore

logger = structlog.get_logger()


class EscalationRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    last_ping_at: datetime | None = Field(None, alias="issue_no_project_ping")
    ping_count: int = Field(0, ge=0, alias="issue_no_project_npings")

    @field_validator("last_ping_at", mode="before")
    @classmethod
    def _accept_epoch_object(cls, v: Any) -> Any:
        if isinstance(v, dict):
            if "secs_since_epoch" not in v:
                raise ValueError(f"timestamp object without secs_since_epoch: {v}")
            seconds = int(v["secs_since_epoch"]) + int(v.get("nanos_since_epoch", 0)) / 1e9
            return datetime.fromtimestamp(seconds, tz=UTC)
        return v

    @field_validator("last_ping_at")
    @classmethod
    def _assume_utc(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @field_serializer("last_ping_at")
    def _to_iso(self, v: datetime | None) -> str | None:
        return v.astimezone(UTC).isoformat() if v is not None else None

    def to_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


@dataclass(frozen=True)
class NoAction:
    """Leave the store untouched."""


@dataclass(frozen=True)
class Persist:
    """Replace the stored record."""

    record: EscalationRecord


@dataclass(frozen=True)
class Clear:
    """Remove the stored record; the issue is no longer tracked."""


EscalationDecision = NoAction | Persist | Clear


def record_key(issue_id: int) -> str:
    return str(issue_id)


def decode_record(raw: bytes) -> EscalationRecord:
    """Parse a stored record. Corrupt data raises DeserializationError, never a default."""
    try:
        return EscalationRecord.model_validate_json(raw)
    except ValidationError as e:
        raise DeserializationError(f"Corrupt escalation record: {e}") from e


async def load_record(store: KeyValueStore, key: str) -> EscalationRecord | None:
    raw = await store.get(key)
    if raw is None:
        return None
    return decode_record(raw)


async def commit_decision(store: KeyValueStore, key: str, decision: EscalationDecision) -> None:
    """Apply a decision: Clear deletes, Persist deletes then writes, NoAction does nothing."""
    match decision:
        case Clear():
            await store.delete(key)
            logger.debug("escalation_record_cleared", key=key)
        case Persist(record=record):
            await store.delete(key)
            await store.put(key, record.to_bytes())
            logger.debug(
                "escalation_record_persisted",
                key=key,
                last_ping_at=record.last_ping_at,
                ping_count=record.ping_count,
            )
        case NoAction():
            pass
