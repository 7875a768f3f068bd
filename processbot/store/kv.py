"""Byte-oriented key-value store.

Only single-key atomicity is offered: callers that read-modify-write a key
must serialise themselves (see IssueDispatcher).
"""

from __future__ import annotations

from typing import Protocol

import structlog
from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.sql import func

from processbot.infra.errors import StoreError
from processbot.store.models import KeyValueEntry

logger = structlog.get_logger()


class KeyValueStore(Protocol):
    async def get(self, key: str) -> bytes | None: ...

    async def put(self, key: str, value: bytes) -> None: ...

    async def delete(self, key: str) -> None: ...


class SqlKeyValueStore:
    """KeyValueStore on a PostgreSQL table. Every failure surfaces as StoreError."""

    def __init__(self, db_session_factory: async_sessionmaker) -> None:
        self._db = db_session_factory

    async def get(self, key: str) -> bytes | None:
        try:
            async with self._db() as db:
                result = await db.execute(
                    select(KeyValueEntry.value).where(KeyValueEntry.key == key)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(f"get {key!r} failed: {e}") from e

    async def put(self, key: str, value: bytes) -> None:
        stmt = insert(KeyValueEntry).values(key=key, value=value)
        stmt = stmt.on_conflict_do_update(
            index_elements=[KeyValueEntry.key],
            set_={"value": stmt.excluded.value, "updated_at": func.now()},
        )
        try:
            async with self._db() as db:
                await db.execute(stmt)
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"put {key!r} failed: {e}") from e
        logger.debug("kv_put", key=key, size=len(value))

    async def delete(self, key: str) -> None:
        try:
            async with self._db() as db:
                await db.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"delete {key!r} failed: {e}") from e
        logger.debug("kv_delete", key=key)
