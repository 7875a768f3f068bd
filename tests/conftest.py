"""Shared pytest fixtures for processbot tests.

Unit tests use MemoryStore. Integration tests get PostgreSQL in one of two ways:
1. TEST_DATABASE_* env vars present → connect to external PG (CI scenario)
2. Otherwise → testcontainers starts a temporary PG container (local dev);
   if Docker is unavailable the integration tests are skipped.

Safety: refuses to run against any database whose name doesn't contain '_test'.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

from processbot.constants import DB_SCHEMA
from processbot.store.database import make_session_factory
from processbot.store.models import Base
from tests.fakes import MemoryStore


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


def _validate_test_db_name(name: str) -> None:
    """Safety: refuse to truncate a database whose name doesn't contain '_test'."""
    if "_test" not in name.lower():
        raise RuntimeError(
            f"Refusing to run tests against database '{name}': "
            "name must contain '_test' to prevent accidental data loss. "
            "Set TEST_DATABASE_NAME to a test-specific database."
        )


def _build_pg_url_from_env() -> str | None:
    """Build async PG URL from TEST_DATABASE_* env vars, or return None."""
    host = os.getenv("TEST_DATABASE_HOST")
    if host is None:
        return None
    port = os.getenv("TEST_DATABASE_PORT", "5432")
    user = os.getenv("TEST_DATABASE_USER", "postgres")
    password = os.getenv("TEST_DATABASE_PASSWORD", "")
    name = os.getenv("TEST_DATABASE_NAME", "processbot_test")
    _validate_test_db_name(name)
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


@pytest.fixture(scope="session")
def pg_url():
    """Async PostgreSQL URL for integration tests; the container stops in teardown."""
    url = _build_pg_url_from_env()
    if url is not None:
        yield url
        return

    try:
        from testcontainers.postgres import PostgresContainer

        container = PostgresContainer("postgres:16", dbname="processbot_test")
        container.start()
    except Exception as exc:
        pytest.skip(f"PostgreSQL unavailable for integration tests: {exc}")

    _validate_test_db_name(container.dbname)
    host = container.get_container_host_ip()
    port = container.get_exposed_port(5432)
    yield (
        f"postgresql+asyncpg://{container.username}:{container.password}"
        f"@{host}:{port}/{container.dbname}"
    )

    container.stop()


@pytest_asyncio.fixture
async def db_session_factory(pg_url: str) -> AsyncGenerator:
    """Schema + tables per test, dropped afterwards."""
    engine = create_async_engine(pg_url, echo=False)
    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {DB_SCHEMA}"))
        await conn.run_sync(Base.metadata.create_all)

    yield make_session_factory(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.execute(text(f"DROP SCHEMA IF EXISTS {DB_SCHEMA} CASCADE"))
    await engine.dispose()
