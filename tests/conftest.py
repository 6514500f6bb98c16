"""
Pytest configuration for Ledger Race.

Provides fixtures for:
- Settings isolation between tests
- Database availability checks and schema bootstrap for integration tests
- A per-test asyncpg pool over freshly truncated tables
"""

from __future__ import annotations

import os
from typing import AsyncGenerator, Generator

import asyncpg
import psycopg
import pytest
import pytest_asyncio

from ledger_race.config import Settings, get_settings
from ledger_race.infrastructure.db_factory import create_pool
from ledger_race.infrastructure.schema import apply_schema, reset_tables

INTEGRATION_POOL_SIZE = 50


@pytest.fixture(autouse=True)
def _fresh_settings() -> Generator[None, None, None]:
    """Drop cached settings so env changes made by a test never leak."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "postgres"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_schema_initialized(test_dsn: str, db_connection_available: bool) -> bool:
    """
    Ensure the accounts and transaction tables exist.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")
    apply_schema(test_dsn)
    return True


@pytest_asyncio.fixture
async def pg_pool(
    test_dsn: str, db_schema_initialized: bool
) -> AsyncGenerator[asyncpg.Pool, None]:
    """
    asyncpg pool over empty tables. Tables are truncated before and after.
    """
    pool = await create_pool(test_dsn, min_size=1, max_size=INTEGRATION_POOL_SIZE)
    try:
        async with pool.acquire() as conn:
            await reset_tables(conn)
        yield pool
        async with pool.acquire() as conn:
            await reset_tables(conn)
    finally:
        await pool.close()
