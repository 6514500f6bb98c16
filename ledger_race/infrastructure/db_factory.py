"""
Database connection factory utilities for Ledger Race.

Builds the DSN from settings and creates the bounded asyncpg pool that every
concurrent transfer draws its connection from. The pool's `max_size` is the
only explicit bound on in-flight units of work.

Includes retry logic for transient connection failures using tenacity. Retries
apply to pool creation only; transfers are never retried.
"""

from __future__ import annotations

from typing import Optional

import asyncpg
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ledger_race.config import IsolationLevel, get_settings
from ledger_race.utils.logging import get_logger

log = get_logger(__name__)

ISOLATION_LEVELS: tuple[IsolationLevel, ...] = (
    "read_committed",
    "repeatable_read",
    "serializable",
)


def build_dsn() -> str:
    """Compose a DSN string from settings."""
    settings = get_settings()
    return (
        f"postgresql://{settings.db_user}:{settings.db_password}"
        f"@{settings.db_host}:{settings.db_port}/{settings.db_name}"
    )


def validate_isolation(level: str) -> IsolationLevel:
    """
    Normalize an isolation level name (accepts `READ COMMITTED` or `read-committed`).

    Raises
    ------
    ValueError
        If the level is not one asyncpg transactions accept here.
    """
    normalized = level.strip().lower().replace(" ", "_").replace("-", "_")
    if normalized not in ISOLATION_LEVELS:
        raise ValueError(
            f"Unknown isolation level '{level}'. Available: {', '.join(ISOLATION_LEVELS)}"
        )
    return normalized  # type: ignore[return-value]


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(
        (OSError, ConnectionError, asyncpg.CannotConnectNowError)
    ),
    reraise=True,
)
async def create_pool(
    dsn_override: Optional[str] = None,
    min_size: Optional[int] = None,
    max_size: Optional[int] = None,
) -> asyncpg.Pool:
    """
    Create an asyncpg pool with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.

    Parameters
    ----------
    dsn_override : str, optional
        DSN to use instead of the one composed from settings.
    min_size : int, optional
        Minimum number of idle connections. Defaults to settings.db_pool_min_size.
    max_size : int, optional
        Maximum concurrent connections. Defaults to settings.db_pool_max_size.

    Returns
    -------
    asyncpg.Pool
        An initialized pool. The caller owns it and must close it.
    """
    settings = get_settings()
    min_size = min_size or settings.db_pool_min_size
    max_size = max_size or settings.db_pool_max_size
    log.debug("Creating pool", extra={"min_size": min_size, "max_size": max_size})
    return await asyncpg.create_pool(
        dsn_override or build_dsn(),
        min_size=min(min_size, max_size),
        max_size=max_size,
    )


__all__ = ["ISOLATION_LEVELS", "build_dsn", "create_pool", "validate_isolation"]
