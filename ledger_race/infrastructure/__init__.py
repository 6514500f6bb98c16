"""
Infrastructure package for Ledger Race.

Centralizes database connectivity concerns (DSN, asyncpg pool, schema
bootstrap). Keep this layer focused on I/O and resource management, decoupled
from transfer and verification logic.
"""

from ledger_race.infrastructure.db_factory import (
    ISOLATION_LEVELS,
    build_dsn,
    create_pool,
    validate_isolation,
)
from ledger_race.infrastructure.schema import apply_schema, reset_tables

__all__ = [
    "ISOLATION_LEVELS",
    "apply_schema",
    "build_dsn",
    "create_pool",
    "reset_tables",
    "validate_isolation",
]
