"""
Schema bootstrap for Ledger Race.

`apply_schema` runs the packaged `ledger_race/db/init.sql` over a plain psycopg
connection (CLI and test fixtures, outside any event loop). `reset_tables`
truncates both tables from inside the async harness between runs.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import asyncpg
import psycopg

from ledger_race.infrastructure.db_factory import build_dsn
from ledger_race.utils.logging import get_logger

log = get_logger(__name__)

INIT_SQL_PATH = Path(__file__).resolve().parent.parent / "db" / "init.sql"


def apply_schema(dsn_override: Optional[str] = None, sql_path: Path = INIT_SQL_PATH) -> None:
    """
    Create the `accounts` and `transaction` tables if they are missing.
    """
    with sql_path.open("r", encoding="utf-8") as f:
        ddl = f.read()
    with psycopg.connect(dsn_override or build_dsn()) as conn:
        with conn.cursor() as cur:
            cur.execute(ddl)
        conn.commit()
    log.info("Schema applied", extra={"sql_path": str(sql_path)})


async def reset_tables(conn: asyncpg.Connection) -> None:
    """Remove every account and ledger entry."""
    await conn.execute("TRUNCATE transaction, accounts")
    log.info("Tables truncated")


__all__ = ["INIT_SQL_PATH", "apply_schema", "reset_tables"]
