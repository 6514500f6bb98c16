"""
Account store over a single asyncpg connection.

The store is the only writer of `accounts` rows. It exposes two distinct
mutation primitives: `guarded_debit`, a compare-and-decrement applied in one
UPDATE statement, and `unconditional_adjust`, which applies a delta with no
precondition. Row counts are read from the command status tag asyncpg returns
(`"UPDATE 1"`, `"INSERT 0 1"`).

The store never opens or commits transactions; callers decide the unit of work.
"""

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import asyncpg

from ledger_race.domain.errors import AccountNotFound, StoreError
from ledger_race.domain.models import Account, LedgerEntry, TransferRequest

T = TypeVar("T")

DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def rows_affected(status: str) -> int:
    """
    Extract the row count from a command status tag.

    >>> rows_affected("INSERT 0 1")
    1
    >>> rows_affected("UPDATE 0")
    0
    """
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        raise StoreError(f"Unexpected command status: {status!r}") from None


def _wrap_driver_errors(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except DRIVER_ERRORS as exc:
            raise StoreError(f"{func.__name__} failed: {exc}") from exc

    return wrapper


class AccountStore:
    """
    Balance rows and ledger entries reachable through one connection.

    Parameters
    ----------
    conn : asyncpg.Connection
        Connection the statements run on, usually inside an open transaction.
    """

    def __init__(self, conn: asyncpg.Connection) -> None:
        self._conn = conn

    @_wrap_driver_errors
    async def create_account(self, address: str, initial_balance: int) -> bool:
        """Create the row if absent. Returns True when a row was inserted."""
        status = await self._conn.execute(
            """
            INSERT INTO accounts (address, balance)
            VALUES ($1, $2)
            ON CONFLICT DO NOTHING
            """,
            address,
            initial_balance,
        )
        return rows_affected(status) == 1

    @_wrap_driver_errors
    async def find_balance(self, address: str) -> Optional[int]:
        return await self._conn.fetchval(
            "SELECT balance FROM accounts WHERE address = $1",
            address,
        )

    async def get_balance(self, address: str) -> int:
        """
        Current balance of `address`.

        Raises
        ------
        AccountNotFound
            If no row exists for the address.
        """
        balance = await self.find_balance(address)
        if balance is None:
            raise AccountNotFound(address)
        return balance

    @_wrap_driver_errors
    async def get_account(self, address: str) -> Account:
        row = await self._conn.fetchrow(
            "SELECT address, balance, updated_at FROM accounts WHERE address = $1",
            address,
        )
        if row is None:
            raise AccountNotFound(address)
        return Account(**dict(row))

    @_wrap_driver_errors
    async def guarded_debit(self, address: str, amount: int) -> int:
        """
        Decrement the balance only if it covers `amount`, as one statement.

        Returns the number of rows affected: 1 on success, 0 when the balance
        is insufficient or the account does not exist.
        """
        status = await self._conn.execute(
            """
            UPDATE accounts
            SET balance = balance - $1, updated_at = now()
            WHERE address = $2 AND balance >= $1
            """,
            amount,
            address,
        )
        return rows_affected(status)

    @_wrap_driver_errors
    async def unconditional_adjust(self, address: str, delta: int) -> int:
        """Apply `balance += delta` with no precondition. Returns rows affected."""
        status = await self._conn.execute(
            """
            UPDATE accounts
            SET balance = balance + $1, updated_at = now()
            WHERE address = $2
            """,
            delta,
            address,
        )
        return rows_affected(status)

    @_wrap_driver_errors
    async def upsert_credit(self, address: str, amount: int) -> int:
        """Credit `address`, creating it with `amount` when absent."""
        status = await self._conn.execute(
            """
            INSERT INTO accounts (address, balance, updated_at)
            VALUES ($1, $2, now())
            ON CONFLICT (address) DO UPDATE
            SET balance = accounts.balance + EXCLUDED.balance, updated_at = now()
            """,
            address,
            amount,
        )
        return rows_affected(status)

    @_wrap_driver_errors
    async def insert_ledger_entry(self, request: TransferRequest) -> int:
        """Record the transfer; 0 when `tx_hash` is already present."""
        status = await self._conn.execute(
            """
            INSERT INTO transaction (tx_hash, from_address, to_address, amount)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT DO NOTHING
            """,
            request.tx_hash,
            request.from_address,
            request.to_address,
            request.amount,
        )
        return rows_affected(status)

    @_wrap_driver_errors
    async def ledger_entries(self, address: Optional[str] = None) -> List[LedgerEntry]:
        """Ledger entries touching `address` (all entries when None), oldest first."""
        rows = await self._conn.fetch(
            """
            SELECT tx_hash, from_address, to_address, amount, created_at
            FROM transaction
            WHERE $1::varchar IS NULL OR from_address = $1 OR to_address = $1
            ORDER BY created_at, tx_hash
            """,
            address,
        )
        return [LedgerEntry(**dict(row)) for row in rows]


__all__ = ["AccountStore", "DRIVER_ERRORS", "rows_affected"]
