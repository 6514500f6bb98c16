"""
In-memory stand-ins for asyncpg connections, pools and the account store.

`InMemoryLedger` holds balances and ledger entries. `FakeStore` mirrors the
`AccountStore` API against it, yielding to the event loop before every
statement the way a real round-trip would. Each mutation records an undo step
on its connection so `FakeTransaction.rollback` can reverse only its own
effects while other tasks keep running.
"""

from __future__ import annotations

import asyncio
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Dict, List, Optional

from ledger_race.domain.models import TransferRequest
from ledger_race.verifier import AccountActivity


class InMemoryLedger:
    def __init__(self, balances: Optional[Dict[str, int]] = None) -> None:
        self.balances: Dict[str, int] = dict(balances or {})
        self.entries: Dict[str, TransferRequest] = {}
        self.commits = 0
        self.rollbacks = 0

    def activity(self) -> List[AccountActivity]:
        rows = []
        for address, balance in sorted(self.balances.items()):
            credit = sum(e.amount for e in self.entries.values() if e.to_address == address)
            debit = sum(e.amount for e in self.entries.values() if e.from_address == address)
            rows.append(
                AccountActivity(address=address, balance=balance, credit=credit, debit=debit)
            )
        return rows


class FakeTransaction:
    def __init__(self, conn: "FakeConnection", isolation: Optional[str]) -> None:
        self._conn = conn
        self.isolation = isolation

    async def start(self) -> None:
        self._conn.isolations.append(self.isolation)
        self._conn.undo = []
        await asyncio.sleep(0)

    async def commit(self) -> None:
        await asyncio.sleep(0)
        if self._conn.fail_on_commit is not None:
            raise self._conn.fail_on_commit
        self._conn.undo = []
        self._conn.ledger.commits += 1

    async def rollback(self) -> None:
        for step in reversed(self._conn.undo):
            step()
        self._conn.undo = []
        self._conn.ledger.rollbacks += 1


class FakeConnection:
    def __init__(self, ledger: InMemoryLedger) -> None:
        self.ledger = ledger
        self.undo: List[Callable[[], None]] = []
        self.isolations: List[Optional[str]] = []
        self.fail_on_commit: Optional[BaseException] = None

    def transaction(self, isolation: Optional[str] = None) -> FakeTransaction:
        return FakeTransaction(self, isolation)


class FakeStore:
    """`AccountStore` look-alike over an `InMemoryLedger`."""

    def __init__(self, conn: FakeConnection) -> None:
        self._conn = conn
        self._ledger = conn.ledger

    async def find_balance(self, address: str) -> Optional[int]:
        await asyncio.sleep(0)
        return self._ledger.balances.get(address)

    async def guarded_debit(self, address: str, amount: int) -> int:
        await asyncio.sleep(0)
        balance = self._ledger.balances.get(address)
        if balance is None or balance < amount:
            return 0
        self._apply(address, -amount)
        return 1

    async def unconditional_adjust(self, address: str, delta: int) -> int:
        await asyncio.sleep(0)
        if address not in self._ledger.balances:
            return 0
        self._apply(address, delta)
        return 1

    async def upsert_credit(self, address: str, amount: int) -> int:
        await asyncio.sleep(0)
        if address not in self._ledger.balances:
            self._ledger.balances[address] = amount
            self._conn.undo.append(lambda: self._ledger.balances.pop(address, None))
        else:
            self._apply(address, amount)
        return 1

    async def insert_ledger_entry(self, request: TransferRequest) -> int:
        await asyncio.sleep(0)
        if request.tx_hash in self._ledger.entries:
            return 0
        self._ledger.entries[request.tx_hash] = request
        self._conn.undo.append(lambda: self._ledger.entries.pop(request.tx_hash, None))
        return 1

    def _apply(self, address: str, delta: int) -> None:
        balances = self._ledger.balances
        balances[address] += delta

        def undo() -> None:
            balances[address] -= delta

        self._conn.undo.append(undo)


class _AcquireContext(AbstractAsyncContextManager[FakeConnection]):
    def __init__(self, pool: "FakePool") -> None:
        self._pool = pool

    async def __aenter__(self) -> FakeConnection:
        await self._pool._slots.acquire()
        self._pool.in_flight += 1
        self._pool.max_in_flight = max(self._pool.max_in_flight, self._pool.in_flight)
        return FakeConnection(self._pool.ledger)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        del exc_type, exc, tb
        self._pool.in_flight -= 1
        self._pool._slots.release()
        return False


class FakePool:
    """Bounded pool handing out fresh `FakeConnection`s over one ledger."""

    def __init__(self, ledger: InMemoryLedger, max_size: int = 8) -> None:
        self.ledger = ledger
        self.max_size = max_size
        self._slots = asyncio.Semaphore(max_size)
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    def acquire(self) -> _AcquireContext:
        return _AcquireContext(self)

    async def close(self) -> None:
        self.closed = True


class ScriptedConnection:
    """
    Records every statement and answers from queued results.

    Results are consumed in order; an exception instance in the queue is raised.
    """

    def __init__(self, *results: Any) -> None:
        self._results = list(results)
        self.calls: List[tuple] = []

    def _next(self, method: str, sql: str, args: tuple) -> Any:
        self.calls.append((method, " ".join(sql.split()), args))
        result = self._results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    async def execute(self, sql: str, *args: Any) -> Any:
        return self._next("execute", sql, args)

    async def fetchval(self, sql: str, *args: Any) -> Any:
        return self._next("fetchval", sql, args)

    async def fetchrow(self, sql: str, *args: Any) -> Any:
        return self._next("fetchrow", sql, args)

    async def fetch(self, sql: str, *args: Any) -> Any:
        return self._next("fetch", sql, args)
