"""
Transfer strategy interfaces for Ledger Race.

A strategy moves value between two addresses inside one unit of work drawn
from a single connection. Concrete strategies implement `_run` against an
`AccountStore`; `AbstractTransferStrategy.transfer` owns the transaction:

- `Committed` outcome: the transaction commits.
- `Skipped` outcome: the transaction ends without committing.
- any exception: the transaction rolls back and the error propagates,
  driver faults re-raised as `StoreError`.

Nothing is retried here. A caller that wants a retry re-invokes with the same
idempotency key.
"""

from __future__ import annotations

import abc
from typing import Callable, Optional, Protocol, runtime_checkable

import asyncpg

from ledger_race.config import IsolationLevel, get_settings
from ledger_race.domain.errors import StoreError
from ledger_race.domain.models import TransferRequest
from ledger_race.domain.outcomes import Committed, TransferOutcome
from ledger_race.store import DRIVER_ERRORS, AccountStore

StoreFactory = Callable[[asyncpg.Connection], AccountStore]


@runtime_checkable
class TransferStrategy(Protocol):
    """
    Common interface all transfer strategies implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    description : str
        A human-friendly summary of the approach.
    isolation : str
        Transaction isolation level the unit of work runs under.
    """

    name: str
    description: str
    isolation: IsolationLevel

    async def transfer(
        self, conn: asyncpg.Connection, request: TransferRequest
    ) -> TransferOutcome:
        """
        Execute one transfer as one unit of work on `conn`.

        Returns
        -------
        TransferOutcome
            `Committed` or `Skipped`.

        Raises
        ------
        LedgerError
            Any failure; the unit of work has been rolled back.
        """
        ...


class AbstractTransferStrategy(abc.ABC):
    """
    Base class wiring the unit of work around `_run`.

    Subclasses set `name` and `description` and implement `_run`.
    """

    name: str
    description: str

    def __init__(
        self,
        isolation: Optional[IsolationLevel] = None,
        store_factory: StoreFactory = AccountStore,
    ) -> None:
        self.isolation: IsolationLevel = isolation or get_settings().db_isolation_level
        self._store_factory = store_factory

    async def transfer(
        self, conn: asyncpg.Connection, request: TransferRequest
    ) -> TransferOutcome:
        tx = conn.transaction(isolation=self.isolation)
        try:
            await tx.start()
            try:
                outcome = await self._run(self._store_factory(conn), request)
            except BaseException:
                await tx.rollback()
                raise
            if isinstance(outcome, Committed):
                await tx.commit()
            else:
                await tx.rollback()
        except DRIVER_ERRORS as exc:
            raise StoreError(f"{self.name} transfer {request.tx_hash} failed: {exc}") from exc
        return outcome

    @abc.abstractmethod
    async def _run(
        self, store: AccountStore, request: TransferRequest
    ) -> TransferOutcome:  # pragma: no cover - interface only
        """Issue the strategy's statements; the transaction is already open."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(isolation={self.isolation!r})"


__all__ = [
    "AbstractTransferStrategy",
    "StoreFactory",
    "TransferStrategy",
]
