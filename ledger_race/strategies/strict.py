from __future__ import annotations

from ledger_race.domain.errors import AccountNotFound, InsufficientFunds, UnexpectedRowCount
from ledger_race.domain.models import TransferRequest
from ledger_race.domain.outcomes import Committed, Skipped, TransferOutcome
from ledger_race.store import AccountStore
from ledger_race.strategies.abstract import AbstractTransferStrategy
from ledger_race.utils.logging import get_logger

log = get_logger(__name__)


class StrictTransfer(AbstractTransferStrategy):
    """
    Insert-first, guard-based transfer.

    The ledger insert claims the idempotency key before any balance moves, and
    the debit's balance check and decrement are one UPDATE, so two concurrent
    transfers from the same source cannot both pass the check against a
    balance that only covers one of them. The second UPDATE blocks on the row
    lock and re-evaluates its WHERE clause against the committed decrement.
    """

    name: str = "strict"
    description: str = "Ledger insert first, then compare-and-decrement debit, then upsert credit."

    async def _run(self, store: AccountStore, request: TransferRequest) -> TransferOutcome:
        if await store.insert_ledger_entry(request) == 0:
            log.info("Transaction already exists", extra={"tx_hash": request.tx_hash})
            return Skipped(request.tx_hash)

        debited = await store.guarded_debit(request.from_address, request.amount)
        if debited == 0:
            # Missing sender vs. short balance; read only after the guard failed.
            if await store.find_balance(request.from_address) is None:
                raise AccountNotFound(request.from_address)
            log.info(
                "Insufficient funds",
                extra={"tx_hash": request.tx_hash, "address": request.from_address},
            )
            raise InsufficientFunds(request.from_address)

        if await store.upsert_credit(request.to_address, request.amount) == 0:
            log.info("Failed to update recipient account", extra={"tx_hash": request.tx_hash})
            raise UnexpectedRowCount("credit failed")

        return Committed(debited)


__all__ = ["StrictTransfer"]
