from __future__ import annotations

from ledger_race.domain.errors import AccountNotFound, InsufficientFunds, UnexpectedRowCount
from ledger_race.domain.models import TransferRequest
from ledger_race.domain.outcomes import Committed, Skipped, TransferOutcome
from ledger_race.store import AccountStore
from ledger_race.strategies.abstract import AbstractTransferStrategy
from ledger_race.utils.logging import get_logger

log = get_logger(__name__)


class RelaxedTransfer(AbstractTransferStrategy):
    """
    Read-then-write transfer that reproduces a lost-update race.

    The balance check runs on a plain SELECT (no row lock) and the debit that
    follows is not conditioned on the value read. Concurrent transfers from
    one source can all pass the check before any of them decrements, driving
    the balance below zero. Kept as-is for comparison with `StrictTransfer`.
    """

    name: str = "relaxed"
    description: str = "Plain balance read, application-side check, unguarded debit and credit."

    async def _run(self, store: AccountStore, request: TransferRequest) -> TransferOutcome:
        # No lock: the balance can change before the debit below runs.
        balance = await store.find_balance(request.from_address)
        if balance is None:
            raise AccountNotFound(request.from_address)

        if balance < request.amount:
            log.info(
                "Insufficient funds",
                extra={"tx_hash": request.tx_hash, "address": request.from_address},
            )
            raise InsufficientFunds(request.from_address)

        if await store.unconditional_adjust(request.from_address, -request.amount) != 1:
            log.info("Failed to update sender account", extra={"tx_hash": request.tx_hash})
            raise UnexpectedRowCount("sender update failed")

        if await store.unconditional_adjust(request.to_address, request.amount) != 1:
            log.info("Failed to update recipient account", extra={"tx_hash": request.tx_hash})
            raise UnexpectedRowCount("recipient update failed")

        inserted = await store.insert_ledger_entry(request)
        if inserted == 0:
            log.info("Transaction already exists", extra={"tx_hash": request.tx_hash})
            return Skipped(request.tx_hash)

        return Committed(inserted)


__all__ = ["RelaxedTransfer"]
