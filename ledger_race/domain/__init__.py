"""
Domain package for Ledger Race.

Exports the models, transfer outcomes and error hierarchy shared by the store,
strategies, driver and verifier. Keep this package free of I/O.
"""

from ledger_race.domain.errors import (
    AccountNotFound,
    InsufficientFunds,
    LedgerError,
    StoreError,
    UnexpectedRowCount,
)
from ledger_race.domain.models import Account, LedgerEntry, TransferRequest
from ledger_race.domain.outcomes import Committed, Skipped, TransferOutcome

__all__ = [
    "Account",
    "AccountNotFound",
    "Committed",
    "InsufficientFunds",
    "LedgerEntry",
    "LedgerError",
    "Skipped",
    "StoreError",
    "TransferOutcome",
    "TransferRequest",
    "UnexpectedRowCount",
]
