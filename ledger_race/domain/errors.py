"""
Error hierarchy for transfers and store access.

Every failure a transfer can end in is one of the `LedgerError` subclasses
below. A duplicate idempotency key is not an error; see
`ledger_race.domain.outcomes.Skipped`.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all transfer and store failures."""

    kind: str = "ledger_error"


class StoreError(LedgerError):
    """Connectivity or constraint fault raised by the underlying database."""

    kind = "store_error"


class InsufficientFunds(LedgerError):
    """The sender's balance does not cover the transfer amount."""

    kind = "insufficient_funds"

    def __init__(self, address: str) -> None:
        super().__init__(f"Insufficient funds account({address})")
        self.address = address


class AccountNotFound(LedgerError):
    """No account row exists for the address."""

    kind = "account_not_found"

    def __init__(self, address: str) -> None:
        super().__init__(f"Account not found: {address}")
        self.address = address


class UnexpectedRowCount(LedgerError):
    """A statement affected a different number of rows than the protocol expects."""

    kind = "unexpected_row_count"

    def __init__(self, reason: str) -> None:
        super().__init__(f"unknown error: {reason}")
        self.reason = reason


__all__ = [
    "AccountNotFound",
    "InsufficientFunds",
    "LedgerError",
    "StoreError",
    "UnexpectedRowCount",
]
