"""
Reconciliation of account balances against the ledger.

For every account the ledger implies an expected balance:

    expected = initial_funding + Σ amount (to_address = account)
                               - Σ amount (from_address = account)

The signed difference `balance - expected` is the account's discrepancy. A
non-zero total means an update was lost or applied twice. Discrepancies are
reported, never raised.
"""

from __future__ import annotations

from typing import Iterable, List, Mapping, Union

import asyncpg
from pydantic import BaseModel, Field

from ledger_race.domain.errors import AccountNotFound, StoreError
from ledger_race.store import DRIVER_ERRORS, AccountStore
from ledger_race.utils.logging import get_logger

log = get_logger(__name__)

InitialFunding = Union[int, Mapping[str, int]]

_ACTIVITY_SQL = """
SELECT a.address,
       a.balance,
       COALESCE(c.credit, 0) AS credit,
       COALESCE(d.debit, 0) AS debit
FROM accounts a
LEFT JOIN LATERAL (
    SELECT sum(amount) AS credit FROM transaction WHERE to_address = a.address
) c ON true
LEFT JOIN LATERAL (
    SELECT sum(amount) AS debit FROM transaction WHERE from_address = a.address
) d ON true
ORDER BY a.address
"""


class AccountActivity(BaseModel):
    """Balance and ledger totals of one account."""

    address: str
    balance: int
    credit: int = 0
    debit: int = 0


class AccountReconciliation(BaseModel):
    address: str
    balance: int
    expected: int
    discrepancy: int


class ReconciliationReport(BaseModel):
    """Per-account reconciliation plus the aggregate discrepancy."""

    accounts: List[AccountReconciliation] = Field(default_factory=list)
    total_discrepancy: int = 0
    inconsistent_accounts: List[str] = Field(default_factory=list)
    negative_accounts: List[str] = Field(default_factory=list)

    def is_consistent(self, threshold: int = 0) -> bool:
        """
        True when the aggregate discrepancy and every single account's
        discrepancy are within `threshold`; offsetting errors do not cancel out.
        """
        if threshold < 0:
            raise ValueError("threshold must be non-negative")
        return abs(self.total_discrepancy) <= threshold and all(
            abs(entry.discrepancy) <= threshold for entry in self.accounts
        )

    def invariants_hold(self, threshold: int = 0) -> bool:
        """Reconciled and no account below zero."""
        return self.is_consistent(threshold) and not self.negative_accounts

    def for_address(self, address: str) -> AccountReconciliation:
        for entry in self.accounts:
            if entry.address == address:
                return entry
        raise AccountNotFound(address)


def _initial_for(initial_funding: InitialFunding, address: str) -> int:
    if isinstance(initial_funding, Mapping):
        return initial_funding.get(address, 0)
    return initial_funding


def reconcile(
    activity: Iterable[AccountActivity], initial_funding: InitialFunding
) -> ReconciliationReport:
    """
    Compare each balance with the balance implied by the ledger.

    Parameters
    ----------
    activity : iterable of AccountActivity
        Balances and ledger totals, one per account.
    initial_funding : int or mapping
        Seed balance of every account, or per-address seed balances (addresses
        missing from the mapping, such as recipients created by a credit,
        start at 0).
    """
    report = ReconciliationReport()
    for row in activity:
        expected = _initial_for(initial_funding, row.address) + row.credit - row.debit
        discrepancy = row.balance - expected
        report.accounts.append(
            AccountReconciliation(
                address=row.address,
                balance=row.balance,
                expected=expected,
                discrepancy=discrepancy,
            )
        )
        report.total_discrepancy += discrepancy
        if discrepancy != 0:
            report.inconsistent_accounts.append(row.address)
        if row.balance < 0:
            report.negative_accounts.append(row.address)
    return report


async def fetch_account_activity(conn: asyncpg.Connection) -> List[AccountActivity]:
    try:
        rows = await conn.fetch(_ACTIVITY_SQL)
    except DRIVER_ERRORS as exc:
        raise StoreError(f"fetch_account_activity failed: {exc}") from exc
    return [
        AccountActivity(
            address=row["address"],
            balance=int(row["balance"]),
            credit=int(row["credit"]),
            debit=int(row["debit"]),
        )
        for row in rows
    ]


async def verify_ledger(
    conn: asyncpg.Connection, initial_funding: InitialFunding
) -> ReconciliationReport:
    """Reconcile every account and log the outcome."""
    report = reconcile(await fetch_account_activity(conn), initial_funding)
    if report.is_consistent():
        log.info(
            "Ledger consistency verified",
            extra={"accounts": len(report.accounts), "total_discrepancy": 0},
        )
    else:
        log.error(
            f"Ledger consistency verification failed: {report.total_discrepancy}",
            extra={
                "total_discrepancy": report.total_discrepancy,
                "inconsistent_accounts": len(report.inconsistent_accounts),
                "negative_accounts": len(report.negative_accounts),
            },
        )
    return report


async def account_balance(conn: asyncpg.Connection, address: str) -> int:
    """
    Balance of a single account, logged as consistent when non-negative.

    Raises
    ------
    AccountNotFound
        If the account does not exist.
    """
    account = await AccountStore(conn).get_account(address)
    context = {
        "address": address,
        "balance": account.balance,
        "updated_at": account.updated_at,
    }
    if account.balance >= 0:
        log.info("Account consistency verified", extra=context)
    else:
        log.error(f"Account consistency verification failed: {account.balance}", extra=context)
    return account.balance


__all__ = [
    "AccountActivity",
    "AccountReconciliation",
    "InitialFunding",
    "ReconciliationReport",
    "account_balance",
    "fetch_account_activity",
    "reconcile",
    "verify_ledger",
]
