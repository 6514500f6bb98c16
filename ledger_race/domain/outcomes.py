"""
Terminal states of a transfer that did not fail.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Committed:
    """The unit of work committed; `rows_affected` is the strategy's reported count."""

    rows_affected: int


@dataclass(frozen=True)
class Skipped:
    """The idempotency key was already recorded in the ledger."""

    tx_hash: str
    reason: str = "duplicate"


TransferOutcome = Union[Committed, Skipped]

__all__ = ["Committed", "Skipped", "TransferOutcome"]
