"""
Domain models for Ledger Race.

Mirrors the `accounts` and `transaction` tables from `ledger_race/db/init.sql` and the
request a caller submits to a transfer strategy.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class Account(BaseModel):
    """
    Representation of a single row in the `accounts` table.
    """

    address: str = Field(..., max_length=35, description="Primary key.")
    balance: int = Field(..., description="Signed balance; negative only after a lost update.")
    updated_at: Optional[datetime] = Field(None, description="Last mutation timestamp.")

    model_config = {"frozen": True}


class LedgerEntry(BaseModel):
    """
    Representation of a single row in the `transaction` table.
    """

    tx_hash: str = Field(..., max_length=64, description="Idempotency key.")
    from_address: str = Field(..., max_length=35)
    to_address: str = Field(..., max_length=35)
    amount: int = Field(..., gt=0)
    created_at: Optional[datetime] = Field(None, description="Insertion timestamp.")

    model_config = {"frozen": True}


class TransferRequest(BaseModel):
    """
    A request to move `amount` from one address to another, keyed by `tx_hash`.
    """

    tx_hash: str = Field(..., min_length=1, max_length=64)
    from_address: str = Field(..., min_length=1, max_length=35)
    to_address: str = Field(..., min_length=1, max_length=35)
    amount: int = Field(..., gt=0)

    model_config = {"frozen": True}


__all__ = ["Account", "LedgerEntry", "TransferRequest"]
