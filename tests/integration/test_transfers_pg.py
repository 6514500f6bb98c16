"""
Integration tests for Ledger Race transfers against PostgreSQL.

These tests run against a real PostgreSQL instance and verify that:
1. The account store primitives behave as the transfer protocol expects
2. Strict transfers are idempotent, conserve value and never overdraw
3. Relaxed transfers overdraw the source under concurrent load
4. Stricter isolation levels turn the relaxed race into aborted transfers

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
"""

from __future__ import annotations

import os

import asyncpg
import pytest

from ledger_race.domain.errors import AccountNotFound, InsufficientFunds
from ledger_race.domain.models import TransferRequest
from ledger_race.domain.outcomes import Committed, Skipped
from ledger_race.driver import build_fan_out_requests, run_transfers
from ledger_race.orchestrator import SOURCE_ADDRESS, destination_addresses, seed_accounts
from ledger_race.store import AccountStore
from ledger_race.strategies import RelaxedTransfer, StrictTransfer
from ledger_race.verifier import verify_ledger

INITIAL_BALANCE = 1000
AMOUNT = 3
TRANSFERS = 10_000
DESTINATION_COUNT = 100
RACE_ATTEMPTS = 3

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


async def _seed(pool: asyncpg.Pool) -> list[str]:
    destinations = destination_addresses(DESTINATION_COUNT)
    async with pool.acquire() as conn:
        await conn.execute("TRUNCATE transaction, accounts")
        await seed_accounts(conn, [SOURCE_ADDRESS, *destinations], INITIAL_BALANCE)
    return destinations


async def _balance(pool: asyncpg.Pool, address: str) -> int:
    async with pool.acquire() as conn:
        return await AccountStore(conn).get_balance(address)


class TestAccountStore:
    @pytest.mark.asyncio
    async def test_add_account_is_idempotent(self, pg_pool: asyncpg.Pool) -> None:
        async with pg_pool.acquire() as conn:
            store = AccountStore(conn)
            assert await store.create_account("0x1234567890abcdef", 1000) is True
            assert await store.create_account("0x1234567890abcdef", 5) is False
            assert await store.get_balance("0x1234567890abcdef") == 1000

    @pytest.mark.asyncio
    async def test_guarded_debit_refuses_overdraft(self, pg_pool: asyncpg.Pool) -> None:
        async with pg_pool.acquire() as conn:
            store = AccountStore(conn)
            await store.create_account("0xa", 5)
            assert await store.guarded_debit("0xa", 6) == 0
            assert await store.guarded_debit("0xa", 5) == 1
            assert await store.get_balance("0xa") == 0

    @pytest.mark.asyncio
    async def test_unconditional_adjust_can_go_negative(self, pg_pool: asyncpg.Pool) -> None:
        async with pg_pool.acquire() as conn:
            store = AccountStore(conn)
            await store.create_account("0xa", 5)
            assert await store.unconditional_adjust("0xa", -6) == 1
            assert await store.get_balance("0xa") == -1
            assert await store.unconditional_adjust("0xmissing", 1) == 0

    @pytest.mark.asyncio
    async def test_get_balance_for_unknown_address(self, pg_pool: asyncpg.Pool) -> None:
        with pytest.raises(AccountNotFound):
            await _balance(pg_pool, "0xnobody")


class TestStrictTransfer:
    @pytest.mark.asyncio
    async def test_second_submission_is_skipped(self, pg_pool: asyncpg.Pool) -> None:
        await _seed(pg_pool)
        strategy = StrictTransfer(isolation="read_committed")
        request = TransferRequest(tx_hash="once", from_address="0x0", to_address="0x1", amount=3)

        async with pg_pool.acquire() as conn:
            first = await strategy.transfer(conn, request)
            second = await strategy.transfer(conn, request)
            entries = await AccountStore(conn).ledger_entries("0x0")

        assert first == Committed(1)
        assert second == Skipped("once")
        assert await _balance(pg_pool, "0x0") == INITIAL_BALANCE - AMOUNT
        assert await _balance(pg_pool, "0x1") == INITIAL_BALANCE + AMOUNT
        assert [e.tx_hash for e in entries] == ["once"]

    @pytest.mark.asyncio
    async def test_unknown_sender(self, pg_pool: asyncpg.Pool) -> None:
        await _seed(pg_pool)
        request = TransferRequest(tx_hash="x", from_address="0xdead", to_address="0x1", amount=3)

        async with pg_pool.acquire() as conn:
            with pytest.raises(AccountNotFound):
                await StrictTransfer(isolation="read_committed").transfer(conn, request)
            assert await AccountStore(conn).ledger_entries() == []

    @pytest.mark.asyncio
    async def test_insufficient_funds_leaves_balance_unchanged(
        self, pg_pool: asyncpg.Pool
    ) -> None:
        await _seed(pg_pool)
        request = TransferRequest(
            tx_hash="big", from_address="0x0", to_address="0x1", amount=INITIAL_BALANCE + 1
        )

        async with pg_pool.acquire() as conn:
            with pytest.raises(InsufficientFunds):
                await StrictTransfer(isolation="read_committed").transfer(conn, request)
            assert await AccountStore(conn).ledger_entries() == []

        assert await _balance(pg_pool, "0x0") == INITIAL_BALANCE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("isolation", ["read_committed", "serializable"])
    async def test_concurrent_fan_out_conserves_value(
        self, pg_pool: asyncpg.Pool, isolation: str
    ) -> None:
        destinations = await _seed(pg_pool)
        total_before = INITIAL_BALANCE * (DESTINATION_COUNT + 1)
        requests = build_fan_out_requests(SOURCE_ADDRESS, destinations, TRANSFERS, AMOUNT)

        report = await run_transfers(pg_pool, StrictTransfer(isolation=isolation), requests)

        async with pg_pool.acquire() as conn:
            reconciliation = await verify_ledger(conn, INITIAL_BALANCE)
            total_after = await conn.fetchval("SELECT sum(balance) FROM accounts")

        source_decrease = INITIAL_BALANCE - await _balance(pg_pool, SOURCE_ADDRESS)
        assert report.committed * AMOUNT == source_decrease
        assert report.committed <= INITIAL_BALANCE // AMOUNT
        assert int(total_after) == total_before
        assert reconciliation.total_discrepancy == 0
        assert reconciliation.invariants_hold()


class TestRelaxedTransfer:
    @pytest.mark.asyncio
    async def test_concurrent_fan_out_exposes_race(self, pg_pool: asyncpg.Pool) -> None:
        exposed = False
        for attempt in range(RACE_ATTEMPTS):
            destinations = await _seed(pg_pool)
            requests = build_fan_out_requests(
                SOURCE_ADDRESS, destinations, TRANSFERS, AMOUNT, prefix=f"{attempt}-"
            )

            report = await run_transfers(
                pg_pool, RelaxedTransfer(isolation="read_committed"), requests
            )
            async with pg_pool.acquire() as conn:
                reconciliation = await verify_ledger(conn, INITIAL_BALANCE)

            source_balance = await _balance(pg_pool, SOURCE_ADDRESS)
            if (
                source_balance < 0
                or report.committed > INITIAL_BALANCE // AMOUNT
                or not reconciliation.is_consistent()
            ):
                exposed = True
                break

        assert exposed

    @pytest.mark.asyncio
    @pytest.mark.parametrize("isolation", ["repeatable_read", "serializable"])
    async def test_strict_isolation_aborts_racing_transfers(
        self, pg_pool: asyncpg.Pool, isolation: str
    ) -> None:
        destinations = await _seed(pg_pool)
        requests = build_fan_out_requests(SOURCE_ADDRESS, destinations, 2_000, AMOUNT)

        await run_transfers(pg_pool, RelaxedTransfer(isolation=isolation), requests)

        async with pg_pool.acquire() as conn:
            reconciliation = await verify_ledger(conn, INITIAL_BALANCE)

        assert await _balance(pg_pool, SOURCE_ADDRESS) >= 0
        assert reconciliation.invariants_hold()
