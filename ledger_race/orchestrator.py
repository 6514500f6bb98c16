"""
Orchestrator for running transfer scenarios, verifying the ledger, and
persisting results.

Usage (example from CLI):
    from ledger_race.orchestrator import ScenarioConfig, run_scenarios

    results = run_scenarios([ScenarioConfig(strategy="relaxed", transfers=10_000)])
    print(results)

A scenario truncates both tables, seeds the source account plus the
destination accounts, fans out the transfers with one strategy, then
reconciles every account. It always completes; verification failures are
reported, not raised.

Outputs are saved to `results/` by default:
- `results/latest.json` (last run)
- `results/run-<timestamp>.json` (timestamped archive)
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import asyncpg

from ledger_race.config import get_settings
from ledger_race.driver import DriverReport, build_fan_out_requests, run_transfers
from ledger_race.infrastructure.db_factory import create_pool, validate_isolation
from ledger_race.infrastructure.schema import reset_tables
from ledger_race.store import AccountStore
from ledger_race.strategies import get_strategy
from ledger_race.utils.logging import get_logger
from ledger_race.utils.profiler import profile_block
from ledger_race.verifier import ReconciliationReport, account_balance, verify_ledger

log = get_logger(__name__)

SOURCE_ADDRESS = "0x0"


@dataclass
class ScenarioConfig:
    """
    One scenario: a strategy under an isolation level against a fresh ledger.

    Unset fields fall back to settings.
    """

    strategy: Optional[str] = None
    isolation: Optional[str] = None
    accounts: Optional[int] = None
    initial_balance: Optional[int] = None
    transfers: Optional[int] = None
    amount: Optional[int] = None
    pool_max_size: Optional[int] = None
    dsn_override: Optional[str] = None

    def resolved(self) -> "ScenarioConfig":
        settings = get_settings()
        return ScenarioConfig(
            strategy=self.strategy or settings.ledger_strategy,
            isolation=validate_isolation(self.isolation or settings.db_isolation_level),
            accounts=self.accounts or settings.ledger_accounts,
            initial_balance=(
                settings.ledger_initial_balance
                if self.initial_balance is None
                else self.initial_balance
            ),
            transfers=self.transfers or settings.ledger_transfers,
            amount=self.amount or settings.ledger_transfer_amount,
            pool_max_size=self.pool_max_size or settings.db_pool_max_size,
            dsn_override=self.dsn_override,
        )


def destination_addresses(count: int) -> List[str]:
    """Hex addresses `0x1` .. `0x<count>`."""
    return [f"0x{i:x}" for i in range(1, count + 1)]


async def seed_accounts(conn: asyncpg.Connection, addresses: Iterable[str], initial: int) -> int:
    """Create each account with `initial` in one transaction; returns rows created."""
    store = AccountStore(conn)
    created = 0
    async with conn.transaction():
        for address in addresses:
            created += int(await store.create_account(address, initial))
    log.info("Accounts seeded", extra={"created": created, "initial_balance": initial})
    return created


def _summarize(
    config: ScenarioConfig,
    driver_report: DriverReport,
    source_balance: int,
    reconciliation: ReconciliationReport,
    profile: dict,
) -> dict:
    source_entry = reconciliation.for_address(SOURCE_ADDRESS)
    source_decrease = config.initial_balance - source_balance
    return {
        "strategy": config.strategy,
        "isolation": config.isolation,
        "accounts": config.accounts,
        "initial_balance": config.initial_balance,
        "transfers": config.transfers,
        "amount": config.amount,
        "driver": driver_report.as_dict(),
        "source": {
            "address": SOURCE_ADDRESS,
            "balance": source_balance,
            "decrease": source_decrease,
            "expected": source_entry.expected,
            "discrepancy": source_entry.discrepancy,
            "decrease_matches_committed": source_decrease == driver_report.committed_amount,
        },
        "reconciliation": {
            "total_discrepancy": reconciliation.total_discrepancy,
            "consistent": reconciliation.is_consistent(),
            "invariants_hold": reconciliation.invariants_hold(),
            "inconsistent_accounts": len(reconciliation.inconsistent_accounts),
            "negative_accounts": reconciliation.negative_accounts,
        },
        "profile": profile,
    }


async def run_scenario(config: ScenarioConfig, pool: Optional[asyncpg.Pool] = None) -> dict:
    """
    Reset, seed, drive, and verify one scenario.

    Parameters
    ----------
    config : ScenarioConfig
        Scenario parameters; unset fields fall back to settings.
    pool : asyncpg.Pool, optional
        Pool to run on. When omitted a pool is created for the scenario and
        closed afterwards.

    Returns
    -------
    dict
        Summary with driver counts, source account check and reconciliation.
    """
    config = config.resolved()
    owns_pool = pool is None
    if pool is None:
        pool = await create_pool(config.dsn_override, max_size=config.pool_max_size)

    try:
        destinations = destination_addresses(config.accounts)
        async with pool.acquire() as conn:
            await reset_tables(conn)
            await seed_accounts(conn, [SOURCE_ADDRESS, *destinations], config.initial_balance)

        strategy = get_strategy(config.strategy, isolation=config.isolation)
        requests = build_fan_out_requests(
            SOURCE_ADDRESS, destinations, config.transfers, config.amount
        )
        with profile_block(f"{config.strategy}/{config.isolation}") as stats:
            driver_report = await run_transfers(pool, strategy, requests)

        async with pool.acquire() as conn:
            source_balance = await account_balance(conn, SOURCE_ADDRESS)
            reconciliation = await verify_ledger(conn, config.initial_balance)
    finally:
        if owns_pool:
            await pool.close()

    return _summarize(config, driver_report, source_balance, reconciliation, stats.as_dict())


def _persist_results(payload: dict, results_dir: Path) -> None:
    results_dir.mkdir(parents=True, exist_ok=True)
    latest_path = results_dir / "latest.json"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    archive_path = results_dir / f"run-{timestamp}.json"

    with latest_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)
    with archive_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)

    log.info("Results persisted", extra={"latest": str(latest_path), "archive": str(archive_path)})


def comparison_configs(
    isolations: Iterable[str], base: Optional[ScenarioConfig] = None
) -> List[ScenarioConfig]:
    """Strict and relaxed scenarios for every isolation level, in that order."""
    base = base or ScenarioConfig()
    return [
        replace(base, strategy=strategy, isolation=validate_isolation(isolation))
        for isolation in isolations
        for strategy in ("strict", "relaxed")
    ]


async def _run_all(configs: List[ScenarioConfig]) -> List[dict]:
    results: List[dict] = []
    for index, config in enumerate(configs, start=1):
        log.info(f"{'=' * 60}")
        log.info(
            f"[SCENARIO {index}/{len(configs)}] {config.strategy or 'default'}",
            extra={"strategy": config.strategy, "isolation": config.isolation},
        )
        log.info(f"{'=' * 60}")
        results.append(await run_scenario(config))
    return results


def run_scenarios(
    configs: Iterable[ScenarioConfig],
    results_dir: Path | str = "results",
    persist: bool = True,
) -> List[dict]:
    """
    Run scenarios one after another and optionally persist the results.

    Scenarios share the database, so they never overlap.
    """
    configs = list(configs)
    results = asyncio.run(_run_all(configs))

    payload = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "scenarios": len(results),
        "results": results,
    }
    if persist:
        _persist_results(payload, Path(results_dir))

    log.info(
        f"[ORCHESTRATOR COMPLETE] {len(results)} scenario(s) executed",
        extra={"total_scenarios": len(results)},
    )
    return results


__all__ = [
    "SOURCE_ADDRESS",
    "ScenarioConfig",
    "comparison_configs",
    "destination_addresses",
    "run_scenario",
    "run_scenarios",
    "seed_accounts",
]
