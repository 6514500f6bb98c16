"""
Concurrent fan-out of transfers over a bounded connection pool.

Every request runs as its own task with its own pooled connection and its own
unit of work. The pool's `max_size` bounds how many are in flight; the rest
suspend in `pool.acquire()`. A failing task is logged and counted, it never
cancels its siblings, and `run_transfers` returns only after every task has
finished.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

import asyncpg

from ledger_race.domain.errors import LedgerError, StoreError
from ledger_race.domain.models import TransferRequest
from ledger_race.domain.outcomes import Committed, Skipped, TransferOutcome
from ledger_race.store import DRIVER_ERRORS
from ledger_race.strategies.abstract import TransferStrategy
from ledger_race.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class DriverReport:
    """
    Aggregated outcomes of one fan-out.
    """

    strategy: str
    isolation: str
    requested: int = 0
    committed: int = 0
    skipped: int = 0
    failed: int = 0
    committed_amount: int = 0
    failures_by_kind: Dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def as_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "isolation": self.isolation,
            "requested": self.requested,
            "committed": self.committed,
            "skipped": self.skipped,
            "failed": self.failed,
            "committed_amount": self.committed_amount,
            "failures_by_kind": dict(self.failures_by_kind),
            "duration_seconds": round(self.duration_seconds, 3),
        }


def build_fan_out_requests(
    source: str,
    destinations: Sequence[str],
    count: int,
    amount: int,
    prefix: str = "",
) -> List[TransferRequest]:
    """
    `count` transfers of `amount` from `source`, round-robin over `destinations`.

    Each request gets a distinct `tx_hash` (`prefix` + hex index), so the
    fan-out itself never trips the idempotency check.
    """
    if not destinations:
        raise ValueError("at least one destination is required")
    return [
        TransferRequest(
            tx_hash=f"{prefix}{i:x}",
            from_address=source,
            to_address=destinations[i % len(destinations)],
            amount=amount,
        )
        for i in range(count)
    ]


async def _run_one(
    pool: asyncpg.Pool,
    strategy: TransferStrategy,
    request: TransferRequest,
) -> TransferOutcome | LedgerError:
    try:
        async with pool.acquire() as conn:
            return await strategy.transfer(conn, request)
    except LedgerError as exc:
        log.error(
            f"Error: {exc!r}",
            extra={"tx_hash": request.tx_hash, "error_kind": exc.kind},
        )
        return exc
    except DRIVER_ERRORS as exc:
        # Acquiring or releasing the pooled connection failed.
        log.warning(
            "Failed to start transaction",
            extra={"tx_hash": request.tx_hash, "error": str(exc)},
        )
        return StoreError(f"connection for {request.tx_hash} failed: {exc}")
    except Exception as exc:
        # Anything else (client-side driver bugs, acquire timeouts) still
        # ends this task only.
        log.exception(
            "Unexpected transfer failure",
            extra={"tx_hash": request.tx_hash, "error": repr(exc)},
        )
        return StoreError(f"transfer {request.tx_hash} failed unexpectedly: {exc!r}")


async def run_transfers(
    pool: asyncpg.Pool,
    strategy: TransferStrategy,
    requests: Iterable[TransferRequest],
    report: Optional[DriverReport] = None,
) -> DriverReport:
    """
    Run every request concurrently and wait for all of them.

    Parameters
    ----------
    pool : asyncpg.Pool
        Bounded pool each task acquires its connection from.
    strategy : TransferStrategy
        Strategy every request is executed with.
    requests : iterable of TransferRequest
        Transfers to issue; their `tx_hash` values should be distinct.
    report : DriverReport, optional
        Report to accumulate into. A new one is created when omitted.

    Returns
    -------
    DriverReport
        Counts of committed, skipped and failed transfers.
    """
    requests = list(requests)
    report = report or DriverReport(strategy=strategy.name, isolation=strategy.isolation)
    report.requested += len(requests)
    log.info(
        f"[DRIVER START] {strategy.name}",
        extra={"strategy": strategy.name, "isolation": strategy.isolation, "requests": len(requests)},
    )

    start = time.perf_counter()
    results = await asyncio.gather(*(_run_one(pool, strategy, req) for req in requests))
    report.duration_seconds += time.perf_counter() - start

    failures: Counter[str] = Counter(report.failures_by_kind)
    for request, result in zip(requests, results):
        if isinstance(result, Committed):
            report.committed += 1
            report.committed_amount += request.amount
        elif isinstance(result, Skipped):
            report.skipped += 1
        else:
            report.failed += 1
            failures[result.kind] += 1
    report.failures_by_kind = dict(failures)

    log.info(
        f"[DRIVER COMPLETE] {strategy.name}",
        extra={
            "strategy": strategy.name,
            "committed": report.committed,
            "skipped": report.skipped,
            "failed": report.failed,
            "duration": round(report.duration_seconds, 3),
        },
    )
    return report


__all__ = ["DriverReport", "build_fan_out_requests", "run_transfers"]
