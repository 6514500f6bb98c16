from __future__ import annotations

from typing import Any, Dict, List

from rich import box
from rich.console import Console
from rich.table import Table


def _verdict(res: Dict[str, Any]) -> str:
    reconciliation = res.get("reconciliation", {})
    if reconciliation.get("invariants_hold"):
        return "[bold green]OK[/bold green]"
    if not reconciliation.get("consistent", True):
        return "[bold red]LOST UPDATE[/bold red]"
    return "[bold red]OVERDRAWN[/bold red]"


def print_results(results: List[Dict[str, Any]], console: Console | None = None) -> None:
    """
    Render scenario results as a rich table, one row per scenario.
    """
    console = console or Console()

    if not results:
        console.print("[yellow]No results to display.[/yellow]")
        return

    first = results[0]
    table = Table(
        title="Ledger Race Results",
        box=box.ROUNDED,
        caption=(
            f"{first.get('transfers', 0):,} transfers x {first.get('amount', 0)} "
            f"from a source funded with {first.get('initial_balance', 0):,}"
        ),
    )

    table.add_column("Strategy", style="cyan", no_wrap=True)
    table.add_column("Isolation", style="blue")
    table.add_column("Committed", justify="right", style="magenta")
    table.add_column("Failed", justify="right", style="yellow")
    table.add_column("Source Balance", justify="right", style="green")
    table.add_column("Source Decrease\n[dim](vs committed)[/dim]", justify="right")
    table.add_column("Discrepancy", justify="right", style="red")
    table.add_column("Duration (s)", justify="right", style="green")
    table.add_column("Verdict", justify="center")

    for res in results:
        driver = res.get("driver", {})
        source = res.get("source", {})
        reconciliation = res.get("reconciliation", {})

        decrease = source.get("decrease", 0)
        committed_amount = driver.get("committed_amount", 0)
        marker = "=" if decrease == committed_amount else "!="
        decrease_str = f"{decrease:,} {marker} {committed_amount:,}"

        failures = driver.get("failures_by_kind") or {}
        failed_str = f"{driver.get('failed', 0):,}"
        if failures:
            failed_str += "\n[dim]" + ", ".join(f"{k}={v}" for k, v in sorted(failures.items())) + "[/dim]"

        table.add_row(
            res.get("strategy", "Unknown"),
            res.get("isolation", "?"),
            f"{driver.get('committed', 0):,}",
            failed_str,
            f"{source.get('balance', 0):,}",
            decrease_str,
            f"{reconciliation.get('total_discrepancy', 0):,}",
            f"{driver.get('duration_seconds', 0.0):.2f}",
            _verdict(res),
        )

    console.print(table)


__all__ = ["print_results"]
