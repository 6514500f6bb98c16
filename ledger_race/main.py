from __future__ import annotations

import json
import sys
from typing import List, Optional

import typer

from ledger_race.config import get_settings
from ledger_race.domain.errors import StoreError
from ledger_race.infrastructure.db_factory import ISOLATION_LEVELS, validate_isolation
from ledger_race.infrastructure.schema import apply_schema
from ledger_race.orchestrator import ScenarioConfig, comparison_configs, run_scenarios
from ledger_race.reporter import print_results
from ledger_race.store import DRIVER_ERRORS
from ledger_race.strategies import available_strategies
from ledger_race.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Ledger Race CLI: strict vs. relaxed concurrent transfers.")
log = get_logger(__name__)


def _setup_logging() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"pool={settings.db_pool_min_size}..{settings.db_pool_max_size} "
        f"isolation={settings.db_isolation_level} | "
        f"strategy={settings.ledger_strategy} accounts={settings.ledger_accounts} "
        f"initial={settings.ledger_initial_balance} transfers={settings.ledger_transfers} "
        f"amount={settings.ledger_transfer_amount}"
    )


@app.command("init-db")
def init_db(
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
) -> None:
    """
    Create the accounts and transaction tables if missing.
    """
    _setup_logging()
    apply_schema(dsn)
    typer.echo("Schema applied.")


@app.command()
def run(
    strategy: Optional[str] = typer.Option(
        None,
        "--strategy",
        "-s",
        help="Transfer strategy (strict, relaxed, or 'list'). Defaults to LEDGER_STRATEGY.",
    ),
    transfers: Optional[int] = typer.Option(
        None, "--transfers", "-n", help="Number of concurrent transfers."
    ),
    accounts: Optional[int] = typer.Option(
        None, "--accounts", "-a", help="Number of destination accounts."
    ),
    isolation: Optional[str] = typer.Option(
        None, "--isolation", "-i", help=f"Isolation level ({', '.join(ISOLATION_LEVELS)})."
    ),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
    persist: bool = typer.Option(True, "--persist/--no-persist", help="Write results/ JSON."),
    as_json: bool = typer.Option(False, "--json", help="Print results as JSON instead of a table."),
) -> None:
    """
    Run one scenario: reset, seed, fan out transfers, verify.
    """
    if strategy == "list":
        typer.echo("Available strategies: " + ", ".join(available_strategies()))
        return
    if strategy is not None and strategy not in available_strategies():
        raise typer.BadParameter(
            f"Unknown strategy '{strategy}'. Available: {', '.join(available_strategies())}",
            param_hint="--strategy",
        )
    if isolation is not None:
        try:
            isolation = validate_isolation(isolation)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--isolation") from exc

    _setup_logging()
    config = ScenarioConfig(
        strategy=strategy,
        isolation=isolation,
        accounts=accounts,
        transfers=transfers,
        dsn_override=dsn,
    )
    _execute([config], persist=persist, as_json=as_json)


@app.command()
def compare(
    isolation: List[str] = typer.Option(
        ["read_committed"],
        "--isolation",
        "-i",
        help="Isolation level to compare under; repeat for several.",
    ),
    transfers: Optional[int] = typer.Option(None, "--transfers", "-n"),
    accounts: Optional[int] = typer.Option(None, "--accounts", "-a"),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Optional DSN override for Postgres."),
    persist: bool = typer.Option(True, "--persist/--no-persist"),
    as_json: bool = typer.Option(False, "--json"),
) -> None:
    """
    Run strict and relaxed side by side under each isolation level.
    """
    _setup_logging()
    try:
        configs = comparison_configs(
            isolation, ScenarioConfig(accounts=accounts, transfers=transfers, dsn_override=dsn)
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--isolation") from exc
    _execute(configs, persist=persist, as_json=as_json)


def _execute(configs: List[ScenarioConfig], persist: bool, as_json: bool) -> None:
    try:
        results = run_scenarios(configs, persist=persist)
    except (StoreError, *DRIVER_ERRORS) as exc:
        log.error("Scenario aborted by a database fault", extra={"error": str(exc)})
        typer.echo(f"Database error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if as_json:
        typer.echo(json.dumps(results, indent=2))
    else:
        print_results(results)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
