"""
Strategies package for Ledger Race.

Re-exports the transfer interfaces, the two concrete strategies and the name
registry used by the orchestrator and CLI.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from ledger_race.config import IsolationLevel
from ledger_race.strategies.abstract import (
    AbstractTransferStrategy,
    StoreFactory,
    TransferStrategy,
)
from ledger_race.strategies.relaxed import RelaxedTransfer
from ledger_race.strategies.strict import StrictTransfer


def _strategy_factories() -> Dict[str, Callable[[Optional[IsolationLevel]], TransferStrategy]]:
    """Registry of available strategies."""
    return {
        StrictTransfer.name: lambda isolation: StrictTransfer(isolation=isolation),
        RelaxedTransfer.name: lambda isolation: RelaxedTransfer(isolation=isolation),
    }


def available_strategies() -> List[str]:
    """List available strategy names."""
    return sorted(_strategy_factories().keys())


def get_strategy(name: str, isolation: Optional[IsolationLevel] = None) -> TransferStrategy:
    factories = _strategy_factories()
    if name not in factories:
        raise ValueError(f"Unknown strategy '{name}'. Available: {', '.join(factories)}")
    return factories[name](isolation)


__all__ = [
    # Abstracts
    "AbstractTransferStrategy",
    "StoreFactory",
    "TransferStrategy",
    # Concrete strategies
    "RelaxedTransfer",
    "StrictTransfer",
    # Registry
    "available_strategies",
    "get_strategy",
]
