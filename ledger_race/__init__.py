"""
Ledger Race: concurrent fund transfers against PostgreSQL.

Compares a guarded (strict) transfer protocol with a read-then-write (relaxed)
one and reconciles balances against the ledger after each run.
"""

__version__ = "0.1.0"
