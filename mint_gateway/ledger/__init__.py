"""
Ledger adapters for the bulk loader.

- adapter: interface + batch/entry types
- memory: in-memory ledger (dry runs, tests)
- http: JSON ledger endpoint client
"""

from mint_gateway.ledger.adapter import LedgerAdapter, LedgerBatch, LedgerEntry, LoadedState
from mint_gateway.ledger.memory import InMemoryLedger

__all__ = ["LedgerAdapter", "LedgerBatch", "LedgerEntry", "LoadedState", "InMemoryLedger"]
