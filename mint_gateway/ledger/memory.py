"""
In-memory ledger for dry runs and tests.

Sparse, index-addressed and idempotent by index. Faults can be injected to
exercise the loader's retry and gap-healing paths:

- fail_next: the next N publishes raise LedgerWriteFailure
- drop_next: the next N publishes "succeed" but never land (silently dropped
  fire-and-forget submission)
- fail_indices / drop_indices: always fail/drop batches touching these indices
- reject_indices: batches touching these indices are refused with a
  permanent LedgerError (never retried)
"""

import logging
from typing import Dict, Iterable, List, Optional, Set

from mint_gateway.errors import LedgerError, LedgerWriteFailure
from mint_gateway.ledger.adapter import LedgerBatch, LedgerEntry, LoadedState

logger = logging.getLogger(__name__)


class InMemoryLedger:
    def __init__(self, capacity: int, entries: Optional[Dict[int, LedgerEntry]] = None):
        self.capacity = capacity
        self.entries: Dict[int, LedgerEntry] = dict(entries or {})
        self.fail_next = 0
        self.drop_next = 0
        self.fail_indices: Set[int] = set()
        self.drop_indices: Set[int] = set()
        self.reject_indices: Set[int] = set()
        self.publish_calls: List[LedgerBatch] = []
        self.overwrites = 0

    def _touches(self, batch: LedgerBatch, indices: Iterable[int]) -> bool:
        return any(batch.start_index <= i < batch.end_index for i in indices)

    async def publish_batch(self, batch: LedgerBatch) -> None:
        self.publish_calls.append(batch)

        if batch.start_index < 0 or batch.end_index > self.capacity:
            raise ValueError(
                f"Batch [{batch.start_index}, {batch.end_index}) outside capacity {self.capacity}"
            )

        if self.reject_indices and self._touches(batch, self.reject_indices):
            raise LedgerError(f"Injected rejection at {batch.start_index}")
        if self.fail_next > 0:
            self.fail_next -= 1
            raise LedgerWriteFailure("Injected failure", start_index=batch.start_index)
        if self.fail_indices and self._touches(batch, self.fail_indices):
            raise LedgerWriteFailure("Injected index failure", start_index=batch.start_index)

        if self.drop_next > 0:
            self.drop_next -= 1
            return
        if self.drop_indices and self._touches(batch, self.drop_indices):
            return

        for offset, entry in enumerate(batch.entries):
            index = batch.start_index + offset
            existing = self.entries.get(index)
            if existing is not None and existing != entry:
                self.overwrites += 1
            self.entries[index] = entry

    async def fetch_loaded_state(self) -> LoadedState:
        populated = {i: e for i, e in self.entries.items() if not e.is_empty}
        return LoadedState(
            items_loaded=len(populated),
            items_available=self.capacity,
            entries=populated,
        )
