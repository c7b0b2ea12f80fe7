"""
Ledger Adapter Interface
========================

The loader is a client of an external, append-at-index ledger. Any ledger
program version is supported by implementing two calls:

- publish_batch(batch): write ``batch.entries`` at ``batch.start_index``.
  Re-sending identical content at identical indices must not change state.
- fetch_loaded_state(): total loaded count plus per-index content
  (absent for unfilled slots).

Entries are compacted: the collection-wide name and URI prefixes are stripped
before writing, so each slot only stores the varying suffix.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Protocol, Sequence, Set

from mint_gateway.models.inventory import InventoryItem


@dataclass(frozen=True)
class LedgerEntry:
    """Content of one ledger slot."""

    name: str
    uri: str

    @classmethod
    def from_item(cls, item: InventoryItem, name_prefix: str = "", uri_prefix: str = "") -> "LedgerEntry":
        name = item.name
        if name_prefix and name.startswith(name_prefix):
            name = name[len(name_prefix):]
        uri = item.content_uri
        if uri_prefix and uri.startswith(uri_prefix):
            uri = uri[len(uri_prefix):]
        return cls(name=name, uri=uri)

    @property
    def is_empty(self) -> bool:
        return not self.uri or not self.uri.strip()

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "uri": self.uri}


@dataclass(frozen=True)
class LedgerBatch:
    """Unit of publication: consecutive entries starting at ``start_index``."""

    start_index: int
    entries: Sequence[LedgerEntry]

    @property
    def end_index(self) -> int:
        """Exclusive end."""
        return self.start_index + len(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass
class LoadedState:
    """Ledger state as reported by the ledger itself."""

    items_loaded: int
    items_available: int
    entries: Dict[int, LedgerEntry] = field(default_factory=dict)

    @property
    def populated(self) -> Set[int]:
        return {index for index, entry in self.entries.items() if not entry.is_empty}


class LedgerAdapter(Protocol):
    async def publish_batch(self, batch: LedgerBatch) -> None:
        """
        Raises:
            LedgerWriteFailure: transient failure, safe to retry
            LedgerError: permanent failure
        """
        ...

    async def fetch_loaded_state(self) -> LoadedState:
        ...


def group_runs(indices: Sequence[int], max_size: int) -> List[List[int]]:
    """Group sorted indices into contiguous runs of at most ``max_size``."""
    runs: List[List[int]] = []
    for index in sorted(indices):
        if runs and index == runs[-1][-1] + 1 and len(runs[-1]) < max_size:
            runs[-1].append(index)
        else:
            runs.append([index])
    return runs
