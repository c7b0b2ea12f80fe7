"""
Inventory Models
================

Read-only view of the numbered collection produced by the (external)
generation phase. The gate resolves claimed indices against it; the loader
publishes it into the ledger.

Source file format (``metadata-index.json``)::

    [
      {"index": 0, "name": "Neural Norse #1",
       "metadataUri": "https://arweave.net/<manifest>/0.json",
       "reserved": false},
      ...
    ]

Reload policy: an ``Inventory`` is an immutable snapshot. A
``FileInventorySource`` hands out the current snapshot and swaps in a new one
only when the file's modification time changes, checked at most every
``check_interval`` seconds. Nothing is cached in module globals.
"""

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class InventoryItem(BaseModel):
    """One numbered item. Immutable once published to the ledger."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    index: int = Field(..., ge=0)
    name: str = Field(..., alias="displayName")
    content_uri: str = Field(..., alias="contentUri")
    reserved: bool = False
    published: bool = False

    @classmethod
    def from_record(cls, record: Dict) -> "InventoryItem":
        """Build from a metadata-index record (accepts the generator's field names)."""
        return cls(
            index=record["index"],
            displayName=record.get("displayName", record.get("name")),
            contentUri=record.get("contentUri", record.get("metadataUri")),
            reserved=bool(record.get("reserved", False)),
            published=bool(record.get("published", False)),
        )


class Inventory:
    """
    Immutable snapshot of the collection.

    ``public_items`` are the non-reserved items in index order; public
    position ``n`` is what the n-th claim and the n-th ledger slot refer to.
    """

    def __init__(self, items: Iterable[InventoryItem], version: str = "static"):
        ordered = tuple(sorted(items, key=lambda item: item.index))

        seen = set()
        for item in ordered:
            if item.index in seen:
                raise ValueError(f"Duplicate inventory index {item.index}")
            if not item.content_uri:
                raise ValueError(f"Inventory item {item.index} has no content URI")
            seen.add(item.index)

        self._items: Tuple[InventoryItem, ...] = ordered
        self._by_index: Dict[int, InventoryItem] = {item.index: item for item in ordered}
        self._public: Tuple[InventoryItem, ...] = tuple(item for item in ordered if not item.reserved)
        self.version = version

    @classmethod
    def from_records(cls, records: List[Dict], version: str = "static") -> "Inventory":
        return cls((InventoryItem.from_record(record) for record in records), version=version)

    @classmethod
    def from_json(cls, path) -> "Inventory":
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            records = json.load(f)
        if isinstance(records, dict):
            records = records.get("items", [])
        inventory = cls.from_records(records, version=f"{path.name}@{os.stat(path).st_mtime_ns}")
        logger.info(
            f"Loaded inventory {path}: {len(inventory)} items "
            f"({inventory.public_count} public, {inventory.reserved_count} reserved)"
        )
        return inventory

    def current(self) -> "Inventory":
        """Static reload policy: a bare snapshot never changes."""
        return self

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    @property
    def items(self) -> Tuple[InventoryItem, ...]:
        return self._items

    @property
    def public_items(self) -> Tuple[InventoryItem, ...]:
        return self._public

    @property
    def public_count(self) -> int:
        return len(self._public)

    @property
    def reserved_count(self) -> int:
        return len(self._items) - len(self._public)

    def get(self, index: int) -> Optional[InventoryItem]:
        return self._by_index.get(index)

    def public_item(self, position: int) -> Optional[InventoryItem]:
        """The item at 0-based public position, skipping reserved items."""
        if 0 <= position < len(self._public):
            return self._public[position]
        return None


class FileInventorySource:
    """
    Hands out the current Inventory snapshot for a JSON file.

    Reloads when the file changes on disk. A failed reload keeps the previous
    snapshot and logs the error.
    """

    def __init__(self, path, check_interval: float = 30.0, clock=time.monotonic):
        self.path = Path(path)
        self.check_interval = check_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot = Inventory.from_json(self.path)
        self._mtime = os.stat(self.path).st_mtime_ns
        self._checked_at = self._clock()

    def current(self) -> Inventory:
        with self._lock:
            now = self._clock()
            if now - self._checked_at >= self.check_interval:
                self._checked_at = now
                self._reload_if_changed()
            return self._snapshot

    def _reload_if_changed(self) -> None:
        try:
            mtime = os.stat(self.path).st_mtime_ns
            if mtime == self._mtime:
                return
            self._snapshot = Inventory.from_json(self.path)
            self._mtime = mtime
        except (OSError, ValueError) as e:
            logger.error(f"Inventory reload failed, keeping previous snapshot: {e}")
