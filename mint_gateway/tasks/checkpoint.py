"""
Loader Progress Checkpoint

Persisted after every confirmed batch so a crashed or exhausted run can
resume. Owned and mutated only by the bulk loader; operators read it.

File format::

    {"lastConfirmedIndex": 1200, "complete": false,
     "ledgerAddress": "...", "updatedAt": "2026-01-01T00:00:00+00:00"}

``lastConfirmedIndex`` is exclusive: every public position below it has been
submitted and confirmed by a successful publish call.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class ProgressCheckpoint:
    last_confirmed_index: int = 0
    complete: bool = False
    ledger_address: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "lastConfirmedIndex": self.last_confirmed_index,
            "complete": self.complete,
            "ledgerAddress": self.ledger_address,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "ProgressCheckpoint":
        # "itemsInserted" is what older progress files called it
        last = data.get("lastConfirmedIndex", data.get("itemsInserted", 0))
        return cls(
            last_confirmed_index=max(int(last or 0), 0),
            complete=bool(data.get("complete", False)),
            ledger_address=data.get("ledgerAddress"),
            updated_at=data.get("updatedAt"),
        )


class CheckpointStore(Protocol):
    def load(self) -> ProgressCheckpoint:
        ...

    def save(self, checkpoint: ProgressCheckpoint) -> None:
        ...


class FileCheckpointStore:
    """JSON checkpoint file, replaced atomically on every save."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> ProgressCheckpoint:
        if not self.path.exists():
            logger.info(f"No checkpoint at {self.path}, starting fresh")
            return ProgressCheckpoint()

        with open(self.path, "r", encoding="utf-8") as f:
            checkpoint = ProgressCheckpoint.from_dict(json.load(f))

        logger.info(
            f"Loaded checkpoint {self.path}: lastConfirmedIndex={checkpoint.last_confirmed_index}, "
            f"complete={checkpoint.complete}"
        )
        return checkpoint

    def save(self, checkpoint: ProgressCheckpoint) -> None:
        checkpoint.updated_at = datetime.now(timezone.utc).isoformat()
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(checkpoint.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
