"""
Tests for the loader progress checkpoint.
"""

import json

from mint_gateway.tasks.checkpoint import FileCheckpointStore, ProgressCheckpoint


def test_missing_file_starts_fresh(tmp_path):
    checkpoint = FileCheckpointStore(tmp_path / "progress.json").load()
    assert checkpoint.last_confirmed_index == 0
    assert not checkpoint.complete


def test_save_and_load(tmp_path):
    path = tmp_path / "nested" / "progress.json"
    store = FileCheckpointStore(path)

    store.save(ProgressCheckpoint(last_confirmed_index=120, ledger_address="L1"))
    loaded = store.load()

    assert loaded.last_confirmed_index == 120
    assert loaded.ledger_address == "L1"
    assert loaded.updated_at is not None
    assert json.loads(path.read_text())["lastConfirmedIndex"] == 120
    # No temp files left behind
    assert [p.name for p in path.parent.iterdir()] == ["progress.json"]


def test_legacy_items_inserted_field():
    checkpoint = ProgressCheckpoint.from_dict({"itemsInserted": 40, "complete": True})
    assert checkpoint.last_confirmed_index == 40
    assert checkpoint.complete


def test_negative_index_clamped():
    assert ProgressCheckpoint.from_dict({"lastConfirmedIndex": -5}).last_confirmed_index == 0
