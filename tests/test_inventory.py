"""
Tests for inventory snapshots and the file-backed source.
"""

import json
import os

import pytest

from conftest import FakeClock, make_records
from mint_gateway.models.inventory import FileInventorySource, Inventory, InventoryItem


def test_public_positions_skip_reserved(inventory):
    assert len(inventory) == 6
    assert inventory.public_count == 4
    assert inventory.reserved_count == 2
    assert [item.index for item in inventory.public_items] == [0, 2, 3, 5]
    assert inventory.public_item(1).index == 2
    assert inventory.public_item(4) is None
    assert inventory.public_item(-1) is None


def test_items_are_sorted_and_immutable():
    inventory = Inventory.from_records(list(reversed(make_records(3))))
    assert [item.index for item in inventory] == [0, 1, 2]

    with pytest.raises(Exception):
        inventory.get(0).name = "changed"


def test_record_field_names():
    generator = InventoryItem.from_record({"index": 0, "name": "A", "metadataUri": "u"})
    wire = InventoryItem.from_record({"index": 0, "displayName": "A", "contentUri": "u"})
    assert generator == wire


@pytest.mark.parametrize(
    "records",
    [
        [{"index": 0, "name": "A", "metadataUri": "u"}, {"index": 0, "name": "B", "metadataUri": "v"}],
        [{"index": 0, "name": "A", "metadataUri": ""}],
    ],
)
def test_invalid_inventories_rejected(records):
    with pytest.raises(ValueError):
        Inventory.from_records(records)


def test_from_json_accepts_list_and_object(tmp_path):
    as_list = tmp_path / "list.json"
    as_list.write_text(json.dumps(make_records(3)))
    as_object = tmp_path / "object.json"
    as_object.write_text(json.dumps({"items": make_records(3)}))

    assert len(Inventory.from_json(as_list)) == 3
    assert len(Inventory.from_json(as_object)) == 3


def test_file_source_reloads_on_change(tmp_path):
    path = tmp_path / "metadata-index.json"
    path.write_text(json.dumps(make_records(2)))
    clock = FakeClock(0.0)
    source = FileInventorySource(path, check_interval=30, clock=clock)

    assert len(source.current()) == 2

    path.write_text(json.dumps(make_records(5)))
    stat = os.stat(path)
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

    assert len(source.current()) == 2  # Not checked yet
    clock.advance(30)
    assert len(source.current()) == 5


def test_file_source_keeps_snapshot_on_bad_reload(tmp_path):
    path = tmp_path / "metadata-index.json"
    path.write_text(json.dumps(make_records(2)))
    clock = FakeClock(0.0)
    source = FileInventorySource(path, check_interval=1, clock=clock)

    path.write_text("{not json")
    stat = os.stat(path)
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
    clock.advance(1)

    assert len(source.current()) == 2
