"""
Tests for the record assembler.
"""

import base64
import hashlib
import json
from datetime import datetime, timezone

import pytest

from conftest import OTHER_WALLET, WALLET
from mint_gateway.utils.allocation import AllocationClaim
from mint_gateway.utils.assembler import RecordAssembler


@pytest.fixture
def claim():
    return AllocationClaim(
        index=2,
        sequence=1,
        identity=WALLET,
        claimed_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def test_assemble_names_index_content_and_payer(config, inventory, claim):
    record = RecordAssembler(config).assemble(claim, inventory.get(2), WALLET)

    assert record.index == 2
    assert record.name == "Neural Norse #3"
    assert record.content_uri == "https://arweave.net/manifest/2.json"
    assert record.owner == WALLET
    assert record.fee_payer == WALLET
    assert record.required_signers == [WALLET]
    assert record.payment.amount == config.MINT_PRICE
    assert record.payment.destination == config.PAYMENT_DESTINATION
    assert record.royalty_basis_points == 500
    assert record.claimed_at == "2026-01-01T00:00:00+00:00"


def test_message_is_self_describing(config, inventory, claim):
    record = RecordAssembler(config).assemble(claim, inventory.get(2), WALLET)

    raw = base64.b64decode(record.message)
    body = json.loads(raw)

    assert hashlib.sha256(raw).hexdigest() == record.message_digest
    assert body["index"] == 2
    assert body["feePayer"] == WALLET
    assert body["contentUri"] == record.content_uri
    assert body["ledgerAddress"] == config.LEDGER_ADDRESS


def test_assemble_is_deterministic(config, inventory, claim):
    assembler = RecordAssembler(config)
    first = assembler.assemble(claim, inventory.get(2), WALLET)
    second = assembler.assemble(claim, inventory.get(2), WALLET)
    assert first == second


def test_wire_format_is_camel_case(config, inventory, claim):
    record = RecordAssembler(config).assemble(claim, inventory.get(2), WALLET)
    dumped = record.model_dump(by_alias=True)

    assert "feePayer" in dumped
    assert "contentUri" in dumped
    assert "messageDigest" in dumped


def test_mismatched_inputs_rejected(config, inventory, claim):
    assembler = RecordAssembler(config)

    with pytest.raises(ValueError):
        assembler.assemble(claim, inventory.get(3), WALLET)
    with pytest.raises(ValueError):
        assembler.assemble(claim, inventory.get(2), OTHER_WALLET)
