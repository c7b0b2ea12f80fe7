"""
Tests for the Allocation Gate: full admission lifecycle, supply bound,
rollback on overshoot and concurrent claims.
"""

import asyncio

import pytest

from conftest import OTHER_WALLET, WALLET, make_records, solve
from mint_gateway.errors import (
    AssignmentError,
    PoWInvalid,
    QuotaExceeded,
    ReplayDetected,
    SoldOut,
    TokenExpired,
)
from mint_gateway.models.inventory import Inventory
from mint_gateway.utils.allocation import (
    SUPPLY_COUNTER_KEY,
    AllocationGate,
    ClaimState,
    _advance,
)
from mint_gateway.utils.pow import pow_digest, verify_solution
from mint_gateway.utils.rate_limiter import ReplayQuotaGuard, identity_count_key


def make_gate(issuer, store, inventory, public_supply, max_per_identity=3, difficulty=2):
    guard = ReplayQuotaGuard(store, max_per_identity, issuer.ttl_seconds)
    return AllocationGate(issuer, guard, store, inventory, public_supply, difficulty=difficulty)


@pytest.fixture
def gate(issuer, store, inventory):
    return make_gate(issuer, store, inventory, public_supply=4)


@pytest.mark.asyncio
async def test_allocate_claims_first_public_item(gate, issuer, store):
    token, candidate = solve(issuer, WALLET, 2)

    allocation = await gate.allocate(WALLET, token, candidate)

    assert allocation.claim.index == 0
    assert allocation.claim.sequence == 0
    assert allocation.claim.identity == WALLET
    assert allocation.item.name == "Neural Norse #1"
    assert allocation.state == ClaimState.ALLOCATED
    assert allocation.stats == {"claimed": 1, "remaining": 3, "total": 4, "status": "minting"}
    assert await gate.owner_of(0) == WALLET


@pytest.mark.asyncio
async def test_reserved_indices_are_skipped(gate, issuer):
    indices = []
    for _ in range(3):
        token, candidate = solve(issuer, WALLET, 2)
        indices.append((await gate.allocate(WALLET, token, candidate)).claim.index)

    # 1 and 4 are reserved
    assert indices == [0, 2, 3]


@pytest.mark.asyncio
async def test_replayed_token_rejected(gate, issuer, store):
    token, candidate = solve(issuer, WALLET, 2)
    await gate.allocate(WALLET, token, candidate)

    with pytest.raises(ReplayDetected):
        await gate.allocate(WALLET, token, candidate)

    assert await store.get_int(SUPPLY_COUNTER_KEY) == 1


@pytest.mark.asyncio
async def test_short_identity_end_to_end(issuer, store, inventory):
    gate = make_gate(issuer, store, inventory, public_supply=4, difficulty=4)
    token, candidate = solve(issuer, "abc123", 4)

    assert pow_digest(token, "abc123", candidate).startswith("0000")

    allocation = await gate.allocate("abc123", token, candidate)
    assert allocation.claim.index == 0

    with pytest.raises(ReplayDetected):
        await gate.allocate("abc123", token, candidate)

    assert await store.get_int(SUPPLY_COUNTER_KEY) == 1


@pytest.mark.asyncio
async def test_reused_tx_ref_rejected(gate, issuer):
    token, candidate = solve(issuer, WALLET, 2)
    await gate.allocate(WALLET, token, candidate, external_tx_ref="sig-1")

    token, candidate = solve(issuer, WALLET, 2)
    with pytest.raises(ReplayDetected) as exc_info:
        await gate.allocate(WALLET, token, candidate, external_tx_ref="sig-1")
    assert "Transaction" in exc_info.value.message


@pytest.mark.asyncio
async def test_quota_exceeded(issuer, store, inventory):
    gate = make_gate(issuer, store, inventory, public_supply=4, max_per_identity=1)

    token, candidate = solve(issuer, WALLET, 2)
    await gate.allocate(WALLET, token, candidate)

    token, candidate = solve(issuer, WALLET, 2)
    with pytest.raises(QuotaExceeded) as exc_info:
        await gate.allocate(WALLET, token, candidate)

    assert exc_info.value.http_status == 429
    assert exc_info.value.context == {"claimed": 1, "max": 1, "remaining": 0}
    assert await store.get_int(SUPPLY_COUNTER_KEY) == 1


@pytest.mark.asyncio
async def test_bad_pow_touches_no_state(gate, issuer, store):
    token = issuer.issue(WALLET).encoded
    candidate = next(
        str(n) for n in range(10_000)
        if not verify_solution(token, WALLET, str(n), 2)
    )

    with pytest.raises(PoWInvalid):
        await gate.allocate(WALLET, token, candidate)

    values, _ = store.snapshot()
    assert values == {}


@pytest.mark.asyncio
async def test_expired_token_rejected(gate, issuer, clock):
    token, candidate = solve(issuer, WALLET, 2)
    clock.advance(301)

    with pytest.raises(TokenExpired):
        await gate.allocate(WALLET, token, candidate)


@pytest.mark.asyncio
async def test_sold_out_rolls_back_counter(issuer, store):
    inventory = Inventory.from_records(make_records(3))
    gate = make_gate(issuer, store, inventory, public_supply=3)

    for identity in ("w1", "w2", "w3"):
        token, candidate = solve(issuer, identity, 2)
        await gate.allocate(identity, token, candidate)

    token, candidate = solve(issuer, "w4", 2)
    with pytest.raises(SoldOut) as exc_info:
        await gate.allocate("w4", token, candidate)

    assert exc_info.value.http_status == 410
    assert await store.get_int(SUPPLY_COUNTER_KEY) == 3
    # Quota refunded
    assert await store.get_int(identity_count_key("w4")) == 0
    assert await gate.collection_stats() == {
        "claimed": 3, "remaining": 0, "total": 3, "status": "sold-out"
    }


@pytest.mark.asyncio
async def test_concurrent_allocations_are_unique_and_bounded(issuer, store):
    """Five concurrent requests against supply 3: indices 0-2 once each, two SoldOut."""
    inventory = Inventory.from_records(make_records(3))
    gate = make_gate(issuer, store, inventory, public_supply=3)

    solved = [(f"wallet-{i}",) + solve(issuer, f"wallet-{i}", 2) for i in range(5)]
    results = await asyncio.gather(
        *[gate.allocate(identity, token, candidate) for identity, token, candidate in solved],
        return_exceptions=True,
    )

    claimed = sorted(r.claim.index for r in results if not isinstance(r, Exception))
    errors = [r for r in results if isinstance(r, Exception)]

    assert claimed == [0, 1, 2]
    assert len(errors) == 2
    assert all(isinstance(e, SoldOut) for e in errors)
    assert await store.get_int(SUPPLY_COUNTER_KEY) == 3


@pytest.mark.asyncio
async def test_assignment_error_when_inventory_shrinks(issuer, store):
    class ShrinkingSource:
        def __init__(self):
            self.snapshots = [Inventory.from_records(make_records(2)), Inventory.from_records(make_records(1))]

        def current(self):
            return self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]

    gate = make_gate(issuer, store, ShrinkingSource(), public_supply=2)

    token, candidate = solve(issuer, WALLET, 2)
    await gate.allocate(WALLET, token, candidate)

    token, candidate = solve(issuer, OTHER_WALLET, 2)
    with pytest.raises(AssignmentError):
        await gate.allocate(OTHER_WALLET, token, candidate)

    # Counter is not rolled back, quota is
    assert await store.get_int(SUPPLY_COUNTER_KEY) == 2
    assert await store.get_int(identity_count_key(OTHER_WALLET)) == 0


def test_gate_rejects_short_inventory(issuer, store, inventory):
    with pytest.raises(ValueError):
        make_gate(issuer, store, inventory, public_supply=5)


def test_claim_state_transitions():
    assert ClaimState.REQUESTED.can_transition(ClaimState.AUTHENTICATED)
    assert ClaimState.ASSEMBLED.can_transition(ClaimState.ABANDONED)
    assert not ClaimState.ALLOCATED.can_transition(ClaimState.ALLOCATED)

    with pytest.raises(RuntimeError):
        _advance(ClaimState.FINALIZED, ClaimState.ALLOCATED, WALLET)
