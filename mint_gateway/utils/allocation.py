"""
Allocation Gate
===============

Composes challenge validation, proof-of-work, the replay/quota guard and the
shared supply counter into one request lifecycle.

Flow:
1. Verify token integrity and expiry        -> TokenForged / TokenExpired
2. Verify puzzle solution                   -> PoWInvalid
3. Guard check (replay + quota, atomic)     -> ReplayDetected / QuotaExceeded
4. Atomically increment the supply counter. If the new value exceeds public
   supply: compensating decrement, quota released, SoldOut
5. Map the counter value to the n-th non-reserved inventory item

Per-request state machine:

    Requested -> Authenticated -> Authorized -> Allocated -> Assembled
              -> {Finalized | Abandoned}

Finalized / Abandoned happen outside the gateway (external signer). A token
can never re-enter Allocated because its fingerprint is consumed in step 3.

Concurrency: no in-process locks. The only true atomic primitive needed is
the counter increment; everything else is pure computation or an
independent store operation.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from mint_gateway.errors import (
    AssignmentError,
    QuotaExceeded,
    ReplayDetected,
    SoldOut,
)
from mint_gateway.models.inventory import InventoryItem
from mint_gateway.utils.challenge import ChallengeIssuer, token_fingerprint
from mint_gateway.utils.pow import verify_pow
from mint_gateway.utils.rate_limiter import DENY_QUOTA, ReplayQuotaGuard
from mint_gateway.utils.store import AtomicCounter, SharedStore

logger = logging.getLogger(__name__)

SUPPLY_COUNTER_KEY = "mint:counter"


class ClaimState(str, Enum):
    REQUESTED = "requested"
    AUTHENTICATED = "authenticated"  # PoW ok
    AUTHORIZED = "authorized"  # Quota ok
    ALLOCATED = "allocated"  # Index claimed
    ASSEMBLED = "assembled"  # Record built
    FINALIZED = "finalized"
    ABANDONED = "abandoned"

    def can_transition(self, target: "ClaimState") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    ClaimState.REQUESTED: {ClaimState.AUTHENTICATED},
    ClaimState.AUTHENTICATED: {ClaimState.AUTHORIZED},
    ClaimState.AUTHORIZED: {ClaimState.ALLOCATED},
    ClaimState.ALLOCATED: {ClaimState.ASSEMBLED},
    ClaimState.ASSEMBLED: {ClaimState.FINALIZED, ClaimState.ABANDONED},
    ClaimState.FINALIZED: set(),
    ClaimState.ABANDONED: set(),
}


def _advance(current: ClaimState, target: ClaimState, identity: str) -> ClaimState:
    if not current.can_transition(target):
        raise RuntimeError(f"Illegal claim transition {current.value} -> {target.value}")
    logger.debug(f"{identity[:10]}...: {current.value} -> {target.value}")
    return target


@dataclass(frozen=True)
class AllocationClaim:
    """
    An exclusive claim on one inventory index.

    Attributes:
        index: Inventory index of the claimed item
        sequence: 0-based counter slot (n-th public claim)
        identity: Claiming identity
        claimed_at: UTC time of the counter increment
    """

    index: int
    sequence: int
    identity: str
    claimed_at: datetime


@dataclass(frozen=True)
class Allocation:
    claim: AllocationClaim
    item: InventoryItem
    stats: Dict[str, object]
    state: ClaimState = ClaimState.ALLOCATED


class AllocationGate:
    """
    Grants exclusive, non-repeatable claims on the public inventory.

    Usage:
        gate = AllocationGate(issuer, guard, store, inventory, public_supply=9750)
        allocation = await gate.allocate(wallet, token, candidate)
    """

    def __init__(
        self,
        issuer: ChallengeIssuer,
        guard: ReplayQuotaGuard,
        store: SharedStore,
        inventory,
        public_supply: int,
        difficulty: int = 4,
        counter_key: str = SUPPLY_COUNTER_KEY,
    ):
        """
        Args:
            issuer: Validates admission tokens
            guard: Replay and quota guard
            store: Shared store (counter + ownership records)
            inventory: Inventory or any object with ``current() -> Inventory``
            public_supply: Upper bound for the supply counter
            difficulty: Required leading zero hex digits

        Raises:
            ValueError: Inventory has fewer public items than public_supply
        """
        snapshot = inventory.current()
        if snapshot.public_count < public_supply:
            raise ValueError(
                f"Inventory has {snapshot.public_count} public items, "
                f"public supply is {public_supply}"
            )

        self.issuer = issuer
        self.guard = guard
        self.store = store
        self.inventory = inventory
        self.public_supply = public_supply
        self.difficulty = difficulty
        self.counter = AtomicCounter(store, counter_key)

    async def allocate(
        self,
        identity: str,
        token: str,
        candidate: str,
        external_tx_ref: Optional[str] = None,
    ) -> Allocation:
        """
        Run the full admission lifecycle and claim the next index.

        Raises:
            InvalidIdentity, TokenForged, TokenExpired, PoWInvalid,
            ReplayDetected, QuotaExceeded, SoldOut, AssignmentError
        """
        state = ClaimState.REQUESTED
        identity = self.issuer.check_identity(identity)

        # Steps 1-2: stateless checks (cheap, no store access)
        verify_pow(self.issuer, token, identity, candidate, self.difficulty)
        state = _advance(state, ClaimState.AUTHENTICATED, identity)

        # Step 3: replay + quota (atomic)
        decision = await self.guard.check_and_reserve(
            identity, token_fingerprint(token), external_tx_ref
        )
        if not decision.allowed:
            if decision.reason == DENY_QUOTA:
                raise QuotaExceeded(
                    f"Identity has already claimed {decision.count}/{decision.max_count}. "
                    f"Max per identity reached.",
                    **decision.stats(),
                )
            raise ReplayDetected(
                "Transaction reference already used"
                if decision.reason == "tx_reused"
                else "Challenge already used"
            )
        state = _advance(state, ClaimState.AUTHORIZED, identity)

        # Step 4: claim the next slot
        value = await self.counter.increment_and_get()
        if value > self.public_supply:
            await self.counter.decrement()  # Roll back
            await self.guard.release(identity)
            logger.info(f"Sold out: rolled back counter overshoot ({value} > {self.public_supply})")
            raise SoldOut("Sold out!", total=self.public_supply)

        # Step 5: map slot to item (reserved items are skipped)
        sequence = value - 1
        item = self.inventory.current().public_item(sequence)
        if item is None:
            # Not rolled back: decrementing an in-range slot could hand it out twice
            await self.guard.release(identity)
            logger.error(f"No inventory item for public position {sequence}")
            raise AssignmentError("Item assignment error", sequence=sequence)

        claim = AllocationClaim(
            index=item.index,
            sequence=sequence,
            identity=identity,
            claimed_at=datetime.now(timezone.utc),
        )
        await self.store.set_value(f"nft:{item.index}:owner", identity)
        state = _advance(state, ClaimState.ALLOCATED, identity)

        logger.info(
            f"Allocated index {item.index} (slot {value}/{self.public_supply}) "
            f"to {identity[:10]}... [{state.value}]"
        )

        return Allocation(
            claim=claim,
            item=item,
            stats=self._stats(value),
            state=state,
        )

    def _stats(self, claimed: int) -> Dict[str, object]:
        claimed = min(max(claimed, 0), self.public_supply)
        return {
            "claimed": claimed,
            "remaining": self.public_supply - claimed,
            "total": self.public_supply,
            "status": "sold-out" if claimed >= self.public_supply else "minting",
        }

    async def collection_stats(self) -> Dict[str, object]:
        """Live counters. Transient rolled-back overshoot is clamped."""
        return self._stats(await self.counter.get())

    async def owner_of(self, index: int) -> Optional[str]:
        return await self.store.get_value(f"nft:{index}:owner")
