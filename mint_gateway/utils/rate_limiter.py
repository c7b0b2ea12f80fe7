"""
Replay & Quota Guard
====================

Prevents a single admission from producing more than one claim and caps the
number of claims per identity:
- Each admission token can be consumed once (fingerprint kept for the token
  lifetime, after which the token is expired anyway)
- Each external transaction reference (payment / signature) can be used once
- MAX_PER_IDENTITY claims per identity, ever

Design:
- All state lives in the shared store, so any number of gateway instances
  enforce the same limits
- Check-and-increment is a single atomic store operation (no read-then-write),
  so concurrent requests from one identity cannot bypass the quota
- Checked AFTER the cheap stateless checks (token tag, PoW) so forged
  requests never touch the store
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from mint_gateway.utils.store import SharedStore

logger = logging.getLogger(__name__)

# Guard decisions
ALLOW = "ok"
DENY_REPLAY = "replay_detected"
DENY_TX_REUSED = "tx_reused"
DENY_QUOTA = "quota_exceeded"


@dataclass(frozen=True)
class GuardDecision:
    """Allow or Deny(reason) with the identity's claim count."""

    allowed: bool
    reason: str
    count: int
    max_count: int

    @property
    def remaining(self) -> int:
        return max(self.max_count - self.count, 0)

    def stats(self) -> Dict[str, int]:
        return {"claimed": self.count, "max": self.max_count, "remaining": self.remaining}


def identity_count_key(identity: str) -> str:
    return f"wallet:{identity}:count"


def fingerprint_key(fingerprint: str) -> str:
    return f"challenge:{fingerprint}"


def tx_ref_key(tx_ref: str) -> str:
    return f"tx:{tx_ref}"


class ReplayQuotaGuard:
    """
    Consults the shared store to reject reused tokens / transaction
    references and to cap claims per identity.
    """

    def __init__(self, store: SharedStore, max_per_identity: int, token_ttl_seconds: int):
        self.store = store
        self.max_per_identity = max_per_identity
        self.token_ttl_seconds = token_ttl_seconds

    async def check_and_reserve(
        self,
        identity: str,
        token_fingerprint: str,
        external_tx_ref: Optional[str] = None,
    ) -> GuardDecision:
        """
        Atomically check replay/quota and reserve one claim for ``identity``.

        On Allow, the token fingerprint (and tx reference) are marked consumed
        and the identity count has been incremented. On Deny nothing changes.

        Args:
            identity: Claiming identity
            token_fingerprint: Fingerprint of the admission token
            external_tx_ref: Optional payment/signature reference

        Returns:
            GuardDecision
        """
        result = await self.store.reserve_admission(
            fingerprint_key=fingerprint_key(token_fingerprint),
            count_key=identity_count_key(identity),
            tx_key=tx_ref_key(external_tx_ref) if external_tx_ref else None,
            identity=identity,
            ttl_seconds=self.token_ttl_seconds,
            max_count=self.max_per_identity,
        )

        decision = GuardDecision(
            allowed=result.allowed,
            reason=result.reason,
            count=result.count,
            max_count=self.max_per_identity,
        )

        if not decision.allowed:
            logger.info(
                f"Guard denied {identity[:10]}...: {decision.reason} "
                f"({decision.count}/{self.max_per_identity})"
            )

        return decision

    async def release(self, identity: str) -> int:
        """
        Give back one reserved claim (e.g. the gate sold out after reserving).

        The token fingerprint stays consumed: a token never re-enters
        allocation.
        """
        count = await self.store.release_quota(identity_count_key(identity))
        logger.debug(f"Released quota for {identity[:10]}... (now {count})")
        return count

    async def usage(self, identity: str) -> GuardDecision:
        count = await self.store.get_int(identity_count_key(identity))
        return GuardDecision(
            allowed=count < self.max_per_identity,
            reason=ALLOW if count < self.max_per_identity else DENY_QUOTA,
            count=count,
            max_count=self.max_per_identity,
        )
