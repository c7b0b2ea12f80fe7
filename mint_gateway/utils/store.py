"""
Shared Store Adapters
=====================

Every gate invariant (replay protection, quota, supply bound) is enforced
through atomic operations against a shared external store, never through
process-local state. Two adapters implement the same contract:

- RedisStore: production, ``redis.asyncio``; compound checks run as one Lua
  script so they are atomic relative to concurrent callers
- MemoryStore: single-process store for development and tests

Key namespace:
    mint:counter            supply counter (claims so far)
    wallet:<identity>:count per-identity claim count
    challenge:<fingerprint> consumed admission tokens (TTL = token lifetime)
    tx:<reference>          consumed external transaction references
    nft:<index>:owner       identity holding the claim on an index
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationResult:
    """Outcome of an atomic admission reservation."""

    allowed: bool
    reason: str  # "ok" | "replay_detected" | "tx_reused" | "quota_exceeded"
    count: int  # Per-identity count after the call


class SharedStore(Protocol):
    """Operations the gate needs from the shared store."""

    async def incr(self, key: str) -> int:
        ...

    async def decr(self, key: str) -> int:
        ...

    async def get_int(self, key: str) -> int:
        ...

    async def set_value(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ...

    async def get_value(self, key: str) -> Optional[str]:
        ...

    async def reserve_admission(
        self,
        fingerprint_key: str,
        count_key: str,
        tx_key: Optional[str],
        identity: str,
        ttl_seconds: int,
        max_count: int,
    ) -> ReservationResult:
        ...

    async def release_quota(self, count_key: str) -> int:
        ...


class AtomicCounter:
    """
    Monotonic counter backed by a store with a true atomic increment.

    Usage:
        counter = AtomicCounter(store, "mint:counter")
        value = await counter.increment_and_get()
    """

    def __init__(self, store: SharedStore, key: str):
        self.store = store
        self.key = key

    async def increment_and_get(self) -> int:
        return await self.store.incr(self.key)

    async def decrement(self) -> int:
        return await self.store.decr(self.key)

    async def get(self) -> int:
        return await self.store.get_int(self.key)


# ============================================================
# Redis
# ============================================================

# KEYS: fingerprint, count, tx (tx == fingerprint when absent)
# ARGV: ttl, max_count, identity, has_tx
_RESERVE_SCRIPT = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return {0, 'replay_detected', tonumber(redis.call('GET', KEYS[2]) or '0')}
end
if ARGV[4] == '1' and redis.call('EXISTS', KEYS[3]) == 1 then
    return {0, 'tx_reused', tonumber(redis.call('GET', KEYS[2]) or '0')}
end
local count = tonumber(redis.call('GET', KEYS[2]) or '0')
if count >= tonumber(ARGV[2]) then
    return {0, 'quota_exceeded', count}
end
redis.call('SET', KEYS[1], ARGV[3], 'EX', tonumber(ARGV[1]))
if ARGV[4] == '1' then
    redis.call('SET', KEYS[3], ARGV[3])
end
count = redis.call('INCR', KEYS[2])
return {1, 'ok', count}
"""

# Never decrements below zero
_RELEASE_SCRIPT = """
local count = tonumber(redis.call('GET', KEYS[1]) or '0')
if count > 0 then
    return redis.call('DECR', KEYS[1])
end
return 0
"""


def _to_str(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class RedisStore:
    """Async Redis store. Works with or without ``decode_responses``."""

    def __init__(self, client, key_prefix: str = ""):
        self.redis = client
        self.key_prefix = key_prefix
        self._reserve = client.register_script(_RESERVE_SCRIPT)
        self._release = client.register_script(_RELEASE_SCRIPT)

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "") -> "RedisStore":
        import redis.asyncio as redis

        client = redis.Redis.from_url(
            url,
            retry_on_timeout=True,
            socket_keepalive=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client, key_prefix=key_prefix)

    def _k(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def incr(self, key: str) -> int:
        return int(await self.redis.incr(self._k(key)))

    async def decr(self, key: str) -> int:
        return int(await self.redis.decr(self._k(key)))

    async def get_int(self, key: str) -> int:
        value = await self.redis.get(self._k(key))
        return int(value) if value is not None else 0

    async def set_value(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await self.redis.set(self._k(key), value, ex=ttl_seconds)

    async def get_value(self, key: str) -> Optional[str]:
        value = await self.redis.get(self._k(key))
        return _to_str(value) if value is not None else None

    async def reserve_admission(
        self,
        fingerprint_key: str,
        count_key: str,
        tx_key: Optional[str],
        identity: str,
        ttl_seconds: int,
        max_count: int,
    ) -> ReservationResult:
        keys = [
            self._k(fingerprint_key),
            self._k(count_key),
            self._k(tx_key) if tx_key else self._k(fingerprint_key),
        ]
        args = [ttl_seconds, max_count, identity, "1" if tx_key else "0"]
        allowed, reason, count = await self._reserve(keys=keys, args=args)
        return ReservationResult(allowed=bool(int(allowed)), reason=_to_str(reason), count=int(count))

    async def release_quota(self, count_key: str) -> int:
        return int(await self._release(keys=[self._k(count_key)], args=[]))

    async def close(self) -> None:
        await self.redis.aclose()


# ============================================================
# In-memory
# ============================================================

class MemoryStore:
    """
    Process-local store with the same semantics as RedisStore.

    Only valid for a single gateway process; use RedisStore for anything
    running more than one instance.
    """

    def __init__(self, clock=time.monotonic):
        self._values: Dict[str, str] = {}
        self._expiry: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _live(self, key: str) -> Optional[str]:
        expires = self._expiry.get(key)
        if expires is not None and self._clock() >= expires:
            self._values.pop(key, None)
            self._expiry.pop(key, None)
        return self._values.get(key)

    def _add(self, key: str, delta: int) -> int:
        value = int(self._live(key) or 0) + delta
        self._values[key] = str(value)
        return value

    async def incr(self, key: str) -> int:
        with self._lock:
            return self._add(key, 1)

    async def decr(self, key: str) -> int:
        with self._lock:
            return self._add(key, -1)

    async def get_int(self, key: str) -> int:
        with self._lock:
            return int(self._live(key) or 0)

    async def set_value(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        with self._lock:
            self._values[key] = value
            if ttl_seconds:
                self._expiry[key] = self._clock() + ttl_seconds
            else:
                self._expiry.pop(key, None)

    async def get_value(self, key: str) -> Optional[str]:
        with self._lock:
            return self._live(key)

    async def reserve_admission(
        self,
        fingerprint_key: str,
        count_key: str,
        tx_key: Optional[str],
        identity: str,
        ttl_seconds: int,
        max_count: int,
    ) -> ReservationResult:
        with self._lock:
            count = int(self._live(count_key) or 0)
            if self._live(fingerprint_key) is not None:
                return ReservationResult(False, "replay_detected", count)
            if tx_key and self._live(tx_key) is not None:
                return ReservationResult(False, "tx_reused", count)
            if count >= max_count:
                return ReservationResult(False, "quota_exceeded", count)

            self._values[fingerprint_key] = identity
            self._expiry[fingerprint_key] = self._clock() + ttl_seconds
            if tx_key:
                self._values[tx_key] = identity
            return ReservationResult(True, "ok", self._add(count_key, 1))

    async def release_quota(self, count_key: str) -> int:
        with self._lock:
            if int(self._live(count_key) or 0) > 0:
                return self._add(count_key, -1)
            return 0

    async def close(self) -> None:
        return None

    def snapshot(self) -> Tuple[Dict[str, str], Dict[str, float]]:
        """Copy of raw state (debugging/tests)."""
        with self._lock:
            return dict(self._values), dict(self._expiry)
