"""
Keyed integrity tags for stateless challenges.

The issuer only needs two operations, so any MAC or signature scheme that can
produce a printable tag over bytes can be swapped in for the default
HMAC-SHA256 implementation.
"""

import hashlib
import hmac
from typing import Protocol


class IntegrityTagger(Protocol):
    """Produces and checks a keyed tag over a byte string."""

    def tag(self, data: bytes) -> str:
        ...

    def verify(self, data: bytes, tag: str) -> bool:
        ...


class HmacTagger:
    """HMAC tagger (hex digest). Comparison is constant-time."""

    def __init__(self, secret: str, digest: str = "sha256"):
        if not secret:
            raise ValueError("HMAC secret must not be empty")
        self._key = secret.encode("utf-8")
        self._digest = getattr(hashlib, digest)

    def tag(self, data: bytes) -> str:
        return hmac.new(self._key, data, self._digest).hexdigest()

    def verify(self, data: bytes, tag: str) -> bool:
        try:
            return hmac.compare_digest(self.tag(data), tag)
        except TypeError:
            # Non-ASCII tag text
            return False
