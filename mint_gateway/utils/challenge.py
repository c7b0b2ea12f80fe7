"""
Stateless Admission Challenges
==============================

Issues admission tokens bound to a requester identity and an expiry.

Wire format::

    <tag>.<base64url(payload)>

    payload = {"expiresAt": int, "identity": str, "issuedAt": int, "salt": hex}

The tag is a keyed integrity tag (HMAC-SHA256 by default) over the base64url
payload. Nothing is stored server-side, so issuance is O(1) and any number of
gateway instances can validate tokens issued by any other instance sharing the
secret. Changing any byte of the payload or the tag invalidates the token.

Replay protection is NOT done here (stateless); the guard records token
fingerprints in the shared store.
"""

import base64
import binascii
import hashlib
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Optional

from mint_gateway.errors import InvalidIdentity, TokenExpired, TokenForged
from mint_gateway.utils.integrity import IntegrityTagger

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300  # 5 minutes
SALT_BYTES = 16


@dataclass(frozen=True)
class AdmissionToken:
    """
    Decoded admission token.

    Attributes:
        issued_at: Unix seconds at issuance
        expires_at: Unix seconds after which the token is rejected
        identity: Identity the token is bound to
        salt: Random hex salt (makes every token unique)
        tag: Integrity tag over the encoded payload
        encoded: The wire form handed to the caller
    """

    issued_at: int
    expires_at: int
    identity: str
    salt: str
    tag: str
    encoded: str

    @property
    def ttl(self) -> int:
        return self.expires_at - self.issued_at


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def token_fingerprint(token: str) -> str:
    """SHA256 of the wire token, used as the replay-protection key."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def validate_identity(identity: Optional[str], min_length: int = 32, max_length: int = 44) -> str:
    """
    Check identity length bounds.

    Args:
        identity: Caller-supplied address/account identifier
        min_length: Minimum accepted length (inclusive)
        max_length: Maximum accepted length (inclusive)

    Returns:
        The identity, unchanged

    Raises:
        InvalidIdentity: Missing or outside the length bounds
    """
    if not isinstance(identity, str) or not identity:
        raise InvalidIdentity("Identity is required")
    if not min_length <= len(identity) <= max_length:
        raise InvalidIdentity(
            f"Identity length must be between {min_length} and {max_length} characters",
            length=len(identity),
        )
    return identity


class ChallengeIssuer:
    """
    Issues and validates stateless admission tokens.

    Usage:
        issuer = ChallengeIssuer(HmacTagger(secret), ttl_seconds=300)
        token = issuer.issue(wallet)
        ...
        decoded = issuer.validate(token.encoded, wallet)
    """

    def __init__(
        self,
        tagger: IntegrityTagger,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        min_identity_length: int = 32,
        max_identity_length: int = 44,
        clock: Callable[[], float] = time.time,
    ):
        self.tagger = tagger
        self.ttl_seconds = ttl_seconds
        self.min_identity_length = min_identity_length
        self.max_identity_length = max_identity_length
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def check_identity(self, identity: Optional[str]) -> str:
        return validate_identity(identity, self.min_identity_length, self.max_identity_length)

    def issue(self, identity: str) -> AdmissionToken:
        """
        Issue a token for ``identity``.

        Raises:
            InvalidIdentity: Identity fails the length bounds
        """
        identity = self.check_identity(identity)

        issued_at = self._now()
        payload = {
            "expiresAt": issued_at + self.ttl_seconds,
            "identity": identity,
            "issuedAt": issued_at,
            "salt": secrets.token_hex(SALT_BYTES),
        }
        payload_b64 = _b64encode(
            json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
        )
        tag = self.tagger.tag(payload_b64.encode("ascii"))

        return AdmissionToken(
            issued_at=issued_at,
            expires_at=payload["expiresAt"],
            identity=identity,
            salt=payload["salt"],
            tag=tag,
            encoded=f"{tag}.{payload_b64}",
        )

    def validate(self, token: str, identity: str, now: Optional[int] = None) -> AdmissionToken:
        """
        Verify integrity tag, identity binding, lifetime and expiry.

        Args:
            token: Wire-form token
            identity: Identity presenting the token
            now: Override for the current time (Unix seconds)

        Returns:
            The decoded AdmissionToken

        Raises:
            TokenForged: Malformed token, bad tag, wrong identity or wrong lifetime
            TokenExpired: Token is past ``expires_at``
        """
        if not isinstance(token, str) or token.count(".") != 1:
            raise TokenForged("Malformed challenge")

        tag, payload_b64 = token.split(".")
        if not tag or not payload_b64:
            raise TokenForged("Malformed challenge")

        if not self.tagger.verify(payload_b64.encode("ascii", errors="replace"), tag):
            raise TokenForged("Invalid challenge signature")

        try:
            payload = json.loads(_b64decode(payload_b64))
            issued_at = int(payload["issuedAt"])
            expires_at = int(payload["expiresAt"])
            bound_identity = str(payload["identity"])
            salt = str(payload["salt"])
        except (binascii.Error, ValueError, KeyError, TypeError) as e:
            # Only reachable with a valid tag, i.e. a secret shared with a bad issuer
            logger.warning(f"Tagged challenge payload could not be decoded: {e}")
            raise TokenForged("Malformed challenge payload")

        if bound_identity != identity:
            raise TokenForged("Identity mismatch")

        if expires_at - issued_at != self.ttl_seconds:
            raise TokenForged("Unexpected challenge lifetime")

        current = self._now() if now is None else now
        if current > expires_at:
            raise TokenExpired(
                f"Challenge expired (max {self.ttl_seconds}s)",
                expired_for=current - expires_at,
            )

        return AdmissionToken(
            issued_at=issued_at,
            expires_at=expires_at,
            identity=bound_identity,
            salt=salt,
            tag=tag,
            encoded=token,
        )
