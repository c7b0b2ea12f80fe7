"""
Proof-of-Work (PoW) Admission Puzzle

Replaces a human captcha with computational cost for each claim.
Designed to be:
- Fast to verify (O(1) - single hash)
- Expensive to compute (~65k attempts for 4 leading zeros)
- Stateless (pure function of token, identity and candidate)

Design:
- Hash: SHA256(token + identity + candidate), hex encoded
- Difficulty: number of leading "0" hex digits (4 = ~65,536 attempts)
- Token must still be valid (tag, identity binding, expiry) for a solution
  to count, regardless of hash correctness
"""

import hashlib
from typing import Optional, Tuple

from mint_gateway.errors import PoWInvalid
from mint_gateway.utils.challenge import AdmissionToken, ChallengeIssuer


# PoW difficulty (number of leading zeros required)
DIFFICULTY = 4  # 4 zeros = ~65,536 attempts = ~0.1s on modern CPU


def pow_digest(token: str, identity: str, candidate: str) -> str:
    """SHA256 hex digest of ``token + identity + candidate``."""
    message = f"{token}{identity}{candidate}"
    return hashlib.sha256(message.encode("utf-8")).hexdigest()


def meets_difficulty(digest: str, difficulty: int) -> bool:
    return digest.startswith("0" * difficulty)


def verify_solution(token: str, identity: str, candidate: str, difficulty: int = DIFFICULTY) -> bool:
    """
    Check a candidate against the hash-prefix rule only.

    Deterministic and side-effect free; safe to call from any thread.

    Example:
        >>> verify_solution(token, "abc123", "42069", 4)
        True
    """
    if candidate is None:
        return False
    return meets_difficulty(pow_digest(token, identity, str(candidate)), difficulty)


def verify_pow(
    issuer: ChallengeIssuer,
    token: str,
    identity: str,
    candidate: str,
    difficulty: int = DIFFICULTY,
    now: Optional[int] = None,
) -> AdmissionToken:
    """
    Verify a full puzzle submission.

    The token is re-validated first, so a correct hash over an expired or
    forged token is still rejected.

    Returns:
        The decoded AdmissionToken

    Raises:
        TokenForged / TokenExpired: Token invalid
        PoWInvalid: Hash does not meet the difficulty
    """
    decoded = issuer.validate(token, identity, now=now)

    if not verify_solution(token, identity, candidate, difficulty):
        digest = pow_digest(token, identity, str(candidate))
        raise PoWInvalid(
            f"Insufficient difficulty (expected {difficulty} leading zeros, got {digest[:difficulty]})"
        )

    return decoded


def solve_pow(
    token: str,
    identity: str,
    difficulty: int = DIFFICULTY,
    max_attempts: int = 10_000_000,
    start: int = 0,
) -> Tuple[str, int]:
    """
    Find a valid candidate (reference client implementation).

    NOTE: Callers should implement this locally for best performance.

    Returns:
        Tuple[str, int]: (candidate, attempts)

    Raises:
        RuntimeError: If no valid candidate is found within max_attempts
    """
    for attempt, nonce in enumerate(range(start, start + max_attempts), 1):
        candidate = str(nonce)
        if verify_solution(token, identity, candidate, difficulty):
            return candidate, attempt

    raise RuntimeError(f"Could not find valid candidate after {max_attempts} attempts")


def get_pow_stats(difficulty: int = DIFFICULTY) -> dict:
    """
    Get PoW configuration stats.

    Returns:
        dict: {difficulty, algorithm, avg_attempts, avg_time_ms}
    """
    avg_attempts = 16 ** difficulty  # 16^n for n leading hex zeros
    avg_time_ms = avg_attempts / 1_000_000 * 1000  # Assume 1M hashes/sec

    return {
        "difficulty": difficulty,
        "algorithm": "SHA-256",
        "avg_attempts": avg_attempts,
        "avg_time_ms": avg_time_ms,
    }
