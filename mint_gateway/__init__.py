"""
Mint Gateway
============

Admission gate and bulk ledger loader for a numbered collection.

Features:
- Stateless, HMAC-tagged admission challenges (no session storage)
- Hash-prefix proof-of-work instead of human captchas
- Replay protection and per-identity quotas in a shared store
- Atomic index allocation bounded by public supply
- Resumable, self-healing bulk publishing into the ledger
"""

import logging

__version__ = "1.0.0"
__author__ = "Mint Gateway Team"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the gateway and loader processes."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
