"""
Gateway Configuration
=====================

All tunables for the admission gate and the bulk loader.

Values have documented defaults and can be overridden via:
1. Environment variables (``MINT_*``, optionally from a ``.env`` file)
2. Direct instantiation (for testing)

No algorithmic behavior depends on how these values are loaded.
"""

import os
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

_DEFAULT_SECRET = "mint-gateway-dev-secret"


@dataclass
class GatewayConfig:
    """
    Configuration object injected into the gate, the API and the loader.
    """

    # =========================================================================
    # Build Info
    # =========================================================================
    BUILD_ID: str = "dev-local"
    GITHUB_COMMIT: str = "unknown"

    # =========================================================================
    # Collection
    # =========================================================================
    COLLECTION_NAME: str = "Neural Norse"
    COLLECTION_SYMBOL: str = "NNORSE"
    TOTAL_SUPPLY: int = 10_000
    RESERVED_COUNT: int = 250  # Held back from public allocation
    MINT_PRICE: float = 0.02
    ROYALTY_BASIS_POINTS: int = 500  # 5%
    PAYMENT_DESTINATION: Optional[str] = None  # Treasury address
    COLLECTION_ADDRESS: Optional[str] = None

    # =========================================================================
    # Admission (challenge + proof-of-work)
    # =========================================================================
    CHALLENGE_SECRET: str = _DEFAULT_SECRET
    CHALLENGE_TTL_SECONDS: int = 300  # 5 minutes
    POW_DIFFICULTY: int = 4  # 4 hex zeros = ~65,536 attempts
    IDENTITY_MIN_LENGTH: int = 32
    IDENTITY_MAX_LENGTH: int = 44

    # =========================================================================
    # Quota / replay
    # =========================================================================
    MAX_PER_IDENTITY: int = 10
    STORE_KEY_PREFIX: str = ""
    REDIS_URL: Optional[str] = None  # In-memory store when unset

    # =========================================================================
    # Inventory
    # =========================================================================
    INVENTORY_PATH: str = "data/metadata-index.json"
    NAME_PREFIX: str = "Neural Norse #"
    URI_PREFIX: str = "https://arweave.net/"

    # =========================================================================
    # Ledger
    # =========================================================================
    LEDGER_ENDPOINT: str = "http://localhost:8899"
    LEDGER_ADDRESS: Optional[str] = None
    LEDGER_TIMEOUT_SECONDS: float = 30.0

    # =========================================================================
    # Bulk loader
    # =========================================================================
    CHECKPOINT_PATH: str = "data/ledger-progress.json"
    BATCH_SIZE: int = 10
    HEAL_BATCH_SIZE: int = 1  # Gaps are re-sent individually
    SEND_DELAY_SECONDS: float = 0.05  # Between sends, avoids provider 429s
    MAX_IN_FLIGHT: int = 1  # Concurrent batches (keep low)
    MAX_SEND_ATTEMPTS: int = 5
    BACKOFF_MIN_SECONDS: float = 1.0
    BACKOFF_MAX_SECONDS: float = 30.0
    VERIFY_EVERY_BATCHES: int = 20
    RECONCILE_EVERY_BATCHES: int = 50
    SETTLE_SECONDS: float = 10.0  # Wait before final verification
    MAX_HEAL_PASSES: int = 5

    # =========================================================================
    # Logging
    # =========================================================================
    LOG_LEVEL: str = "INFO"

    @property
    def public_supply(self) -> int:
        """Indices available to the public gate (total minus reserved)."""
        return self.TOTAL_SUPPLY - self.RESERVED_COUNT

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "GatewayConfig":
        """
        Load configuration from environment variables.

        Args:
            env_file: Optional path to a ``.env`` file (defaults to ``./.env``)
        """
        load_dotenv(env_file)
        return cls(
            BUILD_ID=os.getenv("BUILD_ID", "dev-local"),
            GITHUB_COMMIT=os.getenv("GITHUB_SHA", "unknown"),

            COLLECTION_NAME=os.getenv("MINT_COLLECTION_NAME", "Neural Norse"),
            COLLECTION_SYMBOL=os.getenv("MINT_COLLECTION_SYMBOL", "NNORSE"),
            TOTAL_SUPPLY=int(os.getenv("MINT_TOTAL_SUPPLY", 10_000)),
            RESERVED_COUNT=int(os.getenv("MINT_RESERVED_COUNT", 250)),
            MINT_PRICE=float(os.getenv("MINT_PRICE", 0.02)),
            ROYALTY_BASIS_POINTS=int(os.getenv("MINT_ROYALTY_BASIS_POINTS", 500)),
            PAYMENT_DESTINATION=os.getenv("MINT_PAYMENT_DESTINATION"),
            COLLECTION_ADDRESS=os.getenv("MINT_COLLECTION_ADDRESS"),

            CHALLENGE_SECRET=os.getenv("MINT_CHALLENGE_SECRET", _DEFAULT_SECRET),
            CHALLENGE_TTL_SECONDS=int(os.getenv("MINT_CHALLENGE_TTL_SECONDS", 300)),
            POW_DIFFICULTY=int(os.getenv("MINT_POW_DIFFICULTY", 4)),
            IDENTITY_MIN_LENGTH=int(os.getenv("MINT_IDENTITY_MIN_LENGTH", 32)),
            IDENTITY_MAX_LENGTH=int(os.getenv("MINT_IDENTITY_MAX_LENGTH", 44)),

            MAX_PER_IDENTITY=int(os.getenv("MINT_MAX_PER_IDENTITY", 10)),
            STORE_KEY_PREFIX=os.getenv("MINT_STORE_KEY_PREFIX", ""),
            REDIS_URL=os.getenv("REDIS_URL"),

            INVENTORY_PATH=os.getenv("MINT_INVENTORY_PATH", "data/metadata-index.json"),
            NAME_PREFIX=os.getenv("MINT_NAME_PREFIX", "Neural Norse #"),
            URI_PREFIX=os.getenv("MINT_URI_PREFIX", "https://arweave.net/"),

            LEDGER_ENDPOINT=os.getenv("MINT_LEDGER_ENDPOINT", "http://localhost:8899"),
            LEDGER_ADDRESS=os.getenv("MINT_LEDGER_ADDRESS"),
            LEDGER_TIMEOUT_SECONDS=float(os.getenv("MINT_LEDGER_TIMEOUT_SECONDS", 30.0)),

            CHECKPOINT_PATH=os.getenv("MINT_CHECKPOINT_PATH", "data/ledger-progress.json"),
            BATCH_SIZE=int(os.getenv("MINT_BATCH_SIZE", 10)),
            HEAL_BATCH_SIZE=int(os.getenv("MINT_HEAL_BATCH_SIZE", 1)),
            SEND_DELAY_SECONDS=float(os.getenv("MINT_SEND_DELAY_SECONDS", 0.05)),
            MAX_IN_FLIGHT=int(os.getenv("MINT_MAX_IN_FLIGHT", 1)),
            MAX_SEND_ATTEMPTS=int(os.getenv("MINT_MAX_SEND_ATTEMPTS", 5)),
            BACKOFF_MIN_SECONDS=float(os.getenv("MINT_BACKOFF_MIN_SECONDS", 1.0)),
            BACKOFF_MAX_SECONDS=float(os.getenv("MINT_BACKOFF_MAX_SECONDS", 30.0)),
            VERIFY_EVERY_BATCHES=int(os.getenv("MINT_VERIFY_EVERY_BATCHES", 20)),
            RECONCILE_EVERY_BATCHES=int(os.getenv("MINT_RECONCILE_EVERY_BATCHES", 50)),
            SETTLE_SECONDS=float(os.getenv("MINT_SETTLE_SECONDS", 10.0)),
            MAX_HEAL_PASSES=int(os.getenv("MINT_MAX_HEAL_PASSES", 5)),

            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )

    def validate(self) -> List[str]:
        """
        Check the configuration for inconsistencies.

        Returns:
            List of human-readable problems (empty when valid)
        """
        errors = []

        if self.TOTAL_SUPPLY <= 0:
            errors.append("MINT_TOTAL_SUPPLY must be positive")
        if not 0 <= self.RESERVED_COUNT <= self.TOTAL_SUPPLY:
            errors.append("MINT_RESERVED_COUNT must be between 0 and MINT_TOTAL_SUPPLY")
        if not 1 <= self.POW_DIFFICULTY <= 64:
            errors.append("MINT_POW_DIFFICULTY must be between 1 and 64")
        if self.CHALLENGE_TTL_SECONDS <= 0:
            errors.append("MINT_CHALLENGE_TTL_SECONDS must be positive")
        if self.MAX_PER_IDENTITY <= 0:
            errors.append("MINT_MAX_PER_IDENTITY must be positive")
        if self.IDENTITY_MIN_LENGTH > self.IDENTITY_MAX_LENGTH:
            errors.append("MINT_IDENTITY_MIN_LENGTH exceeds MINT_IDENTITY_MAX_LENGTH")
        if self.BATCH_SIZE <= 0 or self.HEAL_BATCH_SIZE <= 0:
            errors.append("Batch sizes must be positive")
        if self.MAX_IN_FLIGHT <= 0:
            errors.append("MINT_MAX_IN_FLIGHT must be positive")
        if self.MAX_SEND_ATTEMPTS <= 0:
            errors.append("MINT_MAX_SEND_ATTEMPTS must be positive")
        if self.CHALLENGE_SECRET == _DEFAULT_SECRET:
            errors.append("MINT_CHALLENGE_SECRET is using the development default")

        return errors

    def summary(self) -> List[str]:
        """Configuration summary lines for logging. NEVER includes secrets."""
        return [
            f"Build ID: {self.BUILD_ID}",
            f"GitHub Commit: {self.GITHUB_COMMIT}",
            f"Collection: {self.COLLECTION_NAME} ({self.COLLECTION_SYMBOL})",
            f"Supply: {self.TOTAL_SUPPLY} total, {self.RESERVED_COUNT} reserved, {self.public_supply} public",
            f"PoW difficulty: {self.POW_DIFFICULTY} (challenge TTL {self.CHALLENGE_TTL_SECONDS}s)",
            f"Max per identity: {self.MAX_PER_IDENTITY}",
            f"Store: {'Redis' if self.REDIS_URL else 'in-memory'}",
            f"Ledger: {self.LEDGER_ENDPOINT} ({self.LEDGER_ADDRESS or 'no address'})",
            f"Loader: batch={self.BATCH_SIZE}, in-flight={self.MAX_IN_FLIGHT}, attempts={self.MAX_SEND_ATTEMPTS}",
        ]
