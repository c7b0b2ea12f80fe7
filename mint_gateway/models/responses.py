"""
Gateway Response Models
=======================

Pydantic models for API responses. Fields are snake_case in Python and
camelCase on the wire.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChallengeResponse(WireModel):
    """Response from GET /challenge"""

    token: str
    difficulty: int
    expires_in: int
    expires_at: int  # Unix seconds
    algorithm: str = "SHA-256"
    instructions: str


class CollectionStats(WireModel):
    """Live allocation counters"""

    claimed: int
    remaining: int
    total: int
    status: str  # "minting" | "sold-out"


class PaymentTerms(WireModel):
    amount: float
    destination: Optional[str] = None


class UnsignedRecord(WireModel):
    """
    Claim record for the external signer.

    Self-describing: the signer can finalize it without calling back into the
    gateway. ``message`` is the canonical base64 JSON of every other field and
    ``message_digest`` its SHA256; ``fee_payer`` covers finalization costs.
    """

    record_version: int = 1
    collection: str
    symbol: str
    collection_address: Optional[str] = None
    ledger_address: Optional[str] = None
    index: int
    name: str
    content_uri: str
    owner: str
    fee_payer: str
    required_signers: List[str]
    payment: PaymentTerms
    royalty_basis_points: int
    claimed_at: str
    message: str
    message_digest: str


class AllocateResponse(WireModel):
    """Response from POST /allocate"""

    unsigned_record: UnsignedRecord
    index: int
    collection_stats: CollectionStats


class CollectionResponse(WireModel):
    """Response from GET /collection"""

    name: str
    symbol: str
    total_supply: int
    public_supply: int
    reserved: int
    price: float
    status: str
    claimed: int
    available: int
    mint: Dict[str, Any]


class ErrorResponse(BaseModel):
    """Error response"""

    error: str
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response"""

    service: str
    status: str
    build_id: str
    github_commit: str
    timestamp: str
