"""
POST /allocate - Claim the next inventory index
===============================================

Flow:
1. Validate token (integrity, identity binding, expiry)
2. Verify proof-of-work
3. Replay + quota guard (atomic)
4. Atomically claim the next public index (rolled back when sold out)
5. Assemble the unsigned record for the external signer

Every failure maps to a stable error code:
    400 invalid_identity, pow_invalid
    401 token_expired, token_forged
    409 replay_detected
    410 sold_out
    429 quota_exceeded
    500 assignment_error
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from mint_gateway.errors import GatewayError
from mint_gateway.models.responses import AllocateResponse, CollectionStats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/allocate", tags=["Allocation"])


# ============================================================
# Request Models
# ============================================================

class AllocateRequest(BaseModel):
    """Puzzle solution presented for allocation"""

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    identity: str = Field(..., description="Identity the token was issued to")
    token: str = Field(..., description="Token from GET /challenge")
    candidate_value: str = Field(..., alias="candidateValue", description="Proof-of-work solution")
    tx_ref: Optional[str] = Field(
        default=None, alias="txRef", description="External payment reference (single use)"
    )


# ============================================================
# Endpoint
# ============================================================

@router.post("", response_model=AllocateResponse)
async def allocate(request: Request, body: AllocateRequest):
    """
    Verify the puzzle solution and claim an index.

    Returns:
        AllocateResponse with the unsigned record and live collection stats

    Raises:
        HTTPException: status and ``{"error": code, "message": ...}`` from the
            gateway error taxonomy
    """
    gate = request.app.state.gate
    assembler = request.app.state.assembler

    try:
        allocation = await gate.allocate(
            body.identity,
            body.token,
            body.candidate_value,
            external_tx_ref=body.tx_ref,
        )
    except GatewayError as e:
        if e.http_status >= 500:
            logger.error(f"Allocation failed: {e.code}: {e.message}")
        else:
            logger.info(f"Allocation rejected: {e.code}: {e.message}")
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())

    record = assembler.assemble(allocation.claim, allocation.item, allocation.claim.identity)

    return AllocateResponse(
        unsigned_record=record,
        index=allocation.claim.index,
        collection_stats=CollectionStats(**allocation.stats),
    )
