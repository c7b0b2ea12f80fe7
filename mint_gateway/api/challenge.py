"""
GET /challenge - Issue a stateless admission challenge
======================================================

The caller solves the proof-of-work against the returned token and presents
the solution to POST /allocate before the token expires.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, Request

from mint_gateway.errors import GatewayError
from mint_gateway.models.responses import ChallengeResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/challenge", tags=["Admission"])


def _instructions(difficulty: int) -> str:
    return (
        f"Find candidateValue such that SHA256(token + identity + candidateValue) "
        f"starts with {difficulty} zero hex digits"
    )


@router.get("", response_model=ChallengeResponse)
async def get_challenge(request: Request, identity: str = Query(..., description="Requester identity")):
    """
    Issue an admission token bound to ``identity``.

    Raises:
        HTTPException: 400 (malformed identity)
    """
    issuer = request.app.state.issuer
    difficulty = request.app.state.config.POW_DIFFICULTY

    try:
        token = issuer.issue(identity)
    except GatewayError as e:
        raise HTTPException(status_code=e.http_status, detail=e.to_dict())

    logger.debug(f"Issued challenge for {identity[:10]}... (expires {token.expires_at})")

    return ChallengeResponse(
        token=token.encoded,
        difficulty=difficulty,
        expires_in=token.ttl,
        expires_at=token.expires_at,
        instructions=_instructions(difficulty),
    )
