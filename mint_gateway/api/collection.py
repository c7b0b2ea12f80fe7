"""
GET /collection - Collection info and live allocation counters
"""

from fastapi import APIRouter, Request

from mint_gateway.models.responses import CollectionResponse

router = APIRouter(prefix="/collection", tags=["Collection"])


@router.get("", response_model=CollectionResponse)
async def get_collection(request: Request):
    config = request.app.state.config
    stats = await request.app.state.gate.collection_stats()

    return CollectionResponse(
        name=config.COLLECTION_NAME,
        symbol=config.COLLECTION_SYMBOL,
        total_supply=config.TOTAL_SUPPLY,
        public_supply=config.public_supply,
        reserved=config.RESERVED_COUNT,
        price=config.MINT_PRICE,
        status=stats["status"],
        claimed=stats["claimed"],
        available=stats["remaining"],
        mint={
            "powDifficulty": config.POW_DIFFICULTY,
            "challengeTtl": config.CHALLENGE_TTL_SECONDS,
            "maxPerIdentity": config.MAX_PER_IDENTITY,
            "paymentDestination": config.PAYMENT_DESTINATION,
        },
    )
