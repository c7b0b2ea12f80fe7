"""
Mint Gateway
============

FastAPI gateway for puzzle-gated allocation of a numbered collection.

Endpoints:
- GET /: Health check + build info
- GET /health: Kubernetes health check
- GET /challenge: Issue an admission challenge
- POST /allocate: Claim the next index with a solved challenge
- GET /collection: Collection info and live counters
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mint_gateway import __version__, configure_logging
from mint_gateway.api import allocate, challenge, collection
from mint_gateway.config import GatewayConfig
from mint_gateway.errors import InvalidIdentity, InvalidRequest
from mint_gateway.models.inventory import FileInventorySource
from mint_gateway.models.responses import HealthResponse
from mint_gateway.utils.allocation import AllocationGate
from mint_gateway.utils.assembler import RecordAssembler
from mint_gateway.utils.challenge import ChallengeIssuer
from mint_gateway.utils.integrity import HmacTagger
from mint_gateway.utils.rate_limiter import ReplayQuotaGuard
from mint_gateway.utils.store import MemoryStore, RedisStore

logger = logging.getLogger(__name__)


def _build_store(config: GatewayConfig):
    if config.REDIS_URL:
        return RedisStore.from_url(config.REDIS_URL, key_prefix=config.STORE_KEY_PREFIX)
    logger.warning("REDIS_URL not set, using in-memory store (single instance only)")
    return MemoryStore()


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests get 400 with a stable error code, like every other rejection."""
    problems = exc.errors()
    fields = [".".join(str(part) for part in problem["loc"][1:]) for problem in problems]
    message = "; ".join(f"{field or 'body'}: {problem['msg']}" for field, problem in zip(fields, problems))

    if "identity" in fields:
        error = InvalidIdentity(message)
    else:
        error = InvalidRequest(message, fields=fields)

    logger.info(f"Request rejected: {error.code}: {message}")
    return JSONResponse(status_code=error.http_status, content={"detail": error.to_dict()})


# ============================================================
# Lifespan Context Manager
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    config: GatewayConfig = app.state.config

    print("\n" + "=" * 80)
    print("🚀 STARTING MINT GATEWAY")
    print("=" * 80)
    for line in config.summary():
        print(f"   {line}")
    for problem in config.validate():
        print(f"⚠️  WARNING: {problem}")
    print("=" * 80 + "\n")

    yield

    print("\n" + "=" * 80)
    print("🛑 SHUTTING DOWN MINT GATEWAY")
    print("=" * 80)
    await app.state.store.close()
    print("   ✅ Store connection closed")
    print("=" * 80 + "\n")


# ============================================================
# App Factory
# ============================================================

def create_app(
    config: Optional[GatewayConfig] = None,
    inventory=None,
    store=None,
) -> FastAPI:
    """
    Build the gateway app.

    Args:
        config: Gateway configuration (defaults to ``GatewayConfig.from_env()``)
        inventory: Inventory or any object with ``current() -> Inventory``
            (defaults to ``FileInventorySource(config.INVENTORY_PATH)``)
        store: Shared store (defaults to Redis when REDIS_URL is set,
            otherwise in-memory)

    Raises:
        ValueError: Inventory has fewer public items than the public supply
    """
    config = config or GatewayConfig.from_env()
    inventory = inventory if inventory is not None else FileInventorySource(config.INVENTORY_PATH)
    store = store if store is not None else _build_store(config)

    issuer = ChallengeIssuer(
        HmacTagger(config.CHALLENGE_SECRET),
        ttl_seconds=config.CHALLENGE_TTL_SECONDS,
        min_identity_length=config.IDENTITY_MIN_LENGTH,
        max_identity_length=config.IDENTITY_MAX_LENGTH,
    )
    guard = ReplayQuotaGuard(store, config.MAX_PER_IDENTITY, config.CHALLENGE_TTL_SECONDS)
    gate = AllocationGate(
        issuer,
        guard,
        store,
        inventory,
        public_supply=config.public_supply,
        difficulty=config.POW_DIFFICULTY,
    )

    app = FastAPI(
        title="Mint Gateway",
        description="Puzzle-gated allocation gateway for a numbered collection",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.store = store
    app.state.inventory = inventory
    app.state.issuer = issuer
    app.state.guard = guard
    app.state.gate = gate
    app.state.assembler = RecordAssembler(config)

    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(challenge.router)
    app.include_router(allocate.router)
    app.include_router(collection.router)

    # ============================================================
    # Health Check Endpoints
    # ============================================================

    @app.get("/", response_model=HealthResponse)
    async def root(request: Request):
        """Health check + build info."""
        cfg = request.app.state.config
        return HealthResponse(
            service="mint-gateway",
            status="ok",
            build_id=cfg.BUILD_ID,
            github_commit=cfg.GITHUB_COMMIT,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    @app.get("/health")
    async def health():
        """Kubernetes health check."""
        return {"status": "healthy"}

    return app


if __name__ == "__main__":
    import uvicorn

    cfg = GatewayConfig.from_env()
    configure_logging(cfg.LOG_LEVEL)
    uvicorn.run(create_app(cfg), host="0.0.0.0", port=8000)
