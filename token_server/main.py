"""
Token server: issues RBAC access tokens to callers who prove their cloud identity with a
signed GetCallerIdentity request, and exposes the RBAC admin API.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from token_server import config
from token_server.admin import router as admin_router
from token_server.caller_identity import CallerIdentityVerifier
from token_server.database import ItemTable, create_db_engine, init_db
from token_server.errors import register_error_handlers
from token_server.jwt_provider import JwtProviderRegistry
from token_server.keys import KeyRing
from token_server.rate_limit import SlidingWindowLimiter
from token_server.rbac_store import RBACStore
from token_server.token_endpoint import router as token_router
from token_server.well_known import router as well_known_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the table, load signing keys, build the store and the STS verifier."""
    engine = create_db_engine(config.DATABASE_URL)
    init_db(engine)
    key_ring = KeyRing.load(
        config.SIGNING_KEY_PATH,
        config.SIGNING_KEY_REGIONAL_PATHS,
        config.SIGNING_KEY_SECONDARY_PATHS,
    )
    app.state.store = RBACStore(ItemTable(engine))
    app.state.jwt_registry = JwtProviderRegistry(key_ring)
    app.state.identity_verifier = CallerIdentityVerifier(
        config.STS_ENDPOINT_TEMPLATE, config.STS_TIMEOUT_SECONDS, regions=config.STS_REGIONS
    )
    app.state.token_rate_limiter = SlidingWindowLimiter(config.RATE_LIMIT_TOKEN_PER_MINUTE)
    logger.info("Token server started: issuer=%s signing keys=%d", config.ISSUER, len(key_ring.all_keys()))
    try:
        yield
    finally:
        await app.state.identity_verifier.aclose()
        engine.dispose()


app = FastAPI(title="Token Server", version="0.1.0", lifespan=lifespan)
register_error_handlers(app)
app.include_router(token_router, tags=["token"])
app.include_router(well_known_router, tags=["well-known"])
app.include_router(admin_router, tags=["rbac"])


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "token_server"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "token_server.main:app",
        host="127.0.0.1",
        port=9000,
        reload=True,
    )
