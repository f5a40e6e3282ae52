"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (rate-limit store, database).
Middleware, CORS, exception handling and routers are all registered here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quarry import __version__
from quarry.api import api_router
from quarry.config import settings
from quarry.middleware.rate_limit import (
    MemoryRateLimitStore,
    RateLimitMiddleware,
    RateLimitStore,
    RedisRateLimitStore,
)
from quarry.middleware.request_id import RequestIdMiddleware
from quarry.middleware.security import SecurityHeadersMiddleware

logger = structlog.get_logger()


async def build_rate_limit_store() -> RateLimitStore:
    """Redis counters when configured and reachable, else in-memory."""
    if settings.redis_url:
        store = RedisRateLimitStore.from_url(settings.redis_url)
        try:
            await store.ping()
            logger.info("quarry.redis_connected", url=settings.redis_url)
            return store
        except Exception as e:
            logger.warning("quarry.redis_unavailable", error=str(e))
            await store.close()
    return MemoryRateLimitStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` at shutdown.
    """
    logger.info(
        "quarry.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    app.state.rate_limit_store = await build_rate_limit_store()

    yield

    logger.info("quarry.shutdown")

    await app.state.rate_limit_store.close()

    from quarry.db.engine import engine
    await engine.dispose()


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures, answer with a generic 500."""
    logger.exception("request.unhandled_error", path=request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Quarry",
        description="Accounts, sessions and per-user provider settings for the Quarry search assistant",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
        trust_proxy_headers=settings.trust_proxy_headers,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(Exception, unhandled_error)

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: quarry.main:app)
app = create_app()
