"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (logging, Redis, database).
Middleware, CORS, and routers all registered here.

Configuration is validated when flortune.config is imported, so a
missing signing secret stops the process before the app even exists.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flortune import __version__
from flortune.api import api_router
from flortune.config import settings
from flortune.logging_setup import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs
    at shutdown.
    """
    configure_logging(settings.log_level, settings.log_json)
    logger.info(
        "flortune.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    if not settings.oauth_enabled:
        logger.warning("flortune.oauth_disabled")

    from flortune.cache import close_redis, init_redis
    try:
        await init_redis()
        logger.info("flortune.redis_connected")
    except Exception as e:
        logger.warning("flortune.redis_unavailable", error=str(e))
        # Redis is optional; only rate limiting is lost
        await close_redis()

    yield

    logger.info("flortune.shutdown")
    await close_redis()

    from flortune.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Flortune Identity",
        description="Sign-in, sessions and data-store access tokens for Flortune",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from flortune.middleware.rate_limit import RateLimitMiddleware
    from flortune.middleware.request_id import RequestIdMiddleware
    from flortune.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    return app


# Default app instance (used by uvicorn: flortune.main:app)
app = create_app()
