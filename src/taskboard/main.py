"""FastAPI application factory.

create_app() returns a configured FastAPI instance. Lifespan manages
startup/shutdown (Redis, database engine). Middleware, CORS, exception
handlers and routers are all registered here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskboard import __version__
from taskboard.api import api_router
from taskboard.api.errors import register_exception_handlers
from taskboard.api.health import router as health_router
from taskboard.cache import close_redis, init_redis
from taskboard.config import settings
from taskboard.log import configure_logging
from taskboard.middleware.rate_limit import RateLimitMiddleware
from taskboard.middleware.request_id import RequestIdMiddleware
from taskboard.middleware.request_log import RequestLogMiddleware
from taskboard.middleware.security import SecurityHeadersMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "taskboard.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        jwks_uri=settings.jwks_uri,
    )

    try:
        await init_redis()
        logger.info("taskboard.redis_connected", url=settings.redis_url)
    except Exception as e:
        # Redis is optional, it only backs rate limiting
        logger.warning("taskboard.redis_unavailable", error=str(e))

    yield

    logger.info("taskboard.shutdown")
    await close_redis()

    from taskboard.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Taskboard",
        description="Role-based project and task management API",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → RequestLog → handler
    app.add_middleware(RequestLogMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: taskboard.main:app)
app = create_app()
