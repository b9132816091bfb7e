"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis cache, chat rooms,
database engine). Middleware, CORS, and routers all registered here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gradwork import __version__
from gradwork.api import api_router
from gradwork.config import settings

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` at shutdown.
    On shutdown every chat channel is closed first, so each open session
    leaves its room and closes its socket on its own before the engine goes.
    """
    logger.info(
        "gradwork.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from gradwork.cache import close_cache, init_cache
    try:
        await init_cache()
        logger.info("gradwork.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("gradwork.redis_unavailable", error=str(e))
        # Redis is optional; responses just aren't cached

    yield

    logger.info("gradwork.shutdown")

    from gradwork.chat.registry import registry
    closed = await registry.close_all()
    logger.info("gradwork.chat_channels_closed", connections=closed)

    await close_cache()

    from gradwork.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Gradwork",
        description="Freelance marketplace backend — contract chat",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → CORS → handler

    from gradwork.middleware.request_id import RequestIdMiddleware
    from gradwork.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
        max_age=3600,
    )

    # REST + WebSocket routes
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: gradwork.main:app)
app = create_app()
