"""
BidRadar FastAPI Application
Control surface for the opportunity matching engine and its caches.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.api import cache, health, matching
from backend.core.config import Settings, get_settings
from backend.core.logging import configure_logging
from backend.services.context import ServiceContext

logger = structlog.get_logger().bind(component="api")


def create_app(settings: Optional[Settings] = None, context: Optional[ServiceContext] = None) -> FastAPI:
    """
    Build the application.

    ``context`` lets tests supply a pre-wired ServiceContext; otherwise one
    is built from ``settings`` at startup.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
        - Build the service context (backends resolve lazily on first use)
        - Start the response-cache sweeper

        Shutdown:
        - Stop matching loops and the sweeper
        - Close backend connections
        """
        logger.info("api_starting", environment=settings.environment, version=settings.app_version)
        app.state.context = context or ServiceContext.create(settings)
        await app.state.context.start()

        yield

        logger.info("api_shutting_down")
        await app.state.context.close()
        app.state.context = None

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="Opportunity relevance matching, alerting and cache administration.",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    allowed_origins = [settings.frontend_url]
    if settings.debug:
        allowed_origins.extend(["http://localhost:3000", "http://127.0.0.1:3000", "http://127.0.0.1:5173"])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(matching.router)
    app.include_router(cache.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "backend.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )
