"""FastAPI application entry point for PartKeeper."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from partkeeper import __version__
from partkeeper.api.v1.router import api_router
from partkeeper.config import settings
from partkeeper.core.exceptions import PartKeeperException
from partkeeper.core.logging import get_logger, setup_logging
from partkeeper.db.session import close_db, init_db

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events.
    """
    setup_logging()
    logger.info(
        "Starting PartKeeper",
        version=__version__,
        debug=settings.debug,
        targets=[t.qualified_base for t in settings.targets],
    )

    await init_db()

    logger.info("PartKeeper started successfully")

    yield

    logger.info("Shutting down PartKeeper")
    await close_db()
    logger.info("PartKeeper shutdown complete")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Monthly partition creation and retention for PostgreSQL tables",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    @app.exception_handler(PartKeeperException)
    async def partkeeper_exception_handler(
        request: Request, exc: PartKeeperException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.__class__.__name__,
                "message": exc.message,
                "details": exc.details,
            },
        )

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        """Health check endpoint for container orchestration."""
        return {
            "status": "healthy",
            "version": __version__,
            "service": "partkeeper",
        }

    return app


# Create the application instance
app = create_application()
