"""FastAPI server for the fish farm intake pipeline.

Main entry point for the API server.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import register_error_handlers
from api.routes import (
    health,
    farms,
    shipments,
    aquariums,
    reception,
)
from core import __version__
from core.config import load_settings
from core.observability.logging import configure_logging, get_logger


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = load_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    logger.info("Fish intake API starting up", extra_fields={"db_path": str(settings.db_path)})

    yield

    logger.info("Fish intake API shutting down")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Fish Farm Intake API",
        description="Shipment extraction and import, aquarium inventory and reception planning",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(farms.router, prefix="/farms", tags=["Farms"])
    app.include_router(shipments.router, prefix="/farms/{farm_id}/shipments", tags=["Shipments"])
    app.include_router(aquariums.router, prefix="/farms/{farm_id}/aquariums", tags=["Aquariums"])
    app.include_router(reception.router, prefix="/farms/{farm_id}/reception-plans", tags=["Reception"])

    return app


# Default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
