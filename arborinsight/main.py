"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from arborinsight.api.models.responses import HealthResponse
from arborinsight.api.rate_limit import limiter
from arborinsight.api.routers import (
    dashboard,
    exports,
    geocoding,
    inspections,
    objects,
    refs,
    species,
    trees,
)
from arborinsight.config import settings
from arborinsight.infrastructure.database import init_db
from arborinsight.infrastructure.geocoding_client import close_geocoding_client
from arborinsight.infrastructure.plantnet_client import close_plantnet_client
from arborinsight.middleware.error_handler import ErrorHandlerMiddleware

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Creates the schema on startup and closes the gateway clients on shutdown.
    """
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Log level: {settings.log_level}")
    init_db()
    logger.info(f"Photo storage: {settings.upload_dir}")
    if not settings.plantnet_api_key:
        logger.warning("PLANTNET_API_KEY is not set; species identification will be refused")
    logger.info(f"Rate limit: {settings.rate_limit_requests} gateway requests/minute")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await close_plantnet_client()
    await close_geocoding_client()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Field data API for urban tree inspections near power lines

    Inspectors record inspections (location, electrical references, priority)
    with any number of trees, each with photos, species candidates and an
    observation. Office staff filter, review and export the records.

    ## Features

    - **Inspections and Trees**: CRUD with cascading deletes and partial updates
    - **Reference Data**: Regions, municipalities, substations and feeders
    - **Enrichment**: Reverse geocoding (Nominatim) and species identification
      (Pl@ntNet), rate limited
    - **Photos**: Multipart uploads and a one-shot object upload flow
    - **Exports**: CSV, plain-text report and KML with priority-coloured pins
    - **Dashboard**: Totals per priority and per municipality
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add global error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Include routers
for module in (refs, inspections, trees, dashboard, exports, geocoding, species, objects):
    app.include_router(module.router, prefix="/api")
app.include_router(objects.public_router)


@app.get("/", response_model=HealthResponse, tags=["health"])
async def root() -> HealthResponse:
    """
    Root endpoint for health check.

    Returns:
        Status message
    """
    return HealthResponse(
        status="healthy",
        service=settings.app_name,
        version=settings.app_version,
    )


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check() -> HealthResponse:
    return HealthResponse(status="healthy", service=settings.app_name)
