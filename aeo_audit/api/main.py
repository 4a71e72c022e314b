"""FastAPI main application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aeo_audit import __version__
from aeo_audit.api.routers import audits, health
from aeo_audit.database.db_session import dispose_engine, init_models
from aeo_audit.utils.logging import get_logger, setup_logging

# Setup logging
setup_logging()

logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="AEO Site Audit API",
    version=__version__,
    description="Crawls a site and scores every page for answer-engine readiness",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Setup CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(health.router, prefix="/api/v1")
app.include_router(audits.router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event() -> None:
    """Create missing tables."""
    await init_models()
    logger.info("AEO audit API started", version=__version__)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Release database connections."""
    await dispose_engine()
