"""FastAPI dependencies for database sessions and the audit orchestrator."""

from typing import AsyncIterator

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from aeo_audit.config.settings import settings
from aeo_audit.crawler.firecrawl_client import FirecrawlProvider
from aeo_audit.database.db_session import get_db, get_session_factory
from aeo_audit.database.result_store import ResultStore
from aeo_audit.services.audit_orchestrator import AuditOrchestrator
from aeo_audit.utils.exceptions import ConfigurationError
from aeo_audit.utils.logging import get_logger

__all__ = ["get_db_session", "get_orchestrator"]

logger = get_logger(__name__)


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Dependency for FastAPI to get database session."""
    async for session in get_db():
        yield session


async def get_orchestrator() -> AsyncIterator[AuditOrchestrator]:
    """
    Build an orchestrator backed by Firecrawl and the process-wide database.

    Raises:
        HTTPException: 503 if the crawl provider is not configured
    """
    try:
        provider = FirecrawlProvider(settings)
    except ConfigurationError as e:
        logger.error("Crawl provider not configured", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Audit service is not configured: {e}",
        ) from e

    orchestrator = AuditOrchestrator(
        provider=provider,
        store=ResultStore(get_session_factory()),
        config=settings,
    )
    try:
        yield orchestrator
    finally:
        await orchestrator.close()
