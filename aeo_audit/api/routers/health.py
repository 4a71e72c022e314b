"""Health check endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aeo_audit.api.dependencies import get_db_session
from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

SERVICE_NAME = "aeo-audit"


@router.get(
    "",
    summary="Health check",
    description="Check the health status of the API service and its database connection.",
    responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "service": SERVICE_NAME,
                        "database": "ok",
                    }
                }
            }
        }
    },
)
async def health_check(db: AsyncSession = Depends(get_db_session)) -> dict:
    """
    Health check endpoint.

    Returns:
        Dictionary with status, service name and database state

    Example:
        ```bash
        curl http://localhost:8000/api/v1/health
        ```
    """
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.warning("Database health check failed", error=str(e))
        database = "unavailable"

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "service": SERVICE_NAME,
        "database": database,
    }
