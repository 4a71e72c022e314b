"""API router for site audit endpoints."""

from typing import Union
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, status

from aeo_audit.api.dependencies import get_orchestrator
from aeo_audit.api.schemas.requests import StartAuditRequest
from aeo_audit.api.schemas.responses import (
    AuditReportResponse,
    AuditStatusResponse,
    CancelAuditResponse,
    PendingAuditResponse,
    StartAuditResponse,
)
from aeo_audit.database.crud_jobs import STATUS_STARTED
from aeo_audit.services.audit_orchestrator import AuditOrchestrator
from aeo_audit.utils.exceptions import (
    ConfigurationError,
    DatabaseError,
    InvalidURLError,
    JobNotFoundError,
    ValidationError,
)
from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/audits", tags=["audits"])


def _job_not_found(job_id: UUID) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Audit job not found: {job_id}",
    )


@router.post(
    "",
    response_model=StartAuditResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a site audit",
    description="""
    Register the site and ask the crawl provider to harvest its pages.

    The audit runs asynchronously: poll `/audits/{job_id}/status` until the
    status is `completed` or `failed`, then fetch `/audits/{job_id}`.
    A crawl that cannot be started is reported as a `failed` job.
    """,
)
async def start_audit(
    request: StartAuditRequest,
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
) -> StartAuditResponse:
    """
    Start an audit.

    Args:
        request: URL, owner and page limit
        orchestrator: Audit orchestrator

    Returns:
        Job and site identifiers with the job status

    Raises:
        HTTPException: 400 for invalid URLs, 503 for configuration errors
    """
    try:
        result = await orchestrator.start_audit(request.url, request.owner_id, request.max_pages)
    except (InvalidURLError, ValidationError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e
    except DatabaseError as e:
        logger.error("Failed to register audit", url=request.url, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to register audit",
        ) from e

    job = await orchestrator.store.get_job(result["job_id"])
    return StartAuditResponse(
        job_id=result["job_id"],
        site_id=result["site_id"],
        status=job.status if job else STATUS_STARTED,
    )


@router.get(
    "/{job_id}/status",
    response_model=AuditStatusResponse,
    summary="Get audit progress",
)
async def get_audit_status(
    job_id: UUID = Path(..., description="Audit job ID"),
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
) -> AuditStatusResponse:
    """Poll the audit; advances the job once the crawl has finished."""
    try:
        result = await orchestrator.poll_status(job_id)
    except JobNotFoundError as e:
        raise _job_not_found(job_id) from e
    return AuditStatusResponse(**result)


@router.get(
    "/{job_id}",
    response_model=Union[AuditReportResponse, PendingAuditResponse],
    summary="Get audit results",
    description="Returns the full report once the audit is completed, otherwise only its status.",
)
async def get_audit_results(
    job_id: UUID = Path(..., description="Audit job ID"),
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
) -> Union[AuditReportResponse, PendingAuditResponse]:
    """Return the audit report."""
    try:
        report = await orchestrator.get_results(job_id)
    except JobNotFoundError as e:
        raise _job_not_found(job_id) from e

    if "summary" not in report:
        return PendingAuditResponse(**report)
    return AuditReportResponse(**report)


@router.post(
    "/{job_id}/cancel",
    response_model=CancelAuditResponse,
    summary="Cancel an audit",
)
async def cancel_audit(
    job_id: UUID = Path(..., description="Audit job ID"),
    orchestrator: AuditOrchestrator = Depends(get_orchestrator),
) -> CancelAuditResponse:
    """Mark a running audit as failed and stop the crawl."""
    try:
        result = await orchestrator.cancel_audit(job_id)
    except JobNotFoundError as e:
        raise _job_not_found(job_id) from e
    return CancelAuditResponse(**result)
