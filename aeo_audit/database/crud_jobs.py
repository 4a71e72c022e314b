"""CRUD operations for AuditJob model, including guarded status transitions."""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from aeo_audit.database.models import AuditJob
from aeo_audit.utils.exceptions import InvalidStatusTransitionError
from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_PENDING = "pending"
STATUS_STARTED = "started"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_FAILED)
NON_TERMINAL_STATUSES = (STATUS_PENDING, STATUS_STARTED, STATUS_PROCESSING)
CLAIMABLE_STATUSES = (STATUS_PENDING, STATUS_STARTED)

# Forward order of the happy path; failed is reachable from any non-terminal state
STATUS_ORDER = {
    STATUS_PENDING: 0,
    STATUS_STARTED: 1,
    STATUS_PROCESSING: 2,
    STATUS_COMPLETED: 3,
}


def can_transition(current: str, new: str) -> bool:
    """Return True if a job may move from `current` to `new`."""
    if current in TERMINAL_STATUSES:
        return False
    if new == STATUS_FAILED:
        return True
    if new not in STATUS_ORDER or current not in STATUS_ORDER:
        return False
    return STATUS_ORDER[new] > STATUS_ORDER[current]


async def create_job(
    db_session: AsyncSession,
    site_id: int,
    start_url: str,
    max_pages: int,
) -> AuditJob:
    """
    Create a pending audit job.

    Args:
        db_session: Database session
        site_id: Site primary key
        start_url: Normalized URL the crawl starts from
        max_pages: Page limit requested from the provider

    Returns:
        Created AuditJob instance
    """
    job = AuditJob(
        site_id=site_id,
        start_url=start_url,
        max_pages=max_pages,
        status=STATUS_PENDING,
        started_at=datetime.now(timezone.utc),
    )
    db_session.add(job)
    await db_session.commit()
    await db_session.refresh(job)
    logger.info("Audit job created", job_id=str(job.job_id), site_id=site_id, max_pages=max_pages)
    return job


async def get_job(
    db_session: AsyncSession,
    job_id: UUID,
) -> Optional[AuditJob]:
    """
    Get audit job by its public identifier.

    Args:
        db_session: Database session
        job_id: Job UUID

    Returns:
        AuditJob if found, None otherwise
    """
    result = await db_session.execute(select(AuditJob).where(AuditJob.job_id == job_id))
    return result.scalar_one_or_none()


async def get_job_status(
    db_session: AsyncSession,
    job_pk: int,
) -> Optional[str]:
    """Read the current status of a job by primary key."""
    result = await db_session.execute(select(AuditJob.status).where(AuditJob.id == job_pk))
    return result.scalar_one_or_none()


async def transition_job(
    db_session: AsyncSession,
    job: AuditJob,
    new_status: str,
    **fields: Any,
) -> AuditJob:
    """
    Move a job to a new status, enforcing forward-only transitions.

    Args:
        db_session: Database session
        job: Job to update
        new_status: Target status
        **fields: Additional columns to set in the same update

    Returns:
        Updated AuditJob

    Raises:
        InvalidStatusTransitionError: If the transition would move the job backwards
    """
    if not can_transition(job.status, new_status):
        raise InvalidStatusTransitionError(f"Cannot move job {job.job_id} from {job.status} to {new_status}")

    values = dict(fields)
    values["status"] = new_status
    if new_status in TERMINAL_STATUSES:
        values.setdefault("completed_at", datetime.now(timezone.utc))

    # Conditional on the status we read, so a concurrent transition is not overwritten
    result = await db_session.execute(
        update(AuditJob)
        .where(AuditJob.id == job.id, AuditJob.status == job.status)
        .values(**values)
    )
    await db_session.commit()
    if result.rowcount != 1:
        raise InvalidStatusTransitionError(f"Job {job.job_id} changed status concurrently")

    await db_session.refresh(job)
    logger.info("Audit job status changed", job_id=str(job.job_id), status=new_status)
    return job


async def claim_for_processing(
    db_session: AsyncSession,
    job_pk: int,
) -> bool:
    """
    Atomically move a job into processing.

    Only one caller can win: the update is conditional on the job still being
    pending or started.

    Returns:
        True if this caller claimed the job
    """
    result = await db_session.execute(
        update(AuditJob)
        .where(AuditJob.id == job_pk, AuditJob.status.in_(CLAIMABLE_STATUSES))
        .values(status=STATUS_PROCESSING)
    )
    await db_session.commit()
    return result.rowcount == 1


async def mark_failed(
    db_session: AsyncSession,
    job_pk: int,
    error_message: str,
) -> bool:
    """
    Mark a non-terminal job as failed.

    Returns:
        True if the job was changed, False if it was already terminal
    """
    result = await db_session.execute(
        update(AuditJob)
        .where(AuditJob.id == job_pk, AuditJob.status.in_(NON_TERMINAL_STATUSES))
        .values(
            status=STATUS_FAILED,
            error_message=error_message[:2000],
            completed_at=datetime.now(timezone.utc),
        )
    )
    await db_session.commit()
    return result.rowcount == 1


async def complete_job(
    db_session: AsyncSession,
    job_pk: int,
) -> bool:
    """
    Finalize a processing job.

    Returns:
        True if the job moved to completed
    """
    result = await db_session.execute(
        update(AuditJob)
        .where(AuditJob.id == job_pk, AuditJob.status == STATUS_PROCESSING)
        .values(
            status=STATUS_COMPLETED,
            progress_percent=100,
            completed_at=datetime.now(timezone.utc),
        )
    )
    await db_session.commit()
    return result.rowcount == 1


async def record_progress(
    db_session: AsyncSession,
    job_pk: int,
    progress_percent: int,
) -> None:
    """Store reported progress if it is higher than what was stored before."""
    await db_session.execute(
        update(AuditJob)
        .where(
            AuditJob.id == job_pk,
            AuditJob.progress_percent < progress_percent,
            AuditJob.status.in_(NON_TERMINAL_STATUSES),
        )
        .values(progress_percent=progress_percent)
    )
    await db_session.commit()


async def update_job_stats(
    db_session: AsyncSession,
    job_pk: int,
    **stats: Any,
) -> bool:
    """
    Write aggregate statistics onto a job.

    Page rows are append-only, so a snapshot counting fewer pages than the
    job already reports is stale and is dropped rather than written.

    Returns:
        True if the statistics were stored
    """
    conditions = [AuditJob.id == job_pk]
    if "total_pages" in stats:
        conditions.append(AuditJob.total_pages <= stats["total_pages"])
    result = await db_session.execute(update(AuditJob).where(*conditions).values(**stats))
    await db_session.commit()
    return result.rowcount == 1
