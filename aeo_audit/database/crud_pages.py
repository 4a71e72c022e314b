"""CRUD operations for AuditPage and its issues, recommendations and checklist rows."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from aeo_audit.analysis.normalizer import PageRecord
from aeo_audit.analysis.page_signals import iter_schema_types
from aeo_audit.analysis.scoring import AEOAnalysisResult
from aeo_audit.database.models import (
    AuditPage,
    PageChecklistResult,
    PageIssue,
    PageRecommendation,
)
from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)


async def get_processed_urls(
    db_session: AsyncSession,
    job_pk: int,
) -> set[str]:
    """
    Get URLs already stored for a job.

    Args:
        db_session: Database session
        job_pk: Job primary key

    Returns:
        Set of stored page URLs
    """
    result = await db_session.execute(select(AuditPage.url).where(AuditPage.job_id == job_pk))
    return set(result.scalars().all())


async def create_page(
    db_session: AsyncSession,
    job_pk: int,
    page: PageRecord,
    analysis: AEOAnalysisResult,
    media_count: int = 0,
    has_llms_reference: bool = False,
) -> AuditPage:
    """
    Add a scored page with its issues, recommendations and checklist rows.

    The caller commits; a duplicate (job, url) surfaces as IntegrityError on commit.

    Args:
        db_session: Database session
        job_pk: Job primary key
        page: Normalized page
        analysis: Scoring result for the page
        media_count: Number of media elements on the page
        has_llms_reference: Whether the site's llms.txt lists this page

    Returns:
        AuditPage instance (pending commit)
    """
    schema_types = sorted(set(iter_schema_types(page.structured_data_blocks)))
    audit_page = AuditPage(
        job_id=job_pk,
        url=page.url,
        title=page.title,
        status_code=page.status_code,
        is_document=page.is_document,
        document_type=page.document_type,
        content_length=page.content_length,
        has_schema=bool(page.structured_data_blocks),
        schema_types=schema_types or None,
        has_llms_reference=has_llms_reference,
        media_count=media_count,
        media_accessibility_score=analysis.media_accessibility_score,
        rendering_mode=analysis.rendering_mode.value,
        rendering_confidence=analysis.rendering_confidence,
        ssr_penalty=analysis.ssr_penalty,
        overall_score=analysis.overall_score,
        weighted_score=analysis.weighted_score,
        category_scores=dict(analysis.category_scores),
    )
    audit_page.issues = [
        PageIssue(
            severity=issue.severity,
            category=issue.category,
            title=issue.title,
            description=issue.description,
            impact=issue.impact,
            fix_priority=issue.fix_priority,
            html_snippet=issue.html_snippet,
            rule_parameters=issue.rule_parameters or None,
            diagnostic=issue.diagnostic,
        )
        for issue in analysis.issues
    ]
    audit_page.recommendations = [
        PageRecommendation(
            category=rec.category,
            title=rec.title,
            description=rec.description,
            implementation=rec.implementation,
            expected_impact=rec.expected_impact,
            effort_level=rec.effort_level,
            priority_score=rec.priority_score,
        )
        for rec in analysis.recommendations
    ]
    audit_page.checklist_results = [
        PageChecklistResult(
            check_id=item.id,
            check_name=item.name,
            category=item.category,
            weight=item.weight,
            passed=item.passed,
            details=item.details,
            rule_parameters=item.parameters or None,
        )
        for item in analysis.checklist_results
    ]
    db_session.add(audit_page)
    return audit_page


async def list_page_stats(
    db_session: AsyncSession,
    job_pk: int,
) -> list[tuple]:
    """
    Get the columns needed for job aggregates.

    Returns:
        Rows of (overall_score, is_document, has_schema, has_llms_reference, media_accessibility_score)
    """
    result = await db_session.execute(
        select(
            AuditPage.overall_score,
            AuditPage.is_document,
            AuditPage.has_schema,
            AuditPage.has_llms_reference,
            AuditPage.media_accessibility_score,
        ).where(AuditPage.job_id == job_pk)
    )
    return list(result.all())


async def list_pages_with_details(
    db_session: AsyncSession,
    job_pk: int,
) -> list[AuditPage]:
    """
    Get all pages of a job with issues, recommendations and checklist rows loaded.

    Args:
        db_session: Database session
        job_pk: Job primary key

    Returns:
        Pages ordered by id
    """
    result = await db_session.execute(
        select(AuditPage)
        .where(AuditPage.job_id == job_pk)
        .options(
            selectinload(AuditPage.issues),
            selectinload(AuditPage.recommendations),
            selectinload(AuditPage.checklist_results),
        )
        .order_by(AuditPage.id)
    )
    return list(result.scalars().all())
