"""Result store adapter: the single read/write path for sites, jobs and page results."""

from collections import Counter
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aeo_audit.analysis.normalizer import PageRecord
from aeo_audit.analysis.scoring import AEOAnalysisResult, SEVERITIES, round_half_up
from aeo_audit.database import crud_jobs, crud_pages, crud_sites
from aeo_audit.database.db_session import get_session_factory
from aeo_audit.database.models import AuditJob, AuditPage, Site
from aeo_audit.utils.exceptions import DatabaseError
from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)

GLOBAL_LLMS_COVERAGE_MIN = 50
GLOBAL_SCHEMA_PERCENTAGE_MIN = 30
GLOBAL_MEDIA_SCORE_MIN = 70


def _percentage(count: int, total: int) -> int:
    return round_half_up(count / total * 100) if total > 0 else 0


def compute_job_stats(rows: list[tuple]) -> dict[str, Any]:
    """
    Compute job aggregates from stored page rows.

    Args:
        rows: (overall_score, is_document, has_schema, has_llms_reference, media_score) tuples

    Returns:
        Column values for the job
    """
    total = len(rows)
    scores = [row[0] or 0 for row in rows]
    media_scores = [row[4] for row in rows if row[4] is not None]
    return {
        "total_pages": total,
        "overall_score": round_half_up(sum(scores) / total) if total else 0,
        "document_percentage": _percentage(sum(1 for row in rows if row[1]), total),
        "schema_percentage": _percentage(sum(1 for row in rows if row[2]), total),
        "llms_coverage": _percentage(sum(1 for row in rows if row[3]), total),
        "media_accessibility_score": (
            round_half_up(sum(media_scores) / len(media_scores)) if media_scores else None
        ),
    }


def build_global_recommendations(job: AuditJob, critical_issues: int) -> list[str]:
    """Site-wide suggestions derived from job aggregates."""
    recommendations = []
    if job.llms_coverage < GLOBAL_LLMS_COVERAGE_MIN:
        recommendations.append("Create or update your llms.txt file to improve AI visibility of key pages")
    if job.schema_percentage < GLOBAL_SCHEMA_PERCENTAGE_MIN:
        recommendations.append("Add structured data using schema.org markup across more pages")
    if job.media_accessibility_score is not None and job.media_accessibility_score < GLOBAL_MEDIA_SCORE_MIN:
        recommendations.append("Improve media accessibility with better alt text and captions")
    if critical_issues > 0:
        recommendations.append(f"Fix {critical_issues} critical issues that are blocking AI engines")
    return recommendations


def _serialize_page(page: AuditPage) -> dict[str, Any]:
    return {
        "id": page.id,
        "url": page.url,
        "title": page.title,
        "status_code": page.status_code,
        "is_document": page.is_document,
        "document_type": page.document_type,
        "content_length": page.content_length,
        "has_schema": page.has_schema,
        "schema_types": page.schema_types or [],
        "has_llms_reference": page.has_llms_reference,
        "media_count": page.media_count,
        "media_accessibility_score": page.media_accessibility_score,
        "rendering_mode": page.rendering_mode,
        "rendering_confidence": page.rendering_confidence,
        "ssr_penalty": page.ssr_penalty,
        "overall_score": page.overall_score,
        "weighted_score": page.weighted_score,
        "category_scores": page.category_scores,
        "issues": [
            {
                "severity": issue.severity,
                "category": issue.category,
                "title": issue.title,
                "description": issue.description,
                "impact": issue.impact,
                "fix_priority": issue.fix_priority,
                "html_snippet": issue.html_snippet,
                "rule_parameters": issue.rule_parameters,
                "diagnostic": issue.diagnostic,
            }
            for issue in sorted(page.issues, key=lambda i: i.fix_priority, reverse=True)
        ],
        "recommendations": [
            {
                "category": rec.category,
                "title": rec.title,
                "description": rec.description,
                "implementation": rec.implementation,
                "expected_impact": rec.expected_impact,
                "effort_level": rec.effort_level,
                "priority_score": rec.priority_score,
            }
            for rec in sorted(page.recommendations, key=lambda r: r.priority_score, reverse=True)
        ],
        "checklist": [
            {
                "id": item.check_id,
                "name": item.check_name,
                "category": item.category,
                "weight": item.weight,
                "passed": item.passed,
                "details": item.details,
                "parameters": item.rule_parameters,
            }
            for item in sorted(page.checklist_results, key=lambda c: c.id)
        ],
    }


class ResultStore:
    """
    Persistence adapter for audits.

    Every method runs in its own session and commits before returning, so
    callers never hold a session across provider or LLM calls.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None) -> None:
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    async def upsert_site(self, owner_id: str, root_domain: str, root_url: str) -> Site:
        try:
            async with self.session_factory() as session:
                return await crud_sites.upsert_site(session, owner_id, root_domain, root_url)
        except SQLAlchemyError as e:
            logger.error("Failed to upsert site", root_domain=root_domain, error=str(e))
            raise DatabaseError(f"Failed to upsert site {root_domain}: {e}") from e

    async def create_job(self, site_id: int, start_url: str, max_pages: int) -> AuditJob:
        try:
            async with self.session_factory() as session:
                return await crud_jobs.create_job(session, site_id, start_url, max_pages)
        except SQLAlchemyError as e:
            logger.error("Failed to create audit job", site_id=site_id, error=str(e))
            raise DatabaseError(f"Failed to create audit job: {e}") from e

    async def get_job(self, job_id: UUID) -> Optional[AuditJob]:
        async with self.session_factory() as session:
            return await crud_jobs.get_job(session, job_id)

    async def mark_started(self, job_id: UUID, provider_job_id: str) -> AuditJob:
        """Store the provider handle and move the job to started."""
        async with self.session_factory() as session:
            job = await crud_jobs.get_job(session, job_id)
            if job is None:
                raise DatabaseError(f"Audit job {job_id} disappeared")
            return await crud_jobs.transition_job(
                session,
                job,
                crud_jobs.STATUS_STARTED,
                provider_job_id=provider_job_id,
            )

    async def mark_failed(self, job_pk: int, error_message: str) -> bool:
        async with self.session_factory() as session:
            changed = await crud_jobs.mark_failed(session, job_pk, error_message)
        if changed:
            logger.warning("Audit job failed", job_pk=job_pk, error=error_message)
        return changed

    async def claim_for_processing(self, job_pk: int) -> bool:
        async with self.session_factory() as session:
            return await crud_jobs.claim_for_processing(session, job_pk)

    async def record_progress(self, job_pk: int, progress_percent: int) -> None:
        async with self.session_factory() as session:
            await crud_jobs.record_progress(session, job_pk, progress_percent)

    async def is_terminal(self, job_pk: int) -> bool:
        async with self.session_factory() as session:
            status = await crud_jobs.get_job_status(session, job_pk)
        return status is None or status in crud_jobs.TERMINAL_STATUSES

    async def save_site_signals(self, job_pk: int, site_signals: dict) -> None:
        async with self.session_factory() as session:
            await crud_jobs.update_job_stats(session, job_pk, site_signals=site_signals)

    async def processed_urls(self, job_pk: int) -> set[str]:
        async with self.session_factory() as session:
            return await crud_pages.get_processed_urls(session, job_pk)

    async def save_page_analysis(
        self,
        job_pk: int,
        page: PageRecord,
        analysis: AEOAnalysisResult,
        media_count: int = 0,
        has_llms_reference: bool = False,
    ) -> bool:
        """
        Persist a page with its results.

        Returns:
            True if stored, False if the page was already stored for the job
        """
        async with self.session_factory() as session:
            await crud_pages.create_page(
                session,
                job_pk,
                page,
                analysis,
                media_count=media_count,
                has_llms_reference=has_llms_reference,
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info("Page already stored, skipping", job_pk=job_pk, url=page.url)
                return False
        return True

    async def refresh_job_stats(self, job_pk: int) -> dict[str, Any]:
        """
        Recompute and store job aggregates from the stored pages.

        A snapshot older than the one already on the job is not written, so
        total_pages never decreases while pages are stored concurrently.
        """
        async with self.session_factory() as session:
            rows = await crud_pages.list_page_stats(session, job_pk)
            stats = compute_job_stats(rows)
            stored = await crud_jobs.update_job_stats(session, job_pk, **stats)
        if not stored:
            logger.debug("Stale job statistics dropped", job_pk=job_pk, total_pages=stats["total_pages"])
        return stats

    async def complete_job(self, job_pk: int) -> bool:
        async with self.session_factory() as session:
            return await crud_jobs.complete_job(session, job_pk)

    async def get_job_report(self, job_id: UUID) -> Optional[dict[str, Any]]:
        """
        Build the results report for a job.

        Returns:
            None for unknown jobs, {"job_id", "status"} while the job is not
            completed, otherwise the full report
        """
        async with self.session_factory() as session:
            job = await crud_jobs.get_job(session, job_id)
            if job is None:
                return None
            if job.status != crud_jobs.STATUS_COMPLETED:
                return {"job_id": job.job_id, "status": job.status}

            site = await session.get(Site, job.site_id)
            pages = await crud_pages.list_pages_with_details(session, job.id)
            serialized = [_serialize_page(page) for page in pages]

        issue_counts = Counter({severity: 0 for severity in SEVERITIES})
        schema_types: set[str] = set()
        document_types: Counter = Counter()
        for page in serialized:
            for issue in page["issues"]:
                issue_counts[issue["severity"]] += 1
            schema_types.update(page["schema_types"])
            if page["is_document"] and page["document_type"]:
                document_types[page["document_type"]] += 1

        return {
            "job_id": job.job_id,
            "status": job.status,
            "site": {
                "id": site.id if site else job.site_id,
                "root_domain": site.root_domain if site else None,
                "root_url": site.root_url if site else job.start_url,
            },
            "started_at": job.started_at,
            "completed_at": job.completed_at,
            "summary": {
                "total_pages": job.total_pages,
                "overall_score": job.overall_score,
                "document_percentage": job.document_percentage,
                "schema_percentage": job.schema_percentage,
                "llms_coverage": job.llms_coverage,
                "media_accessibility_score": job.media_accessibility_score,
                "issue_counts": dict(issue_counts),
            },
            "site_signals": job.site_signals,
            "global_recommendations": build_global_recommendations(job, issue_counts["critical"]),
            "schema_types": sorted(schema_types),
            "document_types": dict(document_types),
            "pages": serialized,
        }
