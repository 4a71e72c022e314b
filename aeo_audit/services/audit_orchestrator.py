"""Crawl job orchestrator: start, poll, process and finalize site audits."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from aeo_audit.analysis.diagnostics import DiagnosticAnnotator
from aeo_audit.analysis.normalizer import PageRecord, normalize_page
from aeo_audit.analysis.rendering import RenderingClassifier
from aeo_audit.config.settings import Settings, settings as default_settings
from aeo_audit.crawler.provider import CrawlProvider
from aeo_audit.crawler.site_signals import SiteSignalFetcher, SiteSignals
from aeo_audit.database.crud_jobs import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
)
from aeo_audit.database.models import AuditJob
from aeo_audit.database.result_store import ResultStore
from aeo_audit.services.page_processor import PageProcessor
from aeo_audit.utils.exceptions import (
    ConfigurationError,
    JobNotFoundError,
    PageProcessingError,
    ValidationError,
)
from aeo_audit.utils.logging import (
    AuditLogger,
    clear_job_context,
    get_job_context,
    get_logger,
    restore_job_context,
    set_job_context,
)
from aeo_audit.utils.url_utils import extract_root_domain, normalize_url, site_base_url

logger = get_logger(__name__)

# Reported progress for the fixed points of the job lifecycle
COMPLETED_PROGRESS = 100
FAILED_PROGRESS = 80
PROCESSING_PROGRESS = 90
SUCCEEDED_PROGRESS = 85
FORCED_PROGRESS = 75
DEGRADED_PROGRESS = 70
PROVIDER_ERROR_MIN_PROGRESS = 5
RAMP_MAX_PROGRESS = 30
MID_PROGRESS = 50
MAX_RUNNING_PROGRESS = 99

CANCELLED_MESSAGE = "cancelled"

# Strong references to detached processing tasks until they finish
_background_tasks: set = set()


def _as_utc(value: datetime) -> datetime:
    """SQLite returns naive datetimes; they are stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def time_progress_floor(elapsed_seconds: float, config: Settings) -> int:
    """
    Progress floor derived from the time since the job started.

    Ramps to 30 over the first ramp window, holds 30 until the mid threshold,
    then 50.
    """
    if elapsed_seconds < config.progress_ramp_seconds:
        ramp = round(max(0.0, elapsed_seconds) / config.progress_ramp_seconds * RAMP_MAX_PROGRESS)
        return min(RAMP_MAX_PROGRESS, ramp)
    if elapsed_seconds < config.progress_mid_seconds:
        return RAMP_MAX_PROGRESS
    return MID_PROGRESS


class AuditOrchestrator:
    """
    Drives an audit job from crawl request to scored, persisted results.

    Provider faults never surface to pollers: they become job state
    transitions. Only configuration-class errors raise from start_audit.
    """

    AGENT_NAME = "audit_orchestrator"

    def __init__(
        self,
        provider: CrawlProvider,
        store: Optional[ResultStore] = None,
        config: Optional[Settings] = None,
        classifier: Optional[RenderingClassifier] = None,
        annotator: Optional[DiagnosticAnnotator] = None,
        signal_fetcher: Optional[SiteSignalFetcher] = None,
    ) -> None:
        self.config = config or default_settings
        self.provider = provider
        self.store = store or ResultStore()
        self.processor = PageProcessor(
            classifier=classifier,
            annotator=annotator or DiagnosticAnnotator.from_settings(self.config),
        )
        self.signal_fetcher = signal_fetcher or SiteSignalFetcher(self.config)
        self.audit = AuditLogger(self.AGENT_NAME)
        # Detached processing tasks still using the provider
        self._tasks: set = set()

    async def close(self) -> None:
        """Release the provider unless detached processing still needs it."""
        if self._tasks:
            logger.debug("Provider close deferred to background processing", pending_tasks=len(self._tasks))
            return
        await self.provider.close()

    def _resolve_max_pages(self, max_pages: Optional[int]) -> int:
        if max_pages is None:
            return self.config.default_max_pages
        if max_pages < 1:
            raise ValidationError(f"max_pages must be at least 1, got {max_pages}")
        return min(max_pages, self.config.max_pages_limit)

    async def start_audit(
        self,
        root_url: str,
        owner_id: str,
        max_pages: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Register a site audit and request the crawl.

        Args:
            root_url: URL entered by the caller
            owner_id: Owner of the site
            max_pages: Page limit (defaults to settings.default_max_pages)

        Returns:
            {"job_id", "site_id"}; a crawl that fails to start leaves the job failed

        Raises:
            InvalidURLError: If the URL is malformed or targets a local address
            ValidationError: If max_pages is not positive
            ConfigurationError: If the crawl provider rejects the configuration
            DatabaseError: If the site or job cannot be stored
        """
        start_url = normalize_url(root_url)
        limit = self._resolve_max_pages(max_pages)
        root_domain = extract_root_domain(start_url)

        site = await self.store.upsert_site(owner_id, root_domain, start_url)
        job = await self.store.create_job(site.id, start_url, limit)
        self.audit.set_job(job.job_id)
        self.audit.log_stage_start(
            "start",
            f"Requesting crawl of {start_url}",
            details={"site_id": site.id, "max_pages": limit},
        )

        try:
            provider_job_id = await self.provider.start(
                start_url,
                limit,
                self.config.crawl_max_depth,
                follow_links=True,
            )
        except ConfigurationError as e:
            self.audit.log_error("start", e, "Crawl provider rejected the configuration")
            await self.store.mark_failed(job.id, str(e))
            raise
        except Exception as e:
            self.audit.log_error("start", e, "Crawl provider failed to start the crawl")
            await self.store.mark_failed(job.id, f"Crawl provider failed to start: {e}")
        else:
            await self.store.mark_started(job.job_id, provider_job_id)
            self.audit.log_stage_complete(
                "start",
                "Crawl started",
                details={"provider_job_id": provider_job_id},
            )
        finally:
            clear_job_context()

        return {"job_id": job.job_id, "site_id": site.id}

    async def _get_job_or_raise(self, job_id: UUID) -> AuditJob:
        job = await self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Audit job {job_id} not found")
        return job

    async def _progress_from_provider(self, job: AuditJob, floor: int) -> int:
        """Query the provider and map its state to progress, triggering processing on terminal states."""
        try:
            provider_status = await self.provider.status(job.provider_job_id)
        except Exception as e:
            self.audit.log_stage_warning(
                "poll",
                "Crawl provider status check failed",
                details={"error": str(e), "provider_job_id": job.provider_job_id},
            )
            return max(floor, PROVIDER_ERROR_MIN_PROGRESS)

        state = provider_status.state
        if not state.is_terminal:
            return max(floor, provider_status.percent or 0)

        if state.is_degraded:
            # Audit whatever the provider harvested
            await self._trigger_processing(job, reason=f"crawl {state.value}")
            return DEGRADED_PROGRESS

        await self._trigger_processing(job, reason="crawl completed")
        return SUCCEEDED_PROGRESS

    async def poll_status(self, job_id: UUID) -> dict[str, Any]:
        """
        Report job status and progress, advancing the job when the crawl is done.

        Idempotent; provider faults are absorbed. Progress never decreases
        while the job is running.

        Args:
            job_id: Public job UUID

        Returns:
            {"job_id", "status", "progress_percent"}

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = await self._get_job_or_raise(job_id)
        if job.status == STATUS_COMPLETED:
            return {"job_id": job.job_id, "status": STATUS_COMPLETED, "progress_percent": COMPLETED_PROGRESS}
        if job.status == STATUS_FAILED:
            return {"job_id": job.job_id, "status": STATUS_FAILED, "progress_percent": FAILED_PROGRESS}

        set_job_context(job_id=job.job_id, stage="poll")
        try:
            if job.status == STATUS_PROCESSING:
                computed = PROCESSING_PROGRESS
            else:
                started_at = _as_utc(job.started_at or job.created_at)
                elapsed = (datetime.now(timezone.utc) - started_at).total_seconds()
                floor = time_progress_floor(elapsed, self.config)

                if elapsed >= self.config.progress_force_seconds:
                    await self._trigger_processing(job, reason="crawl time budget exceeded")
                    computed = FORCED_PROGRESS
                elif job.status == STATUS_PENDING or not job.provider_job_id:
                    computed = floor
                else:
                    computed = await self._progress_from_provider(job, floor)

            # Inline processing may already have finalized the job
            job = await self._get_job_or_raise(job_id)
            if job.status == STATUS_COMPLETED:
                return {"job_id": job.job_id, "status": STATUS_COMPLETED, "progress_percent": COMPLETED_PROGRESS}
            if job.status == STATUS_FAILED:
                return {"job_id": job.job_id, "status": STATUS_FAILED, "progress_percent": FAILED_PROGRESS}

            progress = min(MAX_RUNNING_PROGRESS, max(job.progress_percent or 0, computed))
            await self.store.record_progress(job.id, progress)
            logger.debug("Audit job polled", status=job.status, progress_percent=progress)
            return {"job_id": job.job_id, "status": job.status, "progress_percent": progress}
        finally:
            clear_job_context()

    async def get_results(self, job_id: UUID) -> dict[str, Any]:
        """
        Return the results report of a completed job, or its status otherwise.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        report = await self.store.get_job_report(job_id)
        if report is None:
            raise JobNotFoundError(f"Audit job {job_id} not found")
        return report

    async def cancel_audit(self, job_id: UUID) -> dict[str, Any]:
        """
        Stop a running audit.

        The job is marked failed with error "cancelled"; cancelling the crawl
        at the provider is best effort. Terminal jobs are left untouched.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = await self._get_job_or_raise(job_id)
        cancelled = await self.store.mark_failed(job.id, CANCELLED_MESSAGE)
        if cancelled and job.provider_job_id:
            try:
                await self.provider.cancel(job.provider_job_id)
            except Exception as e:
                logger.warning(
                    "Crawl provider cancellation failed",
                    job_id=str(job.job_id),
                    provider_job_id=job.provider_job_id,
                    error=str(e),
                )

        job = await self._get_job_or_raise(job_id)
        logger.info("Audit job cancellation requested", job_id=str(job.job_id), cancelled=cancelled)
        return {"job_id": job.job_id, "status": job.status, "cancelled": cancelled}

    async def _trigger_processing(self, job: AuditJob, reason: str) -> bool:
        """Claim the job and run processing inline or as a background task."""
        claimed = await self.store.claim_for_processing(job.id)
        if not claimed:
            logger.debug("Processing already claimed", job_id=str(job.job_id))
            return False

        logger.info("Audit job processing triggered", job_id=str(job.job_id), reason=reason)
        if self.config.process_in_background:
            task = asyncio.create_task(self._process_detached(job))
            self._tasks.add(task)
            _background_tasks.add(task)
            task.add_done_callback(_background_tasks.discard)
        else:
            await self._process_claimed(job)
        return True

    async def _process_detached(self, job: AuditJob) -> None:
        """Run processing as a detached task; the last one to finish releases the provider client."""
        try:
            await self._process_claimed(job)
        finally:
            self._tasks.discard(asyncio.current_task())
            if not self._tasks:
                await self.provider.close()

    async def process_job(self, job_id: UUID) -> bool:
        """
        Process the crawled pages of a job once.

        Only the caller that moves the job into processing runs the pipeline;
        every other call is a no-op.

        Returns:
            True if this call processed the job

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = await self._get_job_or_raise(job_id)
        claimed = await self.store.claim_for_processing(job.id)
        if not claimed:
            logger.info("Audit job already claimed", job_id=str(job.job_id), status=job.status)
            return False
        await self._process_claimed(job)
        return True

    async def _collect_site_signals(self, job: AuditJob) -> Optional[SiteSignals]:
        try:
            signals = await self.signal_fetcher.fetch(site_base_url(job.start_url))
            await self.store.save_site_signals(job.id, signals.to_dict())
            return signals
        except Exception as e:
            self.audit.log_stage_warning(
                "site_signals",
                "Site signals unavailable, continuing without them",
                details={"error": str(e)},
            )
            return None

    async def _fetch_results(self, job: AuditJob) -> list:
        if not job.provider_job_id:
            return []
        try:
            return await self.provider.results(job.provider_job_id)
        except Exception as e:
            self.audit.log_stage_warning(
                "processing",
                "Crawl provider results unavailable, finalizing with no pages",
                details={"error": str(e), "provider_job_id": job.provider_job_id},
            )
            return []

    def _normalize_pages(self, raw_pages: list, processed_urls: set[str]) -> list[PageRecord]:
        """Normalize payloads, dropping malformed ones and URLs already stored."""
        pages = []
        seen = set(processed_urls)
        for payload in raw_pages:
            try:
                page = normalize_page(payload)
            except PageProcessingError as e:
                logger.warning("Skipping malformed page payload", error=str(e))
                continue
            if page.url in seen:
                continue
            seen.add(page.url)
            pages.append(page)
        return pages

    async def _process_page(
        self,
        job: AuditJob,
        page: PageRecord,
        site_signals: Optional[SiteSignals],
        semaphore: asyncio.Semaphore,
    ) -> bool:
        async with semaphore:
            try:
                result = await self.processor.process(page, site_signals)
                if result is None:
                    return False
                if await self.store.is_terminal(job.id):
                    logger.info("Audit job no longer active, dropping page", url=page.url)
                    return False
                stored = await self.store.save_page_analysis(
                    job.id,
                    result.page,
                    result.analysis,
                    media_count=result.media_count,
                    has_llms_reference=result.has_llms_reference,
                )
                if stored:
                    await self.store.refresh_job_stats(job.id)
                return stored
            except Exception as e:
                self.audit.log_stage_warning(
                    "processing",
                    "Page skipped after processing error",
                    details={"url": page.url, "error": str(e), "error_type": type(e).__name__},
                )
                return False

    async def _process_claimed(self, job: AuditJob) -> None:
        """Run the page pipeline for a job this caller has claimed, then finalize it."""
        previous_context = get_job_context()
        self.audit.set_job(job.job_id)
        self.audit.log_stage_start("processing", f"Processing crawl results for {job.start_url}")
        start_time = time.time()

        try:
            site_signals = await self._collect_site_signals(job)
            raw_pages = await self._fetch_results(job)
            processed_urls = await self.store.processed_urls(job.id)
            pages = self._normalize_pages(raw_pages, processed_urls)

            semaphore = asyncio.Semaphore(max(1, self.config.page_processing_concurrency))
            outcomes = await asyncio.gather(
                *(self._process_page(job, page, site_signals, semaphore) for page in pages)
            )
            stats = await self.store.refresh_job_stats(job.id)
            completed = await self.store.complete_job(job.id)

            self.audit.log_stage_complete(
                "processing",
                "Audit job completed" if completed else "Audit job ended before completion",
                details={
                    "received_pages": len(raw_pages),
                    "stored_pages": sum(1 for stored in outcomes if stored),
                    "total_pages": stats["total_pages"],
                    "overall_score": stats["overall_score"],
                },
                duration_seconds=time.time() - start_time,
            )
        except Exception as e:
            self.audit.log_error("processing", e, "Audit job processing aborted")
            await self.store.mark_failed(job.id, f"Processing failed: {e}")
        finally:
            restore_job_context(previous_context)
