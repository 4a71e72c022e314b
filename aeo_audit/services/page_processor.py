"""Per-page pipeline: evaluate, classify, score and annotate one normalized page."""

from dataclasses import dataclass, replace
from typing import Optional

from aeo_audit.analysis import checklist
from aeo_audit.analysis.diagnostics import DiagnosticAnnotator
from aeo_audit.analysis.normalizer import PageRecord
from aeo_audit.analysis.page_signals import extract_signals
from aeo_audit.analysis.rendering import (
    HeuristicRenderingClassifier,
    RenderingClassifier,
    RenderingMode,
    RenderingResult,
)
from aeo_audit.analysis.scoring import AEOAnalysisResult, aggregate
from aeo_audit.crawler.site_signals import SiteSignals
from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)

# Documents are served as files; there is no client-side rendering to detect
DOCUMENT_RENDERING = RenderingResult(
    mode=RenderingMode.SSR,
    confidence=100,
    indicators=["Document served as a file"],
)


@dataclass(frozen=True)
class ProcessedPage:
    """A page ready to be persisted."""

    page: PageRecord
    analysis: AEOAnalysisResult
    media_count: int
    has_llms_reference: bool


class PageProcessor:
    """Runs the analysis chain for a single raw provider payload."""

    def __init__(
        self,
        classifier: Optional[RenderingClassifier] = None,
        annotator: Optional[DiagnosticAnnotator] = None,
    ) -> None:
        self.classifier = classifier or HeuristicRenderingClassifier()
        self.annotator = annotator or DiagnosticAnnotator()

    @staticmethod
    def should_skip(page: PageRecord) -> Optional[str]:
        """Return the reason a page is not audited, or None."""
        if not page.has_content:
            return "no content"
        if page.status_code >= 400:
            return f"status {page.status_code}"
        return None

    async def process(
        self,
        page: PageRecord,
        site_signals: Optional[SiteSignals] = None,
    ) -> Optional[ProcessedPage]:
        """
        Analyze one normalized page.

        Args:
            page: Page produced by normalize_page
            site_signals: Site-level robots.txt / llms.txt signals for the job

        Returns:
            ProcessedPage, or None when the page is skipped
        """
        reason = self.should_skip(page)
        if reason:
            logger.info("Skipping page", url=page.url, reason=reason)
            return None

        signals = extract_signals(page)
        items = checklist.evaluate(page, site_signals=site_signals, signals=signals)
        if page.is_document:
            rendering = DOCUMENT_RENDERING
        else:
            rendering = self.classifier.classify(page.html)

        analysis = aggregate(items, rendering, page)
        issues = await self.annotator.annotate(analysis.issues)
        analysis = replace(analysis, issues=issues)

        logger.debug(
            "Page analyzed",
            url=page.url,
            overall_score=analysis.overall_score,
            rendering_mode=rendering.mode.value,
            issues=len(issues),
        )
        return ProcessedPage(
            page=page,
            analysis=analysis,
            media_count=signals.media_count,
            has_llms_reference=site_signals.references(page.url) if site_signals else False,
        )
