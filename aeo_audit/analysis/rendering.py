"""Heuristic classification of a page's rendering strategy (SSR, CSR, HYBRID).

The classifier looks only at the initial HTML response: content that exists
before the first executable script is what a non-JS crawler sees. It is a
hand-weighted heuristic; hydration-heavy pages that are fine for search may
still be scored CSR.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from bs4 import BeautifulSoup

from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)


class RenderingMode(str, Enum):
    """Where the meaningful content of a page comes from."""

    SSR = "SSR"
    CSR = "CSR"
    HYBRID = "HYBRID"


@dataclass(frozen=True)
class RenderingResult:
    """Classifier verdict for one page."""

    mode: RenderingMode
    confidence: int
    indicators: list = field(default_factory=list)
    warnings: list = field(default_factory=list)


class RenderingClassifier(ABC):
    """Single-method interface so classifiers can be swapped or compared."""

    @abstractmethod
    def classify(self, html: str) -> RenderingResult:
        """Classify the rendering mode of an HTML document."""


# Scripts that carry data rather than code do not delay content
EXECUTABLE_SCRIPT_RE = re.compile(
    r"<script(?![^>]*type=[\"']?(?:application/(?:ld\+)?json|text/template|text/x-template))[^>]*>",
    re.I,
)
SSR_BLOCK_RE = re.compile(r"<(h1|h2|h3|article|main|section)[\s>]", re.I)
SSR_PARAGRAPH_RE = re.compile(r"<p[^>]*>[^<]{20,}", re.I)
STRUCTURE_RE = re.compile(r"<(h1|h2|nav|main)[\s>]", re.I)
SEMANTIC_RE = re.compile(r"<(article|section|header|footer|aside)[\s>]", re.I)
LOADING_RE = re.compile(
    r"Loading\.\.\.|Please enable JavaScript|You need to enable JavaScript|JavaScript is required",
    re.I,
)

# Known framework mount points: React/CRA, Vue, Next.js, Nuxt, Gatsby
MOUNT_POINT_IDS = ("root", "app", "__next", "__nuxt", "___gatsby")
MAX_COUNTED_MOUNTS = 2

EMPTY_MOUNT_SCORE = 25
LOADING_STATE_SCORE = 20
THIN_CONTENT_SCORE = 30
SSR_CONTENT_SCORE = 40
RICH_CONTENT_SCORE = 30
STRUCTURE_SCORE = 20
SEMANTIC_SCORE = 10

RICH_WORD_THRESHOLD = 50

STOPWORDS = {
    "this", "that", "with", "from", "have", "will", "your", "they", "their",
    "there", "been", "were", "what", "when", "which", "about", "would",
    "could", "should", "these", "those", "into", "than", "then", "them",
    "some", "more", "also", "just", "only", "very", "over", "such",
}


def _empty_mount_re(mount_id: str) -> re.Pattern:
    return re.compile(
        rf"<div[^>]*\bid=[\"']{re.escape(mount_id)}[\"'][^>]*>\s*</div>",
        re.I,
    )


EMPTY_MOUNT_RES = {mount_id: _empty_mount_re(mount_id) for mount_id in MOUNT_POINT_IDS}


def count_meaningful_words(html: str) -> int:
    """Count visible words longer than three letters that are not stopwords."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    words = re.findall(r"[^\W\d_]+", soup.get_text(" "))
    return sum(1 for w in words if len(w) > 3 and w.lower() not in STOPWORDS)


class HeuristicRenderingClassifier(RenderingClassifier):
    """Scores CSR and SSR evidence from structural signals in the raw HTML."""

    def classify(self, html: str) -> RenderingResult:
        html = html or ""
        indicators: list[str] = []
        warnings: list[str] = []

        script_match = EXECUTABLE_SCRIPT_RE.search(html)
        before_scripts = html[: script_match.start()] if script_match else html

        has_ssr_content = bool(
            SSR_BLOCK_RE.search(before_scripts) or SSR_PARAGRAPH_RE.search(before_scripts)
        )
        meaningful_words = count_meaningful_words(html)
        rich_content = meaningful_words > RICH_WORD_THRESHOLD

        empty_mounts = [mount_id for mount_id, pattern in EMPTY_MOUNT_RES.items() if pattern.search(html)]
        has_loading_state = bool(LOADING_RE.search(html))

        csr_score = 0
        for mount_id in empty_mounts[:MAX_COUNTED_MOUNTS]:
            csr_score += EMPTY_MOUNT_SCORE
            indicators.append(f"Empty #{mount_id} mount point")
        if has_loading_state:
            csr_score += LOADING_STATE_SCORE
            indicators.append("Client-side loading placeholder")
        if not rich_content:
            csr_score += THIN_CONTENT_SCORE
            indicators.append(f"Only {meaningful_words} meaningful words in initial HTML")

        ssr_score = 0
        if has_ssr_content:
            ssr_score += SSR_CONTENT_SCORE
            indicators.append("Content present before first script")
        if rich_content:
            ssr_score += RICH_CONTENT_SCORE
            indicators.append(f"{meaningful_words} meaningful words in initial HTML")
        if STRUCTURE_RE.search(html):
            ssr_score += STRUCTURE_SCORE
            indicators.append("Heading or navigation structure present")
        if SEMANTIC_RE.search(html):
            ssr_score += SEMANTIC_SCORE
            indicators.append("Semantic HTML elements present")

        if csr_score > 50 and ssr_score < 30:
            mode = RenderingMode.CSR
            confidence = min(95, csr_score + 20)
            warnings.append("Primary content depends on JavaScript; AI crawlers may see an empty page")
        elif ssr_score > 70 and csr_score < 30:
            mode = RenderingMode.SSR
            confidence = min(95, ssr_score + 10)
        else:
            mode = RenderingMode.HYBRID
            confidence = 60 if abs(ssr_score - csr_score) < 20 else 80
            warnings.append("Part of the content may require JavaScript to render")

        logger.debug(
            "Rendering mode classified",
            mode=mode.value,
            confidence=confidence,
            csr_score=csr_score,
            ssr_score=ssr_score,
        )
        return RenderingResult(mode=mode, confidence=confidence, indicators=indicators, warnings=warnings)
