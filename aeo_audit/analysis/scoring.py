"""Combine checklist results and rendering verdict into per-page scores, issues and recommendations."""

import math
from dataclasses import dataclass, field
from typing import Callable, Optional

from aeo_audit.analysis.checklist import (
    AI_OPTIMIZATION,
    CATEGORIES,
    CONTENT_QUALITY,
    IN_DEPTH_WORDS,
    MEDIA_ACCESSIBILITY,
    SCHEMA_STRUCTURED_DATA,
    TECHNICAL_HEALTH,
    TITLE_MAX_LENGTH,
    TITLE_MIN_LENGTH,
    ChecklistItem,
)
from aeo_audit.analysis.normalizer import PageRecord
from aeo_audit.analysis.rendering import RenderingMode, RenderingResult

# Score deduction for content that needs JavaScript to appear
RENDERING_PENALTIES = {
    RenderingMode.SSR: 0,
    RenderingMode.HYBRID: 3,
    RenderingMode.CSR: 8,
}

# Business weighting of categories for the weighted score
SCORING_WEIGHTS = {
    CONTENT_QUALITY: 0.25,
    TECHNICAL_HEALTH: 0.20,
    AI_OPTIMIZATION: 0.20,
    MEDIA_ACCESSIBILITY: 0.15,
    SCHEMA_STRUCTURED_DATA: 0.20,
}

LOW_MEDIA_SCORE = 50
SNIPPET_LENGTH = 200

SEVERITY_CRITICAL = "critical"
SEVERITY_WARNING = "warning"
SEVERITY_INFO = "info"
SEVERITIES = (SEVERITY_CRITICAL, SEVERITY_WARNING, SEVERITY_INFO)


@dataclass(frozen=True)
class Issue:
    """Problem synthesized from a failed high-signal check."""

    severity: str
    category: str
    title: str
    description: str
    impact: str
    fix_priority: int
    check_id: Optional[str] = None
    html_snippet: Optional[str] = None
    rule_parameters: dict = field(default_factory=dict)
    diagnostic: Optional[str] = None


@dataclass(frozen=True)
class Recommendation:
    """Independent suggestion for the next improvement."""

    category: str
    title: str
    description: str
    implementation: str
    expected_impact: str
    effort_level: str
    priority_score: int


@dataclass(frozen=True)
class AEOAnalysisResult:
    """Per-page scoring bundle; recomputed wholesale, never patched."""

    overall_score: int
    weighted_score: float
    category_scores: dict
    rendering_mode: RenderingMode
    rendering_confidence: int
    ssr_penalty: int
    issues: list
    recommendations: list
    checklist_results: list

    @property
    def media_accessibility_score(self) -> int:
        return self.category_scores.get(MEDIA_ACCESSIBILITY, 0)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative scores."""
    return int(math.floor(value + 0.5))


def ratio_score(items: list[ChecklistItem]) -> int:
    """round(100 * earned / possible) over a set of checklist items."""
    total = sum(item.weight for item in items)
    if total <= 0:
        return 0
    earned = sum(item.weight for item in items if item.passed)
    return round_half_up(100 * earned / total)


# ============================================================
# Issues
# ============================================================

def _issue(
    item: ChecklistItem,
    severity: str,
    title: str,
    description: str,
    impact: str,
    fix_priority: int,
    snippet: Optional[str] = None,
) -> Issue:
    return Issue(
        severity=severity,
        category=item.category,
        title=title,
        description=description,
        impact=impact,
        fix_priority=fix_priority,
        check_id=item.id,
        html_snippet=snippet[:SNIPPET_LENGTH] if snippet else None,
        rule_parameters=dict(item.parameters),
    )


def _head_snippet(page: Optional[PageRecord]) -> Optional[str]:
    if page is None or not page.html:
        return None
    lowered = page.html.lower()
    start = lowered.find("<head")
    if start < 0:
        start = 0
    return page.html[start:start + SNIPPET_LENGTH]


def build_issues(
    checklist: list[ChecklistItem],
    rendering: RenderingResult,
    category_scores: dict,
    page: Optional[PageRecord] = None,
) -> list[Issue]:
    """
    Synthesize issues from specific high-signal failures.

    Args:
        checklist: Evaluated checklist items
        rendering: Rendering classifier verdict
        category_scores: Per-category scores for the page
        page: Page the checklist was evaluated on (for HTML snippets)

    Returns:
        Issues sorted by fix priority, highest first
    """
    failed = {item.id: item for item in checklist if not item.passed}
    head = _head_snippet(page)
    issues: list[Issue] = []

    if "title_present" in failed:
        issues.append(_issue(
            failed["title_present"], SEVERITY_CRITICAL, "Missing page title",
            "The page has no <title> element.",
            "Search and answer engines use the title as the primary label for the page.",
            10, head,
        ))
    elif "title_length" in failed:
        item = failed["title_length"]
        length = item.parameters.get("length", 0)
        if length < TITLE_MIN_LENGTH:
            issues.append(_issue(
                item, SEVERITY_WARNING, "Title too short",
                f"The title is {length} characters; aim for {TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH}.",
                "Short titles give engines little context about the page topic.", 7, head,
            ))
        else:
            issues.append(_issue(
                item, SEVERITY_WARNING, "Title too long",
                f"The title is {length} characters; aim for {TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH}.",
                "Long titles are truncated in results and answer citations.", 6, head,
            ))

    if "status_ok" in failed:
        item = failed["status_ok"]
        issues.append(_issue(
            item, SEVERITY_CRITICAL, "Page does not return a success status",
            f"The page responded with HTTP {item.parameters.get('status_code')}.",
            "Pages that do not return 2xx are dropped from indexes.", 10,
        ))

    if "https" in failed:
        issues.append(_issue(
            failed["https"], SEVERITY_CRITICAL, "Page not served over HTTPS",
            "The page is served over plain HTTP.",
            "Insecure pages are ranked lower and flagged by browsers.", 9,
        ))

    if "min_content" in failed:
        item = failed["min_content"]
        issues.append(_issue(
            item, SEVERITY_CRITICAL, "Very thin content",
            f"The page has only {item.parameters.get('word_count', 0)} words of content.",
            "Answer engines rarely cite pages without substantive text.", 9,
        ))
    elif "recommended_content" in failed:
        item = failed["recommended_content"]
        issues.append(_issue(
            item, SEVERITY_WARNING, "Thin content",
            f"The page has {item.parameters.get('word_count', 0)} words; 300+ is recommended.",
            "Short pages cover topics too shallowly to be chosen as a source.", 7,
        ))

    if "ai_crawlers_allowed" in failed:
        item = failed["ai_crawlers_allowed"]
        blocked = ", ".join(item.parameters.get("blocked", []))
        issues.append(_issue(
            item, SEVERITY_CRITICAL, "robots.txt blocks AI crawlers",
            f"robots.txt disallows: {blocked}.",
            "Blocked crawlers cannot read the site, so it cannot appear in AI answers.", 9,
        ))

    if "meta_description_present" in failed:
        issues.append(_issue(
            failed["meta_description_present"], SEVERITY_WARNING, "Missing meta description",
            "The page has no meta description.",
            "Engines fall back to arbitrary page text when summarizing the page.", 8, head,
        ))

    if "single_h1" in failed:
        item = failed["single_h1"]
        if item.parameters.get("h1_count", 0) == 0:
            issues.append(_issue(
                item, SEVERITY_WARNING, "Missing H1 heading",
                "The page has no H1 heading.",
                "The H1 tells engines what the main topic of the page is.", 8,
            ))
        else:
            issues.append(_issue(
                item, SEVERITY_INFO, "Multiple H1 headings",
                f"The page has {item.parameters.get('h1_count')} H1 headings.",
                "Several H1s blur the primary topic of the page.", 4,
            ))

    if rendering.mode == RenderingMode.CSR:
        issues.append(Issue(
            severity=SEVERITY_WARNING,
            category=AI_OPTIMIZATION,
            title="Content rendered client-side",
            description="Primary content only appears after JavaScript runs.",
            impact="Most AI crawlers do not execute JavaScript and see an empty page.",
            fix_priority=7,
            check_id="server_rendered",
            html_snippet=page.html[:SNIPPET_LENGTH] if page and page.html else None,
            rule_parameters={"confidence": rendering.confidence, "indicators": list(rendering.indicators)},
        ))

    if "alt_coverage" in failed:
        item = failed["alt_coverage"]
        issues.append(_issue(
            item, SEVERITY_WARNING, "Images missing alt text",
            f"Only {item.parameters.get('with_alt', 0)} of {item.parameters.get('images', 0)} images have alt text.",
            "Engines cannot describe or cite images without alt text.", 7,
        ))
    elif category_scores.get(MEDIA_ACCESSIBILITY, 100) < LOW_MEDIA_SCORE:
        media_failures = [item.id for item in checklist if item.category == MEDIA_ACCESSIBILITY and not item.passed]
        issues.append(Issue(
            severity=SEVERITY_WARNING,
            category=MEDIA_ACCESSIBILITY,
            title="Low media accessibility",
            description=f"Media & accessibility score is {category_scores.get(MEDIA_ACCESSIBILITY)}.",
            impact="Inaccessible media and links are skipped by assistive tools and crawlers alike.",
            fix_priority=6,
            rule_parameters={"failed_checks": media_failures},
        ))

    if "canonical_present" in failed:
        issues.append(_issue(
            failed["canonical_present"], SEVERITY_WARNING, "Missing canonical link",
            "The page does not declare a canonical URL.",
            "Duplicate URLs split ranking signals.", 6, head,
        ))

    if "viewport" in failed:
        issues.append(_issue(
            failed["viewport"], SEVERITY_WARNING, "Missing viewport meta tag",
            "The page does not configure a mobile viewport.",
            "Pages that are not mobile friendly are demoted.", 6, head,
        ))

    if "no_noai" in failed:
        issues.append(_issue(
            failed["no_noai"], SEVERITY_WARNING, "Page opts out of AI use",
            "A robots meta tag carries a noai directive.",
            "AI engines honoring the directive will not use this page.", 6, head,
        ))

    if "json_ld_valid" in failed:
        item = failed["json_ld_valid"]
        issues.append(_issue(
            item, SEVERITY_WARNING, "Invalid JSON-LD",
            f"{item.parameters.get('invalid', 0)} JSON-LD block(s) could not be parsed.",
            "Malformed structured data is ignored entirely.", 5,
        ))

    return sorted(issues, key=lambda i: i.fix_priority, reverse=True)


# ============================================================
# Recommendations
# ============================================================

RecommendationRule = Callable[[dict, RenderingResult], Optional[Recommendation]]


def _passed(items: dict, check_id: str) -> bool:
    item = items.get(check_id)
    return item is None or item.passed


def _rec_meta_description(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if _passed(items, "meta_description_present") and not _passed(items, "meta_description_length"):
        length = items["meta_description_length"].parameters.get("length", 0)
        return Recommendation(
            CONTENT_QUALITY, "Tune meta description length",
            f"The meta description is {length} characters.",
            "Rewrite it as a 120-160 character summary that answers the page's main question.",
            "Better snippets in search results and AI summaries.", "low", 6,
        )
    return None


def _rec_json_ld(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if not _passed(items, "json_ld_present"):
        return Recommendation(
            SCHEMA_STRUCTURED_DATA, "Add JSON-LD structured data",
            "The page carries no schema.org markup.",
            "Add a JSON-LD block describing the page (Organization, WebPage, Article or Product).",
            "Engines can extract entities and facts directly.", "medium", 8,
        )
    return None


def _rec_faq(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if _passed(items, "json_ld_present") and not _passed(items, "schema_faq"):
        return Recommendation(
            SCHEMA_STRUCTURED_DATA, "Mark up questions with FAQPage",
            "Existing structured data does not describe the questions the page answers.",
            "Add FAQPage markup for the question-and-answer sections of the page.",
            "Eligible for question-style answer features.", "medium", 5,
        )
    return None


def _rec_breadcrumb(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if not _passed(items, "schema_breadcrumb"):
        return Recommendation(
            SCHEMA_STRUCTURED_DATA, "Add BreadcrumbList markup",
            "The page position in the site hierarchy is not described.",
            "Emit a BreadcrumbList JSON-LD block that mirrors the visible breadcrumb.",
            "Clearer site structure for crawlers.", "low", 4,
        )
    return None


def _rec_readability(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if not _passed(items, "readability") or not _passed(items, "sentence_length"):
        return Recommendation(
            CONTENT_QUALITY, "Simplify sentences",
            "The text is harder to read than recommended.",
            "Shorten sentences, prefer common words and split long paragraphs.",
            "Text is easier to quote in direct answers.", "medium", 6,
        )
    return None


def _rec_depth(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if _passed(items, "min_content") and not _passed(items, "in_depth_content"):
        return Recommendation(
            CONTENT_QUALITY, "Deepen topical coverage",
            f"The page has fewer than {IN_DEPTH_WORDS} words.",
            "Cover related sub-questions, examples and definitions in dedicated sections.",
            "More queries the page can answer.", "high", 5,
        )
    return None


def _rec_llms_txt(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if not _passed(items, "llms_txt"):
        return Recommendation(
            AI_OPTIMIZATION, "Publish an llms.txt file",
            "The site has no llms.txt guide for language models.",
            "Serve /llms.txt listing the key pages with one-line descriptions.",
            "Language models find the most relevant pages first.", "low", 7,
        )
    return None


def _rec_question_headings(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if not _passed(items, "question_headings"):
        return Recommendation(
            AI_OPTIMIZATION, "Phrase subheadings as questions",
            "No heading is written as a question.",
            "Rewrite key subheadings as the questions users ask and answer them right below.",
            "Sections map directly onto answer-engine queries.", "low", 6,
        )
    return None


def _rec_og_image(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if not _passed(items, "og_image"):
        return Recommendation(
            TECHNICAL_HEALTH, "Add an Open Graph image",
            "The page has no og:image.",
            "Add an og:image meta tag pointing to a 1200x630 image.",
            "Richer previews when the page is shared or cited.", "low", 4,
        )
    return None


def _rec_lists(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if not _passed(items, "structured_lists"):
        return Recommendation(
            AI_OPTIMIZATION, "Present key facts as lists",
            "The page has no lists.",
            "Turn steps, features and comparisons into ordered or unordered lists.",
            "Lists are extracted verbatim into answers.", "low", 5,
        )
    return None


def _rec_rendering(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if rendering.mode == RenderingMode.SSR:
        return None
    priority = 9 if rendering.mode == RenderingMode.CSR else 5
    return Recommendation(
        AI_OPTIMIZATION, "Server-render primary content",
        f"Rendering mode detected as {rendering.mode.value}.",
        "Use server-side rendering or prerendering so the initial HTML contains the content.",
        "Non-JavaScript crawlers see the full page.", "high", priority,
    )


def _rec_author(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if not _passed(items, "author_attribution"):
        return Recommendation(
            AI_OPTIMIZATION, "Attribute content to an author",
            "No author is declared.",
            "Add a visible byline and an author property in structured data.",
            "Stronger expertise signals for source selection.", "low", 5,
        )
    return None


def _rec_freshness(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if not _passed(items, "freshness"):
        return Recommendation(
            AI_OPTIMIZATION, "Expose publication and update dates",
            "The page does not state when it was published or updated.",
            "Add <time datetime> elements and datePublished/dateModified in structured data.",
            "Fresh content is preferred for time-sensitive answers.", "low", 4,
        )
    return None


def _rec_alt_quality(items: dict, rendering: RenderingResult) -> Optional[Recommendation]:
    if not _passed(items, "alt_quality"):
        return Recommendation(
            MEDIA_ACCESSIBILITY, "Write descriptive alt text",
            "Some alt texts are file names or single generic words.",
            "Describe what each image shows and why it matters in a short sentence.",
            "Images become understandable to crawlers and screen readers.", "low", 5,
        )
    return None


RECOMMENDATION_RULES: tuple[RecommendationRule, ...] = (
    _rec_meta_description,
    _rec_json_ld,
    _rec_faq,
    _rec_breadcrumb,
    _rec_readability,
    _rec_depth,
    _rec_llms_txt,
    _rec_question_headings,
    _rec_og_image,
    _rec_lists,
    _rec_rendering,
    _rec_author,
    _rec_freshness,
    _rec_alt_quality,
)


def build_recommendations(checklist: list[ChecklistItem], rendering: RenderingResult) -> list[Recommendation]:
    """Collect independent improvement suggestions, highest priority first."""
    items = {item.id: item for item in checklist}
    recommendations = []
    for rule in RECOMMENDATION_RULES:
        recommendation = rule(items, rendering)
        if recommendation is not None:
            recommendations.append(recommendation)
    return sorted(recommendations, key=lambda r: r.priority_score, reverse=True)


def aggregate(
    checklist: list[ChecklistItem],
    rendering: RenderingResult,
    page: Optional[PageRecord] = None,
) -> AEOAnalysisResult:
    """
    Score a page from its checklist results and rendering verdict.

    Args:
        checklist: Evaluated checklist items (full rubric)
        rendering: Rendering classifier verdict
        page: Page the checklist was evaluated on, used for issue snippets

    Returns:
        AEOAnalysisResult with scores, issues and recommendations
    """
    checklist_score = ratio_score(checklist)
    penalty = RENDERING_PENALTIES[rendering.mode]
    overall = max(0, min(100, checklist_score - penalty))

    category_scores = {
        category: ratio_score([item for item in checklist if item.category == category])
        for category in CATEGORIES
    }
    weighted = sum(category_scores[c] * SCORING_WEIGHTS[c] for c in CATEGORIES) - penalty
    weighted = round(max(0.0, min(100.0, weighted)), 2)

    return AEOAnalysisResult(
        overall_score=overall,
        weighted_score=weighted,
        category_scores=category_scores,
        rendering_mode=rendering.mode,
        rendering_confidence=rendering.confidence,
        ssr_penalty=penalty,
        issues=build_issues(checklist, rendering, category_scores, page),
        recommendations=build_recommendations(checklist, rendering),
        checklist_results=list(checklist),
    )
