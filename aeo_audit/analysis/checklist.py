"""Weighted rule checklist evaluated against every crawled page.

The rubric is module-level data: every page is evaluated against the same
rules, so the sum of weights is a constant and only the earned subset
varies. Rules that cannot be verified with the signals at hand (link rot,
response timing, site files that were not fetched, checks that do not apply
to the page) pass rather than fail.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from aeo_audit.analysis.normalizer import PageRecord
from aeo_audit.analysis.page_signals import PageSignals, extract_signals
from aeo_audit.crawler.site_signals import SiteSignals
from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)

# Categories
CONTENT_QUALITY = "content_quality"
TECHNICAL_HEALTH = "technical_health"
MEDIA_ACCESSIBILITY = "media_accessibility"
SCHEMA_STRUCTURED_DATA = "schema_structured_data"
AI_OPTIMIZATION = "ai_optimization"

CATEGORIES = (
    CONTENT_QUALITY,
    TECHNICAL_HEALTH,
    MEDIA_ACCESSIBILITY,
    SCHEMA_STRUCTURED_DATA,
    AI_OPTIMIZATION,
)

CATEGORY_LABELS = {
    CONTENT_QUALITY: "Content Quality",
    TECHNICAL_HEALTH: "Technical Health",
    MEDIA_ACCESSIBILITY: "Media & Accessibility",
    SCHEMA_STRUCTURED_DATA: "Schema & Structured Data",
    AI_OPTIMIZATION: "AI Optimization",
}

# Weights
CRITICAL = 2.0
HIGH = 1.5
MEDIUM = 1.0
STANDARD = 0.75
LOW = 0.5
BONUS = 0.25

# Thresholds
TITLE_MIN_LENGTH = 30
TITLE_MAX_LENGTH = 60
META_DESCRIPTION_MIN_LENGTH = 120
META_DESCRIPTION_MAX_LENGTH = 160
MIN_WORDS = 100
RECOMMENDED_WORDS = 300
IN_DEPTH_WORDS = 800
MIN_FLESCH = 60
MAX_AVG_SENTENCE_LENGTH = 25
MIN_ALT_COVERAGE = 0.8
MIN_TEXT_HTML_RATIO = 0.10
MAX_HTML_BYTES = 500_000
MIN_INTERNAL_LINKS = 3

ARTICLE_TYPES = {"Article", "BlogPosting", "NewsArticle", "TechArticle", "Report"}
SITE_IDENTITY_TYPES = {"Organization", "WebSite", "LocalBusiness", "Corporation", "Person"}

STOPWORDS = {
    "the", "and", "for", "with", "from", "that", "this", "your", "our", "you",
    "are", "was", "how", "what", "why", "who", "a", "an", "of", "to", "in", "on",
}

Outcome = tuple[bool, str, dict[str, Any]]


@dataclass(frozen=True)
class ChecklistItem:
    """Outcome of one rule for one page."""

    id: str
    name: str
    category: str
    weight: float
    passed: bool
    details: str = ""
    parameters: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ChecklistRule:
    """A rubric entry: identity, category, weight and the check itself."""

    id: str
    name: str
    category: str
    weight: float
    check: Callable[[PageSignals, PageRecord, Optional[SiteSignals]], Outcome]
    # Rules about HTML markup that have no meaning for PDFs and other documents
    html_only: bool = False


def _words(text: Optional[str]) -> set[str]:
    return {w for w in re.findall(r"[a-z0-9]+", (text or "").lower()) if w not in STOPWORDS and len(w) > 2}


# ============================================================
# Content Quality
# ============================================================

def _title_present(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if s.title:
        return True, "Page has a title", {"title": s.title}
    return False, "Page has no <title>", {}


def _title_length(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    params = {"length": s.title_length, "min": TITLE_MIN_LENGTH, "max": TITLE_MAX_LENGTH}
    if not s.title:
        return False, "No title to measure", params
    ok = TITLE_MIN_LENGTH <= s.title_length <= TITLE_MAX_LENGTH
    return ok, f"Title is {s.title_length} characters", params


def _meta_description_present(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if s.meta_description:
        return True, "Meta description present", {"length": s.meta_description_length}
    return False, "No meta description", {}


def _meta_description_length(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    params = {
        "length": s.meta_description_length,
        "min": META_DESCRIPTION_MIN_LENGTH,
        "max": META_DESCRIPTION_MAX_LENGTH,
    }
    if not s.meta_description:
        return False, "No meta description to measure", params
    ok = META_DESCRIPTION_MIN_LENGTH <= s.meta_description_length <= META_DESCRIPTION_MAX_LENGTH
    return ok, f"Meta description is {s.meta_description_length} characters", params


def _single_h1(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.h1_count == 1, f"{s.h1_count} H1 heading(s) found", {"h1_count": s.h1_count}


def _subheadings(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return (
        s.subheading_count >= 2,
        f"{s.subheading_count} subheading(s) found",
        {"count": s.subheading_count, "min": 2},
    )


def _heading_hierarchy(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    levels = s.heading_levels
    if not levels:
        return False, "Page has no headings", {}
    for previous, current in zip(levels, levels[1:]):
        if current > previous + 1:
            return False, f"Heading level jumps from h{previous} to h{current}", {"from": previous, "to": current}
    return True, "Heading levels are nested without gaps", {}


def _min_words(threshold: int) -> Callable[[PageSignals, PageRecord, Optional[SiteSignals]], Outcome]:
    def check(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
        return (
            s.word_count >= threshold,
            f"{s.word_count} words of content",
            {"word_count": s.word_count, "min": threshold},
        )

    return check


def _readability(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    score = round(s.flesch_score, 1)
    return score >= MIN_FLESCH, f"Flesch reading ease {score}", {"flesch": score, "min": MIN_FLESCH}


def _sentence_length(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    avg = round(s.avg_sentence_length, 1)
    if s.word_count == 0:
        return False, "No sentences to measure", {"average": 0}
    return (
        avg <= MAX_AVG_SENTENCE_LENGTH,
        f"Average sentence length {avg} words",
        {"average": avg, "max": MAX_AVG_SENTENCE_LENGTH},
    )


def _paragraphs(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.paragraph_count >= 3, f"{s.paragraph_count} paragraph(s)", {"count": s.paragraph_count, "min": 3}


def _lists_or_tables(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    found = s.list_count + s.table_count
    return found > 0, f"{s.list_count} list(s), {s.table_count} table(s)", {"lists": s.list_count, "tables": s.table_count}


def _title_h1_alignment(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if not s.title or not s.h1_texts:
        return False, "Title or H1 missing", {}
    shared = _words(s.title) & _words(s.h1_texts[0])
    return bool(shared), f"{len(shared)} shared term(s) between title and H1", {"shared_terms": sorted(shared)}


def _text_html_ratio(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if s.html_length == 0:
        return True, "No HTML markup to compare", {}
    ratio = round(s.text_length / s.html_length, 3)
    return ratio >= MIN_TEXT_HTML_RATIO, f"Text to HTML ratio {ratio:.1%}", {"ratio": ratio, "min": MIN_TEXT_HTML_RATIO}


# ============================================================
# Technical Health
# ============================================================

def _https(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.is_https, "Served over HTTPS" if s.is_https else "Served over plain HTTP", {"url": s.url}


def _status_ok(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return 200 <= s.status_code < 300, f"HTTP status {s.status_code}", {"status_code": s.status_code}


def _canonical_present(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if s.canonical_url:
        return True, "Canonical link declared", {"canonical": s.canonical_url}
    return False, "No canonical link", {}


def _canonical_valid(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if not s.canonical_url:
        return True, "No canonical link to validate", {}
    parsed = urlparse(s.canonical_url)
    ok = parsed.scheme in ("http", "https") and bool(parsed.netloc)
    return ok, "Canonical is an absolute URL" if ok else "Canonical is relative or malformed", {"canonical": s.canonical_url}


def _viewport(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.has_viewport, "Viewport meta tag present" if s.has_viewport else "No viewport meta tag", {}


def _lang(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return bool(s.lang), f"Language: {s.lang}" if s.lang else "No lang attribute", {"lang": s.lang}


def _charset(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.has_charset, "Charset declared" if s.has_charset else "No charset declaration", {}


def _indexable(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return not s.noindex, "Page is indexable" if not s.noindex else "Page is marked noindex", {"robots": s.robots_directives}


def _favicon(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.has_favicon, "Favicon linked" if s.has_favicon else "No favicon link", {}


def _html_size(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.html_length <= MAX_HTML_BYTES, f"HTML is {s.html_length} bytes", {"bytes": s.html_length, "max": MAX_HTML_BYTES}


def _broken_links(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    # Link targets are not fetched, so rot cannot be verified
    return True, "Link targets not verified", {"verified": False, "links": s.link_count}


def _response_time(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    # The crawl provider does not report timing
    return True, "Response time not measured", {"verified": False}


def _internal_links(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return (
        s.internal_link_count >= MIN_INTERNAL_LINKS,
        f"{s.internal_link_count} internal link(s)",
        {"count": s.internal_link_count, "min": MIN_INTERNAL_LINKS},
    )


def _mixed_content(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if not s.is_https:
        return True, "Not applicable to HTTP pages", {}
    return (
        s.insecure_resource_count == 0,
        f"{s.insecure_resource_count} insecure resource(s)",
        {"insecure_resources": s.insecure_resource_count},
    )


def _hreflang(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.hreflang_count > 0, f"{s.hreflang_count} hreflang alternate(s)", {"count": s.hreflang_count}


def _open_graph(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    ok = bool(s.og_title and s.og_description)
    return ok, "Open Graph title and description present" if ok else "Open Graph title or description missing", {}


def _og_image(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return bool(s.og_image), "Open Graph image present" if s.og_image else "No og:image", {}


def _twitter_card(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return bool(s.twitter_card), f"Twitter card: {s.twitter_card}" if s.twitter_card else "No twitter:card", {}


# ============================================================
# Media & Accessibility
# ============================================================

def _alt_coverage(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    params = {"images": s.image_count, "with_alt": s.images_with_alt, "coverage": round(s.alt_coverage, 2)}
    if s.image_count == 0:
        return True, "No images on page", params
    return s.alt_coverage >= MIN_ALT_COVERAGE, f"{s.images_with_alt}/{s.image_count} images have alt text", params


def _alt_quality(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if s.images_with_alt == 0:
        return True, "No alt text to assess", {}
    ratio = s.images_with_descriptive_alt / s.images_with_alt
    return ratio >= MIN_ALT_COVERAGE, f"{s.images_with_descriptive_alt}/{s.images_with_alt} alt texts are descriptive", {"ratio": round(ratio, 2)}


def _image_dimensions(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if s.image_count == 0:
        return True, "No images on page", {}
    ok = s.images_with_dimensions == s.image_count
    return ok, f"{s.images_with_dimensions}/{s.image_count} images declare width and height", {}


def _lazy_loading(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if s.image_count <= 1:
        return True, "Not enough images to require lazy loading", {}
    return s.images_lazy > 0, f"{s.images_lazy}/{s.image_count} images lazy-load", {}


def _video_captions(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if s.video_count == 0:
        return True, "No video elements", {}
    ok = s.videos_with_captions == s.video_count
    return ok, f"{s.videos_with_captions}/{s.video_count} videos have captions", {}


def _descriptive_links(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if s.link_count == 0:
        return True, "No links on page", {}
    return s.generic_link_count == 0, f"{s.generic_link_count} link(s) with generic or empty text", {"generic": s.generic_link_count}


def _has_media(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.media_count > 0, f"{s.media_count} media element(s)", {"media_count": s.media_count}


def _landmarks(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.landmark_count >= 2, f"{s.landmark_count} landmark region(s)", {"count": s.landmark_count}


def _form_labels(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if s.form_field_count == 0:
        return True, "No form fields", {}
    ok = s.labelled_form_field_count == s.form_field_count
    return ok, f"{s.labelled_form_field_count}/{s.form_field_count} form fields labelled", {}


def _named_buttons(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if s.button_count == 0:
        return True, "No buttons", {}
    ok = s.named_button_count == s.button_count
    return ok, f"{s.named_button_count}/{s.button_count} buttons have an accessible name", {}


# ============================================================
# Schema & Structured Data
# ============================================================

def _json_ld_present(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.schema_block_count > 0, f"{s.schema_block_count} JSON-LD block(s)", {"types": s.schema_types}


def _json_ld_valid(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    invalid = s.invalid_schema_block_count
    return invalid == 0, "All JSON-LD blocks parse" if invalid == 0 else f"{invalid} JSON-LD block(s) failed to parse", {"invalid": invalid}


def _schema_typed(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    ok = s.schema_block_count > 0 and s.untyped_schema_block_count == 0
    return ok, f"Declared types: {', '.join(s.schema_types) or 'none'}", {"types": s.schema_types}


def _schema_identity(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    found = sorted(SITE_IDENTITY_TYPES & set(s.schema_types))
    return bool(found), "Organization or WebSite markup present" if found else "No Organization/WebSite markup", {"types": found}


def _schema_breadcrumb(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    ok = "BreadcrumbList" in s.schema_types
    return ok, "BreadcrumbList present" if ok else "No BreadcrumbList", {}


def _schema_article_metadata(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if not ARTICLE_TYPES & set(s.schema_types):
        return True, "Not an article", {}
    ok = s.schema_has_author and s.schema_has_dates
    return ok, "Article markup has author and dates" if ok else "Article markup lacks author or dates", {}


def _schema_faq(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    ok = bool({"FAQPage", "QAPage", "HowTo"} & set(s.schema_types))
    return ok, "FAQ/HowTo markup present" if ok else "No FAQ/HowTo markup", {}


# ============================================================
# AI Optimization
# ============================================================

def _ai_crawlers_allowed(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if site is None:
        return True, "robots.txt not checked", {"verified": False}
    if site.blocks_ai:
        return False, f"robots.txt blocks {', '.join(site.blocked_ai_agents)}", {"blocked": list(site.blocked_ai_agents)}
    return True, "AI crawlers allowed by robots.txt", {"blocked": []}


def _llms_txt(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    if site is None:
        return True, "llms.txt not checked", {"verified": False}
    return site.llms_txt_found, "llms.txt published" if site.llms_txt_found else "No llms.txt file", {}


def _question_headings(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.question_heading_count > 0, f"{s.question_heading_count} question-style heading(s)", {"count": s.question_heading_count}


def _concise_answer(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    ok = s.answer_after_heading
    return ok, "A heading is followed by a concise answer paragraph" if ok else "No concise answer under a heading", {}


def _server_rendered(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    ok = s.content_before_script
    return ok, "Content present before scripts" if ok else "Content appears only after scripts run", {}


def _structured_lists(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return s.list_count > 0, f"{s.list_count} list(s)", {"count": s.list_count}


def _no_noai(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    return not s.noai, "No noai directive" if not s.noai else "Page opts out of AI use", {"robots": s.robots_directives}


def _freshness(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    ok = s.has_date_meta or s.schema_has_dates
    return ok, "Publication or update date exposed" if ok else "No publication date", {}


def _author(s: PageSignals, page: PageRecord, site: Optional[SiteSignals]) -> Outcome:
    ok = s.has_author_meta or s.schema_has_author
    return ok, "Author attributed" if ok else "No author attribution", {}


# Core page signals carry the score; social, locale and secondary schema tags are bonus
RUBRIC: tuple[ChecklistRule, ...] = (
    # Content Quality
    ChecklistRule("title_present", "Page title present", CONTENT_QUALITY, CRITICAL, _title_present),
    ChecklistRule("title_length", "Title length 30-60 characters", CONTENT_QUALITY, CRITICAL, _title_length),
    ChecklistRule("meta_description_present", "Meta description present", CONTENT_QUALITY, HIGH, _meta_description_present, html_only=True),
    ChecklistRule("meta_description_length", "Meta description 120-160 characters", CONTENT_QUALITY, HIGH, _meta_description_length, html_only=True),
    ChecklistRule("single_h1", "Exactly one H1 heading", CONTENT_QUALITY, CRITICAL, _single_h1, html_only=True),
    ChecklistRule("subheadings", "At least two subheadings", CONTENT_QUALITY, HIGH, _subheadings, html_only=True),
    ChecklistRule("heading_hierarchy", "Logical heading hierarchy", CONTENT_QUALITY, MEDIUM, _heading_hierarchy, html_only=True),
    ChecklistRule("min_content", "At least 100 words", CONTENT_QUALITY, CRITICAL, _min_words(MIN_WORDS)),
    ChecklistRule("recommended_content", "At least 300 words", CONTENT_QUALITY, CRITICAL, _min_words(RECOMMENDED_WORDS)),
    ChecklistRule("in_depth_content", "In-depth content (800+ words)", CONTENT_QUALITY, BONUS, _min_words(IN_DEPTH_WORDS)),
    ChecklistRule("readability", "Readable text (Flesch 60+)", CONTENT_QUALITY, HIGH, _readability),
    ChecklistRule("sentence_length", "Average sentence length under 25 words", CONTENT_QUALITY, LOW, _sentence_length),
    ChecklistRule("paragraphs", "Content split into paragraphs", CONTENT_QUALITY, MEDIUM, _paragraphs, html_only=True),
    ChecklistRule("lists_or_tables", "Uses lists or tables", CONTENT_QUALITY, BONUS, _lists_or_tables, html_only=True),
    ChecklistRule("title_h1_alignment", "Title and H1 aligned", CONTENT_QUALITY, STANDARD, _title_h1_alignment, html_only=True),
    ChecklistRule("text_html_ratio", "Text to HTML ratio of 10%+", CONTENT_QUALITY, LOW, _text_html_ratio),
    # Technical Health
    ChecklistRule("https", "Served over HTTPS", TECHNICAL_HEALTH, CRITICAL, _https),
    ChecklistRule("status_ok", "Returns a 2xx status", TECHNICAL_HEALTH, CRITICAL, _status_ok),
    ChecklistRule("canonical_present", "Canonical link present", TECHNICAL_HEALTH, BONUS, _canonical_present, html_only=True),
    ChecklistRule("canonical_valid", "Canonical link is absolute", TECHNICAL_HEALTH, BONUS, _canonical_valid, html_only=True),
    ChecklistRule("viewport", "Mobile viewport configured", TECHNICAL_HEALTH, LOW, _viewport, html_only=True),
    ChecklistRule("lang_attribute", "Document language declared", TECHNICAL_HEALTH, BONUS, _lang, html_only=True),
    ChecklistRule("charset", "Character encoding declared", TECHNICAL_HEALTH, BONUS, _charset, html_only=True),
    ChecklistRule("indexable", "Page is indexable", TECHNICAL_HEALTH, MEDIUM, _indexable),
    ChecklistRule("favicon", "Favicon linked", TECHNICAL_HEALTH, BONUS, _favicon, html_only=True),
    ChecklistRule("html_size", "HTML under 500 KB", TECHNICAL_HEALTH, LOW, _html_size),
    ChecklistRule("broken_links", "No broken links", TECHNICAL_HEALTH, BONUS, _broken_links),
    ChecklistRule("response_time", "Fast server response", TECHNICAL_HEALTH, BONUS, _response_time),
    ChecklistRule("internal_links", "At least 3 internal links", TECHNICAL_HEALTH, BONUS, _internal_links, html_only=True),
    ChecklistRule("mixed_content", "No mixed content", TECHNICAL_HEALTH, BONUS, _mixed_content),
    ChecklistRule("hreflang", "hreflang alternates declared", TECHNICAL_HEALTH, BONUS, _hreflang, html_only=True),
    ChecklistRule("open_graph", "Open Graph title and description", TECHNICAL_HEALTH, BONUS, _open_graph, html_only=True),
    ChecklistRule("og_image", "Open Graph image", TECHNICAL_HEALTH, BONUS, _og_image, html_only=True),
    ChecklistRule("twitter_card", "Twitter card metadata", TECHNICAL_HEALTH, BONUS, _twitter_card, html_only=True),
    # Media & Accessibility
    ChecklistRule("alt_coverage", "80%+ of images have alt text", MEDIA_ACCESSIBILITY, MEDIUM, _alt_coverage),
    ChecklistRule("alt_quality", "Alt text is descriptive", MEDIA_ACCESSIBILITY, LOW, _alt_quality),
    ChecklistRule("image_dimensions", "Images declare dimensions", MEDIA_ACCESSIBILITY, BONUS, _image_dimensions),
    ChecklistRule("lazy_loading", "Images lazy-load", MEDIA_ACCESSIBILITY, BONUS, _lazy_loading),
    ChecklistRule("video_captions", "Videos have captions", MEDIA_ACCESSIBILITY, LOW, _video_captions),
    ChecklistRule("descriptive_links", "Links have descriptive text", MEDIA_ACCESSIBILITY, LOW, _descriptive_links),
    ChecklistRule("has_media", "Page includes media", MEDIA_ACCESSIBILITY, LOW, _has_media, html_only=True),
    ChecklistRule("landmarks", "Landmark regions defined", MEDIA_ACCESSIBILITY, BONUS, _landmarks, html_only=True),
    ChecklistRule("form_labels", "Form fields labelled", MEDIA_ACCESSIBILITY, LOW, _form_labels),
    ChecklistRule("named_buttons", "Buttons have accessible names", MEDIA_ACCESSIBILITY, BONUS, _named_buttons),
    # Schema & Structured Data
    ChecklistRule("json_ld_present", "JSON-LD structured data present", SCHEMA_STRUCTURED_DATA, CRITICAL, _json_ld_present, html_only=True),
    ChecklistRule("json_ld_valid", "JSON-LD parses", SCHEMA_STRUCTURED_DATA, MEDIUM, _json_ld_valid),
    ChecklistRule("schema_typed", "Structured data declares @type", SCHEMA_STRUCTURED_DATA, MEDIUM, _schema_typed, html_only=True),
    ChecklistRule("schema_identity", "Organization or WebSite markup", SCHEMA_STRUCTURED_DATA, BONUS, _schema_identity, html_only=True),
    ChecklistRule("schema_breadcrumb", "BreadcrumbList markup", SCHEMA_STRUCTURED_DATA, BONUS, _schema_breadcrumb, html_only=True),
    ChecklistRule("schema_article_metadata", "Article markup has author and dates", SCHEMA_STRUCTURED_DATA, BONUS, _schema_article_metadata),
    ChecklistRule("schema_faq", "FAQ or HowTo markup", SCHEMA_STRUCTURED_DATA, BONUS, _schema_faq, html_only=True),
    # AI Optimization
    ChecklistRule("ai_crawlers_allowed", "AI crawlers allowed by robots.txt", AI_OPTIMIZATION, HIGH, _ai_crawlers_allowed),
    ChecklistRule("llms_txt", "llms.txt published", AI_OPTIMIZATION, LOW, _llms_txt),
    ChecklistRule("question_headings", "Question-style headings", AI_OPTIMIZATION, LOW, _question_headings, html_only=True),
    ChecklistRule("concise_answer", "Concise answer under a heading", AI_OPTIMIZATION, MEDIUM, _concise_answer, html_only=True),
    ChecklistRule("server_rendered", "Content available without JavaScript", AI_OPTIMIZATION, MEDIUM, _server_rendered),
    ChecklistRule("structured_lists", "Facts structured as lists", AI_OPTIMIZATION, BONUS, _structured_lists, html_only=True),
    ChecklistRule("no_noai", "No noai directive", AI_OPTIMIZATION, LOW, _no_noai),
    ChecklistRule("freshness", "Publication date exposed", AI_OPTIMIZATION, BONUS, _freshness, html_only=True),
    ChecklistRule("author_attribution", "Author attributed", AI_OPTIMIZATION, BONUS, _author, html_only=True),
)

RUBRIC_TOTAL_WEIGHT = sum(rule.weight for rule in RUBRIC)


def evaluate(
    page: PageRecord,
    site_signals: Optional[SiteSignals] = None,
    signals: Optional[PageSignals] = None,
) -> list[ChecklistItem]:
    """
    Evaluate the full rubric against a page.

    Args:
        page: Normalized page
        site_signals: Site-level robots.txt / llms.txt signals, if fetched
        signals: Pre-computed page signals (extracted when omitted)

    Returns:
        One ChecklistItem per rubric rule, in rubric order
    """
    signals = signals or extract_signals(page)
    items: list[ChecklistItem] = []

    for rule in RUBRIC:
        if rule.html_only and page.is_document:
            items.append(
                ChecklistItem(
                    id=rule.id,
                    name=rule.name,
                    category=rule.category,
                    weight=rule.weight,
                    passed=True,
                    details=f"Not applicable to {page.document_type} documents",
                    parameters={"applicable": False},
                )
            )
            continue

        try:
            passed, details, parameters = rule.check(signals, page, site_signals)
        except Exception as e:
            # A broken check must not change the rubric total
            logger.warning("Checklist rule failed", rule_id=rule.id, url=page.url, error=str(e))
            passed, details, parameters = True, f"Check could not be evaluated: {e}", {"verified": False}

        items.append(
            ChecklistItem(
                id=rule.id,
                name=rule.name,
                category=rule.category,
                weight=rule.weight,
                passed=bool(passed),
                details=details,
                parameters=parameters,
            )
        )

    return items
