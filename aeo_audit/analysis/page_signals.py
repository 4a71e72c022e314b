"""Extract measurable on-page signals from a PageRecord."""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from aeo_audit.analysis.normalizer import PageRecord

WORD_RE = re.compile(r"[A-Za-zÀ-ÖØ-öø-ÿ0-9']+")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+(?:\s+|$)")
VOWEL_GROUP_RE = re.compile(r"[aeiouy]+")

QUESTION_WORDS = (
    "what", "why", "how", "when", "where", "which", "who", "whom", "whose",
    "can", "should", "does", "do", "is", "are", "will",
)

GENERIC_LINK_TEXTS = {
    "click here", "here", "read more", "more", "learn more", "link",
    "this link", "this page", "details", "continue",
}

LANDMARK_TAGS = ("header", "nav", "main", "footer", "aside")
LANDMARK_ROLES = ("banner", "navigation", "main", "contentinfo", "complementary")


def count_syllables(word: str) -> int:
    """Approximate English syllable count by vowel groups."""
    word = word.lower()
    if len(word) <= 3:
        return 1
    if word.endswith("e") and not word.endswith(("le", "ee")):
        word = word[:-1]
    return max(1, len(VOWEL_GROUP_RE.findall(word)))


def flesch_reading_ease(words: list[str], sentence_count: int) -> float:
    """
    Flesch reading ease for a list of words.

    Returns 0.0 when there is no text to score.
    """
    if not words or sentence_count <= 0:
        return 0.0
    syllables = sum(count_syllables(w) for w in words)
    return 206.835 - 1.015 * (len(words) / sentence_count) - 84.6 * (syllables / len(words))


def iter_schema_types(blocks: Iterable[dict]) -> Iterable[str]:
    """Yield every @type declared in JSON-LD blocks, descending into @graph."""
    for block in blocks:
        if not isinstance(block, dict):
            continue
        declared = block.get("@type")
        if isinstance(declared, str):
            yield declared
        elif isinstance(declared, list):
            for item in declared:
                if isinstance(item, str):
                    yield item
        graph = block.get("@graph")
        if isinstance(graph, list):
            yield from iter_schema_types(graph)


def _iter_schema_nodes(blocks: Iterable[dict]) -> Iterable[dict]:
    for block in blocks:
        if not isinstance(block, dict):
            continue
        yield block
        graph = block.get("@graph")
        if isinstance(graph, list):
            yield from _iter_schema_nodes(graph)


@dataclass
class PageSignals:
    """Measured signals for one page; inputs to the checklist rules."""

    url: str
    is_https: bool
    status_code: int
    title: Optional[str]
    title_length: int
    meta_description: Optional[str]
    meta_description_length: int
    h1_texts: list[str] = field(default_factory=list)
    h2_count: int = 0
    subheading_count: int = 0
    heading_levels: list[int] = field(default_factory=list)
    question_heading_count: int = 0
    answer_after_heading: bool = False
    word_count: int = 0
    sentence_count: int = 0
    avg_sentence_length: float = 0.0
    flesch_score: float = 0.0
    paragraph_count: int = 0
    list_count: int = 0
    table_count: int = 0
    text_length: int = 0
    html_length: int = 0
    canonical_url: Optional[str] = None
    has_viewport: bool = False
    lang: Optional[str] = None
    has_charset: bool = False
    robots_directives: list[str] = field(default_factory=list)
    has_favicon: bool = False
    internal_link_count: int = 0
    link_count: int = 0
    generic_link_count: int = 0
    insecure_resource_count: int = 0
    hreflang_count: int = 0
    og_title: Optional[str] = None
    og_description: Optional[str] = None
    og_image: Optional[str] = None
    twitter_card: Optional[str] = None
    image_count: int = 0
    images_with_alt: int = 0
    images_with_descriptive_alt: int = 0
    images_with_dimensions: int = 0
    images_lazy: int = 0
    video_count: int = 0
    videos_with_captions: int = 0
    embed_count: int = 0
    landmark_count: int = 0
    form_field_count: int = 0
    labelled_form_field_count: int = 0
    button_count: int = 0
    named_button_count: int = 0
    content_before_script: bool = False
    schema_types: list[str] = field(default_factory=list)
    schema_block_count: int = 0
    invalid_schema_block_count: int = 0
    untyped_schema_block_count: int = 0
    schema_has_author: bool = False
    schema_has_dates: bool = False
    has_author_meta: bool = False
    has_date_meta: bool = False

    @property
    def h1_count(self) -> int:
        return len(self.h1_texts)

    @property
    def media_count(self) -> int:
        return self.image_count + self.video_count + self.embed_count

    @property
    def alt_coverage(self) -> float:
        if self.image_count == 0:
            return 1.0
        return self.images_with_alt / self.image_count

    @property
    def noai(self) -> bool:
        return any(d in ("noai", "noimageai") for d in self.robots_directives)

    @property
    def noindex(self) -> bool:
        return "noindex" in self.robots_directives or "none" in self.robots_directives


def _meta_content(soup: BeautifulSoup, *, name: Optional[str] = None, prop: Optional[str] = None) -> Optional[str]:
    attrs: dict[str, Any] = {}
    if name:
        attrs["name"] = re.compile(f"^{re.escape(name)}$", re.I)
    if prop:
        attrs["property"] = re.compile(f"^{re.escape(prop)}$", re.I)
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    content = (tag.get("content") or "").strip()
    return content or None


def _visible_text(soup: BeautifulSoup) -> str:
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    return " ".join(soup.get_text(" ").split())


def _is_question(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered.endswith("?"):
        return True
    first = lowered.split(" ", 1)[0] if lowered else ""
    return first in QUESTION_WORDS


def _has_content_before_script(html: str) -> bool:
    match = re.search(r"<script(?![^>]*application/(?:ld\+)?json)[^>]*>", html, re.I)
    before = html[: match.start()] if match else html
    return bool(
        re.search(r"<(h1|h2|h3|article|main|section)[\s>]", before, re.I)
        or re.search(r"<p[^>]*>[^<]{20,}", before, re.I)
    )


def extract_signals(page: PageRecord) -> PageSignals:
    """
    Measure every signal the checklist needs from a page.

    Args:
        page: Normalized page

    Returns:
        PageSignals for the page
    """
    html = page.html or ""
    soup = BeautifulSoup(html, "html.parser")
    parsed_url = urlparse(page.url)

    meta_description = _meta_content(soup, name="description") or page.description
    title = page.title.strip() if page.title else None

    # Headings
    headings = soup.find_all(re.compile(r"^h[1-6]$"))
    heading_levels = [int(h.name[1]) for h in headings]
    h1_texts = [h.get_text(" ", strip=True) for h in headings if h.name == "h1"]
    subheadings = [h for h in headings if h.name in ("h2", "h3", "h4")]
    question_headings = [h for h in headings if h.name != "h1" and _is_question(h.get_text(" ", strip=True))]

    answer_after_heading = False
    for heading in headings:
        following = heading.find_next("p")
        if following is None:
            continue
        words = WORD_RE.findall(following.get_text(" ", strip=True))
        if 20 <= len(words) <= 80:
            answer_after_heading = True
            break

    paragraphs = [p for p in soup.find_all("p") if p.get_text(strip=True)]
    lists = [lst for lst in soup.find_all(["ul", "ol"]) if lst.find("li")]
    tables = soup.find_all("table")

    # Document-level tags
    canonical_tag = soup.find("link", rel=lambda v: v and "canonical" in [r.lower() for r in (v if isinstance(v, list) else [v])])
    canonical_url = (canonical_tag.get("href") or "").strip() if canonical_tag else None
    html_tag = soup.find("html")
    lang = (html_tag.get("lang") or "").strip() if html_tag else ""
    lang = lang or page.language or None
    has_charset = bool(
        soup.find("meta", attrs={"charset": True})
        or soup.find("meta", attrs={"http-equiv": re.compile("^content-type$", re.I)})
    )
    robots = " ".join(
        filter(
            None,
            [_meta_content(soup, name="robots"), _meta_content(soup, name="googlebot")],
        )
    )
    robots_directives = [d.strip().lower() for d in robots.split(",") if d.strip()]
    has_favicon = bool(
        soup.find("link", rel=lambda v: v and any("icon" in r.lower() for r in (v if isinstance(v, list) else [v])))
    )

    # Links
    internal = 0
    generic = 0
    all_links = soup.find_all("a", href=True)
    for anchor in all_links:
        href = anchor["href"].strip()
        if href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        target = urlparse(urljoin(page.url, href))
        if target.netloc == parsed_url.netloc:
            internal += 1
        text = anchor.get_text(" ", strip=True).lower() or (anchor.get("aria-label") or "").lower()
        if not text or text in GENERIC_LINK_TEXTS:
            generic += 1

    insecure = 0
    if parsed_url.scheme == "https":
        for tag in soup.find_all(["img", "script", "iframe", "video", "audio", "source"], src=True):
            if tag["src"].strip().lower().startswith("http://"):
                insecure += 1
        for tag in soup.find_all("link", href=True):
            rel = " ".join(tag.get("rel") or []).lower()
            if "stylesheet" in rel and tag["href"].strip().lower().startswith("http://"):
                insecure += 1

    hreflang_count = len(soup.find_all("link", hreflang=True))

    # Media & accessibility
    images = soup.find_all("img")
    with_alt = [img for img in images if (img.get("alt") or "").strip()]
    descriptive_alt = [
        img for img in with_alt
        if len(img["alt"].strip()) >= 5
        and not re.search(r"\.(jpe?g|png|gif|webp|svg)$", img["alt"].strip(), re.I)
        and img["alt"].strip().lower() not in ("image", "photo", "picture", "img")
    ]
    with_dimensions = [img for img in images if img.get("width") and img.get("height")]
    lazy = [img for img in images if (img.get("loading") or "").lower() == "lazy"]
    videos = soup.find_all("video")
    captioned = [
        v for v in videos
        if v.find("track", kind=re.compile("^(captions|subtitles)$", re.I))
    ]
    embeds = [
        f for f in soup.find_all("iframe", src=True)
        if re.search(r"youtube|vimeo|wistia|loom", f["src"], re.I)
    ]
    landmarks = len(soup.find_all(LANDMARK_TAGS)) + len(
        soup.find_all(attrs={"role": re.compile("^(" + "|".join(LANDMARK_ROLES) + ")$", re.I)})
    )

    label_targets = {label.get("for") for label in soup.find_all("label") if label.get("for")}
    fields = [
        f for f in soup.find_all(["input", "select", "textarea"])
        if (f.get("type") or "text").lower() not in ("hidden", "submit", "button", "reset", "image")
    ]
    labelled = [
        f for f in fields
        if (f.get("id") and f.get("id") in label_targets)
        or f.get("aria-label")
        or f.get("aria-labelledby")
        or f.find_parent("label") is not None
    ]
    buttons = soup.find_all("button")
    named_buttons = [
        b for b in buttons
        if b.get_text(strip=True) or b.get("aria-label") or b.get("title")
    ]

    # Structured data
    schema_types = sorted(set(iter_schema_types(page.structured_data_blocks)))
    untyped = sum(1 for block in page.structured_data_blocks if not block.get("@type") and not block.get("@graph"))
    nodes = list(_iter_schema_nodes(page.structured_data_blocks))
    schema_has_author = any(node.get("author") for node in nodes)
    schema_has_dates = any(node.get("dateModified") or node.get("datePublished") for node in nodes)

    has_author_meta = bool(
        _meta_content(soup, name="author")
        or _meta_content(soup, prop="article:author")
        or soup.find(["a", "link"], rel=lambda v: v and "author" in (v if isinstance(v, list) else [v]))
    )
    has_date_meta = bool(
        _meta_content(soup, prop="article:published_time")
        or _meta_content(soup, prop="article:modified_time")
        or soup.find("time", datetime=True)
    )

    og_title = _meta_content(soup, prop="og:title") or page.og_title
    og_description = _meta_content(soup, prop="og:description") or page.og_description
    og_image = _meta_content(soup, prop="og:image") or page.og_image
    twitter_card = _meta_content(soup, name="twitter:card")

    content_before_script = _has_content_before_script(html) if html else bool(page.markdown_or_text.strip())

    # Text metrics, from rendered HTML when available
    text = _visible_text(soup) if html else " ".join(page.markdown_or_text.split())
    words = WORD_RE.findall(text)
    sentences = [s for s in SENTENCE_SPLIT_RE.split(text) if WORD_RE.search(s)]
    sentence_count = max(1, len(sentences)) if words else 0

    return PageSignals(
        url=page.url,
        is_https=parsed_url.scheme == "https",
        status_code=page.status_code,
        title=title,
        title_length=len(title) if title else 0,
        meta_description=meta_description,
        meta_description_length=len(meta_description) if meta_description else 0,
        h1_texts=h1_texts,
        h2_count=sum(1 for lvl in heading_levels if lvl == 2),
        subheading_count=len(subheadings),
        heading_levels=heading_levels,
        question_heading_count=len(question_headings),
        answer_after_heading=answer_after_heading,
        word_count=len(words),
        sentence_count=sentence_count,
        avg_sentence_length=(len(words) / sentence_count) if sentence_count else 0.0,
        flesch_score=flesch_reading_ease(words, sentence_count),
        paragraph_count=len(paragraphs),
        list_count=len(lists),
        table_count=len(tables),
        text_length=len(text),
        html_length=len(html),
        canonical_url=canonical_url or None,
        has_viewport=_meta_content(soup, name="viewport") is not None,
        lang=lang,
        has_charset=has_charset,
        robots_directives=robots_directives,
        has_favicon=has_favicon,
        internal_link_count=internal,
        link_count=len(all_links),
        generic_link_count=generic,
        insecure_resource_count=insecure,
        hreflang_count=hreflang_count,
        og_title=og_title,
        og_description=og_description,
        og_image=og_image,
        twitter_card=twitter_card,
        image_count=len(images),
        images_with_alt=len(with_alt),
        images_with_descriptive_alt=len(descriptive_alt),
        images_with_dimensions=len(with_dimensions),
        images_lazy=len(lazy),
        video_count=len(videos),
        videos_with_captions=len(captioned),
        embed_count=len(embeds),
        landmark_count=landmarks,
        form_field_count=len(fields),
        labelled_form_field_count=len(labelled),
        button_count=len(buttons),
        named_button_count=len(named_buttons),
        content_before_script=content_before_script,
        schema_types=schema_types,
        schema_block_count=len(page.structured_data_blocks),
        invalid_schema_block_count=page.invalid_structured_data_blocks,
        untyped_schema_block_count=untyped,
        schema_has_author=schema_has_author,
        schema_has_dates=schema_has_dates,
        has_author_meta=has_author_meta,
        has_date_meta=has_date_meta,
    )
