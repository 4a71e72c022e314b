"""Normalize raw crawl provider page payloads into canonical PageRecords."""

import json
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator

from aeo_audit.utils.exceptions import PageProcessingError
from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)

# File extensions served as downloadable documents rather than HTML pages
DOCUMENT_EXTENSIONS = {
    ".pdf": "pdf",
    ".doc": "doc",
    ".docx": "docx",
    ".xls": "xls",
    ".xlsx": "xlsx",
    ".ppt": "ppt",
    ".pptx": "pptx",
    ".txt": "txt",
    ".md": "markdown",
    ".csv": "csv",
}

DOCUMENT_CONTENT_TYPES = {
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.ms-powerpoint": "ppt",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "pptx",
    "text/plain": "txt",
    "text/markdown": "markdown",
    "text/csv": "csv",
}


def _first_text(value: Any) -> Optional[str]:
    """Providers sometimes report repeated meta tags as lists; keep the first."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = next((v for v in value if v), None)
        if value is None:
            return None
    text = str(value).strip()
    return text or None


class RawPageMetadata(BaseModel):
    """Metadata block of a provider page payload."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: Optional[str] = None
    description: Optional[str] = None
    language: Optional[str] = None
    source_url: Optional[str] = Field(None, alias="sourceURL")
    url: Optional[str] = None
    status_code: Optional[int] = Field(None, alias="statusCode")
    content_type: Optional[str] = Field(None, alias="contentType")
    is_document: Optional[bool] = Field(None, alias="isDocument")
    og_title: Optional[str] = Field(None, alias="ogTitle")
    og_description: Optional[str] = Field(None, alias="ogDescription")
    og_image: Optional[str] = Field(None, alias="ogImage")
    structured_data: Any = Field(None, alias="structuredData")

    @field_validator(
        "title",
        "description",
        "language",
        "source_url",
        "url",
        "content_type",
        "og_title",
        "og_description",
        "og_image",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _first_text(value)

    @field_validator("status_code", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None


class RawPagePayload(BaseModel):
    """One page as returned by the crawl provider, before normalization."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    url: Optional[str] = None
    title: Optional[str] = None
    markdown: Optional[str] = None
    html: Optional[str] = None
    raw_html: Optional[str] = Field(None, alias="rawHtml")
    content: Optional[str] = None
    metadata: RawPageMetadata = Field(default_factory=RawPageMetadata)

    @field_validator("url", "title", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        return _first_text(value)

    @field_validator("markdown", "html", "raw_html", "content", mode="before")
    @classmethod
    def _coerce_body(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return value if isinstance(value, str) else str(value)

    @field_validator("metadata", mode="before")
    @classmethod
    def _default_metadata(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


@dataclass(frozen=True)
class PageRecord:
    """Canonical, immutable representation of one crawled page."""

    url: str
    title: Optional[str]
    html: str
    markdown_or_text: str
    status_code: int
    is_document: bool
    document_type: str
    structured_data_blocks: tuple = field(default_factory=tuple)
    invalid_structured_data_blocks: int = 0
    description: Optional[str] = None
    language: Optional[str] = None
    content_type: Optional[str] = None
    og_title: Optional[str] = None
    og_description: Optional[str] = None
    og_image: Optional[str] = None

    @property
    def has_content(self) -> bool:
        return bool(self.html.strip() or self.markdown_or_text.strip())

    @property
    def content_length(self) -> int:
        return len(self.html) + len(self.markdown_or_text)


def detect_document_type(url: str, content_type: Optional[str]) -> Optional[str]:
    """
    Detect whether a page is a downloadable document.

    Args:
        url: Page URL
        content_type: Reported MIME type, if any

    Returns:
        Short document type (pdf, docx, ...) or None for HTML pages
    """
    if content_type:
        mime = content_type.split(";", 1)[0].strip().lower()
        if mime in DOCUMENT_CONTENT_TYPES:
            return DOCUMENT_CONTENT_TYPES[mime]
    path = urlparse(url).path.lower()
    for extension, doc_type in DOCUMENT_EXTENSIONS.items():
        if path.endswith(extension):
            return doc_type
    return None


def extract_json_ld(html: str) -> tuple[list[dict], int]:
    """
    Extract JSON-LD blocks from HTML.

    Args:
        html: Raw HTML

    Returns:
        Tuple of (parsed object blocks, number of blocks that failed to parse)
    """
    if not html:
        return [], 0

    soup = BeautifulSoup(html, "html.parser")
    blocks: list[dict] = []
    invalid = 0
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text() or ""
        if not raw.strip():
            invalid += 1
            continue
        try:
            parsed = json.loads(raw)
        except (json.JSONDecodeError, ValueError):
            invalid += 1
            continue
        if isinstance(parsed, dict):
            blocks.append(parsed)
        elif isinstance(parsed, list):
            blocks.extend(item for item in parsed if isinstance(item, dict))
        else:
            invalid += 1
    return blocks, invalid


def _provider_structured_data(value: Any) -> list[dict]:
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list):
        return [item for item in value if isinstance(item, dict)]
    return []


def _html_title(html: str) -> Optional[str]:
    if not html:
        return None
    soup = BeautifulSoup(html, "html.parser")
    if soup.title and soup.title.string:
        return soup.title.string.strip() or None
    return None


def _html_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    return " ".join(soup.get_text(" ").split())


def normalize_page(payload: Any) -> PageRecord:
    """
    Convert a raw provider payload into a PageRecord.

    Unknown fields are ignored and missing ones defaulted; a payload without
    any resolvable URL cannot be audited and is rejected.

    Args:
        payload: Raw page dict (or RawPagePayload)

    Returns:
        Canonical PageRecord

    Raises:
        PageProcessingError: If the payload is not a mapping or has no URL
    """
    if isinstance(payload, RawPagePayload):
        raw = payload
    else:
        if not isinstance(payload, dict):
            raise PageProcessingError(f"Unexpected page payload type: {type(payload).__name__}")
        try:
            raw = RawPagePayload.model_validate(payload)
        except PydanticValidationError as e:
            raise PageProcessingError(f"Invalid page payload: {e}") from e

    meta = raw.metadata
    url = raw.url or meta.source_url or meta.url
    if not url:
        raise PageProcessingError("Page payload has no URL")

    html = raw.html or raw.raw_html or ""
    text = raw.markdown or raw.content or ""
    if not text.strip() and html:
        text = _html_text(html)

    title = raw.title or meta.title or _html_title(html)

    document_type = detect_document_type(url, meta.content_type)
    is_document = bool(meta.is_document) or document_type is not None

    blocks, invalid = extract_json_ld(html)
    blocks.extend(_provider_structured_data(meta.structured_data))

    record = PageRecord(
        url=url,
        title=title,
        html=html,
        markdown_or_text=text,
        status_code=meta.status_code or 200,
        is_document=is_document,
        document_type=document_type or "html",
        structured_data_blocks=tuple(blocks),
        invalid_structured_data_blocks=invalid,
        description=meta.description,
        language=meta.language,
        content_type=meta.content_type,
        og_title=meta.og_title,
        og_description=meta.og_description,
        og_image=meta.og_image,
    )
    logger.debug(
        "Page normalized",
        url=url,
        status_code=record.status_code,
        is_document=is_document,
        structured_data_blocks=len(blocks),
    )
    return record
