"""Pydantic response schemas for API endpoints."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class StartAuditResponse(BaseModel):
    """Response schema for an accepted audit request."""

    job_id: UUID = Field(..., description="Public audit job ID", examples=["123e4567-e89b-12d3-a456-426614174000"])
    site_id: int = Field(..., description="Site ID", examples=[1])
    status: str = Field(..., description="Job status after the crawl request (started or failed)", examples=["started"])


class AuditStatusResponse(BaseModel):
    """Response schema for audit progress."""

    job_id: UUID
    status: str = Field(..., description="pending, started, processing, completed or failed")
    progress_percent: int = Field(..., ge=0, le=100)


class CancelAuditResponse(BaseModel):
    """Response schema for audit cancellation."""

    job_id: UUID
    status: str
    cancelled: bool = Field(..., description="False when the job had already finished")


class IssueResponse(BaseModel):
    severity: str
    category: str
    title: str
    description: str
    impact: str
    fix_priority: int
    html_snippet: Optional[str] = None
    rule_parameters: Optional[Dict[str, Any]] = None
    diagnostic: Optional[str] = None


class RecommendationResponse(BaseModel):
    category: str
    title: str
    description: str
    implementation: str
    expected_impact: str
    effort_level: str
    priority_score: int


class ChecklistItemResponse(BaseModel):
    id: str
    name: str
    category: str
    weight: float
    passed: bool
    details: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None


class PageResultResponse(BaseModel):
    """Scored page with its issues, recommendations and checklist."""

    id: int
    url: str
    title: Optional[str] = None
    status_code: int
    is_document: bool
    document_type: Optional[str] = None
    content_length: int
    has_schema: bool
    schema_types: List[str] = []
    has_llms_reference: bool
    media_count: int
    media_accessibility_score: Optional[int] = None
    rendering_mode: str
    rendering_confidence: int
    ssr_penalty: int
    overall_score: int
    weighted_score: float
    category_scores: Dict[str, int]
    issues: List[IssueResponse]
    recommendations: List[RecommendationResponse]
    checklist: List[ChecklistItemResponse]


class AuditSummaryResponse(BaseModel):
    total_pages: int
    overall_score: int
    document_percentage: int
    schema_percentage: int
    llms_coverage: int
    media_accessibility_score: Optional[int] = None
    issue_counts: Dict[str, int]


class SiteSummaryResponse(BaseModel):
    id: int
    root_domain: Optional[str] = None
    root_url: Optional[str] = None


class AuditReportResponse(BaseModel):
    """Complete report of a finished audit."""

    job_id: UUID
    status: str
    site: SiteSummaryResponse
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    summary: AuditSummaryResponse
    site_signals: Optional[Dict[str, Any]] = None
    global_recommendations: List[str]
    schema_types: List[str]
    document_types: Dict[str, int]
    pages: List[PageResultResponse]


class PendingAuditResponse(BaseModel):
    """Returned instead of the report while the audit is not completed."""

    job_id: UUID
    status: str
