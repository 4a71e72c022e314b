"""SQLAlchemy models for all database tables."""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from aeo_audit.database.db_session import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# 1. sites
class Site(Base, TimestampMixin):
    """Audited site, one row per owner and root domain."""

    __tablename__ = "sites"
    __table_args__ = (UniqueConstraint("owner_id", "root_domain", name="uq_sites_owner_domain"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    root_domain: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    root_url: Mapped[str] = mapped_column(Text, nullable=False)

    jobs: Mapped[list["AuditJob"]] = relationship(
        "AuditJob",
        back_populates="site",
        cascade="all, delete-orphan",
    )


# 2. audit_jobs
class AuditJob(Base, TimestampMixin):
    """One end-to-end audit run for a single site snapshot."""

    __tablename__ = "audit_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        unique=True,
        nullable=False,
        index=True,
        default=uuid4,
    )
    site_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True, default="pending")
    start_url: Mapped[str] = mapped_column(Text, nullable=False)
    provider_job_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    max_pages: Mapped[int] = mapped_column(Integer, nullable=False)
    progress_percent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Aggregates, recomputed after each stored page
    total_pages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    overall_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    document_percentage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    schema_percentage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    llms_coverage: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    media_accessibility_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Best-effort site-level signals (robots.txt / llms.txt)
    site_signals: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    site: Mapped["Site"] = relationship("Site", back_populates="jobs")
    pages: Mapped[list["AuditPage"]] = relationship(
        "AuditPage",
        back_populates="job",
        cascade="all, delete-orphan",
    )


# 3. audit_pages
class AuditPage(Base, TimestampMixin):
    """Scored page of an audit job."""

    __tablename__ = "audit_pages"
    __table_args__ = (UniqueConstraint("job_id", "url", name="uq_audit_pages_job_url"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audit_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False, default=200)
    is_document: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    document_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    content_length: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    has_schema: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    schema_types: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    has_llms_reference: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    media_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    media_accessibility_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rendering_mode: Mapped[str] = mapped_column(String(10), nullable=False)
    rendering_confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    ssr_penalty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    overall_score: Mapped[int] = mapped_column(Integer, nullable=False)
    weighted_score: Mapped[float] = mapped_column(Float, nullable=False)
    category_scores: Mapped[dict] = mapped_column(JSONType, nullable=False)

    job: Mapped["AuditJob"] = relationship("AuditJob", back_populates="pages")
    issues: Mapped[list["PageIssue"]] = relationship(
        "PageIssue",
        back_populates="page",
        cascade="all, delete-orphan",
    )
    recommendations: Mapped[list["PageRecommendation"]] = relationship(
        "PageRecommendation",
        back_populates="page",
        cascade="all, delete-orphan",
    )
    checklist_results: Mapped[list["PageChecklistResult"]] = relationship(
        "PageChecklistResult",
        back_populates="page",
        cascade="all, delete-orphan",
    )


# 4. page_issues
class PageIssue(Base):
    """Issue synthesized from a failed high-signal check."""

    __tablename__ = "page_issues"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audit_pages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    severity: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    impact: Mapped[str] = mapped_column(Text, nullable=False)
    fix_priority: Mapped[int] = mapped_column(Integer, nullable=False)
    html_snippet: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rule_parameters: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    diagnostic: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    page: Mapped["AuditPage"] = relationship("AuditPage", back_populates="issues")


# 5. page_recommendations
class PageRecommendation(Base):
    """Improvement suggestion attached to a page."""

    __tablename__ = "page_recommendations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audit_pages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    implementation: Mapped[str] = mapped_column(Text, nullable=False)
    expected_impact: Mapped[str] = mapped_column(Text, nullable=False)
    effort_level: Mapped[str] = mapped_column(String(10), nullable=False)
    priority_score: Mapped[int] = mapped_column(Integer, nullable=False)

    page: Mapped["AuditPage"] = relationship("AuditPage", back_populates="recommendations")


# 6. page_checklist_results
class PageChecklistResult(Base):
    """Outcome of one rubric rule on one page."""

    __tablename__ = "page_checklist_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    page_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("audit_pages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    check_id: Mapped[str] = mapped_column(String(64), nullable=False)
    check_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    weight: Mapped[float] = mapped_column(Float, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rule_parameters: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    page: Mapped["AuditPage"] = relationship("AuditPage", back_populates="checklist_results")
