"""Structured logging setup using structlog with audit job context support."""

import logging
import sys
from contextvars import ContextVar
from typing import Any, Optional
from uuid import UUID

import structlog
from structlog.types import EventDict, Processor

from aeo_audit.config.settings import settings


# Context variables for per-job logging
_job_id_ctx: ContextVar[Optional[str]] = ContextVar("job_id", default=None)
_stage_ctx: ContextVar[Optional[str]] = ContextVar("stage", default=None)


def set_job_context(
    job_id: Optional[UUID] = None,
    stage: Optional[str] = None,
) -> None:
    """
    Set the current audit job context for structured logging.

    Args:
        job_id: Current audit job ID
        stage: Current pipeline stage (start, poll, processing, ...)
    """
    if job_id is not None:
        _job_id_ctx.set(str(job_id))
    if stage is not None:
        _stage_ctx.set(stage)


def clear_job_context() -> None:
    """Clear the current audit job context."""
    _job_id_ctx.set(None)
    _stage_ctx.set(None)


def get_job_context() -> dict[str, Optional[str]]:
    """
    Get the current audit job context.

    Returns:
        Dict with job_id and stage
    """
    return {
        "job_id": _job_id_ctx.get(),
        "stage": _stage_ctx.get(),
    }


def restore_job_context(context: dict[str, Optional[str]]) -> None:
    """Reinstate a context captured with get_job_context()."""
    _job_id_ctx.set(context.get("job_id"))
    _stage_ctx.set(context.get("stage"))


def add_job_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add audit job context to log entries if available."""
    job_id = _job_id_ctx.get()
    stage = _stage_ctx.get()

    if job_id and "job_id" not in event_dict:
        event_dict["job_id"] = job_id
    if stage and "stage" not in event_dict:
        event_dict["stage"] = stage

    return event_dict


def setup_logging() -> None:
    """Configure structured logging."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_job_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class AuditLogger:
    """
    Logger for audit job lifecycle events with automatic context tracking.

    Usage:
        audit = AuditLogger("orchestrator")
        audit.set_job(job_id)
        audit.log_stage_start("processing", "Processing crawled pages")
        audit.log_stage_complete("processing", "Processed 12 pages", details={"pages": 12})
        audit.log_error("processing", error, "Processing aborted")
    """

    def __init__(self, component: str) -> None:
        """Initialize audit logger for a component."""
        self.component = component
        self.logger = get_logger(f"audit.{component}")
        self.job_id: Optional[UUID] = None

    def set_job(self, job_id: UUID) -> None:
        """Set the current job ID."""
        self.job_id = job_id
        set_job_context(job_id=job_id)

    def log_stage_start(
        self,
        stage: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log the start of a pipeline stage."""
        set_job_context(stage=stage)
        self.logger.info(
            "stage_started",
            action="stage_start",
            component=self.component,
            message=message,
            details=details or {},
        )

    def log_stage_complete(
        self,
        stage: str,
        message: str,
        details: Optional[dict] = None,
        duration_seconds: Optional[float] = None,
    ) -> None:
        """Log the completion of a pipeline stage."""
        self.logger.info(
            "stage_completed",
            action="stage_complete",
            component=self.component,
            stage=stage,
            message=message,
            details=details or {},
            duration_seconds=duration_seconds,
        )

    def log_stage_warning(
        self,
        stage: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log a recoverable problem during a pipeline stage."""
        self.logger.warning(
            "stage_warning",
            action="stage_warning",
            component=self.component,
            stage=stage,
            message=message,
            details=details or {},
        )

    def log_error(
        self,
        stage: str,
        error: Exception,
        message: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Log an error during a pipeline stage."""
        self.logger.error(
            "stage_error",
            action="stage_error",
            component=self.component,
            stage=stage,
            message=message or str(error),
            error_type=type(error).__name__,
            error_message=str(error),
            details=details or {},
            exc_info=True,
        )
