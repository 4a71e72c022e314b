"""Custom exceptions hierarchy."""


class AuditServiceException(Exception):
    """Base exception for all audit service errors."""

    pass


class ConfigurationError(AuditServiceException):
    """Missing or invalid configuration (credentials, endpoints)."""

    pass


class InvalidURLError(AuditServiceException):
    """Audit target URL is malformed or not publicly reachable."""

    pass


class CrawlProviderError(AuditServiceException):
    """Error returned by, or while talking to, the crawl provider."""

    pass


class JobNotFoundError(AuditServiceException):
    """No audit job exists for the given identifier."""

    pass


class InvalidStatusTransitionError(AuditServiceException):
    """Requested job status change would move the state machine backwards."""

    pass


class PageProcessingError(AuditServiceException):
    """Error while normalizing or scoring a single page."""

    pass


class DiagnosticError(AuditServiceException):
    """Error during diagnostic text generation."""

    pass


class DatabaseError(AuditServiceException):
    """Error during database operations."""

    pass


class ValidationError(AuditServiceException):
    """Error during data validation."""

    pass
