"""Unit tests for audit logging and retry utilities."""

import pytest
from unittest.mock import MagicMock, patch
from uuid import uuid4

from aeo_audit.utils.logging import (
    AuditLogger,
    add_job_context,
    clear_job_context,
    get_job_context,
    restore_job_context,
    set_job_context,
)


@pytest.fixture
def audit_logger() -> AuditLogger:
    """Create an audit logger for testing."""
    return AuditLogger("test_component")


@pytest.fixture
def job_id():
    """Create a test job ID."""
    return uuid4()


class TestJobContext:
    """Tests for job context management."""

    def test_set_job_context(self, job_id):
        """Test setting job context."""
        set_job_context(job_id=job_id, stage="poll")

        context = get_job_context()
        assert context["job_id"] == str(job_id)
        assert context["stage"] == "poll"

        clear_job_context()

    def test_clear_job_context(self, job_id):
        """Test clearing job context."""
        set_job_context(job_id=job_id, stage="processing")

        clear_job_context()

        context = get_job_context()
        assert context["job_id"] is None
        assert context["stage"] is None

    def test_partial_context_update(self, job_id):
        """Test partial context updates."""
        set_job_context(job_id=job_id)
        set_job_context(stage="start")

        context = get_job_context()
        assert context["job_id"] == str(job_id)
        assert context["stage"] == "start"

        clear_job_context()

    def test_restore_job_context(self, job_id):
        """Test reinstating a captured context after another job ran."""
        set_job_context(job_id=job_id, stage="poll")
        captured = get_job_context()

        set_job_context(job_id=uuid4(), stage="processing")
        restore_job_context(captured)

        assert get_job_context() == {"job_id": str(job_id), "stage": "poll"}

        restore_job_context({"job_id": None, "stage": None})
        assert get_job_context() == {"job_id": None, "stage": None}

    def test_processor_adds_context(self, job_id):
        """Test that the structlog processor injects the job context."""
        set_job_context(job_id=job_id, stage="processing")

        event = add_job_context(None, "info", {"event": "page_saved"})
        assert event["job_id"] == str(job_id)
        assert event["stage"] == "processing"

        # Explicit values win over the context
        event = add_job_context(None, "info", {"event": "x", "job_id": "other"})
        assert event["job_id"] == "other"

        clear_job_context()


class TestAuditLogger:
    """Tests for AuditLogger class."""

    def test_init(self, audit_logger):
        """Test AuditLogger initialization."""
        assert audit_logger.component == "test_component"
        assert audit_logger.job_id is None

    def test_set_job(self, audit_logger, job_id):
        """Test setting job ID."""
        audit_logger.set_job(job_id)
        assert audit_logger.job_id == job_id

        context = get_job_context()
        assert context["job_id"] == str(job_id)

        clear_job_context()

    @patch("aeo_audit.utils.logging.get_logger")
    def test_log_stage_start(self, mock_get_logger, job_id):
        """Test logging stage start."""
        mock_logger = MagicMock()
        mock_get_logger.return_value = mock_logger

        logger = AuditLogger("test_component")
        logger.set_job(job_id)

        logger.log_stage_start("processing", "Processing crawled pages")

        mock_logger.info.assert_called_once()
        call_args = mock_logger.info.call_args
        assert call_args[0][0] == "stage_started"
        assert call_args[1]["action"] == "stage_start"
        assert get_job_context()["stage"] == "processing"

        clear_job_context()

    @patch("aeo_audit.utils.logging.get_logger")
    def test_log_stage_complete(self, mock_get_logger, job_id):
        """Test logging stage completion."""
        mock_logger = MagicMock()
        mock_get_logger.return_value = mock_logger

        logger = AuditLogger("test_component")
        logger.set_job(job_id)

        logger.log_stage_complete(
            "processing",
            "Processed 12 pages",
            details={"pages": 12},
            duration_seconds=10.5,
        )

        mock_logger.info.assert_called_once()
        call_args = mock_logger.info.call_args
        assert call_args[0][0] == "stage_completed"
        assert call_args[1]["stage"] == "processing"
        assert call_args[1]["details"] == {"pages": 12}
        assert call_args[1]["duration_seconds"] == 10.5

        clear_job_context()

    @patch("aeo_audit.utils.logging.get_logger")
    def test_log_stage_warning(self, mock_get_logger):
        """Test logging a recoverable problem."""
        mock_logger = MagicMock()
        mock_get_logger.return_value = mock_logger

        logger = AuditLogger("test_component")
        logger.log_stage_warning("poll", "Provider status unavailable")

        mock_logger.warning.assert_called_once()
        assert mock_logger.warning.call_args[0][0] == "stage_warning"
        assert mock_logger.warning.call_args[1]["details"] == {}

    @patch("aeo_audit.utils.logging.get_logger")
    def test_log_error(self, mock_get_logger, job_id):
        """Test logging errors."""
        mock_logger = MagicMock()
        mock_get_logger.return_value = mock_logger

        logger = AuditLogger("test_component")
        logger.set_job(job_id)

        test_error = ValueError("Test error message")
        logger.log_error("processing", test_error, "Processing aborted")

        mock_logger.error.assert_called_once()
        call_args = mock_logger.error.call_args
        assert call_args[0][0] == "stage_error"
        assert call_args[1]["stage"] == "processing"
        assert call_args[1]["message"] == "Processing aborted"
        assert call_args[1]["error_type"] == "ValueError"
        assert call_args[1]["error_message"] == "Test error message"

        clear_job_context()


class TestRetryUtilities:
    """Tests for retry utilities."""

    @pytest.mark.asyncio
    async def test_async_retry_decorator_success(self):
        """Test async retry decorator on successful operation."""
        from aeo_audit.utils.retry import async_retry_with_backoff

        call_count = 0

        @async_retry_with_backoff(max_attempts=3)
        async def successful_operation():
            nonlocal call_count
            call_count += 1
            return "success"

        result = await successful_operation()
        assert result == "success"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_async_retry_decorator_with_retries(self):
        """Test async retry decorator retries on transient failure."""
        from aeo_audit.utils.retry import async_retry_with_backoff

        call_count = 0

        @async_retry_with_backoff(max_attempts=3, min_wait=0.01, max_wait=0.02)
        async def flaky_operation():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError("Temporary failure")
            return "success"

        result = await flaky_operation()
        assert result == "success"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_async_retry_decorator_max_attempts_exceeded(self):
        """Test async retry decorator raises after max attempts."""
        from aeo_audit.utils.retry import async_retry_with_backoff

        call_count = 0

        @async_retry_with_backoff(max_attempts=3, min_wait=0.01, max_wait=0.02)
        async def always_failing_operation():
            nonlocal call_count
            call_count += 1
            raise ConnectionError("Permanent failure")

        with pytest.raises(ConnectionError):
            await always_failing_operation()

        assert call_count == 3

    @pytest.mark.asyncio
    async def test_non_network_errors_not_retried(self):
        """Test that errors outside the retry set propagate immediately."""
        from aeo_audit.utils.retry import retry_network_operation

        call_count = 0

        @retry_network_operation(max_attempts=3)
        async def bad_request():
            nonlocal call_count
            call_count += 1
            raise ValueError("bad payload")

        with pytest.raises(ValueError):
            await bad_request()

        assert call_count == 1
