"""Tests for structured logging and review-session correlation.

Tests cover:
- configure_logging renderer selection (console vs JSON)
- review_session binds and clears correlation_id / job_id
"""

from unittest.mock import MagicMock, patch

import pytest
import structlog

from acr_review.core.config import Settings
from acr_review.core.correlation import get_correlation_id, review_session
from acr_review.core.logging import configure_logging, get_logger


@pytest.fixture(autouse=True)
def restore_structlog():
    """Restore structlog defaults after each test."""
    yield
    structlog.reset_defaults()


def _mock_settings(debug: bool) -> MagicMock:
    settings = MagicMock(spec=Settings)
    settings.debug = debug
    return settings


class TestConfigureLogging:
    """Test renderer selection."""

    def test_debug_uses_console_renderer(self) -> None:
        """Development mode renders to the console."""
        with patch("acr_review.core.logging.get_settings", return_value=_mock_settings(True)):
            configure_logging()

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)

    def test_production_uses_json_renderer(self) -> None:
        """Production mode renders JSON last."""
        with patch("acr_review.core.logging.get_settings", return_value=_mock_settings(False)):
            configure_logging()

        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert structlog.contextvars.merge_contextvars in processors

    def test_get_logger_returns_bound_logger(self) -> None:
        """get_logger returns a usable logger."""
        logger = get_logger("acr_review.test")
        assert hasattr(logger, "info")


class TestReviewSession:
    """Test correlation binding."""

    def test_binds_and_clears_correlation_id(self) -> None:
        """correlation_id is available inside the block only."""
        assert get_correlation_id() is None

        with review_session(job_id="job-1") as correlation_id:
            assert get_correlation_id() == correlation_id
            assert structlog.contextvars.get_contextvars()["job_id"] == "job-1"

        assert get_correlation_id() is None
        assert "job_id" not in structlog.contextvars.get_contextvars()

    def test_reuses_given_correlation_id(self) -> None:
        """An explicit correlation_id is used as-is."""
        with review_session(correlation_id="abc-123") as correlation_id:
            assert correlation_id == "abc-123"
            assert get_correlation_id() == "abc-123"

    def test_logs_include_correlation_id(self) -> None:
        """Log events emitted in a session carry its correlation_id."""
        capture = structlog.testing.LogCapture()
        structlog.configure(processors=[structlog.contextvars.merge_contextvars, capture])

        with review_session(job_id="job-2", correlation_id="corr-2"):
            structlog.get_logger("test").info("verification_decision_recorded")

        assert capture.entries[0]["correlation_id"] == "corr-2"
        assert capture.entries[0]["job_id"] == "job-2"
