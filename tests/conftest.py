"""Pytest configuration and shared fixtures."""

from collections.abc import Callable, Iterator
from typing import Any

import pytest
import structlog

from acr_review.core.circuit_breaker import get_circuit_registry
from acr_review.core.config import get_settings
from acr_review.models.verification import AutomatedFinding
from acr_review.services.verification.session import reset_verification_sessions


@pytest.fixture(autouse=True)
def isolate_global_state() -> Iterator[None]:
    """Reset cached settings, circuit breakers, sessions and log context."""
    get_settings.cache_clear()
    get_circuit_registry().reset()
    reset_verification_sessions()
    structlog.contextvars.clear_contextvars()
    yield
    get_settings.cache_clear()
    get_circuit_registry().reset()
    reset_verification_sessions()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def finding_factory() -> Callable[..., AutomatedFinding]:
    """Build AutomatedFinding objects from upstream-shaped (camelCase) data.

    Returns:
        Factory accepting keyword overrides of the default payload.
    """

    def _make(**overrides: Any) -> AutomatedFinding:
        payload: dict[str, Any] = {
            "id": "finding-1",
            "criterionId": "1.1.1",
            "name": "Non-text Content",
            "level": "A",
            "status": "pass",
            "confidenceScore": 95,
            "remarks": "Alt text present on all images",
        }
        payload.update(overrides)
        return AutomatedFinding.model_validate(payload)

    return _make


@pytest.fixture
def mock_job_id() -> str:
    """Create a mock job ID.

    Returns:
        Mock job identifier.
    """
    return "test-job-id-12345"
