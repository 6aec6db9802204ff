"""Correlation IDs for review-session tracing.

A review session (one reviewer working one job's queue) gets a correlation_id
that is bound to structlog's contextvars, so every log line emitted while
reconciling or submitting carries it without explicit passing.

Usage:
    from acr_review.core.correlation import review_session

    with review_session(job_id="job-123"):
        await orchestrator.submit(...)
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import structlog


@contextmanager
def review_session(
    job_id: str | None = None,
    correlation_id: str | None = None,
) -> Iterator[str]:
    """Bind a correlation_id (and job_id) to all logs within the block.

    Args:
        job_id: Job whose verification queue is being reviewed.
        correlation_id: Existing correlation ID to reuse. Generated if None.

    Yields:
        The correlation_id in effect for the block.
    """
    correlation_id = correlation_id or str(uuid.uuid4())
    bound: dict[str, str] = {"correlation_id": correlation_id}
    if job_id:
        bound["job_id"] = job_id

    structlog.contextvars.bind_contextvars(**bound)
    try:
        yield correlation_id
    finally:
        # Clear context to prevent leakage into unrelated work
        structlog.contextvars.unbind_contextvars(*bound)


def get_correlation_id() -> str | None:
    """Get the current correlation_id from context.

    Returns:
        The current correlation_id, or None if outside a review session.
    """
    ctx = structlog.contextvars.get_contextvars()
    return ctx.get("correlation_id")
