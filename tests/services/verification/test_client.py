"""Tests for VerificationApiClient.

Requests are served by httpx.MockTransport, so paths, params and bodies are
checked without network access.
"""

import json

import httpx
import pytest

from acr_review.core.circuit_breaker import (
    CircuitBreaker,
    CircuitConfig,
    CircuitService,
    get_circuit_registry,
)
from acr_review.models.verification import (
    ConfidenceLevel,
    Severity,
    VerificationFilters,
    VerificationMethod,
    VerificationStatus,
)
from acr_review.services.verification.client import (
    VerificationApiClient,
    VerificationClientError,
    build_queue_params,
)

QUEUE_ITEM = {
    "id": "item-1",
    "criterionId": "1.4.3",
    "criterionName": "Contrast (Minimum)",
    "wcagLevel": "AA",
    "severity": "serious",
    "confidenceLevel": "medium",
    "confidenceScore": 72,
    "automatedResult": "fail",
    "status": "pending",
}

# =============================================================================
# Test Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def fast_breakers():
    """Register breakers with tiny waits for every endpoint."""
    registry = get_circuit_registry()
    config = CircuitConfig(
        failure_threshold=5,
        recovery_timeout=1,
        timeout_seconds=1.0,
        max_retries=2,
        initial_wait=0.01,
        max_wait=0.02,
        jitter=0.0,
    )
    for service in CircuitService:
        registry._circuits[service] = CircuitBreaker(name=service.value, config=config)


def _client(handler) -> VerificationApiClient:
    return VerificationApiClient(
        base_url="http://api.test/api/v1",
        token="secret",
        transport=httpx.MockTransport(handler),
    )


# =============================================================================
# Query Encoding
# =============================================================================


class TestBuildQueueParams:
    """Test filter encoding."""

    def test_none_is_empty(self) -> None:
        """No filters, no params."""
        assert build_queue_params(None) == {}

    def test_comma_joined(self) -> None:
        """Set filters become sorted comma-joined values."""
        params = build_queue_params(
            VerificationFilters(
                severity={Severity.SERIOUS, Severity.CRITICAL},
                confidence_level={ConfidenceLevel.LOW},
                status={"pending", "verified"},
            )
        )

        assert params == {
            "severity": "critical,serious",
            "confidenceLevel": "low",
            "status": "pending,verified",
        }


# =============================================================================
# Endpoints
# =============================================================================


class TestGetQueue:
    """Test the queue endpoint."""

    @pytest.mark.asyncio
    async def test_fetches_and_parses_queue(self) -> None:
        """GET /verification/{job}/queue is parsed into queue data."""
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(
                200,
                json={"data": {"items": [QUEUE_ITEM], "totalCount": 1, "pendingCount": 1}},
            )

        async with _client(handler) as client:
            queue = await client.get_queue(
                "job-1", VerificationFilters(severity={Severity.SERIOUS})
            )

        assert seen["path"] == "/api/v1/verification/job-1/queue"
        assert seen["params"] == {"severity": "serious"}
        assert seen["auth"] == "Bearer secret"
        assert queue.total_count == 1
        assert queue.items[0].criterion_id == "1.4.3"
        assert queue.items[0].confidence_score == 72

    @pytest.mark.asyncio
    async def test_fractional_confidence_is_normalized(self) -> None:
        """A 0-1 confidenceScore is scaled and the level re-derived."""
        item = {**QUEUE_ITEM, "confidenceScore": 0.87, "confidenceLevel": "high"}

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"items": [item], "totalCount": 1})

        async with _client(handler) as client:
            queue = await client.get_queue("job-1")

        assert queue.items[0].confidence_score == 87
        assert queue.items[0].confidence_level == ConfidenceLevel.MEDIUM

    @pytest.mark.asyncio
    async def test_manual_confidence_level_is_kept(self) -> None:
        """A remote MANUAL level survives score normalization."""
        item = {**QUEUE_ITEM, "confidenceScore": 0.95, "confidenceLevel": "manual"}

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"items": [item]}})

        async with _client(handler) as client:
            queue = await client.get_queue("job-1")

        assert queue.items[0].confidence_score == 95
        assert queue.items[0].confidence_level == ConfidenceLevel.MANUAL

    @pytest.mark.asyncio
    async def test_not_found_raises_client_error(self) -> None:
        """4xx responses become VerificationClientError without retries."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(404, json={"error": "not found"})

        async with _client(handler) as client:
            with pytest.raises(VerificationClientError) as exc_info:
                await client.get_queue("missing")

        assert exc_info.value.status_code == 404
        assert calls == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried_then_raised(self) -> None:
        """5xx responses are retried and surface as HTTPStatusError."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503)

        async with _client(handler) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.get_queue("job-1")

        assert calls == 2
        breaker = get_circuit_registry().get(CircuitService.VERIFICATION_QUEUE)
        assert breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_invalid_json_raises_client_error(self) -> None:
        """Non-JSON bodies are reported as client errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>oops</html>")

        async with _client(handler) as client:
            with pytest.raises(VerificationClientError):
                await client.get_queue("job-1")


class TestSubmitVerification:
    """Test the single submit endpoint."""

    @pytest.mark.asyncio
    async def test_posts_decision(self) -> None:
        """POST /verification/verify/{item} carries status, method and notes."""
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"id": "item-1"}})

        async with _client(handler) as client:
            confirmed = await client.submit_verification(
                "item-1",
                VerificationStatus.VERIFIED_FAIL,
                VerificationMethod.NVDA,
                "Contrast 3.1:1",
            )

        assert seen["method"] == "POST"
        assert seen["path"] == "/api/v1/verification/verify/item-1"
        assert seen["body"] == {
            "status": "verified_fail",
            "method": "NVDA 2024.1",
            "notes": "Contrast 3.1:1",
        }
        assert confirmed == {"id": "item-1"}

    @pytest.mark.asyncio
    async def test_empty_body_returns_none(self) -> None:
        """A 204 returns None."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(204)

        async with _client(handler) as client:
            confirmed = await client.submit_verification(
                "item-1", VerificationStatus.VERIFIED_PASS, VerificationMethod.MANUAL_REVIEW, ""
            )

        assert confirmed is None


class TestBulkAndJob:
    """Test the bulk and job metadata endpoints."""

    @pytest.mark.asyncio
    async def test_bulk_posts_item_ids(self) -> None:
        """POST /verification/bulk carries itemIds plus the decision."""
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"updated": 2})

        async with _client(handler) as client:
            await client.submit_bulk_verification(
                ["a", "b"], VerificationStatus.VERIFIED_PASS, VerificationMethod.JAWS, ""
            )

        assert seen["path"] == "/api/v1/verification/bulk"
        assert seen["body"]["itemIds"] == ["a", "b"]
        assert seen["body"]["method"] == "JAWS 2024"

    @pytest.mark.asyncio
    async def test_get_job(self) -> None:
        """GET /jobs/{job} parses display metadata."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/v1/jobs/job-9"
            return httpx.Response(
                200,
                json={"data": {"fileName": "report.pdf", "hasRemediatedFile": True}},
            )

        async with _client(handler) as client:
            job = await client.get_job("job-9")

        assert job.job_id == "job-9"
        assert job.file_name == "report.pdf"
        assert job.has_remediated_file is True

    @pytest.mark.asyncio
    async def test_no_token_sends_no_auth_header(self) -> None:
        """An empty token omits the Authorization header."""
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"id": "job-1"})

        client = VerificationApiClient(
            base_url="http://api.test", token="", transport=httpx.MockTransport(handler)
        )
        async with client:
            await client.get_job("job-1")

        assert seen["auth"] is None
