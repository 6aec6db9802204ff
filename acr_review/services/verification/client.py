"""HTTP client for the remote verification API.

The analysis/persistence backend is an external collaborator. This client
covers the four endpoints the review workflow consumes:

- GET  /verification/{job_id}/queue   verification queue (filterable)
- POST /verification/verify/{item_id} submit one decision
- POST /verification/bulk             submit one decision for many items
- GET  /jobs/{job_id}                 job metadata for display

Every call runs through the circuit breaker (timeout + retries). Errors are
raised to the caller as VerificationClientError; the SubmissionOrchestrator
turns them into a local fallback.
"""

from __future__ import annotations

from typing import Any, Final

import httpx
import structlog

from acr_review.core.circuit_breaker import CircuitService, with_circuit_breaker
from acr_review.core.config import get_settings
from acr_review.models.verification import (
    JobMetadata,
    VerificationFilters,
    VerificationMethod,
    VerificationQueueData,
    VerificationStatus,
)
from acr_review.services.verification.confidence import normalize_item_payload

logger = structlog.get_logger(__name__)

DEFAULT_HEADERS: Final[dict[str, str]] = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


class VerificationClientError(Exception):
    """Raised when the remote verification API returns an unusable response.

    Attributes:
        status_code: HTTP status, if a response was received.
    """

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def build_queue_params(filters: VerificationFilters | None) -> dict[str, str]:
    """Encode queue filters as comma-joined query parameters."""
    params: dict[str, str] = {}
    if filters is None:
        return params
    if filters.severity:
        params["severity"] = ",".join(sorted(s.value for s in filters.severity))
    if filters.confidence_level:
        params["confidenceLevel"] = ",".join(
            sorted(c.value for c in filters.confidence_level)
        )
    if filters.status:
        params["status"] = ",".join(sorted(filters.status))
    return params


def _unwrap(payload: Any) -> Any:
    # Responses may come wrapped as {"data": ...}
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class VerificationApiClient:
    """Async client for the remote verification API.

    Example usage:
        async with VerificationApiClient() as client:
            queue = await client.get_queue("job-123")
            await client.submit_verification(
                "item-1", VerificationStatus.VERIFIED_PASS,
                VerificationMethod.MANUAL_REVIEW, "",
            )
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: API root. If None, uses value from settings.
            token: Bearer token. If None, uses value from settings.
            transport: Optional httpx transport (tests use MockTransport).
        """
        settings = get_settings()
        self.base_url = (base_url or settings.verification_api_base_url).rstrip("/")
        self.token = token if token is not None else settings.verification_api_token
        self.request_timeout = settings.verification_api_timeout
        self._high_threshold = settings.verification_high_confidence_threshold
        self._medium_threshold = settings.verification_medium_confidence_threshold
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> VerificationApiClient:
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = dict(DEFAULT_HEADERS)
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.request_timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._get_client().request(method, path, params=params, json=json)
        if response.status_code >= 500 or response.status_code == 429:
            # Let the circuit breaker see (and retry) server-side failures
            response.raise_for_status()
        if response.is_error:
            raise VerificationClientError(
                f"{method} {path} failed with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise VerificationClientError(
                f"{method} {path} returned invalid JSON",
                status_code=response.status_code,
            ) from e

    @with_circuit_breaker(CircuitService.VERIFICATION_QUEUE)
    async def get_queue(
        self,
        job_id: str,
        filters: VerificationFilters | None = None,
    ) -> VerificationQueueData:
        """Fetch the verification queue for a job.

        Args:
            job_id: Job identifier.
            filters: Optional server-side filters.

        Returns:
            VerificationQueueData parsed from the response.
        """
        payload = await self._request(
            "GET",
            f"/verification/{job_id}/queue",
            params=build_queue_params(filters),
        )
        data = dict(_unwrap(payload) or {})
        if isinstance(data.get("items"), list):
            data["items"] = [
                normalize_item_payload(
                    item,
                    high_threshold=self._high_threshold,
                    medium_threshold=self._medium_threshold,
                )
                for item in data["items"]
            ]
        queue = VerificationQueueData.model_validate(data)
        logger.debug("remote_queue_fetched", job_id=job_id, item_count=len(queue.items))
        return queue

    @with_circuit_breaker(CircuitService.VERIFICATION_SUBMIT)
    async def submit_verification(
        self,
        item_id: str,
        status: VerificationStatus,
        method: VerificationMethod,
        notes: str,
    ) -> dict[str, Any] | None:
        """Submit one decision.

        Returns:
            The confirmed item payload, or None if the API returned no body.
        """
        payload = await self._request(
            "POST",
            f"/verification/verify/{item_id}",
            json={"status": status.value, "method": method.value, "notes": notes},
        )
        return _unwrap(payload)

    @with_circuit_breaker(CircuitService.VERIFICATION_BULK)
    async def submit_bulk_verification(
        self,
        item_ids: list[str],
        status: VerificationStatus,
        method: VerificationMethod,
        notes: str,
    ) -> dict[str, Any] | None:
        """Submit one decision for many items in a single request."""
        payload = await self._request(
            "POST",
            "/verification/bulk",
            json={
                "itemIds": list(item_ids),
                "status": status.value,
                "method": method.value,
                "notes": notes,
            },
        )
        return _unwrap(payload)

    @with_circuit_breaker(CircuitService.JOB_METADATA)
    async def get_job(self, job_id: str) -> JobMetadata:
        """Fetch job metadata (file name, remediated artifact flag)."""
        payload = _unwrap(await self._request("GET", f"/jobs/{job_id}")) or {}
        payload.setdefault("id", job_id)
        return JobMetadata.model_validate(payload)
