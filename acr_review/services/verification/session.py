"""Review session facade for one job's verification queue.

Composes the reconciliation store, queue view and submission orchestrator
into the single surface the presentation layer talks to:

- Read: items, filtered_items, selected_ids, verified_count, total_count,
  progress_percent, summary(), suggest()
- View mutators: select(), select_all(), deselect_all(), set_filter(),
  toggle_filter()
- Writes: submit(), bulk_submit(), quick_accept_na(), undo()
- Upstream arrival: refresh() for findings/saved decisions, load_remote_queue()
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence

import structlog

from acr_review.core.config import get_settings
from acr_review.core.correlation import review_session
from acr_review.models.verification import (
    AutomatedFinding,
    BulkSubmissionResult,
    JobMetadata,
    SavedVerification,
    SubmissionResult,
    SuggestedDecision,
    VerificationFilters,
    VerificationItem,
    VerificationMethod,
    VerificationQueueData,
    VerificationStatus,
    VerificationSummary,
)
from acr_review.services.verification.classifier import FindingClassifier
from acr_review.services.verification.client import VerificationApiClient
from acr_review.services.verification.queue_view import FilterKind, VerificationQueueView
from acr_review.services.verification.smart_default import suggest_decision
from acr_review.services.verification.store import ReconciliationStore
from acr_review.services.verification.submission import SubmissionOrchestrator

logger = structlog.get_logger(__name__)


class VerificationSession:
    """One reviewer's working session over one job's verification queue.

    Example:
        >>> session = VerificationSession("job-123", client=api_client)
        >>> session.refresh(findings=findings, saved=saved_decisions)
        >>> await session.submit("finding-1", "verified_pass", "NVDA 2024.1", "")
        >>> session.progress_percent
        50
    """

    def __init__(
        self,
        job_id: str,
        client: VerificationApiClient | None = None,
        reviewer: str | None = None,
    ) -> None:
        settings = get_settings()
        self.job_id = job_id
        self._client = client
        self._smart_default_threshold = settings.smart_default_confidence_threshold
        self.store = ReconciliationStore(FindingClassifier())
        self.view = VerificationQueueView(self.store)
        self.orchestrator = SubmissionOrchestrator(self.store, client, reviewer)

    # -------------------------------------------------------------------------
    # Upstream data arrival
    # -------------------------------------------------------------------------

    def refresh(
        self,
        findings: Iterable[AutomatedFinding] | None = None,
        saved: Mapping[str, SavedVerification] | None = None,
    ) -> list[VerificationItem]:
        """Merge fresh findings and/or saved decisions into the queue."""
        with review_session(job_id=self.job_id):
            return self.store.reconcile(findings=findings, saved=saved)

    async def load_remote_queue(
        self,
        filters: VerificationFilters | None = None,
    ) -> bool:
        """Fold the remote queue into the store.

        A failure leaves the local queue untouched and is only logged.

        Returns:
            True if the remote queue was fetched and merged.
        """
        if self._client is None or not self.orchestrator.remote_enabled:
            return False
        with review_session(job_id=self.job_id):
            try:
                queue = await self._client.get_queue(self.job_id, filters)
            except Exception as e:
                logger.warning(
                    "remote_queue_fetch_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return False
            self.store.ingest_remote_queue(queue)
            return True

    async def load_job_metadata(self) -> JobMetadata | None:
        """Fetch display-only job metadata; None if unavailable."""
        if self._client is None or not self.orchestrator.remote_enabled:
            return None
        try:
            return await self._client.get_job(self.job_id)
        except Exception as e:
            logger.warning("job_metadata_fetch_failed", job_id=self.job_id, error=str(e))
            return None

    # -------------------------------------------------------------------------
    # Read model
    # -------------------------------------------------------------------------

    @property
    def items(self) -> list[VerificationItem]:
        return self.view.items

    @property
    def filtered_items(self) -> list[VerificationItem]:
        return self.view.filtered_items

    @property
    def selected_ids(self) -> frozenset[str]:
        return self.view.selected_ids

    @property
    def verified_count(self) -> int:
        return self.view.verified_count

    @property
    def total_count(self) -> int:
        return self.view.total_count

    @property
    def progress_percent(self) -> int:
        return self.view.progress_percent

    def queue_data(self) -> VerificationQueueData:
        return self.view.queue_data()

    def summary(self) -> VerificationSummary:
        return self.view.summary()

    def suggest(self, item_id: str) -> SuggestedDecision:
        """Smart-default pre-fill for one item."""
        return suggest_decision(
            self.store.get(item_id),
            confidence_threshold=self._smart_default_threshold,
        )

    def can_undo(self, item_id: str) -> bool:
        return self.orchestrator.can_undo(item_id)

    # -------------------------------------------------------------------------
    # View mutators
    # -------------------------------------------------------------------------

    def select(self, item_id: str, selected: bool = True) -> bool:
        return self.view.select(item_id, selected)

    def select_all(self) -> frozenset[str]:
        return self.view.select_all()

    def deselect_all(self) -> None:
        self.view.deselect_all()

    def set_filter(self, filters: VerificationFilters) -> list[VerificationItem]:
        return self.view.set_filter(filters)

    def toggle_filter(self, kind: FilterKind, value: str) -> list[VerificationItem]:
        return self.view.toggle_filter(kind, value)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def submit(
        self,
        item_id: str,
        status: VerificationStatus | str | None,
        method: VerificationMethod | str | None,
        notes: str | None,
    ) -> SubmissionResult:
        with review_session(job_id=self.job_id):
            return await self.orchestrator.submit(item_id, status, method, notes)

    async def bulk_submit(
        self,
        item_ids: Sequence[str] | None,
        status: VerificationStatus | str | None,
        method: VerificationMethod | str | None,
        notes: str | None,
    ) -> BulkSubmissionResult:
        """Bulk submit; item_ids None means the current selection.

        The selection is cleared once the decision is recorded.
        """
        ids = sorted(self.view.selected_ids) if item_ids is None else list(item_ids)
        with review_session(job_id=self.job_id):
            result = await self.orchestrator.bulk_submit(ids, status, method, notes)
        self.view.deselect_all()
        return result

    async def quick_accept_na(self, item_ids: Sequence[str]) -> BulkSubmissionResult:
        with review_session(job_id=self.job_id):
            return await self.orchestrator.quick_accept_na(item_ids)

    def undo(self, item_id: str) -> SubmissionResult:
        with review_session(job_id=self.job_id):
            return self.orchestrator.undo(item_id)


# =============================================================================
# Session Registry
# =============================================================================

_sessions: dict[str, VerificationSession] = {}
_sessions_lock = threading.Lock()


def get_verification_session(
    job_id: str,
    client: VerificationApiClient | None = None,
) -> VerificationSession:
    """Get (or create) the session for a job.

    Args:
        job_id: Job identifier.
        client: Remote client used when the session is first created.

    Returns:
        The job's VerificationSession.
    """
    with _sessions_lock:
        session = _sessions.get(job_id)
        if session is None:
            session = VerificationSession(job_id, client=client)
            _sessions[job_id] = session
            logger.debug("verification_session_created", job_id=job_id)
        return session


def reset_verification_sessions() -> None:
    """Drop all sessions (test isolation)."""
    with _sessions_lock:
        _sessions.clear()

    logger.debug("verification_sessions_reset")
