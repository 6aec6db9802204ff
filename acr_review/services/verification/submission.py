"""Submission orchestrator for reviewer verification decisions.

Validates and applies single, bulk and quick-accept decisions:
- Validation happens before any mutation (ValidationError propagates)
- Each decision is one new history entry stamped with reviewer and time
- The remote API is tried first; on any failure (network error, timeout,
  open circuit, offline mode) the identical entry is applied locally and the
  failure is reported as a warning, never as lost work
- Bulk operations fan out per item and report succeeded/failed counts

The entry is applied to whatever the store holds for the id when the remote
call completes, so a reconciliation that ran meanwhile is respected and two
racing submissions for one id both land in history (later one last).
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from acr_review.core.config import get_settings
from acr_review.core.correlation import get_correlation_id
from acr_review.core.exceptions import ValidationError, VerificationItemNotFoundError
from acr_review.models.verification import (
    BulkSubmissionResult,
    SubmissionResult,
    VerificationHistoryEntry,
    VerificationItem,
    VerificationMethod,
    VerificationStatus,
)
from acr_review.services.verification.client import VerificationApiClient
from acr_review.services.verification.confidence import normalize_item_payload
from acr_review.services.verification.store import ReconciliationStore

logger = structlog.get_logger(__name__)

QUICK_ACCEPT_NOTES_TEMPLATE = "AI-suggested Not Applicable ({confidence}% confidence): {rationale}"


# =============================================================================
# Exceptions
# =============================================================================


class VerificationServiceError(Exception):
    """Base exception for verification service operations."""

    def __init__(
        self,
        message: str,
        code: str = "VERIFICATION_SERVICE_ERROR",
        is_retryable: bool = True,
    ):
        self.message = message
        self.code = code
        self.is_retryable = is_retryable
        super().__init__(message)


class RemoteSubmitError(VerificationServiceError):
    """Raised when the remote persistence call fails or is unavailable.

    Recovered inside the orchestrator by applying the decision locally.
    """

    def __init__(self, item_id: str, reason: str):
        self.item_id = item_id
        super().__init__(
            f"Remote submit failed for {item_id}: {reason}",
            code="REMOTE_SUBMIT_FAILED",
            is_retryable=True,
        )


@dataclass(frozen=True)
class _Decision:
    """One decision to apply to one item."""

    item_id: str
    status: VerificationStatus
    method: VerificationMethod
    notes: str


# =============================================================================
# Validation helpers
# =============================================================================


def validate_decision(
    status: VerificationStatus | str | None,
    method: VerificationMethod | str | None,
    notes: str | None,
) -> tuple[VerificationStatus, VerificationMethod, str]:
    """Validate a decision before any mutation.

    Args:
        status: Chosen status; must be set and not pending.
        method: Verification method; defaults to Manual Review when unset.
        notes: Notes; required (non-blank) for verified_fail/verified_partial.

    Returns:
        Tuple of (status, method, trimmed notes).

    Raises:
        ValidationError: With the offending field name.
    """
    if status is None or status == "":
        raise ValidationError("Select a verification status", field="status")
    try:
        status = VerificationStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown verification status: {status}", field="status") from None
    if status == VerificationStatus.PENDING:
        raise ValidationError("Select a verification status", field="status")

    if method is None or method == "":
        method = VerificationMethod.MANUAL_REVIEW
    try:
        method = VerificationMethod(method)
    except ValueError:
        raise ValidationError(f"Unknown verification method: {method}", field="method") from None

    notes = (notes or "").strip()
    if status.requires_notes and not notes:
        raise ValidationError(
            "Notes are required when marking as Fail or Partial",
            field="notes",
        )

    return status, method, notes


class SubmissionOrchestrator:
    """Applies reviewer decisions to a ReconciliationStore.

    Example:
        >>> orchestrator = SubmissionOrchestrator(store, client)
        >>> result = await orchestrator.submit(
        ...     "finding-1", VerificationStatus.VERIFIED_PASS,
        ...     VerificationMethod.NVDA, "",
        ... )
        >>> result.item.status
        <VerificationStatus.VERIFIED_PASS: 'verified_pass'>
    """

    def __init__(
        self,
        store: ReconciliationStore,
        client: VerificationApiClient | None = None,
        reviewer: str | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._client = client
        self._reviewer = reviewer or settings.reviewer_name
        self._offline = settings.verification_offline_mode
        self._bulk_limit = settings.verification_bulk_limit
        self._quick_accept_threshold = settings.quick_accept_na_threshold
        # Pre-accept snapshots of quick-accepted items not yet persisted remotely
        self._undo_snapshots: dict[str, VerificationItem] = {}

    @property
    def remote_enabled(self) -> bool:
        """True when decisions are sent to the remote API first."""
        return self._client is not None and not self._offline

    def can_undo(self, item_id: str) -> bool:
        """True if the item has a quick accept that can still be undone."""
        return item_id in self._undo_snapshots

    # -------------------------------------------------------------------------
    # Public write operations
    # -------------------------------------------------------------------------

    async def submit(
        self,
        item_id: str,
        status: VerificationStatus | str | None,
        method: VerificationMethod | str | None,
        notes: str | None,
    ) -> SubmissionResult:
        """Validate and record one decision.

        Raises:
            ValidationError: If status is unset or notes are missing.
            VerificationItemNotFoundError: If the item is not in the queue.
        """
        status, method, notes = validate_decision(status, method, notes)
        self._store.get(item_id)

        # An explicit decision supersedes any pending quick accept
        self._undo_snapshots.pop(item_id, None)

        return await self._apply(_Decision(item_id, status, method, notes))

    async def bulk_submit(
        self,
        item_ids: Sequence[str],
        status: VerificationStatus | str | None,
        method: VerificationMethod | str | None,
        notes: str | None,
    ) -> BulkSubmissionResult:
        """Validate and record one decision for every selected item.

        Raises:
            ValidationError: If the selection is empty or too large, status is
                unset, or notes are missing.
            VerificationItemNotFoundError: If any id is not in the queue.
        """
        status, method, notes = validate_decision(status, method, notes)
        unique_ids = self._validate_selection(item_ids)

        for item_id in unique_ids:
            self._undo_snapshots.pop(item_id, None)

        decisions = [_Decision(item_id, status, method, notes) for item_id in unique_ids]
        return await self._apply_many(decisions, operation="bulk_submit")

    async def quick_accept_na(self, item_ids: Sequence[str]) -> BulkSubmissionResult:
        """Accept high-confidence Not Applicable suggestions in one click.

        Ids whose suggestion is not Not Applicable, or whose suggestion
        confidence is below the quick-accept threshold, are skipped. Each
        accepted item records verified_pass via Manual Review with an
        auditable note quoting the suggestion.

        Raises:
            ValidationError: If the selection is empty or too large.
            VerificationItemNotFoundError: If any id is not in the queue.
        """
        unique_ids = self._validate_selection(item_ids)

        decisions: list[_Decision] = []
        skipped: list[str] = []
        for item_id in unique_ids:
            item = self._store.get(item_id)
            suggestion = item.na_suggestion
            if (
                suggestion is None
                or not suggestion.is_not_applicable
                or suggestion.confidence < self._quick_accept_threshold
            ):
                skipped.append(item_id)
                continue

            notes = QUICK_ACCEPT_NOTES_TEMPLATE.format(
                confidence=_format_confidence(suggestion.confidence),
                rationale=suggestion.rationale,
            )
            decisions.append(
                _Decision(
                    item_id,
                    VerificationStatus.VERIFIED_PASS,
                    VerificationMethod.MANUAL_REVIEW,
                    notes,
                )
            )
            self._undo_snapshots[item_id] = item

        if skipped:
            logger.info(
                "quick_accept_na_skipped",
                skipped_count=len(skipped),
                threshold=self._quick_accept_threshold,
            )

        result = await self._apply_many(decisions, operation="quick_accept_na")

        # Remotely persisted accepts can no longer be undone, nor can accepts
        # whose item left the queue during the remote call
        failed = set(result.failed_ids)
        applied = {item.id for item in result.items}
        for decision in decisions:
            persisted = self.remote_enabled and decision.item_id not in failed
            if persisted or decision.item_id not in applied:
                self._undo_snapshots.pop(decision.item_id, None)

        return result.model_copy(update={"skipped_ids": skipped})

    def undo(self, item_id: str) -> SubmissionResult:
        """Revert a quick accept that has not been persisted remotely.

        Restores the item's pre-accept decision state without appending an
        entry; the discarded entry never reached the remote audit trail.

        Raises:
            ValidationError: If there is no undoable quick accept for the item.
            VerificationItemNotFoundError: If the item is not in the queue.
        """
        live = self._store.get(item_id)
        snapshot = self._undo_snapshots.pop(item_id, None)
        if snapshot is None:
            raise ValidationError(
                "Only a quick accept that has not been saved can be undone",
                field="item_id",
                code="UNDO_NOT_AVAILABLE",
            )

        restored = live.model_copy(
            update={
                "status": snapshot.status,
                "method": snapshot.method,
                "notes": snapshot.notes,
                "history": snapshot.history,
            }
        )
        self._store.replace(restored)

        logger.info(
            "quick_accept_undone",
            item_id=item_id,
            restored_status=restored.status.value,
        )
        return SubmissionResult(success=True, item=restored)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _validate_selection(self, item_ids: Sequence[str]) -> list[str]:
        unique_ids = list(dict.fromkeys(item_ids))
        if not unique_ids:
            raise ValidationError("Select at least one item", field="item_ids")
        if len(unique_ids) > self._bulk_limit:
            raise ValidationError(
                f"Bulk update limited to {self._bulk_limit} items at a time",
                field="item_ids",
                code="BULK_LIMIT_EXCEEDED",
            )
        missing = [item_id for item_id in unique_ids if item_id not in self._store]
        if missing:
            raise VerificationItemNotFoundError(missing[0])
        return unique_ids

    def _new_entry(self, decision: _Decision) -> VerificationHistoryEntry:
        return VerificationHistoryEntry(
            id=f"h-{uuid.uuid4().hex}",
            status=decision.status,
            method=decision.method,
            notes=decision.notes,
            verified_by=self._reviewer,
            verified_at=datetime.now(UTC),
        )

    async def _persist(self, decision: _Decision) -> dict[str, Any] | None:
        """Send one decision to the remote API.

        Raises:
            RemoteSubmitError: On any failure, including offline mode.
        """
        if not self.remote_enabled:
            raise RemoteSubmitError(decision.item_id, "remote persistence unavailable")
        try:
            return await self._client.submit_verification(
                decision.item_id,
                decision.status,
                decision.method,
                decision.notes,
            )
        except Exception as e:
            raise RemoteSubmitError(decision.item_id, f"{type(e).__name__}: {e}") from e

    def _record(
        self,
        decision: _Decision,
        entry: VerificationHistoryEntry,
        confirmed: dict[str, Any] | None,
    ) -> VerificationItem | None:
        """Apply an entry to the item the store holds now.

        Returns:
            The updated item, or None if the item left the queue meanwhile.
        """
        try:
            live = self._store.get(decision.item_id)
        except VerificationItemNotFoundError:
            logger.warning(
                "verification_item_dropped_before_apply",
                item_id=decision.item_id,
                status=decision.status.value,
            )
            return None

        updated = _adopt_confirmed(live, decision, confirmed) or live.with_entry(entry)
        return self._store.replace(updated)

    async def _apply(self, decision: _Decision) -> SubmissionResult:
        start_time = time.perf_counter()
        entry = self._new_entry(decision)
        warnings: list[str] = []
        persisted = False
        confirmed: dict[str, Any] | None = None

        if self.remote_enabled:
            try:
                confirmed = await self._persist(decision)
                persisted = True
            except RemoteSubmitError as e:
                logger.warning(
                    "verification_remote_submit_failed",
                    item_id=decision.item_id,
                    error=str(e),
                    correlation_id=get_correlation_id(),
                )
                warnings.append(f"{e.message}; saved locally")
        else:
            warnings.append("Saved locally (offline mode)")

        item = self._record(decision, entry, confirmed)
        if item is None:
            warnings.append(f"Item {decision.item_id} is no longer in the queue")

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "verification_decision_recorded",
            item_id=decision.item_id,
            status=decision.status.value,
            method=decision.method.value,
            persisted_remotely=persisted,
            elapsed_ms=round(elapsed_ms, 2),
        )

        return SubmissionResult(
            success=item is not None,
            item=item,
            persisted_remotely=persisted,
            warnings=warnings,
        )

    async def _apply_many(
        self,
        decisions: list[_Decision],
        operation: str,
    ) -> BulkSubmissionResult:
        start_time = time.perf_counter()
        if not decisions:
            return BulkSubmissionResult()

        entries = [self._new_entry(decision) for decision in decisions]

        if self.remote_enabled:
            outcomes = await asyncio.gather(
                *(self._persist(decision) for decision in decisions),
                return_exceptions=True,
            )
        else:
            outcomes = [None] * len(decisions)

        items: list[VerificationItem] = []
        failed_ids: list[str] = []
        warnings: list[str] = []

        for decision, entry, outcome in zip(decisions, entries, outcomes, strict=True):
            confirmed: dict[str, Any] | None = None
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failed_ids.append(decision.item_id)
                logger.warning(
                    "verification_remote_submit_failed",
                    item_id=decision.item_id,
                    operation=operation,
                    error=str(outcome),
                    correlation_id=get_correlation_id(),
                )
            else:
                confirmed = outcome

            item = self._record(decision, entry, confirmed)
            if item is None:
                warnings.append(f"Item {decision.item_id} is no longer in the queue")
            else:
                items.append(item)

        if not self.remote_enabled:
            warnings.append("Saved locally (offline mode)")
        elif failed_ids:
            warnings.append(
                f"{len(failed_ids)} of {len(decisions)} items could not be saved "
                "remotely; saved locally"
            )

        succeeded = len(decisions) - len(failed_ids)
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "bulk_verification_complete",
            operation=operation,
            total=len(decisions),
            succeeded=succeeded,
            failed=len(failed_ids),
            status=decisions[0].status.value,
            elapsed_ms=round(elapsed_ms, 2),
        )

        return BulkSubmissionResult(
            succeeded=succeeded,
            failed=len(failed_ids),
            failed_ids=failed_ids,
            items=items,
            warnings=warnings,
        )


def _format_confidence(confidence: float) -> str:
    return str(int(confidence)) if float(confidence).is_integer() else f"{confidence:g}"


def _adopt_confirmed(
    live: VerificationItem,
    decision: _Decision,
    confirmed: dict[str, Any] | None,
) -> VerificationItem | None:
    """Take the decision state from a remote-confirmed item payload.

    The remote copy is used only when it is a well-formed item for the same
    id whose history starts with the whole local history, adds at least one
    entry and ends with this decision. Otherwise None is returned and the
    caller appends the local entry, so locally recorded decisions are never
    replaced.
    """
    if not confirmed or confirmed.get("id") != live.id:
        return None
    try:
        remote = VerificationItem.model_validate(normalize_item_payload(confirmed))
    except PydanticValidationError:
        logger.warning("verification_confirmed_payload_invalid", item_id=live.id)
        return None

    latest = remote.latest_entry
    if (
        latest is None
        or latest.status != decision.status
        or len(remote.history) <= len(live.history)
        or not _extends_history(live.history, remote.history)
    ):
        logger.debug("verification_confirmed_history_not_adopted", item_id=live.id)
        return None

    return live.model_copy(
        update={
            "history": remote.history,
            "status": latest.status,
            "method": latest.method,
            "notes": latest.notes,
        }
    )


def _same_entry(local: VerificationHistoryEntry, remote: VerificationHistoryEntry) -> bool:
    # The remote may re-key entries; match on the decision content instead
    if local.id == remote.id:
        return True
    return (
        local.status == remote.status
        and local.notes == remote.notes
        and local.verified_at == remote.verified_at
    )


def _extends_history(
    local: Sequence[VerificationHistoryEntry],
    remote: Sequence[VerificationHistoryEntry],
) -> bool:
    """True when remote starts with every local entry, in order."""
    if len(remote) < len(local):
        return False
    return all(_same_entry(a, b) for a, b in zip(local, remote, strict=False))
