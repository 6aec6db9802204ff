"""Reconciliation store holding the live verification queue.

The store owns every VerificationItem for one review session. Each time fresh
findings (or a fresh map of saved decisions) arrive, the full candidate set is
recomputed and merged against the live set:

1. First computation: adopt the candidates unconditionally
2. Live item with a decision (status != pending): keep its status, method,
   notes and history verbatim, adopt everything else from the candidate
3. Otherwise: adopt the candidate wholesale
4. Live items absent from the candidates are dropped

A background refresh of the automated analysis therefore never clobbers a
reviewer's decision, while new evidence (e.g. newly fixed issues) still shows
up for every item.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

import structlog

from acr_review.core.exceptions import VerificationItemNotFoundError
from acr_review.models.verification import (
    AutomatedFinding,
    SavedVerification,
    VerificationItem,
    VerificationQueueData,
    VerificationStatus,
)
from acr_review.services.verification.classifier import FindingClassifier

logger = structlog.get_logger(__name__)

# Fields that belong to the reviewer, never to the automated analysis
DECISION_FIELDS: tuple[str, ...] = ("status", "method", "notes", "history")


def merge_item(live: VerificationItem | None, candidate: VerificationItem) -> VerificationItem:
    """Merge one candidate against the live item with the same id.

    Args:
        live: Current item, or None if the id is new.
        candidate: Freshly classified item.

    Returns:
        The item to keep.
    """
    if live is None or live.status == VerificationStatus.PENDING:
        return candidate

    return candidate.model_copy(
        update={field: getattr(live, field) for field in DECISION_FIELDS}
    )


class ReconciliationStore:
    """Live set of verification items for one review session.

    Example:
        >>> store = ReconciliationStore()
        >>> store.reconcile(findings=findings, saved=saved_decisions)
        >>> store.get("finding-1").status
        <VerificationStatus.PENDING: 'pending'>
    """

    def __init__(self, classifier: FindingClassifier | None = None) -> None:
        self._classifier = classifier or FindingClassifier()
        self._items: dict[str, VerificationItem] = {}
        self._initialized = False
        self._findings: list[AutomatedFinding] = []
        self._saved: dict[str, SavedVerification] = {}

    # -------------------------------------------------------------------------
    # Read access
    # -------------------------------------------------------------------------

    @property
    def items(self) -> list[VerificationItem]:
        """Items in producer order."""
        return list(self._items.values())

    @property
    def is_initialized(self) -> bool:
        """True once the first candidate set has been adopted."""
        return self._initialized

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __iter__(self) -> Iterator[VerificationItem]:
        return iter(self.items)

    def get(self, item_id: str) -> VerificationItem:
        """Get a live item.

        Raises:
            VerificationItemNotFoundError: If the id is not in the queue.
        """
        try:
            return self._items[item_id]
        except KeyError:
            raise VerificationItemNotFoundError(item_id) from None

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def reconcile(
        self,
        findings: Iterable[AutomatedFinding] | None = None,
        saved: Mapping[str, SavedVerification] | None = None,
    ) -> list[VerificationItem]:
        """Recompute candidates and merge them into the live set.

        Either argument may be omitted to reuse the last value seen, so a new
        findings list and a new saved-decision map can arrive independently.

        Args:
            findings: Fresh upstream findings.
            saved: Fresh persisted decisions keyed by item id.

        Returns:
            The live items after the merge.
        """
        if findings is not None:
            self._findings = list(findings)
        if saved is not None:
            self._saved = dict(saved)

        candidates = self._classifier.build_candidates(self._findings, self._saved)

        if not self._initialized:
            self._items = {candidate.id: candidate for candidate in candidates}
            self._initialized = True
            logger.info("verification_queue_initialized", item_count=len(self._items))
            return self.items

        previous = self._items
        merged: dict[str, VerificationItem] = {}
        preserved = 0
        for candidate in candidates:
            live = previous.get(candidate.id)
            item = merge_item(live, candidate)
            if live is not None and item is not candidate:
                preserved += 1
            merged[candidate.id] = item

        dropped = [item_id for item_id in previous if item_id not in merged]
        self._items = merged

        logger.info(
            "verification_queue_reconciled",
            item_count=len(merged),
            preserved_decisions=preserved,
            dropped_count=len(dropped),
        )
        return self.items

    def ingest_remote_queue(self, queue: VerificationQueueData) -> list[VerificationItem]:
        """Fold items from the remote queue endpoint into the live set.

        Remote items are one more candidate source, not the source of truth:
        they merge under the same rule but never drop local items.

        Args:
            queue: Queue data returned by the remote API.

        Returns:
            The live items after the merge.
        """
        merged = dict(self._items)
        for candidate in queue.items:
            merged[candidate.id] = merge_item(merged.get(candidate.id), candidate)

        self._items = merged
        self._initialized = True

        logger.info(
            "remote_queue_ingested",
            remote_count=len(queue.items),
            item_count=len(merged),
        )
        return self.items

    # -------------------------------------------------------------------------
    # Mutation (SubmissionOrchestrator only)
    # -------------------------------------------------------------------------

    def replace(self, item: VerificationItem) -> VerificationItem:
        """Swap in a new version of an existing item.

        Raises:
            VerificationItemNotFoundError: If the id is no longer in the queue.
        """
        if item.id not in self._items:
            raise VerificationItemNotFoundError(item.id)
        self._items[item.id] = item
        return item
