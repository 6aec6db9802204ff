"""Filtering, selection and progress aggregation over the verification queue.

Everything here is read-only with respect to the items: filters and selection
are view state, counts are derived on demand from whatever the store holds.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Literal

import structlog

from acr_review.core.config import HIGH_CONFIDENCE_THRESHOLD, SUMMARY_MEDIUM_THRESHOLD
from acr_review.models.verification import (
    VERIFIED_FILTER_TOKEN,
    ConfidenceLevel,
    Severity,
    VerificationFilters,
    VerificationItem,
    VerificationQueueData,
    VerificationStatus,
    VerificationSummary,
)
from acr_review.services.verification.store import ReconciliationStore

logger = structlog.get_logger(__name__)

FilterKind = Literal["severity", "confidence_level", "status"]


# =============================================================================
# Pure aggregation helpers
# =============================================================================


def matches_status(item: VerificationItem, statuses: set[str]) -> bool:
    """Check an item against a status filter, honouring the 'verified' token."""
    if item.status.value in statuses:
        return True
    return VERIFIED_FILTER_TOKEN in statuses and item.status.is_verified


def filter_items(
    items: Iterable[VerificationItem],
    filters: VerificationFilters,
) -> list[VerificationItem]:
    """Apply set-membership filters. Empty or None sets do not restrict."""
    result = []
    for item in items:
        if filters.severity and item.severity not in filters.severity:
            continue
        if filters.confidence_level and item.confidence_level not in filters.confidence_level:
            continue
        if filters.status and not matches_status(item, filters.status):
            continue
        result.append(item)
    return result


def count_verified(items: Iterable[VerificationItem]) -> int:
    """Count items whose status is any verified_* value."""
    return sum(1 for item in items if item.status.is_verified)


def progress_percent(verified: int, total: int) -> int:
    """Rounded percentage of verified items, 0 for an empty queue."""
    if total <= 0:
        return 0
    return min(100, int(verified * 100 / total + 0.5))


def build_queue_data(items: Sequence[VerificationItem]) -> VerificationQueueData:
    """Build queue counts for the given items."""
    return VerificationQueueData(
        items=list(items),
        total_count=len(items),
        verified_count=count_verified(items),
        pending_count=sum(1 for i in items if i.status == VerificationStatus.PENDING),
        deferred_count=sum(1 for i in items if i.status == VerificationStatus.DEFERRED),
    )


def summarize(
    items: Sequence[VerificationItem],
    *,
    high_threshold: int = HIGH_CONFIDENCE_THRESHOLD,
    medium_threshold: int = SUMMARY_MEDIUM_THRESHOLD,
) -> VerificationSummary:
    """Confidence breakdown for the summary card.

    Items suggested Not Applicable are counted apart; the remaining applicable
    items are bucketed by normalized score. Progress counts verified applicable
    items against the applicable count.

    Args:
        items: Queue items.
        high_threshold: Minimum score counted as high.
        medium_threshold: Minimum score counted as medium.

    Returns:
        VerificationSummary for display.
    """
    summary = VerificationSummary()
    for item in items:
        if item.na_suggestion is not None and item.na_suggestion.is_not_applicable:
            summary.not_applicable += 1
            continue

        summary.applicable += 1
        if item.status.is_verified:
            summary.verified_count += 1
        if item.confidence_score >= high_threshold:
            summary.high += 1
        elif item.confidence_score >= medium_threshold:
            summary.medium += 1
        else:
            summary.low += 1

    summary.progress_percent = progress_percent(summary.verified_count, summary.applicable)
    return summary


# =============================================================================
# Queue view (filters + selection)
# =============================================================================


class VerificationQueueView:
    """Filtered view and selection set over a ReconciliationStore.

    Selection only ever covers items visible under the current filter:
    selecting a hidden id is ignored, and narrowing the filter prunes hidden
    ids from the selection.
    """

    def __init__(self, store: ReconciliationStore) -> None:
        self._store = store
        self._filters = VerificationFilters()
        self._selected: set[str] = set()

    @property
    def filters(self) -> VerificationFilters:
        return self._filters.model_copy(deep=True)

    @property
    def items(self) -> list[VerificationItem]:
        return self._store.items

    @property
    def filtered_items(self) -> list[VerificationItem]:
        return filter_items(self._store.items, self._filters)

    @property
    def selected_ids(self) -> frozenset[str]:
        # Drop ids the store no longer holds (removed upstream)
        return frozenset(i for i in self._selected if i in self._store)

    @property
    def verified_count(self) -> int:
        return count_verified(self._store.items)

    @property
    def total_count(self) -> int:
        return len(self._store)

    @property
    def progress_percent(self) -> int:
        return progress_percent(self.verified_count, self.total_count)

    def queue_data(self) -> VerificationQueueData:
        """Counts over the whole queue."""
        return build_queue_data(self._store.items)

    def summary(self) -> VerificationSummary:
        """Confidence breakdown over the whole queue."""
        return summarize(self._store.items)

    # -------------------------------------------------------------------------
    # Filters
    # -------------------------------------------------------------------------

    def set_filter(self, filters: VerificationFilters) -> list[VerificationItem]:
        """Replace the filter criteria and prune the selection to the view."""
        self._filters = filters.model_copy(deep=True)
        visible = self._visible_ids()
        pruned = self._selected - visible
        self._selected &= visible

        logger.debug(
            "verification_filter_changed",
            severity=sorted(s.value for s in filters.severity or ()),
            confidence_level=sorted(c.value for c in filters.confidence_level or ()),
            status=sorted(filters.status or ()),
            pruned_selection=len(pruned),
        )
        return self.filtered_items

    def toggle_filter(
        self,
        kind: FilterKind,
        value: Severity | ConfidenceLevel | VerificationStatus | str,
    ) -> list[VerificationItem]:
        """Add or remove one value from one filter set.

        An emptied set collapses to None ("no filter").
        """
        if kind == "severity":
            value = Severity(value)
        elif kind == "confidence_level":
            value = ConfidenceLevel(value)
        elif kind == "status":
            value = value.value if isinstance(value, VerificationStatus) else str(value)
        else:
            raise ValueError(f"Unknown filter kind: {kind}")

        current = set(getattr(self._filters, kind) or ())
        current.symmetric_difference_update({value})

        filters = self._filters.model_copy(update={kind: current or None})
        return self.set_filter(filters)

    def clear_filters(self) -> list[VerificationItem]:
        return self.set_filter(VerificationFilters())

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def select(self, item_id: str, selected: bool = True) -> bool:
        """Select or deselect one visible item.

        Returns:
            True if the selection changed.
        """
        if not selected:
            if item_id in self._selected:
                self._selected.discard(item_id)
                return True
            return False

        if item_id not in self._visible_ids() or item_id in self._selected:
            return False
        self._selected.add(item_id)
        return True

    def select_all(self) -> frozenset[str]:
        """Toggle select-all over the visible items.

        Clears the selection when every visible item is already selected,
        otherwise selects everything visible.
        """
        visible = self._visible_ids()
        if visible and visible <= self._selected:
            self._selected.clear()
        else:
            self._selected = set(visible)
        return self.selected_ids

    def deselect_all(self) -> None:
        self._selected.clear()

    def _visible_ids(self) -> set[str]:
        return {item.id for item in self.filtered_items}
