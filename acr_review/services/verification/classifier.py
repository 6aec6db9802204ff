"""Classification of automated findings into verification items.

Turns the upstream analysis output into the reviewer queue:
- Normalizes confidence to 0-100 and buckets it (confidence level, severity)
- Maps the automated status to the reviewer-facing result
- Synthesizes evidence notes from remaining/fixed issue counts
- Rehydrates a saved decision into a single history entry
- Decides queue inclusion from the tri-state needsVerification flag

Classification is pure: the same finding and saved decision always produce
an equal item. Malformed records never raise; a missing id or criterion is
replaced by a positional fallback so one bad record cannot blank the queue.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime

import structlog

from acr_review.core.config import get_settings
from acr_review.models.verification import (
    AutomatedFinding,
    SavedVerification,
    VerificationHistoryEntry,
    VerificationItem,
    VerificationStatus,
)
from acr_review.services.verification.confidence import (
    get_confidence_level,
    get_severity,
    is_review_required,
    map_automated_result,
    normalize_confidence,
    resolve_requirement,
)

logger = structlog.get_logger(__name__)

# Timestamp for saved decisions that arrive without one
UNKNOWN_VERIFIED_AT = datetime(1970, 1, 1, tzinfo=UTC)
UNKNOWN_REVIEWER = "unknown"


def fallback_item_id(position: int) -> str:
    """Stable id for a finding that arrived without one."""
    return f"finding-{position}"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def build_automated_notes(
    remaining: int,
    fixed: int,
    remarks: str | None,
    confidence: int,
) -> str:
    """Summarize the automated evidence for the reviewer.

    Args:
        remaining: Issues still open.
        fixed: Issues remediation already fixed.
        remarks: Analyzer remarks, used when there are no issues.
        confidence: Normalized confidence for the placeholder text.

    Returns:
        Human-readable notes.
    """
    if remaining and fixed:
        return f"{_plural(remaining, 'issue')} remaining, {fixed} fixed"
    if remaining:
        return f"{_plural(remaining, 'issue')} remaining"
    if fixed:
        return f"All {_plural(fixed, 'issue')} fixed"
    if remarks and remarks.strip():
        return remarks.strip()
    return (
        f"Automated analysis completed with {confidence}% confidence. "
        "Manual verification recommended."
    )


def saved_to_history_entry(
    item_id: str,
    saved: SavedVerification,
) -> VerificationHistoryEntry:
    """Convert a persisted decision snapshot to a history entry."""
    return VerificationHistoryEntry(
        id=f"saved-{item_id}",
        status=saved.status,
        method=saved.method,
        notes=saved.notes,
        verified_by=saved.verified_by or UNKNOWN_REVIEWER,
        verified_at=saved.verified_at or UNKNOWN_VERIFIED_AT,
    )


class FindingClassifier:
    """Classifies automated findings using thresholds from settings.

    Example:
        >>> classifier = FindingClassifier()
        >>> item = classifier.classify(
        ...     AutomatedFinding(id="f1", criterion_id="1.4.1", status="fail",
        ...                      confidence_score=0.45),
        ... )
        >>> item.severity, item.confidence_level
        (<Severity.CRITICAL: 'critical'>, <ConfidenceLevel.LOW: 'low'>)
    """

    def __init__(self) -> None:
        settings = get_settings()
        self._high_threshold = settings.verification_high_confidence_threshold
        self._medium_threshold = settings.verification_medium_confidence_threshold
        self._serious_below = settings.verification_serious_below
        self._moderate_below = settings.verification_moderate_below
        self._include_unspecified = settings.verification_include_unspecified

    def classify(
        self,
        finding: AutomatedFinding,
        saved: SavedVerification | None = None,
        *,
        position: int = 0,
        item_id: str | None = None,
    ) -> VerificationItem:
        """Convert one finding (plus optional saved decision) into an item.

        Args:
            finding: Upstream finding.
            saved: Persisted decision for this item id, if any.
            position: Index of the finding in its batch, for fallback ids.
            item_id: Explicit id override (used to de-duplicate ids).

        Returns:
            VerificationItem with pending status, or mirroring the saved decision.
        """
        resolved_id = item_id or finding.id or fallback_item_id(position)
        score = normalize_confidence(finding.confidence_score)
        requirement = resolve_requirement(finding.needs_verification)

        issues = tuple(finding.related_issues)
        fixed_issues = tuple(finding.fixed_issues)

        item = VerificationItem(
            id=resolved_id,
            criterion_id=finding.criterion_id or f"unknown-{position}",
            criterion_name=finding.name,
            wcag_level=finding.level,
            severity=get_severity(
                finding.status,
                score,
                serious_below=self._serious_below,
                moderate_below=self._moderate_below,
            ),
            confidence_level=get_confidence_level(
                score,
                requirement,
                high_threshold=self._high_threshold,
                medium_threshold=self._medium_threshold,
            ),
            confidence_score=score,
            automated_result=map_automated_result(finding.status),
            automated_notes=build_automated_notes(
                len(issues), len(fixed_issues), finding.remarks, score
            ),
            issues=issues,
            fixed_issues=fixed_issues,
            fixed_count=len(fixed_issues),
            remaining_count=len(issues),
            na_suggestion=finding.na_suggestion,
        )

        if saved is not None and saved.status != VerificationStatus.PENDING:
            item = item.with_entry(saved_to_history_entry(resolved_id, saved))

        return item

    def should_include(self, finding: AutomatedFinding) -> bool:
        """Check whether the finding belongs in the review queue."""
        return is_review_required(
            resolve_requirement(finding.needs_verification),
            include_unspecified=self._include_unspecified,
        )

    def build_candidates(
        self,
        findings: Iterable[AutomatedFinding],
        saved: Mapping[str, SavedVerification] | None = None,
    ) -> list[VerificationItem]:
        """Classify a batch of findings into candidate queue items.

        Findings excluded by the inclusion rule are skipped. Ids stay unique:
        a missing id gets a positional fallback and a repeated id is suffixed
        with its position so two findings never collapse into one item.

        Args:
            findings: Upstream findings in producer order.
            saved: Persisted decisions keyed by item id.

        Returns:
            Candidate items in producer order.
        """
        saved = saved or {}
        candidates: list[VerificationItem] = []
        seen_ids: set[str] = set()

        for position, finding in enumerate(findings):
            if not self.should_include(finding):
                continue

            item_id = finding.id or fallback_item_id(position)
            if not finding.id or not finding.criterion_id:
                logger.warning(
                    "finding_malformed",
                    position=position,
                    finding_id=finding.id,
                    criterion_id=finding.criterion_id,
                    fallback_id=item_id,
                )
            if item_id in seen_ids:
                duplicate_id = item_id
                item_id = f"{item_id}-{position}"
                logger.warning(
                    "finding_duplicate_id",
                    finding_id=duplicate_id,
                    position=position,
                    fallback_id=item_id,
                )
            seen_ids.add(item_id)

            candidates.append(
                self.classify(
                    finding,
                    saved.get(item_id),
                    position=position,
                    item_id=item_id,
                )
            )

        logger.debug(
            "verification_candidates_built",
            candidate_count=len(candidates),
            saved_count=len(saved),
        )
        return candidates
