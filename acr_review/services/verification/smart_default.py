"""Smart-default policy for pending verification items.

Pre-fills a reviewer's decision to save redundant clicks without letting
low-confidence automation get rubber-stamped. Suggestions are advisory only:
nothing here touches history; a decision is recorded only when the reviewer
submits through the SubmissionOrchestrator.

Decision table:
1. N/A suggested: VERIFIED_PASS via Manual Review, fields locked until the
   reviewer explicitly accepts
2. Confidence >= threshold: VERIFIED_PASS for an automated pass,
   VERIFIED_FAIL for an automated fail, unset for anything else
3. Confidence < threshold: unset
"""

from __future__ import annotations

from acr_review.core.config import SMART_DEFAULT_CONFIDENCE_THRESHOLD
from acr_review.models.verification import (
    AutomatedResult,
    SuggestedDecision,
    VerificationItem,
    VerificationMethod,
    VerificationStatus,
)


def suggest_decision(
    item: VerificationItem,
    confidence_threshold: int = SMART_DEFAULT_CONFIDENCE_THRESHOLD,
) -> SuggestedDecision:
    """Suggest an initial decision for an item.

    Items that already carry a decision get their latest entry as the
    pre-filled value (unlocked), so re-verification starts from it.

    Args:
        item: Item to pre-fill.
        confidence_threshold: Minimum normalized confidence for a pass/fail
            pre-fill.

    Returns:
        SuggestedDecision; status None means "force an explicit choice".
    """
    latest = item.latest_entry
    if latest is not None:
        return SuggestedDecision(
            status=latest.status,
            method=latest.method,
            notes=latest.notes,
            reason="latest_decision",
        )

    if item.na_suggestion is not None and item.na_suggestion.is_not_applicable:
        return SuggestedDecision(
            status=VerificationStatus.VERIFIED_PASS,
            method=VerificationMethod.MANUAL_REVIEW,
            locked=True,
            reason="na_suggestion",
        )

    if item.confidence_score >= confidence_threshold:
        if item.automated_result == AutomatedResult.PASS:
            return SuggestedDecision(
                status=VerificationStatus.VERIFIED_PASS,
                reason="high_confidence_pass",
            )
        if item.automated_result == AutomatedResult.FAIL:
            return SuggestedDecision(
                status=VerificationStatus.VERIFIED_FAIL,
                reason="high_confidence_fail",
            )
        return SuggestedDecision(reason="ambiguous_result")

    return SuggestedDecision(reason="low_confidence")
