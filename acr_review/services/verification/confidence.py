"""Confidence normalization and bucketing for automated findings.

Upstream producers emit confidence either as a 0-1 fraction or as a 0-100
percentage. Everything past this module works on the 0-100 integer scale;
normalize_confidence() is the single place the conversion happens.

Thresholds default to the named constants in acr_review.core.config and can be
overridden per call (the classifier passes values from settings).
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from acr_review.core.config import (
    HIGH_CONFIDENCE_THRESHOLD,
    MEDIUM_CONFIDENCE_THRESHOLD,
    MODERATE_SEVERITY_BELOW,
    SERIOUS_SEVERITY_BELOW,
)
from acr_review.models.verification import (
    AutomatedResult,
    ConfidenceLevel,
    FindingStatus,
    Severity,
    VerificationRequirement,
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_confidence(score: float | None) -> int:
    """Convert a raw confidence score to an integer percentage.

    Scores <= 1 are treated as fractions and scaled by 100. Anything else is
    already a percentage. The result is rounded half-up and clamped to 0-100.

    Args:
        score: Raw score from the producer. None is treated as 0.

    Returns:
        Integer confidence on the 0-100 scale.
    """
    if score is None or math.isnan(score):
        return 0

    percent = score * 100 if score <= 1 else score
    return max(0, min(100, _round_half_up(percent)))


def resolve_requirement(needs_verification: bool | None) -> VerificationRequirement:
    """Map the upstream tri-state needsVerification flag to an enum."""
    if needs_verification is True:
        return VerificationRequirement.REQUIRED
    if needs_verification is False:
        return VerificationRequirement.NOT_REQUIRED
    return VerificationRequirement.UNSPECIFIED


def is_review_required(
    requirement: VerificationRequirement,
    include_unspecified: bool = True,
) -> bool:
    """Decide whether a finding enters the review queue.

    REQUIRED is always queued and NOT_REQUIRED never is. UNSPECIFIED follows
    include_unspecified, which defaults to queueing every finding the producer
    surfaces.
    """
    if requirement == VerificationRequirement.REQUIRED:
        return True
    if requirement == VerificationRequirement.NOT_REQUIRED:
        return False
    return include_unspecified


def get_confidence_level(
    score: int,
    requirement: VerificationRequirement = VerificationRequirement.UNSPECIFIED,
    *,
    high_threshold: int = HIGH_CONFIDENCE_THRESHOLD,
    medium_threshold: int = MEDIUM_CONFIDENCE_THRESHOLD,
) -> ConfidenceLevel:
    """Bucket a normalized score.

    MANUAL wins whenever the score is 0 or the producer explicitly asked for
    review; otherwise HIGH >= high_threshold, MEDIUM >= medium_threshold, LOW.
    """
    if score == 0 or requirement == VerificationRequirement.REQUIRED:
        return ConfidenceLevel.MANUAL
    if score >= high_threshold:
        return ConfidenceLevel.HIGH
    if score >= medium_threshold:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def get_severity(
    status: str,
    score: int,
    *,
    serious_below: int = SERIOUS_SEVERITY_BELOW,
    moderate_below: int = MODERATE_SEVERITY_BELOW,
) -> Severity:
    """Derive triage severity. A failing finding is always CRITICAL."""
    if status == FindingStatus.FAIL.value:
        return Severity.CRITICAL
    if score < serious_below:
        return Severity.SERIOUS
    if score < moderate_below:
        return Severity.MODERATE
    return Severity.MINOR


def normalize_item_payload(
    payload: Any,
    *,
    high_threshold: int = HIGH_CONFIDENCE_THRESHOLD,
    medium_threshold: int = MEDIUM_CONFIDENCE_THRESHOLD,
) -> Any:
    """Normalize confidence in a raw item payload from the remote API.

    The remote API may report confidenceScore on either scale. The score is
    normalized to 0-100 and the confidence level re-derived from it; a MANUAL
    level reported by the remote is kept. Non-mapping payloads and
    non-numeric scores are returned unchanged for validation to reject.

    Args:
        payload: Item payload (camelCase or snake_case keys).
        high_threshold: Minimum score for HIGH.
        medium_threshold: Minimum score for MEDIUM.

    Returns:
        A normalized copy of the payload.
    """
    if not isinstance(payload, Mapping):
        return payload

    data = dict(payload)
    for score_key, level_key in (
        ("confidenceScore", "confidenceLevel"),
        ("confidence_score", "confidence_level"),
    ):
        raw = data.get(score_key)
        if isinstance(raw, bool) or not isinstance(raw, int | float):
            continue
        score = normalize_confidence(raw)
        data[score_key] = score
        if data.get(level_key) != ConfidenceLevel.MANUAL.value:
            data[level_key] = get_confidence_level(
                score,
                high_threshold=high_threshold,
                medium_threshold=medium_threshold,
            ).value
    return data


def map_automated_result(status: str) -> AutomatedResult:
    """Map an upstream finding status to the reviewer-facing result.

    pass, fail and not_tested pass through; anything else (including
    not_applicable and unknown values) becomes WARNING.
    """
    if status == FindingStatus.PASS.value:
        return AutomatedResult.PASS
    if status == FindingStatus.FAIL.value:
        return AutomatedResult.FAIL
    if status == FindingStatus.NOT_TESTED.value:
        return AutomatedResult.NOT_TESTED
    return AutomatedResult.WARNING
