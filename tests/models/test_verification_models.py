"""Tests for verification models.

Test Categories:
- Upstream camelCase parsing
- Status enum helpers
- Frozen items and append-only history
"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from acr_review.models.verification import (
    AutomatedFinding,
    AutomatedResult,
    ConfidenceLevel,
    NaSuggestedStatus,
    Severity,
    VerificationHistoryEntry,
    VerificationItem,
    VerificationMethod,
    VerificationStatus,
)


def _item(**overrides) -> VerificationItem:
    data = {
        "id": "item-1",
        "criterion_id": "1.4.1",
        "criterion_name": "Use of Color",
        "severity": Severity.MINOR,
        "confidence_level": ConfidenceLevel.HIGH,
        "confidence_score": 95,
        "automated_result": AutomatedResult.PASS,
    }
    data.update(overrides)
    return VerificationItem(**data)


def _entry(entry_id: str, status: VerificationStatus, notes: str = "") -> VerificationHistoryEntry:
    return VerificationHistoryEntry(
        id=entry_id,
        status=status,
        method=VerificationMethod.MANUAL_REVIEW,
        notes=notes,
        verified_by="Jane Smith",
        verified_at=datetime(2024, 12, 15, 10, 30, tzinfo=UTC),
    )


class TestAutomatedFindingParsing:
    """Test upstream payload parsing."""

    def test_parses_camel_case_payload(self) -> None:
        """camelCase keys map to snake_case fields."""
        finding = AutomatedFinding.model_validate({
            "id": "f-1",
            "criterionId": "1.4.1",
            "name": "Use of Color",
            "level": "AA",
            "status": "fail",
            "confidenceScore": 0.45,
            "needsVerification": True,
            "relatedIssues": [{"ruleId": "color-contrast", "message": "Low contrast"}],
            "naSuggestion": {
                "suggestedStatus": "not_applicable",
                "confidence": 92,
                "rationale": "No color-only indicators found",
                "detectionChecks": [{"check": "Color usage", "result": "pass"}],
            },
        })

        assert finding.criterion_id == "1.4.1"
        assert finding.confidence_score == 0.45
        assert finding.needs_verification is True
        assert finding.related_issues[0].rule_id == "color-contrast"
        assert finding.na_suggestion.suggested_status == NaSuggestedStatus.NOT_APPLICABLE
        assert finding.na_suggestion.is_not_applicable

    def test_missing_fields_use_defaults(self) -> None:
        """A sparse record still parses; needsVerification stays None."""
        finding = AutomatedFinding.model_validate({"status": "pass"})

        assert finding.id is None
        assert finding.criterion_id is None
        assert finding.needs_verification is None
        assert finding.related_issues == []

    def test_na_confidence_range_enforced(self) -> None:
        """N/A suggestion confidence must be on the 0-100 scale."""
        with pytest.raises(ValidationError):
            AutomatedFinding.model_validate({
                "naSuggestion": {"suggestedStatus": "not_applicable", "confidence": 140},
            })


class TestVerificationStatus:
    """Test status helpers."""

    @pytest.mark.parametrize(
        "status",
        [
            VerificationStatus.VERIFIED_PASS,
            VerificationStatus.VERIFIED_FAIL,
            VerificationStatus.VERIFIED_PARTIAL,
        ],
    )
    def test_verified_statuses(self, status) -> None:
        """verified_* statuses count as verified."""
        assert status.is_verified

    def test_pending_and_deferred_not_verified(self) -> None:
        """Pending and deferred are not verified."""
        assert not VerificationStatus.PENDING.is_verified
        assert not VerificationStatus.DEFERRED.is_verified

    def test_notes_required_for_fail_and_partial(self) -> None:
        """Only fail and partial require notes."""
        assert VerificationStatus.VERIFIED_FAIL.requires_notes
        assert VerificationStatus.VERIFIED_PARTIAL.requires_notes
        assert not VerificationStatus.VERIFIED_PASS.requires_notes
        assert not VerificationStatus.DEFERRED.requires_notes


class TestVerificationItemHistory:
    """Test append-only history on frozen items."""

    def test_new_item_is_pending_with_empty_history(self) -> None:
        """Defaults: pending, no notes, no history."""
        item = _item()

        assert item.status == VerificationStatus.PENDING
        assert item.notes == ""
        assert item.history == ()
        assert item.latest_entry is None

    def test_with_entry_appends_and_mirrors(self) -> None:
        """with_entry appends and mirrors status/method/notes."""
        item = _item()
        updated = item.with_entry(_entry("h1", VerificationStatus.VERIFIED_FAIL, "Missing label"))

        assert updated.status == VerificationStatus.VERIFIED_FAIL
        assert updated.method == VerificationMethod.MANUAL_REVIEW
        assert updated.notes == "Missing label"
        assert [e.id for e in updated.history] == ["h1"]
        # Original is untouched
        assert item.history == ()
        assert item.status == VerificationStatus.PENDING

    def test_resubmission_keeps_prior_entries(self) -> None:
        """A second entry is appended after the first."""
        item = _item().with_entry(_entry("h1", VerificationStatus.DEFERRED))
        item = item.with_entry(_entry("h2", VerificationStatus.VERIFIED_PASS))

        assert [e.id for e in item.history] == ["h1", "h2"]
        assert item.status == VerificationStatus.VERIFIED_PASS

    def test_item_is_frozen(self) -> None:
        """Fields cannot be reassigned."""
        item = _item()
        with pytest.raises(ValidationError):
            item.status = VerificationStatus.VERIFIED_PASS

    def test_history_cannot_be_index_mutated(self) -> None:
        """History is a tuple; item assignment fails."""
        item = _item().with_entry(_entry("h1", VerificationStatus.VERIFIED_PASS))
        with pytest.raises(TypeError):
            item.history[0] = _entry("h2", VerificationStatus.VERIFIED_FAIL, "x")

    def test_entry_is_frozen(self) -> None:
        """History entries are immutable once created."""
        entry = _entry("h1", VerificationStatus.VERIFIED_PASS)
        with pytest.raises(ValidationError):
            entry.notes = "edited"

    def test_serializes_with_camel_case_aliases(self) -> None:
        """by_alias dumps use the upstream key names."""
        dumped = _item().model_dump(by_alias=True)

        assert dumped["criterionId"] == "1.4.1"
        assert dumped["confidenceLevel"] == ConfidenceLevel.HIGH
        assert "fixedIssues" in dumped

    def test_confidence_score_range_enforced(self) -> None:
        """Stored confidence is always 0-100."""
        with pytest.raises(ValidationError):
            _item(confidence_score=120)
