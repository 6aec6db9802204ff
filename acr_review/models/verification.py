"""Verification models for the accessibility conformance review workflow.

These models define the structure of the reviewer verification workflow:
- AutomatedFinding: One automated result for one criterion (upstream input)
- SavedVerification: Persisted decision snapshot used to rehydrate history
- VerificationHistoryEntry: One immutable reviewer decision
- VerificationItem: Reviewable unit derived from a finding plus decisions
- SuggestedDecision: Advisory pre-fill for a pending item (never committed)
- VerificationFilters: Filter criteria for the queue view
- SubmissionResult / BulkSubmissionResult: Outcomes of write operations
- VerificationQueueData / VerificationSummary: Aggregates for display

Upstream payloads use camelCase keys; every model accepts either the camelCase
alias or the snake_case field name and serializes with aliases.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# =============================================================================
# Enums
# =============================================================================


class VerificationStatus(str, Enum):
    """Reviewer verification status of an item."""

    PENDING = "pending"  # Awaiting reviewer decision
    VERIFIED_PASS = "verified_pass"  # Reviewer confirmed the criterion passes
    VERIFIED_FAIL = "verified_fail"  # Reviewer confirmed the criterion fails
    VERIFIED_PARTIAL = "verified_partial"  # Partially supported
    DEFERRED = "deferred"  # Postponed, not a verification

    @property
    def is_verified(self) -> bool:
        """True for any verified_* status."""
        return self.value.startswith("verified_")

    @property
    def requires_notes(self) -> bool:
        """True when a decision with this status must carry notes."""
        return self in (VerificationStatus.VERIFIED_FAIL, VerificationStatus.VERIFIED_PARTIAL)


# Generic status filter token matching every verified_* status
VERIFIED_FILTER_TOKEN = "verified"


class Severity(str, Enum):
    """Triage severity of a verification item."""

    CRITICAL = "critical"
    SERIOUS = "serious"
    MODERATE = "moderate"
    MINOR = "minor"


class ConfidenceLevel(str, Enum):
    """Bucketed confidence of the automated result."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    MANUAL = "manual"


class FindingStatus(str, Enum):
    """Status reported by the upstream analysis for one criterion."""

    PASS = "pass"
    FAIL = "fail"
    NOT_TESTED = "not_tested"
    NOT_APPLICABLE = "not_applicable"


class AutomatedResult(str, Enum):
    """Automated result as shown to the reviewer."""

    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"
    NOT_TESTED = "not_tested"


class WcagLevel(str, Enum):
    """WCAG conformance level of a criterion."""

    A = "A"
    AA = "AA"
    AAA = "AAA"


class VerificationMethod(str, Enum):
    """Tool or technique the reviewer used to verify."""

    NVDA = "NVDA 2024.1"
    JAWS = "JAWS 2024"
    VOICEOVER = "VoiceOver"
    MANUAL_REVIEW = "Manual Review"
    KEYBOARD_ONLY = "Keyboard Only"
    AXE_DEVTOOLS = "Axe DevTools"
    WAVE = "WAVE"


class NaSuggestedStatus(str, Enum):
    """Outcome of the automated applicability check."""

    NOT_APPLICABLE = "not_applicable"
    APPLICABLE = "applicable"
    UNCERTAIN = "uncertain"


class VerificationRequirement(str, Enum):
    """Whether a finding asks for human review.

    Resolved from the upstream tri-state needsVerification flag:
    - REQUIRED: needsVerification is true
    - NOT_REQUIRED: needsVerification is false
    - UNSPECIFIED: needsVerification is absent or null
    """

    REQUIRED = "required"
    NOT_REQUIRED = "not_required"
    UNSPECIFIED = "unspecified"


class _CamelModel(BaseModel):
    """Base model accepting camelCase upstream keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Upstream Input Models
# =============================================================================


class VerificationIssue(_CamelModel):
    """One concrete issue backing a finding."""

    id: str | None = Field(None, description="Issue identifier")
    issue_id: str | None = Field(None, description="Upstream issue identifier")
    rule_id: str | None = Field(None, description="Checker rule that raised the issue")
    impact: str | None = Field(None, description="Checker impact label")
    message: str = Field("", description="Human-readable issue message")
    severity: Severity | None = Field(None, description="Issue severity")
    location: str | None = Field(None, description="Location inside the document")
    file_path: str | None = Field(None, description="File inside the package")
    html: str | None = Field(None, description="Offending markup")
    html_snippet: str | None = Field(None, description="Offending markup excerpt")
    suggested_fix: str | None = Field(None, description="Suggested remediation")


class FixedVerificationIssue(VerificationIssue):
    """Issue that remediation already fixed."""

    fixed_at: datetime | None = Field(None, description="When the fix was applied")
    fix_method: str | None = Field(None, description="automated or manual")


class DetectionCheck(_CamelModel):
    """One check the applicability detector ran."""

    check: str = Field(..., description="What was checked")
    result: str = Field(..., description="pass, fail or warning")
    details: str | None = Field(None, description="Extra detail")


class NaSuggestion(_CamelModel):
    """Automated recommendation that a criterion does not apply."""

    suggested_status: NaSuggestedStatus = Field(..., description="Suggested applicability")
    confidence: float = Field(0, ge=0, le=100, description="Suggestion confidence (0-100)")
    rationale: str = Field("", description="Why the criterion does (not) apply")
    detection_checks: list[DetectionCheck] = Field(default_factory=list)
    edge_cases: list[str] = Field(default_factory=list)

    @property
    def is_not_applicable(self) -> bool:
        """True when the suggestion is Not Applicable."""
        return self.suggested_status == NaSuggestedStatus.NOT_APPLICABLE


class AutomatedFinding(_CamelModel):
    """One automated accessibility result for one criterion.

    Fields are optional where upstream producers have been seen omitting them;
    the classifier substitutes fallbacks instead of rejecting the record.
    """

    id: str | None = Field(None, description="Finding identifier")
    criterion_id: str | None = Field(None, description="WCAG criterion number, e.g. 1.4.1")
    name: str = Field("", description="Criterion name")
    level: WcagLevel = Field(WcagLevel.A, description="WCAG level")
    status: str = Field(
        FindingStatus.NOT_TESTED.value,
        description="pass, fail, not_tested or not_applicable",
    )
    confidence_score: float | None = Field(
        None,
        description="Raw confidence, either a 0-1 fraction or a 0-100 percentage",
    )
    needs_verification: bool | None = Field(
        None,
        description="True/False, or None meaning infer",
    )
    remarks: str | None = Field(None, description="Analyzer remarks")
    related_issues: list[VerificationIssue] = Field(default_factory=list)
    fixed_issues: list[FixedVerificationIssue] = Field(default_factory=list)
    na_suggestion: NaSuggestion | None = Field(None, description="N/A suggestion")


class SavedVerification(_CamelModel):
    """Persisted decision snapshot for one item id."""

    status: VerificationStatus = Field(..., description="Saved status")
    method: VerificationMethod = Field(
        VerificationMethod.MANUAL_REVIEW,
        description="Saved verification method",
    )
    notes: str = Field("", description="Saved notes")
    verified_at: datetime | None = Field(None, description="When the decision was made")
    verified_by: str | None = Field(None, description="Who made the decision")


# =============================================================================
# Verification Item Models
# =============================================================================


class VerificationHistoryEntry(_CamelModel):
    """One reviewer decision. Immutable once appended."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    id: str = Field(..., description="Entry identifier")
    status: VerificationStatus = Field(..., description="Decided status")
    method: VerificationMethod = Field(..., description="Verification method")
    notes: str = Field("", description="Reviewer notes")
    verified_by: str = Field(..., description="Reviewer identity")
    verified_at: datetime = Field(..., description="Decision timestamp")


class VerificationItem(_CamelModel):
    """Reviewable unit derived from a finding plus any decisions.

    Items are frozen. History is a tuple, so the only way to record a decision
    is with_entry(), which returns a new item with one more entry and the
    visible status/method/notes mirroring it.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    id: str = Field(..., description="Item identifier (= finding id)")
    criterion_id: str = Field(..., description="WCAG criterion number")
    criterion_name: str = Field("", description="Criterion name")
    wcag_level: WcagLevel = Field(WcagLevel.A, description="WCAG level")
    severity: Severity = Field(..., description="Triage severity")
    confidence_level: ConfidenceLevel = Field(..., description="Confidence bucket")
    confidence_score: int = Field(..., ge=0, le=100, description="Normalized confidence (0-100)")
    automated_result: AutomatedResult = Field(..., description="Automated result")
    automated_notes: str = Field("", description="Summary of the automated evidence")
    status: VerificationStatus = Field(VerificationStatus.PENDING)
    method: VerificationMethod | None = Field(None, description="Method of the latest decision")
    notes: str = Field("", description="Notes of the latest decision")
    history: tuple[VerificationHistoryEntry, ...] = Field(default=())
    issues: tuple[VerificationIssue, ...] = Field(default=())
    fixed_issues: tuple[FixedVerificationIssue, ...] = Field(default=())
    fixed_count: int = Field(0, ge=0)
    remaining_count: int = Field(0, ge=0)
    na_suggestion: NaSuggestion | None = Field(None)

    @property
    def latest_entry(self) -> VerificationHistoryEntry | None:
        """Most recent decision, or None when never decided."""
        return self.history[-1] if self.history else None

    @property
    def is_verified(self) -> bool:
        """True when the current status is any verified_* value."""
        return self.status.is_verified

    def with_entry(self, entry: VerificationHistoryEntry) -> VerificationItem:
        """Return a copy with entry appended and mirrored as current state."""
        return self.model_copy(
            update={
                "history": (*self.history, entry),
                "status": entry.status,
                "method": entry.method,
                "notes": entry.notes,
            }
        )


class SuggestedDecision(BaseModel):
    """Advisory pre-filled decision for a pending item.

    locked means the presentation layer keeps status and method read-only until
    the reviewer explicitly accepts the suggestion.
    """

    status: VerificationStatus | None = None
    method: VerificationMethod | None = None
    notes: str = ""
    locked: bool = False
    reason: str = ""


class VerificationFilters(BaseModel):
    """Filter criteria for the queue view. None means "no filter"."""

    severity: set[Severity] | None = None
    confidence_level: set[ConfidenceLevel] | None = None
    status: set[str] | None = Field(
        None,
        description="VerificationStatus values or the generic 'verified' token",
    )

    @property
    def is_empty(self) -> bool:
        """True when no criterion restricts the view."""
        return not (self.severity or self.confidence_level or self.status)


# =============================================================================
# Write Operation Results
# =============================================================================


class SubmissionResult(BaseModel):
    """Outcome of a single submit, quick accept or undo."""

    success: bool = Field(..., description="True when the decision is recorded")
    item: VerificationItem | None = Field(None, description="Updated item")
    persisted_remotely: bool = Field(False, description="Remote call confirmed")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal problems")


class BulkSubmissionResult(BaseModel):
    """Outcome of a bulk submit.

    succeeded/failed count remote outcomes. Remote failures are still applied
    locally, so every id in items carries the new decision.
    """

    succeeded: int = Field(0, ge=0, description="Items confirmed remotely")
    failed: int = Field(0, ge=0, description="Items recovered by local fallback")
    failed_ids: list[str] = Field(default_factory=list)
    skipped_ids: list[str] = Field(default_factory=list, description="Ineligible ids")
    items: list[VerificationItem] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        """Number of items the decision was applied to."""
        return len(self.items)

    @property
    def is_partial_failure(self) -> bool:
        """True when some, but not all, remote calls failed."""
        return self.failed > 0 and self.succeeded > 0


# =============================================================================
# Aggregates
# =============================================================================


class VerificationQueueData(_CamelModel):
    """Verification queue with counts, as exchanged with the remote API."""

    items: list[VerificationItem] = Field(default_factory=list)
    total_count: int = Field(0, ge=0)
    verified_count: int = Field(0, ge=0)
    pending_count: int = Field(0, ge=0)
    deferred_count: int = Field(0, ge=0)


class VerificationSummary(BaseModel):
    """Confidence breakdown of a queue for the summary card."""

    applicable: int = Field(0, ge=0, description="Items not suggested N/A")
    not_applicable: int = Field(0, ge=0, description="Items suggested N/A")
    high: int = Field(0, ge=0, description="Applicable items at high confidence")
    medium: int = Field(0, ge=0, description="Applicable items at medium confidence")
    low: int = Field(0, ge=0, description="Applicable items at low confidence")
    verified_count: int = Field(0, ge=0, description="Verified applicable items")
    progress_percent: int = Field(0, ge=0, le=100)


class JobMetadata(_CamelModel):
    """Job metadata used only to decorate the review screen."""

    job_id: str = Field(..., alias="id")
    file_name: str = Field("", description="Uploaded file name")
    has_remediated_file: bool = Field(False, description="Remediated artifact exists")
