"""Pydantic models module."""

from acr_review.models.verification import (
    AutomatedFinding,
    AutomatedResult,
    BulkSubmissionResult,
    ConfidenceLevel,
    DetectionCheck,
    FindingStatus,
    FixedVerificationIssue,
    JobMetadata,
    NaSuggestedStatus,
    NaSuggestion,
    SavedVerification,
    Severity,
    SubmissionResult,
    SuggestedDecision,
    VerificationFilters,
    VerificationHistoryEntry,
    VerificationIssue,
    VerificationItem,
    VerificationMethod,
    VerificationQueueData,
    VerificationRequirement,
    VerificationStatus,
    VerificationSummary,
    WcagLevel,
)

__all__ = [
    # Enums
    "AutomatedResult",
    "ConfidenceLevel",
    "FindingStatus",
    "NaSuggestedStatus",
    "Severity",
    "VerificationMethod",
    "VerificationRequirement",
    "VerificationStatus",
    "WcagLevel",
    # Upstream input
    "AutomatedFinding",
    "DetectionCheck",
    "FixedVerificationIssue",
    "NaSuggestion",
    "SavedVerification",
    "VerificationIssue",
    # Queue
    "SuggestedDecision",
    "VerificationFilters",
    "VerificationHistoryEntry",
    "VerificationItem",
    # Results and aggregates
    "BulkSubmissionResult",
    "JobMetadata",
    "SubmissionResult",
    "VerificationQueueData",
    "VerificationSummary",
]
