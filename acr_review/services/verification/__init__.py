"""Verification service module for reviewer verification of automated findings.

This module provides:
- FindingClassifier: Turns automated findings into verification items
- suggest_decision: Smart-default pre-fill for pending items
- ReconciliationStore: Live queue merged across upstream refreshes
- VerificationQueueView: Filters, selection and progress
- SubmissionOrchestrator: Single/bulk/quick-accept writes with local fallback
- VerificationApiClient: Remote verification API client
- VerificationSession: Facade for one job's review session
"""

from acr_review.services.verification.classifier import FindingClassifier
from acr_review.services.verification.client import (
    VerificationApiClient,
    VerificationClientError,
)
from acr_review.services.verification.confidence import normalize_confidence
from acr_review.services.verification.queue_view import (
    VerificationQueueView,
    summarize,
)
from acr_review.services.verification.session import (
    VerificationSession,
    get_verification_session,
    reset_verification_sessions,
)
from acr_review.services.verification.smart_default import suggest_decision
from acr_review.services.verification.store import ReconciliationStore
from acr_review.services.verification.submission import (
    RemoteSubmitError,
    SubmissionOrchestrator,
    VerificationServiceError,
)

__all__ = [
    # Classification
    "FindingClassifier",
    "normalize_confidence",
    "suggest_decision",
    # Store and view
    "ReconciliationStore",
    "VerificationQueueView",
    "summarize",
    # Submission
    "RemoteSubmitError",
    "SubmissionOrchestrator",
    "VerificationServiceError",
    # Remote
    "VerificationApiClient",
    "VerificationClientError",
    # Session
    "VerificationSession",
    "get_verification_session",
    "reset_verification_sessions",
]
