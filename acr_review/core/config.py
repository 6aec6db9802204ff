"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Final

from pydantic_settings import BaseSettings, SettingsConfigDict

# =============================================================================
# Canonical verification thresholds (0-100 scale)
# =============================================================================

HIGH_CONFIDENCE_THRESHOLD: Final[int] = 90
MEDIUM_CONFIDENCE_THRESHOLD: Final[int] = 60
SERIOUS_SEVERITY_BELOW: Final[int] = 50
MODERATE_SEVERITY_BELOW: Final[int] = 70
SUMMARY_MEDIUM_THRESHOLD: Final[int] = 70
SMART_DEFAULT_CONFIDENCE_THRESHOLD: Final[int] = 80
QUICK_ACCEPT_NA_THRESHOLD: Final[int] = 90


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "ACR Review"
    debug: bool = False

    # Reviewer identity stamped on every history entry
    reviewer_name: str = "Current User"

    # Confidence buckets (applied after normalization)
    # >= high: HIGH, >= medium: MEDIUM, > 0: LOW, == 0: MANUAL
    verification_high_confidence_threshold: int = HIGH_CONFIDENCE_THRESHOLD
    verification_medium_confidence_threshold: int = MEDIUM_CONFIDENCE_THRESHOLD

    # Severity buckets for non-failing findings
    # < serious: SERIOUS, < moderate: MODERATE, otherwise MINOR
    verification_serious_below: int = SERIOUS_SEVERITY_BELOW
    verification_moderate_below: int = MODERATE_SEVERITY_BELOW

    # Summary breakdown: applicable items >= this (and < high) count as medium
    verification_summary_medium_threshold: int = SUMMARY_MEDIUM_THRESHOLD

    # Queue inclusion for findings that do not say whether they need review
    verification_include_unspecified: bool = True

    # Smart defaults and N/A quick accept
    smart_default_confidence_threshold: int = SMART_DEFAULT_CONFIDENCE_THRESHOLD
    quick_accept_na_threshold: int = QUICK_ACCEPT_NA_THRESHOLD

    # Remote verification API
    verification_api_base_url: str = "http://localhost:3000/api/v1"
    verification_api_token: str = ""
    verification_api_timeout: float = 10.0  # Per-call timeout (seconds)
    verification_api_max_retries: int = 2
    verification_offline_mode: bool = False  # Demo/offline: skip remote calls entirely
    verification_bulk_limit: int = 100

    @property
    def is_remote_configured(self) -> bool:
        """Check if the remote verification API can be used."""
        return bool(self.verification_api_base_url) and not self.verification_offline_mode


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()
