"""Custom exception classes for the application."""

from typing import Any


class AppException(Exception):
    """Base application exception with structured error payload."""

    def __init__(
        self,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Render the error in the shape the presentation layer displays."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.error_details,
            }
        }


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(
        self,
        resource: str,
        resource_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            code=f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} with ID {resource_id} not found",
            details=details,
        )


class VerificationItemNotFoundError(NotFoundError):
    """Verification item not found in the live queue."""

    def __init__(self, item_id: str) -> None:
        super().__init__(resource="Verification_Item", resource_id=item_id)
        self.item_id = item_id


class ValidationError(AppException):
    """Validation error raised before any mutation is applied.

    Attributes:
        field: Name of the offending input field, for inline display.
    """

    def __init__(
        self,
        message: str = "Invalid request data",
        field: str | None = None,
        code: str = "VALIDATION_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        self.field = field
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(
            code=code,
            message=message,
            details=details,
        )
