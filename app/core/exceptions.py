"""
Base exception classes shared by the domain apps.

Every error raised by a service carries a machine-readable code and a
details dict, so tasks, views and admin actions can report it without
knowing the concrete class.

Exception Hierarchy:
    BaseApplicationError
    ├── ValidationError       bad input, nothing was changed
    ├── NotFoundError         referenced record does not exist
    ├── ConflictError         record is not in a state that allows the operation
    └── ExternalServiceError  a third-party call failed

Usage:
    from core.exceptions import BaseApplicationError, ValidationError

    raise ValidationError(
        "Invalid bank account",
        error_code="INVALID_ROUTING_NUMBER",
        details={"routing_number": ["Checksum failed"]},
    )

    try:
        ...
    except BaseApplicationError as e:
        return JsonResponse(e.to_dict(), status=400)
"""

from __future__ import annotations

from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code; defaults to the class's default_error_code
        details: Additional context (field errors, ids, gateway codes)
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialise for task results and HTTP responses.

        Example:
            {
                "error": "Refund exceeds the refundable balance",
                "error_code": "REFUND_EXCEEDS_BALANCE",
                "details": {"refundable_cents": 7500}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Input failed validation before any side effect.

    Never retried automatically; details maps field names to messages.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    The record's current state does not allow the operation.

    Covers illegal status transitions, stale versions and duplicates.
    Maps to HTTP 409.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """A call to a third-party service (payment gateway, bank) failed."""

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
