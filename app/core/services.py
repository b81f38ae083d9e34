"""
Service layer base classes.

Services hold the money-moving logic; models hold state and tasks/views
only translate I/O. Two ways to report a failure:

    - raise a core.exceptions error when the caller must stop
      (bad input, illegal transition, gateway rejection)
    - return ServiceResult.failure() when the outcome is expected and only
      needs recording (webhook dispatch, payout initiation after capture)

Usage:
    from core.services import BaseService, ServiceResult

    class PayoutService(BaseService):
        @classmethod
        def initiate_payout_for_payment(cls, payment_id) -> ServiceResult[Payout]:
            account = BankAccountService.get_default_bank_account(coach_id)
            if account is None:
                return ServiceResult.failure("No verified bank account", "NO_BANK_ACCOUNT")
            ...
            return ServiceResult.success(payout)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call that is allowed to fail without raising.

    Attributes:
        success: Whether the operation succeeded
        data: Payload on success
        error: Human-readable message on failure
        error_code: Machine-readable code, e.g. "NO_BANK_ACCOUNT"
        errors: Per-field messages for validation failures
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code, errors=errors)

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """Failed result carrying the exception message; code defaults to the class name."""
        return cls(
            success=False,
            error=str(exc),
            error_code=error_code or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        """JSON-serialisable form, used as a Celery task return value."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {"success": False, "error": self.error}
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Stateless base for services; every public method is a classmethod.

    Each subclass logs under "<module>.<ClassName>" so one service's
    lines can be filtered out of the payments logger.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Log an exception and turn it into a failed ServiceResult.

        For best-effort side effects whose failure must not undo the
        operation that triggered them (queueing a payout after capture).
        """
        message = f"{context}: {exc}" if context else str(exc)
        cls.get_logger().log(log_level, message, exc_info=True)
        return ServiceResult.from_exception(exc, getattr(exc, "error_code", None))

    @classmethod
    def validate_required(cls, **kwargs) -> ServiceResult | None:
        """
        Return a failure naming every argument that is None or blank, else None.

        Example:
            missing = cls.validate_required(account_holder_name=name)
            if missing is not None:
                raise BankAccountValidationError(missing.error, details=missing.errors)
        """
        errors = {
            name: ["This field is required."]
            for name, value in kwargs.items()
            if value is None or (isinstance(value, str) and not value.strip())
        }
        if errors:
            return ServiceResult.failure(
                "Required fields missing",
                error_code="VALIDATION_ERROR",
                errors=errors,
            )
        return None
