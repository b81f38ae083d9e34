"""
Payment-specific exceptions for payment operations.

This module provides the error taxonomy of the payment engine: validation
failures rejected before any gateway call, state conflicts on the current
stored status, gateway errors, local persistence failures after a gateway
side effect, and skipped reconciliations.

Exception Hierarchy:
    ValidationError (core)
    ├── InvalidRateError - Rate missing, inactive or malformed
    ├── RateOwnershipMismatchError - Rate belongs to another coach
    ├── RefundExceedsBalanceError - Refund would exceed the refundable balance
    └── BankAccountValidationError - Bad routing/account number, unverified account

    NotFoundError (core)
    └── PaymentNotFoundError - Payment entity lookup failures

    ConflictError (core)
    └── StateConflictError - Precondition on current status violated
        ├── InvalidStateTransitionError - FSM transition not allowed
        ├── StaleRecordError - Optimistic locking conflict
        ├── BankAccountInUseError - Account has in-flight payouts
        └── PayoutAlreadyExistsError - Payment already has an active payout

    ExternalServiceError (core)
    └── GatewayError - Base for payment processor errors
        ├── GatewayCardDeclinedError - Card declined (permanent)
        ├── GatewayInvalidRequestError - Invalid request params (permanent)
        ├── GatewayAuthorizationFailedError - Hold was not granted (permanent)
        ├── GatewayRateLimitError - Rate limited (transient)
        ├── GatewayUnavailableError - API unavailable (transient)
        └── GatewayOutcomeUnknownError - Timed out after send (reconcile, never retry)

    PaymentError
    ├── LedgerWriteFailedError - Local write failed after a gateway side effect
    └── ReconciliationSkippedError - Webhook not applied

Usage:
    from payments.exceptions import (
        GatewayOutcomeUnknownError,
        InvalidStateTransitionError,
        RefundExceedsBalanceError,
    )

    if requested + already_refunded > payment.amount_cents:
        raise RefundExceedsBalanceError(
            "Refund exceeds refundable balance",
            details={"requested_cents": requested, "available_cents": available},
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for payment operations that fit no core category.

    Example:
        try:
            AuthorizationService.authorize(...)
        except PaymentError as e:
            logger.error(f"Payment operation failed: {e}")
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(NotFoundError):
    """
    Raised when a payment entity cannot be found.

    Use for:
    - Payment lookup fails
    - Refund lookup fails
    - Payout lookup fails
    - Rate or BankAccount lookup fails

    Example:
        payment = Payment.objects.filter(id=payment_id).first()
        if not payment:
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)},
            )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


# -----------------------------------------------------------------------------
# Validation (rejected before any gateway call, never retried)
# -----------------------------------------------------------------------------


class InvalidRateError(ValidationError):
    """Raised when a rate is missing, inactive or has invalid fields."""

    default_error_code: str = "INVALID_RATE"


class RateOwnershipMismatchError(ValidationError):
    """Raised when a rate does not belong to the stated coach."""

    default_error_code: str = "RATE_OWNERSHIP_MISMATCH"


class RefundExceedsBalanceError(ValidationError):
    """
    Raised when a refund would exceed the refundable balance.

    The balance counts succeeded refunds and refunds still in flight
    (pending/processing). No Refund row is written when this is raised.
    """

    default_error_code: str = "REFUND_EXCEEDS_BALANCE"


class BankAccountValidationError(ValidationError):
    """
    Raised for invalid bank account data.

    Use for:
    - Routing number failing the ABA checksum
    - Account number not 4-17 digits
    - Payout against an unverified account
    """

    default_error_code: str = "INVALID_BANK_ACCOUNT"


# =============================================================================
# State Conflicts
# =============================================================================


class StateConflictError(ConflictError):
    """
    Raised when the current stored status violates an operation's precondition.

    Returned synchronously to the caller and never retried automatically.

    Note:
        Inherits from ConflictError (HTTP 409) because the current
        state conflicts with the requested operation.
    """

    default_error_code: str = "STATE_CONFLICT"


class InvalidStateTransitionError(StateConflictError):
    """
    Raised when a state machine transition is not allowed.

    This exception wraps django-fsm's TransitionNotAllowed to provide
    our standard error format with additional context.

    Example:
        from django_fsm import TransitionNotAllowed

        try:
            payment.capture()
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot capture payment from '{payment.status}' state",
                details={
                    "current_state": payment.status,
                    "target_state": "succeeded",
                    "transition": "capture",
                },
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class StaleRecordError(StateConflictError):
    """
    Raised when optimistic locking detects concurrent modification.

    The record was modified by another process between read and update.
    The caller should either retry with fresh data or abort.

    Attributes:
        details: Contains pk, expected_version and current_version
    """

    default_error_code: str = "STALE_RECORD"


class BankAccountInUseError(StateConflictError):
    """Raised when deleting a bank account with pending or processing payouts."""

    default_error_code: str = "BANK_ACCOUNT_IN_USE"


class PayoutAlreadyExistsError(StateConflictError):
    """Raised when a payment already has a non-rejected, non-failed payout."""

    default_error_code: str = "PAYOUT_ALREADY_EXISTS"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayError(ExternalServiceError):
    """
    Base exception for all payment gateway errors.

    Provides common attributes for gateway error handling:
    - gateway_code: The processor's internal error code
    - decline_code: Card decline code (if applicable)
    - is_retryable: Whether the operation can be retried

    The message carries the processor's human-readable reason so it can
    be surfaced to the user.
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        gateway_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if gateway_code:
            details["gateway_code"] = gateway_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.gateway_code = gateway_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class GatewayCardDeclinedError(GatewayError):
    """
    Card was declined by the issuing bank.

    The decline_code attribute contains the specific reason
    (insufficient_funds, expired_card, incorrect_cvc, ...).
    """

    default_error_code: str = "CARD_DECLINED"


class GatewayInvalidRequestError(GatewayError):
    """
    Invalid request parameters sent to the gateway.

    Possible causes:
    - Unknown payment id
    - Invalid amount or currency
    - Operation not allowed (e.g., refund > captured amount)
    """

    default_error_code: str = "INVALID_GATEWAY_REQUEST"


class GatewayAuthorizationFailedError(GatewayError):
    """Raised when the gateway did not grant a hold."""

    default_error_code: str = "AUTHORIZATION_FAILED"


# -----------------------------------------------------------------------------
# Transient Errors
# -----------------------------------------------------------------------------


class GatewayRateLimitError(GatewayError):
    """Rate limited by the gateway API."""

    default_error_code: str = "GATEWAY_RATE_LIMITED"
    is_retryable: bool = True


class GatewayUnavailableError(GatewayError):
    """
    Gateway API is temporarily unavailable.

    Raised when the request was rejected before it reached the processor
    (5xx responses, authentication outages).
    """

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class GatewayOutcomeUnknownError(GatewayError):
    """
    Gateway call timed out after the request was sent.

    IMPORTANT: The operation may have succeeded on the gateway's side.
    The local record is left untouched; recovery is a reconciliation
    read (reconcile_stale_records) or the gateway's webhook, never a
    blind retry with a new idempotency key.
    """

    default_error_code: str = "GATEWAY_OUTCOME_UNKNOWN"
    is_retryable: bool = False


# =============================================================================
# Persistence and Reconciliation
# =============================================================================


class LedgerWriteFailedError(PaymentError):
    """
    Raised when a local write fails after a gateway side effect occurred.

    Where the operation is compensable (authorize), the compensating
    gateway call has already been attempted when this is raised; the
    details carry whether it succeeded.
    """

    default_error_code: str = "LEDGER_WRITE_FAILED"


class ReconciliationSkippedError(PaymentError):
    """
    Raised when a webhook event is deliberately not applied.

    Use for:
    - Event references an unknown local record
    - Reported status is not a legal forward transition
    """

    default_error_code: str = "RECONCILIATION_SKIPPED"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentError",
    "PaymentNotFoundError",
    # Validation
    "InvalidRateError",
    "RateOwnershipMismatchError",
    "RefundExceedsBalanceError",
    "BankAccountValidationError",
    # State conflicts
    "StateConflictError",
    "InvalidStateTransitionError",
    "StaleRecordError",
    "BankAccountInUseError",
    "PayoutAlreadyExistsError",
    # Gateway
    "GatewayError",
    "GatewayCardDeclinedError",
    "GatewayInvalidRequestError",
    "GatewayAuthorizationFailedError",
    "GatewayRateLimitError",
    "GatewayUnavailableError",
    "GatewayOutcomeUnknownError",
    # Persistence and reconciliation
    "LedgerWriteFailedError",
    "ReconciliationSkippedError",
]
