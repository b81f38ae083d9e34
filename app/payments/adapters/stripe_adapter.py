"""
Stripe implementation of the payment gateway port.

This module provides the StripeGateway class which encapsulates all
Stripe API interactions. All Stripe calls should go through this
adapter to ensure consistent error handling, timeouts, idempotency,
and observability.

Features:
- Configurable timeouts on all API calls
- Automatic error translation to gateway exceptions
- Translation of Stripe statuses to the gateway status vocabulary
- Structured logging with timing metrics
- Idempotency support for safe retries

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries performed by the Stripe client (default: 3)

Usage:
    from payments.adapters.stripe_adapter import StripeGateway

    gateway = StripeGateway()
    result = gateway.authorize(
        customer_id="cus_xxx",
        amount_cents=5000,
        currency="usd",
        idempotency_key="authorize:...:1:a1b2c3d4",
        source_token="pm_card_visa",
    )
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

import stripe
from django.conf import settings

from payments.adapters.base import (
    GatewayCustomerResult,
    GatewayEvent,
    GatewayEventType,
    GatewayPaymentResult,
    GatewayPaymentStatus,
    GatewayRefundResult,
    GatewayRefundStatus,
    PaymentGateway,
)
from payments.exceptions import (
    GatewayCardDeclinedError,
    GatewayInvalidRequestError,
    GatewayOutcomeUnknownError,
    GatewayRateLimitError,
    GatewayUnavailableError,
)

T = TypeVar("T")


# =============================================================================
# Status Mapping
# =============================================================================

PAYMENT_INTENT_STATUS_MAP = {
    "requires_capture": GatewayPaymentStatus.APPROVED,
    "succeeded": GatewayPaymentStatus.COMPLETED,
    "canceled": GatewayPaymentStatus.CANCELED,
    "processing": GatewayPaymentStatus.PENDING,
    "requires_payment_method": GatewayPaymentStatus.PENDING,
    "requires_confirmation": GatewayPaymentStatus.PENDING,
    "requires_action": GatewayPaymentStatus.PENDING,
}

REFUND_STATUS_MAP = {
    "pending": GatewayRefundStatus.PENDING,
    "requires_action": GatewayRefundStatus.PENDING,
    "succeeded": GatewayRefundStatus.COMPLETED,
    "failed": GatewayRefundStatus.FAILED,
    "canceled": GatewayRefundStatus.REJECTED,
}

# Stripe only accepts these refund reasons
STRIPE_REFUND_REASONS = {
    "duplicate": "duplicate",
    "fraudulent": "fraudulent",
}

STRIPE_CANCELLATION_REASONS = {"duplicate", "fraudulent", "requested_by_customer", "abandoned"}

PAYMENT_EVENT_TYPES = {
    "payment_intent.created": GatewayEventType.PAYMENT_CREATED,
    "payment_intent.amount_capturable_updated": GatewayEventType.PAYMENT_UPDATED,
    "payment_intent.processing": GatewayEventType.PAYMENT_UPDATED,
    "payment_intent.succeeded": GatewayEventType.PAYMENT_UPDATED,
    "payment_intent.payment_failed": GatewayEventType.PAYMENT_UPDATED,
    "payment_intent.canceled": GatewayEventType.PAYMENT_UPDATED,
}

REFUND_EVENT_TYPES = {
    "refund.created": GatewayEventType.REFUND_CREATED,
    "refund.updated": GatewayEventType.REFUND_UPDATED,
    "refund.failed": GatewayEventType.REFUND_UPDATED,
    "charge.refund.updated": GatewayEventType.REFUND_UPDATED,
}


def map_payment_intent_status(intent: Any) -> str:
    """
    Translate a PaymentIntent into the gateway payment vocabulary.

    A PaymentIntent that fell back to requires_payment_method after a
    confirmation attempt carries last_payment_error and counts as FAILED.
    """
    status = intent.status
    if status == "requires_payment_method" and getattr(intent, "last_payment_error", None):
        return GatewayPaymentStatus.FAILED
    return PAYMENT_INTENT_STATUS_MAP.get(status, GatewayPaymentStatus.PENDING)


def map_refund_status(refund: Any) -> str:
    return REFUND_STATUS_MAP.get(refund.status, GatewayRefundStatus.PENDING)


def _last_error_message(intent: Any) -> str | None:
    error = getattr(intent, "last_payment_error", None)
    if not error:
        return None
    return getattr(error, "message", None) or str(error)


def _to_dict(obj: Any) -> dict[str, Any]:
    to_dict = getattr(obj, "to_dict", None)
    return to_dict() if callable(to_dict) else {}


# =============================================================================
# Stripe Client Base
# =============================================================================


class StripeClientMixin:
    """
    Shared Stripe plumbing: configuration, timing, logging and error mapping.

    Every Stripe call is wrapped by _execute(), which logs
    "Starting Stripe operation" / "Stripe operation completed" with a
    duration and translates SDK exceptions via _handle_stripe_error().
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and network retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = getattr(settings, "STRIPE_MAX_RETRIES", 3)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    def _execute(
        cls,
        log_context: dict[str, Any],
        call: Callable[[], T],
        result_context: Callable[[T], dict[str, Any]] | None = None,
    ) -> T:
        """
        Run one Stripe call with timing, logging and error translation.

        Args:
            log_context: Structured logging context (must include "operation")
            call: Zero-argument callable performing the SDK request
            result_context: Extracts extra log fields from the response

        Returns:
            The SDK response object
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            response = call()
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise  # Never reached, but satisfies type checker

        duration_ms = (time.time() - start_time) * 1000
        extra = result_context(response) if result_context else {}
        logger.info(
            "Stripe operation completed",
            extra={**log_context, **extra, "duration_ms": duration_ms},
        )
        return response

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to gateway exceptions.

        Args:
            error: The Stripe exception
            log_context: Logging context dict
            duration_ms: Operation duration for logging

        Raises:
            GatewayCardDeclinedError: Card was declined
            GatewayInvalidRequestError: Invalid parameters or credentials
            GatewayRateLimitError: Rate limited
            GatewayUnavailableError: Stripe returned a server error
            GatewayOutcomeUnknownError: Network failure or timeout; the
                request may or may not have been applied
        """
        logger = cls.get_logger()

        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            raise GatewayCardDeclinedError(
                str(error.user_message or error),
                gateway_code=error.code,
                decline_code=decline_code,
            )

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            raise GatewayInvalidRequestError(
                str(error.user_message or error),
                gateway_code=error.code,
            )

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise GatewayRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                gateway_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            # Timeouts surface here too
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise GatewayOutcomeUnknownError(
                "Lost connection to Stripe; the outcome is unknown.",
                gateway_code="api_connection_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise GatewayUnavailableError(
                "Stripe service error. Please retry.",
                gateway_code="api_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise GatewayInvalidRequestError(
                "Stripe authentication failed",
                gateway_code="authentication_error",
            )

        elif isinstance(error, stripe.StripeError):
            logger.error(
                f"Stripe rejected the request: {type(error).__name__}",
                extra=log_context,
            )
            raise GatewayInvalidRequestError(
                str(error.user_message or error),
                gateway_code=getattr(error, "code", None),
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise GatewayOutcomeUnknownError(
                f"Unexpected Stripe error: {error}",
                gateway_code="unknown_error",
            )


# =============================================================================
# Stripe Gateway
# =============================================================================


class StripeGateway(StripeClientMixin, PaymentGateway):
    """
    PaymentGateway backed by Stripe PaymentIntents and Refunds.

    Holds are PaymentIntents created with capture_method="manual" and
    confirmed immediately when a payment method token is supplied.
    """

    # =========================================================================
    # Payments
    # =========================================================================

    def authorize(
        self,
        customer_id: str | None,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        capture_later: bool = True,
        source_token: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> GatewayPaymentResult:
        log_context = {
            "operation": "authorize",
            "amount_cents": amount_cents,
            "currency": currency,
            "customer_id": customer_id,
            "idempotency_key": idempotency_key,
        }

        create_kwargs: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency,
            "customer": customer_id,
            "capture_method": "manual" if capture_later else "automatic",
            "payment_method_types": ["card"],
            "metadata": metadata or {},
            "idempotency_key": idempotency_key,
        }
        if source_token:
            create_kwargs["payment_method"] = source_token
            create_kwargs["confirm"] = True

        intent = self._execute(
            log_context,
            lambda: stripe.PaymentIntent.create(**create_kwargs),
            lambda pi: {"payment_intent_id": pi.id, "status": pi.status},
        )
        return self._payment_result(intent)

    def capture(self, gateway_payment_id: str, idempotency_key: str) -> GatewayPaymentResult:
        log_context = {
            "operation": "capture",
            "payment_intent_id": gateway_payment_id,
            "idempotency_key": idempotency_key,
        }
        intent = self._execute(
            log_context,
            lambda: stripe.PaymentIntent.capture(
                gateway_payment_id,
                idempotency_key=idempotency_key,
            ),
            lambda pi: {"status": pi.status, "amount_received": pi.amount_received},
        )
        return self._payment_result(intent)

    def cancel(
        self,
        gateway_payment_id: str,
        idempotency_key: str,
        reason: str | None = None,
    ) -> GatewayPaymentResult:
        log_context = {
            "operation": "cancel",
            "payment_intent_id": gateway_payment_id,
            "idempotency_key": idempotency_key,
        }
        cancel_kwargs: dict[str, Any] = {"idempotency_key": idempotency_key}
        if reason in STRIPE_CANCELLATION_REASONS:
            cancel_kwargs["cancellation_reason"] = reason

        intent = self._execute(
            log_context,
            lambda: stripe.PaymentIntent.cancel(gateway_payment_id, **cancel_kwargs),
            lambda pi: {"status": pi.status},
        )
        return self._payment_result(intent)

    def retrieve_payment(self, gateway_payment_id: str) -> GatewayPaymentResult:
        log_context = {
            "operation": "retrieve_payment",
            "payment_intent_id": gateway_payment_id,
        }
        intent = self._execute(
            log_context,
            lambda: stripe.PaymentIntent.retrieve(gateway_payment_id),
            lambda pi: {"status": pi.status},
        )
        return self._payment_result(intent)

    # =========================================================================
    # Refunds
    # =========================================================================

    def refund(
        self,
        gateway_payment_id: str,
        amount_cents: int,
        idempotency_key: str,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> GatewayRefundResult:
        log_context = {
            "operation": "refund",
            "payment_intent_id": gateway_payment_id,
            "amount_cents": amount_cents,
            "reason": reason,
            "idempotency_key": idempotency_key,
        }
        refund = self._execute(
            log_context,
            lambda: stripe.Refund.create(
                payment_intent=gateway_payment_id,
                amount=amount_cents,
                reason=STRIPE_REFUND_REASONS.get(reason or "", "requested_by_customer"),
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            ),
            lambda re: {"refund_id": re.id, "status": re.status},
        )
        return self._refund_result(refund)

    def retrieve_refund(self, gateway_refund_id: str) -> GatewayRefundResult:
        log_context = {"operation": "retrieve_refund", "refund_id": gateway_refund_id}
        refund = self._execute(
            log_context,
            lambda: stripe.Refund.retrieve(gateway_refund_id),
            lambda re: {"status": re.status},
        )
        return self._refund_result(refund)

    # =========================================================================
    # Customers
    # =========================================================================

    def create_customer(
        self,
        email: str,
        given_name: str = "",
        family_name: str = "",
        idempotency_key: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> GatewayCustomerResult:
        log_context = {"operation": "create_customer", "idempotency_key": idempotency_key}
        name = " ".join(part for part in (given_name, family_name) if part) or None

        customer = self._execute(
            log_context,
            lambda: stripe.Customer.create(
                email=email,
                name=name,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            ),
            lambda c: {"customer_id": c.id},
        )
        return GatewayCustomerResult(customer_id=customer.id, raw_response=_to_dict(customer))

    # =========================================================================
    # Webhooks
    # =========================================================================

    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> GatewayEvent:
        """
        Verify the Stripe-Signature header and normalise the event.

        Raises:
            GatewayInvalidRequestError: Signature or payload invalid
        """
        logger = self.get_logger()
        signature = headers.get("Stripe-Signature") or headers.get("HTTP_STRIPE_SIGNATURE", "")

        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(
                "Webhook signature verification failed",
                extra={"error": str(e)},
            )
            raise GatewayInvalidRequestError(
                "Invalid webhook signature",
                gateway_code="signature_verification_failed",
            ) from e
        except ValueError as e:
            logger.warning("Webhook payload is not valid JSON", extra={"error": str(e)})
            raise GatewayInvalidRequestError(
                "Invalid webhook payload",
                gateway_code="invalid_payload",
            ) from e

        return self.normalize_event(event)

    @classmethod
    def normalize_event(cls, event: Any) -> GatewayEvent:
        """Translate a verified Stripe event into a GatewayEvent."""
        obj = event.data.object

        if event.type in PAYMENT_EVENT_TYPES:
            status = map_payment_intent_status(obj)
            if event.type == "payment_intent.payment_failed":
                status = GatewayPaymentStatus.FAILED
            return GatewayEvent(
                event_id=event.id,
                type=PAYMENT_EVENT_TYPES[event.type],
                object={
                    "id": obj.id,
                    "status": status,
                    "amount_cents": getattr(obj, "amount", None),
                    "failure_reason": _last_error_message(obj),
                },
            )

        if event.type in REFUND_EVENT_TYPES:
            return GatewayEvent(
                event_id=event.id,
                type=REFUND_EVENT_TYPES[event.type],
                object={
                    "id": obj.id,
                    "status": map_refund_status(obj),
                    "payment_id": getattr(obj, "payment_intent", None),
                    "amount_cents": getattr(obj, "amount", None),
                    "failure_reason": getattr(obj, "failure_reason", None),
                },
            )

        return GatewayEvent(
            event_id=event.id,
            type=event.type,
            object={"id": getattr(obj, "id", None)},
        )

    # =========================================================================
    # Result Builders
    # =========================================================================

    @staticmethod
    def _payment_result(intent: Any) -> GatewayPaymentResult:
        return GatewayPaymentResult(
            gateway_payment_id=intent.id,
            status=map_payment_intent_status(intent),
            amount_cents=intent.amount,
            currency=intent.currency,
            failure_reason=_last_error_message(intent),
            raw_response=_to_dict(intent),
        )

    @staticmethod
    def _refund_result(refund: Any) -> GatewayRefundResult:
        return GatewayRefundResult(
            gateway_refund_id=refund.id,
            status=map_refund_status(refund),
            gateway_payment_id=getattr(refund, "payment_intent", None),
            amount_cents=refund.amount,
            failure_reason=getattr(refund, "failure_reason", None),
            raw_response=_to_dict(refund),
        )
