"""
Gateway port and shared data types for payment adapters.

PaymentGateway is the boundary between the payment services and an
external card processor. Services only ever talk to this interface;
the concrete implementation is chosen by settings.PAYMENT_GATEWAY_CLASS
(see payments.adapters.get_gateway).

Gateway status vocabulary:
    Payments: APPROVED, PENDING, COMPLETED, CANCELED, FAILED
    Refunds:  PENDING, COMPLETED, REJECTED, FAILED

Webhook vocabulary:
    payment.created, payment.updated, refund.created, refund.updated

Usage:
    from payments.adapters import get_gateway
    from payments.adapters.base import IdempotencyKeyGenerator

    gateway = get_gateway()
    result = gateway.capture(
        payment.gateway_payment_id,
        idempotency_key=IdempotencyKeyGenerator.generate("capture", payment.id),
    )
    if result.status == GatewayPaymentStatus.COMPLETED:
        ...
"""

from __future__ import annotations

import hashlib
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings


# =============================================================================
# Status Vocabulary
# =============================================================================


class GatewayPaymentStatus:
    APPROVED = "APPROVED"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
    FAILED = "FAILED"


class GatewayRefundStatus:
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"


class GatewayEventType:
    PAYMENT_CREATED = "payment.created"
    PAYMENT_UPDATED = "payment.updated"
    REFUND_CREATED = "refund.created"
    REFUND_UPDATED = "refund.updated"


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class GatewayPaymentResult:
    """
    Result from gateway payment operations (authorize/capture/cancel/retrieve).

    Attributes:
        gateway_payment_id: Gateway's payment ID
        status: One of GatewayPaymentStatus
        amount_cents: Amount in cents, when reported
        currency: Currency code, when reported
        failure_reason: Processor's human-readable reason for a failure
        raw_response: Full gateway response dict (for debugging)
    """

    gateway_payment_id: str
    status: str
    amount_cents: int | None = None
    currency: str | None = None
    failure_reason: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayRefundResult:
    """
    Result from gateway refund operations.

    Attributes:
        gateway_refund_id: Gateway's refund ID
        status: One of GatewayRefundStatus
        gateway_payment_id: Payment the refund belongs to
        amount_cents: Refunded amount in cents
        failure_reason: Processor's reason for a failure
        raw_response: Full gateway response dict
    """

    gateway_refund_id: str
    status: str
    gateway_payment_id: str | None = None
    amount_cents: int | None = None
    failure_reason: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayCustomerResult:
    customer_id: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayEvent:
    """
    A verified webhook event in the gateway-neutral vocabulary.

    Attributes:
        event_id: Gateway's unique event ID (deduplication key)
        type: Normalised event type (see GatewayEventType); unknown
            provider events keep their provider type
        object: Normalised object, e.g. {"id": "pi_1", "status": "COMPLETED"}
    """

    event_id: str
    type: str
    object: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        """Payload stored on WebhookEvent."""
        return {"type": self.type, "object": self.object}


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for gateway API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The same (operation, entity_id, attempt) always yields the same key,
    so a retried request for the same logical operation reuses its key
    and produces at most one gateway-side effect.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation='capture',
            entity_id=payment.id,
        )
        # Result: "capture:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        """
        Generate an operation-scoped idempotency key.

        Args:
            operation: The gateway operation (authorize, capture, refund, ...)
            entity_id: The domain entity ID
            attempt: Attempt number, bumped only for a new logical attempt

        Returns:
            Formatted idempotency key string
        """
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Gateway Port
# =============================================================================


class PaymentGateway(ABC):
    """
    Port required of any payment processor implementation.

    Implementations translate provider errors into payments.exceptions
    GatewayError subclasses. A timeout after the request was sent must
    raise GatewayOutcomeUnknownError, never a plain failure.
    """

    @abstractmethod
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
        """Place a hold (or an immediate charge when capture_later is False)."""

    @abstractmethod
    def capture(self, gateway_payment_id: str, idempotency_key: str) -> GatewayPaymentResult:
        """Finalize a hold into a charge."""

    @abstractmethod
    def cancel(
        self,
        gateway_payment_id: str,
        idempotency_key: str,
        reason: str | None = None,
    ) -> GatewayPaymentResult:
        """Void an uncaptured hold."""

    @abstractmethod
    def refund(
        self,
        gateway_payment_id: str,
        amount_cents: int,
        idempotency_key: str,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> GatewayRefundResult:
        """Refund part or all of a captured payment."""

    @abstractmethod
    def create_customer(
        self,
        email: str,
        given_name: str = "",
        family_name: str = "",
        idempotency_key: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> GatewayCustomerResult:
        """Create a customer record at the gateway."""

    @abstractmethod
    def retrieve_payment(self, gateway_payment_id: str) -> GatewayPaymentResult:
        """Read the gateway's current view of a payment."""

    @abstractmethod
    def retrieve_refund(self, gateway_refund_id: str) -> GatewayRefundResult:
        """Read the gateway's current view of a refund."""

    @abstractmethod
    def parse_webhook(self, payload: bytes, headers: Mapping[str, str]) -> GatewayEvent:
        """
        Verify a webhook delivery and normalise it.

        Raises:
            GatewayInvalidRequestError: Signature verification failed
        """
