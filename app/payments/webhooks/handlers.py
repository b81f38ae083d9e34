"""
Webhook event handlers for gateway events.

This module provides a handler registry and the reconciler handlers that
merge gateway-reported payment and refund statuses into local state.

A handler only ever applies a legal forward transition. Events that
reference an unknown local record, or report a status the local record
may not move to (a stale event), raise ReconciliationSkippedError and the
event is marked skipped instead of failed.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    # Register a custom handler
    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    # Dispatch an event to its handler
    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from django.db import transaction

from core.services import ServiceResult

from payments.adapters import GatewayEventType, GatewayPaymentStatus, GatewayRefundStatus
from payments.exceptions import InvalidStateTransitionError, ReconciliationSkippedError
from payments.models import Payment, Refund, WebhookEvent
from payments.services import CaptureService, RefundService, get_payment
from payments.state_machines import (
    PAYMENT_TRANSITIONS,
    REFUND_TRANSITIONS,
    PaymentStatus,
    RefundStatus,
    can_transition,
)
from payments.state_machines.guards import guarded_transition
from payments.state_machines.transitions import PAYMENT_TRANSITION_METHODS

logger = logging.getLogger(__name__)

# Error codes that mark an event SKIPPED rather than FAILED
UNHANDLED_EVENT_TYPE = "UNHANDLED_EVENT_TYPE"
SKIPPED_ERROR_CODES = frozenset({UNHANDLED_EVENT_TYPE, ReconciliationSkippedError.default_error_code})

# Gateway payment status -> local Payment status. PENDING carries no information.
PAYMENT_STATUS_FROM_GATEWAY: dict[str, str] = {
    GatewayPaymentStatus.APPROVED: PaymentStatus.AUTHORIZED.value,
    GatewayPaymentStatus.COMPLETED: PaymentStatus.SUCCEEDED.value,
    GatewayPaymentStatus.CANCELED: PaymentStatus.CANCELED.value,
    GatewayPaymentStatus.FAILED: PaymentStatus.FAILED.value,
}

REFUND_STATUS_FROM_GATEWAY: dict[str, str] = {
    GatewayRefundStatus.PENDING: RefundStatus.PROCESSING.value,
    GatewayRefundStatus.COMPLETED: RefundStatus.SUCCEEDED.value,
    GatewayRefundStatus.REJECTED: RefundStatus.FAILED.value,
    GatewayRefundStatus.FAILED: RefundStatus.FAILED.value,
}


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(*event_types: str) -> Callable:
    """
    Decorator to register a webhook event handler for one or more types.

    Usage:
        @register_handler("payment.created", "payment.updated")
        def handle_payment_event(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        for event_type in event_types:
            WEBHOOK_HANDLERS[event_type] = func
            logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Unknown event types and ReconciliationSkippedError come back as a
    failed ServiceResult whose error_code is in SKIPPED_ERROR_CODES, so the
    caller can mark the event skipped. Other exceptions propagate.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"gateway_event_id": webhook_event.gateway_event_id},
        )
        return ServiceResult.failure(
            f"Unhandled event type: {webhook_event.event_type}",
            error_code=UNHANDLED_EVENT_TYPE,
        )

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"gateway_event_id": webhook_event.gateway_event_id},
    )

    try:
        return handler(webhook_event)
    except ReconciliationSkippedError as e:
        logger.info(
            f"Webhook skipped: {e.message}",
            extra={"gateway_event_id": webhook_event.gateway_event_id, "details": e.details},
        )
        return ServiceResult.failure(e.message, error_code=e.error_code)


# =============================================================================
# Payment Handlers
# =============================================================================


@register_handler(GatewayEventType.PAYMENT_CREATED, GatewayEventType.PAYMENT_UPDATED)
def handle_payment_event(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Converge a local Payment onto the gateway-reported status.

    COMPLETED goes through CaptureService.record_capture so the ledger rows
    are written exactly as on the direct capture path.
    """
    obj = webhook_event.get_object()
    gateway_payment_id = obj.get("id")
    if not gateway_payment_id:
        return ServiceResult.failure(
            "Could not extract payment id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    payment = Payment.objects.filter(gateway_payment_id=gateway_payment_id).first()
    if payment is None:
        raise ReconciliationSkippedError(
            f"No local payment for {gateway_payment_id}",
            details={"gateway_payment_id": gateway_payment_id},
        )

    payment = reconcile_payment(payment, obj.get("status"), obj.get("failure_reason"))
    return ServiceResult.success(payment)


def reconcile_payment(
    payment: Payment,
    gateway_status: str | None,
    failure_reason: str | None = None,
) -> Payment:
    """
    Apply a gateway payment status to a local Payment.

    Also used by the periodic reconciliation read.

    Raises:
        ReconciliationSkippedError: The status is not a legal forward move,
            including when a concurrent writer moved the payment first
    """
    target = PAYMENT_STATUS_FROM_GATEWAY.get(gateway_status)
    if target is None or payment.status == target:
        return payment

    _ensure_forward(PAYMENT_TRANSITIONS, payment, target, gateway_status)

    if target == PaymentStatus.SUCCEEDED:
        try:
            payment = CaptureService.record_capture(payment.id)
        except InvalidStateTransitionError as e:
            # The locked row was canceled or failed after the check above
            raise ReconciliationSkippedError(
                f"Ignoring {gateway_status} for payment in {e.details['current_status']} status",
                details={**e.details, "gateway_status": gateway_status},
            ) from e
        transaction.on_commit(lambda: CaptureService.trigger_payout(payment))
        return payment

    with transaction.atomic():
        payment = get_payment(payment.id, for_update=True)
        # Re-check against the locked row; a concurrent writer may have moved it
        _ensure_forward(PAYMENT_TRANSITIONS, payment, target, gateway_status)
        method = getattr(payment, PAYMENT_TRANSITION_METHODS[target])
        with guarded_transition(payment, method.__name__):
            if target in (PaymentStatus.FAILED, PaymentStatus.CANCELED):
                method(reason=failure_reason or f"Gateway reported {gateway_status}")
            else:
                method()
            payment.save()

    return payment


# =============================================================================
# Refund Handlers
# =============================================================================


@register_handler(GatewayEventType.REFUND_CREATED, GatewayEventType.REFUND_UPDATED)
def handle_refund_event(webhook_event: WebhookEvent) -> ServiceResult:
    """Converge a local Refund onto the gateway-reported status."""
    obj = webhook_event.get_object()
    gateway_refund_id = obj.get("id")
    if not gateway_refund_id:
        return ServiceResult.failure(
            "Could not extract refund id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    refund = _find_refund(gateway_refund_id, obj)
    if refund is None:
        raise ReconciliationSkippedError(
            f"No local refund for {gateway_refund_id}",
            details={"gateway_refund_id": gateway_refund_id},
        )

    refund = reconcile_refund(
        refund,
        obj.get("status"),
        gateway_refund_id=gateway_refund_id,
        failure_reason=obj.get("failure_reason"),
    )
    return ServiceResult.success(refund)


def reconcile_refund(
    refund: Refund,
    gateway_status: str | None,
    gateway_refund_id: str | None = None,
    failure_reason: str | None = None,
) -> Refund:
    """
    Apply a gateway refund status to a local Refund.

    Raises:
        ReconciliationSkippedError: The status is not a legal forward move,
            including when a concurrent writer moved the payment first
    """
    target = REFUND_STATUS_FROM_GATEWAY.get(gateway_status)
    if target is None or refund.status == target:
        return refund

    _ensure_forward(REFUND_TRANSITIONS, refund, target, gateway_status)

    return RefundService.apply_gateway_status(
        refund.id,
        gateway_status,
        gateway_refund_id=gateway_refund_id,
        failure_reason=failure_reason,
    )


# =============================================================================
# Helpers
# =============================================================================


def _ensure_forward(table: dict, instance, target: str, gateway_status: str) -> None:
    if not can_transition(table, instance.status, target):
        raise ReconciliationSkippedError(
            f"Ignoring {gateway_status} for {instance.__class__.__name__.lower()} "
            f"in {instance.status} status",
            details={
                "id": str(instance.pk),
                "current_status": instance.status,
                "target_status": str(target),
                "gateway_status": gateway_status,
            },
        )


def _find_refund(gateway_refund_id: str, obj: dict) -> Refund | None:
    """
    Match by gateway refund id, falling back to the in-flight refund of the
    same amount on the same payment when the id was never stored locally.
    """
    refund = Refund.objects.filter(gateway_refund_id=gateway_refund_id).first()
    if refund is not None or not obj.get("payment_id"):
        return refund

    candidates = Refund.objects.filter(
        payment__gateway_payment_id=obj["payment_id"],
        gateway_refund_id__isnull=True,
        status__in=[RefundStatus.PENDING, RefundStatus.PROCESSING],
    )
    if obj.get("amount_cents") is not None:
        candidates = candidates.filter(amount_cents=obj["amount_cents"])
    return candidates.order_by("created_at").first()

