"""
Celery tasks for the payments app.

Queued by services and views:
    process_webhook_event        one stored gateway webhook
    initiate_payout_for_payment  after a capture commits

Periodic (settings.CELERY_BEAT_SCHEDULE):
    retry_failed_webhooks, cleanup_stuck_webhooks, reconcile_stale_records
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from payments.exceptions import (
    GatewayError,
    GatewayOutcomeUnknownError,
    ReconciliationSkippedError,
)
from payments.models import Payment, Payout, Refund, WebhookEvent
from payments.models.webhook_event import MAX_WEBHOOK_RETRIES
from payments.state_machines import PaymentStatus, PayoutStatus, RefundStatus, WebhookEventStatus

logger = logging.getLogger(__name__)

STUCK_PROCESSING_THRESHOLD_MINUTES = 30
RECONCILIATION_BATCH_SIZE = 100


# =============================================================================
# Webhooks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Run the registered handler for one stored webhook event.

    Handler outcomes map onto the event row: success -> processed, a
    SKIPPED_ERROR_CODES failure -> skipped, any other failure -> failed.
    An exception marks the event failed and is re-raised so Celery
    retries with backoff. The handler runs in its own transaction, so a
    failed attempt leaves no partial payment or ledger changes behind.
    """
    from payments.webhooks.handlers import SKIPPED_ERROR_CODES, dispatch_webhook

    event_id = str(webhook_event_id)
    webhook_event = WebhookEvent.objects.filter(id=UUID(event_id)).first()
    if webhook_event is None:
        logger.error("Webhook event not found", extra={"webhook_event_id": event_id})
        return {"status": "not_found", "webhook_event_id": event_id}

    log_extra = {
        "webhook_event_id": event_id,
        "gateway_event_id": webhook_event.gateway_event_id,
        "event_type": webhook_event.event_type,
    }
    if webhook_event.is_processed:
        logger.info("Webhook event already handled", extra=log_extra)
        return {"status": "already_processed", "webhook_event_id": event_id}

    webhook_event.mark_processing()
    webhook_event.save()
    logger.info(
        "Dispatching webhook event",
        extra={**log_extra, "retry_count": webhook_event.retry_count},
    )

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        webhook_event.mark_failed(f"{type(e).__name__}: {e}")
        webhook_event.save()
        logger.exception("Webhook handler raised", extra=log_extra)
        raise

    if result.success:
        webhook_event.mark_processed()
        webhook_event.save()
        logger.info("Webhook event processed", extra=log_extra)
        return {
            "status": "processed",
            "webhook_event_id": event_id,
            "gateway_event_id": webhook_event.gateway_event_id,
        }

    if result.error_code in SKIPPED_ERROR_CODES:
        webhook_event.mark_skipped(result.error)
        webhook_event.save()
        logger.info(
            "Webhook event skipped",
            extra={**log_extra, "reason": result.error},
        )
        return {"status": "skipped", "webhook_event_id": event_id, "reason": result.error}

    error = result.error or "Handler returned failure"
    webhook_event.mark_failed(error)
    webhook_event.save()
    logger.warning(
        "Webhook handler failed",
        extra={**log_extra, "error_code": result.error_code, "error": error},
    )
    return {"status": "handler_failed", "webhook_event_id": event_id, "error": error}


@shared_task
def retry_failed_webhooks() -> dict:
    """Re-queue failed events that still have attempts left, oldest first."""
    failed = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:RECONCILIATION_BATCH_SIZE]

    queued_count = 0
    for webhook_event in failed:
        try:
            process_webhook_event.delay(str(webhook_event.id))
        except Exception:
            logger.error(
                "Could not re-queue webhook event",
                extra={"webhook_event_id": str(webhook_event.id)},
                exc_info=True,
            )
        else:
            queued_count += 1

    logger.info("Re-queued failed webhook events", extra={"queued_count": queued_count})
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Fail events left in processing by a worker that died mid-run.

    retry_failed_webhooks picks them up on its next pass.
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)
    stuck = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook_event in stuck:
        stuck_since = webhook_event.updated_at
        webhook_event.mark_failed("Processing timed out - reset for retry")
        webhook_event.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook event",
            extra={
                "webhook_event_id": str(webhook_event.id),
                "gateway_event_id": webhook_event.gateway_event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    return {"reset_count": reset_count}


# =============================================================================
# Payouts
# =============================================================================


@shared_task
def initiate_payout_for_payment(payment_id: str) -> dict:
    """
    Create the payout for a freshly captured payment.

    Failures are returned, never raised; the capture already succeeded.
    """
    from payments.services import PayoutService

    result = PayoutService.initiate_payout_for_payment(UUID(payment_id))
    if not result.success:
        logger.info(
            "Payout not initiated",
            extra={"payment_id": payment_id, "error_code": result.error_code},
        )
        return result.to_response()
    return {"success": True, "payout_id": str(result.data.id)}


# =============================================================================
# Reconciliation
# =============================================================================


@shared_task
def reconcile_stale_records() -> dict:
    """
    Reconciliation pass over records stuck in a non-terminal status.

    Records untouched for RECONCILIATION_STALE_AFTER_MINUTES are handled
    in three groups:

    - payments and refunds with a gateway id are re-read from the gateway
      and converged through the same code path the webhook handlers use
    - refunds still PENDING without a gateway id (the first call timed
      out) are resent under their stored idempotency key
    - payouts left PROCESSING by a transfer timeout are resent under
      their transfer key
    """
    from payments.adapters import get_gateway
    from payments.services import PayoutService, RefundService
    from payments.webhooks.handlers import reconcile_payment, reconcile_refund

    threshold = timezone.now() - timedelta(minutes=settings.RECONCILIATION_STALE_AFTER_MINUTES)
    gateway = get_gateway()
    stats = {
        "payments_checked": 0,
        "refunds_checked": 0,
        "refunds_resent": 0,
        "payouts_resent": 0,
        "updated": 0,
        "skipped": 0,
        "errors": 0,
    }

    stale_payments = Payment.objects.filter(
        status__in=[PaymentStatus.PENDING, PaymentStatus.AUTHORIZED],
        updated_at__lt=threshold,
        gateway_payment_id__isnull=False,
    ).order_by("updated_at")[:RECONCILIATION_BATCH_SIZE]

    for payment in stale_payments:
        stats["payments_checked"] += 1
        old_status = payment.status
        try:
            result = gateway.retrieve_payment(payment.gateway_payment_id)
            with transaction.atomic():
                payment = reconcile_payment(payment, result.status, result.failure_reason)
        except ReconciliationSkippedError:
            stats["skipped"] += 1
            continue
        except GatewayError as e:
            stats["errors"] += 1
            logger.warning(
                "Reconciliation read failed",
                extra={"payment_id": str(payment.id), "error_code": e.error_code},
            )
            continue
        except Exception:
            stats["errors"] += 1
            logger.error(
                "Error reconciling payment",
                extra={"payment_id": str(payment.id)},
                exc_info=True,
            )
            continue
        if payment.status != old_status:
            stats["updated"] += 1

    stale_refunds = Refund.objects.filter(
        status__in=[RefundStatus.PENDING, RefundStatus.PROCESSING],
        updated_at__lt=threshold,
        gateway_refund_id__isnull=False,
    ).order_by("updated_at")[:RECONCILIATION_BATCH_SIZE]

    for refund in stale_refunds:
        stats["refunds_checked"] += 1
        old_status = refund.status
        try:
            result = gateway.retrieve_refund(refund.gateway_refund_id)
            with transaction.atomic():
                refund = reconcile_refund(
                    refund,
                    result.status,
                    gateway_refund_id=result.gateway_refund_id,
                    failure_reason=result.failure_reason,
                )
        except ReconciliationSkippedError:
            stats["skipped"] += 1
            continue
        except GatewayError as e:
            stats["errors"] += 1
            logger.warning(
                "Reconciliation read failed",
                extra={"refund_id": str(refund.id), "error_code": e.error_code},
            )
            continue
        except Exception:
            stats["errors"] += 1
            logger.error(
                "Error reconciling refund",
                extra={"refund_id": str(refund.id)},
                exc_info=True,
            )
            continue
        if refund.status != old_status:
            stats["updated"] += 1

    unanswered_refunds = Refund.objects.filter(
        status=RefundStatus.PENDING,
        updated_at__lt=threshold,
        gateway_refund_id__isnull=True,
    ).order_by("updated_at")[:RECONCILIATION_BATCH_SIZE]

    for refund in unanswered_refunds:
        stats["refunds_resent"] += 1
        try:
            refund = RefundService.submit_to_gateway(refund.id)
        except GatewayOutcomeUnknownError:
            stats["errors"] += 1
            continue
        except GatewayError:
            # submit_to_gateway marked the refund FAILED
            stats["updated"] += 1
            continue
        except Exception:
            stats["errors"] += 1
            logger.error(
                "Error resending refund",
                extra={"refund_id": str(refund.id)},
                exc_info=True,
            )
            continue
        if refund.status != RefundStatus.PENDING:
            stats["updated"] += 1

    stale_payouts = Payout.objects.filter(
        status=PayoutStatus.PROCESSING,
        updated_at__lt=threshold,
    ).order_by("updated_at")[:RECONCILIATION_BATCH_SIZE]

    for payout in stale_payouts:
        stats["payouts_resent"] += 1
        try:
            payout = PayoutService.resend_transfer(payout.id)
        except GatewayOutcomeUnknownError:
            stats["errors"] += 1
            continue
        except Exception:
            stats["errors"] += 1
            logger.error(
                "Error resending payout transfer",
                extra={"payout_id": str(payout.id)},
                exc_info=True,
            )
            continue
        if payout.status != PayoutStatus.PROCESSING:
            stats["updated"] += 1

    logger.info("Stale record reconciliation completed", extra=stats)
    return stats
