"""
Tests for the webhook Celery tasks.

Tests cover:
- process_webhook_event outcomes (processed, skipped, failed, retried)
- Idempotency for already processed events
- retry_failed_webhooks honouring the retry limit
- cleanup_stuck_webhooks resetting crashed workers' events
"""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone

from payments.adapters import GatewayPaymentStatus
from payments.models import Payment, WebhookEvent
from payments.models.webhook_event import MAX_WEBHOOK_RETRIES
from payments.state_machines import PaymentStatus, WebhookEventStatus
from payments.tasks import cleanup_stuck_webhooks, process_webhook_event, retry_failed_webhooks
from payments.tests.factories import WebhookEventFactory


def reload(event):
    return WebhookEvent.objects.get(id=event.id)


@pytest.mark.django_db
class TestProcessWebhookEvent:
    def test_processed(self, payment_event, authorized_payment, payout_task):
        event = payment_event(authorized_payment.gateway_payment_id, GatewayPaymentStatus.COMPLETED)

        result = process_webhook_event(str(event.id))

        assert result["status"] == "processed"
        event = reload(event)
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.retry_count == 1
        assert Payment.objects.get(id=authorized_payment.id).status == PaymentStatus.SUCCEEDED

    def test_not_found(self):
        result = process_webhook_event(str(uuid.uuid4()))

        assert result["status"] == "not_found"

    def test_already_processed(self):
        event = WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        with patch("payments.webhooks.handlers.dispatch_webhook") as dispatch:
            result = process_webhook_event(str(event.id))

        assert result["status"] == "already_processed"
        dispatch.assert_not_called()

    def test_unknown_payment_is_skipped(self, payment_event):
        event = payment_event("pi_unknown", GatewayPaymentStatus.COMPLETED)

        result = process_webhook_event(str(event.id))

        assert result["status"] == "skipped"
        assert reload(event).status == WebhookEventStatus.SKIPPED

    def test_unhandled_type_is_skipped(self):
        event = WebhookEventFactory(event_type="customer.updated")

        assert process_webhook_event(str(event.id))["status"] == "skipped"

    def test_handler_failure_marks_failed(self):
        event = WebhookEventFactory(payload={"type": "payment.updated", "object": {}})

        result = process_webhook_event(str(event.id))

        assert result["status"] == "handler_failed"
        event = reload(event)
        assert event.status == WebhookEventStatus.FAILED
        assert event.error_message == "Could not extract payment id from webhook"

    def test_exception_marks_failed_and_reraises(self, mocker):
        mocker.patch(
            "payments.webhooks.handlers.dispatch_webhook", side_effect=RuntimeError("db gone")
        )
        event = WebhookEventFactory()

        with pytest.raises(RuntimeError):
            process_webhook_event.run(str(event.id))

        event = reload(event)
        assert event.status == WebhookEventStatus.FAILED
        assert event.error_message == "RuntimeError: db gone"


@pytest.mark.django_db
class TestRetryFailedWebhooks:
    def test_requeues_events_under_limit(self):
        retryable = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=1)
        WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=MAX_WEBHOOK_RETRIES)
        WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        with patch("payments.tasks.process_webhook_event.delay") as delay:
            result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        delay.assert_called_once_with(str(retryable.id))

    def test_queue_errors_are_counted_out(self):
        WebhookEventFactory(status=WebhookEventStatus.FAILED)

        with patch(
            "payments.tasks.process_webhook_event.delay", side_effect=ConnectionError("broker")
        ):
            result = retry_failed_webhooks()

        assert result == {"queued_count": 0}


@pytest.mark.django_db
class TestCleanupStuckWebhooks:
    def test_resets_old_processing_events(self):
        stuck = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        fresh = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        WebhookEvent.objects.filter(id=stuck.id).update(
            updated_at=timezone.now() - timedelta(hours=1)
        )

        result = cleanup_stuck_webhooks()

        assert result == {"reset_count": 1}
        assert reload(stuck).status == WebhookEventStatus.FAILED
        assert reload(stuck).error_message == "Processing timed out - reset for retry"
        assert reload(fresh).status == WebhookEventStatus.PROCESSING
