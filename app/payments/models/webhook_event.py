"""
One row per gateway webhook event.

The unique gateway_event_id makes redelivery detectable. The payload is
the gateway-neutral shape built by PaymentGateway.parse_webhook:

    {"type": "payment.updated", "object": {"id": "pi_123", "status": "COMPLETED"}}
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from payments.state_machines import WebhookEventStatus

MAX_WEBHOOK_RETRIES = 5


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Lifecycle: pending -> processing -> processed | skipped | failed.

    Failed events go back to processing via retry_failed_webhooks until
    retry_count reaches MAX_WEBHOOK_RETRIES. Skipped events (unknown type,
    nothing to reconcile) count as done.
    """

    gateway_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Gateway event ID - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Normalised event type (e.g., 'payment.updated')",
    )

    payload = models.JSONField(
        help_text="Normalised webhook payload",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )

    processed_at = models.DateTimeField(null=True, blank=True)

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed, or why it was skipped",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
            models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.gateway_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        """Processed or deliberately skipped events are done."""
        return self.status in (WebhookEventStatus.PROCESSED, WebhookEventStatus.SKIPPED)

    @property
    def can_retry(self) -> bool:
        return self.status == WebhookEventStatus.FAILED and self.retry_count < MAX_WEBHOOK_RETRIES

    # The mark_* methods do not save

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_skipped(self, reason: str) -> None:
        self.status = WebhookEventStatus.SKIPPED
        self.processed_at = timezone.now()
        self.error_message = reason

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """Return the event's object, or an empty dict for malformed payloads."""
        obj = self.payload.get("object") if isinstance(self.payload, dict) else None
        return obj if isinstance(obj, dict) else {}

    def get_object_id(self) -> str | None:
        return self.get_object().get("id")
