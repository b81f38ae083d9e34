"""
Refund model for tracking money returned to clients.

A Refund represents money going back to the client from a captured
payment. Supports both full and partial refunds; one Payment can have
multiple Refunds. Each refund records how its cost is split between
the coach (penalty against earnings) and the platform.

Usage:
    from payments.models import Refund
    from payments.state_machines import RefundReason

    refund = Refund.objects.create(
        payment=payment,
        amount_cents=2500,
        reason=RefundReason.CUSTOMER_REQUESTED,
        coach_penalty_cents=2125,
        platform_refund_cents=375,
        idempotency_key=key,
    )

    refund.process()   # pending -> processing (gateway accepted, not settled)
    refund.succeed()   # processing -> succeeded
    refund.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import ProtectedStateMixin, UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

from payments.state_machines import RefundReason, RefundStatus
from payments.state_machines.transitions import REFUND_TRANSITIONS, sources_for


class Refund(ProtectedStateMixin, UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Represents money returned to a client.

    State Flow:
        PENDING -> PROCESSING -> SUCCEEDED
        PENDING -> SUCCEEDED (gateway settled immediately)
        PENDING/PROCESSING -> FAILED

    Fields:
        payment: Payment being refunded
        gateway_refund_id: Gateway's refund ID
        idempotency_key: Key used for the gateway refund call
        amount_cents: Refund amount in smallest currency unit
        reason: Why the refund was issued (drives the cost split)
        coach_penalty_cents: Portion deducted from the coach's earnings
        platform_refund_cents: Portion absorbed by the platform
        status: Current FSM state
        initiated_by: Who requested the refund
        failure_reason: Gateway's reason if the refund failed

    Note:
        coach_penalty_cents + platform_refund_cents == amount_cents
        is enforced by a database check constraint.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.PROTECT,
        related_name="refunds",
        help_text="Payment being refunded",
    )

    # ==========================================================================
    # Gateway Integration
    # ==========================================================================

    gateway_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Gateway refund ID",
    )

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Idempotency key of the gateway refund call",
    )

    # ==========================================================================
    # Amount & Distribution
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Refund amount in smallest currency unit (e.g., cents)",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
    )

    reason = models.CharField(
        max_length=30,
        choices=RefundReason.choices,
        default=RefundReason.CUSTOMER_REQUESTED,
        db_index=True,
    )

    coach_penalty_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Portion of the refund deducted from the coach's earnings",
    )

    platform_refund_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Portion of the refund absorbed by the platform",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.PENDING,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the refund (managed by FSM)",
    )

    initiated_by = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="User or system component that requested the refund",
    )

    succeeded_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    failure_reason = models.TextField(
        null=True,
        blank=True,
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["payment", "status"], name="refund_payment_status_idx"),
            models.Index(fields=["status", "updated_at"], name="refund_status_updated_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="refund_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    amount_cents=models.F("coach_penalty_cents")
                    + models.F("platform_refund_cents")
                ),
                name="refund_amount_equals_distribution",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with ID, status, and amount."""
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Refund({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=sources_for(REFUND_TRANSITIONS, RefundStatus.PROCESSING),
        target=RefundStatus.PROCESSING,
    )
    def process(self):
        """
        Gateway accepted the refund but has not settled it.

        Transition: PENDING -> PROCESSING
        """

    @transition(
        field=status,
        source=sources_for(REFUND_TRANSITIONS, RefundStatus.SUCCEEDED),
        target=RefundStatus.SUCCEEDED,
    )
    def succeed(self):
        """
        Gateway confirmed the refund.

        Transition: PENDING/PROCESSING -> SUCCEEDED
        """
        self.succeeded_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(REFUND_TRANSITIONS, RefundStatus.FAILED),
        target=RefundStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Gateway rejected the refund.

        Transition: PENDING/PROCESSING -> FAILED
        """
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @property
    def is_in_flight(self) -> bool:
        """Pending or processing refunds still count against the balance."""
        return self.status in (RefundStatus.PENDING, RefundStatus.PROCESSING)
