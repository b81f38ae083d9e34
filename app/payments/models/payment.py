"""
Payment model for the authorization-to-settlement lifecycle.

A Payment is one authorization (hold) placed on a client's payment method
for a coach's rate. It is captured once the session is delivered, can be
voided before capture, and can be refunded after capture. Payments are
never deleted.

Usage:
    from payments.models import Payment

    payment.capture()   # pending/authorized -> succeeded
    payment.save()

Concurrency:
    Payment uses ProtectedStateMixin, a ConcurrentTransitionMixin, so every
    save is issued as ``UPDATE ... WHERE status = <status as loaded>``. Two
    writers racing on the same payment cannot both succeed: the loser gets
    django_fsm.ConcurrentTransition, which services translate to
    StateConflictError.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import (
    MetadataMixin,
    ProtectedStateMixin,
    UUIDPrimaryKeyMixin,
    VersionedMixin,
)
from core.models import BaseModel

from payments.state_machines import PaymentStatus
from payments.state_machines.transitions import PAYMENT_TRANSITIONS, sources_for


class Payment(
    ProtectedStateMixin,
    UUIDPrimaryKeyMixin,
    VersionedMixin,
    MetadataMixin,
    BaseModel,
):
    """
    One authorization/charge between a client and a coach.

    State Flow:
        PENDING -> AUTHORIZED -> SUCCEEDED -> PARTIALLY_REFUNDED -> REFUNDED
        PENDING/AUTHORIZED -> FAILED
        PENDING/AUTHORIZED -> CANCELED

    Fields:
        client_id: Paying client
        coach_id: Coach receiving the earnings
        rate: Rate the payment was authorized for
        gateway_payment_id: Gateway's id for the hold/charge
        gateway_customer_id: Gateway customer the hold was placed for
        idempotency_key: Key used for the authorize call
        amount_cents: Total charged to the client
        platform_fee_cents: Platform's share
        coach_earnings_cents: Coach's share
        status: Current FSM state
        *_at timestamps: Track state transition times

    Note:
        amount_cents == platform_fee_cents + coach_earnings_cents is
        enforced by a database check constraint.
    """

    # ==========================================================================
    # Parties
    # ==========================================================================

    client_id = models.UUIDField(
        db_index=True,
        help_text="Client paying for the session",
    )

    coach_id = models.UUIDField(
        db_index=True,
        help_text="Coach receiving the earnings",
    )

    rate = models.ForeignKey(
        "payments.Rate",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Rate this payment was authorized for",
    )

    # ==========================================================================
    # Gateway Integration
    # ==========================================================================

    gateway_payment_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Gateway payment ID for the hold/charge",
    )

    gateway_customer_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Gateway customer the hold was placed for",
    )

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Idempotency key of the authorize call",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Total charged in smallest currency unit (e.g., cents)",
    )

    platform_fee_cents = models.PositiveBigIntegerField(
        help_text="Platform's share of the amount",
    )

    coach_earnings_cents = models.PositiveBigIntegerField(
        help_text="Coach's share of the amount",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,  # Prevent direct assignment outside transitions
        help_text="Current state of the payment (managed by FSM)",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    authorized_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the hold was captured",
    )
    canceled_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the first refund succeeded (full or partial)",
    )

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Gateway's reason if the payment failed",
    )

    cancellation_reason = models.TextField(
        null=True,
        blank=True,
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["client_id", "status"], name="payment_client_status_idx"),
            models.Index(fields=["coach_id", "status"], name="payment_coach_status_idx"),
            models.Index(fields=["status", "updated_at"], name="payment_status_updated_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="payment_amount_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    amount_cents=models.F("platform_fee_cents")
                    + models.F("coach_earnings_cents")
                ),
                name="payment_amount_equals_split",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with ID, status, and amount."""
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Payment({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=sources_for(PAYMENT_TRANSITIONS, PaymentStatus.AUTHORIZED),
        target=PaymentStatus.AUTHORIZED,
    )
    def authorize(self):
        """
        Mark the gateway hold as granted.

        Transition: PENDING -> AUTHORIZED
        """
        self.authorized_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(PAYMENT_TRANSITIONS, PaymentStatus.SUCCEEDED),
        target=PaymentStatus.SUCCEEDED,
    )
    def capture(self):
        """
        Mark the hold as captured.

        Transition: PENDING/AUTHORIZED -> SUCCEEDED

        Money has left the client's payment method. Only a refund can
        move it back.
        """
        self.paid_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(PAYMENT_TRANSITIONS, PaymentStatus.FAILED),
        target=PaymentStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Mark payment as failed.

        Transition: PENDING/AUTHORIZED -> FAILED

        Args:
            reason: Gateway's human-readable reason
        """
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=sources_for(PAYMENT_TRANSITIONS, PaymentStatus.CANCELED),
        target=PaymentStatus.CANCELED,
    )
    def cancel(self, reason: str | None = None):
        """
        Void the payment before capture.

        Transition: PENDING/AUTHORIZED -> CANCELED
        """
        self.canceled_at = timezone.now()
        if reason:
            self.cancellation_reason = reason

    @transition(
        field=status,
        source=sources_for(PAYMENT_TRANSITIONS, PaymentStatus.PARTIALLY_REFUNDED),
        target=PaymentStatus.PARTIALLY_REFUNDED,
    )
    def refund_partial(self):
        """
        Mark as partially refunded.

        Transition: SUCCEEDED/PARTIALLY_REFUNDED -> PARTIALLY_REFUNDED

        Multiple partial refunds are allowed until the cumulative
        refunded amount reaches amount_cents.
        """
        if self.refunded_at is None:
            self.refunded_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(PAYMENT_TRANSITIONS, PaymentStatus.REFUNDED),
        target=PaymentStatus.REFUNDED,
    )
    def refund_full(self):
        """
        Mark as fully refunded.

        Transition: SUCCEEDED/PARTIALLY_REFUNDED -> REFUNDED
        """
        if self.refunded_at is None:
            self.refunded_at = timezone.now()

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_capturable(self) -> bool:
        return self.status in (PaymentStatus.PENDING, PaymentStatus.AUTHORIZED)

    @property
    def is_refundable(self) -> bool:
        return self.status in (
            PaymentStatus.SUCCEEDED,
            PaymentStatus.PARTIALLY_REFUNDED,
        )
