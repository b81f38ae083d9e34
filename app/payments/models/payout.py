"""
Payout model for transfers of coach earnings to a bank account.

A Payout pays out the coach's earnings of exactly one captured Payment
to a verified BankAccount. Payouts are created pending and go through an
admin approve/reject workflow.

Usage:
    from payments.services import PayoutService

    payout = PayoutService.create_payout(
        coach_id=coach_id,
        bank_account_id=account.id,
        payment_id=payment.id,
    )
    PayoutService.approve_payout(payout.id, processed_by="admin@example.com")
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import ProtectedStateMixin, UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

from payments.state_machines import PayoutStatus
from payments.state_machines.transitions import PAYOUT_TRANSITIONS, sources_for


class Payout(ProtectedStateMixin, UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Represents one transfer of a payment's coach earnings.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PROCESSING -> FAILED
        PENDING -> REJECTED

    Fields:
        coach_id: Coach being paid
        bank_account: Destination account (verified at creation)
        payment: Payment whose earnings are paid out
        amount_cents: Gross amount (the payment's coach earnings)
        fees_cents: Transfer fees deducted
        net_amount_cents: amount_cents - fees_cents
        status: Current FSM state
        transfer_reference: Reference returned by the transfer mechanism
        processed_by/processed_at: Admin who approved or rejected, and when

    Note:
        A payment has at most one payout that is not rejected or failed.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    coach_id = models.UUIDField(db_index=True)

    bank_account = models.ForeignKey(
        "payments.BankAccount",
        on_delete=models.SET_NULL,
        null=True,
        related_name="payouts",
        help_text="Cleared if the account is deleted after the payout settled",
    )

    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.PROTECT,
        related_name="payouts",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Gross payout amount in smallest currency unit",
    )

    fees_cents = models.PositiveBigIntegerField(
        default=0,
        help_text="Transfer fees deducted from the payout",
    )

    net_amount_cents = models.PositiveBigIntegerField(
        help_text="Amount the coach receives",
    )

    currency = models.CharField(max_length=3, default="usd")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PayoutStatus.PENDING,
        choices=PayoutStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payout (managed by FSM)",
    )

    transfer_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Reference of the executed bank transfer",
    )

    processed_by = models.CharField(max_length=255, null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    rejection_reason = models.TextField(null=True, blank=True)
    failure_reason = models.TextField(null=True, blank=True)
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["coach_id", "status"], name="payout_coach_status_idx"),
            models.Index(fields=["bank_account", "status"], name="payout_account_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(net_amount_cents__lte=models.F("amount_cents")),
                name="payout_net_not_above_amount",
            ),
            models.UniqueConstraint(
                fields=["payment"],
                condition=~models.Q(
                    status__in=[PayoutStatus.REJECTED, PayoutStatus.FAILED]
                ),
                name="payout_one_active_per_payment",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.net_amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Payout({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=sources_for(PAYOUT_TRANSITIONS, PayoutStatus.PROCESSING),
        target=PayoutStatus.PROCESSING,
    )
    def approve(self, processed_by: str | None = None):
        """
        Admin approved the payout; the transfer is being executed.

        Transition: PENDING -> PROCESSING
        """
        self.processed_by = processed_by
        self.processed_at = timezone.now()

    @transition(
        field=status,
        source=sources_for(PAYOUT_TRANSITIONS, PayoutStatus.COMPLETED),
        target=PayoutStatus.COMPLETED,
    )
    def complete(self, transfer_reference: str | None = None):
        """
        Transition: PROCESSING -> COMPLETED
        """
        if transfer_reference:
            self.transfer_reference = transfer_reference

    @transition(
        field=status,
        source=sources_for(PAYOUT_TRANSITIONS, PayoutStatus.FAILED),
        target=PayoutStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Transition: PROCESSING -> FAILED
        """
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=sources_for(PAYOUT_TRANSITIONS, PayoutStatus.REJECTED),
        target=PayoutStatus.REJECTED,
    )
    def reject(self, reason: str, processed_by: str | None = None):
        """
        Admin rejected the payout.

        Transition: PENDING -> REJECTED
        """
        self.rejection_reason = reason
        self.processed_by = processed_by
        self.processed_at = timezone.now()
