"""
Ledger model for the append-only billing transaction store.

BillingTransaction is the source of truth for all billing reports and
dashboards. Every money-moving state transition writes at least one row.
Rows are never updated or deleted: a status change is recorded as a new
row that supersedes the previous one, and the "effective" view of the
ledger is every row that has not been superseded.

Usage:
    from payments.ledger.models import BillingTransaction, TransactionType

    BillingTransaction.objects.effective().filter(
        user_id=coach_id,
        transaction_type=TransactionType.PAYMENT,
    )
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q

from core.model_mixins import UUIDPrimaryKeyMixin

from .exceptions import LedgerImmutableError


class UserType(models.TextChoices):
    """Party a ledger row belongs to."""

    CLIENT = "client", "Client"
    COACH = "coach", "Coach"
    PLATFORM = "platform", "Platform"


class TransactionType(models.TextChoices):
    """
    Kinds of ledger rows.

    Values:
        PAYMENT: Client charged / coach earning recorded
        REFUND: Money returned to a client, or a coach-side penalty
        FEE: Platform fee collected
        PAYOUT: Coach earnings sent to a bank account
    """

    PAYMENT = "payment", "Payment"
    REFUND = "refund", "Refund"
    FEE = "fee", "Fee"
    PAYOUT = "payout", "Payout"


class TransactionStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class BillingTransactionQuerySet(models.QuerySet):
    """QuerySet that refuses bulk mutation of ledger rows."""

    def effective(self) -> BillingTransactionQuerySet:
        """Rows that have not been superseded by a later row."""
        return self.filter(superseded_by__isnull=True)

    def update(self, **kwargs):
        raise LedgerImmutableError("Billing transactions cannot be updated")

    def delete(self):
        raise LedgerImmutableError("Billing transactions cannot be deleted")


class BillingTransaction(UUIDPrimaryKeyMixin, models.Model):
    """
    One immutable ledger line.

    Fields:
        user_id: Owning user (null for platform rows)
        user_type: client, coach or platform
        transaction_type: payment, refund, fee or payout
        amount_cents: Always positive
        currency: ISO 4217 currency code
        status: pending, completed or failed
        description: Human-readable description
        reference_type/reference_id: Business entity (payment, refund, payout)
        metadata: Arbitrary JSON data
        idempotency_key: Unique key to prevent duplicate rows
        supersedes: Earlier row this row replaces
        created_at: When the row was written

    Constraints:
        - amount_cents must be positive
        - idempotency_key must be unique
        - a row is superseded at most once
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this row was written",
    )

    user_id = models.UUIDField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Owning user; null for platform rows",
    )
    user_type = models.CharField(
        max_length=20,
        choices=UserType.choices,
    )
    transaction_type = models.CharField(
        max_length=20,
        choices=TransactionType.choices,
    )
    amount_cents = models.PositiveBigIntegerField(
        help_text="Amount in cents (always positive)",
    )
    currency = models.CharField(
        max_length=3,
        default="usd",
    )
    status = models.CharField(
        max_length=20,
        choices=TransactionStatus.choices,
        default=TransactionStatus.COMPLETED,
    )

    description = models.TextField(
        blank=True,
        default="",
    )
    reference_id = models.UUIDField(
        null=True,
        blank=True,
        help_text="UUID of related business entity",
    )
    reference_type = models.CharField(
        max_length=50,
        null=True,
        blank=True,
        help_text="Type of related entity (payment, refund, payout)",
    )
    metadata = models.JSONField(
        default=dict,
        blank=True,
    )

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Unique key to prevent duplicate rows",
    )
    supersedes = models.OneToOneField(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="superseded_by",
        help_text="Earlier row whose status this row replaces",
    )

    objects = BillingTransactionQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Billing Transaction"
        verbose_name_plural = "Billing Transactions"
        indexes = [
            models.Index(fields=["reference_type", "reference_id"], name="billing_tx_reference_idx"),
            models.Index(fields=["user_id", "user_type", "created_at"], name="billing_tx_user_created_idx"),
            models.Index(fields=["transaction_type", "status"], name="billing_tx_type_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount_cents__gt=0),
                name="billing_transaction_amount_positive",
            )
        ]

    def __str__(self) -> str:
        return (
            f"{self.get_transaction_type_display()} "
            f"({self.user_type}, {self.status}): {self.amount_cents} cents"
        )

    def save(self, *args, **kwargs):
        """Insert only. Saving an already-written row raises LedgerImmutableError."""
        if not self._state.adding:
            raise LedgerImmutableError(
                "Billing transactions are append-only",
                details={"transaction_id": str(self.pk)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerImmutableError(
            "Billing transactions cannot be deleted",
            details={"transaction_id": str(self.pk)},
        )
