"""
Ledger service layer for billing operations.

This module provides BillingLedgerService, which encapsulates every write
to the append-only BillingTransaction store and the billing reports built
on top of it. All ledger writes should go through this service.

Key features:
- Idempotency via unique keys (safe to replay after a crash or a webhook)
- Status changes recorded as superseding rows, never as updates
- Reports computed from effective (non-superseded) rows only

Usage:
    from payments.ledger.services import BillingLedgerService

    # After a capture
    BillingLedgerService.record_capture(payment)

    # After a refund succeeds
    BillingLedgerService.record_refund(refund)

    # Payout rejected by an admin
    BillingLedgerService.supersede_status(
        reference_type="payout",
        reference_id=payout.id,
        new_status=TransactionStatus.FAILED,
    )
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from core.services import BaseService

from .models import BillingTransaction, TransactionStatus, TransactionType, UserType
from .types import BillingReport, RecordTransactionParams

if TYPE_CHECKING:
    from typing import Any

    from payments.models import Payment, Payout, Refund


class BillingLedgerService(BaseService):
    """
    Service class for billing ledger operations.

    All methods are classmethods - no instance state is maintained.
    """

    # ==========================================================================
    # Writes
    # ==========================================================================

    @classmethod
    def record_transactions(
        cls, entries: list[RecordTransactionParams]
    ) -> list[BillingTransaction]:
        """
        Record multiple ledger rows atomically.

        All rows succeed or all fail. Idempotent for individual rows -
        existing rows by idempotency_key are returned without modification.

        Args:
            entries: List of row parameters

        Returns:
            List of created or existing BillingTransaction rows
        """
        if not entries:
            return []

        results: list[BillingTransaction] = []

        with transaction.atomic():
            for params in entries:
                existing = BillingTransaction.objects.filter(
                    idempotency_key=params.idempotency_key
                ).first()
                if existing is not None:
                    results.append(existing)
                    continue

                try:
                    # Savepoint so a lost race does not poison the outer transaction
                    with transaction.atomic():
                        row = BillingTransaction.objects.create(
                            idempotency_key=params.idempotency_key,
                            user_id=params.user_id,
                            user_type=params.user_type,
                            transaction_type=params.transaction_type,
                            amount_cents=params.amount_cents,
                            currency=params.currency,
                            status=params.status,
                            description=params.description,
                            reference_type=params.reference_type,
                            reference_id=params.reference_id,
                            metadata=params.metadata or {},
                        )
                except IntegrityError:
                    # Another process wrote the same key first
                    row = BillingTransaction.objects.get(
                        idempotency_key=params.idempotency_key
                    )

                results.append(row)

        cls.get_logger().info(
            "Ledger rows recorded",
            extra={
                "count": len(results),
                "idempotency_keys": [r.idempotency_key for r in results],
            },
        )
        return results

    @classmethod
    def record_capture(cls, payment: Payment) -> list[BillingTransaction]:
        """
        Record the ledger rows for a captured payment.

        Writes the client payment, the coach earning and the platform fee.
        The fee row is omitted when the fee is zero.
        """
        entries = [
            RecordTransactionParams(
                user_id=payment.client_id,
                user_type=UserType.CLIENT,
                transaction_type=TransactionType.PAYMENT,
                amount_cents=payment.amount_cents,
                currency=payment.currency,
                idempotency_key=f"capture:{payment.id}:client",
                reference_type="payment",
                reference_id=payment.id,
                description="Session payment",
                metadata={"coach_id": str(payment.coach_id)},
            ),
            RecordTransactionParams(
                user_id=payment.coach_id,
                user_type=UserType.COACH,
                transaction_type=TransactionType.PAYMENT,
                amount_cents=payment.coach_earnings_cents,
                currency=payment.currency,
                idempotency_key=f"capture:{payment.id}:coach",
                reference_type="payment",
                reference_id=payment.id,
                description="Session earnings",
                metadata={"client_id": str(payment.client_id)},
            ),
        ]
        if payment.platform_fee_cents > 0:
            entries.append(
                RecordTransactionParams(
                    user_id=None,
                    user_type=UserType.PLATFORM,
                    transaction_type=TransactionType.FEE,
                    amount_cents=payment.platform_fee_cents,
                    currency=payment.currency,
                    idempotency_key=f"capture:{payment.id}:fee",
                    reference_type="payment",
                    reference_id=payment.id,
                    description="Platform fee",
                    metadata={"coach_id": str(payment.coach_id)},
                )
            )
        return cls.record_transactions(entries)

    @classmethod
    def record_refund(cls, refund: Refund) -> list[BillingTransaction]:
        """
        Record the ledger rows for a succeeded refund.

        Writes the client refund and, when the coach bears part of the
        refund, a coach-side penalty row. The penalty is informational:
        it reduces the coach's running balance, not a specific payout.
        """
        payment = refund.payment
        entries = [
            RecordTransactionParams(
                user_id=payment.client_id,
                user_type=UserType.CLIENT,
                transaction_type=TransactionType.REFUND,
                amount_cents=refund.amount_cents,
                currency=refund.currency,
                idempotency_key=f"refund:{refund.id}:client",
                reference_type="refund",
                reference_id=refund.id,
                description=f"Refund ({refund.get_reason_display()})",
                metadata={
                    "payment_id": str(payment.id),
                    "reason": refund.reason,
                    "platform_refund_cents": refund.platform_refund_cents,
                },
            ),
        ]
        if refund.coach_penalty_cents > 0:
            entries.append(
                RecordTransactionParams(
                    user_id=payment.coach_id,
                    user_type=UserType.COACH,
                    transaction_type=TransactionType.REFUND,
                    amount_cents=refund.coach_penalty_cents,
                    currency=refund.currency,
                    idempotency_key=f"refund:{refund.id}:coach",
                    reference_type="refund",
                    reference_id=refund.id,
                    description="Refund deducted from earnings",
                    metadata={
                        "kind": "coach_penalty",
                        "payment_id": str(payment.id),
                        "reason": refund.reason,
                    },
                )
            )
        return cls.record_transactions(entries)

    @classmethod
    def record_payout_requested(cls, payout: Payout) -> BillingTransaction:
        """Record a pending payout row for the coach."""
        return cls.record_transactions(
            [
                RecordTransactionParams(
                    user_id=payout.coach_id,
                    user_type=UserType.COACH,
                    transaction_type=TransactionType.PAYOUT,
                    amount_cents=payout.net_amount_cents,
                    currency=payout.currency,
                    status=TransactionStatus.PENDING,
                    idempotency_key=f"payout:{payout.id}",
                    reference_type="payout",
                    reference_id=payout.id,
                    description=f"Payout to {payout.bank_account.masked_account_number}",
                    metadata={"payment_id": str(payout.payment_id)},
                )
            ]
        )[0]

    @classmethod
    def supersede_status(
        cls,
        reference_type: str,
        reference_id: uuid.UUID,
        new_status: str,
        transaction_type: str | None = None,
        reason: str | None = None,
    ) -> list[BillingTransaction]:
        """
        Record a status change for every effective row of a reference.

        Each effective row whose status differs gets a new row that copies
        it with the new status and points back to it via ``supersedes``.
        Replays are no-ops: the superseding key is derived from the old key.

        Args:
            reference_type: payment, refund or payout
            reference_id: UUID of the business entity
            new_status: Target TransactionStatus
            transaction_type: Optionally restrict to one transaction type
            reason: Stored in the new row's metadata

        Returns:
            The superseding rows written (or found) by this call
        """
        rows = BillingTransaction.objects.effective().filter(
            reference_type=reference_type,
            reference_id=reference_id,
        )
        if transaction_type:
            rows = rows.filter(transaction_type=transaction_type)

        written: list[BillingTransaction] = []
        with transaction.atomic():
            for old in rows.exclude(status=new_status).order_by("created_at"):
                metadata = dict(old.metadata)
                metadata["previous_status"] = old.status
                if reason:
                    metadata["status_reason"] = reason
                key = f"{old.idempotency_key}>{new_status}"
                try:
                    with transaction.atomic():
                        row = BillingTransaction.objects.create(
                            idempotency_key=key,
                            supersedes=old,
                            user_id=old.user_id,
                            user_type=old.user_type,
                            transaction_type=old.transaction_type,
                            amount_cents=old.amount_cents,
                            currency=old.currency,
                            status=new_status,
                            description=old.description,
                            reference_type=old.reference_type,
                            reference_id=old.reference_id,
                            metadata=metadata,
                        )
                except IntegrityError:
                    row = BillingTransaction.objects.get(supersedes=old)
                written.append(row)

        cls.get_logger().info(
            "Ledger status superseded",
            extra={
                "reference_type": reference_type,
                "reference_id": str(reference_id),
                "new_status": new_status,
                "rows": len(written),
            },
        )
        return written

    # ==========================================================================
    # Reads
    # ==========================================================================

    @classmethod
    def get_billing_history(
        cls,
        user_id: uuid.UUID | None,
        user_type: str,
        transaction_type: str | list[str] | None = None,
        status: str | list[str] | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        min_amount_cents: int | None = None,
        max_amount_cents: int | None = None,
        search: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[BillingTransaction]:
        """
        Get a user's effective ledger rows, newest first.

        Args:
            user_id: Owning user (None for platform rows)
            user_type: client, coach or platform
            transaction_type: One type or a list of types
            status: One status or a list of statuses
            start/end: Inclusive created_at bounds
            min_amount_cents/max_amount_cents: Inclusive amount bounds
            search: Case-insensitive substring of the description
            limit/offset: Pagination

        Returns:
            List of BillingTransaction rows
        """
        qs = cls._user_rows(user_id, user_type)
        if transaction_type:
            types = [transaction_type] if isinstance(transaction_type, str) else transaction_type
            qs = qs.filter(transaction_type__in=types)
        if status:
            statuses = [status] if isinstance(status, str) else status
            qs = qs.filter(status__in=statuses)
        if start:
            qs = qs.filter(created_at__gte=start)
        if end:
            qs = qs.filter(created_at__lte=end)
        if min_amount_cents is not None:
            qs = qs.filter(amount_cents__gte=min_amount_cents)
        if max_amount_cents is not None:
            qs = qs.filter(amount_cents__lte=max_amount_cents)
        if search:
            qs = qs.filter(description__icontains=search)
        return list(qs.order_by("-created_at")[offset : offset + limit])

    @classmethod
    def get_billing_report(
        cls,
        user_id: uuid.UUID | None,
        user_type: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> BillingReport:
        """
        Aggregate a user's completed ledger rows over a period.

        net = revenue - refunds - fees. The refund rate is the number of
        refund rows per payment row, as a percentage.
        """
        qs = cls._user_rows(user_id, user_type).filter(status=TransactionStatus.COMPLETED)
        if start:
            qs = qs.filter(created_at__gte=start)
        if end:
            qs = qs.filter(created_at__lte=end)

        payments = qs.filter(transaction_type=TransactionType.PAYMENT)
        refunds = qs.filter(transaction_type=TransactionType.REFUND)
        fees = qs.filter(transaction_type=TransactionType.FEE)

        total_revenue = _sum_amount(payments)
        total_refunds = _sum_amount(refunds)
        total_fees = _sum_amount(fees)
        payment_count = payments.count()
        refund_count = refunds.count()

        return BillingReport(
            period_start=start,
            period_end=end,
            total_revenue_cents=total_revenue,
            total_refunds_cents=total_refunds,
            total_fees_cents=total_fees,
            net_revenue_cents=total_revenue - total_refunds - total_fees,
            transaction_count=payment_count,
            refund_count=refund_count,
            average_transaction_cents=(
                (total_revenue + payment_count // 2) // payment_count if payment_count else 0
            ),
            refund_rate_percentage=(
                refund_count / payment_count * 100 if payment_count else 0.0
            ),
        )

    @classmethod
    def get_coach_balance(cls, coach_id: uuid.UUID) -> dict[str, int]:
        """
        Running balance of a coach, derived from the ledger.

        balance = completed earnings - refund penalties - payouts that
        have not failed (pending and completed).
        """
        rows = cls._user_rows(coach_id, UserType.COACH)
        earnings = _sum_amount(
            rows.filter(
                transaction_type=TransactionType.PAYMENT,
                status=TransactionStatus.COMPLETED,
            )
        )
        penalties = _sum_amount(
            rows.filter(
                transaction_type=TransactionType.REFUND,
                status=TransactionStatus.COMPLETED,
            )
        )
        payouts = _sum_amount(
            rows.filter(transaction_type=TransactionType.PAYOUT).exclude(
                status=TransactionStatus.FAILED
            )
        )
        return {
            "earnings_cents": earnings,
            "penalties_cents": penalties,
            "payouts_cents": payouts,
            "balance_cents": earnings - penalties - payouts,
        }

    @classmethod
    def get_billing_dashboard(cls, user_id: uuid.UUID, user_type: str) -> dict[str, Any]:
        """
        Summary for a user's billing dashboard.

        Returns:
            Dict with recent_transactions, monthly_summary and, depending
            on the user type, lifetime earnings, pending payouts, coach
            balance or pending refunds.
        """
        from payments.models import Payout, Refund
        from payments.state_machines import PayoutStatus, RefundStatus

        now = timezone.now()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        dashboard: dict[str, Any] = {
            "recent_transactions": cls.get_billing_history(user_id, user_type, limit=10),
            "monthly_summary": cls.get_billing_report(user_id, user_type, month_start, now),
        }

        if user_type == UserType.COACH:
            balance = cls.get_coach_balance(user_id)
            dashboard["lifetime_earnings_cents"] = balance["earnings_cents"]
            dashboard["coach_balance"] = balance
            dashboard["pending_payouts"] = list(
                Payout.objects.filter(
                    coach_id=user_id,
                    status__in=[PayoutStatus.PENDING, PayoutStatus.PROCESSING],
                )
            )
        elif user_type == UserType.CLIENT:
            dashboard["pending_refunds"] = list(
                Refund.objects.filter(
                    payment__client_id=user_id,
                    status__in=[RefundStatus.PENDING, RefundStatus.PROCESSING],
                )
            )

        return dashboard

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @staticmethod
    def _user_rows(user_id: uuid.UUID | None, user_type: str):
        qs = BillingTransaction.objects.effective().filter(user_type=user_type)
        if user_id is None:
            return qs.filter(user_id__isnull=True)
        return qs.filter(user_id=user_id)


def _sum_amount(qs) -> int:
    return qs.aggregate(total=Sum("amount_cents"))["total"] or 0
