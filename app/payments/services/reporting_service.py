"""Financial reports built on the ledger and the refund records."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from django.db.models import Count, Q, Sum

from core.services import BaseService

from payments.ledger.models import UserType
from payments.ledger.services import BillingLedgerService
from payments.models import Payment, Payout, Refund
from payments.state_machines import PayoutStatus, RefundStatus


class ReportingService(BaseService):
    @classmethod
    def coach_earnings_report(
        cls,
        coach_id: uuid.UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Earnings, refund penalties and payouts of a coach over a period.

        Returns:
            Dict with gross_earnings_cents, refund_penalties_cents,
            net_earnings_cents, session_count, paid_out_cents,
            pending_payout_cents and the current balance.
        """
        report = BillingLedgerService.get_billing_report(coach_id, UserType.COACH, start, end)

        payouts = Payout.objects.filter(coach_id=coach_id)
        if start:
            payouts = payouts.filter(created_at__gte=start)
        if end:
            payouts = payouts.filter(created_at__lte=end)
        payout_totals = payouts.aggregate(
            paid=Sum("net_amount_cents", filter=Q(status=PayoutStatus.COMPLETED)),
            pending=Sum(
                "net_amount_cents",
                filter=Q(status__in=[PayoutStatus.PENDING, PayoutStatus.PROCESSING]),
            ),
        )

        return {
            "coach_id": str(coach_id),
            "period_start": start.isoformat() if start else None,
            "period_end": end.isoformat() if end else None,
            "gross_earnings_cents": report.total_revenue_cents,
            "refund_penalties_cents": report.total_refunds_cents,
            "net_earnings_cents": report.total_revenue_cents - report.total_refunds_cents,
            "session_count": report.transaction_count,
            "paid_out_cents": payout_totals["paid"] or 0,
            "pending_payout_cents": payout_totals["pending"] or 0,
            "balance": cls.coach_balance(coach_id),
        }

    @classmethod
    def refund_analysis(
        cls,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Succeeded refunds broken down by reason, with who bore the cost.

        refund_rate_percentage is refunded cents over captured cents for
        payments captured in the same period.
        """
        refunds = Refund.objects.filter(status=RefundStatus.SUCCEEDED)
        if start:
            refunds = refunds.filter(succeeded_at__gte=start)
        if end:
            refunds = refunds.filter(succeeded_at__lte=end)

        by_reason = {
            row["reason"]: {
                "count": row["count"],
                "amount_cents": row["amount"] or 0,
                "coach_penalty_cents": row["penalty"] or 0,
                "platform_refund_cents": row["platform"] or 0,
            }
            for row in refunds.values("reason")
            .annotate(
                count=Count("id"),
                amount=Sum("amount_cents"),
                penalty=Sum("coach_penalty_cents"),
                platform=Sum("platform_refund_cents"),
            )
            .order_by("reason")
        }

        captured = Payment.objects.filter(paid_at__isnull=False)
        if start:
            captured = captured.filter(paid_at__gte=start)
        if end:
            captured = captured.filter(paid_at__lte=end)
        captured_cents = captured.aggregate(total=Sum("amount_cents"))["total"] or 0

        total_refunded = sum(r["amount_cents"] for r in by_reason.values())
        return {
            "period_start": start.isoformat() if start else None,
            "period_end": end.isoformat() if end else None,
            "by_reason": by_reason,
            "total_refunds": sum(r["count"] for r in by_reason.values()),
            "total_refunded_cents": total_refunded,
            "total_coach_penalty_cents": sum(r["coach_penalty_cents"] for r in by_reason.values()),
            "total_platform_refund_cents": sum(
                r["platform_refund_cents"] for r in by_reason.values()
            ),
            "captured_cents": captured_cents,
            "refund_rate_percentage": (
                total_refunded / captured_cents * 100 if captured_cents else 0.0
            ),
        }

    @classmethod
    def coach_balance(cls, coach_id: uuid.UUID) -> dict[str, int]:
        """Running provider balance: earnings - penalties - non-failed payouts."""
        return BillingLedgerService.get_coach_balance(coach_id)

    @classmethod
    def platform_summary(
        cls,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> dict[str, int]:
        """Fees collected and refund costs absorbed by the platform."""
        fee_report = BillingLedgerService.get_billing_report(None, UserType.PLATFORM, start, end)

        refunds = Refund.objects.filter(status=RefundStatus.SUCCEEDED)
        if start:
            refunds = refunds.filter(succeeded_at__gte=start)
        if end:
            refunds = refunds.filter(succeeded_at__lte=end)
        absorbed = refunds.aggregate(total=Sum("platform_refund_cents"))["total"] or 0

        return {
            "fees_collected_cents": fee_report.total_fees_cents,
            "refunds_absorbed_cents": absorbed,
            "net_platform_cents": fee_report.total_fees_cents - absorbed,
        }
