"""
Tests for ReportingService.

Builds one complete history through the services (capture, payout,
partial refund) and checks every report against it:

    payment 10000 = 8500 coach + 1500 fee
    payout  8500 pending
    refund  2500 customer_requested = 2125 coach penalty + 375 platform
"""

import uuid
from datetime import timedelta

import pytest
from django.utils import timezone

from payments.services import (
    CaptureService,
    PayoutService,
    RefundService,
    ReportingService,
)


@pytest.fixture
def history(authorized_payment, verified_bank_account):
    payment = CaptureService.record_capture(authorized_payment.id)
    payout = PayoutService.create_payout(
        coach_id=payment.coach_id,
        bank_account_id=verified_bank_account.id,
        payment_id=payment.id,
    )
    refund = RefundService.create_refund(payment.id, amount_cents=2500)
    return {"payment": payment, "payout": payout, "refund": refund}


@pytest.mark.django_db
class TestCoachReports:
    def test_earnings_report(self, history, coach_id):
        report = ReportingService.coach_earnings_report(coach_id)

        assert report["gross_earnings_cents"] == 8500
        assert report["refund_penalties_cents"] == 2125
        assert report["net_earnings_cents"] == 6375
        assert report["session_count"] == 1
        assert report["paid_out_cents"] == 0
        assert report["pending_payout_cents"] == 8500

    def test_balance_counts_pending_payouts(self, history, coach_id):
        balance = ReportingService.coach_balance(coach_id)

        assert balance == {
            "earnings_cents": 8500,
            "penalties_cents": 2125,
            "payouts_cents": 8500,
            "balance_cents": -2125,
        }

    def test_rejected_payout_returns_to_balance(self, history, coach_id):
        PayoutService.reject_payout(history["payout"].id, reason="Wrong account")

        assert ReportingService.coach_balance(coach_id)["balance_cents"] == 6375

    def test_period_outside_history_is_empty(self, history, coach_id):
        start = timezone.now() + timedelta(days=1)

        report = ReportingService.coach_earnings_report(coach_id, start=start)

        assert report["gross_earnings_cents"] == 0
        assert report["pending_payout_cents"] == 0
        assert report["period_start"] == start.isoformat()

    def test_unknown_coach_is_empty(self, history):
        report = ReportingService.coach_earnings_report(uuid.uuid4())

        assert report["gross_earnings_cents"] == 0
        assert report["balance"]["balance_cents"] == 0


@pytest.mark.django_db
class TestPlatformReports:
    def test_refund_analysis(self, history):
        analysis = ReportingService.refund_analysis()

        assert analysis["by_reason"] == {
            "customer_requested": {
                "count": 1,
                "amount_cents": 2500,
                "coach_penalty_cents": 2125,
                "platform_refund_cents": 375,
            }
        }
        assert analysis["total_refunds"] == 1
        assert analysis["captured_cents"] == 10000
        assert analysis["refund_rate_percentage"] == pytest.approx(25.0)

    def test_refund_analysis_without_captures(self):
        analysis = ReportingService.refund_analysis()

        assert analysis["by_reason"] == {}
        assert analysis["refund_rate_percentage"] == 0.0

    def test_platform_summary(self, history):
        summary = ReportingService.platform_summary()

        assert summary == {
            "fees_collected_cents": 1500,
            "refunds_absorbed_cents": 375,
            "net_platform_cents": 1125,
        }
