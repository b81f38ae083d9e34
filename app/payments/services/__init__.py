"""
Payment services for coordinating payment operations.

This module provides:
- RateService: Rate catalog and pricing math
- AuthorizationService: Places holds and records Payments
- CaptureService: Finalizes holds, writes ledger rows, triggers payouts
- CancellationService: Voids holds before capture
- RefundService: Refunds with a policy-driven cost split
- BankAccountService: Coach payout destinations
- PayoutService: Payout creation and admin approve/reject workflow
- ReportingService: Earnings, refund and balance reports

Usage:
    from payments.services import AuthorizationService, CaptureService

    payment = AuthorizationService.authorize_payment(
        client_id=client_id,
        coach_id=coach_id,
        rate_id=rate.id,
    )
    payment = CaptureService.capture_payment(payment.id)

    from payments.services import RefundService

    refund = RefundService.create_refund(payment.id, amount_cents=2500)
"""

from payments.services.authorization_service import AuthorizationService
from payments.services.bank_account_service import BankAccountService
from payments.services.cancellation_service import CancellationService
from payments.services.capture_service import CaptureService, get_payment
from payments.services.payout_service import PayoutService
from payments.services.rate_service import (
    EarningsSplit,
    RateService,
    calculate_earnings_split,
    calculate_package_price,
)
from payments.services.refund_policy import (
    RefundSplit,
    calculate_cancellation_refund_amount,
    calculate_refund_split,
)
from payments.services.refund_service import RefundService
from payments.services.reporting_service import ReportingService

__all__ = [
    "AuthorizationService",
    "BankAccountService",
    "CancellationService",
    "CaptureService",
    "EarningsSplit",
    "PayoutService",
    "RateService",
    "RefundService",
    "RefundSplit",
    "ReportingService",
    "calculate_cancellation_refund_amount",
    "calculate_earnings_split",
    "calculate_package_price",
    "calculate_refund_split",
    "get_payment",
]
