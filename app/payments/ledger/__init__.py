"""
Ledger - Append-only billing transaction store.

Every money-moving state transition of a payment, refund or payout writes
one or more BillingTransaction rows. Rows are immutable: status changes
are recorded as superseding rows. All billing reports and dashboards read
from the effective (non-superseded) rows.

Public API:
    Models:
        BillingTransaction - One immutable ledger line
        UserType, TransactionType, TransactionStatus - Enums

    Service (import from payments.ledger.services):
        BillingLedgerService - All ledger writes and reports

    Types:
        RecordTransactionParams, BillingReport

    Exceptions:
        LedgerError, LedgerImmutableError

Usage:
    from payments.ledger.services import BillingLedgerService

    rows = BillingLedgerService.record_capture(payment)
    report = BillingLedgerService.get_billing_report(coach_id, UserType.COACH)
"""

from .exceptions import LedgerError, LedgerImmutableError
from .models import BillingTransaction, TransactionStatus, TransactionType, UserType
from .types import BillingReport, RecordTransactionParams

__all__ = [
    # Models
    "BillingTransaction",
    "TransactionStatus",
    "TransactionType",
    "UserType",
    # Types
    "BillingReport",
    "RecordTransactionParams",
    # Exceptions
    "LedgerError",
    "LedgerImmutableError",
]
