"""
State machine definitions for payment models.

Exports:
    States: PaymentStatus, RefundStatus, RefundReason, PayoutStatus, ...
    Transitions: PAYMENT_TRANSITIONS, REFUND_TRANSITIONS, PAYOUT_TRANSITIONS
"""

from payments.state_machines.states import (
    BankAccountType,
    PaymentStatus,
    PayoutStatus,
    RefundReason,
    RefundStatus,
    SessionType,
    VerificationMethod,
    WebhookEventStatus,
)
from payments.state_machines.transitions import (
    PAYMENT_TRANSITIONS,
    PAYOUT_TRANSITIONS,
    REFUND_TRANSITIONS,
    can_transition,
    is_terminal,
    sources_for,
)

__all__ = [
    "BankAccountType",
    "PaymentStatus",
    "PayoutStatus",
    "RefundReason",
    "RefundStatus",
    "SessionType",
    "VerificationMethod",
    "WebhookEventStatus",
    "PAYMENT_TRANSITIONS",
    "PAYOUT_TRANSITIONS",
    "REFUND_TRANSITIONS",
    "can_transition",
    "is_terminal",
    "sources_for",
]
