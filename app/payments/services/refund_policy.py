"""
Refund distribution policy.

Decides who bears the cost of a refund:

    provider_requested           coach_penalty = min(coach_earnings, amount)
    admin_initiated,
    auto_cancellation            coach_penalty = 0
    anything else                coach_penalty = floor(amount * coach / (coach + fee))

platform_refund = amount - coach_penalty in every case.

Also holds the time-based cancellation refund schedule used for
automatic refunds when a session is canceled.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from payments.state_machines import RefundReason

FULL_REFUND_NOTICE = timedelta(hours=24)
HALF_REFUND_NOTICE = timedelta(hours=12)

PLATFORM_ABSORBED_REASONS = frozenset(
    {RefundReason.ADMIN_INITIATED.value, RefundReason.AUTO_CANCELLATION.value}
)


@dataclass(frozen=True)
class RefundSplit:
    coach_penalty_cents: int
    platform_refund_cents: int


def calculate_refund_split(
    refund_amount_cents: int,
    coach_earnings_cents: int,
    platform_fee_cents: int,
    reason: str,
) -> RefundSplit:
    """
    Split a refund between coach penalty and platform-borne share.

    Examples (payment 10000 = 8500 coach + 1500 fee):
        customer_requested 10000 -> RefundSplit(8500, 1500)
        provider_requested  5000 -> RefundSplit(5000, 0)
        admin_initiated    10000 -> RefundSplit(0, 10000)
    """
    if refund_amount_cents <= 0:
        raise ValueError("refund_amount_cents must be positive")

    reason = str(reason)
    if reason == RefundReason.PROVIDER_REQUESTED:
        penalty = min(coach_earnings_cents, refund_amount_cents)
    elif reason in PLATFORM_ABSORBED_REASONS:
        penalty = 0
    else:
        total = coach_earnings_cents + platform_fee_cents
        penalty = refund_amount_cents * coach_earnings_cents // total if total else 0

    return RefundSplit(
        coach_penalty_cents=penalty,
        platform_refund_cents=refund_amount_cents - penalty,
    )


def calculate_cancellation_refund_amount(
    amount_cents: int,
    session_start: datetime,
    cancelled_at: datetime,
) -> int:
    """
    Refund due when a session is canceled.

    24h or more before the session: full refund. 12-24h: half (rounded
    down). Under 12h or after the start: nothing.
    """
    notice = session_start - cancelled_at
    if notice >= FULL_REFUND_NOTICE:
        return amount_cents
    if notice >= HALF_REFUND_NOTICE:
        return amount_cents // 2
    return 0
