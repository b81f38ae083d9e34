"""
Central transition tables for payment state machines.

Every legal status change for Payment, Refund and Payout is declared here
once. The django-fsm @transition decorators on the models derive their
``source`` lists from these tables, and the webhook reconciler consults
the same tables before applying a gateway-reported status. Nothing else
should decide whether a move is legal.

Usage:
    from payments.state_machines.transitions import (
        PAYMENT_TRANSITIONS,
        can_transition,
        sources_for,
    )

    sources_for(PAYMENT_TRANSITIONS, PaymentStatus.SUCCEEDED)
    # ['pending', 'authorized']

    can_transition(PAYMENT_TRANSITIONS, "succeeded", "authorized")
    # False
"""

from __future__ import annotations

from payments.state_machines.states import (
    PaymentStatus,
    PayoutStatus,
    RefundStatus,
)

# =============================================================================
# Transition Tables
# =============================================================================
# Maps each status to the set of statuses it may move to.
# Terminal statuses map to an empty frozenset.


def _table(raw: dict) -> dict[str, frozenset[str]]:
    # Keys and members are stored as plain strings so lookups by the raw
    # database value and by the enum member behave the same.
    return {
        str(source.value): frozenset(str(target.value) for target in targets)
        for source, targets in raw.items()
    }


PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = _table({
    PaymentStatus.PENDING: frozenset(
        {
            PaymentStatus.AUTHORIZED,
            PaymentStatus.SUCCEEDED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELED,
        }
    ),
    PaymentStatus.AUTHORIZED: frozenset(
        {
            PaymentStatus.SUCCEEDED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELED,
        }
    ),
    PaymentStatus.SUCCEEDED: frozenset(
        {
            PaymentStatus.PARTIALLY_REFUNDED,
            PaymentStatus.REFUNDED,
        }
    ),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset(
        {
            PaymentStatus.PARTIALLY_REFUNDED,
            PaymentStatus.REFUNDED,
        }
    ),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.CANCELED: frozenset(),
})

REFUND_TRANSITIONS: dict[str, frozenset[str]] = _table({
    RefundStatus.PENDING: frozenset(
        {
            RefundStatus.PROCESSING,
            RefundStatus.SUCCEEDED,
            RefundStatus.FAILED,
        }
    ),
    RefundStatus.PROCESSING: frozenset(
        {
            RefundStatus.SUCCEEDED,
            RefundStatus.FAILED,
        }
    ),
    RefundStatus.SUCCEEDED: frozenset(),
    RefundStatus.FAILED: frozenset(),
})

PAYOUT_TRANSITIONS: dict[str, frozenset[str]] = _table({
    PayoutStatus.PENDING: frozenset(
        {
            PayoutStatus.PROCESSING,
            PayoutStatus.REJECTED,
        }
    ),
    PayoutStatus.PROCESSING: frozenset(
        {
            PayoutStatus.COMPLETED,
            PayoutStatus.FAILED,
        }
    ),
    PayoutStatus.COMPLETED: frozenset(),
    PayoutStatus.FAILED: frozenset(),
    PayoutStatus.REJECTED: frozenset(),
})


# =============================================================================
# Helpers
# =============================================================================


def _key(status) -> str:
    return str(getattr(status, "value", status))


def sources_for(table: dict[str, frozenset[str]], target: str) -> list[str]:
    """
    Return every status that may move to ``target``.

    Used to build the ``source`` argument of django-fsm transitions.
    The order follows the table's declaration order so migrations and
    error messages stay stable.
    """
    target = _key(target)
    return [source for source, targets in table.items() if target in targets]


def can_transition(table: dict[str, frozenset[str]], current: str, target: str) -> bool:
    """Check whether ``current`` may move to ``target``."""
    return _key(target) in table.get(_key(current), frozenset())


def is_terminal(table: dict[str, frozenset[str]], status: str) -> bool:
    """Check whether ``status`` has no outgoing transitions."""
    return not table.get(_key(status))


# Payment status -> name of the Payment transition method that reaches it.
# The reconciler uses this to apply a gateway-reported status through the
# same FSM methods the services call.
PAYMENT_TRANSITION_METHODS: dict[str, str] = {
    PaymentStatus.AUTHORIZED.value: "authorize",
    PaymentStatus.SUCCEEDED.value: "capture",
    PaymentStatus.FAILED.value: "fail",
    PaymentStatus.CANCELED.value: "cancel",
    PaymentStatus.PARTIALLY_REFUNDED.value: "refund_partial",
    PaymentStatus.REFUNDED.value: "refund_full",
}

REFUND_TRANSITION_METHODS: dict[str, str] = {
    RefundStatus.PROCESSING.value: "process",
    RefundStatus.SUCCEEDED.value: "succeed",
    RefundStatus.FAILED.value: "fail",
}
