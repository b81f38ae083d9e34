"""
Tests for payments app.

This package contains test modules for:
- test_state_transitions.py: Payment, Refund and Payout state machines
- test_*_service.py: Service layer tests against a fake gateway
- test_refund_policy.py / test_earnings_split.py: Money arithmetic
- test_tasks.py: Celery tasks (webhook processing, reconciliation, payouts)
- test_integration.py: Authorization to payout journeys

Usage:
    pytest payments/tests/
    pytest payments/tests/test_refund_service.py
"""
