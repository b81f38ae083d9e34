"""
Pytest fixtures for ledger tests.

Re-exports the payment fixtures so ledger rows can be written from real
payments, refunds and payouts.
"""

from payments.tests.conftest import (  # noqa: F401
    authorized_payment,
    client_id,
    coach_id,
    gateway,
    rate,
    succeeded_payment,
    verified_bank_account,
)
