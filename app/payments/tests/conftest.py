"""
Pytest fixtures for payment tests.

This module provides a fake payment gateway and payment objects in the
states the service tests start from.

The ``gateway`` fixture is autouse: every test talks to a MagicMock that
implements the PaymentGateway port, so nothing reaches a real processor.
Tests change its behaviour per call:

    def test_capture_declined(gateway, authorized_payment):
        gateway.capture.side_effect = GatewayCardDeclinedError("Card declined")
        ...
"""

import itertools
import uuid
from unittest.mock import MagicMock, patch

import pytest
from django.utils import timezone

from payments.adapters import (
    GatewayCustomerResult,
    GatewayPaymentResult,
    GatewayPaymentStatus,
    GatewayRefundResult,
    GatewayRefundStatus,
    PaymentGateway,
    PayoutTransferAdapter,
    TransferResult,
    set_gateway,
    set_transfer_adapter,
)
from payments.state_machines import PaymentStatus
from payments.tests.factories import BankAccountFactory, PaymentFactory, RateFactory


# =============================================================================
# Gateway Fakes
# =============================================================================


def make_fake_gateway() -> MagicMock:
    """
    Build a gateway double that approves everything.

    authorize returns APPROVED with a fresh payment id, capture returns
    COMPLETED, cancel returns CANCELED and refund returns COMPLETED.
    """
    counter = itertools.count(1)
    gateway = MagicMock(spec=PaymentGateway)

    def authorize(customer_id, amount_cents, currency, idempotency_key, **kwargs):
        return GatewayPaymentResult(
            gateway_payment_id=f"pi_fake_{next(counter)}",
            status=GatewayPaymentStatus.APPROVED,
            amount_cents=amount_cents,
            currency=currency,
        )

    def capture(gateway_payment_id, idempotency_key):
        return GatewayPaymentResult(
            gateway_payment_id=gateway_payment_id,
            status=GatewayPaymentStatus.COMPLETED,
        )

    def cancel(gateway_payment_id, idempotency_key, reason=None):
        return GatewayPaymentResult(
            gateway_payment_id=gateway_payment_id,
            status=GatewayPaymentStatus.CANCELED,
        )

    def refund(gateway_payment_id, amount_cents, idempotency_key, reason=None, metadata=None):
        return GatewayRefundResult(
            gateway_refund_id=f"re_fake_{next(counter)}",
            status=GatewayRefundStatus.COMPLETED,
            gateway_payment_id=gateway_payment_id,
            amount_cents=amount_cents,
        )

    def create_customer(email, given_name="", family_name="", idempotency_key=None, metadata=None):
        return GatewayCustomerResult(customer_id=f"cus_fake_{next(counter)}")

    gateway.authorize.side_effect = authorize
    gateway.capture.side_effect = capture
    gateway.cancel.side_effect = cancel
    gateway.refund.side_effect = refund
    gateway.create_customer.side_effect = create_customer
    return gateway


@pytest.fixture(autouse=True)
def gateway():
    """Install a fake gateway for the duration of a test."""
    fake = make_fake_gateway()
    set_gateway(fake)
    yield fake
    set_gateway(None)


@pytest.fixture
def transfer_adapter():
    """Install a transfer adapter double that reports success."""
    fake = MagicMock(spec=PayoutTransferAdapter)
    fake.transfer.return_value = TransferResult(succeeded=True, reference="wire_123")
    set_transfer_adapter(fake)
    yield fake
    set_transfer_adapter(None)


@pytest.fixture
def payout_task():
    """Capture payout initiation requests instead of running them."""
    with patch("payments.tasks.initiate_payout_for_payment.delay") as delay:
        yield delay


# =============================================================================
# Party Fixtures
# =============================================================================


@pytest.fixture
def coach_id():
    return uuid.uuid4()


@pytest.fixture
def client_id():
    return uuid.uuid4()


# =============================================================================
# Rate and Payment Fixtures
# =============================================================================


@pytest.fixture
def rate(db, coach_id):
    """An active 100.00 individual rate."""
    return RateFactory(coach_id=coach_id)


@pytest.fixture
def authorized_payment(db, rate, client_id):
    """An authorized 100.00 payment (1500 fee, 8500 coach earnings)."""
    return PaymentFactory(rate=rate, coach_id=rate.coach_id, client_id=client_id)


@pytest.fixture
def succeeded_payment(db, rate, client_id):
    """A captured 100.00 payment (1500 fee, 8500 coach earnings)."""
    return PaymentFactory(
        rate=rate,
        coach_id=rate.coach_id,
        client_id=client_id,
        status=PaymentStatus.SUCCEEDED,
        paid_at=timezone.now(),
    )


@pytest.fixture
def verified_bank_account(db, coach_id):
    """A verified default bank account for the coach."""
    return BankAccountFactory(coach_id=coach_id, is_default=True)


@pytest.fixture
def unverified_bank_account(db, coach_id):
    return BankAccountFactory(
        coach_id=coach_id,
        is_verified=False,
        verification_method=None,
        verified_at=None,
    )
