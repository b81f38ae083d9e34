"""
Stripe SDK doubles for the adapter tests.

API key setup is patched out for every test in this package, and the
mock_stripe_* fixtures replace the SDK resources, so nothing reaches the
network.
"""

from dataclasses import dataclass
from typing import Any
from unittest.mock import patch

import pytest
import stripe

from payments.adapters.stripe_adapter import StripeClientMixin


@dataclass
class MockStripeObject:
    """Attribute access over a dict, like stripe.StripeObject."""

    values: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        value = self.__dict__["values"].get(name)
        if isinstance(value, dict):
            return MockStripeObject(value)
        return value

    def to_dict(self) -> dict[str, Any]:
        return self.values


@pytest.fixture
def mock_payment_intent():
    """PaymentIntent factory; defaults to an uncaptured 100.00 hold."""

    def _create(
        id: str = "pi_hold_001",
        status: str = "requires_capture",
        amount: int = 10000,
        currency: str = "usd",
        amount_received: int = 0,
        last_payment_error: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_intent",
                "status": status,
                "amount": amount,
                "currency": currency,
                "amount_received": amount_received,
                "last_payment_error": last_payment_error,
                "metadata": {},
            }
        )

    return _create


@pytest.fixture
def mock_refund():
    """Refund factory; defaults to a settled 25.00 refund."""

    def _create(
        id: str = "re_refund_001",
        amount: int = 2500,
        status: str = "succeeded",
        payment_intent: str = "pi_hold_001",
        failure_reason: str | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "refund",
                "amount": amount,
                "currency": "usd",
                "status": status,
                "payment_intent": payment_intent,
                "failure_reason": failure_reason,
            }
        )

    return _create


@pytest.fixture
def mock_event():
    """Event envelope around a data object."""

    def _create(event_type: str, obj: dict, id: str = "evt_001") -> MockStripeObject:
        return MockStripeObject({"id": id, "type": event_type, "data": {"object": obj}})

    return _create


@pytest.fixture
def card_error():
    """Declined-card error factory."""

    def _create(
        message: str = "Your card was declined.",
        code: str = "card_declined",
        decline_code: str | None = "generic_decline",
    ) -> stripe.CardError:
        error = stripe.CardError(message=message, param=None, code=code)
        error.decline_code = decline_code
        return error

    return _create


@pytest.fixture(autouse=True)
def stripe_configured():
    """Skip API key and HTTP client setup."""
    with patch.object(StripeClientMixin, "_configure_stripe") as configure:
        yield configure


@pytest.fixture
def mock_stripe_payment_intent(mock_payment_intent):
    """stripe.PaymentIntent: hold, capture, cancel and retrieve succeed."""
    with patch("stripe.PaymentIntent") as mock:
        mock.create.return_value = mock_payment_intent()
        mock.capture.return_value = mock_payment_intent(
            status="succeeded", amount_received=10000
        )
        mock.cancel.return_value = mock_payment_intent(status="canceled")
        mock.retrieve.return_value = mock_payment_intent()
        yield mock


@pytest.fixture
def mock_stripe_refund(mock_refund):
    with patch("stripe.Refund") as mock:
        mock.create.return_value = mock_refund()
        mock.retrieve.return_value = mock_refund()
        yield mock


@pytest.fixture
def mock_stripe_webhook():
    with patch("stripe.Webhook") as mock:
        yield mock
