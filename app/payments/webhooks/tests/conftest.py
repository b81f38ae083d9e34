"""
Pytest fixtures for webhook tests.

Re-exports the payment fixtures and adds builders for stored webhook
events in the gateway-neutral payload format.
"""

import pytest

from payments.adapters import GatewayEventType
from payments.tests.conftest import (  # noqa: F401
    authorized_payment,
    client_id,
    coach_id,
    gateway,
    payout_task,
    rate,
    succeeded_payment,
)
from payments.tests.factories import WebhookEventFactory


@pytest.fixture
def payment_event(db):
    """Build a stored payment.updated event for a gateway payment id."""

    def build(gateway_payment_id, status, **extra):
        obj = {"id": gateway_payment_id, "status": status, **extra}
        return WebhookEventFactory(
            event_type=GatewayEventType.PAYMENT_UPDATED,
            payload={"type": GatewayEventType.PAYMENT_UPDATED, "object": obj},
        )

    return build


@pytest.fixture
def refund_event(db):
    """Build a stored refund.updated event."""

    def build(gateway_refund_id, status, **extra):
        obj = {"id": gateway_refund_id, "status": status, **extra}
        return WebhookEventFactory(
            event_type=GatewayEventType.REFUND_UPDATED,
            payload={"type": GatewayEventType.REFUND_UPDATED, "object": obj},
        )

    return build
