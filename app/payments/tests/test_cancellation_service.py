"""
Tests for CancellationService.
"""

import pytest

from payments.adapters import GatewayPaymentResult, GatewayPaymentStatus
from payments.exceptions import (
    GatewayUnavailableError,
    InvalidStateTransitionError,
    StateConflictError,
)
from payments.ledger.models import BillingTransaction
from payments.services import CancellationService, get_payment
from payments.state_machines import PaymentStatus
from payments.tests.factories import PaymentFactory


@pytest.mark.django_db
class TestCancelPayment:
    def test_cancel_authorized(self, gateway, authorized_payment):
        """Should void the hold and record the reason."""
        payment = CancellationService.cancel_payment(
            authorized_payment.id, reason="Coach unavailable"
        )

        assert payment.status == PaymentStatus.CANCELED
        assert payment.cancellation_reason == "Coach unavailable"
        gateway.cancel.assert_called_once()
        assert gateway.cancel.call_args.args[0] == authorized_payment.gateway_payment_id

    def test_cancel_writes_no_ledger_rows(self, authorized_payment):
        CancellationService.cancel_payment(authorized_payment.id)

        assert not BillingTransaction.objects.exists()

    def test_cancel_pending_without_gateway_id(self, gateway):
        payment = PaymentFactory(status=PaymentStatus.PENDING, gateway_payment_id=None)

        result = CancellationService.cancel_payment(payment.id)

        assert result.status == PaymentStatus.CANCELED
        gateway.cancel.assert_not_called()

    @pytest.mark.parametrize(
        "status",
        [PaymentStatus.SUCCEEDED, PaymentStatus.CANCELED, PaymentStatus.FAILED],
    )
    def test_cannot_cancel_after_capture_or_terminal(self, gateway, status):
        payment = PaymentFactory(status=status)

        with pytest.raises(InvalidStateTransitionError):
            CancellationService.cancel_payment(payment.id)

        gateway.cancel.assert_not_called()

    def test_gateway_already_captured(self, gateway, authorized_payment):
        """A hold the gateway already captured must not be canceled locally."""
        gateway.cancel.side_effect = None
        gateway.cancel.return_value = GatewayPaymentResult(
            gateway_payment_id=authorized_payment.gateway_payment_id,
            status=GatewayPaymentStatus.COMPLETED,
        )

        with pytest.raises(StateConflictError):
            CancellationService.cancel_payment(authorized_payment.id)

        assert get_payment(authorized_payment.id).status == PaymentStatus.AUTHORIZED

    def test_gateway_error_leaves_payment_unchanged(self, gateway, authorized_payment):
        gateway.cancel.side_effect = GatewayUnavailableError("Gateway down")

        with pytest.raises(GatewayUnavailableError):
            CancellationService.cancel_payment(authorized_payment.id)

        assert get_payment(authorized_payment.id).status == PaymentStatus.AUTHORIZED
