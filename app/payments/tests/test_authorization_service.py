"""
Tests for AuthorizationService.

Tests cover:
- Successful holds with the coach/platform split
- Idempotent replays by caller key
- Gateway refusals and transient failures
- Voiding the hold when the local write fails
- Gateway customer reuse
"""

import uuid

import pytest
from django.db import DatabaseError

from payments.adapters import GatewayPaymentResult, GatewayPaymentStatus
from payments.exceptions import (
    GatewayAuthorizationFailedError,
    GatewayCardDeclinedError,
    GatewayUnavailableError,
    InvalidRateError,
    LedgerWriteFailedError,
    RateOwnershipMismatchError,
)
from payments.ledger.models import BillingTransaction
from payments.models import GatewayCustomer, Payment
from payments.services import AuthorizationService
from payments.state_machines import PaymentStatus, SessionType
from payments.tests.factories import GatewayCustomerFactory, RateFactory


@pytest.mark.django_db
class TestAuthorizePayment:
    """Tests for AuthorizationService.authorize_payment."""

    def test_successful_hold(self, gateway, rate, client_id):
        """Should record an authorized payment with the computed split."""
        payment = AuthorizationService.authorize_payment(
            client_id=client_id,
            coach_id=rate.coach_id,
            rate_id=rate.id,
            source_token="pm_card_visa",
            metadata={"session_id": "abc"},
        )

        assert payment.status == PaymentStatus.AUTHORIZED
        assert payment.amount_cents == 10000
        assert payment.platform_fee_cents == 1500
        assert payment.coach_earnings_cents == 8500
        assert payment.gateway_payment_id.startswith("pi_fake_")
        assert payment.metadata == {"session_id": "abc"}
        assert payment.authorized_at is not None

        call = gateway.authorize.call_args.kwargs
        assert call["capture_later"] is True
        assert call["amount_cents"] == 10000
        assert call["source_token"] == "pm_card_visa"

    def test_authorization_writes_no_ledger_rows(self, rate, client_id):
        """Only captures move money in the ledger."""
        AuthorizationService.authorize_payment(
            client_id=client_id, coach_id=rate.coach_id, rate_id=rate.id
        )

        assert not BillingTransaction.objects.exists()

    def test_package_rate_charges_discounted_total(self, client_id):
        rate = RateFactory(
            session_type=SessionType.PACKAGE,
            rate_cents=10000,
            max_sessions=3,
            discount_percentage=10,
        )

        payment = AuthorizationService.authorize_payment(
            client_id=client_id, coach_id=rate.coach_id, rate_id=rate.id
        )

        assert payment.amount_cents == 27000
        assert payment.platform_fee_cents + payment.coach_earnings_cents == 27000

    def test_pending_gateway_status_leaves_payment_pending(self, gateway, rate, client_id):
        gateway.authorize.side_effect = None
        gateway.authorize.return_value = GatewayPaymentResult(
            gateway_payment_id="pi_pending",
            status=GatewayPaymentStatus.PENDING,
        )

        payment = AuthorizationService.authorize_payment(
            client_id=client_id, coach_id=rate.coach_id, rate_id=rate.id
        )

        assert payment.status == PaymentStatus.PENDING

    # -------------------------------------------------------------------------
    # Idempotency
    # -------------------------------------------------------------------------

    def test_same_key_returns_same_payment(self, gateway, rate, client_id):
        """A retried request must not place a second hold."""
        first = AuthorizationService.authorize_payment(
            client_id=client_id,
            coach_id=rate.coach_id,
            rate_id=rate.id,
            idempotency_key="booking-42",
        )
        second = AuthorizationService.authorize_payment(
            client_id=client_id,
            coach_id=rate.coach_id,
            rate_id=rate.id,
            idempotency_key="booking-42",
        )

        assert first.id == second.id
        assert gateway.authorize.call_count == 1
        assert Payment.objects.count() == 1

    def test_generated_key_is_operation_scoped(self, gateway, rate, client_id):
        payment = AuthorizationService.authorize_payment(
            client_id=client_id, coach_id=rate.coach_id, rate_id=rate.id
        )

        assert payment.idempotency_key.startswith(f"authorize:{payment.id}:1:")
        assert gateway.authorize.call_args.kwargs["idempotency_key"] == payment.idempotency_key

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def test_inactive_rate_rejected_before_gateway(self, gateway, client_id):
        rate = RateFactory(is_active=False)

        with pytest.raises(InvalidRateError):
            AuthorizationService.authorize_payment(
                client_id=client_id, coach_id=rate.coach_id, rate_id=rate.id
            )

        gateway.authorize.assert_not_called()

    def test_rate_of_other_coach_rejected(self, gateway, rate, client_id):
        with pytest.raises(RateOwnershipMismatchError):
            AuthorizationService.authorize_payment(
                client_id=client_id, coach_id=uuid.uuid4(), rate_id=rate.id
            )

        gateway.authorize.assert_not_called()
        assert not Payment.objects.exists()

    # -------------------------------------------------------------------------
    # Gateway Failures
    # -------------------------------------------------------------------------

    def test_card_declined_becomes_authorization_failed(self, gateway, rate, client_id):
        gateway.authorize.side_effect = GatewayCardDeclinedError(
            "Your card was declined.",
            gateway_code="card_declined",
            decline_code="insufficient_funds",
        )

        with pytest.raises(GatewayAuthorizationFailedError) as exc_info:
            AuthorizationService.authorize_payment(
                client_id=client_id, coach_id=rate.coach_id, rate_id=rate.id
            )

        assert exc_info.value.decline_code == "insufficient_funds"
        assert not Payment.objects.exists()

    def test_failed_gateway_status_raises(self, gateway, rate, client_id):
        gateway.authorize.side_effect = None
        gateway.authorize.return_value = GatewayPaymentResult(
            gateway_payment_id="pi_failed",
            status=GatewayPaymentStatus.FAILED,
            failure_reason="Insufficient funds",
        )

        with pytest.raises(GatewayAuthorizationFailedError, match="Insufficient funds"):
            AuthorizationService.authorize_payment(
                client_id=client_id, coach_id=rate.coach_id, rate_id=rate.id
            )

        assert not Payment.objects.exists()

    def test_transient_failure_propagates_as_retryable(self, gateway, rate, client_id):
        gateway.authorize.side_effect = GatewayUnavailableError("Gateway down")

        with pytest.raises(GatewayUnavailableError) as exc_info:
            AuthorizationService.authorize_payment(
                client_id=client_id, coach_id=rate.coach_id, rate_id=rate.id
            )

        assert exc_info.value.is_retryable
        assert not Payment.objects.exists()

    # -------------------------------------------------------------------------
    # Compensation
    # -------------------------------------------------------------------------

    def test_failed_write_voids_hold(self, gateway, rate, client_id, mocker):
        """No hold may remain at the gateway without a local payment."""
        mocker.patch.object(Payment, "save", side_effect=DatabaseError("disk full"))

        with pytest.raises(LedgerWriteFailedError):
            AuthorizationService.authorize_payment(
                client_id=client_id, coach_id=rate.coach_id, rate_id=rate.id
            )

        gateway.cancel.assert_called_once()
        args, kwargs = gateway.cancel.call_args
        assert args[0].startswith("pi_fake_")
        assert kwargs["reason"] == "abandoned"

    def test_failed_void_still_raises_write_failure(self, gateway, rate, client_id, mocker):
        mocker.patch.object(Payment, "save", side_effect=DatabaseError("disk full"))
        gateway.cancel.side_effect = GatewayUnavailableError("Gateway down")

        with pytest.raises(LedgerWriteFailedError):
            AuthorizationService.authorize_payment(
                client_id=client_id, coach_id=rate.coach_id, rate_id=rate.id
            )


@pytest.mark.django_db
class TestResolveCustomer:
    """Tests for gateway customer creation and reuse."""

    def test_creates_customer_once(self, gateway, client_id):
        first = AuthorizationService.resolve_customer(client_id, email="c@example.com")
        second = AuthorizationService.resolve_customer(client_id, email="c@example.com")

        assert first == second
        assert gateway.create_customer.call_count == 1
        assert GatewayCustomer.objects.get(client_id=client_id).email == "c@example.com"

    def test_existing_customer_used_for_holds(self, gateway, rate, client_id):
        GatewayCustomerFactory(client_id=client_id, gateway_customer_id="cus_existing")

        payment = AuthorizationService.authorize_payment(
            client_id=client_id, coach_id=rate.coach_id, rate_id=rate.id
        )

        gateway.create_customer.assert_not_called()
        assert payment.gateway_customer_id == "cus_existing"
        assert gateway.authorize.call_args.kwargs["customer_id"] == "cus_existing"
