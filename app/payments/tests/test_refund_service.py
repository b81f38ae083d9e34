"""
Tests for RefundService.

Tests cover:
- Refund bounds (no row is created for a rejected request)
- Partial refunds followed by a full refund
- Cost split and coach penalty ledger rows
- Gateway failures, unknown outcomes and asynchronous settlement
- Same-key retries resending refunds whose gateway call timed out
- Automatic refunds for canceled sessions
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from core.exceptions import ValidationError
from payments.adapters import GatewayRefundResult, GatewayRefundStatus
from payments.exceptions import (
    GatewayError,
    GatewayInvalidRequestError,
    GatewayOutcomeUnknownError,
    InvalidStateTransitionError,
    RefundExceedsBalanceError,
)
from payments.ledger.models import BillingTransaction, UserType
from payments.models import Refund
from payments.services import RefundService, get_payment
from payments.services.refund_service import get_refund
from payments.state_machines import PaymentStatus, RefundReason, RefundStatus
from payments.tests.factories import PaymentFactory, RefundFactory


@pytest.fixture
def pending_gateway_refunds(gateway):
    """Gateway accepts refunds but settles them later."""
    gateway.refund.side_effect = None
    gateway.refund.return_value = GatewayRefundResult(
        gateway_refund_id="re_pending",
        status=GatewayRefundStatus.PENDING,
    )
    return gateway


# =============================================================================
# Bounds
# =============================================================================


@pytest.mark.django_db
class TestRefundBounds:
    """A refund can never exceed what is left of the payment."""

    def test_over_refund_rejected_without_row(self, gateway, succeeded_payment):
        with pytest.raises(RefundExceedsBalanceError):
            RefundService.create_refund(succeeded_payment.id, amount_cents=10001)

        assert not Refund.objects.exists()
        gateway.refund.assert_not_called()

    def test_second_refund_bounded_by_remaining_balance(self, succeeded_payment):
        RefundService.create_refund(succeeded_payment.id, amount_cents=6000)

        with pytest.raises(RefundExceedsBalanceError) as exc_info:
            RefundService.create_refund(succeeded_payment.id, amount_cents=4001)

        assert exc_info.value.details["refundable_cents"] == 4000
        assert Refund.objects.count() == 1

    def test_in_flight_refunds_count_against_balance(
        self, pending_gateway_refunds, succeeded_payment
    ):
        """A processing refund still reserves its amount."""
        RefundService.create_refund(succeeded_payment.id, amount_cents=7000)

        assert RefundService.get_refundable_balance(succeeded_payment) == 3000
        with pytest.raises(RefundExceedsBalanceError):
            RefundService.create_refund(succeeded_payment.id, amount_cents=3001)

    def test_failed_refunds_release_balance(self, succeeded_payment):
        RefundFactory(
            payment=succeeded_payment,
            amount_cents=5000,
            coach_penalty_cents=4250,
            platform_refund_cents=750,
            status=RefundStatus.FAILED,
        )

        assert RefundService.get_refundable_balance(succeeded_payment) == 10000

    @pytest.mark.parametrize(
        "status", [PaymentStatus.AUTHORIZED, PaymentStatus.CANCELED, PaymentStatus.FAILED]
    )
    def test_uncaptured_payment_not_refundable(self, gateway, status):
        payment = PaymentFactory(status=status)

        with pytest.raises(InvalidStateTransitionError):
            RefundService.create_refund(payment.id)

        assert not Refund.objects.exists()

    def test_fully_refunded_payment_not_refundable(self, succeeded_payment):
        RefundService.create_refund(succeeded_payment.id)

        with pytest.raises(InvalidStateTransitionError):
            RefundService.create_refund(succeeded_payment.id, amount_cents=1)

    def test_unknown_reason_rejected(self, succeeded_payment):
        with pytest.raises(ValidationError) as exc_info:
            RefundService.create_refund(succeeded_payment.id, reason="changed_my_mind")

        assert exc_info.value.error_code == "INVALID_REFUND_REASON"

    @pytest.mark.parametrize("amount", [0, -50])
    def test_non_positive_amount_rejected(self, succeeded_payment, amount):
        with pytest.raises(ValidationError) as exc_info:
            RefundService.create_refund(succeeded_payment.id, amount_cents=amount)

        assert exc_info.value.error_code == "INVALID_AMOUNT"
        assert not Refund.objects.exists()


# =============================================================================
# Partial and Full Refunds
# =============================================================================


@pytest.mark.django_db
class TestCreateRefund:
    def test_partial_then_full(self, gateway, succeeded_payment):
        """Partial refunds keep the payment refundable until nothing is left."""
        first = RefundService.create_refund(succeeded_payment.id, amount_cents=2500)

        assert first.status == RefundStatus.SUCCEEDED
        assert get_payment(succeeded_payment.id).status == PaymentStatus.PARTIALLY_REFUNDED

        second = RefundService.create_refund(succeeded_payment.id)

        assert second.amount_cents == 7500
        payment = get_payment(succeeded_payment.id)
        assert payment.status == PaymentStatus.REFUNDED
        assert RefundService.get_refunded_amount(payment) == 10000
        assert gateway.refund.call_count == 2

    def test_default_amount_is_full_balance(self, succeeded_payment):
        refund = RefundService.create_refund(succeeded_payment.id)

        assert refund.amount_cents == 10000
        assert get_payment(succeeded_payment.id).status == PaymentStatus.REFUNDED

    def test_customer_refund_split_and_ledger(self, succeeded_payment):
        refund = RefundService.create_refund(succeeded_payment.id, amount_cents=2500)

        assert refund.coach_penalty_cents == 2125
        assert refund.platform_refund_cents == 375

        rows = {
            row.idempotency_key: row
            for row in BillingTransaction.objects.filter(reference_id=refund.id)
        }
        assert rows[f"refund:{refund.id}:client"].amount_cents == 2500
        assert rows[f"refund:{refund.id}:client"].user_type == UserType.CLIENT
        assert rows[f"refund:{refund.id}:coach"].amount_cents == 2125
        assert rows[f"refund:{refund.id}:coach"].user_id == succeeded_payment.coach_id

    def test_admin_refund_has_no_coach_penalty_row(self, succeeded_payment):
        refund = RefundService.create_refund(
            succeeded_payment.id,
            amount_cents=4000,
            reason=RefundReason.ADMIN_INITIATED,
            initiated_by="admin@example.com",
        )

        assert refund.coach_penalty_cents == 0
        assert refund.initiated_by == "admin@example.com"
        keys = set(
            BillingTransaction.objects.filter(reference_id=refund.id).values_list(
                "idempotency_key", flat=True
            )
        )
        assert keys == {f"refund:{refund.id}:client"}

    def test_provider_requested_charges_coach(self, succeeded_payment):
        refund = RefundService.create_refund(
            succeeded_payment.id,
            amount_cents=5000,
            reason=RefundReason.PROVIDER_REQUESTED,
        )

        assert refund.coach_penalty_cents == 5000
        assert refund.platform_refund_cents == 0

    def test_initiated_by_is_optional(self, succeeded_payment):
        refund = RefundService.create_refund(succeeded_payment.id, amount_cents=1000)

        assert refund.status == RefundStatus.SUCCEEDED
        assert Refund.objects.get(id=refund.id).initiated_by == ""

    def test_initiated_by_recorded(self, succeeded_payment):
        refund = RefundService.create_refund(
            succeeded_payment.id, amount_cents=1000, initiated_by="admin@example.com"
        )

        assert Refund.objects.get(id=refund.id).initiated_by == "admin@example.com"

    def test_same_key_returns_same_refund(self, gateway, succeeded_payment):
        first = RefundService.create_refund(
            succeeded_payment.id, amount_cents=1000, idempotency_key="refund-req-1"
        )
        second = RefundService.create_refund(
            succeeded_payment.id, amount_cents=1000, idempotency_key="refund-req-1"
        )

        assert first.id == second.id
        assert gateway.refund.call_count == 1

    def test_gateway_receives_refund_key(self, gateway, succeeded_payment):
        refund = RefundService.create_refund(succeeded_payment.id, amount_cents=1000)

        assert gateway.refund.call_args.kwargs["idempotency_key"] == refund.idempotency_key
        assert refund.gateway_refund_id.startswith("re_fake_")


# =============================================================================
# Gateway Failures and Settlement
# =============================================================================


@pytest.mark.django_db
class TestRefundGatewayOutcomes:
    def test_gateway_error_marks_refund_failed(self, gateway, succeeded_payment):
        gateway.refund.side_effect = GatewayInvalidRequestError("Charge already refunded")

        with pytest.raises(GatewayInvalidRequestError):
            RefundService.create_refund(succeeded_payment.id, amount_cents=1000)

        refund = Refund.objects.get()
        assert refund.status == RefundStatus.FAILED
        assert refund.failure_reason == "Charge already refunded"
        assert get_payment(succeeded_payment.id).status == PaymentStatus.SUCCEEDED
        assert not BillingTransaction.objects.exists()

    def test_rejected_status_raises(self, gateway, succeeded_payment):
        gateway.refund.side_effect = None
        gateway.refund.return_value = GatewayRefundResult(
            gateway_refund_id="re_rejected",
            status=GatewayRefundStatus.REJECTED,
        )

        with pytest.raises(GatewayError):
            RefundService.create_refund(succeeded_payment.id, amount_cents=1000)

        assert Refund.objects.get().status == RefundStatus.FAILED

    def test_unknown_outcome_leaves_refund_pending(self, gateway, succeeded_payment):
        gateway.refund.side_effect = GatewayOutcomeUnknownError("Read timed out")

        with pytest.raises(GatewayOutcomeUnknownError):
            RefundService.create_refund(succeeded_payment.id, amount_cents=1000)

        assert Refund.objects.get().status == RefundStatus.PENDING

    def test_same_key_retry_resends_unanswered_refund(self, gateway, succeeded_payment):
        gateway.refund.side_effect = [
            GatewayOutcomeUnknownError("Read timed out"),
            GatewayRefundResult(gateway_refund_id="re_late", status=GatewayRefundStatus.COMPLETED),
        ]
        with pytest.raises(GatewayOutcomeUnknownError):
            RefundService.create_refund(
                succeeded_payment.id, amount_cents=1000, idempotency_key="refund-req-2"
            )

        refund = RefundService.create_refund(
            succeeded_payment.id, amount_cents=1000, idempotency_key="refund-req-2"
        )

        assert refund.status == RefundStatus.SUCCEEDED
        assert refund.gateway_refund_id == "re_late"
        assert Refund.objects.count() == 1
        first_call, second_call = gateway.refund.call_args_list
        assert first_call.kwargs["idempotency_key"] == second_call.kwargs["idempotency_key"]
        assert get_payment(succeeded_payment.id).status == PaymentStatus.PARTIALLY_REFUNDED

    def test_same_key_retry_while_still_timing_out(self, gateway, succeeded_payment):
        gateway.refund.side_effect = GatewayOutcomeUnknownError("Read timed out")
        with pytest.raises(GatewayOutcomeUnknownError):
            RefundService.create_refund(
                succeeded_payment.id, amount_cents=1000, idempotency_key="refund-req-3"
            )

        with pytest.raises(GatewayOutcomeUnknownError):
            RefundService.create_refund(
                succeeded_payment.id, amount_cents=1000, idempotency_key="refund-req-3"
            )

        assert Refund.objects.get().status == RefundStatus.PENDING
        assert gateway.refund.call_count == 2

    def test_pending_gateway_status_moves_to_processing(
        self, pending_gateway_refunds, succeeded_payment
    ):
        refund = RefundService.create_refund(succeeded_payment.id, amount_cents=1000)

        assert refund.status == RefundStatus.PROCESSING
        assert refund.gateway_refund_id == "re_pending"
        assert not BillingTransaction.objects.exists()

    def test_later_completion_finalizes(self, pending_gateway_refunds, succeeded_payment):
        refund = RefundService.create_refund(succeeded_payment.id, amount_cents=1000)

        RefundService.apply_gateway_status(refund.id, GatewayRefundStatus.COMPLETED)

        assert get_refund(refund.id).status == RefundStatus.SUCCEEDED
        assert get_payment(succeeded_payment.id).status == PaymentStatus.PARTIALLY_REFUNDED
        assert BillingTransaction.objects.filter(reference_id=refund.id).exists()

    def test_finalize_is_idempotent(self, succeeded_payment):
        refund = RefundService.create_refund(succeeded_payment.id, amount_cents=1000)

        RefundService.finalize_refund(refund.id)

        assert BillingTransaction.objects.filter(reference_id=refund.id).count() == 2
        assert get_payment(succeeded_payment.id).status == PaymentStatus.PARTIALLY_REFUNDED

    def test_list_refunds(self, succeeded_payment):
        first = RefundService.create_refund(succeeded_payment.id, amount_cents=1000)
        second = RefundService.create_refund(succeeded_payment.id, amount_cents=2000)

        assert list(RefundService.list_refunds(succeeded_payment.id)) == [first, second]


# =============================================================================
# Automatic Refunds
# =============================================================================


@pytest.mark.django_db
class TestAutomaticRefund:
    @freeze_time("2026-03-10 09:00:00")
    def test_full_refund_with_a_day_of_notice(self, succeeded_payment):
        session_start = timezone.now() + timedelta(hours=30)

        refund = RefundService.process_automatic_refund(succeeded_payment.id, session_start)

        assert refund.amount_cents == 10000
        assert refund.reason == RefundReason.AUTO_CANCELLATION
        assert refund.coach_penalty_cents == 0
        assert refund.initiated_by == "system"

    @freeze_time("2026-03-10 09:00:00")
    def test_half_refund_with_short_notice(self, succeeded_payment):
        session_start = timezone.now() + timedelta(hours=15)

        refund = RefundService.process_automatic_refund(succeeded_payment.id, session_start)

        assert refund.amount_cents == 5000

    @freeze_time("2026-03-10 09:00:00")
    def test_no_refund_inside_12_hours(self, gateway, succeeded_payment):
        session_start = timezone.now() + timedelta(hours=2)

        assert RefundService.process_automatic_refund(succeeded_payment.id, session_start) is None
        gateway.refund.assert_not_called()

    def test_automatic_refund_runs_once(self, gateway, succeeded_payment):
        cancelled_at = timezone.now()
        session_start = cancelled_at + timedelta(days=2)

        first = RefundService.process_automatic_refund(
            succeeded_payment.id, session_start, cancelled_at
        )
        second = RefundService.process_automatic_refund(
            succeeded_payment.id, session_start, cancelled_at
        )

        assert second.id == first.id
        assert gateway.refund.call_count == 1

    def test_retry_resends_after_timeout(self, gateway, succeeded_payment):
        cancelled_at = timezone.now()
        session_start = cancelled_at + timedelta(days=2)
        gateway.refund.side_effect = [
            GatewayOutcomeUnknownError("Read timed out"),
            GatewayRefundResult(gateway_refund_id="re_auto", status=GatewayRefundStatus.COMPLETED),
        ]
        with pytest.raises(GatewayOutcomeUnknownError):
            RefundService.process_automatic_refund(
                succeeded_payment.id, session_start, cancelled_at
            )

        refund = RefundService.process_automatic_refund(
            succeeded_payment.id, session_start, cancelled_at
        )

        assert refund.status == RefundStatus.SUCCEEDED
        assert refund.amount_cents == 10000
        assert get_payment(succeeded_payment.id).status == PaymentStatus.REFUNDED

    def test_capped_at_remaining_balance(self, succeeded_payment):
        RefundService.create_refund(succeeded_payment.id, amount_cents=8000)
        cancelled_at = timezone.now()

        refund = RefundService.process_automatic_refund(
            succeeded_payment.id, cancelled_at + timedelta(days=2), cancelled_at
        )

        assert refund.amount_cents == 2000
