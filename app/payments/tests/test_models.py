"""
Tests for payment models.

Tests cover:
- Database constraints on amounts and splits
- One default bank account per coach
- One active payout per payment
- WebhookEvent processing helpers
"""

import pytest
from django.db import IntegrityError, transaction

from payments.models.webhook_event import MAX_WEBHOOK_RETRIES
from payments.state_machines import PaymentStatus, PayoutStatus, WebhookEventStatus
from payments.tests.factories import (
    BankAccountFactory,
    PaymentFactory,
    PayoutFactory,
    RateFactory,
    RefundFactory,
    WebhookEventFactory,
)


# =============================================================================
# Constraints
# =============================================================================


@pytest.mark.django_db
class TestAmountConstraints:
    def test_payment_split_must_add_up(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            PaymentFactory(amount_cents=10000, platform_fee_cents=1500, coach_earnings_cents=8000)

    def test_refund_split_must_add_up(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            RefundFactory(amount_cents=2500, coach_penalty_cents=2000, platform_refund_cents=400)

    def test_rate_must_be_positive(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            RateFactory(rate_cents=0)

    def test_payout_net_not_above_amount(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            PayoutFactory(amount_cents=8500, net_amount_cents=9000)


@pytest.mark.django_db
class TestUniquenessConstraints:
    def test_one_default_account_per_coach(self, coach_id):
        BankAccountFactory(coach_id=coach_id, is_default=True)

        with pytest.raises(IntegrityError), transaction.atomic():
            BankAccountFactory(coach_id=coach_id, is_default=True)

    def test_many_non_default_accounts(self, coach_id):
        BankAccountFactory(coach_id=coach_id)
        BankAccountFactory(coach_id=coach_id)

    def test_one_active_payout_per_payment(self):
        payout = PayoutFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            PayoutFactory(payment=payout.payment)

    def test_rejected_payout_does_not_block(self):
        rejected = PayoutFactory(status=PayoutStatus.REJECTED)

        PayoutFactory(payment=rejected.payment)


# =============================================================================
# Display Helpers
# =============================================================================


@pytest.mark.django_db
class TestDisplay:
    def test_payment_str(self):
        payment = PaymentFactory(status=PaymentStatus.SUCCEEDED)

        assert str(payment) == f"Payment({payment.id}, succeeded, 100.00 USD)"

    def test_masked_account_number(self):
        account = BankAccountFactory(account_number_last4="4321")

        assert account.masked_account_number == "****4321"
        assert "4321" in str(account)

    def test_rate_str(self):
        assert str(RateFactory(duration_minutes=45)) == "Rate(individual, 45min, 100.00 USD)"


# =============================================================================
# WebhookEvent
# =============================================================================


@pytest.mark.django_db
class TestWebhookEvent:
    def test_mark_processing_counts_attempts(self):
        event = WebhookEventFactory()

        event.mark_processing()
        event.mark_processing()

        assert event.status == WebhookEventStatus.PROCESSING
        assert event.retry_count == 2

    def test_processed_and_skipped_are_done(self):
        processed = WebhookEventFactory()
        processed.mark_processed()
        skipped = WebhookEventFactory()
        skipped.mark_skipped("Payment not found")

        assert processed.is_processed
        assert skipped.is_processed
        assert skipped.error_message == "Payment not found"
        assert processed.processed_at is not None

    def test_retry_limit(self):
        event = WebhookEventFactory(
            status=WebhookEventStatus.FAILED, retry_count=MAX_WEBHOOK_RETRIES - 1
        )
        assert event.can_retry

        event.retry_count = MAX_WEBHOOK_RETRIES
        assert not event.can_retry

    def test_object_helpers(self):
        event = WebhookEventFactory(
            payload={"type": "payment.updated", "object": {"id": "pi_1", "status": "APPROVED"}}
        )

        assert event.get_object() == {"id": "pi_1", "status": "APPROVED"}
        assert event.get_object_id() == "pi_1"

    @pytest.mark.parametrize("payload", [{}, {"object": "pi_1"}, {"object": None}])
    def test_malformed_payload(self, payload):
        event = WebhookEventFactory(payload=payload)

        assert event.get_object() == {}
        assert event.get_object_id() is None
