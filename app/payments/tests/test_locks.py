"""
Tests for optimistic concurrency control.

Tests cover:
- check_version with matching, stale and missing records
- Version increments on save
- Version increments across FSM transitions
- refresh_from_db on protected status fields
- Status guards from ConcurrentTransitionMixin
"""

import uuid

import pytest
from django_fsm import ConcurrentTransition

from core.exceptions import NotFoundError
from payments.exceptions import StaleRecordError, StateConflictError
from payments.locks import check_version
from payments.models import BankAccount, Payment, Rate
from payments.services import get_payment
from payments.state_machines import PaymentStatus
from payments.state_machines.guards import guarded_transition
from payments.tests.factories import BankAccountFactory, PaymentFactory, RateFactory


@pytest.mark.django_db
class TestCheckVersion:
    def test_matching_version_returns_instance(self):
        rate = RateFactory()

        locked = check_version(Rate, rate.id, rate.version)

        assert locked.id == rate.id

    def test_stale_version(self):
        account = BankAccountFactory()
        account.bank_name = "Renamed"
        account.save()

        with pytest.raises(StaleRecordError) as exc_info:
            check_version(BankAccount, account.id, 1)

        assert exc_info.value.details["current_version"] == 2
        assert exc_info.value.details["expected_version"] == 1

    def test_missing_record(self):
        with pytest.raises(NotFoundError) as exc_info:
            check_version(Rate, uuid.uuid4(), 1)

        assert exc_info.value.error_code == "RATE_NOT_FOUND"


@pytest.mark.django_db
class TestVersionedMixin:
    def test_version_starts_at_one(self):
        assert RateFactory().version == 1

    def test_each_save_increments(self):
        rate = RateFactory()

        rate.title = "First"
        rate.save()
        rate.title = "Second"
        rate.save(update_fields=["title"])

        assert rate.version == 3
        assert Rate.objects.get(id=rate.id).version == 3

    def test_transition_save_increments_and_keeps_status(self):
        payment = PaymentFactory()

        payment.capture()
        payment.save()

        assert payment.version == 2
        assert payment.status == PaymentStatus.SUCCEEDED
        stored = Payment.objects.get(id=payment.id)
        assert stored.version == 2
        assert stored.status == PaymentStatus.SUCCEEDED

    def test_transition_after_transition_on_same_instance(self):
        payment = PaymentFactory()

        payment.capture()
        payment.save()
        payment.refund_full()
        payment.save()

        stored = Payment.objects.get(id=payment.id)
        assert stored.version == 3
        assert stored.status == PaymentStatus.REFUNDED


@pytest.mark.django_db
class TestProtectedStateRefresh:
    def test_full_refresh_picks_up_new_status(self):
        payment = PaymentFactory()
        other = Payment.objects.get(id=payment.id)
        other.cancel()
        other.save()

        payment.refresh_from_db()

        assert payment.status == PaymentStatus.CANCELED
        assert payment.version == 2

    def test_refreshed_instance_can_transition(self):
        payment = PaymentFactory()
        other = Payment.objects.get(id=payment.id)
        other.capture()
        other.save()

        payment.refresh_from_db()
        payment.refund_partial()
        payment.save()

        assert Payment.objects.get(id=payment.id).status == PaymentStatus.PARTIALLY_REFUNDED

    def test_partial_refresh_leaves_status_alone(self):
        payment = PaymentFactory()
        other = Payment.objects.get(id=payment.id)
        other.capture()
        other.save()

        payment.refresh_from_db(fields=["version"])

        assert payment.version == 2
        assert payment.status == PaymentStatus.AUTHORIZED


@pytest.mark.django_db(transaction=True)
class TestConcurrentTransitions:
    """Two writers that loaded the same status cannot both move it."""

    def test_second_writer_loses(self):
        payment = PaymentFactory()
        first = get_payment(payment.id)
        second = get_payment(payment.id)

        first.capture()
        first.save()

        second.cancel()
        with pytest.raises(ConcurrentTransition):
            second.save()

        assert get_payment(payment.id).status == PaymentStatus.SUCCEEDED

    def test_guard_translates_lost_race(self):
        payment = PaymentFactory()
        stale = Payment.objects.get(id=payment.id)
        winner = Payment.objects.get(id=payment.id)
        winner.cancel()
        winner.save()

        with pytest.raises(StateConflictError):
            with guarded_transition(stale, "capture"):
                stale.capture()
                stale.save()

        assert get_payment(payment.id).status == PaymentStatus.CANCELED
