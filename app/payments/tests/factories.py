"""
Factory Boy factories for payment test data.

This module provides factories for creating test instances of payment models.
Factories generate realistic test data while allowing easy customization.

Usage:
    from payments.tests.factories import (
        BankAccountFactory,
        PaymentFactory,
        PayoutFactory,
        RateFactory,
        RefundFactory,
        WebhookEventFactory,
    )

    # An authorized payment of 100.00 (15.00 fee, 85.00 coach earnings)
    payment = PaymentFactory()

    # A payment in a specific state
    payment = PaymentFactory(status=PaymentStatus.SUCCEEDED)

    # A verified bank account for that coach
    account = BankAccountFactory(coach_id=payment.coach_id)
"""

import uuid

import factory
from django.utils import timezone

from payments.encryption import encrypt_account_number
from payments.ledger.models import (
    BillingTransaction,
    TransactionStatus,
    TransactionType,
    UserType,
)
from payments.models import (
    BankAccount,
    GatewayCustomer,
    Payment,
    Payout,
    Rate,
    Refund,
    WebhookEvent,
)
from payments.state_machines import (
    PaymentStatus,
    RefundReason,
    SessionType,
    VerificationMethod,
    WebhookEventStatus,
)

# Passes the ABA checksum
VALID_ROUTING_NUMBER = "011000015"
ACCOUNT_NUMBER = "000123456789"


class RateFactory(factory.django.DjangoModelFactory):
    """Factory for an active, individual 60 minute rate of 100.00."""

    class Meta:
        model = Rate
        skip_postgeneration_save = True

    coach_id = factory.LazyFunction(uuid.uuid4)
    session_type = SessionType.INDIVIDUAL
    duration_minutes = 60
    rate_cents = 10000
    currency = "usd"
    title = factory.Sequence(lambda n: f"Coaching session {n}")
    is_active = True


class GatewayCustomerFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = GatewayCustomer
        skip_postgeneration_save = True

    client_id = factory.LazyFunction(uuid.uuid4)
    gateway_customer_id = factory.Sequence(lambda n: f"cus_test_{n}")
    email = factory.Sequence(lambda n: f"client{n}@example.com")


class PaymentFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Payment instances.

    Defaults to an AUTHORIZED payment of 10000 cents split 1500 / 8500,
    on a rate owned by the same coach.
    """

    class Meta:
        model = Payment
        skip_postgeneration_save = True

    client_id = factory.LazyFunction(uuid.uuid4)
    coach_id = factory.LazyFunction(uuid.uuid4)
    rate = factory.SubFactory(RateFactory, coach_id=factory.SelfAttribute("..coach_id"))
    gateway_payment_id = factory.Sequence(lambda n: f"pi_test_{n}_{uuid.uuid4().hex[:8]}")
    gateway_customer_id = factory.Sequence(lambda n: f"cus_test_{n}")
    idempotency_key = factory.Sequence(lambda n: f"authorize:test:{n}:{uuid.uuid4().hex[:8]}")
    amount_cents = 10000
    platform_fee_cents = 1500
    coach_earnings_cents = 8500
    currency = "usd"
    status = PaymentStatus.AUTHORIZED
    authorized_at = factory.LazyFunction(timezone.now)
    metadata = factory.LazyFunction(dict)


class RefundFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Refund instances.

    Defaults to a PENDING customer-requested refund of 2500 cents,
    split proportionally (2125 coach / 375 platform).
    """

    class Meta:
        model = Refund
        skip_postgeneration_save = True

    payment = factory.SubFactory(PaymentFactory, status=PaymentStatus.SUCCEEDED)
    idempotency_key = factory.Sequence(lambda n: f"refund:test:{n}:{uuid.uuid4().hex[:8]}")
    amount_cents = 2500
    currency = "usd"
    reason = RefundReason.CUSTOMER_REQUESTED
    coach_penalty_cents = 2125
    platform_refund_cents = 375


class BankAccountFactory(factory.django.DjangoModelFactory):
    """Factory for a verified checking account with a valid routing number."""

    class Meta:
        model = BankAccount
        skip_postgeneration_save = True

    coach_id = factory.LazyFunction(uuid.uuid4)
    account_holder_name = "Jane Coach"
    bank_name = "First Test Bank"
    routing_number = VALID_ROUTING_NUMBER
    account_number_encrypted = factory.LazyFunction(lambda: encrypt_account_number(ACCOUNT_NUMBER))
    account_number_last4 = ACCOUNT_NUMBER[-4:]
    is_verified = True
    verification_method = VerificationMethod.MANUAL
    verified_at = factory.LazyFunction(timezone.now)
    is_default = False


class PayoutFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Payout instances.

    Pays out the full coach earnings of a SUCCEEDED payment to a verified
    account of the same coach.
    """

    class Meta:
        model = Payout
        skip_postgeneration_save = True

    payment = factory.SubFactory(PaymentFactory, status=PaymentStatus.SUCCEEDED)
    coach_id = factory.SelfAttribute("payment.coach_id")
    bank_account = factory.SubFactory(
        BankAccountFactory, coach_id=factory.SelfAttribute("..coach_id")
    )
    amount_cents = factory.SelfAttribute("payment.coach_earnings_cents")
    fees_cents = 0
    net_amount_cents = factory.SelfAttribute("amount_cents")
    currency = "usd"


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating WebhookEvent instances.

    Defaults to a pending payment.updated event reporting COMPLETED.
    """

    class Meta:
        model = WebhookEvent
        skip_postgeneration_save = True

    gateway_event_id = factory.Sequence(lambda n: f"evt_test_{n}_{uuid.uuid4().hex[:8]}")
    event_type = "payment.updated"
    payload = factory.LazyFunction(
        lambda: {"type": "payment.updated", "object": {"id": "pi_test", "status": "COMPLETED"}}
    )
    status = WebhookEventStatus.PENDING


class BillingTransactionFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = BillingTransaction
        skip_postgeneration_save = True

    user_id = factory.LazyFunction(uuid.uuid4)
    user_type = UserType.COACH
    transaction_type = TransactionType.PAYMENT
    amount_cents = 8500
    currency = "usd"
    status = TransactionStatus.COMPLETED
    description = "Session earnings"
    reference_type = "payment"
    reference_id = factory.LazyFunction(uuid.uuid4)
    idempotency_key = factory.Sequence(lambda n: f"test:{n}:{uuid.uuid4().hex[:8]}")
    metadata = factory.LazyFunction(dict)
