"""
Authorization service: place a hold for a booking.

Flow:
1. Validate the rate (active, owned by the coach) and compute the split
2. Resolve or create the client's gateway customer
3. Ask the gateway for a hold (capture_later=True) with an
   operation-scoped idempotency key
4. Persist the Payment only after the gateway answered

If step 4 fails after the gateway placed the hold, the hold is voided
(compensating action) and LedgerWriteFailedError is raised, so no hold
exists at the gateway without a local Payment.

Usage:
    from payments.services import AuthorizationService

    payment = AuthorizationService.authorize_payment(
        client_id=client.id,
        coach_id=coach.id,
        rate_id=rate.id,
        source_token="pm_card_visa",
    )
    payment.status  # "authorized"
"""

from __future__ import annotations

import uuid
from typing import Any

from django.db import DatabaseError, IntegrityError, transaction

from core.services import BaseService

from payments.adapters import GatewayPaymentStatus, IdempotencyKeyGenerator, get_gateway
from payments.exceptions import (
    GatewayAuthorizationFailedError,
    GatewayCardDeclinedError,
    GatewayError,
    GatewayInvalidRequestError,
    LedgerWriteFailedError,
)
from payments.models import GatewayCustomer, Payment
from payments.services.rate_service import RateService, calculate_earnings_split


class AuthorizationService(BaseService):
    """
    Issue gateway holds and record them as Payments.

    Errors:
        InvalidRateError / RateOwnershipMismatchError: before any gateway call
        GatewayAuthorizationFailedError: the gateway refused the hold
        GatewayRateLimitError / GatewayUnavailableError: nothing was placed, retry
        GatewayOutcomeUnknownError: the hold may exist; retry with the same key
        LedgerWriteFailedError: local write failed, hold was voided
    """

    # =========================================================================
    # Customers
    # =========================================================================

    @classmethod
    def resolve_customer(
        cls,
        client_id: uuid.UUID,
        email: str = "",
        given_name: str = "",
        family_name: str = "",
    ) -> str:
        """Return the client's gateway customer id, creating it on first use."""
        existing = GatewayCustomer.objects.filter(client_id=client_id).first()
        if existing:
            return existing.gateway_customer_id

        result = get_gateway().create_customer(
            email=email,
            given_name=given_name,
            family_name=family_name,
            idempotency_key=IdempotencyKeyGenerator.generate("create_customer", client_id),
            metadata={"client_id": str(client_id)},
        )

        try:
            with transaction.atomic():
                customer = GatewayCustomer.objects.create(
                    client_id=client_id,
                    gateway_customer_id=result.customer_id,
                    email=email,
                )
        except IntegrityError:
            # Concurrent first booking; the idempotency key gave both callers the same customer
            customer = GatewayCustomer.objects.get(client_id=client_id)

        cls.get_logger().info(
            "Gateway customer resolved",
            extra={
                "client_id": str(client_id),
                "gateway_customer_id": customer.gateway_customer_id,
            },
        )
        return customer.gateway_customer_id

    # =========================================================================
    # Authorization
    # =========================================================================

    @classmethod
    def authorize_payment(
        cls,
        client_id: uuid.UUID,
        coach_id: uuid.UUID,
        rate_id: uuid.UUID,
        source_token: str | None = None,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        client_email: str = "",
        given_name: str = "",
        family_name: str = "",
    ) -> Payment:
        """
        Place a hold for a rate and record it.

        Args:
            client_id: Paying client
            coach_id: Coach being booked
            rate_id: Rate being booked
            source_token: Payment method token from the client
            metadata: Buyer metadata stored on the Payment
            idempotency_key: Caller key; a retry with the same key returns
                the Payment created by the first call
            client_email/given_name/family_name: Used to create the gateway customer

        Returns:
            Payment in AUTHORIZED status (PENDING if the gateway has not
            confirmed the hold yet)
        """
        log = cls.get_logger()

        if idempotency_key:
            existing = Payment.objects.filter(idempotency_key=idempotency_key).first()
            if existing:
                log.info(
                    "Authorization replayed",
                    extra={"payment_id": str(existing.id), "idempotency_key": idempotency_key},
                )
                return existing

        rate = RateService.get_bookable_rate(rate_id, coach_id)
        amount_cents = RateService.price_for(rate)
        split = calculate_earnings_split(amount_cents)

        customer_id = cls.resolve_customer(client_id, client_email, given_name, family_name)

        payment_id = uuid.uuid4()
        key = idempotency_key or IdempotencyKeyGenerator.generate("authorize", payment_id)

        log.info(
            "Requesting authorization",
            extra={
                "payment_id": str(payment_id),
                "rate_id": str(rate_id),
                "amount_cents": amount_cents,
                "idempotency_key": key,
            },
        )

        try:
            result = get_gateway().authorize(
                customer_id=customer_id,
                amount_cents=amount_cents,
                currency=rate.currency,
                idempotency_key=key,
                capture_later=True,
                source_token=source_token,
                metadata={
                    "payment_id": str(payment_id),
                    "client_id": str(client_id),
                    "coach_id": str(coach_id),
                    "rate_id": str(rate_id),
                },
            )
        except (GatewayCardDeclinedError, GatewayInvalidRequestError) as e:
            log.warning(
                "Authorization refused by gateway",
                extra={"payment_id": str(payment_id), "gateway_code": e.gateway_code},
            )
            raise GatewayAuthorizationFailedError(
                e.message,
                gateway_code=e.gateway_code,
                decline_code=e.decline_code,
            ) from e

        if result.status in (GatewayPaymentStatus.FAILED, GatewayPaymentStatus.CANCELED):
            raise GatewayAuthorizationFailedError(
                result.failure_reason or "The payment method was not authorized",
                details={"gateway_payment_id": result.gateway_payment_id},
            )

        payment = Payment(
            id=payment_id,
            client_id=client_id,
            coach_id=coach_id,
            rate=rate,
            gateway_payment_id=result.gateway_payment_id,
            gateway_customer_id=customer_id,
            idempotency_key=key,
            amount_cents=amount_cents,
            platform_fee_cents=split.platform_fee_cents,
            coach_earnings_cents=split.coach_earnings_cents,
            currency=rate.currency,
            metadata=metadata or {},
        )
        if result.status in (GatewayPaymentStatus.APPROVED, GatewayPaymentStatus.COMPLETED):
            payment.authorize()

        try:
            with transaction.atomic():
                payment.save()
        except IntegrityError as e:
            replay = Payment.objects.filter(idempotency_key=key).first()
            if replay is not None:
                return replay
            cls._void_orphaned_hold(payment_id, result.gateway_payment_id)
            raise LedgerWriteFailedError(
                "Failed to record the authorization; the hold was released",
                details={"gateway_payment_id": result.gateway_payment_id},
            ) from e
        except DatabaseError as e:
            cls._void_orphaned_hold(payment_id, result.gateway_payment_id)
            raise LedgerWriteFailedError(
                "Failed to record the authorization; the hold was released",
                details={"gateway_payment_id": result.gateway_payment_id},
            ) from e

        log.info(
            "Payment authorized",
            extra={
                "payment_id": str(payment.id),
                "gateway_payment_id": payment.gateway_payment_id,
                "status": payment.status,
                "amount_cents": amount_cents,
                "platform_fee_cents": payment.platform_fee_cents,
                "coach_earnings_cents": payment.coach_earnings_cents,
            },
        )
        return payment

    @classmethod
    def _void_orphaned_hold(cls, payment_id: uuid.UUID, gateway_payment_id: str) -> None:
        """Compensating action for a hold that has no local Payment."""
        log = cls.get_logger()
        log.error(
            "Local write failed after authorization; voiding hold",
            extra={"payment_id": str(payment_id), "gateway_payment_id": gateway_payment_id},
            exc_info=True,
        )
        try:
            get_gateway().cancel(
                gateway_payment_id,
                idempotency_key=IdempotencyKeyGenerator.generate("void", payment_id),
                reason="abandoned",
            )
        except GatewayError:
            log.critical(
                "Failed to void orphaned hold - manual intervention required",
                extra={"payment_id": str(payment_id), "gateway_payment_id": gateway_payment_id},
                exc_info=True,
            )
