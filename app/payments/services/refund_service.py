"""
Refund service for returning money to clients.

This module provides the RefundService class which handles the critical
path for refunds following the same three-phase pattern as capture:

1. Phase 1 (transaction, payment row locked): check the payment status and
   the refundable balance, compute the cost split, create the Refund PENDING
2. Phase 2 (no transaction): call the gateway with the refund's idempotency key
3. Phase 3 (transaction): apply the gateway's answer

When a refund reaches SUCCEEDED (directly, via webhook or via
reconciliation) finalize_refund() recomputes the payment status and writes
the refund's ledger rows, exactly once.

Usage:
    from payments.services import RefundService

    refund = RefundService.create_refund(
        payment_id=payment.id,
        amount_cents=5000,
        reason=RefundReason.CUSTOMER_REQUESTED,
    )
    refund.coach_penalty_cents, refund.platform_refund_cents
"""

from __future__ import annotations

import uuid
from datetime import datetime

from django.db import transaction
from django.db.models import QuerySet, Sum
from django.utils import timezone

from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService

from payments.adapters import GatewayRefundStatus, IdempotencyKeyGenerator, get_gateway
from payments.exceptions import (
    GatewayError,
    GatewayOutcomeUnknownError,
    InvalidStateTransitionError,
    RefundExceedsBalanceError,
)
from payments.ledger.services import BillingLedgerService
from payments.models import Payment, Refund
from payments.services.capture_service import get_payment
from payments.services.refund_policy import (
    calculate_cancellation_refund_amount,
    calculate_refund_split,
)
from payments.state_machines import PaymentStatus, RefundReason, RefundStatus
from payments.state_machines.guards import guarded_transition

# Refunds that count against the refundable balance
BALANCE_COUNTED_STATUSES = (
    RefundStatus.PENDING,
    RefundStatus.PROCESSING,
    RefundStatus.SUCCEEDED,
)


def get_refund(refund_id: uuid.UUID, for_update: bool = False) -> Refund:
    queryset = Refund.objects.select_for_update() if for_update else Refund.objects
    try:
        return queryset.get(id=refund_id)
    except Refund.DoesNotExist:
        raise NotFoundError(
            f"Refund {refund_id} not found",
            error_code="REFUND_NOT_FOUND",
            details={"refund_id": str(refund_id)},
        ) from None


class RefundService(BaseService):
    """
    Service for processing refunds to clients.

    Safety Guarantees:
        - The payment row is locked while the balance is checked and the
          Refund is created, so concurrent refunds cannot over-refund
        - Pending and processing refunds count against the balance
        - The gateway call uses the refund's stored idempotency key
        - Ledger rows are keyed by refund id, so finalization is replay-safe

    Error Handling:
        - Amount over balance: RefundExceedsBalanceError, no Refund row
        - Gateway refused: Refund marked FAILED, GatewayError re-raised
        - Outcome unknown: Refund left PENDING; a same-key retry or the
          reconciliation task resends it under the stored key
    """

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_refundable_balance(cls, payment: Payment) -> int:
        committed = (
            payment.refunds.filter(status__in=BALANCE_COUNTED_STATUSES).aggregate(
                total=Sum("amount_cents")
            )["total"]
            or 0
        )
        return payment.amount_cents - committed

    @classmethod
    def get_refunded_amount(cls, payment: Payment) -> int:
        return (
            payment.refunds.filter(status=RefundStatus.SUCCEEDED).aggregate(
                total=Sum("amount_cents")
            )["total"]
            or 0
        )

    @classmethod
    def list_refunds(cls, payment_id: uuid.UUID) -> QuerySet[Refund]:
        return Refund.objects.filter(payment_id=payment_id).order_by("created_at")

    # =========================================================================
    # Refund Creation
    # =========================================================================

    @classmethod
    def create_refund(
        cls,
        payment_id: uuid.UUID,
        amount_cents: int | None = None,
        reason: str = RefundReason.CUSTOMER_REQUESTED,
        initiated_by: str = "",
        idempotency_key: str | None = None,
    ) -> Refund:
        """
        Refund part or all of a captured payment.

        Args:
            payment_id: Payment to refund
            amount_cents: Amount to refund (None = full remaining balance)
            reason: One of RefundReason
            initiated_by: Who asked for the refund
            idempotency_key: Caller key; a retry returns the existing Refund,
                resending it first if its gateway call timed out

        Returns:
            The Refund (SUCCEEDED, or PROCESSING while the gateway settles it)

        Raises:
            ValidationError: Unknown reason or non-positive amount
            InvalidStateTransitionError: Payment not succeeded/partially_refunded
            RefundExceedsBalanceError: Amount exceeds the refundable balance
            GatewayError: Gateway refused or could not be reached
        """
        if idempotency_key:
            existing = cls.replay(idempotency_key)
            if existing:
                return existing

        if reason not in RefundReason.values:
            raise ValidationError(
                f"Unknown refund reason: {reason}",
                error_code="INVALID_REFUND_REASON",
                details={"reason": [f"Must be one of {', '.join(RefundReason.values)}"]},
            )
        if amount_cents is not None and amount_cents <= 0:
            raise ValidationError(
                "Refund amount must be positive",
                error_code="INVALID_AMOUNT",
                details={"amount_cents": ["Must be positive"]},
            )

        # Phase 1: validate and create the Refund under the payment row lock
        with transaction.atomic():
            payment = get_payment(payment_id, for_update=True)
            if not payment.is_refundable:
                raise InvalidStateTransitionError(
                    f"Cannot refund payment in {payment.status} status",
                    details={"payment_id": str(payment_id), "current_status": payment.status},
                )

            balance = cls.get_refundable_balance(payment)
            refund_amount = amount_cents if amount_cents is not None else balance
            if refund_amount <= 0 or refund_amount > balance:
                raise RefundExceedsBalanceError(
                    f"Refund amount ({refund_amount}) exceeds refundable balance ({balance})",
                    details={
                        "payment_id": str(payment_id),
                        "requested_cents": refund_amount,
                        "refundable_cents": balance,
                    },
                )

            split = calculate_refund_split(
                refund_amount,
                payment.coach_earnings_cents,
                payment.platform_fee_cents,
                reason,
            )
            refund_id = uuid.uuid4()
            refund = Refund.objects.create(
                id=refund_id,
                payment=payment,
                idempotency_key=idempotency_key
                or IdempotencyKeyGenerator.generate("refund", refund_id),
                amount_cents=refund_amount,
                currency=payment.currency,
                reason=reason,
                coach_penalty_cents=split.coach_penalty_cents,
                platform_refund_cents=split.platform_refund_cents,
                initiated_by=initiated_by or "",
            )

        return cls.submit_to_gateway(refund.id, raise_on_failure=True)

    @classmethod
    def submit_to_gateway(cls, refund_id: uuid.UUID, raise_on_failure: bool = False) -> Refund:
        """
        Send a PENDING refund to the gateway under its stored idempotency key.

        Used for the first attempt and again for refunds whose first call
        timed out. The gateway answers a repeated key with the refund it
        already made, so a resend never refunds twice.

        Raises:
            GatewayOutcomeUnknownError: Still no answer; the refund stays PENDING
            GatewayError: Gateway refused; the refund is marked FAILED
        """
        log = cls.get_logger()
        refund = Refund.objects.select_related("payment").get(id=refund_id)
        payment = refund.payment

        log.info(
            "Phase 2: Calling gateway refund",
            extra={
                "refund_id": str(refund.id),
                "payment_id": str(payment.id),
                "amount_cents": refund.amount_cents,
                "reason": refund.reason,
                "coach_penalty_cents": refund.coach_penalty_cents,
                "idempotency_key": refund.idempotency_key,
            },
        )

        # Phase 2: gateway call outside any transaction
        try:
            result = get_gateway().refund(
                payment.gateway_payment_id,
                amount_cents=refund.amount_cents,
                idempotency_key=refund.idempotency_key,
                reason=refund.reason,
                metadata={"refund_id": str(refund.id), "payment_id": str(payment.id)},
            )
        except GatewayOutcomeUnknownError:
            log.error(
                "Refund outcome unknown - awaiting reconciliation",
                extra={"refund_id": str(refund.id)},
            )
            raise
        except GatewayError as e:
            log.error(
                "Gateway refund failed",
                extra={"refund_id": str(refund.id), "error_code": e.error_code},
            )
            cls.mark_refund_failed(refund.id, e.message)
            raise

        # Phase 3: apply the gateway's answer
        return cls.apply_gateway_status(
            refund.id,
            result.status,
            gateway_refund_id=result.gateway_refund_id,
            failure_reason=result.failure_reason,
            raise_on_failure=raise_on_failure,
        )

    @classmethod
    def replay(cls, idempotency_key: str) -> Refund | None:
        """
        Return the refund already created under ``idempotency_key``.

        A refund whose gateway call never got an answer (PENDING, no
        gateway id) is sent again under the same key first.
        """
        existing = Refund.objects.filter(idempotency_key=idempotency_key).first()
        if existing is None:
            return None
        if existing.status == RefundStatus.PENDING and not existing.gateway_refund_id:
            cls.get_logger().info(
                "Resending refund with unknown outcome",
                extra={"refund_id": str(existing.id), "idempotency_key": idempotency_key},
            )
            return cls.submit_to_gateway(existing.id, raise_on_failure=True)
        return existing

    @classmethod
    def apply_gateway_status(
        cls,
        refund_id: uuid.UUID,
        gateway_status: str,
        gateway_refund_id: str | None = None,
        failure_reason: str | None = None,
        raise_on_failure: bool = False,
    ) -> Refund:
        """
        Move a refund to the local status matching the gateway's.

        COMPLETED finalizes the refund, PENDING marks it processing and
        FAILED/REJECTED marks it failed.
        """
        if gateway_refund_id:
            with transaction.atomic():
                refund = get_refund(refund_id, for_update=True)
                if refund.gateway_refund_id != gateway_refund_id:
                    refund.gateway_refund_id = gateway_refund_id
                    refund.save(update_fields=["gateway_refund_id", "updated_at"])

        if gateway_status == GatewayRefundStatus.COMPLETED:
            return cls.finalize_refund(refund_id)

        if gateway_status in (GatewayRefundStatus.FAILED, GatewayRefundStatus.REJECTED):
            reason = failure_reason or f"Gateway reported {gateway_status}"
            refund = cls.mark_refund_failed(refund_id, reason)
            if raise_on_failure:
                raise GatewayError(reason, details={"refund_id": str(refund_id)})
            return refund

        with transaction.atomic():
            refund = get_refund(refund_id, for_update=True)
            if refund.status == RefundStatus.PENDING:
                with guarded_transition(refund, "process"):
                    refund.process()
                    refund.save()
        return refund

    # =========================================================================
    # Finalization
    # =========================================================================

    @classmethod
    def finalize_refund(cls, refund_id: uuid.UUID) -> Refund:
        """
        Mark a refund SUCCEEDED, update the payment and write ledger rows.

        Idempotent: an already succeeded refund is returned unchanged.
        """
        with transaction.atomic():
            refund = get_refund(refund_id, for_update=True)
            if refund.status == RefundStatus.SUCCEEDED:
                return refund

            with guarded_transition(refund, "succeed"):
                refund.succeed()
                refund.save()

            payment = get_payment(refund.payment_id, for_update=True)
            refunded = cls.get_refunded_amount(payment)
            if payment.status != PaymentStatus.REFUNDED:
                with guarded_transition(payment, "refund"):
                    if refunded >= payment.amount_cents:
                        payment.refund_full()
                    else:
                        payment.refund_partial()
                    payment.save()

            BillingLedgerService.record_refund(refund)

        cls.get_logger().info(
            "Refund succeeded",
            extra={
                "refund_id": str(refund.id),
                "payment_id": str(payment.id),
                "refunded_total_cents": refunded,
                "payment_status": payment.status,
            },
        )
        return refund

    @classmethod
    def mark_refund_failed(cls, refund_id: uuid.UUID, reason: str) -> Refund:
        with transaction.atomic():
            refund = get_refund(refund_id, for_update=True)
            if refund.status == RefundStatus.FAILED:
                return refund
            with guarded_transition(refund, "fail"):
                refund.fail(reason=reason)
                refund.save()
        return refund

    # =========================================================================
    # Automatic Refunds
    # =========================================================================

    @classmethod
    def calculate_cancellation_refund_amount(
        cls,
        amount_cents: int,
        session_start: datetime,
        cancelled_at: datetime,
    ) -> int:
        return calculate_cancellation_refund_amount(amount_cents, session_start, cancelled_at)

    @classmethod
    def process_automatic_refund(
        cls,
        payment_id: uuid.UUID,
        session_start: datetime,
        cancelled_at: datetime | None = None,
    ) -> Refund | None:
        """
        Refund a canceled session according to the notice given.

        Returns:
            The Refund (the earlier one on a repeat call), or None when no
            refund is due
        """
        idempotency_key = IdempotencyKeyGenerator.generate("auto_refund", payment_id)
        existing = cls.replay(idempotency_key)
        if existing:
            return existing

        payment = get_payment(payment_id)
        cancelled_at = cancelled_at or timezone.now()

        amount = cls.calculate_cancellation_refund_amount(
            payment.amount_cents, session_start, cancelled_at
        )
        amount = min(amount, cls.get_refundable_balance(payment))
        if amount <= 0:
            cls.get_logger().info(
                "No automatic refund due",
                extra={"payment_id": str(payment_id), "session_start": session_start.isoformat()},
            )
            return None

        return cls.create_refund(
            payment_id=payment.id,
            amount_cents=amount,
            reason=RefundReason.AUTO_CANCELLATION,
            initiated_by="system",
            idempotency_key=idempotency_key,
        )
