"""
Capture service: finalize a hold into a charge.

Capture is the irreversible economic event. It follows the three-phase
pattern used for every gateway mutation:

1. Phase 1: Load the payment and check its status (no gateway call for a
   payment that is not pending/authorized)
2. Phase 2: Call the gateway OUTSIDE any transaction
3. Phase 3: Transition to SUCCEEDED and write the ledger rows in one
   transaction, guarded by the status the row was loaded with

Payout initiation runs afterwards as a best-effort side effect.

Usage:
    from payments.services import CaptureService

    payment = CaptureService.capture_payment(payment_id)
    payment.status  # "succeeded"
"""

from __future__ import annotations

import logging
import uuid

from django.db import transaction

from core.services import BaseService

from payments.adapters import GatewayPaymentStatus, IdempotencyKeyGenerator, get_gateway
from payments.exceptions import (
    GatewayError,
    GatewayOutcomeUnknownError,
    InvalidStateTransitionError,
    PaymentNotFoundError,
)
from payments.ledger.services import BillingLedgerService
from payments.models import Payment
from payments.state_machines import PaymentStatus
from payments.state_machines.guards import guarded_transition


def get_payment(payment_id: uuid.UUID, for_update: bool = False) -> Payment:
    """Load a payment or raise PaymentNotFoundError."""
    queryset = Payment.objects.select_for_update() if for_update else Payment.objects
    try:
        return queryset.get(id=payment_id)
    except Payment.DoesNotExist:
        raise PaymentNotFoundError(
            f"Payment {payment_id} not found",
            details={"payment_id": str(payment_id)},
        ) from None


class CaptureService(BaseService):
    """
    Capture authorized payments.

    Error Handling:
        - Status not pending/authorized: InvalidStateTransitionError, no gateway call
        - Gateway refused: payment marked FAILED, GatewayError re-raised
        - Outcome unknown (timeout): payment left untouched, error re-raised;
          reconciliation or the webhook settles it
        - Lost race in phase 3: StateConflictError
    """

    @classmethod
    def capture_payment(cls, payment_id: uuid.UUID) -> Payment:
        """
        Capture a payment's hold.

        Args:
            payment_id: Payment to capture

        Returns:
            The payment in SUCCEEDED status (or PENDING/AUTHORIZED if the
            gateway is still processing the capture)
        """
        log = cls.get_logger()

        # Phase 1: precondition
        payment = get_payment(payment_id)
        if not payment.is_capturable:
            raise InvalidStateTransitionError(
                f"Cannot capture payment in {payment.status} status",
                details={"payment_id": str(payment_id), "current_status": payment.status},
            )

        key = IdempotencyKeyGenerator.generate("capture", payment.id)
        log.info(
            "Phase 2: Calling gateway capture",
            extra={
                "payment_id": str(payment.id),
                "gateway_payment_id": payment.gateway_payment_id,
                "idempotency_key": key,
            },
        )

        # Phase 2: gateway call outside any transaction
        try:
            result = get_gateway().capture(payment.gateway_payment_id, idempotency_key=key)
        except GatewayOutcomeUnknownError:
            log.error(
                "Capture outcome unknown - awaiting reconciliation",
                extra={"payment_id": str(payment.id)},
            )
            raise
        except GatewayError as e:
            log.error(
                "Gateway capture failed",
                extra={"payment_id": str(payment.id), "error_code": e.error_code},
            )
            cls._mark_failed(payment.id, e.message)
            raise

        if result.status in (GatewayPaymentStatus.FAILED, GatewayPaymentStatus.CANCELED):
            reason = result.failure_reason or f"Gateway reported {result.status} on capture"
            cls._mark_failed(payment.id, reason)
            raise GatewayError(reason, details={"gateway_status": result.status})

        if result.status != GatewayPaymentStatus.COMPLETED:
            log.info(
                "Capture accepted but not completed yet",
                extra={"payment_id": str(payment.id), "gateway_status": result.status},
            )
            return payment

        # Phase 3: record locally
        payment = cls.record_capture(payment.id)
        cls.trigger_payout(payment)
        return payment

    @classmethod
    def record_capture(cls, payment_id: uuid.UUID) -> Payment:
        """
        Transition a payment to SUCCEEDED and write its ledger rows.

        Also used by the webhook reconciler. If the payment already is
        SUCCEEDED (the other path won the race) only the idempotent ledger
        write is repeated.
        """
        with transaction.atomic():
            payment = get_payment(payment_id, for_update=True)
            if payment.status != PaymentStatus.SUCCEEDED:
                with guarded_transition(payment, "capture"):
                    payment.capture()
                    payment.save()
            BillingLedgerService.record_capture(payment)

        cls.get_logger().info(
            "Payment captured",
            extra={
                "payment_id": str(payment.id),
                "amount_cents": payment.amount_cents,
                "platform_fee_cents": payment.platform_fee_cents,
                "coach_earnings_cents": payment.coach_earnings_cents,
            },
        )
        return payment

    @classmethod
    def _mark_failed(cls, payment_id: uuid.UUID, reason: str) -> None:
        with transaction.atomic():
            payment = get_payment(payment_id, for_update=True)
            with guarded_transition(payment, "fail"):
                payment.fail(reason=reason)
                payment.save()

    @classmethod
    def trigger_payout(cls, payment: Payment) -> None:
        """
        Queue payout initiation for a captured payment.

        A broker failure is logged and swallowed; the capture stands and
        the payout can be created later from the admin.
        """
        from payments.tasks import initiate_payout_for_payment

        try:
            initiate_payout_for_payment.delay(str(payment.id))
        except Exception as e:
            cls.handle_exception(
                e,
                f"Failed to queue payout initiation for payment {payment.id}",
                log_level=logging.WARNING,
            )
