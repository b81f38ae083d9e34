"""
Cancellation service: void a hold before capture.

No money moved, so no ledger rows are written.
"""

from __future__ import annotations

import uuid

from django.db import transaction

from core.services import BaseService

from payments.adapters import GatewayPaymentStatus, IdempotencyKeyGenerator, get_gateway
from payments.exceptions import InvalidStateTransitionError, StateConflictError
from payments.models import Payment
from payments.services.capture_service import get_payment
from payments.state_machines.guards import guarded_transition


class CancellationService(BaseService):
    @classmethod
    def cancel_payment(cls, payment_id: uuid.UUID, reason: str = "") -> Payment:
        """
        Void an uncaptured payment.

        Raises:
            InvalidStateTransitionError: Payment is not pending/authorized
            StateConflictError: The gateway reports the hold as already captured
            GatewayError: The gateway refused the void (payment unchanged)
        """
        log = cls.get_logger()

        payment = get_payment(payment_id)
        if not payment.is_capturable:
            raise InvalidStateTransitionError(
                f"Cannot cancel payment in {payment.status} status",
                details={"payment_id": str(payment_id), "current_status": payment.status},
            )

        if payment.gateway_payment_id:
            result = get_gateway().cancel(
                payment.gateway_payment_id,
                idempotency_key=IdempotencyKeyGenerator.generate("cancel", payment.id),
                reason="requested_by_customer",
            )
            if result.status == GatewayPaymentStatus.COMPLETED:
                log.error(
                    "Gateway reports payment captured; refusing local cancel",
                    extra={"payment_id": str(payment.id)},
                )
                raise StateConflictError(
                    "Payment was already captured at the gateway",
                    details={"payment_id": str(payment.id), "gateway_status": result.status},
                )

        with transaction.atomic():
            payment = get_payment(payment_id, for_update=True)
            with guarded_transition(payment, "cancel"):
                payment.cancel(reason=reason)
                payment.save()

        log.info(
            "Payment canceled",
            extra={"payment_id": str(payment.id), "reason": reason},
        )
        return payment
