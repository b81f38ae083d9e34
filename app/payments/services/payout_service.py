"""
Payout service for paying coach earnings out to bank accounts.

One Payout pays out the coach earnings of one captured Payment. Payouts
are created PENDING (automatically after capture, or explicitly) and go
through an admin workflow:

    approve: PENDING -> PROCESSING -> COMPLETED | FAILED (bank transfer)
    reject:  PENDING -> REJECTED

Every payout writes a pending PAYOUT ledger row at creation; completion,
failure and rejection append superseding rows with the final status.

A transfer whose outcome is unknown leaves the payout PROCESSING, which
still occupies its payment; resend_transfer() repeats it under the same key.

Usage:
    from payments.services import PayoutService

    result = PayoutService.initiate_payout_for_payment(payment.id)
    if result.success:
        PayoutService.approve_payout(result.data.id, processed_by="ops@example.com")
"""

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import QuerySet

from core.exceptions import BaseApplicationError, NotFoundError, ValidationError
from core.services import BaseService, ServiceResult

from payments.adapters import IdempotencyKeyGenerator, get_transfer_adapter
from payments.exceptions import (
    BankAccountValidationError,
    GatewayError,
    GatewayOutcomeUnknownError,
    InvalidStateTransitionError,
    PayoutAlreadyExistsError,
)
from payments.ledger.models import TransactionStatus, TransactionType
from payments.ledger.services import BillingLedgerService
from payments.models import Payout
from payments.services.bank_account_service import BankAccountService
from payments.services.capture_service import get_payment
from payments.state_machines import PaymentStatus, PayoutStatus
from payments.state_machines.guards import guarded_transition

# Payouts in these statuses no longer occupy their payment
RELEASED_PAYOUT_STATUSES = (PayoutStatus.REJECTED, PayoutStatus.FAILED)


def get_payout(payout_id: uuid.UUID, for_update: bool = False) -> Payout:
    queryset = Payout.objects.select_for_update() if for_update else Payout.objects
    try:
        return queryset.get(id=payout_id)
    except Payout.DoesNotExist:
        raise NotFoundError(
            f"Payout {payout_id} not found",
            error_code="PAYOUT_NOT_FOUND",
            details={"payout_id": str(payout_id)},
        ) from None


class PayoutService(BaseService):
    """
    Create payouts and run the admin approval workflow.

    Design Notes:
        - net_amount = payment.coach_earnings_cents - PAYOUT_FEE_CENTS;
          refund penalties are tracked in the coach balance, not netted here
        - All validation happens before any row is written
        - The bank transfer runs outside the status transaction
    """

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def list_payouts(
        cls,
        coach_id: uuid.UUID | None = None,
        status: str | None = None,
    ) -> QuerySet[Payout]:
        payouts = Payout.objects.select_related("bank_account", "payment")
        if coach_id is not None:
            payouts = payouts.filter(coach_id=coach_id)
        if status:
            payouts = payouts.filter(status=status)
        return payouts.order_by("-created_at")

    @classmethod
    def get_active_payout(cls, payment_id: uuid.UUID) -> Payout | None:
        return (
            Payout.objects.filter(payment_id=payment_id)
            .exclude(status__in=RELEASED_PAYOUT_STATUSES)
            .first()
        )

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    def create_payout(
        cls,
        coach_id: uuid.UUID,
        bank_account_id: uuid.UUID,
        payment_id: uuid.UUID,
        notes: str = "",
    ) -> Payout:
        """
        Create a PENDING payout for one captured payment.

        Raises:
            NotFoundError: Bank account or payment missing
            BankAccountValidationError: Account unverified or owned by another coach
            ValidationError: Payment belongs to another coach, or nothing to pay out
            InvalidStateTransitionError: Payment is not SUCCEEDED
            PayoutAlreadyExistsError: Payment already has an active payout
        """
        account = BankAccountService.get_bank_account(bank_account_id)
        if account.coach_id != coach_id:
            raise BankAccountValidationError(
                "Bank account does not belong to this coach",
                details={"bank_account_id": str(bank_account_id)},
            )
        if not account.is_verified:
            raise BankAccountValidationError(
                "Bank account must be verified before receiving payouts",
                error_code="BANK_ACCOUNT_NOT_VERIFIED",
                details={"bank_account_id": str(bank_account_id)},
            )

        payment = get_payment(payment_id)
        if payment.coach_id != coach_id:
            raise ValidationError(
                "Payment does not belong to this coach",
                details={"payment_id": str(payment_id)},
            )
        if payment.status != PaymentStatus.SUCCEEDED:
            raise InvalidStateTransitionError(
                f"Cannot pay out payment in {payment.status} status",
                details={"payment_id": str(payment_id), "current_status": payment.status},
            )

        fees = min(settings.PAYOUT_FEE_CENTS, payment.coach_earnings_cents)
        if payment.coach_earnings_cents <= 0:
            raise ValidationError(
                "Payment has no coach earnings to pay out",
                details={"payment_id": str(payment_id)},
            )

        try:
            with transaction.atomic():
                if cls.get_active_payout(payment_id):
                    raise PayoutAlreadyExistsError(
                        "Payment already has an active payout",
                        details={"payment_id": str(payment_id)},
                    )
                payout = Payout.objects.create(
                    coach_id=coach_id,
                    bank_account=account,
                    payment=payment,
                    amount_cents=payment.coach_earnings_cents,
                    fees_cents=fees,
                    net_amount_cents=payment.coach_earnings_cents - fees,
                    currency=payment.currency,
                    notes=notes,
                )
                BillingLedgerService.record_payout_requested(payout)
        except IntegrityError as e:
            raise PayoutAlreadyExistsError(
                "Payment already has an active payout",
                details={"payment_id": str(payment_id)},
            ) from e

        cls.get_logger().info(
            "Payout created",
            extra={
                "payout_id": str(payout.id),
                "payment_id": str(payment_id),
                "coach_id": str(coach_id),
                "net_amount_cents": payout.net_amount_cents,
            },
        )
        return payout

    @classmethod
    def initiate_payout_for_payment(cls, payment_id: uuid.UUID) -> ServiceResult[Payout]:
        """
        Best-effort payout after capture.

        Uses the coach's default verified bank account. Expected problems
        (no verified account, payment not succeeded) are returned as a
        failed ServiceResult instead of raised.
        """
        log = cls.get_logger()
        try:
            payment = get_payment(payment_id)

            existing = cls.get_active_payout(payment.id)
            if existing:
                return ServiceResult.success(existing)

            account = BankAccountService.get_default_bank_account(payment.coach_id)
            if account is None:
                log.info(
                    "No verified bank account; payout deferred",
                    extra={"payment_id": str(payment_id), "coach_id": str(payment.coach_id)},
                )
                return ServiceResult.failure(
                    "Coach has no verified bank account",
                    error_code="NO_BANK_ACCOUNT",
                )

            payout = cls.create_payout(
                coach_id=payment.coach_id,
                bank_account_id=account.id,
                payment_id=payment.id,
                notes="Created automatically after capture",
            )
        except PayoutAlreadyExistsError:
            return ServiceResult.success(cls.get_active_payout(payment_id))
        except BaseApplicationError as e:
            log.warning(
                "Automatic payout initiation failed",
                extra={"payment_id": str(payment_id), "error_code": e.error_code},
            )
            return ServiceResult.failure(e.message, error_code=e.error_code)

        return ServiceResult.success(payout)

    # =========================================================================
    # Admin Workflow
    # =========================================================================

    @classmethod
    def approve_payout(cls, payout_id: uuid.UUID, processed_by: str | None = None) -> Payout:
        """
        Approve a pending payout and execute the bank transfer.

        Returns:
            The payout in COMPLETED or FAILED status

        Raises:
            GatewayOutcomeUnknownError: Transfer outcome unknown; the payout
                stays PROCESSING until resend_transfer() settles it
        """
        # Phase 1: PENDING -> PROCESSING
        with transaction.atomic():
            payout = get_payout(payout_id, for_update=True)
            with guarded_transition(payout, "approve"):
                payout.approve(processed_by=processed_by)
                payout.save()

        return cls._transfer(payout)

    @classmethod
    def resend_transfer(cls, payout_id: uuid.UUID) -> Payout:
        """
        Re-run the transfer of a payout left PROCESSING by an unknown outcome.

        The transfer key is derived from the payout id, so the adapter sees
        the same key as the first attempt. Payouts in any other status are
        returned unchanged.
        """
        payout = get_payout(payout_id)
        if payout.status != PayoutStatus.PROCESSING:
            return payout
        cls.get_logger().info(
            "Resending payout transfer with unknown outcome",
            extra={"payout_id": str(payout.id)},
        )
        return cls._transfer(payout)

    @classmethod
    def _transfer(cls, payout: Payout) -> Payout:
        log = cls.get_logger()

        account = payout.bank_account
        if account is None or not account.is_verified:
            return cls._finish(payout.id, succeeded=False, failure_reason="Bank account is no longer verified")

        # Phase 2: transfer outside the transaction
        key = IdempotencyKeyGenerator.generate("payout_transfer", payout.id)
        log.info(
            "Phase 2: Executing payout transfer",
            extra={"payout_id": str(payout.id), "idempotency_key": key},
        )
        try:
            result = get_transfer_adapter().transfer(payout, account, idempotency_key=key)
        except GatewayOutcomeUnknownError:
            log.error(
                "Payout transfer outcome unknown - awaiting reconciliation",
                extra={"payout_id": str(payout.id), "idempotency_key": key},
            )
            raise
        except GatewayError as e:
            log.error(
                "Payout transfer failed",
                extra={"payout_id": str(payout.id), "error_code": e.error_code},
            )
            return cls._finish(payout.id, succeeded=False, failure_reason=e.message)

        # Phase 3: PROCESSING -> COMPLETED | FAILED
        return cls._finish(
            payout.id,
            succeeded=result.succeeded,
            reference=result.reference,
            failure_reason=result.failure_reason,
        )

    @classmethod
    def reject_payout(
        cls,
        payout_id: uuid.UUID,
        reason: str,
        processed_by: str | None = None,
    ) -> Payout:
        if not reason:
            raise ValidationError(
                "A rejection reason is required",
                details={"reason": ["This field is required"]},
            )

        with transaction.atomic():
            payout = get_payout(payout_id, for_update=True)
            with guarded_transition(payout, "reject"):
                payout.reject(reason=reason, processed_by=processed_by)
                payout.save()
            BillingLedgerService.supersede_status(
                "payout",
                payout.id,
                TransactionStatus.FAILED,
                transaction_type=TransactionType.PAYOUT,
                reason=f"rejected: {reason}",
            )

        cls.get_logger().info(
            "Payout rejected",
            extra={"payout_id": str(payout.id), "reason": reason, "processed_by": processed_by},
        )
        return payout

    @classmethod
    def _finish(
        cls,
        payout_id: uuid.UUID,
        succeeded: bool,
        reference: str = "",
        failure_reason: str | None = None,
    ) -> Payout:
        with transaction.atomic():
            payout = get_payout(payout_id, for_update=True)
            if succeeded:
                with guarded_transition(payout, "complete"):
                    payout.complete(transfer_reference=reference)
                    payout.save()
                new_status = TransactionStatus.COMPLETED
            else:
                with guarded_transition(payout, "fail"):
                    payout.fail(reason=failure_reason or "Transfer failed")
                    payout.save()
                new_status = TransactionStatus.FAILED

            BillingLedgerService.supersede_status(
                "payout",
                payout.id,
                new_status,
                transaction_type=TransactionType.PAYOUT,
                reason=failure_reason,
            )

        cls.get_logger().info(
            "Payout finished",
            extra={
                "payout_id": str(payout.id),
                "status": payout.status,
                "transfer_reference": reference,
            },
        )
        return payout
