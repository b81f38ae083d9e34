"""
Bank account registry for coach payout destinations.

Account numbers are validated, Fernet-encrypted and reduced to last4 for
display. Only verified accounts are eligible for payouts, and a coach has
at most one default account.

Usage:
    from payments.services import BankAccountService

    account = BankAccountService.add_bank_account(
        coach_id=coach_id,
        account_holder_name="Jane Doe",
        routing_number="011000015",
        account_number="000123456789",
    )
    BankAccountService.verify_bank_account(account.id, VerificationMethod.MICRO_DEPOSITS)
"""

from __future__ import annotations

import uuid
from typing import Any

from django.db import transaction
from django.db.models import F, QuerySet
from django.utils import timezone

from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService

from payments.encryption import encrypt_account_number
from payments.exceptions import BankAccountInUseError, BankAccountValidationError
from payments.locks import check_version
from payments.models import BankAccount
from payments.state_machines import BankAccountType, PayoutStatus, VerificationMethod
from payments.validators import validate_account_number, validate_routing_number

UPDATABLE_FIELDS = frozenset(
    {"account_holder_name", "bank_name", "account_type", "routing_number", "account_number"}
)

# Payout statuses that block deleting the destination account
IN_FLIGHT_PAYOUT_STATUSES = (PayoutStatus.PENDING, PayoutStatus.PROCESSING)


class BankAccountService(BaseService):
    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def list_bank_accounts(cls, coach_id: uuid.UUID) -> QuerySet[BankAccount]:
        return BankAccount.objects.filter(coach_id=coach_id).order_by("-is_default", "-created_at")

    @classmethod
    def get_bank_account(
        cls,
        account_id: uuid.UUID,
        coach_id: uuid.UUID | None = None,
    ) -> BankAccount:
        """
        Load an account, optionally scoped to its owner.

        Raises:
            NotFoundError: Missing, or owned by another coach
        """
        accounts = BankAccount.objects.filter(id=account_id)
        if coach_id is not None:
            accounts = accounts.filter(coach_id=coach_id)
        account = accounts.first()
        if account is None:
            raise NotFoundError(
                f"Bank account {account_id} not found",
                error_code="BANK_ACCOUNT_NOT_FOUND",
                details={"bank_account_id": str(account_id)},
            )
        return account

    @classmethod
    def get_default_bank_account(cls, coach_id: uuid.UUID) -> BankAccount | None:
        """Verified default account, else the newest verified account, else None."""
        verified = BankAccount.objects.filter(coach_id=coach_id, is_verified=True)
        return (
            verified.filter(is_default=True).first()
            or verified.order_by("-created_at").first()
        )

    # =========================================================================
    # Mutations
    # =========================================================================

    @classmethod
    def add_bank_account(
        cls,
        coach_id: uuid.UUID,
        account_holder_name: str,
        routing_number: str,
        account_number: str,
        account_type: str = BankAccountType.CHECKING,
        bank_name: str = "",
        is_default: bool = False,
    ) -> BankAccount:
        """
        Register an unverified payout destination.

        The coach's first account always becomes the default.

        Raises:
            BankAccountValidationError: Routing or account number invalid
        """
        missing = cls.validate_required(
            account_holder_name=account_holder_name,
            routing_number=routing_number,
            account_number=account_number,
        )
        if missing is not None:
            raise BankAccountValidationError(missing.error, details=missing.errors)

        routing = validate_routing_number(routing_number)
        number = validate_account_number(account_number)
        cls._validate_account_type(account_type)

        with transaction.atomic():
            is_first = not BankAccount.objects.filter(coach_id=coach_id).exists()
            make_default = is_default or is_first
            if make_default:
                cls._clear_default(coach_id)

            account = BankAccount.objects.create(
                coach_id=coach_id,
                account_holder_name=account_holder_name,
                bank_name=bank_name,
                routing_number=routing,
                account_number_encrypted=encrypt_account_number(number),
                account_number_last4=number[-4:],
                account_type=account_type,
                is_default=make_default,
            )

        cls.get_logger().info(
            "Bank account added",
            extra={
                "bank_account_id": str(account.id),
                "coach_id": str(coach_id),
                "account": account.masked_account_number,
                "is_default": make_default,
            },
        )
        return account

    @classmethod
    def update_bank_account(
        cls,
        account_id: uuid.UUID,
        coach_id: uuid.UUID,
        expected_version: int | None = None,
        **changes: Any,
    ) -> BankAccount:
        """
        Update account details.

        Changing the routing or account number re-validates, re-encrypts
        and resets verification.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update fields: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )

        account = cls.get_bank_account(account_id, coach_id)
        version = account.version if expected_version is None else expected_version

        routing = changes.get("routing_number")
        if routing is not None:
            routing = validate_routing_number(routing)
        number = changes.get("account_number")
        if number is not None:
            number = validate_account_number(number)
        if "account_type" in changes:
            cls._validate_account_type(changes["account_type"])

        with transaction.atomic():
            account = check_version(BankAccount, account_id, version)
            for name in ("account_holder_name", "bank_name", "account_type"):
                if name in changes:
                    setattr(account, name, changes[name])

            reverify = False
            if routing is not None and routing != account.routing_number:
                account.routing_number = routing
                reverify = True
            if number is not None:
                account.account_number_encrypted = encrypt_account_number(number)
                account.account_number_last4 = number[-4:]
                reverify = True
            if reverify:
                account.is_verified = False
                account.verification_method = None
                account.verified_at = None
            account.save()

        cls.get_logger().info(
            "Bank account updated",
            extra={
                "bank_account_id": str(account.id),
                "fields": sorted(changes),
                "verification_reset": reverify,
            },
        )
        return account

    @classmethod
    def verify_bank_account(
        cls,
        account_id: uuid.UUID,
        method: str = VerificationMethod.MANUAL,
    ) -> BankAccount:
        if method not in VerificationMethod.values:
            raise ValidationError(
                f"Unknown verification method: {method}",
                details={"method": [f"Must be one of {', '.join(VerificationMethod.values)}"]},
            )

        account = cls.get_bank_account(account_id)
        account.is_verified = True
        account.verification_method = method
        account.verified_at = timezone.now()
        account.save(update_fields=["is_verified", "verification_method", "verified_at", "updated_at"])

        cls.get_logger().info(
            "Bank account verified",
            extra={"bank_account_id": str(account.id), "method": method},
        )
        return account

    @classmethod
    def set_default_bank_account(cls, account_id: uuid.UUID, coach_id: uuid.UUID) -> BankAccount:
        with transaction.atomic():
            account = cls.get_bank_account(account_id, coach_id)
            if account.is_default:
                return account
            cls._clear_default(coach_id)
            account.is_default = True
            account.save(update_fields=["is_default", "updated_at"])
        return account

    @classmethod
    def delete_bank_account(cls, account_id: uuid.UUID, coach_id: uuid.UUID) -> None:
        """
        Delete an account; the default moves to the newest remaining account.

        Raises:
            BankAccountInUseError: A pending or processing payout targets the account
        """
        with transaction.atomic():
            account = cls.get_bank_account(account_id, coach_id)
            in_flight = account.payouts.filter(status__in=IN_FLIGHT_PAYOUT_STATUSES)
            if in_flight.exists():
                raise BankAccountInUseError(
                    "Bank account has payouts in progress",
                    details={
                        "bank_account_id": str(account_id),
                        "payout_ids": [str(pk) for pk in in_flight.values_list("id", flat=True)],
                    },
                )

            was_default = account.is_default
            account.delete()

            if was_default:
                successor = BankAccount.objects.filter(coach_id=coach_id).order_by("-created_at").first()
                if successor:
                    successor.is_default = True
                    successor.save(update_fields=["is_default", "updated_at"])

        cls.get_logger().info(
            "Bank account deleted",
            extra={"bank_account_id": str(account_id), "coach_id": str(coach_id)},
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _clear_default(coach_id: uuid.UUID) -> None:
        BankAccount.objects.filter(coach_id=coach_id, is_default=True).update(
            is_default=False,
            version=F("version") + 1,
        )

    @staticmethod
    def _validate_account_type(account_type: str) -> None:
        if account_type not in BankAccountType.values:
            raise ValidationError(
                f"Unknown account type: {account_type}",
                details={"account_type": [f"Must be one of {', '.join(BankAccountType.values)}"]},
            )
