"""
BankAccount model for coach payout destinations.

The full account number is stored Fernet-encrypted (payments.encryption)
and only its last four digits are kept in clear for display. A coach has
at most one default account, enforced by a conditional unique constraint.

Usage:
    from payments.services import BankAccountService

    account = BankAccountService.add_bank_account(
        coach_id=coach_id,
        account_holder_name="Jane Doe",
        bank_name="First Bank",
        routing_number="011000015",
        account_number="000123456789",
    )
    account.masked_account_number  # "****6789"
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

from payments.state_machines import BankAccountType, VerificationMethod


class BankAccount(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A coach's payout destination.

    Fields:
        coach_id: Owning coach
        account_holder_name/bank_name: Display data
        routing_number: ABA routing number (checksum validated)
        account_number_encrypted: Fernet token of the account number
        account_number_last4: Last four digits for display
        account_type: checking or savings
        is_verified: Eligible for payouts only when True
        verification_method/verified_at: How and when it was verified
        is_default: Default payout destination for the coach
    """

    coach_id = models.UUIDField(
        db_index=True,
        help_text="Coach who owns this account",
    )

    account_holder_name = models.CharField(max_length=255)

    bank_name = models.CharField(max_length=255, blank=True, default="")

    routing_number = models.CharField(
        max_length=9,
        help_text="ABA routing number",
    )

    account_number_encrypted = models.TextField(
        help_text="Fernet-encrypted account number",
    )

    account_number_last4 = models.CharField(
        max_length=4,
        help_text="Last four digits of the account number",
    )

    account_type = models.CharField(
        max_length=20,
        choices=BankAccountType.choices,
        default=BankAccountType.CHECKING,
    )

    # ==========================================================================
    # Verification & Default
    # ==========================================================================

    is_verified = models.BooleanField(default=False)

    verification_method = models.CharField(
        max_length=20,
        choices=VerificationMethod.choices,
        null=True,
        blank=True,
    )

    verified_at = models.DateTimeField(null=True, blank=True)

    is_default = models.BooleanField(default=False)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Bank Account"
        verbose_name_plural = "Bank Accounts"
        indexes = [
            models.Index(fields=["coach_id", "is_verified"], name="bank_coach_verified_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["coach_id"],
                condition=models.Q(is_default=True),
                name="bank_account_one_default_per_coach",
            ),
        ]

    def __str__(self) -> str:
        return f"BankAccount({self.bank_name} {self.masked_account_number})"

    @property
    def masked_account_number(self) -> str:
        """Account number as shown outside the service."""
        return f"****{self.account_number_last4}"
