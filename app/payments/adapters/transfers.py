"""
Payout transfer adapters.

Approving a payout moves the coach's money to their bank account through a
PayoutTransferAdapter chosen by settings.PAYOUT_TRANSFER_ADAPTER_CLASS.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from payments.models import BankAccount, Payout

logger = logging.getLogger(__name__)


@dataclass
class TransferResult:
    """
    Result of a bank transfer attempt.

    Attributes:
        succeeded: Whether the transfer went through
        reference: Transfer reference from the bank or operator
        failure_reason: Reason the transfer failed
    """

    succeeded: bool
    reference: str = ""
    failure_reason: str | None = None


class PayoutTransferAdapter(ABC):
    @abstractmethod
    def transfer(
        self,
        payout: Payout,
        bank_account: BankAccount,
        idempotency_key: str,
    ) -> TransferResult:
        """Send payout.net_amount_cents to the bank account."""


class ManualTransferAdapter(PayoutTransferAdapter):
    """
    Record a bank transfer executed by an operator outside the system.

    The approving admin has already wired the money; the adapter only
    assigns a stable reference derived from the idempotency key.
    """

    def transfer(
        self,
        payout: Payout,
        bank_account: BankAccount,
        idempotency_key: str,
    ) -> TransferResult:
        reference = f"manual:{idempotency_key.rsplit(':', 1)[-1]}:{payout.id}"
        logger.info(
            "Recorded manual payout transfer",
            extra={
                "payout_id": str(payout.id),
                "bank_account_id": str(bank_account.id),
                "account": bank_account.masked_account_number,
                "net_amount_cents": payout.net_amount_cents,
                "transfer_reference": reference,
            },
        )
        return TransferResult(succeeded=True, reference=reference)
