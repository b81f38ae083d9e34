from __future__ import annotations

from core.exceptions import BaseApplicationError


class LedgerError(BaseApplicationError):
    default_error_code: str = "LEDGER_ERROR"


class LedgerImmutableError(LedgerError):
    """
    A written BillingTransaction was updated or deleted.

    Status changes go through BillingLedgerService.supersede_status,
    which appends a new row and links the old one to it.
    """

    default_error_code: str = "LEDGER_IMMUTABLE"
