"""
Validators for bank account details.

Both validators normalise their input (strip spaces and dashes) and
return the cleaned value, raising BankAccountValidationError with a
field-level `details` dict on failure.
"""

from __future__ import annotations

import re

from payments.exceptions import BankAccountValidationError

ROUTING_NUMBER_LENGTH = 9
ACCOUNT_NUMBER_MIN_LENGTH = 4
ACCOUNT_NUMBER_MAX_LENGTH = 17

_SEPARATORS = re.compile(r"[\s-]")


def _clean(value: str) -> str:
    return _SEPARATORS.sub("", value or "")


def aba_checksum_valid(routing_number: str) -> bool:
    """
    ABA routing number checksum.

    3*(d0+d3+d6) + 7*(d1+d4+d7) + (d2+d5+d8) must be divisible by 10.
    """
    if len(routing_number) != ROUTING_NUMBER_LENGTH or not routing_number.isdigit():
        return False
    d = [int(c) for c in routing_number]
    total = 3 * (d[0] + d[3] + d[6]) + 7 * (d[1] + d[4] + d[7]) + (d[2] + d[5] + d[8])
    return total % 10 == 0


def validate_routing_number(routing_number: str) -> str:
    cleaned = _clean(routing_number)

    if len(cleaned) != ROUTING_NUMBER_LENGTH or not cleaned.isdigit():
        raise BankAccountValidationError(
            "Routing number must be exactly 9 digits",
            error_code="INVALID_ROUTING_NUMBER",
            details={"routing_number": ["Must be exactly 9 digits"]},
        )
    if not aba_checksum_valid(cleaned):
        raise BankAccountValidationError(
            "Routing number failed checksum validation",
            error_code="INVALID_ROUTING_NUMBER",
            details={"routing_number": ["Checksum failed"]},
        )
    return cleaned


def validate_account_number(account_number: str) -> str:
    cleaned = _clean(account_number)

    if not cleaned.isdigit() or not (
        ACCOUNT_NUMBER_MIN_LENGTH <= len(cleaned) <= ACCOUNT_NUMBER_MAX_LENGTH
    ):
        raise BankAccountValidationError(
            f"Account number must be {ACCOUNT_NUMBER_MIN_LENGTH}-"
            f"{ACCOUNT_NUMBER_MAX_LENGTH} digits",
            error_code="INVALID_ACCOUNT_NUMBER",
            details={"account_number": ["Must contain 4 to 17 digits"]},
        )
    return cleaned
