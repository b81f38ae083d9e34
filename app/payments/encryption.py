"""
At-rest encryption for bank account numbers.

Account numbers are encrypted with Fernet (AES-128-CBC + HMAC-SHA256)
using settings.BANK_ACCOUNT_ENCRYPTION_KEY. Only the last four digits
are ever stored in clear text.
"""

from __future__ import annotations

from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings

from payments.exceptions import BankAccountValidationError


@lru_cache(maxsize=4)
def _fernet(key: str) -> Fernet:
    return Fernet(key.encode() if isinstance(key, str) else key)


def get_fernet() -> Fernet:
    return _fernet(settings.BANK_ACCOUNT_ENCRYPTION_KEY)


def encrypt_account_number(account_number: str) -> str:
    return get_fernet().encrypt(account_number.encode()).decode()


def decrypt_account_number(token: str) -> str:
    """
    Decrypt a stored account number.

    Raises:
        BankAccountValidationError: Token was produced with another key or tampered with
    """
    try:
        return get_fernet().decrypt(token.encode()).decode()
    except InvalidToken as e:
        raise BankAccountValidationError(
            "Stored account number could not be decrypted",
            error_code="ACCOUNT_NUMBER_UNREADABLE",
        ) from e


def mask_account_number(last4: str) -> str:
    return f"****{last4}"
