"""
Version checks for records edited from a stale read.

Status changes on Payment, Refund and Payout are already guarded by
django_fsm.ConcurrentTransitionMixin (the UPDATE is filtered on the
status the row was loaded with). check_version covers the other case: a
caller edits a rate, bank account or payout it read earlier and passes
the ``version`` it saw.

    rate = check_version(Rate, rate_id, expected_version=3)
    rate.rate_cents = 6000
    rate.save()   # version becomes 4
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from django.db import models, transaction

from core.exceptions import NotFoundError
from payments.exceptions import StaleRecordError

if TYPE_CHECKING:
    from typing import Any

M = TypeVar("M", bound=models.Model)


def check_version(model_class: type[M], pk: Any, expected_version: int) -> M:
    """
    Lock the row and return it if it is still at ``expected_version``.

    Call inside the caller's transaction; outside one the lock is
    released as soon as this returns.

    Raises:
        NotFoundError: no row with that pk ("<MODEL>_NOT_FOUND")
        StaleRecordError: the row has moved past expected_version
    """
    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )
        if instance is not None:
            return instance

        name = model_class.__name__
        current = model_class.objects.filter(pk=pk).values_list("version", flat=True).first()
        if current is None:
            raise NotFoundError(
                f"{name} {pk} not found",
                error_code=f"{name.upper()}_NOT_FOUND",
                details={"pk": str(pk)},
            )
        raise StaleRecordError(
            f"{name} {pk} was changed by someone else "
            f"(expected version {expected_version}, current {current})",
            details={
                "pk": str(pk),
                "expected_version": expected_version,
                "current_version": current,
            },
        )
