"""
Abstract base model for the payments tables.

The ledger's BillingTransaction does not inherit it: ledger rows are
append-only and carry created_at alone.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the record was last saved; reconciliation uses it to find stale rows",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"
