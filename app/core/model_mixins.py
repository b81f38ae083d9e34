"""
Abstract model mixins combined with core.models.BaseModel.

    UUIDPrimaryKeyMixin  UUID primary key
    MetadataMixin        free-form JSON ``metadata`` column
    VersionedMixin       optimistic-locking ``version`` counter
    ProtectedStateMixin  ConcurrentTransitionMixin that can refresh protected FSMFields

List mixins before BaseModel:

    class Payout(ProtectedStateMixin, UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
        ...
"""

from __future__ import annotations

import uuid

from django.db import models
from django.db.models import F

from django_fsm import ConcurrentTransitionMixin


class UUIDPrimaryKeyMixin(models.Model):
    """
    UUID primary key.

    Ids are generated before insert, which lets services build ledger
    idempotency keys and gateway metadata before the row exists.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class MetadataMixin(models.Model):
    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Free-form key-value data (buyer details, gateway context)",
    )

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Optimistic locking version counter.

    Every update writes ``F("version") + 1`` and reads the result back, so
    two writers holding the same version can be told apart. Load a row at
    an expected version with payments.locks.check_version().
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on each save",
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None and "version" not in update_fields:
                kwargs["update_fields"] = [*update_fields, "version"]
        super().save(*args, **kwargs)
        if is_update:
            self.version = (
                type(self)._base_manager.filter(pk=self.pk).values_list("version", flat=True).get()
            )


class ProtectedStateMixin(ConcurrentTransitionMixin):
    """
    ConcurrentTransitionMixin for models with ``FSMField(protected=True)``.

    A protected state field refuses assignment once loaded, and Django's
    refresh_from_db() assigns every field it reloads. Loaded state values
    are taken off the instance before the reload and put back afterwards
    for state fields the caller did not ask for.
    """

    def refresh_from_db(self, using=None, fields=None, **kwargs):
        held = {
            field.attname: self.__dict__.pop(field.attname)
            for field in self.state_fields
            if field.attname in self.__dict__
        }
        super().refresh_from_db(using=using, fields=fields, **kwargs)
        if fields is not None:
            for attname, value in held.items():
                if attname not in fields:
                    self.__dict__[attname] = value
            self._update_initial_state()
