"""
Shared building blocks for the payments app.

Nothing here knows about payments, refunds or payouts; the domain app
extends these classes.

    core.models         BaseModel (created_at / updated_at)
    core.model_mixins   UUIDPrimaryKeyMixin, MetadataMixin, VersionedMixin
    core.services       BaseService, ServiceResult
    core.exceptions     BaseApplicationError and its four direct subclasses

Models are not re-exported here; importing them before the app registry
is ready raises AppRegistryNotReady.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from .services import BaseService, ServiceResult

__all__ = [
    "BaseService",
    "ServiceResult",
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "ExternalServiceError",
]
