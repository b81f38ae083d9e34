"""
Rate catalog service.

Coaches publish Rates (individual, group or package offerings). Each rate
is mirrored into the external price catalog through the configured
CatalogAdapter, and the earnings split every Payment uses is computed here.

Usage:
    from payments.services import RateService

    rate = RateService.create_rate(
        coach_id=coach_id,
        session_type=SessionType.PACKAGE,
        duration_minutes=60,
        rate_cents=10000,
        max_sessions=5,
        discount_percentage=10,
    )
    RateService.price_for(rate)  # 45000

    split = calculate_earnings_split(10000)
    split.coach_earnings_cents  # 8500 with PLATFORM_FEE_PERCENT=15
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import QuerySet

from core.exceptions import ConflictError, NotFoundError
from core.services import BaseService

from payments.adapters import get_catalog_adapter
from payments.exceptions import GatewayError, InvalidRateError, RateOwnershipMismatchError
from payments.locks import check_version
from payments.models import Rate
from payments.state_machines import SessionType

# Fields update_rate accepts
UPDATABLE_FIELDS = frozenset(
    {
        "session_type",
        "duration_minutes",
        "rate_cents",
        "currency",
        "title",
        "description",
        "max_sessions",
        "validity_days",
        "discount_percentage",
    }
)


# =============================================================================
# Pricing Math
# =============================================================================


@dataclass(frozen=True)
class EarningsSplit:
    platform_fee_cents: int
    coach_earnings_cents: int


def calculate_earnings_split(amount_cents: int, fee_percent: int | None = None) -> EarningsSplit:
    """
    Split a charge between coach and platform.

    coach = floor(amount * (100 - fee_percent) / 100); the platform keeps
    the remainder, so the two parts always add up to amount_cents.
    """
    if fee_percent is None:
        fee_percent = settings.PLATFORM_FEE_PERCENT
    if not 0 <= fee_percent <= 100:
        raise ValueError(f"fee_percent must be between 0 and 100, got {fee_percent}")

    coach_earnings = amount_cents * (100 - fee_percent) // 100
    return EarningsSplit(
        platform_fee_cents=amount_cents - coach_earnings,
        coach_earnings_cents=coach_earnings,
    )


def calculate_package_price(rate_cents: int, sessions: int, discount_percentage: int = 0) -> int:
    """Price of `sessions` sessions with a percentage discount (rounded in the client's favour)."""
    gross = rate_cents * sessions
    return gross - gross * discount_percentage // 100


# =============================================================================
# Rate Service
# =============================================================================


class RateService(BaseService):
    """
    Create, reprice and retire coach rates.

    Catalog calls happen outside database transactions. A failed local
    write after a successful catalog call deactivates the orphaned price.
    """

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_rate(cls, rate_id: uuid.UUID) -> Rate:
        try:
            return Rate.objects.get(id=rate_id)
        except Rate.DoesNotExist:
            raise NotFoundError(
                f"Rate {rate_id} not found",
                error_code="RATE_NOT_FOUND",
                details={"rate_id": str(rate_id)},
            ) from None

    @classmethod
    def list_rates(
        cls,
        coach_id: uuid.UUID,
        session_type: str | None = None,
        active_only: bool = True,
    ) -> QuerySet[Rate]:
        rates = Rate.objects.filter(coach_id=coach_id)
        if session_type:
            rates = rates.filter(session_type=session_type)
        if active_only:
            rates = rates.filter(is_active=True)
        return rates.order_by("session_type", "rate_cents")

    @classmethod
    def get_bookable_rate(cls, rate_id: uuid.UUID, coach_id: uuid.UUID) -> Rate:
        """
        Load a rate a client may book with this coach.

        Raises:
            InvalidRateError: Rate missing or inactive
            RateOwnershipMismatchError: Rate belongs to another coach
        """
        rate = Rate.objects.filter(id=rate_id).first()
        if rate is None or not rate.is_active:
            raise InvalidRateError(
                "Rate is not available for booking",
                details={"rate_id": str(rate_id)},
            )
        if rate.coach_id != coach_id:
            raise RateOwnershipMismatchError(
                "Rate does not belong to this coach",
                details={"rate_id": str(rate_id), "coach_id": str(coach_id)},
            )
        return rate

    @classmethod
    def validate_rate_for_booking(cls, rate_id: uuid.UUID, coach_id: uuid.UUID) -> bool:
        try:
            cls.get_bookable_rate(rate_id, coach_id)
        except (InvalidRateError, RateOwnershipMismatchError):
            return False
        return True

    @staticmethod
    def price_for(rate: Rate) -> int:
        """Amount a client pays for one booking of this rate."""
        if rate.session_type == SessionType.PACKAGE and rate.max_sessions:
            return calculate_package_price(
                rate.rate_cents, rate.max_sessions, rate.discount_percentage
            )
        return rate.rate_cents

    # =========================================================================
    # Mutations
    # =========================================================================

    @classmethod
    def create_rate(
        cls,
        coach_id: uuid.UUID,
        session_type: str,
        duration_minutes: int,
        rate_cents: int,
        currency: str | None = None,
        title: str = "",
        description: str = "",
        max_sessions: int | None = None,
        validity_days: int | None = None,
        discount_percentage: int = 0,
    ) -> Rate:
        """
        Create a rate and register its catalog price.

        Raises:
            InvalidRateError: Field validation failed (nothing is written)
            GatewayError: Catalog registration failed (nothing is written)
        """
        rate = Rate(
            coach_id=coach_id,
            session_type=session_type,
            duration_minutes=duration_minutes,
            rate_cents=rate_cents,
            currency=(currency or settings.PAYMENT_CURRENCY).lower(),
            title=title,
            description=description,
            max_sessions=max_sessions,
            validity_days=validity_days,
            discount_percentage=discount_percentage,
        )
        cls._validate(rate)

        rate.catalog_price_id = get_catalog_adapter().create_price(rate)

        try:
            rate.save()
        except DatabaseError:
            cls.get_logger().error(
                "Failed to save rate after catalog registration",
                extra={"coach_id": str(coach_id), "catalog_price_id": rate.catalog_price_id},
                exc_info=True,
            )
            cls._deactivate_price_quietly(rate.catalog_price_id)
            raise

        cls.get_logger().info(
            "Rate created",
            extra={
                "rate_id": str(rate.id),
                "coach_id": str(coach_id),
                "session_type": session_type,
                "rate_cents": rate_cents,
            },
        )
        return rate

    @classmethod
    def update_rate(
        cls,
        rate_id: uuid.UUID,
        expected_version: int | None = None,
        **changes: Any,
    ) -> Rate:
        """
        Update rate fields; a price change registers a new catalog price.

        Args:
            rate_id: Rate to update
            expected_version: Version the caller last saw (optional)
            **changes: Subset of UPDATABLE_FIELDS

        Raises:
            InvalidRateError: Unknown field or invalid value
            StaleRecordError: Rate changed since expected_version
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidRateError(
                f"Cannot update fields: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )

        rate = cls.get_rate(rate_id)
        version = rate.version if expected_version is None else expected_version
        old_price_id = rate.catalog_price_id
        old_rate_cents = rate.rate_cents

        for name, value in changes.items():
            setattr(rate, name, value)
        cls._validate(rate)

        new_price_id = None
        price_changed = rate.rate_cents != old_rate_cents
        if price_changed:
            new_price_id = get_catalog_adapter().create_price(rate)

        try:
            with transaction.atomic():
                locked = check_version(Rate, rate_id, version)
                for name, value in changes.items():
                    setattr(locked, name, value)
                if price_changed:
                    locked.catalog_price_id = new_price_id
                locked.save()
        except Exception:
            if new_price_id:
                cls._deactivate_price_quietly(new_price_id)
            raise

        if price_changed and old_price_id:
            cls._deactivate_price_quietly(old_price_id)

        cls.get_logger().info(
            "Rate updated",
            extra={
                "rate_id": str(rate_id),
                "fields": sorted(changes),
                "version": locked.version,
            },
        )
        return locked

    @classmethod
    def deactivate_rate(cls, rate_id: uuid.UUID) -> Rate:
        """Soft-deactivate a rate. Existing payments keep referencing it."""
        rate = cls.get_rate(rate_id)
        if not rate.is_active:
            return rate

        rate.is_active = False
        rate.save(update_fields=["is_active", "updated_at"])
        cls._deactivate_price_quietly(rate.catalog_price_id)

        cls.get_logger().info("Rate deactivated", extra={"rate_id": str(rate_id)})
        return rate

    @classmethod
    def delete_rate(cls, rate_id: uuid.UUID) -> None:
        """
        Hard-delete a rate that was never booked.

        Raises:
            ConflictError: Payments reference the rate; deactivate it instead
        """
        rate = cls.get_rate(rate_id)
        if rate.payments.exists():
            raise ConflictError(
                "Rate has payments and can only be deactivated",
                error_code="RATE_IN_USE",
                details={"rate_id": str(rate_id)},
            )

        price_id = rate.catalog_price_id
        rate.delete()
        cls._deactivate_price_quietly(price_id)
        cls.get_logger().info("Rate deleted", extra={"rate_id": str(rate_id)})

    @classmethod
    def duplicate_rate(cls, rate_id: uuid.UUID, title: str | None = None) -> Rate:
        source = cls.get_rate(rate_id)
        return cls.create_rate(
            coach_id=source.coach_id,
            session_type=source.session_type,
            duration_minutes=source.duration_minutes,
            rate_cents=source.rate_cents,
            currency=source.currency,
            title=title if title is not None else f"{source.title} (copy)".strip(),
            description=source.description,
            max_sessions=source.max_sessions,
            validity_days=source.validity_days,
            discount_percentage=source.discount_percentage,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _validate(cls, rate: Rate) -> None:
        errors: dict[str, list[str]] = {}

        if rate.session_type not in SessionType.values:
            errors["session_type"] = [f"Must be one of {', '.join(SessionType.values)}"]
        if not rate.rate_cents or rate.rate_cents <= 0:
            errors["rate_cents"] = ["Must be a positive amount in cents"]
        if not rate.duration_minutes or rate.duration_minutes <= 0:
            errors["duration_minutes"] = ["Must be positive"]
        if not rate.currency or len(rate.currency) != 3:
            errors["currency"] = ["Must be a 3-letter ISO code"]
        if not 0 <= (rate.discount_percentage or 0) <= 100:
            errors["discount_percentage"] = ["Must be between 0 and 100"]
        if rate.session_type == SessionType.PACKAGE and not rate.max_sessions:
            errors["max_sessions"] = ["Packages must include at least one session"]

        if errors:
            raise InvalidRateError("Invalid rate", details=errors)

    @classmethod
    def _deactivate_price_quietly(cls, price_id: str | None) -> None:
        # Catalog cleanup never fails the rate operation itself
        if not price_id:
            return
        try:
            get_catalog_adapter().deactivate_price(price_id)
        except GatewayError:
            cls.get_logger().warning(
                "Failed to deactivate catalog price",
                extra={"catalog_price_id": price_id},
                exc_info=True,
            )
