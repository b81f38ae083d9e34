"""
Rate model for priced coach offerings.

A Rate is a sellable offering a coach publishes: an individual session,
a group session or a multi-session package, priced in cents. Payments
reference the rate they were authorized for, so a referenced rate is
only ever soft-deactivated.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel

from payments.state_machines import SessionType


class Rate(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A priced offering sold by a coach.

    Fields:
        coach_id: Coach selling the offering
        session_type: individual, group or package
        duration_minutes: Length of one session
        rate_cents: Price of one session in cents
        currency: ISO 4217 currency code
        title/description: Display copy
        max_sessions: Number of sessions in a package
        validity_days: How long a package stays usable
        discount_percentage: Package discount (0-100)
        catalog_price_id: Price registered with the external catalog
        is_active: Whether the rate can be booked
        version: Optimistic locking version
    """

    coach_id = models.UUIDField(
        db_index=True,
        help_text="Coach who sells this offering",
    )

    session_type = models.CharField(
        max_length=20,
        choices=SessionType.choices,
        default=SessionType.INDIVIDUAL,
        help_text="Kind of offering",
    )

    duration_minutes = models.PositiveIntegerField(
        help_text="Length of one session in minutes",
    )

    rate_cents = models.PositiveBigIntegerField(
        help_text="Price of one session in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    title = models.CharField(
        max_length=200,
        blank=True,
        default="",
    )

    description = models.TextField(
        blank=True,
        default="",
    )

    # ==========================================================================
    # Package Options
    # ==========================================================================

    max_sessions = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Number of sessions included in a package",
    )

    validity_days = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Days a package stays usable after purchase",
    )

    discount_percentage = models.PositiveSmallIntegerField(
        default=0,
        help_text="Package discount percentage (0-100)",
    )

    # ==========================================================================
    # Catalog & Status
    # ==========================================================================

    catalog_price_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Price ID registered with the external catalog",
    )

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive rates cannot be booked",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Rate"
        verbose_name_plural = "Rates"
        indexes = [
            models.Index(fields=["coach_id", "is_active"], name="rate_coach_active_idx"),
            models.Index(fields=["coach_id", "session_type"], name="rate_coach_type_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(rate_cents__gt=0),
                name="rate_cents_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(discount_percentage__lte=100),
                name="rate_discount_percentage_max_100",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with type, duration and price."""
        amount_display = f"{self.rate_cents / 100:.2f} {self.currency.upper()}"
        return f"Rate({self.session_type}, {self.duration_minutes}min, {amount_display})"
