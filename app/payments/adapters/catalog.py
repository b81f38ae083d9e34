"""
Catalog adapters: register rates as sellable prices with the processor.

Rate creation and repricing go through a CatalogAdapter chosen by
settings.PAYMENT_CATALOG_ADAPTER_CLASS. The no-op adapter keeps the
catalog local (no processor price objects); the Stripe adapter mirrors
each Rate as a Product/Price pair.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import stripe

from payments.adapters.stripe_adapter import StripeClientMixin

if TYPE_CHECKING:
    from payments.models import Rate


class CatalogAdapter(ABC):
    """Port for mirroring rates into an external price catalog."""

    @abstractmethod
    def create_price(self, rate: Rate) -> str | None:
        """Register a price for the rate. Returns the catalog price id, if any."""

    @abstractmethod
    def deactivate_price(self, price_id: str) -> None:
        """Stop selling a previously registered price."""


class NoOpCatalogAdapter(CatalogAdapter):
    """Catalog adapter for deployments without a processor-side catalog."""

    def create_price(self, rate: Rate) -> str | None:
        return None

    def deactivate_price(self, price_id: str) -> None:
        return None


class StripeCatalogAdapter(StripeClientMixin, CatalogAdapter):
    """Mirror each Rate as a Stripe Product with a one-off Price."""

    def create_price(self, rate: Rate) -> str | None:
        log_context = {
            "operation": "create_price",
            "rate_id": str(rate.id),
            "coach_id": str(rate.coach_id),
            "rate_cents": rate.rate_cents,
        }
        price = self._execute(
            log_context,
            lambda: stripe.Price.create(
                unit_amount=rate.rate_cents,
                currency=rate.currency,
                product_data={"name": rate.title or f"{rate.get_session_type_display()} session"},
                metadata={
                    "rate_id": str(rate.id),
                    "coach_id": str(rate.coach_id),
                    "session_type": rate.session_type,
                },
            ),
            lambda p: {"price_id": p.id},
        )
        return price.id

    def deactivate_price(self, price_id: str) -> None:
        self._execute(
            {"operation": "deactivate_price", "price_id": price_id},
            lambda: stripe.Price.modify(price_id, active=False),
        )
