"""
Payment adapters for external services.

All external payment API calls go through these adapters to ensure
consistent error handling, timeouts, idempotency, and observability.
The concrete classes are configured in settings and resolved lazily:

    PAYMENT_GATEWAY_CLASS          -> get_gateway()
    PAYMENT_CATALOG_ADAPTER_CLASS  -> get_catalog_adapter()
    PAYOUT_TRANSFER_ADAPTER_CLASS  -> get_transfer_adapter()

Tests swap implementations with set_gateway(fake) and reset them with
set_gateway(None).

Usage:
    from payments.adapters import get_gateway

    result = get_gateway().capture(payment.gateway_payment_id, idempotency_key=key)
"""

from __future__ import annotations

from typing import Any

from django.conf import settings
from django.utils.module_loading import import_string

from payments.adapters.base import (
    GatewayCustomerResult,
    GatewayEvent,
    GatewayEventType,
    GatewayPaymentResult,
    GatewayPaymentStatus,
    GatewayRefundResult,
    GatewayRefundStatus,
    IdempotencyKeyGenerator,
    PaymentGateway,
)
from payments.adapters.catalog import CatalogAdapter
from payments.adapters.transfers import PayoutTransferAdapter, TransferResult

_instances: dict[str, Any] = {}


def _resolve(setting_name: str) -> Any:
    if setting_name not in _instances:
        _instances[setting_name] = import_string(getattr(settings, setting_name))()
    return _instances[setting_name]


def _override(setting_name: str, instance: Any | None) -> None:
    if instance is None:
        _instances.pop(setting_name, None)
    else:
        _instances[setting_name] = instance


def get_gateway() -> PaymentGateway:
    return _resolve("PAYMENT_GATEWAY_CLASS")


def set_gateway(gateway: PaymentGateway | None) -> None:
    _override("PAYMENT_GATEWAY_CLASS", gateway)


def get_catalog_adapter() -> CatalogAdapter:
    return _resolve("PAYMENT_CATALOG_ADAPTER_CLASS")


def set_catalog_adapter(adapter: CatalogAdapter | None) -> None:
    _override("PAYMENT_CATALOG_ADAPTER_CLASS", adapter)


def get_transfer_adapter() -> PayoutTransferAdapter:
    return _resolve("PAYOUT_TRANSFER_ADAPTER_CLASS")


def set_transfer_adapter(adapter: PayoutTransferAdapter | None) -> None:
    _override("PAYOUT_TRANSFER_ADAPTER_CLASS", adapter)


__all__ = [
    "CatalogAdapter",
    "GatewayCustomerResult",
    "GatewayEvent",
    "GatewayEventType",
    "GatewayPaymentResult",
    "GatewayPaymentStatus",
    "GatewayRefundResult",
    "GatewayRefundStatus",
    "IdempotencyKeyGenerator",
    "PaymentGateway",
    "PayoutTransferAdapter",
    "TransferResult",
    "get_catalog_adapter",
    "get_gateway",
    "get_transfer_adapter",
    "set_catalog_adapter",
    "set_gateway",
    "set_transfer_adapter",
]
