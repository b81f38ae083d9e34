"""
GatewayCustomer model mapping a client to their gateway customer.

Each client gets exactly one customer record at the payment gateway,
created lazily the first time they authorize a payment.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class GatewayCustomer(UUIDPrimaryKeyMixin, BaseModel):
    """
    Fields:
        client_id: Client this customer belongs to (unique)
        gateway_customer_id: Customer ID at the gateway
        email: Email the customer was created with
    """

    client_id = models.UUIDField(unique=True)

    gateway_customer_id = models.CharField(max_length=255, unique=True)

    email = models.EmailField(blank=True, default="")

    class Meta:
        verbose_name = "Gateway Customer"
        verbose_name_plural = "Gateway Customers"

    def __str__(self) -> str:
        return f"GatewayCustomer({self.client_id}, {self.gateway_customer_id})"
