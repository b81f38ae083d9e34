"""
Payment domain models.

This module contains all payment-related models:
- Rate: Priced offerings sold by coaches
- Payment: Authorization/charge lifecycle between a client and a coach
- Refund: Money returned to clients, with its cost split
- BankAccount: Coach payout destinations
- Payout: Transfers of a payment's coach earnings
- GatewayCustomer: Client to gateway customer mapping
- WebhookEvent: Gateway webhook event tracking for idempotent processing

The append-only BillingTransaction ledger lives in payments.ledger and is
re-exported here so the app registry picks it up.
"""

from payments.ledger.models import BillingTransaction
from payments.models.bank_account import BankAccount
from payments.models.gateway_customer import GatewayCustomer
from payments.models.payment import Payment
from payments.models.payout import Payout
from payments.models.rate import Rate
from payments.models.refund import Refund
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "BankAccount",
    "BillingTransaction",
    "GatewayCustomer",
    "Payment",
    "Payout",
    "Rate",
    "Refund",
    "WebhookEvent",
]
