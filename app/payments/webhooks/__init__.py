"""
Gateway webhooks.

The view verifies the signature and stores one WebhookEvent per gateway
event id; payments.tasks.process_webhook_event then dispatches it to the
handler registered for its event type. Handlers converge Payment and
Refund rows through the same reconcile_* functions the stale-record job
uses.
"""

from payments.webhooks.handlers import dispatch_webhook, register_handler
from payments.webhooks.views import gateway_webhook

__all__ = [
    "dispatch_webhook",
    "gateway_webhook",
    "register_handler",
]
