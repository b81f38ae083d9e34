"""
Gateway webhook receiver.

Only verifies, stores and queues; the work happens in
payments.tasks.process_webhook_event. Any 200 tells the gateway to stop
redelivering, so a 200 is returned once the event row exists even if
queueing failed (retry_failed_webhooks and cleanup_stuck_webhooks pick
it up later).
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import get_gateway
from payments.exceptions import GatewayInvalidRequestError
from payments.models import WebhookEvent

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def gateway_webhook(request: HttpRequest) -> HttpResponse:
    """
    400 on a bad signature or an event without id/type, otherwise 200.

    A redelivered event that already reached processed or skipped is
    acknowledged without queueing it again.
    """
    try:
        event = get_gateway().parse_webhook(request.body, request.headers)
    except GatewayInvalidRequestError as e:
        logger.warning("Rejected webhook", extra={"error": e.message})
        return HttpResponse("Invalid signature", status=400)

    if not event.event_id or not event.type:
        logger.warning("Webhook without event id or type")
        return HttpResponse("Invalid event", status=400)

    webhook_event, created = WebhookEvent.objects.get_or_create(
        gateway_event_id=event.event_id,
        defaults={"event_type": event.type, "payload": event.to_payload()},
    )
    log_extra = {
        "gateway_event_id": event.event_id,
        "event_type": event.type,
        "webhook_event_id": str(webhook_event.id),
    }

    if not created and webhook_event.is_processed:
        logger.info("Duplicate webhook delivery", extra=log_extra)
        return HttpResponse("Already processed", status=200)

    from payments.tasks import process_webhook_event

    try:
        process_webhook_event.delay(str(webhook_event.id))
    except Exception:
        logger.error("Could not queue webhook", extra=log_extra, exc_info=True)
    else:
        logger.info("Webhook queued", extra=log_extra)

    return HttpResponse("Accepted", status=200)
