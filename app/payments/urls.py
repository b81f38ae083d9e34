from django.urls import path

from payments.webhooks.views import gateway_webhook

app_name = "payments"

urlpatterns = [
    # Signed gateway callbacks; stored then processed by the worker
    path("webhooks/gateway/", gateway_webhook, name="gateway_webhook"),
]
