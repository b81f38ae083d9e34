"""
Root URLs.

    /admin/                                  ledger, payouts, webhook events
    /api/v1/payments/webhooks/gateway/       gateway webhook receiver (POST)
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/v1/payments/", include("payments.urls")),
]

admin.site.site_header = "Coaching Payments"
admin.site.site_title = "Coaching Payments"
admin.site.index_title = "Billing, refunds and payouts"
