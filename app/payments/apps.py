from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments and payouts"

    def ready(self):
        # Fills the event-type registry used by dispatch_webhook
        from payments.webhooks import handlers  # noqa: F401
