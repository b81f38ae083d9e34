"""
Admin for the payments app.

Money records are never created or deleted from here, and their status
fields are read-only (django-fsm owns them). The operational levers are
actions that go through the services: approve/reject payouts and
re-queue failed webhook events.
"""

from django.contrib import admin, messages

from core.exceptions import BaseApplicationError

from payments.ledger.admin import BillingTransactionAdmin
from payments.models import (
    BankAccount,
    GatewayCustomer,
    Payment,
    Payout,
    Rate,
    Refund,
    WebhookEvent,
)
from payments.services import PayoutService
from payments.state_machines import PayoutStatus, WebhookEventStatus

__all__ = [
    "BillingTransactionAdmin",
    "RateAdmin",
    "PaymentAdmin",
    "RefundAdmin",
    "BankAccountAdmin",
    "PayoutAdmin",
    "GatewayCustomerAdmin",
    "WebhookEventAdmin",
]


def format_cents(cents: int, currency: str) -> str:
    return f"{cents / 100:,.2f} {currency.upper()}"


class AuditTrailAdmin(admin.ModelAdmin):
    """Rows written only by services and kept forever."""

    ordering = ["-created_at"]
    date_hierarchy = "created_at"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Rate)
class RateAdmin(admin.ModelAdmin):
    list_display = ["title", "coach_id", "session_type", "duration_minutes", "price", "is_active"]
    list_filter = ["session_type", "is_active"]
    search_fields = ["id", "title", "coach_id", "catalog_price_id"]
    readonly_fields = ["id", "catalog_price_id", "created_at", "updated_at", "version"]
    ordering = ["coach_id", "-created_at"]

    @admin.display(description="Price")
    def price(self, obj: Rate) -> str:
        return format_cents(obj.rate_cents, obj.currency)


class RefundInline(admin.TabularInline):
    model = Refund
    extra = 0
    fields = ["id", "amount_cents", "reason", "status", "coach_penalty_cents", "platform_refund_cents"]
    readonly_fields = fields
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payment)
class PaymentAdmin(AuditTrailAdmin):
    list_display = ["id", "client_id", "coach_id", "total", "status", "authorized_at", "paid_at"]
    list_filter = ["status"]
    search_fields = ["id", "gateway_payment_id", "idempotency_key", "client_id", "coach_id"]
    inlines = [RefundInline]
    fieldsets = (
        (None, {"fields": ("id", "client_id", "coach_id", "rate", "status")}),
        ("Split", {"fields": ("amount_cents", "platform_fee_cents", "coach_earnings_cents", "currency")}),
        ("Gateway", {"fields": ("gateway_payment_id", "gateway_customer_id", "idempotency_key")}),
        ("Lifecycle", {"fields": ("authorized_at", "paid_at", "canceled_at", "failed_at", "refunded_at")}),
        (
            "Why it stopped",
            {"fields": ("failure_reason", "cancellation_reason"), "classes": ("collapse",)},
        ),
        (None, {"fields": ("metadata", "created_at", "updated_at", "version")}),
    )
    readonly_fields = [name for _, opts in fieldsets for name in opts["fields"]]

    @admin.display(description="Total")
    def total(self, obj: Payment) -> str:
        return format_cents(obj.amount_cents, obj.currency)


@admin.register(Refund)
class RefundAdmin(AuditTrailAdmin):
    list_display = [
        "id",
        "payment",
        "refunded",
        "reason",
        "status",
        "coach_penalty_cents",
        "platform_refund_cents",
    ]
    list_filter = ["status", "reason"]
    search_fields = ["id", "gateway_refund_id", "idempotency_key", "payment__id"]
    readonly_fields = [
        "id",
        "payment",
        "status",
        "gateway_refund_id",
        "idempotency_key",
        "amount_cents",
        "currency",
        "reason",
        "coach_penalty_cents",
        "platform_refund_cents",
        "initiated_by",
        "succeeded_at",
        "failed_at",
        "failure_reason",
        "created_at",
        "updated_at",
        "version",
    ]

    @admin.display(description="Refunded")
    def refunded(self, obj: Refund) -> str:
        return format_cents(obj.amount_cents, obj.currency)


@admin.register(BankAccount)
class BankAccountAdmin(admin.ModelAdmin):
    """Shows the masked number only; the ciphertext column is excluded."""

    list_display = [
        "coach_id",
        "account_holder_name",
        "bank_name",
        "masked_account_number",
        "is_verified",
        "is_default",
    ]
    list_filter = ["is_verified", "is_default", "account_type"]
    search_fields = ["id", "coach_id", "account_holder_name", "routing_number"]
    readonly_fields = [
        "id",
        "masked_account_number",
        "verification_method",
        "verified_at",
        "created_at",
        "updated_at",
        "version",
    ]
    exclude = ["account_number_encrypted"]
    ordering = ["coach_id", "-is_default"]

    @admin.display(description="Account number")
    def masked_account_number(self, obj: BankAccount) -> str:
        return obj.masked_account_number


@admin.register(Payout)
class PayoutAdmin(AuditTrailAdmin):
    list_display = ["id", "payment", "coach_id", "net", "status", "processed_by", "processed_at"]
    list_filter = ["status"]
    search_fields = ["id", "transfer_reference", "payment__id", "coach_id"]
    readonly_fields = [
        "id",
        "coach_id",
        "bank_account",
        "payment",
        "status",
        "amount_cents",
        "fees_cents",
        "net_amount_cents",
        "currency",
        "transfer_reference",
        "processed_by",
        "processed_at",
        "rejection_reason",
        "failure_reason",
        "created_at",
        "updated_at",
        "version",
    ]
    actions = ["approve_payouts", "reject_payouts"]

    @admin.display(description="Net")
    def net(self, obj: Payout) -> str:
        return format_cents(obj.net_amount_cents, obj.currency)

    @admin.action(description="Approve and transfer selected payouts")
    def approve_payouts(self, request, queryset):
        processed_by = request.user.get_username()
        for payout in queryset:
            try:
                payout = PayoutService.approve_payout(payout.id, processed_by=processed_by)
            except BaseApplicationError as e:
                self.message_user(request, f"{payout.id}: {e.message}", level=messages.ERROR)
                continue
            level = messages.SUCCESS if payout.status == PayoutStatus.COMPLETED else messages.WARNING
            self.message_user(request, f"{payout.id}: {payout.status}", level=level)

    @admin.action(description="Reject selected payouts")
    def reject_payouts(self, request, queryset):
        processed_by = request.user.get_username()
        for payout in queryset:
            try:
                PayoutService.reject_payout(
                    payout.id,
                    reason=f"Rejected by {processed_by}",
                    processed_by=processed_by,
                )
            except BaseApplicationError as e:
                self.message_user(request, f"{payout.id}: {e.message}", level=messages.ERROR)


@admin.register(GatewayCustomer)
class GatewayCustomerAdmin(admin.ModelAdmin):
    list_display = ["client_id", "gateway_customer_id", "email"]
    search_fields = ["client_id", "gateway_customer_id", "email"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(WebhookEvent)
class WebhookEventAdmin(AuditTrailAdmin):
    list_display = ["gateway_event_id", "event_type", "status", "retry_count", "processed_at"]
    list_filter = ["status", "event_type"]
    search_fields = ["id", "gateway_event_id"]
    readonly_fields = [
        "id",
        "gateway_event_id",
        "event_type",
        "payload",
        "status",
        "processed_at",
        "error_message",
        "retry_count",
        "created_at",
        "updated_at",
    ]
    actions = ["requeue_events"]

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    @admin.action(description="Re-queue selected events")
    def requeue_events(self, request, queryset):
        from payments.tasks import process_webhook_event

        queued = 0
        for event in queryset.exclude(
            status__in=[WebhookEventStatus.PROCESSED, WebhookEventStatus.SKIPPED]
        ):
            process_webhook_event.delay(str(event.id))
            queued += 1
        self.message_user(request, f"Queued {queued} event(s)")
