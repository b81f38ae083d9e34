"""
Read-only admin for the billing ledger.

Nothing can be added, changed or deleted here. Corrections are new
superseding rows written by BillingLedgerService.
"""

from django.contrib import admin

from .models import BillingTransaction


class EffectiveFilter(admin.SimpleListFilter):
    """Hide rows that a later status change has replaced."""

    title = "effective"
    parameter_name = "effective"

    def lookups(self, request, model_admin):
        return [("yes", "Effective only"), ("no", "Superseded only")]

    def queryset(self, request, queryset):
        if self.value() == "yes":
            return queryset.filter(superseded_by__isnull=True)
        if self.value() == "no":
            return queryset.filter(superseded_by__isnull=False)
        return queryset


@admin.register(BillingTransaction)
class BillingTransactionAdmin(admin.ModelAdmin):
    list_display = [
        "created_at",
        "transaction_type",
        "user_type",
        "user_id",
        "amount_display",
        "status",
        "reference_type",
        "reference_id",
        "is_superseded",
    ]
    list_filter = [EffectiveFilter, "transaction_type", "user_type", "status"]
    search_fields = ["user_id", "reference_id", "idempotency_key"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    list_select_related = ["superseded_by"]

    fieldsets = (
        (None, {"fields": ("id", "transaction_type", "status", "amount_cents", "currency", "created_at")}),
        ("Party", {"fields": ("user_type", "user_id")}),
        ("Source", {"fields": ("reference_type", "reference_id", "idempotency_key", "supersedes")}),
        ("Notes", {"fields": ("description", "metadata")}),
    )
    readonly_fields = [field for _, opts in fieldsets for field in opts["fields"]]

    @admin.display(description="Amount")
    def amount_display(self, obj: BillingTransaction) -> str:
        return f"{obj.amount_cents / 100:.2f} {obj.currency.upper()}"

    @admin.display(boolean=True, description="Superseded")
    def is_superseded(self, obj: BillingTransaction) -> bool:
        return hasattr(obj, "superseded_by")

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
