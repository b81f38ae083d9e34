import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Rate",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved; reconciliation uses it to find stale rows",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Incremented on each save",
                    ),
                ),
                (
                    "coach_id",
                    models.UUIDField(db_index=True, help_text="Coach who sells this offering"),
                ),
                (
                    "session_type",
                    models.CharField(
                        choices=[
                            ("individual", "Individual"),
                            ("group", "Group"),
                            ("package", "Package"),
                        ],
                        default="individual",
                        help_text="Kind of offering",
                        max_length=20,
                    ),
                ),
                (
                    "duration_minutes",
                    models.PositiveIntegerField(help_text="Length of one session in minutes"),
                ),
                (
                    "rate_cents",
                    models.PositiveBigIntegerField(
                        help_text="Price of one session in smallest currency unit"
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                ("title", models.CharField(blank=True, default="", max_length=200)),
                ("description", models.TextField(blank=True, default="")),
                (
                    "max_sessions",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Number of sessions included in a package",
                        null=True,
                    ),
                ),
                (
                    "validity_days",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Days a package stays usable after purchase",
                        null=True,
                    ),
                ),
                (
                    "discount_percentage",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Package discount percentage (0-100)",
                    ),
                ),
                (
                    "catalog_price_id",
                    models.CharField(
                        blank=True,
                        help_text="Price ID registered with the external catalog",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        db_index=True,
                        default=True,
                        help_text="Inactive rates cannot be booked",
                    ),
                ),
            ],
            options={
                "verbose_name": "Rate",
                "verbose_name_plural": "Rates",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["coach_id", "is_active"], name="rate_coach_active_idx"),
                    models.Index(fields=["coach_id", "session_type"], name="rate_coach_type_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("rate_cents__gt", 0)),
                        name="rate_cents_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("discount_percentage__lte", 100)),
                        name="rate_discount_percentage_max_100",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved; reconciliation uses it to find stale rows",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Free-form key-value data (buyer details, gateway context)",
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Incremented on each save",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "client_id",
                    models.UUIDField(db_index=True, help_text="Client paying for the session"),
                ),
                (
                    "coach_id",
                    models.UUIDField(db_index=True, help_text="Coach receiving the earnings"),
                ),
                (
                    "gateway_payment_id",
                    models.CharField(
                        blank=True,
                        help_text="Gateway payment ID for the hold/charge",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "gateway_customer_id",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Gateway customer the hold was placed for",
                        max_length=255,
                    ),
                ),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Idempotency key of the authorize call",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Total charged in smallest currency unit (e.g., cents)"
                    ),
                ),
                (
                    "platform_fee_cents",
                    models.PositiveBigIntegerField(help_text="Platform's share of the amount"),
                ),
                (
                    "coach_earnings_cents",
                    models.PositiveBigIntegerField(help_text="Coach's share of the amount"),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("authorized", "Authorized"),
                            ("succeeded", "Succeeded"),
                            ("partially_refunded", "Partially Refunded"),
                            ("refunded", "Refunded"),
                            ("failed", "Failed"),
                            ("canceled", "Canceled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("authorized_at", models.DateTimeField(blank=True, null=True)),
                (
                    "paid_at",
                    models.DateTimeField(
                        blank=True, help_text="When the hold was captured", null=True
                    ),
                ),
                ("canceled_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "refunded_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the first refund succeeded (full or partial)",
                        null=True,
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        help_text="Gateway's reason if the payment failed",
                        null=True,
                    ),
                ),
                ("cancellation_reason", models.TextField(blank=True, null=True)),
                (
                    "rate",
                    models.ForeignKey(
                        blank=True,
                        help_text="Rate this payment was authorized for",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="payments.rate",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["client_id", "status"], name="payment_client_status_idx"),
                    models.Index(fields=["coach_id", "status"], name="payment_coach_status_idx"),
                    models.Index(fields=["status", "updated_at"], name="payment_status_updated_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gt", 0)),
                        name="payment_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "amount_cents",
                                models.F("platform_fee_cents") + models.F("coach_earnings_cents"),
                            )
                        ),
                        name="payment_amount_equals_split",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved; reconciliation uses it to find stale rows",
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Incremented on each save",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "gateway_refund_id",
                    models.CharField(
                        blank=True,
                        help_text="Gateway refund ID",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Idempotency key of the gateway refund call",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Refund amount in smallest currency unit (e.g., cents)"
                    ),
                ),
                ("currency", models.CharField(default="usd", max_length=3)),
                (
                    "reason",
                    models.CharField(
                        choices=[
                            ("customer_requested", "Customer Requested"),
                            ("provider_requested", "Provider Requested"),
                            ("admin_initiated", "Admin Initiated"),
                            ("auto_cancellation", "Auto Cancellation"),
                            ("duplicate", "Duplicate"),
                            ("fraudulent", "Fraudulent"),
                        ],
                        db_index=True,
                        default="customer_requested",
                        max_length=30,
                    ),
                ),
                (
                    "coach_penalty_cents",
                    models.PositiveBigIntegerField(
                        default=0,
                        help_text="Portion of the refund deducted from the coach's earnings",
                    ),
                ),
                (
                    "platform_refund_cents",
                    models.PositiveBigIntegerField(
                        default=0,
                        help_text="Portion of the refund absorbed by the platform",
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the refund (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "initiated_by",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="User or system component that requested the refund",
                        max_length=255,
                    ),
                ),
                ("succeeded_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, null=True)),
                (
                    "payment",
                    models.ForeignKey(
                        help_text="Payment being refunded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["payment", "status"], name="refund_payment_status_idx"),
                    models.Index(fields=["status", "updated_at"], name="refund_status_updated_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gt", 0)),
                        name="refund_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "amount_cents",
                                models.F("coach_penalty_cents") + models.F("platform_refund_cents"),
                            )
                        ),
                        name="refund_amount_equals_distribution",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BankAccount",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved; reconciliation uses it to find stale rows",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Incremented on each save",
                    ),
                ),
                (
                    "coach_id",
                    models.UUIDField(db_index=True, help_text="Coach who owns this account"),
                ),
                ("account_holder_name", models.CharField(max_length=255)),
                ("bank_name", models.CharField(blank=True, default="", max_length=255)),
                (
                    "routing_number",
                    models.CharField(help_text="ABA routing number", max_length=9),
                ),
                (
                    "account_number_encrypted",
                    models.TextField(help_text="Fernet-encrypted account number"),
                ),
                (
                    "account_number_last4",
                    models.CharField(
                        help_text="Last four digits of the account number", max_length=4
                    ),
                ),
                (
                    "account_type",
                    models.CharField(
                        choices=[("checking", "Checking"), ("savings", "Savings")],
                        default="checking",
                        max_length=20,
                    ),
                ),
                ("is_verified", models.BooleanField(default=False)),
                (
                    "verification_method",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("micro_deposits", "Micro Deposits"),
                            ("instant", "Instant"),
                            ("manual", "Manual"),
                        ],
                        max_length=20,
                        null=True,
                    ),
                ),
                ("verified_at", models.DateTimeField(blank=True, null=True)),
                ("is_default", models.BooleanField(default=False)),
            ],
            options={
                "verbose_name": "Bank Account",
                "verbose_name_plural": "Bank Accounts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["coach_id", "is_verified"], name="bank_coach_verified_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_default", True)),
                        fields=("coach_id",),
                        name="bank_account_one_default_per_coach",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payout",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved; reconciliation uses it to find stale rows",
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Incremented on each save",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("coach_id", models.UUIDField(db_index=True)),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(
                        help_text="Gross payout amount in smallest currency unit"
                    ),
                ),
                (
                    "fees_cents",
                    models.PositiveBigIntegerField(
                        default=0, help_text="Transfer fees deducted from the payout"
                    ),
                ),
                (
                    "net_amount_cents",
                    models.PositiveBigIntegerField(help_text="Amount the coach receives"),
                ),
                ("currency", models.CharField(default="usd", max_length=3)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payout (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "transfer_reference",
                    models.CharField(
                        blank=True,
                        help_text="Reference of the executed bank transfer",
                        max_length=255,
                        null=True,
                    ),
                ),
                ("processed_by", models.CharField(blank=True, max_length=255, null=True)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("rejection_reason", models.TextField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, null=True)),
                ("notes", models.TextField(blank=True, default="")),
                (
                    "bank_account",
                    models.ForeignKey(
                        help_text="Cleared if the account is deleted after the payout settled",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payouts",
                        to="payments.bankaccount",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payouts",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout",
                "verbose_name_plural": "Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["coach_id", "status"], name="payout_coach_status_idx"),
                    models.Index(fields=["bank_account", "status"], name="payout_account_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("net_amount_cents__lte", models.F("amount_cents"))),
                        name="payout_net_not_above_amount",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["rejected", "failed"]), _negated=True),
                        fields=("payment",),
                        name="payout_one_active_per_payment",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="GatewayCustomer",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved; reconciliation uses it to find stale rows",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("client_id", models.UUIDField(unique=True)),
                ("gateway_customer_id", models.CharField(max_length=255, unique=True)),
                ("email", models.EmailField(blank=True, default="", max_length=254)),
            ],
            options={
                "verbose_name": "Gateway Customer",
                "verbose_name_plural": "Gateway Customers",
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the record was last saved; reconciliation uses it to find stale rows",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "gateway_event_id",
                    models.CharField(
                        help_text="Gateway event ID - unique constraint for idempotency",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Normalised event type (e.g., 'payment.updated')",
                        max_length=100,
                    ),
                ),
                ("payload", models.JSONField(help_text="Normalised webhook payload")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                            ("skipped", "Skipped"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Error message if processing failed, or why it was skipped",
                        null=True,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0, help_text="Number of processing attempts"
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
                    models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BillingTransaction",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this row was written",
                    ),
                ),
                (
                    "user_id",
                    models.UUIDField(
                        blank=True,
                        db_index=True,
                        help_text="Owning user; null for platform rows",
                        null=True,
                    ),
                ),
                (
                    "user_type",
                    models.CharField(
                        choices=[
                            ("client", "Client"),
                            ("coach", "Coach"),
                            ("platform", "Platform"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "transaction_type",
                    models.CharField(
                        choices=[
                            ("payment", "Payment"),
                            ("refund", "Refund"),
                            ("fee", "Fee"),
                            ("payout", "Payout"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveBigIntegerField(help_text="Amount in cents (always positive)"),
                ),
                ("currency", models.CharField(default="usd", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        default="completed",
                        max_length=20,
                    ),
                ),
                ("description", models.TextField(blank=True, default="")),
                (
                    "reference_id",
                    models.UUIDField(
                        blank=True, help_text="UUID of related business entity", null=True
                    ),
                ),
                (
                    "reference_type",
                    models.CharField(
                        blank=True,
                        help_text="Type of related entity (payment, refund, payout)",
                        max_length=50,
                        null=True,
                    ),
                ),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Unique key to prevent duplicate rows",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "supersedes",
                    models.OneToOneField(
                        blank=True,
                        help_text="Earlier row whose status this row replaces",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="superseded_by",
                        to="payments.billingtransaction",
                    ),
                ),
            ],
            options={
                "verbose_name": "Billing Transaction",
                "verbose_name_plural": "Billing Transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["reference_type", "reference_id"],
                        name="billing_tx_reference_idx",
                    ),
                    models.Index(
                        fields=["user_id", "user_type", "created_at"],
                        name="billing_tx_user_created_idx",
                    ),
                    models.Index(
                        fields=["transaction_type", "status"],
                        name="billing_tx_type_status_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gt", 0)),
                        name="billing_transaction_amount_positive",
                    ),
                ],
            },
        ),
    ]
