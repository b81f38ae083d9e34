"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.
The legal moves between states live in payments.state_machines.transitions.

State Machines Overview:

Payment States:
    pending → authorized → succeeded → partially_refunded → refunded
    pending → failed (authorization failure)
    pending/authorized → canceled (void)
    pending/authorized → failed (capture rejected)

Refund States:
    pending → processing → succeeded
    pending/processing → failed

Payout States:
    pending → processing → completed
    processing → failed
    pending → rejected
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    States for the Payment model lifecycle.

    Terminal states: FAILED, CANCELED, REFUNDED
    PARTIALLY_REFUNDED accepts further refunds until fully refunded.
    """

    PENDING = "pending", "Pending"
    AUTHORIZED = "authorized", "Authorized"
    SUCCEEDED = "succeeded", "Succeeded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"
    CANCELED = "canceled", "Canceled"


class RefundStatus(models.TextChoices):
    """
    States for the Refund model lifecycle.

    Terminal states: SUCCEEDED, FAILED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class RefundReason(models.TextChoices):
    """
    Why a refund was issued. Drives the refund cost split.

    PROVIDER_REQUESTED: coach absorbs the refund up to their earnings
    ADMIN_INITIATED / AUTO_CANCELLATION: platform absorbs the refund
    everything else: proportional split
    """

    CUSTOMER_REQUESTED = "customer_requested", "Customer Requested"
    PROVIDER_REQUESTED = "provider_requested", "Provider Requested"
    ADMIN_INITIATED = "admin_initiated", "Admin Initiated"
    AUTO_CANCELLATION = "auto_cancellation", "Auto Cancellation"
    DUPLICATE = "duplicate", "Duplicate"
    FRAUDULENT = "fraudulent", "Fraudulent"


class PayoutStatus(models.TextChoices):
    """
    States for the Payout model lifecycle.

    Terminal states: COMPLETED, FAILED, REJECTED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    REJECTED = "rejected", "Rejected"


class SessionType(models.TextChoices):
    """Kinds of offering a coach can price."""

    INDIVIDUAL = "individual", "Individual"
    GROUP = "group", "Group"
    PACKAGE = "package", "Package"


class BankAccountType(models.TextChoices):
    """Type of a payout bank account."""

    CHECKING = "checking", "Checking"
    SAVINGS = "savings", "Savings"


class VerificationMethod(models.TextChoices):
    """How a bank account was verified."""

    MICRO_DEPOSITS = "micro_deposits", "Micro Deposits"
    INSTANT = "instant", "Instant"
    MANUAL = "manual", "Manual"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for webhook events.

    SKIPPED marks events that were recorded but deliberately not applied
    (unknown type, unknown local record, or a stale status).
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
    SKIPPED = "skipped", "Skipped"
