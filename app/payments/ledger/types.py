"""
Data types for ledger operations.

Types:
    RecordTransactionParams: Parameters for recording a BillingTransaction
    BillingReport: Aggregated billing figures for a period
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class RecordTransactionParams:
    """
    Parameters for recording a BillingTransaction.

    Attributes:
        user_type: client, coach or platform
        transaction_type: payment, refund, fee or payout
        amount_cents: Always positive; direction follows from the type
        idempotency_key: Unique key; replays return the existing row
        user_id: Owning user (None for platform rows)
        status: pending, completed or failed
        reference_type/reference_id: Business entity the row is about
        description: Human-readable description
        metadata: Arbitrary JSON data
        currency: ISO 4217 code
    """

    user_type: str
    transaction_type: str
    amount_cents: int
    idempotency_key: str
    user_id: uuid.UUID | None = None
    status: str = "completed"
    reference_type: str | None = None
    reference_id: uuid.UUID | None = None
    description: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    currency: str = "usd"


@dataclass
class BillingReport:
    """
    Aggregated billing figures for a user over a period.

    Only completed, effective (non-superseded) rows are counted.
    """

    period_start: datetime | None
    period_end: datetime | None
    total_revenue_cents: int = 0
    total_refunds_cents: int = 0
    total_fees_cents: int = 0
    net_revenue_cents: int = 0
    transaction_count: int = 0
    refund_count: int = 0
    average_transaction_cents: int = 0
    refund_rate_percentage: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
