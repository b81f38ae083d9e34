"""
Payment lifecycle and ledger engine for the coaching marketplace.

A client books a coach's rate; the booking becomes a Payment that is
authorized, captured, possibly refunded, and finally paid out to the
coach's bank account. Every money movement lands in the append-only
billing ledger.

Subpackages:
    adapters        Gateway, catalog and transfer ports with their implementations
    ledger          BillingTransaction store and billing reports
    models          Rate, Payment, Refund, Payout, BankAccount, WebhookEvent
    services        One service class per workflow
    state_machines  Status enums and transition tables
    webhooks        Gateway webhook intake and reconcilers

Usage:
    from payments.services import AuthorizationService, CaptureService

    payment = AuthorizationService.authorize_payment(client_id, coach_id, rate_id)
    CaptureService.capture_payment(payment.id)
"""
