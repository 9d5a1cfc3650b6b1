"""
Payment domain models.

- LedgerAccount / LedgerEntry: Double-entry ledger (defined in payments.ledger)
- RefundRequest: Admin-approved return of a cancelled request's payment
- WebhookEvent: Provider webhook tracking for idempotent processing

The ledger models are re-exported here so Django registers them under
the payments app.
"""

from payments.ledger.models import LedgerAccount, LedgerEntry
from payments.models.refund import RefundRequest
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "LedgerAccount",
    "LedgerEntry",
    "RefundRequest",
    "WebhookEvent",
]
