"""
Helpers driving a request through the real services.

Used by fixtures and by tests that need a request in a particular stage
with genuine payment and escrow state.
"""

from deliveries.services import RequestService
from payments.services import SettlementService


def pay(request, reference=None):
    """Record a Stripe intent and settle it as paid from a verified webhook."""
    reference = reference or f"pi_{request.id.hex}"
    settlement = SettlementService()
    settlement.record_intent(request.id, "stripe", reference)
    return settlement.confirm(
        reference,
        "paid",
        verified=True,
        amount_cents=request.total_cents,
        currency=request.currency,
    )


def advance(request, traveler, *statuses):
    """Apply traveler status changes in order."""
    for status in statuses:
        request = RequestService.transition_status(request.id, traveler, status)
    return request
