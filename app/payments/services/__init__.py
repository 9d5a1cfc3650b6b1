"""
Payment services for delivery requests.

This module provides:
- EscrowService: Hold, release and removal of a request's escrow
- SettlementService: Payment intents and exactly-once settlement
- RefundService: Refund requests for voided escrow

Usage:
    from payments.services import EscrowService, SettlementService

    # Record a provider confirmation (verifies with the provider first)
    request = SettlementService().confirm(reference, "paid")

    # Release escrow once the sender confirmed receipt
    with locked_request(request.id) as request:
        EscrowService.release_for_request(request)

    # File and approve a refund for a cancelled request
    from payments.services import RefundService

    refund = RefundService().request_refund(request.id, actor=sender)
    RefundService().approve_refund(refund.id, admin=staff_user)
"""

from payments.services.escrow_service import EscrowService
from payments.services.refund_service import RefundService
from payments.services.settlement_service import SettlementService

__all__ = [
    "EscrowService",
    "RefundService",
    "SettlementService",
]
