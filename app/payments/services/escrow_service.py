"""
Escrow engine for delivery requests.

Moves a request's funds through the ledger and records what happened on
the request itself, so every movement happens at most once:

    hold_for_request     payment captured and held in the traveler's escrow
    release_for_request  escrow -> traveler balance, after receipt
    remove_for_request   escrow -> void, after cancellation or rejection

The caller must hold the request lock (deliveries.locking.locked_request);
the service re-checks the request's flags but does not lock it again.

Usage:
    from payments.services import EscrowService

    with locked_request(request_id) as request:
        EscrowService.release_for_request(request)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction

from deliveries.exceptions import DisputeOpen
from deliveries.models import RequestStatus
from payments.exceptions import (
    AlreadyCleared,
    AlreadyReleased,
    EscrowNotHeld,
    InvalidTransition,
    PaymentNotSettled,
    ReceiptNotConfirmed,
)
from payments.ledger import ledger
from payments.state_machines import PaymentStatus

if TYPE_CHECKING:
    from deliveries.models import DeliveryRequest


logger = logging.getLogger(__name__)

# Ledger reference_type for entries tied to a delivery request
REFERENCE_TYPE = "delivery_request"

# Statuses in which held escrow may be voided
REMOVABLE_STATUSES = frozenset({RequestStatus.CANCELLED, RequestStatus.REJECTED})


def escrow_key(request: DeliveryRequest) -> str:
    """Base idempotency key for a request's escrow entries."""
    return f"delivery-request:{request.id}"


class EscrowService:
    """
    Escrow movements for a single delivery request.

    All funds are held on the traveler's ledger accounts: the captured
    payment is credited to the traveler's balance and immediately held in
    the traveler's escrow, so neither party can spend it until release or
    removal.
    """

    @staticmethod
    def hold_for_request(request: DeliveryRequest, created_by: str | None = None) -> bool:
        """
        Hold the request's total (amount + insurance) in escrow.

        Returns:
            True if funds were held, False if the request was already held

        Raises:
            PaymentNotSettled: If the request's payment is not paid
        """
        if request.escrow_held:
            logger.info(
                "Escrow already held, skipping",
                extra={"request_id": str(request.id)},
            )
            return False

        if request.payment_status != PaymentStatus.PAID:
            raise PaymentNotSettled(
                f"Payment for request {request.id} is not settled",
                details={
                    "request_id": str(request.id),
                    "payment_status": request.payment_status,
                },
            )

        amount_cents = request.total_cents
        with transaction.atomic():
            balance, escrow = ledger.fund_escrow(
                request.traveler_id,
                amount_cents,
                f"Escrow hold for delivery request {request.id}",
                idempotency_key=escrow_key(request),
                reference_type=REFERENCE_TYPE,
                reference_id=request.id,
                created_by=created_by,
            )
            request.escrow_held = True
            request.escrow_amount_cents = amount_cents
            request.save()

        logger.info(
            "Escrow held",
            extra={
                "request_id": str(request.id),
                "traveler_id": str(request.traveler_id),
                "amount_cents": amount_cents,
                "escrow_balance_cents": escrow,
            },
        )
        return True

    @staticmethod
    def release_for_request(
        request: DeliveryRequest, created_by: str | None = None
    ) -> tuple[int, int]:
        """
        Release held escrow to the traveler's available balance.

        Requires the sender to have confirmed receipt and no open dispute.

        Returns:
            The traveler's (balance_cents, escrow_balance_cents) after release

        Raises:
            EscrowNotHeld: If nothing was held for the request
            AlreadyReleased: If the escrow was already released
            AlreadyCleared: If the escrow was already removed
            DisputeOpen: If the request has an open dispute
            ReceiptNotConfirmed: If the sender has not confirmed receipt
        """
        details = {"request_id": str(request.id)}
        if not request.escrow_held:
            raise EscrowNotHeld(f"No escrow held for request {request.id}", details=details)
        if request.escrow_released:
            raise AlreadyReleased(
                f"Escrow for request {request.id} was already released", details=details
            )
        if request.escrow_cleared:
            raise AlreadyCleared(
                f"Escrow for request {request.id} was already removed", details=details
            )
        if request.has_open_dispute:
            raise DisputeOpen(
                f"Request {request.id} has an open dispute", details=details
            )
        if not request.sender_received:
            raise ReceiptNotConfirmed(
                f"Sender has not confirmed receipt of request {request.id}",
                details=details,
            )

        with transaction.atomic():
            balances = ledger.release_from_escrow(
                request.traveler_id,
                request.escrow_amount_cents,
                f"Escrow released for delivery request {request.id}",
                idempotency_key=f"{escrow_key(request)}:release",
                reference_type=REFERENCE_TYPE,
                reference_id=request.id,
                created_by=created_by,
            )
            request.escrow_released = True
            request.escrow_cleared = True
            request.save()

        logger.info(
            "Escrow released",
            extra={
                "request_id": str(request.id),
                "traveler_id": str(request.traveler_id),
                "amount_cents": request.escrow_amount_cents,
            },
        )
        return balances

    @staticmethod
    def remove_for_request(
        request: DeliveryRequest, reason: str, created_by: str | None = None
    ) -> int:
        """
        Void held escrow after the request was cancelled or rejected.

        The funds are not credited to anyone; a RefundRequest returns them
        to the payer.

        Returns:
            The traveler's escrow balance after removal

        Raises:
            InvalidTransition: If the request is not cancelled or rejected
            AlreadyCleared: If the escrow was already released or removed
            EscrowNotHeld: If nothing was held for the request
            DisputeOpen: If the request has an open dispute
            InsufficientEscrow: Propagated from the ledger
        """
        details = {"request_id": str(request.id), "status": request.status}
        if request.status not in REMOVABLE_STATUSES:
            raise InvalidTransition(
                f"Escrow of request {request.id} cannot be removed in status "
                f"'{request.status}'",
                details=details,
            )
        if request.escrow_cleared:
            raise AlreadyCleared(
                f"Escrow for request {request.id} was already cleared", details=details
            )
        if not request.escrow_held:
            raise EscrowNotHeld(f"No escrow held for request {request.id}", details=details)
        if request.has_open_dispute:
            raise DisputeOpen(f"Request {request.id} has an open dispute", details=details)

        description = f"Escrow removed for delivery request {request.id}"
        if reason:
            description = f"{description}: {reason}"

        with transaction.atomic():
            escrow_balance = ledger.remove_from_escrow(
                request.traveler_id,
                request.escrow_amount_cents,
                description,
                idempotency_key=f"{escrow_key(request)}:remove",
                reference_type=REFERENCE_TYPE,
                reference_id=request.id,
                created_by=created_by,
            )
            request.escrow_cleared = True
            request.save()

        logger.info(
            "Escrow removed",
            extra={
                "request_id": str(request.id),
                "traveler_id": str(request.traveler_id),
                "amount_cents": request.escrow_amount_cents,
                "reason": reason,
            },
        )
        return escrow_balance
