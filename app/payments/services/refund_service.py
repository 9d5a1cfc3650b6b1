"""
Refund service for returning voided escrow to the payer.

Cancelling a paid request removes its escrow into the ESCROW_VOID ledger
account; no money goes back to the payer automatically. The sender files a
RefundRequest and an admin decides it:

    approve  provider refund issued, REFUND ledger entry (void -> external)
    reject   nothing moves
    (provider refuses)  refund marked failed, funds stay in ESCROW_VOID

Usage:
    from payments.services import RefundService

    service = RefundService()
    refund = service.request_refund(request_id, actor=sender, reason="Trip cancelled")
    refund = service.approve_refund(refund.id, admin=staff_user)
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import Sum

from core.fsm import apply_transition
from deliveries.exceptions import NotRequestParticipant, RequestNotFound
from deliveries.models import DeliveryRequest
from payments.adapters import get_registry
from payments.exceptions import (
    ProviderError,
    RefundNotAllowed,
    RefundNotFound,
)
from payments.ledger import InvalidAmount, ledger
from payments.locks import DistributedLock, request_lock
from payments.models import RefundRequest
from payments.services.escrow_service import REFERENCE_TYPE, REMOVABLE_STATUSES
from payments.state_machines import PaymentStatus, RefundState

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.models import User
    from payments.adapters import ProviderRegistry


logger = logging.getLogger(__name__)

# Refunds that count against the removed escrow
OPEN_OR_APPROVED = (RefundState.PENDING, RefundState.APPROVED)

REFUND_LOCK_TTL = 120


class RefundService:
    """Files and decides refund requests for cancelled, paid deliveries."""

    def __init__(self, registry: ProviderRegistry | None = None) -> None:
        self._registry = registry

    @property
    def registry(self) -> ProviderRegistry:
        if self._registry is None:
            self._registry = get_registry()
        return self._registry

    # =========================================================================
    # Filing
    # =========================================================================

    @staticmethod
    def refundable_cents(request: DeliveryRequest) -> int:
        """Removed escrow not yet claimed by a pending or approved refund."""
        if not request.escrow_cleared or request.escrow_released:
            return 0
        claimed = (
            RefundRequest.objects.filter(
                delivery_request=request, status__in=OPEN_OR_APPROVED
            ).aggregate(total=Sum("amount_cents"))["total"]
            or 0
        )
        return max(request.escrow_amount_cents - claimed, 0)

    def request_refund(
        self,
        request_id: uuid.UUID,
        actor: User,
        amount_cents: int | None = None,
        reason: str = "",
    ) -> RefundRequest:
        """
        File a refund for a cancelled or rejected, paid request.

        Args:
            amount_cents: Defaults to everything still refundable

        Raises:
            RequestNotFound: If the request doesn't exist
            NotRequestParticipant: If actor is not the sender
            RefundNotAllowed: Request not cancelled, not paid, escrow not
                removed, or amount above what is refundable
            InvalidAmount: If amount_cents is not positive
        """
        with request_lock(request_id):
            with transaction.atomic():
                try:
                    request = DeliveryRequest.objects.select_for_update().get(
                        pk=request_id
                    )
                except DeliveryRequest.DoesNotExist:
                    raise RequestNotFound(
                        f"Delivery request {request_id} not found",
                        details={"request_id": str(request_id)},
                    )

                if request.sender_id != actor.pk:
                    raise NotRequestParticipant(
                        "Only the sender can request a refund",
                        details={"request_id": str(request.id)},
                    )

                details = {
                    "request_id": str(request.id),
                    "status": request.status,
                    "payment_status": request.payment_status,
                }
                if request.status not in REMOVABLE_STATUSES:
                    raise RefundNotAllowed(
                        "Only cancelled or rejected requests can be refunded",
                        details=details,
                    )
                if request.payment_status != PaymentStatus.PAID:
                    raise RefundNotAllowed(
                        "Request was never paid", details=details
                    )

                refundable = self.refundable_cents(request)
                if amount_cents is None:
                    amount_cents = refundable
                elif amount_cents <= 0:
                    raise InvalidAmount(
                        "Refund amount must be positive",
                        details={"amount_cents": amount_cents},
                    )
                if amount_cents <= 0 or amount_cents > refundable:
                    raise RefundNotAllowed(
                        f"Refund of {amount_cents} exceeds refundable {refundable}",
                        details={
                            **details,
                            "amount_cents": amount_cents,
                            "refundable_cents": refundable,
                        },
                    )

                refund = RefundRequest.objects.create(
                    delivery_request=request,
                    requested_by=actor,
                    amount_cents=amount_cents,
                    currency=request.currency,
                    reason=reason,
                )

        logger.info(
            "Refund requested",
            extra={
                "refund_id": str(refund.id),
                "request_id": str(request_id),
                "amount_cents": amount_cents,
            },
        )
        return refund

    # =========================================================================
    # Decisions
    # =========================================================================

    def approve_refund(
        self, refund_id: uuid.UUID, admin: User, note: str = ""
    ) -> RefundRequest:
        """
        Issue the provider refund and record it in the ledger.

        A provider refusal is not raised: the refund is saved as failed and
        returned, with the voided funds left in place.

        Raises:
            RefundNotFound: If the refund doesn't exist
            RefundNotAllowed: If the refund was already decided
        """
        with DistributedLock(f"refund:{refund_id}", ttl=REFUND_LOCK_TTL):
            refund = self.get_refund(refund_id)
            self._require_pending(refund)
            request = refund.delivery_request
            provider = self.registry.get(request.payment_provider)

            try:
                result = provider.refund(
                    request.payment_reference,
                    refund.amount_cents,
                    idempotency_key=f"refund:{refund.id}",
                )
            except ProviderError as e:
                logger.warning(
                    "Provider refused refund",
                    extra={
                        "refund_id": str(refund.id),
                        "provider": request.payment_provider,
                        "error_code": e.error_code,
                    },
                    exc_info=True,
                )
                apply_transition(refund, "fail", e.message)
                refund.save()
                return refund

            with transaction.atomic():
                ledger.refund_voided(
                    refund.amount_cents,
                    f"Refund {result.id} for delivery request {request.id}",
                    idempotency_key=f"refund:{refund.id}",
                    reference_type=REFERENCE_TYPE,
                    reference_id=request.id,
                    created_by=str(admin.pk),
                )
                apply_transition(
                    refund, "approve", admin, provider_refund_id=result.id, note=note
                )
                refund.save()

        logger.info(
            "Refund approved",
            extra={
                "refund_id": str(refund.id),
                "request_id": str(request.id),
                "amount_cents": refund.amount_cents,
                "provider_refund_id": result.id,
            },
        )
        return refund

    def reject_refund(
        self, refund_id: uuid.UUID, admin: User, note: str = ""
    ) -> RefundRequest:
        """
        Raises:
            RefundNotFound: If the refund doesn't exist
            RefundNotAllowed: If the refund was already decided
        """
        with DistributedLock(f"refund:{refund_id}", ttl=REFUND_LOCK_TTL):
            refund = self.get_refund(refund_id)
            self._require_pending(refund)
            apply_transition(refund, "reject", admin, note=note)
            refund.save()

        logger.info(
            "Refund rejected",
            extra={"refund_id": str(refund.id), "admin_id": str(admin.pk)},
        )
        return refund

    @staticmethod
    def _require_pending(refund: RefundRequest) -> None:
        if not refund.is_pending:
            raise RefundNotAllowed(
                f"Refund {refund.id} was already {refund.status}",
                details={"refund_id": str(refund.id), "status": refund.status},
            )

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def get_refund(refund_id: uuid.UUID) -> RefundRequest:
        try:
            return RefundRequest.objects.select_related("delivery_request").get(
                pk=refund_id
            )
        except RefundRequest.DoesNotExist:
            raise RefundNotFound(
                f"Refund {refund_id} not found",
                details={"refund_id": str(refund_id)},
            )

    @staticmethod
    def list_refunds(user: User) -> QuerySet[RefundRequest]:
        """Admins see every refund, other users their own."""
        qs = RefundRequest.objects.select_related("delivery_request")
        if user.is_staff:
            return qs
        return qs.filter(requested_by=user)
