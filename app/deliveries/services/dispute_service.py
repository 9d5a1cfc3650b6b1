"""
Dispute resolution for delivery requests.

A request gets at most one dispute, ever. While it is open the request
cannot be completed, cancelled, or have its escrow moved. An admin decides
it (resolved or rejected); the decision only lifts the block and moves no
money by itself.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from core.exceptions import PermissionDeniedError, ValidationError
from core.fsm import apply_transition
from deliveries.exceptions import (
    DisputeAlreadyExists,
    DisputeNotFound,
    DisputeNotOpen,
    InvalidTransition,
    NotRequestParticipant,
    RequestCancelled,
)
from deliveries.locking import locked_request
from deliveries.models import Dispute, DisputeStatus, RequestStatus
from deliveries.notifications import RequestEvent, notify
from deliveries.services.request_service import RequestService

if TYPE_CHECKING:
    from authentication.models import User


logger = logging.getLogger(__name__)

# Admin decision -> Dispute transition
DECISIONS = {
    DisputeStatus.RESOLVED: "resolve",
    DisputeStatus.REJECTED: "reject",
}


class DisputeService:
    @staticmethod
    def raise_dispute(request_id: uuid.UUID, raised_by: User, reason: str) -> Dispute:
        """
        Open the request's dispute.

        Raises:
            NotRequestParticipant: If raised_by is neither sender nor traveler
            DisputeAlreadyExists: If the request ever had a dispute
            RequestCancelled: If the request was cancelled
            InvalidTransition: If the request is otherwise terminal
            ValidationError: If reason is empty
        """
        if not reason or not reason.strip():
            raise ValidationError(
                "A reason is required to raise a dispute",
                error_code="DISPUTE_REASON_REQUIRED",
            )

        with locked_request(request_id) as request:
            if not request.is_participant(raised_by):
                raise NotRequestParticipant(
                    "Only the sender or traveler can raise a dispute",
                    details={"request_id": str(request.id)},
                )
            details = {"request_id": str(request.id), "status": request.status}
            if Dispute.objects.filter(request=request).exists():
                raise DisputeAlreadyExists(
                    f"Request {request.id} already has a dispute", details=details
                )
            if request.status == RequestStatus.CANCELLED:
                raise RequestCancelled(
                    f"Request {request.id} was cancelled; request a refund instead",
                    details=details,
                )
            if request.is_terminal:
                raise InvalidTransition(
                    f"Request {request.id} is {request.status}; disputes are closed",
                    details={**details, "current_state": request.status},
                )

            dispute = Dispute.objects.create(
                request=request, raised_by=raised_by, reason=reason.strip()
            )
            notify(request, RequestEvent.DISPUTE_RAISED)

        logger.info(
            "Dispute raised",
            extra={
                "request_id": str(request_id),
                "dispute_id": str(dispute.id),
                "raised_by": str(raised_by.pk),
            },
        )
        return dispute

    @staticmethod
    def resolve_dispute(
        request_id: uuid.UUID,
        admin: User,
        decision: str,
        resolution_note: str = "",
    ) -> Dispute:
        """
        Close an open dispute as resolved or rejected.

        Raises:
            PermissionDeniedError: If admin is not staff
            ValidationError: If decision is not resolved/rejected
            DisputeNotFound: If the request has no dispute
            DisputeNotOpen: If the dispute was already decided
        """
        if not admin.is_staff:
            raise PermissionDeniedError(
                "Only administrators can decide disputes",
                error_code="ADMIN_REQUIRED",
            )
        transition_name = DECISIONS.get(decision)
        if transition_name is None:
            raise ValidationError(
                f"Unknown dispute decision: {decision}",
                error_code="INVALID_DECISION",
                details={"decision": decision, "allowed": list(DECISIONS)},
            )

        with locked_request(request_id) as request:
            dispute = (
                Dispute.objects.select_for_update().filter(request=request).first()
            )
            if dispute is None:
                raise DisputeNotFound(
                    f"Request {request.id} has no dispute",
                    details={"request_id": str(request.id)},
                )
            if not dispute.is_open:
                raise DisputeNotOpen(
                    f"Dispute on request {request.id} was already {dispute.status}",
                    details={"request_id": str(request.id), "status": dispute.status},
                )
            apply_transition(dispute, transition_name, resolution_note, admin)
            dispute.save()
            notify(request, RequestEvent.DISPUTE_DECIDED)

        logger.info(
            "Dispute decided",
            extra={
                "request_id": str(request_id),
                "dispute_id": str(dispute.id),
                "decision": decision,
                "admin_id": str(admin.pk),
            },
        )
        return dispute

    @staticmethod
    def get_dispute(request_id: uuid.UUID, user: User) -> Dispute:
        """
        Raises:
            RequestNotFound / NotRequestParticipant: See RequestService.get_request
            DisputeNotFound: If the request has no dispute
        """
        request = RequestService.get_request(request_id, user)
        try:
            return Dispute.objects.get(request=request)
        except Dispute.DoesNotExist:
            raise DisputeNotFound(
                f"Request {request.id} has no dispute",
                details={"request_id": str(request.id)},
            )
