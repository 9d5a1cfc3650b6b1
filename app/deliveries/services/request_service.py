"""
Delivery request lifecycle.

RequestService is the only code that moves a DeliveryRequest between
states. Each mutating method:

1. Takes the request lock and re-reads the row (deliveries.locking)
2. Checks the actor's role
3. Applies the django-fsm transition (InvalidTransition when refused)
4. Moves escrow through EscrowService where the transition requires it
5. Appends a MovementEvent
6. Queues a notification for after commit

Any error rolls the whole operation back; the request is never left
half-transitioned.

Who may do what:
    sender    create, confirm_received, cancel
    traveler  accept, reject, picked_up/in_transit/customs/delivering, cancel
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.db.models import Q

from authentication.services import UserService, percent_of
from core.exceptions import PermissionDeniedError, ValidationError
from core.fsm import apply_transition
from deliveries.exceptions import (
    AlreadyCancelled,
    DisputeOpen,
    InsufficientCapacity,
    InvalidTransition,
    NotRequestParticipant,
    RequestNotFound,
    TripNotFound,
)
from deliveries.locking import locked_request
from deliveries.models import (
    DeliveryRequest,
    MovementEvent,
    RequestStatus,
    Trip,
    TripStatus,
)
from deliveries.notifications import RequestEvent, notify
from deliveries.services.trip_service import PackageService
from payments.exceptions import PaymentNotSettled
from payments.ledger import InvalidAmount
from payments.services import EscrowService
from payments.state_machines import PaymentStatus

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from authentication.models import User


logger = logging.getLogger(__name__)

# Status names accepted from clients that map onto RequestStatus
STATUS_ALIASES = {
    "intransit": RequestStatus.IN_TRANSIT,
    "delivered": RequestStatus.COMPLETED,
}

# Traveler-driven operational transitions: target status -> transition name
TRAVELER_TRANSITIONS = {
    RequestStatus.PICKED_UP: "mark_picked_up",
    RequestStatus.IN_TRANSIT: "mark_in_transit",
    RequestStatus.CUSTOMS: "mark_customs",
    RequestStatus.DELIVERING: "mark_delivering",
}


def normalize_status(value: str) -> str:
    """
    Map a client status name onto RequestStatus.

    Raises:
        ValidationError: If value is not a known status
    """
    status = STATUS_ALIASES.get(value, value)
    if status not in RequestStatus.values:
        raise ValidationError(
            f"Unknown request status: {value}",
            error_code="INVALID_STATUS",
            details={"status": value, "allowed": RequestStatus.values},
        )
    return status


def _record_movement(
    request: DeliveryRequest,
    actor: User | None,
    location: str = "",
    notes: str = "",
) -> MovementEvent:
    return MovementEvent.objects.create(
        request=request,
        status=request.status,
        location=location,
        notes=notes,
        actor=actor,
    )


def _require_sender(request: DeliveryRequest, actor: User, action: str) -> None:
    if request.sender_id != actor.pk:
        raise NotRequestParticipant(
            f"Only the sender can {action}",
            details={"request_id": str(request.id), "action": action},
        )


def _require_traveler(request: DeliveryRequest, actor: User, action: str) -> None:
    if request.traveler_id != actor.pk:
        raise NotRequestParticipant(
            f"Only the traveler can {action}",
            details={"request_id": str(request.id), "action": action},
        )


def _log_transition(request: DeliveryRequest, previous: str, actor: User | None) -> None:
    logger.info(
        "Request status changed",
        extra={
            "request_id": str(request.id),
            "from_status": previous,
            "to_status": request.status,
            "actor_id": str(actor.pk) if actor else None,
        },
    )


class RequestService:
    """Creates delivery requests and drives their state machine."""

    # =========================================================================
    # Creation & queries
    # =========================================================================

    @staticmethod
    def create_request(
        sender: User,
        traveler_id: uuid.UUID,
        package_id: uuid.UUID,
        amount_cents: int,
        trip_id: uuid.UUID | None = None,
        insurance: bool = False,
        insurance_cost_cents: int | None = None,
        use_referral_discount: bool = False,
        currency: str | None = None,
    ) -> DeliveryRequest:
        """
        Create a pending request for the sender's package.

        Insurance cost defaults to INSURANCE_RATE_PERCENT of the amount and
        is forced to 0 without insurance. With use_referral_discount the
        sender's one-time referral discount is taken off the amount.

        Raises:
            KYCNotVerified: If the sender has not passed KYC
            UserNotFound / PackageNotFound / TripNotFound
            PermissionDeniedError: If the package belongs to someone else
            ValidationError: Self-delivery, trip of another traveler, or
                inactive trip
            InvalidAmount: Non-positive amount or negative insurance cost
        """
        UserService.require_kyc_verified(sender)

        if amount_cents is None or amount_cents <= 0:
            raise InvalidAmount(
                "Amount must be positive", details={"amount_cents": amount_cents}
            )

        traveler = UserService.get_user(traveler_id)
        if traveler.pk == sender.pk:
            raise ValidationError(
                "Sender and traveler must be different users",
                error_code="SELF_DELIVERY",
            )

        package = PackageService.get_package(package_id)
        if package.sender_id != sender.pk:
            raise PermissionDeniedError(
                "Package belongs to another user",
                error_code="NOT_PACKAGE_OWNER",
                details={"package_id": str(package.id)},
            )

        trip = None
        if trip_id is not None:
            try:
                trip = Trip.objects.get(pk=trip_id)
            except Trip.DoesNotExist:
                raise TripNotFound(
                    f"Trip {trip_id} not found", details={"trip_id": str(trip_id)}
                )
            if trip.traveler_id != traveler.pk:
                raise ValidationError(
                    "Trip belongs to another traveler",
                    error_code="TRIP_TRAVELER_MISMATCH",
                    details={"trip_id": str(trip.id)},
                )
            if trip.status != TripStatus.ACTIVE:
                raise ValidationError(
                    "Trip is not active",
                    error_code="TRIP_NOT_ACTIVE",
                    details={"trip_id": str(trip.id), "status": trip.status},
                )

        if insurance:
            if insurance_cost_cents is None:
                insurance_cost_cents = percent_of(
                    amount_cents, settings.INSURANCE_RATE_PERCENT
                )
            if insurance_cost_cents < 0:
                raise InvalidAmount(
                    "Insurance cost cannot be negative",
                    details={"insurance_cost_cents": insurance_cost_cents},
                )
        else:
            insurance_cost_cents = 0

        with transaction.atomic():
            discount_cents = 0
            if use_referral_discount:
                discount = UserService.apply_referral_discount(
                    sender, amount_cents + insurance_cost_cents
                )
                # The agreed price never drops to zero.
                discount_cents = min(discount.discount_cents, amount_cents - 1)

            request = DeliveryRequest.objects.create(
                sender=sender,
                traveler=traveler,
                package=package,
                trip=trip,
                amount_cents=amount_cents - discount_cents,
                insurance=insurance,
                insurance_cost_cents=insurance_cost_cents,
                referral_discount_cents=discount_cents,
                currency=currency or settings.DEFAULT_CURRENCY,
            )
            _record_movement(request, sender, notes="Request created")
            notify(request, RequestEvent.CREATED)

        logger.info(
            "Delivery request created",
            extra={
                "request_id": str(request.id),
                "sender_id": str(sender.pk),
                "traveler_id": str(traveler.pk),
                "amount_cents": request.amount_cents,
                "insurance_cost_cents": insurance_cost_cents,
                "referral_discount_cents": discount_cents,
            },
        )
        return request

    @staticmethod
    def get_request(request_id: uuid.UUID, user: User | None = None) -> DeliveryRequest:
        """
        Raises:
            RequestNotFound: If the request doesn't exist
            NotRequestParticipant: If user is given, not a participant and not staff
        """
        try:
            request = DeliveryRequest.objects.select_related(
                "sender", "traveler", "package", "trip"
            ).get(pk=request_id)
        except DeliveryRequest.DoesNotExist:
            raise RequestNotFound(
                f"Delivery request {request_id} not found",
                details={"request_id": str(request_id)},
            )
        if user is not None and not (user.is_staff or request.is_participant(user)):
            raise NotRequestParticipant(
                "You are not a participant of this request",
                details={"request_id": str(request.id)},
            )
        return request

    @staticmethod
    def list_requests(
        user: User,
        role: str | None = None,
        status: str | None = None,
    ) -> QuerySet[DeliveryRequest]:
        """Requests where user is the sender and/or the traveler."""
        if role == "sender":
            qs = DeliveryRequest.objects.filter(sender=user)
        elif role == "traveler":
            qs = DeliveryRequest.objects.filter(traveler=user)
        else:
            qs = DeliveryRequest.objects.filter(Q(sender=user) | Q(traveler=user))
        if status:
            qs = qs.filter(status=normalize_status(status))
        return qs.select_related("sender", "traveler", "package", "trip")

    # =========================================================================
    # Traveler decisions
    # =========================================================================

    @staticmethod
    def accept_request(
        request_id: uuid.UUID,
        actor: User,
        expected_version: int | None = None,
    ) -> DeliveryRequest:
        """
        pending -> accepted, taking the package weight off the trip.

        Raises:
            NotRequestParticipant: If actor is not the traveler
            InvalidTransition: If the request is not pending
            InsufficientCapacity: If the trip cannot carry the package
        """
        with locked_request(request_id, expected_version) as request:
            _require_traveler(request, actor, "accept this request")
            previous = request.status
            apply_transition(request, "accept")

            if request.trip_id:
                trip = Trip.objects.select_for_update().get(pk=request.trip_id)
                weight = request.package.weight_kg
                if trip.available_kg < weight:
                    raise InsufficientCapacity(
                        "Trip does not have enough capacity for this package",
                        details={
                            "trip_id": str(trip.id),
                            "available_kg": str(trip.available_kg),
                            "required_kg": str(weight),
                        },
                    )
                trip.available_kg = trip.available_kg - weight
                trip.save(update_fields=["available_kg", "updated_at"])

            request.save()
            _record_movement(request, actor, notes="Request accepted")
            notify(request, RequestEvent.ACCEPTED)

        _log_transition(request, previous, actor)
        return request

    @staticmethod
    def reject_request(
        request_id: uuid.UUID,
        actor: User,
        reason: str = "",
    ) -> DeliveryRequest:
        """
        pending -> rejected. Any escrow already held is voided.

        Raises:
            NotRequestParticipant: If actor is not the traveler
            InvalidTransition: If the request is not pending
        """
        with locked_request(request_id) as request:
            _require_traveler(request, actor, "reject this request")
            previous = request.status
            apply_transition(request, "reject")
            request.save()

            if request.escrow_held and not request.escrow_cleared:
                EscrowService.remove_for_request(
                    request, reason or "Request rejected", created_by=str(actor.pk)
                )

            _record_movement(request, actor, notes=reason or "Request rejected")
            notify(request, RequestEvent.REJECTED)

        _log_transition(request, previous, actor)
        return request

    # =========================================================================
    # Operational transitions
    # =========================================================================

    @staticmethod
    def transition_status(
        request_id: uuid.UUID,
        actor: User,
        new_status: str,
        location: str = "",
        notes: str = "",
        expected_version: int | None = None,
    ) -> DeliveryRequest:
        """
        Move a request to new_status on behalf of actor.

        Aliases are accepted ("intransit", "delivered"). Completion is routed
        to confirm_received, cancellation to cancel_request, acceptance and
        rejection to their own operations.

        Raises:
            ValidationError: Unknown status
            NotRequestParticipant: Wrong actor for the transition
            InvalidTransition: Not allowed from the current status
            PaymentNotSettled: Pickup before payment and escrow hold
        """
        status = normalize_status(new_status)

        if status == RequestStatus.COMPLETED:
            return RequestService.confirm_received(request_id, actor, location, notes)
        if status == RequestStatus.CANCELLED:
            return RequestService.cancel_request(request_id, actor, notes, expected_version)
        if status == RequestStatus.ACCEPTED:
            return RequestService.accept_request(request_id, actor, expected_version)
        if status == RequestStatus.REJECTED:
            return RequestService.reject_request(request_id, actor, notes)

        with locked_request(request_id, expected_version) as request:
            _require_traveler(request, actor, f"mark this request {status}")
            transition_name = TRAVELER_TRANSITIONS.get(status)
            if transition_name is None:
                # Only PENDING is left; requests never go back to it.
                raise InvalidTransition(
                    f"Request {request.id} cannot return to {status}",
                    details={
                        "request_id": str(request.id),
                        "current_state": request.status,
                        "transition": status,
                    },
                )

            if status == RequestStatus.PICKED_UP and not (
                request.payment_status == PaymentStatus.PAID and request.escrow_held
            ):
                raise PaymentNotSettled(
                    "Package cannot be picked up before payment is confirmed",
                    details={
                        "request_id": str(request.id),
                        "payment_status": request.payment_status,
                        "escrow_held": request.escrow_held,
                    },
                )

            previous = request.status
            apply_transition(request, transition_name)
            request.save()
            _record_movement(request, actor, location=location, notes=notes)
            notify(request, RequestEvent.STATUS_CHANGED)

        _log_transition(request, previous, actor)
        return request

    @staticmethod
    def confirm_received(
        request_id: uuid.UUID,
        actor: User,
        location: str = "",
        notes: str = "",
    ) -> DeliveryRequest:
        """
        Sender confirms receipt: request completed, escrow released to the
        traveler.

        A second call is a no-op returning the request as it is.

        Raises:
            NotRequestParticipant: If actor is not the sender
            DisputeOpen: If the request has an open dispute
            InvalidTransition: If the package was not picked up yet, or the
                request is cancelled/rejected
        """
        with locked_request(request_id) as request:
            _require_sender(request, actor, "confirm receipt")

            if request.sender_received:
                logger.info(
                    "Receipt already confirmed, ignoring",
                    extra={"request_id": str(request.id)},
                )
                return request

            if request.has_open_dispute:
                raise DisputeOpen(
                    "Receipt cannot be confirmed while a dispute is open",
                    details={"request_id": str(request.id)},
                )

            previous = request.status
            apply_transition(request, "complete")
            request.save()
            EscrowService.release_for_request(request, created_by=str(actor.pk))
            _record_movement(
                request, actor, location=location, notes=notes or "Receipt confirmed"
            )
            notify(request, RequestEvent.COMPLETED)

        _log_transition(request, previous, actor)
        return request

    @staticmethod
    def cancel_request(
        request_id: uuid.UUID,
        actor: User,
        reason: str = "",
        expected_version: int | None = None,
    ) -> DeliveryRequest:
        """
        Cancel a non-terminal request.

        Held escrow is voided (not credited back); trip capacity taken by
        acceptance is given back.

        Raises:
            NotRequestParticipant: If actor is neither sender nor traveler
            AlreadyCancelled: If the request is already cancelled
            DisputeOpen: If the request has an open dispute
            InvalidTransition: If the request is completed or rejected
        """
        with locked_request(request_id, expected_version) as request:
            if not (actor.is_staff or request.is_participant(actor)):
                raise NotRequestParticipant(
                    "Only the sender or traveler can cancel this request",
                    details={"request_id": str(request.id)},
                )
            if request.status == RequestStatus.CANCELLED:
                raise AlreadyCancelled(
                    f"Request {request.id} is already cancelled",
                    details={"request_id": str(request.id)},
                )
            if request.has_open_dispute:
                raise DisputeOpen(
                    "Request cannot be cancelled while a dispute is open",
                    details={"request_id": str(request.id)},
                )

            previous = request.status
            apply_transition(request, "cancel", reason)
            request.save()

            if request.trip_id and previous != RequestStatus.PENDING:
                trip = Trip.objects.select_for_update().get(pk=request.trip_id)
                trip.available_kg = trip.available_kg + Decimal(request.package.weight_kg)
                trip.save(update_fields=["available_kg", "updated_at"])

            if request.escrow_held and not request.escrow_cleared:
                EscrowService.remove_for_request(
                    request, reason or "Request cancelled", created_by=str(actor.pk)
                )

            _record_movement(request, actor, notes=reason or "Request cancelled")
            notify(request, RequestEvent.CANCELLED)

        _log_transition(request, previous, actor)
        return request
