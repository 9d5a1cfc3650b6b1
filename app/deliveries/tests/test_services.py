"""
Tests for the delivery services.

Covers the request lifecycle end to end against the real ledger: creation
and pricing, traveler decisions and trip capacity, operational statuses,
receipt confirmation with escrow release, cancellation with escrow
removal, and the dispute gate.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.test import override_settings

from authentication.exceptions import KYCNotVerified
from authentication.models import KYCStatus, User
from authentication.tests.factories import UserFactory
from core.exceptions import PermissionDeniedError, ValidationError
from deliveries.exceptions import (
    AlreadyCancelled,
    DisputeAlreadyExists,
    DisputeNotFound,
    DisputeNotOpen,
    DisputeOpen,
    InsufficientCapacity,
    InvalidTransition,
    NotRequestParticipant,
    RequestCancelled,
    RequestNotFound,
)
from deliveries.models import (
    DeliveryRequest,
    DisputeStatus,
    MovementEvent,
    RequestStatus,
    Trip,
    TripStatus,
)
from deliveries.services import (
    DisputeService,
    PackageService,
    RequestService,
    TripService,
    normalize_status,
)
from deliveries.tests.factories import PackageFactory, TripFactory
from deliveries.tests.flows import advance, pay
from payments.exceptions import PaymentNotSettled, StaleRecordError
from payments.ledger import InvalidAmount, ledger
from payments.state_machines import PaymentStatus


def reload(request):
    """Fresh copy; FSM fields are protected so refresh_from_db is not usable."""
    return DeliveryRequest.objects.get(pk=request.pk)


# =============================================================================
# Trips & packages
# =============================================================================


class TestTripService:
    def test_create_trip(self, traveler):
        departure = TripFactory.build().departure_date
        trip = TripService.create_trip(
            traveler,
            from_location="Accra",
            to_location="Paris",
            departure_date=departure,
            arrival_date=departure + timedelta(days=1),
            available_kg=Decimal("10"),
            travel_means="airplane",
        )

        assert trip.traveler == traveler
        assert trip.status == TripStatus.ACTIVE

    def test_arrival_before_departure_rejected(self, traveler):
        departure = TripFactory.build().departure_date
        with pytest.raises(ValidationError) as exc_info:
            TripService.create_trip(
                traveler,
                from_location="Accra",
                to_location="Paris",
                departure_date=departure,
                arrival_date=departure - timedelta(days=1),
                available_kg=Decimal("10"),
                travel_means="airplane",
            )
        assert exc_info.value.error_code == "INVALID_TRIP_DATES"

    def test_only_owner_updates(self, trip, outsider):
        with pytest.raises(PermissionDeniedError):
            TripService.update_trip(trip.id, outsider, available_kg=Decimal("1"))

    def test_update_rejects_unknown_fields(self, trip, traveler):
        with pytest.raises(ValidationError):
            TripService.update_trip(trip.id, traveler, traveler_id=traveler.id)

    def test_search_matches_active_trips_only(self, traveler):
        match = TripFactory(traveler=traveler, from_location="Lagos", to_location="London")
        TripFactory(traveler=traveler, to_location="Berlin")
        TripFactory(traveler=traveler, status=TripStatus.CANCELLED)

        results = list(TripService.search_trips(from_location="lag", to_location="lond"))

        assert results == [match]

    def test_reviews_are_additive(self, trip, sender):
        TripService.add_review(trip.id, sender, 4)
        TripService.add_review(trip.id, sender, 5)

        assert trip.reviews.count() == 2
        assert trip.average_rating == Decimal("4.50")

    @pytest.mark.parametrize("rating", [-1, 6])
    def test_rating_out_of_range(self, trip, sender, rating):
        with pytest.raises(ValidationError) as exc_info:
            TripService.add_review(trip.id, sender, rating)
        assert exc_info.value.error_code == "INVALID_RATING"


class TestPackageService:
    def test_weight_must_be_positive(self, sender):
        with pytest.raises(ValidationError):
            PackageService.create_package(
                sender,
                from_country="NG",
                from_city="Lagos",
                to_country="UK",
                to_city="London",
                weight_kg=Decimal("0"),
                receiver_name="Ada",
                receiver_phone="123",
            )


# =============================================================================
# Creation
# =============================================================================


class TestCreateRequest:
    def test_creates_pending_unpaid_request(self, pending_request, sender):
        assert pending_request.status == RequestStatus.PENDING
        assert pending_request.payment_status == PaymentStatus.UNPAID
        assert pending_request.total_cents == 5000
        assert pending_request.escrow_held is False

        events = list(pending_request.movement_events.all())
        assert [e.status for e in events] == [RequestStatus.PENDING]
        assert events[0].actor == sender

    def test_requires_kyc(self, traveler, package):
        sender = package.sender
        User.objects.filter(pk=sender.pk).update(kyc_status=KYCStatus.PENDING)
        sender.refresh_from_db()

        with pytest.raises(KYCNotVerified):
            RequestService.create_request(sender, traveler.id, package.id, 5000)

    def test_amount_must_be_positive(self, sender, traveler, package):
        with pytest.raises(InvalidAmount):
            RequestService.create_request(sender, traveler.id, package.id, 0)

    def test_cannot_deliver_to_self(self, sender, package):
        with pytest.raises(ValidationError) as exc_info:
            RequestService.create_request(sender, sender.id, package.id, 5000)
        assert exc_info.value.error_code == "SELF_DELIVERY"

    def test_package_must_belong_to_sender(self, sender, traveler):
        other_package = PackageFactory()
        with pytest.raises(PermissionDeniedError):
            RequestService.create_request(sender, traveler.id, other_package.id, 5000)

    def test_trip_must_belong_to_traveler(self, sender, traveler, package):
        foreign_trip = TripFactory()
        with pytest.raises(ValidationError) as exc_info:
            RequestService.create_request(
                sender, traveler.id, package.id, 5000, trip_id=foreign_trip.id
            )
        assert exc_info.value.error_code == "TRIP_TRAVELER_MISMATCH"

    @override_settings(INSURANCE_RATE_PERCENT=10)
    def test_insurance_cost_defaults_to_rate(self, sender, traveler, package):
        request = RequestService.create_request(
            sender, traveler.id, package.id, 5000, insurance=True
        )
        assert request.insurance_cost_cents == 500
        assert request.total_cents == 5500

    def test_insurance_cost_ignored_without_insurance(self, sender, traveler, package):
        request = RequestService.create_request(
            sender, traveler.id, package.id, 5000, insurance_cost_cents=900
        )
        assert request.insurance_cost_cents == 0

    @override_settings(REFERRAL_DISCOUNT_PERCENT=10)
    def test_referral_discount_applied_once(self, traveler):
        referrer = UserFactory()
        sender = UserFactory(referred_by=referrer)
        package = PackageFactory(sender=sender)

        first = RequestService.create_request(
            sender, traveler.id, package.id, 5000, use_referral_discount=True
        )
        second = RequestService.create_request(
            sender, traveler.id, package.id, 5000, use_referral_discount=True
        )

        assert first.referral_discount_cents == 500
        assert first.amount_cents == 4500
        assert second.referral_discount_cents == 0
        assert second.amount_cents == 5000


# =============================================================================
# Traveler decisions
# =============================================================================


class TestAcceptReject:
    def test_accept_takes_trip_capacity(self, accepted_request, trip):
        trip = Trip.objects.get(pk=trip.pk)
        assert accepted_request.status == RequestStatus.ACCEPTED
        assert accepted_request.accepted_at is not None
        assert trip.available_kg == Decimal("17.50")

    def test_only_traveler_accepts(self, pending_request, sender):
        with pytest.raises(NotRequestParticipant):
            RequestService.accept_request(pending_request.id, sender)

    def test_accept_twice_is_invalid(self, accepted_request, traveler):
        with pytest.raises(InvalidTransition):
            RequestService.accept_request(accepted_request.id, traveler)

    def test_accept_without_capacity(self, sender, traveler):
        trip = TripFactory(traveler=traveler, available_kg=Decimal("1.00"))
        package = PackageFactory(sender=sender, weight_kg=Decimal("2.00"))
        request = RequestService.create_request(
            sender, traveler.id, package.id, 5000, trip_id=trip.id
        )

        with pytest.raises(InsufficientCapacity):
            RequestService.accept_request(request.id, traveler)

        assert reload(request).status == RequestStatus.PENDING
        assert Trip.objects.get(pk=trip.pk).available_kg == Decimal("1.00")

    def test_accept_with_stale_version(self, pending_request, traveler):
        with pytest.raises(StaleRecordError):
            RequestService.accept_request(
                pending_request.id, traveler, expected_version=pending_request.version + 5
            )

    def test_reject(self, pending_request, traveler):
        request = RequestService.reject_request(pending_request.id, traveler, "Too heavy")

        assert request.status == RequestStatus.REJECTED
        assert request.movement_events.last().notes == "Too heavy"

    def test_unknown_request(self, traveler):
        with pytest.raises(RequestNotFound):
            RequestService.accept_request(
                "00000000-0000-0000-0000-000000000000", traveler
            )


# =============================================================================
# Operational statuses
# =============================================================================


class TestTransitionStatus:
    def test_pickup_requires_payment(self, accepted_request, traveler):
        with pytest.raises(PaymentNotSettled):
            RequestService.transition_status(
                accepted_request.id, traveler, RequestStatus.PICKED_UP
            )

    def test_full_route_records_movements(self, paid_request, traveler):
        request = RequestService.transition_status(
            paid_request.id, traveler, "picked_up", location="Lagos"
        )
        request = advance(request, traveler, "intransit", "customs", "delivering")

        assert request.status == RequestStatus.DELIVERING
        statuses = list(request.movement_events.values_list("status", flat=True))
        assert statuses[-4:] == [
            RequestStatus.PICKED_UP,
            RequestStatus.IN_TRANSIT,
            RequestStatus.CUSTOMS,
            RequestStatus.DELIVERING,
        ]
        assert request.movement_events.get(status=RequestStatus.PICKED_UP).location == "Lagos"

    def test_customs_is_optional(self, in_transit_request, traveler):
        request = advance(in_transit_request, traveler, RequestStatus.DELIVERING)
        assert request.status == RequestStatus.DELIVERING

    def test_cannot_skip_pickup(self, paid_request, traveler):
        with pytest.raises(InvalidTransition):
            RequestService.transition_status(
                paid_request.id, traveler, RequestStatus.IN_TRANSIT
            )

    def test_sender_cannot_move_package(self, paid_request, sender):
        with pytest.raises(NotRequestParticipant):
            RequestService.transition_status(
                paid_request.id, sender, RequestStatus.PICKED_UP
            )

    def test_cannot_return_to_pending(self, accepted_request, traveler):
        with pytest.raises(InvalidTransition):
            RequestService.transition_status(
                accepted_request.id, traveler, RequestStatus.PENDING
            )

    def test_unknown_status(self, accepted_request, traveler):
        with pytest.raises(ValidationError):
            RequestService.transition_status(accepted_request.id, traveler, "lost")

    def test_delivered_alias_confirms_receipt(self, delivering_request, sender):
        request = RequestService.transition_status(
            delivering_request.id, sender, "delivered"
        )
        assert request.status == RequestStatus.COMPLETED

    def test_refused_transition_leaves_no_trace(self, paid_request, traveler):
        before = MovementEvent.objects.filter(request=paid_request).count()

        with pytest.raises(InvalidTransition):
            RequestService.transition_status(
                paid_request.id, traveler, RequestStatus.DELIVERING
            )

        assert MovementEvent.objects.filter(request=paid_request).count() == before
        assert reload(paid_request).status == RequestStatus.ACCEPTED


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("intransit", RequestStatus.IN_TRANSIT),
        ("delivered", RequestStatus.COMPLETED),
        ("customs", RequestStatus.CUSTOMS),
    ],
)
def test_normalize_status(value, expected):
    assert normalize_status(value) == expected


# =============================================================================
# Payment and escrow through the lifecycle
# =============================================================================


class TestEscrowLifecycle:
    def test_payment_holds_total_on_traveler(self, paid_request, traveler):
        assert paid_request.payment_status == PaymentStatus.PAID
        assert paid_request.escrow_held is True
        assert paid_request.escrow_amount_cents == 5000
        assert ledger.get_user_balances(traveler.id) == (0, 5000)

    def test_cancel_voids_escrow(self, paid_request, sender, traveler):
        request = RequestService.cancel_request(paid_request.id, sender, "Changed plans")

        assert request.status == RequestStatus.CANCELLED
        assert request.escrow_cleared is True
        assert request.escrow_released is False
        assert ledger.get_user_balances(traveler.id) == (0, 0)

    def test_second_cancel_fails(self, paid_request, sender):
        RequestService.cancel_request(paid_request.id, sender)

        with pytest.raises(AlreadyCancelled):
            RequestService.cancel_request(paid_request.id, sender)

    def test_cancel_restores_trip_capacity(self, accepted_request, sender, trip):
        RequestService.cancel_request(accepted_request.id, sender)
        assert Trip.objects.get(pk=trip.pk).available_kg == Decimal("20.00")

    def test_cancel_pending_keeps_trip_capacity(self, pending_request, sender, trip):
        RequestService.cancel_request(pending_request.id, sender)
        assert Trip.objects.get(pk=trip.pk).available_kg == Decimal("20.00")

    def test_outsider_cannot_cancel(self, pending_request, outsider):
        with pytest.raises(NotRequestParticipant):
            RequestService.cancel_request(pending_request.id, outsider)

    def test_completed_request_cannot_be_cancelled(self, delivering_request, sender):
        RequestService.confirm_received(delivering_request.id, sender)
        with pytest.raises(InvalidTransition):
            RequestService.cancel_request(delivering_request.id, sender)

    def test_confirm_received_releases_escrow(self, delivering_request, sender, traveler):
        request = RequestService.confirm_received(delivering_request.id, sender)

        assert request.status == RequestStatus.COMPLETED
        assert request.sender_received is True
        assert request.escrow_released is True
        assert request.escrow_cleared is True
        assert ledger.get_user_balances(traveler.id) == (5000, 0)

    def test_confirm_received_twice_is_noop(self, delivering_request, sender, traveler):
        RequestService.confirm_received(delivering_request.id, sender)
        request = RequestService.confirm_received(delivering_request.id, sender)

        assert request.status == RequestStatus.COMPLETED
        assert ledger.get_user_balances(traveler.id) == (5000, 0)

    def test_only_sender_confirms(self, delivering_request, traveler):
        with pytest.raises(NotRequestParticipant):
            RequestService.confirm_received(delivering_request.id, traveler)

    def test_confirm_before_pickup_is_invalid(self, paid_request, sender):
        with pytest.raises(InvalidTransition):
            RequestService.confirm_received(paid_request.id, sender)
        assert reload(paid_request).escrow_released is False

    def test_insured_request_holds_amount_plus_insurance(self, sender, traveler, package):
        request = RequestService.create_request(
            sender, traveler.id, package.id, 5000, insurance=True, insurance_cost_cents=300
        )
        request = RequestService.accept_request(request.id, traveler)
        request = pay(request)

        assert request.escrow_amount_cents == 5300
        assert ledger.get_user_balances(traveler.id) == (0, 5300)


# =============================================================================
# Disputes
# =============================================================================


class TestDisputes:
    def test_dispute_blocks_receipt_until_resolved(
        self, paid_request, sender, traveler, admin_user
    ):
        request = advance(paid_request, traveler, RequestStatus.PICKED_UP)
        DisputeService.raise_dispute(request.id, sender, "Package looks opened")

        with pytest.raises(DisputeOpen):
            RequestService.confirm_received(request.id, sender)
        assert ledger.get_user_balances(traveler.id) == (0, 5000)

        dispute = DisputeService.resolve_dispute(
            request.id, admin_user, DisputeStatus.RESOLVED, "Contents checked"
        )
        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.resolved_by == admin_user

        request = RequestService.confirm_received(request.id, sender)
        assert request.status == RequestStatus.COMPLETED
        assert ledger.get_user_balances(traveler.id) == (5000, 0)

    def test_dispute_blocks_cancel(self, paid_request, sender, traveler):
        DisputeService.raise_dispute(paid_request.id, traveler, "Sender unreachable")

        with pytest.raises(DisputeOpen):
            RequestService.cancel_request(paid_request.id, sender)

    def test_rejected_dispute_unblocks(self, in_transit_request, sender, admin_user):
        DisputeService.raise_dispute(in_transit_request.id, sender, "Late")
        DisputeService.resolve_dispute(
            in_transit_request.id, admin_user, DisputeStatus.REJECTED
        )

        request = RequestService.confirm_received(in_transit_request.id, sender)
        assert request.status == RequestStatus.COMPLETED

    def test_one_dispute_per_request(self, paid_request, sender, traveler, admin_user):
        DisputeService.raise_dispute(paid_request.id, sender, "First")
        DisputeService.resolve_dispute(paid_request.id, admin_user, DisputeStatus.RESOLVED)

        with pytest.raises(DisputeAlreadyExists):
            DisputeService.raise_dispute(paid_request.id, traveler, "Second")

    def test_cancelled_request_cannot_be_disputed(self, pending_request, sender):
        RequestService.cancel_request(pending_request.id, sender)
        with pytest.raises(RequestCancelled):
            DisputeService.raise_dispute(pending_request.id, sender, "Refund me")

    def test_completed_request_cannot_be_disputed(self, delivering_request, sender):
        RequestService.confirm_received(delivering_request.id, sender)
        with pytest.raises(InvalidTransition):
            DisputeService.raise_dispute(delivering_request.id, sender, "Too late")

    def test_reason_required(self, paid_request, sender):
        with pytest.raises(ValidationError):
            DisputeService.raise_dispute(paid_request.id, sender, "   ")

    def test_outsider_cannot_raise(self, paid_request, outsider):
        with pytest.raises(NotRequestParticipant):
            DisputeService.raise_dispute(paid_request.id, outsider, "Nosy")

    def test_only_admin_resolves(self, paid_request, sender):
        DisputeService.raise_dispute(paid_request.id, sender, "Broken")
        with pytest.raises(PermissionDeniedError):
            DisputeService.resolve_dispute(paid_request.id, sender, DisputeStatus.RESOLVED)

    def test_decision_must_be_terminal(self, paid_request, sender, admin_user):
        DisputeService.raise_dispute(paid_request.id, sender, "Broken")
        with pytest.raises(ValidationError):
            DisputeService.resolve_dispute(paid_request.id, admin_user, DisputeStatus.OPEN)

    def test_decided_dispute_cannot_be_decided_again(
        self, paid_request, sender, admin_user
    ):
        DisputeService.raise_dispute(paid_request.id, sender, "Broken")
        DisputeService.resolve_dispute(paid_request.id, admin_user, DisputeStatus.REJECTED)

        with pytest.raises(DisputeNotOpen):
            DisputeService.resolve_dispute(
                paid_request.id, admin_user, DisputeStatus.RESOLVED
            )

    def test_resolve_without_dispute(self, paid_request, admin_user):
        with pytest.raises(DisputeNotFound):
            DisputeService.resolve_dispute(
                paid_request.id, admin_user, DisputeStatus.RESOLVED
            )


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    def test_list_by_role(self, pending_request, sender, traveler):
        assert list(RequestService.list_requests(sender, role="sender")) == [pending_request]
        assert list(RequestService.list_requests(sender, role="traveler")) == []
        assert list(RequestService.list_requests(traveler)) == [pending_request]

    def test_list_by_status_alias(self, in_transit_request, sender):
        assert list(RequestService.list_requests(sender, status="intransit")) == [
            in_transit_request
        ]

    def test_outsider_cannot_read(self, pending_request, outsider):
        with pytest.raises(NotRequestParticipant):
            RequestService.get_request(pending_request.id, outsider)

    def test_staff_can_read(self, pending_request, admin_user):
        assert RequestService.get_request(pending_request.id, admin_user) == pending_request
