"""
Tests for delivery API views.

Tests cover:
- Trips, search and reviews
- Packages
- Request lifecycle endpoints and their error payloads
- Disputes
- Payment intents
"""

from datetime import timedelta

import pytest
from django.urls import reverse
from rest_framework import status

from deliveries.models import DeliveryRequest, DisputeStatus, RequestStatus
from deliveries.tests.factories import PackageFactory, TripFactory
from payments.ledger import ledger
from payments.state_machines import PaymentStatus


def request_url(name, request):
    return reverse(f"deliveries:{name}", kwargs={"request_id": request.id})


# =============================================================================
# Trips
# =============================================================================


class TestTripViews:
    def test_create_trip(self, traveler_client, traveler):
        departure = TripFactory.build().departure_date
        response = traveler_client.post(
            reverse("deliveries:trip-list"),
            {
                "from_location": "Nairobi",
                "to_location": "Dubai",
                "departure_date": departure.isoformat(),
                "arrival_date": (departure + timedelta(days=1)).isoformat(),
                "available_kg": "12.00",
                "travel_means": "airplane",
            },
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["from_location"] == "Nairobi"
        assert traveler.trips.count() == 1

    def test_create_trip_with_bad_dates(self, traveler_client):
        departure = TripFactory.build().departure_date
        response = traveler_client.post(
            reverse("deliveries:trip-list"),
            {
                "from_location": "Nairobi",
                "to_location": "Dubai",
                "departure_date": departure.isoformat(),
                "arrival_date": (departure - timedelta(days=2)).isoformat(),
                "available_kg": "12.00",
                "travel_means": "airplane",
            },
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "INVALID_TRIP_DATES"

    def test_requires_authentication(self, api_client):
        response = api_client.get(reverse("deliveries:trip-list"))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_other_traveler_cannot_update(self, outsider_client, trip):
        response = outsider_client.patch(
            reverse("deliveries:trip-detail", kwargs={"trip_id": trip.id}),
            {"available_kg": "1.00"},
            format="json",
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_search(self, sender_client, trip):
        response = sender_client.get(
            reverse("deliveries:trip-search"), {"from_location": "lagos"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert [t["id"] for t in response.data] == [str(trip.id)]

    def test_review(self, sender_client, trip):
        url = reverse("deliveries:trip-reviews", kwargs={"trip_id": trip.id})
        response = sender_client.post(url, {"rating": 4, "comment": "On time"}, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["rating"] == 4

    def test_review_rating_out_of_range(self, sender_client, trip):
        url = reverse("deliveries:trip-reviews", kwargs={"trip_id": trip.id})
        response = sender_client.post(url, {"rating": 9}, format="json")
        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestPackageViews:
    def test_create_and_list(self, sender_client, sender):
        response = sender_client.post(
            reverse("deliveries:package-list"),
            {
                "from_country": "Nigeria",
                "from_city": "Lagos",
                "to_country": "United Kingdom",
                "to_city": "London",
                "weight_kg": "3.20",
                "receiver_name": "Ada Obi",
                "receiver_phone": "+447000000000",
            },
            format="json",
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["sender"] == sender.id

        PackageFactory()  # someone else's
        listing = sender_client.get(reverse("deliveries:package-list"))
        assert len(listing.data) == 1


# =============================================================================
# Requests
# =============================================================================


class TestRequestViews:
    def test_create_request(self, sender_client, traveler, package, trip):
        response = sender_client.post(
            reverse("deliveries:request-list"),
            {
                "traveler_id": str(traveler.id),
                "package_id": str(package.id),
                "trip_id": str(trip.id),
                "amount_cents": 5000,
                "insurance": True,
                "insurance_cost_cents": 250,
            },
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["status"] == RequestStatus.PENDING
        assert response.data["payment_status"] == PaymentStatus.UNPAID
        assert response.data["total_cents"] == 5250
        assert len(response.data["movement_events"]) == 1

    def test_create_request_unverified_sender(self, sender_client, sender, traveler, package):
        sender.kyc_status = "pending"
        sender.save(update_fields=["kyc_status"])

        response = sender_client.post(
            reverse("deliveries:request-list"),
            {
                "traveler_id": str(traveler.id),
                "package_id": str(package.id),
                "amount_cents": 5000,
            },
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_list_by_role(self, traveler_client, pending_request):
        response = traveler_client.get(
            reverse("deliveries:request-list"), {"role": "traveler"}
        )
        assert [r["id"] for r in response.data] == [str(pending_request.id)]

    def test_detail_hidden_from_outsider(self, outsider_client, pending_request):
        response = outsider_client.get(request_url("request-detail", pending_request))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_request(self, sender_client):
        response = sender_client.get(
            reverse(
                "deliveries:request-detail",
                kwargs={"request_id": "00000000-0000-0000-0000-000000000000"},
            )
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_accept(self, traveler_client, pending_request):
        response = traveler_client.post(request_url("request-accept", pending_request))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == RequestStatus.ACCEPTED

    def test_accept_with_stale_version_conflicts(self, traveler_client, pending_request):
        response = traveler_client.post(
            request_url("request-accept", pending_request),
            {"version": pending_request.version + 1},
            format="json",
        )
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_sender_cannot_accept(self, sender_client, pending_request):
        response = sender_client.post(request_url("request-accept", pending_request))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_reject(self, traveler_client, pending_request):
        response = traveler_client.post(
            request_url("request-reject", pending_request),
            {"reason": "Out of space"},
            format="json",
        )
        assert response.data["status"] == RequestStatus.REJECTED

    def test_pickup_before_payment_conflicts(self, traveler_client, accepted_request):
        response = traveler_client.post(
            request_url("request-status", accepted_request),
            {"status": "picked_up"},
            format="json",
        )
        assert response.status_code == status.HTTP_409_CONFLICT

    def test_status_alias(self, traveler_client, paid_request, traveler):
        traveler_client.post(
            request_url("request-status", paid_request),
            {"status": "picked_up", "location": "Lagos airport"},
            format="json",
        )
        response = traveler_client.post(
            request_url("request-status", paid_request),
            {"status": "intransit"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == RequestStatus.IN_TRANSIT

    def test_unknown_status(self, traveler_client, paid_request):
        response = traveler_client.post(
            request_url("request-status", paid_request),
            {"status": "teleported"},
            format="json",
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "INVALID_STATUS"

    def test_skipping_states_conflicts(self, traveler_client, paid_request):
        response = traveler_client.post(
            request_url("request-status", paid_request),
            {"status": "delivering"},
            format="json",
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "INVALID_TRANSITION"

    def test_confirm_received(self, sender_client, delivering_request, traveler):
        response = sender_client.post(
            request_url("request-confirm-received", delivering_request)
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == RequestStatus.COMPLETED
        assert response.data["escrow_released"] is True
        assert ledger.get_user_balances(traveler.id) == (5000, 0)

    def test_cancel_then_cancel_again(self, sender_client, paid_request):
        url = request_url("request-cancel", paid_request)

        first = sender_client.post(url, {"reason": "Trip changed"}, format="json")
        second = sender_client.post(url)

        assert first.status_code == status.HTTP_200_OK
        assert first.data["escrow_cleared"] is True
        assert second.status_code == status.HTTP_409_CONFLICT
        assert second.data["error_code"] == "ALREADY_CANCELLED"


# =============================================================================
# Disputes
# =============================================================================


class TestDisputeViews:
    def test_raise_and_read(self, sender_client, paid_request):
        url = request_url("request-dispute", paid_request)

        response = sender_client.post(url, {"reason": "Wrong item"}, format="json")
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["status"] == DisputeStatus.OPEN

        detail = sender_client.get(url)
        assert detail.data["reason"] == "Wrong item"

    def test_dispute_blocks_confirmation(self, sender_client, delivering_request):
        sender_client.post(
            request_url("request-dispute", delivering_request),
            {"reason": "Damaged"},
            format="json",
        )
        response = sender_client.post(
            request_url("request-confirm-received", delivering_request)
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "DISPUTE_OPEN"

    def test_resolve_requires_admin(self, sender_client, paid_request):
        sender_client.post(
            request_url("request-dispute", paid_request), {"reason": "Late"}, format="json"
        )
        response = sender_client.post(
            request_url("request-dispute-resolve", paid_request),
            {"decision": "resolved"},
            format="json",
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_admin_resolves(self, sender_client, admin_client, paid_request):
        sender_client.post(
            request_url("request-dispute", paid_request), {"reason": "Late"}, format="json"
        )
        response = admin_client.post(
            request_url("request-dispute-resolve", paid_request),
            {"decision": "rejected", "resolution_note": "Within the agreed window"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == DisputeStatus.REJECTED

    def test_missing_dispute(self, sender_client, paid_request):
        response = sender_client.get(request_url("request-dispute", paid_request))
        assert response.status_code == status.HTTP_404_NOT_FOUND


# =============================================================================
# Payment intents
# =============================================================================


class TestPaymentIntentView:
    def test_create_intent(self, sender_client, accepted_request, fake_provider):
        response = sender_client.post(
            request_url("request-payment-intent", accepted_request),
            {"provider": "stripe"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["amount_cents"] == 5000
        assert response.data["client_secret"] == "secret_123"

        request = DeliveryRequest.objects.get(pk=accepted_request.pk)
        assert request.payment_reference == response.data["reference"]
        assert request.payment_provider == "stripe"

    def test_record_existing_reference(self, sender_client, accepted_request):
        response = sender_client.post(
            request_url("request-payment-intent", accepted_request),
            {"provider": "paystack", "reference": "ps_ref_1"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["payment_reference"] == "ps_ref_1"
        assert response.data["payment_status"] == PaymentStatus.UNPAID

    def test_traveler_cannot_pay(self, traveler_client, accepted_request, fake_provider):
        response = traveler_client.post(
            request_url("request-payment-intent", accepted_request),
            {"provider": "stripe"},
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert fake_provider.intents == []

    def test_already_paid(self, sender_client, paid_request, fake_provider):
        response = sender_client.post(
            request_url("request-payment-intent", paid_request),
            {"provider": "stripe"},
            format="json",
        )
        assert response.status_code == status.HTTP_409_CONFLICT
