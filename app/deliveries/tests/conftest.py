"""
Pytest fixtures for delivery tests.

Sections:
    - Participants: sender, traveler, outsider, admin
    - Requests in each stage of the lifecycle, driven through the services
      so payment and escrow state are real ledger state
    - API clients
"""

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory
from deliveries.models import RequestStatus
from deliveries.services import RequestService
from deliveries.tests.factories import PackageFactory, TripFactory
from deliveries.tests.flows import advance, pay


# =============================================================================
# Participants
# =============================================================================


@pytest.fixture
def sender(db):
    return UserFactory()


@pytest.fixture
def traveler(db):
    return UserFactory()


@pytest.fixture
def outsider(db):
    """A verified user with no part in the request."""
    return UserFactory()


@pytest.fixture
def admin_user(db):
    return UserFactory(is_staff=True)


@pytest.fixture
def trip(traveler):
    return TripFactory(traveler=traveler)


@pytest.fixture
def package(sender):
    return PackageFactory(sender=sender)


# =============================================================================
# Requests
# =============================================================================

@pytest.fixture
def pending_request(sender, traveler, trip, package):
    """amount 5000, no insurance, on the traveler's trip."""
    return RequestService.create_request(
        sender,
        traveler_id=traveler.id,
        package_id=package.id,
        amount_cents=5000,
        trip_id=trip.id,
    )


@pytest.fixture
def accepted_request(pending_request, traveler):
    return RequestService.accept_request(pending_request.id, traveler)


@pytest.fixture
def paid_request(accepted_request):
    """Accepted, paid and held in escrow."""
    return pay(accepted_request)


@pytest.fixture
def in_transit_request(paid_request, traveler):
    return advance(
        paid_request, traveler, RequestStatus.PICKED_UP, RequestStatus.IN_TRANSIT
    )


@pytest.fixture
def delivering_request(in_transit_request, traveler):
    return advance(in_transit_request, traveler, RequestStatus.DELIVERING)


# =============================================================================
# API Clients
# =============================================================================


def client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def sender_client(sender):
    return client_for(sender)


@pytest.fixture
def traveler_client(traveler):
    return client_for(traveler)


@pytest.fixture
def outsider_client(outsider):
    return client_for(outsider)


@pytest.fixture
def admin_client(admin_user):
    return client_for(admin_user)
