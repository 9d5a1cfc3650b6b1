"""
Pytest fixtures for payment tests.

Participants and requests are built through the delivery services so that
payment, escrow and ledger state are real. Provider calls go to a
FakeProvider (see payments.tests.fakes and the root fake_provider fixture).

Usage:
    def test_refund(cancelled_paid_request, sender, fake_provider):
        refund = RefundService().request_refund(cancelled_paid_request.id, sender)
"""

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory
from deliveries.services import RequestService
from deliveries.tests.factories import PackageFactory
from deliveries.tests.flows import pay
from payments.adapters import ProviderRegistry
from payments.tests.fakes import FakeProvider


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def user(db):
    return UserFactory()


@pytest.fixture
def sender(db):
    return UserFactory()


@pytest.fixture
def traveler(db):
    return UserFactory()


@pytest.fixture
def admin_user(db):
    return UserFactory(is_staff=True)


# =============================================================================
# Providers
# =============================================================================


@pytest.fixture
def provider():
    """A FakeProvider passed explicitly to services."""
    return FakeProvider("stripe")


@pytest.fixture
def registry(provider):
    return ProviderRegistry({"stripe": provider})


# =============================================================================
# Delivery Requests
# =============================================================================


@pytest.fixture
def accepted_request(sender, traveler):
    """Accepted request for 5000 cents, no trip, no insurance."""
    package = PackageFactory(sender=sender)
    request = RequestService.create_request(sender, traveler.id, package.id, 5000)
    return RequestService.accept_request(request.id, traveler)


@pytest.fixture
def intent_request(accepted_request):
    """Accepted request with a recorded Stripe reference, still unpaid."""
    from payments.services import SettlementService

    return SettlementService().record_intent(
        accepted_request.id, "stripe", f"pi_{accepted_request.id.hex}"
    )


@pytest.fixture
def paid_request(accepted_request):
    return pay(accepted_request)


@pytest.fixture
def cancelled_paid_request(paid_request, sender):
    """Paid, then cancelled: 5000 cents sit in the void account."""
    return RequestService.cancel_request(paid_request.id, sender, "Plans changed")


# =============================================================================
# Redis
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """MagicMock Redis client for lock unit tests."""
    client = mocker.MagicMock()
    client.set.return_value = True
    client.eval.return_value = 1
    mocker.patch("payments.locks.get_redis_connection", return_value=client)
    return client


# =============================================================================
# API Clients
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    def build(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return build
