"""
Test configuration and fixtures for authentication tests.

Usage:
    def test_example(user, authenticated_client):
        response = authenticated_client.get('/api/v1/auth/me/')
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.models import KYCStatus
from authentication.tests.factories import UserFactory


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def user(db):
    """A KYC verified user."""
    return UserFactory()


@pytest.fixture
def pending_kyc_user(db):
    """A user whose identity has not been verified yet."""
    return UserFactory(kyc_status=KYCStatus.PENDING)


@pytest.fixture
def admin_user(db):
    """A staff user allowed to use admin endpoints."""
    return UserFactory(is_staff=True)


@pytest.fixture
def authenticated_client(user):
    """API client authenticated as `user` with a JWT bearer token."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


@pytest.fixture
def admin_client(admin_user):
    """API client authenticated as a staff user."""
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client
