"""
Pytest fixtures for provider adapter tests.

Stripe calls go to a MagicMock StripeClient injected into the adapter and
are answered with MockStripeObject. Paystack calls go through a
MagicMock session whose request() returns canned responses.

Sections:
    - Mock Stripe Objects
    - Stripe Error Fixtures
    - Paystack Fixtures
"""

import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any

import pytest
import stripe

from payments.adapters import PaystackAdapter, StripeAdapter


# =============================================================================
# Mock Stripe Objects
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with to_dict support."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@pytest.fixture
def stripe_client(mocker):
    """MagicMock StripeClient; tests set return values on client.v1.* services."""
    return mocker.MagicMock()


@pytest.fixture
def stripe_adapter(stripe_client):
    return StripeAdapter(
        api_key="sk_test_123",
        webhook_secret="whsec_test",
        timeout=5,
        client=stripe_client,
    )


@pytest.fixture
def mock_payment_intent():
    """Create a mock PaymentIntent response."""

    def _create(
        id: str = "pi_test123456",
        status: str = "requires_payment_method",
        amount: int = 5000,
        currency: str = "usd",
        client_secret: str = "pi_test123456_secret_abc123",
        last_payment_error: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_intent",
                "status": status,
                "amount": amount,
                "currency": currency,
                "client_secret": client_secret,
                "last_payment_error": last_payment_error,
                "metadata": {},
            }
        )

    return _create


@pytest.fixture
def mock_refund():
    """Create a mock Refund response."""

    def _create(
        id: str = "re_test123456",
        amount: int = 5000,
        status: str = "succeeded",
        payment_intent: str = "pi_test123456",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "refund",
                "amount": amount,
                "currency": "usd",
                "status": status,
                "payment_intent": payment_intent,
            }
        )

    return _create


@pytest.fixture
def mock_event():
    """Create a mock webhook Event."""

    def _create(
        event_type: str = "payment_intent.succeeded",
        obj: dict | None = None,
        id: str = "evt_test123",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "type": event_type,
                "data": {
                    "object": obj
                    or {
                        "id": "pi_test123456",
                        "object": "payment_intent",
                        "amount": 5000,
                        "amount_received": 5000,
                        "currency": "usd",
                    }
                },
            }
        )

    return _create


# =============================================================================
# Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def card_declined_error():
    error = stripe.CardError(
        message="Your card was declined.",
        param=None,
        code="card_declined",
    )
    error.decline_code = "generic_decline"
    return error


@pytest.fixture
def invalid_request_error():
    return stripe.InvalidRequestError(
        message="No such payment_intent: 'pi_missing'",
        param="id",
        code="resource_missing",
    )


@pytest.fixture
def signature_error():
    return stripe.SignatureVerificationError(
        message="Unable to verify webhook signature.",
        sig_header="bad_signature",
    )


# =============================================================================
# Paystack Fixtures
# =============================================================================


PAYSTACK_SECRET = "sk_test_paystack"


@pytest.fixture
def paystack_session(mocker):
    return mocker.MagicMock()


@pytest.fixture
def paystack_adapter(paystack_session):
    return PaystackAdapter(
        secret_key=PAYSTACK_SECRET,
        base_url="https://api.paystack.test/",
        timeout=5,
        session=paystack_session,
    )


@pytest.fixture
def paystack_response(mocker):
    """Build a mock requests.Response carrying a Paystack JSON body."""

    def _create(data: dict | None = None, status_code: int = 200, status: bool = True, message: str = "ok"):
        response = mocker.MagicMock()
        response.status_code = status_code
        response.reason = "OK" if status_code < 400 else "Error"
        response.json.return_value = {"status": status, "message": message, "data": data or {}}
        return response

    return _create


@pytest.fixture
def sign_paystack():
    """Sign a payload the way Paystack does (HMAC-SHA512 of the raw body)."""

    def _sign(body: dict) -> tuple[bytes, str]:
        payload = json.dumps(body).encode()
        signature = hmac.new(PAYSTACK_SECRET.encode(), payload, hashlib.sha512).hexdigest()
        return payload, signature

    return _sign
