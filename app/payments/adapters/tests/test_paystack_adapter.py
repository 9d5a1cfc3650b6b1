"""
Tests for Paystack adapter.

Tests cover:
- Transaction initialize / verify / refund requests
- HTTP and transport error translation
- Webhook HMAC verification
"""

import pytest
import requests

from payments.adapters import CreateIntentParams
from payments.exceptions import (
    ProviderAuthenticationError,
    ProviderInvalidRequestError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    WebhookSignatureError,
)
from payments.state_machines import PaymentOutcome


class TestCreateIntent:
    def test_initializes_transaction(self, paystack_adapter, paystack_session, paystack_response):
        paystack_session.request.return_value = paystack_response(
            {
                "authorization_url": "https://checkout.paystack.com/abc",
                "reference": "intent:r1:1",
            }
        )

        result = paystack_adapter.create_intent(
            CreateIntentParams(
                amount_cents=5000,
                currency="ngn",
                idempotency_key="intent:r1:1",
                request_id="r1",
                customer_email="sender@example.com",
            )
        )

        assert result.reference == "intent:r1:1"
        assert result.authorization_url == "https://checkout.paystack.com/abc"
        method, url = paystack_session.request.call_args.args
        kwargs = paystack_session.request.call_args.kwargs
        assert (method, url) == ("POST", "https://api.paystack.test/transaction/initialize")
        assert kwargs["headers"] == {"Authorization": "Bearer sk_test_paystack"}
        assert kwargs["timeout"] == 5
        assert kwargs["json"]["currency"] == "NGN"
        assert kwargs["json"]["reference"] == "intent:r1:1"
        assert kwargs["json"]["metadata"] == {"delivery_request_id": "r1"}

    def test_requires_customer_email(self, paystack_adapter, paystack_session):
        with pytest.raises(ProviderInvalidRequestError):
            paystack_adapter.create_intent(
                CreateIntentParams(amount_cents=5000, currency="ngn", idempotency_key="k")
            )

        paystack_session.request.assert_not_called()


class TestVerify:
    @pytest.mark.parametrize(
        "status,outcome",
        [
            ("success", PaymentOutcome.PAID),
            ("failed", PaymentOutcome.FAILED),
            ("abandoned", PaymentOutcome.FAILED),
            ("reversed", PaymentOutcome.FAILED),
            ("ongoing", None),
            ("pending", None),
        ],
    )
    def test_status_mapping(
        self, paystack_adapter, paystack_session, paystack_response, status, outcome
    ):
        paystack_session.request.return_value = paystack_response(
            {"reference": "ps_1", "status": status, "amount": 5000, "currency": "NGN"}
        )

        result = paystack_adapter.verify("ps_1")

        assert result.outcome == outcome
        assert result.amount_cents == 5000
        assert result.currency == "ngn"
        assert paystack_session.request.call_args.args == (
            "GET",
            "https://api.paystack.test/transaction/verify/ps_1",
        )


class TestRefund:
    def test_posts_refund(self, paystack_adapter, paystack_session, paystack_response):
        paystack_session.request.return_value = paystack_response(
            {"id": 77, "amount": 2000, "status": "pending"}
        )

        result = paystack_adapter.refund("ps_1", 2000, "refund:r1")

        assert result.id == "77"
        assert result.status == "pending"
        assert paystack_session.request.call_args.kwargs["json"]["transaction"] == "ps_1"


# =============================================================================
# Error Translation
# =============================================================================


class TestErrors:
    @pytest.mark.parametrize(
        "exception,expected",
        [
            (requests.Timeout("read timed out"), ProviderTimeoutError),
            (requests.ConnectionError("refused"), ProviderUnavailableError),
        ],
    )
    def test_transport_failures_are_retryable(
        self, paystack_adapter, paystack_session, exception, expected
    ):
        paystack_session.request.side_effect = exception

        with pytest.raises(expected) as exc_info:
            paystack_adapter.verify("ps_1")

        assert exc_info.value.is_retryable is True

    @pytest.mark.parametrize(
        "status_code,expected",
        [
            (401, ProviderAuthenticationError),
            (429, ProviderRateLimitError),
            (502, ProviderUnavailableError),
            (404, ProviderInvalidRequestError),
        ],
    )
    def test_http_errors(
        self, paystack_adapter, paystack_session, paystack_response, status_code, expected
    ):
        paystack_session.request.return_value = paystack_response(
            status_code=status_code, status=False, message="Nope"
        )

        with pytest.raises(expected, match="Nope"):
            paystack_adapter.verify("ps_1")

    def test_status_false_body(self, paystack_adapter, paystack_session, paystack_response):
        paystack_session.request.return_value = paystack_response(
            status=False, message="Transaction reference not found"
        )

        with pytest.raises(ProviderInvalidRequestError, match="reference not found"):
            paystack_adapter.verify("ps_missing")


# =============================================================================
# Webhooks
# =============================================================================


class TestParseWebhook:
    def test_valid_signature(self, paystack_adapter, sign_paystack):
        payload, signature = sign_paystack(
            {
                "event": "charge.success",
                "data": {"id": 991, "reference": "ps_1", "amount": 250000, "currency": "NGN"},
            }
        )

        notification = paystack_adapter.parse_webhook(
            payload, {"X-Paystack-Signature": signature}
        )

        assert notification.event_id == "charge.success:991"
        assert notification.reference == "ps_1"
        assert notification.outcome == PaymentOutcome.PAID
        assert notification.amount_cents == 250000
        assert notification.currency == "ngn"

    def test_unsettling_event(self, paystack_adapter, sign_paystack):
        payload, signature = sign_paystack(
            {"event": "transfer.success", "data": {"reference": "tr_1"}}
        )

        notification = paystack_adapter.parse_webhook(
            payload, {"x-paystack-signature": signature}
        )

        assert notification.event_id == "transfer.success:tr_1"
        assert notification.outcome is None

    def test_tampered_body(self, paystack_adapter, sign_paystack):
        _, signature = sign_paystack({"event": "charge.success", "data": {"id": 1}})

        with pytest.raises(WebhookSignatureError):
            paystack_adapter.parse_webhook(
                b'{"event": "charge.success", "data": {"id": 2}}',
                {"x-paystack-signature": signature},
            )

    def test_missing_signature(self, paystack_adapter):
        with pytest.raises(WebhookSignatureError):
            paystack_adapter.parse_webhook(b"{}", {})
