"""
Tests for webhook intake and handlers.

Tests cover:
- Signature rejection and malformed events
- WebhookEvent creation and duplicate deliveries
- Queuing after commit
- Handler routing and settlement
"""

from django.urls import reverse

from deliveries.models import DeliveryRequest
from payments.adapters import WebhookNotification
from payments.exceptions import WebhookSignatureError
from payments.ledger import ledger
from payments.models import WebhookEvent
from payments.state_machines import PaymentOutcome, PaymentStatus, WebhookEventStatus
from payments.tests.factories import WebhookEventFactory
from payments.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook


def notification(
    event_id="evt_1",
    event_type="payment_intent.succeeded",
    reference="pi_1",
    amount_cents=5000,
    currency="usd",
):
    return WebhookNotification(
        event_id=event_id,
        event_type=event_type,
        reference=reference,
        outcome=PaymentOutcome.PAID,
        amount_cents=amount_cents,
        currency=currency,
        payload={
            "id": event_id,
            "type": event_type,
            "data": {
                "object": {
                    "id": reference,
                    "object": "payment_intent",
                    "amount": amount_cents,
                    "currency": currency,
                }
            },
        },
    )


def post_stripe(client):
    return client.post(
        reverse("payments:stripe_webhook"),
        data=b'{"id": "evt_1"}',
        content_type="application/json",
        HTTP_STRIPE_SIGNATURE="t=1,v1=abc",
    )


# =============================================================================
# Views
# =============================================================================


class TestWebhookView:
    def test_bad_signature(self, client, db, fake_provider):
        fake_provider.webhook_error = WebhookSignatureError("Invalid Stripe signature")

        response = post_stripe(client)

        assert response.status_code == 400
        assert response.content == b"Invalid Stripe signature"
        assert not WebhookEvent.objects.exists()

    def test_event_without_id(self, client, db, fake_provider):
        fake_provider.notification = notification(event_id="")

        response = post_stripe(client)

        assert response.status_code == 400
        assert response.content == b"Invalid event"

    def test_get_not_allowed(self, client, db):
        assert client.get(reverse("payments:stripe_webhook")).status_code == 405

    def test_accepts_and_queues_after_commit(
        self, client, db, fake_provider, mocker, django_capture_on_commit_callbacks
    ):
        fake_provider.notification = notification()
        delay = mocker.patch("payments.tasks.process_webhook_event.delay")

        with django_capture_on_commit_callbacks(execute=True):
            response = post_stripe(client)

        assert response.status_code == 200
        assert response.content == b"Accepted"
        event = WebhookEvent.objects.get(provider="stripe", event_id="evt_1")
        assert event.event_type == "payment_intent.succeeded"
        assert event.status == WebhookEventStatus.PENDING
        delay.assert_called_once_with(str(event.id))

    def test_duplicate_of_processed_event(
        self, client, db, fake_provider, mocker, django_capture_on_commit_callbacks
    ):
        WebhookEventFactory(event_id="evt_1", status=WebhookEventStatus.PROCESSED)
        fake_provider.notification = notification()
        delay = mocker.patch("payments.tasks.process_webhook_event.delay")

        with django_capture_on_commit_callbacks(execute=True):
            response = post_stripe(client)

        assert response.content == b"Already processed"
        assert WebhookEvent.objects.count() == 1
        delay.assert_not_called()

    def test_duplicate_of_unprocessed_event_is_requeued(
        self, client, db, fake_provider, mocker, django_capture_on_commit_callbacks
    ):
        existing = WebhookEventFactory(event_id="evt_1", status=WebhookEventStatus.FAILED)
        fake_provider.notification = notification()
        delay = mocker.patch("payments.tasks.process_webhook_event.delay")

        with django_capture_on_commit_callbacks(execute=True):
            response = post_stripe(client)

        assert response.content == b"Accepted"
        delay.assert_called_once_with(str(existing.id))

    def test_broker_outage_still_acknowledges(
        self, client, db, fake_provider, mocker, django_capture_on_commit_callbacks
    ):
        fake_provider.notification = notification()
        mocker.patch(
            "payments.tasks.process_webhook_event.delay",
            side_effect=ConnectionError("broker down"),
        )

        with django_capture_on_commit_callbacks(execute=True):
            response = post_stripe(client)

        assert response.status_code == 200
        assert WebhookEvent.objects.filter(event_id="evt_1").exists()


# =============================================================================
# Handlers
# =============================================================================


class TestHandlers:
    def test_registered_event_types(self):
        assert ("stripe", "payment_intent.succeeded") in WEBHOOK_HANDLERS
        assert ("stripe", "payment_intent.payment_failed") in WEBHOOK_HANDLERS
        assert ("paystack", "charge.success") in WEBHOOK_HANDLERS

    def test_stripe_success_settles_request(self, intent_request):
        event = WebhookEventFactory(
            payload=notification(reference=intent_request.payment_reference).payload
        )

        assert dispatch_webhook(event) is True

        request = DeliveryRequest.objects.get(pk=intent_request.pk)
        assert request.payment_status == PaymentStatus.PAID
        assert request.escrow_held is True

    def test_stripe_failure(self, intent_request):
        event = WebhookEventFactory(
            event_type="payment_intent.payment_failed",
            payload=notification(reference=intent_request.payment_reference).payload,
        )

        dispatch_webhook(event)

        request = DeliveryRequest.objects.get(pk=intent_request.pk)
        assert request.payment_status == PaymentStatus.FAILED
        assert request.escrow_held is False

    def test_paystack_charge(self, accepted_request):
        from payments.services import SettlementService

        SettlementService().record_intent(accepted_request.id, "paystack", "ps_ref_1")
        event = WebhookEventFactory(
            provider="paystack",
            event_id="charge.success:1",
            event_type="charge.success",
            payload={
                "event": "charge.success",
                "data": {"id": 1, "reference": "ps_ref_1", "amount": 5000, "currency": "USD"},
            },
        )

        dispatch_webhook(event)

        request = DeliveryRequest.objects.get(pk=accepted_request.pk)
        assert request.payment_status == PaymentStatus.PAID

    def test_underpaid_capture_holds_no_escrow(self, intent_request, traveler):
        event = WebhookEventFactory(
            payload=notification(
                reference=intent_request.payment_reference, amount_cents=1
            ).payload
        )

        assert dispatch_webhook(event) is True

        request = DeliveryRequest.objects.get(pk=intent_request.pk)
        assert request.payment_status == PaymentStatus.UNPAID
        assert request.escrow_held is False
        assert ledger.get_user_balances(traveler.id) == (0, 0)

    def test_capture_without_amount_is_refused(self, intent_request):
        event = WebhookEventFactory(
            payload={
                "type": "payment_intent.succeeded",
                "data": {
                    "object": {
                        "id": intent_request.payment_reference,
                        "object": "payment_intent",
                    }
                },
            }
        )

        dispatch_webhook(event)

        request = DeliveryRequest.objects.get(pk=intent_request.pk)
        assert request.payment_status == PaymentStatus.UNPAID

    def test_paystack_currency_mismatch(self, accepted_request):
        from payments.services import SettlementService

        SettlementService().record_intent(accepted_request.id, "paystack", "ps_ref_2")
        event = WebhookEventFactory(
            provider="paystack",
            event_id="charge.success:2",
            event_type="charge.success",
            payload={
                "event": "charge.success",
                "data": {"id": 2, "reference": "ps_ref_2", "amount": 5000, "currency": "NGN"},
            },
        )

        dispatch_webhook(event)

        request = DeliveryRequest.objects.get(pk=accepted_request.pk)
        assert request.payment_status == PaymentStatus.UNPAID
        assert request.escrow_held is False

    def test_unknown_reference_is_acknowledged(self, db):
        event = WebhookEventFactory(payload=notification(reference="pi_nobody").payload)

        assert dispatch_webhook(event) is True

    def test_cancelled_request_is_acknowledged(self, intent_request, sender):
        from deliveries.services import RequestService

        RequestService.cancel_request(intent_request.id, sender, "Changed my mind")
        event = WebhookEventFactory(
            payload=notification(reference=intent_request.payment_reference).payload
        )

        assert dispatch_webhook(event) is True
        request = DeliveryRequest.objects.get(pk=intent_request.pk)
        assert request.payment_status == PaymentStatus.UNPAID

    def test_unhandled_type(self, db):
        event = WebhookEventFactory(event_type="customer.created")

        assert dispatch_webhook(event) is False
