"""
Factory Boy factories for payment test data.

Usage:
    from payments.tests.factories import RefundRequestFactory, WebhookEventFactory

    event = WebhookEventFactory(status=WebhookEventStatus.FAILED)
"""

import uuid

import factory

from deliveries.tests.factories import DeliveryRequestFactory
from payments.models import RefundRequest, WebhookEvent
from payments.state_machines import PaymentProvider, WebhookEventStatus


class RefundRequestFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = RefundRequest

    delivery_request = factory.SubFactory(DeliveryRequestFactory)
    requested_by = factory.SelfAttribute("delivery_request.sender")
    amount_cents = 5000
    currency = "usd"
    reason = "Trip cancelled"


class WebhookEventFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = WebhookEvent

    provider = PaymentProvider.STRIPE
    event_id = factory.LazyFunction(lambda: f"evt_{uuid.uuid4().hex[:24]}")
    event_type = "payment_intent.succeeded"
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.event_id,
            "type": o.event_type,
            "data": {
                "object": {
                    "id": f"pi_{uuid.uuid4().hex}",
                    "object": "payment_intent",
                    "amount": 5000,
                    "currency": "usd",
                }
            },
        }
    )
    status = WebhookEventStatus.PENDING
