"""
Webhook event handlers for Stripe and Paystack.

Handlers are registered per (provider, event type). A handler reduces the
stored event to its reference, outcome and captured amount and hands them to
SettlementService.confirm with verified=True: the signature was checked
when the event was received, so the provider is not asked again.

Usage:
    from payments.webhooks.handlers import dispatch_webhook

    handled = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from payments.adapters.paystack_adapter import WEBHOOK_OUTCOMES as PAYSTACK_OUTCOMES
from payments.adapters.paystack_adapter import captured_amount as paystack_captured_amount
from payments.adapters.stripe_adapter import WEBHOOK_OUTCOMES as STRIPE_OUTCOMES
from payments.adapters.stripe_adapter import captured_amount as stripe_captured_amount
from payments.exceptions import InvalidTransition, UnknownReference, VerificationError
from payments.models import WebhookEvent
from payments.services import SettlementService
from payments.state_machines import PaymentProvider

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# (provider, event type) -> handler
WEBHOOK_HANDLERS: dict[tuple[str, str], Callable[[WebhookEvent], None]] = {}


def register_handler(provider: str, *event_types: str) -> Callable:
    """
    Decorator registering a handler for one provider's event types.

    Usage:
        @register_handler("stripe", "payment_intent.succeeded")
        def handle(webhook_event: WebhookEvent) -> None:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], None]) -> Callable:
        for event_type in event_types:
            WEBHOOK_HANDLERS[(str(provider), event_type)] = func
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> bool:
    """
    Run the handler registered for the event.

    Returns:
        True if a handler ran, False for event types nobody handles
        (acknowledged without work)
    """
    handler = WEBHOOK_HANDLERS.get((webhook_event.provider, webhook_event.event_type))
    if handler is None:
        logger.info(
            "No handler for webhook event type",
            extra={
                "provider": webhook_event.provider,
                "event_type": webhook_event.event_type,
                "event_id": webhook_event.event_id,
            },
        )
        return False

    handler(webhook_event)
    return True


def settle(
    webhook_event: WebhookEvent,
    reference: str | None,
    outcome: str,
    amount_cents: int | None,
    currency: str | None,
) -> None:
    """
    Confirm the payment named by a webhook.

    References that belong to no delivery request, confirmations for
    requests that already ended, and captures whose amount differs from the
    request total are logged and acknowledged; the provider must not keep
    retrying them. A mismatched capture leaves the request unpaid.
    """
    log_context = {
        "provider": webhook_event.provider,
        "event_id": webhook_event.event_id,
        "reference": reference,
        "outcome": outcome,
        "amount_cents": amount_cents,
        "currency": currency,
    }
    if not reference:
        logger.warning("Webhook without payment reference", extra=log_context)
        return

    try:
        SettlementService().confirm(
            reference,
            outcome,
            verified=True,
            amount_cents=amount_cents,
            currency=currency,
        )
    except UnknownReference:
        logger.info("Webhook for unknown payment reference", extra=log_context)
    except InvalidTransition:
        logger.warning("Webhook for a request that already ended", extra=log_context)
    except VerificationError as e:
        if e.is_retryable:
            raise
        logger.error(
            "Webhook capture rejected",
            extra={**log_context, "error_code": e.error_code},
        )


# =============================================================================
# Stripe
# =============================================================================


@register_handler(PaymentProvider.STRIPE, *STRIPE_OUTCOMES)
def handle_stripe_payment_intent(webhook_event: WebhookEvent) -> None:
    intent = webhook_event.payload.get("data", {}).get("object", {})
    settle(
        webhook_event,
        intent.get("id"),
        STRIPE_OUTCOMES[webhook_event.event_type],
        *stripe_captured_amount(intent),
    )


# =============================================================================
# Paystack
# =============================================================================


@register_handler(PaymentProvider.PAYSTACK, *PAYSTACK_OUTCOMES)
def handle_paystack_charge(webhook_event: WebhookEvent) -> None:
    data = webhook_event.payload.get("data") or {}
    settle(
        webhook_event,
        data.get("reference"),
        PAYSTACK_OUTCOMES[webhook_event.event_type],
        *paystack_captured_amount(data),
    )
