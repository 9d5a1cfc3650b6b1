"""
State machine enums for payment models.
"""

from payments.state_machines.states import (
    PaymentOutcome,
    PaymentProvider,
    PaymentStatus,
    RefundState,
    WebhookEventStatus,
)

__all__ = [
    "PaymentOutcome",
    "PaymentProvider",
    "PaymentStatus",
    "RefundState",
    "WebhookEventStatus",
]
