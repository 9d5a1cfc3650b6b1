"""
DRF serializers for payments app.

This module provides serializers for:
- Wallet snapshots and wallet operations
- Payment confirmation
- Refund requests

Wallet output serializers read WalletSnapshot/HistoryItem dataclasses;
pass dataclasses.asdict(snapshot) as the instance.
"""

from __future__ import annotations

from rest_framework import serializers

from deliveries.models import DeliveryRequest
from payments.models import RefundRequest
from payments.state_machines import PaymentOutcome


# =============================================================================
# Wallet
# =============================================================================


class HistoryItemSerializer(serializers.Serializer):
    type = serializers.CharField()
    amount_cents = serializers.IntegerField()
    description = serializers.CharField(allow_null=True)
    created_at = serializers.DateTimeField()
    reference_id = serializers.UUIDField(allow_null=True)


class WalletSerializer(serializers.Serializer):
    """
    A user's wallet.

    Fields:
        balance_cents: Available funds
        escrow_balance_cents: Funds committed to in-flight requests
        balance_history / escrow_history: Oldest line first
    """

    user_id = serializers.UUIDField()
    currency = serializers.CharField()
    balance_cents = serializers.IntegerField()
    escrow_balance_cents = serializers.IntegerField()
    balance_history = HistoryItemSerializer(many=True)
    escrow_history = HistoryItemSerializer(many=True)


class WalletOperationSerializer(serializers.Serializer):
    """Input for add-funds, withdraw and escrow."""

    amount_cents = serializers.IntegerField(min_value=1)
    description = serializers.CharField(max_length=255, required=False, allow_blank=True)
    idempotency_key = serializers.CharField(max_length=100, required=False)


# =============================================================================
# Settlement
# =============================================================================


class ConfirmPaymentSerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=255)
    outcome = serializers.ChoiceField(choices=PaymentOutcome.choices)


class PaymentStateSerializer(serializers.ModelSerializer):
    """Payment and escrow state of a request after confirmation."""

    request_id = serializers.UUIDField(source="id", read_only=True)
    total_cents = serializers.IntegerField(read_only=True)

    class Meta:
        model = DeliveryRequest
        fields = [
            "request_id",
            "status",
            "payment_provider",
            "payment_reference",
            "payment_status",
            "paid_at",
            "total_cents",
            "escrow_held",
            "escrow_amount_cents",
        ]
        read_only_fields = fields


# =============================================================================
# Refunds
# =============================================================================


class RefundRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = RefundRequest
        fields = [
            "id",
            "delivery_request",
            "requested_by",
            "amount_cents",
            "currency",
            "reason",
            "status",
            "provider_refund_id",
            "decided_by",
            "decided_at",
            "decision_note",
            "failure_reason",
            "created_at",
        ]
        read_only_fields = fields


class RefundCreateSerializer(serializers.Serializer):
    request_id = serializers.UUIDField()
    amount_cents = serializers.IntegerField(min_value=1, required=False)
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class RefundDecisionSerializer(serializers.Serializer):
    note = serializers.CharField(required=False, allow_blank=True, default="")
