"""
DRF views for payments app.

Endpoints:
    GET  /api/v1/payments/wallet/               - Balances and histories
    POST /api/v1/payments/wallet/add-funds/     - Credit own balance
    POST /api/v1/payments/wallet/withdraw/      - Debit own balance (KYC)
    POST /api/v1/payments/wallet/escrow/        - Move own balance to escrow
    POST /api/v1/payments/wallet/escrow/release/ - Release own wallet escrow
    POST /api/v1/payments/confirm/              - Confirm a provider payment
    GET  /api/v1/payments/refunds/              - Own refunds (admins: all)
    POST /api/v1/payments/refunds/              - File a refund
    POST /api/v1/payments/refunds/{id}/approve/ - Admin approval
    POST /api/v1/payments/refunds/{id}/reject/  - Admin rejection
    POST /api/v1/payments/webhooks/stripe/      - Stripe webhook (payments.webhooks)
    POST /api/v1/payments/webhooks/paystack/    - Paystack webhook (payments.webhooks)

Security:
    - All endpoints require authentication except webhooks
    - Webhooks verify the provider signature
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.services import UserService
from core.viewset_mixins import DomainErrorMixin
from payments.exceptions import VerificationError
from payments.ledger import ledger
from payments.serializers import (
    ConfirmPaymentSerializer,
    PaymentStateSerializer,
    RefundCreateSerializer,
    RefundDecisionSerializer,
    RefundRequestSerializer,
    WalletOperationSerializer,
    WalletSerializer,
)
from payments.services import RefundService, SettlementService

logger = logging.getLogger(__name__)


def wallet_response(user, http_status=status.HTTP_200_OK) -> Response:
    snapshot = ledger.get_snapshot(user.pk)
    return Response(WalletSerializer(asdict(snapshot)).data, status=http_status)


def wallet_key(user, data: dict, operation: str) -> str | None:
    """Namespace a client idempotency key by user and operation."""
    key = data.get("idempotency_key")
    return f"wallet:{user.pk}:{operation}:{key}" if key else None


# =============================================================================
# Wallet
# =============================================================================


class WalletView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Get wallet", tags=["Wallet"], responses={200: WalletSerializer})
    def get(self, request):
        return wallet_response(request.user)


class AddFundsView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Add funds",
        tags=["Wallet"],
        request=WalletOperationSerializer,
        responses={200: WalletSerializer},
    )
    def post(self, request):
        serializer = WalletOperationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        ledger.credit(
            request.user.pk,
            data["amount_cents"],
            data.get("description") or "Funds added",
            idempotency_key=wallet_key(request.user, data, "add"),
            created_by=str(request.user.pk),
        )
        return wallet_response(request.user)


class WithdrawView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Withdraw funds",
        tags=["Wallet"],
        request=WalletOperationSerializer,
        responses={200: WalletSerializer},
    )
    def post(self, request):
        serializer = WalletOperationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        UserService.require_kyc_verified(request.user)
        data = serializer.validated_data
        ledger.debit(
            request.user.pk,
            data["amount_cents"],
            data.get("description") or "Funds withdrawn",
            idempotency_key=wallet_key(request.user, data, "withdraw"),
            created_by=str(request.user.pk),
        )
        return wallet_response(request.user)


class SendToEscrowView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Send funds to escrow",
        tags=["Wallet"],
        request=WalletOperationSerializer,
        responses={200: WalletSerializer},
    )
    def post(self, request):
        serializer = WalletOperationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        ledger.hold_wallet_escrow(
            request.user.pk,
            data["amount_cents"],
            data.get("description") or "Funds sent to escrow",
            idempotency_key=wallet_key(request.user, data, "escrow"),
            created_by=str(request.user.pk),
        )
        return wallet_response(request.user)


class ReleaseEscrowView(DomainErrorMixin, APIView):
    """
    Return funds the user sent to escrow back to their balance.

    Escrow held for delivery requests is not releasable here.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Release funds from escrow",
        tags=["Wallet"],
        request=WalletOperationSerializer,
        responses={200: WalletSerializer},
    )
    def post(self, request):
        serializer = WalletOperationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        ledger.release_wallet_escrow(
            request.user.pk,
            data["amount_cents"],
            data.get("description") or "Funds released from escrow",
            idempotency_key=wallet_key(request.user, data, "escrow-release"),
            created_by=str(request.user.pk),
        )
        return wallet_response(request.user)


# =============================================================================
# Settlement
# =============================================================================


class ConfirmPaymentView(DomainErrorMixin, APIView):
    """
    Confirm a payment after the payer returns from the provider.

    The provider is always asked for the real outcome. When it cannot answer
    yet, a background verification is queued and the error is returned.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Confirm payment",
        tags=["Payments"],
        request=ConfirmPaymentSerializer,
        responses={200: PaymentStateSerializer},
    )
    def post(self, request):
        serializer = ConfirmPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reference = serializer.validated_data["reference"]

        try:
            delivery_request = SettlementService().confirm(
                reference, serializer.validated_data["outcome"]
            )
        except VerificationError as e:
            if e.is_retryable:
                from payments.tasks import verify_pending_payment

                verify_pending_payment.delay(reference)
                logger.info(
                    "Queued background payment verification",
                    extra={"reference": reference},
                )
            raise

        return Response(PaymentStateSerializer(delivery_request).data)


# =============================================================================
# Refunds
# =============================================================================


class RefundListCreateView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="List refunds",
        tags=["Refunds"],
        responses={200: RefundRequestSerializer(many=True)},
    )
    def get(self, request):
        refunds = RefundService.list_refunds(request.user)
        return Response(RefundRequestSerializer(refunds, many=True).data)

    @extend_schema(
        summary="Request refund",
        tags=["Refunds"],
        request=RefundCreateSerializer,
        responses={201: RefundRequestSerializer},
    )
    def post(self, request):
        serializer = RefundCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        refund = RefundService().request_refund(
            data["request_id"],
            request.user,
            amount_cents=data.get("amount_cents"),
            reason=data["reason"],
        )
        return Response(RefundRequestSerializer(refund).data, status=status.HTTP_201_CREATED)


class RefundApproveView(DomainErrorMixin, APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Approve refund",
        tags=["Refunds - Admin"],
        request=RefundDecisionSerializer,
        responses={200: RefundRequestSerializer},
    )
    def post(self, request, refund_id):
        serializer = RefundDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund = RefundService().approve_refund(
            refund_id, request.user, serializer.validated_data["note"]
        )
        return Response(RefundRequestSerializer(refund).data)


class RefundRejectView(DomainErrorMixin, APIView):
    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Reject refund",
        tags=["Refunds - Admin"],
        request=RefundDecisionSerializer,
        responses={200: RefundRequestSerializer},
    )
    def post(self, request, refund_id):
        serializer = RefundDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund = RefundService().reject_refund(
            refund_id, request.user, serializer.validated_data["note"]
        )
        return Response(RefundRequestSerializer(refund).data)
