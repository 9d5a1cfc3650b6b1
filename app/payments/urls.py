"""
URL configuration for the payments app.

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments import views
from payments.webhooks.views import paystack_webhook, stripe_webhook

app_name = "payments"

urlpatterns = [
    # Wallet
    path("wallet/", views.WalletView.as_view(), name="wallet"),
    path("wallet/add-funds/", views.AddFundsView.as_view(), name="wallet-add-funds"),
    path("wallet/withdraw/", views.WithdrawView.as_view(), name="wallet-withdraw"),
    path("wallet/escrow/", views.SendToEscrowView.as_view(), name="wallet-escrow"),
    path(
        "wallet/escrow/release/",
        views.ReleaseEscrowView.as_view(),
        name="wallet-escrow-release",
    ),
    # Settlement
    path("confirm/", views.ConfirmPaymentView.as_view(), name="confirm"),
    # Refunds
    path("refunds/", views.RefundListCreateView.as_view(), name="refund-list"),
    path(
        "refunds/<uuid:refund_id>/approve/",
        views.RefundApproveView.as_view(),
        name="refund-approve",
    ),
    path(
        "refunds/<uuid:refund_id>/reject/",
        views.RefundRejectView.as_view(),
        name="refund-reject",
    ),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path("webhooks/paystack/", paystack_webhook, name="paystack_webhook"),
]
