"""
Payments app configuration.

This app owns money movement:
- Double-entry ledger (wallet balances and escrow)
- Escrow engine for delivery requests
- Payment settlement with Stripe and Paystack
- Refund requests and provider webhooks
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    def ready(self):
        from payments.adapters.registry import ProviderRegistry

        self.provider_registry = ProviderRegistry.from_settings()
