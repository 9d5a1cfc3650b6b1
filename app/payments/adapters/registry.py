"""
Provider registry.

Built once in PaymentsConfig.ready() from settings and handed to the
settlement and refund services. Services never construct provider
clients themselves, which keeps tests free to inject fakes.

Usage:
    from payments.adapters.registry import get_registry

    provider = get_registry().get("stripe")
"""

from __future__ import annotations

import logging

from django.apps import apps
from django.conf import settings

from payments.adapters.base import PaymentProvider
from payments.adapters.paystack_adapter import PaystackAdapter
from payments.adapters.stripe_adapter import StripeAdapter
from payments.exceptions import PaymentValidationError

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Name -> PaymentProvider mapping."""

    def __init__(self, providers: dict[str, PaymentProvider] | None = None) -> None:
        self._providers: dict[str, PaymentProvider] = dict(providers or {})

    def register(self, provider: PaymentProvider) -> None:
        self._providers[str(provider.name)] = provider

    def get(self, name: str) -> PaymentProvider:
        """
        Raises:
            PaymentValidationError: If no provider is registered under name
        """
        try:
            return self._providers[str(name)]
        except KeyError:
            raise PaymentValidationError(
                f"Unsupported payment provider: {name}",
                error_code="UNSUPPORTED_PROVIDER",
                details={"provider": str(name), "available": self.names},
            )

    @property
    def names(self) -> list[str]:
        return sorted(self._providers)

    def __contains__(self, name: object) -> bool:
        return str(name) in self._providers

    @classmethod
    def from_settings(cls) -> ProviderRegistry:
        """Build the registry from Django settings."""
        registry = cls()
        registry.register(
            StripeAdapter(
                api_key=settings.STRIPE_SECRET_KEY,
                webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
                timeout=settings.STRIPE_API_TIMEOUT_SECONDS,
                max_retries=settings.STRIPE_MAX_RETRIES,
            )
        )
        registry.register(
            PaystackAdapter(
                secret_key=settings.PAYSTACK_SECRET_KEY,
                base_url=settings.PAYSTACK_BASE_URL,
                timeout=settings.PAYSTACK_API_TIMEOUT_SECONDS,
            )
        )
        logger.info(
            "Payment providers registered", extra={"providers": registry.names}
        )
        return registry


def get_registry() -> ProviderRegistry:
    """Registry built by PaymentsConfig.ready()."""
    return apps.get_app_config("payments").provider_registry
