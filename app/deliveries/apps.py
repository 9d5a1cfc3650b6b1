"""
Deliveries app configuration.
"""

from django.apps import AppConfig


class DeliveriesConfig(AppConfig):
    """Configuration for the deliveries application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "deliveries"
    verbose_name = "Deliveries"
