"""
Payments app configuration.

This app collects charges through Stripe and applies Stripe's webhook
events to billing state exactly once.
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    def ready(self) -> None:
        # Populate the webhook handler registry.
        from payments.webhooks import handlers  # noqa: F401
