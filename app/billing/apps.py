"""
Django app configuration for billing.
"""

from django.apps import AppConfig


class BillingConfig(AppConfig):
    """Ledger cycles, bills, per-roommate charges and consent tasks."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "billing"
    verbose_name = "Billing"
