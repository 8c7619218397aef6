"""
Django app configuration for houses.
"""

from django.apps import AppConfig


class HousesConfig(AppConfig):
    """Houses, their members, purchased services and the House Status Index."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "houses"
    verbose_name = "Houses"
