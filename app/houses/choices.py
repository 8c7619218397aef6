"""
Choice enums for house models.

These are Django TextChoices for database storage and admin integration.

HSI outcomes drive score changes:
    ON_TIME_PAYMENT  +2
    LATE_PAYMENT     -5 (or the sweep's escalating deduction)
    DEFAULT          -10
    MANUAL_ADJUSTMENT caller-supplied delta
"""

from django.db import models


class ServiceType(models.TextChoices):
    """How a house service is billed."""

    FIXED_RECURRING = "fixed_recurring", "Fixed Recurring"
    VARIABLE_RECURRING = "variable_recurring", "Variable Recurring"
    ONE_TIME = "one_time", "One Time"


class FeeCategory(models.TextChoices):
    """
    Fee schedule applied when billing a service.

    CARD services pay a flat per-roommate fee scaled by the house's fee
    multiplier; MARKETPLACE services carry no platform fee.
    """

    CARD = "card", "Card"
    MARKETPLACE = "marketplace", "Marketplace"


class HouseServiceStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    PENDING = "pending", "Pending"
    INACTIVE = "inactive", "Inactive"


class HSIOutcome(models.TextChoices):
    """Payment-behaviour outcomes that move a house's score."""

    ON_TIME_PAYMENT = "on_time_payment", "On-time Payment"
    LATE_PAYMENT = "late_payment", "Late Payment"
    DEFAULT = "default", "Default"
    MANUAL_ADJUSTMENT = "manual_adjustment", "Manual Adjustment"
