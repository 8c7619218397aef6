"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Payment States:
    pending → processing → completed (terminal)
    pending/processing → failed
    failed → pending (manual or scheduled retry)
    failed → completed (processor reports a late success)

StripeWebhookLog States:
    processing → completed
    processing → failed → processing (retry)
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    States for the Payment model lifecycle.

    Terminal states: COMPLETED
    FAILED is recoverable: a retry moves it back to PENDING.

    State Flow:
        PENDING → PROCESSING → COMPLETED

    Recovery Flow:
        FAILED → PENDING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class WebhookLogStatus(models.TextChoices):
    """
    Processing status of an inbound Stripe event.

    A row is only ever committed as COMPLETED (inserted together with the
    effects of the event) or FAILED (recorded after the effects rolled back).
    PROCESSING is visible while a worker holds the row.
    """

    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
