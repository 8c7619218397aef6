"""
StripeWebhookLog model: the durable record of inbound Stripe events.

The unique stripe_event_id doubles as the deduplication lock. The row is
inserted in the same transaction as the effects of the event, so a
committed COMPLETED row means "logged and fully applied" and a missing row
means "never applied".

Usage:
    from payments.models import StripeWebhookLog

    log = StripeWebhookLog.objects.create(
        stripe_event_id="evt_1234567890",
        event_type="payment_intent.succeeded",
        payload=event,
    )
    log.mark_processing()
    ...
    log.mark_completed()
    log.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from payments.state_machines import WebhookLogStatus


class StripeWebhookLog(UUIDPrimaryKeyMixin, BaseModel):
    """
    Append-only record of every Stripe event delivered to the endpoint.

    Fields:
        stripe_event_id: Unique Stripe Event ID (evt_xxx)
        event_type: Type of webhook event
        payload: Full JSON event from Stripe, used for reprocessing
        status: Processing status
        processed_at: When the event was applied
        error_message: Error details if processing failed
        retry_count: Number of processing attempts
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g., 'payment_intent.succeeded')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload from Stripe (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookLogStatus.choices,
        default=WebhookLogStatus.PROCESSING,
        db_index=True,
    )

    processed_at = models.DateTimeField(null=True, blank=True)

    error_message = models.TextField(null=True, blank=True)

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Stripe Webhook Log"
        verbose_name_plural = "Stripe Webhook Logs"
        indexes = [
            models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
            models.Index(fields=["event_type", "created_at"], name="webhook_type_created_idx"),
        ]

    def __str__(self) -> str:
        return f"StripeWebhookLog({self.stripe_event_id}, {self.event_type}, {self.status})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_completed(self) -> bool:
        return self.status == WebhookLogStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookLogStatus.FAILED

    # ==========================================================================
    # Helper Methods (callers save)
    # ==========================================================================

    def mark_processing(self) -> None:
        self.status = WebhookLogStatus.PROCESSING
        self.retry_count += 1

    def mark_completed(self) -> None:
        self.status = WebhookLogStatus.COMPLETED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookLogStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """Return ``data.object`` from the payload (empty dict if absent)."""
        try:
            return self.payload.get("data", {}).get("object", {}) or {}
        except (AttributeError, TypeError):
            return {}

    def get_object_id(self) -> str | None:
        """
        Extract the primary object ID from the webhook payload.

        For most Stripe webhooks, the object ID is in payload.data.object.id
        """
        return self.get_object().get("id")
