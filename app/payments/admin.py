"""
Payment admin configuration.

Payments and webhook logs are read-only: state moves only through
PaymentProcessor and WebhookReconciler. Admin actions call those services.
"""

from django.contrib import admin, messages

from core.exceptions import BaseApplicationError
from payments.models import Payment, StripeWebhookLog
from payments.services import PaymentProcessor
from payments.state_machines import WebhookLogStatus
from payments.tasks import reprocess_webhook_log


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Visibility into collection attempts, with a manual retry action."""

    list_display = [
        "id",
        "charge",
        "user",
        "amount_cents",
        "status",
        "attempt",
        "retry_count",
        "stripe_payment_intent_id",
        "created_at",
    ]
    list_filter = ["status", "created_at"]
    search_fields = ["id", "idempotency_key", "stripe_payment_intent_id", "user__email"]
    readonly_fields = [
        "id",
        "idempotency_key",
        "charge",
        "user",
        "amount_cents",
        "currency",
        "status",
        "stripe_payment_intent_id",
        "stripe_payment_method_id",
        "attempt",
        "retry_count",
        "error_message",
        "submitted_at",
        "completed_at",
        "failed_at",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["retry_failed_payments"]

    fieldsets = (
        (None, {"fields": ("id", "idempotency_key", "charge", "user", "status")}),
        ("Amount", {"fields": ("amount_cents", "currency")}),
        (
            "Stripe",
            {"fields": ("stripe_payment_intent_id", "stripe_payment_method_id")},
        ),
        (
            "Attempts",
            {"fields": ("attempt", "retry_count", "error_message", "submitted_at", "completed_at", "failed_at")},
        ),
        ("Timestamps", {"fields": ("version", "created_at", "updated_at"), "classes": ("collapse",)}),
    )

    @admin.action(description="Retry failed payments")
    def retry_failed_payments(self, request, queryset):
        for payment in queryset:
            try:
                PaymentProcessor.retry(payment.pk)
            except BaseApplicationError as e:
                self.message_user(request, f"Payment {payment.pk}: {e.message}", messages.ERROR)


@admin.register(StripeWebhookLog)
class StripeWebhookLogAdmin(admin.ModelAdmin):
    """
    Visibility into webhook processing status.

    Logs are immutable once received; failed ones can be queued again.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "stripe_event_id",
        "event_type",
        "status",
        "payload",
        "processed_at",
        "retry_count",
        "error_message",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["reprocess_failed"]

    fieldsets = (
        (None, {"fields": ("id", "stripe_event_id", "event_type", "status")}),
        ("Processing", {"fields": ("processed_at", "retry_count")}),
        ("Error Info", {"fields": ("error_message",), "classes": ("collapse",)}),
        ("Payload", {"fields": ("payload",), "classes": ("collapse",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at"), "classes": ("collapse",)}),
    )

    @admin.action(description="Reprocess failed webhook logs")
    def reprocess_failed(self, request, queryset):
        queued = 0
        for log in queryset.filter(status=WebhookLogStatus.FAILED):
            reprocess_webhook_log.delay(str(log.pk))
            queued += 1
        self.message_user(request, f"Queued {queued} webhook log(s) for reprocessing")
