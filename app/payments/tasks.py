"""
Celery tasks for payment processing.

This module provides async tasks for:
- Retrying a payment submission after a transient processor error
- Reconciling payments stuck in PROCESSING against Stripe
- Reprocessing failed webhook events from their stored payload
- Resetting webhook logs stuck in PROCESSING

Usage:
    from payments.tasks import retry_payment_submission

    retry_payment_submission.apply_async(args=[str(payment.id)], countdown=2.0)

Periodic tasks are scheduled via celery-beat (see the payments migrations).
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from billing.exceptions import LedgerInconsistencyError
from billing.services import LedgerCycleManager
from core.exceptions import BaseApplicationError
from payments.adapters import StripeAdapter
from payments.exceptions import LockAcquisitionError
from payments.locks import DistributedLock
from payments.models import Payment, StripeWebhookLog
from payments.services import PaymentProcessor, WebhookReconciler
from payments.state_machines import PaymentStatus, WebhookLogStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = 5
STUCK_PROCESSING_THRESHOLD_MINUTES = 30

# PaymentIntent statuses that end a collection attempt without funds
FAILED_INTENT_STATUSES = ("canceled", "requires_payment_method")


def stuck_payment_threshold() -> timedelta:
    minutes = getattr(settings, "PAYMENTS_STUCK_PROCESSING_MINUTES", STUCK_PROCESSING_THRESHOLD_MINUTES)
    return timedelta(minutes=minutes)


# =============================================================================
# Payment Submission
# =============================================================================


@shared_task(acks_late=True)
def retry_payment_submission(payment_id: str) -> dict:
    """
    Make the next Stripe call for a payment that hit a transient error.

    Scheduled by PaymentProcessor with exponential backoff; the payment's
    own state decides whether anything is left to do.
    """
    logger.info("Retrying payment submission", extra={"payment_id": payment_id})
    payment = PaymentProcessor.attempt_submission(payment_id)
    return {
        "payment_id": str(payment.id),
        "status": payment.status,
        "retry_count": payment.retry_count,
    }


# =============================================================================
# Stuck Payment Sweep
# =============================================================================


def reconcile_payment(payment_id) -> str:
    """
    Settle one PROCESSING payment from Stripe's authoritative status.

    Returns one of "completed", "failed", "unchanged", "skipped".

    Raises:
        LockAcquisitionError: Another worker is reconciling this payment
    """
    with DistributedLock(f"payment:reconcile:{payment_id}", ttl=60, blocking=False):
        payment = Payment.objects.filter(pk=payment_id).first()
        if (
            payment is None
            or payment.status != PaymentStatus.PROCESSING
            or not payment.stripe_payment_intent_id
        ):
            return "skipped"

        intent = StripeAdapter.retrieve_payment_intent(
            payment.stripe_payment_intent_id,
            trace_id=str(payment.id),
        )

        if intent.status == "succeeded":
            with transaction.atomic():
                payment = PaymentProcessor.lock_payment(payment_id)
                if payment.status != PaymentStatus.PROCESSING:
                    return "skipped"
                PaymentProcessor.mark_completed(payment, intent.id)
            return "completed"

        if intent.status in FAILED_INTENT_STATUSES:
            with transaction.atomic():
                payment = PaymentProcessor.lock_payment(payment_id)
                if payment.status != PaymentStatus.PROCESSING:
                    return "skipped"
                PaymentProcessor.mark_failed(payment, intent.last_error or f"Payment intent {intent.status}")
            return "failed"

        return "unchanged"


@shared_task
def reconcile_stuck_payments() -> dict:
    """
    Periodic task for payments stuck in PROCESSING.

    A payment whose webhook never arrived is not assumed failed: Stripe is
    asked for the PaymentIntent and the payment follows its status.
    Succeeded intents get the same effects as the success webhook;
    canceled and requires_payment_method intents fail the payment; any other
    status (still processing, requires_action) is left for the next run.

    Returns:
        Dict of counts per outcome
    """
    threshold = timezone.now() - stuck_payment_threshold()
    stuck_ids = list(
        Payment.objects.filter(
            status=PaymentStatus.PROCESSING,
            updated_at__lt=threshold,
            stripe_payment_intent_id__isnull=False,
        )
        .order_by("updated_at")
        .values_list("id", flat=True)[:100]
    )

    counts = {"checked": len(stuck_ids), "completed": 0, "failed": 0, "unchanged": 0, "skipped": 0, "errors": 0}

    for payment_id in stuck_ids:
        try:
            outcome = reconcile_payment(payment_id)
        except LockAcquisitionError:
            outcome = "skipped"
        except LedgerInconsistencyError as e:
            LedgerCycleManager.hold_for(e)
            logger.error(
                "Stuck payment reconciliation hit a ledger inconsistency",
                extra={"payment_id": str(payment_id), "error": str(e)},
            )
            counts["errors"] += 1
            continue
        except BaseApplicationError as e:
            logger.error(
                f"Stuck payment reconciliation failed: {e}",
                extra={"payment_id": str(payment_id), "error_code": e.error_code},
            )
            counts["errors"] += 1
            continue

        counts[outcome] += 1
        if outcome in ("completed", "failed"):
            logger.warning(
                "Stuck payment reconciled",
                extra={"payment_id": str(payment_id), "outcome": outcome},
            )

    logger.info("Stuck payment sweep finished", extra=counts)
    return counts


# =============================================================================
# Webhook Retry Tasks
# =============================================================================


@shared_task(acks_late=True)
def reprocess_webhook_log(webhook_log_id: str) -> dict:
    """Run a stored event through the WebhookReconciler again."""
    result = WebhookReconciler.reprocess(webhook_log_id)
    return {
        "webhook_log_id": str(webhook_log_id),
        "success": result.success,
        "error": result.error,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Finds failed webhook logs that haven't exceeded max retries and
    re-queues them for processing.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_logs = StripeWebhookLog.objects.filter(
        status=WebhookLogStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:100]

    queued_count = 0
    for log in failed_logs:
        reprocess_webhook_log.delay(str(log.id))
        queued_count += 1
        logger.info(
            "Queued failed webhook for retry",
            extra={
                "webhook_log_id": str(log.id),
                "stripe_event_id": log.stripe_event_id,
                "retry_count": log.retry_count,
            },
        )

    logger.info(
        f"Queued {queued_count} failed webhooks for retry",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task to reset stuck webhook logs.

    Logs left in PROCESSING longer than the threshold (a worker died
    mid-flight outside the normal transaction) are marked FAILED so the
    retry task picks them up.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    stuck_logs = StripeWebhookLog.objects.filter(
        status=WebhookLogStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for log in stuck_logs:
        log.mark_failed("Processing timed out - reset for retry")
        log.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_log_id": str(log.id),
                "stripe_event_id": log.stripe_event_id,
                "stuck_since": log.updated_at.isoformat(),
            },
        )

    return {"reset_count": reset_count}
