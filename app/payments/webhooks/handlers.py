"""
Webhook event handlers for Stripe events.

This module provides a handler registry and implementations for
processing the Stripe events that drive charge collection and consent.

Handlers run inside the WebhookReconciler's transaction, after the event's
log row was claimed. They return a ServiceResult; a failure (or an
exception) rolls back every effect of the event together with the claim.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_log: StripeWebhookLog) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_log)
"""

from __future__ import annotations

import logging
from typing import Callable

from billing.choices import TaskPaymentStatus
from billing.models import Task
from billing.services import TaskConsentService
from core.services import ServiceResult
from payments.exceptions import StalePaymentIntentError
from payments.models import StripeWebhookLog
from payments.services.payment_processor import PaymentProcessor

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[StripeWebhookLog], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("payment_intent.succeeded")
        def handle_payment_succeeded(webhook_log: StripeWebhookLog) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[StripeWebhookLog], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_log: StripeWebhookLog) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Unknown event types are logged and acknowledged: they are not errors.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_log.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_log.event_type}",
            extra={"stripe_event_id": webhook_log.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_log.event_type} to handler",
        extra={"stripe_event_id": webhook_log.stripe_event_id},
    )

    return handler(webhook_log)


# =============================================================================
# Helpers
# =============================================================================


def _intent_id(webhook_log: StripeWebhookLog) -> str | None:
    payment_intent_id = webhook_log.get_object_id()
    if not payment_intent_id:
        logger.error(
            f"{webhook_log.event_type}: Could not extract payment_intent_id",
            extra={"stripe_event_id": webhook_log.stripe_event_id},
        )
    return payment_intent_id


def _metadata(webhook_log: StripeWebhookLog) -> dict:
    return webhook_log.get_object().get("metadata") or {}


def _failure_reason(webhook_log: StripeWebhookLog, default: str) -> str:
    last_error = webhook_log.get_object().get("last_payment_error") or {}
    return last_error.get("message") or default


def _find_task(webhook_log: StripeWebhookLog, payment_intent_id: str) -> Task | None:
    """Lock the consent task behind an intent (metadata task_id first)."""
    qs = Task.objects.select_for_update()
    task_id = _metadata(webhook_log).get("task_id")
    if task_id:
        try:
            return qs.filter(pk=int(task_id)).first()
        except (TypeError, ValueError):
            return None
    return qs.filter(stripe_payment_intent_id=payment_intent_id).first()


def _stale_intent(webhook_log: StripeWebhookLog, exc: StalePaymentIntentError) -> ServiceResult:
    """Acknowledge an event for a superseded attempt without side effects."""
    logger.info(
        f"{webhook_log.event_type}: Ignoring event for a superseded attempt",
        extra={"stripe_event_id": webhook_log.stripe_event_id, **exc.details},
    )
    return ServiceResult.success(None)


def _invalid_payload() -> ServiceResult:
    return ServiceResult.failure(
        "Could not extract payment_intent_id from webhook",
        error_code="INVALID_WEBHOOK_PAYLOAD",
    )


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_log: StripeWebhookLog) -> ServiceResult:
    """
    Funds were collected.

    Completes the payment, pays the charge, funds the ledger and closes the
    cycle when it is fully funded (see PaymentProcessor.mark_completed).
    An unknown intent is a failure so the event is retried: the submitting
    worker may not have committed yet.
    """
    payment_intent_id = _intent_id(webhook_log)
    if not payment_intent_id:
        return _invalid_payload()

    logger.info(
        "Processing payment_intent.succeeded",
        extra={
            "stripe_event_id": webhook_log.stripe_event_id,
            "payment_intent_id": payment_intent_id,
        },
    )

    try:
        payment = PaymentProcessor.find_for_intent(payment_intent_id, _metadata(webhook_log))
    except StalePaymentIntentError as exc:
        return _stale_intent(webhook_log, exc)
    if payment is None:
        logger.warning(
            "Payment not found for payment_intent_id",
            extra={
                "payment_intent_id": payment_intent_id,
                "stripe_event_id": webhook_log.stripe_event_id,
            },
        )
        return ServiceResult.failure(
            f"Payment not found for intent: {payment_intent_id}",
            error_code="PAYMENT_NOT_FOUND",
        )

    return ServiceResult.success(PaymentProcessor.mark_completed(payment, payment_intent_id))


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(webhook_log: StripeWebhookLog) -> ServiceResult:
    """
    A collection attempt failed.

    The payment is failed with the processor's message, the charge stays
    unpaid and the house's HSI takes a late-payment step. For a consent
    hold (no payment behind the intent) the linked task is failed instead.
    """
    payment_intent_id = _intent_id(webhook_log)
    if not payment_intent_id:
        return _invalid_payload()

    reason = _failure_reason(webhook_log, "Payment failed")

    logger.info(
        "Processing payment_intent.payment_failed",
        extra={
            "stripe_event_id": webhook_log.stripe_event_id,
            "payment_intent_id": payment_intent_id,
            "reason": reason,
        },
    )

    try:
        payment = PaymentProcessor.find_for_intent(payment_intent_id, _metadata(webhook_log))
    except StalePaymentIntentError as exc:
        return _stale_intent(webhook_log, exc)
    if payment is not None:
        return ServiceResult.success(PaymentProcessor.mark_failed(payment, reason))

    task = _find_task(webhook_log, payment_intent_id)
    if task is not None:
        if task.payment_status in (TaskPaymentStatus.PENDING, TaskPaymentStatus.AUTHORIZED):
            task = TaskConsentService.fail(task.pk, reason)
        return ServiceResult.success(task)

    logger.warning(
        "Payment not found for payment_intent_id",
        extra={
            "payment_intent_id": payment_intent_id,
            "stripe_event_id": webhook_log.stripe_event_id,
        },
    )
    return ServiceResult.failure(
        f"Payment not found for intent: {payment_intent_id}",
        error_code="PAYMENT_NOT_FOUND",
    )


@register_handler("payment_intent.canceled")
def handle_payment_intent_canceled(webhook_log: StripeWebhookLog) -> ServiceResult:
    """
    The intent was canceled (expired hold, revoked consent, operator).

    A linked consent task is cancelled; a payment still in flight is failed.
    Nothing to find is fine: the intent may never have been ours.
    """
    payment_intent_id = _intent_id(webhook_log)
    if not payment_intent_id:
        return _invalid_payload()

    logger.info(
        "Processing payment_intent.canceled",
        extra={
            "stripe_event_id": webhook_log.stripe_event_id,
            "payment_intent_id": payment_intent_id,
        },
    )

    task = _find_task(webhook_log, payment_intent_id)
    if task is not None:
        if task.payment_status in (TaskPaymentStatus.PENDING, TaskPaymentStatus.AUTHORIZED):
            task = TaskConsentService.cancel(task.pk)
        return ServiceResult.success(task)

    try:
        payment = PaymentProcessor.find_for_intent(payment_intent_id, _metadata(webhook_log))
    except StalePaymentIntentError as exc:
        return _stale_intent(webhook_log, exc)
    if payment is not None:
        reason = _failure_reason(webhook_log, "Payment intent canceled")
        return ServiceResult.success(PaymentProcessor.mark_failed(payment, reason))

    logger.info(
        "Nothing found for canceled intent (OK)",
        extra={"payment_intent_id": payment_intent_id},
    )
    return ServiceResult.success(None)


@register_handler("payment_intent.amount_capturable_updated")
def handle_payment_intent_amount_capturable_updated(webhook_log: StripeWebhookLog) -> ServiceResult:
    """
    A manual-capture hold was placed: the roommate's consent is authorized.

    Moves the linked Task from PENDING to AUTHORIZED, which lets the
    ChargeAllocator include the roommate.
    """
    payment_intent_id = _intent_id(webhook_log)
    if not payment_intent_id:
        return _invalid_payload()

    task = _find_task(webhook_log, payment_intent_id)
    if task is None:
        logger.warning(
            "Task not found for authorized intent",
            extra={
                "payment_intent_id": payment_intent_id,
                "stripe_event_id": webhook_log.stripe_event_id,
            },
        )
        return ServiceResult.failure(
            f"Task not found for intent: {payment_intent_id}",
            error_code="TASK_NOT_FOUND",
        )

    if task.payment_status == TaskPaymentStatus.PENDING:
        task = TaskConsentService.authorize(task.pk, payment_intent_id)
    elif task.payment_status != TaskPaymentStatus.AUTHORIZED:
        logger.warning(
            "Authorization arrived for task in a later state",
            extra={"task_id": task.pk, "payment_status": task.payment_status},
        )

    return ServiceResult.success(task)
