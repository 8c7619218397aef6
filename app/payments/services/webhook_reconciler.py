"""
WebhookReconciler: exactly-once application of Stripe events.

Stripe delivers at least once, possibly out of order and concurrently with
a user retry. The reconciler turns that into exactly-once effects with an
explicit insert-or-detect-conflict step:

    BEGIN
      claim the StripeWebhookLog row      (unique stripe_event_id)
      dispatch to the handler             (payment, charge, bill, ledger, HSI)
      mark the row COMPLETED
    COMMIT

A committed COMPLETED row therefore means "logged and fully applied". A
second delivery finds the row and is acknowledged without side effects. If
the handler fails, the whole transaction rolls back and a FAILED row is
recorded separately so the retry task can reprocess the stored payload.

Usage:
    from payments.services import WebhookReconciler

    result = WebhookReconciler.ingest(event)
    result.data["outcome"]  # "processed" | "duplicate"
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from django.db import IntegrityError, transaction

from billing.exceptions import LedgerInconsistencyError
from billing.services import LedgerCycleManager
from core.exceptions import ValidationError
from core.services import BaseService, ServiceResult
from payments.exceptions import DuplicateEventError, PaymentNotFoundError
from payments.models import StripeWebhookLog
from payments.state_machines import WebhookLogStatus

if TYPE_CHECKING:
    from collections.abc import Mapping


class HandlerFailedError(Exception):
    """Carries a failed handler ServiceResult out of the transaction."""

    def __init__(self, result: ServiceResult):
        self.result = result
        super().__init__(result.error or "Webhook handler failed")


class WebhookReconciler(BaseService):
    """Named exactly-once contract on top of the StripeWebhookLog table."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"

    @classmethod
    def ingest(cls, event: Mapping[str, Any]) -> ServiceResult[dict]:
        """
        Apply a Stripe event at most once.

        Returns success for newly applied and duplicate events alike, and a
        failure (with a FAILED log row recorded) when the handler failed.

        Raises:
            ValidationError: The event has no id or type
        """
        stripe_event_id = event.get("id")
        event_type = event.get("type")
        if not stripe_event_id or not event_type:
            raise ValidationError(
                "Webhook event is missing id or type",
                error_code="INVALID_WEBHOOK_EVENT",
            )

        logger = cls.get_logger()
        context = {"stripe_event_id": stripe_event_id, "event_type": event_type}

        try:
            with transaction.atomic():
                log = cls._claim(stripe_event_id, event_type, event)
                result = cls._dispatch(log)
                if not result.success:
                    raise HandlerFailedError(result)
                log.mark_completed()
                log.save()
        except DuplicateEventError:
            logger.info("Duplicate webhook delivery acknowledged", extra=context)
            return ServiceResult.success({**context, "outcome": cls.DUPLICATE})
        except HandlerFailedError as exc:
            cls._record_failure(stripe_event_id, event_type, event, exc.result.error or "")
            logger.warning(
                "Webhook handler reported failure",
                extra={**context, "error": exc.result.error, "error_code": exc.result.error_code},
            )
            return ServiceResult.failure(
                exc.result.error or "Webhook handler failed",
                error_code=exc.result.error_code,
            )
        except Exception as exc:
            cls._record_failure(stripe_event_id, event_type, event, str(exc))
            if isinstance(exc, LedgerInconsistencyError):
                LedgerCycleManager.hold_for(exc)
            logger.error(
                f"Webhook processing failed: {type(exc).__name__}",
                extra={**context, "error": str(exc)},
                exc_info=True,
            )
            return ServiceResult.from_exception(exc)

        logger.info("Webhook processed", extra=context)
        return ServiceResult.success({**context, "outcome": cls.PROCESSED})

    @classmethod
    def reprocess(cls, log_id) -> ServiceResult[dict]:
        """Run a stored event through ingest again (used by the retry task)."""
        log = StripeWebhookLog.objects.filter(pk=log_id).first()
        if log is None:
            raise PaymentNotFoundError(
                f"Webhook log {log_id} not found",
                error_code="WEBHOOK_LOG_NOT_FOUND",
                details={"webhook_log_id": str(log_id)},
            )
        return cls.ingest(log.payload)

    # ==========================================================================
    # Steps
    # ==========================================================================

    @classmethod
    def _claim(cls, stripe_event_id: str, event_type: str, event: Mapping[str, Any]) -> StripeWebhookLog:
        """
        Insert the log row, or take over a FAILED one.

        Must run inside the caller's transaction. A concurrent delivery of
        the same event blocks on the unique index until this transaction
        ends, then sees the committed row.

        Raises:
            DuplicateEventError: The event was already applied
        """
        try:
            with transaction.atomic():
                return StripeWebhookLog.objects.create(
                    stripe_event_id=stripe_event_id,
                    event_type=event_type,
                    payload=dict(event),
                    status=WebhookLogStatus.PROCESSING,
                    retry_count=1,
                )
        except IntegrityError:
            pass

        log = StripeWebhookLog.objects.select_for_update().get(stripe_event_id=stripe_event_id)
        if log.is_completed:
            raise DuplicateEventError(
                f"Event {stripe_event_id} already processed",
                details={"stripe_event_id": stripe_event_id},
            )
        log.mark_processing()
        log.save()
        return log

    @classmethod
    def _dispatch(cls, log: StripeWebhookLog) -> ServiceResult:
        from payments.webhooks.handlers import dispatch_webhook

        return dispatch_webhook(log)

    @classmethod
    def _record_failure(
        cls,
        stripe_event_id: str,
        event_type: str,
        event: Mapping[str, Any],
        error: str,
    ) -> None:
        """Persist a FAILED row after the processing transaction rolled back."""
        with transaction.atomic():
            log, created = StripeWebhookLog.objects.select_for_update().get_or_create(
                stripe_event_id=stripe_event_id,
                defaults={
                    "event_type": event_type,
                    "payload": dict(event),
                    "status": WebhookLogStatus.FAILED,
                    "error_message": error,
                    "retry_count": 1,
                },
            )
            if created or log.is_completed:
                return
            log.retry_count += 1
            log.mark_failed(error)
            log.save()

