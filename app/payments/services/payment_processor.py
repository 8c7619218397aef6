"""
PaymentProcessor: at-most-once submission of charge collections.

Submission is split around the Stripe call:

1. Claim: inside a transaction, lock the charge, insert the Payment under the
   caller's idempotency key and move the charge to PROCESSING. The committed
   row is the claim; a second caller with the same key gets this row back
   and never reaches Stripe.
2. Call Stripe outside any transaction, with an idempotency key derived from
   the payment id and attempt so a resend is deduplicated by Stripe too.
3. Record the outcome: PROCESSING on acceptance, a scheduled retry on a
   transient failure, FAILED on a decline or once the retry budget is spent.

Completion is driven by the payment_intent.succeeded webhook (or the stuck
payment sweep), never by the synchronous response.

Usage:
    from payments.services import PaymentProcessor

    payment = PaymentProcessor.submit(
        charge.id,
        idempotency_key=request.headers["Idempotency-Key"],
        payment_method_id="pm_xxx",
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from billing.choices import ChargeStatus, TaskPaymentStatus
from billing.models import Charge, Task
from billing.services import LedgerCycleManager, TaskConsentService
from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService
from houses.choices import HSIOutcome
from houses.services import HSIService
from payments.adapters import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
    backoff_delay,
)
from payments.exceptions import (
    InvalidStateTransitionError,
    PaymentNotFoundError,
    StalePaymentIntentError,
    StripeError,
)
from payments.models import Payment
from payments.state_machines import PaymentStatus

if TYPE_CHECKING:
    from collections.abc import Mapping

    from payments.adapters import PaymentIntentResult


def max_submission_retries() -> int:
    return getattr(settings, "STRIPE_MAX_RETRIES", 3)


class PaymentProcessor(BaseService):
    """Issues collection requests and applies their outcomes."""

    # ==========================================================================
    # Lookups
    # ==========================================================================

    @classmethod
    def lock_payment(cls, payment_id) -> Payment:
        try:
            return Payment.objects.select_for_update().get(pk=payment_id)
        except Payment.DoesNotExist:
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)},
            )

    @classmethod
    def find_for_intent(cls, payment_intent_id: str | None, metadata: Mapping | None = None) -> Payment | None:
        """
        Lock the payment behind a PaymentIntent.

        Falls back to the payment id carried in the intent metadata: the
        webhook may arrive before the submitting worker stored the intent id.
        The fallback only matches while the payment has no intent of its own
        and the metadata attempt is the payment's current attempt.

        Raises:
            StalePaymentIntentError: The intent belongs to an earlier attempt
        """
        qs = Payment.objects.select_for_update()
        if payment_intent_id:
            payment = qs.filter(stripe_payment_intent_id=payment_intent_id).first()
            if payment is not None:
                return payment

        metadata = metadata or {}
        payment_id = metadata.get("payment_id")
        if not payment_id:
            return None
        try:
            payment = qs.filter(pk=payment_id).first()
        except (ValueError, DjangoValidationError):
            return None
        if payment is None:
            return None

        # Intents created before attempts were tagged belong to attempt 1
        attempt = str(metadata.get("attempt", 1))
        if payment.stripe_payment_intent_id is not None or attempt != str(payment.attempt):
            raise StalePaymentIntentError(
                f"Intent {payment_intent_id} is not the current intent of payment {payment.id}",
                details={
                    "payment_id": str(payment.id),
                    "payment_intent_id": payment_intent_id,
                    "current_intent_id": payment.stripe_payment_intent_id,
                    "event_attempt": attempt,
                    "current_attempt": payment.attempt,
                },
            )
        return payment

    # ==========================================================================
    # Submission
    # ==========================================================================

    @classmethod
    def submit(
        cls,
        charge_id: int,
        idempotency_key: str,
        *,
        payment_method_id: str | None = None,
        customer_id: str | None = None,
    ) -> Payment:
        """
        Submit a charge for collection, at most once per idempotency key.

        Returns the existing payment, untouched, when the key was seen before.

        Raises:
            ValidationError: Missing key, or nothing to collect
            NotFoundError: Charge does not exist
            InvalidStateTransitionError: Charge is already processing or paid
        """
        if not idempotency_key:
            raise ValidationError(
                "An idempotency key is required",
                error_code="IDEMPOTENCY_KEY_REQUIRED",
            )

        existing = Payment.objects.filter(idempotency_key=idempotency_key).first()
        if existing is not None:
            cls.get_logger().info(
                "Duplicate submission returned existing payment",
                extra={"payment_id": str(existing.id), "idempotency_key": idempotency_key},
            )
            return existing

        payment, created = cls._claim(charge_id, idempotency_key, payment_method_id)
        if not created:
            return payment
        return cls.attempt_submission(payment.id, customer_id=customer_id)

    @classmethod
    def _claim(
        cls,
        charge_id: int,
        idempotency_key: str,
        payment_method_id: str | None,
    ) -> tuple[Payment, bool]:
        with cls.atomic():
            charge = Charge.objects.select_for_update().filter(pk=charge_id).first()
            if charge is None:
                raise NotFoundError(
                    f"Charge {charge_id} not found",
                    error_code="CHARGE_NOT_FOUND",
                    details={"charge_id": charge_id},
                )

            # Re-read under the charge lock: a concurrent caller with the
            # same key may have committed while we waited.
            existing = Payment.objects.filter(idempotency_key=idempotency_key).first()
            if existing is not None:
                return existing, False

            if not charge.is_open:
                raise InvalidStateTransitionError(
                    f"Charge {charge_id} is {charge.status} and cannot be submitted",
                    details={"charge_id": charge_id, "from_state": charge.status, "transition": "submit"},
                )
            if charge.amount_cents <= 0:
                raise ValidationError(
                    f"Charge {charge_id} has nothing to collect",
                    error_code="NOTHING_TO_COLLECT",
                    details={"charge_id": charge_id},
                )

            try:
                with transaction.atomic():
                    payment = Payment.objects.create(
                        idempotency_key=idempotency_key,
                        charge=charge,
                        user_id=charge.user_id,
                        amount_cents=charge.amount_cents,
                        stripe_payment_method_id=payment_method_id,
                    )
            except IntegrityError:
                return Payment.objects.get(idempotency_key=idempotency_key), False

            charge.start_processing()
            charge.save()

        cls.get_logger().info(
            "Payment created",
            extra={
                "payment_id": str(payment.id),
                "charge_id": charge_id,
                "amount_cents": payment.amount_cents,
                "idempotency_key": idempotency_key,
            },
        )
        return payment, True

    @classmethod
    def attempt_submission(cls, payment_id, *, customer_id: str | None = None) -> Payment:
        """
        Make one Stripe call for a PENDING payment and record the outcome.

        A payment that is no longer PENDING (completed by an early webhook,
        failed by an operator) is returned without calling Stripe.
        """
        try:
            payment = Payment.objects.get(pk=payment_id)
        except Payment.DoesNotExist:
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)},
            )

        if payment.status != PaymentStatus.PENDING:
            cls.get_logger().info(
                "Payment no longer pending, skipping submission",
                extra={"payment_id": str(payment.id), "status": payment.status},
            )
            return payment

        params = CreatePaymentIntentParams(
            amount_cents=payment.amount_cents,
            currency=payment.currency,
            idempotency_key=IdempotencyKeyGenerator.generate(
                operation="create_intent",
                entity_id=payment.id,
                attempt=payment.attempt,
            ),
            metadata={
                "payment_id": str(payment.id),
                "charge_id": str(payment.charge_id),
                "user_id": str(payment.user_id),
                "attempt": str(payment.attempt),
            },
            customer_id=customer_id,
            payment_method_id=payment.stripe_payment_method_id,
            confirm=bool(payment.stripe_payment_method_id),
        )

        try:
            result = StripeAdapter.create_payment_intent(params, trace_id=str(payment.id))
        except StripeError as exc:
            if exc.is_retryable:
                return cls._record_transient_failure(payment.id, exc)
            return cls._record_permanent_failure(payment.id, exc)

        return cls._record_submission(payment.id, result)

    @classmethod
    def _record_submission(cls, payment_id, result: PaymentIntentResult) -> Payment:
        with cls.atomic():
            payment = cls.lock_payment(payment_id)
            if payment.status != PaymentStatus.PENDING:
                return payment
            payment.submit(result.id)
            payment.save()
            if payment.charge_id:
                Charge.objects.filter(pk=payment.charge_id).update(
                    stripe_payment_intent_id=result.id,
                    updated_at=timezone.now(),
                )

        cls.get_logger().info(
            "Payment submitted",
            extra={
                "payment_id": str(payment.id),
                "payment_intent_id": result.id,
                "intent_status": result.status,
            },
        )
        return payment

    @classmethod
    def _record_transient_failure(cls, payment_id, exc: StripeError) -> Payment:
        from payments.tasks import retry_payment_submission

        logger = cls.get_logger()
        with cls.atomic():
            payment = cls.lock_payment(payment_id)
            if payment.status != PaymentStatus.PENDING:
                return payment

            payment.retry_count += 1
            context = {
                "payment_id": str(payment.id),
                "charge_id": payment.charge_id,
                "retry_count": payment.retry_count,
                "error_code": exc.error_code,
            }

            if payment.retry_count <= max_submission_retries():
                payment.error_message = exc.message
                payment.save()
                countdown = backoff_delay(payment.retry_count - 1)
                transaction.on_commit(
                    lambda: retry_payment_submission.apply_async(
                        args=[str(payment_id)],
                        countdown=countdown,
                    )
                )
                logger.warning(
                    "Transient processor error, retry scheduled",
                    extra={**context, "countdown": countdown},
                )
                return payment

            payment.fail(exc.message)
            payment.save()
            charge = Charge.objects.select_for_update().filter(pk=payment.charge_id).first()
            if charge is not None and charge.status == ChargeStatus.PROCESSING:
                charge.fail(exc.message)
                charge.save()

        logger.error("Payment submission retries exhausted", extra=context)
        return payment

    @classmethod
    def _record_permanent_failure(cls, payment_id, exc: StripeError) -> Payment:
        with cls.atomic():
            payment = cls.lock_payment(payment_id)
            if payment.status != PaymentStatus.PENDING:
                return payment
            cls.mark_failed(payment, exc.message)
        return payment

    # ==========================================================================
    # Outcomes (callers hold the payment lock inside a transaction)
    # ==========================================================================

    @classmethod
    def mark_completed(cls, payment: Payment, payment_intent_id: str | None = None) -> Payment:
        """
        Apply a confirmed collection.

        Completes the payment, pays the charge, refreshes the bill, funds the
        ledger, completes a consent task and closes the cycle when it is
        fully funded. A payment that is already COMPLETED is left alone.

        Raises:
            OverfundingError / CycleStateError / LedgerInconsistencyError:
                from LedgerCycleManager.record_funding; the caller rolls back
        """
        if payment.status == PaymentStatus.COMPLETED:
            return payment

        payment.complete(payment_intent_id)
        payment.save()

        charge = (
            Charge.objects.select_for_update()
            .select_related("bill")
            .filter(pk=payment.charge_id)
            .first()
        )
        if charge is None:
            cls.get_logger().warning(
                "Completed payment has no charge",
                extra={"payment_id": str(payment.id)},
            )
            return payment

        if charge.status != ChargeStatus.PAID:
            charge.mark_paid()
            if payment.stripe_payment_intent_id:
                charge.stripe_payment_intent_id = payment.stripe_payment_intent_id
            charge.save()
        charge.bill.refresh_status()

        ledger_id = charge.bill.ledger_id
        LedgerCycleManager.record_funding(ledger_id, payment.amount_cents)

        if cls._task_status(charge) == TaskPaymentStatus.AUTHORIZED:
            TaskConsentService.complete(charge.task_id)

        LedgerCycleManager.close_if_funded(ledger_id)

        cls.get_logger().info(
            "Payment completed",
            extra={
                "payment_id": str(payment.id),
                "charge_id": charge.pk,
                "ledger_id": ledger_id,
                "amount_cents": payment.amount_cents,
            },
        )
        return payment

    @classmethod
    def mark_failed(cls, payment: Payment, reason: str) -> Payment:
        """
        Apply a failed collection.

        The payment is failed, the charge goes back to UNPAID so the roommate
        can pay again, and the house's HSI takes a late-payment step once per
        submission attempt. Safe to call again for the same attempt.
        """
        if payment.status == PaymentStatus.COMPLETED:
            cls.get_logger().warning(
                "Ignoring failure for completed payment",
                extra={"payment_id": str(payment.id), "reason": reason},
            )
            return payment

        if payment.status != PaymentStatus.FAILED:
            payment.fail(reason)
            payment.save()

        charge = (
            Charge.objects.select_for_update()
            .select_related("bill")
            .filter(pk=payment.charge_id)
            .first()
        )
        if charge is None:
            return payment

        if charge.status == ChargeStatus.PROCESSING:
            charge.decline(reason)
            charge.save()

        if cls._task_status(charge) == TaskPaymentStatus.AUTHORIZED:
            TaskConsentService.fail(charge.task_id, reason)

        HSIService.recompute_score(
            charge.bill.house_id,
            HSIOutcome.LATE_PAYMENT,
            reason=f"Payment failed: {reason}"[:255],
            reference=f"payment:{payment.id}:{payment.attempt}:failed",
        )

        cls.get_logger().warning(
            "Payment failed",
            extra={
                "payment_id": str(payment.id),
                "charge_id": charge.pk,
                "reason": reason,
            },
        )
        return payment

    @staticmethod
    def _task_status(charge: Charge) -> str | None:
        if not charge.task_id:
            return None
        return Task.objects.filter(pk=charge.task_id).values_list("payment_status", flat=True).first()

    # ==========================================================================
    # Manual retry
    # ==========================================================================

    @classmethod
    def retry(cls, payment_id) -> Payment:
        """
        Resubmit a FAILED payment under a new attempt.

        Raises:
            InvalidStateTransitionError: Payment is not FAILED, or its charge
                is no longer collectable
        """
        with cls.atomic():
            payment = cls.lock_payment(payment_id)
            previous = payment.status
            try:
                payment.retry()
            except TransitionNotAllowed:
                raise InvalidStateTransitionError(
                    f"Cannot retry payment {payment_id} in state {previous}",
                    details={"payment_id": str(payment_id), "from_state": previous, "transition": "retry"},
                )

            charge = Charge.objects.select_for_update().filter(pk=payment.charge_id).first()
            if charge is None or not charge.is_open:
                raise InvalidStateTransitionError(
                    f"Charge for payment {payment_id} cannot be collected",
                    details={
                        "payment_id": str(payment_id),
                        "charge_status": charge.status if charge else None,
                    },
                )
            charge.start_processing()
            charge.save()
            payment.save()

        cls.get_logger().info(
            "Payment retry started",
            extra={"payment_id": str(payment_id), "attempt": payment.attempt},
        )
        return cls.attempt_submission(payment_id)
