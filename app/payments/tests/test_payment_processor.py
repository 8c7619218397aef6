"""
Tests for PaymentProcessor: idempotent submission, retry scheduling and
the effects of completed and failed collections.
"""

import logging
from unittest.mock import patch

import pytest

from billing.choices import ChargeStatus, TaskPaymentStatus
from billing.models import Charge, HouseServiceLedger, Task
from billing.tests.factories import TaskFactory
from core.exceptions import NotFoundError, ValidationError
from houses.models import HSIAdjustment
from houses.services import HSIService
from payments.adapters import PaymentIntentResult
from payments.exceptions import (
    InvalidStateTransitionError,
    StripeCardDeclinedError,
    StripeTimeoutError,
)
from payments.models import Payment
from payments.services import PaymentProcessor
from payments.state_machines import PaymentStatus


def intent(intent_id="pi_new", status="processing", amount_cents=3534):
    return PaymentIntentResult(id=intent_id, status=status, amount_cents=amount_cents, currency="usd")


def reload(obj):
    return type(obj).objects.get(pk=obj.pk)


# =============================================================================
# Submission
# =============================================================================


class TestSubmit:
    def test_submits_charge_to_stripe(self, charge, mock_stripe_create):
        mock_stripe_create.return_value = intent("pi_1")

        payment = PaymentProcessor.submit(charge.id, "key-1", payment_method_id="pm_card_visa")

        assert payment.status == PaymentStatus.PROCESSING
        assert payment.amount_cents == 3534
        assert payment.stripe_payment_intent_id == "pi_1"

        params = mock_stripe_create.call_args.args[0]
        assert params.amount_cents == 3534
        assert params.confirm is True
        assert params.metadata["payment_id"] == str(payment.id)
        assert params.metadata["attempt"] == "1"
        assert params.idempotency_key.startswith(f"create_intent:{payment.id}:1:")

        charge = reload(charge)
        assert charge.status == ChargeStatus.PROCESSING
        assert charge.stripe_payment_intent_id == "pi_1"

    def test_same_key_reaches_stripe_once(self, charge, mock_stripe_create):
        mock_stripe_create.return_value = intent()

        first = PaymentProcessor.submit(charge.id, "key-1")
        second = PaymentProcessor.submit(charge.id, "key-1")

        assert first.id == second.id
        assert mock_stripe_create.call_count == 1
        assert Payment.objects.count() == 1

    @pytest.mark.parametrize("callers", [2, 5, 20])
    def test_many_callers_with_one_key_share_one_payment(self, charge, mock_stripe_create, callers):
        mock_stripe_create.return_value = intent()

        responses = [PaymentProcessor.submit(charge.id, "key-shared") for _ in range(callers)]

        assert len({p.id for p in responses}) == 1
        assert len({(p.status, p.stripe_payment_intent_id, p.amount_cents) for p in responses}) == 1
        assert Payment.objects.count() == 1
        assert mock_stripe_create.call_count == 1

    def test_resubmission_during_stripe_call_returns_claimed_payment(self, charge, mock_stripe_create):
        inner = []

        def create(params, trace_id=None):
            inner.append(PaymentProcessor.submit(charge.id, "key-1"))
            return intent()

        mock_stripe_create.side_effect = create

        outer = PaymentProcessor.submit(charge.id, "key-1")

        assert mock_stripe_create.call_count == 1
        assert inner[0].id == outer.id
        assert inner[0].status == PaymentStatus.PENDING

    def test_second_key_for_charge_in_flight_is_rejected(self, charge, mock_stripe_create):
        mock_stripe_create.return_value = intent()
        PaymentProcessor.submit(charge.id, "key-1")

        with pytest.raises(InvalidStateTransitionError):
            PaymentProcessor.submit(charge.id, "key-2")

    def test_key_is_required(self, charge, mock_stripe_create):
        with pytest.raises(ValidationError) as exc_info:
            PaymentProcessor.submit(charge.id, "")

        assert exc_info.value.error_code == "IDEMPOTENCY_KEY_REQUIRED"
        mock_stripe_create.assert_not_called()

    def test_unknown_charge(self, db, mock_stripe_create):
        with pytest.raises(NotFoundError):
            PaymentProcessor.submit(999999, "key-1")


class TestSubmissionFailures:
    def test_transient_error_schedules_retry_with_backoff(
        self, charge, mock_stripe_create, django_capture_on_commit_callbacks
    ):
        mock_stripe_create.side_effect = StripeTimeoutError("Stripe request timed out. Please retry.")

        with patch("payments.tasks.retry_payment_submission.apply_async") as apply_async:
            with django_capture_on_commit_callbacks(execute=True):
                payment = PaymentProcessor.submit(charge.id, "key-1")

        payment = reload(payment)
        assert payment.status == PaymentStatus.PENDING
        assert payment.retry_count == 1
        assert reload(charge).status == ChargeStatus.PROCESSING

        apply_async.assert_called_once()
        kwargs = apply_async.call_args.kwargs
        assert kwargs["args"] == [str(payment.id)]
        assert 1.0 <= kwargs["countdown"] <= 1.25

    def test_retry_reuses_stripe_idempotency_key(self, charge, mock_stripe_create, django_capture_on_commit_callbacks):
        mock_stripe_create.side_effect = [StripeTimeoutError("timed out"), intent("pi_1")]

        with patch("payments.tasks.retry_payment_submission.apply_async"):
            with django_capture_on_commit_callbacks(execute=True):
                payment = PaymentProcessor.submit(charge.id, "key-1")
        PaymentProcessor.attempt_submission(payment.id)

        first_key = mock_stripe_create.call_args_list[0].args[0].idempotency_key
        second_key = mock_stripe_create.call_args_list[1].args[0].idempotency_key
        assert first_key == second_key
        assert reload(payment).status == PaymentStatus.PROCESSING

    def test_exhausted_retries_fail_payment_and_charge(self, charge, mock_stripe_create, settings, caplog):
        settings.STRIPE_MAX_RETRIES = 0
        mock_stripe_create.side_effect = StripeTimeoutError("timed out")
        score_before = HSIService.get_index(charge.bill.house_id).score

        with caplog.at_level(logging.ERROR):
            payment = PaymentProcessor.submit(charge.id, "key-1")

        assert reload(payment).status == PaymentStatus.FAILED
        assert reload(charge).status == ChargeStatus.FAILED
        assert HSIService.get_index(charge.bill.house_id).score == score_before
        assert any(
            r.levelno == logging.ERROR and r.getMessage() == "Payment submission retries exhausted"
            for r in caplog.records
        )

    def test_decline_returns_charge_to_unpaid_and_lowers_hsi(self, charge, mock_stripe_create):
        mock_stripe_create.side_effect = StripeCardDeclinedError("Your card was declined.")
        house_id = charge.bill.house_id
        score_before = HSIService.get_index(house_id).score

        payment = PaymentProcessor.submit(charge.id, "key-1")

        payment = reload(payment)
        assert payment.status == PaymentStatus.FAILED
        assert payment.error_message == "Your card was declined."

        charge = reload(charge)
        assert charge.status == ChargeStatus.UNPAID
        assert charge.error_message == "Your card was declined."

        assert HSIService.get_index(house_id).score == score_before - 5
        assert HSIAdjustment.objects.filter(reference_key=f"payment:{payment.id}:1:failed").exists()


# =============================================================================
# Outcomes
# =============================================================================


class TestMarkCompleted:
    def test_pays_charge_and_funds_ledger(self, processing_payment, ledger):
        PaymentProcessor.mark_completed(processing_payment)

        assert reload(processing_payment).status == PaymentStatus.COMPLETED
        assert reload(processing_payment.charge).status == ChargeStatus.PAID

        ledger = HouseServiceLedger.objects.get(pk=ledger.pk)
        assert ledger.funded_cents == 3534
        assert ledger.is_active

    def test_second_completion_is_a_noop(self, processing_payment, ledger):
        payment = PaymentProcessor.mark_completed(processing_payment)
        PaymentProcessor.mark_completed(payment)

        assert HouseServiceLedger.objects.get(pk=ledger.pk).funded_cents == 3534

    def test_completes_authorized_consent_task(self, processing_payment):
        task = TaskFactory(authorized=True, user=processing_payment.user)
        Charge.objects.filter(pk=processing_payment.charge_id).update(task=task)

        PaymentProcessor.mark_completed(processing_payment)

        assert Task.objects.get(pk=task.pk).payment_status == TaskPaymentStatus.COMPLETED


class TestMarkFailed:
    def test_hsi_step_applies_once_per_attempt(self, processing_payment):
        house_id = processing_payment.charge.bill.house_id
        score_before = HSIService.get_index(house_id).score

        payment = PaymentProcessor.mark_failed(processing_payment, "Card expired")
        PaymentProcessor.mark_failed(payment, "Card expired")

        assert HSIService.get_index(house_id).score == score_before - 5

    def test_failure_after_completion_is_ignored(self, processing_payment):
        payment = PaymentProcessor.mark_completed(processing_payment)

        PaymentProcessor.mark_failed(payment, "late failure")

        assert reload(payment).status == PaymentStatus.COMPLETED
        assert reload(payment.charge).status == ChargeStatus.PAID

    def test_fails_authorized_consent_task(self, processing_payment):
        task = TaskFactory(authorized=True, user=processing_payment.user)
        Charge.objects.filter(pk=processing_payment.charge_id).update(task=task)

        PaymentProcessor.mark_failed(processing_payment, "Card expired")

        task = Task.objects.get(pk=task.pk)
        assert task.payment_status == TaskPaymentStatus.FAILED
        assert task.failure_reason == "Card expired"


# =============================================================================
# Manual retry
# =============================================================================


class TestRetry:
    def test_retry_submits_new_attempt(self, charge, mock_stripe_create):
        mock_stripe_create.side_effect = [StripeCardDeclinedError("declined"), intent("pi_2")]
        payment = PaymentProcessor.submit(charge.id, "key-1", payment_method_id="pm_card_visa")

        payment = PaymentProcessor.retry(payment.id)

        assert payment.status == PaymentStatus.PROCESSING
        assert payment.attempt == 2
        assert payment.stripe_payment_intent_id == "pi_2"
        second_key = mock_stripe_create.call_args_list[1].args[0].idempotency_key
        assert second_key.startswith(f"create_intent:{payment.id}:2:")
        assert mock_stripe_create.call_args_list[1].args[0].metadata["attempt"] == "2"
        assert reload(charge).status == ChargeStatus.PROCESSING

    def test_only_failed_payments_can_be_retried(self, processing_payment):
        with pytest.raises(InvalidStateTransitionError):
            PaymentProcessor.retry(processing_payment.id)
