"""
Tests for the Stripe event handlers.

Handlers are called through dispatch_webhook with an unsaved log built
from the event, the way the reconciler hands them a claimed row.
"""

import pytest

from billing.choices import ChargeStatus, TaskPaymentStatus
from billing.models import Charge, Task
from billing.tests.factories import TaskFactory
from houses.models import HSIAdjustment
from payments.adapters import PaymentIntentResult
from payments.models import Payment, StripeWebhookLog
from payments.services import PaymentProcessor
from payments.state_machines import PaymentStatus
from payments.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook, register_handler


def log_for(event):
    return StripeWebhookLog(
        stripe_event_id=event["id"],
        event_type=event["type"],
        payload=event,
    )


class TestRegistry:
    def test_core_events_are_registered(self):
        assert {
            "payment_intent.succeeded",
            "payment_intent.payment_failed",
            "payment_intent.canceled",
            "payment_intent.amount_capturable_updated",
        } <= set(WEBHOOK_HANDLERS)

    def test_register_handler_adds_to_registry(self):
        @register_handler("test.event")
        def handler(webhook_log):
            return None

        try:
            assert WEBHOOK_HANDLERS["test.event"] is handler
        finally:
            WEBHOOK_HANDLERS.pop("test.event")

    def test_unknown_type_is_success(self):
        result = dispatch_webhook(log_for({"id": "evt_1", "type": "charge.dispute.created", "data": {}}))

        assert result.success
        assert result.data is None


class TestPaymentIntentSucceeded:
    def test_falls_back_to_metadata_payment_id(self, charge, stripe_event):
        payment = Payment.objects.create(
            idempotency_key="key-1",
            charge=charge,
            user=charge.user,
            amount_cents=charge.amount_cents,
        )
        event = stripe_event("payment_intent.succeeded", payment, intent_id="pi_early")

        result = dispatch_webhook(log_for(event))

        assert result.success
        payment = Payment.objects.get(pk=payment.pk)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.stripe_payment_intent_id == "pi_early"
        assert Charge.objects.get(pk=charge.pk).stripe_payment_intent_id == "pi_early"

    def test_missing_intent_id_is_invalid(self, db):
        event = {"id": "evt_1", "type": "payment_intent.succeeded", "data": {"object": {}}}

        result = dispatch_webhook(log_for(event))

        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"

    def test_malformed_payment_id_is_not_found(self, db, stripe_event):
        event = stripe_event("payment_intent.succeeded", intent_id="pi_x", metadata={"payment_id": "nope"})

        result = dispatch_webhook(log_for(event))

        assert result.error_code == "PAYMENT_NOT_FOUND"


class TestPaymentIntentFailed:
    def test_fails_payment_with_processor_message(self, processing_payment, stripe_event):
        event = stripe_event("payment_intent.payment_failed", processing_payment, error="Card expired")

        result = dispatch_webhook(log_for(event))

        assert result.success
        payment = Payment.objects.get(pk=processing_payment.pk)
        assert payment.status == PaymentStatus.FAILED
        assert payment.error_message == "Card expired"
        assert Charge.objects.get(pk=payment.charge_id).status == ChargeStatus.UNPAID

    def test_fails_consent_task_without_payment(self, db, stripe_event):
        task = TaskFactory(authorized=True)
        event = stripe_event(
            "payment_intent.payment_failed",
            intent_id=task.stripe_payment_intent_id,
            metadata={},
            error="Authorization declined",
        )

        result = dispatch_webhook(log_for(event))

        assert result.success
        assert Task.objects.get(pk=task.pk).payment_status == TaskPaymentStatus.FAILED


class TestSupersededAttempt:
    """Late events for the intent of an attempt that was retried."""

    @pytest.fixture
    def retried_payment(self, charge, mock_stripe_create, stripe_event):
        mock_stripe_create.return_value = PaymentIntentResult(
            id="pi_old", status="processing", amount_cents=charge.amount_cents, currency="usd"
        )
        payment = PaymentProcessor.submit(charge.id, "key-1")
        dispatch_webhook(log_for(stripe_event("payment_intent.payment_failed", payment, error="Card expired")))

        mock_stripe_create.return_value = PaymentIntentResult(
            id="pi_new", status="processing", amount_cents=charge.amount_cents, currency="usd"
        )
        return PaymentProcessor.retry(payment.id)

    def old_attempt_event(self, stripe_event, event_type, payment, **kwargs):
        return stripe_event(
            event_type,
            intent_id="pi_old",
            metadata={"payment_id": str(payment.id), "attempt": "1"},
            **kwargs,
        )

    def test_late_failure_leaves_new_attempt_in_flight(self, retried_payment, stripe_event):
        event = self.old_attempt_event(
            stripe_event, "payment_intent.payment_failed", retried_payment, error="Card expired"
        )

        result = dispatch_webhook(log_for(event))

        assert result.success
        payment = Payment.objects.get(pk=retried_payment.pk)
        assert payment.status == PaymentStatus.PROCESSING
        assert payment.stripe_payment_intent_id == "pi_new"
        assert Charge.objects.get(pk=payment.charge_id).status == ChargeStatus.PROCESSING
        assert not HSIAdjustment.objects.filter(reference_key=f"payment:{payment.id}:2:failed").exists()

    def test_late_success_does_not_complete_new_attempt(self, retried_payment, stripe_event):
        event = self.old_attempt_event(stripe_event, "payment_intent.succeeded", retried_payment)

        result = dispatch_webhook(log_for(event))

        assert result.success
        assert Payment.objects.get(pk=retried_payment.pk).status == PaymentStatus.PROCESSING

    def test_event_for_current_intent_still_applies(self, retried_payment, stripe_event):
        event = stripe_event("payment_intent.succeeded", retried_payment)

        dispatch_webhook(log_for(event))

        assert Payment.objects.get(pk=retried_payment.pk).status == PaymentStatus.COMPLETED

    def test_early_event_for_previous_attempt_is_ignored(self, charge, stripe_event):
        payment = Payment.objects.create(
            idempotency_key="key-1",
            charge=charge,
            user=charge.user,
            amount_cents=charge.amount_cents,
            attempt=2,
        )
        event = self.old_attempt_event(stripe_event, "payment_intent.succeeded", payment)

        result = dispatch_webhook(log_for(event))

        assert result.success
        assert Payment.objects.get(pk=payment.pk).status == PaymentStatus.PENDING


class TestPaymentIntentCanceled:
    def test_cancels_consent_task(self, db, stripe_event):
        task = TaskFactory()
        event = stripe_event("payment_intent.canceled", intent_id="pi_hold", metadata={"task_id": str(task.pk)})

        result = dispatch_webhook(log_for(event))

        assert result.success
        assert Task.objects.get(pk=task.pk).payment_status == TaskPaymentStatus.CANCELLED

    def test_unknown_intent_is_fine(self, db, stripe_event):
        result = dispatch_webhook(log_for(stripe_event("payment_intent.canceled", intent_id="pi_x", metadata={})))

        assert result.success


class TestAmountCapturableUpdated:
    def test_authorizes_pending_task(self, db, stripe_event):
        task = TaskFactory()
        event = stripe_event(
            "payment_intent.amount_capturable_updated",
            intent_id="pi_hold",
            metadata={"task_id": str(task.pk)},
        )

        result = dispatch_webhook(log_for(event))

        assert result.success
        task = Task.objects.get(pk=task.pk)
        assert task.payment_status == TaskPaymentStatus.AUTHORIZED
        assert task.stripe_payment_intent_id == "pi_hold"

    def test_repeat_authorization_is_harmless(self, db, stripe_event):
        task = TaskFactory(authorized=True)
        event = stripe_event(
            "payment_intent.amount_capturable_updated",
            intent_id=task.stripe_payment_intent_id,
            metadata={},
        )

        result = dispatch_webhook(log_for(event))

        assert result.success
        assert Task.objects.get(pk=task.pk).payment_status == TaskPaymentStatus.AUTHORIZED

    def test_unknown_task_fails(self, db, stripe_event):
        event = stripe_event("payment_intent.amount_capturable_updated", intent_id="pi_x", metadata={})

        result = dispatch_webhook(log_for(event))

        assert not result.success
        assert result.error_code == "TASK_NOT_FOUND"

