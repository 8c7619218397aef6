"""
Tests for payment Celery tasks: the stuck payment sweep and webhook
retry housekeeping.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.utils import timezone

from billing.choices import ChargeStatus
from billing.models import Charge, HouseServiceLedger
from payments.adapters import PaymentIntentResult
from payments.models import Payment, StripeWebhookLog
from payments.state_machines import PaymentStatus, WebhookLogStatus
from payments.tasks import (
    cleanup_stuck_webhooks,
    reconcile_stuck_payments,
    reprocess_webhook_log,
    retry_failed_webhooks,
    retry_payment_submission,
)
from payments.tests.factories import PaymentFactory, StripeWebhookLogFactory


def age(model, pk, minutes):
    model.objects.filter(pk=pk).update(updated_at=timezone.now() - timedelta(minutes=minutes))


@pytest.fixture
def retrieve():
    with patch("payments.tasks.StripeAdapter.retrieve_payment_intent") as mock:
        yield mock


def intent_with_status(payment, status, last_error=None):
    return PaymentIntentResult(
        id=payment.stripe_payment_intent_id,
        status=status,
        amount_cents=payment.amount_cents,
        currency="usd",
        last_error=last_error,
    )


# =============================================================================
# Stuck payment sweep
# =============================================================================


class TestReconcileStuckPayments:
    def test_succeeded_intent_completes_payment(self, processing_payment, ledger, retrieve, mock_redis):
        age(Payment, processing_payment.pk, 60)
        retrieve.return_value = intent_with_status(processing_payment, "succeeded")

        counts = reconcile_stuck_payments()

        assert counts["checked"] == 1
        assert counts["completed"] == 1
        assert Payment.objects.get(pk=processing_payment.pk).status == PaymentStatus.COMPLETED
        assert HouseServiceLedger.objects.get(pk=ledger.pk).funded_cents == 3534

    def test_abandoned_intent_fails_payment(self, processing_payment, retrieve, mock_redis):
        age(Payment, processing_payment.pk, 60)
        retrieve.return_value = intent_with_status(
            processing_payment, "requires_payment_method", last_error="Card expired"
        )

        counts = reconcile_stuck_payments()

        assert counts["failed"] == 1
        payment = Payment.objects.get(pk=processing_payment.pk)
        assert payment.status == PaymentStatus.FAILED
        assert payment.error_message == "Card expired"
        assert Charge.objects.get(pk=payment.charge_id).status == ChargeStatus.UNPAID

    def test_in_flight_intent_is_left_alone(self, processing_payment, retrieve, mock_redis):
        age(Payment, processing_payment.pk, 60)
        retrieve.return_value = intent_with_status(processing_payment, "processing")

        counts = reconcile_stuck_payments()

        assert counts["unchanged"] == 1
        assert Payment.objects.get(pk=processing_payment.pk).status == PaymentStatus.PROCESSING

    def test_recent_payments_are_not_checked(self, processing_payment, retrieve, mock_redis):
        counts = reconcile_stuck_payments()

        assert counts["checked"] == 0
        retrieve.assert_not_called()

    def test_locked_payment_is_skipped(self, processing_payment, retrieve, mock_redis):
        age(Payment, processing_payment.pk, 60)
        mock_redis.set.return_value = False

        counts = reconcile_stuck_payments()

        assert counts["skipped"] == 1
        retrieve.assert_not_called()

    def test_threshold_comes_from_settings(self, processing_payment, retrieve, mock_redis, settings):
        settings.PAYMENTS_STUCK_PROCESSING_MINUTES = 5
        age(Payment, processing_payment.pk, 10)
        retrieve.return_value = intent_with_status(processing_payment, "processing")

        assert reconcile_stuck_payments()["checked"] == 1


class TestRetryPaymentSubmission:
    def test_submits_pending_payment(self, charge):
        charge.start_processing()
        charge.save()
        payment = PaymentFactory(charge=charge, user=charge.user, amount_cents=charge.amount_cents)

        with patch("payments.services.payment_processor.StripeAdapter.create_payment_intent") as create:
            create.return_value = PaymentIntentResult(
                id="pi_retry", status="processing", amount_cents=charge.amount_cents, currency="usd"
            )
            result = retry_payment_submission(str(payment.id))

        assert result["status"] == PaymentStatus.PROCESSING
        assert Payment.objects.get(pk=payment.pk).stripe_payment_intent_id == "pi_retry"

    def test_settled_payment_is_not_resubmitted(self, processing_payment):
        with patch("payments.services.payment_processor.StripeAdapter.create_payment_intent") as create:
            result = retry_payment_submission(str(processing_payment.id))

        create.assert_not_called()
        assert result["status"] == PaymentStatus.PROCESSING


# =============================================================================
# Webhook housekeeping
# =============================================================================


@pytest.mark.django_db
class TestWebhookTasks:
    def test_retry_failed_webhooks_queues_eligible_logs(self):
        eligible = StripeWebhookLogFactory(failed=True, retry_count=2)
        StripeWebhookLogFactory(failed=True, retry_count=5)
        StripeWebhookLogFactory(completed=True)

        with patch("payments.tasks.reprocess_webhook_log.delay") as delay:
            result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        delay.assert_called_once_with(str(eligible.id))

    def test_cleanup_resets_stuck_processing_logs(self):
        stuck = StripeWebhookLogFactory()
        fresh = StripeWebhookLogFactory()
        age(StripeWebhookLog, stuck.pk, 45)

        result = cleanup_stuck_webhooks()

        assert result == {"reset_count": 1}
        assert StripeWebhookLog.objects.get(pk=stuck.pk).status == WebhookLogStatus.FAILED
        assert StripeWebhookLog.objects.get(pk=fresh.pk).status == WebhookLogStatus.PROCESSING

    def test_reprocess_webhook_log_applies_stored_event(self, processing_payment):
        log = StripeWebhookLogFactory(
            failed=True,
            payload={
                "id": "evt_stored",
                "type": "payment_intent.succeeded",
                "data": {"object": {"id": processing_payment.stripe_payment_intent_id}},
            },
            stripe_event_id="evt_stored",
        )

        result = reprocess_webhook_log(str(log.id))

        assert result["success"] is True
        assert StripeWebhookLog.objects.get(pk=log.pk).is_completed
        assert Payment.objects.get(pk=processing_payment.pk).status == PaymentStatus.COMPLETED
