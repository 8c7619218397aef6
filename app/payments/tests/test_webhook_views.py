"""
Tests for the Stripe webhook endpoint.
"""

import json
from unittest.mock import patch

import pytest
from django.urls import reverse

from payments.exceptions import StripeInvalidRequestError
from payments.models import StripeWebhookLog


@pytest.fixture
def url():
    return reverse("payments:stripe_webhook")


@pytest.fixture
def verify():
    with patch("payments.webhooks.views.StripeAdapter.verify_webhook_signature") as mock:
        yield mock


def post(client, url, event, signature="t=1,v1=abc"):
    headers = {"HTTP_STRIPE_SIGNATURE": signature} if signature else {}
    return client.post(url, data=json.dumps(event), content_type="application/json", **headers)


@pytest.mark.django_db
class TestStripeWebhookView:
    def test_missing_signature_is_rejected(self, client, url, verify):
        response = post(client, url, {}, signature=None)

        assert response.status_code == 400
        verify.assert_not_called()

    def test_invalid_signature_is_rejected(self, client, url, verify):
        verify.side_effect = StripeInvalidRequestError("Invalid webhook signature")

        response = post(client, url, {"id": "evt_1", "type": "payment_intent.succeeded"})

        assert response.status_code == 400
        assert not StripeWebhookLog.objects.exists()

    def test_event_without_type_is_rejected(self, client, url, verify):
        verify.return_value = {"id": "evt_1"}

        response = post(client, url, {"id": "evt_1"})

        assert response.status_code == 400

    def test_get_is_not_allowed(self, client, url):
        assert client.get(url).status_code == 405

    def test_processed_then_duplicate(self, client, url, verify, processing_payment, stripe_event):
        event = stripe_event("payment_intent.succeeded", processing_payment)
        verify.return_value = event

        first = post(client, url, event)
        second = post(client, url, event)

        assert first.status_code == 200
        assert first.content == b"Processed"
        assert second.status_code == 200
        assert second.content == b"Already processed"
        assert StripeWebhookLog.objects.filter(stripe_event_id=event["id"]).count() == 1

    def test_handler_failure_is_acknowledged_and_recorded(self, client, url, verify, stripe_event):
        event = stripe_event("payment_intent.succeeded", intent_id="pi_missing", metadata={})
        verify.return_value = event

        response = post(client, url, event)

        assert response.status_code == 200
        assert response.content == b"Recorded for retry"
        assert StripeWebhookLog.objects.get(stripe_event_id=event["id"]).is_failed
