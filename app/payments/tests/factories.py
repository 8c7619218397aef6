"""
Factory Boy factories for payment models.

Usage:
    from payments.tests.factories import PaymentFactory, StripeWebhookLogFactory

    payment = PaymentFactory(charge=charge, processing=True)
    log = StripeWebhookLogFactory(failed=True)
"""

import factory
from django.utils import timezone

from authentication.tests.factories import UserFactory
from payments.models import Payment, StripeWebhookLog
from payments.state_machines import PaymentStatus, WebhookLogStatus


class PaymentFactory(factory.django.DjangoModelFactory):
    """PENDING payment; pass ``charge=`` to tie it to a billing charge."""

    class Meta:
        model = Payment

    idempotency_key = factory.Sequence(lambda n: f"idem-{n}")
    user = factory.SubFactory(UserFactory)
    amount_cents = 3534
    currency = "usd"
    status = PaymentStatus.PENDING

    class Params:
        processing = factory.Trait(
            status=PaymentStatus.PROCESSING,
            stripe_payment_intent_id=factory.Sequence(lambda n: f"pi_test_{n}"),
            submitted_at=factory.LazyFunction(timezone.now),
        )
        failed = factory.Trait(
            status=PaymentStatus.FAILED,
            error_message="Your card was declined.",
            failed_at=factory.LazyFunction(timezone.now),
        )
        completed = factory.Trait(
            status=PaymentStatus.COMPLETED,
            stripe_payment_intent_id=factory.Sequence(lambda n: f"pi_done_{n}"),
            completed_at=factory.LazyFunction(timezone.now),
        )


class StripeWebhookLogFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = StripeWebhookLog

    stripe_event_id = factory.Sequence(lambda n: f"evt_log_{n}")
    event_type = "payment_intent.succeeded"
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.stripe_event_id,
            "type": o.event_type,
            "data": {"object": {"id": "pi_unknown", "object": "payment_intent"}},
        }
    )
    status = WebhookLogStatus.PROCESSING

    class Params:
        failed = factory.Trait(
            status=WebhookLogStatus.FAILED,
            retry_count=1,
            error_message="Payment not found for intent: pi_unknown",
        )
        completed = factory.Trait(
            status=WebhookLogStatus.COMPLETED,
            processed_at=factory.LazyFunction(timezone.now),
        )
