"""
Pytest fixtures for payment tests.

Fixtures build the standard billing scenario (a $106.00 bill split
3534/3533/3533 across three roommates) and payments in the states the
processor and reconciler care about.

Usage:
    def test_success_funds_ledger(processing_payment, stripe_event):
        WebhookReconciler.ingest(stripe_event("payment_intent.succeeded", processing_payment))
"""

import pytest

from billing.services import BillGenerator, ChargeAllocator, LedgerCycleManager
from houses.tests.factories import HouseFactory, HouseMemberFactory, HouseServiceFactory
from payments.tests.factories import PaymentFactory


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """Replace the django-redis connection used by DistributedLock."""
    redis = mocker.MagicMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    mocker.patch("payments.locks.get_redis_connection", return_value=redis)
    return redis


@pytest.fixture
def mock_stripe_create(mocker):
    """Patch StripeAdapter.create_payment_intent as seen by the processor."""
    return mocker.patch("payments.services.payment_processor.StripeAdapter.create_payment_intent")


# =============================================================================
# Billing Scenario
# =============================================================================


@pytest.fixture
def house(db):
    return HouseFactory()


@pytest.fixture
def roommates(house):
    members = HouseMemberFactory.create_batch(3, house=house)
    return [member.user for member in members]


@pytest.fixture
def ledger(house, roommates):
    """Active cycle billed for $100.00 plus a $2 fee per roommate."""
    service = HouseServiceFactory(house=house)
    ledger = LedgerCycleManager.open_cycle(service.id)
    LedgerCycleManager.accrue(ledger.id, 10000)
    bill = BillGenerator.generate(ledger.id)
    ChargeAllocator.allocate(bill.id)
    return ledger


@pytest.fixture
def charges(ledger):
    """The three charges, lowest user id first (3534, 3533, 3533)."""
    return list(ledger.bills.get().charges.order_by("user_id"))


@pytest.fixture
def charge(charges):
    return charges[0]


# =============================================================================
# Payment State Fixtures
# =============================================================================


@pytest.fixture
def processing_payment(charge):
    """Payment accepted by Stripe, its charge in PROCESSING."""
    charge.start_processing()
    charge.save()
    return PaymentFactory(
        charge=charge,
        user=charge.user,
        amount_cents=charge.amount_cents,
        processing=True,
    )


@pytest.fixture
def stripe_event():
    """Build a Stripe event payload for a payment's intent."""
    counter = iter(range(1, 10_000))

    def _create(event_type, payment=None, *, intent_id=None, metadata=None, event_id=None, error=None):
        intent = {
            "id": intent_id or payment.stripe_payment_intent_id,
            "object": "payment_intent",
            "metadata": metadata if metadata is not None else (
                {"payment_id": str(payment.id), "attempt": str(payment.attempt)}
                if payment is not None
                else {}
            ),
        }
        if payment is not None:
            intent["amount"] = payment.amount_cents
        if error:
            intent["last_payment_error"] = {"message": error}
        return {
            "id": event_id or f"evt_test_{next(counter)}",
            "type": event_type,
            "data": {"object": intent},
        }

    return _create
