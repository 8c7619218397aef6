"""
Tests for billing models and their django-fsm transitions.
"""

import pytest
from django.db import IntegrityError, transaction
from django_fsm import TransitionNotAllowed

from billing.choices import BillStatus, ChargeStatus, LedgerStatus, TaskPaymentStatus
from billing.models import Charge, HouseServiceLedger
from billing.tests.factories import (
    BillFactory,
    ChargeFactory,
    HouseServiceLedgerFactory,
    TaskFactory,
)


# =============================================================================
# HouseServiceLedger
# =============================================================================


class TestHouseServiceLedger:
    def test_new_ledger_is_active_and_empty(self, db):
        ledger = HouseServiceLedgerFactory()

        assert ledger.status == LedgerStatus.ACTIVE
        assert ledger.funded_cents == 0
        assert ledger.funding_required_cents == 0
        assert ledger.version == 1

    def test_second_active_ledger_for_service_is_rejected(self, db):
        ledger = HouseServiceLedgerFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            HouseServiceLedgerFactory(house_service=ledger.house_service)

    def test_closed_ledger_allows_a_new_active_one(self, db):
        ledger = HouseServiceLedgerFactory()
        ledger.close()
        ledger.save()

        replacement = HouseServiceLedgerFactory(house_service=ledger.house_service)

        assert replacement.status == LedgerStatus.ACTIVE

    def test_close_sets_cycle_end_and_note(self, db):
        ledger = HouseServiceLedgerFactory()

        ledger.close(note="Provider refunded")
        ledger.save()

        assert ledger.status == LedgerStatus.CLOSED
        assert ledger.cycle_end is not None
        assert ledger.reconciliation_note == "Provider refunded"

    def test_closed_ledger_cannot_close_again(self, db):
        ledger = HouseServiceLedgerFactory()
        ledger.close()

        with pytest.raises(TransitionNotAllowed):
            ledger.close()

    def test_status_cannot_be_assigned_directly(self, db):
        ledger = HouseServiceLedgerFactory()

        with pytest.raises(AttributeError):
            ledger.status = LedgerStatus.CLOSED

    def test_save_increments_version(self, db):
        ledger = HouseServiceLedgerFactory()

        ledger.funded_cents = 100
        ledger.save()

        assert ledger.version == 2
        assert HouseServiceLedger.objects.get(pk=ledger.pk).version == 2


# =============================================================================
# Bill
# =============================================================================


class TestBillStatus:
    def test_refresh_status_follows_charges(self, db):
        bill = BillFactory()
        first = ChargeFactory(bill=bill)
        ChargeFactory(bill=bill)

        assert bill.refresh_status() == BillStatus.PENDING

        first.mark_paid()
        first.save()
        assert bill.refresh_status() == BillStatus.PARTIAL_PAID

        for charge in Charge.objects.filter(bill=bill, status=ChargeStatus.UNPAID):
            charge.mark_paid()
            charge.save()
        assert bill.refresh_status() == BillStatus.PAID

    def test_amount_must_equal_base_plus_fee(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            BillFactory(base_amount_cents=100, service_fee_cents=10, amount_cents=200)


# =============================================================================
# Charge
# =============================================================================


class TestChargeTransitions:
    def test_unpaid_to_processing_to_paid(self, db):
        charge = ChargeFactory()

        charge.start_processing("pi_123")
        charge.save()
        charge.mark_paid()
        charge.save()

        assert charge.status == ChargeStatus.PAID
        assert charge.paid_at is not None
        assert charge.stripe_payment_intent_id == "pi_123"

    def test_decline_returns_charge_to_unpaid(self, db):
        charge = ChargeFactory()
        charge.start_processing("pi_123")

        charge.decline("card_declined")

        assert charge.status == ChargeStatus.UNPAID
        assert charge.retry_count == 1
        assert charge.error_message == "card_declined"

    def test_failed_charge_can_be_retried(self, db):
        charge = ChargeFactory()
        charge.fail("retries exhausted")

        charge.start_processing()

        assert charge.status == ChargeStatus.PROCESSING

    def test_paid_charge_cannot_be_processed_again(self, db):
        charge = ChargeFactory(status=ChargeStatus.PAID)

        with pytest.raises(TransitionNotAllowed):
            charge.start_processing()

    def test_one_charge_per_roommate_per_bill(self, db):
        charge = ChargeFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            ChargeFactory(bill=charge.bill, user=charge.user)


# =============================================================================
# Task
# =============================================================================


class TestTaskTransitions:
    def test_pending_to_authorized_to_completed(self, db):
        task = TaskFactory()

        task.authorize("pi_auth")
        task.save()
        task.complete()
        task.save()

        assert task.payment_status == TaskPaymentStatus.COMPLETED
        assert task.stripe_payment_intent_id == "pi_auth"
        assert task.authorized_at is not None

    def test_cancelled_is_terminal(self, db):
        task = TaskFactory(authorized=True)
        task.cancel()

        with pytest.raises(TransitionNotAllowed):
            task.authorize("pi_again")
        with pytest.raises(TransitionNotAllowed):
            task.complete()

    def test_not_required_cannot_be_authorized(self, db):
        task = TaskFactory(payment_status=TaskPaymentStatus.NOT_REQUIRED)

        with pytest.raises(TransitionNotAllowed):
            task.authorize("pi_auth")
