"""
Tests for billing Celery tasks: recurring bill generation and the
late-payment sweep.
"""

from datetime import date

import pytest
from freezegun import freeze_time

from billing.choices import ChargeStatus
from billing.models import Bill, Charge
from billing.tasks import (
    generate_fixed_recurring_bills,
    late_penalty_points,
    process_late_charges,
)
from billing.tests.factories import ChargeFactory
from houses.choices import HouseServiceStatus, HSIOutcome
from houses.models import HouseStatusIndex, HSIAdjustment
from houses.tests.factories import HouseServiceFactory


# =============================================================================
# Penalty Schedule
# =============================================================================


class TestLatePenaltyPoints:
    @pytest.mark.parametrize(
        "days,points",
        [
            (0, 0),
            (3, 0),
            (4, -1),
            (7, -1),
            (8, -3),
            (14, -3),
            (15, -6),
            (16, -7),
            (17, -7),
            (30, -14),
            (32, -15),
            (90, -15),
        ],
    )
    def test_escalating_schedule(self, days, points):
        assert late_penalty_points(days) == points


# =============================================================================
# Fixed Recurring Bills
# =============================================================================


class TestGenerateFixedRecurringBills:
    @freeze_time("2025-04-01 06:00:00")
    def test_bills_services_scheduled_today(self, house, roommates):
        due_today = HouseServiceFactory(house=house, fixed=True)
        HouseServiceFactory(house=house, fixed=True, create_day=15)

        result = generate_fixed_recurring_bills()

        assert result == {"billed": 1, "skipped": 0, "failed": 0}
        assert Bill.objects.get().ledger.house_service == due_today

    @freeze_time("2025-04-01 06:00:00")
    def test_rerun_same_day_is_skipped(self, house, roommates):
        HouseServiceFactory(house=house, fixed=True)
        generate_fixed_recurring_bills()

        result = generate_fixed_recurring_bills()

        assert result == {"billed": 0, "skipped": 1, "failed": 0}
        assert Bill.objects.count() == 1

    @freeze_time("2025-02-28 06:00:00")
    def test_day_past_month_end_runs_on_last_day(self, house, roommates):
        HouseServiceFactory(house=house, fixed=True, create_day=31, due_day=5)

        result = generate_fixed_recurring_bills()

        assert result["billed"] == 1
        assert Bill.objects.get().due_date == date(2025, 3, 5)

    @freeze_time("2025-04-01 06:00:00")
    def test_inactive_services_are_ignored(self, house, roommates):
        HouseServiceFactory(house=house, fixed=True, status=HouseServiceStatus.INACTIVE)

        result = generate_fixed_recurring_bills()

        assert result["billed"] == 0
        assert not Bill.objects.exists()

    @freeze_time("2025-04-01 06:00:00")
    def test_house_without_members_is_counted_as_failed(self, house):
        HouseServiceFactory(house=house, fixed=True)

        result = generate_fixed_recurring_bills()

        assert result["failed"] == 1


# =============================================================================
# Late Charges
# =============================================================================


class TestProcessLateCharges:
    def test_charge_within_grace_is_untouched(self, db):
        charge = ChargeFactory(due_date=date(2025, 5, 1))

        with freeze_time("2025-05-04"):
            result = process_late_charges()

        assert result["charges_marked"] == 0
        assert Charge.objects.get(pk=charge.pk).get_meta("point_deductions") is None

    def test_late_charge_records_deduction_and_lowers_hsi(self, db):
        charge = ChargeFactory(due_date=date(2025, 5, 1))

        with freeze_time("2025-05-10"):
            result = process_late_charges()

        charge = Charge.objects.get(pk=charge.pk)
        assert result == {"charges_marked": 1, "houses_adjusted": 1}
        assert charge.get_meta("point_deductions") == [
            {"date": "2025-05-10", "points": -3, "days_past_due": 9}
        ]
        index = HouseStatusIndex.objects.get(house_id=charge.bill.house_id)
        assert index.score == 47
        assert index.adjustments.get().outcome == HSIOutcome.LATE_PAYMENT

    def test_sweep_is_idempotent_within_a_day(self, db):
        charge = ChargeFactory(due_date=date(2025, 5, 1))

        with freeze_time("2025-05-10"):
            process_late_charges()
            process_late_charges()

        charge = Charge.objects.get(pk=charge.pk)
        assert len(charge.get_meta("point_deductions")) == 1
        assert HSIAdjustment.objects.count() == 1

    def test_deductions_accumulate_across_days(self, db):
        charge = ChargeFactory(due_date=date(2025, 5, 1))

        for day in ("2025-05-06", "2025-05-07"):
            with freeze_time(day):
                process_late_charges()

        charge = Charge.objects.get(pk=charge.pk)
        assert [d["date"] for d in charge.get_meta("point_deductions")] == ["2025-05-06", "2025-05-07"]
        assert HouseStatusIndex.objects.get(house_id=charge.bill.house_id).score == 48

    def test_house_takes_its_worst_deduction_once(self, db):
        older = ChargeFactory(due_date=date(2025, 4, 1))
        ChargeFactory(bill=older.bill, due_date=date(2025, 5, 1))

        with freeze_time("2025-05-10"):
            result = process_late_charges()

        assert result == {"charges_marked": 2, "houses_adjusted": 1}
        assert HouseStatusIndex.objects.get(house_id=older.bill.house_id).score == 35

    def test_paid_charges_are_skipped(self, db):
        ChargeFactory(due_date=date(2025, 5, 1), status=ChargeStatus.PAID)

        with freeze_time("2025-05-10"):
            result = process_late_charges()

        assert result["charges_marked"] == 0
