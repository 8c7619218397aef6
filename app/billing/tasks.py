"""
Celery tasks for billing.

This module provides periodic tasks for:
- Generating fixed recurring bills on each service's create day
- Sweeping late charges and deducting HSI points

Both are scheduled through django-celery-beat (see the schedule migration).

Usage:
    from billing.tasks import generate_fixed_recurring_bills

    generate_fixed_recurring_bills.delay()
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from billing.choices import ChargeStatus
from billing.models import Charge
from billing.services import BillGenerator
from billing.services.dates import is_scheduled_day
from core.exceptions import BaseApplicationError
from houses.choices import HouseServiceStatus, HSIOutcome, ServiceType
from houses.models import HouseService
from houses.services import HSIService

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Deduction cap for very late charges
MAX_LATE_DEDUCTION = -15

# Charges examined per sweep run
LATE_SWEEP_BATCH_SIZE = 500


def late_grace_days() -> int:
    return getattr(settings, "BILLING_LATE_GRACE_DAYS", 3)


def late_penalty_points(days_past_due: int) -> int:
    """
    HSI points deducted for a charge this many days past due.

        grace (3 days) or less   0
        up to 7 days            -1
        up to 14 days           -3
        beyond                  -5, one more point per two days, capped at -15
    """
    if days_past_due <= late_grace_days():
        return 0
    if days_past_due <= 7:
        return -1
    if days_past_due <= 14:
        return -3
    return max(MAX_LATE_DEDUCTION, -5 - ((days_past_due - 14) // 2 + 1))


# =============================================================================
# Recurring Bills
# =============================================================================


@shared_task
def generate_fixed_recurring_bills() -> dict:
    """
    Daily task: bill every active fixed recurring service due today.

    A service scheduled on a day past the end of the month runs on the
    month's last day. Failures are logged per service and do not stop the
    batch.

    Returns:
        Dict with counts of services billed, skipped and failed
    """
    today = timezone.localdate()
    services = HouseService.objects.filter(
        service_type=ServiceType.FIXED_RECURRING,
        status=HouseServiceStatus.ACTIVE,
        amount_cents__gt=0,
        create_day__isnull=False,
        create_day__gte=today.day,
    ).order_by("pk")

    stats = {"billed": 0, "skipped": 0, "failed": 0}

    for service in services:
        if not is_scheduled_day(today, service.create_day):
            continue
        try:
            charges = BillGenerator.issue_fixed_recurring(service.pk, today)
        except BaseApplicationError as e:
            stats["failed"] += 1
            logger.error(
                f"Failed to bill fixed recurring service: {e.message}",
                extra={
                    "house_service_id": service.pk,
                    "error_code": e.error_code,
                    "details": e.details,
                },
            )
            continue

        if charges:
            stats["billed"] += 1
        else:
            stats["skipped"] += 1

    logger.info("Fixed recurring billing finished", extra={"date": today.isoformat(), **stats})
    return stats


# =============================================================================
# Late Payments
# =============================================================================


def record_late_deduction(charge: Charge, today: date) -> tuple[int, bool]:
    """
    Record today's deduction on the charge's metadata.

    Returns ``(points, recorded)``: the deduction for today (0 within grace)
    and whether it was newly recorded.
    """
    days_past_due = (today - charge.due_date).days
    points = late_penalty_points(days_past_due)
    if points == 0:
        return 0, False

    stamp = today.isoformat()
    if any(entry.get("date") == stamp for entry in charge.get_meta("point_deductions", default=[])):
        return points, False

    charge.append_meta(
        "point_deductions",
        {"date": stamp, "points": points, "days_past_due": days_past_due},
    )
    return points, True


@shared_task
def process_late_charges() -> dict:
    """
    Daily task: deduct HSI points for charges past due beyond the grace days.

    Each late charge records its deduction once per day; each affected house
    then takes one late_payment adjustment for the day, sized by its most
    overdue charge.

    Returns:
        Dict with counts of charges marked and houses adjusted
    """
    today = timezone.localdate()
    cutoff = today - timedelta(days=late_grace_days())

    late_charges = (
        Charge.objects.filter(
            status__in=[ChargeStatus.UNPAID, ChargeStatus.FAILED],
            due_date__lt=cutoff,
        )
        .select_related("bill")
        .order_by("due_date", "pk")[:LATE_SWEEP_BATCH_SIZE]
    )

    worst_by_house: dict[int, int] = defaultdict(int)
    marked = 0
    for charge in late_charges:
        with transaction.atomic():
            points, recorded = record_late_deduction(charge, today)
        marked += recorded
        if points:
            worst_by_house[charge.bill.house_id] = min(worst_by_house[charge.bill.house_id], points)

    adjusted = 0
    for house_id, points in worst_by_house.items():
        try:
            HSIService.recompute_score(
                house_id,
                HSIOutcome.LATE_PAYMENT,
                delta=points,
                reason=f"Late charges on {today.isoformat()}",
                reference=f"house:{house_id}:late:{today.isoformat()}",
            )
            adjusted += 1
        except BaseApplicationError as e:
            logger.error(
                f"Failed to apply late-payment deduction: {e.message}",
                extra={"house_id": house_id, "points": points},
            )

    logger.info(
        "Late charge sweep finished",
        extra={"date": today.isoformat(), "charges_marked": marked, "houses_adjusted": adjusted},
    )
    return {"charges_marked": marked, "houses_adjusted": adjusted}
