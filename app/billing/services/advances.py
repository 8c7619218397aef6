"""
AdvanceService: the platform fronting roommates' charges.

Each house may have at most its fronting allowance outstanding:

    allowance   = BILLING_BASE_FRONTING_ALLOWANCE_CENTS x HSI credit multiplier
    outstanding = advanced charges of the house not yet paid

Fronted amounts are tracked on the ledger's amount_fronted_cents, an audit
figure kept apart from funded/funding_required: fronting does not fund the
cycle, collecting the charge does.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db.models import Sum

from billing.choices import ChargeStatus
from billing.exceptions import AdvanceLimitExceededError
from billing.models import Bill, Charge
from billing.services.ledger_cycle import LedgerCycleManager
from core.exceptions import NotFoundError
from core.services import BaseService
from houses.services import HSIService


class AdvanceService(BaseService):
    @classmethod
    def allowance_cents(cls, house_id: int) -> int:
        base = getattr(settings, "BILLING_BASE_FRONTING_ALLOWANCE_CENTS", 10_000)
        multiplier = HSIService.get_index(house_id).credit_multiplier
        return int((Decimal(base) * multiplier).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    @classmethod
    def outstanding_cents(cls, house_id: int) -> int:
        total = (
            Charge.objects.filter(bill__house_id=house_id, advanced=True)
            .exclude(status=ChargeStatus.PAID)
            .aggregate(total=Sum("amount_cents"))["total"]
        )
        return total or 0

    @classmethod
    def available_cents(cls, house_id: int) -> int:
        return max(0, cls.allowance_cents(house_id) - cls.outstanding_cents(house_id))

    @classmethod
    def advance_unpaid_charges(cls, bill_id: int) -> list[Charge]:
        """
        Front every unpaid, not yet advanced charge of the bill.

        All or nothing: if the total does not fit in the house's remaining
        allowance nothing is advanced.

        Raises:
            NotFoundError: Unknown bill
            AdvanceLimitExceededError: Total exceeds the remaining allowance
        """
        with cls.atomic():
            try:
                bill = Bill.objects.get(pk=bill_id)
            except Bill.DoesNotExist:
                raise NotFoundError(
                    f"Bill {bill_id} not found",
                    error_code="BILL_NOT_FOUND",
                    details={"bill_id": bill_id},
                )

            ledger = LedgerCycleManager.lock_ledger(bill.ledger_id)
            LedgerCycleManager.ensure_mutable(ledger)

            charges = list(
                Charge.objects.select_for_update().filter(
                    bill=bill,
                    advanced=False,
                    status__in=[ChargeStatus.UNPAID, ChargeStatus.FAILED],
                )
            )
            total = sum(c.amount_cents for c in charges)
            if not charges:
                return []

            available = cls.available_cents(bill.house_id)
            if total > available:
                raise AdvanceLimitExceededError(
                    f"Advancing {total} cents exceeds the remaining allowance of {available}",
                    details={"bill_id": bill_id, "requested_cents": total, "available_cents": available},
                )

            for charge in charges:
                charge.mark_advanced()
                charge.save(update_fields=["advanced", "advanced_at", "updated_at"])

            ledger.amount_fronted_cents += total
            ledger.save(update_fields=["amount_fronted_cents", "updated_at"])

        cls.get_logger().info(
            "Charges advanced",
            extra={
                "bill_id": bill_id,
                "ledger_id": ledger.pk,
                "charge_ids": [c.pk for c in charges],
                "amount_cents": total,
            },
        )
        return charges
