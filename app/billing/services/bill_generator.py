"""
BillGenerator: materialize a Bill from a ledger cycle's accrued funding.

Fee schedule:
    card         flat BILLING_CARD_FEE_PER_ROOMMATE_CENTS per active roommate,
                 scaled by the house's current HSI fee multiplier
    marketplace  no platform fee

The multiplier is read at generation time and snapshotted on the bill.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.utils import timezone

from billing.choices import BillType
from billing.exceptions import EmptyRoommateSetError
from billing.models import Bill, Charge
from billing.services.charge_allocator import ChargeAllocator
from billing.services.dates import due_date_for
from billing.services.ledger_cycle import LedgerCycleManager
from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService
from houses.choices import FeeCategory, ServiceType
from houses.models import HouseService
from houses.services import HouseRoster, HSIService


def card_fee_per_roommate_cents() -> int:
    return getattr(settings, "BILLING_CARD_FEE_PER_ROOMMATE_CENTS", 200)


def compute_service_fee(fee_category: str, roommate_count: int, fee_multiplier: Decimal) -> int:
    """
    Platform fee in cents for one bill.

        >>> compute_service_fee("card", 3, Decimal("1.00"))
        600
        >>> compute_service_fee("card", 3, Decimal("1.16"))
        696
        >>> compute_service_fee("marketplace", 3, Decimal("1.20"))
        0
    """
    if fee_category != FeeCategory.CARD:
        return 0
    fee = Decimal(card_fee_per_roommate_cents() * roommate_count) * fee_multiplier
    return int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class BillGenerator(BaseService):
    """
    Creates bills from ledger accruals.

    Each bill covers the accrual made since the previous bill, identified by
    the ledger's accrual_sequence; a second generate() without a new accrual
    returns the bill already issued.
    """

    @classmethod
    def generate(
        cls,
        ledger_id: int,
        *,
        due_date: date | None = None,
        name: str | None = None,
    ) -> Bill:
        """
        Bill the ledger's unbilled funding requirement.

        Raises:
            NotFoundError: Unknown ledger
            ValidationError: Nothing accrued and no bill issued yet
            EmptyRoommateSetError: The house has no active members
            CycleStateError / LedgerInconsistencyError: Ledger not mutable
        """
        logger = cls.get_logger()

        with cls.atomic():
            ledger = LedgerCycleManager.lock_ledger(ledger_id)

            if not ledger.has_unbilled_accrual:
                existing = ledger.bills.order_by("-sequence").first()
                if existing is None:
                    raise ValidationError(
                        f"Ledger {ledger_id} has nothing to bill",
                        error_code="NOTHING_TO_BILL",
                        details={"ledger_id": ledger_id},
                    )
                logger.info(
                    "Bill already issued for accrual",
                    extra={"ledger_id": ledger_id, "bill_id": existing.pk},
                )
                return existing

            LedgerCycleManager.ensure_mutable(ledger)
            service = ledger.house_service

            roommate_count = len(HouseRoster.active_roommates(service.house_id))
            if roommate_count == 0:
                raise EmptyRoommateSetError(
                    f"House {service.house_id} has no active members",
                    details={"house_id": service.house_id, "ledger_id": ledger_id},
                )

            fee_multiplier = HSIService.get_index(service.house_id).fee_multiplier
            base_cents = ledger.funding_required_cents - ledger.billed_base_cents
            fee_cents = compute_service_fee(service.fee_category, roommate_count, fee_multiplier)

            ledger.service_fee_cents += fee_cents
            ledger.total_required_cents = ledger.funding_required_cents + ledger.service_fee_cents
            ledger.billed_base_cents = ledger.funding_required_cents
            ledger.billed_sequence = ledger.accrual_sequence
            ledger.save(
                update_fields=[
                    "service_fee_cents",
                    "total_required_cents",
                    "billed_base_cents",
                    "billed_sequence",
                    "updated_at",
                ]
            )

            bill = Bill.objects.create(
                ledger=ledger,
                house_id=service.house_id,
                sequence=ledger.accrual_sequence,
                name=name or service.name,
                bill_type=service.service_type or BillType.REGULAR,
                base_amount_cents=base_cents,
                service_fee_cents=fee_cents,
                amount_cents=base_cents + fee_cents,
                fee_multiplier=fee_multiplier,
                due_date=due_date,
            )

        logger.info(
            "Bill generated",
            extra={
                "bill_id": bill.pk,
                "ledger_id": ledger_id,
                "base_amount_cents": base_cents,
                "service_fee_cents": fee_cents,
                "amount_cents": bill.amount_cents,
                "fee_multiplier": str(fee_multiplier),
            },
        )
        return bill

    @classmethod
    def issue_fixed_recurring(cls, house_service_id: int, on_date: date | None = None) -> list[Charge]:
        """
        Bill a fixed recurring service for the month of ``on_date``.

        Opens a cycle when none is active, accrues the service's monthly
        amount, generates the bill and allocates it. Returns an empty list
        when the service was already billed this month.
        """
        on_date = on_date or timezone.localdate()

        try:
            service = HouseService.objects.get(pk=house_service_id)
        except HouseService.DoesNotExist:
            raise NotFoundError(
                f"House service {house_service_id} not found",
                error_code="HOUSE_SERVICE_NOT_FOUND",
                details={"house_service_id": house_service_id},
            )
        if service.service_type != ServiceType.FIXED_RECURRING or not service.amount_cents:
            raise ValidationError(
                f"House service {house_service_id} is not a billable fixed recurring service",
                error_code="NOT_FIXED_RECURRING",
                details={"house_service_id": house_service_id},
            )

        with cls.atomic():
            already_billed = Bill.objects.filter(
                ledger__house_service=service,
                created_at__year=on_date.year,
                created_at__month=on_date.month,
            ).exists()
            if already_billed:
                cls.get_logger().info(
                    "Fixed recurring service already billed this month",
                    extra={"house_service_id": house_service_id, "month": on_date.strftime("%Y-%m")},
                )
                return []

            ledger = LedgerCycleManager.get_active_cycle(service.pk) or LedgerCycleManager.open_cycle(
                service.pk
            )
            LedgerCycleManager.accrue(ledger.pk, service.amount_cents)
            due = due_date_for(on_date, service.due_day) if service.due_day else None
            bill = cls.generate(
                ledger.pk,
                due_date=due,
                name=f"{service.name} {on_date:%B %Y}",
            )
            return ChargeAllocator.allocate(bill.pk)

