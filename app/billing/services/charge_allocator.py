"""
ChargeAllocator: split a Bill into per-roommate Charges.

Integer-cent division with the remainder handed out one cent at a time to
roommates in ascending user id order, so the charges always sum exactly to
the bill amount and a rerun produces the same split.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from billing.exceptions import EmptyRoommateSetError, LedgerInconsistencyError, NegativeAmountError
from billing.models import Bill, Charge
from billing.services.task_consent import TaskConsentService
from core.exceptions import NotFoundError
from core.services import BaseService
from houses.services import HouseRoster

if TYPE_CHECKING:
    from authentication.models import User


def split_evenly(total_cents: int, parts: int) -> list[int]:
    """
    Split ``total_cents`` into ``parts`` integer shares.

    The first ``total_cents % parts`` shares get one extra cent.

        >>> split_evenly(10600, 3)
        [3534, 3533, 3533]
        >>> split_evenly(2, 5)
        [1, 1, 0, 0, 0]
    """
    if parts <= 0:
        raise EmptyRoommateSetError(
            "Cannot split an amount between zero roommates",
            details={"total_cents": total_cents},
        )
    if total_cents < 0:
        raise NegativeAmountError(
            "Cannot split a negative amount",
            details={"total_cents": total_cents},
        )
    share, remainder = divmod(total_cents, parts)
    return [share + 1 if i < remainder else share for i in range(parts)]


class ChargeAllocator(BaseService):
    @classmethod
    def allocate(cls, bill_id: int, roommates: Iterable[User] | None = None) -> list[Charge]:
        """
        Create one charge per roommate for the bill.

        Args:
            bill_id: Bill to allocate
            roommates: Users to charge; defaults to the house's active members

        Returns:
            Charges ordered by user id. A bill that was already allocated
            returns its existing charges unchanged.

        Raises:
            NotFoundError: Unknown bill
            EmptyRoommateSetError: Nobody to charge (fatal, not retried)
            ConsentRequiredError: Consent-gated service without every
                roommate's task authorized or completed
        """
        logger = cls.get_logger()

        with cls.atomic():
            try:
                bill = Bill.objects.select_for_update().select_related("ledger__house_service").get(pk=bill_id)
            except Bill.DoesNotExist:
                raise NotFoundError(
                    f"Bill {bill_id} not found",
                    error_code="BILL_NOT_FOUND",
                    details={"bill_id": bill_id},
                )

            existing = list(bill.charges.order_by("user_id"))
            if existing:
                return existing

            if roommates is None:
                roommates = HouseRoster.active_roommates(bill.house_id)
            users = sorted({user.pk: user for user in roommates}.values(), key=lambda u: u.pk)
            if not users:
                logger.error(
                    "Bill allocated for a house without active members",
                    extra={"bill_id": bill_id, "house_id": bill.house_id},
                )
                raise EmptyRoommateSetError(
                    f"House {bill.house_id} has no active members",
                    details={"bill_id": bill_id, "house_id": bill.house_id},
                )

            service = bill.ledger.house_service
            tasks = {}
            if service.consent_required:
                tasks = TaskConsentService.require_authorized(service.pk, [u.pk for u in users])

            amounts = split_evenly(bill.amount_cents, len(users))
            fees = split_evenly(bill.service_fee_cents, len(users))

            charges = [
                Charge.objects.create(
                    bill=bill,
                    user=user,
                    task=tasks.get(user.pk),
                    amount_cents=amount,
                    base_amount_cents=amount - fee,
                    service_fee_cents=fee,
                    due_date=bill.due_date,
                )
                for user, amount, fee in zip(users, amounts, fees)
            ]

            allocated = sum(c.amount_cents for c in charges)
            if allocated != bill.amount_cents:
                raise LedgerInconsistencyError(
                    f"Charges for bill {bill_id} sum to {allocated}, expected {bill.amount_cents}",
                    details={"bill_id": bill_id, "allocated_cents": allocated},
                )

        logger.info(
            "Bill allocated",
            extra={
                "bill_id": bill_id,
                "roommates": len(charges),
                "amount_cents": bill.amount_cents,
                "shares": amounts,
            },
        )
        return charges
