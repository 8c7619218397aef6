"""
Bill model: a billed instance generated from a ledger cycle.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from billing.choices import BillStatus, BillType, ChargeStatus
from core.models import BaseModel


class Bill(BaseModel):
    """
    One bill materialized from a ledger's accrued funding.

    amount = base_amount + service_fee, fixed at generation time. The fee
    multiplier in effect is snapshotted so later HSI changes never rewrite
    an issued bill.

    Fields:
        ledger: Owning cycle (bills are deleted with it)
        sequence: Ledger accrual_sequence this bill covers; unique per ledger
        status: Derived from the bill's charges (see refresh_status)
    """

    ledger = models.ForeignKey(
        "billing.HouseServiceLedger",
        on_delete=models.CASCADE,
        related_name="bills",
    )
    house = models.ForeignKey(
        "houses.House",
        on_delete=models.CASCADE,
        related_name="bills",
    )
    sequence = models.PositiveIntegerField()
    name = models.CharField(max_length=255)
    bill_type = models.CharField(
        max_length=32,
        choices=BillType.choices,
        default=BillType.REGULAR,
    )

    base_amount_cents = models.BigIntegerField()
    service_fee_cents = models.BigIntegerField(default=0)
    amount_cents = models.BigIntegerField()
    fee_multiplier = models.DecimalField(
        max_digits=4,
        decimal_places=2,
        default=Decimal("1.00"),
    )

    status = models.CharField(
        max_length=16,
        choices=BillStatus.choices,
        default=BillStatus.PENDING,
        db_index=True,
    )
    due_date = models.DateField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["ledger", "sequence"], name="unique_bill_per_accrual"),
            models.CheckConstraint(
                condition=models.Q(amount_cents=models.F("base_amount_cents") + models.F("service_fee_cents")),
                name="bill_amount_is_base_plus_fee",
            ),
        ]

    def __str__(self) -> str:
        return f"Bill({self.pk}, {self.name}, {self.amount_cents}c, {self.status})"

    def refresh_status(self, save: bool = True) -> str:
        """
        Recompute status from charges.

        PAID when every charge is paid, PARTIAL_PAID when at least one is,
        PENDING otherwise.
        """
        statuses = list(self.charges.values_list("status", flat=True))
        paid = sum(1 for s in statuses if s == ChargeStatus.PAID)
        if statuses and paid == len(statuses):
            status = BillStatus.PAID
        elif paid:
            status = BillStatus.PARTIAL_PAID
        else:
            status = BillStatus.PENDING

        if status != self.status:
            self.status = status
            if save:
                self.save(update_fields=["status", "updated_at"])
        return self.status
