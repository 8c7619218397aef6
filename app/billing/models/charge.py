"""
Charge model: one roommate's share of a Bill.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from billing.choices import ChargeStatus
from core.model_mixins import MetadataMixin
from core.models import BaseModel


class Charge(MetadataMixin, BaseModel):
    """
    A roommate's share of a bill.

    For any bill, the charges' amounts sum exactly to the bill amount; the
    split is done by ChargeAllocator with residual cents going to the lowest
    user ids.

    Fields:
        amount_cents: What the roommate owes (base + fee share)
        base_amount_cents / service_fee_cents: Breakdown of amount_cents
        advanced: The platform fronted this charge
        task: Consent task that authorized this charge, if any
        retry_count / error_message: Collection attempt bookkeeping
        metadata: Includes late-payment point deductions
    """

    bill = models.ForeignKey(
        "billing.Bill",
        on_delete=models.CASCADE,
        related_name="charges",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="charges",
    )
    task = models.ForeignKey(
        "billing.Task",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="charges",
    )

    amount_cents = models.BigIntegerField()
    base_amount_cents = models.BigIntegerField(default=0)
    service_fee_cents = models.BigIntegerField(default=0)

    status = FSMField(
        default=ChargeStatus.UNPAID,
        choices=ChargeStatus.choices,
        db_index=True,
        protected=True,
    )
    due_date = models.DateField(null=True, blank=True, db_index=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    advanced = models.BooleanField(default=False)
    advanced_at = models.DateTimeField(null=True, blank=True)

    stripe_payment_intent_id = models.CharField(max_length=255, null=True, blank=True, db_index=True)
    retry_count = models.PositiveSmallIntegerField(default=0)
    error_message = models.TextField(null=True, blank=True)

    class Meta:
        ordering = ["bill_id", "user_id"]
        constraints = [
            models.UniqueConstraint(fields=["bill", "user"], name="unique_charge_per_roommate"),
            models.CheckConstraint(condition=models.Q(amount_cents__gte=0), name="charge_amount_non_negative"),
        ]
        indexes = [
            models.Index(fields=["status", "due_date"], name="charge_status_due_idx"),
        ]

    def __str__(self) -> str:
        return f"Charge({self.pk}, user={self.user_id}, {self.amount_cents}c, {self.status})"

    @property
    def is_open(self) -> bool:
        return self.status in (ChargeStatus.UNPAID, ChargeStatus.FAILED)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[ChargeStatus.UNPAID, ChargeStatus.FAILED],
        target=ChargeStatus.PROCESSING,
    )
    def start_processing(self, payment_intent_id: str | None = None):
        """Transition: UNPAID/FAILED -> PROCESSING"""
        if payment_intent_id:
            self.stripe_payment_intent_id = payment_intent_id

    @transition(
        field=status,
        source=[ChargeStatus.UNPAID, ChargeStatus.PROCESSING, ChargeStatus.FAILED],
        target=ChargeStatus.PAID,
    )
    def mark_paid(self):
        """Transition: UNPAID/PROCESSING/FAILED -> PAID"""
        self.paid_at = timezone.now()
        self.error_message = None

    @transition(field=status, source=ChargeStatus.PROCESSING, target=ChargeStatus.UNPAID)
    def decline(self, reason: str):
        """
        The processor declined the collection attempt.

        Transition: PROCESSING -> UNPAID
        The charge stays collectable; the roommate may retry.
        """
        self.retry_count += 1
        self.error_message = reason

    @transition(
        field=status,
        source=[ChargeStatus.UNPAID, ChargeStatus.PROCESSING],
        target=ChargeStatus.FAILED,
    )
    def fail(self, reason: str):
        """Transition: UNPAID/PROCESSING -> FAILED (submission gave up)"""
        self.retry_count += 1
        self.error_message = reason

    def mark_advanced(self) -> None:
        """Flag the charge as fronted by the platform. Caller saves."""
        self.advanced = True
        self.advanced_at = timezone.now()
