"""
HouseServiceLedger model: one funding cycle for a house service.

Figures are integer cents:

    funding_required_cents  base amount accrued into the cycle
    service_fee_cents       platform fees of the bills issued so far
    total_required_cents    funding_required + service_fee (set by billing)
    funded_cents            collected from roommates
    amount_fronted_cents    advanced by the platform ahead of collection;
                            an audit figure kept apart from funded/required

Invariants:
    - At most one ACTIVE ledger per house service (partial unique constraint)
    - While ACTIVE, funded never exceeds total_required by more than the
      configured tolerance (enforced by LedgerCycleManager.record_funding)
    - A cycle closes only when funded == total_required or when forced with
      a reconciliation note
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from billing.choices import LedgerStatus
from core.model_mixins import MetadataMixin, VersionedMixin
from core.models import BaseModel


class HouseServiceLedger(VersionedMixin, MetadataMixin, BaseModel):
    """
    One funding cycle for a HouseService.

    Mutated only through billing.services.LedgerCycleManager, under a row
    lock, inside the same transaction as the payment or webhook row that
    triggered the change.

    Fields:
        accrual_sequence: Bumped on every accrual
        billed_sequence: accrual_sequence value covered by the latest bill
        billed_base_cents: Portion of funding_required already billed
        reconciliation_hold: Set when an inconsistency was detected
        reconciliation_note: Operator/force-close explanation
        closed_on_time: HSI feedback outcome recorded at close
    """

    house_service = models.ForeignKey(
        "houses.HouseService",
        on_delete=models.CASCADE,
        related_name="ledgers",
    )

    # ==========================================================================
    # Money (cents)
    # ==========================================================================

    funding_required_cents = models.BigIntegerField(default=0)
    service_fee_cents = models.BigIntegerField(default=0)
    total_required_cents = models.BigIntegerField(default=0)
    funded_cents = models.BigIntegerField(default=0)
    amount_fronted_cents = models.BigIntegerField(default=0)

    # ==========================================================================
    # Cycle
    # ==========================================================================

    cycle_start = models.DateTimeField(default=timezone.now)
    cycle_end = models.DateTimeField(null=True, blank=True)
    status = FSMField(
        default=LedgerStatus.ACTIVE,
        choices=LedgerStatus.choices,
        db_index=True,
        protected=True,
        help_text="Cycle state (managed by FSM)",
    )

    accrual_sequence = models.PositiveIntegerField(default=0)
    billed_sequence = models.PositiveIntegerField(default=0)
    billed_base_cents = models.BigIntegerField(default=0)

    # ==========================================================================
    # Reconciliation
    # ==========================================================================

    reconciliation_hold = models.BooleanField(default=False, db_index=True)
    reconciliation_note = models.TextField(blank=True, default="")
    closed_on_time = models.BooleanField(null=True, blank=True)

    class Meta:
        ordering = ["-cycle_start"]
        verbose_name = "House Service Ledger"
        constraints = [
            models.UniqueConstraint(
                fields=["house_service"],
                condition=models.Q(status=LedgerStatus.ACTIVE),
                name="one_active_ledger_per_service",
            ),
            models.CheckConstraint(
                condition=models.Q(funded_cents__gte=0),
                name="ledger_funded_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"HouseServiceLedger({self.pk}, {self.status}, "
            f"{self.funded_cents}/{self.total_required_cents})"
        )

    @property
    def is_active(self) -> bool:
        return self.status == LedgerStatus.ACTIVE

    @property
    def is_fully_funded(self) -> bool:
        return self.total_required_cents > 0 and self.funded_cents == self.total_required_cents

    @property
    def outstanding_cents(self) -> int:
        return self.total_required_cents - self.funded_cents

    @property
    def has_unbilled_accrual(self) -> bool:
        return self.accrual_sequence > self.billed_sequence

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=LedgerStatus.ACTIVE, target=LedgerStatus.CLOSED)
    def close(self, note: str = ""):
        """
        Close the cycle.

        Transition: ACTIVE -> CLOSED
        """
        self.cycle_end = timezone.now()
        if note:
            self.reconciliation_note = note
