"""
LedgerCycleManager: lifecycle of a house service's funding cycle.

A cycle is opened, accrues base amounts as bills are layered onto it,
collects funding as roommates pay, and closes once funded matches the total
required (or when an operator forces it with a reconciliation note).

All mutations lock the ledger row with select_for_update() inside
transaction.atomic(). Called from a webhook handler, the lock is taken in
the handler's transaction, so the funding update commits or rolls back
together with the webhook log row that triggered it.

Usage:
    from billing.services import LedgerCycleManager

    ledger = LedgerCycleManager.open_cycle(house_service.id)
    LedgerCycleManager.accrue(ledger.id, 10_000)
    LedgerCycleManager.record_funding(ledger.id, 3_534)
    LedgerCycleManager.close_cycle(ledger.id)
"""

from __future__ import annotations

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from billing.choices import ChargeStatus, LedgerStatus
from billing.exceptions import (
    CycleAlreadyActiveError,
    CycleStateError,
    LedgerInconsistencyError,
    NegativeAmountError,
    OverfundingError,
)
from billing.models import Charge, HouseServiceLedger
from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService
from houses.choices import HSIOutcome
from houses.models import HouseService
from houses.services import HSIService


def overfunding_tolerance_cents() -> int:
    return getattr(settings, "BILLING_OVERFUNDING_TOLERANCE_CENTS", 2)


class LedgerCycleManager(BaseService):
    """Owns every write to HouseServiceLedger."""

    # ==========================================================================
    # Lookups
    # ==========================================================================

    @classmethod
    def get_active_cycle(cls, house_service_id: int) -> HouseServiceLedger | None:
        return HouseServiceLedger.objects.filter(
            house_service_id=house_service_id,
            status=LedgerStatus.ACTIVE,
        ).first()

    @classmethod
    def lock_ledger(cls, ledger_id: int) -> HouseServiceLedger:
        try:
            return HouseServiceLedger.objects.select_for_update().get(pk=ledger_id)
        except HouseServiceLedger.DoesNotExist:
            raise NotFoundError(
                f"Ledger {ledger_id} not found",
                error_code="LEDGER_NOT_FOUND",
                details={"ledger_id": ledger_id},
            )

    @classmethod
    def ensure_mutable(cls, ledger: HouseServiceLedger) -> None:
        """
        Raise unless automated mutation of ``ledger`` is allowed.

        Raises:
            CycleStateError: The cycle is closed
            LedgerInconsistencyError: The ledger is on reconciliation hold
        """
        if not ledger.is_active:
            raise CycleStateError(
                f"Ledger {ledger.pk} is {ledger.status}",
                error_code="LEDGER_CLOSED",
                details={"ledger_id": ledger.pk, "status": ledger.status},
            )
        if ledger.reconciliation_hold:
            raise LedgerInconsistencyError(
                f"Ledger {ledger.pk} is on reconciliation hold",
                error_code="LEDGER_ON_HOLD",
                details={"ledger_id": ledger.pk, "note": ledger.reconciliation_note},
            )

    # ==========================================================================
    # Operations
    # ==========================================================================

    @classmethod
    def open_cycle(cls, house_service_id: int) -> HouseServiceLedger:
        """
        Open a new funding cycle for a house service.

        Raises:
            NotFoundError: Unknown house service
            CycleAlreadyActiveError: The service already has an active cycle
        """
        logger = cls.get_logger()

        with cls.atomic():
            try:
                HouseService.objects.select_for_update().get(pk=house_service_id)
            except HouseService.DoesNotExist:
                raise NotFoundError(
                    f"House service {house_service_id} not found",
                    error_code="HOUSE_SERVICE_NOT_FOUND",
                    details={"house_service_id": house_service_id},
                )

            active = cls.get_active_cycle(house_service_id)
            if active is not None:
                raise CycleAlreadyActiveError(
                    f"House service {house_service_id} already has an active cycle",
                    details={"house_service_id": house_service_id, "ledger_id": active.pk},
                )

            try:
                with transaction.atomic():
                    ledger = HouseServiceLedger.objects.create(
                        house_service_id=house_service_id,
                    )
            except IntegrityError:
                raise CycleAlreadyActiveError(
                    f"House service {house_service_id} already has an active cycle",
                    details={"house_service_id": house_service_id},
                )

        logger.info(
            "Ledger cycle opened",
            extra={"ledger_id": ledger.pk, "house_service_id": house_service_id},
        )
        return ledger

    @classmethod
    def accrue(cls, ledger_id: int, base_amount_cents: int) -> HouseServiceLedger:
        """
        Add a base amount to the cycle's funding requirement.

        The amount becomes billable on the next BillGenerator.generate().

        Raises:
            NegativeAmountError: base_amount_cents < 0
            CycleStateError: Ledger closed
            LedgerInconsistencyError: Ledger on reconciliation hold
        """
        if base_amount_cents < 0:
            raise NegativeAmountError(
                "Accrued amount must not be negative",
                details={"ledger_id": ledger_id, "amount_cents": base_amount_cents},
            )

        with cls.atomic():
            ledger = cls.lock_ledger(ledger_id)
            cls.ensure_mutable(ledger)
            if base_amount_cents == 0:
                return ledger

            ledger.funding_required_cents += base_amount_cents
            ledger.accrual_sequence += 1
            ledger.save(
                update_fields=[
                    "funding_required_cents",
                    "accrual_sequence",
                    "updated_at",
                ]
            )

        cls.get_logger().info(
            "Ledger accrued",
            extra={
                "ledger_id": ledger_id,
                "amount_cents": base_amount_cents,
                "funding_required_cents": ledger.funding_required_cents,
                "accrual_sequence": ledger.accrual_sequence,
            },
        )
        return ledger

    @classmethod
    def record_funding(cls, ledger_id: int, amount_cents: int) -> HouseServiceLedger:
        """
        Add collected funds to the cycle.

        Over-collection up to BILLING_OVERFUNDING_TOLERANCE_CENTS is accepted
        and logged. Beyond it the update is refused and the ledger is put on
        reconciliation hold; when called inside an outer transaction (a
        webhook handler) the caller places the hold after rolling back.

        Raises:
            NegativeAmountError: amount_cents < 0
            OverfundingError: funded would exceed total_required beyond tolerance
            CycleStateError / LedgerInconsistencyError: see ensure_mutable
        """
        if amount_cents < 0:
            raise NegativeAmountError(
                "Funding amount must not be negative",
                details={"ledger_id": ledger_id, "amount_cents": amount_cents},
            )

        logger = cls.get_logger()
        try:
            with cls.atomic():
                ledger = cls.lock_ledger(ledger_id)
                cls.ensure_mutable(ledger)

                funded = ledger.funded_cents + amount_cents
                excess = funded - ledger.total_required_cents
                context = {
                    "ledger_id": ledger_id,
                    "amount_cents": amount_cents,
                    "funded_cents": funded,
                    "total_required_cents": ledger.total_required_cents,
                    "excess_cents": excess,
                }

                if excess > overfunding_tolerance_cents():
                    logger.error("Ledger overfunding beyond tolerance", extra=context)
                    raise OverfundingError(
                        f"Funding {amount_cents} would overfund ledger {ledger_id} "
                        f"by {excess} cents",
                        details=context,
                    )
                if excess > 0:
                    logger.warning("Ledger overfunded within tolerance", extra=context)

                ledger.funded_cents = funded
                ledger.save(update_fields=["funded_cents", "updated_at"])
        except LedgerInconsistencyError as exc:
            if isinstance(exc, OverfundingError) and not transaction.get_connection().in_atomic_block:
                cls.place_on_hold(ledger_id, exc.message)
            raise

        logger.info("Ledger funded", extra=context)
        return ledger

    @classmethod
    def close_cycle(
        cls,
        ledger_id: int,
        *,
        force: bool = False,
        reason: str = "",
    ) -> HouseServiceLedger:
        """
        Close the cycle and feed the outcome back into the house's HSI.

        Without ``force`` the cycle must be fully billed, fully funded and
        have no open charges. A forced close requires a reconciliation
        reason; an underfunded forced close counts as a default.

        HSI feedback: on-time if closed on or before the latest bill due
        date, late otherwise.

        Raises:
            ValidationError: force without a reason
            CycleStateError: Already closed, unbilled accrual or not funded
            LedgerInconsistencyError: On hold, or charges remain unpaid
        """
        if force and not reason.strip():
            raise ValidationError(
                "A forced close requires a reconciliation reason",
                error_code="FORCE_CLOSE_REASON_REQUIRED",
                details={"ledger_id": ledger_id},
            )

        logger = cls.get_logger()

        with cls.atomic():
            ledger = cls.lock_ledger(ledger_id)
            if not ledger.is_active:
                raise CycleStateError(
                    f"Ledger {ledger_id} is already closed",
                    error_code="LEDGER_CLOSED",
                    details={"ledger_id": ledger_id},
                )

            if not force:
                cls.ensure_mutable(ledger)
                cls._check_closable(ledger)

            underfunded = ledger.funded_cents < ledger.total_required_cents
            latest_due = (
                ledger.bills.exclude(due_date__isnull=True)
                .order_by("-due_date")
                .values_list("due_date", flat=True)
                .first()
            )
            on_time = latest_due is None or timezone.localdate() <= latest_due

            ledger.close(note=reason)
            ledger.closed_on_time = on_time and not underfunded
            ledger.save()

            if force and underfunded:
                outcome = HSIOutcome.DEFAULT
            elif on_time:
                outcome = HSIOutcome.ON_TIME_PAYMENT
            else:
                outcome = HSIOutcome.LATE_PAYMENT

            HSIService.recompute_score(
                ledger.house_service.house_id,
                outcome,
                reason=f"Ledger {ledger_id} closed",
                reference=f"ledger:{ledger_id}:close",
            )

        logger.info(
            "Ledger cycle closed",
            extra={
                "ledger_id": ledger_id,
                "forced": force,
                "outcome": outcome,
                "funded_cents": ledger.funded_cents,
                "total_required_cents": ledger.total_required_cents,
            },
        )
        return ledger

    @classmethod
    def _check_closable(cls, ledger: HouseServiceLedger) -> None:
        if ledger.has_unbilled_accrual:
            raise CycleStateError(
                f"Ledger {ledger.pk} has accrued amounts that were never billed",
                error_code="LEDGER_UNBILLED_ACCRUAL",
                details={"ledger_id": ledger.pk},
            )
        if ledger.funded_cents != ledger.total_required_cents:
            raise CycleStateError(
                f"Ledger {ledger.pk} is not fully funded",
                error_code="LEDGER_NOT_FUNDED",
                details={
                    "ledger_id": ledger.pk,
                    "funded_cents": ledger.funded_cents,
                    "total_required_cents": ledger.total_required_cents,
                },
            )

        open_charges = Charge.objects.filter(bill__ledger=ledger).exclude(status=ChargeStatus.PAID)
        if open_charges.exists():
            details = {
                "ledger_id": ledger.pk,
                "open_charge_ids": list(open_charges.values_list("pk", flat=True)),
                "funded_cents": ledger.funded_cents,
            }
            cls.get_logger().error("Funded ledger still has unpaid charges", extra=details)
            raise LedgerInconsistencyError(
                f"Ledger {ledger.pk} is funded but charges remain unpaid",
                error_code="LEDGER_UNPAID_CHARGES",
                details=details,
            )

    @classmethod
    def close_if_funded(cls, ledger_id: int) -> HouseServiceLedger | None:
        """
        Close the cycle when it is fully billed, funded and paid.

        Returns the closed ledger, or None when the cycle stays open. A cycle
        overfunded within tolerance stays open until an operator force-closes
        it with a reconciliation reason.
        """
        with cls.atomic():
            ledger = cls.lock_ledger(ledger_id)
            if not ledger.is_active or ledger.reconciliation_hold or ledger.has_unbilled_accrual:
                return None
            if ledger.funded_cents > ledger.total_required_cents:
                cls.get_logger().warning(
                    "Overfunded ledger needs a forced close",
                    extra={
                        "ledger_id": ledger_id,
                        "funded_cents": ledger.funded_cents,
                        "total_required_cents": ledger.total_required_cents,
                        "excess_cents": ledger.funded_cents - ledger.total_required_cents,
                    },
                )
                return None
            if (
                not ledger.is_fully_funded
                or Charge.objects.filter(bill__ledger=ledger)
                .exclude(status=ChargeStatus.PAID)
                .exists()
            ):
                return None
            return cls.close_cycle(ledger_id)

    # ==========================================================================
    # Reconciliation hold
    # ==========================================================================

    @classmethod
    def place_on_hold(cls, ledger_id: int, reason: str) -> None:
        """
        Block automated mutation of the ledger until an operator releases it.

        Written in its own transaction so the hold survives the rollback of
        the operation that detected the inconsistency.
        """
        updated = HouseServiceLedger.objects.filter(pk=ledger_id).update(
            reconciliation_hold=True,
            reconciliation_note=reason[:1000],
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        cls.get_logger().error(
            "Ledger placed on reconciliation hold",
            extra={"ledger_id": ledger_id, "reason": reason, "updated": updated},
        )

    @classmethod
    def hold_for(cls, exc: LedgerInconsistencyError) -> None:
        """
        Place the hold an inconsistency calls for.

        For callers that caught the error inside their own transaction and
        rolled back. A ledger that is already on hold keeps its first note.
        """
        ledger_id = exc.details.get("ledger_id")
        if ledger_id is None or exc.error_code == "LEDGER_ON_HOLD":
            return
        cls.place_on_hold(ledger_id, exc.message)

    @classmethod
    def release_hold(cls, ledger_id: int, note: str) -> HouseServiceLedger:
        """Operator action: clear the hold after manual reconciliation."""
        if not note.strip():
            raise ValidationError(
                "Releasing a hold requires a note",
                error_code="HOLD_RELEASE_NOTE_REQUIRED",
            )
        with cls.atomic():
            ledger = cls.lock_ledger(ledger_id)
            ledger.reconciliation_hold = False
            ledger.reconciliation_note = note
            ledger.save(update_fields=["reconciliation_hold", "reconciliation_note", "updated_at"])

        cls.get_logger().warning(
            "Ledger reconciliation hold released",
            extra={"ledger_id": ledger_id, "note": note},
        )
        return ledger
