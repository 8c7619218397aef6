"""
House Status Index (HSI) engine and house roster lookups.

The HSI is a per-house score in [0, 100] that moves with payment behaviour
and feeds two multipliers:

    fee_multiplier     applied to the platform fee when a bill is generated
    credit_multiplier  scales how much the platform will front for the house

Score → bracket → multipliers is a fixed, monotonic lookup: a higher score
never yields a higher fee multiplier or a lower credit multiplier.

Usage:
    from houses.services import HSIService, HouseRoster

    HSIService.recompute_score(house.id, HSIOutcome.ON_TIME_PAYMENT)
    index = HSIService.get_index(house.id)
    roommates = HouseRoster.active_roommates(house.id)
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.exceptions import NotFoundError, ValidationError
from core.services import BaseService
from houses.choices import HSIOutcome
from houses.models import House, HouseMember, HouseStatusIndex, HSIAdjustment

if TYPE_CHECKING:
    from authentication.models import User


# =============================================================================
# Constants
# =============================================================================

MIN_SCORE = 0
MAX_SCORE = 100
DEFAULT_SCORE = 50

OUTCOME_STEPS: dict[str, int | None] = {
    HSIOutcome.ON_TIME_PAYMENT: 2,
    HSIOutcome.LATE_PAYMENT: -5,
    HSIOutcome.DEFAULT: -10,
    HSIOutcome.MANUAL_ADJUSTMENT: None,
}

# bracket -> (fee_multiplier, credit_multiplier)
BRACKET_MULTIPLIERS: dict[int, tuple[Decimal, Decimal]] = {
    0: (Decimal("1.20"), Decimal("0.50")),
    1: (Decimal("1.16"), Decimal("0.60")),
    2: (Decimal("1.12"), Decimal("0.70")),
    3: (Decimal("1.08"), Decimal("0.80")),
    4: (Decimal("1.04"), Decimal("0.90")),
    5: (Decimal("1.00"), Decimal("1.00")),
    6: (Decimal("0.96"), Decimal("1.20")),
    7: (Decimal("0.92"), Decimal("1.40")),
    8: (Decimal("0.88"), Decimal("1.60")),
    9: (Decimal("0.84"), Decimal("1.80")),
    10: (Decimal("0.80"), Decimal("2.00")),
}


# =============================================================================
# Pure helpers
# =============================================================================


def clamp_score(score: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, score))


def bracket_for_score(score: int) -> int:
    """Map a score to its bracket: 0-9 -> 0, 10-19 -> 1, ..., 100 -> 10."""
    return clamp_score(score) // 10


def multipliers_for_bracket(bracket: int) -> tuple[Decimal, Decimal]:
    """Return ``(fee_multiplier, credit_multiplier)`` for a bracket."""
    return BRACKET_MULTIPLIERS[bracket]


# =============================================================================
# HSI Engine
# =============================================================================


class HSIService(BaseService):
    """
    The only writer of HouseStatusIndex rows.

    Each recompute updates the house's single index row in place and appends
    an HSIAdjustment. Callers that may replay the same business event pass a
    ``reference`` so the adjustment is applied at most once.
    """

    @classmethod
    def get_index(cls, house_id: int) -> HouseStatusIndex:
        """
        Return the house's index, creating the neutral default row if needed.

        Raises:
            NotFoundError: If the house does not exist
        """
        if not House.objects.filter(pk=house_id).exists():
            raise NotFoundError(
                f"House {house_id} not found",
                error_code="HOUSE_NOT_FOUND",
                details={"house_id": house_id},
            )
        index, _ = HouseStatusIndex.objects.get_or_create(house_id=house_id)
        return index

    @classmethod
    def recompute_score(
        cls,
        house_id: int,
        outcome: str,
        *,
        delta: int | None = None,
        reason: str = "",
        reference: str | None = None,
    ) -> HouseStatusIndex:
        """
        Apply a payment outcome to the house's score.

        Args:
            house_id: House whose index changes
            outcome: One of HSIOutcome
            delta: Explicit step; required for MANUAL_ADJUSTMENT, optional
                override for the other outcomes (the late-payment sweep
                passes its escalating deduction here)
            reason: Stored as updated_reason and on the audit row
            reference: Idempotency key for the business event

        Returns:
            The updated HouseStatusIndex

        Raises:
            ValidationError: Unknown outcome, or manual adjustment without delta
            NotFoundError: House does not exist
        """
        if outcome not in OUTCOME_STEPS:
            raise ValidationError(
                f"Unknown HSI outcome: {outcome}",
                error_code="INVALID_HSI_OUTCOME",
                details={"outcome": outcome},
            )

        step = delta if delta is not None else OUTCOME_STEPS[outcome]
        if step is None:
            raise ValidationError(
                "Manual adjustments require an explicit delta",
                error_code="HSI_DELTA_REQUIRED",
            )

        cls.get_index(house_id)
        logger = cls.get_logger()

        try:
            with transaction.atomic():
                index = HouseStatusIndex.objects.select_for_update().get(house_id=house_id)

                if reference and HSIAdjustment.objects.filter(reference_key=reference).exists():
                    logger.info(
                        "HSI adjustment already applied",
                        extra={"house_id": house_id, "reference": reference},
                    )
                    return index

                score_before = index.score
                index.score = clamp_score(score_before + step)
                index.bracket = bracket_for_score(index.score)
                index.fee_multiplier, index.credit_multiplier = multipliers_for_bracket(
                    index.bracket
                )
                index.updated_reason = (reason or outcome)[:255]
                index.save()

                HSIAdjustment.objects.create(
                    index=index,
                    outcome=outcome,
                    delta=index.score - score_before,
                    score_before=score_before,
                    score_after=index.score,
                    reason=reason[:255],
                    reference_key=reference,
                )
        except IntegrityError:
            # A concurrent caller recorded the same reference first.
            logger.info(
                "HSI adjustment raced on reference, keeping first",
                extra={"house_id": house_id, "reference": reference},
            )
            return HouseStatusIndex.objects.get(house_id=house_id)

        logger.info(
            "HSI recomputed",
            extra={
                "house_id": house_id,
                "outcome": outcome,
                "score_before": score_before,
                "score_after": index.score,
                "bracket": index.bracket,
                "fee_multiplier": str(index.fee_multiplier),
            },
        )
        return index


# =============================================================================
# Roster
# =============================================================================


class HouseRoster(BaseService):
    """Lookups over a house's membership."""

    @classmethod
    def active_roommates(cls, house_id: int) -> list[User]:
        """Active members of the house in ascending user id order."""
        members = (
            HouseMember.objects.active()
            .filter(house_id=house_id)
            .select_related("user")
            .order_by("user_id")
        )
        return [member.user for member in members]
