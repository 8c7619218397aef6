"""
Tests for the HSI engine and roster lookups.
"""

from decimal import Decimal

import pytest

from core.exceptions import NotFoundError, ValidationError
from houses.choices import HSIOutcome
from houses.models import HouseStatusIndex, HSIAdjustment
from houses.services import (
    BRACKET_MULTIPLIERS,
    HouseRoster,
    HSIService,
    bracket_for_score,
    multipliers_for_bracket,
)
from houses.tests.factories import HouseMemberFactory, HouseStatusIndexFactory


# =============================================================================
# Lookup Table
# =============================================================================


class TestBracketTable:
    """Tests for the score -> bracket -> multiplier lookup."""

    @pytest.mark.parametrize(
        "score,bracket",
        [(0, 0), (9, 0), (10, 1), (49, 4), (50, 5), (99, 9), (100, 10)],
    )
    def test_bracket_is_score_tens(self, score, bracket):
        assert bracket_for_score(score) == bracket

    def test_fee_multiplier_decreases_as_bracket_rises(self):
        fees = [multipliers_for_bracket(b)[0] for b in range(11)]

        assert fees == sorted(fees, reverse=True)
        assert len(set(fees)) == len(fees)

    def test_credit_multiplier_increases_as_bracket_rises(self):
        credits = [multipliers_for_bracket(b)[1] for b in range(11)]

        assert credits == sorted(credits)

    def test_multipliers_are_bounded(self):
        for fee, credit in BRACKET_MULTIPLIERS.values():
            assert Decimal("0.5") <= fee <= Decimal("2.0")
            assert Decimal("0.5") <= credit <= Decimal("2.0")

    def test_neutral_bracket_is_unity(self):
        assert multipliers_for_bracket(5) == (Decimal("1.00"), Decimal("1.00"))


# =============================================================================
# Recompute
# =============================================================================


class TestRecomputeScore:
    """Tests for HSIService.recompute_score."""

    def test_creates_default_index_lazily(self, house):
        index = HSIService.get_index(house.id)

        assert index.score == 50
        assert index.bracket == 5
        assert index.fee_multiplier == Decimal("1.00")

    def test_on_time_payment_raises_score(self, house):
        index = HSIService.recompute_score(house.id, HSIOutcome.ON_TIME_PAYMENT)

        assert index.score == 52
        assert index.updated_reason == "on_time_payment"

    def test_default_lowers_score_and_bracket(self, house):
        index = HSIService.recompute_score(house.id, HSIOutcome.DEFAULT)

        assert index.score == 40
        assert index.bracket == 4
        assert index.fee_multiplier == Decimal("1.04")
        assert index.credit_multiplier == Decimal("0.90")

    def test_late_payment_step(self, house):
        index = HSIService.recompute_score(house.id, HSIOutcome.LATE_PAYMENT)

        assert index.score == 45

    def test_score_clamped_at_upper_bound(self, house):
        HouseStatusIndexFactory(house=house, score=99, bracket=9)

        index = HSIService.recompute_score(house.id, HSIOutcome.ON_TIME_PAYMENT)

        assert index.score == 100
        assert index.bracket == 10
        assert index.fee_multiplier == Decimal("0.80")

    def test_score_clamped_at_lower_bound(self, house):
        HouseStatusIndexFactory(house=house, score=3, bracket=0)

        index = HSIService.recompute_score(house.id, HSIOutcome.DEFAULT)

        assert index.score == 0
        adjustment = HSIAdjustment.objects.get()
        assert adjustment.delta == -3

    def test_manual_adjustment_requires_delta(self, house):
        with pytest.raises(ValidationError):
            HSIService.recompute_score(house.id, HSIOutcome.MANUAL_ADJUSTMENT)

    def test_manual_adjustment_applies_delta(self, house):
        index = HSIService.recompute_score(
            house.id, HSIOutcome.MANUAL_ADJUSTMENT, delta=17, reason="Support credit"
        )

        assert index.score == 67
        assert index.updated_reason == "Support credit"

    def test_unknown_outcome_rejected(self, house):
        with pytest.raises(ValidationError):
            HSIService.recompute_score(house.id, "bribe")

    def test_unknown_house_rejected(self, db):
        with pytest.raises(NotFoundError):
            HSIService.recompute_score(999999, HSIOutcome.DEFAULT)

    def test_writes_audit_row(self, house):
        HSIService.recompute_score(house.id, HSIOutcome.ON_TIME_PAYMENT, reason="cycle 4 closed")

        adjustment = HSIAdjustment.objects.get()
        assert adjustment.outcome == HSIOutcome.ON_TIME_PAYMENT
        assert (adjustment.score_before, adjustment.score_after) == (50, 52)

    def test_reference_applies_at_most_once(self, house):
        for _ in range(3):
            HSIService.recompute_score(
                house.id, HSIOutcome.ON_TIME_PAYMENT, reference="ledger:7:close"
            )

        assert HouseStatusIndex.objects.get(house=house).score == 52
        assert HSIAdjustment.objects.count() == 1

    def test_single_row_per_house(self, house):
        HSIService.recompute_score(house.id, HSIOutcome.ON_TIME_PAYMENT)
        HSIService.recompute_score(house.id, HSIOutcome.LATE_PAYMENT)

        assert HouseStatusIndex.objects.filter(house=house).count() == 1
        assert HSIAdjustment.objects.count() == 2


# =============================================================================
# Roster
# =============================================================================


class TestHouseRoster:
    """Tests for HouseRoster.active_roommates."""

    def test_orders_by_user_id(self, house, roommates):
        result = HouseRoster.active_roommates(house.id)

        assert [u.id for u in result] == sorted(u.id for u in roommates)

    def test_excludes_inactive_members(self, house, roommates):
        HouseMemberFactory(house=house, is_active=False)

        assert len(HouseRoster.active_roommates(house.id)) == 3

    def test_excludes_deactivated_users(self, house, roommates):
        roommates[0].is_active = False
        roommates[0].save()

        result = HouseRoster.active_roommates(house.id)

        assert roommates[0] not in result
