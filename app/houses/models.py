"""
House domain models.

Models:
    House: A shared household
    HouseMember: A user's membership in a house (roommate)
    HouseService: A recurring or one-time service the house buys
    HouseStatusIndex: Per-house risk score and derived multipliers
    HSIAdjustment: Append-only audit trail of score changes

The HouseStatusIndex is written only by houses.services.HSIService.
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from core.models import BaseModel
from houses.choices import FeeCategory, HouseServiceStatus, HSIOutcome, ServiceType


class House(BaseModel):
    """
    A shared household whose roommates split bills.

    Fields:
        name: Display name
        created_by: User who created the house (nullable if they leave)
    """

    name = models.CharField(max_length=255)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_houses",
    )

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"House({self.pk}, {self.name})"


class HouseMemberQuerySet(models.QuerySet):
    def active(self):
        return self.filter(is_active=True, user__is_active=True)


class HouseMember(BaseModel):
    """
    Membership of a user in a house.

    Inactive members keep their history (charges, payments) but are excluded
    from new allocations.
    """

    house = models.ForeignKey(House, on_delete=models.CASCADE, related_name="members")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="house_memberships",
    )
    is_active = models.BooleanField(default=True, db_index=True)

    objects = HouseMemberQuerySet.as_manager()

    class Meta:
        ordering = ["user_id"]
        constraints = [
            models.UniqueConstraint(fields=["house", "user"], name="unique_house_member"),
        ]

    def __str__(self) -> str:
        return f"HouseMember(house={self.house_id}, user={self.user_id})"


class HouseService(BaseModel):
    """
    A service subscription purchased by a house.

    Owns a sequence of HouseServiceLedger funding cycles (billing app), at
    most one of which is active at a time.

    Fields:
        service_type: fixed_recurring / variable_recurring / one_time
        fee_category: card (flat per-roommate fee) or marketplace (no fee)
        amount_cents: Monthly amount for fixed recurring services
        create_day: Day of month the recurring bill is generated
        due_day: Day of month the recurring bill is due
        consent_required: Charges need each roommate's authorized Task first
    """

    house = models.ForeignKey(House, on_delete=models.CASCADE, related_name="services")
    name = models.CharField(max_length=255)
    service_type = models.CharField(
        max_length=32,
        choices=ServiceType.choices,
        default=ServiceType.VARIABLE_RECURRING,
    )
    fee_category = models.CharField(
        max_length=16,
        choices=FeeCategory.choices,
        default=FeeCategory.CARD,
    )
    status = models.CharField(
        max_length=16,
        choices=HouseServiceStatus.choices,
        default=HouseServiceStatus.ACTIVE,
        db_index=True,
    )
    amount_cents = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Monthly amount in cents for fixed recurring services",
    )
    create_day = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(31)],
        help_text="Day of month the recurring bill is generated",
    )
    due_day = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(31)],
        help_text="Day of month the recurring bill is due",
    )
    consent_required = models.BooleanField(
        default=False,
        help_text="Roommates must authorize a payment method before charges are created",
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["service_type", "status", "create_day"],
                name="houseservice_recurring_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"HouseService({self.pk}, {self.name}, {self.service_type})"


class HouseStatusIndex(BaseModel):
    """
    Per-house risk/trust score.

    One row per house, updated in place; every change is also appended to
    HSIAdjustment. Bill generation reads fee_multiplier at generation time,
    so a score change never rewrites an already issued bill.

    Fields:
        score: 0..100, starts at 50
        bracket: score // 10 (0..10)
        fee_multiplier: 1.20 (worst) .. 0.80 (best)
        credit_multiplier: 0.50 (worst) .. 2.00 (best)
        updated_reason: Why the score last changed
    """

    house = models.OneToOneField(
        House,
        on_delete=models.CASCADE,
        related_name="status_index",
    )
    score = models.PositiveSmallIntegerField(
        default=50,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    bracket = models.PositiveSmallIntegerField(default=5)
    fee_multiplier = models.DecimalField(
        max_digits=4, decimal_places=2, default=Decimal("1.00")
    )
    credit_multiplier = models.DecimalField(
        max_digits=4, decimal_places=2, default=Decimal("1.00")
    )
    updated_reason = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        verbose_name = "House Status Index"
        verbose_name_plural = "House Status Indexes"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(score__gte=0) & models.Q(score__lte=100),
                name="hsi_score_in_range",
            ),
        ]

    def __str__(self) -> str:
        return f"HouseStatusIndex(house={self.house_id}, score={self.score})"


class HSIAdjustment(BaseModel):
    """
    Append-only record of a single score change.

    reference_key, when supplied, is unique: the same business event (a
    ledger close, a daily late-payment deduction) can move the score at most
    once.
    """

    index = models.ForeignKey(
        HouseStatusIndex,
        on_delete=models.CASCADE,
        related_name="adjustments",
    )
    outcome = models.CharField(max_length=32, choices=HSIOutcome.choices)
    delta = models.SmallIntegerField()
    score_before = models.PositiveSmallIntegerField()
    score_after = models.PositiveSmallIntegerField()
    reason = models.CharField(max_length=255, blank=True, default="")
    reference_key = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "HSI Adjustment"

    def __str__(self) -> str:
        return f"HSIAdjustment({self.outcome}, {self.delta:+d})"
