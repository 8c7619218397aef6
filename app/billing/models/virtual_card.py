"""
VirtualCardRequest model: a funding instrument requested for a house.
"""

from __future__ import annotations

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from billing.choices import VirtualCardRequestStatus
from core.models import BaseModel


class VirtualCardRequest(BaseModel):
    """
    Request for a virtual card that pays a provider directly.

    Follows the recurring-bill contract: a monthly amount in cents and a due
    day of month, from which concrete due dates are derived the same way as
    for fixed recurring bills.
    """

    house = models.ForeignKey(
        "houses.House",
        on_delete=models.CASCADE,
        related_name="virtual_card_requests",
    )
    house_service = models.ForeignKey(
        "houses.HouseService",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="virtual_card_requests",
    )
    service_name = models.CharField(max_length=255)
    monthly_amount_cents = models.PositiveBigIntegerField()
    due_day = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(31)],
    )
    required_upfront_payment_cents = models.PositiveBigIntegerField(null=True, blank=True)
    status = models.CharField(
        max_length=16,
        choices=VirtualCardRequestStatus.choices,
        default=VirtualCardRequestStatus.PENDING,
        db_index=True,
    )
    virtual_card_id = models.CharField(max_length=255, null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"VirtualCardRequest({self.pk}, {self.service_name}, {self.status})"
