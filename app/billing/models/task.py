"""
Task model: consent-based authorization for a roommate's charges.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from billing.choices import TaskPaymentStatus
from core.models import BaseModel


class Task(BaseModel):
    """
    A roommate's consent to be charged for a consent-required service.

    ChargeAllocator only creates charges for a consent-required service when
    every roommate's task has reached AUTHORIZED; a COMPLETED task keeps
    covering later bills on the same service. CANCELLED is terminal: no
    charge is ever created against a cancelled task. A FAILED task goes back
    to PENDING when consent is requested again.

    State Flow:
        NOT_REQUIRED -> PENDING -> AUTHORIZED -> COMPLETED
        PENDING/AUTHORIZED -> FAILED -> PENDING
        PENDING/AUTHORIZED -> CANCELLED
    """

    house_service = models.ForeignKey(
        "houses.HouseService",
        on_delete=models.CASCADE,
        related_name="tasks",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="tasks",
    )
    payment_status = FSMField(
        default=TaskPaymentStatus.NOT_REQUIRED,
        choices=TaskPaymentStatus.choices,
        db_index=True,
        protected=True,
    )
    payment_amount_cents = models.BigIntegerField(null=True, blank=True)
    monthly_amount_cents = models.BigIntegerField(null=True, blank=True)
    stripe_payment_intent_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="PaymentIntent carrying the payment-method authorization",
    )
    authorized_at = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["house_service", "user"], name="unique_task_per_roommate"),
        ]

    def __str__(self) -> str:
        return f"Task({self.pk}, user={self.user_id}, {self.payment_status})"

    @property
    def has_consent(self) -> bool:
        """Authorized, or completed under an earlier bill of the service."""
        return self.payment_status in (TaskPaymentStatus.AUTHORIZED, TaskPaymentStatus.COMPLETED)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=payment_status,
        source=TaskPaymentStatus.NOT_REQUIRED,
        target=TaskPaymentStatus.PENDING,
    )
    def request_consent(self, payment_amount_cents: int | None = None):
        """Transition: NOT_REQUIRED -> PENDING"""
        self.payment_amount_cents = payment_amount_cents

    @transition(
        field=payment_status,
        source=TaskPaymentStatus.PENDING,
        target=TaskPaymentStatus.AUTHORIZED,
    )
    def authorize(self, payment_intent_id: str):
        """
        The processor confirmed a payment-method authorization.

        Transition: PENDING -> AUTHORIZED
        """
        self.stripe_payment_intent_id = payment_intent_id
        self.authorized_at = timezone.now()

    @transition(
        field=payment_status,
        source=TaskPaymentStatus.AUTHORIZED,
        target=TaskPaymentStatus.COMPLETED,
    )
    def complete(self):
        """Transition: AUTHORIZED -> COMPLETED"""
        self.resolved_at = timezone.now()

    @transition(
        field=payment_status,
        source=[TaskPaymentStatus.PENDING, TaskPaymentStatus.AUTHORIZED],
        target=TaskPaymentStatus.FAILED,
    )
    def fail(self, reason: str):
        """Transition: PENDING/AUTHORIZED -> FAILED"""
        self.failure_reason = reason
        self.resolved_at = timezone.now()

    @transition(
        field=payment_status,
        source=TaskPaymentStatus.FAILED,
        target=TaskPaymentStatus.PENDING,
    )
    def renew(self, payment_amount_cents: int | None = None):
        """
        Ask again after a failed authorization or collection.

        Transition: FAILED -> PENDING
        The old PaymentIntent is released so a new authorization can link.
        """
        self.payment_amount_cents = payment_amount_cents
        self.stripe_payment_intent_id = None
        self.authorized_at = None
        self.resolved_at = None
        self.failure_reason = None

    @transition(
        field=payment_status,
        source=[TaskPaymentStatus.PENDING, TaskPaymentStatus.AUTHORIZED],
        target=TaskPaymentStatus.CANCELLED,
    )
    def cancel(self):
        """
        The roommate revoked consent.

        Transition: PENDING/AUTHORIZED -> CANCELLED (terminal)
        """
        self.resolved_at = timezone.now()
