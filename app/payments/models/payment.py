"""
Payment model for charge collection attempts.

A Payment is one processor-facing attempt to collect a Charge. The
caller-supplied idempotency key is unique, so a client retry of the same
submission finds the existing row instead of creating a second one.

Usage:
    from payments.models import Payment

    payment = Payment.objects.create(
        idempotency_key="charge-42-attempt-1",
        charge=charge,
        user=charge.user,
        amount_cents=charge.amount_cents,
    )

    payment.submit("pi_xxx")  # pending -> processing
    payment.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin
from core.models import BaseModel
from payments.state_machines import PaymentStatus


class Payment(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A processor-facing attempt to collect a roommate's charge.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED
        PENDING/PROCESSING -> FAILED -> PENDING (retry)
        FAILED -> COMPLETED (the processor reports a late success)

    The charge and user links are references, not ownership: a payment
    outlives its bill cycle for audit and retry purposes.

    Fields:
        idempotency_key: Caller-supplied token, unique across all payments
        charge: The charge being collected
        user: The payer
        amount_cents: Amount submitted to the processor
        status: FSM-managed state (protected)
        stripe_payment_intent_id: PaymentIntent id, null until submitted
        stripe_payment_method_id: Payment method the intent charges
        attempt: Submission generation; bumped by a manual retry so Stripe
            receives a fresh idempotency key
        retry_count: Transient processor failures within the current attempt
        error_message: Last processor error
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    idempotency_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Caller-supplied key; a repeated submission returns this payment",
    )

    charge = models.ForeignKey(
        "billing.Charge",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payments",
    )

    # ==========================================================================
    # Amount
    # ==========================================================================

    amount_cents = models.PositiveBigIntegerField(
        help_text="Amount submitted for collection, in cents",
    )

    currency = models.CharField(max_length=3, default="usd")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
    )

    # ==========================================================================
    # Processor References
    # ==========================================================================

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    stripe_payment_method_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe PaymentMethod ID (pm_xxx)",
    )

    # ==========================================================================
    # Retry Bookkeeping
    # ==========================================================================

    attempt = models.PositiveSmallIntegerField(default=1)
    retry_count = models.PositiveSmallIntegerField(default=0)
    error_message = models.TextField(null=True, blank=True)

    submitted_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "updated_at"], name="payment_status_updated_idx"),
            models.Index(fields=["charge", "status"], name="payment_charge_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_cents__gt=0),
                name="payment_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_cents / 100:.2f} {self.currency.upper()}"
        return f"Payment({self.id}, {self.status}, {amount_display})"

    @property
    def is_terminal(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=PaymentStatus.PENDING, target=PaymentStatus.PROCESSING)
    def submit(self, payment_intent_id: str):
        """
        The processor accepted the PaymentIntent.

        Transition: PENDING -> PROCESSING
        """
        self.stripe_payment_intent_id = payment_intent_id
        self.submitted_at = timezone.now()
        self.error_message = None

    @transition(
        field=status,
        source=[PaymentStatus.PENDING, PaymentStatus.PROCESSING, PaymentStatus.FAILED],
        target=PaymentStatus.COMPLETED,
    )
    def complete(self, payment_intent_id: str | None = None):
        """
        Funds were collected.

        Transition: PENDING/PROCESSING/FAILED -> COMPLETED (terminal)

        PENDING is an allowed source because the success webhook can beat
        the submitting worker to the database. FAILED is allowed because
        the processor is authoritative: a timed-out submission we gave up
        on may still have collected the funds.
        """
        if payment_intent_id and not self.stripe_payment_intent_id:
            self.stripe_payment_intent_id = payment_intent_id
        self.completed_at = timezone.now()
        self.error_message = None

    @transition(
        field=status,
        source=[PaymentStatus.PENDING, PaymentStatus.PROCESSING],
        target=PaymentStatus.FAILED,
    )
    def fail(self, reason: str):
        """Transition: PENDING/PROCESSING -> FAILED"""
        self.error_message = reason
        self.failed_at = timezone.now()

    @transition(field=status, source=PaymentStatus.FAILED, target=PaymentStatus.PENDING)
    def retry(self):
        """
        Start a new submission attempt.

        Transition: FAILED -> PENDING
        The attempt counter moves on so the next Stripe call carries a new
        idempotency key; the transient retry budget starts over.
        """
        self.attempt += 1
        self.retry_count = 0
        self.stripe_payment_intent_id = None
        self.failed_at = None
