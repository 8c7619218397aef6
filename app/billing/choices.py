"""
State and choice enums for billing models.

These are Django TextChoices for database storage and admin integration.
FSM-managed fields (ledger, charge, task) use django-fsm transitions; the
bill status is derived from its charges.

HouseServiceLedger:
    active → closed

Charge:
    unpaid → processing → paid
    processing → unpaid (processor declined; roommate may retry)
    unpaid/processing → failed (submission retries exhausted)
    failed → processing (manual retry)

Task (consent):
    not_required → pending → authorized → completed
    pending/authorized → failed
    pending/authorized → cancelled (terminal)
"""

from django.db import models


class LedgerStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    CLOSED = "closed", "Closed"


class BillType(models.TextChoices):
    """Mirrors HouseService.service_type."""

    REGULAR = "regular", "Regular"
    FIXED_RECURRING = "fixed_recurring", "Fixed Recurring"
    VARIABLE_RECURRING = "variable_recurring", "Variable Recurring"
    ONE_TIME = "one_time", "One Time"


class BillStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PARTIAL_PAID = "partial_paid", "Partially Paid"
    PAID = "paid", "Paid"


class ChargeStatus(models.TextChoices):
    UNPAID = "unpaid", "Unpaid"
    PROCESSING = "processing", "Processing"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"


class TaskPaymentStatus(models.TextChoices):
    NOT_REQUIRED = "not_required", "Not Required"
    PENDING = "pending", "Pending"
    AUTHORIZED = "authorized", "Authorized"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


class VirtualCardRequestStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    DECLINED = "declined", "Declined"
    ISSUED = "issued", "Issued"
