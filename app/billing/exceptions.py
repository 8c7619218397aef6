"""
Billing-specific exceptions.

Exception Hierarchy:
    ValidationError (core) - rejected synchronously, never retried
    ├── EmptyRoommateSetError - No active members at allocation time
    ├── NegativeAmountError - Negative money amount supplied
    ├── ConsentRequiredError - Consent-gated service without authorized tasks
    └── AdvanceLimitExceededError - Fronting would exceed the house allowance
    ConflictError (core)
    └── CycleStateError - Operation not allowed in the ledger's current state
        └── CycleAlreadyActiveError - Service already has an active cycle
    BillingError
    └── LedgerInconsistencyError - Fatal; blocks automatic mutation of the ledger
        └── OverfundingError - funded would exceed total_required beyond tolerance

Usage:
    from billing.exceptions import CycleAlreadyActiveError

    raise CycleAlreadyActiveError(
        "House service 4 already has an active cycle",
        details={"house_service_id": 4, "ledger_id": 19},
    )
"""

from __future__ import annotations

from core.exceptions import BaseApplicationError, ConflictError, ValidationError


class BillingError(BaseApplicationError):
    """Base exception for billing failures that are not input or state errors."""

    default_error_code: str = "BILLING_ERROR"


# =============================================================================
# Validation
# =============================================================================


class EmptyRoommateSetError(ValidationError):
    """
    Raised when a bill is allocated for a house with no active members.

    Fatal and surfaced to the caller: retrying cannot produce roommates.
    """

    default_error_code: str = "EMPTY_ROOMMATE_SET"


class NegativeAmountError(ValidationError):
    default_error_code: str = "NEGATIVE_AMOUNT"


class ConsentRequiredError(ValidationError):
    """
    Raised when a consent-gated service is allocated before every roommate's
    Task reached AUTHORIZED (or when a task was cancelled).
    """

    default_error_code: str = "CONSENT_REQUIRED"


class AdvanceLimitExceededError(ValidationError):
    default_error_code: str = "ADVANCE_LIMIT_EXCEEDED"


# =============================================================================
# Cycle State
# =============================================================================


class CycleStateError(ConflictError):
    """Raised when a ledger operation is not allowed in its current state."""

    default_error_code: str = "CYCLE_STATE_ERROR"


class CycleAlreadyActiveError(CycleStateError):
    """Raised when opening a cycle for a service that already has one active."""

    default_error_code: str = "CYCLE_ALREADY_ACTIVE"


# =============================================================================
# Ledger Inconsistency
# =============================================================================


class LedgerInconsistencyError(BillingError):
    """
    Raised when ledger figures no longer reconcile.

    Never auto-corrected: the ledger is put on reconciliation hold and
    further automated mutation is refused until an operator clears it.
    """

    default_error_code: str = "LEDGER_INCONSISTENCY"


class OverfundingError(LedgerInconsistencyError):
    default_error_code: str = "LEDGER_OVERFUNDED"
