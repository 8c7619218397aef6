"""
Payment-specific exceptions for payment operations.

This module provides a hierarchy of exceptions for charge collection,
including payment domain errors, Stripe errors and concurrency control errors.

Exception Hierarchy:
    PaymentError (base for payment domain)
    ├── PaymentNotFoundError - Payment lookup failures
    ├── DuplicateEventError - Webhook event already applied (informational)
    ├── StalePaymentIntentError - Event for an earlier attempt's intent (ignored)
    └── PaymentProcessingError - Payment processing failures
        └── StripeError - Base for all Stripe errors
            ├── StripeCardDeclinedError - Card declined (permanent)
            ├── StripeInsufficientFundsError - Insufficient funds (permanent)
            ├── StripeInvalidRequestError - Invalid request params (permanent)
            └── ProcessorTransientError - Transient failure, retried with backoff
                ├── StripeRateLimitError - Rate limited
                ├── StripeAPIUnavailableError - API unavailable / 5xx
                └── StripeTimeoutError - Request timeout

    LockAcquisitionError - Distributed lock timeout (inherits ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Usage:
    from payments.exceptions import InvalidStateTransitionError, StripeError

    try:
        StripeAdapter.create_payment_intent(params)
    except StripeError as e:
        if e.is_retryable:
            schedule_retry(payment)
        else:
            fail_payment(payment, e.message)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain Exceptions
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment operations.

    All payment-specific exceptions inherit from this class,
    which itself inherits from BaseApplicationError for
    consistent API error responses.
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """
    Raised when a payment (or the charge it collects) cannot be found.

    Example:
        payment = Payment.objects.filter(id=payment_id).first()
        if not payment:
            raise PaymentNotFoundError(
                f"Payment {payment_id} not found",
                details={"payment_id": str(payment_id)}
            )
    """

    default_error_code: str = "PAYMENT_NOT_FOUND"


class DuplicateEventError(PaymentError):
    """
    Raised when a webhook event has already been applied.

    Not a failure: the reconciler catches it and acknowledges the delivery
    without touching any state. It never reaches the HTTP caller.
    """

    default_error_code: str = "DUPLICATE_EVENT"


class StalePaymentIntentError(PaymentError):
    """
    Raised when an event belongs to an earlier submission attempt.

    A manual retry starts a new attempt with a new PaymentIntent; late
    events for the old intent are acknowledged without touching state.
    """

    default_error_code: str = "STALE_PAYMENT_INTENT"


class PaymentProcessingError(PaymentError):
    """Raised when payment processing fails."""

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"


# =============================================================================
# Stripe-Specific Exceptions
# =============================================================================


class StripeError(PaymentProcessingError):
    """
    Base exception for all Stripe-related errors.

    Provides common attributes for Stripe error handling:
    - stripe_code: Stripe's internal error code
    - decline_code: Card decline code (if applicable)
    - is_retryable: Whether the operation can be retried

    Use is_retryable to determine retry behavior:
    - True: Transient error, safe to retry with backoff
    - False: Permanent error, do not retry
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeCardDeclinedError(StripeError):
    """
    Card was declined by the issuing bank.

    The roommate must use a different payment method; the charge goes
    back to unpaid so a new submission can be made.
    """

    default_error_code: str = "CARD_DECLINED"
    is_retryable: bool = False


class StripeInsufficientFundsError(StripeError):
    default_error_code: str = "INSUFFICIENT_FUNDS"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError):
    """
    Request parameters were rejected by Stripe.

    Also raised for webhook payloads whose signature does not verify.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (retry with backoff)
# -----------------------------------------------------------------------------


class ProcessorTransientError(StripeError):
    """
    Network, timeout or 5xx failure from the processor.

    Retried with bounded exponential backoff; once STRIPE_MAX_RETRIES is
    exhausted the payment is failed and an operator alert is logged.
    """

    default_error_code: str = "PROCESSOR_TRANSIENT_ERROR"
    is_retryable: bool = True


class StripeRateLimitError(ProcessorTransientError):
    default_error_code: str = "STRIPE_RATE_LIMITED"


class StripeAPIUnavailableError(ProcessorTransientError):
    default_error_code: str = "STRIPE_UNAVAILABLE"


class StripeTimeoutError(ProcessorTransientError):
    default_error_code: str = "STRIPE_TIMEOUT"


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Example:
        with DistributedLock(f"payment:reconcile:{payment.id}", blocking=False):
            ...  # raises LockAcquisitionError if another worker holds it
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    This exception wraps django-fsm's TransitionNotAllowed to provide
    our standard error format with additional context.

    Example:
        try:
            payment.retry()
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot retry payment from '{payment.status}' state",
                details={"from_state": payment.status, "transition": "retry"}
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    # Payment domain
    "PaymentError",
    "PaymentNotFoundError",
    "DuplicateEventError",
    "PaymentProcessingError",
    # Stripe-specific
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInsufficientFundsError",
    "StripeInvalidRequestError",
    "ProcessorTransientError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
    # Concurrency control
    "LockAcquisitionError",
    "InvalidStateTransitionError",
]
