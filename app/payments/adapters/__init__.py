"""
Payment adapters for external services.

All processor API calls go through these adapters to ensure consistent
error handling, timeouts, idempotency, and observability.

Usage:
    from payments.adapters import StripeAdapter, CreatePaymentIntentParams

    result = StripeAdapter.create_payment_intent(
        CreatePaymentIntentParams(
            amount_cents=3534,
            currency="usd",
            idempotency_key="create_intent:<payment id>:1:ab12cd34",
        )
    )
"""

from payments.adapters.stripe_adapter import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    StripeAdapter,
    backoff_delay,
    is_retryable_stripe_error,
)

__all__ = [
    "CreatePaymentIntentParams",
    "IdempotencyKeyGenerator",
    "PaymentIntentResult",
    "StripeAdapter",
    "backoff_delay",
    "is_retryable_stripe_error",
]
