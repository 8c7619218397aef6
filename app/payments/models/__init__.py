"""
Payment models.

Models:
    Payment: One processor-facing attempt to collect a charge
    StripeWebhookLog: Unique, durable record of inbound Stripe events
"""

from payments.models.payment import Payment
from payments.models.webhook_log import StripeWebhookLog

__all__ = [
    "Payment",
    "StripeWebhookLog",
]
