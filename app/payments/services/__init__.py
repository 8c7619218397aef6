"""
Payment services.

This module provides:
- PaymentProcessor: At-most-once submission of charge collections and
  application of their outcomes
- WebhookReconciler: Exactly-once application of Stripe events

Usage:
    from payments.services import PaymentProcessor, WebhookReconciler

    payment = PaymentProcessor.submit(charge.id, idempotency_key="...")
    result = WebhookReconciler.ingest(event)
"""

from payments.services.payment_processor import PaymentProcessor
from payments.services.webhook_reconciler import WebhookReconciler

__all__ = [
    "PaymentProcessor",
    "WebhookReconciler",
]
