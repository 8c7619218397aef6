"""
Payments app for charge collection through Stripe.

This app handles:
- Submitting roommate charges for collection, at most once per idempotency key
- Retrying transient processor failures with backoff
- Applying Stripe webhook events to billing state exactly once
- Reconciling payments whose webhook never arrived

Related apps:
    - billing: Charges, ledgers and consent tasks that payments settle
    - houses: House Status Index adjusted on failed collections

Usage:
    from payments.services import PaymentProcessor, WebhookReconciler

    payment = PaymentProcessor.submit(charge.id, idempotency_key, payment_method_id="pm_xxx")
    result = WebhookReconciler.ingest(event)
"""
