"""
Webhook handling for payment events from Stripe.

Events are verified by the view, then applied exactly once by the
WebhookReconciler through the handler registry in handlers.py.

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""
