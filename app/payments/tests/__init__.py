"""
Tests for payments app.

This package contains test modules for:
- test_models.py: Subscription, Transaction, WebhookEvent model tests
- test_services.py: StripeService tests
- test_webhooks.py: Webhook handler tests
- test_views.py: API endpoint tests

Usage:
    pytest payments/tests/
    pytest payments/tests/test_services.py
"""
