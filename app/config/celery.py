"""
Celery configuration for the billing ledger service.

Celery runs the engine's background work:
- Payment submission retries with backoff (payments.tasks)
- Periodic sweeps: stuck payments, failed webhooks, late charges and
  fixed recurring bills (scheduled through django-celery-beat)

Redis is both the message broker and result backend. Tasks are
auto-discovered from every installed app's tasks.py.

Usage:
    from payments.tasks import retry_payment_submission

    retry_payment_submission.apply_async(args=[str(payment.id)], countdown=2.0)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
