"""
State machine enums for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import PaymentStatus, WebhookLogStatus

__all__ = [
    "PaymentStatus",
    "WebhookLogStatus",
]
