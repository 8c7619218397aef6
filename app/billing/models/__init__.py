"""
Billing models.

Import from this package rather than the individual modules:

    from billing.models import Bill, Charge, HouseServiceLedger, Task
"""

from billing.models.bill import Bill
from billing.models.charge import Charge
from billing.models.ledger import HouseServiceLedger
from billing.models.task import Task
from billing.models.virtual_card import VirtualCardRequest

__all__ = [
    "Bill",
    "Charge",
    "HouseServiceLedger",
    "Task",
    "VirtualCardRequest",
]
