"""
Billing services.

    LedgerCycleManager  open / accrue / record_funding / close a funding cycle
    BillGenerator       ledger accrual -> Bill (fee scaled by the HSI)
    ChargeAllocator     Bill -> per-roommate Charges summing exactly to it
    TaskConsentService  consent Task transitions and the allocation gate
    AdvanceService      platform fronting within the house allowance
    VirtualCardService  virtual card requests
"""

from billing.services.advances import AdvanceService
from billing.services.bill_generator import BillGenerator, compute_service_fee
from billing.services.charge_allocator import ChargeAllocator, split_evenly
from billing.services.dates import due_date_for
from billing.services.ledger_cycle import LedgerCycleManager
from billing.services.task_consent import TaskConsentService
from billing.services.virtual_cards import VirtualCardService

__all__ = [
    "AdvanceService",
    "BillGenerator",
    "ChargeAllocator",
    "LedgerCycleManager",
    "TaskConsentService",
    "VirtualCardService",
    "compute_service_fee",
    "due_date_for",
    "split_evenly",
]
