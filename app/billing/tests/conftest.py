"""
Pytest fixtures for billing tests.

The ``billed_ledger`` fixture is the canonical scenario: a $100.00 card
service, neutral HSI, three roommates, flat $2 fee per roommate.
"""

import pytest

from billing.services import BillGenerator, ChargeAllocator, LedgerCycleManager
from houses.choices import FeeCategory
from houses.tests.factories import HouseFactory, HouseMemberFactory, HouseServiceFactory


@pytest.fixture
def house(db):
    return HouseFactory()


@pytest.fixture
def roommates(house):
    """Three active members of ``house`` in ascending user id order."""
    members = HouseMemberFactory.create_batch(3, house=house)
    return [member.user for member in members]


@pytest.fixture
def card_service(house):
    return HouseServiceFactory(house=house, fee_category=FeeCategory.CARD)


@pytest.fixture
def ledger(card_service):
    return LedgerCycleManager.open_cycle(card_service.id)


@pytest.fixture
def billed_ledger(ledger, roommates):
    """Ledger with a $100.00 accrual billed and allocated to three roommates."""
    LedgerCycleManager.accrue(ledger.id, 10000)
    bill = BillGenerator.generate(ledger.id)
    ChargeAllocator.allocate(bill.id)
    return ledger


@pytest.fixture
def bill(billed_ledger):
    return billed_ledger.bills.get()


@pytest.fixture
def charges(bill):
    return list(bill.charges.order_by("user_id"))
