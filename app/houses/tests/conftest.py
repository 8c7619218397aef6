"""
Pytest fixtures for house tests.
"""

import pytest

from houses.tests.factories import HouseFactory, HouseMemberFactory


@pytest.fixture
def house(db):
    return HouseFactory()


@pytest.fixture
def roommates(house):
    """Three active members of ``house`` in ascending user id order."""
    members = HouseMemberFactory.create_batch(3, house=house)
    return [member.user for member in members]
