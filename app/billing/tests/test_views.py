"""
Tests for the ledger read interface.
"""

import pytest
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory
from billing.services import LedgerCycleManager
from houses.tests.factories import HouseServiceFactory


@pytest.fixture
def api_client():
    return APIClient()


def ledger_url(service_id):
    return reverse("billing:ledger-detail", kwargs={"service_id": service_id})


class TestHouseServiceLedgerView:
    def test_member_reads_active_cycle(self, api_client, billed_ledger, roommates):
        api_client.force_authenticate(roommates[0])

        response = api_client.get(ledger_url(billed_ledger.house_service_id))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == "active"
        assert response.data["funding_required_cents"] == 10000
        assert response.data["total_required_cents"] == 10600
        assert response.data["funded_cents"] == 0
        assert len(response.data["bills"]) == 1

    def test_active_cycle_preferred_over_closed(self, api_client, ledger, roommates):
        LedgerCycleManager.close_cycle(ledger.id)
        current = LedgerCycleManager.open_cycle(ledger.house_service_id)
        api_client.force_authenticate(roommates[0])

        response = api_client.get(ledger_url(ledger.house_service_id))

        assert response.data["id"] == current.id

    def test_anonymous_is_rejected(self, api_client, ledger):
        response = api_client.get(ledger_url(ledger.house_service_id))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_non_member_is_forbidden(self, api_client, ledger):
        api_client.force_authenticate(UserFactory())

        response = api_client.get(ledger_url(ledger.house_service_id))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_service_without_ledger_is_not_found(self, api_client, house, roommates):
        service = HouseServiceFactory(house=house)
        api_client.force_authenticate(roommates[0])

        response = api_client.get(ledger_url(service.id))

        assert response.status_code == status.HTTP_404_NOT_FOUND
