"""
Tests for the HSI read endpoint.
"""

from rest_framework.test import APIClient

from authentication.tests.factories import UserFactory
from houses.tests.factories import HouseStatusIndexFactory


class TestHouseStatusIndexView:
    """Tests for GET /api/v1/houses/{house_id}/hsi/."""

    def _url(self, house_id):
        return f"/api/v1/houses/{house_id}/hsi/"

    def test_member_reads_index(self, house, roommates):
        HouseStatusIndexFactory(house=house, score=72, bracket=7)
        client = APIClient()
        client.force_authenticate(roommates[0])

        response = client.get(self._url(house.id))

        assert response.status_code == 200
        assert response.data["score"] == 72
        assert response.data["bracket"] == 7
        assert response.data["house_id"] == house.id

    def test_non_member_forbidden(self, house, roommates):
        client = APIClient()
        client.force_authenticate(UserFactory())

        response = client.get(self._url(house.id))

        assert response.status_code == 403

    def test_anonymous_rejected(self, house):
        response = APIClient().get(self._url(house.id))

        assert response.status_code == 401

    def test_staff_gets_404_for_missing_house(self, db):
        client = APIClient()
        client.force_authenticate(UserFactory(is_staff=True))

        response = client.get(self._url(424242))

        assert response.status_code == 404
