"""
Views for the HSI read interface.

Endpoints:
    GET /api/v1/houses/{house_id}/hsi/ - Score, bracket and multipliers
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import generics
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated

from core.exceptions import NotFoundError
from houses.permissions import IsHouseMember
from houses.serializers import HouseStatusIndexSerializer
from houses.services import HSIService


@extend_schema(
    operation_id="get_house_status_index",
    summary="Get House Status Index",
    description="Current score, bracket and fee/credit multipliers for a house.",
    tags=["Houses"],
)
class HouseStatusIndexView(generics.RetrieveAPIView):
    """Retrieve the house's index, creating the neutral default on first read."""

    serializer_class = HouseStatusIndexSerializer
    permission_classes = [IsAuthenticated, IsHouseMember]

    def get_object(self):
        try:
            return HSIService.get_index(self.kwargs["house_id"])
        except NotFoundError as e:
            raise NotFound(e.message)
