"""
Views for the ledger read interface.

Endpoints:
    GET /api/v1/billing/ledgers/{service_id}/ - Current cycle of a house service
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import generics
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated

from billing.models import HouseServiceLedger
from billing.serializers import HouseServiceLedgerSerializer
from houses.models import HouseService
from houses.permissions import IsHouseMember


@extend_schema(
    operation_id="get_house_service_ledger",
    summary="Get house service ledger",
    description=(
        "Funding position of the service's active cycle, or of its most "
        "recent cycle when none is active."
    ),
    tags=["Billing"],
)
class HouseServiceLedgerView(generics.RetrieveAPIView):
    serializer_class = HouseServiceLedgerSerializer
    permission_classes = [IsAuthenticated, IsHouseMember]

    def get_house_id(self):
        return (
            HouseService.objects.filter(pk=self.kwargs["service_id"])
            .values_list("house_id", flat=True)
            .first()
        )

    def get_object(self):
        # active sorts before closed
        ledger = (
            HouseServiceLedger.objects.filter(house_service_id=self.kwargs["service_id"])
            .prefetch_related("bills")
            .order_by("status", "-cycle_start")
            .first()
        )
        if ledger is None:
            raise NotFound("No ledger for this house service.")
        return ledger
