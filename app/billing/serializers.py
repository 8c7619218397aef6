"""
Serializers for the ledger read interface.
"""

from __future__ import annotations

from rest_framework import serializers

from billing.models import Bill, HouseServiceLedger


class BillSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Bill
        fields = [
            "id",
            "sequence",
            "name",
            "bill_type",
            "base_amount_cents",
            "service_fee_cents",
            "amount_cents",
            "status",
            "due_date",
        ]
        read_only_fields = fields


class HouseServiceLedgerSerializer(serializers.ModelSerializer):
    """Current funding position of a house service's cycle."""

    house_service_id = serializers.IntegerField(read_only=True)
    bills = BillSummarySerializer(many=True, read_only=True)

    class Meta:
        model = HouseServiceLedger
        fields = [
            "id",
            "house_service_id",
            "status",
            "funding_required_cents",
            "service_fee_cents",
            "total_required_cents",
            "funded_cents",
            "amount_fronted_cents",
            "cycle_start",
            "cycle_end",
            "reconciliation_hold",
            "bills",
        ]
        read_only_fields = fields
