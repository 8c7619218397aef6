"""
Serializers for the HSI read interface.
"""

from __future__ import annotations

from rest_framework import serializers

from houses.models import HouseStatusIndex


class HouseStatusIndexSerializer(serializers.ModelSerializer):
    """Read-only view of a house's score, bracket and multipliers."""

    house_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = HouseStatusIndex
        fields = [
            "house_id",
            "score",
            "bracket",
            "fee_multiplier",
            "credit_multiplier",
            "updated_reason",
            "updated_at",
        ]
        read_only_fields = fields
