"""
Model mixins providing reusable field groups for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use a UUID as primary key
    MetadataMixin: Flexible JSON metadata storage with helpers
    VersionedMixin: Optimistic-locking version counter bumped on every update

Usage:
    from core.models import BaseModel
    from core.model_mixins import MetadataMixin, VersionedMixin

    class HouseServiceLedger(VersionedMixin, MetadataMixin, BaseModel):
        funded_cents = models.BigIntegerField(default=0)

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import models
from django.db.models import F

if TYPE_CHECKING:
    from typing import Any


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of an auto-increment integer.

    Used for processor-facing records (payments, webhook logs) whose ids are
    echoed to Stripe as metadata and should not reveal row counts.

    Fields:
        id: UUIDField primary key (generated with uuid4)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier (UUID v4)",
    )

    class Meta:
        abstract = True


class MetadataMixin(models.Model):
    """
    Flexible JSON metadata storage.

    Fields:
        metadata: JSONField for arbitrary key-value data

    Usage:
        charge.set_meta("latest_point_deduction", -3)
        charge.append_meta("point_deductions", {"date": "2025-01-10", "points": -3})
        charge.get_meta("point_deductions", default=[])
    """

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Flexible key-value metadata storage",
    )

    class Meta:
        abstract = True

    def get_meta(self, key: str, default: Any = None) -> Any:
        """Return the metadata value stored under ``key`` or ``default``."""
        return (self.metadata or {}).get(key, default)

    def set_meta(self, key: str, value: Any, save: bool = True) -> None:
        """
        Set a metadata value and optionally persist it.

        Args:
            key: Metadata key
            value: JSON-serializable value
            save: Whether to save the model immediately (default True)
        """
        metadata = dict(self.metadata or {})
        metadata[key] = value
        self.metadata = metadata
        if save:
            self.save(update_fields=["metadata", "updated_at"])

    def append_meta(self, key: str, value: Any, save: bool = True) -> None:
        """Append ``value`` to the list stored under ``key``, creating it if missing."""
        items = list(self.get_meta(key, default=[]))
        items.append(value)
        self.set_meta(key, items, save=save)

    def has_meta(self, key: str) -> bool:
        return key in (self.metadata or {})


class VersionedMixin(models.Model):
    """
    Optimistic-locking version counter.

    On update the version is incremented in the database with an F()
    expression and read back, so a concurrent writer holding a stale copy
    can be detected with a ``filter(version=...)`` guard.

    Fields:
        version: Starts at 1, incremented on each save()
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        update_fields = kwargs.get("update_fields")
        if is_update:
            self.version = F("version") + 1
            if update_fields is not None:
                kwargs["update_fields"] = list(set(update_fields) | {"version"})
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])
