"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    VersionedMixin: Integer version bumped on every save (optimistic locking)

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

    class DeliveryRequest(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
        ...

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
    - payments.locks.check_version compares against VersionedMixin.version
"""

from __future__ import annotations

import uuid

from django.db import models
from django.db.models import F


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    IDs are non-guessable and do not reveal record counts, which matters for
    request and trip ids that appear in client URLs.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Optimistic locking counter.

    The version is incremented atomically in the database on every update
    and refreshed onto the instance afterwards, so two writers that read the
    same version can detect each other via check_version().
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on every save for optimistic locking",
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """Save, atomically incrementing the version on updates."""
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])
