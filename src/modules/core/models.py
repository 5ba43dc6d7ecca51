"""Abstract models shared by every module, plus the transactional outbox.

- ``TimestampedModel``: UUIDv7 primary key with creation/update stamps.
- ``TombstoneModel``: soft delete through a ``deleted_at`` stamp that can
  be set once and never cleared.
- ``OutboxEvent``: domain events written in the same transaction as the
  change that raised them, relayed later by ``core.publish_outbox_events``.

``objects`` is unfiltered on every model here.  Read paths that must
hide deleted rows call ``.alive()`` themselves.
"""

from __future__ import annotations

import uuid6
from django.db import models
from django.utils import timezone


class TimestampedModel(models.Model):
    """UUIDv7 primary key; ``created_at`` may be supplied by the caller."""

    id = models.UUIDField(primary_key=True, default=uuid6.uuid7, editable=False)
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs) -> None:
        # auto_now fields are skipped when update_fields omits them.
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = [*update_fields, "updated_at"]
        super().save(*args, **kwargs)


class TombstoneViolation(Exception):
    """A soft-deleted record was about to be written back as live."""


class TombstoneQuerySet(models.QuerySet):
    def alive(self) -> TombstoneQuerySet:
        return self.filter(deleted_at__isnull=True)

    def dead(self) -> TombstoneQuerySet:
        return self.filter(deleted_at__isnull=False)

    def delete(self) -> tuple[int, dict[str, int]]:
        """Stamp every live row in the queryset; nothing is removed."""
        now = timezone.now()
        count = self.alive().update(deleted_at=now, updated_at=now)
        return count, {self.model._meta.label: count}


class TombstoneModel(TimestampedModel):
    """Soft delete that only goes one way.

    The ``deleted_at`` value seen at load time is remembered; ``save()``
    raises ``TombstoneViolation`` if it was set and has since been
    cleared.
    """

    deleted_at = models.DateTimeField(null=True, blank=True, default=None, db_index=True)

    objects = TombstoneQuerySet.as_manager()

    class Meta:
        abstract = True

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_deleted_at = instance.__dict__.get("deleted_at")
        return instance

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def ensure_not_resurrected(self) -> None:
        if getattr(self, "_loaded_deleted_at", None) is not None and not self.is_deleted:
            raise TombstoneViolation(
                f"{self._meta.label} {self.pk} was deleted and cannot be restored."
            )

    def save(self, *args, **kwargs) -> None:
        self.ensure_not_resurrected()
        super().save(*args, **kwargs)
        self._loaded_deleted_at = self.deleted_at

    def delete(self, using=None, keep_parents=False) -> tuple[int, dict[str, int]]:
        """Stamp ``deleted_at``.  Deleting a dead record does nothing."""
        if self.is_deleted:
            return 0, {}
        self.deleted_at = timezone.now()
        self.save(update_fields=["deleted_at"])
        return 1, {self._meta.label: 1}


class EventStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PUBLISHED = "PUBLISHED", "Published"
    FAILED = "FAILED", "Failed"


class OutboxQuerySet(models.QuerySet):
    def backlog(self) -> OutboxQuerySet:
        return self.filter(status=EventStatus.PENDING)

    def relayable(self, max_attempts: int) -> OutboxQuerySet:
        """Pending rows plus failed rows that still have attempts left, oldest first."""
        return self.filter(
            status__in=[EventStatus.PENDING, EventStatus.FAILED],
            retry_count__lt=max_attempts,
        ).order_by("created_at")


class OutboxEvent(TimestampedModel):
    """A domain event waiting to be handed to the in-process bus.

    ``payload`` holds the serialized event (``event_id``, ``occurred_on``
    and the event's own ``payload``); ``event_type`` is the event class
    name used to rebuild it.
    """

    event_type = models.CharField(max_length=100)
    payload = models.JSONField()
    aggregate_id = models.CharField(max_length=255)
    topic = models.CharField(max_length=100)
    status = models.CharField(
        max_length=20,
        choices=EventStatus.choices,
        default=EventStatus.PENDING,
    )
    processed_at = models.DateTimeField(null=True, blank=True, default=None)
    error_message = models.TextField(null=True, blank=True, default=None)  # noqa: DJ01
    retry_count = models.PositiveIntegerField(default=0)

    objects = OutboxQuerySet.as_manager()

    class Meta:
        db_table = "outbox_events"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["event_type"], name="outbox_event_type_idx"),
            models.Index(fields=["aggregate_id"], name="outbox_aggregate_id_idx"),
            models.Index(fields=["status", "created_at"], name="outbox_status_created_idx"),
        ]

    def mark_as_published(self) -> None:
        self.status = EventStatus.PUBLISHED
        self.processed_at = timezone.now()
        self.save(update_fields=["status", "processed_at"])

    def mark_as_failed(self, error: str) -> None:
        self.status = EventStatus.FAILED
        self.error_message = error
        self.retry_count += 1
        self.save(update_fields=["status", "error_message", "retry_count"])

    def __str__(self) -> str:
        return f"{self.event_type} [{self.status}] ({self.aggregate_id})"
