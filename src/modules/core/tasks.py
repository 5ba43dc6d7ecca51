"""Outbox relay: hands persisted domain events to the in-process bus."""

from __future__ import annotations

from uuid import UUID

import structlog
from celery import shared_task
from django.db import transaction

from modules.core.models import OutboxEvent
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

MAX_RELAY_ATTEMPTS = 5


def _to_domain_event(row: OutboxEvent) -> DomainEvent:
    event_class = DomainEvent.resolve(row.event_type)
    return event_class(
        aggregate_id=UUID(row.aggregate_id),
        payload=row.payload.get("payload", {}),
        event_id=UUID(row.payload["event_id"]),
    )


@shared_task(name="core.publish_outbox_events")
def publish_outbox_events(batch_size: int = 100) -> dict:
    """Publish pending (and retryable failed) outbox rows in creation order.

    Each row is locked and processed in its own transaction so one
    failing handler does not hold back the rest of the batch.
    """
    candidate_ids = list(
        OutboxEvent.objects.relayable(MAX_RELAY_ATTEMPTS).values_list("id", flat=True)[
            :batch_size
        ]
    )

    published = failed = 0
    for event_id in candidate_ids:
        with transaction.atomic():
            row = (
                OutboxEvent.objects.select_for_update()
                .relayable(MAX_RELAY_ATTEMPTS)
                .filter(id=event_id)
                .first()
            )
            if row is None:
                continue
            log = logger.bind(event_type=row.event_type, aggregate_id=row.aggregate_id)
            try:
                event_bus.publish(_to_domain_event(row))
            except Exception as exc:
                row.mark_as_failed(str(exc))
                log.exception("outbox.publish_failed", retry_count=row.retry_count)
                failed += 1
                continue
            row.mark_as_published()
            log.info("outbox.published")
            published += 1

    return {"published": published, "failed": failed}
