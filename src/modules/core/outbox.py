"""Transactional outbox writer and relay.

``record_event`` stores a domain event in the caller's transaction and
schedules delivery for after commit.  ``relay_pending_events`` is the
periodic safety net for rows whose on-commit delivery never ran or failed.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict
from uuid import UUID

import structlog
from django.db import transaction
from django.db.models import Q

from modules.core.models import EventStatus, OutboxEvent
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

MAX_RELAY_ATTEMPTS = 5


def record_event(event: DomainEvent, topic: str) -> OutboxEvent:
    """Persist *event* in the current transaction and relay it on commit."""
    outbox = OutboxEvent.objects.create(
        event_type=event.event_name,
        aggregate_id=str(event.aggregate_id),
        payload=_serialize_event_payload(event),
        topic=topic,
    )
    outbox_id = outbox.id
    transaction.on_commit(lambda: relay_event(outbox_id))
    logger.info(
        "outbox.event_recorded",
        event_type=event.event_name,
        aggregate_id=str(event.aggregate_id),
        outbox_id=str(outbox_id),
    )
    return outbox


def relay_event(outbox_id: UUID) -> bool:
    """Deliver one stored event to the in-process bus.

    Returns ``True`` when the event is (or already was) published.  Handler
    errors are recorded on the row for the periodic relay to retry.  The
    row is locked while it is delivered; a row another relay holds is
    skipped, so the on-commit relay and the periodic task never both
    publish it.
    """
    with transaction.atomic():
        outbox = (
            OutboxEvent.objects.select_for_update(skip_locked=True)
            .filter(id=outbox_id)
            .first()
        )
        if outbox is None:
            if OutboxEvent.objects.filter(id=outbox_id).exists():
                logger.info("outbox.event_busy", outbox_id=str(outbox_id))
            else:
                logger.warning("outbox.event_missing", outbox_id=str(outbox_id))
            return False
        if outbox.status == EventStatus.PUBLISHED:
            return True

        log = logger.bind(outbox_id=str(outbox.id), event_type=outbox.event_type)
        try:
            with transaction.atomic():
                event = DomainEvent.from_payload(outbox.event_type, outbox.payload)
                event_bus.publish(event)
        except Exception as exc:
            outbox.mark_as_failed(f"{type(exc).__name__}: {exc}")
            log.exception("outbox.relay_failed", retry_count=outbox.retry_count)
            return False

        outbox.mark_as_published()
    log.info("outbox.relayed")
    return True


def relay_pending_events(limit: int = 100) -> int:
    """Relay events still pending or failed (below the attempt cap)."""
    ids = list(
        OutboxEvent.objects.filter(
            Q(status=EventStatus.PENDING)
            | Q(status=EventStatus.FAILED, retry_count__lt=MAX_RELAY_ATTEMPTS)
        )
        .order_by("created_at")
        .values_list("id", flat=True)[:limit]
    )
    published = sum(1 for outbox_id in ids if relay_event(outbox_id))
    logger.info("outbox.relay_batch", candidates=len(ids), published=published)
    return published


def _serialize_event_payload(event: DomainEvent) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
