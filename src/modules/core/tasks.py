"""Asynchronous tasks of the core module."""

import structlog
from celery import shared_task

from modules.core.outbox import relay_pending_events

logger = structlog.get_logger(__name__)


@shared_task(name="core.relay_outbox_events")
def relay_outbox_events(limit: int = 100):
    """Retry delivery of outbox events whose on-commit relay did not succeed."""
    published = relay_pending_events(limit=limit)
    logger.info("relay_outbox_events.executed", published=published)
    return {"published": published}
