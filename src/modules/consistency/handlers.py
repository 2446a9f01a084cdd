"""Event handlers of the consistency core."""

from __future__ import annotations

import structlog

from modules.consistency.notifications import get_notifier
from modules.orders.events import OrderCancelled
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class NotifyCustomerOnCancellation(IEventHandler[OrderCancelled]):
    """Hands every committed cancellation to the configured notifier."""

    def handle(self, event: OrderCancelled) -> None:
        logger.info(
            "order.cancellation_notifying",
            order_id=str(event.aggregate_id),
            actor=event.actor,
        )
        get_notifier().order_cancelled(event.aggregate_id, event.reason)


notify_customer_on_cancellation = NotifyCustomerOnCancellation()
