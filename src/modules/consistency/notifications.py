"""Customer notification hook for cancelled orders.

The consistency core only guarantees the call happens once the
cancellation is committed; delivery (email, SMS, ...) belongs to the
configured notifier.  ``settings.CONSISTENCY["NOTIFIER"]`` holds the
dotted path of the class to use.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Protocol, runtime_checkable
from uuid import UUID

import structlog
from django.utils.module_loading import import_string

from modules.consistency.conf import consistency_setting

logger = structlog.get_logger(__name__)


@runtime_checkable
class OrderNotifier(Protocol):
    def order_cancelled(self, order_id: UUID, reason: str) -> None: ...


class LoggingOrderNotifier:
    """Default notifier: records the notification in the structured log."""

    def order_cancelled(self, order_id: UUID, reason: str) -> None:
        logger.info("notification.order_cancelled", order_id=str(order_id), reason=reason)


@lru_cache(maxsize=None)
def _load_notifier(path: str) -> OrderNotifier:
    notifier = import_string(path)()
    if not isinstance(notifier, OrderNotifier):
        raise TypeError(f"{path} does not implement order_cancelled().")
    return notifier


def get_notifier() -> OrderNotifier:
    return _load_notifier(consistency_setting("NOTIFIER"))
