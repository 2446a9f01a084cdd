"""Settings access for the consistency core.

Values come from ``settings.CONSISTENCY``; missing keys fall back to
``DEFAULTS``.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from django.conf import settings

DEFAULTS: dict[str, Any] = {
    "RESERVATION_TTL_HOURS": 24,
    "STORE_RETRY_ATTEMPTS": 3,
    "SYSTEM_ACTOR": "system:reaper",
    "AUDITOR_ACTOR": "system:auditor",
    "PAYMENTS_ACTOR": "system:payments",
    "DEFAULT_PAYMENT_METHOD_ID": 1,
    "NOTIFIER": "modules.consistency.notifications.LoggingOrderNotifier",
    "SWEEP_INTERVAL_MINUTES": 15,
    "AUDIT_INTERVAL_MINUTES": 60,
}


def consistency_setting(name: str) -> Any:
    overrides = getattr(settings, "CONSISTENCY", {}) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]


def reservation_ttl() -> timedelta:
    return timedelta(hours=float(consistency_setting("RESERVATION_TTL_HOURS")))
