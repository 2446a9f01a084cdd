import time
from typing import Any, Dict

import structlog
from django.db import connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone

from modules.consistency.conf import reservation_ttl
from modules.core.models import EventStatus, OutboxEvent
from modules.orders.constants import OrderStatus
from modules.orders.models import Order

logger = structlog.get_logger()


def health_check(request: HttpRequest) -> JsonResponse:
    services: Dict[str, Dict[str, Any]] = {}
    overall_healthy = True

    # Check database
    try:
        start = time.monotonic()
        conn = connections["default"]
        conn.ensure_connection()
        with conn.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        services["database"] = {
            "status": "up",
            "response_time_ms": round((time.monotonic() - start) * 1000, 2),
        }
    except Exception:
        services["database"] = {"status": "down"}
        overall_healthy = False
        logger.error("health_check_db_failure")

    # Outbox backlog (undelivered cancellation notices, etc.)
    if overall_healthy:
        services["outbox"] = {
            "status": "up",
            "pending": OutboxEvent.objects.filter(status=EventStatus.PENDING).count(),
            "failed": OutboxEvent.objects.filter(status=EventStatus.FAILED).count(),
        }
        # Expired reservations the reaper has not released yet
        cutoff = timezone.now() - reservation_ttl()
        services["reservations"] = {
            "status": "up",
            "expired_pending": Order.objects.filter(
                status=OrderStatus.PENDING, created_at__lt=cutoff
            ).count(),
        }

    status_code = 200 if overall_healthy else 503

    logger.info(
        "health_check_completed", status="healthy" if overall_healthy else "unhealthy"
    )

    return JsonResponse(
        {
            "status": "healthy" if overall_healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=status_code,
    )
