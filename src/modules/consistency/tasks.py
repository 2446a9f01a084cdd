"""Periodic tasks of the consistency core.

Scheduled by ``CELERY_BEAT_SCHEDULE`` in ``config.settings``.  Each run
binds a fresh correlation id so its log lines can be followed together.
"""

import structlog
from celery import shared_task

from modules.consistency.auditor import build_consistency_auditor
from modules.consistency.reaper import build_reservation_reaper
from modules.core.middleware import bind_correlation_id

logger = structlog.get_logger(__name__)


@shared_task(name="consistency.sweep_expired_reservations")
def sweep_expired_reservations():
    """Release stock held by orders whose reservation window has passed."""
    bind_correlation_id()
    result = build_reservation_reaper().sweep()
    logger.info(
        "sweep_expired_reservations.executed",
        orders_cancelled=result.orders_cancelled,
        units_released=result.units_released,
    )
    return result.model_dump(mode="json")


@shared_task(name="consistency.audit_payments")
def audit_payments(auto_fix: bool = False):
    """Scan orders and payments for invariant violations."""
    bind_correlation_id()
    report = build_consistency_auditor().audit(auto_fix=auto_fix)
    summary = report.summary()
    logger.info("audit_payments.executed", **summary)
    return summary
