"""Reservation reaper.

Stock is deducted when an order is placed.  If the order is still
``pending`` after the reservation window (24 hours by default) and its
payment was never approved, ``sweep`` cancels it and books ``restock``
movements for every line so the units are sellable again.

The sweep runs inline before every checkout and periodically from Celery
beat.  Overlapping sweeps are safe: each order is released through
``OrderCompensator``, whose conditional ``pending -> cancelled`` update
lets exactly one sweep win; the loser writes nothing.

Failures are isolated per order.  Transient store errors are retried a
few times, anything else is logged and the sweep moves on.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

import structlog
from django.db import DatabaseError, OperationalError
from django.utils import timezone

from modules.consistency.conf import consistency_setting, reservation_ttl
from modules.consistency.dtos import ReleaseOutcome, SkippedOrder, SweepResult
from modules.consistency.exceptions import TransientStoreFailure, TransitionError
from modules.inventory.exceptions import VariantNotFound
from modules.orders.constants import OrderStatus
from modules.payments.constants import PaymentStatus

if TYPE_CHECKING:
    from modules.consistency.compensation import OrderCompensator
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)

SKIP_PAYMENT_APPROVED = "payment_approved"
SKIP_ALREADY_MOVED = "already_moved"
SKIP_REJECTED = "transition_rejected"

_RETRYABLE = (TransientStoreFailure, OperationalError)


class ReservationReaper:
    """Releases stock held by expired, unpaid orders."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        payment_repository: IPaymentRepository,
        compensator: OrderCompensator,
        ttl: Optional[timedelta] = None,
        retry_attempts: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> None:
        self._order_repo = order_repository
        self._payment_repo = payment_repository
        self._compensator = compensator
        self._ttl = ttl if ttl is not None else reservation_ttl()
        self._retry_attempts = max(
            1, retry_attempts or int(consistency_setting("STORE_RETRY_ATTEMPTS"))
        )
        self._actor = actor or consistency_setting("SYSTEM_ACTOR")

    def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """Cancel every expired pending order and restore its stock.

        An order created exactly ``ttl`` before *now* is not expired yet.
        Returns best-effort counts; per-order failures are reported in
        ``failed`` and never abort the sweep.
        """
        now = now or timezone.now()
        cutoff = now - self._ttl
        log = logger.bind(cutoff=cutoff.isoformat(), actor=self._actor)

        try:
            candidates = self._order_repo.get_orders_older_than(
                OrderStatus.PENDING, cutoff
            )
            payment_statuses = self._payment_repo.statuses_for_orders(
                [order.id for order in candidates]
            )
        except (TransientStoreFailure, DatabaseError):
            log.exception("reaper.scan_failed")
            return SweepResult()

        if not candidates:
            log.debug("reaper.nothing_expired")
            return SweepResult()

        units = 0
        cancelled: List[UUID] = []
        skipped: List[SkippedOrder] = []
        failed: List[UUID] = []

        for order in candidates:
            if payment_statuses.get(order.id) == PaymentStatus.APPROVED:
                log.info("reaper.skipped", order_id=str(order.id), reason=SKIP_PAYMENT_APPROVED)
                skipped.append(SkippedOrder(order_id=order.id, reason=SKIP_PAYMENT_APPROVED))
                continue

            outcome = self._release(order.id, skipped, failed)
            if outcome is not None:
                units += outcome.units_released
                cancelled.append(order.id)

        result = SweepResult(
            units_released=units,
            orders_cancelled=len(cancelled),
            cancelled_order_ids=cancelled,
            skipped=skipped,
            failed=failed,
        )
        log.info(
            "reaper.sweep_completed",
            candidates=len(candidates),
            orders_cancelled=result.orders_cancelled,
            units_released=result.units_released,
            skipped=len(skipped),
            failed=len(failed),
        )
        return result

    def _release(
        self,
        order_id: UUID,
        skipped: List[SkippedOrder],
        failed: List[UUID],
    ) -> Optional[ReleaseOutcome]:
        log = logger.bind(order_id=str(order_id))
        reason = f"Reservation expired after {self._ttl}"

        for attempt in range(1, self._retry_attempts + 1):
            try:
                outcome = self._compensator.release(
                    order_id,
                    OrderStatus.PENDING,
                    OrderStatus.CANCELLED,
                    actor=self._actor,
                    reason=reason,
                )
            except _RETRYABLE as exc:
                log.warning(
                    "reaper.release_retry",
                    attempt=attempt,
                    max_attempts=self._retry_attempts,
                    error=str(exc),
                )
                continue
            except TransitionError as exc:
                # Payment approved or status moved under us: a stale-state race.
                log.info("reaper.skipped", reason=SKIP_REJECTED, error=str(exc))
                skipped.append(SkippedOrder(order_id=order_id, reason=SKIP_REJECTED))
                return None
            except (VariantNotFound, DatabaseError):
                log.exception("reaper.release_failed")
                failed.append(order_id)
                return None
            except Exception:
                log.exception("reaper.release_failed", unexpected=True)
                failed.append(order_id)
                return None

            if outcome is None:
                log.info("reaper.skipped", reason=SKIP_ALREADY_MOVED)
                skipped.append(SkippedOrder(order_id=order_id, reason=SKIP_ALREADY_MOVED))
                return None
            log.info("reaper.order_cancelled", units_released=outcome.units_released)
            return outcome

        log.error("reaper.release_gave_up", attempts=self._retry_attempts)
        failed.append(order_id)
        return None


def build_reservation_reaper(**overrides) -> ReservationReaper:
    from modules.consistency.compensation import build_order_compensator
    from modules.orders.repositories import OrderDjangoRepository
    from modules.payments.repositories import PaymentDjangoRepository

    return ReservationReaper(
        order_repository=OrderDjangoRepository(),
        payment_repository=PaymentDjangoRepository(),
        compensator=build_order_compensator(),
        **overrides,
    )
