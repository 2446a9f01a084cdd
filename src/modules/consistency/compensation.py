"""Order release: give reserved stock back and close the order.

``OrderCompensator.release`` is the single write path for moving an order
into a status that frees its reservation (``cancelled`` or
``returned``).  The reservation reaper, payment rejections and manual
cancellations all go through it.

The conditional status update comes first.  Stock is only restored after
that update matched the row, inside the same transaction, so a release
that loses the race writes nothing and a release that wins commits its
cancellation and its restock movements together.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.consistency.constants import EntityKind
from modules.consistency.dtos import ReleaseOutcome
from modules.consistency.transitions import TransitionValidator, default_validator
from modules.inventory.constants import MovementKind
from modules.inventory.exceptions import VariantNotFound
from modules.orders.constants import RELEASED_STATES, OrderStatus
from modules.orders.events import OrderCancelled, OrderStatusChanged
from modules.payments.constants import PaymentStatus

if TYPE_CHECKING:
    from modules.inventory.repositories.interfaces import IStockRepository
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)


class OrderCompensator:
    """Releases an order's reservation exactly once."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        payment_repository: IPaymentRepository,
        stock_repository: IStockRepository,
        validator: Optional[TransitionValidator] = None,
    ) -> None:
        self._order_repo = order_repository
        self._payment_repo = payment_repository
        self._stock_repo = stock_repository
        self._validator = validator or default_validator

    @transaction.atomic
    def release(
        self,
        order_id: UUID,
        expected_status: str,
        target_status: str,
        actor: str,
        reason: str = "",
    ) -> Optional[ReleaseOutcome]:
        """Move *order_id* from *expected_status* to *target_status*.

        Returns ``None`` when the order was no longer in *expected_status*
        (another writer got there first); nothing is written in that case.

        Raises:
            InvalidTransition / TerminalState: the edge is not allowed, or
                the order's payment is approved (the whole release is
                rolled back).
            VariantNotFound: a line item points at a missing variant.
            ValueError: *target_status* does not release stock, or no
                *actor* was given.
        """
        if target_status not in RELEASED_STATES:
            raise ValueError(f"{target_status!r} does not release stock.")
        if not actor or not actor.strip():
            raise ValueError("A release needs an actor for the stock ledger.")

        log = logger.bind(
            order_id=str(order_id),
            expected=expected_status,
            target=target_status,
            actor=actor,
        )

        # Graph check only; the payment rule is checked once the row is ours.
        self._validator.check_order_transition(
            expected_status, target_status, payment_status=None
        )
        if not self._order_repo.compare_and_set_status(
            order_id, expected_status, target_status
        ):
            log.info("compensation.skipped_stale")
            return None

        # The row is now locked by our UPDATE; no approval can slip in.
        payment_status = self._payment_repo.get_effective_status(order_id)
        self._validator.check_order_transition(
            expected_status, target_status, payment_status=payment_status
        )

        units = 0
        lines = 0
        for item in self._order_repo.get_order_line_items(order_id):
            if item.quantity <= 0:
                continue
            self._stock_repo.record_movement(
                item.variant_id,
                MovementKind.RESTOCK,
                item.quantity,
                actor,
                order_id=order_id,
                note=f"release of order {order_id} ({target_status})",
            )
            if not self._stock_repo.adjust_stock(item.variant_id, item.quantity):
                raise VariantNotFound(f"Variant {item.variant_id} not found.")
            units += item.quantity
            lines += 1

        self._order_repo.add_history(
            order_id,
            target_status,
            notes=reason,
            old_status=expected_status,
            actor=actor,
        )
        if target_status == OrderStatus.CANCELLED:
            self._order_repo.record_event(
                OrderCancelled(aggregate_id=order_id, reason=reason, actor=actor)
            )
        else:
            self._order_repo.record_event(
                OrderStatusChanged(
                    aggregate_id=order_id,
                    old_status=expected_status,
                    new_status=target_status,
                )
            )

        payment_cancelled = False
        if target_status == OrderStatus.CANCELLED:
            payment_cancelled = self._cancel_open_payment(order_id)

        log.info(
            "compensation.released",
            units_released=units,
            lines_released=lines,
            payment_cancelled=payment_cancelled,
        )
        return ReleaseOutcome(
            order_id=order_id,
            old_status=expected_status,
            new_status=target_status,
            units_released=units,
            lines_released=lines,
            payment_cancelled=payment_cancelled,
        )

    def _cancel_open_payment(self, order_id: UUID) -> bool:
        payment = self._payment_repo.get_active_for_order(order_id)
        if payment is None:
            return False
        if not self._validator.can_cancel(payment.status, EntityKind.PAYMENT):
            return False

        self._validator.check_payment_transition(payment.status, PaymentStatus.CANCELLED)
        return self._payment_repo.compare_and_set_status(
            payment.id, payment.status, PaymentStatus.CANCELLED
        )


def build_order_compensator() -> OrderCompensator:
    from modules.inventory.repositories import StockDjangoRepository
    from modules.orders.repositories import OrderDjangoRepository
    from modules.payments.repositories import PaymentDjangoRepository

    return OrderCompensator(
        order_repository=OrderDjangoRepository(),
        payment_repository=PaymentDjangoRepository(),
        stock_repository=StockDjangoRepository(),
    )
