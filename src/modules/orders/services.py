"""Order service layer (Use Cases).

Orchestrates checkout and order status management.  All write
operations are atomic: the service defines the unit-of-work boundary.

Business rules enforced:
- Checkout first lets the reservation reaper release expired stock, so
  a new order can use units that stale orders were still holding.
- Stock is reserved at checkout: one ``sale`` movement per line and a
  conditional decrement of the cached stock, variants locked in a fixed
  order to avoid deadlocks.
- The payment row is created in the same transaction, through
  ``PaymentService.create_payment``.
- Moving an order to ``cancelled`` or ``returned`` goes through the
  ``OrderCompensator`` so its stock comes back exactly once.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.consistency.exceptions import InvalidTransition
from modules.consistency.transitions import normalize_status
from modules.inventory.constants import MovementKind
from modules.inventory.exceptions import InsufficientStock, VariantNotFound
from modules.orders.constants import RELEASED_STATES, OrderStatus
from modules.orders.events import OrderCreated
from modules.orders.exceptions import OrderNotFound
from modules.payments.constants import PaymentStatus

if TYPE_CHECKING:
    from modules.consistency.compensation import OrderCompensator
    from modules.consistency.reaper import ReservationReaper
    from modules.inventory.repositories.interfaces import IStockRepository
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.repositories.interfaces import IPaymentRepository
    from modules.payments.services import PaymentService

logger = structlog.get_logger(__name__)


class CheckoutService:
    """Places orders and reserves their stock."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        stock_repository: IStockRepository,
        payment_service: PaymentService,
        reaper: Optional[ReservationReaper] = None,
    ) -> None:
        self._order_repo = order_repository
        self._stock_repo = stock_repository
        self._payment_service = payment_service
        self._reaper = reaper

    def place_order(self, dto: CreateOrderDTO) -> Order:
        """Sweep expired reservations, then place the order.

        Raises:
            VariantNotFound: a variant does not exist.
            InsufficientStock: not enough stock for a line.
        """
        if self._reaper is not None:
            self._reaper.sweep()
        return self._place(dto)

    @transaction.atomic
    def _place(self, dto: CreateOrderDTO) -> Order:
        log = logger.bind(customer_id=str(dto.customer_id), actor=dto.actor)
        log.info("checkout.started")

        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key)
            if existing:
                log.info(
                    "checkout.idempotency_hit",
                    order_id=str(existing.id),
                    key=dto.idempotency_key,
                )
                return existing

        # Lock variants in id order to prevent deadlocks.
        lines: List[Dict[str, Any]] = []
        for item in sorted(dto.items, key=lambda i: str(i.variant_id)):
            variant = self._stock_repo.get_for_update(item.variant_id)
            if variant is None:
                raise VariantNotFound(f"Variant {item.variant_id} not found.")
            if variant.stock_quantity < item.quantity:
                raise InsufficientStock(
                    f"Variant {variant.sku}: requested {item.quantity}, "
                    f"available {variant.stock_quantity}."
                )
            lines.append(
                {
                    "variant_id": variant.id,
                    "quantity": item.quantity,
                    "unit_price": variant.price,
                }
            )

        order = self._order_repo.create(
            {
                "customer_id": dto.customer_id,
                "items": lines,
                "notes": dto.notes or "",
                "idempotency_key": dto.idempotency_key,
            }
        )

        for line in lines:
            self._stock_repo.record_movement(
                line["variant_id"],
                MovementKind.SALE,
                -line["quantity"],
                dto.actor,
                order_id=order.id,
                note="checkout reservation",
            )
            if not self._stock_repo.adjust_stock(line["variant_id"], -line["quantity"]):
                raise InsufficientStock(
                    f"Variant {line['variant_id']}: stock changed during checkout."
                )

        self._payment_service.create_payment(
            order.id,
            dto.method_id,
            order.total_amount,
            PaymentStatus.PENDING,
            actor=dto.actor,
        )
        self._order_repo.add_history(
            order.id, OrderStatus.PENDING, notes="Order created", actor=dto.actor
        )
        self._order_repo.record_event(OrderCreated(aggregate_id=order.id))

        log.info(
            "checkout.completed",
            order_id=str(order.id),
            total_amount=str(order.total_amount),
            line_count=len(lines),
        )
        return order


class OrderService:
    """Application service for order status use-cases."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        payment_repository: IPaymentRepository,
        compensator: OrderCompensator,
    ) -> None:
        self._order_repo = order_repository
        self._payment_repo = payment_repository
        self._compensator = compensator

    def get_order(self, order_id: Any) -> Order:
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    @transaction.atomic
    def update_status(
        self,
        order_id: UUID,
        new_status: str,
        actor: str,
        notes: str = "",
    ) -> Order:
        """Transition an order to a new status.

        Raises:
            OrderNotFound: order does not exist.
            TerminalState: the order is already terminal.
            InvalidTransition: the edge is not allowed, the payment status
                forbids it, or the order changed concurrently.
        """
        order = self.get_order(order_id)
        target = normalize_status(new_status)

        if target in RELEASED_STATES:
            outcome = self._compensator.release(
                order.id, order.status, target, actor=actor, reason=notes
            )
            if outcome is None:
                raise InvalidTransition(
                    f"Order {order_id} left {order.status!r} concurrently.",
                    kind="order",
                    current=order.status,
                    requested=target,
                )
        else:
            self._order_repo.set_order_status(
                order.id,
                target,
                payment_status=self._payment_repo.get_effective_status(order.id),
                actor=actor,
                notes=notes,
            )

        logger.info(
            "order.status_updated",
            order_id=str(order_id),
            old_status=order.status,
            new_status=target,
            actor=actor,
        )
        return self.get_order(order_id)

    def cancel_order(self, order_id: UUID, actor: str, notes: str = "") -> Order:
        """Cancel an order and release its reserved stock."""
        return self.update_status(order_id, OrderStatus.CANCELLED, actor, notes)


def build_order_service() -> OrderService:
    from modules.consistency.compensation import build_order_compensator
    from modules.orders.repositories import OrderDjangoRepository
    from modules.payments.repositories import PaymentDjangoRepository

    return OrderService(
        order_repository=OrderDjangoRepository(),
        payment_repository=PaymentDjangoRepository(),
        compensator=build_order_compensator(),
    )


def build_checkout_service() -> CheckoutService:
    from modules.consistency.reaper import build_reservation_reaper
    from modules.inventory.repositories import StockDjangoRepository
    from modules.orders.repositories import OrderDjangoRepository
    from modules.payments.services import build_payment_service

    return CheckoutService(
        order_repository=OrderDjangoRepository(),
        stock_repository=StockDjangoRepository(),
        payment_service=build_payment_service(),
        reaper=build_reservation_reaper(),
    )
