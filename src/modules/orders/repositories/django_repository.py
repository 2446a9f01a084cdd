"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.

Status writes are conditional ``UPDATE ... WHERE status = <expected>``
statements: whichever writer matches the row first wins, and a losing
writer sees zero rows updated instead of silently overwriting.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from modules.consistency.exceptions import InvalidTransition
from modules.consistency.transitions import TransitionValidator, default_validator
from modules.core.db import store_operation
from modules.core.outbox import record_event
from modules.orders.constants import OrderStatus
from modules.orders.events import OrderCancelled, OrderStatusChanged
from modules.orders.exceptions import OrderNotFound
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository
from shared.domain.events import DomainEvent

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    def __init__(self, validator: Optional[TransitionValidator] = None) -> None:
        self._validator = validator or default_validator

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            customer_id=data["customer_id"],
            idempotency_key=data.get("idempotency_key"),
            notes=data.get("notes", ""),
        )
        order.save()

        total = Decimal("0.00")
        items = data.get("items", [])
        for item_data in items:
            item = OrderItem(
                order=order,
                variant_id=item_data["variant_id"],
                quantity=item_data["quantity"],
                unit_price=item_data["unit_price"],
            )
            item.save()
            total += item.subtotal

        order.total_amount = total
        order.save(update_fields=["total_amount", "updated_at"])

        logger.info("order.created", order_id=str(order.id), item_count=len(items))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[Order]:
        """Retrieve an order with items and history prefetched.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.prefetch_related("items__variant", "status_history")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        queryset = Order.objects.prefetch_related("items__variant")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @store_operation
    def get_for_update(self, id: Any) -> Optional[Order]:
        try:
            return Order.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        return Order.objects.filter(idempotency_key=key).first()

    @store_operation
    def get_orders_older_than(self, status: str, cutoff: datetime) -> List[Order]:
        return list(
            Order.objects.filter(status=status, created_at__lt=cutoff).order_by(
                "created_at", "id"
            )
        )

    @store_operation
    def get_order_line_items(self, order_id: UUID) -> List[OrderItem]:
        return list(
            OrderItem.objects.filter(order_id=order_id).order_by("variant_id", "id")
        )

    @store_operation
    def list_unpaid_with_positive_total(self) -> List[Order]:
        return list(
            Order.objects.filter(total_amount__gt=0, payments__isnull=True).order_by(
                "id"
            )
        )

    # ------------------------------------------------------------------
    # Status writes
    # ------------------------------------------------------------------

    @store_operation
    def compare_and_set_status(self, order_id: UUID, expected: str, new: str) -> bool:
        updated = Order.objects.filter(id=order_id, status=expected).update(
            status=new, updated_at=timezone.now()
        )
        log = logger.bind(order_id=str(order_id), expected=expected, new=new)
        if not updated:
            log.info("order.status_cas_lost")
            return False
        log.info("order.status_cas_won")
        return True

    @transaction.atomic
    def set_order_status(
        self,
        order_id: UUID,
        new_status: str,
        *,
        payment_status: Optional[str],
        actor: str = "",
        notes: str = "",
    ) -> Order:
        """Validated status change.

        Raises:
            OrderNotFound: order does not exist.
            TerminalState / InvalidTransition: rejected by the validator, or
                the row changed between the lock and the update.
        """
        order = self.get_for_update(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")

        old_status = order.status
        target = self._validator.check_order_transition(
            old_status, new_status, payment_status=payment_status
        )
        if not self.compare_and_set_status(order.id, old_status, target):
            raise InvalidTransition(
                f"Order {order_id} left {old_status!r} concurrently.",
                kind="order",
                current=old_status,
                requested=target,
            )

        self.add_history(
            order.id, target, notes=notes, old_status=old_status, actor=actor
        )
        if target == OrderStatus.CANCELLED:
            event: DomainEvent = OrderCancelled(
                aggregate_id=order.id, reason=notes, actor=actor
            )
        else:
            event = OrderStatusChanged(
                aggregate_id=order.id, old_status=old_status, new_status=target
            )
        self.record_event(event)

        order.refresh_from_db()
        return order

    @store_operation
    def add_history(
        self,
        order_id: UUID,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        actor: str = "",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory(
            order_id=order_id,
            old_status=old_status,
            new_status=status,
            actor=actor,
            notes=notes,
        )
        history.save()

        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=status,
            actor=actor,
        )
        return history

    def record_event(self, event: DomainEvent) -> None:
        record_event(event, topic="orders")
