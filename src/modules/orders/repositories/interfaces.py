"""Order repository interface.

Extends ``IRepository[Order]`` with the order store operations used by
checkout, the reservation reaper and the consistency auditor.  Status
writes exist in two forms only: a validator-gated ``set_order_status``
and the raw compare-and-swap ``compare_and_set_status`` that serialises
concurrent writers.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderItem, OrderStatusHistory
    from shared.domain.events import DomainEvent


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` must include ``customer_id`` and ``items`` (list of dicts
        with ``variant_id``, ``quantity``, ``unit_price``), and optionally
        ``idempotency_key`` and ``notes``.
        """

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional[Order]:
        """Retrieve an order with a row-level lock."""

    @abstractmethod
    def get_by_idempotency_key(self, key: str) -> Optional[Order]:
        """Retrieve an order by its idempotency key."""

    @abstractmethod
    def get_orders_older_than(self, status: str, cutoff: datetime) -> List[Order]:
        """Orders in *status* created strictly before *cutoff*, oldest first."""

    @abstractmethod
    def get_order_line_items(self, order_id: UUID) -> List[OrderItem]:
        """Line items of an order, in a stable order."""

    @abstractmethod
    def compare_and_set_status(self, order_id: UUID, expected: str, new: str) -> bool:
        """Set status to *new* only if it is still *expected*; one atomic UPDATE."""

    @abstractmethod
    def set_order_status(
        self,
        order_id: UUID,
        new_status: str,
        *,
        payment_status: Optional[str],
        actor: str = "",
        notes: str = "",
    ) -> Order:
        """Validated status change (see ``TransitionValidator``)."""

    @abstractmethod
    def add_history(
        self,
        order_id: UUID,
        status: str,
        notes: str = "",
        old_status: Optional[str] = None,
        actor: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def record_event(self, event: DomainEvent) -> None:
        """Store a domain event in the outbox within the current transaction."""

    @abstractmethod
    def list_unpaid_with_positive_total(self) -> List[Order]:
        """Orders with ``total_amount > 0`` and no payment row at all."""
