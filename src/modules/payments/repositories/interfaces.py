"""Payment repository interface."""

from __future__ import annotations

from abc import abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.payments.models import Payment


class IPaymentRepository(IRepository["Payment"]):
    """Repository contract for payments."""

    @abstractmethod
    def create(self, order_id: UUID, method_id: int, amount: Decimal, status: str) -> Payment:
        """Insert a payment row.  Creation rules live in ``PaymentService``."""

    @abstractmethod
    def get_for_update(self, payment_id: UUID) -> Optional[Payment]:
        """Retrieve a payment with a row-level lock."""

    @abstractmethod
    def get_active_for_order(self, order_id: UUID) -> Optional[Payment]:
        """The most recently created payment of an order, if any."""

    @abstractmethod
    def get_effective_status(self, order_id: UUID) -> Optional[str]:
        """Status that governs the order: ``approved`` if any row is approved,
        else the newest row's status, else ``None`` (no payment)."""

    @abstractmethod
    def list_for_order(self, order_id: UUID) -> List[Payment]:
        """All payments of an order, oldest first."""

    @abstractmethod
    def compare_and_set_status(self, payment_id: UUID, expected: str, new: str) -> bool:
        """Set status to *new* only if it is still *expected*."""

    @abstractmethod
    def order_ids_with_multiple_payments(self) -> List[UUID]:
        """Orders owning more than one payment row, sorted."""

    @abstractmethod
    def list_nonpositive_amount(self) -> List[Payment]:
        """Payments whose amount is zero or negative, sorted by id."""

    @abstractmethod
    def iter_status_rows(self) -> Iterable[Tuple[UUID, UUID, str]]:
        """``(payment_id, order_id, status)`` for every payment, sorted by id."""

    @abstractmethod
    def statuses_for_orders(self, order_ids: Iterable[UUID]) -> Dict[UUID, str]:
        """Effective payment status per order, for orders that have one."""
