"""Stock store interface.

The reaper, the checkout flow and manual adjustments all mutate stock
through this contract.  ``record_movement`` appends to the ledger and
``adjust_stock`` moves the cached available quantity; callers pair the
two inside one transaction.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.inventory.models import ProductVariant, StockMovement


class IStockRepository(IRepository["ProductVariant"]):
    """Repository contract for variant stock and its movement ledger."""

    @abstractmethod
    def get_stock(self, variant_id: UUID) -> int:
        """Return the cached available quantity of *variant_id*."""

    @abstractmethod
    def get_for_update(self, variant_id: UUID) -> Optional[ProductVariant]:
        """Retrieve a variant with a row-level lock."""

    @abstractmethod
    def record_movement(
        self,
        variant_id: UUID,
        kind: str,
        delta: int,
        actor: str,
        order_id: Optional[UUID] = None,
        note: str = "",
    ) -> StockMovement:
        """Append an immutable ledger entry."""

    @abstractmethod
    def adjust_stock(self, variant_id: UUID, delta: int) -> bool:
        """Atomically add *delta* to the cached stock.

        Returns ``False`` when the variant does not exist or the update
        would make the stock negative; nothing is written in that case.
        """

    @abstractmethod
    def ledger_balance(self, variant_id: UUID) -> int:
        """Return the sum of all movement deltas for *variant_id*."""

    @abstractmethod
    def movements_for_order(self, order_id: UUID, kind: Optional[str] = None):
        """Return the ledger entries referencing *order_id*."""
