"""Inventory service layer.

Manual stock corrections are recorded as ``adjustment`` movements paired
with the cached stock update, in one transaction, so the ledger and the
cached figure never drift apart through this path.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

import structlog
from django.db import transaction

from modules.inventory.constants import MovementKind
from modules.inventory.exceptions import InsufficientStock, VariantNotFound

if TYPE_CHECKING:
    from modules.inventory.models import StockMovement
    from modules.inventory.repositories.interfaces import IStockRepository

logger = structlog.get_logger(__name__)


class InventoryService:
    """Application service for manual stock operations."""

    def __init__(self, stock_repository: IStockRepository) -> None:
        self._stock_repo = stock_repository

    @transaction.atomic
    def adjust(
        self, variant_id: UUID, delta: int, actor: str, note: str = ""
    ) -> StockMovement:
        """Apply a signed manual correction to a variant's stock.

        Raises:
            ValueError: *delta* is zero.
            VariantNotFound: the variant does not exist.
            InsufficientStock: the correction would make stock negative.
        """
        if delta == 0:
            raise ValueError("Adjustment delta cannot be zero.")

        variant = self._stock_repo.get_for_update(variant_id)
        if variant is None:
            raise VariantNotFound(f"Variant {variant_id} not found.")

        if not self._stock_repo.adjust_stock(variant_id, delta):
            raise InsufficientStock(
                f"Variant {variant.sku}: cannot apply {delta:+d}, "
                f"available {variant.stock_quantity}."
            )
        movement = self._stock_repo.record_movement(
            variant_id, MovementKind.ADJUSTMENT, delta, actor, note=note
        )
        logger.info(
            "inventory.adjusted",
            variant_id=str(variant_id),
            delta=delta,
            actor=actor,
        )
        return movement

    @transaction.atomic
    def receive(
        self, variant_id: UUID, quantity: int, actor: str, note: str = ""
    ) -> StockMovement:
        """Book incoming goods as a ``restock`` movement."""
        if quantity <= 0:
            raise ValueError("Received quantity must be positive.")
        movement = self._stock_repo.record_movement(
            variant_id, MovementKind.RESTOCK, quantity, actor, note=note
        )
        if not self._stock_repo.adjust_stock(variant_id, quantity):
            raise VariantNotFound(f"Variant {variant_id} not found.")
        logger.info(
            "inventory.received", variant_id=str(variant_id), quantity=quantity
        )
        return movement

    def ledger_drift(self, variant_id: UUID) -> int:
        """Return cached stock minus the ledger balance (0 when reconciled)."""
        return self._stock_repo.get_stock(variant_id) - self._stock_repo.ledger_balance(
            variant_id
        )
