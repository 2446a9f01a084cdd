"""Django ORM implementation of the stock store.

Cached stock is moved with single ``UPDATE ... SET stock = stock + delta``
statements (``F()`` expressions), never read-modify-write, so concurrent
writers cannot lose updates.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db.models import F, Sum
from django.utils import timezone

from modules.core.db import store_operation
from modules.inventory.exceptions import VariantNotFound
from modules.inventory.models import ProductVariant, StockMovement
from modules.inventory.repositories.interfaces import IStockRepository

logger = structlog.get_logger(__name__)


class StockDjangoRepository(IStockRepository):
    """Concrete stock store backed by Django ORM."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[ProductVariant]:
        try:
            return ProductVariant.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[ProductVariant]:
        queryset = ProductVariant.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @store_operation
    def get_stock(self, variant_id: UUID) -> int:
        stock = (
            ProductVariant.objects.filter(id=variant_id)
            .values_list("stock_quantity", flat=True)
            .first()
        )
        if stock is None:
            raise VariantNotFound(f"Variant {variant_id} not found.")
        return stock

    @store_operation
    def get_for_update(self, variant_id: UUID) -> Optional[ProductVariant]:
        try:
            return ProductVariant.objects.select_for_update().filter(id=variant_id).first()
        except (ValueError, ValidationError):
            return None

    @store_operation
    def ledger_balance(self, variant_id: UUID) -> int:
        total = StockMovement.objects.filter(variant_id=variant_id).aggregate(
            total=Sum("quantity")
        )["total"]
        return total or 0

    @store_operation
    def movements_for_order(
        self, order_id: UUID, kind: Optional[str] = None
    ) -> List[StockMovement]:
        queryset = StockMovement.objects.filter(order_id=order_id)
        if kind:
            queryset = queryset.filter(kind=kind)
        return list(queryset.order_by("created_at", "id"))

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @store_operation
    def record_movement(
        self,
        variant_id: UUID,
        kind: str,
        delta: int,
        actor: str,
        order_id: Optional[UUID] = None,
        note: str = "",
    ) -> StockMovement:
        if not ProductVariant.objects.filter(id=variant_id).exists():
            raise VariantNotFound(f"Variant {variant_id} not found.")

        movement = StockMovement(
            variant_id=variant_id,
            kind=kind,
            quantity=delta,
            actor=actor,
            order_id=order_id,
            note=note,
        )
        movement.save()

        logger.info(
            "stock.movement_recorded",
            variant_id=str(variant_id),
            kind=kind,
            delta=delta,
            order_id=str(order_id) if order_id else None,
            actor=actor,
        )
        return movement

    @store_operation
    def adjust_stock(self, variant_id: UUID, delta: int) -> bool:
        queryset = ProductVariant.objects.filter(id=variant_id)
        if delta < 0:
            queryset = queryset.filter(stock_quantity__gte=-delta)
        updated = queryset.update(
            stock_quantity=F("stock_quantity") + delta, updated_at=timezone.now()
        )

        log = logger.bind(variant_id=str(variant_id), delta=delta)
        if not updated:
            log.warning("stock.adjust_rejected")
            return False
        log.info("stock.adjusted")
        return True
