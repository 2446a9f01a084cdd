"""ProductVariant and StockMovement models.

Business rules implemented:
- ``stock_quantity`` is a cached "available to sell" figure and never
  goes negative (DB constraint + conditional updates in the repository).
- ``StockMovement`` is an append-only ledger: rows are never updated or
  deleted.  The sum of a variant's movement deltas reconciles with the
  cached stock figure.
- Movement sign follows its kind: sales deduct, restocks add,
  adjustments may go either way but are never zero.
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel
from modules.inventory.constants import MOVEMENT_SIGN, MovementKind
from modules.inventory.exceptions import ImmutableMovement

logger = structlog.get_logger(__name__)


class ProductVariant(BaseModel):
    """A sellable SKU (product + size + colour) with its cached stock."""

    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    stock_quantity = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "product_variants"
        ordering = ["sku"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock_quantity__gte=0),
                name="product_variants_stock_non_negative",
            ),
        ]

    def save(self, *args, **kwargs) -> None:
        if self.sku:
            self.sku = self.sku.strip().upper()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.sku} - {self.name}"


class StockMovement(BaseModel):
    """Immutable ledger entry for a single stock change.

    ``quantity`` is a signed delta.  ``order`` is set for checkout
    deductions and for the compensating restocks that reverse them.
    """

    variant = models.ForeignKey(
        "inventory.ProductVariant",
        on_delete=models.PROTECT,
        related_name="movements",
    )
    kind = models.CharField(max_length=20, choices=MovementKind.choices)
    quantity = models.IntegerField()
    actor = models.CharField(max_length=100)
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="stock_movements",
        null=True,
        blank=True,
    )
    note = models.TextField(blank=True, default="")

    class Meta:
        db_table = "stock_movements"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["variant", "created_at"],
                name="stock_mov_variant_created_idx",
            ),
            models.Index(fields=["order", "kind"], name="stock_mov_order_kind_idx"),
        ]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clean(self) -> None:
        super().clean()
        if self.quantity == 0:
            raise ValidationError({"quantity": "Movement quantity cannot be zero."})
        expected = MOVEMENT_SIGN.get(self.kind)
        if expected is None:
            raise ValidationError({"kind": f"Unknown movement kind {self.kind!r}."})
        if expected and (self.quantity > 0) != (expected > 0):
            raise ValidationError(
                {"quantity": f"A {self.kind} movement must have sign {expected:+d}."}
            )

    # ------------------------------------------------------------------
    # Persistence (append-only)
    # ------------------------------------------------------------------

    def save(self, *args, **kwargs) -> None:
        if not self._state.adding:
            raise ImmutableMovement(f"Stock movement {self.pk} cannot be modified.")
        self.full_clean(exclude=["variant", "order"])
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableMovement(f"Stock movement {self.pk} cannot be deleted.")

    def __str__(self) -> str:
        return f"{self.variant_id} {self.kind} {self.quantity:+d}"
