"""Inventory domain constants."""

from django.db import models


class MovementKind(models.TextChoices):
    SALE = "sale", "Sale"
    RESTOCK = "restock", "Restock"
    ADJUSTMENT = "adjustment", "Adjustment"


# Expected sign of ``StockMovement.quantity`` per kind (0 = either sign).
MOVEMENT_SIGN: dict[str, int] = {
    MovementKind.SALE: -1,
    MovementKind.RESTOCK: 1,
    MovementKind.ADJUSTMENT: 0,
}
