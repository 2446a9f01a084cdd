"""Payment model.

Business rules implemented:
- ``amount`` must be positive and ``status`` must belong to
  ``PaymentStatus``.  Both are enforced by ``PaymentService`` at creation
  time, not by database constraints: rows imported from older systems may
  break them, and the consistency auditor reports such rows.
- An order has at most one payment row; more than one is a reported
  violation, and the newest row drives state decisions until resolved.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from modules.core.models import BaseModel
from modules.payments.constants import PaymentStatus


class Payment(BaseModel):
    """Payment attempt for an order."""

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payments",
    )
    method_id = models.PositiveIntegerField(default=1)
    amount = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    # Free text on purpose: out-of-vocabulary values are audited, not rejected.
    status = models.CharField(max_length=32, default=PaymentStatus.PENDING)

    class Meta:
        db_table = "payments"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order", "-created_at"], name="payments_order_created_idx"),
        ]

    def __str__(self) -> str:
        return f"Payment {self.id} ({self.status}) for {self.order_id}"
