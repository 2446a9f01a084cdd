"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

Every identifier is explicit: the checkout never reads a session or a
request user to find out who is buying or acting.
"""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class CreateOrderItemDTO(BaseModel):
    """Immutable DTO for a single line of a checkout request.

    ``unit_price`` is resolved by the Service Layer from the variant.
    """

    model_config = ConfigDict(frozen=True)

    variant_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class CreateOrderDTO(BaseModel):
    """Immutable DTO for checkout requests.

    Validates:
    - ``items`` must contain at least one item.
    - A variant appears at most once.
    """

    model_config = ConfigDict(frozen=True)

    customer_id: UUID
    items: List[CreateOrderItemDTO]
    method_id: int = 1
    notes: Optional[str] = ""
    idempotency_key: Optional[str] = None
    actor: str = "checkout"

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CreateOrderItemDTO]
    ) -> List[CreateOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @model_validator(mode="after")
    def no_duplicate_variants(self):
        variant_ids = [item.variant_id for item in self.items]
        if len(variant_ids) != len(set(variant_ids)):
            raise ValueError("Duplicate variant IDs are not allowed in the same order.")
        return self
