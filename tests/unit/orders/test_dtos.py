"""Unit tests for Order DTOs.

Covers:
- CreateOrderItemDTO: quantity validation, frozen immutability.
- CreateOrderDTO: items list validation, duplicate variant check, defaults.
"""

from __future__ import annotations

from uuid import uuid4

import pytest
from pydantic import ValidationError

from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO

pytestmark = pytest.mark.unit


# ===========================================================================
# CreateOrderItemDTO
# ===========================================================================


class TestCreateOrderItemDTO:
    def test_valid_item(self):
        dto = CreateOrderItemDTO(variant_id=uuid4(), quantity=3)
        assert dto.quantity == 3

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_nonpositive_quantity_raises(self, quantity):
        with pytest.raises(ValidationError, match="Quantity must be at least 1"):
            CreateOrderItemDTO(variant_id=uuid4(), quantity=quantity)

    def test_is_immutable(self):
        dto = CreateOrderItemDTO(variant_id=uuid4(), quantity=2)
        with pytest.raises(ValidationError):
            dto.quantity = 5


# ===========================================================================
# CreateOrderDTO
# ===========================================================================


class TestCreateOrderDTO:
    def test_defaults(self):
        dto = CreateOrderDTO(
            customer_id=uuid4(),
            items=[CreateOrderItemDTO(variant_id=uuid4(), quantity=1)],
        )
        assert dto.method_id == 1
        assert dto.notes == ""
        assert dto.idempotency_key is None
        assert dto.actor == "checkout"

    def test_empty_items_raises(self):
        with pytest.raises(ValidationError, match="at least one item"):
            CreateOrderDTO(customer_id=uuid4(), items=[])

    def test_duplicate_variants_raise(self):
        variant_id = uuid4()
        with pytest.raises(ValidationError, match="Duplicate variant"):
            CreateOrderDTO(
                customer_id=uuid4(),
                items=[
                    CreateOrderItemDTO(variant_id=variant_id, quantity=1),
                    CreateOrderItemDTO(variant_id=variant_id, quantity=2),
                ],
            )

    def test_customer_id_is_required(self):
        with pytest.raises(ValidationError):
            CreateOrderDTO(items=[CreateOrderItemDTO(variant_id=uuid4(), quantity=1)])
