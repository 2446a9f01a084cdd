import itertools
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Tuple
from uuid import uuid4

import pytest
from rest_framework.test import APIClient

from modules.consistency.compensation import build_order_compensator
from modules.consistency.reaper import build_reservation_reaper
from modules.inventory.models import ProductVariant
from modules.inventory.repositories import StockDjangoRepository
from modules.inventory.services import InventoryService
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.models import Order
from modules.orders.repositories import OrderDjangoRepository
from modules.orders.services import CheckoutService
from modules.payments.services import build_payment_service


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def staff_client(api_client, admin_user):
    """APIClient authenticated as a staff user."""
    api_client.force_authenticate(user=admin_user)
    return api_client


@pytest.fixture()
def customer_client(api_client, django_user_model):
    """APIClient authenticated as a regular (non-staff) user."""
    user = django_user_model.objects.create_user(username="shopper", password="x-pass-123")
    api_client.force_authenticate(user=user)
    return api_client


@pytest.fixture()
def make_variant():
    """Create a variant whose stock is booked through the ledger."""
    counter = itertools.count(1)
    inventory = InventoryService(StockDjangoRepository())

    def _make(stock: int = 10, price: str = "10.00") -> ProductVariant:
        n = next(counter)
        variant = ProductVariant.objects.create(
            sku=f"var-{n:03d}", name=f"Variant {n}", price=Decimal(price)
        )
        if stock:
            inventory.receive(variant.id, stock, actor="test:setup", note="opening stock")
        variant.refresh_from_db()
        return variant

    return _make


@pytest.fixture()
def checkout_service():
    """Checkout without the inline sweep, for building fixtures."""
    return CheckoutService(
        order_repository=OrderDjangoRepository(),
        stock_repository=StockDjangoRepository(),
        payment_service=build_payment_service(),
        reaper=None,
    )


@pytest.fixture()
def place_order(checkout_service):
    """Place an order through checkout and optionally backdate it."""

    def _place(
        lines: Iterable[Tuple[ProductVariant, int]],
        created_at: Optional[datetime] = None,
        **dto_kwargs,
    ) -> Order:
        dto = CreateOrderDTO(
            customer_id=dto_kwargs.pop("customer_id", uuid4()),
            items=[
                CreateOrderItemDTO(variant_id=variant.id, quantity=quantity)
                for variant, quantity in lines
            ],
            **dto_kwargs,
        )
        order = checkout_service.place_order(dto)
        if created_at is not None:
            Order.objects.filter(id=order.id).update(created_at=created_at)
        order.refresh_from_db()
        return order

    return _place


@pytest.fixture()
def reaper():
    return build_reservation_reaper()


@pytest.fixture()
def compensator():
    return build_order_compensator()


@pytest.fixture()
def payment_service():
    return build_payment_service()
