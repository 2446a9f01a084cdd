"""Unit tests for OrderService.

Covers:
- Payment-gated transitions (preparing, completed)
- Cancellation and return go through the compensator (stock comes back)
- Terminal orders and approved payments refuse cancellation
- get_order for unknown ids
"""

from uuid import uuid4

import pytest

from modules.consistency.exceptions import InvalidTransition, TerminalState
from modules.orders.constants import OrderStatus
from modules.orders.exceptions import OrderNotFound
from modules.orders.models import OrderStatusHistory
from modules.orders.services import build_order_service
from modules.payments.constants import PaymentStatus
from modules.payments.models import Payment

pytestmark = pytest.mark.unit


@pytest.fixture()
def service():
    return build_order_service()


@pytest.fixture()
def variant(make_variant):
    return make_variant(stock=4, price="5.00")


@pytest.fixture()
def order(place_order, variant):
    return place_order([(variant, 3)])


@pytest.fixture()
def approved_order(order, payment_service):
    payment = Payment.objects.get(order=order)
    payment_service.update_status(payment.id, PaymentStatus.APPROVED, actor="psp")
    order.refresh_from_db()
    return order


def _stock(variant):
    variant.refresh_from_db()
    return variant.stock_quantity


class TestGetOrder:
    def test_unknown_order(self, service):
        with pytest.raises(OrderNotFound):
            service.get_order(uuid4())

    def test_invalid_id(self, service):
        with pytest.raises(OrderNotFound):
            service.get_order("not-a-uuid")


class TestForwardTransitions:
    def test_preparing_requires_approved_payment(self, service, order):
        with pytest.raises(InvalidTransition):
            service.update_status(order.id, OrderStatus.PREPARING, actor="staff:1")

        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING

    def test_complete_approved_order(self, service, approved_order):
        updated = service.update_status(
            approved_order.id, "Completed", actor="staff:1", notes="delivered"
        )

        assert updated.status == OrderStatus.COMPLETED
        history = OrderStatusHistory.objects.get(
            order=approved_order, new_status=OrderStatus.COMPLETED
        )
        assert (history.old_status, history.notes) == (OrderStatus.PREPARING, "delivered")

    def test_skipping_preparation_is_invalid(self, service, order):
        Payment.objects.filter(order=order).update(status=PaymentStatus.APPROVED)

        with pytest.raises(InvalidTransition):
            service.update_status(order.id, OrderStatus.COMPLETED, actor="staff:1")


class TestCancellation:
    def test_cancel_restores_stock(self, service, order, variant):
        cancelled = service.cancel_order(order.id, actor="staff:1", notes="duplicate")

        assert cancelled.status == OrderStatus.CANCELLED
        assert _stock(variant) == 4

    def test_cancel_twice_is_terminal(self, service, order, variant):
        service.cancel_order(order.id, actor="staff:1")

        with pytest.raises(TerminalState):
            service.cancel_order(order.id, actor="staff:1")
        assert _stock(variant) == 4

    def test_cancel_refused_with_approved_payment(self, service, approved_order, variant):
        with pytest.raises(InvalidTransition):
            service.cancel_order(approved_order.id, actor="staff:1")

        approved_order.refresh_from_db()
        assert approved_order.status == OrderStatus.PREPARING
        assert _stock(variant) == 1

    def test_completed_order_cannot_be_cancelled(self, service, approved_order):
        service.update_status(approved_order.id, OrderStatus.COMPLETED, actor="staff:1")

        with pytest.raises(TerminalState):
            service.cancel_order(approved_order.id, actor="staff:1")


class TestReturn:
    def test_return_restocks(self, service, approved_order, variant):
        returned = service.update_status(
            approved_order.id, OrderStatus.RETURNED, actor="staff:1"
        )

        assert returned.status == OrderStatus.RETURNED
        assert _stock(variant) == 4

    def test_pending_order_cannot_be_returned(self, service, order):
        with pytest.raises(InvalidTransition):
            service.update_status(order.id, OrderStatus.RETURNED, actor="staff:1")
