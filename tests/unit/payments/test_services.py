"""Unit tests for PaymentService.

Covers:
- create_payment guards (amount, status, one payment per order)
- Status updates follow the payment graph
- Approval moves the order to preparing
- Rejection/cancellation releases the order's stock
- Chargeback on a preparing order
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from modules.consistency.constants import ViolationType
from modules.consistency.exceptions import (
    DataInvariantViolation,
    InvalidTransition,
    TerminalState,
)
from modules.orders.constants import OrderStatus
from modules.orders.exceptions import OrderNotFound
from modules.inventory.constants import MovementKind
from modules.inventory.models import StockMovement
from modules.orders.models import Order, OrderStatusHistory
from modules.payments.constants import PaymentStatus
from modules.payments.exceptions import PaymentNotFound
from modules.payments.models import Payment

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def variant(make_variant):
    return make_variant(stock=5, price="20.00")


@pytest.fixture()
def order(place_order, variant):
    return place_order([(variant, 2)])


@pytest.fixture()
def payment(order):
    return Payment.objects.get(order=order)


@pytest.fixture()
def bare_order():
    return Order.objects.create(customer_id=uuid4(), total_amount=Decimal("30.00"))


def _stock(variant):
    variant.refresh_from_db()
    return variant.stock_quantity


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreatePayment:
    def test_checkout_creates_pending_payment_for_total(self, order, payment):
        assert payment.amount == Decimal("40.00") == order.total_amount
        assert payment.status == PaymentStatus.PENDING

    def test_creates_with_pending_approval(self, payment_service, bare_order):
        payment = payment_service.create_payment(
            bare_order.id, 2, Decimal("30.00"), " Pending_Approval "
        )

        assert payment.status == PaymentStatus.PENDING_APPROVAL
        assert payment.method_id == 2

    @pytest.mark.parametrize("amount", ["0", "-1.00"])
    def test_rejects_nonpositive_amount(self, payment_service, bare_order, amount):
        with pytest.raises(DataInvariantViolation) as exc_info:
            payment_service.create_payment(bare_order.id, 1, Decimal(amount))

        assert exc_info.value.violation_type == ViolationType.PAYMENT_NONPOSITIVE_AMOUNT
        assert not Payment.objects.filter(order=bare_order).exists()

    @pytest.mark.parametrize("status", ["approved", "rejected", "paid"])
    def test_rejects_status_outside_creatable_set(
        self, payment_service, bare_order, status
    ):
        with pytest.raises(DataInvariantViolation) as exc_info:
            payment_service.create_payment(bare_order.id, 1, Decimal("30.00"), status)

        assert exc_info.value.violation_type == ViolationType.PAYMENT_INVALID_STATUS

    def test_rejects_second_payment(self, payment_service, order):
        with pytest.raises(DataInvariantViolation) as exc_info:
            payment_service.create_payment(order.id, 1, order.total_amount)

        assert exc_info.value.violation_type == ViolationType.MULTIPLE_PAYMENTS
        assert Payment.objects.filter(order=order).count() == 1

    def test_unknown_order(self, payment_service):
        with pytest.raises(OrderNotFound):
            payment_service.create_payment(uuid4(), 1, Decimal("10.00"))


# ---------------------------------------------------------------------------
# Status updates
# ---------------------------------------------------------------------------


class TestApproval:
    def test_approval_starts_preparation(self, payment_service, order, payment):
        updated = payment_service.update_status(
            payment.id, "APPROVED", actor="psp:callback"
        )

        assert updated.status == PaymentStatus.APPROVED
        order.refresh_from_db()
        assert order.status == OrderStatus.PREPARING
        history = OrderStatusHistory.objects.get(
            order=order, new_status=OrderStatus.PREPARING
        )
        assert history.actor == "psp:callback"

    def test_approval_through_pending_approval(self, payment_service, order, payment):
        payment_service.update_status(payment.id, PaymentStatus.PENDING_APPROVAL)
        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING

        payment_service.update_status(payment.id, PaymentStatus.APPROVED)
        order.refresh_from_db()
        assert order.status == OrderStatus.PREPARING

    def test_approval_on_cancelled_order_leaves_order_alone(
        self, payment_service, order, payment
    ):
        Order.objects.filter(id=order.id).update(status=OrderStatus.CANCELLED)

        payment_service.update_status(payment.id, PaymentStatus.APPROVED)

        order.refresh_from_db()
        assert order.status == OrderStatus.CANCELLED


class TestFailure:
    @pytest.mark.parametrize("status", [PaymentStatus.REJECTED, PaymentStatus.CANCELLED])
    def test_failed_payment_cancels_pending_order(
        self, payment_service, order, payment, variant, status
    ):
        payment_service.update_status(payment.id, status, actor="psp:callback")

        order.refresh_from_db()
        assert order.status == OrderStatus.CANCELLED
        assert _stock(variant) == 5
        payment.refresh_from_db()
        assert payment.status == status

    def test_chargeback_cancels_preparing_order(
        self, payment_service, order, payment, variant
    ):
        payment_service.update_status(payment.id, PaymentStatus.APPROVED)

        payment_service.update_status(payment.id, PaymentStatus.REJECTED, notes="chargeback")

        order.refresh_from_db()
        assert order.status == OrderStatus.CANCELLED
        assert _stock(variant) == 5

    def test_rejection_of_completed_order_only_updates_payment(
        self, payment_service, order, payment, variant
    ):
        payment_service.update_status(payment.id, PaymentStatus.APPROVED)
        Order.objects.filter(id=order.id).update(status=OrderStatus.COMPLETED)

        payment_service.update_status(payment.id, PaymentStatus.REJECTED)

        order.refresh_from_db()
        assert order.status == OrderStatus.COMPLETED
        assert _stock(variant) == 3

    def test_release_without_actor_uses_payments_actor(
        self, payment_service, order, payment, variant
    ):
        payment_service.update_status(payment.id, PaymentStatus.REJECTED)

        restock = StockMovement.objects.get(order=order, kind=MovementKind.RESTOCK)
        assert restock.actor == "system:payments"
        assert restock.quantity == 2
        history = OrderStatusHistory.objects.get(
            order=order, new_status=OrderStatus.CANCELLED
        )
        assert history.actor == "system:payments"
        assert _stock(variant) == 5

    def test_payments_actor_is_configurable(
        self, settings, payment_service, order, payment
    ):
        settings.CONSISTENCY = {**settings.CONSISTENCY, "PAYMENTS_ACTOR": "psp:webhook"}

        payment_service.update_status(payment.id, PaymentStatus.CANCELLED)

        restock = StockMovement.objects.get(order=order, kind=MovementKind.RESTOCK)
        assert restock.actor == "psp:webhook"


class TestGraph:
    def test_terminal_payment(self, payment_service, payment):
        payment_service.update_status(payment.id, PaymentStatus.CANCELLED)

        with pytest.raises(TerminalState):
            payment_service.update_status(payment.id, PaymentStatus.APPROVED)

    def test_pending_approval_cannot_be_cancelled(self, payment_service, payment):
        payment_service.update_status(payment.id, PaymentStatus.PENDING_APPROVAL)

        with pytest.raises(InvalidTransition):
            payment_service.update_status(payment.id, PaymentStatus.CANCELLED)

        payment.refresh_from_db()
        assert payment.status == PaymentStatus.PENDING_APPROVAL

    def test_unknown_payment(self, payment_service):
        with pytest.raises(PaymentNotFound):
            payment_service.update_status(uuid4(), PaymentStatus.APPROVED)
