"""Unit tests for PaymentDjangoRepository.

Covers:
- Effective payment status per order (approved wins, then newest)
- Audit queries (duplicate payments, non-positive amounts, raw status rows)
- Compare-and-swap status writes
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.db import OperationalError
from django.utils import timezone

from modules.core.exceptions import TransientStoreFailure
from modules.orders.models import Order
from modules.payments.constants import PaymentStatus
from modules.payments.models import Payment
from modules.payments.repositories import PaymentDjangoRepository

pytestmark = pytest.mark.unit


@pytest.fixture()
def repo():
    return PaymentDjangoRepository()


@pytest.fixture()
def order():
    return Order.objects.create(customer_id=uuid4(), total_amount=Decimal("10.00"))


def _payment(order, status, minutes_ago=0, amount="10.00"):
    return Payment.objects.create(
        order=order,
        amount=Decimal(amount),
        status=status,
        created_at=timezone.now() - timedelta(minutes=minutes_ago),
    )


class TestEffectiveStatus:
    def test_no_payment(self, repo, order):
        assert repo.get_effective_status(order.id) is None
        assert repo.statuses_for_orders([order.id]) == {}

    def test_newest_payment_wins(self, repo, order):
        _payment(order, PaymentStatus.REJECTED, minutes_ago=10)
        _payment(order, PaymentStatus.PENDING, minutes_ago=1)

        assert repo.get_effective_status(order.id) == PaymentStatus.PENDING

    def test_approved_wins_over_newer_rows(self, repo, order):
        _payment(order, PaymentStatus.APPROVED, minutes_ago=10)
        _payment(order, PaymentStatus.PENDING, minutes_ago=1)

        assert repo.get_effective_status(order.id) == PaymentStatus.APPROVED

    def test_status_is_normalised(self, repo, order):
        _payment(order, "  Approved ")

        assert repo.get_effective_status(order.id) == "approved"

    def test_batch_lookup(self, repo, order):
        other = Order.objects.create(customer_id=uuid4(), total_amount=Decimal("5.00"))
        _payment(order, PaymentStatus.PENDING)
        _payment(other, PaymentStatus.APPROVED)

        assert repo.statuses_for_orders([order.id, other.id, uuid4()]) == {
            order.id: "pending",
            other.id: "approved",
        }


class TestAuditQueries:
    def test_orders_with_multiple_payments(self, repo, order):
        single = Order.objects.create(customer_id=uuid4(), total_amount=Decimal("1.00"))
        _payment(single, PaymentStatus.PENDING)
        _payment(order, PaymentStatus.PENDING)
        _payment(order, PaymentStatus.REJECTED)

        assert repo.order_ids_with_multiple_payments() == [order.id]

    def test_nonpositive_amounts(self, repo, order):
        zero = _payment(order, PaymentStatus.PENDING, amount="0.00")
        _payment(order, PaymentStatus.PENDING, amount="0.01")

        assert [p.id for p in repo.list_nonpositive_amount()] == [zero.id]

    def test_status_rows_are_raw(self, repo, order):
        payment = _payment(order, "PAID")

        assert list(repo.iter_status_rows()) == [(payment.id, order.id, "PAID")]

    def test_status_scan_failure_is_transient(self, repo, order):
        _payment(order, PaymentStatus.PENDING)

        with patch(
            "django.db.models.query.QuerySet.iterator",
            side_effect=OperationalError("server closed the connection"),
        ):
            with pytest.raises(TransientStoreFailure):
                repo.iter_status_rows()

    def test_active_payment_is_newest(self, repo, order):
        _payment(order, PaymentStatus.REJECTED, minutes_ago=5)
        newest = _payment(order, PaymentStatus.PENDING)

        assert repo.get_active_for_order(order.id) == newest


class TestCompareAndSet:
    def test_matching_status_is_updated(self, repo, order):
        payment = _payment(order, PaymentStatus.PENDING)

        assert repo.compare_and_set_status(
            payment.id, PaymentStatus.PENDING, PaymentStatus.APPROVED
        )
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.APPROVED

    def test_stale_status_is_not_updated(self, repo, order):
        payment = _payment(order, PaymentStatus.REJECTED)

        assert not repo.compare_and_set_status(
            payment.id, PaymentStatus.PENDING, PaymentStatus.APPROVED
        )
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.REJECTED
