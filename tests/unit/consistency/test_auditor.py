"""Unit tests for the consistency auditor.

Covers:
- Detection of the four violation categories
- Stable reports across repeated runs without writes
- Auto-fix only for orders without payment, through the regular creation path
- Repairs re-validated against the current state
- Failed checks reported without aborting the audit
"""

from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest

from modules.consistency.auditor import ConsistencyAuditor, build_consistency_auditor
from modules.consistency.constants import Severity, ViolationType
from modules.consistency.exceptions import TransientStoreFailure
from modules.orders.constants import OrderStatus
from modules.orders.models import Order
from modules.orders.repositories import OrderDjangoRepository
from modules.payments.constants import PaymentStatus
from modules.payments.models import Payment
from modules.payments.repositories import PaymentDjangoRepository

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def auditor():
    return build_consistency_auditor()


@pytest.fixture()
def unpaid_order():
    """An order imported without its payment row."""
    return Order.objects.create(customer_id=uuid4(), total_amount=Decimal("100.00"))


@pytest.fixture()
def paid_order(place_order, make_variant):
    return place_order([(make_variant(stock=5, price="25.00"), 2)])


def _types(report):
    return [v.type for v in report.violations]


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


class TestDetection:
    def test_clean_store_has_no_violations(self, auditor, paid_order):
        report = auditor.audit()

        assert report.violations == []
        assert report.is_clean

    def test_order_without_payment(self, auditor, unpaid_order):
        report = auditor.audit()

        (violation,) = report.violations
        assert violation.type == ViolationType.ORDER_WITHOUT_PAYMENT
        assert violation.severity == Severity.CRITICAL
        assert violation.order_id == unpaid_order.id
        assert violation.details["total_amount"] == "100.00"

    def test_zero_total_order_without_payment_is_ignored(self, auditor):
        Order.objects.create(customer_id=uuid4(), total_amount=Decimal("0.00"))

        assert auditor.audit().violations == []

    def test_multiple_payments(self, auditor, paid_order):
        extra = Payment.objects.create(
            order=paid_order, amount=Decimal("50.00"), status=PaymentStatus.PENDING
        )

        (violation,) = auditor.audit().violations

        assert violation.type == ViolationType.MULTIPLE_PAYMENTS
        assert violation.severity == Severity.HIGH
        assert violation.details["count"] == 2
        assert extra.id in violation.payment_ids
        assert list(violation.payment_ids) == sorted(violation.payment_ids, key=str)

    @pytest.mark.parametrize("amount", ["0.00", "-10.00"])
    def test_nonpositive_amount(self, auditor, paid_order, amount):
        Payment.objects.filter(order=paid_order).update(amount=Decimal(amount))

        (violation,) = auditor.audit().violations

        assert violation.type == ViolationType.PAYMENT_NONPOSITIVE_AMOUNT
        assert violation.severity == Severity.MEDIUM
        assert violation.order_id == paid_order.id

    def test_invalid_status(self, auditor, paid_order):
        Payment.objects.filter(order=paid_order).update(status="paid")

        (violation,) = auditor.audit().violations

        assert violation.type == ViolationType.PAYMENT_INVALID_STATUS
        assert violation.details["status"] == "paid"

    @pytest.mark.parametrize("stored", [" APPROVED ", "Pending", "pending_approval"])
    def test_status_casing_is_not_a_violation(self, auditor, paid_order, stored):
        Payment.objects.filter(order=paid_order).update(status=stored)

        assert auditor.audit().violations == []

    def test_one_payment_can_break_several_rules(self, auditor, paid_order):
        Payment.objects.filter(order=paid_order).update(
            amount=Decimal("0.00"), status="unknown"
        )

        assert _types(auditor.audit()) == [
            ViolationType.PAYMENT_INVALID_STATUS,
            ViolationType.PAYMENT_NONPOSITIVE_AMOUNT,
        ]


class TestReportStability:
    def test_two_runs_return_identical_reports(self, auditor, paid_order):
        Order.objects.create(customer_id=uuid4(), total_amount=Decimal("10.00"))
        Order.objects.create(customer_id=uuid4(), total_amount=Decimal("20.00"))
        Payment.objects.create(order=paid_order, amount=Decimal("1.00"), status="paid")

        first = auditor.audit()
        second = auditor.audit()

        assert first.violations == second.violations
        assert len(first.violations) == 4

    def test_violations_sorted_by_type_then_ids(self, auditor):
        for total in ("30.00", "10.00", "20.00"):
            Order.objects.create(customer_id=uuid4(), total_amount=Decimal(total))

        order_ids = [str(v.order_id) for v in auditor.audit().violations]

        assert order_ids == sorted(order_ids)

    def test_summary_counts(self, auditor, unpaid_order, paid_order):
        Payment.objects.filter(order=paid_order).update(status="paid")

        summary = auditor.audit().summary()

        assert summary["total"] == 2
        assert summary["by_severity"] == {
            "critical": 1,
            "high": 0,
            "medium": 1,
            "warning": 0,
        }
        assert summary["by_type"] == {
            "ORDER_WITHOUT_PAYMENT": 1,
            "PAYMENT_INVALID_STATUS": 1,
        }


# ---------------------------------------------------------------------------
# Auto-fix
# ---------------------------------------------------------------------------


class TestAutoFix:
    def test_read_only_audit_writes_nothing(self, auditor, unpaid_order):
        report = auditor.audit(auto_fix=False)

        assert report.repaired == []
        assert not Payment.objects.filter(order=unpaid_order).exists()

    def test_creates_one_pending_payment_for_total(self, auditor, unpaid_order):
        report = auditor.audit(auto_fix=True)

        payment = Payment.objects.get(order=unpaid_order)
        assert payment.amount == Decimal("100.00")
        assert payment.status == PaymentStatus.PENDING
        assert payment.method_id == 1
        (repair,) = report.repaired
        assert repair.payment_id == payment.id
        assert repair.action == "created_pending_payment"

    def test_repair_is_not_repeated(self, auditor, unpaid_order):
        auditor.audit(auto_fix=True)
        second = auditor.audit(auto_fix=True)

        assert second.violations == []
        assert second.repaired == []
        assert Payment.objects.filter(order=unpaid_order).count() == 1

    def test_repair_uses_configured_method(self, unpaid_order):
        auditor = build_consistency_auditor(method_id=7)

        auditor.audit(auto_fix=True)

        assert Payment.objects.get(order=unpaid_order).method_id == 7

    def test_terminal_order_is_still_repaired(self, auditor):
        order = Order.objects.create(
            customer_id=uuid4(),
            total_amount=Decimal("40.00"),
            status=OrderStatus.CANCELLED,
        )

        auditor.audit(auto_fix=True)

        assert Payment.objects.filter(order=order).count() == 1

    def test_other_violations_are_never_fixed(self, auditor, paid_order):
        Payment.objects.create(order=paid_order, amount=Decimal("-5.00"), status="paid")

        report = auditor.audit(auto_fix=True)

        assert report.repaired == []
        assert Payment.objects.filter(order=paid_order).count() == 2
        assert set(_types(report)) == {
            ViolationType.MULTIPLE_PAYMENTS,
            ViolationType.PAYMENT_NONPOSITIVE_AMOUNT,
            ViolationType.PAYMENT_INVALID_STATUS,
        }

    def test_stale_violation_is_not_repaired(self, auditor, paid_order):
        # The scan reports an order whose payment appeared meanwhile.
        with patch.object(
            OrderDjangoRepository,
            "list_unpaid_with_positive_total",
            return_value=[paid_order],
        ):
            report = auditor.audit(auto_fix=True)

        assert _types(report) == [ViolationType.ORDER_WITHOUT_PAYMENT]
        assert report.repaired == []
        assert Payment.objects.filter(order=paid_order).count() == 1


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailedChecks:
    def test_failing_check_is_reported(self, unpaid_order, payment_service):
        payments = PaymentDjangoRepository()
        auditor = ConsistencyAuditor(OrderDjangoRepository(), payments, payment_service)

        with patch.object(
            payments,
            "list_nonpositive_amount",
            side_effect=TransientStoreFailure("timeout"),
        ):
            report = auditor.audit()

        assert report.failed_checks == [ViolationType.PAYMENT_NONPOSITIVE_AMOUNT]
        assert _types(report) == [ViolationType.ORDER_WITHOUT_PAYMENT]
        assert not report.is_clean
