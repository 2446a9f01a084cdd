"""Integration tests for the operator endpoints and management commands.

Covers:
- GET/POST /api/v1/consistency/audit/ (read-only vs. auto-fix)
- POST /api/v1/consistency/sweep/
- Staff-only access
- ``audit_consistency`` and ``sweep_reservations`` commands
"""

import json
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest
from django.core.management import CommandError, call_command
from django.utils import timezone

from modules.orders.constants import OrderStatus
from modules.orders.models import Order
from modules.payments.models import Payment

pytestmark = pytest.mark.integration

AUDIT_URL = "/api/v1/consistency/audit/"
SWEEP_URL = "/api/v1/consistency/sweep/"


@pytest.fixture()
def unpaid_order():
    return Order.objects.create(customer_id=uuid4(), total_amount=Decimal("100.00"))


@pytest.fixture()
def expired_order(place_order, make_variant):
    return place_order(
        [(make_variant(stock=4), 4)], created_at=timezone.now() - timedelta(hours=48)
    )


class TestAuditEndpoint:
    def test_get_reports_without_fixing(self, staff_client, unpaid_order):
        response = staff_client.get(AUDIT_URL)

        assert response.status_code == 200
        body = response.json()
        assert body["violations"][0]["type"] == "ORDER_WITHOUT_PAYMENT"
        assert body["violations"][0]["order_id"] == str(unpaid_order.id)
        assert body["summary"]["by_severity"]["critical"] == 1
        assert body["repaired"] == []
        assert not Payment.objects.filter(order=unpaid_order).exists()

    def test_post_with_auto_fix(self, staff_client, unpaid_order):
        response = staff_client.post(AUDIT_URL, {"auto_fix": True}, format="json")

        assert response.status_code == 200
        assert len(response.json()["repaired"]) == 1
        assert Payment.objects.get(order=unpaid_order).amount == Decimal("100.00")

    def test_staff_only(self, customer_client):
        assert customer_client.get(AUDIT_URL).status_code == 403

    def test_anonymous(self, api_client):
        assert api_client.get(AUDIT_URL).status_code == 401


class TestSweepEndpoint:
    def test_sweep(self, staff_client, expired_order):
        response = staff_client.post(SWEEP_URL, {}, format="json")

        assert response.status_code == 200
        body = response.json()
        assert body["orders_cancelled"] == 1
        assert body["units_released"] == 4

    def test_custom_window(self, staff_client, place_order, make_variant):
        place_order(
            [(make_variant(stock=1), 1)],
            created_at=timezone.now() - timedelta(hours=2),
        )

        response = staff_client.post(SWEEP_URL, {"ttl_hours": 1}, format="json")

        assert response.json()["orders_cancelled"] == 1

    def test_invalid_window(self, staff_client):
        response = staff_client.post(SWEEP_URL, {"ttl_hours": 0}, format="json")

        assert response.status_code == 400

    def test_staff_only(self, customer_client):
        assert customer_client.post(SWEEP_URL, {}, format="json").status_code == 403


class TestCommands:
    def test_audit_command(self, unpaid_order):
        out = StringIO()

        call_command("audit_consistency", stdout=out)

        output = out.getvalue()
        assert "[critical] ORDER_WITHOUT_PAYMENT" in output
        assert "1 violation(s), 0 repaired." in output

    def test_audit_command_fix_json(self, unpaid_order):
        out = StringIO()

        call_command("audit_consistency", "--fix", "--json", stdout=out)

        payload = json.loads(out.getvalue())
        assert payload["summary"]["repaired"] == 1
        assert Payment.objects.filter(order=unpaid_order).count() == 1

    def test_sweep_command(self, expired_order):
        out = StringIO()

        call_command("sweep_reservations", stdout=out)

        assert "Cancelled 1 order(s), released 4 unit(s)." in out.getvalue()
        expired_order.refresh_from_db()
        assert expired_order.status == OrderStatus.CANCELLED

    def test_sweep_command_ttl_override(self, expired_order):
        out = StringIO()

        call_command("sweep_reservations", "--ttl-hours", "72", "--json", stdout=out)

        assert json.loads(out.getvalue())["orders_cancelled"] == 0

    def test_sweep_command_rejects_nonpositive_ttl(self):
        with pytest.raises(CommandError):
            call_command("sweep_reservations", "--ttl-hours", "0")
