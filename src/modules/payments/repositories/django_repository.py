"""Django ORM implementation of the Payment repository."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db.models import Count
from django.utils import timezone

from modules.core.db import store_operation
from modules.payments.constants import PaymentStatus
from modules.payments.models import Payment
from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)


class PaymentDjangoRepository(IPaymentRepository):
    """Concrete Payment repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[Payment]:
        try:
            return Payment.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Payment]:
        queryset = Payment.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @store_operation
    def get_for_update(self, payment_id: UUID) -> Optional[Payment]:
        try:
            return Payment.objects.select_for_update().filter(id=payment_id).first()
        except (ValueError, ValidationError):
            return None

    @store_operation
    def get_active_for_order(self, order_id: UUID) -> Optional[Payment]:
        return (
            Payment.objects.filter(order_id=order_id)
            .order_by("-created_at", "-id")
            .first()
        )

    @store_operation
    def get_effective_status(self, order_id: UUID) -> Optional[str]:
        return self.statuses_for_orders([order_id]).get(order_id)

    @store_operation
    def list_for_order(self, order_id: UUID) -> List[Payment]:
        return list(Payment.objects.filter(order_id=order_id).order_by("created_at", "id"))

    @store_operation
    def order_ids_with_multiple_payments(self) -> List[UUID]:
        return list(
            Payment.objects.values("order_id")
            .annotate(n=Count("id"))
            .filter(n__gt=1)
            .order_by("order_id")
            .values_list("order_id", flat=True)
        )

    @store_operation
    def list_nonpositive_amount(self) -> List[Payment]:
        return list(Payment.objects.filter(amount__lte=0).order_by("id"))

    @store_operation
    def iter_status_rows(self) -> Iterator[Tuple[UUID, UUID, str]]:
        # Fetched inside the call so driver errors surface here, not mid-scan.
        rows = Payment.objects.order_by("id").values_list("id", "order_id", "status")
        return iter(list(rows.iterator(chunk_size=500)))

    @store_operation
    def statuses_for_orders(self, order_ids: Iterable[UUID]) -> Dict[UUID, str]:
        """Approved wins over anything else, then the newest row."""
        statuses: Dict[UUID, str] = {}
        rows = (
            Payment.objects.filter(order_id__in=list(order_ids))
            .order_by("order_id", "-created_at", "-id")
            .values_list("order_id", "status")
        )
        for order_id, status in rows:
            normalized = (status or "").strip().lower()
            if order_id not in statuses:
                statuses[order_id] = normalized
            elif normalized == PaymentStatus.APPROVED:
                statuses[order_id] = normalized
        return statuses

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @store_operation
    def create(
        self, order_id: UUID, method_id: int, amount: Decimal, status: str
    ) -> Payment:
        payment = Payment.objects.create(
            order_id=order_id, method_id=method_id, amount=amount, status=status
        )
        logger.info(
            "payment.created",
            payment_id=str(payment.id),
            order_id=str(order_id),
            amount=str(amount),
            status=status,
        )
        return payment

    @store_operation
    def compare_and_set_status(self, payment_id: UUID, expected: str, new: str) -> bool:
        updated = Payment.objects.filter(id=payment_id, status=expected).update(
            status=new, updated_at=timezone.now()
        )
        log = logger.bind(payment_id=str(payment_id), expected=expected, new=new)
        if not updated:
            log.info("payment.status_cas_lost")
            return False
        log.info("payment.status_cas_won")
        return True
