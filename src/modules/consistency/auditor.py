"""Consistency auditor.

Scans orders and payments for the four audited violations:

==========================  ========  ===========================
type                        severity  auto-fix
==========================  ========  ===========================
ORDER_WITHOUT_PAYMENT       critical  pending payment for total
MULTIPLE_PAYMENTS           high      never
PAYMENT_NONPOSITIVE_AMOUNT  medium    never
PAYMENT_INVALID_STATUS      medium    never
==========================  ========  ===========================

The scan takes no locks and may read a snapshot that is already moving,
so every repair is re-validated by ``PaymentService.create_payment``
under the order's row lock.  Repairs use that same creation path as
checkout and never patch columns directly.

Violations are sorted by type and ids: two audits with no writes in
between return identical reports.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, List, Optional, Tuple

import structlog
from django.db import DatabaseError

from modules.consistency.conf import consistency_setting
from modules.consistency.constants import AUTO_FIXABLE, VIOLATION_SEVERITY, ViolationType
from modules.consistency.dtos import AuditReport, Repair, Violation
from modules.consistency.exceptions import DataInvariantViolation, TransientStoreFailure
from modules.consistency.transitions import PAYMENT_TABLE, normalize_status
from modules.orders.exceptions import OrderNotFound
from modules.payments.constants import PaymentStatus

if TYPE_CHECKING:
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.repositories.interfaces import IPaymentRepository
    from modules.payments.services import PaymentService

logger = structlog.get_logger(__name__)


class ConsistencyAuditor:
    """Detects invariant violations and repairs the safe subset."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        payment_repository: IPaymentRepository,
        payment_service: PaymentService,
        method_id: Optional[int] = None,
        actor: Optional[str] = None,
    ) -> None:
        self._order_repo = order_repository
        self._payment_repo = payment_repository
        self._payment_service = payment_service
        self._method_id = method_id or int(consistency_setting("DEFAULT_PAYMENT_METHOD_ID"))
        self._actor = actor or consistency_setting("AUDITOR_ACTOR")

    def audit(self, auto_fix: bool = False) -> AuditReport:
        """Run every check; with *auto_fix*, repair orders without payment.

        A check that fails on a store error is listed in
        ``failed_checks``; the other checks still run.
        """
        log = logger.bind(auto_fix=auto_fix)
        checks: List[Tuple[str, Callable[[], List[Violation]]]] = [
            (ViolationType.ORDER_WITHOUT_PAYMENT, self._orders_without_payment),
            (ViolationType.MULTIPLE_PAYMENTS, self._multiple_payments),
            (ViolationType.PAYMENT_NONPOSITIVE_AMOUNT, self._nonpositive_amounts),
            (ViolationType.PAYMENT_INVALID_STATUS, self._invalid_statuses),
        ]

        violations: List[Violation] = []
        failed_checks: List[str] = []
        for name, check in checks:
            try:
                violations.extend(check())
            except (TransientStoreFailure, DatabaseError):
                log.exception("auditor.check_failed", check=str(name))
                failed_checks.append(str(name))
        violations.sort(key=Violation.sort_key)

        repaired: List[Repair] = []
        if auto_fix:
            for violation in violations:
                if violation.type not in AUTO_FIXABLE:
                    continue
                repair = self._repair_missing_payment(violation)
                if repair is not None:
                    repaired.append(repair)

        report = AuditReport(
            violations=violations, repaired=repaired, failed_checks=failed_checks
        )
        log.info("auditor.completed", **report.summary())
        return report

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _orders_without_payment(self) -> List[Violation]:
        kind = ViolationType.ORDER_WITHOUT_PAYMENT
        return [
            Violation(
                type=kind,
                severity=VIOLATION_SEVERITY[kind],
                message=f"Order {order.id} has no payment (total {order.total_amount}).",
                order_id=order.id,
                details={
                    "total_amount": str(order.total_amount),
                    "order_status": order.status,
                },
            )
            for order in self._order_repo.list_unpaid_with_positive_total()
        ]

    def _multiple_payments(self) -> List[Violation]:
        kind = ViolationType.MULTIPLE_PAYMENTS
        violations = []
        for order_id in self._payment_repo.order_ids_with_multiple_payments():
            payments = sorted(
                self._payment_repo.list_for_order(order_id), key=lambda p: str(p.id)
            )
            violations.append(
                Violation(
                    type=kind,
                    severity=VIOLATION_SEVERITY[kind],
                    message=f"Order {order_id} has {len(payments)} payments.",
                    order_id=order_id,
                    payment_ids=tuple(p.id for p in payments),
                    details={
                        "count": len(payments),
                        "statuses": [p.status for p in payments],
                        "amounts": [str(p.amount) for p in payments],
                    },
                )
            )
        return violations

    def _nonpositive_amounts(self) -> List[Violation]:
        kind = ViolationType.PAYMENT_NONPOSITIVE_AMOUNT
        return [
            Violation(
                type=kind,
                severity=VIOLATION_SEVERITY[kind],
                message=f"Payment {payment.id} has non-positive amount {payment.amount}.",
                order_id=payment.order_id,
                payment_ids=(payment.id,),
                details={"amount": str(payment.amount), "status": payment.status},
            )
            for payment in self._payment_repo.list_nonpositive_amount()
        ]

    def _invalid_statuses(self) -> List[Violation]:
        kind = ViolationType.PAYMENT_INVALID_STATUS
        return [
            Violation(
                type=kind,
                severity=VIOLATION_SEVERITY[kind],
                message=f"Payment {payment_id} has invalid status {status!r}.",
                order_id=order_id,
                payment_ids=(payment_id,),
                details={"status": status},
            )
            for payment_id, order_id, status in self._payment_repo.iter_status_rows()
            if not PAYMENT_TABLE.knows(normalize_status(status))
        ]

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    def _repair_missing_payment(self, violation: Violation) -> Optional[Repair]:
        log = logger.bind(order_id=str(violation.order_id), violation=violation.type)

        order = self._order_repo.get_by_id(violation.order_id)
        if order is None or order.total_amount <= 0:
            log.info("auditor.repair_skipped", reason="no_longer_applicable")
            return None

        try:
            payment = self._payment_service.create_payment(
                order.id,
                self._method_id,
                order.total_amount,
                PaymentStatus.PENDING,
                actor=self._actor,
            )
        except (DataInvariantViolation, OrderNotFound) as exc:
            log.info("auditor.repair_skipped", reason=str(exc))
            return None
        except (TransientStoreFailure, DatabaseError):
            log.exception("auditor.repair_failed")
            return None

        log.info("auditor.repaired", payment_id=str(payment.id))
        return Repair(
            violation_type=violation.type,
            order_id=order.id,
            payment_id=payment.id,
            amount=payment.amount,
            action="created_pending_payment",
        )


def build_consistency_auditor(**overrides) -> ConsistencyAuditor:
    from modules.orders.repositories import OrderDjangoRepository
    from modules.payments.repositories import PaymentDjangoRepository
    from modules.payments.services import build_payment_service

    return ConsistencyAuditor(
        order_repository=OrderDjangoRepository(),
        payment_repository=PaymentDjangoRepository(),
        payment_service=build_payment_service(),
        **overrides,
    )
