"""Payment service layer.

``create_payment`` is the only way a payment row comes into existence:
checkout uses it, and so does the consistency auditor when it repairs an
order that has no payment.  Both therefore obey the same rules:

- the amount is positive;
- the initial status is ``pending`` or ``pending_approval``;
- the order has no payment yet.

``update_status`` moves a payment along its graph and drives the order
with it: an approval starts preparation, a rejection or cancellation
releases the order's reservation.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import UUID

import structlog
from django.db import transaction

from modules.consistency.conf import consistency_setting
from modules.consistency.constants import ViolationType
from modules.consistency.exceptions import DataInvariantViolation, InvalidTransition
from modules.consistency.transitions import (
    TransitionValidator,
    default_validator,
    normalize_status,
)
from modules.orders.constants import OrderStatus
from modules.orders.exceptions import OrderNotFound
from modules.payments.constants import CREATABLE_STATES, PaymentStatus
from modules.payments.exceptions import PaymentNotFound

if TYPE_CHECKING:
    from modules.consistency.compensation import OrderCompensator
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.models import Payment
    from modules.payments.repositories.interfaces import IPaymentRepository

logger = structlog.get_logger(__name__)


class PaymentService:
    """Application service for payment use-cases."""

    def __init__(
        self,
        payment_repository: IPaymentRepository,
        order_repository: IOrderRepository,
        compensator: OrderCompensator,
        validator: Optional[TransitionValidator] = None,
    ) -> None:
        self._payment_repo = payment_repository
        self._order_repo = order_repository
        self._compensator = compensator
        self._validator = validator or default_validator

    @transaction.atomic
    def create_payment(
        self,
        order_id: UUID,
        method_id: int,
        amount: Decimal,
        status: str = PaymentStatus.PENDING,
        actor: Optional[str] = None,
    ) -> Payment:
        """Create the payment of an order.

        Raises:
            OrderNotFound: order does not exist.
            DataInvariantViolation: non-positive amount, a status outside
                the creatable set, or the order already has a payment.
        """
        actor = actor or consistency_setting("PAYMENTS_ACTOR")
        order = self._order_repo.get_for_update(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=str(order_id), amount=str(amount), actor=actor)
        amount = Decimal(amount)
        if amount <= 0:
            log.warning("payment.create_rejected", reason="nonpositive_amount")
            raise DataInvariantViolation(
                ViolationType.PAYMENT_NONPOSITIVE_AMOUNT,
                f"Payment amount must be positive, got {amount}.",
                order_id=order_id,
            )

        status = normalize_status(status)
        if status not in CREATABLE_STATES:
            log.warning("payment.create_rejected", reason="invalid_status", status=status)
            raise DataInvariantViolation(
                ViolationType.PAYMENT_INVALID_STATUS,
                f"A payment cannot be created as {status!r}.",
                order_id=order_id,
            )

        if self._payment_repo.get_active_for_order(order_id) is not None:
            log.warning("payment.create_rejected", reason="duplicate")
            raise DataInvariantViolation(
                ViolationType.MULTIPLE_PAYMENTS,
                f"Order {order_id} already has a payment.",
                order_id=order_id,
            )

        payment = self._payment_repo.create(order_id, method_id, amount, status)
        log.info("payment.created", payment_id=str(payment.id), status=status)
        return payment

    @transaction.atomic
    def update_status(
        self,
        payment_id: UUID,
        new_status: str,
        actor: Optional[str] = None,
        notes: str = "",
    ) -> Payment:
        """Move a payment to *new_status* and cascade to its order.

        The order row is locked before the payment so this path and the
        reservation reaper serialise on the same lock.

        Without *actor* the change is attributed to
        ``CONSISTENCY["PAYMENTS_ACTOR"]``.

        Raises:
            PaymentNotFound: payment does not exist.
            TerminalState / InvalidTransition: rejected by the validator.
        """
        actor = actor or consistency_setting("PAYMENTS_ACTOR")
        current = self._payment_repo.get_by_id(payment_id)
        if current is None:
            raise PaymentNotFound(f"Payment {payment_id} not found.")

        order = self._order_repo.get_for_update(current.order_id)
        if order is None:
            raise OrderNotFound(f"Order {current.order_id} not found.")
        payment = self._payment_repo.get_for_update(payment_id)

        old_status = payment.status
        target = self._validator.check_payment_transition(old_status, new_status)
        if not self._payment_repo.compare_and_set_status(payment.id, old_status, target):
            raise InvalidTransition(
                f"Payment {payment_id} left {old_status!r} concurrently.",
                kind="payment",
                current=normalize_status(old_status),
                requested=target,
            )

        log = logger.bind(
            payment_id=str(payment_id),
            order_id=str(order.id),
            old_status=old_status,
            new_status=target,
            actor=actor,
        )
        log.info("payment.status_updated")
        self._cascade_to_order(order.id, order.status, target, actor, notes, log)

        payment.refresh_from_db()
        return payment

    def _cascade_to_order(self, order_id, order_status, payment_status, actor, notes, log):
        if payment_status == PaymentStatus.APPROVED:
            if order_status == OrderStatus.PENDING:
                self._order_repo.set_order_status(
                    order_id,
                    OrderStatus.PREPARING,
                    payment_status=PaymentStatus.APPROVED,
                    actor=actor,
                    notes=notes or "Payment approved",
                )
            return

        if payment_status in (PaymentStatus.REJECTED, PaymentStatus.CANCELLED):
            if order_status in (OrderStatus.PENDING, OrderStatus.PREPARING):
                self._compensator.release(
                    order_id,
                    order_status,
                    OrderStatus.CANCELLED,
                    actor=actor,
                    reason=notes or f"Payment {payment_status}",
                )
            elif order_status in (OrderStatus.COMPLETED, OrderStatus.RETURNED):
                log.warning("payment.failed_on_closed_order", order_status=order_status)


def build_payment_service() -> PaymentService:
    from modules.consistency.compensation import build_order_compensator
    from modules.orders.repositories import OrderDjangoRepository
    from modules.payments.repositories import PaymentDjangoRepository

    return PaymentService(
        payment_repository=PaymentDjangoRepository(),
        order_repository=OrderDjangoRepository(),
        compensator=build_order_compensator(),
    )
