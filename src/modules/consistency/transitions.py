"""Order and payment state machine.

``TransitionTable`` holds one entity's graph as plain data; the
``TransitionValidator`` answers questions about it and applies the
cross-entity rules that tie an order's status to its active payment:

- an order enters ``preparing`` or ``completed`` only with an
  ``approved`` payment;
- an order is never cancelled while its payment is ``approved``.

Every check is pure.  Callers persist the accepted transition together
with any compensating writes in their own transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

import structlog

from modules.consistency.constants import EntityKind, Severity
from modules.consistency.dtos import CombinationWarning
from modules.consistency.exceptions import InvalidTransition, TerminalState
from modules.orders import constants as order_constants
from modules.orders.constants import OrderStatus
from modules.payments import constants as payment_constants
from modules.payments.constants import PaymentStatus

logger = structlog.get_logger(__name__)


def normalize_status(value: Optional[str]) -> str:
    """Case- and whitespace-insensitive form used for every lookup."""
    if value is None:
        return ""
    return str(value).strip().lower()


@dataclass(frozen=True)
class TransitionTable:
    """Adjacency sets for one entity kind."""

    kind: str
    edges: Mapping[str, frozenset[str]]
    initial: frozenset[str]
    active_journey: frozenset[str]
    terminal: frozenset[str]

    @property
    def states(self) -> frozenset[str]:
        return frozenset(self.edges)

    def targets(self, status: str) -> frozenset[str]:
        return self.edges.get(normalize_status(status), frozenset())

    def knows(self, status: Optional[str]) -> bool:
        return normalize_status(status) in self.edges


ORDER_TABLE = TransitionTable(
    kind=EntityKind.ORDER,
    edges=order_constants.VALID_TRANSITIONS,
    initial=order_constants.INITIAL_STATES,
    active_journey=order_constants.ACTIVE_JOURNEY_STATES,
    terminal=order_constants.TERMINAL_STATES,
)

PAYMENT_TABLE = TransitionTable(
    kind=EntityKind.PAYMENT,
    edges=payment_constants.VALID_TRANSITIONS,
    initial=payment_constants.INITIAL_STATES,
    active_journey=payment_constants.ACTIVE_JOURNEY_STATES,
    terminal=payment_constants.TERMINAL_STATES,
)

# Order statuses that require an approved payment to be entered.
_PAYMENT_GATED_ORDER_STATES = frozenset({OrderStatus.PREPARING, OrderStatus.COMPLETED})

# Order statuses that only make sense once the payment was approved.
_ADVANCED_ORDER_STATES = frozenset(
    {OrderStatus.PREPARING, OrderStatus.COMPLETED, OrderStatus.RETURNED}
)

_UNSETTLED_PAYMENT_STATES = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.PENDING_APPROVAL}
)
_FAILED_PAYMENT_STATES = frozenset({PaymentStatus.REJECTED, PaymentStatus.CANCELLED})


class TransitionValidator:
    """Accepts or rejects status changes for orders and payments."""

    def __init__(
        self,
        order_table: TransitionTable = ORDER_TABLE,
        payment_table: TransitionTable = PAYMENT_TABLE,
    ) -> None:
        self._tables = {
            EntityKind.ORDER: order_table,
            EntityKind.PAYMENT: payment_table,
        }

    def table(self, kind: str) -> TransitionTable:
        try:
            return self._tables[normalize_status(kind)]
        except KeyError:
            raise ValueError(f"Unknown entity kind {kind!r}.") from None

    # ------------------------------------------------------------------
    # Graph queries
    # ------------------------------------------------------------------

    def can_transition(self, kind: str, current: str, requested: str) -> bool:
        table = self.table(kind)
        source = normalize_status(current)
        target = normalize_status(requested)
        if not table.knows(source) or not table.knows(target):
            return False
        return target in table.targets(source)

    def can_transition_order(self, current: str, requested: str) -> bool:
        return self.can_transition(EntityKind.ORDER, current, requested)

    def can_transition_payment(self, current: str, requested: str) -> bool:
        return self.can_transition(EntityKind.PAYMENT, current, requested)

    def is_initial(self, status: str, kind: str) -> bool:
        return normalize_status(status) in self.table(kind).initial

    def is_terminal(self, status: str, kind: str) -> bool:
        return normalize_status(status) in self.table(kind).terminal

    def is_in_active_journey(self, status: str, kind: str) -> bool:
        return normalize_status(status) in self.table(kind).active_journey

    def can_cancel(self, status: str, kind: str) -> bool:
        """Only initial statuses outside the active journey may be cancelled."""
        return self.is_initial(status, kind) and not self.is_in_active_journey(
            status, kind
        )

    # ------------------------------------------------------------------
    # Raising checks
    # ------------------------------------------------------------------

    def check_order_transition(
        self,
        current: str,
        requested: str,
        *,
        payment_status: Optional[str],
    ) -> str:
        """Validate an order status change against its active payment.

        Returns the normalised target status.

        Raises:
            TerminalState: the order is already terminal.
            InvalidTransition: the edge does not exist, or the payment
                status forbids it.
        """
        target = self._check_edge(EntityKind.ORDER, current, requested)
        payment = normalize_status(payment_status)

        if target in _PAYMENT_GATED_ORDER_STATES and payment != PaymentStatus.APPROVED:
            raise InvalidTransition(
                f"Order cannot move to {target!r} while its payment is "
                f"{payment or 'missing'!r}.",
                kind=EntityKind.ORDER,
                current=normalize_status(current),
                requested=target,
            )
        if target == OrderStatus.CANCELLED and payment == PaymentStatus.APPROVED:
            raise InvalidTransition(
                "Order cannot be cancelled while its payment is approved.",
                kind=EntityKind.ORDER,
                current=normalize_status(current),
                requested=target,
            )
        return target

    def check_payment_transition(self, current: str, requested: str) -> str:
        """Validate a payment status change; returns the normalised target."""
        return self._check_edge(EntityKind.PAYMENT, current, requested)

    def _check_edge(self, kind: str, current: str, requested: str) -> str:
        table = self.table(kind)
        source = normalize_status(current)
        target = normalize_status(requested)
        log = logger.bind(kind=kind, current=source, requested=target)

        if source in table.terminal:
            log.warning("transition.terminal_state")
            raise TerminalState(
                f"{kind.capitalize()} is already {source!r} and cannot change.",
                kind=kind,
                current=source,
                requested=target,
            )
        if not self.can_transition(kind, source, target):
            log.warning("transition.invalid")
            raise InvalidTransition(
                f"{kind.capitalize()} cannot move from {source!r} to {target!r}.",
                kind=kind,
                current=source,
                requested=target,
            )
        return target

    # ------------------------------------------------------------------
    # Order/payment combination
    # ------------------------------------------------------------------

    def validate_combination(
        self, order_status: str, payment_status: Optional[str]
    ) -> bool:
        return self.describe_combination(order_status, payment_status) is None

    def describe_combination(
        self, order_status: str, payment_status: Optional[str]
    ) -> Optional[CombinationWarning]:
        """Explain what is wrong with an order/payment status pair.

        ``payment_status=None`` means the order has no payment row.
        Returns ``None`` for consistent pairs.
        """
        order = normalize_status(order_status)
        payment = normalize_status(payment_status)

        if not ORDER_TABLE.knows(order) or (payment and not PAYMENT_TABLE.knows(payment)):
            return CombinationWarning(
                severity=Severity.CRITICAL,
                message=f"Unknown status pair: order {order!r}, payment {payment!r}.",
                action_suggested="Correct the stored status before any other change.",
            )

        if not payment:
            if order in _ADVANCED_ORDER_STATES:
                return CombinationWarning(
                    severity=Severity.WARNING,
                    message=f"Order in {order!r} has no payment; it needs an approved one.",
                    action_suggested="Create and approve a payment or cancel the order.",
                )
            return None

        if order == OrderStatus.COMPLETED and payment in _FAILED_PAYMENT_STATES:
            return CombinationWarning(
                severity=Severity.CRITICAL,
                message=f"Order is {order!r} but its payment is {payment!r}.",
                action_suggested="Review now: contact the customer and check stock.",
            )
        if order in _ADVANCED_ORDER_STATES and payment in _UNSETTLED_PAYMENT_STATES:
            return CombinationWarning(
                severity=Severity.WARNING,
                message=f"Order in {order!r} should have an approved payment, not {payment!r}.",
                action_suggested="Review the payment and approve it if appropriate.",
            )
        if order == OrderStatus.PREPARING and payment in _FAILED_PAYMENT_STATES:
            return CombinationWarning(
                severity=Severity.WARNING,
                message=f"Order in {order!r} with payment {payment!r} should be cancelled.",
                action_suggested="Cancel the order and restore its stock.",
            )
        if order == OrderStatus.RETURNED and payment in _FAILED_PAYMENT_STATES:
            return CombinationWarning(
                severity=Severity.WARNING,
                message=f"Returned order with payment {payment!r}.",
                action_suggested="Review the order and payment for consistency.",
            )
        if order == OrderStatus.CANCELLED and payment == PaymentStatus.APPROVED:
            return CombinationWarning(
                severity=Severity.WARNING,
                message="Cancelled order with an approved payment.",
                action_suggested="Check the stock was restored and refund the payment.",
            )
        return None


default_validator = TransitionValidator()
