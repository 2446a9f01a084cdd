"""Payment domain constants.

Defines status choices and the payment half of the transition table.
``approved -> rejected`` is the only edge out of the active journey and
exists for chargebacks; an approved payment is never cancelled.
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PENDING_APPROVAL = "pending_approval", "Pending approval"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    CANCELLED = "cancelled", "Cancelled"


VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    PaymentStatus.PENDING: frozenset(
        {
            PaymentStatus.PENDING_APPROVAL,
            PaymentStatus.APPROVED,
            PaymentStatus.REJECTED,
            PaymentStatus.CANCELLED,
        }
    ),
    PaymentStatus.PENDING_APPROVAL: frozenset(
        {PaymentStatus.APPROVED, PaymentStatus.REJECTED}
    ),
    PaymentStatus.APPROVED: frozenset({PaymentStatus.REJECTED}),
    PaymentStatus.REJECTED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}

INITIAL_STATES: frozenset[str] = frozenset({PaymentStatus.PENDING})

ACTIVE_JOURNEY_STATES: frozenset[str] = frozenset(
    {PaymentStatus.PENDING_APPROVAL, PaymentStatus.APPROVED}
)

TERMINAL_STATES: frozenset[str] = frozenset(
    {PaymentStatus.REJECTED, PaymentStatus.CANCELLED}
)

# Statuses a payment row may be created with.
CREATABLE_STATES: frozenset[str] = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.PENDING_APPROVAL}
)
