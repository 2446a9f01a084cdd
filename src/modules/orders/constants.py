"""Order domain constants.

Defines status choices and the order half of the transition table.
The graph is data: adding a state means adding a key here, not a branch
in the validator.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PREPARING = "preparing", "Preparing"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    RETURNED = "returned", "Returned"


VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset(
        {OrderStatus.COMPLETED, OrderStatus.RETURNED, OrderStatus.CANCELLED}
    ),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

INITIAL_STATES: frozenset[str] = frozenset({OrderStatus.PENDING})

ACTIVE_JOURNEY_STATES: frozenset[str] = frozenset(
    {OrderStatus.PREPARING, OrderStatus.COMPLETED, OrderStatus.RETURNED}
)

TERMINAL_STATES: frozenset[str] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.RETURNED}
)

# Statuses whose reserved stock must have been given back.
RELEASED_STATES: frozenset[str] = frozenset(
    {OrderStatus.CANCELLED, OrderStatus.RETURNED}
)
