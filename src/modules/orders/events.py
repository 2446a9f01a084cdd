"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is placed at checkout."""


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when an order reaches ``cancelled``; drives customer notification."""

    reason: str = ""
    actor: str = ""


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an order status changes to anything but ``cancelled``."""

    old_status: str = ""
    new_status: str = ""
