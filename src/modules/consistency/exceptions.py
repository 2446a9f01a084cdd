"""Consistency core exceptions.

Taxonomy:
- ``InvalidTransition``: the requested change is not an allowed edge, or a
  cross-entity rule (order vs. payment) forbids it.
- ``TerminalState``: the entity is already terminal; no edge leaves it.
- ``DataInvariantViolation``: a write would create one of the audited
  invariant violations.
- ``TransientStoreFailure``: one store read/write failed; retry per item.

``InvalidTransition`` and ``TerminalState`` are siblings so callers can
tell "not allowed" from "already finished" and word their messages
differently.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from modules.core.exceptions import TransientStoreFailure

__all__ = [
    "DataInvariantViolation",
    "InvalidTransition",
    "TerminalState",
    "TransientStoreFailure",
    "TransitionError",
]


class TransitionError(Exception):
    """Base class for rejected status changes."""

    def __init__(self, message: str, *, kind: str, current: str, requested: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.current = current
        self.requested = requested


class InvalidTransition(TransitionError):
    """The requested status change is absent from the allowed-edge set."""


class TerminalState(TransitionError):
    """The entity is in a terminal status and cannot change any more."""


class DataInvariantViolation(Exception):
    """A write would break one of the audited data-model invariants."""

    def __init__(
        self,
        violation_type: str,
        message: str,
        *,
        order_id: Optional[UUID] = None,
    ) -> None:
        super().__init__(message)
        self.violation_type = violation_type
        self.order_id = order_id
