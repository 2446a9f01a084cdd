"""Inventory domain exceptions.

Raised by the stock store and the checkout flow when ledger rules are
violated.  The API layer translates them into HTTP responses.
"""

from __future__ import annotations


class VariantNotFound(Exception):
    """The requested product variant does not exist."""


class InsufficientStock(Exception):
    """Not enough available stock to honour a deduction."""


class ImmutableMovement(Exception):
    """A stock movement was about to be edited or deleted.

    Ledger entries are append-only; corrections are new ``adjustment`` rows.
    """
