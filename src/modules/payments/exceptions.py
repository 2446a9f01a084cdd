"""Payment domain exceptions."""

from __future__ import annotations


class PaymentNotFound(Exception):
    """The requested payment does not exist."""
