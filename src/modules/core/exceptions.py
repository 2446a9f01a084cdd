"""Infrastructure-level exceptions shared by every store.

Domain modules raise their own business exceptions; this module only
covers failures of the persistence layer itself.
"""

from __future__ import annotations


class TransientStoreFailure(Exception):
    """A single read/write against the stock or order/payment store failed.

    Raised instead of the driver's ``OperationalError`` so callers can retry
    one line item or one order without knowing which backend is in use.
    """
