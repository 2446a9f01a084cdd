"""Persistence helpers shared by the Django repositories."""

from __future__ import annotations

import functools
from typing import Any, Callable, TypeVar

import structlog
from django.db import InterfaceError, OperationalError

from modules.core.exceptions import TransientStoreFailure

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def store_operation(func: F) -> F:
    """Translate connection-level database errors into ``TransientStoreFailure``.

    Integrity and programming errors are left untouched: they signal a bug
    or a broken invariant, not something a retry can fix.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (OperationalError, InterfaceError) as exc:
            logger.warning(
                "store.transient_failure",
                operation=func.__qualname__,
                error=str(exc),
            )
            raise TransientStoreFailure(f"{func.__qualname__} failed: {exc}") from exc

    return wrapper  # type: ignore[return-value]
