"""Consistency core constants: entity kinds, violation tags, severities."""

from django.db import models


class EntityKind(models.TextChoices):
    ORDER = "order", "Order"
    PAYMENT = "payment", "Payment"


class ViolationType(models.TextChoices):
    ORDER_WITHOUT_PAYMENT = "ORDER_WITHOUT_PAYMENT", "Order without payment"
    MULTIPLE_PAYMENTS = "MULTIPLE_PAYMENTS", "Multiple payments"
    PAYMENT_NONPOSITIVE_AMOUNT = (
        "PAYMENT_NONPOSITIVE_AMOUNT",
        "Payment with non-positive amount",
    )
    PAYMENT_INVALID_STATUS = "PAYMENT_INVALID_STATUS", "Payment with invalid status"


class Severity(models.TextChoices):
    CRITICAL = "critical", "Critical"
    HIGH = "high", "High"
    MEDIUM = "medium", "Medium"
    WARNING = "warning", "Warning"


VIOLATION_SEVERITY: dict[str, str] = {
    ViolationType.ORDER_WITHOUT_PAYMENT: Severity.CRITICAL,
    ViolationType.MULTIPLE_PAYMENTS: Severity.HIGH,
    ViolationType.PAYMENT_NONPOSITIVE_AMOUNT: Severity.MEDIUM,
    ViolationType.PAYMENT_INVALID_STATUS: Severity.MEDIUM,
}

# Only this category may be repaired without a human in the loop.
AUTO_FIXABLE: frozenset[str] = frozenset({ViolationType.ORDER_WITHOUT_PAYMENT})
