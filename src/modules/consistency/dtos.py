"""Consistency DTOs.

Immutable result records produced by the reaper and the auditor, shaped
for the operator report (``model_dump(mode="json")``) and for any
downstream message translator.

- ``CombinationWarning``: an inconsistent order/payment status pair.
- ``Violation``: one audited invariant breach.
- ``Repair``: one auto-fix applied by the auditor.
- ``AuditReport``: violations plus repairs of a single audit run.
- ``ReleaseOutcome``: stock and payment writes of one order release.
- ``SkippedOrder`` / ``SweepResult``: outcome of a reaper sweep.
"""

from __future__ import annotations

from collections import Counter
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from modules.consistency.constants import Severity


class CombinationWarning(BaseModel):
    """Describes why an order status and a payment status disagree."""

    model_config = ConfigDict(frozen=True)

    severity: Severity
    message: str
    action_suggested: str


class Violation(BaseModel):
    """A single invariant violation found by the auditor."""

    model_config = ConfigDict(frozen=True)

    type: str
    severity: Severity
    message: str
    order_id: Optional[UUID] = None
    payment_ids: Tuple[UUID, ...] = ()
    details: Dict[str, Any] = Field(default_factory=dict)

    def sort_key(self) -> Tuple[str, str, Tuple[str, ...]]:
        return (
            self.type,
            str(self.order_id or ""),
            tuple(str(pid) for pid in self.payment_ids),
        )


class Repair(BaseModel):
    """An auto-fix applied for one violation."""

    model_config = ConfigDict(frozen=True)

    violation_type: str
    order_id: UUID
    payment_id: UUID
    amount: Decimal
    action: str


class AuditReport(BaseModel):
    """Outcome of one ``ConsistencyAuditor.audit`` run."""

    model_config = ConfigDict(frozen=True)

    violations: List[Violation] = Field(default_factory=list)
    repaired: List[Repair] = Field(default_factory=list)
    failed_checks: List[str] = Field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.violations and not self.failed_checks

    def summary(self) -> Dict[str, Any]:
        """Counts by severity and by type, for dashboards and logs."""
        by_severity = Counter(v.severity.value for v in self.violations)
        by_type = Counter(v.type for v in self.violations)
        return {
            "total": len(self.violations),
            "repaired": len(self.repaired),
            "by_severity": {s.value: by_severity.get(s.value, 0) for s in Severity},
            "by_type": dict(sorted(by_type.items())),
            "failed_checks": list(self.failed_checks),
        }


class SkippedOrder(BaseModel):
    """An expired order the reaper looked at but did not cancel."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    reason: str


class SweepResult(BaseModel):
    """Best-effort counts of one ``ReservationReaper.sweep`` run."""

    model_config = ConfigDict(frozen=True)

    units_released: int = 0
    orders_cancelled: int = 0
    cancelled_order_ids: List[UUID] = Field(default_factory=list)
    skipped: List[SkippedOrder] = Field(default_factory=list)
    failed: List[UUID] = Field(default_factory=list)


class ReleaseOutcome(BaseModel):
    """What one successful order release wrote."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    old_status: str
    new_status: str
    units_released: int = 0
    lines_released: int = 0
    payment_cancelled: bool = False
