"""
Reconciliation Domain Objects.

Immutable value objects describing a repair plan for negative outstanding
balances: the per-payment allocation changes, the per-debt progress through
the reconciliation lifecycle, and anything that could not be resolved.
These are pure domain objects with no I/O dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from settlement_kernel.domain.amounts import ZERO, sum_amounts
from settlement_kernel.domain.ledger import Allocation
from settlement_kernel.exceptions import InvalidPlanTransitionError
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation.domain")


class ReconciliationStatus(str, Enum):
    """Lifecycle of a debt under reconciliation, and of the plan itself."""

    DETECTED = "detected"    # Negative outstanding found
    PLANNING = "planning"    # Trimming in progress
    PLANNED = "planned"      # Changes proposed, awaiting review
    APPLIED = "applied"      # Changes committed
    DISCARDED = "discarded"  # Changes rejected


_TRANSITIONS: dict[ReconciliationStatus, frozenset[ReconciliationStatus]] = {
    ReconciliationStatus.DETECTED: frozenset({ReconciliationStatus.PLANNING}),
    ReconciliationStatus.PLANNING: frozenset({ReconciliationStatus.PLANNED}),
    ReconciliationStatus.PLANNED: frozenset({
        ReconciliationStatus.APPLIED,
        ReconciliationStatus.DISCARDED,
    }),
    ReconciliationStatus.APPLIED: frozenset(),
    ReconciliationStatus.DISCARDED: frozenset(),
}


def check_transition(
    current: ReconciliationStatus,
    requested: ReconciliationStatus,
) -> ReconciliationStatus:
    """Return ``requested`` if reachable from ``current``, else raise."""
    if requested not in _TRANSITIONS[current]:
        logger.warning("reconciliation_invalid_transition", extra={
            "current": current.value,
            "requested": requested.value,
        })
        raise InvalidPlanTransitionError(current.value, requested.value)
    return requested


def _allocations_to_list(allocations: tuple[Allocation, ...]) -> list[dict[str, str]]:
    return [a.to_dict() for a in allocations]


@dataclass(frozen=True, slots=True)
class UnresolvedAnomaly:
    """Excess that trimming the debt's own payments could not remove."""

    debt_serial_no: str
    remaining_excess: Decimal
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "debt_serial_no": self.debt_serial_no,
            "remaining_excess": str(self.remaining_excess),
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class DebtReconciliation:
    """Progress of one over-allocated debt through the lifecycle."""

    serial_no: str
    excess: Decimal
    status: ReconciliationStatus = ReconciliationStatus.DETECTED
    trimmed: Decimal = ZERO
    unresolved: Decimal = ZERO

    def advance(self, status: ReconciliationStatus, **changes: Any) -> DebtReconciliation:
        """Move to ``status``, optionally updating other fields."""
        check_transition(self.status, status)
        return replace(self, status=status, **changes)

    @property
    def is_resolved(self) -> bool:
        return self.unresolved == ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "serial_no": self.serial_no,
            "excess": str(self.excess),
            "status": self.status.value,
            "trimmed": str(self.trimmed),
            "unresolved": str(self.unresolved),
        }


@dataclass(frozen=True, slots=True)
class PaymentAdjustment:
    """
    Proposed replacement of one payment's allocation list.

    ``before`` doubles as the precondition checked at apply time: the
    persisted allocations must still equal it.
    """

    payment_id: str
    before: tuple[Allocation, ...]
    after: tuple[Allocation, ...]
    notes: tuple[str, ...] = ()

    @property
    def reduction(self) -> Decimal:
        """Principal removed from the payment's allocations."""
        return (
            sum_amounts(a.amount for a in self.before)
            - sum_amounts(a.amount for a in self.after)
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "payment_id": self.payment_id,
            "before": _allocations_to_list(self.before),
            "after": _allocations_to_list(self.after),
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class ReconciliationPlan:
    """
    Reviewable set of allocation changes.

    Pure data: building a plan changes nothing. ``mark_applied`` and
    ``mark_discarded`` return new plans; each may happen only once.
    """

    adjustments: tuple[PaymentAdjustment, ...] = ()
    debts: tuple[DebtReconciliation, ...] = ()
    unresolved: tuple[UnresolvedAnomaly, ...] = ()
    notes: tuple[str, ...] = ()
    cap_allocations_to_payment_total: bool = False
    status: ReconciliationStatus = ReconciliationStatus.PLANNED
    plan_id: str | None = None
    created_at: datetime | None = None

    @property
    def is_empty(self) -> bool:
        """True when the plan proposes no allocation changes."""
        return not self.adjustments

    @property
    def payment_ids(self) -> tuple[str, ...]:
        return tuple(a.payment_id for a in self.adjustments)

    def adjustment_for(self, payment_id: str) -> PaymentAdjustment | None:
        for adjustment in self.adjustments:
            if adjustment.payment_id == payment_id:
                return adjustment
        return None

    def _finish(self, status: ReconciliationStatus) -> ReconciliationPlan:
        check_transition(self.status, status)
        return replace(
            self,
            status=status,
            debts=tuple(d.advance(status) for d in self.debts),
        )

    def mark_applied(self) -> ReconciliationPlan:
        return self._finish(ReconciliationStatus.APPLIED)

    def mark_discarded(self) -> ReconciliationPlan:
        return self._finish(ReconciliationStatus.DISCARDED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "status": self.status.value,
            "cap_allocations_to_payment_total": self.cap_allocations_to_payment_total,
            "adjustments": [a.to_dict() for a in self.adjustments],
            "debts": [d.to_dict() for d in self.debts],
            "unresolved": [u.to_dict() for u in self.unresolved],
            "notes": list(self.notes),
        }
