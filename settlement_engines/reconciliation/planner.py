"""
Module: settlement_engines.reconciliation.planner
Responsibility:
    Build a ReconciliationPlan that brings every debt with a negative
    outstanding balance back to zero by trimming the allocations recorded
    against it, and optionally rescales payments whose allocations exceed
    the amount the payment actually moved.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Applying a plan is the
    job of settlement_services.reconciliation_service.

Invariants enforced:
    - Input snapshot is never mutated; the plan is new data.
    - Most recent payment is trimmed first (date descending, then payment
      id descending for equal dates).
    - No proposed allocation is negative; entries whose trimmed amount
      rounds to zero are dropped.
    - Proportional rescaling rounds to whole units and places the residual
      one unit at a time on the largest allocations first.
    - A snapshot with nothing to repair yields an empty plan.

Failure modes:
    - None raised for anomalies.  Excess that trimming cannot remove is
      reported as UnresolvedAnomaly on the plan.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal

from settlement_config.schema import ReconciliationSettings
from settlement_engines.ledger import breakdown
from settlement_engines.reconciliation.domain import (
    DebtReconciliation,
    PaymentAdjustment,
    ReconciliationPlan,
    ReconciliationStatus,
    UnresolvedAnomaly,
)
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.amounts import (
    WHOLE,
    ZERO,
    round_amount,
    round_whole,
    sum_amounts,
)
from settlement_kernel.domain.ledger import Allocation, LedgerSnapshot, Payment
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.reconciliation.planner")


def scale_down_proportionally(
    allocations: Sequence[Allocation],
    target_total: Decimal,
) -> tuple[Allocation, ...]:
    """
    Shrink ``allocations`` so their principal sums to ``target_total``.

    Each amount becomes ``round(amount * target / total)``; the rounding
    residual is then moved one unit at a time onto the largest scaled
    amounts first. Allocations scaled to zero are dropped. Allocations
    that already fit are returned unchanged.
    """
    total = sum_amounts(a.amount for a in allocations)
    if total <= target_total or total <= ZERO:
        return tuple(allocations)
    target_total = max(target_total, ZERO)

    scaled = [round_whole(a.amount * target_total / total) for a in allocations]
    residual = target_total - sum_amounts(scaled)
    order = sorted(range(len(scaled)), key=lambda i: (-scaled[i], i))

    i = 0
    while residual >= WHOLE or (residual < ZERO and any(s > ZERO for s in scaled)):
        index = order[i % len(order)]
        if residual > ZERO:
            scaled[index] += WHOLE
            residual -= WHOLE
        elif scaled[index] >= WHOLE:
            scaled[index] -= WHOLE
            residual += WHOLE
        i += 1

    return tuple(
        a.with_amount(amount)
        for a, amount in zip(allocations, scaled)
        if amount > ZERO
    )


def _trim_order(payments: Sequence[Payment]) -> list[Payment]:
    return sorted(payments, key=lambda p: (p.date, p.id), reverse=True)


class ReconciliationPlanner:
    """
    Plan repairs for over-allocated debts.

    Contract:
        ``plan`` is a pure function of the snapshot and settings.
    Non-goals:
        - Does not choose between competing repair policies; the trim order
          and residual placement are fixed.
        - Does not persist or apply anything.
    """

    def __init__(self, settings: ReconciliationSettings | None = None):
        self._settings = settings or ReconciliationSettings()

    @traced_engine("reconciliation", "1.0", fingerprint_fields=("cap_allocations_to_payment_total",))
    def plan(
        self,
        snapshot: LedgerSnapshot,
        cap_allocations_to_payment_total: bool | None = None,
        *,
        plan_id: str | None = None,
        created_at: datetime | None = None,
    ) -> ReconciliationPlan:
        """
        Build a repair plan for ``snapshot``.

        Args:
            snapshot: Debts and payments to inspect.
            cap_allocations_to_payment_total: Also rescale every payment
                whose allocations exceed its used amount. Defaults to the
                configured setting.
            plan_id: Identifier to stamp on the plan.
            created_at: Timestamp to stamp on the plan.
        """
        if cap_allocations_to_payment_total is None:
            cap_allocations_to_payment_total = self._settings.cap_allocations_to_payment_total

        working: dict[str, list[Allocation]] = {
            p.id: list(p.allocations) for p in snapshot.payments
        }
        notes: dict[str, list[str]] = defaultdict(list)
        debts: list[DebtReconciliation] = []
        unresolved: list[UnresolvedAnomaly] = []
        plan_notes: list[str] = []

        for debt in snapshot.debts:
            result = breakdown(debt, snapshot.payments)
            if not result.is_overallocated:
                continue

            excess = round_amount(result.excess, WHOLE, ROUND_CEILING)
            state = DebtReconciliation(serial_no=debt.serial_no, excess=excess)
            logger.info("reconciliation_debt_detected", extra={
                "debt_serial_no": debt.serial_no,
                "outstanding": str(result.outstanding),
                "excess": str(excess),
            })
            state = state.advance(ReconciliationStatus.PLANNING)

            remaining = self._trim_debt(
                debt.serial_no, excess, snapshot.payments, working, notes
            )

            if remaining > ZERO:
                message = (
                    f"Debt {debt.serial_no}: {remaining} of {excess} excess could not "
                    f"be removed by trimming its payments"
                )
                unresolved.append(UnresolvedAnomaly(debt.serial_no, remaining, message))
                plan_notes.append(message)
                logger.warning("reconciliation_unresolved_excess", extra={
                    "debt_serial_no": debt.serial_no,
                    "remaining_excess": str(remaining),
                })

            debts.append(state.advance(
                ReconciliationStatus.PLANNED,
                trimmed=excess - remaining,
                unresolved=remaining,
            ))

        if cap_allocations_to_payment_total:
            self._cap_payments(snapshot.payments, working, notes)

        adjustments = []
        for payment in snapshot.payments:
            after = tuple(working[payment.id])
            if after == payment.allocations:
                continue
            adjustments.append(PaymentAdjustment(
                payment_id=payment.id,
                before=payment.allocations,
                after=after,
                notes=tuple(notes[payment.id]),
            ))

        plan = ReconciliationPlan(
            adjustments=tuple(adjustments),
            debts=tuple(debts),
            unresolved=tuple(unresolved),
            notes=tuple(plan_notes),
            cap_allocations_to_payment_total=cap_allocations_to_payment_total,
            plan_id=plan_id,
            created_at=created_at,
        )
        logger.info("reconciliation_plan_built", extra={
            "plan_id": plan_id,
            "debt_count": len(debts),
            "adjustment_count": len(adjustments),
            "unresolved_count": len(unresolved),
        })
        return plan

    def _trim_debt(
        self,
        serial_no: str,
        excess: Decimal,
        payments: Sequence[Payment],
        working: dict[str, list[Allocation]],
        notes: dict[str, list[str]],
    ) -> Decimal:
        """Trim allocations to ``serial_no`` newest first; return what is left."""
        for payment in _trim_order(payments):
            if excess <= ZERO:
                break
            allocations = working[payment.id]
            index = next(
                (i for i, a in enumerate(allocations) if a.debt_serial_no == serial_no),
                None,
            )
            if index is None:
                continue
            current = allocations[index]
            if current.amount <= ZERO:
                continue

            reduction = min(current.amount, excess)
            after_amount = current.amount - reduction
            if round_whole(after_amount) == ZERO:
                del allocations[index]
                excess -= current.amount + current.cash_discount_amount
                notes[payment.id].append(
                    f"Removed allocation to {serial_no} of {current.amount}"
                    + (
                        f" (with cash discount {current.cash_discount_amount})"
                        if current.cash_discount_amount > ZERO else ""
                    )
                )
            else:
                allocations[index] = current.with_amount(after_amount)
                excess -= reduction
                notes[payment.id].append(
                    f"Reduced allocation to {serial_no} from {current.amount} "
                    f"to {after_amount}"
                )
        return max(excess, ZERO)

    def _cap_payments(
        self,
        payments: Sequence[Payment],
        working: dict[str, list[Allocation]],
        notes: dict[str, list[str]],
    ) -> None:
        """Rescale every payment whose allocations exceed its used amount."""
        for payment in payments:
            allocations = working[payment.id]
            total = sum_amounts(a.amount for a in allocations)
            used = payment.used_amount
            if total <= used:
                continue

            target = round_amount(used, WHOLE, ROUND_FLOOR)
            working[payment.id] = list(scale_down_proportionally(allocations, target))
            notes[payment.id].append(
                f"Scaled allocations from {total} to {target} to fit payment "
                f"total {used}"
            )
            logger.info("reconciliation_payment_capped", extra={
                "payment_id": payment.id,
                "allocated_total": str(total),
                "used_amount": str(used),
            })
