"""
Module: settlement_engines.ledger
Responsibility:
    Derive paid / cash-discount / outstanding figures for debt entries from
    the payments that reference them, and detect ledger anomalies.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - outstanding == effective_original - total_paid - total_cash_discount,
      exactly, with no rounding.
    - Nothing is mutated; every function returns new values.

Failure modes:
    - None raised for anomalies: they are returned as ``Anomaly`` records so
      callers can display them and let a human decide.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from settlement_config.schema import ReconciliationSettings
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.amounts import ZERO, sum_amounts
from settlement_kernel.domain.ledger import DebtEntry, LedgerSnapshot, Payment
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")


class AnomalyKind(str, Enum):
    """Kinds of ledger drift the validator reports."""

    OVER_ALLOCATION = "over_allocation"  # Debt outstanding below zero
    OVER_COMMITMENT = "over_commitment"  # Payment allocates more than it moved
    STALE_REFERENCE = "stale_reference"  # Allocation names an unknown debt
    DUPLICATE_PAYMENT_REFERENCE = "duplicate_payment_reference"
    SETTLEMENT_MISMATCH = "settlement_mismatch"  # Bank amount != requested amount


@dataclass(frozen=True)
class DebtBreakdown:
    """Paid, discount and outstanding figures for one debt."""

    serial_no: str
    effective_original: Decimal
    total_paid: Decimal
    total_cash_discount: Decimal
    outstanding: Decimal

    @property
    def is_overallocated(self) -> bool:
        return self.outstanding < ZERO

    @property
    def excess(self) -> Decimal:
        """How far below zero the outstanding balance has gone."""
        return -self.outstanding if self.outstanding < ZERO else ZERO


@dataclass(frozen=True)
class Anomaly:
    """One detected ledger anomaly, with the size of the problem."""

    kind: AnomalyKind
    magnitude: Decimal
    message: str
    debt_serial_no: str | None = None
    payment_id: str | None = None


def effective_original(debt: DebtEntry) -> Decimal:
    """Adjusted original when present, otherwise the original amount."""
    return debt.effective_original


def breakdown(debt: DebtEntry, payments: Iterable[Payment]) -> DebtBreakdown:
    """Fold every allocation against ``debt`` into paid / discount / outstanding."""
    total_paid = ZERO
    total_cd = ZERO
    for payment in payments:
        allocation = payment.allocation_for(debt.serial_no)
        if allocation is None:
            continue
        total_paid += allocation.amount
        total_cd += allocation.cash_discount_amount

    original = debt.effective_original
    return DebtBreakdown(
        serial_no=debt.serial_no,
        effective_original=original,
        total_paid=total_paid,
        total_cash_discount=total_cd,
        outstanding=original - total_paid - total_cd,
    )


def _over_commitment(payment: Payment, tolerance: Decimal) -> Anomaly | None:
    overflow = payment.allocated_total - payment.used_amount
    if overflow > tolerance:
        return Anomaly(
            kind=AnomalyKind.OVER_COMMITMENT,
            magnitude=overflow,
            message=(
                f"Allocations total {payment.allocated_total} exceed "
                f"payment total {payment.used_amount} in {payment.id}"
            ),
            payment_id=payment.id,
        )
    return None


def validate(
    debt: DebtEntry,
    payments: Sequence[Payment],
    tolerance: Decimal = Decimal("1"),
) -> tuple[Anomaly, ...]:
    """
    Check one debt and the payments that reference it.

    Reports OVER_ALLOCATION when the debt's outstanding is negative and
    OVER_COMMITMENT for each referencing payment whose allocations exceed
    its used amount by more than ``tolerance``.
    """
    anomalies: list[Anomaly] = []
    result = breakdown(debt, payments)
    if result.is_overallocated:
        anomalies.append(Anomaly(
            kind=AnomalyKind.OVER_ALLOCATION,
            magnitude=result.excess,
            message=f"Overpaid by {result.excess}",
            debt_serial_no=debt.serial_no,
        ))

    for payment in payments:
        if payment.allocation_for(debt.serial_no) is None:
            continue
        anomaly = _over_commitment(payment, tolerance)
        if anomaly is not None:
            anomalies.append(anomaly)
    return tuple(anomalies)


def validate_ledger(
    snapshot: LedgerSnapshot,
    tolerance: Decimal = Decimal("1"),
) -> tuple[Anomaly, ...]:
    """
    Check a whole snapshot.

    Besides over-allocation and over-commitment, flags allocations naming
    unknown serial numbers, payment references used more than once, and
    payments whose settlement amount differs from the requested amount.
    Each payment-level anomaly is reported once.
    """
    anomalies: list[Anomaly] = []

    for debt in snapshot.debts:
        result = breakdown(debt, snapshot.payments)
        if result.is_overallocated:
            anomalies.append(Anomaly(
                kind=AnomalyKind.OVER_ALLOCATION,
                magnitude=result.excess,
                message=f"Overpaid by {result.excess}",
                debt_serial_no=debt.serial_no,
            ))

    reference_counts = Counter(
        p.reference for p in snapshot.payments if p.reference
    )
    for payment in snapshot.payments:
        anomaly = _over_commitment(payment, tolerance)
        if anomaly is not None:
            anomalies.append(anomaly)

        for allocation in payment.allocations:
            if snapshot.debt(allocation.debt_serial_no) is None:
                anomalies.append(Anomaly(
                    kind=AnomalyKind.STALE_REFERENCE,
                    magnitude=allocation.amount,
                    message=(
                        f"Payment {payment.id} allocates to missing debt "
                        f"{allocation.debt_serial_no}"
                    ),
                    debt_serial_no=allocation.debt_serial_no,
                    payment_id=payment.id,
                ))

        if payment.reference and reference_counts[payment.reference] > 1:
            anomalies.append(Anomaly(
                kind=AnomalyKind.DUPLICATE_PAYMENT_REFERENCE,
                magnitude=Decimal(reference_counts[payment.reference]),
                message=f"Duplicate payment reference {payment.reference}",
                payment_id=payment.id,
            ))

        if payment.settlement_amount is not None:
            gap = abs(payment.settlement_amount - payment.amount)
            if gap > tolerance:
                anomalies.append(Anomaly(
                    kind=AnomalyKind.SETTLEMENT_MISMATCH,
                    magnitude=gap,
                    message=(
                        f"Settlement amount {payment.settlement_amount} differs "
                        f"from amount {payment.amount} in {payment.id}"
                    ),
                    payment_id=payment.id,
                ))

    return tuple(anomalies)


class LedgerCalculator:
    """
    Snapshot-level ledger derivations with injected tolerances.

    Contract:
        Pure functions over a ``LedgerSnapshot``.  No I/O.
    """

    def __init__(self, settings: ReconciliationSettings | None = None):
        self._settings = settings or ReconciliationSettings()

    @property
    def tolerance(self) -> Decimal:
        return self._settings.over_commitment_tolerance

    def breakdown(self, debt: DebtEntry, payments: Iterable[Payment]) -> DebtBreakdown:
        return breakdown(debt, payments)

    def breakdowns(self, snapshot: LedgerSnapshot) -> tuple[DebtBreakdown, ...]:
        """One breakdown per debt, in snapshot order."""
        return tuple(breakdown(d, snapshot.payments) for d in snapshot.debts)

    def total_outstanding(self, snapshot: LedgerSnapshot) -> Decimal:
        return sum_amounts(b.outstanding for b in self.breakdowns(snapshot))

    @traced_engine("ledger_validation", "1.0", fingerprint_fields=("snapshot",))
    def validate(self, snapshot: LedgerSnapshot) -> tuple[Anomaly, ...]:
        anomalies = validate_ledger(snapshot, self.tolerance)
        if anomalies:
            logger.warning("ledger_anomalies_detected", extra={
                "anomaly_count": len(anomalies),
                "kinds": sorted({a.kind.value for a in anomalies}),
            })
        return anomalies
