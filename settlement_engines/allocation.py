"""
Module: settlement_engines.allocation
Responsibility:
    Split one payment (principal plus cash discount) across an ordered list
    of caller-selected debts, and report, per debt, what each payment
    contributed to it.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import settlement_kernel/domain, settlement_config.schema and
    the engine tracer.

Invariants enforced:
    - Conservation: sum of allocated principal equals the payment amount
      (within the configured rounding tolerance for caller-supplied exact
      splits) and sum of apportioned cash discount equals the discount
      exactly.
    - Rounding: principal computed by the engine is rounded to whole units
      (ROUND_HALF_UP) on running totals, so every share is non-negative and
      the last funded target absorbs the residual.
    - The engine never chooses which debts to pay; it only splits.

Failure modes:
    - InsufficientAmountError: exact split requests more than the payment.
    - AllocationMismatchError: exact split leaves more than the tolerance
      unplaced.
    - OverCommitmentError: sequential fill asked to settle more than the
      targets still owe.
    - ValueError: a target is missing the field its strategy needs.

Usage:
    from settlement_engines.allocation import AllocationEngine, AllocationStrategy, DebtRef

    engine = AllocationEngine()
    result = engine.allocate(
        payment_amount=Decimal("9500"),
        cash_discount_amount=Decimal("500"),
        targets=[
            DebtRef("S-1", requested_amount=Decimal("6000")),
            DebtRef("S-2", requested_amount=Decimal("3500")),
        ],
        strategy=AllocationStrategy.EXACT,
    )
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from settlement_config.schema import AllocationSettings
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.amounts import (
    ZERO,
    round_amount,
    round_whole,
    sum_amounts,
    to_amount,
    to_optional_amount,
)
from settlement_kernel.domain.ledger import Allocation, Payment
from settlement_kernel.exceptions import (
    AllocationMismatchError,
    InsufficientAmountError,
    OverCommitmentError,
)
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


class AllocationStrategy(str, Enum):
    """How a payment is split across its targets."""

    EXACT = "exact"  # Caller names the amount per target
    SEQUENTIAL_FILL = "sequential_fill"  # Fill each target in order until exhausted


@dataclass(frozen=True)
class DebtRef:
    """
    A debt selected to receive part of a payment.

    ``outstanding`` is required by SEQUENTIAL_FILL; ``requested_amount`` is
    required by EXACT.
    """

    serial_no: str
    outstanding: Decimal | None = None
    requested_amount: Decimal | None = None

    def __post_init__(self) -> None:
        if not self.serial_no:
            raise ValueError("DebtRef.serial_no is required")
        object.__setattr__(self, "outstanding", to_optional_amount(self.outstanding))
        object.__setattr__(
            self, "requested_amount", to_optional_amount(self.requested_amount)
        )
        if self.requested_amount is not None and self.requested_amount < ZERO:
            raise ValueError("DebtRef.requested_amount cannot be negative")


@dataclass(frozen=True)
class AllocationResult:
    """
    Outcome of splitting one payment.

    Guarantees:
        - ``total_cash_discount == cash_discount_amount``.
        - ``total_allocated + unallocated == payment_amount``.
    """

    payment_amount: Decimal
    cash_discount_amount: Decimal
    strategy: AllocationStrategy
    allocations: tuple[Allocation, ...]

    @property
    def total_allocated(self) -> Decimal:
        return sum_amounts(a.amount for a in self.allocations)

    @property
    def total_cash_discount(self) -> Decimal:
        return sum_amounts(a.cash_discount_amount for a in self.allocations)

    @property
    def unallocated(self) -> Decimal:
        return self.payment_amount - self.total_allocated


@dataclass(frozen=True)
class PaymentContribution:
    """What one payment contributed to one debt, for reporting."""

    payment_id: str
    payment_date: date
    actual_paid: Decimal
    cash_discount: Decimal

    @property
    def settled(self) -> Decimal:
        return self.actual_paid + self.cash_discount


def apportion(total: Decimal, weights: Sequence[Decimal], basis: Decimal | None = None) -> tuple[Decimal, ...]:
    """
    Split ``total`` in proportion to ``weights`` on whole units.

    Each share is ``round(total * w_i / basis)`` computed on running totals,
    so shares never go negative; the last non-zero weight absorbs whatever
    residual remains. ``basis`` defaults to the sum of the weights.
    """
    if total == ZERO:
        return tuple(ZERO for _ in weights)

    weight_sum = sum_amounts(weights)
    basis = weight_sum if basis is None else basis
    if weight_sum <= ZERO or basis <= ZERO:
        raise ValueError(f"Cannot apportion {total} over zero weights")

    last_funded = max(i for i, w in enumerate(weights) if w > ZERO)
    shares: list[Decimal] = []
    running = ZERO
    placed = ZERO
    for i, weight in enumerate(weights):
        if i == last_funded:
            shares.append(total - placed)
            continue
        if i > last_funded or weight <= ZERO:
            shares.append(ZERO)
            continue
        running += weight
        share = round_whole(total * running / basis) - placed
        shares.append(share)
        placed += share
    return tuple(shares)


def debt_payment_breakdown(
    serial_no: str,
    payments: Iterable[Payment],
    quantum: Decimal = Decimal("0.01"),
) -> tuple[PaymentContribution, ...]:
    """
    Per-payment contributions to the debt ``serial_no``.

    The discount attributed to the debt is the payment's total discount
    scaled by this debt's share of the payment's allocated principal, the
    reverse of the forward split in ``AllocationEngine.allocate``.
    """
    contributions: list[PaymentContribution] = []
    for payment in payments:
        allocation = payment.allocation_for(serial_no)
        if allocation is None:
            continue

        cash_discount = ZERO
        allocated = payment.allocated_total
        if payment.cash_discount_applied and allocated > ZERO:
            cash_discount = round_amount(
                payment.cash_discount_amount * allocation.amount / allocated,
                quantum,
            )

        contributions.append(PaymentContribution(
            payment_id=payment.id,
            payment_date=payment.date,
            actual_paid=allocation.amount,
            cash_discount=cash_discount,
        ))
    return tuple(contributions)


class AllocationEngine:
    """
    Split payments across debts.

    Contract:
        Pure functions with deterministic rounding.
        No I/O, no database access.
    Guarantees:
        - Cash discount follows principal: each target's discount is
          proportional to its principal share.
        - Results are identical for identical inputs.
    Non-goals:
        - Does not decide which debts to pay or in what order.
    """

    def __init__(self, settings: AllocationSettings | None = None):
        self._settings = settings or AllocationSettings()

    @traced_engine(
        "allocation", "1.0",
        fingerprint_fields=("payment_amount", "cash_discount_amount", "strategy"),
    )
    def allocate(
        self,
        payment_amount: Decimal,
        cash_discount_amount: Decimal,
        targets: Sequence[DebtRef],
        strategy: AllocationStrategy,
    ) -> AllocationResult:
        """
        Split ``payment_amount`` and ``cash_discount_amount`` across ``targets``.

        Args:
            payment_amount: Principal actually moved.
            cash_discount_amount: Discount granted with this payment.
            targets: Debts to pay, in the order they should be filled.
            strategy: EXACT or SEQUENTIAL_FILL.
        """
        payment_amount = to_amount(payment_amount)
        cash_discount_amount = to_amount(cash_discount_amount)
        if payment_amount < ZERO or cash_discount_amount < ZERO:
            raise ValueError("Payment and cash discount amounts cannot be negative")

        logger.info("allocation_started", extra={
            "payment_amount": str(payment_amount),
            "cash_discount_amount": str(cash_discount_amount),
            "strategy": strategy.value,
            "target_count": len(targets),
        })

        if not targets:
            if payment_amount > ZERO or cash_discount_amount > ZERO:
                raise ValueError("At least one target is required to allocate a payment")
            return AllocationResult(payment_amount, cash_discount_amount, strategy, ())

        match strategy:
            case AllocationStrategy.EXACT:
                allocations = self._allocate_exact(
                    payment_amount, cash_discount_amount, targets
                )
            case AllocationStrategy.SEQUENTIAL_FILL:
                allocations = self._allocate_sequential(
                    payment_amount, cash_discount_amount, targets
                )
            case _:
                raise ValueError(f"Unknown allocation strategy: {strategy}")

        result = AllocationResult(
            payment_amount=payment_amount,
            cash_discount_amount=cash_discount_amount,
            strategy=strategy,
            allocations=allocations,
        )
        logger.info("allocation_completed", extra={
            "strategy": strategy.value,
            "allocation_count": len(allocations),
            "total_allocated": str(result.total_allocated),
            "total_cash_discount": str(result.total_cash_discount),
        })
        return result

    def debt_payment_breakdown(
        self,
        serial_no: str,
        payments: Iterable[Payment],
    ) -> tuple[PaymentContribution, ...]:
        return debt_payment_breakdown(
            serial_no, payments, quantum=self._settings.report_quantum
        )

    def _allocate_exact(
        self,
        payment_amount: Decimal,
        cash_discount_amount: Decimal,
        targets: Sequence[DebtRef],
    ) -> tuple[Allocation, ...]:
        """Validate caller-supplied amounts and apportion the discount."""
        amounts: list[Decimal] = []
        for target in targets:
            if target.requested_amount is None:
                raise ValueError(
                    f"Target {target.serial_no} needs requested_amount for exact allocation"
                )
            amounts.append(target.requested_amount)

        requested_total = sum_amounts(amounts)
        if requested_total > payment_amount:
            logger.warning("allocation_insufficient_amount", extra={
                "payment_amount": str(payment_amount),
                "requested_total": str(requested_total),
            })
            raise InsufficientAmountError(payment_amount, requested_total)
        if payment_amount - requested_total > self._settings.rounding_tolerance:
            raise AllocationMismatchError(payment_amount, requested_total)

        if cash_discount_amount > ZERO and requested_total == ZERO:
            raise ValueError("Cash discount cannot be apportioned over zero principal")
        discounts = apportion(cash_discount_amount, amounts, basis=payment_amount)
        return _build(targets, amounts, discounts)

    def _allocate_sequential(
        self,
        payment_amount: Decimal,
        cash_discount_amount: Decimal,
        targets: Sequence[DebtRef],
    ) -> tuple[Allocation, ...]:
        """
        Fill each target up to its outstanding with payment plus discount.

        The gross settlement is applied in order; principal and discount are
        then carved out of each target's gross share proportionally.
        """
        for target in targets:
            if target.outstanding is None:
                raise ValueError(
                    f"Target {target.serial_no} needs outstanding for sequential fill"
                )

        gross = payment_amount + cash_discount_amount
        outstanding_total = sum_amounts(max(t.outstanding, ZERO) for t in targets)
        if gross > outstanding_total:
            logger.warning("allocation_over_commitment", extra={
                "settlement_total": str(gross),
                "outstanding_total": str(outstanding_total),
            })
            raise OverCommitmentError(gross, outstanding_total)

        remaining = gross
        gross_shares: list[Decimal] = []
        for target in targets:
            share = min(max(target.outstanding, ZERO), remaining)
            gross_shares.append(share)
            remaining -= share

        if gross == ZERO:
            return ()

        amounts = apportion(payment_amount, gross_shares)
        weights = amounts if payment_amount > ZERO else gross_shares
        discounts = apportion(cash_discount_amount, weights)
        return _build(targets, amounts, discounts)


def _build(
    targets: Sequence[DebtRef],
    amounts: Sequence[Decimal],
    discounts: Sequence[Decimal],
) -> tuple[Allocation, ...]:
    """Pair up targets with their shares, leaving out unfunded targets."""
    return tuple(
        Allocation(t.serial_no, amount, discount)
        for t, amount, discount in zip(targets, amounts, discounts)
        if amount > ZERO or discount > ZERO
    )
