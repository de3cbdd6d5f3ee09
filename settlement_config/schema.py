"""
Engine settings schema.

Frozen dataclasses describing every tunable of the settlement engines.
The defaults are the production conventions (quantity grid 0.10..500.00,
rates in steps of 5, 200 suggestions, 1-unit rounding tolerance), so an
engine constructed without settings behaves exactly like one built from
the shipped ``defaults.yaml``.

YAML fragments are parsed into these types by ``settlement_config.loader``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


def _positive(value: Decimal | int, name: str) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")


@dataclass(frozen=True)
class AllocationSettings:
    """Tolerances used when splitting a payment across debts."""

    rounding_tolerance: Decimal = Decimal("1")
    report_quantum: Decimal = Decimal("0.01")

    def __post_init__(self) -> None:
        if self.rounding_tolerance < 0:
            raise ValueError("rounding_tolerance cannot be negative")
        _positive(self.report_quantum, "report_quantum")


@dataclass(frozen=True)
class CombinationSettings:
    """Grid bounds and rounding steps for the (quantity, rate) search."""

    quantity_start: Decimal = Decimal("0.10")
    quantity_stop: Decimal = Decimal("500.00")
    quantity_step: Decimal = Decimal("0.10")
    rate_step: int = 5
    rounding_step: int = 5
    round_figure_step: int = 100
    exact_match_tolerance: Decimal = Decimal("0.01")
    max_results: int = 200

    def __post_init__(self) -> None:
        _positive(self.quantity_start, "quantity_start")
        _positive(self.quantity_step, "quantity_step")
        _positive(self.rate_step, "rate_step")
        _positive(self.rounding_step, "rounding_step")
        _positive(self.round_figure_step, "round_figure_step")
        _positive(self.max_results, "max_results")
        if self.quantity_stop < self.quantity_start:
            raise ValueError("quantity_stop must not be below quantity_start")


@dataclass(frozen=True)
class ReconciliationSettings:
    """Detection thresholds and repair options for negative outstanding."""

    cap_allocations_to_payment_total: bool = False
    over_commitment_tolerance: Decimal = Decimal("1")

    def __post_init__(self) -> None:
        if self.over_commitment_tolerance < 0:
            raise ValueError("over_commitment_tolerance cannot be negative")


@dataclass(frozen=True)
class CashDiscountSettings:
    """Defaults offered when a cash discount is granted on a payment."""

    default_percent: Decimal = Decimal("2")
    default_basis: str = "on_unpaid_amount"

    def __post_init__(self) -> None:
        if not Decimal("0") <= self.default_percent <= Decimal("100"):
            raise ValueError("default_percent must be within 0..100")


@dataclass(frozen=True)
class EngineSettings:
    """Complete settings bundle handed from services to engines."""

    version: str = "1"
    allocation: AllocationSettings = field(default_factory=AllocationSettings)
    combination: CombinationSettings = field(default_factory=CombinationSettings)
    reconciliation: ReconciliationSettings = field(default_factory=ReconciliationSettings)
    cash_discount: CashDiscountSettings = field(default_factory=CashDiscountSettings)
