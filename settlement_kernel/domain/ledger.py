"""
Ledger -- Immutable, self-validating records for debts and payments.

Responsibility:
    Strict record types for the data the settlement engines consume:
    ``DebtEntry`` (what is owed), ``Payment`` (what was paid, and how it was
    split across debts via ``Allocation`` lines) and ``LedgerSnapshot`` (a
    point-in-time view of both).

Architecture position:
    Kernel > Domain -- pure, zero I/O. Imported by engines, services and
    ORM models alike.

Invariants enforced:
    - Amounts are Decimal and non-negative at construction.
    - A payment holds at most one allocation per debt serial number.
    - Required fields are checked at construction, never at point of use.

Failure modes:
    - ValueError / TypeError from ``__post_init__`` on malformed data.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal

from settlement_kernel.domain.amounts import (
    ZERO,
    sum_amounts,
    to_amount,
    to_optional_amount,
)


def _require_text(value: str, name: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{name} is required")


def _require_non_negative(value: Decimal | None, name: str) -> None:
    if value is not None and value < ZERO:
        raise ValueError(f"{name} cannot be negative: {value}")


@dataclass(frozen=True, slots=True)
class DebtEntry:
    """
    One purchase / sale / invoice record being paid down.

    ``adjusted_original`` supersedes ``original_amount`` when set (e.g. a
    government-required correction of the invoice value). Paid, discount
    and outstanding figures are derived by the ledger engine, never stored
    here.
    """

    id: str
    serial_no: str
    original_amount: Decimal
    adjusted_original: Decimal | None = None
    name: str | None = None
    entry_date: date | None = None
    due_date: date | None = None

    def __post_init__(self) -> None:
        _require_text(self.id, "DebtEntry.id")
        _require_text(self.serial_no, "DebtEntry.serial_no")
        object.__setattr__(self, "original_amount", to_amount(self.original_amount))
        object.__setattr__(
            self, "adjusted_original", to_optional_amount(self.adjusted_original)
        )
        _require_non_negative(self.original_amount, "original_amount")
        _require_non_negative(self.adjusted_original, "adjusted_original")

    @property
    def effective_original(self) -> Decimal:
        """The amount owed before any payment: adjusted value if present."""
        if self.adjusted_original is not None:
            return self.adjusted_original
        return self.original_amount


@dataclass(frozen=True, slots=True)
class Allocation:
    """The share of one payment attributed to one debt (principal + discount)."""

    debt_serial_no: str
    amount: Decimal
    cash_discount_amount: Decimal = ZERO

    def __post_init__(self) -> None:
        _require_text(self.debt_serial_no, "Allocation.debt_serial_no")
        object.__setattr__(self, "amount", to_amount(self.amount))
        object.__setattr__(
            self, "cash_discount_amount", to_amount(self.cash_discount_amount)
        )
        _require_non_negative(self.amount, "Allocation.amount")
        _require_non_negative(self.cash_discount_amount, "Allocation.cash_discount_amount")

    @property
    def settled(self) -> Decimal:
        """Total reduction of the debt: principal plus discount."""
        return self.amount + self.cash_discount_amount

    def with_amount(self, amount: Decimal) -> Allocation:
        return replace(self, amount=amount)

    def to_dict(self) -> dict[str, str]:
        return {
            "debt_serial_no": self.debt_serial_no,
            "amount": str(self.amount),
            "cash_discount_amount": str(self.cash_discount_amount),
        }


@dataclass(frozen=True, slots=True)
class Payment:
    """
    One payment transaction, possibly covering several debts.

    Contract:
        ``used_amount`` is the amount that actually moved: the bank
        settlement amount when the payment rail differs from the requested
        amount, otherwise ``amount``.
    Guarantees:
        - ``allocations`` is a tuple with unique ``debt_serial_no`` values.
    """

    id: str
    date: date
    amount: Decimal
    allocations: tuple[Allocation, ...] = ()
    settlement_amount: Decimal | None = None
    cash_discount_amount: Decimal = ZERO
    cash_discount_applied: bool = False
    reference: str | None = None
    method: str | None = None

    def __post_init__(self) -> None:
        _require_text(self.id, "Payment.id")
        if not isinstance(self.date, date):
            raise TypeError("Payment.date must be a date")
        object.__setattr__(self, "amount", to_amount(self.amount))
        object.__setattr__(
            self, "settlement_amount", to_optional_amount(self.settlement_amount)
        )
        object.__setattr__(
            self, "cash_discount_amount", to_amount(self.cash_discount_amount)
        )
        object.__setattr__(self, "allocations", tuple(self.allocations))
        _require_non_negative(self.amount, "Payment.amount")
        _require_non_negative(self.settlement_amount, "Payment.settlement_amount")
        _require_non_negative(self.cash_discount_amount, "Payment.cash_discount_amount")

        seen: set[str] = set()
        for allocation in self.allocations:
            if not isinstance(allocation, Allocation):
                raise TypeError("Payment.allocations must contain Allocation records")
            if allocation.debt_serial_no in seen:
                raise ValueError(
                    f"Payment {self.id} allocates to {allocation.debt_serial_no} more than once"
                )
            seen.add(allocation.debt_serial_no)

    @property
    def used_amount(self) -> Decimal:
        if self.settlement_amount is not None:
            return self.settlement_amount
        return self.amount

    @property
    def allocated_total(self) -> Decimal:
        return sum_amounts(a.amount for a in self.allocations)

    def allocation_for(self, serial_no: str) -> Allocation | None:
        for allocation in self.allocations:
            if allocation.debt_serial_no == serial_no:
                return allocation
        return None

    def with_allocations(self, allocations: Iterable[Allocation]) -> Payment:
        return replace(self, allocations=tuple(allocations))


@dataclass(frozen=True)
class LedgerSnapshot:
    """A read-only view of every debt and payment at one point in time."""

    debts: tuple[DebtEntry, ...] = ()
    payments: tuple[Payment, ...] = ()
    _debts_by_serial: Mapping[str, DebtEntry] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "debts", tuple(self.debts))
        object.__setattr__(self, "payments", tuple(self.payments))
        object.__setattr__(
            self, "_debts_by_serial", {d.serial_no: d for d in self.debts}
        )

    def debt(self, serial_no: str) -> DebtEntry | None:
        return self._debts_by_serial.get(serial_no)

    def payment(self, payment_id: str) -> Payment | None:
        for payment in self.payments:
            if payment.id == payment_id:
                return payment
        return None

    @classmethod
    def of(
        cls,
        debts: Sequence[DebtEntry],
        payments: Sequence[Payment],
    ) -> LedgerSnapshot:
        return cls(debts=tuple(debts), payments=tuple(payments))
