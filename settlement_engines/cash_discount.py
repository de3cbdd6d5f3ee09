"""
Module: settlement_engines.cash_discount
Responsibility:
    Compute the cash discount granted with a payment from a percentage and
    a basis (paid amount, unpaid balance, or full original of the eligible
    debts).

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Only debts still within their due date on the payment date earn a
      discount; debts without a due date are always eligible.
    - The result is rounded to whole units (ROUND_HALF_UP).

Failure modes:
    - ValueError: percent outside 0..100, negative payment amount, or an
      unknown basis / payment type.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal
from enum import Enum

from settlement_config.schema import CashDiscountSettings
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.amounts import ZERO, round_whole, sum_amounts, to_amount
from settlement_kernel.domain.ledger import DebtEntry
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.cash_discount")

_HUNDRED = Decimal("100")


class CashDiscountBasis(str, Enum):
    """What the discount percentage is applied to."""

    PARTIAL_ON_PAID = "partial_on_paid"  # The amount being paid now
    ON_UNPAID_AMOUNT = "on_unpaid_amount"  # Outstanding of eligible debts
    ON_FULL_AMOUNT = "on_full_amount"  # Original amount of eligible debts


def basis_for_payment_type(payment_type: str) -> CashDiscountBasis:
    """Default basis for a full or partial payment."""
    match payment_type.strip().lower():
        case "full":
            return CashDiscountBasis.ON_FULL_AMOUNT
        case "partial":
            return CashDiscountBasis.PARTIAL_ON_PAID
        case _:
            raise ValueError(f"Unknown payment type: {payment_type!r}")


def is_eligible(debt: DebtEntry, payment_date: date) -> bool:
    """A debt earns a discount when paid on or before its due date."""
    return debt.due_date is None or payment_date <= debt.due_date


class CashDiscountCalculator:
    """
    Percentage-based cash discount quotes.

    Contract:
        Pure function of its inputs; percent and basis fall back to the
        configured defaults when omitted.
    """

    def __init__(self, settings: CashDiscountSettings | None = None):
        self._settings = settings or CashDiscountSettings()

    @property
    def default_basis(self) -> CashDiscountBasis:
        return CashDiscountBasis(self._settings.default_basis)

    @traced_engine("cash_discount", "1.0", fingerprint_fields=("percent", "basis", "payment_amount"))
    def calculate(
        self,
        percent: Decimal | None,
        basis: CashDiscountBasis | str | None,
        payment_amount: Decimal,
        debts: Sequence[DebtEntry],
        outstanding_by_serial: Mapping[str, Decimal],
        payment_date: date,
    ) -> Decimal:
        """
        Discount for a payment covering ``debts``.

        Args:
            percent: Discount percentage, 0..100.
            basis: What the percentage applies to.
            payment_amount: Principal being paid now.
            debts: Debts the payment covers.
            outstanding_by_serial: Current outstanding per serial number,
                used by ON_UNPAID_AMOUNT.
            payment_date: Date the payment is made.
        """
        percent = self._settings.default_percent if percent is None else to_amount(percent)
        basis = self.default_basis if basis is None else CashDiscountBasis(basis)
        payment_amount = to_amount(payment_amount)

        if not ZERO <= percent <= _HUNDRED:
            raise ValueError(f"Cash discount percent must be within 0..100, got {percent}")
        if payment_amount < ZERO:
            raise ValueError("Payment amount cannot be negative")

        eligible = [d for d in debts if is_eligible(d, payment_date)]
        if not eligible:
            logger.info("cash_discount_no_eligible_debts", extra={
                "debt_count": len(debts),
                "payment_date": payment_date,
            })
            return ZERO

        match basis:
            case CashDiscountBasis.PARTIAL_ON_PAID:
                base = payment_amount
            case CashDiscountBasis.ON_UNPAID_AMOUNT:
                base = sum_amounts(
                    max(to_amount(outstanding_by_serial.get(d.serial_no, ZERO)), ZERO)
                    for d in eligible
                )
            case CashDiscountBasis.ON_FULL_AMOUNT:
                base = sum_amounts(d.effective_original for d in eligible)

        return round_whole(base * percent / _HUNDRED)
