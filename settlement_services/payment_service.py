"""
settlement_services.payment_service -- Record payments and report on debts.

Responsibility:
    Entry point for capturing a new payment: reads current outstanding
    balances from the repository, runs the pure ``AllocationEngine`` to
    split the payment across the selected debts, and stores the result.
    Also serves the read-side helpers the ledger screens need: per-debt
    breakdowns, per-payment contributions, cash discount quotes and
    suggested payment amounts.

Architecture position:
    Services -- stateful orchestration over engines + repository.

Invariants enforced:
    - A payment is stored only after its split has passed the allocation
      engine's conservation checks.
    - Allocations never name a debt missing from the ledger.

Failure modes:
    - DebtNotFoundError: a selected serial number is not in the ledger.
    - PaymentNotFoundError: looked-up payment id is not in the ledger.
    - DuplicateRecordError: payment id already stored.
    - AllocationError subclasses from the allocation engine.
    - InvalidRangeError from the combination generator.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal

from settlement_config.schema import EngineSettings
from settlement_engines.allocation import (
    AllocationEngine,
    AllocationStrategy,
    DebtRef,
    PaymentContribution,
)
from settlement_engines.cash_discount import CashDiscountBasis, CashDiscountCalculator
from settlement_engines.combination import CombinationCandidate, CombinationGenerator
from settlement_engines.ledger import DebtBreakdown, LedgerCalculator
from settlement_kernel.domain.amounts import ZERO, to_amount, to_optional_amount
from settlement_kernel.domain.ledger import DebtEntry, LedgerSnapshot, Payment
from settlement_kernel.exceptions import DebtNotFoundError, PaymentNotFoundError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_services.repository import LedgerRepository

logger = get_logger("services.payment")


class PaymentService:
    """Payment capture and debt reporting over a ``LedgerRepository``."""

    def __init__(
        self,
        repository: LedgerRepository,
        settings: EngineSettings | None = None,
    ):
        self._repository = repository
        self._settings = settings or EngineSettings()
        self._allocation = AllocationEngine(self._settings.allocation)
        self._calculator = LedgerCalculator(self._settings.reconciliation)
        self._cash_discount = CashDiscountCalculator(self._settings.cash_discount)
        self._combination = CombinationGenerator(self._settings.combination)

    def _debts(self, snapshot: LedgerSnapshot, serial_nos: Sequence[str]) -> list[DebtEntry]:
        debts = []
        for serial_no in serial_nos:
            debt = snapshot.debt(serial_no)
            if debt is None:
                raise DebtNotFoundError(serial_no)
            debts.append(debt)
        return debts

    def record_payment(
        self,
        payment_id: str,
        payment_date: date,
        amount: Decimal,
        serial_nos: Sequence[str],
        strategy: AllocationStrategy = AllocationStrategy.SEQUENTIAL_FILL,
        cash_discount_amount: Decimal = ZERO,
        requested_amounts: Mapping[str, Decimal] | None = None,
        settlement_amount: Decimal | None = None,
        reference: str | None = None,
        method: str | None = None,
    ) -> Payment:
        """
        Split a new payment across ``serial_nos`` and store it.

        The amount split is the one that actually moved: ``settlement_amount``
        when given, otherwise ``amount``.

        Args:
            payment_id: Identifier of the new payment.
            payment_date: Date of the payment.
            amount: Requested principal.
            serial_nos: Debts to pay, in fill order.
            strategy: How the payment is split.
            cash_discount_amount: Discount granted with the payment.
            requested_amounts: Per-serial amounts for the EXACT strategy.
            settlement_amount: Bank settlement amount, when it differs.
            reference: Human payment number.
            method: Payment rail (cash, RTGS, cheque...).
        """
        with LogContext.bind(payment_id=payment_id):
            amount = to_amount(amount)
            settlement_amount = to_optional_amount(settlement_amount)
            cash_discount_amount = to_amount(cash_discount_amount)
            requested_amounts = requested_amounts or {}

            snapshot = self._repository.load_all()
            debts = self._debts(snapshot, serial_nos)
            targets = [
                DebtRef(
                    serial_no=debt.serial_no,
                    outstanding=self._calculator.breakdown(debt, snapshot.payments).outstanding,
                    requested_amount=requested_amounts.get(debt.serial_no),
                )
                for debt in debts
            ]

            used_amount = settlement_amount if settlement_amount is not None else amount
            result = self._allocation.allocate(
                payment_amount=used_amount,
                cash_discount_amount=cash_discount_amount,
                targets=targets,
                strategy=strategy,
            )

            payment = Payment(
                id=payment_id,
                date=payment_date,
                amount=amount,
                allocations=result.allocations,
                settlement_amount=settlement_amount,
                cash_discount_amount=cash_discount_amount,
                cash_discount_applied=cash_discount_amount > ZERO,
                reference=reference,
                method=method,
            )
            self._repository.add_payment(payment)
            logger.info("payment_recorded", extra={
                "amount": str(amount),
                "cash_discount_amount": str(cash_discount_amount),
                "strategy": strategy.value,
                "debt_count": len(result.allocations),
            })
            return payment

    def get_payment(self, payment_id: str) -> Payment:
        payment = self._repository.load_all().payment(payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    def breakdown_for(self, serial_no: str) -> DebtBreakdown:
        snapshot = self._repository.load_all()
        (debt,) = self._debts(snapshot, [serial_no])
        return self._calculator.breakdown(debt, snapshot.payments)

    def breakdowns(self) -> tuple[DebtBreakdown, ...]:
        return self._calculator.breakdowns(self._repository.load_all())

    def contributions_for(self, serial_no: str) -> tuple[PaymentContribution, ...]:
        """What each payment contributed to ``serial_no``, oldest first."""
        snapshot = self._repository.load_all()
        self._debts(snapshot, [serial_no])
        return self._allocation.debt_payment_breakdown(serial_no, snapshot.payments)

    def quote_cash_discount(
        self,
        serial_nos: Sequence[str],
        payment_amount: Decimal,
        payment_date: date,
        percent: Decimal | None = None,
        basis: CashDiscountBasis | str | None = None,
    ) -> Decimal:
        """Cash discount a payment over ``serial_nos`` would earn."""
        snapshot = self._repository.load_all()
        debts = self._debts(snapshot, serial_nos)
        outstanding = {
            d.serial_no: self._calculator.breakdown(d, snapshot.payments).outstanding
            for d in debts
        }
        return self._cash_discount.calculate(
            percent, basis, payment_amount, debts, outstanding, payment_date
        )

    def suggest_amounts(
        self,
        target_amount: Decimal,
        min_rate: int,
        max_rate: int,
        round_to_hundred: bool = False,
        bag_size: Decimal | None = None,
    ) -> tuple[CombinationCandidate, ...]:
        """Ranked (quantity, rate) suggestions under ``target_amount``."""
        return self._combination.generate(
            target_amount=target_amount,
            min_rate=min_rate,
            max_rate=max_rate,
            round_to_hundred=round_to_hundred,
            bag_size=bag_size,
        )
