"""
Tests for PaymentService.

Covers:
- Recording payments with sequential fill and exact strategies
- Cash discount carried on allocations
- Settlement amount drives the split
- Failed allocations store nothing
- Read-side helpers: breakdowns, contributions, discount quotes, suggestions
- payment_id scoped to the record_payment call in the log context
"""

from datetime import date
from decimal import Decimal

import pytest

from settlement_engines.allocation import AllocationStrategy
from settlement_engines.cash_discount import CashDiscountBasis
from settlement_kernel.domain.ledger import Allocation
from settlement_kernel.logging_config import LogContext
from settlement_kernel.exceptions import (
    DebtNotFoundError,
    DuplicateRecordError,
    InsufficientAmountError,
    OverCommitmentError,
    PaymentNotFoundError,
)
from settlement_services import PaymentService
from tests.builders import make_debt


@pytest.fixture
def ledger(repository):
    repository.add_debt(make_debt("S-1", "1000"))
    repository.add_debt(make_debt("S-2", "2000", due_date=date(2026, 3, 15)))
    return repository


@pytest.fixture
def service(ledger):
    return PaymentService(ledger)


class TestRecordPayment:
    def test_sequential_fill_in_order(self, service, ledger):
        payment = service.record_payment(
            "P-1", date(2026, 1, 5), Decimal("1500"), ["S-1", "S-2"],
        )

        assert payment.allocations == (
            Allocation("S-1", Decimal("1000")),
            Allocation("S-2", Decimal("500")),
        )
        assert ledger.load_all().payment("P-1").allocations == payment.allocations

    def test_fill_uses_current_outstanding(self, service):
        service.record_payment("P-1", date(2026, 1, 5), Decimal("600"), ["S-1"])

        payment = service.record_payment(
            "P-2", date(2026, 1, 6), Decimal("800"), ["S-1", "S-2"],
        )

        assert [a.amount for a in payment.allocations] == [Decimal("400"), Decimal("400")]

    def test_cash_discount_split_with_principal(self, service):
        payment = service.record_payment(
            "P-1", date(2026, 1, 5), Decimal("1470"), ["S-1", "S-2"],
            cash_discount_amount=Decimal("30"),
        )

        assert payment.cash_discount_applied
        assert payment.allocations == (
            Allocation("S-1", Decimal("980"), Decimal("20")),
            Allocation("S-2", Decimal("490"), Decimal("10")),
        )
        assert service.breakdown_for("S-1").outstanding == Decimal("0")

    def test_exact_strategy(self, service):
        payment = service.record_payment(
            "P-1", date(2026, 1, 5), Decimal("500"), ["S-1", "S-2"],
            strategy=AllocationStrategy.EXACT,
            requested_amounts={"S-1": Decimal("300"), "S-2": Decimal("200")},
        )

        assert [a.amount for a in payment.allocations] == [Decimal("300"), Decimal("200")]

    def test_settlement_amount_is_what_gets_split(self, service):
        """The bank settlement, not the requested amount, reaches the debts."""
        payment = service.record_payment(
            "P-1", date(2026, 1, 5), Decimal("1000"), ["S-1"],
            settlement_amount=Decimal("990"), method="RTGS",
        )

        assert payment.amount == Decimal("1000")
        assert payment.used_amount == Decimal("990")
        assert payment.allocations == (Allocation("S-1", Decimal("990")),)

    def test_unknown_debt(self, service, ledger):
        with pytest.raises(DebtNotFoundError) as exc_info:
            service.record_payment("P-1", date(2026, 1, 5), Decimal("10"), ["S-9"])

        assert exc_info.value.serial_no == "S-9"
        assert ledger.load_all().payments == ()

    def test_over_commitment_stores_nothing(self, service, ledger):
        with pytest.raises(OverCommitmentError):
            service.record_payment("P-1", date(2026, 1, 5), Decimal("5000"), ["S-1", "S-2"])

        assert ledger.load_all().payments == ()

    def test_exact_over_payment_rejected(self, service):
        with pytest.raises(InsufficientAmountError):
            service.record_payment(
                "P-1", date(2026, 1, 5), Decimal("100"), ["S-1"],
                strategy=AllocationStrategy.EXACT,
                requested_amounts={"S-1": Decimal("150")},
            )

    def test_duplicate_payment_id(self, service):
        service.record_payment("P-1", date(2026, 1, 5), Decimal("10"), ["S-1"])

        with pytest.raises(DuplicateRecordError):
            service.record_payment("P-1", date(2026, 1, 6), Decimal("10"), ["S-1"])

    def test_payment_id_in_log_context(self, service, captured_logs):
        service.record_payment("P-7", date(2026, 1, 5), Decimal("10"), ["S-1"])

        recorded = next(r for r in captured_logs() if r["message"] == "payment_recorded")
        assert recorded["payment_id"] == "P-7"
        assert recorded["strategy"] == "sequential_fill"


class TestReporting:
    def test_breakdowns(self, service):
        service.record_payment("P-1", date(2026, 1, 5), Decimal("1500"), ["S-1", "S-2"])

        assert [(b.serial_no, b.outstanding) for b in service.breakdowns()] == [
            ("S-1", Decimal("0")),
            ("S-2", Decimal("1500")),
        ]

    def test_get_payment(self, service):
        service.record_payment("P-1", date(2026, 1, 5), Decimal("10"), ["S-1"], reference="R-1")

        assert service.get_payment("P-1").reference == "R-1"
        with pytest.raises(PaymentNotFoundError):
            service.get_payment("P-9")

    def test_breakdown_for_unknown_debt(self, service):
        with pytest.raises(DebtNotFoundError):
            service.breakdown_for("S-9")

    def test_contributions_reverse_the_discount_split(self, service):
        service.record_payment(
            "P-1", date(2026, 1, 5), Decimal("1470"), ["S-1", "S-2"],
            cash_discount_amount=Decimal("30"),
        )

        (contribution,) = service.contributions_for("S-1")

        assert contribution.payment_id == "P-1"
        assert contribution.actual_paid == Decimal("980")
        assert contribution.cash_discount == Decimal("20.00")
        assert contribution.settled == Decimal("1000")


class TestQuotesAndSuggestions:
    def test_quote_on_unpaid_amount(self, service):
        quote = service.quote_cash_discount(
            ["S-1", "S-2"], Decimal("500"), date(2026, 3, 10),
            percent=Decimal("2"), basis=CashDiscountBasis.ON_UNPAID_AMOUNT,
        )

        assert quote == Decimal("60")

    def test_quote_skips_overdue_debts(self, service):
        quote = service.quote_cash_discount(
            ["S-1", "S-2"], Decimal("500"), date(2026, 3, 20),
            percent=Decimal("2"), basis="on_unpaid_amount",
        )

        # only S-1 (no due date) qualifies
        assert quote == Decimal("20")

    def test_suggest_amounts(self, service):
        (first, *_) = service.suggest_amounts(Decimal("5000"), 100, 110)

        assert (first.quantity, first.rate, first.remainder) == (
            Decimal("50.00"), 100, Decimal("0"),
        )


class TestLogContextScope:
    def test_payment_id_stamped_then_released(self, service, captured_logs):
        service.record_payment("P-1", date(2026, 1, 5), Decimal("500"), ["S-1"])

        recorded = next(r for r in captured_logs() if r["message"] == "payment_recorded")
        assert recorded["payment_id"] == "P-1"
        assert LogContext.get_all() == {}

    def test_released_when_recording_fails(self, service):
        with pytest.raises(DebtNotFoundError):
            service.record_payment("P-1", date(2026, 1, 5), Decimal("500"), ["S-9"])

        assert LogContext.get_all() == {}

    def test_caller_context_kept(self, service):
        with LogContext.bind(correlation_id="batch-7"):
            service.record_payment("P-1", date(2026, 1, 5), Decimal("500"), ["S-1"])

            assert LogContext.get_all() == {"correlation_id": "batch-7"}
