"""
Tests for the Allocation Engine.

Covers:
- Exact strategy: validation of caller-supplied amounts
- Sequential fill: filling targets in order up to their outstanding
- Cash discount apportionment and residual placement
- Debt payment breakdown (reverse proportional rule)
- Error handling
"""

from datetime import date
from decimal import Decimal

import pytest

from settlement_config.schema import AllocationSettings
from settlement_engines.allocation import (
    AllocationEngine,
    AllocationStrategy,
    DebtRef,
    apportion,
    debt_payment_breakdown,
)
from settlement_kernel.exceptions import (
    AllocationMismatchError,
    InsufficientAmountError,
    OverCommitmentError,
)
from tests.builders import make_payment


class TestExactAllocation:
    """Caller names the amount per debt."""

    def setup_method(self):
        self.engine = AllocationEngine()

    def test_scenario_c_cash_discount_split(self):
        """9500 paid with 500 discount over 6000 / 3500 splits the discount 316 / 184."""
        result = self.engine.allocate(
            payment_amount=Decimal("9500"),
            cash_discount_amount=Decimal("500"),
            targets=[
                DebtRef("S-1", requested_amount=Decimal("6000")),
                DebtRef("S-2", requested_amount=Decimal("3500")),
            ],
            strategy=AllocationStrategy.EXACT,
        )

        assert [a.amount for a in result.allocations] == [Decimal("6000"), Decimal("3500")]
        assert [a.cash_discount_amount for a in result.allocations] == [
            Decimal("316"), Decimal("184"),
        ]
        assert result.total_allocated == Decimal("9500")
        assert result.total_cash_discount == Decimal("500")
        assert result.unallocated == Decimal("0")

    def test_requested_more_than_payment(self):
        with pytest.raises(InsufficientAmountError) as exc_info:
            self.engine.allocate(
                payment_amount=Decimal("1000"),
                cash_discount_amount=Decimal("0"),
                targets=[
                    DebtRef("S-1", requested_amount=Decimal("600")),
                    DebtRef("S-2", requested_amount=Decimal("500")),
                ],
                strategy=AllocationStrategy.EXACT,
            )

        assert exc_info.value.requested_total == "1100"
        assert exc_info.value.code == "INSUFFICIENT_AMOUNT"

    def test_requested_less_than_payment(self):
        with pytest.raises(AllocationMismatchError):
            self.engine.allocate(
                payment_amount=Decimal("1000"),
                cash_discount_amount=Decimal("0"),
                targets=[DebtRef("S-1", requested_amount=Decimal("900"))],
                strategy=AllocationStrategy.EXACT,
            )

    def test_shortfall_within_tolerance_accepted(self):
        result = self.engine.allocate(
            payment_amount=Decimal("1000"),
            cash_discount_amount=Decimal("10"),
            targets=[
                DebtRef("S-1", requested_amount=Decimal("500")),
                DebtRef("S-2", requested_amount=Decimal("499")),
            ],
            strategy=AllocationStrategy.EXACT,
        )

        assert result.unallocated == Decimal("1")
        assert result.total_cash_discount == Decimal("10")

    def test_zero_tolerance_setting(self):
        engine = AllocationEngine(AllocationSettings(rounding_tolerance=Decimal("0")))

        with pytest.raises(AllocationMismatchError):
            engine.allocate(
                payment_amount=Decimal("1000"),
                cash_discount_amount=Decimal("0"),
                targets=[DebtRef("S-1", requested_amount=Decimal("999"))],
                strategy=AllocationStrategy.EXACT,
            )

    def test_missing_requested_amount(self):
        with pytest.raises(ValueError, match="requested_amount"):
            self.engine.allocate(
                payment_amount=Decimal("1000"),
                cash_discount_amount=Decimal("0"),
                targets=[DebtRef("S-1", outstanding=Decimal("1000"))],
                strategy=AllocationStrategy.EXACT,
            )

    def test_zero_requested_target_left_out(self):
        result = self.engine.allocate(
            payment_amount=Decimal("1000"),
            cash_discount_amount=Decimal("0"),
            targets=[
                DebtRef("S-1", requested_amount=Decimal("1000")),
                DebtRef("S-2", requested_amount=Decimal("0")),
            ],
            strategy=AllocationStrategy.EXACT,
        )

        assert [a.debt_serial_no for a in result.allocations] == ["S-1"]


class TestSequentialFill:
    """Engine fills each debt in order until the payment runs out."""

    def setup_method(self):
        self.engine = AllocationEngine()

    def test_fills_in_order(self):
        result = self.engine.allocate(
            payment_amount=Decimal("7000"),
            cash_discount_amount=Decimal("0"),
            targets=[
                DebtRef("S-1", outstanding=Decimal("5000")),
                DebtRef("S-2", outstanding=Decimal("4000")),
                DebtRef("S-3", outstanding=Decimal("1000")),
            ],
            strategy=AllocationStrategy.SEQUENTIAL_FILL,
        )

        assert [(a.debt_serial_no, a.amount) for a in result.allocations] == [
            ("S-1", Decimal("5000")),
            ("S-2", Decimal("2000")),
        ]

    def test_cash_discount_counts_toward_settling(self):
        """Principal plus discount zeroes each debt in turn."""
        result = self.engine.allocate(
            payment_amount=Decimal("9800"),
            cash_discount_amount=Decimal("200"),
            targets=[
                DebtRef("S-1", outstanding=Decimal("5000")),
                DebtRef("S-2", outstanding=Decimal("5000")),
            ],
            strategy=AllocationStrategy.SEQUENTIAL_FILL,
        )

        assert [a.amount for a in result.allocations] == [Decimal("4900"), Decimal("4900")]
        assert [a.cash_discount_amount for a in result.allocations] == [
            Decimal("100"), Decimal("100"),
        ]
        assert [a.settled for a in result.allocations] == [Decimal("5000"), Decimal("5000")]

    def test_partial_last_target_absorbs_residual(self):
        result = self.engine.allocate(
            payment_amount=Decimal("1000"),
            cash_discount_amount=Decimal("0"),
            targets=[
                DebtRef("S-1", outstanding=Decimal("333")),
                DebtRef("S-2", outstanding=Decimal("333")),
                DebtRef("S-3", outstanding=Decimal("1000")),
            ],
            strategy=AllocationStrategy.SEQUENTIAL_FILL,
        )

        assert [a.amount for a in result.allocations] == [
            Decimal("333"), Decimal("333"), Decimal("334"),
        ]

    def test_more_than_outstanding_raises(self):
        with pytest.raises(OverCommitmentError) as exc_info:
            self.engine.allocate(
                payment_amount=Decimal("900"),
                cash_discount_amount=Decimal("200"),
                targets=[DebtRef("S-1", outstanding=Decimal("1000"))],
                strategy=AllocationStrategy.SEQUENTIAL_FILL,
            )

        assert exc_info.value.settlement_total == "1100"
        assert exc_info.value.outstanding_total == "1000"

    def test_negative_outstanding_treated_as_nothing_owed(self):
        result = self.engine.allocate(
            payment_amount=Decimal("500"),
            cash_discount_amount=Decimal("0"),
            targets=[
                DebtRef("S-1", outstanding=Decimal("-200")),
                DebtRef("S-2", outstanding=Decimal("800")),
            ],
            strategy=AllocationStrategy.SEQUENTIAL_FILL,
        )

        assert [(a.debt_serial_no, a.amount) for a in result.allocations] == [
            ("S-2", Decimal("500")),
        ]

    def test_discount_only_settlement(self):
        result = self.engine.allocate(
            payment_amount=Decimal("0"),
            cash_discount_amount=Decimal("50"),
            targets=[
                DebtRef("S-1", outstanding=Decimal("30")),
                DebtRef("S-2", outstanding=Decimal("30")),
            ],
            strategy=AllocationStrategy.SEQUENTIAL_FILL,
        )

        assert [a.cash_discount_amount for a in result.allocations] == [
            Decimal("30"), Decimal("20"),
        ]
        assert result.total_allocated == Decimal("0")

    def test_missing_outstanding(self):
        with pytest.raises(ValueError, match="outstanding"):
            self.engine.allocate(
                payment_amount=Decimal("100"),
                cash_discount_amount=Decimal("0"),
                targets=[DebtRef("S-1")],
                strategy=AllocationStrategy.SEQUENTIAL_FILL,
            )


class TestAllocationEdgeCases:
    def setup_method(self):
        self.engine = AllocationEngine()

    def test_no_targets_with_nothing_to_allocate(self):
        result = self.engine.allocate(
            payment_amount=Decimal("0"),
            cash_discount_amount=Decimal("0"),
            targets=[],
            strategy=AllocationStrategy.EXACT,
        )
        assert result.allocations == ()

    def test_no_targets_with_amount(self):
        with pytest.raises(ValueError):
            self.engine.allocate(
                payment_amount=Decimal("10"),
                cash_discount_amount=Decimal("0"),
                targets=[],
                strategy=AllocationStrategy.SEQUENTIAL_FILL,
            )

    def test_negative_payment_rejected(self):
        with pytest.raises(ValueError):
            self.engine.allocate(
                payment_amount=Decimal("-1"),
                cash_discount_amount=Decimal("0"),
                targets=[DebtRef("S-1", outstanding=Decimal("10"))],
                strategy=AllocationStrategy.SEQUENTIAL_FILL,
            )

    def test_logs_start_and_completion(self, captured_logs):
        self.engine.allocate(
            payment_amount=Decimal("100"),
            cash_discount_amount=Decimal("0"),
            targets=[DebtRef("S-1", outstanding=Decimal("100"))],
            strategy=AllocationStrategy.SEQUENTIAL_FILL,
        )

        messages = [r["message"] for r in captured_logs()]
        assert "allocation_started" in messages
        assert "allocation_completed" in messages
        trace = next(r for r in captured_logs() if r["message"] == "SETTLEMENT_ENGINE_TRACE")
        assert trace["engine_name"] == "allocation"
        assert len(trace["input_fingerprint"]) == 16


class TestApportion:
    def test_shares_never_negative(self):
        """Many half-unit shares would overshoot with independent rounding."""
        shares = apportion(Decimal("3"), [Decimal("1")] * 6, basis=Decimal("6"))

        assert all(s >= 0 for s in shares)
        assert sum(shares) == Decimal("3")

    def test_last_funded_absorbs(self):
        shares = apportion(Decimal("10"), [Decimal("1"), Decimal("1"), Decimal("0")])

        assert shares == (Decimal("5"), Decimal("5"), Decimal("0"))

    def test_zero_weights_rejected(self):
        with pytest.raises(ValueError):
            apportion(Decimal("10"), [Decimal("0")])


class TestDebtPaymentBreakdown:
    def test_reverse_proportional_discount(self):
        payment = make_payment(
            "P-1", date(2026, 1, 10), "9500", {"S-1": "6000", "S-2": "3500"},
            cash_discount_amount=Decimal("500"),
            cash_discount_applied=True,
        )

        (first,) = debt_payment_breakdown("S-1", [payment])
        (second,) = debt_payment_breakdown("S-2", [payment])

        assert first.actual_paid == Decimal("6000")
        assert first.cash_discount == Decimal("315.79")
        assert second.cash_discount == Decimal("184.21")
        assert first.payment_id == "P-1"
        assert first.payment_date == date(2026, 1, 10)

    def test_no_discount_when_not_applied(self):
        payment = make_payment(
            "P-1", date(2026, 1, 10), "1000", {"S-1": "1000"},
            cash_discount_amount=Decimal("50"),
        )

        (contribution,) = debt_payment_breakdown("S-1", [payment])

        assert contribution.cash_discount == Decimal("0")

    def test_only_payments_touching_debt(self):
        payments = [
            make_payment("P-1", date(2026, 1, 1), "100", {"S-1": "100"}),
            make_payment("P-2", date(2026, 1, 2), "100", {"S-2": "100"}),
            make_payment("P-3", date(2026, 1, 3), "50", {"S-1": "50"}),
        ]

        contributions = debt_payment_breakdown("S-1", payments)

        assert [c.payment_id for c in contributions] == ["P-1", "P-3"]
        assert sum(c.settled for c in contributions) == Decimal("150")

    def test_engine_uses_report_quantum(self):
        engine = AllocationEngine(AllocationSettings(report_quantum=Decimal("1")))
        payment = make_payment(
            "P-1", date(2026, 1, 10), "9500", {"S-1": "6000", "S-2": "3500"},
            cash_discount_amount=Decimal("500"),
            cash_discount_applied=True,
        )

        (contribution,) = engine.debt_payment_breakdown("S-1", [payment])

        assert contribution.cash_discount == Decimal("316")
