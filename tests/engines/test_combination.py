"""
Tests for the Combination Generator.

Covers:
- Ranking (closest to budget first) and the documented tie-breaks
- Rounding step 5 vs round-figure step 100
- Rate stepping (rates not divisible by 5 skipped)
- Bag size constraint
- Range validation
"""

from decimal import Decimal

import pytest

from settlement_config.schema import CombinationSettings
from settlement_engines.combination import (
    CombinationCandidate,
    CombinationGenerator,
    sort_candidates,
)
from settlement_kernel.domain.amounts import round_to_step
from settlement_kernel.exceptions import InvalidRangeError


class TestGenerate:
    def setup_method(self):
        self.generator = CombinationGenerator()

    def test_scenario_b_exact_budget_ranked_first(self):
        candidates = self.generator.generate(
            target_amount=Decimal("5000"), min_rate=100, max_rate=110,
        )

        first = candidates[0]
        assert first.quantity == Decimal("50.00")
        assert first.rate == 100
        assert first.rounded_amount == Decimal("5000")
        assert first.remainder == Decimal("0")

    def test_candidates_are_sound_and_sorted(self):
        target = Decimal("5000")
        candidates = self.generator.generate(
            target_amount=target, min_rate=100, max_rate=110,
        )

        assert 0 < len(candidates) <= 200
        for c in candidates:
            assert round_to_step(c.quantity * c.rate, 5) == c.rounded_amount
            assert abs(c.raw_amount - c.rounded_amount) <= Decimal("0.01")
            assert c.rounded_amount <= target
            assert c.remainder == target - c.rounded_amount
            assert c.rate % 5 == 0
        keys = [(c.remainder, c.quantity, c.rate) for c in candidates]
        assert keys == sorted(keys)

    def test_round_to_hundred(self):
        candidates = self.generator.generate(
            target_amount=Decimal("5050"), min_rate=100, max_rate=110,
            round_to_hundred=True,
        )

        assert all(c.rounded_amount % 100 == 0 for c in candidates)
        assert candidates[0].rounded_amount == Decimal("5000")
        assert candidates[0].remainder == Decimal("50")

    def test_rates_off_the_step_are_skipped(self):
        candidates = self.generator.generate(
            target_amount=Decimal("2000"), min_rate=101, max_rate=109,
        )

        assert {c.rate for c in candidates} == {105}

    def test_no_rate_in_range(self):
        candidates = self.generator.generate(
            target_amount=Decimal("2000"), min_rate=101, max_rate=104,
        )
        assert candidates == ()

    def test_bag_size(self):
        candidates = self.generator.generate(
            target_amount=Decimal("5000"), min_rate=100, max_rate=110,
            bag_size=Decimal("50"),
        )

        assert [(c.quantity, c.rate, c.bags) for c in candidates] == [
            (Decimal("50.00"), 100, 1),
        ]

    def test_result_limit_from_settings(self):
        generator = CombinationGenerator(CombinationSettings(max_results=3))

        candidates = generator.generate(
            target_amount=Decimal("5000"), min_rate=100, max_rate=110,
        )

        assert len(candidates) == 3

    def test_zero_target_yields_nothing(self):
        assert self.generator.generate(
            target_amount=Decimal("0"), min_rate=100, max_rate=110,
        ) == ()

    def test_deterministic(self):
        first = self.generator.generate(Decimal("1234"), 20, 40)
        second = self.generator.generate(Decimal("1234"), 20, 40)
        assert first == second


class TestInvalidRange:
    def setup_method(self):
        self.generator = CombinationGenerator()

    def test_min_above_max(self):
        with pytest.raises(InvalidRangeError) as exc_info:
            self.generator.generate(Decimal("100"), 120, 110)
        assert exc_info.value.min_rate == 120
        assert exc_info.value.code == "INVALID_RANGE"

    @pytest.mark.parametrize("min_rate,max_rate", [(-5, 10), (0, -1)])
    def test_negative_rate(self, min_rate, max_rate):
        with pytest.raises(InvalidRangeError):
            self.generator.generate(Decimal("100"), min_rate, max_rate)

    def test_negative_target(self):
        with pytest.raises(InvalidRangeError):
            self.generator.generate(Decimal("-1"), 10, 20)

    @pytest.mark.parametrize("rate", [Decimal("100.5"), 100.0, "100", True])
    def test_rate_must_be_whole_number(self, rate):
        with pytest.raises(InvalidRangeError):
            self.generator.generate(Decimal("100"), rate, 200)

    def test_bag_size_must_be_positive(self):
        with pytest.raises(InvalidRangeError):
            self.generator.generate(Decimal("100"), 10, 20, bag_size=Decimal("0"))


class TestSortCandidates:
    candidates = [
        CombinationCandidate(Decimal("10.00"), 110, Decimal("1100"), Decimal("0")),
        CombinationCandidate(Decimal("20.00"), 100, Decimal("2000"), Decimal("5")),
        CombinationCandidate(Decimal("5.00"), 105, Decimal("525"), Decimal("5")),
    ]

    def test_sort_by_rate_descending(self):
        ordered = sort_candidates(self.candidates, "rate", descending=True)
        assert [c.rate for c in ordered] == [110, 105, 100]

    def test_sort_is_stable(self):
        ordered = sort_candidates(self.candidates, "remainder")
        assert [c.quantity for c in ordered] == [
            Decimal("10.00"), Decimal("20.00"), Decimal("5.00"),
        ]

    def test_unknown_column(self):
        with pytest.raises(ValueError):
            sort_candidates(self.candidates, "colour")
