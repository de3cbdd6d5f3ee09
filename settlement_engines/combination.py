"""
Module: settlement_engines.combination
Responsibility:
    Exhaustive search over a bounded (quantity, rate) grid for payment
    amounts that round cleanly to the banking step and fit under a target
    budget, ranked closest-to-budget first.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no ledger side effects.

Invariants enforced:
    - Exact Decimal grid: quantities are start + k * step, never accumulated
      floats.
    - Every candidate satisfies round(quantity * rate / step) * step ==
      rounded_amount, |raw - rounded| <= tolerance, and
      0 < rounded_amount <= target.
    - Results sorted by (remainder, quantity, rate) and truncated to the
      configured limit.

Failure modes:
    - InvalidRangeError: min_rate > max_rate, a negative bound or target,
      a rate that is not a whole number, or a non-positive bag size.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, fields
from decimal import Decimal

from settlement_config.schema import CombinationSettings
from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.amounts import ZERO, round_amount, round_to_step, to_amount
from settlement_kernel.exceptions import InvalidRangeError
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.combination")

_QUANTITY_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class CombinationCandidate:
    """One suggested (quantity, rate) pair and the amount it produces."""

    quantity: Decimal
    rate: int
    rounded_amount: Decimal
    remainder: Decimal
    bags: int | None = None

    @property
    def raw_amount(self) -> Decimal:
        return self.quantity * self.rate

    def to_dict(self) -> dict[str, object]:
        return {
            "quantity": str(self.quantity),
            "rate": self.rate,
            "rounded_amount": str(self.rounded_amount),
            "remainder": str(self.remainder),
            "bags": self.bags,
        }


_SORT_KEYS = frozenset(f.name for f in fields(CombinationCandidate))


def sort_candidates(
    candidates: Iterable[CombinationCandidate],
    key: str,
    descending: bool = False,
) -> list[CombinationCandidate]:
    """Re-sort candidates by one column (stable), e.g. for a results table."""
    if key not in _SORT_KEYS:
        raise ValueError(f"Cannot sort candidates by {key!r}")
    if key == "bags":
        return sorted(
            candidates,
            key=lambda c: -1 if c.bags is None else c.bags,
            reverse=descending,
        )
    return sorted(candidates, key=lambda c: getattr(c, key), reverse=descending)


def _check_rate(value: object, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, Decimal)):
        raise InvalidRangeError(f"{name} must be a whole number, got {value!r}")
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise InvalidRangeError(f"{name} must be a whole number, got {value}")
        value = int(value)
    if value < 0:
        raise InvalidRangeError(f"{name} cannot be negative, got {value}")
    return value


class CombinationGenerator:
    """
    Suggest payment amounts from quantity x rate combinations.

    Contract:
        Deterministic; the same inputs always produce the same list.
    Non-goals:
        - Heuristic or randomized search. The grid is walked completely.
    """

    def __init__(self, settings: CombinationSettings | None = None):
        self._settings = settings or CombinationSettings()

    def _quantities(self) -> Iterable[Decimal]:
        s = self._settings
        count = int((s.quantity_stop - s.quantity_start) // s.quantity_step)
        for k in range(count + 1):
            yield round_amount(s.quantity_start + s.quantity_step * k, _QUANTITY_QUANTUM)

    def _rates(self, min_rate: int, max_rate: int) -> range:
        step = self._settings.rate_step
        first = -(-min_rate // step) * step  # ceil to the next multiple
        return range(first, max_rate + 1, step)

    @traced_engine(
        "combination", "1.0",
        fingerprint_fields=("target_amount", "min_rate", "max_rate", "round_to_hundred"),
    )
    def generate(
        self,
        target_amount: Decimal,
        min_rate: int,
        max_rate: int,
        round_to_hundred: bool = False,
        bag_size: Decimal | None = None,
    ) -> tuple[CombinationCandidate, ...]:
        """
        Walk the grid and return the best candidates.

        Args:
            target_amount: Budget ceiling.
            min_rate: Lowest rate, inclusive.
            max_rate: Highest rate, inclusive.
            round_to_hundred: Round to the round-figure step (100) instead
                of the regular step (5).
            bag_size: When set, only quantities that are a whole number of
                bags are kept.
        """
        min_rate = _check_rate(min_rate, "min_rate")
        max_rate = _check_rate(max_rate, "max_rate")
        if min_rate > max_rate:
            raise InvalidRangeError(
                f"min_rate {min_rate} exceeds max_rate {max_rate}", min_rate, max_rate
            )
        try:
            target_amount = to_amount(target_amount)
        except (TypeError, ValueError) as exc:
            raise InvalidRangeError(f"target_amount is not a number: {target_amount!r}") from exc
        if target_amount < ZERO:
            raise InvalidRangeError(f"target_amount cannot be negative, got {target_amount}")
        if bag_size is not None:
            bag_size = to_amount(bag_size)
            if bag_size <= ZERO:
                raise InvalidRangeError(f"bag_size must be positive, got {bag_size}")

        s = self._settings
        step = s.round_figure_step if round_to_hundred else s.rounding_step
        rates = self._rates(min_rate, max_rate)

        candidates: list[CombinationCandidate] = []
        for quantity in self._quantities():
            bags = None
            if bag_size is not None:
                if quantity % bag_size != ZERO:
                    continue
                bags = int(quantity / bag_size)

            for rate in rates:
                raw = quantity * rate
                rounded = round_to_step(raw, step)
                if abs(raw - rounded) > s.exact_match_tolerance:
                    continue
                if rounded <= ZERO or rounded > target_amount:
                    continue
                candidates.append(CombinationCandidate(
                    quantity=quantity,
                    rate=rate,
                    rounded_amount=rounded,
                    remainder=target_amount - rounded,
                    bags=bags,
                ))

        candidates.sort(key=lambda c: (c.remainder, c.quantity, c.rate))
        result = tuple(candidates[: s.max_results])

        logger.info("combination_search_completed", extra={
            "target_amount": str(target_amount),
            "min_rate": min_rate,
            "max_rate": max_rate,
            "step": step,
            "matched": len(candidates),
            "returned": len(result),
        })
        return result
