"""
Pure domain layer.

Record types and amount helpers with NO dependencies on the ORM, the
database, the clock or any other I/O.  All records are immutable.
"""

from settlement_kernel.domain.amounts import (
    ZERO,
    round_to_step,
    round_whole,
    to_amount,
)
from settlement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from settlement_kernel.domain.ledger import (
    Allocation,
    DebtEntry,
    LedgerSnapshot,
    Payment,
)

__all__ = [
    "ZERO",
    "round_to_step",
    "round_whole",
    "to_amount",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Allocation",
    "DebtEntry",
    "LedgerSnapshot",
    "Payment",
]
