"""
Typed exception hierarchy for the settlement kernel.

Every error has a typed class (catch by type, not by message), a ``code``
class attribute (machine-readable, API-safe) and carries its context as
attributes rather than only inside the message string.

    SettlementKernelError (base)
    |
    +-- LedgerError
    |   +-- DebtNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- DuplicateRecordError
    |
    +-- AllocationError
    |   +-- InsufficientAmountError
    |   +-- AllocationMismatchError
    |   +-- OverCommitmentError
    |
    +-- CombinationError
    |   +-- InvalidRangeError
    |
    +-- ReconciliationError
    |   +-- InvalidPlanTransitionError
    |
    +-- ConcurrencyError
        +-- StaleStateError

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Ledger          | DEBT_NOT_FOUND              | Serial number not present in the ledger
                | PAYMENT_NOT_FOUND           | Payment id not present in the ledger
                | DUPLICATE_RECORD            | Serial number or payment id already stored
----------------|-----------------------------|-----------------------------------------
Allocation      | INSUFFICIENT_AMOUNT         | Exact split asks for more than the payment
                | ALLOCATION_MISMATCH         | Exact split leaves part of the payment unplaced
                | OVER_COMMITMENT             | Payment + discount exceeds targets' outstanding
----------------|-----------------------------|-----------------------------------------
Combination     | INVALID_RANGE               | min_rate > max_rate or a negative bound
----------------|-----------------------------|-----------------------------------------
Reconciliation  | INVALID_PLAN_TRANSITION     | Plan applied/discarded twice, etc.
----------------|-----------------------------|-----------------------------------------
Concurrency     | STALE_STATE                 | Persisted allocations changed since planning

Anomalies found while planning (negative outstanding that cannot be fully
trimmed) are NOT exceptions: they are returned as data on the plan so a
human can review them. Only ``apply`` aborts hard.
"""

from decimal import Decimal


class SettlementKernelError(Exception):
    """
    Base exception for all settlement kernel errors.

    All subclasses must have a ``code`` class attribute for
    machine-readable error identification.
    """

    code: str = "SETTLEMENT_KERNEL_ERROR"


# Ledger lookups


class LedgerError(SettlementKernelError):
    """Base exception for ledger lookup errors."""

    code: str = "LEDGER_ERROR"


class DebtNotFoundError(LedgerError):
    """Debt entry with the given serial number was not found."""

    code: str = "DEBT_NOT_FOUND"

    def __init__(self, serial_no: str):
        self.serial_no = serial_no
        super().__init__(f"Debt entry not found: {serial_no}")


class PaymentNotFoundError(LedgerError):
    """Payment with the given id was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class DuplicateRecordError(LedgerError):
    """A debt serial number or payment id is already in the ledger."""

    code: str = "DUPLICATE_RECORD"

    def __init__(self, record_type: str, key: str):
        self.record_type = record_type
        self.key = key
        super().__init__(f"{record_type} already exists: {key}")


# Allocation


class AllocationError(SettlementKernelError):
    """Base exception for payment split errors."""

    code: str = "ALLOCATION_ERROR"


class InsufficientAmountError(AllocationError):
    """Requested per-debt amounts add up to more than the payment."""

    code: str = "INSUFFICIENT_AMOUNT"

    def __init__(self, payment_amount: Decimal, requested_total: Decimal):
        self.payment_amount = str(payment_amount)
        self.requested_total = str(requested_total)
        super().__init__(
            f"Requested allocations total {requested_total} exceeds "
            f"payment amount {payment_amount}"
        )


class AllocationMismatchError(AllocationError):
    """Requested per-debt amounts leave part of the payment unallocated."""

    code: str = "ALLOCATION_MISMATCH"

    def __init__(self, payment_amount: Decimal, requested_total: Decimal):
        self.payment_amount = str(payment_amount)
        self.requested_total = str(requested_total)
        super().__init__(
            f"Requested allocations total {requested_total} does not match "
            f"payment amount {payment_amount}"
        )


class OverCommitmentError(AllocationError):
    """Payment plus cash discount exceeds what the selected debts still owe."""

    code: str = "OVER_COMMITMENT"

    def __init__(self, settlement_total: Decimal, outstanding_total: Decimal):
        self.settlement_total = str(settlement_total)
        self.outstanding_total = str(outstanding_total)
        super().__init__(
            f"Settlement of {settlement_total} exceeds outstanding "
            f"{outstanding_total} of the selected debts"
        )


# Combination search


class CombinationError(SettlementKernelError):
    """Base exception for combination search errors."""

    code: str = "COMBINATION_ERROR"


class InvalidRangeError(CombinationError):
    """Search bounds are inverted, negative or not whole rates."""

    code: str = "INVALID_RANGE"

    def __init__(self, reason: str, min_rate=None, max_rate=None):
        self.reason = reason
        self.min_rate = min_rate
        self.max_rate = max_rate
        super().__init__(f"Invalid combination range: {reason}")


# Reconciliation


class ReconciliationError(SettlementKernelError):
    """Base exception for reconciliation errors."""

    code: str = "RECONCILIATION_ERROR"


class InvalidPlanTransitionError(ReconciliationError):
    """Plan or debt reconciliation moved to a state it cannot reach."""

    code: str = "INVALID_PLAN_TRANSITION"

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot move reconciliation from {current} to {requested}"
        )


# Concurrency


class ConcurrencyError(SettlementKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class StaleStateError(ConcurrencyError):
    """Persisted allocations no longer match what the plan was built from."""

    code: str = "STALE_STATE"

    def __init__(self, payment_id: str, reason: str):
        self.payment_id = payment_id
        self.reason = reason
        super().__init__(
            f"Stale state for payment {payment_id}: {reason}; re-plan required"
        )
