"""
settlement_kernel.models -- ORM models for ledger persistence.

Imports from settlement_kernel.db.base and settlement_kernel.domain only.
"""

from settlement_kernel.models.ledger import (
    DebtEntryModel,
    PaymentAllocationModel,
    PaymentModel,
)

__all__ = [
    "DebtEntryModel",
    "PaymentAllocationModel",
    "PaymentModel",
]
