"""
settlement_services -- Package init and public API.

Responsibility:
    Stateful services that compose the pure settlement engines with the
    ledger repository.  This is the only layer that holds database
    sessions or reads the wall clock.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        settlement_services/ -> settlement_engines/  (allowed)
        settlement_services/ -> settlement_kernel/   (allowed)
        settlement_engines/  -> settlement_services/ (FORBIDDEN)
        settlement_kernel/   -> settlement_services/ (FORBIDDEN)

Failure modes:
    - ImportError at startup if a service's dependency graph is broken.
"""

from settlement_services.payment_service import PaymentService
from settlement_services.reconciliation_service import ReconciliationService
from settlement_services.repository import (
    AllocationUpdate,
    LedgerRepository,
    SqlAlchemyLedgerRepository,
)

__all__ = [
    "AllocationUpdate",
    "LedgerRepository",
    "PaymentService",
    "ReconciliationService",
    "SqlAlchemyLedgerRepository",
]
