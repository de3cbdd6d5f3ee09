"""
Module: settlement_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    settlement engines.  This is the canonical import surface for
    settlement_services and scripts.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import settlement_kernel.domain, settlement_kernel.exceptions,
    settlement_kernel.logging_config,
    settlement_config.schema and sibling engine modules.
    MUST NOT import settlement_services.

Invariants enforced:
    - Purity: engines never read the clock.  Plan timestamps are passed in
      by the caller.
    - Decimal-only arithmetic; floats are rejected at the amount helpers.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are traced via ``@traced_engine`` (see
    ``settlement_engines.tracer``), emitting SETTLEMENT_ENGINE_TRACE records.

Usage:
    from settlement_engines.ledger import LedgerCalculator
    from settlement_engines.allocation import AllocationEngine
    from settlement_engines.combination import CombinationGenerator
    from settlement_engines.reconciliation import ReconciliationPlanner
"""

from settlement_engines.allocation import (
    AllocationEngine,
    AllocationResult,
    AllocationStrategy,
    DebtRef,
    PaymentContribution,
    apportion,
    debt_payment_breakdown,
)
from settlement_engines.cash_discount import (
    CashDiscountBasis,
    CashDiscountCalculator,
    basis_for_payment_type,
)
from settlement_engines.combination import (
    CombinationCandidate,
    CombinationGenerator,
    sort_candidates,
)
from settlement_engines.ledger import (
    Anomaly,
    AnomalyKind,
    DebtBreakdown,
    LedgerCalculator,
    breakdown,
    effective_original,
    validate,
    validate_ledger,
)
from settlement_engines.reconciliation import (
    DebtReconciliation,
    PaymentAdjustment,
    ReconciliationPlan,
    ReconciliationPlanner,
    ReconciliationStatus,
    UnresolvedAnomaly,
    scale_down_proportionally,
)
from settlement_engines.tracer import traced_engine

__all__ = [
    # Allocation
    "AllocationEngine",
    "AllocationResult",
    "AllocationStrategy",
    "DebtRef",
    "PaymentContribution",
    "apportion",
    "debt_payment_breakdown",
    # Cash discount
    "CashDiscountBasis",
    "CashDiscountCalculator",
    "basis_for_payment_type",
    # Combination
    "CombinationCandidate",
    "CombinationGenerator",
    "sort_candidates",
    # Ledger
    "Anomaly",
    "AnomalyKind",
    "DebtBreakdown",
    "LedgerCalculator",
    "breakdown",
    "effective_original",
    "validate",
    "validate_ledger",
    # Reconciliation
    "DebtReconciliation",
    "PaymentAdjustment",
    "ReconciliationPlan",
    "ReconciliationPlanner",
    "ReconciliationStatus",
    "UnresolvedAnomaly",
    "scale_down_proportionally",
    # Tracing
    "traced_engine",
]
