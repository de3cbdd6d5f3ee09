"""
Reconciliation - Planning repairs for negative outstanding balances.

Pure domain types and the planner only. Applying a plan against the
persisted ledger lives in settlement_services.reconciliation_service.
"""

from settlement_engines.reconciliation.domain import (
    DebtReconciliation,
    PaymentAdjustment,
    ReconciliationPlan,
    ReconciliationStatus,
    UnresolvedAnomaly,
    check_transition,
)
from settlement_engines.reconciliation.planner import (
    ReconciliationPlanner,
    scale_down_proportionally,
)

__all__ = [
    "DebtReconciliation",
    "PaymentAdjustment",
    "ReconciliationPlan",
    "ReconciliationPlanner",
    "ReconciliationStatus",
    "UnresolvedAnomaly",
    "check_transition",
    "scale_down_proportionally",
]
