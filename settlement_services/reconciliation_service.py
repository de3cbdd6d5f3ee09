"""
settlement_services.reconciliation_service -- Plan, apply and discard ledger repairs.

Responsibility:
    Loads a snapshot from the repository, asks the pure
    ``ReconciliationPlanner`` for a repair plan, and applies an approved
    plan as a single atomic batch.

Architecture position:
    Services -- stateful orchestration over engines + repository.

Invariants enforced:
    - Planning has no side effects.
    - ``apply`` writes every adjusted payment or none: it goes through
      ``LedgerRepository.commit_batch``, which re-checks each payment's
      ``before`` allocations under a row lock.
    - A plan can be applied or discarded once; it cannot be both.

Failure modes:
    - StaleStateError: persisted allocations changed since planning.  The
      caller must re-plan.
    - InvalidPlanTransitionError: plan already applied or discarded.

Usage:
    service = ReconciliationService(repository, settings, SystemClock())
    plan = service.plan()
    print(json.dumps(plan.to_dict(), indent=2))
    applied = service.apply(plan)
"""

from __future__ import annotations

from uuid import uuid4

from settlement_config.schema import EngineSettings
from settlement_engines.ledger import Anomaly, LedgerCalculator
from settlement_engines.reconciliation import (
    ReconciliationPlan,
    ReconciliationPlanner,
    ReconciliationStatus,
    check_transition,
)
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_services.repository import AllocationUpdate, LedgerRepository

logger = get_logger("services.reconciliation")


class ReconciliationService:
    """Negative-outstanding repair workflow."""

    def __init__(
        self,
        repository: LedgerRepository,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ):
        self._repository = repository
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._planner = ReconciliationPlanner(self._settings.reconciliation)
        self._calculator = LedgerCalculator(self._settings.reconciliation)

    def validate(self) -> tuple[Anomaly, ...]:
        """Report every anomaly in the current ledger."""
        return self._calculator.validate(self._repository.load_all())

    def plan(self, cap_allocations_to_payment_total: bool | None = None) -> ReconciliationPlan:
        """Build a plan against the current ledger.  Nothing is written."""
        plan_id = str(uuid4())
        with LogContext.bind(plan_id=plan_id):
            snapshot = self._repository.load_all()
            plan = self._planner.plan(
                snapshot,
                cap_allocations_to_payment_total,
                plan_id=plan_id,
                created_at=self._clock.now(),
            )
            logger.info("reconciliation_planned", extra={
                "adjustment_count": len(plan.adjustments),
                "unresolved_count": len(plan.unresolved),
            })
            return plan

    def apply(self, plan: ReconciliationPlan) -> ReconciliationPlan:
        """
        Commit every adjustment of ``plan`` in one transaction.

        Returns:
            The plan marked APPLIED.

        Raises:
            StaleStateError: if any payment changed since planning.
            InvalidPlanTransitionError: if the plan is not PLANNED.
        """
        check_transition(plan.status, ReconciliationStatus.APPLIED)

        with LogContext.bind(plan_id=plan.plan_id or None):
            if not plan.is_empty:
                self._repository.commit_batch([
                    AllocationUpdate(
                        payment_id=a.payment_id,
                        expected=a.before,
                        allocations=a.after,
                    )
                    for a in plan.adjustments
                ])

            applied = plan.mark_applied()
            logger.info("reconciliation_applied", extra={
                "payment_count": len(plan.adjustments),
            })
            return applied

    def discard(self, plan: ReconciliationPlan) -> ReconciliationPlan:
        """Reject ``plan``; nothing is written."""
        discarded = plan.mark_discarded()
        logger.info("reconciliation_discarded", extra={"plan_id": plan.plan_id})
        return discarded
