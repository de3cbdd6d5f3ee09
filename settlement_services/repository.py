"""
settlement_services.repository -- Ledger persistence behind a small interface.

Responsibility:
    Defines the ``LedgerRepository`` protocol the services depend on
    (load a snapshot, subscribe to changes, commit a batch of allocation
    rewrites, capture new debts and payments) and its SQLAlchemy
    implementation.

Architecture position:
    Services -- the only layer that touches the database session.  Engines
    receive ``LedgerSnapshot`` records, never ORM objects.

Invariants enforced:
    - ``commit_batch`` is all-or-nothing: one transaction, every payment row
      locked with ``SELECT ... FOR UPDATE`` and its current allocations
      compared with the expected ones before anything is replaced.
    - Listeners are notified only after a successful commit, with a fresh
      snapshot.

Failure modes:
    - StaleStateError: a payment is missing or its allocations changed since
      the caller read them.  The whole batch is rolled back.
    - DuplicateRecordError: serial number or payment id already stored.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from settlement_kernel.db.engine import session_scope
from settlement_kernel.domain.ledger import Allocation, DebtEntry, LedgerSnapshot, Payment
from settlement_kernel.exceptions import DuplicateRecordError, StaleStateError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.ledger import DebtEntryModel, PaymentModel

logger = get_logger("services.repository")

SnapshotListener = Callable[[LedgerSnapshot], None]


@dataclass(frozen=True)
class AllocationUpdate:
    """Replace one payment's allocations, provided they still equal ``expected``."""

    payment_id: str
    expected: tuple[Allocation, ...]
    allocations: tuple[Allocation, ...]


class LedgerRepository(Protocol):
    """Storage collaborator for the settlement services."""

    def load_all(self) -> LedgerSnapshot: ...

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]: ...

    def commit_batch(self, updates: Sequence[AllocationUpdate]) -> None: ...

    def add_debt(self, debt: DebtEntry) -> None: ...

    def add_payment(self, payment: Payment) -> None: ...


class SqlAlchemyLedgerRepository:
    """
    ``LedgerRepository`` backed by the ``debt_entries``, ``payments`` and
    ``payment_allocations`` tables.

    Each call opens its own session from ``session_factory`` and commits or
    rolls back before returning.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        self._listeners: list[SnapshotListener] = []

    def load_all(self) -> LedgerSnapshot:
        with session_scope(self._session_factory) as session:
            debts = session.execute(
                select(DebtEntryModel).order_by(DebtEntryModel.serial_no)
            ).scalars().all()
            payments = session.execute(
                select(PaymentModel).order_by(
                    PaymentModel.payment_date, PaymentModel.payment_id
                )
            ).scalars().all()
            return LedgerSnapshot(
                debts=tuple(d.to_dto() for d in debts),
                payments=tuple(p.to_dto() for p in payments),
            )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_debt(self, debt: DebtEntry) -> None:
        with session_scope(self._session_factory) as session:
            exists = session.execute(
                select(DebtEntryModel.id).where(DebtEntryModel.serial_no == debt.serial_no)
            ).first()
            if exists is not None:
                raise DuplicateRecordError("DebtEntry", debt.serial_no)
            session.add(DebtEntryModel.from_dto(debt))
        logger.info("debt_added", extra={"debt_serial_no": debt.serial_no})
        self._notify()

    def add_payment(self, payment: Payment) -> None:
        with session_scope(self._session_factory) as session:
            exists = session.execute(
                select(PaymentModel.id).where(PaymentModel.payment_id == payment.id)
            ).first()
            if exists is not None:
                raise DuplicateRecordError("Payment", payment.id)
            session.add(PaymentModel.from_dto(payment))
        logger.info("payment_added", extra={
            "payment_id": payment.id,
            "allocation_count": len(payment.allocations),
        })
        self._notify()

    def commit_batch(self, updates: Sequence[AllocationUpdate]) -> None:
        """
        Rewrite the allocations of several payments atomically.

        Raises:
            StaleStateError: if any payment is gone or no longer holds the
                expected allocations.  Nothing is written.
        """
        ids = [u.payment_id for u in updates]
        if len(set(ids)) != len(ids):
            raise ValueError("A batch may update each payment only once")
        if not updates:
            return

        with session_scope(self._session_factory) as session:
            for update in updates:
                model = session.execute(
                    select(PaymentModel)
                    .where(PaymentModel.payment_id == update.payment_id)
                    .with_for_update()
                ).scalar_one_or_none()

                if model is None:
                    logger.warning("commit_batch_stale", extra={
                        "payment_id": update.payment_id,
                        "reason": "missing",
                    })
                    raise StaleStateError(update.payment_id, "payment no longer exists")

                current = tuple(a.to_dto() for a in model.allocations)
                if current != tuple(update.expected):
                    logger.warning("commit_batch_stale", extra={
                        "payment_id": update.payment_id,
                        "reason": "allocations_changed",
                    })
                    raise StaleStateError(
                        update.payment_id, "allocations changed since they were read"
                    )

                model.replace_allocations(tuple(update.allocations))

        logger.info("commit_batch_completed", extra={"payment_count": len(updates)})
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.load_all()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                # Already committed; remaining listeners still run.
                logger.exception("ledger_listener_failed")
