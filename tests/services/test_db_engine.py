"""Tests for the module-level engine / session management in settlement_kernel.db."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, inspect, select

from settlement_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from settlement_kernel.models import DebtEntryModel
from settlement_services.repository import SqlAlchemyLedgerRepository
from tests.builders import make_debt, make_payment


@pytest.fixture
def file_db(tmp_path):
    reset_engine()
    init_engine_from_url(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables()
    yield
    reset_engine()


class TestEngineLifecycle:
    def test_uninitialized_engine_raises(self):
        reset_engine()

        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session_factory()

    def test_tables_created(self, file_db):
        tables = set(inspect(get_engine()).get_table_names())
        assert {"debt_entries", "payments", "payment_allocations"} <= tables


class TestSessionScope:
    def test_commit_on_success(self, file_db):
        with session_scope() as session:
            session.add(DebtEntryModel.from_dto(make_debt("S-1", "100")))

        with session_scope() as session:
            count = session.execute(select(func.count()).select_from(DebtEntryModel)).scalar()
        assert count == 1

    def test_rollback_on_error(self, file_db):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(DebtEntryModel.from_dto(make_debt("S-1", "100")))
                session.flush()
                raise RuntimeError("abort")

        with session_scope() as session:
            count = session.execute(select(func.count()).select_from(DebtEntryModel)).scalar()
        assert count == 0

    def test_repository_over_file_database(self, file_db):
        repository = SqlAlchemyLedgerRepository(get_session_factory())
        repository.add_debt(make_debt("S-1", "100"))
        repository.add_payment(make_payment("P-1", date(2026, 1, 1), "40", {"S-1": "40"}))

        snapshot = repository.load_all()

        assert snapshot.payment("P-1").allocations[0].amount == Decimal("40")
