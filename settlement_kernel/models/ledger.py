"""
ORM models for debt entries, payments and payment allocations.

Contract:
    DebtEntryModel, PaymentModel and PaymentAllocationModel persist the
    ledger records defined in ``settlement_kernel.domain.ledger``.  Each has
    ``to_dto()`` / ``from_dto()`` round-trip methods; services never hand
    ORM objects to engines.

Invariants enforced:
    - ``debt_entries.serial_no`` and ``payments.payment_id`` are UNIQUE.
    - A payment holds at most one allocation row per debt serial number
      (checked by the Payment record before any row is written).
    - Allocation rows keep their list order through ``position``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import Base, TrackedBase, UUIDString
from settlement_kernel.domain.ledger import Allocation, DebtEntry, Payment


class DebtEntryModel(TrackedBase):
    """Persistent debt entry (purchase, sale or invoice record)."""

    __tablename__ = "debt_entries"

    serial_no: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    external_id: Mapped[str] = mapped_column(String(100), nullable=False)
    original_amount: Mapped[Decimal] = mapped_column(nullable=False)
    adjusted_original: Mapped[Decimal | None] = mapped_column(nullable=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    entry_date: Mapped[date | None] = mapped_column(nullable=True)
    due_date: Mapped[date | None] = mapped_column(nullable=True)

    def to_dto(self) -> DebtEntry:
        return DebtEntry(
            id=self.external_id,
            serial_no=self.serial_no,
            original_amount=self.original_amount,
            adjusted_original=self.adjusted_original,
            name=self.name,
            entry_date=self.entry_date,
            due_date=self.due_date,
        )

    @classmethod
    def from_dto(cls, dto: DebtEntry) -> DebtEntryModel:
        return cls(
            external_id=dto.id,
            serial_no=dto.serial_no,
            original_amount=dto.original_amount,
            adjusted_original=dto.adjusted_original,
            name=dto.name,
            entry_date=dto.entry_date,
            due_date=dto.due_date,
        )


class PaymentModel(TrackedBase):
    """Persistent payment header."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("ix_payments_payment_date", "payment_date"),
    )

    payment_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    payment_date: Mapped[date] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    settlement_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    cash_discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    cash_discount_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    allocations: Mapped[list[PaymentAllocationModel]] = relationship(
        "PaymentAllocationModel",
        back_populates="payment",
        order_by="PaymentAllocationModel.position",
        cascade="all, delete-orphan",
    )

    def to_dto(self) -> Payment:
        return Payment(
            id=self.payment_id,
            date=self.payment_date,
            amount=self.amount,
            settlement_amount=self.settlement_amount,
            cash_discount_amount=self.cash_discount_amount,
            cash_discount_applied=self.cash_discount_applied,
            reference=self.reference,
            method=self.method,
            allocations=tuple(a.to_dto() for a in self.allocations),
        )

    def replace_allocations(self, allocations: tuple[Allocation, ...]) -> None:
        """Swap the allocation rows for ``allocations``, preserving order."""
        self.allocations.clear()
        for position, allocation in enumerate(allocations):
            self.allocations.append(
                PaymentAllocationModel.from_dto(allocation, position)
            )

    @classmethod
    def from_dto(cls, dto: Payment) -> PaymentModel:
        model = cls(
            payment_id=dto.id,
            payment_date=dto.date,
            amount=dto.amount,
            settlement_amount=dto.settlement_amount,
            cash_discount_amount=dto.cash_discount_amount,
            cash_discount_applied=dto.cash_discount_applied,
            reference=dto.reference,
            method=dto.method,
        )
        model.replace_allocations(dto.allocations)
        return model


class PaymentAllocationModel(Base):
    """One allocation line of a payment."""

    __tablename__ = "payment_allocations"

    __table_args__ = (
        Index("ix_payment_allocations_debt_serial_no", "debt_serial_no"),
    )

    payment_pk: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payments.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False)
    debt_serial_no: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    cash_discount_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    payment: Mapped[PaymentModel] = relationship(
        "PaymentModel", back_populates="allocations",
    )

    def to_dto(self) -> Allocation:
        return Allocation(
            debt_serial_no=self.debt_serial_no,
            amount=self.amount,
            cash_discount_amount=self.cash_discount_amount,
        )

    @classmethod
    def from_dto(cls, dto: Allocation, position: int) -> PaymentAllocationModel:
        return cls(
            position=position,
            debt_serial_no=dto.debt_serial_no,
            amount=dto.amount,
            cash_discount_amount=dto.cash_discount_amount,
        )
