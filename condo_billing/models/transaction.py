"""Accounting transaction and allocation ORM models for recorded payments."""

from datetime import date
from enum import Enum

from sqlalchemy import Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condo_billing.models import Base, BaseModel


class AllocationType(str, Enum):
    """Kinds of allocation line items a payment can be split into."""

    DUES_BASE = "dues_base"
    DUES_PENALTY = "dues_penalty"
    WATER_BASE = "water_base"
    WATER_PENALTY = "water_penalty"
    CREDIT_ADDED = "credit_added"
    """Overpayment moved into the unit's credit balance (positive amount)"""

    CREDIT_USED = "credit_used"
    """Existing credit consumed by the payment (negative amount)"""


class AccountingTransaction(Base, BaseModel):
    """Durable record of one payment event for a unit.

    The transaction amount is what the owner actually paid. Its allocations
    split that amount across the bills it settled plus a signed credit line,
    so ``sum(allocation.amount) == amount`` always holds. A transaction is
    written once per commit and never edited afterwards.
    """

    __tablename__ = "accounting_transactions"

    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id"),
        nullable=False,
        index=True,
    )

    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Payment amount in minor units",
    )

    transaction_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
        comment="Effective payment date (may be backdated)",
    )

    payment_method: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    notes: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    allocations: Mapped[list["Allocation"]] = relationship(
        "Allocation",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="Allocation.sequence",
    )

    __table_args__ = (Index("idx_transaction_unit_date", "unit_id", "transaction_date"),)

    def __repr__(self) -> str:
        return (
            f"<AccountingTransaction(id={self.id}, unit_id={self.unit_id}, "
            f"amount={self.amount}, date={self.transaction_date})>"
        )


class Allocation(Base, BaseModel):
    """One line item of an accounting transaction."""

    __tablename__ = "allocations"

    transaction_id: Mapped[int] = mapped_column(
        ForeignKey("accounting_transactions.id"),
        nullable=False,
        index=True,
    )

    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="1-based position within the transaction",
    )

    allocation_type: Mapped[AllocationType] = mapped_column(
        String(30),
        nullable=False,
    )

    target_id: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        index=True,
        comment="Obligation id (e.g., 'dues:2026:03', 'water:2026-02') or 'credit'",
    )

    target_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    category_id: Mapped[str] = mapped_column(String(50), nullable=False)
    category_name: Mapped[str] = mapped_column(String(100), nullable=False)

    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Signed amount in minor units",
    )

    transaction: Mapped["AccountingTransaction"] = relationship(
        "AccountingTransaction",
        back_populates="allocations",
        foreign_keys=[transaction_id],
    )

    @property
    def allocation_id(self) -> str:
        """Display id within the transaction (alloc_001, alloc_002, ...)."""
        return f"alloc_{self.sequence:03d}"

    def __repr__(self) -> str:
        return (
            f"<Allocation(id={self.id}, transaction_id={self.transaction_id}, "
            f"type={self.allocation_type}, target_id={self.target_id!r}, amount={self.amount})>"
        )


__all__ = ["AccountingTransaction", "Allocation", "AllocationType"]
