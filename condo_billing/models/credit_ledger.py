"""Credit ledger ORM model: append-only history of a unit's credit balance."""

from enum import Enum

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from condo_billing.models import Base, BaseModel


class CreditEntryType(str, Enum):
    """Reason a credit ledger entry was written."""

    CREDIT_ADDED = "credit_added"
    CREDIT_USED = "credit_used"
    STARTING_BALANCE = "starting_balance"
    ADJUSTMENT = "adjustment"


class CreditLedgerEntry(Base, BaseModel):
    """Signed change to a unit's floating credit balance.

    There is deliberately no balance column anywhere. The balance is the fold
    of all entries for the unit, so it cannot drift from its own history.
    Entries are only ever appended; ``created_at`` is the entry timestamp.
    """

    __tablename__ = "credit_ledger_entries"

    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id"),
        nullable=False,
        index=True,
    )

    amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Signed change in minor units",
    )

    transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("accounting_transactions.id"),
        nullable=True,
        index=True,
    )

    entry_type: Mapped[CreditEntryType] = mapped_column(
        String(30),
        nullable=False,
    )

    note: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )

    __table_args__ = (Index("idx_credit_unit_id", "unit_id", "id"),)

    def __repr__(self) -> str:
        return (
            f"<CreditLedgerEntry(id={self.id}, unit_id={self.unit_id}, amount={self.amount}, "
            f"type={self.entry_type}, transaction_id={self.transaction_id})>"
        )


__all__ = ["CreditLedgerEntry", "CreditEntryType"]
