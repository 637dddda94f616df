"""Recurring dues ORM model: one 12-slot record per unit per fiscal year."""

from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condo_billing.models import Base, BaseModel

SLOTS_PER_YEAR = 12


def empty_slot() -> dict[str, int]:
    """Return a fresh unpaid slot."""
    return {"base_paid": 0, "penalty": 0, "penalty_paid": 0}


def empty_slots() -> list[dict[str, int]]:
    return [empty_slot() for _ in range(SLOTS_PER_YEAR)]


class DuesRecord(Base, BaseModel):
    """Model representing a unit's recurring dues for one fiscal year.

    The ``slots`` column holds twelve entries in fiscal-month order (slot 0 is
    the month the fiscal year starts in). Each entry carries the paid amounts
    and the last persisted penalty, all in minor units:

        {"base_paid": 95000, "penalty": 0, "penalty_paid": 0}

    Nothing derived (owed, status) is stored here. Those are computed from the
    scheduled amount and the slot fields every time the record is read.

    ``prior_year_closed`` is a lookback hint: when set, every earlier fiscal
    year is known to be fully paid and the aggregator may skip scanning it.
    """

    __tablename__ = "dues_records"

    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id"),
        nullable=False,
        index=True,
    )

    fiscal_year: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Fiscal year, named by the calendar year of its last month",
    )

    scheduled_amount: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Monthly dues charge in minor units",
    )

    slots: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=empty_slots,
        comment="Twelve {base_paid, penalty, penalty_paid} entries in fiscal-month order",
    )

    prior_year_closed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Lookback hint: all earlier fiscal years are fully paid",
    )

    unit: Mapped["Unit"] = relationship(  # noqa: F821
        "Unit",
        back_populates="dues_records",
        foreign_keys=[unit_id],
    )

    __table_args__ = (
        UniqueConstraint("unit_id", "fiscal_year", name="uq_dues_unit_year"),
        Index("idx_dues_unit_year", "unit_id", "fiscal_year"),
    )

    def __repr__(self) -> str:
        return (
            f"<DuesRecord(id={self.id}, unit_id={self.unit_id}, "
            f"fiscal_year={self.fiscal_year}, scheduled_amount={self.scheduled_amount}, "
            f"prior_year_closed={self.prior_year_closed})>"
        )


__all__ = ["DuesRecord", "SLOTS_PER_YEAR", "empty_slot", "empty_slots"]
