"""Metered consumption (water) bill ORM model."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condo_billing.models import Base, BaseModel


class WaterBill(Base, BaseModel):
    """Model representing one unit's water bill for one billing period.

    Water bills are generated on demand from meter readings, so a bill only
    exists once the period has been read and billed. All money columns are
    integer minor units.
    """

    __tablename__ = "water_bills"

    unit_id: Mapped[int] = mapped_column(
        ForeignKey("units.id"),
        nullable=False,
        index=True,
    )

    period: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        comment="Billing period key, YYYY-MM (sorts chronologically)",
    )

    bill_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Date the bill was generated",
    )

    due_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Payment due date",
    )

    consumption: Mapped[Decimal | None] = mapped_column(
        Numeric(10, 2),
        nullable=True,
        comment="Metered consumption for the period (m3)",
    )

    current_charge: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Consumption charge in minor units",
    )

    penalty: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Last persisted late penalty in minor units",
    )

    base_paid: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    penalty_paid: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    unit: Mapped["Unit"] = relationship(  # noqa: F821
        "Unit",
        back_populates="water_bills",
        foreign_keys=[unit_id],
    )

    __table_args__ = (
        UniqueConstraint("unit_id", "period", name="uq_water_unit_period"),
        Index("idx_water_unit_period", "unit_id", "period"),
    )

    def __repr__(self) -> str:
        return (
            f"<WaterBill(id={self.id}, unit_id={self.unit_id}, period={self.period!r}, "
            f"current_charge={self.current_charge}, penalty={self.penalty}, "
            f"base_paid={self.base_paid}, penalty_paid={self.penalty_paid})>"
        )


__all__ = ["WaterBill"]
