"""Unit ORM model for the condominium units that bills are issued against."""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from condo_billing.models import Base, BaseModel


class Unit(Base, BaseModel):
    """Model representing a billable condominium unit.

    Both billing modules (recurring dues and metered water) hang their records
    off a unit, and the credit ledger is kept per unit.
    """

    __tablename__ = "units"

    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
        index=True,
        comment="Unit identifier used by callers (e.g., '101', 'PH4D')",
    )

    owner_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        comment="Owner display name",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Relationships
    dues_records: Mapped[list["DuesRecord"]] = relationship(  # noqa: F821
        "DuesRecord",
        back_populates="unit",
        cascade="all, delete-orphan",
    )

    water_bills: Mapped[list["WaterBill"]] = relationship(  # noqa: F821
        "WaterBill",
        back_populates="unit",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Unit(id={self.id}, code={self.code!r}, owner_name={self.owner_name!r})>"


__all__ = ["Unit"]
