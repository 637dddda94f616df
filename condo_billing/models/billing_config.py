"""Per-module billing configuration ORM model."""

from enum import Enum

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from condo_billing.models import Base, BaseModel


class BillingFrequency(str, Enum):
    """How often a module issues bills."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class ModuleBillingConfig(Base, BaseModel):
    """Billing rules for one module ("dues" or "water").

    Penalty fields are nullable on purpose: a missing value must surface as a
    configuration error at read time instead of falling back to a default.
    The rate is kept as a decimal string ("0.10") so it never passes through
    a float.
    """

    __tablename__ = "module_billing_configs"

    module: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
        comment="Module key: 'dues' or 'water'",
    )

    enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="False when the client has no such service (e.g., no water)",
    )

    penalty_rate: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        comment="Penalty rate per elapsed period as a decimal string, e.g. '0.10'",
    )

    grace_days: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="Days after the due date before penalties start",
    )

    fiscal_year_start_month: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )

    billing_frequency: Mapped[BillingFrequency] = mapped_column(
        String(20),
        default=BillingFrequency.MONTHLY.value,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ModuleBillingConfig(module={self.module!r}, enabled={self.enabled}, "
            f"penalty_rate={self.penalty_rate!r}, grace_days={self.grace_days}, "
            f"frequency={self.billing_frequency})>"
        )


__all__ = ["ModuleBillingConfig", "BillingFrequency"]
