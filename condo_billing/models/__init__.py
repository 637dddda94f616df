"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from condo_billing.models.audit_log import AuditLog  # noqa: E402
from condo_billing.models.billing_config import BillingFrequency, ModuleBillingConfig  # noqa: E402
from condo_billing.models.credit_ledger import CreditEntryType, CreditLedgerEntry  # noqa: E402
from condo_billing.models.dues_record import DuesRecord  # noqa: E402
from condo_billing.models.transaction import (  # noqa: E402
    AccountingTransaction,
    Allocation,
    AllocationType,
)
from condo_billing.models.unit import Unit  # noqa: E402
from condo_billing.models.water_bill import WaterBill  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "AccountingTransaction",
    "Allocation",
    "AllocationType",
    "AuditLog",
    "BillingFrequency",
    "CreditEntryType",
    "CreditLedgerEntry",
    "DuesRecord",
    "ModuleBillingConfig",
    "Unit",
    "WaterBill",
]
