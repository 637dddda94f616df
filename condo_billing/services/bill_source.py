"""Bill source interface: one adapter per billing module.

A bill source is the only code that knows how its module stores bills. It
turns stored records into normalized Obligations for the aggregator and the
reconciler, and applies paid-amount increments back onto those records for the
commit coordinator.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from condo_billing.models import Unit
from condo_billing.services.billing_config import BillingConfig
from condo_billing.services.obligations import ModuleType, Obligation
from condo_billing.services.penalty_service import PenaltyCalculator


@dataclass(frozen=True)
class ObligationDelta:
    """Update instruction for one obligation's stored record.

    Attributes:
        obligation_id: Target obligation
        module_type: Module owning the record
        base_increment: Amount to add to base paid
        penalty_increment: Amount to add to penalty paid
        penalty: Recomputed penalty to persist
    """

    obligation_id: str
    module_type: ModuleType
    base_increment: int
    penalty_increment: int
    penalty: int


@dataclass
class SourceLoad:
    """What one bill source returned for a payment run.

    ``obligations`` is everything the source loaded, before any caller filter.
    ``lookback_complete`` is False when the scan stopped at its configured
    limit rather than at a fully paid period.
    """

    module_type: ModuleType
    as_of: date
    config: BillingConfig
    obligations: list[Obligation] = field(default_factory=list)
    reads: int = 0
    fast_path: bool = False
    lookback_complete: bool = True


class BillSource(ABC):
    """Adapter between one billing module's storage and normalized obligations."""

    module_type: ModuleType

    def __init__(self, session: AsyncSession, penalty_calculator: PenaltyCalculator | None = None):
        self.session = session
        self.penalty_calculator = penalty_calculator or PenaltyCalculator()

    @abstractmethod
    async def load_open_obligations(self, unit: Unit, as_of: date, config: BillingConfig) -> SourceLoad:
        """Load unpaid obligations with penalties recomputed as of a date.

        Raises:
            SourceLoadError: If stored records cannot be interpreted
            ConfigurationError: If the penalty config is missing
        """

    @abstractmethod
    async def load_all_obligations(self, unit: Unit, config: BillingConfig) -> list[Obligation]:
        """Load every obligation (open or paid) with stored penalties, for diagnostics."""

    @abstractmethod
    async def apply_payment(
        self,
        unit: Unit,
        deltas: list[ObligationDelta],
        load: SourceLoad | None = None,
    ) -> list[str]:
        """Apply paid increments and recomputed penalties to stored records.

        Must only add to the session; the caller owns commit and rollback.

        Returns:
            Ids of the obligations written

        Raises:
            NotFoundError: If a target record no longer exists
            ValidationError: If an increment would overpay a record
        """


__all__ = ["BillSource", "ObligationDelta", "SourceLoad"]
