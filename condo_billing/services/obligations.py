"""Normalized obligation types shared by every billing module.

An Obligation is one payable billing period, whichever module issued it. Bill
sources build them from their stored records; the distributor, formatter and
reconciler only ever see this shape.

All money is integer minor units (centavos). Status and owed amounts are
getters over the four stored quantities and are never stored themselves.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class ModuleType(str, Enum):
    """Billing modules that can issue obligations."""

    RECURRING_DUES = "dues"
    METERED_CONSUMPTION = "water"


class ObligationStatus(str, Enum):
    """Payment status, always derived from paid vs. due."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


def derive_status(total_due: int, total_paid: int) -> ObligationStatus:
    """Derive status from amounts; a zero-charge bill counts as paid."""
    if total_paid >= total_due:
        return ObligationStatus.PAID
    if total_paid > 0:
        return ObligationStatus.PARTIAL
    return ObligationStatus.UNPAID


@dataclass(frozen=True)
class Obligation:
    """A single payable unit of work."""

    id: str
    module_type: ModuleType
    original_base: int
    penalty: int
    base_paid: int
    penalty_paid: int
    due_date: date
    label: str
    priority_class: int | None = None

    @property
    def total_due(self) -> int:
        return self.original_base + self.penalty

    @property
    def total_paid(self) -> int:
        return self.base_paid + self.penalty_paid

    @property
    def base_remaining(self) -> int:
        return max(0, self.original_base - self.base_paid)

    @property
    def penalty_remaining(self) -> int:
        return max(0, self.penalty - self.penalty_paid)

    @property
    def total_remaining(self) -> int:
        return max(0, self.total_due - self.total_paid)

    @property
    def status(self) -> ObligationStatus:
        return derive_status(self.total_due, self.total_paid)

    @property
    def is_open(self) -> bool:
        return self.status != ObligationStatus.PAID


@dataclass(frozen=True)
class ObligationFilter:
    """Caller-side narrowing of the obligations considered for a payment.

    The same filter must be passed to preview and commit; it is applied by the
    aggregator, never by the distributor.

    Attributes:
        through_date: Ignore obligations due after this date ("pay through March")
        excluded_ids: Obligation ids left out of this payment entirely
        waived_penalty_ids: Obligation ids whose penalty is waived for this payment
    """

    through_date: date | None = None
    excluded_ids: frozenset[str] = field(default_factory=frozenset)
    waived_penalty_ids: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self):
        # Accept any iterable from callers but keep the filter hashable and ordered-independent
        object.__setattr__(self, "excluded_ids", frozenset(self.excluded_ids))
        object.__setattr__(self, "waived_penalty_ids", frozenset(self.waived_penalty_ids))

    def includes(self, obligation: Obligation) -> bool:
        """Whether an obligation takes part in the payment run."""
        if obligation.id in self.excluded_ids:
            return False
        if self.through_date is not None and obligation.due_date > self.through_date:
            return False
        return True

    def waives_penalty(self, obligation_id: str) -> bool:
        return obligation_id in self.waived_penalty_ids


__all__ = [
    "ModuleType",
    "ObligationStatus",
    "Obligation",
    "ObligationFilter",
    "derive_status",
]
