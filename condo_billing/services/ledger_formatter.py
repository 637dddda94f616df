"""Turns a distribution result into record updates and one accounting transaction.

Each allocation becomes up to two line items (penalty, base) and the net credit
change becomes one signed line, so the line items always sum to the payment.
"""

import logging
from dataclasses import dataclass
from datetime import date

from condo_billing.models.transaction import AllocationType
from condo_billing.services.bill_source import ObligationDelta
from condo_billing.services.distribution_service import DistributionResult, ObligationAllocation
from condo_billing.services.errors import AllocationMismatchError
from condo_billing.services.obligations import ModuleType

logger = logging.getLogger(__name__)

CREDIT_TARGET_ID = "credit"
NOTES_MAX_LENGTH = 1000

# (allocation type, category id, category name) per module for base and penalty lines
BASE_CATEGORIES = {
    ModuleType.RECURRING_DUES: (AllocationType.DUES_BASE, "hoa-dues", "HOA Dues"),
    ModuleType.METERED_CONSUMPTION: (AllocationType.WATER_BASE, "water-consumption", "Water Consumption"),
}
PENALTY_CATEGORIES = {
    ModuleType.RECURRING_DUES: (AllocationType.DUES_PENALTY, "hoa-penalties", "HOA Penalties"),
    ModuleType.METERED_CONSUMPTION: (AllocationType.WATER_PENALTY, "water-penalties", "Water Penalties"),
}
CREDIT_CATEGORY = ("account-credit", "Account Credit")


@dataclass(frozen=True)
class AllocationLine:
    """One line item of a transaction draft."""

    sequence: int
    allocation_type: AllocationType
    target_id: str | None
    target_name: str | None
    category_id: str
    category_name: str
    amount: int

    @property
    def allocation_id(self) -> str:
        return f"alloc_{self.sequence:03d}"


@dataclass(frozen=True)
class TransactionDraft:
    """Everything needed to persist one AccountingTransaction."""

    unit_id: int
    amount: int
    transaction_date: date
    payment_method: str | None
    reference: str | None
    notes: str | None
    allocations: tuple[AllocationLine, ...]


def format_minor_units(amount: int) -> str:
    """Plain signed decimal for notes (e.g. 25000 -> "+250.00")."""
    sign = "+" if amount >= 0 else "-"
    whole, cents = divmod(abs(amount), 100)
    return f"{sign}{whole}.{cents:02d}"


class TransactionNotesBuilder:
    """Builds human-readable transaction notes from a distribution result.

    Read-only: it never changes the result it describes.

    Example:
        "HOA Dues: Jan–Mar 2026; Water: 2026-02; Credit +250.00 (eTransfer)"
    """

    def build(
        self,
        result: DistributionResult,
        payment_method: str | None = None,
        waived_labels: list[str] | None = None,
        extra: str | None = None,
    ) -> str:
        paid = [a for a in result.per_obligation if a.total_allocated > 0]
        segments = []

        dues = sorted(
            (a for a in paid if a.module_type == ModuleType.RECURRING_DUES),
            key=lambda a: (a.due_date, a.obligation_id),
        )
        if dues:
            segments.append(f"HOA Dues: {self._dues_span(dues)}")

        water = sorted(
            (a for a in paid if a.module_type == ModuleType.METERED_CONSUMPTION),
            key=lambda a: (a.due_date, a.obligation_id),
        )
        if water:
            periods = [a.label.removeprefix("Water ") for a in water]
            segments.append(f"Water: {', '.join(periods)}")

        if result.net_credit_added != 0:
            segments.append(f"Credit {format_minor_units(result.net_credit_added)}")

        if waived_labels:
            segments.append(f"Penalty waived: {', '.join(waived_labels)}")

        notes = "; ".join(segments) if segments else "No bills paid"
        if payment_method:
            notes = f"{notes} ({payment_method})"
        if extra:
            notes = f"{notes}; {extra}"
        return notes[:NOTES_MAX_LENGTH]

    def _dues_span(self, dues: list[ObligationAllocation]) -> str:
        labels = [a.label for a in dues]
        if len(labels) == 1:
            return labels[0]
        # Quarterly labels ("Q1 2026") are listed, monthly ones collapse to spans
        if any(label.startswith("Q") for label in labels):
            return ", ".join(labels)

        runs: list[list[ObligationAllocation]] = []
        for allocation in dues:
            if runs and _next_month(runs[-1][-1].due_date) == _month_key(allocation.due_date):
                runs[-1].append(allocation)
            else:
                runs.append([allocation])
        return ", ".join(self._run_label(run) for run in runs)

    def _run_label(self, run: list[ObligationAllocation]) -> str:
        if len(run) == 1:
            return run[0].label
        first_month, first_year = run[0].label.split(" ")
        last_month, last_year = run[-1].label.split(" ")
        if first_year == last_year:
            return f"{first_month}–{last_month} {last_year}"
        return f"{run[0].label}–{run[-1].label}"


def _month_key(day: date) -> tuple[int, int]:
    return day.year, day.month


def _next_month(day: date) -> tuple[int, int]:
    if day.month == 12:
        return day.year + 1, 1
    return day.year, day.month + 1


class LedgerDeltaFormatter:
    """Builds record deltas and the transaction draft for a commit."""

    def __init__(self, notes_builder: TransactionNotesBuilder | None = None):
        self.notes_builder = notes_builder or TransactionNotesBuilder()

    def build_deltas(self, result: DistributionResult) -> list[ObligationDelta]:
        """One delta per obligation that received funds."""
        return [
            ObligationDelta(
                obligation_id=a.obligation_id,
                module_type=a.module_type,
                base_increment=a.base_allocated,
                penalty_increment=a.penalty_allocated,
                penalty=a.penalty,
            )
            for a in result.per_obligation
            if a.total_allocated > 0
        ]

    def build_lines(self, result: DistributionResult) -> list[AllocationLine]:
        lines: list[AllocationLine] = []

        def add(allocation_type, target_id, target_name, category_id, category_name, amount):
            lines.append(
                AllocationLine(
                    sequence=len(lines) + 1,
                    allocation_type=allocation_type,
                    target_id=target_id,
                    target_name=target_name,
                    category_id=category_id,
                    category_name=category_name,
                    amount=amount,
                )
            )

        for a in result.per_obligation:
            if a.penalty_allocated > 0:
                allocation_type, category_id, category_name = PENALTY_CATEGORIES[a.module_type]
                add(allocation_type, a.obligation_id, f"{a.label} penalty", category_id, category_name, a.penalty_allocated)
            if a.base_allocated > 0:
                allocation_type, category_id, category_name = BASE_CATEGORIES[a.module_type]
                add(allocation_type, a.obligation_id, a.label, category_id, category_name, a.base_allocated)

        net = result.net_credit_added
        if net != 0:
            allocation_type = AllocationType.CREDIT_ADDED if net > 0 else AllocationType.CREDIT_USED
            add(allocation_type, CREDIT_TARGET_ID, CREDIT_CATEGORY[1], *CREDIT_CATEGORY, net)

        return lines

    def build_draft(
        self,
        result: DistributionResult,
        unit_id: int,
        payment_method: str | None = None,
        reference: str | None = None,
        notes: str | None = None,
        waived_labels: list[str] | None = None,
    ) -> TransactionDraft:
        """Build the transaction draft and check its line items.

        Raises:
            AllocationMismatchError: If the line items do not sum to the payment
        """
        lines = self.build_lines(result)
        line_total = sum(line.amount for line in lines)
        if line_total != result.payment_amount:
            logger.error(
                "Allocation lines sum to %d but payment is %d for unit %d",
                line_total,
                result.payment_amount,
                unit_id,
            )
            raise AllocationMismatchError(
                f"Allocations sum to {line_total}, transaction amount is {result.payment_amount}"
            )

        return TransactionDraft(
            unit_id=unit_id,
            amount=result.payment_amount,
            transaction_date=result.as_of,
            payment_method=payment_method,
            reference=reference,
            notes=self.notes_builder.build(result, payment_method, waived_labels, notes),
            allocations=tuple(lines),
        )


__all__ = [
    "AllocationLine",
    "LedgerDeltaFormatter",
    "TransactionDraft",
    "TransactionNotesBuilder",
    "format_minor_units",
    "CREDIT_TARGET_ID",
]
