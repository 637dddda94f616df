"""Discrepancy reconciler: bill records vs. transaction history.

There are two records of what a unit has paid: the paid fields on each bill
and the allocation lines of its accounting transactions. After every clean
commit they agree. This module finds where they no longer do. It never writes.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from condo_billing.models import AllocationType, Unit
from condo_billing.services.bill_source import BillSource
from condo_billing.services.billing_config import BillingConfigProvider
from condo_billing.services.dues_source import DuesBillSource
from condo_billing.services.errors import SourceLoadError
from condo_billing.services.obligations import ModuleType
from condo_billing.services.transaction_service import TransactionRecorder

logger = logging.getLogger(__name__)

BASE_ALLOCATION_TYPES = {AllocationType.DUES_BASE.value, AllocationType.WATER_BASE.value}
PENALTY_ALLOCATION_TYPES = {AllocationType.DUES_PENALTY.value, AllocationType.WATER_PENALTY.value}


class SuspectedCause(str, Enum):
    """Most likely reason for a discrepancy."""

    OBLIGATION_UNDER_REPORTS = "obligation_under_reports"
    """Bill shows less paid than its transactions allocated"""

    OBLIGATION_OVER_REPORTS = "obligation_over_reports"
    """Bill shows more paid than its transactions allocated"""

    NO_TRANSACTIONS_FOUND = "no_transactions_found"
    """Bill shows payments but no transaction allocates to it"""


@dataclass(frozen=True)
class DiscrepancyReport:
    """One obligation whose stored paid amount disagrees with its transactions."""

    obligation_id: str
    module_type: ModuleType
    expected_remaining: int
    transaction_derived_remaining: int
    delta: int
    suspected_cause: SuspectedCause
    related_transaction_ids: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "obligation_id": self.obligation_id,
            "module_type": self.module_type.value,
            "expected_remaining": self.expected_remaining,
            "transaction_derived_remaining": self.transaction_derived_remaining,
            "delta": self.delta,
            "suspected_cause": self.suspected_cause.value,
            "related_transaction_ids": list(self.related_transaction_ids),
        }


@dataclass
class _PaidFromTransactions:
    base: int = 0
    penalty: int = 0
    transaction_ids: set[int] = field(default_factory=set)

    @property
    def total(self) -> int:
        return self.base + self.penalty


class DiscrepancyReconciler:
    """Read-only drift diagnostic for a unit."""

    def __init__(
        self,
        sources: list[BillSource],
        config_provider: BillingConfigProvider,
        recorder: TransactionRecorder,
        tolerance: int = 1,
    ):
        self.sources = sources
        self.config_provider = config_provider
        self.recorder = recorder
        self.tolerance = tolerance

    async def _paid_by_target(self, unit: Unit) -> dict[str, _PaidFromTransactions]:
        paid: dict[str, _PaidFromTransactions] = defaultdict(_PaidFromTransactions)
        for transaction in await self.recorder.list_for_unit(unit.id):
            for allocation in transaction.allocations:
                if not allocation.target_id:
                    logger.debug("Skipping allocation %d with no target", allocation.id)
                    continue
                if allocation.allocation_type in BASE_ALLOCATION_TYPES:
                    paid[allocation.target_id].base += allocation.amount
                elif allocation.allocation_type in PENALTY_ALLOCATION_TYPES:
                    paid[allocation.target_id].penalty += allocation.amount
                else:
                    continue
                paid[allocation.target_id].transaction_ids.add(transaction.id)
        return paid

    async def reconcile(self, unit: Unit) -> list[DiscrepancyReport]:
        """Compare every obligation's stored paid amount with its transactions.

        Modules that are disabled or fail to load are skipped; allocations that
        point at unknown obligations are logged and ignored.

        Returns:
            Discrepancies beyond the tolerance, ordered by obligation id
        """
        paid_by_target = await self._paid_by_target(unit)
        seen: set[str] = set()
        reports = []

        for source in self.sources:
            config = await self.config_provider.get(source.module_type)
            if not config.enabled:
                continue
            try:
                obligations = await source.load_all_obligations(unit, config)
            except (SourceLoadError, SQLAlchemyError) as e:
                logger.warning(
                    "Skipping %s in reconciliation for unit %s: %s",
                    source.module_type.value,
                    unit.code,
                    e,
                )
                continue

            for ob in obligations:
                seen.add(ob.id)
                from_transactions = paid_by_target.get(ob.id, _PaidFromTransactions())
                delta = from_transactions.total - ob.total_paid
                if abs(delta) <= self.tolerance:
                    continue

                if from_transactions.total == 0:
                    cause = SuspectedCause.NO_TRANSACTIONS_FOUND
                elif delta > 0:
                    cause = SuspectedCause.OBLIGATION_UNDER_REPORTS
                else:
                    cause = SuspectedCause.OBLIGATION_OVER_REPORTS

                reports.append(
                    DiscrepancyReport(
                        obligation_id=ob.id,
                        module_type=ob.module_type,
                        expected_remaining=ob.total_remaining,
                        transaction_derived_remaining=max(0, ob.total_due - from_transactions.total),
                        delta=delta,
                        suspected_cause=cause,
                        related_transaction_ids=tuple(sorted(from_transactions.transaction_ids)),
                    )
                )

        unknown = sorted(set(paid_by_target) - seen)
        if unknown:
            logger.info("Allocations for unit %s target unknown obligations: %s", unit.code, unknown)

        reports.sort(key=lambda report: report.obligation_id)
        if reports:
            logger.warning("Unit %s has %d reconciliation discrepancies", unit.code, len(reports))
        return reports

    async def audit_lookback_flags(self, unit: Unit) -> list[int]:
        """Fiscal years whose prior_year_closed hint is contradicted by open earlier years."""
        for source in self.sources:
            if isinstance(source, DuesBillSource):
                config = await self.config_provider.get(source.module_type)
                if not config.enabled:
                    return []
                return await source.audit_lookback_flags(unit, config)
        return []


__all__ = ["DiscrepancyReconciler", "DiscrepancyReport", "SuspectedCause"]
