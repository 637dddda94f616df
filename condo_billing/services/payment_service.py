"""Unified payment service: preview, commit and reconcile payments for a unit.

Flow:
1. Aggregate open obligations from every billing module
2. Classify and sort them by priority
3. Distribute payment + credit (preview stops here)
4. Format record deltas and the accounting transaction
5. Commit everything atomically

Commit re-runs steps 1-3 from a fresh read and refuses to write unless the
result matches the preview the caller approved.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from condo_billing.models import Unit
from condo_billing.services.aggregator import AggregationResult, BillAggregator
from condo_billing.services.bill_source import BillSource
from condo_billing.services.billing_config import BillingConfigProvider
from condo_billing.services.commit_service import AtomicCommitCoordinator
from condo_billing.services.config import Settings, get_settings
from condo_billing.services.credit_service import CreditLedgerService
from condo_billing.services.distribution_service import DistributionResult, PaymentDistributor
from condo_billing.services.dues_source import DuesBillSource
from condo_billing.services.errors import DegradedSourceError, NotFoundError, ValidationError
from condo_billing.services.ledger_formatter import LedgerDeltaFormatter
from condo_billing.services.obligations import ObligationFilter
from condo_billing.services.penalty_service import PenaltyCalculator
from condo_billing.services.priority_service import PriorityClassifier
from condo_billing.services.reconciliation_service import DiscrepancyReconciler, DiscrepancyReport
from condo_billing.services.transaction_service import TransactionRecorder
from condo_billing.services.water_source import WaterBillSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommitResult:
    """Outcome of a committed payment."""

    transaction_id: int
    result: DistributionResult


class UnifiedPaymentService:
    """Cross-module payment distribution for a unit.

    Request-scoped: build one per session. Concurrent payments for the same
    unit must be serialized by the caller.
    """

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        sources: list[BillSource] | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        penalty_calculator = PenaltyCalculator()
        self.sources = sources or [
            DuesBillSource(session, penalty_calculator, self.settings),
            WaterBillSource(session, penalty_calculator, self.settings),
        ]
        self.config_provider = BillingConfigProvider(session)
        self.aggregator = BillAggregator(self.sources, self.config_provider)
        self.classifier = PriorityClassifier(self.settings.dues_lookahead_days)
        self.distributor = PaymentDistributor()
        self.formatter = LedgerDeltaFormatter()
        self.credit_service = CreditLedgerService(session)
        self.recorder = TransactionRecorder(session)
        self.coordinator = AtomicCommitCoordinator(session, self.sources, self.recorder, self.credit_service)
        self.reconciler = DiscrepancyReconciler(
            self.sources,
            self.config_provider,
            self.recorder,
            tolerance=self.settings.reconcile_tolerance,
        )

    async def get_unit(self, unit_id: str) -> Unit:
        """Look up a unit by its code.

        Raises:
            NotFoundError: If no such unit exists
        """
        stmt = select(Unit).where(Unit.code == unit_id)
        result = await self.session.execute(stmt)
        unit = result.scalar_one_or_none()
        if unit is None:
            raise NotFoundError(f"Unit {unit_id} not found")
        return unit

    async def _resolve_credit(self, unit: Unit, credit_balance: int | None) -> int:
        ledger_balance = await self.credit_service.get_balance(unit.id)
        if credit_balance is None:
            return ledger_balance
        if isinstance(credit_balance, bool) or not isinstance(credit_balance, int) or credit_balance < 0:
            raise ValidationError(f"credit_balance must be a non-negative integer, got {credit_balance!r}")
        if credit_balance != ledger_balance:
            raise ValidationError(
                f"Stale credit balance for unit {unit.code}: caller has {credit_balance}, ledger has {ledger_balance}"
            )
        return credit_balance

    async def _distribute(
        self,
        unit: Unit,
        amount: int,
        as_of: date,
        credit_balance: int | None,
        obligation_filter: ObligationFilter | None,
    ) -> tuple[DistributionResult, AggregationResult]:
        # datetime is a date subclass but cannot be compared with due dates
        if isinstance(as_of, datetime) or not isinstance(as_of, date):
            raise ValidationError(f"as_of must be a date, got {as_of!r}")
        credit = await self._resolve_credit(unit, credit_balance)
        aggregation = await self.aggregator.aggregate(unit, as_of, obligation_filter)
        ordered = self.classifier.sort(aggregation.obligations, as_of)
        result = self.distributor.distribute(ordered, amount, credit, as_of, aggregation.degraded_modules)
        return result, aggregation

    async def preview_payment(
        self,
        unit_id: str,
        amount: int,
        as_of: date,
        credit_balance: int | None = None,
        obligation_filter: ObligationFilter | None = None,
    ) -> DistributionResult:
        """Compute how a payment would be distributed without writing anything.

        Args:
            unit_id: Unit code
            amount: Payment in minor units (0 previews the open obligations only)
            as_of: Payment date; penalties are computed for this date
            credit_balance: Caller's view of the unit's credit; read from the ledger when omitted
            obligation_filter: Optional narrowing, must be repeated on commit

        Returns:
            DistributionResult, with ``degraded_modules`` set if a module failed to load

        Raises:
            NotFoundError: Unknown unit
            ValidationError: Malformed amount or date, or stale credit balance
            ConfigurationError: Missing or invalid billing configuration
        """
        unit = await self.get_unit(unit_id)
        result, _ = await self._distribute(unit, amount, as_of, credit_balance, obligation_filter)
        logger.info(
            "Preview for unit %s: amount=%d applied=%d net_credit=%+d",
            unit_id,
            amount,
            result.total_applied,
            result.net_credit_added,
        )
        return result

    async def commit_payment(
        self,
        unit_id: str,
        amount: int,
        as_of: date,
        *,
        expected_preview_total: int,
        credit_balance: int | None = None,
        obligation_filter: ObligationFilter | None = None,
        payment_method: str | None = None,
        reference: str | None = None,
        notes: str | None = None,
        actor: str | None = None,
    ) -> CommitResult:
        """Recompute the distribution and write it atomically.

        Args:
            unit_id: Unit code
            amount: Payment in minor units (must be positive)
            as_of: Payment date (may be backdated)
            expected_preview_total: ``total_applied`` of the preview the caller approved
            credit_balance: Credit balance the preview was computed with
            obligation_filter: Same filter the preview used
            payment_method: e.g. "eTransfer", "cash"
            reference: External payment reference
            notes: Extra text appended to the generated notes
            actor: Who recorded the payment

        Returns:
            CommitResult with the new transaction id

        Raises:
            ValidationError: Preview mismatch, stale credit, invalid amount, or invalid write
            DegradedSourceError: A module could not be loaded
            NotFoundError: Unknown unit or vanished record
            AllocationMismatchError: Allocation lines do not sum to the payment
        """
        unit = await self.get_unit(unit_id)
        if isinstance(amount, int) and not isinstance(amount, bool) and amount == 0:
            raise ValidationError("A zero payment can only be previewed")

        result, aggregation = await self._distribute(unit, amount, as_of, credit_balance, obligation_filter)

        if result.is_degraded:
            raise DegradedSourceError(result.degraded_modules)
        if expected_preview_total != result.total_applied:
            logger.warning(
                "Preview mismatch for unit %s: expected %s, recomputed %d",
                unit_id,
                expected_preview_total,
                result.total_applied,
            )
            raise ValidationError(
                f"Payment preview is out of date: expected {expected_preview_total} applied, "
                f"recomputed {result.total_applied}"
            )
        if amount != result.total_applied + result.net_credit_added:
            raise ValidationError(
                f"Payment {amount} does not equal applied {result.total_applied} "
                f"plus net credit {result.net_credit_added}"
            )

        waived_labels = []
        if obligation_filter is not None:
            waived_labels = [
                a.label
                for a in result.per_obligation
                if obligation_filter.waives_penalty(a.obligation_id)
            ]

        deltas = self.formatter.build_deltas(result)
        draft = self.formatter.build_draft(
            result,
            unit.id,
            payment_method=payment_method,
            reference=reference,
            notes=notes,
            waived_labels=waived_labels,
        )
        transaction_id = await self.coordinator.commit(unit, result, aggregation, draft, deltas, actor)
        return CommitResult(transaction_id=transaction_id, result=result)

    async def reconcile(self, unit_id: str) -> list[DiscrepancyReport]:
        """Report obligations whose stored paid amount disagrees with the transactions."""
        unit = await self.get_unit(unit_id)
        return await self.reconciler.reconcile(unit)

    async def audit_lookback_flags(self, unit_id: str) -> list[int]:
        """Fiscal years whose dues lookback hint is wrongly set."""
        unit = await self.get_unit(unit_id)
        return await self.reconciler.audit_lookback_flags(unit)


__all__ = ["UnifiedPaymentService", "CommitResult"]
