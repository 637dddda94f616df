"""Atomic commit coordinator.

Writes a payment as one indivisible unit: the transaction with its allocations,
paid increments and recomputed penalties on every touched bill record, the
credit ledger entry, the audit entry and the dues lookback hint. Everything
goes through one session transaction; any failure rolls all of it back.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from condo_billing.models import CreditEntryType, Unit
from condo_billing.services.aggregator import AggregationResult
from condo_billing.services.audit_service import AuditService
from condo_billing.services.bill_source import BillSource, ObligationDelta
from condo_billing.services.credit_service import CreditLedgerService
from condo_billing.services.distribution_service import DistributionResult
from condo_billing.services.errors import DegradedSourceError, NotFoundError
from condo_billing.services.ledger_formatter import TransactionDraft
from condo_billing.services.transaction_service import TransactionRecorder

logger = logging.getLogger(__name__)


class AtomicCommitCoordinator:
    """Applies a formatted payment across all affected records."""

    def __init__(
        self,
        session: AsyncSession,
        sources: list[BillSource],
        recorder: TransactionRecorder | None = None,
        credit_service: CreditLedgerService | None = None,
    ):
        self.session = session
        self.sources = {source.module_type: source for source in sources}
        self.recorder = recorder or TransactionRecorder(session)
        self.credit_service = credit_service or CreditLedgerService(session)

    async def commit(
        self,
        unit: Unit,
        result: DistributionResult,
        aggregation: AggregationResult,
        draft: TransactionDraft,
        deltas: list[ObligationDelta],
        actor: str | None = None,
    ) -> int:
        """Write the payment and commit the session.

        Args:
            unit: Unit being paid for
            result: Distribution the payment was formatted from
            aggregation: Aggregation the distribution ran on
            draft: Transaction with allocation lines
            deltas: Per-obligation record updates
            actor: Who recorded the payment (for the audit log)

        Returns:
            Id of the committed transaction

        Raises:
            DegradedSourceError: If any module failed to load
            NotFoundError: If a target record vanished
            ValidationError: If a write would break an invariant (e.g., negative credit)
        """
        if aggregation.degraded_modules:
            raise DegradedSourceError(aggregation.degraded_modules)

        # Read before writing: a rollback expires the instance
        unit_code = unit.code

        try:
            transaction_id = await self.recorder.create(draft)

            written = []
            for module, source in self.sources.items():
                module_deltas = [delta for delta in deltas if delta.module_type == module]
                load = aggregation.loads.get(module)
                if module_deltas and load is None:
                    raise NotFoundError(f"No {module.value} bills were loaded for unit {unit.code}")
                if load is None:
                    continue
                written.extend(await source.apply_payment(unit, module_deltas, load))

            net = result.net_credit_added
            if net != 0:
                entry_type = CreditEntryType.CREDIT_ADDED if net > 0 else CreditEntryType.CREDIT_USED
                await self.credit_service.append(
                    unit.id,
                    net,
                    entry_type,
                    transaction_id=transaction_id,
                    note=f"Payment {draft.reference or transaction_id}",
                )

            AuditService.log_payment_commit(self.session, transaction_id, unit.code, result, written, actor)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.exception("Payment commit for unit %s rolled back", unit_code)
            raise

        logger.info(
            "Committed transaction %d for unit %s: applied=%d, net_credit=%+d, records=%d",
            transaction_id,
            unit.code,
            result.total_applied,
            result.net_credit_added,
            len(written),
        )
        return transaction_id


__all__ = ["AtomicCommitCoordinator"]
