"""Transaction creation service for recorded payments."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from condo_billing.models import AccountingTransaction, Allocation
from condo_billing.services.ledger_formatter import TransactionDraft

logger = logging.getLogger(__name__)


class TransactionRecorder:
    """Writes AccountingTransactions with their allocation line items."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, draft: TransactionDraft) -> int:
        """Add a transaction and its allocations to the open session.

        Flushes so the id is available, but never commits: the transaction is
        part of the caller's atomic batch.

        Args:
            draft: Formatted transaction

        Returns:
            Id of the new transaction
        """
        transaction = AccountingTransaction(
            unit_id=draft.unit_id,
            amount=draft.amount,
            transaction_date=draft.transaction_date,
            payment_method=draft.payment_method,
            reference=draft.reference,
            notes=draft.notes,
        )
        transaction.allocations = [
            Allocation(
                sequence=line.sequence,
                allocation_type=line.allocation_type.value,
                target_id=line.target_id,
                target_name=line.target_name,
                category_id=line.category_id,
                category_name=line.category_name,
                amount=line.amount,
            )
            for line in draft.allocations
        ]
        self.session.add(transaction)
        await self.session.flush()
        logger.info(
            "Recorded transaction %d for unit %d: amount=%d, %d allocations",
            transaction.id,
            draft.unit_id,
            draft.amount,
            len(draft.allocations),
        )
        return transaction.id

    async def list_for_unit(self, unit_id: int) -> list[AccountingTransaction]:
        """All transactions for a unit with allocations loaded, oldest first."""
        stmt = (
            select(AccountingTransaction)
            .where(AccountingTransaction.unit_id == unit_id)
            .options(selectinload(AccountingTransaction.allocations))
            .order_by(AccountingTransaction.transaction_date, AccountingTransaction.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


__all__ = ["TransactionRecorder"]
