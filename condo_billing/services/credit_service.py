"""Credit ledger service: a unit's floating credit balance.

The balance is never stored. It is always the fold of the unit's append-only
ledger entries, and an append that would take it below zero is refused.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from condo_billing.models import CreditEntryType, CreditLedgerEntry
from condo_billing.services.errors import ValidationError

logger = logging.getLogger(__name__)


class CreditLedgerService:
    """Reads and appends credit ledger entries for a unit."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_history(self, unit_id: int) -> list[CreditLedgerEntry]:
        """Ledger entries for a unit, oldest first."""
        stmt = (
            select(CreditLedgerEntry)
            .where(CreditLedgerEntry.unit_id == unit_id)
            .order_by(CreditLedgerEntry.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_balance(self, unit_id: int) -> int:
        """Fold the ledger history into the current balance (minor units)."""
        balance = 0
        for entry in await self.get_history(unit_id):
            balance += entry.amount
            if balance < 0:
                logger.warning(
                    "Credit history for unit %d goes negative at entry %d (%d)",
                    unit_id,
                    entry.id,
                    balance,
                )
        return balance

    async def append(
        self,
        unit_id: int,
        amount: int,
        entry_type: CreditEntryType,
        transaction_id: int | None = None,
        note: str | None = None,
    ) -> CreditLedgerEntry:
        """Append a signed entry, refusing to take the balance negative.

        The entry is added and flushed; the caller owns the commit.

        Raises:
            ValidationError: If the amount is not an integer or the resulting
                balance would be negative
        """
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError(f"Credit amount must be an integer in minor units, got {amount!r}")

        balance = await self.get_balance(unit_id)
        if balance + amount < 0:
            raise ValidationError(
                f"Credit balance for unit {unit_id} would become negative ({balance} + {amount})"
            )

        entry = CreditLedgerEntry(
            unit_id=unit_id,
            amount=amount,
            transaction_id=transaction_id,
            entry_type=CreditEntryType(entry_type).value,
            note=note,
        )
        self.session.add(entry)
        await self.session.flush()
        logger.info(
            "Credit %s %d for unit %d (balance %d -> %d)",
            entry.entry_type,
            amount,
            unit_id,
            balance,
            balance + amount,
        )
        return entry

    async def record_adjustment(self, unit_id: int, amount: int, note: str | None = None) -> CreditLedgerEntry:
        """Manual correction of a unit's credit, committed immediately."""
        try:
            entry = await self.append(unit_id, amount, CreditEntryType.ADJUSTMENT, note=note)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return entry


__all__ = ["CreditLedgerService"]
