"""Integration tests for all-or-nothing commits and the credit ledger."""

from datetime import date

import pytest
from sqlalchemy import func, select

from condo_billing.models import AccountingTransaction, AuditLog, CreditEntryType, CreditLedgerEntry, DuesRecord
from condo_billing.services.bill_source import ObligationDelta
from condo_billing.services.credit_service import CreditLedgerService
from condo_billing.services.errors import NotFoundError, ValidationError
from condo_billing.services.obligations import ModuleType

AS_OF = date(2026, 1, 5)


async def count(session, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def prepare(service, unit_code, amount):
    """Run the commit pipeline up to formatting, as commit_payment does."""
    unit = await service.get_unit(unit_code)
    aggregation = await service.aggregator.aggregate(unit, AS_OF)
    ordered = service.classifier.sort(aggregation.obligations, AS_OF)
    result = service.distributor.distribute(ordered, amount, 0, AS_OF)
    deltas = service.formatter.build_deltas(result)
    draft = service.formatter.build_draft(result, unit.id)
    return unit, aggregation, result, deltas, draft


@pytest.mark.integration
class TestAtomicCommit:
    """A failing write leaves no trace."""

    @pytest.mark.asyncio
    async def test_vanished_record_rolls_back_everything(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)
        unit_obj, aggregation, result, deltas, draft = await prepare(service, "101", 120000)
        vanished = ObligationDelta(
            obligation_id="water:2019-01",
            module_type=ModuleType.METERED_CONSUMPTION,
            base_increment=100,
            penalty_increment=0,
            penalty=0,
        )

        with pytest.raises(NotFoundError):
            await service.coordinator.commit(unit_obj, result, aggregation, draft, deltas + [vanished])

        assert await count(session, AccountingTransaction) == 0
        assert await count(session, CreditLedgerEntry) == 0
        assert await count(session, AuditLog) == 0
        record = (await session.execute(select(DuesRecord))).scalar_one()
        assert record.slots[0]["base_paid"] == 0

    @pytest.mark.asyncio
    async def test_vanished_dues_year_rolls_back(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)
        unit_obj, aggregation, result, deltas, draft = await prepare(service, "101", 95000)
        ghost = ObligationDelta("dues:2031:01", ModuleType.RECURRING_DUES, 1, 0, 0)

        with pytest.raises(NotFoundError):
            await service.coordinator.commit(unit_obj, result, aggregation, draft, deltas + [ghost])

        assert await count(session, AccountingTransaction) == 0

    @pytest.mark.asyncio
    async def test_overpaying_a_record_rolls_back(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)
        unit_obj, aggregation, result, deltas, draft = await prepare(service, "101", 95000)
        too_much = [ObligationDelta("dues:2026:01", ModuleType.RECURRING_DUES, 95001, 0, 0)]

        with pytest.raises(ValidationError):
            await service.coordinator.commit(unit_obj, result, aggregation, draft, too_much)

        assert await count(session, AccountingTransaction) == 0

    @pytest.mark.asyncio
    async def test_successful_commit_writes_everything(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)
        unit_obj, aggregation, result, deltas, draft = await prepare(service, "101", 120000)

        transaction_id = await service.coordinator.commit(unit_obj, result, aggregation, draft, deltas)

        assert await count(session, AccountingTransaction) == 1
        entry = (await session.execute(select(CreditLedgerEntry))).scalar_one()
        assert entry.transaction_id == transaction_id
        assert entry.amount == 25000
        assert await count(session, AuditLog) == 1


@pytest.mark.integration
class TestCreditLedger:
    """Credit balance is a fold of append-only entries."""

    @pytest.mark.asyncio
    async def test_balance_folds_history(self, session, unit):
        credit = CreditLedgerService(session)

        await credit.append(unit.id, 10000, CreditEntryType.STARTING_BALANCE)
        await credit.append(unit.id, 2500, CreditEntryType.CREDIT_ADDED)
        await credit.append(unit.id, -7000, CreditEntryType.CREDIT_USED)

        assert await credit.get_balance(unit.id) == 5500
        assert len(await credit.get_history(unit.id)) == 3

    @pytest.mark.asyncio
    async def test_empty_ledger_is_zero(self, session, unit):
        assert await CreditLedgerService(session).get_balance(unit.id) == 0

    @pytest.mark.asyncio
    async def test_balance_never_negative(self, session, unit):
        credit = CreditLedgerService(session)
        await credit.append(unit.id, 1000, CreditEntryType.STARTING_BALANCE)

        with pytest.raises(ValidationError, match="negative"):
            await credit.append(unit.id, -1001, CreditEntryType.CREDIT_USED)

        assert await credit.get_balance(unit.id) == 1000

    @pytest.mark.asyncio
    async def test_non_integer_amount_rejected(self, session, unit):
        with pytest.raises(ValidationError):
            await CreditLedgerService(session).append(unit.id, 10.5, CreditEntryType.ADJUSTMENT)

    @pytest.mark.asyncio
    async def test_adjustment_is_committed(self, session, unit):
        credit = CreditLedgerService(session)

        entry = await credit.record_adjustment(unit.id, 4200, note="Refund of duplicate fee")

        assert entry.entry_type == "adjustment"
        assert await credit.get_balance(unit.id) == 4200

    @pytest.mark.asyncio
    async def test_rejected_adjustment_rolls_back(self, session, unit):
        credit = CreditLedgerService(session)
        # Rollback expires the unit instance
        unit_id = unit.id

        with pytest.raises(ValidationError):
            await credit.record_adjustment(unit_id, -1)

        assert await credit.get_balance(unit_id) == 0
