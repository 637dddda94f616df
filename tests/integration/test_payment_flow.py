"""Integration tests for preview and commit of unified payments."""

from datetime import date, datetime

import pytest
from sqlalchemy import func, select

from condo_billing.models import AccountingTransaction, AuditLog, CreditEntryType, DuesRecord, WaterBill
from condo_billing.services.credit_service import CreditLedgerService
from condo_billing.services.errors import (
    ConfigurationError,
    DegradedSourceError,
    NotFoundError,
    ValidationError,
)
from condo_billing.services.obligations import ObligationFilter, ObligationStatus
from condo_billing.services.payment_service import UnifiedPaymentService

# January dues are past due but inside grace; February is outside the look-ahead window
AS_OF = date(2026, 1, 5)


async def transaction_count(session) -> int:
    result = await session.execute(select(func.count()).select_from(AccountingTransaction))
    return result.scalar_one()


async def dues_slots(session, unit, fiscal_year=2026):
    result = await session.execute(
        select(DuesRecord).where(DuesRecord.unit_id == unit.id, DuesRecord.fiscal_year == fiscal_year)
    )
    record = result.scalar_one()
    await session.refresh(record)
    return record.slots


@pytest.mark.integration
class TestPreview:
    """Preview computes without writing."""

    @pytest.mark.asyncio
    async def test_preview_current_month(self, service, unit, add_dues):
        await add_dues(unit, 2026)

        result = await service.preview_payment("101", 95000, AS_OF)

        assert [a.obligation_id for a in result.per_obligation] == ["dues:2026:01"]
        assert result.per_obligation[0].base_allocated == 95000
        assert result.per_obligation[0].new_status == ObligationStatus.PAID
        assert result.new_credit_balance == 0

    @pytest.mark.asyncio
    async def test_preview_writes_nothing(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)

        await service.preview_payment("101", 95000, AS_OF)

        assert await transaction_count(session) == 0
        assert (await dues_slots(session, unit))[0]["base_paid"] == 0

    @pytest.mark.asyncio
    async def test_zero_payment_preview(self, service, unit, add_dues):
        await add_dues(unit, 2026)

        result = await service.preview_payment("101", 0, AS_OF)

        assert len(result.per_obligation) == 1
        assert result.total_applied == 0

    @pytest.mark.asyncio
    async def test_unknown_unit(self, service, unit):
        with pytest.raises(NotFoundError):
            await service.preview_payment("999", 100, AS_OF)

    @pytest.mark.asyncio
    async def test_invalid_date(self, service, unit):
        with pytest.raises(ValidationError):
            await service.preview_payment("101", 100, "2026-01-05")

    @pytest.mark.asyncio
    async def test_datetime_as_of_rejected(self, service, unit, add_dues):
        await add_dues(unit, 2026)

        with pytest.raises(ValidationError):
            await service.preview_payment("101", 100, datetime(2026, 1, 5, 12, 0))

    @pytest.mark.asyncio
    async def test_missing_config_is_fatal(self, session, settings, add_unit, add_config):
        await add_config("dues")
        await add_unit()

        with pytest.raises(ConfigurationError):
            await UnifiedPaymentService(session, settings).preview_payment("101", 100, AS_OF)

    @pytest.mark.asyncio
    async def test_disabled_module_contributes_nothing(self, session, settings, add_unit, add_config, add_water):
        await add_config("dues")
        await add_config("water", enabled=False, penalty_rate=None, grace_days=None)
        unit = await add_unit()
        await add_water(unit, "2025-12", 40000, date(2026, 1, 20))

        result = await UnifiedPaymentService(session, settings).preview_payment("101", 40000, AS_OF)

        assert result.per_obligation == ()
        assert result.degraded_modules == {}
        assert result.credit_added == 40000

    @pytest.mark.asyncio
    async def test_through_date_filter(self, service, unit, add_dues):
        await add_dues(unit, 2025, paid_months=11)
        await add_dues(unit, 2026)

        result = await service.preview_payment(
            "101", 300000, AS_OF, obligation_filter=ObligationFilter(through_date=date(2025, 12, 31))
        )

        assert [a.obligation_id for a in result.per_obligation] == ["dues:2025:12"]

    @pytest.mark.asyncio
    async def test_waived_penalty(self, service, unit, add_dues):
        await add_dues(unit, 2025, paid_months=10)
        await add_dues(unit, 2026)

        plain = await service.preview_payment("101", 0, AS_OF)
        waived = await service.preview_payment(
            "101", 0, AS_OF, obligation_filter=ObligationFilter(waived_penalty_ids={"dues:2025:11"})
        )

        assert plain.allocation_for("dues:2025:11").penalty == 9500
        assert waived.allocation_for("dues:2025:11").penalty == 0


@pytest.mark.integration
class TestCommit:
    """Commit scenarios."""

    @pytest.mark.asyncio
    async def test_commit_matches_preview(self, service, unit, add_dues, add_water):
        await add_dues(unit, 2025, paid_months=11)
        await add_dues(unit, 2026)
        await add_water(unit, "2025-12", 41234, date(2026, 1, 20))

        preview = await service.preview_payment("101", 150000, AS_OF)
        committed = await service.commit_payment(
            "101", 150000, AS_OF, expected_preview_total=preview.total_applied
        )

        assert committed.result.to_dict() == preview.to_dict()

    @pytest.mark.asyncio
    async def test_exact_payment(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)

        committed = await service.commit_payment(
            "101", 95000, AS_OF, expected_preview_total=95000, payment_method="eTransfer", reference="ET-1"
        )

        slots = await dues_slots(session, unit)
        assert slots[0] == {"base_paid": 95000, "penalty": 0, "penalty_paid": 0}
        transaction = await session.get(AccountingTransaction, committed.transaction_id)
        await session.refresh(transaction, ["allocations"])
        assert transaction.amount == 95000
        assert transaction.reference == "ET-1"
        assert transaction.notes == "HOA Dues: Jan 2026 (eTransfer)"
        assert [(a.allocation_type, a.target_id, a.amount) for a in transaction.allocations] == [
            ("dues_base", "dues:2026:01", 95000)
        ]
        assert transaction.allocations[0].allocation_id == "alloc_001"

    @pytest.mark.asyncio
    async def test_partial_payment_leaves_remainder(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)

        await service.commit_payment("101", 50000, AS_OF, expected_preview_total=50000)

        slots = await dues_slots(session, unit)
        assert 95000 - slots[0]["base_paid"] == 45000
        follow_up = await service.preview_payment("101", 45000, AS_OF)
        assert follow_up.per_obligation[0].new_status == ObligationStatus.PAID

    @pytest.mark.asyncio
    async def test_overpayment_adds_credit(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)

        committed = await service.commit_payment("101", 120000, AS_OF, expected_preview_total=95000)

        assert committed.result.credit_added == 25000
        assert await CreditLedgerService(session).get_balance(unit.id) == 25000
        transaction = await session.get(AccountingTransaction, committed.transaction_id)
        await session.refresh(transaction, ["allocations"])
        assert [(a.allocation_type, a.amount) for a in transaction.allocations] == [
            ("dues_base", 95000),
            ("credit_added", 25000),
        ]

    @pytest.mark.asyncio
    async def test_existing_credit_is_used(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)
        credit = CreditLedgerService(session)
        await credit.append(unit.id, 30000, CreditEntryType.STARTING_BALANCE, note="Opening balance")
        await session.commit()

        committed = await service.commit_payment(
            "101", 70000, AS_OF, expected_preview_total=95000, credit_balance=30000
        )

        assert committed.result.credit_used == 25000
        assert await credit.get_balance(unit.id) == 5000
        history = await credit.get_history(unit.id)
        assert [(e.entry_type, e.amount) for e in history] == [("starting_balance", 30000), ("credit_used", -25000)]

    @pytest.mark.asyncio
    async def test_penalties_persisted_and_paid_first(self, session, service, unit, add_dues):
        await add_dues(unit, 2025, paid_months=10)
        await add_dues(unit, 2026)

        await service.commit_payment("101", 100000, AS_OF, expected_preview_total=100000)

        november = (await dues_slots(session, unit, 2025))[10]
        assert november == {"base_paid": 90500, "penalty": 9500, "penalty_paid": 9500}

    @pytest.mark.asyncio
    async def test_water_and_dues_in_one_payment(self, session, service, unit, add_dues, add_water):
        await add_dues(unit, 2026)
        water = await add_water(unit, "2025-12", 40000, date(2026, 1, 20))

        committed = await service.commit_payment(
            "101", 135000, AS_OF, expected_preview_total=135000, payment_method="cash"
        )

        await session.refresh(water)
        assert water.base_paid == 40000
        assert (await dues_slots(session, unit))[0]["base_paid"] == 95000
        assert committed.result.credit_added == 0

    @pytest.mark.asyncio
    async def test_audit_entry_written(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)

        committed = await service.commit_payment(
            "101", 95000, AS_OF, expected_preview_total=95000, actor="admin"
        )

        result = await session.execute(select(AuditLog).where(AuditLog.entity_type == "payment"))
        audit = result.scalar_one()
        assert audit.entity_id == committed.transaction_id
        assert audit.action == "commit"
        assert audit.actor == "admin"
        assert audit.changes["obligations"] == ["dues:2026:01"]


@pytest.mark.integration
class TestCommitRejections:
    """Commit refuses to write when inputs are stale or invalid."""

    @pytest.mark.asyncio
    async def test_stale_preview_rejected(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)

        with pytest.raises(ValidationError, match="out of date"):
            await service.commit_payment("101", 95000, AS_OF, expected_preview_total=90000)

        assert await transaction_count(session) == 0

    @pytest.mark.asyncio
    async def test_stale_credit_rejected(self, session, service, unit, add_dues):
        await add_dues(unit, 2026)

        with pytest.raises(ValidationError, match="Stale credit"):
            await service.commit_payment(
                "101", 95000, AS_OF, expected_preview_total=95000, credit_balance=5000
            )

        assert await transaction_count(session) == 0

    @pytest.mark.asyncio
    async def test_zero_payment_cannot_commit(self, service, unit, add_dues):
        await add_dues(unit, 2026)

        with pytest.raises(ValidationError):
            await service.commit_payment("101", 0, AS_OF, expected_preview_total=0)

    @pytest.mark.asyncio
    async def test_negative_payment_rejected(self, service, unit, add_dues):
        await add_dues(unit, 2026)

        with pytest.raises(ValidationError):
            await service.commit_payment("101", -100, AS_OF, expected_preview_total=0)

    @pytest.mark.asyncio
    async def test_degraded_module_blocks_commit(self, session, service, unit, add_dues, add_water):
        await add_dues(unit, 2026)
        await add_water(unit, "2025-12", -100, date(2026, 1, 20))

        preview = await service.preview_payment("101", 95000, AS_OF)
        assert "water" in preview.degraded_modules
        assert preview.per_obligation[0].obligation_id == "dues:2026:01"

        with pytest.raises(DegradedSourceError):
            await service.commit_payment("101", 95000, AS_OF, expected_preview_total=preview.total_applied)

        assert await transaction_count(session) == 0

    @pytest.mark.asyncio
    async def test_second_commit_sees_first(self, session, service, unit, add_dues):
        """Replaying an old preview after another payment landed is refused."""
        await add_dues(unit, 2026)
        preview = await service.preview_payment("101", 95000, AS_OF)
        await service.commit_payment("101", 50000, AS_OF, expected_preview_total=50000)

        with pytest.raises(ValidationError):
            await service.commit_payment("101", 95000, AS_OF, expected_preview_total=preview.total_applied)

        assert await transaction_count(session) == 1


@pytest.mark.integration
class TestWaterBillUpdates:
    """Water bill paid fields after commit."""

    @pytest.mark.asyncio
    async def test_water_penalty_persisted(self, session, service, unit, add_water):
        # Due 2025-11-25, grace to 2025-12-05, 31 days late on 2026-01-05
        bill = await add_water(unit, "2025-10", 40000, date(2025, 11, 25))

        await service.commit_payment("101", 44000, AS_OF, expected_preview_total=44000)

        await session.refresh(bill)
        assert bill.penalty == 4000
        assert bill.penalty_paid == 4000
        assert bill.base_paid == 40000

    @pytest.mark.asyncio
    async def test_open_bill_behind_paid_bill_listed(self, session, service, unit, add_water):
        await add_water(unit, "2025-10", 40000, date(2025, 11, 20))
        await add_water(unit, "2025-11", 40000, date(2025, 12, 20), base_paid=40000)
        await add_water(unit, "2025-12", 40000, date(2026, 1, 20))

        result = await service.preview_payment("101", 0, AS_OF)

        assert [a.obligation_id for a in result.per_obligation] == ["water:2025-10", "water:2025-12"]

    @pytest.mark.asyncio
    async def test_older_bill_still_open_after_newer_paid(self, service, unit, add_water):
        await add_water(unit, "2025-11", 30000, date(2026, 1, 20))
        await add_water(unit, "2025-12", 20000, date(2026, 1, 25))
        skip_november = ObligationFilter(excluded_ids={"water:2025-11"})

        await service.commit_payment(
            "101", 20000, AS_OF, expected_preview_total=20000, obligation_filter=skip_november
        )
        result = await service.preview_payment("101", 0, AS_OF)

        assert [a.obligation_id for a in result.per_obligation] == ["water:2025-11"]

    @pytest.mark.asyncio
    async def test_unpaid_water_bills_listed(self, session, service, unit, add_water):
        await add_water(unit, "2025-11", 40000, date(2025, 12, 20))
        await add_water(unit, "2025-12", 30000, date(2026, 1, 20))

        result = await service.preview_payment("101", 0, AS_OF)
        bills = (await session.execute(select(WaterBill))).scalars().all()

        assert len(bills) == 2
        assert [a.priority_class for a in result.per_obligation] == [2, 4]
