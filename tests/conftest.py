"""Pytest configuration: in-memory SQLite sessions and billing data factories."""

from datetime import date

import pytest
import pytest_asyncio

from condo_billing.models import DuesRecord, ModuleBillingConfig, Unit, WaterBill
from condo_billing.models.dues_record import empty_slots
from condo_billing.services.config import Settings
from condo_billing.services.db import create_all, create_engine_for, create_sessionmaker
from condo_billing.services.payment_service import UnifiedPaymentService

MONTHLY_DUES = 95000


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        log_file=str(tmp_path / "billing.log"),
    )


@pytest_asyncio.fixture
async def engine(settings):
    """Fresh in-memory database with every table created."""
    engine = create_engine_for(settings.database_url)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    """Create test database session."""
    async with create_sessionmaker(engine)() as session:
        yield session


@pytest.fixture
def add_config(session):
    """Factory for module billing configuration rows."""

    async def _add(
        module: str,
        enabled: bool = True,
        penalty_rate: str | None = "0.10",
        grace_days: int | None = 10,
        fiscal_year_start_month: int = 1,
        billing_frequency: str = "monthly",
    ) -> ModuleBillingConfig:
        config = ModuleBillingConfig(
            module=module,
            enabled=enabled,
            penalty_rate=penalty_rate,
            grace_days=grace_days,
            fiscal_year_start_month=fiscal_year_start_month,
            billing_frequency=billing_frequency,
        )
        session.add(config)
        await session.commit()
        return config

    return _add


@pytest_asyncio.fixture
async def billing_configs(add_config):
    """Dues and water enabled: 10% per 30 days after a 10-day grace period."""
    return {
        "dues": await add_config("dues"),
        "water": await add_config("water"),
    }


@pytest.fixture
def add_unit(session):
    async def _add(code: str = "101", owner_name: str = "Maria Lopez") -> Unit:
        unit = Unit(code=code, owner_name=owner_name, is_active=True)
        session.add(unit)
        await session.commit()
        return unit

    return _add


@pytest_asyncio.fixture
async def unit(billing_configs, add_unit):
    """Unit 101 with both modules configured."""
    return await add_unit()


@pytest.fixture
def add_dues(session):
    """Factory for dues records; the first ``paid_months`` slots are fully paid."""

    async def _add(
        unit: Unit,
        fiscal_year: int,
        scheduled_amount: int = MONTHLY_DUES,
        paid_months: int = 0,
        prior_year_closed: bool = False,
    ) -> DuesRecord:
        slots = empty_slots()
        for slot in slots[:paid_months]:
            slot["base_paid"] = scheduled_amount
        record = DuesRecord(
            unit_id=unit.id,
            fiscal_year=fiscal_year,
            scheduled_amount=scheduled_amount,
            slots=slots,
            prior_year_closed=prior_year_closed,
        )
        session.add(record)
        await session.commit()
        return record

    return _add


@pytest.fixture
def add_water(session):
    """Factory for water bills."""

    async def _add(
        unit: Unit,
        period: str,
        current_charge: int,
        due_date: date,
        base_paid: int = 0,
        penalty: int = 0,
        penalty_paid: int = 0,
    ) -> WaterBill:
        year, month = (int(part) for part in period.split("-"))
        bill = WaterBill(
            unit_id=unit.id,
            period=period,
            bill_date=date(year, month, 1),
            due_date=due_date,
            current_charge=current_charge,
            penalty=penalty,
            base_paid=base_paid,
            penalty_paid=penalty_paid,
        )
        session.add(bill)
        await session.commit()
        return bill

    return _add


@pytest.fixture
def service(session, settings):
    """Payment service bound to the test session."""
    return UnifiedPaymentService(session, settings)
