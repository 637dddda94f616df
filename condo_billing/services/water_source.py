"""Metered consumption (water) bill source.

Water bills exist only once a period has been read and billed, so every stored
bill is payable. Open bills are selected directly, newest first, up to
``max_lookback_periods`` rows, so a paid bill never hides an older unpaid one.
"""

import logging
from dataclasses import replace
from datetime import date

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from condo_billing.models import Unit, WaterBill
from condo_billing.services.bill_source import BillSource, ObligationDelta, SourceLoad
from condo_billing.services.billing_config import BillingConfig
from condo_billing.services.config import Settings, get_settings
from condo_billing.services.errors import NotFoundError, SourceLoadError, ValidationError
from condo_billing.services.obligations import ModuleType, Obligation
from condo_billing.services.penalty_service import PenaltyCalculator

logger = logging.getLogger(__name__)

WATER_ID_PREFIX = "water:"


def water_obligation_id(period: str) -> str:
    return f"{WATER_ID_PREFIX}{period}"


def parse_water_id(obligation_id: str) -> str:
    """Return the period key of a water obligation id.

    Raises:
        ValidationError: If the id is not a water obligation id
    """
    if not obligation_id.startswith(WATER_ID_PREFIX) or len(obligation_id) == len(WATER_ID_PREFIX):
        raise ValidationError(f"Not a water obligation id: {obligation_id!r}")
    return obligation_id[len(WATER_ID_PREFIX) :]


class WaterBillSource(BillSource):
    """Bill source for metered water consumption."""

    module_type = ModuleType.METERED_CONSUMPTION

    def __init__(
        self,
        session: AsyncSession,
        penalty_calculator: PenaltyCalculator | None = None,
        settings: Settings | None = None,
    ):
        super().__init__(session, penalty_calculator)
        self.settings = settings or get_settings()

    def _to_obligation(self, bill: WaterBill) -> Obligation:
        """Normalize a stored bill.

        Raises:
            SourceLoadError: If any money column is missing or negative
        """
        for column in ("current_charge", "penalty", "base_paid", "penalty_paid"):
            value = getattr(bill, column)
            if value is None or value < 0:
                raise SourceLoadError(self.module_type.value, f"bill {bill.period} has invalid {column}")
        if bill.due_date is None:
            raise SourceLoadError(self.module_type.value, f"bill {bill.period} has no due date")

        return Obligation(
            id=water_obligation_id(bill.period),
            module_type=self.module_type,
            original_base=bill.current_charge,
            penalty=bill.penalty,
            base_paid=bill.base_paid,
            penalty_paid=bill.penalty_paid,
            due_date=bill.due_date,
            label=f"Water {bill.period}",
        )

    async def load_open_obligations(self, unit: Unit, as_of: date, config: BillingConfig) -> SourceLoad:
        penalty_config = config.require_penalty()
        load = SourceLoad(module_type=self.module_type, as_of=as_of, config=config)

        limit = self.settings.max_lookback_periods
        # Malformed rows are selected too so they surface as a load error
        open_or_malformed = or_(
            WaterBill.base_paid < WaterBill.current_charge,
            WaterBill.penalty_paid < WaterBill.penalty,
            WaterBill.current_charge < 0,
            WaterBill.base_paid < 0,
            WaterBill.penalty < 0,
            WaterBill.penalty_paid < 0,
        )
        stmt = (
            select(WaterBill)
            .where(WaterBill.unit_id == unit.id, open_or_malformed)
            .order_by(WaterBill.period.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        load.reads += 1
        bills = result.scalars().all()

        for bill in bills:
            ob = self._to_obligation(bill)
            ob = replace(ob, penalty=self.penalty_calculator.penalty_for(ob, as_of, penalty_config))
            if ob.is_open:
                load.obligations.append(ob)

        if len(bills) == limit:
            load.lookback_complete = False
            logger.warning(
                "Water lookback for unit %s stopped at %d periods; older arrears may exist",
                unit.code,
                limit,
            )

        load.obligations.sort(key=lambda ob: (ob.due_date, ob.id))
        logger.debug("Loaded %d open water obligations for unit %s", len(load.obligations), unit.code)
        return load

    async def load_all_obligations(self, unit: Unit, config: BillingConfig) -> list[Obligation]:
        stmt = select(WaterBill).where(WaterBill.unit_id == unit.id).order_by(WaterBill.period)
        result = await self.session.execute(stmt)
        return [self._to_obligation(bill) for bill in result.scalars().all()]

    async def apply_payment(
        self,
        unit: Unit,
        deltas: list[ObligationDelta],
        load: SourceLoad | None = None,
    ) -> list[str]:
        written = []
        for delta in deltas:
            period = parse_water_id(delta.obligation_id)
            stmt = select(WaterBill).where(WaterBill.unit_id == unit.id, WaterBill.period == period)
            result = await self.session.execute(stmt)
            bill = result.scalar_one_or_none()
            if bill is None:
                raise NotFoundError(f"Water bill {period} for unit {unit.code} not found")

            new_base_paid = bill.base_paid + delta.base_increment
            new_penalty_paid = bill.penalty_paid + delta.penalty_increment
            if new_base_paid > bill.current_charge:
                raise ValidationError(f"Base increment overpays {delta.obligation_id}")
            if new_penalty_paid > delta.penalty:
                raise ValidationError(f"Penalty increment overpays {delta.obligation_id}")

            bill.base_paid = new_base_paid
            bill.penalty = delta.penalty
            bill.penalty_paid = new_penalty_paid
            written.append(delta.obligation_id)
        return written


__all__ = ["WaterBillSource", "water_obligation_id", "parse_water_id"]
