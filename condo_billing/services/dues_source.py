"""Recurring dues bill source.

Dues are stored as one DuesRecord per unit per fiscal year with twelve slots in
fiscal-month order. Monthly billing exposes each slot as its own obligation;
quarterly billing consolidates three slots into one obligation and spreads
payments back across them on commit.

Lookback:
- Fast path: the current year's record has ``prior_year_closed`` set, so only
  the current (and look-ahead next) year is read
- Slow path: walk backward a year at a time, collecting unpaid periods, until
  a fully paid year, a missing record, or ``max_lookback_years``
"""

import copy
import logging
import re
from collections import defaultdict
from dataclasses import replace
from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from condo_billing.models import DuesRecord, Unit
from condo_billing.models.billing_config import BillingFrequency
from condo_billing.models.dues_record import SLOTS_PER_YEAR
from condo_billing.services.bill_source import BillSource, ObligationDelta, SourceLoad
from condo_billing.services.billing_config import BillingConfig
from condo_billing.services.config import Settings, get_settings
from condo_billing.services.errors import NotFoundError, SourceLoadError, ValidationError
from condo_billing.services.obligations import ModuleType, Obligation
from condo_billing.services.penalty_service import PenaltyCalculator, split_with_largest_remainder

logger = logging.getLogger(__name__)

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
MONTHS_PER_QUARTER = 3
SLOT_FIELDS = ("base_paid", "penalty", "penalty_paid")

_DUES_ID = re.compile(r"^dues:(?P<year>\d{4}):(?:(?P<month>\d{2})|Q(?P<quarter>[1-4]))$")


def fiscal_year_for(day: date, start_month: int) -> int:
    """Fiscal year containing a date, named by the calendar year of its last month."""
    if start_month == 1:
        return day.year
    return day.year + 1 if day.month >= start_month else day.year


def fiscal_month_start(fiscal_year: int, index: int, start_month: int) -> date:
    """Calendar date of the first day of fiscal month ``index`` (0-based)."""
    offset = start_month - 1 + index
    if start_month == 1:
        year = fiscal_year
    else:
        year = fiscal_year - 1 + offset // 12
    return date(year, offset % 12 + 1, 1)


def month_label(day: date) -> str:
    return f"{MONTH_ABBR[day.month - 1]} {day.year}"


def parse_dues_id(obligation_id: str) -> tuple[int, list[int]]:
    """Split a dues obligation id into its fiscal year and slot indexes.

    Examples:
        "dues:2026:03" -> (2026, [2])
        "dues:2026:Q2" -> (2026, [3, 4, 5])

    Raises:
        ValidationError: If the id is not a dues obligation id
    """
    match = _DUES_ID.match(obligation_id)
    if not match:
        raise ValidationError(f"Not a dues obligation id: {obligation_id!r}")
    fiscal_year = int(match.group("year"))
    if match.group("quarter"):
        first = (int(match.group("quarter")) - 1) * MONTHS_PER_QUARTER
        return fiscal_year, list(range(first, first + MONTHS_PER_QUARTER))
    month = int(match.group("month"))
    if not 1 <= month <= SLOTS_PER_YEAR:
        raise ValidationError(f"Fiscal month out of range in {obligation_id!r}")
    return fiscal_year, [month - 1]


class DuesBillSource(BillSource):
    """Bill source for recurring (HOA) dues."""

    module_type = ModuleType.RECURRING_DUES

    def __init__(
        self,
        session: AsyncSession,
        penalty_calculator: PenaltyCalculator | None = None,
        settings: Settings | None = None,
    ):
        super().__init__(session, penalty_calculator)
        self.settings = settings or get_settings()

    async def _get_record(self, unit_id: int, fiscal_year: int) -> DuesRecord | None:
        stmt = select(DuesRecord).where(
            DuesRecord.unit_id == unit_id,
            DuesRecord.fiscal_year == fiscal_year,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    def _validated_slots(self, record: DuesRecord) -> list[dict[str, Any]]:
        """Return the record's slots after checking their shape.

        Raises:
            SourceLoadError: If the record is malformed
        """
        module = self.module_type.value
        where = f"fiscal year {record.fiscal_year}"
        if not isinstance(record.scheduled_amount, int) or record.scheduled_amount < 0:
            raise SourceLoadError(module, f"invalid scheduled amount in {where}")
        slots = record.slots
        if not isinstance(slots, list) or len(slots) != SLOTS_PER_YEAR:
            raise SourceLoadError(module, f"expected {SLOTS_PER_YEAR} slots in {where}")
        for position, slot in enumerate(slots, start=1):
            if not isinstance(slot, dict):
                raise SourceLoadError(module, f"slot {position} of {where} is not an object")
            for key in SLOT_FIELDS:
                value = slot.get(key, 0)
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise SourceLoadError(module, f"slot {position} of {where} has invalid {key}")
        return slots

    def _build_obligations(
        self,
        record: DuesRecord,
        config: BillingConfig,
        as_of: date | None = None,
    ) -> list[Obligation]:
        """Build every obligation of a record, recomputing penalties when as_of is given."""
        slots = self._validated_slots(record)
        start = config.fiscal_year_start_month
        fiscal_year = record.fiscal_year
        obligations = []

        if config.billing_frequency == BillingFrequency.QUARTERLY:
            for quarter in range(SLOTS_PER_YEAR // MONTHS_PER_QUARTER):
                group = slots[quarter * MONTHS_PER_QUARTER : (quarter + 1) * MONTHS_PER_QUARTER]
                obligations.append(
                    Obligation(
                        id=f"dues:{fiscal_year}:Q{quarter + 1}",
                        module_type=self.module_type,
                        original_base=record.scheduled_amount * MONTHS_PER_QUARTER,
                        penalty=sum(slot.get("penalty", 0) for slot in group),
                        base_paid=sum(slot.get("base_paid", 0) for slot in group),
                        penalty_paid=sum(slot.get("penalty_paid", 0) for slot in group),
                        due_date=fiscal_month_start(fiscal_year, quarter * MONTHS_PER_QUARTER, start),
                        label=f"Q{quarter + 1} {fiscal_year}",
                    )
                )
        else:
            for index, slot in enumerate(slots):
                due_date = fiscal_month_start(fiscal_year, index, start)
                obligations.append(
                    Obligation(
                        id=f"dues:{fiscal_year}:{index + 1:02d}",
                        module_type=self.module_type,
                        original_base=record.scheduled_amount,
                        penalty=slot.get("penalty", 0),
                        base_paid=slot.get("base_paid", 0),
                        penalty_paid=slot.get("penalty_paid", 0),
                        due_date=due_date,
                        label=month_label(due_date),
                    )
                )

        if as_of is not None:
            penalty_config = config.require_penalty()
            obligations = [
                replace(ob, penalty=self.penalty_calculator.penalty_for(ob, as_of, penalty_config))
                for ob in obligations
            ]
        return obligations

    def _open_obligations(self, record: DuesRecord, config: BillingConfig, as_of: date) -> list[Obligation]:
        return [ob for ob in self._build_obligations(record, config, as_of) if ob.is_open]

    async def load_open_obligations(self, unit: Unit, as_of: date, config: BillingConfig) -> SourceLoad:
        """Load unpaid dues periods using the fast or slow lookback path."""
        start = config.fiscal_year_start_month
        current_year = fiscal_year_for(as_of, start)
        load = SourceLoad(module_type=self.module_type, as_of=as_of, config=config)

        current = await self._get_record(unit.id, current_year)
        load.reads += 1
        if current is not None:
            load.obligations.extend(self._open_obligations(current, config, as_of))

        # Next fiscal year's first dues become payable inside the look-ahead window
        next_year_start = fiscal_month_start(current_year + 1, 0, start)
        if (next_year_start - as_of).days <= self.settings.dues_lookahead_days:
            upcoming = await self._get_record(unit.id, current_year + 1)
            load.reads += 1
            if upcoming is not None:
                load.obligations.extend(self._open_obligations(upcoming, config, as_of))

        load.fast_path = current is not None and current.prior_year_closed
        if not load.fast_path:
            for years_back in range(1, self.settings.max_lookback_years + 1):
                record = await self._get_record(unit.id, current_year - years_back)
                load.reads += 1
                if record is None:
                    break
                open_obligations = self._open_obligations(record, config, as_of)
                if not open_obligations:
                    break
                load.obligations.extend(open_obligations)
            else:
                load.lookback_complete = False
                logger.warning(
                    "Dues lookback for unit %s stopped at %d years; older arrears may exist",
                    unit.code,
                    self.settings.max_lookback_years,
                )

        load.obligations.sort(key=lambda ob: (ob.due_date, ob.id))
        logger.debug(
            "Loaded %d open dues obligations for unit %s (fast_path=%s, reads=%d)",
            len(load.obligations),
            unit.code,
            load.fast_path,
            load.reads,
        )
        return load

    async def load_all_obligations(self, unit: Unit, config: BillingConfig) -> list[Obligation]:
        stmt = select(DuesRecord).where(DuesRecord.unit_id == unit.id).order_by(DuesRecord.fiscal_year)
        result = await self.session.execute(stmt)
        obligations = []
        for record in result.scalars().all():
            obligations.extend(self._build_obligations(record, config))
        return obligations

    async def apply_payment(
        self,
        unit: Unit,
        deltas: list[ObligationDelta],
        load: SourceLoad | None = None,
    ) -> list[str]:
        """Spread increments onto slots and maintain the lookback hint."""
        by_year: dict[int, list[tuple[ObligationDelta, list[int]]]] = defaultdict(list)
        for delta in deltas:
            fiscal_year, indexes = parse_dues_id(delta.obligation_id)
            by_year[fiscal_year].append((delta, indexes))

        written = []
        for fiscal_year in sorted(by_year):
            record = await self._get_record(unit.id, fiscal_year)
            if record is None:
                raise NotFoundError(f"Dues record for unit {unit.code} fiscal year {fiscal_year} not found")
            slots = copy.deepcopy(self._validated_slots(record))
            for delta, indexes in by_year[fiscal_year]:
                self._apply_to_slots(record.scheduled_amount, slots, indexes, delta)
                written.append(delta.obligation_id)
            # Reassign so the JSON column is flagged dirty
            record.slots = slots

        if load is not None:
            await self._update_lookback_hint(unit, deltas, load)

        return written

    def _apply_to_slots(
        self,
        scheduled_amount: int,
        slots: list[dict[str, Any]],
        indexes: list[int],
        delta: ObligationDelta,
    ) -> None:
        outstanding = [max(0, scheduled_amount - slots[i].get("base_paid", 0)) for i in indexes]

        # Base fills slots in order
        remaining = delta.base_increment
        first_paid_slot = None
        for position, i in enumerate(indexes):
            take = min(outstanding[position], remaining)
            if take > 0:
                slots[i]["base_paid"] = slots[i].get("base_paid", 0) + take
                remaining -= take
                if first_paid_slot is None:
                    first_paid_slot = position
        if remaining > 0:
            raise ValidationError(f"Base increment overpays {delta.obligation_id} by {remaining}")

        # Spare penalty units land on the first slot taking base, else the first one still owing
        if first_paid_slot is None:
            first_paid_slot = next((p for p, owed in enumerate(outstanding) if owed > 0), None)

        # Recomputed penalty: the unpaid part is spread by outstanding base
        stored_penalty = sum(slots[i].get("penalty", 0) for i in indexes)
        already_paid = sum(slots[i].get("penalty_paid", 0) for i in indexes)
        if delta.penalty < already_paid + delta.penalty_increment:
            raise ValidationError(f"Penalty for {delta.obligation_id} would fall below amount paid")
        if delta.penalty != stored_penalty:
            if len(indexes) == 1:
                slots[indexes[0]]["penalty"] = delta.penalty
            else:
                parts = split_with_largest_remainder(
                    delta.penalty - already_paid, outstanding, remainder_index=first_paid_slot
                )
                for part, i in zip(parts, indexes):
                    slots[i]["penalty"] = slots[i].get("penalty_paid", 0) + part

        # Penalty paid fills slots starting where base was first applied
        start = first_paid_slot or 0
        remaining = delta.penalty_increment
        for i in indexes[start:] + indexes[:start]:
            room = slots[i].get("penalty", 0) - slots[i].get("penalty_paid", 0)
            take = min(max(0, room), remaining)
            if take > 0:
                slots[i]["penalty_paid"] = slots[i].get("penalty_paid", 0) + take
                remaining -= take
        if remaining > 0:
            raise ValidationError(f"Penalty increment overpays {delta.obligation_id} by {remaining}")

    async def _update_lookback_hint(self, unit: Unit, deltas: list[ObligationDelta], load: SourceLoad) -> None:
        """Set prior_year_closed once a complete slow-path scan shows no earlier arrears remain."""
        if load.fast_path or not load.lookback_complete:
            return

        current_year = fiscal_year_for(load.as_of, load.config.fiscal_year_start_month)
        applied = {delta.obligation_id: delta for delta in deltas}
        for ob in load.obligations:
            if parse_dues_id(ob.id)[0] >= current_year:
                continue
            delta = applied.get(ob.id)
            if delta is None:
                return
            if delta.base_increment < ob.base_remaining:
                return
            if ob.penalty_paid + delta.penalty_increment < delta.penalty:
                return

        current = await self._get_record(unit.id, current_year)
        if current is not None and not current.prior_year_closed:
            current.prior_year_closed = True
            logger.info("Marked prior years closed for unit %s fiscal year %d", unit.code, current_year)

    async def audit_lookback_flags(self, unit: Unit, config: BillingConfig) -> list[int]:
        """List fiscal years flagged prior_year_closed while an earlier year still has open periods."""
        stmt = select(DuesRecord).where(DuesRecord.unit_id == unit.id).order_by(DuesRecord.fiscal_year)
        result = await self.session.execute(stmt)
        records = result.scalars().all()

        wrong = []
        open_years: list[int] = []
        for record in records:
            if record.prior_year_closed and open_years:
                logger.warning(
                    "Unit %s fiscal year %d is flagged prior_year_closed but %s still open",
                    unit.code,
                    record.fiscal_year,
                    open_years,
                )
                wrong.append(record.fiscal_year)
            if any(ob.is_open for ob in self._build_obligations(record, config)):
                open_years.append(record.fiscal_year)
        return wrong


__all__ = [
    "DuesBillSource",
    "fiscal_year_for",
    "fiscal_month_start",
    "month_label",
    "parse_dues_id",
]
